import asyncio
import pytest
import pytest_asyncio

from pyaccess.storage.sqlite import SQLite
from pyaccess.permissions.loaders import LoadedPermissions, PermissionLoader
from pyaccess.permissions.store import SQLPermissionStore
from pyaccess.pyaccess import Pyaccess
from pyaccess.models import AdminUser, ExtendedRole, Role, RolePermission


class StaticLoader(PermissionLoader):
    """Answers immediately from a uid -> LoadedPermissions map."""

    def __init__(self, results: dict = None):
        self.results = results or {}
        self.calls = []

    async def load_role_and_grants(self, principal):
        self.calls.append(principal.uid)
        return self.results.get(principal.uid, LoadedPermissions())


class ControlledLoader(PermissionLoader):
    """Every load waits on a future the test resolves by hand, in any order."""

    def __init__(self):
        self.pending: dict[str, list[asyncio.Future]] = {}

    async def load_role_and_grants(self, principal):
        future = asyncio.get_running_loop().create_future()
        self.pending.setdefault(principal.uid, []).append(future)
        return await future

    def complete(self, uid: str, result: LoadedPermissions, index: int = -1):
        self.pending[uid][index].set_result(result)

    def fail(self, uid: str, error: Exception, index: int = -1):
        self.pending[uid][index].set_exception(error)


class FailingLoader(PermissionLoader):
    async def load_role_and_grants(self, principal):
        raise ConnectionError("permission store unreachable")


async def settle():
    # lets freshly scheduled load tasks run up to their first suspension point
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture()
def admin_user():
    return AdminUser(
        uid="u-admin",
        name="Admin",
        role_id="role-admin",
        extended_role=ExtendedRole.ADMIN,
    )


@pytest.fixture()
def super_user():
    return AdminUser(
        uid="u-super",
        name="Super",
        role_id="role-super-admin",
        extended_role=ExtendedRole.SUPER_ADMIN,
    )


@pytest.fixture()
def clerk_user():
    return AdminUser(uid="u-clerk", name="Clerk", role_id="role-orders")


@pytest.fixture()
def inactive_user():
    return AdminUser(uid="u-gone", name="Gone", role_id="role-orders", is_active=False)


@pytest.fixture()
def admin_role():
    return Role(uid="role-admin", code="ADMIN", name="ADMIN", is_system=True)


@pytest.fixture()
def super_role():
    return Role(
        uid="role-super-admin", code="SUPER_ADMIN", name="SUPER_ADMIN", is_system=True
    )


@pytest.fixture()
def orders_role():
    return Role(
        uid="role-orders",
        code="ORDERS_CLERK",
        name="Orders clerk",
        permissions=[
            RolePermission("orders", ["view", "edit"]),
            RolePermission("customers", ["view"]),
        ],
    )


@pytest.fixture()
def sqlite_db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture()
def sqlite_storage(sqlite_db_path):
    return SQLite(sqlite_db_path)


@pytest_asyncio.fixture()
async def initialized_storage(sqlite_storage):
    async with sqlite_storage.session() as session:
        async with SQLPermissionStore().set_storage_session(session) as store:
            await store.init_schema()
    return sqlite_storage


@pytest.fixture()
def token_secret():
    return "test-secret-key-for-session-tokens-0001"


@pytest_asyncio.fixture()
async def engine(sqlite_storage, token_secret):
    engine = Pyaccess(storage=sqlite_storage, token_secret=token_secret)
    await engine.init_schema()
    return engine


@pytest_asyncio.fixture()
async def store(initialized_storage):
    async with initialized_storage.session() as session:
        async with SQLPermissionStore().set_storage_session(session) as bound:
            yield bound
