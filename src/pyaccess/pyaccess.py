import logging
import secrets
from typing import Iterable, Optional

from .access import AccessControl
from .models import (
    AdminUser,
    Effect,
    GroupMember,
    ModuleAccess,
    PermissionGroup,
    PermissionOverride,
    PermissionSnapshot,
    Role,
)
from .permissions.loaders import LoadedPermissions, PermissionLoader
from .permissions.resolver import SUPERUSER_NAMES, PermissionResolver, resolve
from .permissions.store import PermissionStore, SQLPermissionStore
from .storage import Storage
from .token import InvalidToken, Token

logger = logging.getLogger(__name__)


class Pyaccess(PermissionLoader):
    """
    Store-backed entry point: role CRUD for the role editor, groups and personal
    overrides, session tokens, and the loader behind each session's `AccessControl`.
    Every call opens its own storage session.
    """

    def __init__(
        self,
        storage: Storage,
        store: Optional[PermissionStore] = None,
        token_secret: str | None = None,
        token_expiry: int = 900,
        superuser_names: Iterable[str] = SUPERUSER_NAMES,
    ):
        self._storage = storage
        self._store = store or SQLPermissionStore()
        if not token_secret:
            token_secret = secrets.token_urlsafe(32)
        self._token = Token(token_secret)
        self._token_expiry = token_expiry
        self._superuser_names = frozenset(superuser_names)

    async def init_schema(self):
        async with self._storage.session() as session:
            async with self._store.set_storage_session(session) as store:
                await store.init_schema()

    def access_control(self) -> AccessControl:
        """A fresh, independent access-control state for one session."""
        return AccessControl(self, superuser_names=self._superuser_names)

    # loader

    async def load_role_and_grants(self, principal: AdminUser) -> LoadedPermissions:
        async with self._storage.session() as session:
            async with self._store.set_storage_session(session) as store:
                # the stored record is authoritative over whatever the caller holds
                stored = await store.get_principal(principal.uid)
                current = stored or principal
                if current.is_active is not True:
                    logger.info("principal %s is inactive", current.uid)
                    return LoadedPermissions()
                role = None
                if current.role_id:
                    role = await store.get_role(current.role_id)
                    if role is not None and not role.is_active:
                        logger.info(
                            "role %s of %s is inactive", role.uid, current.uid
                        )
                        role = None
                raw_grants = await store.get_raw_grants(current.uid)
        return LoadedPermissions(
            role=role, effective_permissions=resolve(current, role, raw_grants)
        )

    # roles

    async def list_roles(self, include_inactive: bool = False) -> list[Role]:
        async with self._storage.session() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.list_roles(include_inactive)

    async def get_role(self, uid: str) -> Optional[Role]:
        async with self._storage.session() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.get_role(uid)

    async def create_role(self, role: Role) -> Role:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.create_role(role)

    async def update_role(self, uid: str, updates: dict) -> Role:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.update_role(uid, updates)

    async def delete_role(self, uid: str) -> Role:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.delete_role(uid)

    async def get_user_count_by_role(self, uid: str) -> int:
        async with self._storage.session() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.get_user_count_by_role(uid)

    # principals

    async def save_principal(self, principal: AdminUser) -> AdminUser:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.save_principal(principal)

    async def get_principal(self, uid: str) -> Optional[AdminUser]:
        async with self._storage.session() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.get_principal(uid)

    # groups and overrides

    async def create_group(self, group: PermissionGroup) -> PermissionGroup:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.create_group(group)

    async def delete_group(self, code: str) -> PermissionGroup:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.delete_group(code)

    async def add_group_member(self, code: str, user_uid: str) -> GroupMember:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.add_group_member(code, user_uid)

    async def remove_group_member(self, code: str, user_uid: str) -> bool:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.remove_group_member(code, user_uid)

    async def set_group_permission(
        self, code: str, key: str, effect: Effect = Effect.ALLOW
    ) -> PermissionGroup:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.set_group_permission(code, key, effect)

    async def remove_group_permission(self, code: str, key: str) -> PermissionGroup:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.remove_group_permission(code, key)

    async def set_user_override(
        self,
        user_uid: str,
        key: str,
        effect: Effect,
        reason: Optional[str] = None,
        assigned_by: Optional[str] = None,
    ) -> PermissionOverride:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.set_user_override(
                    user_uid, key, effect, reason=reason, assigned_by=assigned_by
                )

    async def remove_user_override(self, user_uid: str, key: str) -> bool:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.remove_user_override(user_uid, key)

    async def list_user_overrides(self, user_uid: str) -> list[PermissionOverride]:
        async with self._storage.session() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.list_user_overrides(user_uid)

    # modules

    async def list_modules(self, include_disabled: bool = False) -> list[ModuleAccess]:
        async with self._storage.session() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.list_modules(include_disabled)

    async def save_module(self, module: ModuleAccess) -> ModuleAccess:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.save_module(module)

    async def update_module_access(
        self, module_key: str, updates: dict
    ) -> ModuleAccess:
        async with self._storage.begin() as session:
            async with self._store.set_storage_session(session) as store:
                return await store.update_module_access(module_key, updates)

    async def _resolver(self, user_uid: str) -> PermissionResolver:
        principal = await self.get_principal(user_uid)
        if principal is None:
            return PermissionResolver(None, None)
        loaded = await self.load_role_and_grants(principal)
        return PermissionResolver(
            principal,
            loaded.role,
            loaded.effective_permissions,
            superuser_names=self._superuser_names,
        )

    async def can_access_module(self, user_uid: str, module_key: str) -> bool:
        async with self._storage.session() as session:
            async with self._store.set_storage_session(session) as store:
                module = await store.get_module(module_key)
        resolver = await self._resolver(user_uid)
        return resolver.can_access_module(module)

    async def get_permission_snapshot(self, user_uid: str) -> PermissionSnapshot:
        """Allowed and denied keys plus module access, read fresh from the store."""
        resolver = await self._resolver(user_uid)
        if resolver.principal is None:
            raise ValueError(f"unknown principal {user_uid}")
        return resolver.snapshot(await self.list_modules())

    # sessions

    def issue_token(self, principal: AdminUser) -> str:
        return self._token.issue(principal, expires_in=self._token_expiry)

    async def resume_session(self, token: str) -> AdminUser:
        """Principal named by a session token, ready for `AccessControl.set_principal`."""
        uid = self._token.principal_uid(token)
        principal = await self.get_principal(uid)
        if principal is None:
            raise InvalidToken(f"unknown principal {uid}")
        return principal
