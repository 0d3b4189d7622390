import pytest

from pyaccess.models import (
    AdminUser,
    Effect,
    Grant,
    ModuleAccess,
    PermissionGroup,
    Role,
    RolePermission,
)
from pyaccess.permissions.model import InvalidPermissionAction
from pyaccess.permissions.store import (
    GroupError,
    ModuleNotFound,
    RoleNotFound,
    SQLPermissionStore,
    SystemRoleError,
)
from pyaccess.storage import DuplicateEntry


def test_parse_role_permissions():
    store = SQLPermissionStore()
    parsed = store.parse(
        [
            {"resource": "orders", "actions": ["view", "approve"]},
            RolePermission("roles", ["view"]),
        ]
    )
    assert parsed == [
        RolePermission("orders", ["view", "approve"]),
        RolePermission("roles", ["view"]),
    ]


@pytest.mark.parametrize(
    "permissions",
    [
        "orders:view",
        [{"resource": "warehouse", "actions": ["view"]}],
        [{"resource": "dashboard", "actions": ["delete"]}],
        ["orders:view"],
    ],
)
def test_parse_rejects_invalid_permissions(permissions):
    with pytest.raises(InvalidPermissionAction):
        SQLPermissionStore().parse(permissions)


def test_store_needs_a_session():
    with pytest.raises(ValueError):
        SQLPermissionStore().get_storage_session()


@pytest.mark.asyncio
async def test_role_crud(store, orders_role):
    created = await store.create_role(orders_role)
    assert created.id is not None

    got = await store.get_role("role-orders")
    assert got.code == "ORDERS_CLERK"
    assert got.grants("orders", "edit")
    assert got.actions_for("customers") == ["view"]

    updated = await store.update_role(
        "role-orders",
        {
            "name": "Orders lead",
            "uid": "hijacked",
            "permissions": [{"resource": "orders", "actions": ["view", "approve"]}],
        },
    )
    assert updated.uid == "role-orders"
    assert updated.name == "Orders lead"
    assert updated.grants("orders", "approve")
    assert not updated.grants("orders", "edit")

    deleted = await store.delete_role("role-orders")
    assert deleted.is_active is False
    # soft delete keeps the row
    assert (await store.get_role("role-orders")) is not None


@pytest.mark.asyncio
async def test_create_role_validates_permissions(store):
    role = Role(uid="bad", permissions=[RolePermission("dashboard", ["delete"])])
    with pytest.raises(InvalidPermissionAction):
        await store.create_role(role)
    assert await store.get_role("bad") is None


@pytest.mark.asyncio
async def test_duplicate_role_uid(store, orders_role):
    await store.create_role(orders_role)
    with pytest.raises(DuplicateEntry):
        await store.create_role(Role(uid="role-orders", name="again"))


@pytest.mark.asyncio
async def test_missing_roles(store):
    assert await store.get_role("nope") is None
    with pytest.raises(RoleNotFound):
        await store.update_role("nope", {"name": "x"})
    with pytest.raises(RoleNotFound):
        await store.delete_role("nope")


@pytest.mark.asyncio
async def test_system_roles_cannot_be_deleted(store, super_role):
    await store.create_role(super_role)
    with pytest.raises(SystemRoleError):
        await store.delete_role("role-super-admin")
    assert (await store.get_role("role-super-admin")).is_active


@pytest.mark.asyncio
async def test_list_roles_order_and_inactive(store, super_role, orders_role):
    await store.create_role(Role(uid="r-late", name="late", sort_order=5))
    await store.create_role(orders_role)
    await store.create_role(super_role)
    await store.create_role(Role(uid="r-gone", name="gone", is_active=False))

    roles = await store.list_roles()
    assert [r.uid for r in roles] == ["role-super-admin", "role-orders", "r-late"]

    everything = await store.list_roles(include_inactive=True)
    assert "r-gone" in [r.uid for r in everything]


@pytest.mark.asyncio
async def test_user_count_by_role(store, clerk_user, inactive_user, admin_user):
    await store.save_principal(clerk_user)
    await store.save_principal(inactive_user)
    await store.save_principal(admin_user)

    assert await store.get_user_count_by_role("role-orders") == 2
    assert await store.get_user_count_by_role("role-admin") == 1
    assert await store.get_user_count_by_role("role-none") == 0


@pytest.mark.asyncio
async def test_save_principal_upserts(store, clerk_user):
    await store.save_principal(clerk_user)
    clerk_user.role_id = "role-admin"
    clerk_user.is_active = False
    await store.save_principal(clerk_user)

    saved = await store.get_principal("u-clerk")
    assert saved.role_id == "role-admin"
    assert saved.is_active is False
    assert await store.get_principal("nobody") is None


@pytest.mark.asyncio
async def test_principal_extended_role_survives_storage(store, super_user):
    await store.save_principal(super_user)
    saved = await store.get_principal("u-super")
    assert saved.extended_role == "SUPER_ADMIN"
    assert saved.email is None


@pytest.mark.asyncio
async def test_groups(store):
    await store.create_group(
        PermissionGroup(code="approvers", name="Approvers", grants={"orders:approve": "ALLOW"})
    )
    with pytest.raises(InvalidPermissionAction):
        await store.create_group(
            PermissionGroup(code="broken", grants={"warehouse:view": "ALLOW"})
        )

    member = await store.add_group_member("approvers", "u-clerk")
    again = await store.add_group_member("approvers", "u-clerk")
    assert member.id == again.id

    group = await store.set_group_permission("approvers", "quotes:approve", Effect.DENY)
    assert group.grants == {"orders:approve": "ALLOW", "quotes:approve": "DENY"}

    group = await store.remove_group_permission("approvers", "orders:approve")
    assert group.grants == {"quotes:approve": "DENY"}

    assert await store.remove_group_member("approvers", "u-clerk") is True
    assert await store.remove_group_member("approvers", "u-clerk") is False

    with pytest.raises(GroupError):
        await store.add_group_member("ghosts", "u-clerk")


@pytest.mark.asyncio
async def test_system_default_groups_cannot_be_deleted(store):
    await store.create_group(PermissionGroup(code="everyone", is_system_default=True))
    await store.create_group(PermissionGroup(code="temps"))

    with pytest.raises(GroupError):
        await store.delete_group("everyone")
    deleted = await store.delete_group("temps")
    assert deleted.is_active is False


@pytest.mark.asyncio
async def test_user_overrides_upsert(store):
    await store.set_user_override("u-clerk", "orders:edit", Effect.DENY, reason="audit")
    await store.set_user_override(
        "u-clerk", "ORDERS:EDIT", Effect.ALLOW, assigned_by="u-super"
    )

    overrides = await store.list_user_overrides("u-clerk")
    assert len(overrides) == 1
    assert overrides[0].permission_key == "orders:edit"
    assert overrides[0].effect == Effect.ALLOW
    assert overrides[0].assigned_by == "u-super"
    assert overrides[0].reason is None

    with pytest.raises(InvalidPermissionAction):
        await store.set_user_override("u-clerk", "orders", Effect.ALLOW)

    assert await store.remove_user_override("u-clerk", "orders:edit") is True
    assert await store.list_user_overrides("u-clerk") == []


@pytest.mark.asyncio
async def test_raw_grants_skip_inactive_groups(store):
    await store.create_group(
        PermissionGroup(code="approvers", grants={"orders:approve": "ALLOW"})
    )
    await store.create_group(
        PermissionGroup(code="retired", grants={"crm:view": "ALLOW"})
    )
    await store.add_group_member("approvers", "u-clerk")
    await store.add_group_member("retired", "u-clerk")
    await store.delete_group("retired")
    await store.set_user_override("u-clerk", "orders:view", Effect.DENY)

    raw = await store.get_raw_grants("u-clerk")
    assert raw.overrides == [Grant("orders:view", Effect.DENY)]
    assert raw.group_grants == [Grant("orders:approve", Effect.ALLOW)]

    empty = await store.get_raw_grants("u-nobody")
    assert empty.overrides == [] and empty.group_grants == []


@pytest.mark.asyncio
async def test_schema_init_is_idempotent(store):
    await store.init_schema()
    await store.save_principal(AdminUser(uid="u-again"))
    assert await store.get_principal("u-again") is not None


@pytest.mark.asyncio
async def test_modules_list_enabled_in_order(store):
    await store.save_module(ModuleAccess(module_key="reports", name="Reports", sort_order=2))
    await store.save_module(ModuleAccess(module_key="orders_desk", sort_order=1))
    await store.save_module(ModuleAccess(module_key="imports", is_enabled=False))

    modules = await store.list_modules()
    assert [m.module_key for m in modules] == ["orders_desk", "reports"]
    everything = await store.list_modules(include_disabled=True)
    assert {m.module_key for m in everything} == {"orders_desk", "reports", "imports"}

    # saving again updates the existing row
    await store.save_module(ModuleAccess(module_key="imports", is_enabled=True))
    assert (await store.get_module("imports")).is_enabled


@pytest.mark.asyncio
async def test_update_module_access(store):
    await store.save_module(ModuleAccess(module_key="reports"))

    updated = await store.update_module_access(
        "reports", {"is_enabled": False, "required_role": "ADMIN"}
    )
    assert not updated.is_enabled
    assert updated.required_role == "ADMIN"
    assert await store.list_modules() == []

    with pytest.raises(ModuleNotFound):
        await store.update_module_access("warehouse", {"is_enabled": True})
    with pytest.raises(ValueError):
        await store.update_module_access("reports", {"module_key": "other"})
