import copy
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from ..models import (
    AdminUser,
    Effect,
    Grant,
    GroupMember,
    ModuleAccess,
    PermissionGroup,
    PermissionOverride,
    RawGrants,
    Role,
    RolePermission,
)
from ..storage import StorageSession
from .model import (
    InvalidPermissionAction,
    parse_permission_key,
    permission_key,
    validate_actions,
    to_action,
    to_resource,
)

logger = logging.getLogger(__name__)


class RoleNotFound(Exception):
    def __init__(self, msg: str = None, *args):
        message = f"Role not found: {msg}" if msg else "Role not found"
        super().__init__(message, *args)


class SystemRoleError(Exception):
    def __init__(self, msg: str = None, *args):
        message = (
            f"System roles cannot be deleted: {msg}"
            if msg
            else "System roles cannot be deleted"
        )
        super().__init__(message, *args)


class GroupError(Exception):
    def __init__(self, msg: str = None, *args):
        message = f"Invalid permission group: {msg}" if msg else "Invalid permission group"
        super().__init__(message, *args)


class ModuleNotFound(Exception):
    def __init__(self, msg: str = None, *args):
        message = f"Module not found: {msg}" if msg else "Module not found"
        super().__init__(message, *args)


def _checked_key(key: str) -> str:
    resource, action = parse_permission_key(key.lower())
    if to_resource(resource) is None or to_action(action) is None:
        raise InvalidPermissionAction(f"Unknown permission key: {key}")
    return permission_key(resource, action)


class PermissionStore(ABC):
    """
    Role CRUD plus the raw grants (group memberships, personal overrides) a loader
    needs. Bound to one storage session at a time, like the other adapters.
    """

    _storage_session: StorageSession = None

    @asynccontextmanager
    async def set_storage_session(
        self, storage: StorageSession
    ) -> AsyncGenerator["PermissionStore", Any]:
        # each binding gets its own copy so concurrent callers never share a session
        bound = copy.copy(self)
        bound._storage_session = storage
        try:
            yield bound
        finally:
            bound._storage_session = None

    def get_storage_session(self) -> StorageSession:
        if self._storage_session is None:
            raise ValueError("Storage is not set for this permission store.")
        return self._storage_session

    def parse(self, permissions: list) -> list[RolePermission]:
        """Validates role editor input against the permission model."""
        if not isinstance(permissions, list):
            raise InvalidPermissionAction("Permissions must be a list.")
        parsed = []
        for permission in permissions:
            if isinstance(permission, dict):
                permission = RolePermission(**permission)
            if not isinstance(permission, RolePermission):
                raise InvalidPermissionAction(
                    f"Role permissions must be resource/actions pairs, got: {permission}"
                )
            parsed.append(
                RolePermission(
                    permission.resource,
                    validate_actions(permission.resource, permission.actions),
                )
            )
        return parsed

    @abstractmethod
    async def init_schema(self): ...

    # roles
    @abstractmethod
    async def list_roles(self, include_inactive: bool = False) -> list[Role]: ...
    @abstractmethod
    async def get_role(self, uid: str) -> Optional[Role]: ...
    @abstractmethod
    async def create_role(self, role: Role) -> Role: ...
    @abstractmethod
    async def update_role(self, uid: str, updates: dict) -> Role: ...
    @abstractmethod
    async def delete_role(self, uid: str) -> Role: ...
    @abstractmethod
    async def get_user_count_by_role(self, uid: str) -> int: ...

    # principals
    @abstractmethod
    async def save_principal(self, principal: AdminUser) -> AdminUser: ...
    @abstractmethod
    async def get_principal(self, uid: str) -> Optional[AdminUser]: ...

    # groups and overrides
    @abstractmethod
    async def create_group(self, group: PermissionGroup) -> PermissionGroup: ...
    @abstractmethod
    async def delete_group(self, code: str) -> PermissionGroup: ...
    @abstractmethod
    async def add_group_member(self, code: str, user_uid: str) -> GroupMember: ...
    @abstractmethod
    async def remove_group_member(self, code: str, user_uid: str) -> bool: ...
    @abstractmethod
    async def set_group_permission(
        self, code: str, key: str, effect: Effect = Effect.ALLOW
    ) -> PermissionGroup: ...
    @abstractmethod
    async def remove_group_permission(self, code: str, key: str) -> PermissionGroup: ...
    @abstractmethod
    async def set_user_override(
        self,
        user_uid: str,
        key: str,
        effect: Effect,
        reason: Optional[str] = None,
        assigned_by: Optional[str] = None,
    ) -> PermissionOverride: ...
    @abstractmethod
    async def remove_user_override(self, user_uid: str, key: str) -> bool: ...
    @abstractmethod
    async def list_user_overrides(self, user_uid: str) -> list[PermissionOverride]: ...
    @abstractmethod
    async def get_raw_grants(self, user_uid: str) -> RawGrants: ...

    # modules
    @abstractmethod
    async def list_modules(self, include_disabled: bool = False) -> list[ModuleAccess]: ...
    @abstractmethod
    async def get_module(self, module_key: str) -> Optional[ModuleAccess]: ...
    @abstractmethod
    async def save_module(self, module: ModuleAccess) -> ModuleAccess: ...
    @abstractmethod
    async def update_module_access(
        self, module_key: str, updates: dict
    ) -> ModuleAccess: ...


class SQLPermissionStore(PermissionStore):
    models = [
        AdminUser,
        Role,
        PermissionGroup,
        GroupMember,
        PermissionOverride,
        ModuleAccess,
    ]

    # only the switches an admin can flip; the key identifies the module
    module_fields = ("name", "is_enabled", "required_role", "sort_order")

    async def init_schema(self):
        session = self.get_storage_session()
        for model in self.models:
            await session.init_schema(model)

    async def list_roles(self, include_inactive: bool = False) -> list[Role]:
        session = self.get_storage_session()
        filters = None if include_inactive else {"is_active": True}
        # system roles first, then by sort order
        return await session.list(
            Role, limit=1000, filters=filters, order_by=["-is_system", "sort_order"]
        )

    async def get_role(self, uid: str) -> Optional[Role]:
        return await self.get_storage_session().get(Role, filters={"uid": uid})

    async def _require_role(self, uid: str) -> Role:
        role = await self.get_role(uid)
        if role is None:
            raise RoleNotFound(uid)
        return role

    async def create_role(self, role: Role) -> Role:
        role.permissions = self.parse(role.permissions)
        created = await self.get_storage_session().create(role)
        logger.info("created role %s", role.uid)
        return created

    async def update_role(self, uid: str, updates: dict) -> Role:
        await self._require_role(uid)
        updates = dict(updates)
        for immutable in ("id", "uid", "created_at"):
            updates.pop(immutable, None)
        if "permissions" in updates:
            updates["permissions"] = self.parse(updates["permissions"])
        updated = await self.get_storage_session().update(
            Role, filters={"uid": uid}, updates=updates
        )
        logger.info("updated role %s: %s", uid, sorted(updates))
        return updated if updated is not None else await self._require_role(uid)

    async def delete_role(self, uid: str) -> Role:
        """Soft delete: the role is deactivated, never removed."""
        role = await self._require_role(uid)
        if role.is_system:
            logger.warning("refused to delete system role %s", uid)
            raise SystemRoleError(uid)
        deleted = await self.get_storage_session().update(
            Role, filters={"uid": uid}, updates={"is_active": False}
        )
        logger.info("deactivated role %s", uid)
        return deleted

    async def get_user_count_by_role(self, uid: str) -> int:
        return await self.get_storage_session().count(
            AdminUser, filters={"role_id": uid}
        )

    async def save_principal(self, principal: AdminUser) -> AdminUser:
        session = self.get_storage_session()
        existing = await session.get(AdminUser, filters={"uid": principal.uid})
        if existing is None:
            return await session.create(principal)
        return await session.update(
            AdminUser,
            filters={"uid": principal.uid},
            updates=principal.to_dict(exclude=["uid", "created_at"]),
        )

    async def get_principal(self, uid: str) -> Optional[AdminUser]:
        return await self.get_storage_session().get(AdminUser, filters={"uid": uid})

    async def _require_group(self, code: str) -> PermissionGroup:
        group = await self.get_storage_session().get(
            PermissionGroup, filters={"code": code}
        )
        if group is None:
            raise GroupError(f"{code} does not exist")
        return group

    async def create_group(self, group: PermissionGroup) -> PermissionGroup:
        group.grants = {
            _checked_key(key): Effect(effect).value for key, effect in group.grants.items()
        }
        created = await self.get_storage_session().create(group)
        logger.info("created permission group %s", group.code)
        return created

    async def delete_group(self, code: str) -> PermissionGroup:
        group = await self._require_group(code)
        if group.is_system_default:
            logger.warning("refused to delete system default group %s", code)
            raise GroupError(f"{code} is a system default group")
        return await self.get_storage_session().update(
            PermissionGroup, filters={"code": code}, updates={"is_active": False}
        )

    async def add_group_member(self, code: str, user_uid: str) -> GroupMember:
        await self._require_group(code)
        session = self.get_storage_session()
        existing = await session.get(
            GroupMember, filters={"group_code": code, "user_uid": user_uid}
        )
        if existing is not None:
            return existing
        return await session.create(GroupMember(group_code=code, user_uid=user_uid))

    async def remove_group_member(self, code: str, user_uid: str) -> bool:
        deleted = await self.get_storage_session().delete(
            GroupMember, filters={"group_code": code, "user_uid": user_uid}
        )
        return deleted > 0

    async def set_group_permission(
        self, code: str, key: str, effect: Effect = Effect.ALLOW
    ) -> PermissionGroup:
        group = await self._require_group(code)
        grants = dict(group.grants)
        grants[_checked_key(key)] = Effect(effect).value
        return await self.get_storage_session().update(
            PermissionGroup, filters={"code": code}, updates={"grants": grants}
        )

    async def remove_group_permission(self, code: str, key: str) -> PermissionGroup:
        group = await self._require_group(code)
        grants = {k: v for k, v in group.grants.items() if k != key.lower()}
        return await self.get_storage_session().update(
            PermissionGroup, filters={"code": code}, updates={"grants": grants}
        )

    async def set_user_override(
        self,
        user_uid: str,
        key: str,
        effect: Effect,
        reason: Optional[str] = None,
        assigned_by: Optional[str] = None,
    ) -> PermissionOverride:
        key = _checked_key(key)
        session = self.get_storage_session()
        filters = {"user_uid": user_uid, "permission_key": key}
        updates = {
            "effect": Effect(effect),
            "reason": reason,
            "assigned_by": assigned_by,
        }
        if await session.get(PermissionOverride, filters=filters) is not None:
            return await session.update(
                PermissionOverride, filters=filters, updates=updates
            )
        return await session.create(
            PermissionOverride(user_uid=user_uid, permission_key=key, **updates)
        )

    async def remove_user_override(self, user_uid: str, key: str) -> bool:
        deleted = await self.get_storage_session().delete(
            PermissionOverride, filters={"user_uid": user_uid, "permission_key": key.lower()}
        )
        return deleted > 0

    async def list_user_overrides(self, user_uid: str) -> list[PermissionOverride]:
        return await self.get_storage_session().list(
            PermissionOverride, limit=1000, filters={"user_uid": user_uid}
        )

    async def get_raw_grants(self, user_uid: str) -> RawGrants:
        session = self.get_storage_session()
        overrides = [
            Grant(o.permission_key, o.effect)
            for o in await self.list_user_overrides(user_uid)
        ]

        group_grants = []
        memberships = await session.list(
            GroupMember, limit=1000, filters={"user_uid": user_uid}
        )
        for membership in memberships:
            group = await session.get(
                PermissionGroup, filters={"code": membership.group_code}
            )
            if group is None or not group.is_active:
                continue
            group_grants.extend(
                Grant(key, Effect(effect)) for key, effect in group.grants.items()
            )
        return RawGrants(overrides=overrides, group_grants=group_grants)

    async def list_modules(self, include_disabled: bool = False) -> list[ModuleAccess]:
        filters = None if include_disabled else {"is_enabled": True}
        return await self.get_storage_session().list(
            ModuleAccess, limit=1000, filters=filters, order_by=["sort_order"]
        )

    async def get_module(self, module_key: str) -> Optional[ModuleAccess]:
        return await self.get_storage_session().get(
            ModuleAccess, filters={"module_key": module_key}
        )

    async def save_module(self, module: ModuleAccess) -> ModuleAccess:
        session = self.get_storage_session()
        if await self.get_module(module.module_key) is None:
            created = await session.create(module)
            logger.info("registered module %s", module.module_key)
            return created
        return await session.update(
            ModuleAccess,
            filters={"module_key": module.module_key},
            updates={name: getattr(module, name) for name in self.module_fields},
        )

    async def update_module_access(
        self, module_key: str, updates: dict
    ) -> ModuleAccess:
        if await self.get_module(module_key) is None:
            raise ModuleNotFound(module_key)
        unknown = set(updates) - set(self.module_fields)
        if unknown:
            raise ValueError(f"Cannot update module fields: {sorted(unknown)}")
        updated = await self.get_storage_session().update(
            ModuleAccess, filters={"module_key": module_key}, updates=dict(updates)
        )
        logger.info("updated module %s: %s", module_key, sorted(updates))
        return updated
