from .model import Model, MissingDefault, CurrentTimeStamp
from .principal import AdminUser, ExtendedRole
from .role import Role, RolePermission
from .grant import (
    Effect,
    Source,
    EffectivePermission,
    Grant,
    RawGrants,
    PermissionGroup,
    GroupMember,
    PermissionOverride,
)
from .module import ModuleAccess, PermissionSnapshot

__all__ = [
    "Model",
    "MissingDefault",
    "CurrentTimeStamp",
    "AdminUser",
    "ExtendedRole",
    "Role",
    "RolePermission",
    "Effect",
    "Source",
    "EffectivePermission",
    "Grant",
    "RawGrants",
    "PermissionGroup",
    "GroupMember",
    "PermissionOverride",
    "ModuleAccess",
    "PermissionSnapshot",
]
