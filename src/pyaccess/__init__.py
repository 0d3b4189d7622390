from .models import (
    AdminUser,
    ExtendedRole,
    Role,
    RolePermission,
    Effect,
    Source,
    EffectivePermission,
    Grant,
    RawGrants,
    PermissionGroup,
    GroupMember,
    PermissionOverride,
    ModuleAccess,
    PermissionSnapshot,
)
from .permissions import (
    Resource,
    Action,
    InvalidPermissionAction,
    PermissionResolver,
    resolve,
    LoadedPermissions,
    PermissionLoader,
    HeuristicLoader,
    PermissionStore,
    SQLPermissionStore,
    RoleNotFound,
    SystemRoleError,
    GroupError,
    ModuleNotFound,
)
from .access import AccessControl, ResourcePermissions
from .guards import (
    Decision,
    Guard,
    PermissionGate,
    AccessDeniedGuard,
    AccessDenied,
    RedirectGuard,
)
from .menu import MenuVisibility, MenuState, NAV_ENTRIES
from .storage import Storage, SQLite, StorageError
from .token import Token, InvalidToken
from .pyaccess import Pyaccess

__all__ = [
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
    "Resource",
    "Action",
    "InvalidPermissionAction",
    "PermissionResolver",
    "resolve",
    "LoadedPermissions",
    "PermissionLoader",
    "HeuristicLoader",
    "PermissionStore",
    "SQLPermissionStore",
    "RoleNotFound",
    "SystemRoleError",
    "GroupError",
    "ModuleNotFound",
    "AccessControl",
    "ResourcePermissions",
    "Decision",
    "Guard",
    "PermissionGate",
    "AccessDeniedGuard",
    "AccessDenied",
    "RedirectGuard",
    "MenuVisibility",
    "MenuState",
    "NAV_ENTRIES",
    "Storage",
    "SQLite",
    "StorageError",
    "Token",
    "InvalidToken",
    "Pyaccess",
]
