from .model import (
    Resource,
    Action,
    InvalidPermissionAction,
    RESOURCE_ACTIONS,
    RESOURCE_LABELS,
    ACTION_LABELS,
    permission_key,
    parse_permission_key,
    available_actions,
    is_valid_pair,
    resource_label,
)
from .resolver import (
    SUPERUSER_NAMES,
    PermissionResolver,
    is_superuser_role,
    resolve,
)
from .loaders import LoadedPermissions, PermissionLoader, HeuristicLoader
from .store import (
    PermissionStore,
    SQLPermissionStore,
    RoleNotFound,
    SystemRoleError,
    GroupError,
    ModuleNotFound,
)

__all__ = [
    "Resource",
    "Action",
    "InvalidPermissionAction",
    "RESOURCE_ACTIONS",
    "RESOURCE_LABELS",
    "ACTION_LABELS",
    "permission_key",
    "parse_permission_key",
    "available_actions",
    "is_valid_pair",
    "resource_label",
    "SUPERUSER_NAMES",
    "PermissionResolver",
    "is_superuser_role",
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
]
