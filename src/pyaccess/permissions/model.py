from enum import Enum
from typing import Iterable, Optional, Tuple


class Resource(str, Enum):
    """
    Protectable areas of the back office. Every check is made against one of these,
    paired with an `Action`.
    """

    DASHBOARD = "dashboard"
    PRODUCTS = "products"
    CUSTOMERS = "customers"
    CUSTOMER_REQUESTS = "customer_requests"
    ACCOUNT_REQUESTS = "account_requests"
    QUOTES = "quotes"
    ORDERS = "orders"
    IMPORTS = "imports"
    MISSING = "missing"
    CRM = "crm"
    ACTIVITY_LOG = "activity_log"
    NOTIFICATIONS = "notifications"
    SETTINGS_GENERAL = "settings_general"
    SETTINGS_STATUS_LABELS = "settings_status_labels"
    SETTINGS_API = "settings_api"
    SETTINGS_BACKUP = "settings_backup"
    SETTINGS_SECURITY = "settings_security"
    USERS = "users"
    ROLES = "roles"
    EXPORT_CENTER = "export_center"
    CONTENT_MANAGEMENT = "content_management"
    OTHER = "other"


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    APPROVE = "approve"
    REJECT = "reject"
    EXPORT = "export"
    IMPORT = "import"
    CONFIGURE = "configure"
    MANAGE_STATUS = "manage_status"
    MANAGE_USERS = "manage_users"
    MANAGE_ROLES = "manage_roles"
    RUN_BACKUP = "run_backup"
    MANAGE_API = "manage_api"
    OTHER = "other"


class InvalidPermissionAction(Exception):
    def __init__(self, msg: str = None, *args):
        message = (
            f"Invalid permission action: {msg}" if msg else "Invalid permission action"
        )
        super().__init__(message, *args)


# advisory only: used to validate role editor input and to build UI matrices,
# never consulted when granting access
RESOURCE_ACTIONS: dict[Resource, Tuple[Action, ...]] = {
    Resource.DASHBOARD: (Action.VIEW,),
    Resource.PRODUCTS: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
        Action.EXPORT,
        Action.IMPORT,
    ),
    Resource.CUSTOMERS: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
        Action.EXPORT,
        Action.MANAGE_STATUS,
    ),
    Resource.CUSTOMER_REQUESTS: (
        Action.VIEW,
        Action.EDIT,
        Action.APPROVE,
        Action.REJECT,
        Action.EXPORT,
    ),
    Resource.ACCOUNT_REQUESTS: (
        Action.VIEW,
        Action.APPROVE,
        Action.REJECT,
        Action.EXPORT,
    ),
    Resource.QUOTES: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
        Action.APPROVE,
        Action.REJECT,
        Action.EXPORT,
    ),
    Resource.ORDERS: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
        Action.APPROVE,
        Action.REJECT,
        Action.EXPORT,
        Action.MANAGE_STATUS,
    ),
    Resource.IMPORTS: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
        Action.APPROVE,
        Action.REJECT,
        Action.EXPORT,
        Action.MANAGE_STATUS,
    ),
    Resource.MISSING: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
        Action.EXPORT,
        Action.MANAGE_STATUS,
    ),
    Resource.CRM: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
        Action.EXPORT,
    ),
    Resource.ACTIVITY_LOG: (Action.VIEW, Action.EXPORT),
    Resource.NOTIFICATIONS: (Action.VIEW, Action.CREATE, Action.DELETE),
    Resource.SETTINGS_GENERAL: (Action.VIEW, Action.CONFIGURE),
    Resource.SETTINGS_STATUS_LABELS: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
    ),
    Resource.SETTINGS_API: (Action.VIEW, Action.CONFIGURE, Action.MANAGE_API),
    Resource.SETTINGS_BACKUP: (Action.VIEW, Action.RUN_BACKUP),
    Resource.SETTINGS_SECURITY: (Action.VIEW, Action.CONFIGURE),
    Resource.USERS: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
        Action.MANAGE_USERS,
    ),
    Resource.ROLES: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
        Action.MANAGE_ROLES,
    ),
    Resource.EXPORT_CENTER: (Action.VIEW, Action.EXPORT),
    Resource.CONTENT_MANAGEMENT: (
        Action.VIEW,
        Action.CREATE,
        Action.EDIT,
        Action.DELETE,
    ),
    Resource.OTHER: (Action.VIEW, Action.OTHER),
}

RESOURCE_LABELS: dict[Resource, str] = {
    Resource.DASHBOARD: "Dashboard",
    Resource.PRODUCTS: "Products",
    Resource.CUSTOMERS: "Customers",
    Resource.CUSTOMER_REQUESTS: "Customer requests",
    Resource.ACCOUNT_REQUESTS: "Account opening requests",
    Resource.QUOTES: "Quotes",
    Resource.ORDERS: "Orders",
    Resource.IMPORTS: "Import requests",
    Resource.MISSING: "Missing items",
    Resource.CRM: "Customer base",
    Resource.ACTIVITY_LOG: "Activity log",
    Resource.NOTIFICATIONS: "Notifications",
    Resource.SETTINGS_GENERAL: "General settings",
    Resource.SETTINGS_STATUS_LABELS: "Status labels",
    Resource.SETTINGS_API: "API settings",
    Resource.SETTINGS_BACKUP: "Backups",
    Resource.SETTINGS_SECURITY: "Security settings",
    Resource.USERS: "Users",
    Resource.ROLES: "Roles and permissions",
    Resource.EXPORT_CENTER: "Export center",
    Resource.CONTENT_MANAGEMENT: "Content management",
    Resource.OTHER: "Other",
}

ACTION_LABELS: dict[Action, str] = {
    Action.VIEW: "View",
    Action.CREATE: "Create",
    Action.EDIT: "Edit",
    Action.DELETE: "Delete",
    Action.APPROVE: "Approve",
    Action.REJECT: "Reject",
    Action.EXPORT: "Export",
    Action.IMPORT: "Import",
    Action.CONFIGURE: "Configure",
    Action.MANAGE_STATUS: "Manage statuses",
    Action.MANAGE_USERS: "Manage users",
    Action.MANAGE_ROLES: "Manage roles",
    Action.RUN_BACKUP: "Run backup",
    Action.MANAGE_API: "Manage API",
    Action.OTHER: "Other",
}


def _value(item) -> str:
    return item.value if isinstance(item, Enum) else str(item)


def to_resource(value) -> Optional[Resource]:
    """Returns the matching `Resource` or None, never raises."""
    try:
        return Resource(_value(value))
    except ValueError:
        return None


def to_action(value) -> Optional[Action]:
    try:
        return Action(_value(value))
    except ValueError:
        return None


def permission_key(resource, action) -> str:
    return f"{_value(resource)}:{_value(action)}"


def parse_permission_key(key: str) -> Tuple[str, str]:
    resource, sep, action = key.partition(":")
    if not sep or not resource or not action:
        raise InvalidPermissionAction(f"malformed permission key {key!r}")
    return resource, action


def available_actions(resource) -> Tuple[Action, ...]:
    """Actions meaningful for `resource`; empty for anything outside the model."""
    known = to_resource(resource)
    if known is None:
        return ()
    return RESOURCE_ACTIONS.get(known, ())


def is_valid_pair(resource, action) -> bool:
    known = to_action(action)
    return known is not None and known in available_actions(resource)


def resource_label(resource) -> str:
    known = to_resource(resource)
    if known is None:
        return _value(resource)
    return RESOURCE_LABELS[known]


def validate_actions(resource, actions: Iterable) -> list[str]:
    """
    Parses role editor input for a single resource, like RBAC.parse does for flat
    permission lists. Raises InvalidPermissionAction on anything the model does not know.
    """
    if to_resource(resource) is None:
        raise InvalidPermissionAction(f"Unknown resource: {_value(resource)}")
    if isinstance(actions, (str, bytes)) or not isinstance(actions, Iterable):
        raise InvalidPermissionAction("Actions must be a list.")

    parsed = []
    for action in actions:
        if not isinstance(action, str):
            raise InvalidPermissionAction(f"Actions must be strings, got: {action}")
        if not is_valid_pair(resource, action):
            raise InvalidPermissionAction(
                f"{_value(action)} is not available on {_value(resource)}"
            )
        if _value(action) not in parsed:
            parsed.append(_value(action))
    return parsed
