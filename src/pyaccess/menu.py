from dataclasses import dataclass, field
from typing import Mapping, Optional

from .access import AccessControl
from .permissions.model import Resource

# navigation entry -> resource that must be viewable for the entry to show
NAV_ENTRIES: dict[str, Resource] = {
    "dashboard": Resource.DASHBOARD,
    "products": Resource.PRODUCTS,
    "customers": Resource.CUSTOMERS,
    "customer_requests": Resource.CUSTOMER_REQUESTS,
    "account_requests": Resource.ACCOUNT_REQUESTS,
    "quotes": Resource.QUOTES,
    "orders": Resource.ORDERS,
    "imports": Resource.IMPORTS,
    "missing": Resource.MISSING,
    "crm": Resource.CRM,
    "activity_log": Resource.ACTIVITY_LOG,
    "notifications": Resource.NOTIFICATIONS,
    "settings": Resource.SETTINGS_GENERAL,
    "users": Resource.USERS,
    "roles": Resource.ROLES,
    "export_center": Resource.EXPORT_CENTER,
    "content_management": Resource.CONTENT_MANAGEMENT,
}


@dataclass(frozen=True)
class MenuState:
    loading: bool
    menus: Mapping[str, bool] = field(default_factory=dict)

    def visible(self, entry: str) -> bool:
        return bool(self.menus.get(entry, False))


class MenuVisibility:
    """
    Projection of the access-control state onto navigation entries. Recomputed
    whenever the state's version moves, so it cannot drift from the real checks.
    """

    def __init__(self, access: AccessControl, entries: Optional[Mapping[str, Resource]] = None):
        self._access = access
        self._entries = dict(NAV_ENTRIES if entries is None else entries)
        self._cached_version: Optional[int] = None
        self._cached: Optional[MenuState] = None

    @property
    def state(self) -> MenuState:
        version = self._access.version
        if self._cached is None or self._cached_version != version:
            self._cached = self._derive()
            self._cached_version = version
        return self._cached

    def visible(self, entry: str) -> bool:
        return self.state.visible(entry)

    def _derive(self) -> MenuState:
        if self._access.loading:
            return MenuState(loading=True)
        if self._access.is_super_admin:
            return MenuState(loading=False, menus={name: True for name in self._entries})
        return MenuState(
            loading=False,
            menus={
                name: self._access.can_access(resource)
                for name, resource in self._entries.items()
            },
        )
