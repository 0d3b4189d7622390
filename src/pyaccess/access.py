"""
Per-session access-control state.

One `AccessControl` is built per admin session and handed to everything that needs to
ask "may the current principal do X". It owns the principal, its role and its effective
permissions; guards and menus only read from it.

Loads are asynchronous and may finish out of order. Every load is stamped with a token
from a counter and its result is applied only if that token is still the latest one,
so the state always reflects the most recently *requested* principal. While a load is
in flight every check answers False.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .models import AdminUser, EffectivePermission, Role
from .permissions.loaders import LoadedPermissions, PermissionLoader
from .permissions.model import Action
from .permissions.resolver import SUPERUSER_NAMES, PermissionResolver

logger = logging.getLogger(__name__)

Listener = Callable[["AccessControl"], None]


@dataclass(frozen=True)
class ResourcePermissions:
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_approve: bool = False
    can_reject: bool = False
    can_export: bool = False
    can_import: bool = False
    can_configure: bool = False
    can_manage_status: bool = False
    can_manage_users: bool = False
    can_manage_roles: bool = False
    can_run_backup: bool = False
    can_manage_api: bool = False
    has_access: bool = False


class AccessControl:
    def __init__(
        self,
        loader: PermissionLoader,
        superuser_names: Iterable[str] = SUPERUSER_NAMES,
    ):
        self._loader = loader
        self._superuser_names = frozenset(superuser_names)

        self._principal: Optional[AdminUser] = None
        self._role: Optional[Role] = None
        self._effective_permissions: tuple[EffectivePermission, ...] = ()
        self._loading = True
        self._resolver = PermissionResolver(None, None)

        self._token = 0
        self._task: Optional[asyncio.Task] = None
        self._version = 0
        self._listeners: list[Listener] = []

    @property
    def principal(self) -> Optional[AdminUser]:
        return self._principal

    @property
    def role(self) -> Optional[Role]:
        return self._role

    @property
    def effective_permissions(self) -> tuple[EffectivePermission, ...]:
        return self._effective_permissions

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def version(self) -> int:
        """Bumped on every published change; derived views key their caches on it."""
        return self._version

    @property
    def is_super_admin(self) -> bool:
        # an inactive principal loses the bypass along with everything else
        return (
            not self._loading
            and self._principal is not None
            and self._principal.is_active is True
            and self._resolver.is_superuser
        )

    # mutations

    def set_principal(self, principal: Optional[AdminUser]) -> asyncio.Task:
        """
        Switches the session to `principal` (None on logout) and schedules a load for it.
        Must be called from inside a running event loop; returns the load task.
        """
        # raises before any state changes when there is no running loop
        loop = asyncio.get_running_loop()
        self._principal = principal
        self._role = None
        self._effective_permissions = ()
        return self._schedule(loop)

    async def refresh(self) -> None:
        """Reloads the current principal, e.g. after an admin edited their own role."""
        await self._schedule(asyncio.get_running_loop())

    async def wait(self) -> None:
        """Waits until no load is in flight, following loads that superseded each other."""
        while self._task is not None and not self._task.done():
            await self._task

    def _schedule(self, loop: asyncio.AbstractEventLoop) -> asyncio.Task:
        self._token += 1
        self._loading = True
        self._rebuild()
        logger.debug(
            "scheduling permission load #%d for %s",
            self._token,
            self._principal.uid if self._principal else None,
        )
        self._task = loop.create_task(self._load(self._principal, self._token))
        return self._task

    def _resolver_for(self, principal, role, entries) -> PermissionResolver:
        return PermissionResolver(
            principal, role, entries, superuser_names=self._superuser_names
        )

    async def _load(self, principal: Optional[AdminUser], token: int) -> bool:
        try:
            if principal is None:
                result = LoadedPermissions()
            else:
                result = await self._loader.load_role_and_grants(principal)
            entries = tuple(result.effective_permissions)
            # building the resolver validates the result before anything is applied
            resolver = self._resolver_for(principal, result.role, entries)
        except Exception:
            logger.exception(
                "failed to load permissions for %s",
                principal.uid if principal else None,
            )
            result, entries = LoadedPermissions(), ()
            resolver = self._resolver_for(principal, None, entries)

        if token != self._token:
            logger.debug("discarding stale permission load #%d", token)
            return False

        self._role = result.role
        self._effective_permissions = entries
        self._resolver = resolver
        self._loading = False
        self._publish()
        return True

    def _rebuild(self):
        self._resolver = self._resolver_for(
            self._principal, self._role, self._effective_permissions
        )
        self._publish()

    # subscriptions

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self):
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("access-control listener %r failed", listener)

    # checks

    def has_permission(self, resource, action) -> bool:
        if self._loading:
            return False
        return self._resolver.has_permission(resource, action)

    def can_access(self, resource) -> bool:
        return self.has_permission(resource, Action.VIEW)

    def can(self, permission_code: str) -> bool:
        if self._loading:
            return False
        return self._resolver.can(permission_code)

    def resource_permissions(self, resource) -> ResourcePermissions:
        flags = {
            f"can_{action.value}": self.has_permission(resource, action)
            for action in Action
            if action != Action.OTHER
        }
        return ResourcePermissions(**flags, has_access=self.can_access(resource))
