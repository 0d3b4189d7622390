"""
Framework-neutral guards. Each one reads an `AccessControl` and turns a
(resource, action) pair into a `Decision`; the rendering layer decides what a
decision looks like on screen. Guards never raise on a missing permission.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .access import AccessControl
from .permissions.model import Action, resource_label

logger = logging.getLogger(__name__)

Navigate = Callable[[str], None]

ACCESS_DENIED_CODE = "ACCESS_DENIED_403"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    REDIRECT = "redirect"
    # permissions are still loading: render nothing, neither content nor denial
    PENDING = "pending"


@dataclass(frozen=True)
class AccessDenied:
    """What the access-denied screen needs to know."""

    resource: str
    resource_name: str
    on_go_home: Optional[Callable[[], None]] = None
    code: str = ACCESS_DENIED_CODE


class Guard(ABC):
    def __init__(self, access: AccessControl):
        self._access = access

    @abstractmethod
    def check(self, resource, action=Action.VIEW) -> Decision:
        pass


class PermissionGate(Guard):
    """Shows children when allowed, the fallback when not, and nothing while loading."""

    def check(self, resource, action=Action.VIEW) -> Decision:
        if self._access.loading:
            return Decision.PENDING
        if self._access.has_permission(resource, action):
            return Decision.ALLOW
        return Decision.DENY

    def render(self, resource, children: Any, action=Action.VIEW, fallback: Any = None):
        decision = self.check(resource, action)
        if decision == Decision.ALLOW:
            return children
        if decision == Decision.DENY:
            return fallback
        return None


class AccessDeniedGuard(Guard):
    """Protects a whole view; a denied principal gets an `AccessDenied` panel."""

    def __init__(
        self,
        access: AccessControl,
        navigate: Optional[Navigate] = None,
        home_path: str = "/",
    ):
        super().__init__(access)
        self._navigate = navigate
        self._home_path = home_path

    def check(self, resource, action=Action.VIEW) -> Decision:
        if self._access.loading:
            return Decision.PENDING
        if self._access.principal is None:
            return Decision.REDIRECT
        if self._access.has_permission(resource, action):
            return Decision.ALLOW
        return Decision.DENY

    def go_home(self):
        if self._navigate is not None:
            self._navigate(self._home_path)

    def render(self, resource, children: Any, action=Action.VIEW):
        decision = self.check(resource, action)
        if decision == Decision.ALLOW:
            return children
        if decision == Decision.DENY:
            logger.info(
                "access denied to %s:%s for %s",
                getattr(resource, "value", resource),
                getattr(action, "value", action),
                self._access.principal.uid,
            )
            return AccessDenied(
                resource=str(getattr(resource, "value", resource)),
                resource_name=resource_label(resource),
                on_go_home=self.go_home if self._navigate is not None else None,
            )
        # pending or about to be redirected
        return None


class RedirectGuard(Guard):
    """
    Sends an unauthenticated session to `redirect_to` once loading has finished.
    Fires exactly once per unauthenticated stretch: the flag only resets when a
    principal shows up again.
    """

    def __init__(self, access: AccessControl, navigate: Navigate, redirect_to: str = "/"):
        super().__init__(access)
        self._navigate = navigate
        self._redirect_to = redirect_to
        self._redirected = False
        self._unsubscribe = access.subscribe(self._on_change)
        self.evaluate()

    @property
    def redirected(self) -> bool:
        return self._redirected

    def check(self, resource=None, action=Action.VIEW) -> Decision:
        if self._access.loading:
            return Decision.PENDING
        if self._access.principal is None:
            return Decision.REDIRECT
        return Decision.ALLOW

    def evaluate(self) -> bool:
        """Issues the redirect if one is due; returns whether it navigated now."""
        if self._access.principal is not None:
            self._redirected = False
            return False
        if self._access.loading or self._redirected:
            return False
        self._redirected = True
        logger.debug("no principal, redirecting to %s", self._redirect_to)
        self._navigate(self._redirect_to)
        return True

    def _on_change(self, access: AccessControl):
        self.evaluate()

    def close(self):
        self._unsubscribe()
