from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from . import Model


def _value(item) -> str:
    return item.value if isinstance(item, Enum) else str(item)


@dataclass
class RolePermission:
    """One resource of a role and the actions granted on it."""

    resource: str
    actions: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.resource = _value(self.resource)
        actions = []
        for action in self.actions:
            if _value(action) not in actions:
                actions.append(_value(action))
        self.actions = actions


@dataclass
class Role(Model):
    __tablename__ = "roles"

    uid: str = field(metadata={"index": True, "unique": True})
    code: str = ""
    name: str = ""
    name_ar: Optional[str] = None
    description: Optional[str] = None

    is_system: bool = False
    is_active: bool = True
    sort_order: int = 0
    # explicit bypass flag; the naming convention is still honoured by the resolver
    is_superuser: bool = False

    permissions: list[RolePermission] = field(default_factory=list)

    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        merged: dict[str, RolePermission] = {}
        for permission in self.permissions or []:
            if isinstance(permission, dict):
                permission = RolePermission(**permission)
            existing = merged.get(permission.resource)
            if existing is None:
                merged[permission.resource] = RolePermission(
                    permission.resource, list(permission.actions)
                )
            else:
                existing.actions.extend(
                    a for a in permission.actions if a not in existing.actions
                )
        self.permissions = list(merged.values())

    def actions_for(self, resource) -> Optional[list[str]]:
        """Declared actions for `resource`, None when the role does not mention it."""
        resource = _value(resource)
        for permission in self.permissions:
            if permission.resource == resource:
                return permission.actions
        return None

    def grants(self, resource, action) -> bool:
        actions = self.actions_for(resource)
        return actions is not None and _value(action) in actions
