from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from . import Model


class Effect(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


class Source(str, Enum):
    ROLE = "role"
    GROUP = "group"
    OVERRIDE = "override"


@dataclass(frozen=True)
class EffectivePermission:
    permission_key: str
    resource: str
    action: str
    source: Source
    effect: Effect


@dataclass(frozen=True)
class Grant:
    permission_key: str
    effect: Effect = Effect.ALLOW


@dataclass
class RawGrants:
    """What a loader found for a principal before precedence is applied."""

    overrides: list[Grant] = field(default_factory=list)
    group_grants: list[Grant] = field(default_factory=list)


@dataclass
class PermissionGroup(Model):
    __tablename__ = "permission_groups"

    code: str = field(metadata={"index": True, "unique": True})
    name: str = ""
    name_ar: Optional[str] = None
    description: Optional[str] = None
    is_system_default: bool = False
    is_active: bool = True
    # permission key -> effect
    grants: dict[str, str] = field(default_factory=dict)

    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class GroupMember(Model):
    __tablename__ = "group_members"

    group_code: str = field(metadata={"index": True})
    user_uid: str = field(metadata={"index": True})


@dataclass
class PermissionOverride(Model):
    __tablename__ = "permission_overrides"

    user_uid: str = field(metadata={"index": True})
    permission_key: str
    effect: Effect = Effect.ALLOW
    reason: Optional[str] = None
    assigned_by: Optional[str] = None

    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        self.effect = Effect(self.effect)
