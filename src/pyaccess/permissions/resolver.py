"""
Permission resolution.

A check walks a chain of sources ordered from most to least specific:

    personal overrides -> group grants -> role entries -> the role's static permissions

Each source answers ALLOW, DENY or "no opinion" (None) for a permission key; the first
answer wins, and no answer at all is a denial. Adding a source (temporary grants for
instance) is a matter of inserting one more `SourceResolver` into the chain.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

from ..models import (
    AdminUser,
    Effect,
    EffectivePermission,
    Grant,
    ModuleAccess,
    PermissionSnapshot,
    RawGrants,
    Role,
    Source,
)
from .model import RESOURCE_ACTIONS, parse_permission_key, permission_key

# role names that mean "superuser" by convention, in both display languages
SUPERUSER_NAMES: frozenset[str] = frozenset({"SUPER_ADMIN", "مشرف عام"})

# lower index wins
SOURCE_PRECEDENCE: tuple[Source, ...] = (Source.OVERRIDE, Source.GROUP, Source.ROLE)


def is_superuser_role(
    role: Optional[Role], names: Iterable[str] = SUPERUSER_NAMES
) -> bool:
    if role is None:
        return False
    if role.is_superuser:
        return True
    names = set(names)
    return role.is_system and (role.name in names or role.code in names)


def _merge(effects: Iterable[Effect]) -> Optional[Effect]:
    # within one source a single DENY is enough
    result = None
    for effect in effects:
        if effect == Effect.DENY:
            return Effect.DENY
        result = Effect.ALLOW
    return result


class SourceResolver(ABC):
    source: Source

    @abstractmethod
    def lookup(self, key: str, fold_case: bool = False) -> Optional[Effect]:
        """Effect this source gives `key`; keys match exactly unless `fold_case`."""


class EntryResolver(SourceResolver):
    """Answers from effective-permission entries that came from one source."""

    def __init__(self, source: Source, entries: Iterable[EffectivePermission]):
        self.source = source
        self._effects: dict[str, list[Effect]] = {}
        self._folded: dict[str, list[Effect]] = {}
        for entry in entries:
            if entry.source != source:
                continue
            # raises on effects outside ALLOW/DENY so a malformed load never applies
            effect = Effect(entry.effect)
            self._effects.setdefault(entry.permission_key, []).append(effect)
            self._folded.setdefault(entry.permission_key.lower(), []).append(effect)

    def lookup(self, key: str, fold_case: bool = False) -> Optional[Effect]:
        if fold_case:
            return _merge(self._folded.get(key.lower(), ()))
        return _merge(self._effects.get(key, ()))


class RoleResolver(SourceResolver):
    """Falls back to the role's static resource -> actions list."""

    source = Source.ROLE

    def __init__(self, role: Optional[Role]):
        self._role = role

    def lookup(self, key: str, fold_case: bool = False) -> Optional[Effect]:
        if self._role is None:
            return None
        resource, _, action = key.partition(":")
        if fold_case:
            granted = any(
                p.resource.lower() == resource.lower()
                and action.lower() in (a.lower() for a in p.actions)
                for p in self._role.permissions
            )
        else:
            granted = self._role.grants(resource, action)
        return Effect.ALLOW if granted else None


class PermissionResolver:
    def __init__(
        self,
        principal: Optional[AdminUser],
        role: Optional[Role],
        effective_permissions: Sequence[EffectivePermission] = (),
        superuser_names: Iterable[str] = SUPERUSER_NAMES,
    ):
        self.principal = principal
        self.role = role
        self.effective_permissions = tuple(effective_permissions)
        self.is_superuser = is_superuser_role(role, superuser_names)
        self._chain: list[SourceResolver] = [
            EntryResolver(source, self.effective_permissions)
            for source in SOURCE_PRECEDENCE
        ]
        self._chain.append(RoleResolver(role))

    def _active(self) -> bool:
        return self.principal is not None and self.principal.is_active is True

    def effect(self, key: str, fold_case: bool = False) -> Optional[Effect]:
        for resolver in self._chain:
            effect = resolver.lookup(key, fold_case)
            if effect is not None:
                return effect
        return None

    def has_permission(self, resource, action) -> bool:
        if not self._active():
            return False
        if self.is_superuser:
            return True
        return self.effect(permission_key(resource, action)) == Effect.ALLOW

    def can_access(self, resource) -> bool:
        return self.has_permission(resource, "view")

    def can(self, permission_code: str) -> bool:
        """
        Checks a raw "resource:action" code, case-insensitively. `has_permission`
        matches keys exactly.
        """
        if not self._active():
            return False
        if self.is_superuser:
            return True
        if not isinstance(permission_code, str) or ":" not in permission_code:
            return False
        return self.effect(permission_code, fold_case=True) == Effect.ALLOW

    def can_access_module(self, module: Optional[ModuleAccess]) -> bool:
        """
        A missing or disabled module is closed to everyone, superusers included. An
        enabled one with a `required_role` opens only to that role (by uid or code)
        and to superusers.
        """
        if not self._active() or module is None or not module.is_enabled:
            return False
        if not module.required_role or self.is_superuser:
            return True
        return self.role is not None and module.required_role in (
            self.role.uid,
            self.role.code,
        )

    def snapshot(self, modules: Iterable[ModuleAccess] = ()) -> PermissionSnapshot:
        """Everything this principal may do, flattened for clients that cache it."""
        if self.principal is None:
            raise ValueError("A snapshot needs a principal.")
        if self.is_superuser and self._active():
            keys = {
                permission_key(resource, action)
                for resource, actions in RESOURCE_ACTIONS.items()
                for action in actions
            }
        else:
            keys = {e.permission_key for e in self.effective_permissions}
            if self.role is not None:
                keys.update(
                    permission_key(p.resource, action)
                    for p in self.role.permissions
                    for action in p.actions
                )
        allowed = sorted(k for k in keys if self.can(k))
        denied = sorted(keys.difference(allowed)) if self._active() else []
        return PermissionSnapshot(
            user_uid=self.principal.uid,
            role=self.role.uid if self.role is not None else None,
            is_superuser=self.is_superuser and self._active(),
            permissions=tuple(allowed),
            denied=tuple(denied),
            modules={m.module_key: self.can_access_module(m) for m in modules},
        )


def _entries_for(source: Source, grants: Iterable[Grant]):
    for grant in grants:
        resource, action = parse_permission_key(grant.permission_key)
        yield EffectivePermission(
            permission_key=permission_key(resource, action),
            resource=resource,
            action=action,
            source=source,
            effect=Effect(grant.effect),
        )


def resolve(
    principal: Optional[AdminUser],
    role: Optional[Role],
    raw_grants: Optional[RawGrants] = None,
) -> list[EffectivePermission]:
    """
    Merges a principal's role, group grants and personal overrides into one entry per
    permission key, keeping the entry of the most specific source. Pure: the same
    inputs always give the same list, ordered by key.
    """
    if principal is None or principal.is_active is not True:
        return []

    raw_grants = raw_grants or RawGrants()
    candidates: list[EffectivePermission] = []
    candidates.extend(_entries_for(Source.OVERRIDE, raw_grants.overrides))
    candidates.extend(_entries_for(Source.GROUP, raw_grants.group_grants))
    if role is not None:
        candidates.extend(
            _entries_for(
                Source.ROLE,
                (
                    Grant(permission_key(p.resource, action))
                    for p in role.permissions
                    for action in p.actions
                ),
            )
        )

    by_key: dict[str, list[EffectivePermission]] = {}
    for entry in candidates:
        by_key.setdefault(entry.permission_key, []).append(entry)

    resolved = []
    for key in sorted(by_key):
        entries = by_key[key]
        for source in SOURCE_PRECEDENCE:
            same_source = [e for e in entries if e.source == source]
            if not same_source:
                continue
            effect = _merge(e.effect for e in same_source)
            winner = next(e for e in same_source if e.effect == effect)
            resolved.append(winner)
            break
    return resolved
