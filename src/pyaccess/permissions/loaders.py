import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from ..models import AdminUser, EffectivePermission, ExtendedRole, Role

logger = logging.getLogger(__name__)


@dataclass
class LoadedPermissions:
    role: Optional[Role] = None
    effective_permissions: list[EffectivePermission] = field(default_factory=list)


class PermissionLoader(ABC):
    """Where AccessControl gets a principal's role and effective permissions from."""

    @abstractmethod
    async def load_role_and_grants(
        self, principal: AdminUser
    ) -> LoadedPermissions: ...


class HeuristicLoader(PermissionLoader):
    """
    Stand-in loader that infers the role from naming conventions on the principal:
    extended_role ADMIN/SUPER_ADMIN, the is_super_admin flag, or a role id containing
    "admin"/"super". Admin types get a synthesized system role with no static grants
    and no effective entries; everyone else gets no role at all.

    This is fragile by nature; a persisted role reference (see `Pyaccess`) should
    replace it wherever one exists.
    """

    def __init__(self, latency: float = 0.0):
        self._latency = latency

    @staticmethod
    def is_super_type(principal: AdminUser) -> bool:
        return (
            principal.extended_role == ExtendedRole.SUPER_ADMIN
            or principal.is_super_admin is True
            or "super" in (principal.role_id or "")
        )

    @classmethod
    def is_admin_type(cls, principal: AdminUser) -> bool:
        return (
            principal.extended_role == ExtendedRole.ADMIN
            or "admin" in (principal.role_id or "")
            or cls.is_super_type(principal)
        )

    async def load_role_and_grants(self, principal: AdminUser) -> LoadedPermissions:
        if self._latency:
            await asyncio.sleep(self._latency)

        if not self.is_admin_type(principal):
            logger.debug("no heuristic role for %s", principal.uid)
            return LoadedPermissions()

        if self.is_super_type(principal):
            role = Role(
                uid=principal.role_id or "role-super-admin",
                code="SUPER_ADMIN",
                name="SUPER_ADMIN",
                name_ar="مشرف عام",
                description="Super Administrator",
                is_system=True,
            )
        else:
            role = Role(
                uid=principal.role_id or "role-admin",
                code="ADMIN",
                name="ADMIN",
                name_ar="مشرف",
                description="Administrator",
                is_system=True,
            )
        return LoadedPermissions(role=role)
