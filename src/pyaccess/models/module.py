from dataclasses import dataclass, field
from typing import Optional
from . import Model


@dataclass
class ModuleAccess(Model):
    """
    Switch for a whole back-office module. A disabled module is closed to everyone;
    `required_role` (role uid or code) narrows an enabled one to a single role.
    """

    __tablename__ = "module_access"

    module_key: str = field(metadata={"index": True, "unique": True})
    name: str = ""
    is_enabled: bool = True
    required_role: Optional[str] = None
    sort_order: int = 0


@dataclass(frozen=True)
class PermissionSnapshot:
    user_uid: str
    role: Optional[str] = None
    is_superuser: bool = False
    permissions: tuple[str, ...] = ()
    denied: tuple[str, ...] = ()
    modules: dict = field(default_factory=dict)
