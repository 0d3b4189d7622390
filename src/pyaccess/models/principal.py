from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from . import Model


class ExtendedRole(str, Enum):
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"
    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"
    MARKETER = "MARKETER"


@dataclass
class AdminUser(Model):
    """The principal whose permissions are evaluated. Provisioned outside of this package."""

    __tablename__ = "admin_users"

    uid: str = field(metadata={"index": True, "unique": True})
    name: str = ""
    email: Optional[str] = None

    is_active: bool = True
    role_id: Optional[str] = None
    extended_role: Optional[ExtendedRole] = None
    is_super_admin: bool = False

    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if isinstance(self.extended_role, str) and not isinstance(
            self.extended_role, ExtendedRole
        ):
            self.extended_role = ExtendedRole(self.extended_role)
