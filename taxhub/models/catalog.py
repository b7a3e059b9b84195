"""
Catalog models - service tiers, feature modules, roles and permissions

Catalog rows are shared reference data. Tenants never own them and the
engines only read them.
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime
from decimal import Decimal
from typing import Optional
from enum import Enum
import uuid


class ServiceLevel(str, Enum):
    """Subscription tiers, named after their Service rows"""
    BASIC = "Basic"
    STANDARD = "Standard"
    PRO = "Pro"

    @property
    def rank(self) -> int:
        return {"Basic": 1, "Standard": 2, "Pro": 3}[self.value]


ADMIN_ROLE_MARKER = "Administrator"
DEVELOPER_ROLE = "Developer"
DEFAULT_MEMBER_ROLE = "User"


class Service(SQLModel, table=True):
    """A plan tier with its default price and seat allowance"""

    __tablename__ = "services"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(unique=True, index=True, max_length=50)
    title: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
        description="Default monthly price for the tier"
    )
    user_limit: int = Field(default=1, description="Seats included in the tier")
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


class Module(SQLModel, table=True):
    """A feature entitlement, optionally bound to a tier (None = add-on)"""

    __tablename__ = "modules"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(unique=True, index=True, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    url: Optional[str] = Field(default=None, max_length=255)
    service_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="services.id",
        index=True,
        nullable=True
    )
    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)


class Role(SQLModel, table=True):
    """A named bundle of permissions"""

    __tablename__ = "roles"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(unique=True, index=True, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    portal_access: int = Field(default=1, description="1 = staff portal, 2 = customer portal, 3 = all")
    service_level: Optional[int] = Field(
        default=None,
        nullable=True,
        description="Lowest tier rank allowed to hold the role"
    )

    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_admin_class(self) -> bool:
        return ADMIN_ROLE_MARKER in self.name or self.name == DEVELOPER_ROLE


class Permission(SQLModel, table=True):
    """An atomic capability identified by a stable code, e.g. Customer.Read"""

    __tablename__ = "permissions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    code: str = Field(unique=True, index=True, max_length=100)
    name: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=datetime.utcnow)


class RolePermission(SQLModel, table=True):
    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    role_id: uuid.UUID = Field(foreign_key="roles.id", index=True)
    permission_id: uuid.UUID = Field(foreign_key="permissions.id", index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
