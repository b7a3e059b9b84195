"""
Identity models - tenant members (tax users), role assignments,
per-member permission overrides and login sessions
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime
from typing import Optional
import uuid


class TaxUser(SQLModel, table=True):
    """A full member (tax preparer) belonging to exactly one company"""

    __tablename__ = "tax_users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    company_id: uuid.UUID = Field(
        foreign_key="companies.id",
        index=True,
        description="Company ID for multi-tenant isolation"
    )

    # Authentication
    email: str = Field(unique=True, index=True, max_length=255)
    password_hash: str = Field(nullable=False)

    # Profile
    name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)

    # Status
    is_owner: bool = Field(default=False, index=True)
    is_active: bool = Field(default=True, index=True)
    confirmed: bool = Field(default=False)

    version: int = Field(default=1, description="Version number for optimistic concurrency control")

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: Optional[datetime] = None

    def deactivate(self) -> None:
        """Disable login without removing the member"""
        if not self.is_active:
            raise ValueError("Cannot deactivate member: already inactive")

        self.is_active = False
        self.updated_at = datetime.utcnow()


class UserRole(SQLModel, table=True):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("tax_user_id", "role_id", name="uq_user_role"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    tax_user_id: uuid.UUID = Field(foreign_key="tax_users.id", index=True)
    role_id: uuid.UUID = Field(foreign_key="roles.id", index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)


class CompanyPermission(SQLModel, table=True):
    """Grant or revoke exception layered over a member's role permissions"""

    __tablename__ = "company_permissions"
    __table_args__ = (UniqueConstraint("tax_user_id", "permission_id", name="uq_member_permission"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    tax_user_id: uuid.UUID = Field(foreign_key="tax_users.id", index=True)
    permission_id: uuid.UUID = Field(foreign_key="permissions.id", index=True)
    is_granted: bool = Field(default=True)
    description: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


class UserSession(SQLModel, table=True):
    """Login session of a member"""

    __tablename__ = "sessions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    tax_user_id: uuid.UUID = Field(foreign_key="tax_users.id", index=True)
    is_revoked: bool = Field(default=False, index=True)
    ip_address: Optional[str] = Field(default=None, max_length=45)
    device: Optional[str] = Field(default=None, max_length=255)
    expires_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
