"""
Secondary accounts ("company users") sharing the tenant's seat pool
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import UniqueConstraint
from datetime import datetime
from typing import Optional
import uuid


class CompanyUser(SQLModel, table=True):
    """Lighter account created by accepting an invitation"""

    __tablename__ = "company_users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    company_id: uuid.UUID = Field(foreign_key="companies.id", index=True)

    email: str = Field(unique=True, index=True, max_length=255)
    password_hash: str = Field(nullable=False)
    name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)

    is_active: bool = Field(default=True, index=True)
    confirmed: bool = Field(default=False)

    version: int = Field(default=1)

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: Optional[datetime] = None

    def deactivate(self) -> None:
        if not self.is_active:
            raise ValueError("Cannot deactivate company user: already inactive")

        self.is_active = False
        self.updated_at = datetime.utcnow()


class CompanyUserRole(SQLModel, table=True):
    __tablename__ = "company_user_roles"
    __table_args__ = (UniqueConstraint("company_user_id", "role_id", name="uq_company_user_role"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    company_user_id: uuid.UUID = Field(foreign_key="company_users.id", index=True)
    role_id: uuid.UUID = Field(foreign_key="roles.id", index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)


class CompanyUserSession(SQLModel, table=True):
    __tablename__ = "company_user_sessions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    company_user_id: uuid.UUID = Field(foreign_key="company_users.id", index=True)
    is_revoked: bool = Field(default=False, index=True)
    ip_address: Optional[str] = Field(default=None, max_length=45)
    device: Optional[str] = Field(default=None, max_length=255)
    expires_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
