"""
Tenant models - Company, its Address, CustomPlan and CustomModule entitlements
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, ForeignKey, UniqueConstraint, Uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid


class Address(SQLModel, table=True):
    """Postal address attached to a company"""

    __tablename__ = "addresses"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    country_code: str = Field(max_length=2, description="ISO 3166-1 alpha-2")
    state_code: str = Field(max_length=2, description="USPS state abbreviation")
    city: Optional[str] = Field(default=None, max_length=100)
    street: Optional[str] = Field(default=None, max_length=200)
    line: Optional[str] = Field(default=None, max_length=200)
    zip_code: Optional[str] = Field(default=None, max_length=20)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


class Company(SQLModel, table=True):
    """A tenant: billable organization or individual account"""

    __tablename__ = "companies"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    is_company: bool = Field(default=True)
    full_name: Optional[str] = Field(default=None, max_length=200, description="Individual account holder")
    company_name: Optional[str] = Field(default=None, max_length=200)
    brand: Optional[str] = Field(default=None, max_length=200)
    domain: Optional[str] = Field(default=None, unique=True, index=True, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = Field(default=None, max_length=1000)

    # Address rows are removed before the company during a cascade
    address_id: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=Column(Uuid, ForeignKey("addresses.id", ondelete="SET NULL"), nullable=True, index=True)
    )

    # Optimistic concurrency control
    version: int = Field(default=1, description="Version number for optimistic concurrency control")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.company_name or self.full_name or self.domain or str(self.id)


class CustomPlan(SQLModel, table=True):
    """The tenant's current subscription instance (one per company)"""

    __tablename__ = "custom_plans"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    company_id: uuid.UUID = Field(foreign_key="companies.id", unique=True, index=True)

    price: Decimal = Field(
        default=Decimal("0.00"),
        max_digits=10,
        decimal_places=2,
        description="Negotiated price, defaults to the tier price"
    )
    user_limit: int = Field(default=1, description="Seat allowance, always >= 1")
    is_active: bool = Field(default=True, index=True)
    is_renewed: bool = Field(default=False)
    start_date: datetime = Field(default_factory=datetime.utcnow)
    renew_date: Optional[datetime] = Field(default=None, nullable=True)

    # Tier explicitly applied by the last onboarding or plan change
    last_assigned_tier: Optional[str] = Field(default=None, max_length=50, nullable=True)

    version: int = Field(default=1, description="Version number for optimistic concurrency control")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None


class CustomModule(SQLModel, table=True):
    """Module entitlement on a plan. Rows are toggled, never deleted on their own."""

    __tablename__ = "custom_modules"
    __table_args__ = (UniqueConstraint("custom_plan_id", "module_id", name="uq_custom_plan_module"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    custom_plan_id: uuid.UUID = Field(foreign_key="custom_plans.id", index=True)
    module_id: uuid.UUID = Field(foreign_key="modules.id", index=True)
    is_included: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
