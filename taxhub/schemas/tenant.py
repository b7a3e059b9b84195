"""
Pydantic schemas for tenant onboarding, plan changes and deletion
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
import uuid

from taxhub.models.catalog import ServiceLevel


class AddressInput(BaseModel):
    country_code: str = Field(default="US", min_length=2, max_length=2)
    state_code: str = Field(..., min_length=2, max_length=2)
    city: Optional[str] = Field(default=None, max_length=100)
    street: Optional[str] = Field(default=None, max_length=200)
    line: Optional[str] = Field(default=None, max_length=200)
    zip_code: Optional[str] = Field(default=None, max_length=20)


class CreateTenantRequest(BaseModel):
    """Company onboarding with its owner account"""
    is_company: bool = True
    company_name: Optional[str] = Field(default=None, max_length=200)
    full_name: Optional[str] = Field(default=None, max_length=200)
    brand: Optional[str] = Field(default=None, max_length=200)
    domain: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = Field(default=None, max_length=1000)
    address: Optional[AddressInput] = None

    service_level: ServiceLevel = ServiceLevel.BASIC

    owner_email: EmailStr
    owner_password: str = Field(..., min_length=8, max_length=100)
    owner_name: Optional[str] = Field(default=None, max_length=100)
    owner_last_name: Optional[str] = Field(default=None, max_length=100)
    owner_phone: Optional[str] = Field(default=None, max_length=50)


class TenantCreatedRead(BaseModel):
    model_config = ConfigDict(frozen=True)

    company_id: uuid.UUID
    owner_id: uuid.UUID
    plan_id: uuid.UUID
    service_level: str
    included_modules: List[str]


class CompanyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    is_company: bool
    company_name: Optional[str] = None
    full_name: Optional[str] = None
    brand: Optional[str] = None
    domain: Optional[str] = None
    phone: Optional[str] = None
    version: int
    created_at: datetime


class PlanChangeOptions(BaseModel):
    force_deactivation: bool = False
    additional_module_ids: List[uuid.UUID] = Field(default_factory=list)
    custom_price: Optional[Decimal] = None
    custom_user_limit: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    expected_version: Optional[int] = Field(default=None, description="CustomPlan version the caller last saw")


class PlanChangeRequest(PlanChangeOptions):
    service_level: ServiceLevel


class PlanChangeResult(BaseModel):
    """Outcome of a committed plan change"""
    model_config = ConfigDict(frozen=True)

    company_id: uuid.UUID
    previous_plan: str
    new_plan: str
    previous_assigned_tier: Optional[str] = None
    previous_price: Decimal
    new_price: Decimal
    previous_user_limit: int
    new_user_limit: int
    active_users_count: int
    deactivated_users_count: int
    deactivated_user_emails: List[str]
    added_modules: List[str]
    removed_modules: List[str]
    effective_date: datetime
    expiration_date: Optional[datetime] = None
    seat_overage: int = 0
    plan_version: int


class TenantDeletionAnalysis(BaseModel):
    """Counts gathered before a tenant is deleted"""
    model_config = ConfigDict(frozen=True)

    company_id: uuid.UUID
    tax_user_count: int
    company_user_count: int
    owner_count: int
    active_sessions: int
    override_count: int
    custom_module_count: int
    has_plan: bool
    has_address: bool

    @computed_field
    @property
    def total_users(self) -> int:
        return self.tax_user_count + self.company_user_count

    @computed_field
    @property
    def can_delete(self) -> bool:
        return self.total_users <= 1 and self.active_sessions == 0


class TenantDeletionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    company_id: uuid.UUID
    deleted_rows: Dict[str, int]
    delete_order: List[str]
