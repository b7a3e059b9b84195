"""
Tenant onboarding
Creates a company with its address, plan, tier modules and owner account
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Session, select
from sqlalchemy import func
import structlog

from taxhub.core.auth import hash_password
from taxhub.core.config import get_settings
from taxhub.core.database import unit_of_work
from taxhub.core.errors import DuplicateDomain, DuplicateEmail, PlanNotFound, RoleNotFound, UnsupportedRegion
from taxhub.core.events import EventBus, TenantCreated, publish_after_commit
from taxhub.core.geography import US_STATE_CODES
from taxhub.models import (
    ADMIN_ROLE_MARKER, Address, Company, CompanyUser, CustomModule, CustomPlan,
    Module, Role, Service, TaxUser, UserRole,
)
from taxhub.schemas.tenant import AddressInput, CreateTenantRequest, TenantCreatedRead
from taxhub.services.plan_transition import add_one_year

logger = structlog.get_logger(__name__)


def administrator_role_name(service_level: str) -> str:
    return f"{ADMIN_ROLE_MARKER} {service_level}"


class TenantOnboarding:
    def __init__(self, session: Session, bus: Optional[EventBus] = None):
        self.session = session
        self.bus = bus
        self.settings = get_settings()

    def _validate_address(self, address: AddressInput) -> None:
        country = address.country_code.upper()
        state = address.state_code.upper()
        if country not in self.settings.SUPPORTED_COUNTRIES:
            raise UnsupportedRegion(country, state)
        if country == "US" and state not in US_STATE_CODES:
            raise UnsupportedRegion(country, state)

    async def create_tenant(self, request: CreateTenantRequest) -> TenantCreatedRead:
        """
        Onboard a company and its owner in one transaction.

        Raises:
            DuplicateEmail, DuplicateDomain, UnsupportedRegion, PlanNotFound, RoleNotFound
        """
        email = request.owner_email.strip().lower()
        domain = request.domain.strip().lower() if request.domain else None
        level = request.service_level.value

        with unit_of_work(self.session):
            taken = self.session.exec(select(TaxUser.id).where(func.lower(TaxUser.email) == email)).first()
            if taken is None:
                taken = self.session.exec(select(CompanyUser.id).where(func.lower(CompanyUser.email) == email)).first()
            if taken is not None:
                logger.warning("Email already exists", email=email)
                raise DuplicateEmail(email)

            if domain and self.session.exec(select(Company.id).where(Company.domain == domain)).first():
                logger.warning("Domain already exists", domain=domain)
                raise DuplicateDomain(domain)

            if request.address is not None:
                self._validate_address(request.address)

            service = self.session.exec(
                select(Service).where(Service.name == level, Service.is_active == True)  # noqa: E712
            ).first()
            if service is None:
                raise PlanNotFound(service_level=level)

            admin_role = self.session.exec(select(Role).where(Role.name == administrator_role_name(level))).first()
            if admin_role is None:
                logger.error("Administrator role not found", service_level=level)
                raise RoleNotFound([administrator_role_name(level)])

            address = None
            if request.address is not None:
                address = Address(
                    country_code=request.address.country_code.upper(),
                    state_code=request.address.state_code.upper(),
                    city=request.address.city.strip() if request.address.city else None,
                    street=request.address.street.strip() if request.address.street else None,
                    line=request.address.line.strip() if request.address.line else None,
                    zip_code=request.address.zip_code.strip() if request.address.zip_code else None,
                )
                self.session.add(address)
                self.session.flush()

            company = Company(
                is_company=request.is_company,
                company_name=request.company_name,
                full_name=request.full_name,
                brand=request.brand,
                domain=domain,
                phone=request.phone,
                description=request.description,
                address_id=address.id if address else None,
            )
            self.session.add(company)
            self.session.flush()

            now = datetime.utcnow()
            plan = CustomPlan(
                company_id=company.id,
                price=service.price,
                user_limit=service.user_limit,
                is_active=True,
                start_date=now,
                renew_date=add_one_year(now),
                last_assigned_tier=service.name,
            )
            self.session.add(plan)
            self.session.flush()

            modules = self.session.exec(
                select(Module).where(Module.service_id == service.id, Module.is_active == True)  # noqa: E712
            ).all()
            for module in modules:
                self.session.add(CustomModule(custom_plan_id=plan.id, module_id=module.id, is_included=True))

            owner = TaxUser(
                company_id=company.id,
                email=email,
                password_hash=hash_password(request.owner_password),
                name=request.owner_name,
                last_name=request.owner_last_name,
                phone=request.owner_phone,
                is_owner=True,
                is_active=True,
                confirmed=False,
            )
            self.session.add(owner)
            self.session.flush()
            self.session.add(UserRole(tax_user_id=owner.id, role_id=admin_role.id))

            result = TenantCreatedRead(
                company_id=company.id,
                owner_id=owner.id,
                plan_id=plan.id,
                service_level=service.name,
                included_modules=sorted(m.name for m in modules),
            )
            event = TenantCreated(
                company_id=company.id,
                owner_id=owner.id,
                owner_email=email,
                display_name=company.display_name,
                service_level=service.name,
                domain=domain,
            )

        logger.info("Company created", company_id=str(result.company_id), service_level=result.service_level)
        await publish_after_commit([event], self.bus)
        return result
