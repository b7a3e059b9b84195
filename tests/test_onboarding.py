"""
Tests for tenant onboarding
"""

import pytest

from sqlmodel import Session, select
from sqlalchemy import event, func

from taxhub.core.auth import verify_password
from taxhub.core.errors import ConstraintViolation, DuplicateDomain, DuplicateEmail, UnsupportedRegion
from taxhub.core.events import TenantCreated
from taxhub.models import Address, Company, CustomPlan, Role, ServiceLevel, TaxUser, UserRole
from taxhub.schemas.tenant import AddressInput, CreateTenantRequest
from taxhub.services.onboarding import TenantOnboarding, administrator_role_name


def _request(**overrides) -> CreateTenantRequest:
    fields = dict(
        company_name="Ledger & Sons",
        domain="Ledger.Example.com",
        owner_email="Founder@Ledger.example.com",
        owner_password="founder-pass-1",
        owner_name="Rita",
        address=AddressInput(country_code="us", state_code="ny", city=" New York ", zip_code="10001"),
        service_level=ServiceLevel.STANDARD,
    )
    fields.update(overrides)
    return CreateTenantRequest(**fields)


def _count(session, model) -> int:
    return session.exec(select(func.count()).select_from(model)).one()


@pytest.mark.asyncio
async def test_create_tenant(db, catalog, bus):
    """Company, address, plan, tier modules and owner are created together"""
    result = await TenantOnboarding(db, bus).create_tenant(_request())

    assert result.service_level == "Standard"
    assert result.included_modules == ["Customer Portal", "Reports"]

    company = db.get(Company, result.company_id)
    assert company.domain == "ledger.example.com"
    assert company.version == 1
    address = db.get(Address, company.address_id)
    assert (address.country_code, address.state_code, address.city) == ("US", "NY", "New York")

    plan = db.get(CustomPlan, result.plan_id)
    assert plan.company_id == company.id
    assert plan.user_limit == 4
    assert plan.last_assigned_tier == "Standard"
    assert plan.renew_date.year == plan.start_date.year + 1

    owner = db.get(TaxUser, result.owner_id)
    assert owner.email == "founder@ledger.example.com"
    assert owner.is_owner is True
    assert verify_password("founder-pass-1", owner.password_hash)
    role_names = db.exec(
        select(Role.name).join(UserRole, UserRole.role_id == Role.id).where(UserRole.tax_user_id == owner.id)
    ).all()
    assert role_names == [administrator_role_name("Standard")]

    events = bus.of_type(TenantCreated)
    assert len(events) == 1
    assert events[0].owner_email == "founder@ledger.example.com"
    assert events[0].display_name == "Ledger & Sons"


@pytest.mark.asyncio
async def test_individual_account_without_address(db, catalog, bus):
    result = await TenantOnboarding(db, bus).create_tenant(_request(
        is_company=False,
        company_name=None,
        full_name="Sam Solo",
        domain=None,
        address=None,
        service_level=ServiceLevel.BASIC,
    ))

    company = db.get(Company, result.company_id)
    assert company.address_id is None
    assert company.display_name == "Sam Solo"
    assert result.included_modules == ["Document Management", "Invoicing", "Tax Returns"]


@pytest.mark.asyncio
async def test_duplicate_owner_email(db, factory, bus):
    company = factory.company()
    existing = factory.owner(company)
    tables_before = (_count(db, Company), _count(db, CustomPlan))

    with pytest.raises(DuplicateEmail):
        await TenantOnboarding(db, bus).create_tenant(_request(owner_email=existing.email.upper()))

    assert (_count(db, Company), _count(db, CustomPlan)) == tables_before


@pytest.mark.asyncio
async def test_duplicate_domain(db, factory, bus):
    factory.company(domain="ledger.example.com")

    with pytest.raises(DuplicateDomain):
        await TenantOnboarding(db, bus).create_tenant(_request())

    assert bus.of_type(TenantCreated) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("country, state", [("CA", "ON"), ("US", "ZZ")])
async def test_unsupported_region_leaves_nothing_behind(db, catalog, bus, country, state):
    with pytest.raises(UnsupportedRegion):
        await TenantOnboarding(db, bus).create_tenant(
            _request(address=AddressInput(country_code=country, state_code=state))
        )

    assert _count(db, Company) == 0
    assert _count(db, Address) == 0
    assert _count(db, TaxUser) == 0


@pytest.mark.asyncio
async def test_domain_taken_by_concurrent_signup(file_engine, file_factory):
    """A signup committed between the duplicate checks and the insert surfaces as a conflict"""
    competitor = []

    def competitor_signs_up(session, flush_context, instances):
        if not competitor:
            competitor.append(file_factory.company(domain="ledger.example.com"))

    with Session(file_engine) as session:
        event.listen(session, "before_flush", competitor_signs_up)
        with pytest.raises(ConstraintViolation) as exc_info:
            await TenantOnboarding(session).create_tenant(_request())

    assert exc_info.value.kind == "conflict"
    with Session(file_engine) as check:
        assert _count(check, Company) == 1
        assert check.exec(select(Company.id).where(Company.domain == "ledger.example.com")).one() == competitor[0].id
