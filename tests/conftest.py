"""
Test configuration for pytest
"""

import os

# Test environment variables, set before any taxhub module reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["ENVIRONMENT"] = "test"

import pytest
from datetime import datetime, timedelta
from typing import Dict, Generator, Iterable, List, Optional

from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, select

from taxhub.core.database import build_engine
from taxhub.core.events import EventBus
from taxhub.models import (
    Address, Company, CompanyUser, CompanyUserRole, CustomModule, CustomPlan,
    Module, Role, Service, ServiceLevel, TaxUser, UserRole, UserSession,
)
from taxhub.services.catalog import seed_catalog
from taxhub.services.onboarding import administrator_role_name

# Shared in-memory SQLite for unit tests; StaticPool keeps one connection so
# the TestClient thread sees the same database
test_engine = build_engine("sqlite://", poolclass=StaticPool)

# Fixed hash so builders skip bcrypt
TEST_PASSWORD_HASH = "$2b$12$KIXQJ8mJ0b8q0q0q0q0q0uJ9yQxq1mC0Q1R9t3a8Vb2x0v4Zk2n6W"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a clean database session for each test"""
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


def load_catalog(session: Session) -> Dict[str, Dict]:
    seed_catalog(session)
    return {
        "services": {s.name: s for s in session.exec(select(Service)).all()},
        "modules": {m.name: m for m in session.exec(select(Module)).all()},
        "roles": {r.name: r for r in session.exec(select(Role)).all()},
    }


@pytest.fixture
def catalog(db: Session) -> Dict[str, Dict]:
    """Seeded services, modules and roles keyed by name"""
    return load_catalog(db)


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite so each session gets its own connection"""
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


class RecordingBus(EventBus):
    """Event bus that keeps every published event"""

    def __init__(self):
        super().__init__()
        self.published = []

    async def publish(self, event):
        self.published.append(event)
        await super().publish(event)

    def of_type(self, event_type) -> List:
        return [e for e in self.published if isinstance(e, event_type)]


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


class TenantFactory:
    """Builds tenants and their accounts directly in the store"""

    def __init__(self, session: Session, catalog: Dict[str, Dict]):
        self.session = session
        self.catalog = catalog
        self._clock = datetime(2026, 1, 1, 9, 0, 0)
        self._counter = 0

    def _tick(self) -> datetime:
        self._clock += timedelta(minutes=1)
        return self._clock

    def _email(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter}@example.com"

    def role(self, name: str) -> Role:
        return self.catalog["roles"][name]

    def company(
        self,
        level: ServiceLevel = ServiceLevel.BASIC,
        with_address: bool = False,
        domain: Optional[str] = None,
        user_limit: Optional[int] = None,
    ) -> Company:
        """Company with its plan, tier modules and an owner holding the tier's admin role"""
        service = self.catalog["services"][level.value]
        address = None
        if with_address:
            address = Address(country_code="US", state_code="TX", city="Austin", zip_code="73301")
            self.session.add(address)
            self.session.flush()

        company = Company(
            company_name=f"Firm {self._counter + 1}",
            domain=domain,
            address_id=address.id if address else None,
        )
        self.session.add(company)
        self.session.flush()

        now = self._tick()
        plan = CustomPlan(
            company_id=company.id,
            price=service.price,
            user_limit=user_limit or service.user_limit,
            start_date=now,
            renew_date=now.replace(year=now.year + 1),
            last_assigned_tier=service.name,
        )
        self.session.add(plan)
        self.session.flush()
        for module in self.catalog["modules"].values():
            if module.service_id == service.id:
                self.session.add(CustomModule(custom_plan_id=plan.id, module_id=module.id, is_included=True))

        self.member(company, roles=(administrator_role_name(level.value),), is_owner=True, prefix="owner")
        self.session.commit()
        self.session.refresh(company)
        return company

    def plan(self, company: Company) -> CustomPlan:
        return self.session.exec(select(CustomPlan).where(CustomPlan.company_id == company.id)).one()

    def owner(self, company: Company) -> TaxUser:
        return self.session.exec(
            select(TaxUser).where(TaxUser.company_id == company.id, TaxUser.is_owner == True)  # noqa: E712
        ).one()

    def included_modules(self, company: Company) -> List[str]:
        plan = self.plan(company)
        return sorted(self.session.exec(
            select(Module.name)
            .join(CustomModule, CustomModule.module_id == Module.id)
            .where(CustomModule.custom_plan_id == plan.id, CustomModule.is_included == True)  # noqa: E712
        ).all())

    def member(
        self,
        company: Company,
        roles: Iterable[str] = ("User",),
        is_owner: bool = False,
        is_active: bool = True,
        prefix: str = "member",
        email: Optional[str] = None,
    ) -> TaxUser:
        member = TaxUser(
            company_id=company.id,
            email=email or self._email(prefix),
            password_hash=TEST_PASSWORD_HASH,
            is_owner=is_owner,
            is_active=is_active,
            created_at=self._tick(),
        )
        self.session.add(member)
        self.session.flush()
        for name in roles:
            self.session.add(UserRole(tax_user_id=member.id, role_id=self.role(name).id))
        self.session.commit()
        self.session.refresh(member)
        return member

    def company_user(
        self,
        company: Company,
        roles: Iterable[str] = ("User",),
        is_active: bool = True,
        email: Optional[str] = None,
    ) -> CompanyUser:
        account = CompanyUser(
            company_id=company.id,
            email=email or self._email("staff"),
            password_hash=TEST_PASSWORD_HASH,
            is_active=is_active,
            confirmed=True,
            created_at=self._tick(),
        )
        self.session.add(account)
        self.session.flush()
        for name in roles:
            self.session.add(CompanyUserRole(company_user_id=account.id, role_id=self.role(name).id))
        self.session.commit()
        self.session.refresh(account)
        return account

    def login_session(self, member: TaxUser, is_revoked: bool = False) -> UserSession:
        login = UserSession(tax_user_id=member.id, is_revoked=is_revoked, ip_address="127.0.0.1")
        self.session.add(login)
        self.session.commit()
        return login


@pytest.fixture
def factory(db: Session, catalog: Dict[str, Dict]) -> TenantFactory:
    return TenantFactory(db, catalog)


@pytest.fixture
def file_factory(file_engine) -> Generator[TenantFactory, None, None]:
    """Tenant builder on the file-backed database"""
    with Session(file_engine) as session:
        yield TenantFactory(session, load_catalog(session))
