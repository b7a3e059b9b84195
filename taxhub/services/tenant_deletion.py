"""
Tenant Deletion Engine
Validates that a company is safe to delete and removes it together with
every dependent row, children before parents, in one transaction
"""

from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple, Type
import uuid

from sqlmodel import Session, SQLModel, select
from sqlalchemy import delete, func
import structlog

from taxhub.core.database import claim_version, unit_of_work
from taxhub.core.errors import ActiveSessionsExist, TenantNotEmpty, TenantNotFound
from taxhub.core.events import EventBus, TenantDeleted, publish_after_commit
from taxhub.models import (
    Address, Company, CompanyPermission, CompanyUser, CompanyUserRole,
    CompanyUserSession, Customer, CustomModule, CustomPlan, Invitation,
    TaxUser, UserRole, UserSession,
)
from taxhub.schemas.tenant import TenantDeletionAnalysis, TenantDeletionResult

logger = structlog.get_logger(__name__)


def _tax_user_ids(company_id: uuid.UUID):
    return select(TaxUser.id).where(TaxUser.company_id == company_id)


def _company_user_ids(company_id: uuid.UUID):
    return select(CompanyUser.id).where(CompanyUser.company_id == company_id)


def _plan_ids(company_id: uuid.UUID):
    return select(CustomPlan.id).where(CustomPlan.company_id == company_id)


def _address_ids(company_id: uuid.UUID):
    return select(Company.address_id).where(Company.id == company_id, Company.address_id.is_not(None))


class CascadeStep(NamedTuple):
    """One dependent table: the tables its rows reference and how to select the tenant's rows"""
    table: str
    model: Type[SQLModel]
    parents: Tuple[str, ...]
    scope: Callable


# Declared once. Delete order is derived from the parent edges; ties keep
# declaration order.
CASCADE_GRAPH: Sequence[CascadeStep] = (
    CascadeStep(
        "company_permissions", CompanyPermission, ("tax_users",),
        lambda cid: CompanyPermission.tax_user_id.in_(_tax_user_ids(cid)),
    ),
    CascadeStep(
        "invitations", Invitation, ("companies", "tax_users", "company_users"),
        lambda cid: Invitation.company_id == cid,
    ),
    CascadeStep(
        "company_user_sessions", CompanyUserSession, ("company_users",),
        lambda cid: CompanyUserSession.company_user_id.in_(_company_user_ids(cid)),
    ),
    CascadeStep(
        "company_user_roles", CompanyUserRole, ("company_users",),
        lambda cid: CompanyUserRole.company_user_id.in_(_company_user_ids(cid)),
    ),
    CascadeStep(
        "company_users", CompanyUser, ("companies",),
        lambda cid: CompanyUser.company_id == cid,
    ),
    CascadeStep(
        "sessions", UserSession, ("tax_users",),
        lambda cid: UserSession.tax_user_id.in_(_tax_user_ids(cid)),
    ),
    CascadeStep(
        "user_roles", UserRole, ("tax_users",),
        lambda cid: UserRole.tax_user_id.in_(_tax_user_ids(cid)),
    ),
    CascadeStep(
        "tax_users", TaxUser, ("companies",),
        lambda cid: TaxUser.company_id == cid,
    ),
    CascadeStep(
        "customers", Customer, ("companies",),
        lambda cid: Customer.company_id == cid,
    ),
    CascadeStep(
        "custom_modules", CustomModule, ("custom_plans",),
        lambda cid: CustomModule.custom_plan_id.in_(_plan_ids(cid)),
    ),
    CascadeStep(
        "custom_plans", CustomPlan, ("companies",),
        lambda cid: CustomPlan.company_id == cid,
    ),
    # companies.address_id is ON DELETE SET NULL, so the address may go first
    CascadeStep(
        "addresses", Address, ("companies",),
        lambda cid: Address.id.in_(_address_ids(cid)),
    ),
    CascadeStep(
        "companies", Company, (),
        lambda cid: Company.id == cid,
    ),
)


def derived_delete_order(graph: Sequence[CascadeStep] = CASCADE_GRAPH) -> List[CascadeStep]:
    """
    Topologically order the graph so every table is deleted before the
    tables it references.

    Raises:
        ValueError: an edge names an undeclared table, or the edges form a cycle
    """
    declared = {step.table for step in graph}
    children: Dict[str, set] = {step.table: set() for step in graph}
    for step in graph:
        for parent in step.parents:
            if parent not in declared:
                raise ValueError(f"{step.table} references undeclared table {parent}")
            children[parent].add(step.table)

    ordered: List[CascadeStep] = []
    done: set = set()
    remaining = list(graph)
    while remaining:
        ready = next((s for s in remaining if children[s.table] <= done), None)
        if ready is None:
            raise ValueError(f"Cycle in cascade graph among {[s.table for s in remaining]}")
        ordered.append(ready)
        done.add(ready.table)
        remaining.remove(ready)
    return ordered


class TenantDeletionEngine:
    """Pre-check gate followed by the ordered cascade"""

    def __init__(self, session: Session, bus: Optional[EventBus] = None):
        self.session = session
        self.bus = bus
        self.order = derived_delete_order()

    def _count(self, model, *criteria) -> int:
        return self.session.exec(select(func.count()).select_from(model).where(*criteria)).one()

    def analyze(self, company_id: uuid.UUID) -> TenantDeletionAnalysis:
        """Gather the counts the pre-check decides on. Read only."""
        company = self.session.get(Company, company_id)
        if company is None:
            raise TenantNotFound(company_id)

        tax_user_ids = _tax_user_ids(company_id)
        company_user_ids = _company_user_ids(company_id)
        active_sessions = (
            self._count(UserSession, UserSession.tax_user_id.in_(tax_user_ids), UserSession.is_revoked == False)  # noqa: E712
            + self._count(
                CompanyUserSession,
                CompanyUserSession.company_user_id.in_(company_user_ids),
                CompanyUserSession.is_revoked == False,  # noqa: E712
            )
        )

        return TenantDeletionAnalysis(
            company_id=company_id,
            tax_user_count=self._count(TaxUser, TaxUser.company_id == company_id),
            company_user_count=self._count(CompanyUser, CompanyUser.company_id == company_id),
            owner_count=self._count(TaxUser, TaxUser.company_id == company_id, TaxUser.is_owner == True),  # noqa: E712
            active_sessions=active_sessions,
            override_count=self._count(CompanyPermission, CompanyPermission.tax_user_id.in_(tax_user_ids)),
            custom_module_count=self._count(CustomModule, CustomModule.custom_plan_id.in_(_plan_ids(company_id))),
            has_plan=self._count(CustomPlan, CustomPlan.company_id == company_id) > 0,
            has_address=company.address_id is not None,
        )

    async def delete_tenant(
        self,
        company_id: uuid.UUID,
        expected_version: Optional[int] = None,
    ) -> TenantDeletionResult:
        """
        Delete a company and everything under it.

        Args:
            company_id: Tenant to delete
            expected_version: Company version the caller last saw, if any

        Returns:
            TenantDeletionResult with per-table deleted row counts

        Raises:
            TenantNotFound, TenantNotEmpty, ActiveSessionsExist, ConcurrencyConflict
        """
        logger.info("Deleting tenant", company_id=str(company_id))
        deleted: Dict[str, int] = {}

        with unit_of_work(self.session):
            # loaded before the gate so an accept committed after the count fails the claim below
            plan = self.session.exec(select(CustomPlan).where(CustomPlan.company_id == company_id)).first()
            analysis = self.analyze(company_id)
            if analysis.total_users > 1:
                logger.warning(
                    "Tenant deletion refused: users remain",
                    company_id=str(company_id),
                    total_users=analysis.total_users,
                )
                raise TenantNotEmpty(
                    company_id,
                    total_users=analysis.total_users,
                    tax_users=analysis.tax_user_count,
                    company_users=analysis.company_user_count,
                )
            if analysis.active_sessions > 0:
                logger.warning(
                    "Tenant deletion refused: active sessions",
                    company_id=str(company_id),
                    active_sessions=analysis.active_sessions,
                )
                raise ActiveSessionsExist(company_id, analysis.active_sessions)

            company = self.session.get(Company, company_id)
            claim_version(self.session, company, expected_version)
            if plan is not None:
                claim_version(self.session, plan)

            for step in self.order:
                criteria = step.scope(company_id)
                if self._count(step.model, criteria) == 0:
                    continue
                result = self.session.exec(
                    delete(step.model).where(criteria).execution_options(synchronize_session=False)
                )
                deleted[step.table] = result.rowcount
                logger.debug("Cascade step", table=step.table, rows=result.rowcount)

            self.session.expunge(company)
            if plan is not None:
                self.session.expunge(plan)

        logger.info("Tenant deleted", company_id=str(company_id), deleted_rows=deleted)
        await publish_after_commit([TenantDeleted(company_id=company_id, deleted_rows=deleted)], self.bus)

        return TenantDeletionResult(
            company_id=company_id,
            deleted_rows=deleted,
            delete_order=[step.table for step in self.order],
        )
