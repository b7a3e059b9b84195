"""
Plan Transition Engine
Moves a company to another service tier: seat enforcement, excess-user
deactivation, module reconciliation and plan update in one transaction
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union
import uuid

from sqlmodel import Session, select
from sqlalchemy import func, or_
import structlog

from taxhub.core.config import get_settings
from taxhub.core.database import claim_version, unit_of_work
from taxhub.core.errors import (
    ConcurrencyConflict, DeactivationShortfall, InvalidPrice, InvalidUserLimit,
    ModuleNotFound, NoActiveOwner, PlanNotFound, SeatLimitExceeded, TenantNotFound,
)
from taxhub.core.events import EventBus, PlanChanged, publish_after_commit
from taxhub.models import (
    ADMIN_ROLE_MARKER, DEVELOPER_ROLE, Company, CompanyUser, CustomModule,
    CustomPlan, Module, Role, Service, ServiceLevel, TaxUser, UserRole,
)
from taxhub.schemas.tenant import PlanChangeOptions, PlanChangeResult
from taxhub.services.seats import count_active_seats

logger = structlog.get_logger(__name__)

CUSTOM_PLAN_LABEL = "Custom"


def add_one_year(moment: datetime) -> datetime:
    try:
        return moment.replace(year=moment.year + 1)
    except ValueError:
        # Feb 29 rolls back to Feb 28
        return moment.replace(year=moment.year + 1, day=28)


def infer_plan_label(session: Session, plan_id: uuid.UUID) -> str:
    """
    Display label for a plan, derived from its included tier modules.

    Returns the tier name when every included tier module belongs to one
    service, otherwise "Custom". Never used to make decisions.
    """
    names = session.exec(
        select(Service.name)
        .join(Module, Module.service_id == Service.id)
        .join(CustomModule, CustomModule.module_id == Module.id)
        .where(CustomModule.custom_plan_id == plan_id, CustomModule.is_included == True)  # noqa: E712
        .distinct()
    ).all()
    return names[0] if len(names) == 1 else CUSTOM_PLAN_LABEL


class PlanTransitionEngine:
    """Validates and executes a service-level change for a company"""

    def __init__(self, session: Session, bus: Optional[EventBus] = None):
        self.session = session
        self.bus = bus
        self.settings = get_settings()

    @staticmethod
    def _admin_member_ids():
        return (
            select(UserRole.tax_user_id)
            .join(Role, Role.id == UserRole.role_id)
            .where(or_(Role.name.contains(ADMIN_ROLE_MARKER), Role.name == DEVELOPER_ROLE))
        )

    def _select_for_deactivation(
        self,
        company_id: uuid.UUID,
        excess: int,
    ) -> Tuple[List[CompanyUser], List[TaxUser]]:
        """
        Pick accounts to deactivate, newest first.

        Secondary accounts go first. Members are only taken when secondary
        accounts do not cover the excess, and never the owner or anyone
        holding an administrator-class role.
        """
        company_users = list(self.session.exec(
            select(CompanyUser)
            .where(CompanyUser.company_id == company_id, CompanyUser.is_active == True)  # noqa: E712
            .order_by(CompanyUser.created_at.desc())
            .limit(excess)
        ).all())

        remaining = excess - len(company_users)
        members: List[TaxUser] = []
        if remaining > 0:
            members = list(self.session.exec(
                select(TaxUser)
                .where(
                    TaxUser.company_id == company_id,
                    TaxUser.is_active == True,  # noqa: E712
                    TaxUser.is_owner == False,  # noqa: E712
                    TaxUser.id.not_in(self._admin_member_ids()),
                )
                .order_by(TaxUser.created_at.desc())
                .limit(remaining)
            ).all())
        return company_users, members

    def _reconcile_modules(
        self,
        plan: CustomPlan,
        service: Service,
        additional_module_ids: List[uuid.UUID],
    ) -> Tuple[List[str], List[str]]:
        """
        Flip CustomModule flags so exactly the tier's modules plus the
        requested add-ons are included. Rows are created on first use and
        never deleted. Returns (added, removed) module names.
        """
        tier_modules = self.session.exec(
            select(Module).where(Module.service_id == service.id, Module.is_active == True)  # noqa: E712
        ).all()

        extra_ids = set(additional_module_ids)
        extra_modules = []
        if extra_ids:
            extra_modules = self.session.exec(select(Module).where(Module.id.in_(extra_ids))).all()
            missing = extra_ids - {m.id for m in extra_modules}
            if missing:
                raise ModuleNotFound(sorted(str(m) for m in missing))

        names: Dict[uuid.UUID, str] = {m.id: m.name for m in list(tier_modules) + list(extra_modules)}
        target_ids = set(names)

        existing = {
            cm.module_id: cm
            for cm in self.session.exec(
                select(CustomModule).where(CustomModule.custom_plan_id == plan.id)
            ).all()
        }
        now = datetime.utcnow()
        added: List[str] = []
        removed: List[str] = []

        for module_id in target_ids:
            row = existing.get(module_id)
            if row is None:
                self.session.add(CustomModule(custom_plan_id=plan.id, module_id=module_id, is_included=True))
                added.append(names[module_id])
            elif not row.is_included:
                row.is_included = True
                row.updated_at = now
                self.session.add(row)
                added.append(names[module_id])

        dropped = [row for module_id, row in existing.items() if row.is_included and module_id not in target_ids]
        if dropped:
            dropped_names = dict(self.session.exec(
                select(Module.id, Module.name).where(Module.id.in_([row.module_id for row in dropped]))
            ).all())
            for row in dropped:
                row.is_included = False
                row.updated_at = now
                self.session.add(row)
                removed.append(dropped_names.get(row.module_id, str(row.module_id)))

        return sorted(added), sorted(removed)

    async def change_plan(
        self,
        company_id: uuid.UUID,
        new_service_level: Union[ServiceLevel, str],
        options: Optional[PlanChangeOptions] = None,
    ) -> PlanChangeResult:
        """
        Change a company's service tier.

        Args:
            company_id: Tenant whose plan changes
            new_service_level: Target tier name (Basic, Standard, Pro)
            options: Force flag, add-on modules, price/limit overrides, dates

        Returns:
            PlanChangeResult describing the committed change

        Raises:
            TenantNotFound, PlanNotFound, NoActiveOwner, SeatLimitExceeded,
            DeactivationShortfall, ModuleNotFound, ConcurrencyConflict,
            InvalidPrice, InvalidUserLimit
        """
        opts = options or PlanChangeOptions()
        level = new_service_level.value if isinstance(new_service_level, ServiceLevel) else str(new_service_level)

        if opts.custom_user_limit is not None and opts.custom_user_limit < 1:
            raise InvalidUserLimit(opts.custom_user_limit)
        if opts.custom_price is not None and opts.custom_price < 0:
            raise InvalidPrice(opts.custom_price)

        logger.info("Changing plan", company_id=str(company_id), service_level=level)

        with unit_of_work(self.session):
            if self.session.get(Company, company_id) is None:
                raise TenantNotFound(company_id)

            plan = self.session.exec(select(CustomPlan).where(CustomPlan.company_id == company_id)).first()
            if plan is None:
                raise PlanNotFound(company_id=company_id)
            if opts.expected_version is not None and opts.expected_version != plan.version:
                raise ConcurrencyConflict(CustomPlan.__tablename__, plan.id, expected_version=opts.expected_version)

            service = self.session.exec(
                select(Service).where(Service.name == level, Service.is_active == True)  # noqa: E712
            ).first()
            if service is None:
                raise PlanNotFound(service_level=level)

            owners = self.session.exec(
                select(func.count()).select_from(TaxUser).where(
                    TaxUser.company_id == company_id,
                    TaxUser.is_owner == True,  # noqa: E712
                    TaxUser.is_active == True,  # noqa: E712
                )
            ).one()
            if owners == 0:
                raise NoActiveOwner(company_id)

            active_seats = count_active_seats(self.session, company_id)
            new_limit = opts.custom_user_limit or service.user_limit
            previous_plan = infer_plan_label(self.session, plan.id)

            if active_seats > new_limit and not opts.force_deactivation:
                logger.warning(
                    "Plan change refused: seat limit",
                    company_id=str(company_id),
                    active_seats=active_seats,
                    user_limit=new_limit,
                )
                raise SeatLimitExceeded(active_seats, new_limit, company_id)

            deactivated_emails: List[str] = []
            seat_overage = 0
            if active_seats > new_limit:
                excess = active_seats - new_limit
                company_users, members = self._select_for_deactivation(company_id, excess)
                shortfall = excess - len(company_users) - len(members)
                if shortfall > 0:
                    if not self.settings.PLAN_DOWNGRADE_ALLOW_OVERAGE:
                        logger.warning(
                            "Plan change refused: only administrators left to deactivate",
                            company_id=str(company_id),
                            excess=excess,
                            shortfall=shortfall,
                        )
                        raise DeactivationShortfall(excess, len(company_users) + len(members), new_limit)
                    seat_overage = shortfall
                    logger.warning(
                        "Plan change leaves company over its seat limit",
                        company_id=str(company_id),
                        seat_overage=seat_overage,
                    )

                for account in [*company_users, *members]:
                    claim_version(self.session, account)
                    account.deactivate()
                    self.session.add(account)
                    deactivated_emails.append(account.email)

            added, removed = self._reconcile_modules(plan, service, opts.additional_module_ids)

            previous_price = plan.price
            previous_limit = plan.user_limit
            previous_assigned_tier = plan.last_assigned_tier

            now = datetime.utcnow()
            start_date = opts.start_date or now
            renew_date = add_one_year(opts.end_date or start_date)

            new_version = claim_version(self.session, plan)
            plan.price = opts.custom_price if opts.custom_price is not None else service.price
            plan.user_limit = new_limit
            plan.is_active = True
            plan.is_renewed = False
            plan.start_date = start_date
            plan.renew_date = renew_date
            plan.last_assigned_tier = service.name
            plan.updated_at = now
            self.session.add(plan)

            result = PlanChangeResult(
                company_id=company_id,
                previous_plan=previous_plan,
                new_plan=service.name,
                previous_assigned_tier=previous_assigned_tier,
                previous_price=Decimal(previous_price),
                new_price=Decimal(plan.price),
                previous_user_limit=previous_limit,
                new_user_limit=new_limit,
                active_users_count=active_seats - len(deactivated_emails),
                deactivated_users_count=len(deactivated_emails),
                deactivated_user_emails=deactivated_emails,
                added_modules=added,
                removed_modules=removed,
                effective_date=start_date,
                expiration_date=renew_date if renew_date > now else None,
                seat_overage=seat_overage,
                plan_version=new_version,
            )

        logger.info(
            "Plan changed",
            company_id=str(company_id),
            previous_plan=result.previous_plan,
            new_plan=result.new_plan,
            deactivated=result.deactivated_users_count,
            added_modules=len(result.added_modules),
            removed_modules=len(result.removed_modules),
        )
        await publish_after_commit([
            PlanChanged(
                company_id=company_id,
                previous_plan=result.previous_plan,
                new_plan=result.new_plan,
                user_limit=result.new_user_limit,
                deactivated_emails=result.deactivated_user_emails,
            )
        ], self.bus)
        return result
