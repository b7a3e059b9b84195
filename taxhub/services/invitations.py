"""
Invitation Engine
Issues, validates, consumes, cancels and expires tenant-join invitations
"""

from datetime import datetime
from typing import List, Optional, Sequence
import uuid

from sqlmodel import Session, select
from sqlalchemy import and_, func, or_
import structlog

from taxhub.core.auth import build_invitation_link, create_invitation_token, decode_invitation_token, hash_password
from taxhub.core.config import get_settings
from taxhub.core.database import claim_version, unit_of_work
from taxhub.core.errors import (
    ConcurrencyConflict, DuplicateEmail, InvalidInvitationToken, InvitationAlreadyConsumed,
    InvitationAlreadyPending, InvitationExpired, InvitationLimitReached, InvitationNotFound,
    InvitationNotPending, MemberNotFound, NoActiveOwner, PlanNotFound, RestrictedRole,
    RoleAboveServiceLevel, RoleNotFound, SeatLimitExceeded, TenantNotFound,
)
from taxhub.core.events import (
    EventBus, InvitationAccepted, InvitationCancelled, InvitationExpired as InvitationExpiredEvent,
    InvitationIssued, publish_after_commit,
)
from taxhub.models import (
    DEFAULT_MEMBER_ROLE, Company, CompanyUser, CompanyUserRole, CustomPlan,
    Invitation, InvitationStatus, Role, ServiceLevel, TaxUser,
)
from taxhub.schemas.invitation import AcceptedInvitation, ExpirySweepResult, InvitationCapacity, InvitationValidation
from taxhub.services.plan_transition import infer_plan_label
from taxhub.services.seats import count_active_seats

logger = structlog.get_logger(__name__)


class InvitationEngine:
    """State machine driver for invitations: Pending -> Accepted | Cancelled | Expired"""

    def __init__(self, session: Session, bus: Optional[EventBus] = None):
        self.session = session
        self.bus = bus
        self.settings = get_settings()

    def _email_registered(self, email: str) -> bool:
        member = self.session.exec(select(TaxUser.id).where(func.lower(TaxUser.email) == email)).first()
        if member is not None:
            return True
        account = self.session.exec(select(CompanyUser.id).where(func.lower(CompanyUser.email) == email)).first()
        return account is not None

    def _pending_filter(self, company_id: uuid.UUID, now: datetime):
        return (
            Invitation.company_id == company_id,
            Invitation.status == InvitationStatus.PENDING,
            Invitation.expires_at > now,
        )

    def _count_pending(self, company_id: uuid.UUID, now: datetime) -> int:
        return self.session.exec(
            select(func.count()).select_from(Invitation).where(*self._pending_filter(company_id, now))
        ).one()

    def _company_tier_rank(self, company_id: uuid.UUID) -> tuple[Optional[str], Optional[int]]:
        plan = self.session.exec(select(CustomPlan).where(CustomPlan.company_id == company_id)).first()
        if plan is None:
            return None, None
        tier = plan.last_assigned_tier or infer_plan_label(self.session, plan.id)
        try:
            return tier, ServiceLevel(tier).rank
        except ValueError:
            return tier, None

    def _require_active_owner(self, company_id: uuid.UUID) -> None:
        owner = self.session.exec(
            select(TaxUser.id).where(
                TaxUser.company_id == company_id,
                TaxUser.is_owner == True,  # noqa: E712
                TaxUser.is_active == True,  # noqa: E712
            )
        ).first()
        if owner is None:
            raise NoActiveOwner(company_id)

    def _load_roles(self, role_ids: Sequence[uuid.UUID]) -> List[Role]:
        if not role_ids:
            return []
        wanted = {uuid.UUID(str(r)) for r in role_ids}
        roles = list(self.session.exec(select(Role).where(Role.id.in_(wanted))).all())
        missing = wanted - {r.id for r in roles}
        if missing:
            raise RoleNotFound(sorted(str(m) for m in missing))
        return roles

    def _get_by_token(self, token: str) -> Optional[Invitation]:
        return self.session.exec(select(Invitation).where(Invitation.token == token)).first()

    async def issue(
        self,
        company_id: uuid.UUID,
        invited_by_user_id: uuid.UUID,
        email: str,
        role_ids: Sequence[uuid.UUID] = (),
        personal_message: Optional[str] = None,
        origin: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Invitation:
        """
        Create a Pending invitation and publish InvitationIssued.

        Raises:
            MemberNotFound, TenantNotFound, NoActiveOwner, DuplicateEmail,
            InvitationAlreadyPending, InvitationLimitReached, RoleNotFound,
            RestrictedRole, RoleAboveServiceLevel
        """
        email = email.strip().lower()
        now = datetime.utcnow()

        with unit_of_work(self.session):
            inviter = self.session.get(TaxUser, invited_by_user_id)
            if inviter is None or inviter.company_id != company_id or not inviter.is_active:
                raise MemberNotFound(invited_by_user_id, company_id)

            company = self.session.get(Company, company_id)
            if company is None:
                raise TenantNotFound(company_id)
            self._require_active_owner(company_id)

            if self._email_registered(email):
                raise DuplicateEmail(email)

            existing = self.session.exec(
                select(Invitation).where(*self._pending_filter(company_id, now), Invitation.email == email)
            ).first()
            if existing is not None:
                raise InvitationAlreadyPending(email, existing.id)

            pending = self._count_pending(company_id, now)
            if pending >= self.settings.MAX_PENDING_INVITATIONS:
                raise InvitationLimitReached(pending, self.settings.MAX_PENDING_INVITATIONS)

            roles = self._load_roles(role_ids)
            restricted = sorted(r.name for r in roles if r.is_admin_class)
            if restricted:
                raise RestrictedRole(restricted)
            tier, rank = self._company_tier_rank(company_id)
            above = sorted(
                r.name for r in roles
                if r.service_level is not None and (rank is None or r.service_level > rank)
            )
            if above:
                raise RoleAboveServiceLevel(above, tier)

            token, expires_at = create_invitation_token(company_id, email)
            invitation = Invitation(
                company_id=company_id,
                invited_by_user_id=invited_by_user_id,
                email=email,
                token=token,
                expires_at=expires_at,
                status=InvitationStatus.PENDING,
                personal_message=personal_message,
                role_ids=[str(r.id) for r in roles],
                invitation_link=build_invitation_link(origin, token),
                ip_address=ip_address,
                user_agent=user_agent,
            )
            self.session.add(invitation)

            event = InvitationIssued(
                invitation_id=invitation.id,
                company_id=company_id,
                invited_by_user_id=invited_by_user_id,
                email=email,
                invitation_link=invitation.invitation_link,
                expires_at=expires_at,
                company_name=company.display_name,
                personal_message=personal_message,
            )

        logger.info("Invitation issued", invitation_id=str(event.invitation_id), company_id=str(company_id))
        await publish_after_commit([event], self.bus)
        return invitation

    def validate(self, token: str) -> InvitationValidation:
        """Check a token without consuming it. Applies lazy expiry."""
        if decode_invitation_token(token) is None:
            return InvitationValidation(is_valid=False, reason="Invalid invitation token")

        invitation = self._get_by_token(token)
        if invitation is None:
            return InvitationValidation(is_valid=False, reason="Invitation not found")

        company = self.session.get(Company, invitation.company_id)
        role_names: List[str] = []
        if invitation.role_ids:
            role_names = sorted(self.session.exec(
                select(Role.name).where(Role.id.in_([uuid.UUID(r) for r in invitation.role_ids]))
            ).all())

        is_valid, reason = invitation.can_accept()
        return InvitationValidation(
            is_valid=is_valid,
            reason="Invitation is valid" if is_valid else reason,
            invitation_id=invitation.id,
            company_id=invitation.company_id,
            company_name=company.display_name if company else None,
            email=invitation.email,
            role_names=role_names,
            status=invitation.effective_status(),
            expires_at=invitation.expires_at,
        )

    async def accept(
        self,
        token: str,
        password: str,
        name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> AcceptedInvitation:
        """
        Consume an invitation and register the secondary account.

        Status and expiry are re-checked inside the transaction and the row
        is claimed by version, so of two concurrent consumers only the first
        commits; the other gets InvitationAlreadyConsumed. The tenant's plan
        row is claimed too, so a concurrent accept of another invitation for
        the last seat fails with ConcurrencyConflict.

        Raises:
            InvalidInvitationToken, InvitationNotFound, InvitationExpired,
            InvitationNotPending, InvitationAlreadyConsumed, DuplicateEmail,
            SeatLimitExceeded, ConcurrencyConflict
        """
        if decode_invitation_token(token) is None:
            raise InvalidInvitationToken()

        now = datetime.utcnow()
        with unit_of_work(self.session):
            invitation = self._get_by_token(token)
            if invitation is None:
                raise InvitationNotFound()

            can_accept, reason = invitation.can_accept(now)
            if not can_accept:
                status = invitation.effective_status(now)
                logger.warning("Invitation acceptance refused", invitation_id=str(invitation.id), reason=reason)
                if status == InvitationStatus.EXPIRED:
                    raise InvitationExpired(invitation.id, invitation.expires_at)
                if status == InvitationStatus.ACCEPTED:
                    raise InvitationAlreadyConsumed(invitation.id)
                raise InvitationNotPending(invitation.id, status.value)

            try:
                claim_version(self.session, invitation)
            except ConcurrencyConflict:
                raise InvitationAlreadyConsumed(invitation.id) from None

            if self._email_registered(invitation.email):
                raise DuplicateEmail(invitation.email)

            plan = self.session.exec(
                select(CustomPlan).where(CustomPlan.company_id == invitation.company_id)
            ).first()
            if plan is None:
                raise PlanNotFound(company_id=invitation.company_id)
            # the plan row versions the seat pool: concurrent accepts, plan changes
            # and deletions of this tenant conflict here
            claim_version(self.session, plan)
            active_seats = count_active_seats(self.session, invitation.company_id)
            if active_seats >= plan.user_limit:
                raise SeatLimitExceeded(active_seats + 1, plan.user_limit, invitation.company_id)

            roles = self._load_roles([uuid.UUID(r) for r in invitation.role_ids])
            if not roles:
                default_role = self.session.exec(select(Role).where(Role.name == DEFAULT_MEMBER_ROLE)).first()
                roles = [default_role] if default_role else []

            account = CompanyUser(
                company_id=invitation.company_id,
                email=invitation.email,
                password_hash=hash_password(password),
                name=name,
                last_name=last_name,
                phone=phone,
                is_active=True,
                confirmed=True,
            )
            self.session.add(account)
            self.session.flush()
            for role in roles:
                self.session.add(CompanyUserRole(company_user_id=account.id, role_id=role.id))

            invitation.transition_to_accepted(account.id, now)
            self.session.add(invitation)

            result = AcceptedInvitation(
                invitation_id=invitation.id,
                company_id=invitation.company_id,
                company_user_id=account.id,
                email=account.email,
                role_names=sorted(r.name for r in roles),
            )

        logger.info(
            "Invitation accepted",
            invitation_id=str(result.invitation_id),
            company_user_id=str(result.company_user_id),
        )
        await publish_after_commit([
            InvitationAccepted(
                invitation_id=result.invitation_id,
                company_id=result.company_id,
                company_user_id=result.company_user_id,
                email=result.email,
            )
        ], self.bus)
        return result

    async def cancel(
        self,
        invitation_id: uuid.UUID,
        cancelled_by_user_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Invitation:
        """
        Withdraw a Pending invitation.

        A canceller from another company, or an inactive one, sees
        InvitationNotFound.
        """
        with unit_of_work(self.session):
            invitation = self.session.get(Invitation, invitation_id)
            canceller = self.session.get(TaxUser, cancelled_by_user_id)
            if (
                invitation is None
                or canceller is None
                or not canceller.is_active
                or canceller.company_id != invitation.company_id
            ):
                raise InvitationNotFound(invitation_id)

            can_cancel, error = invitation.can_cancel()
            if not can_cancel:
                status = invitation.effective_status()
                if status == InvitationStatus.EXPIRED:
                    raise InvitationExpired(invitation.id, invitation.expires_at)
                raise InvitationNotPending(invitation.id, status.value)

            claim_version(self.session, invitation)
            invitation.transition_to_cancelled(cancelled_by_user_id, reason)
            self.session.add(invitation)

            event = InvitationCancelled(
                invitation_id=invitation.id,
                company_id=invitation.company_id,
                email=invitation.email,
                cancelled_by_user_id=cancelled_by_user_id,
                reason=reason,
            )

        logger.info("Invitation cancelled", invitation_id=str(invitation_id))
        await publish_after_commit([event], self.bus)
        return invitation

    async def expire_stale(
        self,
        now: Optional[datetime] = None,
        company_id: Optional[uuid.UUID] = None,
    ) -> ExpirySweepResult:
        """Flip Pending invitations past their expiry to Expired, for one company or all"""
        now = now or datetime.utcnow()
        events = []

        query = select(Invitation).where(
            Invitation.status == InvitationStatus.PENDING,
            Invitation.expires_at <= now,
        )
        if company_id is not None:
            query = query.where(Invitation.company_id == company_id)

        with unit_of_work(self.session):
            stale = self.session.exec(query).all()

            for invitation in stale:
                try:
                    claim_version(self.session, invitation)
                except ConcurrencyConflict:
                    logger.warning("Invitation changed during expiry sweep, skipped", invitation_id=str(invitation.id))
                    continue
                invitation.transition_to_expired(now)
                self.session.add(invitation)
                events.append(InvitationExpiredEvent(
                    invitation_id=invitation.id,
                    company_id=invitation.company_id,
                    email=invitation.email,
                    expired_at=now,
                ))

        if events:
            logger.info("Expired stale invitations", count=len(events))
        else:
            logger.info("No stale invitations found")
        await publish_after_commit(events, self.bus)
        return ExpirySweepResult(expired=len(events), invitation_ids=[e.invitation_id for e in events])

    def capacity(self, company_id: uuid.UUID) -> InvitationCapacity:
        """Seats left for new invitations once pending ones are counted"""
        plan = self.session.exec(select(CustomPlan).where(CustomPlan.company_id == company_id)).first()
        if plan is None:
            if self.session.get(Company, company_id) is None:
                raise TenantNotFound(company_id)
            raise PlanNotFound(company_id=company_id)

        active_seats = count_active_seats(self.session, company_id)
        pending = self._count_pending(company_id, datetime.utcnow())
        available = plan.user_limit - active_seats
        remaining = max(0, available - pending)

        if available <= 0:
            message = f"User limit reached ({active_seats}/{plan.user_limit}). Upgrade your plan to invite more users."
        elif remaining == 0:
            message = f"All {available} available seats are covered by pending invitations."
        else:
            message = f"You can send {remaining} more invitation(s)."

        return InvitationCapacity(
            company_id=company_id,
            user_limit=plan.user_limit,
            active_seats=active_seats,
            pending_invitations=pending,
            available_seats=available,
            remaining=remaining,
            can_send_more=remaining > 0,
            message=message,
        )

    def list_invitations(
        self,
        company_id: uuid.UUID,
        status: Optional[InvitationStatus] = None,
        now: Optional[datetime] = None,
    ) -> List[Invitation]:
        """Company invitations, newest first, filtered by effective status"""
        now = now or datetime.utcnow()
        query = select(Invitation).where(Invitation.company_id == company_id)
        if status == InvitationStatus.PENDING:
            query = query.where(Invitation.status == InvitationStatus.PENDING, Invitation.expires_at > now)
        elif status == InvitationStatus.EXPIRED:
            query = query.where(or_(
                Invitation.status == InvitationStatus.EXPIRED,
                and_(Invitation.status == InvitationStatus.PENDING, Invitation.expires_at <= now),
            ))
        elif status is not None:
            query = query.where(Invitation.status == status)
        return list(self.session.exec(query.order_by(Invitation.created_at.desc())).all())
