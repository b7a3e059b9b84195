"""
Tests for the invitation engine: issue, validate, accept, cancel and expiry
"""

import pytest
from datetime import datetime, timedelta
import uuid

from sqlmodel import Session, select

from taxhub.core.auth import create_invitation_token, verify_password
from taxhub.core.errors import (
    ConcurrencyConflict, DuplicateEmail, InvalidInvitationToken, InvitationAlreadyConsumed,
    InvitationAlreadyPending, InvitationExpired, InvitationLimitReached, InvitationNotFound,
    InvitationNotPending, MemberNotFound, RestrictedRole, RoleAboveServiceLevel, RoleNotFound, SeatLimitExceeded,
)
from taxhub.core.events import InvitationAccepted, InvitationCancelled, InvitationIssued
from taxhub.core.events import InvitationExpired as InvitationExpiredEvent
from taxhub.models import (
    Company, CompanyUser, CompanyUserRole, CustomPlan, Invitation, InvitationStatus, Role, ServiceLevel,
)
from taxhub.schemas.invitation import InvitationRead
from taxhub.scripts.expire_invitations import expire_stale_invitations
from taxhub.services.invitations import InvitationEngine
from taxhub.services.seats import count_active_seats


PASSWORD = "s3cure-passw0rd"


@pytest.fixture
def company(factory) -> Company:
    """Standard tenant: 4 seats, owner holds one"""
    return factory.company(ServiceLevel.STANDARD)


@pytest.fixture
def owner(factory, company):
    return factory.owner(company)


@pytest.fixture
def engine(db, bus) -> InvitationEngine:
    return InvitationEngine(db, bus)


def _expire(db: Session, invitation: Invitation) -> None:
    invitation.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.add(invitation)
    db.commit()


class TestIssue:
    """Creating invitations"""

    @pytest.mark.asyncio
    async def test_issue_creates_pending_invitation(self, db, engine, bus, company, owner, catalog):
        user_role = catalog["roles"]["User"]

        invitation = await engine.issue(
            company.id,
            owner.id,
            "  New.Hire@Example.com ",
            role_ids=[user_role.id],
            personal_message="Welcome aboard",
            ip_address="10.0.0.1",
            user_agent="pytest",
        )

        assert invitation.status == InvitationStatus.PENDING
        assert invitation.email == "new.hire@example.com"
        assert invitation.role_ids == [str(user_role.id)]
        assert invitation.version == 1
        assert invitation.expires_at > datetime.utcnow() + timedelta(hours=71)
        assert invitation.invitation_link.startswith("http://localhost:4200/auth/invitation?token=")
        assert invitation.ip_address == "10.0.0.1"

        events = bus.of_type(InvitationIssued)
        assert len(events) == 1
        assert events[0].invitation_id == invitation.id
        assert events[0].invitation_link == invitation.invitation_link
        assert events[0].company_name == company.display_name
        assert events[0].personal_message == "Welcome aboard"

    @pytest.mark.asyncio
    async def test_tokens_are_unique_per_invitation(self, db, engine, company, owner):
        first = await engine.issue(company.id, owner.id, "a@example.com")
        await engine.cancel(first.id, owner.id)
        second = await engine.issue(company.id, owner.id, "a@example.com")

        assert first.token != second.token

    @pytest.mark.asyncio
    async def test_origin_is_used_for_the_link(self, engine, company, owner):
        invitation = await engine.issue(company.id, owner.id, "b@example.com", origin="https://app.example.com/")

        assert invitation.invitation_link.startswith("https://app.example.com/auth/invitation?token=")

    @pytest.mark.asyncio
    async def test_registered_email_is_rejected(self, db, engine, factory, company, owner):
        factory.company_user(company, email="taken@example.com")

        with pytest.raises(DuplicateEmail):
            await engine.issue(company.id, owner.id, "TAKEN@example.com")
        with pytest.raises(DuplicateEmail):
            await engine.issue(company.id, owner.id, owner.email)

    @pytest.mark.asyncio
    async def test_second_pending_invitation_for_same_email(self, db, engine, company, owner):
        first = await engine.issue(company.id, owner.id, "dup@example.com")

        with pytest.raises(InvitationAlreadyPending) as exc_info:
            await engine.issue(company.id, owner.id, "dup@example.com")

        assert exc_info.value.details["invitation_id"] == first.id

    @pytest.mark.asyncio
    async def test_expired_invitation_does_not_block_reissue(self, db, engine, company, owner):
        first = await engine.issue(company.id, owner.id, "again@example.com")
        _expire(db, first)

        second = await engine.issue(company.id, owner.id, "again@example.com")

        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_pending_limit(self, db, engine, company, owner):
        engine.settings = engine.settings.model_copy(update={"MAX_PENDING_INVITATIONS": 1})
        await engine.issue(company.id, owner.id, "one@example.com")

        with pytest.raises(InvitationLimitReached):
            await engine.issue(company.id, owner.id, "two@example.com")

    @pytest.mark.asyncio
    async def test_administrator_roles_are_restricted(self, engine, company, owner, catalog):
        for name in ("Administrator Basic", "Developer"):
            with pytest.raises(RestrictedRole):
                await engine.issue(company.id, owner.id, "admin@example.com", role_ids=[catalog["roles"][name].id])

    @pytest.mark.asyncio
    async def test_role_above_company_tier(self, db, factory, engine):
        basic = factory.company(ServiceLevel.BASIC)
        reviewer = Role(name="Senior Reviewer", portal_access=1, service_level=ServiceLevel.PRO.rank)
        db.add(reviewer)
        db.commit()

        with pytest.raises(RoleAboveServiceLevel) as exc_info:
            await engine.issue(basic.id, factory.owner(basic).id, "r@example.com", role_ids=[reviewer.id])

        assert exc_info.value.details["role_names"] == ["Senior Reviewer"]
        assert exc_info.value.details["service_level"] == "Basic"

    @pytest.mark.asyncio
    async def test_unknown_role(self, engine, company, owner):
        with pytest.raises(RoleNotFound):
            await engine.issue(company.id, owner.id, "x@example.com", role_ids=[uuid.uuid4()])

    @pytest.mark.asyncio
    async def test_inviter_from_another_company(self, db, factory, engine, company):
        other = factory.company()

        with pytest.raises(MemberNotFound):
            await engine.issue(company.id, factory.owner(other).id, "x@example.com")

        assert db.exec(select(Invitation)).all() == []


class TestValidate:
    """Read-only token checks"""

    @pytest.mark.asyncio
    async def test_valid_token(self, engine, company, owner, catalog):
        invitation = await engine.issue(company.id, owner.id, "v@example.com", role_ids=[catalog["roles"]["User"].id])

        validation = engine.validate(invitation.token)

        assert validation.is_valid is True
        assert validation.email == "v@example.com"
        assert validation.company_id == company.id
        assert validation.role_names == ["User"]
        assert validation.status == InvitationStatus.PENDING

    def test_garbage_token(self, engine, catalog):
        validation = engine.validate("not-a-token")

        assert validation.is_valid is False
        assert validation.invitation_id is None

    def test_signed_token_without_invitation(self, engine, company):
        token, _ = create_invitation_token(company.id, "ghost@example.com")

        validation = engine.validate(token)

        assert validation.is_valid is False
        assert validation.reason == "Invitation not found"

    @pytest.mark.asyncio
    async def test_expiry_is_applied_lazily(self, db, engine, company, owner):
        invitation = await engine.issue(company.id, owner.id, "late@example.com")
        _expire(db, invitation)

        validation = engine.validate(invitation.token)

        assert validation.is_valid is False
        assert validation.status == InvitationStatus.EXPIRED
        db.refresh(invitation)
        assert invitation.status == InvitationStatus.PENDING


class TestAccept:
    """Consuming invitations"""

    @pytest.mark.asyncio
    async def test_accept_registers_company_user(self, db, engine, bus, company, owner, catalog):
        invitation = await engine.issue(company.id, owner.id, "joiner@example.com")

        accepted = await engine.accept(invitation.token, PASSWORD, name="Jo", last_name="Iner")

        assert accepted.email == "joiner@example.com"
        assert accepted.role_names == ["User"]
        account = db.get(CompanyUser, accepted.company_user_id)
        assert account.company_id == company.id
        assert account.confirmed is True
        assert verify_password(PASSWORD, account.password_hash)
        roles = db.exec(select(CompanyUserRole).where(CompanyUserRole.company_user_id == account.id)).all()
        assert [r.role_id for r in roles] == [catalog["roles"]["User"].id]

        db.refresh(invitation)
        assert invitation.status == InvitationStatus.ACCEPTED
        assert invitation.registered_user_id == account.id
        assert invitation.accepted_at is not None
        assert invitation.version == 2

        events = bus.of_type(InvitationAccepted)
        assert len(events) == 1
        assert events[0].company_user_id == account.id

    @pytest.mark.asyncio
    async def test_invited_roles_are_assigned(self, db, engine, company, owner, catalog):
        role = catalog["roles"]["Customer"]
        invitation = await engine.issue(company.id, owner.id, "c@example.com", role_ids=[role.id])

        accepted = await engine.accept(invitation.token, PASSWORD)

        assert accepted.role_names == ["Customer"]

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, engine, company, owner):
        invitation = await engine.issue(company.id, owner.id, "once@example.com")
        await engine.accept(invitation.token, PASSWORD)

        with pytest.raises(InvitationAlreadyConsumed):
            await engine.accept(invitation.token, PASSWORD)

    @pytest.mark.asyncio
    async def test_expired_invitation(self, db, engine, company, owner):
        invitation = await engine.issue(company.id, owner.id, "exp@example.com")
        _expire(db, invitation)

        with pytest.raises(InvitationExpired):
            await engine.accept(invitation.token, PASSWORD)

        assert db.exec(select(CompanyUser)).all() == []

    @pytest.mark.asyncio
    async def test_cancelled_invitation(self, engine, company, owner):
        invitation = await engine.issue(company.id, owner.id, "gone@example.com")
        await engine.cancel(invitation.id, owner.id)

        with pytest.raises(InvitationNotPending) as exc_info:
            await engine.accept(invitation.token, PASSWORD)

        assert exc_info.value.details["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_malformed_token(self, engine, catalog):
        with pytest.raises(InvalidInvitationToken):
            await engine.accept("definitely-not-a-jwt", PASSWORD)

    @pytest.mark.asyncio
    async def test_seat_pool_full(self, db, factory, engine):
        """The failed accept rolls back and leaves the invitation pending"""
        basic = factory.company(ServiceLevel.BASIC, user_limit=2)
        basic_owner = factory.owner(basic)
        invitation = await engine.issue(basic.id, basic_owner.id, "late-joiner@example.com")
        factory.company_user(basic)

        with pytest.raises(SeatLimitExceeded):
            await engine.accept(invitation.token, PASSWORD)

        db.expire_all()
        stored = db.get(Invitation, invitation.id)
        assert stored.status == InvitationStatus.PENDING
        assert stored.version == 1
        assert db.exec(select(CompanyUser).where(CompanyUser.email == "late-joiner@example.com")).first() is None

    @pytest.mark.asyncio
    async def test_concurrent_accept_has_one_winner(self, file_engine, file_factory):
        """Two sessions race for the same token; the loser sees it consumed"""
        tenant = file_factory.company(ServiceLevel.STANDARD)
        inviter = file_factory.owner(tenant)
        invitation = await InvitationEngine(file_factory.session).issue(tenant.id, inviter.id, "race@example.com")
        token = invitation.token

        with Session(file_engine) as first, Session(file_engine) as second:
            # the second session reads the invitation before the first commits
            second.exec(select(Invitation).where(Invitation.token == token)).one()

            winner = await InvitationEngine(first).accept(token, PASSWORD)

            with pytest.raises(InvitationAlreadyConsumed):
                await InvitationEngine(second).accept(token, PASSWORD)

        with Session(file_engine) as check:
            accounts = check.exec(select(CompanyUser).where(CompanyUser.email == "race@example.com")).all()
            assert [a.id for a in accounts] == [winner.company_user_id]
            stored = check.exec(select(Invitation).where(Invitation.token == token)).one()
            assert stored.status == InvitationStatus.ACCEPTED
            assert stored.version == 2

    @pytest.mark.asyncio
    async def test_accept_claims_the_plan(self, db, factory, engine, company, owner):
        plan_version = factory.plan(company).version
        invitation = await engine.issue(company.id, owner.id, "seat@example.com")

        await engine.accept(invitation.token, PASSWORD)

        db.expire_all()
        assert factory.plan(company).version == plan_version + 1

    @pytest.mark.asyncio
    async def test_concurrent_accepts_cannot_share_the_last_seat(self, file_engine, file_factory):
        """Two invitations, one free seat: the slower accept conflicts instead of overfilling"""
        tenant = file_factory.company(ServiceLevel.STANDARD)
        inviter = file_factory.owner(tenant)
        file_factory.company_user(tenant)
        file_factory.company_user(tenant)
        issuer = InvitationEngine(file_factory.session)
        first_invite = await issuer.issue(tenant.id, inviter.id, "first@example.com")
        second_invite = await issuer.issue(tenant.id, inviter.id, "second@example.com")
        first_token, second_token = first_invite.token, second_invite.token

        with Session(file_engine) as first, Session(file_engine) as second:
            # the second session sees the seat pool before the first accept commits
            second.exec(select(CustomPlan).where(CustomPlan.company_id == tenant.id)).one()

            await InvitationEngine(first).accept(first_token, PASSWORD)

            with pytest.raises(ConcurrencyConflict):
                await InvitationEngine(second).accept(second_token, PASSWORD)

        with Session(file_engine) as check:
            assert count_active_seats(check, tenant.id) == 4
            stored = check.exec(select(Invitation).where(Invitation.token == second_token)).one()
            assert stored.status == InvitationStatus.PENDING
            assert stored.version == 1


class TestCancel:
    """Withdrawing invitations"""

    @pytest.mark.asyncio
    async def test_cancel_pending(self, db, engine, bus, company, owner):
        invitation = await engine.issue(company.id, owner.id, "cancel@example.com")

        cancelled = await engine.cancel(invitation.id, owner.id, reason="Position filled")

        assert cancelled.status == InvitationStatus.CANCELLED
        assert cancelled.cancelled_by_user_id == owner.id
        assert cancelled.cancellation_reason == "Position filled"
        assert cancelled.version == 2
        events = bus.of_type(InvitationCancelled)
        assert len(events) == 1
        assert events[0].reason == "Position filled"

    @pytest.mark.asyncio
    async def test_canceller_from_another_company(self, db, factory, engine, company, owner):
        invitation = await engine.issue(company.id, owner.id, "mine@example.com")
        other = factory.company()

        with pytest.raises(InvitationNotFound):
            await engine.cancel(invitation.id, factory.owner(other).id)

        db.refresh(invitation)
        assert invitation.status == InvitationStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_invitation(self, engine, owner):
        with pytest.raises(InvitationNotFound):
            await engine.cancel(uuid.uuid4(), owner.id)

    @pytest.mark.asyncio
    async def test_accepted_invitation_cannot_be_cancelled(self, engine, company, owner):
        invitation = await engine.issue(company.id, owner.id, "done@example.com")
        await engine.accept(invitation.token, PASSWORD)

        with pytest.raises(InvitationNotPending):
            await engine.cancel(invitation.id, owner.id)

    @pytest.mark.asyncio
    async def test_expired_invitation_cannot_be_cancelled(self, db, engine, company, owner):
        invitation = await engine.issue(company.id, owner.id, "old@example.com")
        _expire(db, invitation)

        with pytest.raises(InvitationExpired):
            await engine.cancel(invitation.id, owner.id)


class TestExpirySweep:
    @pytest.mark.asyncio
    async def test_sweep_expires_only_stale_invitations(self, db, engine, bus, company, owner):
        stale = await engine.issue(company.id, owner.id, "stale@example.com")
        fresh = await engine.issue(company.id, owner.id, "fresh@example.com")
        _expire(db, stale)

        result = await engine.expire_stale()

        assert result.expired == 1
        assert result.invitation_ids == [stale.id]
        db.refresh(stale)
        db.refresh(fresh)
        assert stale.status == InvitationStatus.EXPIRED
        assert stale.version == 2
        assert fresh.status == InvitationStatus.PENDING
        assert [e.invitation_id for e in bus.of_type(InvitationExpiredEvent)] == [stale.id]

        again = await engine.expire_stale()
        assert again.expired == 0

    @pytest.mark.asyncio
    async def test_sweep_with_explicit_clock(self, engine, company, owner):
        invitation = await engine.issue(company.id, owner.id, "future@example.com")

        result = await engine.expire_stale(now=invitation.expires_at + timedelta(seconds=1))

        assert result.invitation_ids == [invitation.id]

    @pytest.mark.asyncio
    async def test_sweep_scoped_to_one_company(self, db, factory, engine, company, owner):
        other = factory.company(ServiceLevel.STANDARD)
        mine = await engine.issue(company.id, owner.id, "mine@example.com")
        theirs = await engine.issue(other.id, factory.owner(other).id, "theirs@example.com")
        _expire(db, mine)
        _expire(db, theirs)

        result = await engine.expire_stale(company_id=company.id)

        assert result.invitation_ids == [mine.id]
        db.refresh(theirs)
        assert theirs.status == InvitationStatus.PENDING


class TestCapacityAndListing:
    @pytest.mark.asyncio
    async def test_capacity_counts_pending_invitations(self, factory, engine, company, owner):
        factory.company_user(company)
        await engine.issue(company.id, owner.id, "p1@example.com")

        capacity = engine.capacity(company.id)

        assert capacity.user_limit == 4
        assert capacity.active_seats == 2
        assert capacity.pending_invitations == 1
        assert capacity.available_seats == 2
        assert capacity.remaining == 1
        assert capacity.can_send_more is True

    def test_capacity_when_full(self, factory, engine):
        basic = factory.company(ServiceLevel.BASIC)

        capacity = engine.capacity(basic.id)

        assert capacity.available_seats == 0
        assert capacity.remaining == 0
        assert capacity.can_send_more is False
        assert capacity.message.startswith("User limit reached (1/1)")

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, engine, company, owner):
        kept = await engine.issue(company.id, owner.id, "keep@example.com")
        dropped = await engine.issue(company.id, owner.id, "drop@example.com")
        await engine.cancel(dropped.id, owner.id)

        assert {i.id for i in engine.list_invitations(company.id)} == {kept.id, dropped.id}
        assert [i.id for i in engine.list_invitations(company.id, InvitationStatus.PENDING)] == [kept.id]
        assert [i.id for i in engine.list_invitations(company.id, InvitationStatus.CANCELLED)] == [dropped.id]

    @pytest.mark.asyncio
    async def test_overdue_pending_is_listed_as_expired(self, db, engine, company, owner):
        overdue = await engine.issue(company.id, owner.id, "overdue@example.com")
        current = await engine.issue(company.id, owner.id, "current@example.com")
        _expire(db, overdue)

        pending = engine.list_invitations(company.id, InvitationStatus.PENDING)
        expired = engine.list_invitations(company.id, InvitationStatus.EXPIRED)

        assert [i.id for i in pending] == [current.id]
        assert [i.id for i in expired] == [overdue.id]

    @pytest.mark.asyncio
    async def test_read_model_applies_lazy_expiry(self, db, engine, company, owner):
        overdue = await engine.issue(company.id, owner.id, "late@example.com")
        current = await engine.issue(company.id, owner.id, "ontime@example.com")
        _expire(db, overdue)

        assert InvitationRead.model_validate(overdue).status == InvitationStatus.EXPIRED
        assert InvitationRead.model_validate(current).status == InvitationStatus.PENDING
        db.refresh(overdue)
        assert overdue.status == InvitationStatus.PENDING


@pytest.mark.asyncio
async def test_expiry_job_sweeps_with_given_session(db, engine, company, owner):
    invitation = await engine.issue(company.id, owner.id, "job@example.com")
    _expire(db, invitation)

    result = await expire_stale_invitations(db)

    assert result.invitation_ids == [invitation.id]
