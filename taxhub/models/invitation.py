"""
Invitation model with state machine for joining a tenant
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime
from typing import List, Optional
from enum import Enum
import uuid


class InvitationStatus(str, Enum):
    """Status of an invitation. Only PENDING is non-terminal."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Invitation(SQLModel, table=True):
    """Time-boxed offer for a person to join a company with given roles"""

    __tablename__ = "invitations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    company_id: uuid.UUID = Field(
        foreign_key="companies.id",
        index=True,
        description="Company ID for multi-tenant isolation"
    )
    invited_by_user_id: uuid.UUID = Field(foreign_key="tax_users.id", index=True)

    email: str = Field(index=True, max_length=255)
    token: str = Field(unique=True, index=True, max_length=1024, description="Sole credential for acceptance")
    expires_at: datetime = Field(index=True)

    status: InvitationStatus = Field(default=InvitationStatus.PENDING, index=True)
    personal_message: Optional[str] = Field(default=None, max_length=1000)
    role_ids: List[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
        description="Role IDs granted on acceptance"
    )
    invitation_link: Optional[str] = Field(default=None, max_length=2048)

    # Acceptance details
    accepted_at: Optional[datetime] = Field(default=None, nullable=True)
    registered_user_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="company_users.id",
        nullable=True
    )

    # Cancellation details
    cancelled_at: Optional[datetime] = Field(default=None, nullable=True)
    cancelled_by_user_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="tax_users.id",
        nullable=True
    )
    cancellation_reason: Optional[str] = Field(default=None, max_length=500)

    # Request metadata
    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = Field(default=None, max_length=500)

    # Advanced by claim_version on every state change
    version: int = Field(default=1, description="Version number for optimistic concurrency control")

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    # State machine methods
    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def effective_status(self, now: Optional[datetime] = None) -> InvitationStatus:
        """Stored status with lazy expiry applied"""
        if self.status == InvitationStatus.PENDING and self.is_expired(now):
            return InvitationStatus.EXPIRED
        return self.status

    def can_accept(self, now: Optional[datetime] = None) -> tuple[bool, str]:
        status = self.effective_status(now)
        if status == InvitationStatus.PENDING:
            return True, "Can accept invitation"
        if status == InvitationStatus.EXPIRED:
            return False, "Invitation has expired"
        if status == InvitationStatus.ACCEPTED:
            return False, "Invitation has already been accepted"
        return False, "Invitation has been cancelled"

    def can_cancel(self, now: Optional[datetime] = None) -> tuple[bool, str]:
        status = self.effective_status(now)
        if status != InvitationStatus.PENDING:
            return False, f"Invitation is {status.value}"
        return True, "Can cancel invitation"

    def can_expire(self, now: Optional[datetime] = None) -> bool:
        return self.status == InvitationStatus.PENDING and self.is_expired(now)

    def transition_to_accepted(self, registered_user_id: uuid.UUID, now: Optional[datetime] = None) -> None:
        """Transition to ACCEPTED, recording who registered"""
        can_accept, reason = self.can_accept(now)
        if not can_accept:
            raise ValueError(f"Cannot accept invitation: {reason}")

        self.status = InvitationStatus.ACCEPTED
        self.accepted_at = now or datetime.utcnow()
        self.registered_user_id = registered_user_id
        self.updated_at = self.accepted_at

    def transition_to_cancelled(self, cancelled_by_user_id: uuid.UUID, reason: Optional[str] = None) -> None:
        """Transition to CANCELLED"""
        can_cancel, error = self.can_cancel()
        if not can_cancel:
            raise ValueError(f"Cannot cancel invitation: {error}")

        self.status = InvitationStatus.CANCELLED
        self.cancelled_at = datetime.utcnow()
        self.cancelled_by_user_id = cancelled_by_user_id
        self.cancellation_reason = reason
        self.updated_at = self.cancelled_at

    def transition_to_expired(self, now: Optional[datetime] = None) -> None:
        if not self.can_expire(now):
            raise ValueError("Cannot expire invitation: not in PENDING status or not expired")

        self.status = InvitationStatus.EXPIRED
        self.updated_at = now or datetime.utcnow()
