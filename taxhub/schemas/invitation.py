"""
Pydantic schemas for invitations
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from datetime import datetime, timezone
from typing import List, Optional
import uuid

from taxhub.models.invitation import InvitationStatus


class IssueInvitationRequest(BaseModel):
    email: EmailStr
    role_ids: List[uuid.UUID] = Field(default_factory=list)
    personal_message: Optional[str] = Field(default=None, max_length=1000)
    origin: Optional[str] = Field(default=None, max_length=255, description="Frontend origin used in the link")


class InvitationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    invited_by_user_id: uuid.UUID
    email: str
    status: InvitationStatus
    role_ids: List[str]
    expires_at: datetime
    invitation_link: Optional[str] = None
    personal_message: Optional[str] = None
    accepted_at: Optional[datetime] = None
    registered_user_id: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime

    @model_validator(mode="after")
    def apply_lazy_expiry(self) -> "InvitationRead":
        """Report an overdue Pending invitation as Expired"""
        now = datetime.now(timezone.utc) if self.expires_at.tzinfo else datetime.utcnow()
        if self.status == InvitationStatus.PENDING and now >= self.expires_at:
            self.status = InvitationStatus.EXPIRED
        return self


class InvitationValidation(BaseModel):
    """Read-only view of whether a token can still be accepted"""
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    reason: str
    invitation_id: Optional[uuid.UUID] = None
    company_id: Optional[uuid.UUID] = None
    company_name: Optional[str] = None
    email: Optional[str] = None
    role_names: List[str] = Field(default_factory=list)
    status: Optional[InvitationStatus] = None
    expires_at: Optional[datetime] = None


class AcceptInvitationRequest(BaseModel):
    token: str = Field(..., min_length=10)
    password: str = Field(..., min_length=8, max_length=100)
    name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=50)


class AcceptedInvitation(BaseModel):
    model_config = ConfigDict(frozen=True)

    invitation_id: uuid.UUID
    company_id: uuid.UUID
    company_user_id: uuid.UUID
    email: str
    role_names: List[str]
    status: InvitationStatus = InvitationStatus.ACCEPTED


class CancelInvitationRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class InvitationCapacity(BaseModel):
    model_config = ConfigDict(frozen=True)

    company_id: uuid.UUID
    user_limit: int
    active_seats: int
    pending_invitations: int
    available_seats: int
    remaining: int
    can_send_more: bool
    message: str


class ExpirySweepResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    expired: int
    invitation_ids: List[uuid.UUID]
