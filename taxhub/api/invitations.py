"""
Invitation API endpoints
"""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlmodel import Session
from typing import List, Optional
import structlog
import uuid

from taxhub.core.database import get_session
from taxhub.core.dependencies import get_tenant_id
from taxhub.core.errors import InvitationNotFound
from taxhub.core.events import event_bus
from taxhub.core.permissions import PermissionCode, require_permission
from taxhub.models import Invitation, InvitationStatus
from taxhub.schemas.invitation import (
    AcceptInvitationRequest, AcceptedInvitation, CancelInvitationRequest, ExpirySweepResult,
    InvitationCapacity, InvitationRead, InvitationValidation, IssueInvitationRequest,
)
from taxhub.services.invitations import InvitationEngine

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=InvitationRead, status_code=status.HTTP_201_CREATED)
async def issue_invitation(
    request: IssueInvitationRequest,
    http_request: Request,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.TAX_USER_CREATE)),
    session: Session = Depends(get_session)
):
    """Invite someone to join the caller's company"""
    return await InvitationEngine(session, event_bus).issue(
        company_id=tenant_id,
        invited_by_user_id=current_user_id,
        email=request.email,
        role_ids=request.role_ids,
        personal_message=request.personal_message,
        origin=request.origin,
        ip_address=http_request.client.host if http_request.client else None,
        user_agent=http_request.headers.get("user-agent"),
    )


@router.get("/", response_model=List[InvitationRead])
async def list_invitations(
    status_filter: Optional[InvitationStatus] = Query(default=None, alias="status"),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.TAX_USER_READ)),
    session: Session = Depends(get_session)
):
    """List the company's invitations, newest first"""
    return InvitationEngine(session).list_invitations(tenant_id, status_filter)


@router.get("/capacity", response_model=InvitationCapacity)
async def invitation_capacity(
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.TAX_USER_READ)),
    session: Session = Depends(get_session)
):
    """Seats left for new invitations"""
    return InvitationEngine(session).capacity(tenant_id)


@router.get("/validate", response_model=InvitationValidation)
async def validate_invitation(
    token: str = Query(..., min_length=10),
    session: Session = Depends(get_session)
):
    """Check an invitation token without consuming it"""
    return InvitationEngine(session).validate(token)


@router.post("/accept", response_model=AcceptedInvitation, status_code=status.HTTP_201_CREATED)
async def accept_invitation(
    request: AcceptInvitationRequest,
    session: Session = Depends(get_session)
):
    """Consume an invitation token and create the account"""
    return await InvitationEngine(session, event_bus).accept(
        request.token,
        request.password,
        name=request.name,
        last_name=request.last_name,
        phone=request.phone,
    )


@router.post("/expire", response_model=ExpirySweepResult)
async def expire_invitations(
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.TAX_USER_UPDATE)),
    session: Session = Depends(get_session)
):
    """Flip the company's overdue pending invitations to expired"""
    return await InvitationEngine(session, event_bus).expire_stale(company_id=tenant_id)


@router.get("/{invitation_id}", response_model=InvitationRead)
async def get_invitation(
    invitation_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.TAX_USER_READ)),
    session: Session = Depends(get_session)
):
    """Get an invitation of the caller's company"""
    invitation = session.get(Invitation, invitation_id)
    if invitation is None or invitation.company_id != tenant_id:
        raise InvitationNotFound(invitation_id)
    return invitation


@router.post("/{invitation_id}/cancel", response_model=InvitationRead)
async def cancel_invitation(
    invitation_id: uuid.UUID,
    request: CancelInvitationRequest,
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.TAX_USER_UPDATE)),
    session: Session = Depends(get_session)
):
    """Withdraw a pending invitation"""
    return await InvitationEngine(session, event_bus).cancel(invitation_id, current_user_id, request.reason)
