"""
Permission API endpoints: effective sets, checks and member overrides
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlmodel import Session
import structlog
import uuid

from taxhub.core.database import get_session
from taxhub.core.dependencies import get_current_user_id, get_tenant_id
from taxhub.core.errors import MemberNotFound
from taxhub.core.permissions import PermissionCode, require_permission
from taxhub.models import TaxUser
from taxhub.schemas.permission import EffectivePermissions, OverrideRead, OverrideRequest, PermissionCheck
from taxhub.services.permission_resolver import PermissionResolver

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("/me", response_model=EffectivePermissions)
async def my_permissions(
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    session: Session = Depends(get_session)
):
    """Effective permissions of the caller"""
    return PermissionResolver(session).describe(current_user_id, tenant_id)


@router.get("/members/{member_id}", response_model=EffectivePermissions)
async def member_permissions(
    member_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.PERMISSION_VIEW)),
    session: Session = Depends(get_session)
):
    """Role grants, overrides and effective set of a member"""
    return PermissionResolver(session).describe(member_id, tenant_id)


@router.get("/members/{member_id}/check/{permission_code}", response_model=PermissionCheck)
async def check_member_permission(
    member_id: uuid.UUID,
    permission_code: str,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.PERMISSION_VIEW)),
    session: Session = Depends(get_session)
):
    """Whether a member of the caller's company holds one code"""
    member = session.get(TaxUser, member_id)
    if member is None or member.company_id != tenant_id:
        raise MemberNotFound(member_id, tenant_id)
    allowed = PermissionResolver(session).check(member_id, permission_code)
    return PermissionCheck(member_id=member_id, permission_code=permission_code, allowed=allowed)


@router.put("/members/{member_id}/overrides", response_model=OverrideRead)
async def set_member_override(
    member_id: uuid.UUID,
    request: OverrideRequest,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.PERMISSION_UPDATE)),
    session: Session = Depends(get_session)
):
    """Grant or revoke one permission for a member, whatever their roles say"""
    PermissionResolver(session).set_override(
        member_id,
        request.permission_code,
        request.is_granted,
        description=request.description,
        company_id=tenant_id,
    )
    logger.info(
        "Override set via API",
        member_id=str(member_id),
        permission_code=request.permission_code,
        user_id=str(current_user_id),
    )
    return OverrideRead(
        member_id=member_id,
        permission_code=request.permission_code,
        is_granted=request.is_granted,
        description=request.description,
    )


@router.delete("/members/{member_id}/overrides/{permission_code}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member_override(
    member_id: uuid.UUID,
    permission_code: str,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.PERMISSION_DELETE)),
    session: Session = Depends(get_session)
):
    """Drop an override so role grants apply again"""
    if not PermissionResolver(session).remove_override(member_id, permission_code, company_id=tenant_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Override not found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
