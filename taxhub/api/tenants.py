"""
Tenant API endpoints: onboarding, plan changes and deletion
"""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session
from typing import Optional
import structlog
import uuid

from taxhub.core.database import get_session
from taxhub.core.dependencies import get_tenant_id
from taxhub.core.errors import TenantNotFound
from taxhub.core.events import event_bus
from taxhub.core.permissions import PermissionCode, require_permission
from taxhub.models import Company
from taxhub.schemas.tenant import (
    CompanyRead, CreateTenantRequest, PlanChangeOptions, PlanChangeRequest, PlanChangeResult,
    TenantCreatedRead, TenantDeletionAnalysis, TenantDeletionResult,
)
from taxhub.services.onboarding import TenantOnboarding
from taxhub.services.plan_transition import PlanTransitionEngine
from taxhub.services.tenant_deletion import TenantDeletionEngine

logger = structlog.get_logger(__name__)
router = APIRouter()


def _own_tenant(company_id: uuid.UUID, tenant_id: uuid.UUID) -> None:
    # Another tenant's id is reported exactly like a missing one
    if company_id != tenant_id:
        raise TenantNotFound(company_id)


@router.post("/", response_model=TenantCreatedRead, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    request: CreateTenantRequest,
    session: Session = Depends(get_session)
):
    """Onboard a company with its owner account"""
    return await TenantOnboarding(session, event_bus).create_tenant(request)


@router.get("/{company_id}", response_model=CompanyRead)
async def get_tenant(
    company_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.COMPANY_READ)),
    session: Session = Depends(get_session)
):
    """Get company by ID"""
    _own_tenant(company_id, tenant_id)
    company = session.get(Company, company_id)
    if company is None:
        raise TenantNotFound(company_id)
    return company


@router.get("/{company_id}/deletion-analysis", response_model=TenantDeletionAnalysis)
async def analyze_tenant_deletion(
    company_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.COMPANY_DELETE)),
    session: Session = Depends(get_session)
):
    """Counts that decide whether the company can be deleted"""
    _own_tenant(company_id, tenant_id)
    return TenantDeletionEngine(session, event_bus).analyze(company_id)


@router.delete("/{company_id}", response_model=TenantDeletionResult)
async def delete_tenant(
    company_id: uuid.UUID,
    expected_version: Optional[int] = Query(default=None, ge=1),
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.COMPANY_DELETE)),
    session: Session = Depends(get_session)
):
    """Delete the company and every row under it"""
    _own_tenant(company_id, tenant_id)
    result = await TenantDeletionEngine(session, event_bus).delete_tenant(company_id, expected_version)
    logger.info("Tenant deleted via API", company_id=str(company_id), user_id=str(current_user_id))
    return result


@router.put("/{company_id}/plan", response_model=PlanChangeResult)
async def change_plan(
    company_id: uuid.UUID,
    request: PlanChangeRequest,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    current_user_id: uuid.UUID = Depends(require_permission(PermissionCode.CUSTOM_PLAN_UPDATE)),
    session: Session = Depends(get_session)
):
    """Move the company to another service level"""
    _own_tenant(company_id, tenant_id)
    options = request.model_dump(exclude={"service_level"})
    return await PlanTransitionEngine(session, event_bus).change_plan(
        company_id,
        request.service_level,
        PlanChangeOptions(**options),
    )
