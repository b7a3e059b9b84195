"""
Schemas for API responses and requests
"""

from taxhub.schemas.customer import CustomerCreate, CustomerRead
from taxhub.schemas.invitation import (
    AcceptInvitationRequest, AcceptedInvitation, CancelInvitationRequest, ExpirySweepResult,
    InvitationCapacity, InvitationRead, InvitationValidation, IssueInvitationRequest,
)
from taxhub.schemas.permission import EffectivePermissions, OverrideRead, OverrideRequest, PermissionCheck
from taxhub.schemas.tenant import (
    AddressInput, CompanyRead, CreateTenantRequest, PlanChangeOptions, PlanChangeRequest,
    PlanChangeResult, TenantCreatedRead, TenantDeletionAnalysis, TenantDeletionResult,
)

__all__ = [
    "CustomerCreate",
    "CustomerRead",
    "AcceptInvitationRequest",
    "AcceptedInvitation",
    "CancelInvitationRequest",
    "ExpirySweepResult",
    "InvitationCapacity",
    "InvitationRead",
    "InvitationValidation",
    "IssueInvitationRequest",
    "EffectivePermissions",
    "OverrideRead",
    "OverrideRequest",
    "PermissionCheck",
    "AddressInput",
    "CompanyRead",
    "CreateTenantRequest",
    "PlanChangeOptions",
    "PlanChangeRequest",
    "PlanChangeResult",
    "TenantCreatedRead",
    "TenantDeletionAnalysis",
    "TenantDeletionResult",
]
