"""
Database models
"""

from taxhub.models.catalog import (
    ServiceLevel, Service, Module, Role, Permission, RolePermission,
    ADMIN_ROLE_MARKER, DEVELOPER_ROLE, DEFAULT_MEMBER_ROLE,
)
from taxhub.models.company import Address, Company, CustomPlan, CustomModule
from taxhub.models.member import TaxUser, UserRole, CompanyPermission, UserSession
from taxhub.models.company_user import CompanyUser, CompanyUserRole, CompanyUserSession
from taxhub.models.invitation import Invitation, InvitationStatus
from taxhub.models.customer import Customer

__all__ = [
    "ServiceLevel",
    "Service",
    "Module",
    "Role",
    "Permission",
    "RolePermission",
    "ADMIN_ROLE_MARKER",
    "DEVELOPER_ROLE",
    "DEFAULT_MEMBER_ROLE",
    "Address",
    "Company",
    "CustomPlan",
    "CustomModule",
    "TaxUser",
    "UserRole",
    "CompanyPermission",
    "UserSession",
    "CompanyUser",
    "CompanyUserRole",
    "CompanyUserSession",
    "Invitation",
    "InvitationStatus",
    "Customer",
]
