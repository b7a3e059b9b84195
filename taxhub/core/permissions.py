"""
RBAC permission codes, seeded role grants and the FastAPI guard
"""

from enum import Enum
from typing import Dict, Set
import uuid

from fastapi import Depends, HTTPException, status
from sqlmodel import Session
import structlog

from taxhub.core.database import get_session
from taxhub.core.dependencies import get_current_user_id
from taxhub.services.permission_resolver import PermissionResolver

logger = structlog.get_logger(__name__)


class PermissionCode(str, Enum):
    """Permission codes, <Resource>.<Action>"""
    # Permission catalog
    PERMISSION_CREATE = "Permission.Create"
    PERMISSION_READ = "Permission.Read"
    PERMISSION_VIEW = "Permission.View"
    PERMISSION_DELETE = "Permission.Delete"
    PERMISSION_UPDATE = "Permission.Update"

    # Members
    TAX_USER_CREATE = "TaxUser.Create"
    TAX_USER_READ = "TaxUser.Read"
    TAX_USER_VIEW = "TaxUser.View"
    TAX_USER_DELETE = "TaxUser.Delete"
    TAX_USER_UPDATE = "TaxUser.Update"

    # Customers
    CUSTOMER_CREATE = "Customer.Create"
    CUSTOMER_READ = "Customer.Read"
    CUSTOMER_VIEW = "Customer.View"
    CUSTOMER_DELETE = "Customer.Delete"
    CUSTOMER_UPDATE = "Customer.Update"
    CUSTOMER_SELF_READ = "Customer.SelfRead"
    CUSTOMER_DISABLE_LOGIN = "Customer.DisableLogin"
    CUSTOMER_ENABLE_LOGIN = "Customer.EnableLogin"

    # Roles
    ROLE_CREATE = "Role.Create"
    ROLE_READ = "Role.Read"
    ROLE_VIEW = "Role.View"
    ROLE_DELETE = "Role.Delete"
    ROLE_UPDATE = "Role.Update"

    ROLE_PERMISSION_CREATE = "RolePermission.Create"
    ROLE_PERMISSION_READ = "RolePermission.Read"
    ROLE_PERMISSION_VIEW = "RolePermission.View"
    ROLE_PERMISSION_DELETE = "RolePermission.Delete"
    ROLE_PERMISSION_UPDATE = "RolePermission.Update"

    SESSIONS_READ = "Sessions.Read"

    # Customer dependents and tax information
    DEPENDENT_CREATE = "Dependent.Create"
    DEPENDENT_UPDATE = "Dependent.Update"
    DEPENDENT_DELETE = "Dependent.Delete"
    DEPENDENT_READ = "Dependent.Read"
    DEPENDENT_VIEWER = "Dependent.Viewer"

    TAX_INFORMATION_CREATE = "TaxInformation.Create"
    TAX_INFORMATION_UPDATE = "TaxInformation.Update"
    TAX_INFORMATION_DELETE = "TaxInformation.Delete"
    TAX_INFORMATION_READ = "TaxInformation.Read"
    TAX_INFORMATION_VIEWER = "TaxInformation.Viewer"

    # Tenants and plans
    COMPANY_CREATE = "Company.Create"
    COMPANY_READ = "Company.Read"
    COMPANY_VIEW = "Company.View"
    COMPANY_UPDATE = "Company.Update"
    COMPANY_DELETE = "Company.Delete"

    SERVICE_CREATE = "Service.Create"
    SERVICE_READ = "Service.Read"
    SERVICE_UPDATE = "Service.Update"
    SERVICE_DELETE = "Service.Delete"
    SERVICE_MANAGE_STATUS = "Service.ManageStatus"

    MODULE_CREATE = "Module.Create"
    MODULE_READ = "Module.Read"
    MODULE_UPDATE = "Module.Update"
    MODULE_DELETE = "Module.Delete"
    MODULE_MANAGE_STATUS = "Module.ManageStatus"

    CUSTOM_PLAN_CREATE = "CustomPlan.Create"
    CUSTOM_PLAN_READ = "CustomPlan.Read"
    CUSTOM_PLAN_UPDATE = "CustomPlan.Update"
    CUSTOM_PLAN_DELETE = "CustomPlan.Delete"
    CUSTOM_PLAN_MANAGE_STATUS = "CustomPlan.ManageStatus"

    CUSTOM_MODULE_CREATE = "CustomModule.Create"
    CUSTOM_MODULE_READ = "CustomModule.Read"
    CUSTOM_MODULE_UPDATE = "CustomModule.Update"
    CUSTOM_MODULE_DELETE = "CustomModule.Delete"
    CUSTOM_MODULE_MANAGE_STATUS = "CustomModule.ManageStatus"

    @property
    def resource(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(".", 1)[1]


_BASIC_ADMIN = {
    PermissionCode.CUSTOMER_CREATE,
    PermissionCode.CUSTOMER_READ,
    PermissionCode.CUSTOMER_VIEW,
    PermissionCode.CUSTOMER_UPDATE,
    PermissionCode.DEPENDENT_CREATE,
    PermissionCode.DEPENDENT_READ,
    PermissionCode.DEPENDENT_VIEWER,
    PermissionCode.TAX_INFORMATION_CREATE,
    PermissionCode.TAX_INFORMATION_READ,
    PermissionCode.TAX_INFORMATION_VIEWER,
    PermissionCode.COMPANY_READ,
    PermissionCode.COMPANY_VIEW,
    PermissionCode.SESSIONS_READ,
}

_STANDARD_ADMIN = _BASIC_ADMIN | {
    PermissionCode.CUSTOMER_DISABLE_LOGIN,
    PermissionCode.CUSTOMER_ENABLE_LOGIN,
    PermissionCode.DEPENDENT_UPDATE,
    PermissionCode.TAX_INFORMATION_UPDATE,
    PermissionCode.ROLE_VIEW,
    PermissionCode.PERMISSION_VIEW,
    PermissionCode.TAX_USER_READ,
    PermissionCode.TAX_USER_VIEW,
}

_PRO_ADMIN = _STANDARD_ADMIN | {
    PermissionCode.TAX_USER_CREATE,
    PermissionCode.TAX_USER_UPDATE,
    PermissionCode.TAX_USER_DELETE,
    PermissionCode.DEPENDENT_DELETE,
    PermissionCode.TAX_INFORMATION_DELETE,
    PermissionCode.COMPANY_UPDATE,
    PermissionCode.SERVICE_READ,
    PermissionCode.MODULE_READ,
    PermissionCode.CUSTOM_PLAN_READ,
    PermissionCode.CUSTOM_MODULE_READ,
}

# Role name -> granted codes, seeded into role_permissions
ROLE_PERMISSIONS: Dict[str, Set[PermissionCode]] = {
    "Developer": set(PermissionCode),
    "Administrator Basic": _BASIC_ADMIN,
    "Administrator Standard": _STANDARD_ADMIN,
    "Administrator Pro": _PRO_ADMIN,
    "User": {PermissionCode.SESSIONS_READ, PermissionCode.CUSTOMER_SELF_READ},
    "Customer": {PermissionCode.CUSTOMER_SELF_READ},
}


def require_permission(required_permission: PermissionCode):
    """Dependency factory: 403 unless the caller's effective set holds the code"""
    async def check_permission(
        current_user_id: uuid.UUID = Depends(get_current_user_id),
        session: Session = Depends(get_session),
    ) -> uuid.UUID:
        if not PermissionResolver(session).check(current_user_id, required_permission.value):
            logger.warning(
                "Permission denied",
                user_id=str(current_user_id),
                permission_code=required_permission.value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission required: {required_permission.value}",
            )
        return current_user_id
    return check_permission
