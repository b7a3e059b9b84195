"""
Catalog seed: service tiers, modules, roles, permission codes and role grants
"""

from decimal import Decimal
from typing import Dict

from sqlmodel import Session, select
import structlog

from taxhub.core.database import unit_of_work
from taxhub.core.permissions import PermissionCode, ROLE_PERMISSIONS
from taxhub.models import Module, Permission, Role, RolePermission, Service, ServiceLevel

logger = structlog.get_logger(__name__)


SERVICES = (
    # name, title, description, price, user_limit
    (ServiceLevel.BASIC, "Basic Plan", "Basic tax preparation service with essential features", Decimal("29.99"), 1),
    (ServiceLevel.STANDARD, "Standard Plan", "Standard service with additional modules and more users", Decimal("59.99"), 4),
    (ServiceLevel.PRO, "Professional Plan", "Professional service with all modules and unlimited features", Decimal("99.99"), 5),
)

MODULES = (
    # name, description, url, tier (None = add-on)
    ("Tax Returns", "Individual and business tax return preparation", "/tax-returns", ServiceLevel.BASIC),
    ("Invoicing", "Create and manage invoices", "/invoicing", ServiceLevel.BASIC),
    ("Document Management", "Upload and organize tax documents", "/documents", ServiceLevel.BASIC),
    ("Reports", "Generate financial and tax reports", "/reports", ServiceLevel.STANDARD),
    ("Customer Portal", "Dedicated portal for client communication", "/customer-portal", ServiceLevel.STANDARD),
    ("Advanced Analytics", "Business insights and analytics", "/analytics", ServiceLevel.PRO),
    ("API Integration", "Connect with third-party services", "/api-integration", ServiceLevel.PRO),
    ("White Label", "Custom branding options", "/white-label", ServiceLevel.PRO),
    ("E-Signature", "Collect client signatures on engagement letters", "/e-signature", None),
    ("Payroll", "Run payroll for business clients", "/payroll", None),
)

ROLES = (
    # name, description, portal_access, service_level
    ("Developer", "Full access to all system features, settings and user management", 3, None),
    ("Administrator Basic", "Administrator with Basic service permissions and limitations", 1, ServiceLevel.BASIC.rank),
    ("Administrator Standard", "Administrator with Standard service permissions and features", 1, ServiceLevel.STANDARD.rank),
    ("Administrator Pro", "Administrator with Pro service permissions and full features", 1, ServiceLevel.PRO.rank),
    ("User", "Limited access to specific functionalities of the company", 1, None),
    ("Customer", "Customer portal access limited to own records", 2, None),
)


def _permission_name(code: PermissionCode) -> str:
    return f"{code.action} {code.resource}"


def seed_catalog(session: Session) -> Dict[str, int]:
    """
    Insert the reference catalog. Rows are matched by name or code, so
    running it again only adds what is missing.

    Returns:
        Number of rows inserted per table
    """
    inserted = {"services": 0, "modules": 0, "roles": 0, "permissions": 0, "role_permissions": 0}

    with unit_of_work(session):
        services: Dict[str, Service] = {s.name: s for s in session.exec(select(Service)).all()}
        for level, title, description, price, user_limit in SERVICES:
            if level.value in services:
                continue
            service = Service(
                name=level.value,
                title=title,
                description=description,
                price=price,
                user_limit=user_limit,
            )
            session.add(service)
            services[level.value] = service
            inserted["services"] += 1
        session.flush()

        existing_modules = set(session.exec(select(Module.name)).all())
        for name, description, url, level in MODULES:
            if name in existing_modules:
                continue
            tier = services[level.value] if level else None
            session.add(Module(
                name=name,
                description=description,
                url=url,
                service_id=tier.id if tier else None,
            ))
            inserted["modules"] += 1

        roles: Dict[str, Role] = {r.name: r for r in session.exec(select(Role)).all()}
        for name, description, portal_access, service_level in ROLES:
            if name in roles:
                continue
            role = Role(name=name, description=description, portal_access=portal_access, service_level=service_level)
            session.add(role)
            roles[name] = role
            inserted["roles"] += 1

        permissions: Dict[str, Permission] = {p.code: p for p in session.exec(select(Permission)).all()}
        for code in PermissionCode:
            if code.value in permissions:
                continue
            permission = Permission(code=code.value, name=_permission_name(code))
            session.add(permission)
            permissions[code.value] = permission
            inserted["permissions"] += 1
        session.flush()

        granted = {
            (role_id, permission_id)
            for role_id, permission_id in session.exec(select(RolePermission.role_id, RolePermission.permission_id)).all()
        }
        for role_name, codes in ROLE_PERMISSIONS.items():
            role = roles[role_name]
            for code in sorted(codes, key=lambda c: c.value):
                permission = permissions[code.value]
                if (role.id, permission.id) in granted:
                    continue
                session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                inserted["role_permissions"] += 1

    logger.info("Catalog seeded", **inserted)
    return inserted
