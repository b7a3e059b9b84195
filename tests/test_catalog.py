"""
Tests for the catalog seed and permission codes
"""

from sqlmodel import select

from taxhub.core.permissions import PermissionCode, ROLE_PERMISSIONS
from taxhub.models import Module, Permission, Role, RolePermission, Service
from taxhub.services.catalog import MODULES, ROLES, SERVICES, seed_catalog


def test_seed_inserts_full_catalog(db):
    inserted = seed_catalog(db)

    assert inserted == {
        "services": len(SERVICES),
        "modules": len(MODULES),
        "roles": len(ROLES),
        "permissions": len(PermissionCode),
        "role_permissions": sum(len(codes) for codes in ROLE_PERMISSIONS.values()),
    }


def test_seed_is_idempotent(db):
    seed_catalog(db)

    again = seed_catalog(db)

    assert set(again.values()) == {0}
    assert len(db.exec(select(Service)).all()) == len(SERVICES)


def test_role_grants_match_declared_permissions(db):
    seed_catalog(db)

    for role_name, codes in ROLE_PERMISSIONS.items():
        granted = set(db.exec(
            select(Permission.code)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Role, Role.id == RolePermission.role_id)
            .where(Role.name == role_name)
        ).all())
        assert granted == {code.value for code in codes}, role_name


def test_administrator_grants_grow_with_tier():
    basic = ROLE_PERMISSIONS["Administrator Basic"]
    standard = ROLE_PERMISSIONS["Administrator Standard"]
    pro = ROLE_PERMISSIONS["Administrator Pro"]

    assert basic < standard < pro < ROLE_PERMISSIONS["Developer"]


def test_add_on_modules_have_no_service(db):
    seed_catalog(db)

    add_ons = db.exec(select(Module.name).where(Module.service_id == None)).all()  # noqa: E711

    assert sorted(add_ons) == ["E-Signature", "Payroll"]


def test_tier_roles_carry_service_level(db):
    seed_catalog(db)

    levels = {r.name: r.service_level for r in db.exec(select(Role)).all()}

    assert levels["Administrator Basic"] == 1
    assert levels["Administrator Pro"] == 3
    assert levels["User"] is None


def test_permission_code_parts():
    assert PermissionCode.SESSIONS_READ.resource == "Sessions"
    assert PermissionCode.SESSIONS_READ.action == "Read"
    assert PermissionCode.CUSTOMER_SELF_READ.action == "SelfRead"
    assert all(code.value.count(".") == 1 for code in PermissionCode)
