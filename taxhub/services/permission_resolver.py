"""
Permission Resolver
Computes a member's effective permission codes from role grants and
per-member overrides
"""

from datetime import datetime
from typing import Optional, Set
import uuid

from sqlmodel import Session, select
import structlog

from taxhub.core.database import unit_of_work
from taxhub.core.errors import MemberNotFound, PermissionNotFound
from taxhub.models import (
    CompanyPermission, CompanyUser, CompanyUserRole, Permission,
    Role, RolePermission, TaxUser, UserRole,
)
from taxhub.schemas.permission import EffectivePermissions

logger = structlog.get_logger(__name__)


class PermissionResolver:
    """
    Role grants patched by overrides.

    Overrides always win: a granted override adds the code, a revoked
    override removes it even when a held role grants it. Nothing is cached,
    so role reassignment or override edits take effect on the next call.
    """

    def __init__(self, session: Session):
        self.session = session

    def _role_permission_codes(self, member_id: uuid.UUID) -> Set[str]:
        rows = self.session.exec(
            select(Permission.code)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(UserRole, UserRole.role_id == RolePermission.role_id)
            .where(UserRole.tax_user_id == member_id)
        ).all()
        return set(rows)

    def _overrides(self, member_id: uuid.UUID) -> list[tuple[str, bool]]:
        return list(self.session.exec(
            select(Permission.code, CompanyPermission.is_granted)
            .join(CompanyPermission, CompanyPermission.permission_id == Permission.id)
            .where(CompanyPermission.tax_user_id == member_id)
        ).all())

    def _get_member(self, member_id: uuid.UUID, company_id: Optional[uuid.UUID] = None) -> TaxUser:
        member = self.session.get(TaxUser, member_id)
        if member is None or (company_id is not None and member.company_id != company_id):
            raise MemberNotFound(member_id, company_id)
        return member

    def resolve(self, member_id: uuid.UUID) -> Set[str]:
        """
        Effective permission codes for a member.

        A member with no roles and no overrides resolves to an empty set.

        Raises:
            MemberNotFound: the member does not exist
        """
        self._get_member(member_id)
        effective = self._role_permission_codes(member_id)
        for code, is_granted in self._overrides(member_id):
            if is_granted:
                effective.add(code)
            else:
                effective.discard(code)
        return effective

    def describe(self, member_id: uuid.UUID, company_id: Optional[uuid.UUID] = None) -> EffectivePermissions:
        """Role grants, overrides and the resulting effective set"""
        member = self._get_member(member_id, company_id)
        role_names = self.session.exec(
            select(Role.name)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.tax_user_id == member_id)
        ).all()
        role_codes = self._role_permission_codes(member_id)
        overrides = self._overrides(member_id)
        granted = sorted(code for code, is_granted in overrides if is_granted)
        revoked = sorted(code for code, is_granted in overrides if not is_granted)

        effective = (role_codes | set(granted)) - set(revoked)
        return EffectivePermissions(
            member_id=member.id,
            company_id=member.company_id,
            role_names=sorted(role_names),
            role_permissions=sorted(role_codes),
            granted_overrides=granted,
            revoked_overrides=revoked,
            effective=sorted(effective),
        )

    def check(self, member_id: uuid.UUID, permission_code: str) -> bool:
        """
        Whether a member may use one permission code.

        Unknown or inactive members are denied rather than raising.
        """
        member = self.session.get(TaxUser, member_id)
        if member is None or not member.is_active:
            logger.info("Permission denied for missing or inactive member", member_id=str(member_id))
            return False

        override = self.session.exec(
            select(CompanyPermission.is_granted)
            .join(Permission, Permission.id == CompanyPermission.permission_id)
            .where(
                CompanyPermission.tax_user_id == member_id,
                Permission.code == permission_code,
            )
        ).first()
        if override is not None:
            return override

        return permission_code in self._role_permission_codes(member_id)

    def resolve_company_user(self, company_user_id: uuid.UUID) -> Set[str]:
        """Role-only resolution for secondary accounts, which carry no overrides"""
        if self.session.get(CompanyUser, company_user_id) is None:
            raise MemberNotFound(company_user_id)
        rows = self.session.exec(
            select(Permission.code)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(CompanyUserRole, CompanyUserRole.role_id == RolePermission.role_id)
            .where(CompanyUserRole.company_user_id == company_user_id)
        ).all()
        return set(rows)

    def set_override(
        self,
        member_id: uuid.UUID,
        permission_code: str,
        is_granted: bool,
        description: Optional[str] = None,
        company_id: Optional[uuid.UUID] = None,
    ) -> CompanyPermission:
        """Create or update the member's override for one permission code"""
        self._get_member(member_id, company_id)
        permission = self.session.exec(
            select(Permission).where(Permission.code == permission_code)
        ).first()
        if permission is None:
            raise PermissionNotFound(permission_code)

        with unit_of_work(self.session):
            override = self.session.exec(
                select(CompanyPermission).where(
                    CompanyPermission.tax_user_id == member_id,
                    CompanyPermission.permission_id == permission.id,
                )
            ).first()
            if override is None:
                override = CompanyPermission(
                    tax_user_id=member_id,
                    permission_id=permission.id,
                    is_granted=is_granted,
                    description=description,
                )
            else:
                override.is_granted = is_granted
                override.description = description
                override.updated_at = datetime.utcnow()
            self.session.add(override)

        logger.info(
            "Permission override saved",
            member_id=str(member_id),
            permission_code=permission_code,
            is_granted=is_granted,
        )
        return override

    def remove_override(
        self,
        member_id: uuid.UUID,
        permission_code: str,
        company_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """Drop an override so the role grant applies again. Returns False if none existed."""
        self._get_member(member_id, company_id)
        override = self.session.exec(
            select(CompanyPermission)
            .join(Permission, Permission.id == CompanyPermission.permission_id)
            .where(
                CompanyPermission.tax_user_id == member_id,
                Permission.code == permission_code,
            )
        ).first()
        if override is None:
            return False

        with unit_of_work(self.session):
            self.session.delete(override)

        logger.info("Permission override removed", member_id=str(member_id), permission_code=permission_code)
        return True
