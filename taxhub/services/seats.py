"""
Seat accounting shared by plan changes and invitations
"""

import uuid

from sqlmodel import Session, select
from sqlalchemy import func

from taxhub.models import CompanyUser, TaxUser


def count_active_seats(session: Session, company_id: uuid.UUID) -> int:
    """Active members plus active secondary accounts: one shared seat pool"""
    members = session.exec(
        select(func.count()).select_from(TaxUser).where(
            TaxUser.company_id == company_id,
            TaxUser.is_active == True,  # noqa: E712
        )
    ).one()
    company_users = session.exec(
        select(func.count()).select_from(CompanyUser).where(
            CompanyUser.company_id == company_id,
            CompanyUser.is_active == True,  # noqa: E712
        )
    ).one()
    return members + company_users
