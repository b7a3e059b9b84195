"""
Background job to expire stale invitations

Run periodically (cron, a Kubernetes CronJob) with
``python -m taxhub.scripts.expire_invitations``. Readers already treat an
overdue pending invitation as expired; this job makes the stored status
match and publishes InvitationExpired for each row.
"""

import asyncio
import sys

from sqlmodel import Session
import structlog

from taxhub.core.database import engine
from taxhub.core.errors import DomainError
from taxhub.schemas.invitation import ExpirySweepResult
from taxhub.services.invitations import InvitationEngine

logger = structlog.get_logger(__name__)


async def expire_stale_invitations(session: Session) -> ExpirySweepResult:
    """Expire every pending invitation past its expires_at"""
    return await InvitationEngine(session).expire_stale()


def main():
    """Main entry point for cleanup job"""
    logger.info("Starting invitation expiry job")

    try:
        with Session(engine) as session:
            result = asyncio.run(expire_stale_invitations(session))
    except DomainError as e:
        logger.error("Invitation expiry job failed", **e.to_dict())
        sys.exit(1)

    logger.info("Invitation expiry job complete", expired=result.expired)


if __name__ == "__main__":
    main()
