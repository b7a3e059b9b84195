"""
Seed the reference catalog (services, modules, roles, permissions)

Usage: python -m taxhub.scripts.seed_catalog
Safe to re-run; existing rows are left untouched.
"""

from sqlmodel import Session
import structlog

from taxhub.core.database import engine
from taxhub.services.catalog import seed_catalog

logger = structlog.get_logger(__name__)


def main():
    with Session(engine) as session:
        inserted = seed_catalog(session)
    logger.info("Catalog seed finished", total=sum(inserted.values()))


if __name__ == "__main__":
    main()
