"""
Authentication dependencies for FastAPI
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict
import uuid
import structlog

from taxhub.core.auth import decode_access_token

logger = structlog.get_logger(__name__)
security = HTTPBearer()


def _payload(credentials: HTTPAuthorizationCredentials) -> Dict:
    payload = decode_access_token(credentials.credentials)
    if payload is None or "sub" not in payload or "tenant_id" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> uuid.UUID:
    """Get current member ID from JWT token"""
    user_id = uuid.UUID(_payload(credentials)["sub"])
    logger.debug("User authenticated", user_id=str(user_id))
    return user_id


async def get_tenant_id(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> uuid.UUID:
    """Get tenant ID from JWT token"""
    return uuid.UUID(_payload(credentials)["tenant_id"])
