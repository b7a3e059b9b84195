"""
Credential services: JWT access tokens, invitation tokens, password hashing
and link building
"""

from datetime import datetime, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
from typing import Dict, Optional, Tuple
from urllib.parse import quote
import uuid

from taxhub.core.config import get_settings

settings = get_settings()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

INVITATION_TOKEN_TYPE = "invitation"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create JWT access token with member claims"""
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(user_id),
        "tenant_id": str(tenant_id),
        "exp": expire,
        "iat": datetime.utcnow(),
    }

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") == INVITATION_TOKEN_TYPE:
        return None
    return payload


def create_invitation_token(
    company_id: uuid.UUID,
    email: str,
    expires_delta: Optional[timedelta] = None
) -> Tuple[str, datetime]:
    """
    Sign a single-use invitation token.

    The jti claim makes every token unique even for repeated invitations
    to the same address. Returns the token and its expiry.
    """
    issued_at = datetime.utcnow()
    expire = issued_at + (expires_delta or timedelta(hours=settings.INVITATION_TOKEN_EXPIRE_HOURS))
    to_encode = {
        "sub": email,
        "company_id": str(company_id),
        "type": INVITATION_TOKEN_TYPE,
        "jti": uuid.uuid4().hex,
        "exp": expire,
        "iat": issued_at,
    }
    token = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return token, expire


def decode_invitation_token(token: str) -> Optional[Dict]:
    """
    Verify the signature of an invitation token.

    Expiry is not checked here; the stored invitation's expires_at is the
    authority so callers can report an expired invitation distinctly.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        return None
    if payload.get("type") != INVITATION_TOKEN_TYPE:
        return None
    return payload


def build_invitation_link(origin: Optional[str], token: str) -> str:
    """Format the URL a recipient follows to accept an invitation"""
    base = (origin or settings.FRONTEND_ORIGIN).rstrip("/")
    return f"{base}/auth/invitation?token={quote(token, safe='')}"
