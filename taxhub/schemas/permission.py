"""
Pydantic schemas for permission resolution and overrides
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
import uuid


class EffectivePermissions(BaseModel):
    """Breakdown of a member's access: role grants patched by overrides"""
    model_config = ConfigDict(frozen=True)

    member_id: uuid.UUID
    company_id: uuid.UUID
    role_names: List[str]
    role_permissions: List[str]
    granted_overrides: List[str]
    revoked_overrides: List[str]
    effective: List[str]


class PermissionCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    member_id: uuid.UUID
    permission_code: str
    allowed: bool


class OverrideRequest(BaseModel):
    """Grant or revoke one permission for a member"""
    permission_code: str = Field(..., min_length=3, max_length=100)
    is_granted: bool
    description: Optional[str] = Field(default=None, max_length=500)


class OverrideRead(BaseModel):
    member_id: uuid.UUID
    permission_code: str
    is_granted: bool
    description: Optional[str] = None
