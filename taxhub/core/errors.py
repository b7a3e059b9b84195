"""
Typed domain errors

Every error carries a kind (not_found, conflict, invalid_state,
validation_failure, transient), a stable code and structured details
so callers can render an actionable message without parsing text.
"""

from typing import Any, Dict, Optional
import uuid


class DomainError(Exception):
    """Base class for errors raised by the tenant and authorization engines"""

    kind = "domain_error"
    code = "domain_error"
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "kind": self.kind,
            "message": self.message,
            "details": {key: _jsonable(value) for key, value in self.details.items()},
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# ============================================================================
# Kinds
# ============================================================================

class NotFoundError(DomainError):
    kind = "not_found"
    code = "not_found"


class ConflictError(DomainError):
    kind = "conflict"
    code = "conflict"


class InvalidStateError(DomainError):
    kind = "invalid_state"
    code = "invalid_state"


class ValidationFailureError(DomainError):
    kind = "validation_failure"
    code = "validation_failure"


class TransientStoreError(DomainError):
    """Store timeout, deadlock or lost connection. Safe to retry."""
    kind = "transient"
    code = "transient_store_failure"
    retryable = True


# ============================================================================
# NotFound
# ============================================================================

class TenantNotFound(NotFoundError):
    code = "tenant_not_found"

    def __init__(self, company_id: uuid.UUID):
        super().__init__(f"Company {company_id} not found", company_id=company_id)


class PlanNotFound(NotFoundError):
    code = "plan_not_found"

    def __init__(self, service_level: Optional[str] = None, company_id: Optional[uuid.UUID] = None):
        if service_level is not None:
            message = f"Service '{service_level}' not found or inactive"
        else:
            message = f"Company {company_id} has no plan"
        super().__init__(message, service_level=service_level, company_id=company_id)


class MemberNotFound(NotFoundError):
    code = "member_not_found"

    def __init__(self, member_id: uuid.UUID, company_id: Optional[uuid.UUID] = None):
        super().__init__(f"Member {member_id} not found", member_id=member_id, company_id=company_id)


class RoleNotFound(NotFoundError):
    code = "role_not_found"

    def __init__(self, missing: list):
        super().__init__("One or more roles do not exist", missing_role_ids=missing)


class PermissionNotFound(NotFoundError):
    code = "permission_not_found"

    def __init__(self, permission_code: str):
        super().__init__(f"Permission '{permission_code}' not found", permission_code=permission_code)


class ModuleNotFound(NotFoundError):
    code = "module_not_found"

    def __init__(self, missing: list):
        super().__init__("One or more modules do not exist", missing_module_ids=missing)


class InvitationNotFound(NotFoundError):
    code = "invitation_not_found"

    def __init__(self, invitation_id: Optional[uuid.UUID] = None):
        super().__init__("Invitation not found", invitation_id=invitation_id)


# ============================================================================
# Conflict
# ============================================================================

class DuplicateEmail(ConflictError):
    code = "duplicate_email"

    def __init__(self, email: str):
        super().__init__(f"Email {email} is already registered", email=email)


class DuplicateDomain(ConflictError):
    code = "duplicate_domain"

    def __init__(self, domain: str):
        super().__init__(f"Domain {domain} is already registered", domain=domain)


class SeatLimitExceeded(ConflictError):
    code = "seat_limit_exceeded"

    def __init__(self, active_seats: int, user_limit: int, company_id: Optional[uuid.UUID] = None):
        super().__init__(
            f"{active_seats} active users exceed the limit of {user_limit}",
            active_seats=active_seats,
            user_limit=user_limit,
            excess=max(0, active_seats - user_limit),
            company_id=company_id,
        )


class ConcurrencyConflict(ConflictError):
    code = "concurrent_modification"

    def __init__(self, entity: str, entity_id: uuid.UUID, expected_version: Optional[int] = None):
        super().__init__(
            f"{entity} {entity_id} was modified by another request",
            entity=entity,
            entity_id=entity_id,
            expected_version=expected_version,
        )


class ConstraintViolation(ConflictError):
    """A write lost a race to a concurrent request and hit a store constraint"""
    code = "constraint_violation"

    def __init__(self, reason: str):
        super().__init__("The change conflicts with data written by another request", reason=reason)


class InvitationAlreadyPending(ConflictError):
    code = "invitation_already_pending"

    def __init__(self, email: str, invitation_id: uuid.UUID):
        super().__init__(
            f"A pending invitation already exists for {email}",
            email=email,
            invitation_id=invitation_id,
        )


class InvitationLimitReached(ConflictError):
    code = "invitation_limit_reached"

    def __init__(self, pending: int, limit: int):
        super().__init__(
            f"Maximum of {limit} pending invitations reached",
            pending_invitations=pending,
            limit=limit,
        )


# ============================================================================
# InvalidState
# ============================================================================

class TenantNotEmpty(InvalidStateError):
    code = "tenant_not_empty"

    def __init__(self, company_id: uuid.UUID, total_users: int, tax_users: int, company_users: int):
        super().__init__(
            f"Cannot delete company with {total_users} users. Remove other users first.",
            company_id=company_id,
            total_users=total_users,
            tax_users=tax_users,
            company_users=company_users,
        )


class ActiveSessionsExist(InvalidStateError):
    code = "active_sessions_exist"

    def __init__(self, company_id: uuid.UUID, active_sessions: int):
        super().__init__(
            f"Cannot delete company with {active_sessions} active sessions",
            company_id=company_id,
            active_sessions=active_sessions,
        )


class NoActiveOwner(InvalidStateError):
    code = "no_active_owner"

    def __init__(self, company_id: uuid.UUID):
        super().__init__(f"Company {company_id} has no active owner", company_id=company_id)


class DeactivationShortfall(InvalidStateError):
    code = "deactivation_shortfall"

    def __init__(self, excess: int, deactivatable: int, user_limit: int):
        super().__init__(
            f"Need to deactivate {excess} users but only {deactivatable} are not administrators",
            excess=excess,
            deactivatable=deactivatable,
            user_limit=user_limit,
        )


class InvitationAlreadyConsumed(InvalidStateError):
    code = "invitation_already_consumed"

    def __init__(self, invitation_id: uuid.UUID):
        super().__init__("Invitation has already been used", invitation_id=invitation_id)


class InvitationExpired(InvalidStateError):
    code = "invitation_expired"

    def __init__(self, invitation_id: uuid.UUID, expires_at=None):
        super().__init__(
            "Invitation has expired",
            invitation_id=invitation_id,
            expires_at=expires_at.isoformat() if expires_at else None,
        )


class InvitationNotPending(InvalidStateError):
    code = "invitation_not_pending"

    def __init__(self, invitation_id: uuid.UUID, status: str):
        super().__init__(f"Invitation is {status}", invitation_id=invitation_id, status=status)


# ============================================================================
# ValidationFailure
# ============================================================================

class UnsupportedRegion(ValidationFailureError):
    code = "unsupported_region"

    def __init__(self, country_code: str, state_code: Optional[str] = None):
        super().__init__(
            f"Address region {country_code}/{state_code} is not supported",
            country_code=country_code,
            state_code=state_code,
        )


class InvalidUserLimit(ValidationFailureError):
    code = "invalid_user_limit"

    def __init__(self, user_limit: int):
        super().__init__("User limit must be at least 1", user_limit=user_limit)


class InvalidPrice(ValidationFailureError):
    code = "invalid_price"

    def __init__(self, price):
        super().__init__("Price cannot be negative", price=str(price))


class RestrictedRole(ValidationFailureError):
    code = "restricted_role"

    def __init__(self, role_names: list):
        super().__init__(
            "Administrator and Developer roles cannot be assigned through invitations",
            role_names=role_names,
        )


class RoleAboveServiceLevel(ValidationFailureError):
    code = "role_above_service_level"

    def __init__(self, role_names: list, service_level: Optional[str]):
        super().__init__(
            "Some roles are not available on the company's plan",
            role_names=role_names,
            service_level=service_level,
        )


class InvalidInvitationToken(ValidationFailureError):
    code = "invalid_invitation_token"

    def __init__(self):
        super().__init__("Invitation token is malformed or has a bad signature")
