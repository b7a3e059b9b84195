"""
Domain events system

Domain events describe tenant lifecycle changes. Engines publish them only
after their transaction commits; delivery is best-effort and a failing
subscriber never affects the committed state.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional
import uuid
import structlog

logger = structlog.get_logger(__name__)


class DomainEvent:
    """Base class for domain events"""

    def __init__(self, event_id: uuid.UUID = None):
        self.event_id = event_id or uuid.uuid4()
        self.occurred_at = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "event_id": str(self.event_id),
            "occurred_at": self.occurred_at.isoformat(),
            "event_type": self.__class__.__name__
        }


class TenantCreated(DomainEvent):
    """Event fired when a company and its owner are onboarded"""

    def __init__(
        self,
        company_id: uuid.UUID,
        owner_id: uuid.UUID,
        owner_email: str,
        display_name: str,
        service_level: str,
        domain: Optional[str] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.company_id = company_id
        self.owner_id = owner_id
        self.owner_email = owner_email
        self.display_name = display_name
        self.service_level = service_level
        self.domain = domain

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "company_id": str(self.company_id),
            "owner_id": str(self.owner_id),
            "owner_email": self.owner_email,
            "display_name": self.display_name,
            "service_level": self.service_level,
            "domain": self.domain
        })
        return data


class PlanChanged(DomainEvent):
    """Event fired when a company's service level changes"""

    def __init__(
        self,
        company_id: uuid.UUID,
        previous_plan: str,
        new_plan: str,
        user_limit: int,
        deactivated_emails: List[str],
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.company_id = company_id
        self.previous_plan = previous_plan
        self.new_plan = new_plan
        self.user_limit = user_limit
        self.deactivated_emails = deactivated_emails

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "company_id": str(self.company_id),
            "previous_plan": self.previous_plan,
            "new_plan": self.new_plan,
            "user_limit": self.user_limit,
            "deactivated_emails": list(self.deactivated_emails)
        })
        return data


class TenantDeleted(DomainEvent):
    """Event fired after a company and all its dependent rows are removed"""

    def __init__(
        self,
        company_id: uuid.UUID,
        deleted_rows: Dict[str, int],
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.company_id = company_id
        self.deleted_rows = deleted_rows

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "company_id": str(self.company_id),
            "deleted_rows": dict(self.deleted_rows)
        })
        return data


class InvitationIssued(DomainEvent):
    """Event fired when an invitation is sent; carries the link for the mailer"""

    def __init__(
        self,
        invitation_id: uuid.UUID,
        company_id: uuid.UUID,
        invited_by_user_id: uuid.UUID,
        email: str,
        invitation_link: str,
        expires_at: datetime,
        company_name: str,
        personal_message: Optional[str] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.invitation_id = invitation_id
        self.company_id = company_id
        self.invited_by_user_id = invited_by_user_id
        self.email = email
        self.invitation_link = invitation_link
        self.expires_at = expires_at
        self.company_name = company_name
        self.personal_message = personal_message

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "invitation_id": str(self.invitation_id),
            "company_id": str(self.company_id),
            "invited_by_user_id": str(self.invited_by_user_id),
            "email": self.email,
            "invitation_link": self.invitation_link,
            "expires_at": self.expires_at.isoformat(),
            "company_name": self.company_name,
            "personal_message": self.personal_message
        })
        return data


class InvitationAccepted(DomainEvent):
    """Event fired when an invitation is consumed and the account created"""

    def __init__(
        self,
        invitation_id: uuid.UUID,
        company_id: uuid.UUID,
        company_user_id: uuid.UUID,
        email: str,
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.invitation_id = invitation_id
        self.company_id = company_id
        self.company_user_id = company_user_id
        self.email = email

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "invitation_id": str(self.invitation_id),
            "company_id": str(self.company_id),
            "company_user_id": str(self.company_user_id),
            "email": self.email
        })
        return data


class InvitationCancelled(DomainEvent):
    """Event fired when a pending invitation is withdrawn"""

    def __init__(
        self,
        invitation_id: uuid.UUID,
        company_id: uuid.UUID,
        email: str,
        cancelled_by_user_id: uuid.UUID,
        reason: Optional[str] = None,
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.invitation_id = invitation_id
        self.company_id = company_id
        self.email = email
        self.cancelled_by_user_id = cancelled_by_user_id
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "invitation_id": str(self.invitation_id),
            "company_id": str(self.company_id),
            "email": self.email,
            "cancelled_by_user_id": str(self.cancelled_by_user_id),
            "reason": self.reason
        })
        return data


class InvitationExpired(DomainEvent):
    """Event fired by the expiry sweep"""

    def __init__(
        self,
        invitation_id: uuid.UUID,
        company_id: uuid.UUID,
        email: str,
        expired_at: datetime,
        event_id: uuid.UUID = None
    ):
        super().__init__(event_id)
        self.invitation_id = invitation_id
        self.company_id = company_id
        self.email = email
        self.expired_at = expired_at

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "invitation_id": str(self.invitation_id),
            "company_id": str(self.company_id),
            "email": self.email,
            "expired_at": self.expired_at.isoformat()
        })
        return data


class EventBus:
    """Simple in-memory event bus for publishing domain events"""

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, handler: Callable):
        """Subscribe to a specific event type"""
        if event_type not in self._subscribers:
            self._subscribers[event_type] = []
        self._subscribers[event_type].append(handler)
        logger.debug("Subscribed handler", event_type=event_type)

    def unsubscribe(self, event_type: str, handler: Callable):
        """Unsubscribe from an event type"""
        if event_type in self._subscribers:
            self._subscribers[event_type].remove(handler)
            logger.debug("Unsubscribed handler", event_type=event_type)

    async def publish(self, event: DomainEvent):
        """Publish an event to all subscribers"""
        event_type = event.__class__.__name__
        handlers = self._subscribers.get(event_type, [])

        if not handlers:
            logger.debug("No subscribers for event", event_type=event_type)
            return

        logger.info("Publishing event", event_type=event_type, event_id=str(event.event_id))

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error("Error in event handler", event_type=event_type, error=str(e), exc_info=True)

    def clear_subscribers(self):
        """Clear all subscribers (useful for testing)"""
        self._subscribers.clear()
        logger.debug("Cleared all event subscribers")


# Global event bus instance
event_bus = EventBus()


async def publish_after_commit(events: Iterable[DomainEvent], bus: Optional[EventBus] = None) -> None:
    """Publish events for a transaction that has already committed. Never raises."""
    bus = bus or event_bus
    for evt in events:
        try:
            await bus.publish(evt)
        except Exception as e:
            logger.error(
                "Failed to publish event",
                event_type=evt.__class__.__name__,
                event_id=str(evt.event_id),
                error=str(e),
            )
