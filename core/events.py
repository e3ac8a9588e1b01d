"""
Domain events emitted by the core.

Services record events against the session of the atomic unit they run in;
``Database.transaction`` publishes them only after that unit commits, so a
subscriber never observes a change that was rolled back.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

PENDING_EVENTS_KEY = "pending_domain_events"


class EventType(str, Enum):
    """Event names consumed by notification and audit collaborators."""

    USER_REGISTERED = "user.registered"
    REFERRAL_CREATED = "referral.created"
    REFERRAL_STATUS_CHANGED = "referral.status_changed"
    TRANSACTION_COMPLETED = "transaction.completed"
    DISPUTE_OPENED = "dispute.opened"
    DISPUTE_RESOLVED = "dispute.resolved"


@dataclass(frozen=True)
class DomainEvent:
    """Something that happened in the core."""

    type: EventType
    target_type: str
    target_id: int
    actor_user_id: Optional[int] = None
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    """In-process publish/subscribe for domain events."""

    def __init__(self) -> None:
        self._handlers: dict[Optional[EventType], list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: Optional[EventType], handler: EventHandler) -> None:
        """
        Register a handler.

        Args:
            event_type: Event to listen for, or None for every event
            handler: Coroutine function receiving the event
        """
        self._handlers[event_type].append(handler)

    async def publish(self, event: DomainEvent) -> None:
        """
        Deliver an event to its subscribers.

        The change the event describes is already committed, so a failing
        subscriber is logged and does not affect the caller.
        """
        handlers = self._handlers.get(event.type, []) + self._handlers.get(None, [])
        for handler in handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    f"Event handler {getattr(handler, '__qualname__', handler)} "
                    f"failed for {event.type.value} {event.target_type}#{event.target_id}"
                )


def record_event(session: AsyncSession, event: DomainEvent) -> None:
    """Queue an event for publication once the session's transaction commits."""
    session.info.setdefault(PENDING_EVENTS_KEY, []).append(event)


def pop_pending_events(session: AsyncSession) -> list[DomainEvent]:
    return session.info.pop(PENDING_EVENTS_KEY, [])
