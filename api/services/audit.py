"""
Audit subscriber.

Persists every domain event to ``audit_logs`` and mirrors it as a
structured line on the ``security.audit`` logger.
"""

import logging

from core.events import DomainEvent, EventBus
from database.engine import Database
from database.models.audit import AuditLog

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("security.audit")


class AuditRecorder:
    def __init__(self, database: Database):
        self.database = database

    def attach(self, events: EventBus) -> None:
        """Subscribe to every event on the bus."""
        events.subscribe(None, self.record)

    async def record(self, event: DomainEvent) -> None:
        # Own unit of work: the change being audited is already committed
        async with self.database.transaction() as session:
            session.add(
                AuditLog(
                    actor_user_id=event.actor_user_id,
                    action=event.type.value,
                    target_type=event.target_type,
                    target_id=event.target_id,
                    details=event.payload,
                    timestamp=event.occurred_at,
                )
            )

        audit_logger.info(
            f"{event.type.value} {event.target_type}#{event.target_id}",
            extra={
                "extra_fields": {
                    "event_type": event.type.value,
                    "actor_user_id": event.actor_user_id,
                    "target_type": event.target_type,
                    "target_id": event.target_id,
                    "payload": event.payload,
                }
            },
        )
