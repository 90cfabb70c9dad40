"""Order timeline - append-only audit trail of order events."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from poscore.models.order_timeline import OrderTimelineEvent, TimelineEvent

logger = logging.getLogger(__name__)


class OrderTimelineService:
    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        order_id: int,
        event_type: TimelineEvent,
        details: Optional[Dict[str, Any]] = None,
        created_by: Optional[int] = None,
    ) -> OrderTimelineEvent:
        """Add an event to the current transaction; the caller commits."""
        event = OrderTimelineEvent(
            order_id=order_id,
            event_type=event_type.value,
            details=details or {},
            created_by=created_by,
        )
        self.db.add(event)
        logger.debug(f"Order {order_id} timeline: {event_type.value}")
        return event

    def get_timeline(self, order_id: int) -> List[OrderTimelineEvent]:
        return (
            self.db.query(OrderTimelineEvent)
            .filter(OrderTimelineEvent.order_id == order_id)
            .order_by(OrderTimelineEvent.created_at, OrderTimelineEvent.id)
            .all()
        )
