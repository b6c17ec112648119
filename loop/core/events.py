"""In-process domain event bus.

Services publish after a mutation has been committed. Subscribers (list
refresh hooks, notification fan-out) register per event type, or with
``"*"`` to receive everything.
"""
import threading
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

GROUP_CREATED = "group.created"
GROUP_PROFILE_CHANGED = "group.profile_changed"
GROUP_DEACTIVATED = "group.deactivated"
GROUP_ROSTER_CHANGED = "group.roster_changed"
MEDIA_POSTED = "media.posted"
MEDIA_LIKE_CHANGED = "media.like_changed"

ALL_EVENTS = "*"


@dataclass
class DomainEvent:
    event_type: str
    group_id: Any
    user_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Handler = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, event_type: str, handler: Handler) -> None:
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: DomainEvent) -> int:
        """Deliver event to subscribers. Returns the number of handlers that succeeded.

        The mutation that produced the event is already committed, so a failing
        subscriber is logged and does not fail the caller's operation.
        """
        with self._lock:
            handlers = list(self._handlers.get(event.event_type, []))
            handlers += self._handlers.get(ALL_EVENTS, [])
        delivered = 0
        for handler in handlers:
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception(f"Event handler failed for {event.event_type} (group {event.group_id})")
        logger.debug(f"Published {event.event_type} for group {event.group_id} to {delivered} handler(s)")
        return delivered

    def emit(self, event_type: str, group_id: Any, user_id: Optional[str] = None, **data) -> int:
        return self.publish(DomainEvent(event_type=event_type, group_id=group_id, user_id=user_id, data=data))
