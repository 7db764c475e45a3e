"""
Event Bus implementation for device-aware event routing.

The Event Bus is a simple, synchronous dispatcher for domain events. Every
Device owns one for its attribute events, and the hub owns one for the
notifications the DeviceManager republishes.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Optional, Dict, Any, Callable, List
import logging

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Get current UTC time (for default factory)."""
    return datetime.now(UTC)


@dataclass
class Event:
    """
    A domain event in the hub.

    Attributes:
        type: Event type (e.g., "temperature", "device.attribute_changed")
        source: Event source (e.g., a device id, "devices")
        device_id: Optional device ID this event relates to
        payload: Event-specific data
        timestamp: When the event occurred
    """

    type: str
    source: str
    device_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utc_now)


class EventFilter:
    """
    Filter for event subscriptions.

    Allows subscribers to filter events by type and device.
    """

    def __init__(
        self,
        event_type: Optional[str] = None,
        device_id: Optional[str] = None,
    ):
        """
        Initialize an event filter.

        Args:
            event_type: Filter by event type (None = all types)
            device_id: Filter by device ID (None = all devices)
        """
        self.event_type = event_type
        self.device_id = device_id

    def matches(self, event: Event) -> bool:
        """
        Check if an event matches this filter.

        Args:
            event: The event to check

        Returns:
            True if the event matches the filter
        """
        if self.event_type and event.type != self.event_type:
            return False

        if self.device_id and event.device_id != self.device_id:
            return False

        return True

    def __repr__(self) -> str:
        return f"EventFilter(event_type={self.event_type!r}, device_id={self.device_id!r})"


EventHandler = Callable[[Event], None]


class EventBus:
    """
    Simple, synchronous event bus for hub events.

    Handlers run in subscription order and are wrapped in try/except so that
    one bad listener cannot break dispatch for the others.
    """

    def __init__(self) -> None:
        """Initialize the event bus."""
        self._handlers: List[tuple[EventFilter, EventHandler]] = []

    def subscribe(
        self,
        handler: EventHandler,
        event_filter: Optional[EventFilter] = None,
    ) -> None:
        """
        Subscribe to events.

        Args:
            handler: Callable that receives Event objects
            event_filter: Optional filter for events (None = receive all events)
        """
        if event_filter is None:
            event_filter = EventFilter()

        self._handlers.append((event_filter, handler))
        logger.debug(f"Subscribed handler {_handler_name(handler)} with {event_filter}")

    def publish(self, event: Event) -> None:
        """
        Publish an event to all matching subscribers.

        Handlers are called synchronously and wrapped in try/except.

        Args:
            event: The event to publish
        """
        logger.debug(f"Publishing event: {event.type} from {event.source}")

        # Snapshot: handlers added or removed during dispatch take effect next time
        for event_filter, handler in list(self._handlers):
            if event_filter.matches(event):
                try:
                    handler(event)
                except Exception as e:
                    logger.error(
                        f"Error in event handler {_handler_name(handler)} "
                        f"for event {event.type}: {e}",
                        exc_info=True,
                    )

    def unsubscribe(self, handler: EventHandler) -> None:
        """
        Unsubscribe a handler from all events.

        Args:
            handler: The handler to unsubscribe
        """
        self._handlers = [(f, h) for f, h in self._handlers if h != handler]
        logger.debug(f"Unsubscribed handler {_handler_name(handler)}")

    def clear(self) -> None:
        """Drop every subscription."""
        self._handlers = []

    def handler_count(self, event_type: Optional[str] = None) -> int:
        """Count subscriptions, optionally only those filtering on one event type."""
        if event_type is None:
            return len(self._handlers)
        return sum(1 for f, _ in self._handlers if f.event_type == event_type)


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__name__", repr(handler))
