"""
Event system for the translation pipeline.

Workers and the budget ledger emit lifecycle events; monitoring code
subscribes to the ones it cares about. Nothing in the pipeline depends on a
subscriber being present.
"""

from __future__ import annotations

import fnmatch
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

# Type for event handlers
EventHandler = Callable[["Event"], Awaitable[list["Event"]]]


@dataclass
class Event:
    """
    An event in the system.

    Events are immutable records of something that happened. They carry
    all the context needed for handlers to process them.
    """

    event_type: str  # e.g., "translation.completed", "budget.alert"
    subject_id: str  # Content unit id, job id or budget month
    payload: dict[str, Any] = field(default_factory=dict)

    # Tracing
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    correlation_id: str | None = None  # Usually the job id

    # Timing
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        return {
            "id": self.id,
            "event_type": self.event_type,
            "subject_id": self.subject_id,
            "payload": self.payload,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Subscription:
    """A subscription to events matching a pattern."""

    pattern: str  # e.g., "translation.*" or "budget.alert"
    handler: EventHandler

    def matches(self, event: Event) -> bool:
        return fnmatch.fnmatch(event.event_type, self.pattern)


class EventBus:
    """
    In-memory event bus implementation.

    Suitable for a single-process deployment. Handler errors are logged and
    never propagate into the publisher.
    """

    def __init__(self, max_history: int = 10000):
        self._subscriptions: list[Subscription] = []
        self._event_history: list[Event] = []
        self._max_history = max_history

    def subscribe(self, pattern: str, handler: EventHandler) -> Subscription:
        """
        Subscribe to events matching a pattern.

        Args:
            pattern: Event type pattern (supports wildcards like "translation.*")
            handler: Async function to handle matching events

        Returns:
            The subscription object (can be used to unsubscribe).
            Subscribing the same handler to the same pattern again returns
            the existing subscription.
        """
        for existing in self._subscriptions:
            if existing.pattern == pattern and existing.handler is handler:
                return existing
        subscription = Subscription(pattern=pattern, handler=handler)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription."""
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def publish(self, event: Event) -> list[Event]:
        """
        Publish an event and return any events produced by handlers.

        Handlers can return new events, which are then also published.
        """
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history:]

        matching = [s for s in self._subscriptions if s.matches(event)]

        all_resulting_events: list[Event] = []
        for subscription in matching:
            try:
                resulting_events = await subscription.handler(event)
                all_resulting_events.extend(resulting_events or [])
            except Exception:
                # Don't stop other handlers
                logger.exception("Error in event handler for %s", event.event_type)

        for resulting_event in list(all_resulting_events):
            cascade_events = await self.publish(resulting_event)
            all_resulting_events.extend(cascade_events)

        return all_resulting_events

    def get_history(
        self,
        event_type: str | None = None,
        subject_id: str | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Query event history with optional filters."""
        results = self._event_history

        if event_type:
            results = [e for e in results if fnmatch.fnmatch(e.event_type, event_type)]

        if subject_id:
            results = [e for e in results if e.subject_id == subject_id]

        return results[-limit:]


# Singleton event bus for the application
_default_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the default event bus instance."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> None:
    """Reset the default event bus (useful for testing)."""
    global _default_bus
    _default_bus = None


# Convenience constructors for pipeline events
def translation_claimed(content_unit_id: str, language: str, job_id: str | None) -> Event:
    return Event(
        event_type="translation.claimed",
        subject_id=content_unit_id,
        correlation_id=job_id,
        payload={"language": language},
    )


def translation_completed(
    content_unit_id: str,
    language: str,
    job_id: str | None,
    **extra_payload,
) -> Event:
    return Event(
        event_type="translation.completed",
        subject_id=content_unit_id,
        correlation_id=job_id,
        payload={"language": language, **extra_payload},
    )


def translation_failed(
    content_unit_id: str,
    language: str,
    job_id: str | None,
    error: str,
    **extra_payload,
) -> Event:
    return Event(
        event_type="translation.failed",
        subject_id=content_unit_id,
        correlation_id=job_id,
        payload={"language": language, "error": error, **extra_payload},
    )


def job_finished(job_id: str, status: str, **extra_payload) -> Event:
    return Event(
        event_type="job.finished",
        subject_id=job_id,
        correlation_id=job_id,
        payload={"status": status, **extra_payload},
    )


def budget_alert(month: str, alert_type: str, **extra_payload) -> Event:
    return Event(
        event_type="budget.alert",
        subject_id=month,
        payload={"alert_type": alert_type, **extra_payload},
    )
