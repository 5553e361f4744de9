import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from loguru import logger
from pydantic import BaseModel, Field


class GateEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    source: str
    payload: Dict[str, Any]


class EventBus:
    """A lightweight, synchronous event bus shared by one command invocation."""

    def __init__(self):
        self._subscribers: List[Callable[[GateEvent], None]] = []

    def subscribe(self, callback: Callable[[GateEvent], None]) -> None:
        """Register a callback to be executed when an event is emitted."""
        self._subscribers.append(callback)

    def emit(self, event_type: str, source: str, payload: Dict[str, Any]) -> GateEvent:
        """Construct and broadcast a GateEvent to all subscribers."""
        event = GateEvent(
            event_type=event_type,
            source=source,
            payload=payload,
        )

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                # A failing subscriber must not abort the command that emitted.
                logger.error(f"[EVENTS] Subscriber failed on {event_type}: {e}")

        return event
