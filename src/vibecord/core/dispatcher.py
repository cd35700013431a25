"""Fan-out of normalized platform events to every feature processor."""

from __future__ import annotations

from typing import Any, List, Mapping, Protocol

from vibecord.datatypes.event_datatypes import Event, EventValidationError
from vibecord.util.logger import get_logger

logger = get_logger("dispatcher")


class EventProcessor(Protocol):
    """What the dispatcher needs from a processor."""

    name: str

    def push_event(self, event: Event) -> bool:
        ...


class EventDispatcher:
    """
    Delivers each event to all registered processors without blocking.

    Processors are registered once at startup. A processor with a full queue
    drops its copy; the others still receive theirs.
    """

    def __init__(self) -> None:
        self._processors: List[EventProcessor] = []
        self.malformed_events = 0

    def register(self, processor: EventProcessor) -> None:
        if processor in self._processors:
            logger.warning("[DISPATCHER] Processor %s already registered", processor.name)
            return
        self._processors.append(processor)
        logger.info("[DISPATCHER] Registered %s processor", processor.name)

    @property
    def processors(self) -> tuple[EventProcessor, ...]:
        return tuple(self._processors)

    def dispatch(self, event: Event) -> int:
        """Push ``event`` to every processor.

        Returns:
            int: Number of processors that accepted the event.
        """
        logger.debug(
            "[DISPATCHER] %s event user=%s channel=%s id=%s",
            event.kind, event.user_id, event.channel_id, event.message_id,
        )
        accepted = 0
        for processor in self._processors:
            if processor.push_event(event):
                accepted += 1
        return accepted

    def dispatch_payload(self, payload: Mapping[str, Any]) -> int:
        """Validate a raw payload and dispatch it; malformed payloads are dropped."""
        try:
            event = Event.from_payload(payload)
        except EventValidationError as exc:
            self.malformed_events += 1
            logger.warning("[DISPATCHER] Dropping malformed event: %s", exc)
            return 0
        return self.dispatch(event)
