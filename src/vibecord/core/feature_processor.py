"""
Shared shape of every feature processor.

A processor owns a bounded FIFO queue fed by the dispatcher, a connected
flag, and one consumer task that handles events strictly one at a time.
Subclasses implement :meth:`FeatureProcessor.handle_event` and
:meth:`FeatureProcessor.apply_config`.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

from vibecord.configuration.app_configuration import AppConfig
from vibecord.core.dedup import MessageDeduplicator
from vibecord.datatypes.event_datatypes import Event
from vibecord.util.logger import get_logger


class FeatureProcessor(ABC):
    """
    Base class for the responses, aichat and vibecheck features.

    Lifecycle:
        ``start()`` marks the processor connected and launches its consumer
        (and any extra loops from :meth:`background_loops`). ``stop()`` marks
        it disconnected and cancels the loops; it is idempotent and safe to
        call before ``start()``. Events still queued at stop are discarded, so a
        later ``start()`` begins empty. ``push_event`` never blocks: while stopped
        it does nothing, and with a full queue the event is dropped.
    """

    name: str = "feature"
    queue_size: int = 100

    def __init__(
        self,
        config: AppConfig,
        *,
        deduplicator: MessageDeduplicator | None = None,
        queue_size: int | None = None,
    ) -> None:
        self.logger = get_logger(f"feature.{self.name}")
        self.config = config
        self.dedupe = deduplicator or MessageDeduplicator()
        self.queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=queue_size or self.queue_size)
        self.dropped_events = 0
        self._connected = False
        self._tasks: List[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    def start(self) -> None:
        """Start the consumer loop. Must be called from a running event loop."""
        if self._connected:
            self.logger.warning("[%s] Already started", self.name.upper())
            return
        self.on_start()
        self._connected = True
        loop = asyncio.get_running_loop()
        self._tasks = [loop.create_task(self._consume(), name=f"vibecord-{self.name}-consumer")]
        for factory in self.background_loops():
            self._tasks.append(loop.create_task(factory(), name=f"vibecord-{self.name}-{factory.__name__.strip('_')}"))
        self.logger.debug("[%s] Feature started", self.name.upper())

    async def stop(self) -> None:
        """Stop all loops of this processor. Idempotent."""
        if not self._connected and not self._tasks:
            return
        self._connected = False
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                self.logger.error("[%s] Loop ended with error during stop: %s", self.name.upper(), exc)
        self._drain_queue()
        await self.on_stop()
        self.logger.debug("[%s] Feature stopped", self.name.upper())

    def _drain_queue(self) -> None:
        stale = 0
        while True:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self.queue.task_done()
            stale += 1
        if stale:
            self.logger.debug("[%s] Discarded %d queued event(s) on stop", self.name.upper(), stale)

    def background_loops(self) -> List[Callable[[], Awaitable[None]]]:
        """Extra long-lived coroutines to run next to the consumer."""
        return []

    def on_start(self) -> None:
        """Hook for (re)acquiring feature resources before the loops start."""

    async def on_stop(self) -> None:
        """Hook for releasing feature resources after the loops are gone."""

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def push_event(self, event: Event) -> bool:
        """Enqueue an event without blocking.

        Returns:
            bool: True if the event was queued.
        """
        if not self._connected:
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped_events += 1
            self.logger.warning("[%s] Events queue full, dropping event.", self.name.upper())
            return False
        return True

    async def _consume(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self.process_event(event)
            except asyncio.CancelledError:
                raise
            except Exception:
                self.logger.exception("[%s] Unhandled error while processing %s event", self.name.upper(), event.kind)
            finally:
                self.queue.task_done()

    async def process_event(self, event: Event) -> None:
        """Drop bot messages and duplicates, then hand the event to the feature."""
        if event.is_message:
            if event.from_bot:
                return
            if self.dedupe.is_duplicate(event.user_id, event.channel_id, event.message_id):
                self.logger.debug(
                    "[%s] Skipping duplicate message user=%s channel=%s id=%s",
                    self.name.upper(), event.user_id, event.channel_id, event.message_id,
                )
                return
        await self.handle_event(event)

    @abstractmethod
    async def handle_event(self, event: Event) -> None:
        """Feature logic for one deduplicated event."""

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def on_config_changed(self, config: AppConfig) -> None:
        """Subscriber callback: swap in the new snapshot."""
        self.config = config
        self.apply_config(config)
        self.logger.debug("[%s] Configuration updated", self.name.upper())

    def apply_config(self, config: AppConfig) -> None:
        """Refresh feature-local state derived from the snapshot."""

    def __repr__(self) -> str:
        state: Optional[str] = "connected" if self._connected else "stopped"
        return f"<{type(self).__name__} {self.name} {state} queued={self.queue.qsize()}>"
