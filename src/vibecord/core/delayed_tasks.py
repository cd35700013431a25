"""
Cancellable delayed actions.

Side effects that must happen "a little later" (kicking a user a few seconds
after their ban is recorded) go through :class:`DelayedTaskScheduler` instead
of loose timers, so shutdown can cancel whatever is still pending.
"""
import asyncio
import heapq
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Hashable

from vibecord.util.logger import get_logger

logger = get_logger("delayed_tasks")

DelayedAction = Callable[[], Awaitable[None]]


@dataclass
class ScheduledTask:
    """
    A deferred action waiting in the scheduler heap.

    Attributes:
        key (Hashable): Identity of the action; scheduling the same key again replaces it.
        action (DelayedAction): Zero-argument coroutine factory run when the delay elapses.
        description (str): Human-readable label for logs.
    """
    key: Hashable
    action: DelayedAction
    description: str = ""


class DelayedTaskScheduler:
    """
    Runs keyed actions after a delay.

    Uses a min-heap ordered by due time and a single runner task. Cancelled
    jobs stay in the heap and are skipped when they reach the top.

    Attributes:
        heap (list): Min-heap of (run_at, job_id, task) tuples.
        pending_keys (Dict): Maps task key to its live job_id.
        cancelled_ids (set): Job IDs that must be skipped.
        counter (int): Monotonically increasing job ID counter.
        runner_task (asyncio.Task | None): Background task processing the schedule.
        condition (asyncio.Condition): Wakes the runner when the heap changes.
    """

    def __init__(self, name: str = "delayed-tasks") -> None:
        self.name = name
        self.heap: list[tuple[float, int, ScheduledTask]] = []
        self.pending_keys: Dict[Hashable, int] = {}
        self.cancelled_ids: set[int] = set()
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()
        self._closed = False

    def ensure_runner(self) -> None:
        """Create the background runner task if it's not already active."""
        loop = asyncio.get_running_loop()
        if self.runner_task is None or self.runner_task.done():
            self.runner_task = loop.create_task(self.run(), name=f"vibecord-{self.name}")

    async def schedule(
        self,
        key: Hashable,
        delay_seconds: float,
        action: DelayedAction,
        *,
        description: str = "",
    ) -> bool:
        """
        Schedule ``action`` to run after ``delay_seconds``.

        A pending job with the same key is cancelled and replaced. Non-positive
        delays run the action immediately.

        Returns:
            bool: False if the scheduler has been shut down and nothing was scheduled.
        """
        if self._closed:
            logger.warning("[%s] Scheduler closed, dropping %s", self.name, description or key)
            return False

        task = ScheduledTask(key=key, action=action, description=description)

        if delay_seconds <= 0:
            await self.execute(task)
            return True

        loop = asyncio.get_running_loop()
        run_at = loop.time() + delay_seconds

        async with self.condition:
            self.ensure_runner()
            if key in self.pending_keys:
                self.cancelled_ids.add(self.pending_keys[key])

            self.counter += 1
            job_id = self.counter
            heapq.heappush(self.heap, (run_at, job_id, task))
            self.pending_keys[key] = job_id
            self.condition.notify_all()
        return True

    async def cancel(self, key: Hashable) -> bool:
        """
        Cancel a pending action.

        Returns:
            bool: True if a pending job was found and cancelled.
        """
        async with self.condition:
            job_id = self.pending_keys.pop(key, None)
            if job_id is None:
                return False

            self.cancelled_ids.add(job_id)
            self.condition.notify_all()
            return True

    def is_pending(self, key: Hashable) -> bool:
        return key in self.pending_keys

    @property
    def pending_count(self) -> int:
        return len(self.pending_keys)

    def reopen(self) -> None:
        """Accept new work again after :meth:`shutdown`."""
        self._closed = False

    async def shutdown(self) -> None:
        """
        Stop the runner and drop every pending action.

        Safe to call multiple times and before anything was scheduled.
        """
        self._closed = True
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            dropped = len(self.pending_keys)
            self.heap.clear()
            self.pending_keys.clear()
            self.cancelled_ids.clear()
            self.condition.notify_all()

        if dropped:
            logger.info("[%s] Cancelled %d pending action(s) on shutdown", self.name, dropped)

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    async def run(self) -> None:
        """Runner loop: wait for the earliest job, pop it and execute it."""
        loop = asyncio.get_running_loop()
        while True:
            async with self.condition:
                while self.heap and self.heap[0][1] in self.cancelled_ids:
                    _, job_id, _ = heapq.heappop(self.heap)
                    self.cancelled_ids.discard(job_id)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at, _, _ = self.heap[0]
                delay = run_at - loop.time()

                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                _, job_id, task = heapq.heappop(self.heap)
                if self.pending_keys.get(task.key) == job_id:
                    del self.pending_keys[task.key]

            await self.execute(task)

    async def execute(self, task: ScheduledTask) -> None:
        """Run one action, logging instead of propagating its failure."""
        try:
            await task.action()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[%s] Delayed action %s failed: %s", self.name, task.description or task.key, exc)
