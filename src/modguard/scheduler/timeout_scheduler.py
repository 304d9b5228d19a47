"""
In-memory scheduler that lifts timed moderation actions (mutes, bans) when
they run out.

The scheduler only keeps time. Persisting a pending action is the moderation
service's job; the scheduler touches the timeout store only when a timer
fires. It removes the matching row, and that removal doubles as the claim
that decides whether the reversal runs. A manual cancellation removes the
same row first, so a fire and a cancel racing on one key can never both
complete. A reversal that fails writes its row back and is retried.
"""

from __future__ import annotations

import asyncio
import heapq
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, Optional, Protocol

from modguard.datatypes.action_datatypes import ActionType, TimeoutEntry, TimeoutKey
from modguard.datatypes.discord_datatypes import GuildID, UserID
from modguard.exceptions import ReversalFailed, SchedulingFailure, StorageUnavailable
from modguard.util.logger import get_logger

logger = get_logger("timeout_scheduler")

# Delay before retrying a fire whose claim or reversal failed.
CLAIM_RETRY_SECONDS = 30.0

# Cancelled jobs are dropped from the heap once they outnumber pending ones.
COMPACT_MIN_HEAP = 64

ReversalCallback = Callable[[GuildID, UserID, ActionType], Awaitable[None]]


class TimeoutClaimStore(Protocol):
    """The timeout store operations the scheduler needs."""

    async def remove(self, key: TimeoutKey, *, timer_id: Optional[int] = None) -> Optional[int]:
        ...

    async def restore(self, key: TimeoutKey, end_time: int, timer_id: int) -> bool:
        ...


class TimerState(Enum):
    """Lifecycle of a single timer: PENDING -> FIRED | CANCELLED."""

    PENDING = "pending"
    FIRED = "fired"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class ScheduledTimeout:
    """
    One armed timer.

    Attributes:
        key (TimeoutKey): Guild, user and action type the timer belongs to.
        end_time (int): Unix seconds at which the action expires.
        timer_id (int): Handle returned to the caller and persisted as the correlation token.
        state (TimerState): Current lifecycle state.
        claimed (bool): The store row is held by this job and could not be written back.
    """
    key: TimeoutKey
    end_time: int
    timer_id: int
    state: TimerState = TimerState.PENDING
    claimed: bool = False


@dataclass(frozen=True, slots=True)
class ReconcileReport:
    """Counts from a startup reconciliation pass."""
    fired: int = 0
    armed: int = 0
    skipped: int = 0
    failed: int = 0


class TimeoutScheduler:
    """
    Min-heap scheduler for timed moderation actions.

    Attributes:
        heap (list): Min-heap of (run_at, timer_id, job) tuples; cancelled jobs are dropped lazily.
        jobs (Dict[int, ScheduledTimeout]): Pending jobs by handle.
        counter (int): Last handle handed out; bumped past restored handles.
        runner_task (asyncio.Task | None): Background task processing the heap.
        condition (asyncio.Condition): Coordination primitive for runner wakeup.
    """

    def __init__(
        self,
        timeout_store: Optional[TimeoutClaimStore] = None,
        on_expire: Optional[ReversalCallback] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.heap: list[tuple[float, int, ScheduledTimeout]] = []
        self.jobs: Dict[int, ScheduledTimeout] = {}
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()
        self._timeout_store = timeout_store
        self._on_expire = on_expire
        self._clock = clock
        self._closed = False

    def bind(
        self,
        *,
        timeout_store: Optional[TimeoutClaimStore] = None,
        on_expire: Optional[ReversalCallback] = None,
    ) -> None:
        """Attach the store and reversal callback once the service exists."""
        if timeout_store is not None:
            self._timeout_store = timeout_store
        if on_expire is not None:
            self._on_expire = on_expire

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure_runner(self) -> None:
        """Create the background runner task if it's not already active."""
        loop = asyncio.get_running_loop()
        if self.runner_task is None or self.runner_task.done():
            self.runner_task = loop.create_task(self.run(), name="modguard-timeout-scheduler")

    async def schedule(self, key: TimeoutKey, end_time: int, *, timer_id: Optional[int] = None) -> int:
        """
        Arm a timer that fires at ``end_time`` (unix seconds).

        Args:
            key: Guild, user and action type of the timed action.
            end_time: Expiry as unix seconds; past values fire on the next runner pass.
            timer_id: Re-arm under a handle restored from storage instead of a new one.

        Returns:
            int: The handle identifying the timer.

        Raises:
            SchedulingFailure: If the scheduler is shut down, there is no
                running event loop, or the restored handle is already live.
        """
        if self._closed:
            raise SchedulingFailure("Timeout scheduler is shut down")
        if key.action.reversal is None:
            raise SchedulingFailure(f"{key.action.value} actions cannot expire")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise SchedulingFailure("No running event loop") from exc

        async with self.condition:
            if timer_id is None:
                self.counter += 1
                timer_id = self.counter
            elif timer_id in self.jobs:
                raise SchedulingFailure(f"Timer {timer_id} is already armed")
            else:
                self.counter = max(self.counter, timer_id)

            job = ScheduledTimeout(key=key, end_time=int(end_time), timer_id=timer_id)
            run_at = loop.time() + max(0.0, end_time - self._clock())
            heapq.heappush(self.heap, (run_at, timer_id, job))
            self.jobs[timer_id] = job
            self.ensure_runner()
            self.condition.notify_all()

        logger.debug("[TIMEOUT SCHEDULER] Armed timer %d for %s at unix=%d", timer_id, key, end_time)
        return timer_id

    async def cancel(self, timer_id: int) -> None:
        """
        Cancel a pending timer. Unknown, fired and cancelled handles are a no-op.

        The job stays in the heap until the runner reaches it, or until
        cancelled jobs make up most of the heap and it is compacted.
        """
        async with self.condition:
            job = self.jobs.pop(timer_id, None)
            if job is None:
                return
            job.state = TimerState.CANCELLED
            if len(self.heap) >= COMPACT_MIN_HEAP and len(self.heap) > 2 * len(self.jobs):
                self._compact()
            self.condition.notify_all()

        logger.debug("[TIMEOUT SCHEDULER] Cancelled timer %d for %s", timer_id, job.key)

    def is_pending(self, timer_id: int) -> bool:
        return timer_id in self.jobs

    async def reconcile(self, entries: Iterable[TimeoutEntry]) -> ReconcileReport:
        """
        Turn persisted timeout rows into live timers at startup.

        Rows whose end time has passed are fired right here and awaited, so a
        caller that awaits this method knows every missed expiry has been
        handled. The rest are re-armed under their persisted handle; the old
        process's timer objects are never resumed, only rebuilt from the row.

        Returns:
            ReconcileReport: How many rows were fired, armed, skipped or failed.
        """
        fired = armed = skipped = failed = 0
        now = self._clock()

        for entry in sorted(entries, key=lambda e: e.end_time):
            if entry.end_time <= now:
                async with self.condition:
                    self.counter = max(self.counter, entry.timer_id)
                job = ScheduledTimeout(key=entry.key, end_time=entry.end_time, timer_id=entry.timer_id)
                if await self._fire(job):
                    fired += 1
                elif job.state is TimerState.CANCELLED:
                    skipped += 1
                else:
                    failed += 1
                    await self._rearm(job, CLAIM_RETRY_SECONDS)
                continue

            try:
                await self.schedule(entry.key, entry.end_time, timer_id=entry.timer_id)
                armed += 1
            except SchedulingFailure as exc:
                failed += 1
                logger.error("[TIMEOUT SCHEDULER] Could not re-arm %s: %s", entry.key, exc)

        report = ReconcileReport(fired=fired, armed=armed, skipped=skipped, failed=failed)
        logger.info(
            "[TIMEOUT SCHEDULER] Reconciled %d rows: %d fired, %d armed, %d skipped, %d failed",
            fired + armed + skipped + failed, fired, armed, skipped, failed,
        )
        return report

    async def shutdown(self) -> None:
        """
        Stop the runner and drop every in-memory timer.

        Persisted rows are left alone; the next start reconciles them.
        Safe to call multiple times.
        """
        async with self.condition:
            self._closed = True
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.jobs.clear()
            self.condition.notify_all()

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """
        Background loop that fires timers as they come due.

        Cancelled jobs at the top of the heap are discarded; a due job is
        removed from ``jobs`` before it fires, so a cancel arriving afterwards
        is a no-op at this level and is settled by the store claim instead.
        """
        loop = asyncio.get_running_loop()
        while True:
            async with self.condition:
                while self.heap and self.heap[0][2].state is not TimerState.PENDING:
                    heapq.heappop(self.heap)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at, _, job = self.heap[0]
                delay = run_at - loop.time()

                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                heapq.heappop(self.heap)
                self.jobs.pop(job.timer_id, None)

            try:
                fired = await self._fire(job)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[TIMEOUT SCHEDULER] Unexpected error firing timer %d", job.timer_id)
                continue

            if not fired and job.state is TimerState.PENDING:
                await self._rearm(job, CLAIM_RETRY_SECONDS)

    async def _rearm(self, job: ScheduledTimeout, delay: float) -> None:
        loop = asyncio.get_running_loop()
        async with self.condition:
            if self._closed or job.timer_id in self.jobs:
                return
            heapq.heappush(self.heap, (loop.time() + delay, job.timer_id, job))
            self.jobs[job.timer_id] = job
            self.ensure_runner()
            self.condition.notify_all()
        logger.warning("[TIMEOUT SCHEDULER] Retrying timer %d for %s in %.0fs", job.timer_id, job.key, delay)

    def _compact(self) -> None:
        self.heap = [item for item in self.heap if item[2].state is TimerState.PENDING]
        heapq.heapify(self.heap)
        logger.debug("[TIMEOUT SCHEDULER] Compacted heap to %d timers", len(self.heap))

    async def _fire(self, job: ScheduledTimeout) -> bool:
        """
        Claim the job's store row, then run the reversal callback.

        Returns:
            bool: True if the reversal completed. False if the row was
            already gone or superseded (state becomes CANCELLED), or if the
            claim or the reversal failed (state stays PENDING and the caller
            re-arms the job).
        """
        if self._timeout_store is not None and not job.claimed:
            try:
                claimed = await self._timeout_store.remove(job.key, timer_id=job.timer_id)
            except StorageUnavailable as exc:
                logger.error("[TIMEOUT SCHEDULER] Cannot claim timer %d for %s: %s", job.timer_id, job.key, exc)
                return False
            if claimed is None:
                job.state = TimerState.CANCELLED
                logger.debug("[TIMEOUT SCHEDULER] Timer %d for %s lost to a cancellation", job.timer_id, job.key)
                return False
            job.claimed = True

        logger.info("[TIMEOUT SCHEDULER] Timer %d fired: lifting %s", job.timer_id, job.key)

        if self._on_expire is not None:
            try:
                await self._on_expire(job.key.guild_id, job.key.user_id, job.key.action)
            except asyncio.CancelledError:
                await self._release(job)
                raise
            except ReversalFailed as exc:
                logger.warning("[TIMEOUT SCHEDULER] Could not lift %s: %s", job.key, exc)
                await self._release(job)
                return False
            except Exception:
                logger.exception("[TIMEOUT SCHEDULER] Reversal of %s failed", job.key)
                await self._release(job)
                return False

        job.state = TimerState.FIRED
        job.claimed = False
        return True

    async def _release(self, job: ScheduledTimeout) -> None:
        """Write a claimed row back after a failed reversal so cancels and restarts still see it."""
        if self._timeout_store is None or not job.claimed:
            return
        try:
            restored = await self._timeout_store.restore(job.key, job.end_time, job.timer_id)
        except StorageUnavailable as exc:
            # The job keeps its claim and skips the store on the next attempt.
            logger.error("[TIMEOUT SCHEDULER] Cannot write back timer %d for %s: %s", job.timer_id, job.key, exc)
            return

        job.claimed = False
        if not restored:
            job.state = TimerState.CANCELLED
            logger.info("[TIMEOUT SCHEDULER] %s was registered again; dropping timer %d", job.key, job.timer_id)
