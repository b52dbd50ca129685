"""Priority queue for deferred healing requests.

Requests are drained one at a time on a tick. The tick source is injected:
`IntervalTicker` in production, `ManualTicker` in tests.
"""

import asyncio
import heapq
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

from ..core.config import settings
from ..core.metrics import MetricsCollector, get_metrics_collector
from ..core.models.healing_models import StepFailure, TestExecution, TestStep

logger = logging.getLogger("healing.queue")

TickCallback = Callable[[], Awaitable[Any]]
QueueRunner = Callable[["QueuedHealing"], Awaitable[Any]]


@dataclass
class QueuedHealing:
    session_id: str
    execution: TestExecution
    failed_step: TestStep
    failure: StepFailure
    page: Any
    priority: int = 1
    queued_at: datetime = field(default_factory=datetime.now)


class IntervalTicker:
    """Fires the callback as a new task every ``interval_seconds``."""

    def __init__(self, interval_seconds: Optional[float] = None):
        self.interval_seconds = interval_seconds or settings.QUEUE_TICK_SECONDS
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, callback: TickCallback) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(callback))

    async def stop(self, grace_seconds: float = 5.0) -> None:
        """Stop ticking and settle drains already started.

        In-flight callbacks get ``grace_seconds`` to finish; whatever is still
        running after that is cancelled. Either way none outlive this call.
        """
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        inflight = list(self._inflight)
        if not inflight:
            return
        _, pending = await asyncio.wait(inflight, timeout=grace_seconds)
        for task in pending:
            logger.warning("Cancelling queue drain still running at shutdown")
            task.cancel()
        results = await asyncio.gather(*inflight, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Queue drain failed during shutdown: {result}")
        self._inflight.clear()

    async def _loop(self, callback: TickCallback):
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                task = asyncio.create_task(callback())
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)
            except asyncio.CancelledError:
                break


class ManualTicker:
    """Ticker driven by explicit `tick()` calls."""

    def __init__(self):
        self._callback: Optional[TickCallback] = None

    @property
    def running(self) -> bool:
        return self._callback is not None

    def start(self, callback: TickCallback) -> None:
        self._callback = callback

    async def stop(self) -> None:
        self._callback = None

    async def tick(self) -> Any:
        if self._callback is None:
            return None
        return await self._callback()


class HealingQueueScheduler:
    """Single-flight, priority-ordered healing queue.

    Higher priority drains first; equal priorities drain in submission order.
    At most one drain runs at a time, so a tick that lands while the previous
    item is still healing does nothing. There is no per-item deadline here; the
    orchestrator bounds the adaptation phase of each run, but a runner hung
    elsewhere holds the queue until it returns.
    """

    def __init__(self, runner: QueueRunner, ticker=None,
                 metrics: Optional[MetricsCollector] = None):
        self.runner = runner
        self.ticker = ticker or IntervalTicker()
        self.metrics = metrics or get_metrics_collector()
        self._heap: List[Tuple[int, int, QueuedHealing]] = []
        self._sequence = itertools.count()
        self._draining = False

    @property
    def pending_count(self) -> int:
        return len(self._heap)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def pending_session_ids(self) -> List[str]:
        """Queued session ids in drain order."""
        return [item.session_id for _, _, item in sorted(self._heap)]

    def queue(self, execution: TestExecution, failed_step: TestStep, failure: StepFailure,
              page, priority: int = 1) -> str:
        session_id = str(uuid.uuid4())
        item = QueuedHealing(
            session_id=session_id,
            execution=execution,
            failed_step=failed_step,
            failure=failure,
            page=page,
            priority=priority,
        )
        heapq.heappush(self._heap, (-priority, next(self._sequence), item))
        self.metrics.set_gauge("healing_queue_depth", len(self._heap))
        logger.info(
            f"Healing request queued: session={session_id} priority={priority} "
            f"queue_length={len(self._heap)}"
        )
        return session_id

    async def drain(self) -> bool:
        """Process the next queued item. Returns False when nothing ran."""
        if self._draining or not self._heap:
            return False

        self._draining = True
        try:
            _, _, item = heapq.heappop(self._heap)
            self.metrics.set_gauge("healing_queue_depth", len(self._heap))
            logger.info(f"Draining queued healing session {item.session_id}")
            await self.runner(item)
        except Exception as e:
            logger.error(f"Queue processing failed: {e}")
        finally:
            self._draining = False
        return True

    def start(self) -> None:
        self.ticker.start(self.drain)
        logger.info("Healing queue scheduler started")

    async def stop(self) -> None:
        await self.ticker.stop()
        logger.info(f"Healing queue scheduler stopped with {len(self._heap)} pending item(s)")
