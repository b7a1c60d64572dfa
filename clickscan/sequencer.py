"""
Single-flight FIFO sequencing of detection cycles.

Every submitted trigger becomes a DetectionCycle appended to one queue
drained by one worker. A cycle starts only after the previous one has
fully finished, dispatch included, so a burst of clicks degrades to
sequential processing. A failing cycle is logged and recorded in its
outcome; the next one runs regardless.

Non-goals:
    - No cancellation of in-flight cycles and no timeouts. A hang in a
      cycle stalls the queue behind it.
    - No duplicate suppression: every submit() is one cycle.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from clickscan.detection import DetectedBarcode, DetectionTrigger

logger = logging.getLogger(__name__)


class CycleStage(Enum):
    QUEUED = "queued"
    RESOLVING_REGION = "resolving-region"
    AWAITING_RASTER = "awaiting-raster"
    DECODING = "decoding"
    FILTERING = "filtering"
    DISPATCHING = "dispatching"
    DONE = "done"


class CycleStatus(Enum):
    COMPLETED = "completed"
    NO_RASTER = "no-raster"
    UNREACHABLE = "unreachable"
    INVALID_POLICY = "invalid-policy"
    FAILED = "failed"


@dataclass(frozen=True)
class CycleOutcome:
    """How a cycle ended.

    Attributes:
        status: Terminal status.
        decoded_count: Codes returned by the decoder.
        dispatched_count: Distinct results handed to any surface.
        opened: Payloads sent to the open surface, in order.
        copied: Payloads sent to the copy surface, in order.
        error: The exception that aborted the cycle, if any.
    """

    status: CycleStatus
    decoded_count: int = 0
    dispatched_count: int = 0
    opened: Tuple[str, ...] = ()
    copied: Tuple[str, ...] = ()
    error: Optional[BaseException] = None


_cycle_ids = itertools.count(1)


@dataclass
class DetectionCycle:
    """Context for one click, owned by whoever is running it.

    Carries everything the cycle reads or produces so no stage has to reach
    for shared state: the trigger, the resolved plan, the decoded and
    filtered results, the current stage, and a future for the outcome.
    """

    trigger: DetectionTrigger
    id: int = field(default_factory=lambda: next(_cycle_ids))
    stage: CycleStage = CycleStage.QUEUED
    plan: Any = None
    decoded: List[DetectedBarcode] = field(default_factory=list)
    relevant: List[DetectedBarcode] = field(default_factory=list)
    done: asyncio.Future = field(default_factory=lambda: asyncio.get_running_loop().create_future())

    def advance(self, stage: CycleStage) -> None:
        logger.debug("Cycle %d: %s → %s", self.id, self.stage.value, stage.value)
        self.stage = stage

    def finish(self, outcome: CycleOutcome) -> CycleOutcome:
        self.advance(CycleStage.DONE)
        if not self.done.done():
            self.done.set_result(outcome)
        return outcome

    async def wait(self) -> CycleOutcome:
        """Wait for the cycle to finish and return its outcome."""
        return await asyncio.shield(self.done)


CycleRunner = Callable[[DetectionCycle], Awaitable[CycleOutcome]]


class TaskSequencer:
    """FIFO queue of detection cycles with a single worker.

    Usage:
        sequencer = TaskSequencer(runner)
        await sequencer.start()
        cycle = sequencer.submit(trigger)
        outcome = await cycle.wait()
        await sequencer.close()
    """

    def __init__(self, runner: CycleRunner) -> None:
        self._runner = runner
        self._queue: "asyncio.Queue[DetectionCycle]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._active: Optional[DetectionCycle] = None

    @property
    def active(self) -> Optional[DetectionCycle]:
        """The cycle currently past the queued stage, if any."""
        return self._active

    @property
    def pending(self) -> int:
        """Cycles waiting behind the active one."""
        return self._queue.qsize()

    async def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name="cycle-worker")

    def submit(self, trigger: DetectionTrigger) -> DetectionCycle:
        """Append a cycle for trigger to the queue and return it."""
        cycle = DetectionCycle(trigger=trigger)
        self._queue.put_nowait(cycle)
        logger.info("Cycle %d queued (%d waiting).", cycle.id, self._queue.qsize())
        return cycle

    async def drain(self) -> None:
        """Wait until every submitted cycle has finished."""
        await self._queue.join()

    async def close(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.wait({self._worker})
            self._worker = None

    async def _run(self) -> None:
        while True:
            cycle = await self._queue.get()
            self._active = cycle
            try:
                outcome = await self._runner(cycle)
                cycle.finish(outcome)
            except Exception as e:
                logger.exception("Cycle %d failed", cycle.id)
                cycle.finish(CycleOutcome(status=CycleStatus.FAILED, error=e))
            finally:
                self._active = None
                self._queue.task_done()
