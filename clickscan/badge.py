"""
Badge state machine: the visible progress indicator of detection cycles.

States:
    idle → busy → intermediate(n) → complete(n) → clear → idle

Transitions are queued on their own FIFO and applied by a single worker,
each one only after the renderer has committed the previous effect. A
complete(n) schedules a clear after a fixed delay; any newer transition
cancels that clear, including one already queued but not yet applied.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

# Hard-coded visual treatment (cosmetic, not user-facing configuration)
BUSY_TEXT = "…"
BUSY_COLOR = "#9e9e9e"
INTERMEDIATE_COLOR = "#ffb300"
COMPLETE_COLOR = "#43a047"
EMPTY_COLOR = "#e53935"


class BadgeKind(Enum):
    IDLE = "idle"
    BUSY = "busy"
    INTERMEDIATE = "intermediate"
    COMPLETE = "complete"
    CLEAR = "clear"


@dataclass(frozen=True)
class BadgeState:
    kind: BadgeKind
    count: Optional[int] = None


@dataclass(frozen=True)
class BadgeEffect:
    """What the renderer should show. color None means no background."""

    text: str
    color: Optional[str]


class BadgeRenderer(Protocol):
    async def apply(self, effect: BadgeEffect) -> None: ...


class LoggingBadgeRenderer:
    """Renderer for headless use: reports every effect to the log."""

    async def apply(self, effect: BadgeEffect) -> None:
        if effect.text:
            logger.info("Badge: %s (%s)", effect.text, effect.color)
        else:
            logger.info("Badge cleared.")


def effect_for(state: BadgeState) -> BadgeEffect:
    """Map a badge state to its visual effect."""
    kind = state.kind
    if kind is BadgeKind.BUSY:
        return BadgeEffect(BUSY_TEXT, BUSY_COLOR)
    if kind is BadgeKind.INTERMEDIATE:
        return BadgeEffect(str(state.count), INTERMEDIATE_COLOR)
    if kind is BadgeKind.COMPLETE:
        color = COMPLETE_COLOR if state.count else EMPTY_COLOR
        return BadgeEffect(str(state.count), color)
    if kind in (BadgeKind.CLEAR, BadgeKind.IDLE):
        return BadgeEffect("", None)
    raise ValueError(f"Unknown badge state: {state!r}")


class BadgeStateMachine:
    """Serialized, cancelable badge transitions.

    Usage:
        badge = BadgeStateMachine(LoggingBadgeRenderer(), clear_delay=2.0)
        await badge.start()
        badge.busy()
        badge.intermediate(3)
        badge.complete(2)      # clear follows after clear_delay seconds
        await badge.settle()
        await badge.close()
    """

    def __init__(self, renderer: BadgeRenderer, clear_delay: float = 2.0) -> None:
        if clear_delay < 0:
            raise ValueError(f"clear_delay must be >= 0, got {clear_delay}.")
        self._renderer = renderer
        self._clear_delay = clear_delay
        self._queue: "asyncio.Queue[Tuple[int, BadgeState]]" = asyncio.Queue()
        self._generation = 0
        self._state = BadgeState(BadgeKind.IDLE)
        self._worker: Optional[asyncio.Task] = None
        self._clear_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> BadgeState:
        """The last state whose effect has been committed."""
        return self._state

    async def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._run(), name="badge-worker")

    def busy(self) -> None:
        self._post(BadgeState(BadgeKind.BUSY))

    def intermediate(self, count: int) -> None:
        self._post(BadgeState(BadgeKind.INTERMEDIATE, count))

    def complete(self, count: int) -> None:
        self._post(BadgeState(BadgeKind.COMPLETE, count))

    async def drain(self) -> None:
        """Wait until every queued transition has been applied."""
        await self._queue.join()

    async def settle(self) -> None:
        """Wait for queued transitions and any pending automatic clear."""
        await self.drain()
        if self._clear_task is not None:
            await asyncio.wait({self._clear_task})
            await self.drain()

    async def close(self) -> None:
        self._cancel_pending_clear()
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.wait({self._worker})
            self._worker = None

    def _post(self, state: BadgeState) -> None:
        self._generation += 1
        self._cancel_pending_clear()
        self._queue.put_nowait((self._generation, state))

    def _cancel_pending_clear(self) -> None:
        if self._clear_task is not None and not self._clear_task.done():
            self._clear_task.cancel()
        self._clear_task = None

    async def _clear_after(self, generation: int) -> None:
        await asyncio.sleep(self._clear_delay)
        if generation == self._generation:
            self._queue.put_nowait((generation, BadgeState(BadgeKind.CLEAR)))

    async def _run(self) -> None:
        while True:
            generation, state = await self._queue.get()
            try:
                if state.kind is BadgeKind.CLEAR and generation != self._generation:
                    logger.debug("Dropping stale badge clear.")
                    continue

                await self._renderer.apply(effect_for(state))
                if state.kind is BadgeKind.CLEAR:
                    self._state = BadgeState(BadgeKind.IDLE)
                else:
                    self._state = state

                if state.kind is BadgeKind.COMPLETE and generation == self._generation:
                    self._clear_task = asyncio.create_task(self._clear_after(generation))
            except Exception:
                logger.exception("Badge renderer failed on %s", state)
            finally:
                self._queue.task_done()
