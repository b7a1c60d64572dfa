"""
Dispatch of selected results to the open and copy surfaces.

Responsibility:
    Turn the ordered selections from the policy engine into requests for
    the external surfaces:
        - open: one request per result (one-tab-each, one-window-each) or a
          single request carrying every result (one-window-all). Fire and
          forget: opened on a worker thread, never awaited by the cycle.
        - copy: activate the clipboard surface, then hand it the whole
          ordered list with its pacing parameters. Pacing is the surface's
          job, not a loop here.

Non-goals:
    - No selection logic and no clipboard or browser access of its own.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Protocol, Sequence, Set, Tuple

from clickscan.config import CopyPolicy, OpenPolicy, OpenTarget
from clickscan.detection import DetectedBarcode
from clickscan.errors import InvalidPolicyValueError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpenRequest:
    """One platform-level open action.

    Attributes:
        target_mode: Tab/window grouping requested by the user.
        change_focus: Whether the new tab/window takes focus.
        items: Payloads (URLs) to open, in order.
    """

    target_mode: OpenTarget
    change_focus: bool
    items: Tuple[str, ...]


@dataclass(frozen=True)
class CopyRequest:
    """A declarative clipboard write plan.

    Attributes:
        items: Payloads to write, in order; each write replaces the last.
        interval_ms: Minimum pause between successive writes.
        max_count: Upper bound on the number of writes.
    """

    items: Tuple[str, ...]
    interval_ms: int
    max_count: int


class OpenSurface(Protocol):
    def open(self, request: OpenRequest) -> None: ...


class CopySurface(Protocol):
    async def ensure_active(self) -> None: ...

    async def write_sequence(self, request: CopyRequest) -> None: ...


def build_open_requests(
    items: Sequence[DetectedBarcode],
    policy: OpenPolicy,
) -> List[OpenRequest]:
    """Group payloads into open requests according to policy.target.

    Raises:
        InvalidPolicyValueError: If policy.target is not a known OpenTarget.
    """
    if not items:
        return []

    payloads = tuple(item.raw_value for item in items)
    target = policy.target

    if target in (OpenTarget.ONE_TAB_EACH, OpenTarget.ONE_WINDOW_EACH):
        return [
            OpenRequest(target_mode=target, change_focus=policy.change_focus, items=(payload,))
            for payload in payloads
        ]
    if target is OpenTarget.ONE_WINDOW_ALL:
        return [OpenRequest(target_mode=target, change_focus=policy.change_focus, items=payloads)]

    raise InvalidPolicyValueError(f"Unknown open target: {target!r}.")


class Dispatcher:
    """Routes selected results to the configured surfaces.

    Usage:
        dispatcher = Dispatcher(open_surface, copy_surface)
        dispatcher.dispatch_open(open_items, open_policy)
        await dispatcher.dispatch_copy(copy_items, copy_policy)
        await dispatcher.drain()           # before shutdown
    """

    def __init__(self, open_surface: OpenSurface, copy_surface: CopySurface) -> None:
        self._open_surface = open_surface
        self._copy_surface = copy_surface
        self._pending_opens: Set[asyncio.Task] = set()

    @property
    def pending_opens(self) -> int:
        """Open requests handed to the surface that have not returned yet."""
        return len(self._pending_opens)

    def dispatch_open(
        self,
        items: Sequence[DetectedBarcode],
        policy: OpenPolicy,
    ) -> int:
        """Send open requests without waiting on the surface.

        The requests are opened in order on a worker thread; a slow or
        failing browser launch never holds up the copy hand-off or the
        event loop. Must be called from a running event loop.

        Returns:
            The number of payloads handed to the open surface.
        """
        requests = build_open_requests(items, policy)
        if requests:
            task = asyncio.ensure_future(asyncio.to_thread(self._open_in_order, requests))
            self._pending_opens.add(task)
            task.add_done_callback(self._open_finished)
            logger.info(
                "Open dispatched: %d URL(s) in %d request(s) (%s)",
                len(items), len(requests), policy.target.value,
            )
        return len(items) if requests else 0

    async def dispatch_copy(
        self,
        items: Sequence[DetectedBarcode],
        policy: CopyPolicy,
    ) -> int:
        """Activate the copy surface and hand it the write plan.

        Returns:
            The number of payloads handed to the copy surface.
        """
        if not items:
            return 0

        request = CopyRequest(
            items=tuple(item.raw_value for item in items),
            interval_ms=policy.interval_ms,
            max_count=policy.max_count,
        )
        await self._copy_surface.ensure_active()
        await self._copy_surface.write_sequence(request)

        logger.info(
            "Copy dispatched: %d payload(s), interval=%dms",
            len(request.items), request.interval_ms,
        )
        return len(request.items)

    async def drain(self) -> None:
        """Wait for every open request handed out so far."""
        while self._pending_opens:
            await asyncio.wait(set(self._pending_opens))

    def _open_in_order(self, requests: List[OpenRequest]) -> None:
        for request in requests:
            self._open_surface.open(request)

    def _open_finished(self, task: asyncio.Task) -> None:
        self._pending_opens.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Open surface failed: %s", error, exc_info=error)
