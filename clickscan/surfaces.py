"""
Default open and copy surfaces.

    WebbrowserOpenSurface — opens URLs with the stdlib webbrowser module.
    ClipboardCopySurface  — writes payloads to the clipboard one after
                            another, paced, then releases its backend.
    TkClipboardBackend    — system clipboard access through a hidden Tk root.

Any object with the same methods can replace these; tests use fakes.
"""

import asyncio
import logging
import webbrowser
from typing import Callable, Optional, Protocol

from clickscan.config import OpenTarget
from clickscan.dispatch import CopyRequest, OpenRequest

logger = logging.getLogger(__name__)

# webbrowser "new" argument values
_NEW_WINDOW = 1
_NEW_TAB = 2


class WebbrowserOpenSurface:
    """Open surface backed by the default system browser.

    one-tab-each opens every URL in a new tab, one-window-each every URL in
    a new window, one-window-all the first URL in a new window and the rest
    as tabs next to it. change_focus maps onto webbrowser's autoraise.
    """

    def __init__(self, opener: Callable[..., bool] = webbrowser.open) -> None:
        self._opener = opener

    def open(self, request: OpenRequest) -> None:
        for index, url in enumerate(request.items):
            if request.target_mode is OpenTarget.ONE_WINDOW_EACH:
                new = _NEW_WINDOW
            elif request.target_mode is OpenTarget.ONE_WINDOW_ALL and index == 0:
                new = _NEW_WINDOW
            else:
                new = _NEW_TAB

            if not self._opener(url, new=new, autoraise=request.change_focus):
                logger.warning("Browser refused to open: %s", url)


class ClipboardBackend(Protocol):
    def write(self, text: str) -> None: ...

    def close(self) -> None: ...


class TkClipboardBackend:
    """Clipboard writes through a withdrawn Tk root window.

    Requires a display. The window is destroyed on close(); clipboard
    contents persist only as long as the platform keeps them after that.
    """

    def __init__(self) -> None:
        import tkinter

        self._root = tkinter.Tk()
        self._root.withdraw()

    def write(self, text: str) -> None:
        self._root.clipboard_clear()
        self._root.clipboard_append(text)
        self._root.update()

    def close(self) -> None:
        self._root.destroy()


class ClipboardCopySurface:
    """Copy surface that paces successive clipboard writes.

    ensure_active() opens a backend if none is open. write_sequence()
    writes at most max_count payloads, waiting interval_ms between writes,
    and always releases the backend when done, whether it completed or failed.
    """

    def __init__(
        self,
        backend_factory: Callable[[], ClipboardBackend] = TkClipboardBackend,
    ) -> None:
        self._backend_factory = backend_factory
        self._backend: Optional[ClipboardBackend] = None

    @property
    def active(self) -> bool:
        return self._backend is not None

    async def ensure_active(self) -> None:
        if self._backend is None:
            self._backend = self._backend_factory()
            logger.debug("Clipboard surface activated.")

    async def write_sequence(self, request: CopyRequest) -> None:
        await self.ensure_active()
        try:
            for index, text in enumerate(request.items[:request.max_count]):
                if index > 0 and request.interval_ms > 0:
                    await asyncio.sleep(request.interval_ms / 1000.0)
                self._backend.write(text)
        finally:
            self.release()

    def release(self) -> None:
        if self._backend is not None:
            self._backend.close()
            self._backend = None
            logger.debug("Clipboard surface released.")
