"""Explicit "post to owner thread" primitives.

Filesystem notifications arrive on watchdog's observer thread. Anything that
touches controller or UI state must be posted to the thread that owns those
objects and run there. The Qt host uses ``mdview.qt_surface.QtDispatcher``;
``CallQueue`` is the framework-free equivalent drained by its owner loop.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Dispatcher:
    """Interface: schedule ``fn(*args)`` on the owner thread."""

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        raise NotImplementedError

    def wrap(self, fn: Callable[..., Any]) -> Callable[..., None]:
        """Return a callable that posts ``fn`` instead of calling it directly."""

        def posted(*args: Any) -> None:
            self.post(fn, *args)

        return posted


class ImmediateDispatcher(Dispatcher):
    """Run callbacks inline on the calling thread. Single-threaded use only."""

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        fn(*args)


class CallQueue(Dispatcher):
    """Single-consumer queue: any thread posts, the owner thread drains."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[tuple[Callable[..., Any], tuple[Any, ...]]] = queue.SimpleQueue()
        self.owner_thread_id = threading.get_ident()

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._queue.put((fn, args))

    def pending(self) -> bool:
        return not self._queue.empty()

    def drain(self, timeout: float | None = None) -> int:
        """Run queued callbacks on the current thread; return how many ran.

        With ``timeout`` set, wait up to that long for the first callback when
        the queue is empty.
        """
        ran = 0
        block = timeout is not None
        while True:
            try:
                fn, args = self._queue.get(block=block, timeout=timeout)
            except queue.Empty:
                return ran
            block = False
            try:
                fn(*args)
            except Exception:
                logger.exception("Posted callback %r failed", fn)
            ran += 1
