"""Minimal observer hooks used instead of framework signals in the core."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventHook:
    """Ordered list of callbacks fired synchronously on ``emit``.

    ``subscribe`` returns a zero-argument callable that removes the handler.
    Removing twice, or removing a handler that was never added, is harmless.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._handlers: list[Callable[..., Any]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Callable[..., Any]) -> Callable[[], None]:
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(handler)

        return unsubscribe

    def unsubscribe(self, handler: Callable[..., Any]) -> None:
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)

    def emit(self, *args: Any) -> None:
        # Snapshot so handlers may unsubscribe while we iterate.
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(*args)

    def emit_until_false(self, *args: Any) -> bool:
        """Call handlers in order; stop and return False on the first falsy reply.

        Used for veto-style hooks such as navigation requests, where any
        subscriber may block the surface from proceeding.
        """
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                if not handler(*args):
                    return False
            except Exception:
                logger.exception("%s handler failed; allowing default behavior", self.name or "event")
        return True
