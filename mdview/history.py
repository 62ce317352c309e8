"""Back/forward state bound to the rendering surface's own history."""

from __future__ import annotations

import logging

from .errors import InvalidArgument
from .events import EventHook
from .surface import RenderingSurface

logger = logging.getLogger(__name__)


class HistoryController:
    """Expose back/forward for a surface without caching its history.

    The surface can navigate on its own (mouse back buttons, in-page script),
    so ``can_go_back``/``can_go_forward`` always read the surface directly.
    The only cached fact is whether the surface has finished initializing.
    """

    def __init__(self, surface: RenderingSurface):
        if surface is None:
            raise InvalidArgument("surface cannot be None")
        self._surface = surface
        self._is_initialized = False
        self._unsubscribers: list = []
        self.navigation_state_changed = EventHook("navigation_state_changed")

        if surface.is_ready:
            self._on_surface_ready()
        else:
            self._unsubscribers.append(surface.ready.subscribe(self._on_surface_ready))

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    @property
    def can_go_back(self) -> bool:
        if not self._is_initialized:
            return False
        try:
            return bool(self._surface.can_go_back)
        except Exception as exc:
            logger.debug("can_go_back unavailable: %s", exc)
            return False

    @property
    def can_go_forward(self) -> bool:
        if not self._is_initialized:
            return False
        try:
            return bool(self._surface.can_go_forward)
        except Exception as exc:
            logger.debug("can_go_forward unavailable: %s", exc)
            return False

    def _on_surface_ready(self) -> None:
        if self._is_initialized:
            return
        self._is_initialized = True
        self._unsubscribers.append(self._surface.history_changed.subscribe(self._on_history_changed))
        logger.debug("HistoryController attached to rendering surface")

    def _on_history_changed(self) -> None:
        can_back = self.can_go_back
        can_forward = self.can_go_forward
        logger.debug("Navigation history changed. can_go_back=%s, can_go_forward=%s", can_back, can_forward)
        self.navigation_state_changed.emit(can_back, can_forward)

    def go_back(self) -> None:
        if not self.can_go_back:
            logger.debug("Cannot navigate back - no history available")
            return
        logger.info("Navigating back")
        try:
            self._surface.go_back()
        except Exception:
            logger.exception("Surface failed to navigate back")

    def go_forward(self) -> None:
        if not self.can_go_forward:
            logger.debug("Cannot navigate forward - no forward history available")
            return
        logger.info("Navigating forward")
        try:
            self._surface.go_forward()
        except Exception:
            logger.exception("Surface failed to navigate forward")

    def clear_history(self) -> None:
        # Embedded engines here cannot drop their history; do not pretend.
        logger.warning("clear_history() called but the rendering surface does not support it")

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
