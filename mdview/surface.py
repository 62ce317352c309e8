"""The rendering-surface capability the controllers talk to.

A surface displays markup, runs scripts, owns its own back/forward history
and reports four kinds of events. Controllers reference a surface; they never
own it and must tolerate it being uninitialized or mid-navigation.
"""

from __future__ import annotations

import os
from typing import Callable

from .events import EventHook

ScriptCallback = Callable[[object], None]

# Name of the page-side function scripts call to send a message back to
# Python. Surfaces install it before any document script runs.
POST_MESSAGE_FUNCTION = "__mdviewPostMessage"


class RenderingSurface:
    """Base class with the event hooks; concrete surfaces fill in the rest.

    Events:
        ready()                     surface finished initializing
        history_changed()           back/forward state may have changed
        message_received(payload)   page posted a string message
        navigation_requested(url)   handlers return False to block navigation
        load_finished(ok)           a load_markup or history navigation completed
    """

    def __init__(self) -> None:
        self.ready = EventHook("ready")
        self.history_changed = EventHook("history_changed")
        self.message_received = EventHook("message_received")
        self.navigation_requested = EventHook("navigation_requested")
        self.load_finished = EventHook("load_finished")

    @property
    def is_ready(self) -> bool:
        raise NotImplementedError

    @property
    def current_url(self) -> str:
        """URL of the displayed page; a ``file://`` URL after ``load_markup`` with a base path."""
        raise NotImplementedError

    @property
    def can_go_back(self) -> bool:
        raise NotImplementedError

    @property
    def can_go_forward(self) -> bool:
        raise NotImplementedError

    def load_markup(self, html_doc: str, base_path: str | os.PathLike[str] | None = None) -> None:
        raise NotImplementedError

    def run_script(self, script: str, callback: ScriptCallback | None = None) -> None:
        """Run ``script`` in the page; ``callback`` receives its result later."""
        raise NotImplementedError

    def go_back(self) -> None:
        raise NotImplementedError

    def go_forward(self) -> None:
        raise NotImplementedError

    def request_navigation(self, url: str) -> bool:
        """Ask subscribers whether navigation to ``url`` may proceed."""
        return self.navigation_requested.emit_until_false(url)
