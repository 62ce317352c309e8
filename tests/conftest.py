"""Shared fixtures: an in-memory rendering surface and a stand-in observer."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from mdview.errors import SurfaceNotReady
from mdview.surface import RenderingSurface


class FakeSurface(RenderingSurface):
    """Records what controllers ask of it; tests fire its events by hand."""

    def __init__(self, ready: bool = False):
        super().__init__()
        self._ready = ready
        self.back_available = False
        self.forward_available = False
        self.scripts: list[str] = []
        self.loaded: list[tuple[str, object]] = []
        self.back_calls = 0
        self.forward_calls = 0
        self.script_error: Exception | None = None
        self.visited: list[str] = []
        self.position = -1

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def current_url(self) -> str:
        return self.visited[self.position] if self.visited else ""

    @property
    def can_go_back(self) -> bool:
        return self.back_available

    @property
    def can_go_forward(self) -> bool:
        return self.forward_available

    def load_markup(self, html_doc, base_path=None):
        self.loaded.append((html_doc, base_path))
        url = Path(os.path.abspath(base_path)).as_uri() if base_path is not None else ""
        del self.visited[self.position + 1:]
        self.visited.append(url)
        self.position = len(self.visited) - 1

    def run_script(self, script, callback=None):
        if not self._ready:
            raise SurfaceNotReady("fake surface not ready")
        if self.script_error is not None:
            raise self.script_error
        self.scripts.append(script)

    def go_back(self):
        self.back_calls += 1
        if self.position > 0:
            self.position -= 1

    def go_forward(self):
        self.forward_calls += 1
        if self.position < len(self.visited) - 1:
            self.position += 1

    def fire_ready(self):
        self._ready = True
        self.ready.emit()

    def set_history(self, can_back: bool, can_forward: bool):
        self.back_available = can_back
        self.forward_available = can_forward
        self.history_changed.emit()

    def post_message(self, payload):
        self.message_received.emit(payload)

    def finish_load(self, ok: bool = True):
        self.load_finished.emit(ok)


class FakeObserver:
    """Observer double: keeps the scheduled handler so tests can feed it events."""

    instances: list["FakeObserver"] = []

    def __init__(self):
        self.handler = None
        self.path = None
        self.recursive = None
        self.started = False
        self.stopped = False
        FakeObserver.instances.append(self)

    def schedule(self, handler, path, recursive=False):
        self.handler = handler
        self.path = path
        self.recursive = recursive

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def is_alive(self):
        return False


@pytest.fixture
def surface():
    return FakeSurface(ready=True)


@pytest.fixture
def cold_surface():
    return FakeSurface(ready=False)


@pytest.fixture
def fake_observers():
    FakeObserver.instances = []
    yield FakeObserver.instances
    FakeObserver.instances = []
