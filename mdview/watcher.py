"""Live-reload file watcher built on watchdog.

One file is watched at a time. Each raw change notification for that file is
held for a short fixed delay on watchdog's delivery thread and then announced
through ``file_changed``. The delay is a plain sleep, not a resettable timer,
so a burst of raw notifications still yields one announcement per
notification; the editor/OS coalescing upstream bounds how many arrive.

Announcements happen on the watchdog thread. Hosts must post them to the
thread that owns UI state (see ``mdview.dispatch``).
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import WatchFailure, require_text
from .events import EventHook

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.1
OBSERVER_JOIN_TIMEOUT_SECONDS = 2.0


class _SingleFileHandler(FileSystemEventHandler):
    """Forward modification events for one file name inside a directory."""

    def __init__(self, file_name: str, on_raw_change: Callable[[str], None]):
        super().__init__()
        self._file_key = os.path.normcase(file_name)
        self._on_raw_change = on_raw_change

    def _matches(self, raw_path) -> bool:
        return os.path.normcase(os.path.basename(os.fsdecode(raw_path))) == self._file_key

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory or not self._matches(event.src_path):
            return
        self._on_raw_change(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic saves write a temp file and rename it over the target.
        dest_path = getattr(event, "dest_path", "")
        if event.is_directory or not dest_path or not self._matches(dest_path):
            return
        self._on_raw_change(os.fsdecode(dest_path))


class ChangeWatcher:
    """Watch exactly one file and announce debounced changes."""

    def __init__(
        self,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        observer_factory: Callable[[], object] = Observer,
    ):
        self.debounce_seconds = max(0.0, float(debounce_seconds))
        self.file_changed = EventHook("file_changed")
        self._observer_factory = observer_factory
        self._lock = threading.RLock()
        self._observer = None
        self._watched_path: str | None = None
        # Bumped on every teardown so sleeping deliveries from an older
        # session can tell they are stale.
        self._session_id = 0
        self._enabled = False
        self._disposed = False

    @property
    def watched_path(self) -> str | None:
        return self._watched_path

    @property
    def is_watching(self) -> bool:
        return self._observer is not None and self._enabled and not self._disposed

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def watch(self, path: str | os.PathLike[str] | None) -> None:
        """Replace any current session with one watching ``path``."""
        path_text = require_text(os.fspath(path) if path is not None else None, "path")
        if self._disposed:
            logger.debug("ChangeWatcher: watch(%s) ignored after dispose", path_text)
            return

        logger.debug("ChangeWatcher: starting to watch %s", path_text)
        with self._lock:
            previous = self._detach_session()
        # Joined outside the lock: a delivery thread finishing its debounce
        # needs the lock to notice it went stale.
        if previous is not None:
            self._stop_observer(previous)

        full_path = os.path.abspath(path_text)
        directory, file_name = os.path.split(full_path)
        if not file_name or not os.path.isdir(directory):
            logger.warning("Cannot watch %s: directory %s does not exist", full_path, directory)
            return

        stale = []
        with self._lock:
            if self._disposed:
                return
            if self._observer is not None:
                # Another watch() armed a session while the lock was free.
                stale.append(self._detach_session())
            session_id = self._session_id
            handler = _SingleFileHandler(file_name, lambda raw: self._on_raw_change(session_id, raw))
            try:
                observer = self._start_observer(handler, directory)
            except WatchFailure as exc:
                logger.warning("Failed to set up file watcher for %s: %s", full_path, exc)
            else:
                if session_id != self._session_id or self._disposed:
                    # Re-entered while starting; the newer session stands.
                    stale.append(observer)
                else:
                    self._observer = observer
                    self._watched_path = full_path
                    self._enabled = True
                    logger.debug("File watcher enabled for %s in %s", file_name, directory)
        for observer in stale:
            self._stop_observer(observer)

    def stop_watching(self) -> None:
        """Pause delivery; the session stays armed for ``resume``."""
        with self._lock:
            if self._observer is not None and self._enabled:
                self._enabled = False
                logger.debug("File watcher disabled")

    def resume(self) -> None:
        with self._lock:
            if self._observer is not None and not self._disposed and not self._enabled:
                self._enabled = True
                logger.debug("File watcher re-enabled for %s", self._watched_path)

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            logger.debug("ChangeWatcher: disposing")
            self._disposed = True
            previous = self._detach_session()
            self.file_changed.clear()
        if previous is not None:
            self._stop_observer(previous)

    def __enter__(self) -> ChangeWatcher:
        return self

    def __exit__(self, *_exc) -> None:
        self.dispose()

    def _detach_session(self):
        # Caller holds the lock; the returned observer still has to be stopped.
        self._session_id += 1
        self._enabled = False
        observer = self._observer
        self._observer = None
        self._watched_path = None
        return observer

    def _start_observer(self, handler: FileSystemEventHandler, directory: str):
        observer = None
        try:
            observer = self._observer_factory()
            observer.schedule(handler, directory, recursive=False)
            observer.start()
        except Exception as exc:
            if observer is not None:
                self._stop_observer(observer)
            raise WatchFailure(str(exc)) from exc
        return observer

    @staticmethod
    def _stop_observer(observer) -> None:
        try:
            observer.stop()
            # Handlers run on the observer thread; a handler that re-watches
            # must not join its own thread.
            if observer is not threading.current_thread() and getattr(observer, "is_alive", lambda: False)():
                observer.join(OBSERVER_JOIN_TIMEOUT_SECONDS)
        except Exception as exc:
            logger.warning("Failed to stop file watcher: %s", exc)

    def _is_live(self, session_id: int) -> bool:
        return session_id == self._session_id and self._enabled and not self._disposed

    def _on_raw_change(self, session_id: int, raw_path: str) -> None:
        if not self._is_live(session_id):
            return
        logger.info("File change detected: %s", raw_path)

        # Editors often save in several writes; give them a moment.
        time.sleep(self.debounce_seconds)

        with self._lock:
            if not self._is_live(session_id):
                return
            watched = self._watched_path
        try:
            self.file_changed.emit(watched or raw_path)
        except Exception:
            logger.exception("file_changed handler failed for %s", watched or raw_path)
