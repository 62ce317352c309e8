import os
import threading
import time

import pytest
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from mdview.errors import InvalidArgument
from mdview.watcher import ChangeWatcher

from .conftest import FakeObserver


def make_watcher(**kwargs):
    kwargs.setdefault("debounce_seconds", 0)
    kwargs.setdefault("observer_factory", FakeObserver)
    return ChangeWatcher(**kwargs)


def test_watch_schedules_parent_directory(tmp_path, fake_observers):
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    watcher = make_watcher()
    watcher.watch(doc)

    assert len(fake_observers) == 1
    observer = fake_observers[0]
    assert observer.path == str(tmp_path)
    assert observer.recursive is False
    assert observer.started
    assert watcher.is_watching
    assert watcher.watched_path == str(doc)


def test_modified_event_for_watched_file_is_announced(tmp_path, fake_observers):
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    watcher = make_watcher()
    seen = []
    watcher.file_changed.subscribe(seen.append)
    watcher.watch(doc)

    fake_observers[0].handler.dispatch(FileModifiedEvent(str(doc)))

    assert seen == [str(doc)]


def test_each_raw_notification_is_announced(tmp_path, fake_observers):
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    watcher = make_watcher()
    seen = []
    watcher.file_changed.subscribe(seen.append)
    watcher.watch(doc)

    handler = fake_observers[0].handler
    handler.dispatch(FileModifiedEvent(str(doc)))
    handler.dispatch(FileModifiedEvent(str(doc)))

    assert len(seen) == 2


def test_other_files_and_directories_are_ignored(tmp_path, fake_observers):
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    watcher = make_watcher()
    seen = []
    watcher.file_changed.subscribe(seen.append)
    watcher.watch(doc)

    handler = fake_observers[0].handler
    handler.dispatch(FileModifiedEvent(str(tmp_path / "b.md")))
    handler.dispatch(DirModifiedEvent(str(tmp_path)))
    handler.dispatch(FileCreatedEvent(str(doc)))

    assert seen == []


def test_atomic_save_rename_is_announced(tmp_path, fake_observers):
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    watcher = make_watcher()
    seen = []
    watcher.file_changed.subscribe(seen.append)
    watcher.watch(doc)

    fake_observers[0].handler.dispatch(FileMovedEvent(str(tmp_path / ".a.md.swp"), str(doc)))

    assert seen == [str(doc)]


def test_rewatch_discards_previous_session(tmp_path, fake_observers):
    first = tmp_path / "a.md"
    second = tmp_path / "b.md"
    first.write_text("x", encoding="utf-8")
    second.write_text("y", encoding="utf-8")
    watcher = make_watcher()
    seen = []
    watcher.file_changed.subscribe(seen.append)

    watcher.watch(first)
    old_handler = fake_observers[0].handler
    watcher.watch(second)

    assert fake_observers[0].stopped
    old_handler.dispatch(FileModifiedEvent(str(first)))
    fake_observers[1].handler.dispatch(FileModifiedEvent(str(first)))
    assert seen == []

    fake_observers[1].handler.dispatch(FileModifiedEvent(str(second)))
    assert seen == [str(second)]


def test_stop_watching_pauses_and_resume_rearms(tmp_path, fake_observers):
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    watcher = make_watcher()
    seen = []
    watcher.file_changed.subscribe(seen.append)
    watcher.watch(doc)
    handler = fake_observers[0].handler

    watcher.stop_watching()
    watcher.stop_watching()
    assert not watcher.is_watching
    handler.dispatch(FileModifiedEvent(str(doc)))
    assert seen == []

    watcher.resume()
    handler.dispatch(FileModifiedEvent(str(doc)))
    assert seen == [str(doc)]


def test_watch_missing_directory_stays_idle(tmp_path, fake_observers, caplog):
    watcher = make_watcher()
    watcher.watch(tmp_path / "nope" / "a.md")

    assert fake_observers == []
    assert not watcher.is_watching
    assert "does not exist" in caplog.text


def test_watch_rejects_blank_path():
    watcher = make_watcher()
    with pytest.raises(InvalidArgument):
        watcher.watch("")
    with pytest.raises(InvalidArgument):
        watcher.watch(None)


def test_observer_setup_failure_is_logged(tmp_path, caplog):
    def broken_factory():
        raise OSError("inotify watch limit reached")

    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    watcher = make_watcher(observer_factory=broken_factory)
    watcher.watch(doc)

    assert not watcher.is_watching
    assert "inotify watch limit reached" in caplog.text


def test_dispose_is_idempotent_and_silences_events(tmp_path, fake_observers):
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    watcher = make_watcher()
    seen = []
    watcher.file_changed.subscribe(seen.append)
    watcher.watch(doc)
    handler = fake_observers[0].handler

    watcher.dispose()
    watcher.dispose()

    assert watcher.is_disposed
    assert fake_observers[0].stopped
    handler.dispatch(FileModifiedEvent(str(doc)))
    assert seen == []
    watcher.watch(doc)
    assert len(fake_observers) == 1


def test_context_manager_disposes(tmp_path, fake_observers):
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    with make_watcher() as watcher:
        watcher.watch(doc)
    assert watcher.is_disposed
    assert fake_observers[0].stopped


def test_change_during_debounce_after_rewatch_is_dropped(tmp_path, fake_observers):
    doc = tmp_path / "a.md"
    other = tmp_path / "b.md"
    doc.write_text("x", encoding="utf-8")
    other.write_text("y", encoding="utf-8")
    watcher = make_watcher(debounce_seconds=0.2)
    seen = []
    watcher.file_changed.subscribe(seen.append)
    watcher.watch(doc)

    delivery = threading.Thread(target=fake_observers[0].handler.dispatch, args=(FileModifiedEvent(str(doc)),))
    delivery.start()
    time.sleep(0.05)
    watcher.watch(other)
    delivery.join(2)

    assert seen == []


def test_handler_errors_do_not_break_delivery(tmp_path, fake_observers, caplog):
    doc = tmp_path / "a.md"
    doc.write_text("x", encoding="utf-8")
    watcher = make_watcher()

    def boom(_path):
        raise RuntimeError("handler exploded")

    watcher.file_changed.subscribe(boom)
    watcher.watch(doc)
    fake_observers[0].handler.dispatch(FileModifiedEvent(str(doc)))

    assert "file_changed handler failed" in caplog.text


def _wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def test_real_observer_reports_one_write(tmp_path):
    doc = tmp_path / "live.md"
    doc.write_text("# start\n", encoding="utf-8")
    seen = []
    with ChangeWatcher(debounce_seconds=0.1) as watcher:
        watcher.file_changed.subscribe(seen.append)
        watcher.watch(doc)
        # Give the native backend a moment to arm.
        time.sleep(0.3)
        with open(doc, "a", encoding="utf-8") as handle:
            handle.write("more\n")

        assert _wait_for(lambda: len(seen) >= 1)
        time.sleep(0.5)
    assert seen == [str(doc)]


def test_real_observer_stops_reporting_after_rewatch(tmp_path):
    first = tmp_path / "f.md"
    second = tmp_path / "g.md"
    first.write_text("f\n", encoding="utf-8")
    second.write_text("g\n", encoding="utf-8")
    seen = []
    with ChangeWatcher(debounce_seconds=0.05) as watcher:
        watcher.file_changed.subscribe(seen.append)
        watcher.watch(first)
        watcher.watch(second)
        time.sleep(0.3)
        with open(first, "a", encoding="utf-8") as handle:
            handle.write("changed\n")
        time.sleep(0.8)
    assert seen == []


def test_watch_reentered_while_starting_keeps_one_observer(tmp_path, fake_observers):
    first = tmp_path / "a.md"
    second = tmp_path / "b.md"
    first.write_text("a", encoding="utf-8")
    second.write_text("b", encoding="utf-8")
    calls = []

    def factory():
        calls.append(None)
        if len(calls) == 1:
            watcher.watch(second)
        return FakeObserver()

    watcher = make_watcher(observer_factory=factory)
    watcher.watch(first)

    inner, outer = fake_observers
    assert not inner.stopped
    assert outer.stopped
    assert watcher.watched_path == str(second)
    seen = []
    watcher.file_changed.subscribe(seen.append)
    inner.handler.dispatch(FileModifiedEvent(str(second)))
    assert seen == [str(second)]


def test_watch_reentered_between_teardown_and_arming(tmp_path, fake_observers, monkeypatch):
    first = tmp_path / "a.md"
    second = tmp_path / "b.md"
    first.write_text("a", encoding="utf-8")
    second.write_text("b", encoding="utf-8")
    watcher = make_watcher()
    real_isdir = os.path.isdir
    reentered = []

    def isdir(path):
        if not reentered:
            reentered.append(path)
            watcher.watch(second)
        return real_isdir(path)

    monkeypatch.setattr(os.path, "isdir", isdir)
    watcher.watch(first)

    live = [observer for observer in fake_observers if not observer.stopped]
    assert len(fake_observers) == 2
    assert len(live) == 1
    assert watcher.watched_path == str(first)
    seen = []
    watcher.file_changed.subscribe(seen.append)
    fake_observers[0].handler.dispatch(FileModifiedEvent(str(second)))
    live[0].handler.dispatch(FileModifiedEvent(str(first)))
    assert seen == [str(first)]
