import threading

from mdview.dispatch import CallQueue, ImmediateDispatcher
from mdview.events import EventHook


def test_subscribe_returns_unsubscribe_handle():
    hook = EventHook("changed")
    calls = []
    unsubscribe = hook.subscribe(calls.append)

    hook.emit(1)
    unsubscribe()
    unsubscribe()
    hook.emit(2)

    assert calls == [1]
    assert len(hook) == 0


def test_unsubscribe_unknown_handler_is_harmless():
    hook = EventHook()
    hook.unsubscribe(print)


def test_handler_may_unsubscribe_during_emit():
    hook = EventHook()
    calls = []

    def once(value):
        calls.append(("once", value))
        remove()

    remove = hook.subscribe(once)
    hook.subscribe(lambda value: calls.append(("always", value)))

    hook.emit("a")
    hook.emit("b")

    assert calls == [("once", "a"), ("always", "a"), ("always", "b")]


def test_emit_until_false_stops_at_first_veto():
    hook = EventHook("navigation")
    later = []
    hook.subscribe(lambda url: True)
    hook.subscribe(lambda url: False)
    hook.subscribe(later.append)

    assert hook.emit_until_false("x") is False
    assert later == []


def test_emit_until_false_allows_when_handler_raises(caplog):
    hook = EventHook("navigation")

    def broken(_url):
        raise RuntimeError("bad handler")

    hook.subscribe(broken)
    assert hook.emit_until_false("x") is True
    assert "navigation handler failed" in caplog.text


def test_emit_until_false_without_handlers_allows():
    assert EventHook().emit_until_false("x") is True


def test_immediate_dispatcher_runs_inline():
    calls = []
    ImmediateDispatcher().post(calls.append, 5)
    assert calls == [5]


def test_call_queue_runs_posted_callbacks_on_draining_thread():
    queue = CallQueue()
    ran_on = []

    def record(tag):
        ran_on.append((tag, threading.get_ident()))

    worker = threading.Thread(target=queue.wrap(record), args=("from-worker",))
    worker.start()
    worker.join()

    assert ran_on == []
    assert queue.pending()
    assert queue.drain() == 1
    assert ran_on == [("from-worker", threading.get_ident())]
    assert not queue.pending()


def test_call_queue_drain_waits_for_first_item():
    queue = CallQueue()
    calls = []
    timer = threading.Timer(0.05, queue.post, args=(calls.append, "late"))
    timer.start()

    assert queue.drain(timeout=2) == 1
    assert calls == ["late"]
    timer.join()


def test_call_queue_logs_failing_callbacks(caplog):
    queue = CallQueue()
    calls = []

    def broken():
        raise RuntimeError("boom")

    queue.post(broken)
    queue.post(calls.append, "after")

    assert queue.drain() == 2
    assert calls == ["after"]
    assert "failed" in caplog.text
