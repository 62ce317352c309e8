import logging

import pytest

from mdview.errors import InvalidArgument
from mdview.history import HistoryController


def test_before_ready_everything_is_disabled(cold_surface):
    cold_surface.back_available = True
    cold_surface.forward_available = True
    history = HistoryController(cold_surface)

    assert not history.is_initialized
    assert history.can_go_back is False
    assert history.can_go_forward is False
    history.go_back()
    history.go_forward()
    assert cold_surface.back_calls == 0
    assert cold_surface.forward_calls == 0


def test_ready_attaches_and_reads_surface_live(cold_surface):
    history = HistoryController(cold_surface)
    cold_surface.fire_ready()

    assert history.is_initialized
    cold_surface.back_available = True
    assert history.can_go_back is True
    cold_surface.back_available = False
    assert history.can_go_back is False


def test_already_ready_surface_attaches_immediately(surface):
    history = HistoryController(surface)
    assert history.is_initialized


def test_history_changed_emits_state(surface):
    history = HistoryController(surface)
    states = []
    history.navigation_state_changed.subscribe(lambda back, forward: states.append((back, forward)))

    surface.set_history(True, False)
    surface.set_history(True, True)

    assert states == [(True, False), (True, True)]


def test_history_changed_before_ready_is_not_reported(cold_surface):
    history = HistoryController(cold_surface)
    states = []
    history.navigation_state_changed.subscribe(lambda *state: states.append(state))

    cold_surface.set_history(True, False)
    assert states == []


def test_go_back_and_forward_delegate_when_available(surface):
    history = HistoryController(surface)
    surface.back_available = True
    history.go_back()
    history.go_forward()
    assert surface.back_calls == 1
    assert surface.forward_calls == 0

    surface.forward_available = True
    history.go_forward()
    assert surface.forward_calls == 1


def test_surface_errors_are_contained(surface):
    def explode():
        raise RuntimeError("engine gone")

    surface.back_available = True
    surface.go_back = explode
    history = HistoryController(surface)
    history.go_back()


def test_clear_history_only_warns(surface, caplog):
    history = HistoryController(surface)
    with caplog.at_level(logging.WARNING, logger="mdview.history"):
        history.clear_history()
    assert "does not support" in caplog.text


def test_detach_stops_reporting(surface):
    history = HistoryController(surface)
    states = []
    history.navigation_state_changed.subscribe(lambda *state: states.append(state))
    history.detach()
    history.detach()

    surface.set_history(True, True)
    assert states == []


def test_requires_surface():
    with pytest.raises(InvalidArgument):
        HistoryController(None)
