"""Tests for the replay scheduler, driven by a deterministic timer."""

import os
import sys
import threading

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from croinsights.results.errors import AlreadyRunning, InvalidResult
from croinsights.results.models import SimulationFrame
from croinsights.results.store import SimulationDataStore
from croinsights.simulation.replay import (
    TRANSITION_HISTORY,
    ManualTimer,
    ReplayScheduler,
    ReplayState,
    ThreadingTimer,
)

from conftest import scenario_payload, two_point_payload


def _metrics_by_id(store):
    return {c.combo_id: c.metrics.model_dump() for c in store.current_combinations()}


def _frame_metrics(frame):
    return {fc.combo_id: fc.metrics().model_dump() for fc in frame.combos}


@pytest.fixture
def loaded_store():
    store = SimulationDataStore()
    store.load(two_point_payload())
    return store


class TestManualTimer:

    def test_runs_in_due_order(self):
        timer = ManualTimer()
        calls = []
        timer.schedule(0.2, lambda: calls.append("b"))
        timer.schedule(0.1, lambda: calls.append("a"))
        assert timer.next_delay() == pytest.approx(0.1)
        assert timer.advance(0.15) == 1
        assert calls == ["a"]
        timer.run_all()
        assert calls == ["a", "b"]
        assert timer.next_delay() is None

    def test_cancelled_callbacks_never_run(self):
        timer = ManualTimer()
        calls = []
        handle = timer.schedule(0.1, lambda: calls.append("x"))
        handle.cancel()
        assert timer.pending == 0
        assert timer.run_all() == 0
        assert calls == []


class TestReplay:

    @pytest.mark.parametrize("interval_ms", [0, 120, 1000])
    def test_final_state_equals_last_frame(self, loaded_store, interval_ms):
        """After a full replay the store holds the last frame's metrics."""
        timer = ManualTimer()
        scheduler = ReplayScheduler(loaded_store, timer=timer, interval_ms=interval_ms)
        handle = scheduler.start()
        timer.run_all()
        assert handle.done
        assert handle.outcome.state == ReplayState.COMPLETED
        assert handle.outcome.frames_applied == 3
        last = loaded_store.current_frames()[-1]
        assert _metrics_by_id(loaded_store) == _frame_metrics(last)
        assert scheduler.state == ReplayState.IDLE

    def test_first_frame_applied_synchronously(self, loaded_store):
        timer = ManualTimer()
        scheduler = ReplayScheduler(loaded_store, timer=timer)
        scheduler.start()
        assert loaded_store.get_snapshot().last_applied_day == 1
        assert scheduler.running

    def test_frames_spaced_by_interval(self, loaded_store):
        timer = ManualTimer()
        days = []
        scheduler = ReplayScheduler(loaded_store, timer=timer, interval_ms=120,
                                    on_frame=lambda p: days.append(p.day))
        scheduler.start()
        assert days == [1]
        timer.advance(0.1)
        assert days == [1]
        timer.advance(0.02)
        assert days == [1, 2]

    @pytest.mark.parametrize("k", [1, 2])
    def test_cancel_after_frame_k(self, loaded_store, k):
        """Cancelling after frame k leaves exactly frame k's values."""
        timer = ManualTimer()
        frames = loaded_store.current_frames()
        scheduler = ReplayScheduler(loaded_store, timer=timer)
        handle = scheduler.start()
        for _ in range(k - 1):
            timer.run_next()
        assert scheduler.cancel()
        timer.run_all()
        assert _metrics_by_id(loaded_store) == _frame_metrics(frames[k - 1])
        assert handle.outcome.state == ReplayState.CANCELLED
        assert handle.outcome.last_day == k

    def test_cancel_when_idle_returns_false(self, loaded_store):
        scheduler = ReplayScheduler(loaded_store, timer=ManualTimer())
        assert not scheduler.cancel()

    def test_already_running(self, loaded_store):
        timer = ManualTimer()
        scheduler = ReplayScheduler(loaded_store, timer=timer)
        scheduler.start()
        with pytest.raises(AlreadyRunning):
            scheduler.start()
        scheduler.cancel()
        scheduler.start()
        timer.run_all()
        assert scheduler.state == ReplayState.IDLE

    def test_state_transitions(self, loaded_store):
        timer = ManualTimer()
        scheduler = ReplayScheduler(loaded_store, timer=timer)
        scheduler.start()
        timer.run_all()
        scheduler.start()
        scheduler.cancel()
        assert list(scheduler.transitions) == [
            ReplayState.RUNNING, ReplayState.COMPLETED, ReplayState.IDLE,
            ReplayState.RUNNING, ReplayState.CANCELLED, ReplayState.IDLE,
        ]

    def test_transition_history_is_bounded(self, loaded_store):
        """Repeated replays keep only the most recent state changes."""
        timer = ManualTimer()
        scheduler = ReplayScheduler(loaded_store, timer=timer)
        for _ in range(TRANSITION_HISTORY):
            scheduler.start()
            scheduler.cancel()
        assert len(scheduler.transitions) == TRANSITION_HISTORY
        assert scheduler.transitions[-1] == ReplayState.IDLE

    def test_empty_frames_complete_synchronously(self):
        """No frames: complete immediately and still classify."""
        store = SimulationDataStore()
        store.load(scenario_payload())
        classified = []
        completed = []
        scheduler = ReplayScheduler(store, timer=ManualTimer(),
                                    classify=lambda snap: classified.append(snap.version) or "done",
                                    on_complete=completed.append)
        handle = scheduler.start()
        assert handle.done
        assert handle.outcome.frames_applied == 0
        assert handle.outcome.classification == "done"
        assert len(classified) == 1
        assert len(completed) == 1
        assert scheduler.state == ReplayState.IDLE

    def test_classify_not_called_on_cancel(self, loaded_store):
        timer = ManualTimer()
        classified = []
        cancelled = []
        scheduler = ReplayScheduler(loaded_store, timer=timer, classify=classified.append,
                                    on_cancel=cancelled.append)
        scheduler.start()
        scheduler.cancel()
        timer.run_all()
        assert classified == []
        assert len(cancelled) == 1

    def test_load_during_replay_cancels(self, loaded_store):
        """Replacing the result stops the running replay."""
        timer = ManualTimer()
        scheduler = ReplayScheduler(loaded_store, timer=timer)
        handle = scheduler.start()
        loaded_store.load(scenario_payload())
        timer.run_all()
        assert handle.outcome.state == ReplayState.CANCELLED
        assert {c.combo_id for c in loaded_store.current_combinations()} == {"A", "B", "C"}
        assert loaded_store.get_snapshot().last_applied_day is None

    def test_stale_handle_cannot_cancel_new_replay(self, loaded_store):
        timer = ManualTimer()
        scheduler = ReplayScheduler(loaded_store, timer=timer)
        first = scheduler.start()
        first.cancel()
        second = scheduler.start()
        assert not first.cancel()
        assert scheduler.running
        timer.run_all()
        assert second.outcome.state == ReplayState.COMPLETED

    def test_render_receives_frames_so_far(self, loaded_store):
        timer = ManualTimer()
        seen = []
        scheduler = ReplayScheduler(
            loaded_store, timer=timer,
            render=lambda snap, frames: seen.append((snap.last_applied_day, [f.day for f in frames])),
        )
        scheduler.start()
        timer.run_all()
        assert seen == [(1, [1]), (2, [1, 2]), (3, [1, 2, 3])]

    def test_explicit_frames_out_of_order(self, loaded_store):
        timer = ManualTimer()
        frames = list(reversed(loaded_store.current_frames()))
        days = []
        scheduler = ReplayScheduler(loaded_store, timer=timer, on_frame=lambda p: days.append(p.day))
        scheduler.start(frames=frames)
        timer.run_all()
        assert days == [1, 2, 3]

    def test_negative_interval_rejected(self, loaded_store):
        scheduler = ReplayScheduler(loaded_store, timer=ManualTimer())
        with pytest.raises(ValueError):
            scheduler.start(interval_ms=-1)
        assert scheduler.state == ReplayState.IDLE

    def test_frames_without_result_rejected(self):
        store = SimulationDataStore()
        frame = SimulationFrame.model_validate({"day": 1, "combos": []})
        scheduler = ReplayScheduler(store, timer=ManualTimer())
        with pytest.raises(InvalidResult):
            scheduler.start(frames=[frame])


class TestThreadedReplay:

    def test_threading_timer_completes(self, loaded_store):
        """The default timer runs the replay on background threads."""
        done = threading.Event()
        outcomes = []

        def on_complete(outcome):
            outcomes.append(outcome)
            done.set()

        scheduler = ReplayScheduler(loaded_store, timer=ThreadingTimer(), interval_ms=1,
                                    on_complete=on_complete)
        scheduler.start()
        assert done.wait(timeout=5)
        assert outcomes[0].frames_applied == 3
        last = loaded_store.current_frames()[-1]
        assert _metrics_by_id(loaded_store) == _frame_metrics(last)
