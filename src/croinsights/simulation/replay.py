"""Replay scheduler - plays daily frames into the store as a cancellable animation.

State machine::

    IDLE -> RUNNING -> (COMPLETED | CANCELLED) -> IDLE

Frames are applied one at a time in ascending ``day`` order. After frame i
is applied the per-frame pipeline runs (``render`` then ``on_frame``), and
frame i+1 is scheduled ``interval_ms`` later. One more interval after the last
frame the replay completes: ``classify`` runs and ``on_complete`` fires.

Cancellation uses a generation counter: every start/cancel bumps it, and a
scheduled callback whose generation is stale does nothing. Frame steps and
``cancel()`` hold the same lock, so the store always reflects exactly the
last fully applied frame.
"""

import heapq
import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, List, Optional, Sequence

from ..results.errors import AlreadyRunning, InvalidResult
from ..results.models import SimulationFrame
from ..results.store import FrameApplyReport, SimulationDataStore, StoreSnapshot

logger = logging.getLogger(__name__)

DEFAULT_FRAME_INTERVAL_MS = 120
# recent state changes kept for inspection
TRANSITION_HISTORY = 64


class ReplayState(Enum):
    """Replay lifecycle states."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------

class ThreadingTimer:
    """Schedules callbacks on ``threading.Timer`` daemon threads."""

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay_s, callback)
        timer.daemon = True
        timer.start()
        return timer


class _ManualHandle:
    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimer:
    """
    Deterministic timer driven by the caller.

    Callbacks run only when ``advance()``/``run_next()``/``run_all()`` is
    called, in due-time order. Used by tests and by hosts that own their
    event loop (e.g. a Streamlit script that sleeps between steps).
    """

    def __init__(self):
        self.now = 0.0
        self._queue: List = []
        self._seq = itertools.count()

    def schedule(self, delay_s: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle()
        heapq.heappush(self._queue, (self.now + max(0.0, delay_s), next(self._seq), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h, _ in self._queue if not h.cancelled)

    def next_delay(self) -> Optional[float]:
        """Seconds until the next live callback is due (None when idle)."""
        self._drop_cancelled()
        if not self._queue:
            return None
        return max(0.0, self._queue[0][0] - self.now)

    def run_next(self) -> bool:
        """Run the next due callback, advancing the clock to its due time."""
        self._drop_cancelled()
        if not self._queue:
            return False
        due, _, _, callback = heapq.heappop(self._queue)
        self.now = max(self.now, due)
        callback()
        return True

    def advance(self, seconds: float) -> int:
        """Advance the clock, running every callback due within ``seconds``."""
        target = self.now + seconds
        ran = 0
        while True:
            self._drop_cancelled()
            if not self._queue or self._queue[0][0] > target:
                break
            self.run_next()
            ran += 1
        self.now = target
        return ran

    def run_all(self, limit: int = 10_000) -> int:
        ran = 0
        while ran < limit and self.run_next():
            ran += 1
        return ran

    def _drop_cancelled(self) -> None:
        while self._queue and self._queue[0][2].cancelled:
            heapq.heappop(self._queue)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

@dataclass
class FrameProgress:
    """Per-frame progress signal."""
    day: int
    index: int  # 0-based position in the replay
    total: int
    report: FrameApplyReport
    view: Any = None

    @property
    def elapsed_fraction(self) -> float:
        return (self.index + 1) / self.total if self.total else 1.0


@dataclass
class ReplayOutcome:
    """Final signal of a replay."""
    state: ReplayState  # COMPLETED or CANCELLED
    frames_applied: int
    last_day: Optional[int]
    classification: Any = None


class ReplayHandle:
    """Token returned by ``start()``; cancels only its own replay."""

    def __init__(self, scheduler: "ReplayScheduler", generation: int):
        self._scheduler = scheduler
        self.generation = generation
        self.outcome: Optional[ReplayOutcome] = None

    @property
    def done(self) -> bool:
        return self.outcome is not None

    def cancel(self) -> bool:
        return self._scheduler._cancel_generation(self.generation)


class ReplayScheduler:
    """Plays simulation frames into a SimulationDataStore."""

    def __init__(
        self,
        store: SimulationDataStore,
        timer=None,
        render: Callable[[StoreSnapshot, Sequence[SimulationFrame]], Any] = None,
        classify: Callable[[StoreSnapshot], Any] = None,
        on_frame: Callable[[FrameProgress], None] = None,
        on_complete: Callable[[ReplayOutcome], None] = None,
        on_cancel: Callable[[ReplayOutcome], None] = None,
        interval_ms: int = DEFAULT_FRAME_INTERVAL_MS
    ):
        """
        Initialize replay scheduler.

        Args:
            store: Store the frames are applied to
            timer: Object with ``schedule(delay_s, callback)`` returning a
                handle with ``cancel()`` (defaults to ThreadingTimer)
            render: Recomputes the view after each frame; receives the store
                snapshot and the frames applied so far
            classify: Runs once on completion (not on cancellation)
            on_frame: Per-frame progress callback
            on_complete: Completion callback
            on_cancel: Cancellation callback
            interval_ms: Default delay between frames
        """
        self.store = store
        self.timer = timer if timer is not None else ThreadingTimer()
        self.render = render
        self.classify = classify
        self.on_frame = on_frame
        self.on_complete = on_complete
        self.on_cancel = on_cancel
        self.interval_ms = interval_ms

        self._lock = threading.RLock()
        self._state = ReplayState.IDLE
        self._generation = 0
        self._pending = None
        self._frames: List[SimulationFrame] = []
        self._interval_s = 0.0
        self._applied = 0
        self._handle: Optional[ReplayHandle] = None
        self.transitions: Deque[ReplayState] = deque(maxlen=TRANSITION_HISTORY)

        store.add_replace_hook(self.cancel)

    @property
    def state(self) -> ReplayState:
        with self._lock:
            return self._state

    @property
    def running(self) -> bool:
        return self.state == ReplayState.RUNNING

    def _set_state(self, state: ReplayState) -> None:
        self._state = state
        self.transitions.append(state)

    def start(self, frames: Optional[Sequence[SimulationFrame]] = None, interval_ms: Optional[int] = None) -> ReplayHandle:
        """
        Start replaying ``frames`` (defaults to the store's frames).

        Raises:
            AlreadyRunning: if a replay is in progress; cancel it first.
        """
        with self._lock:
            if self._state != ReplayState.IDLE:
                raise AlreadyRunning("A replay is already running; cancel it before starting another")
            if interval_ms is None:
                interval_ms = self.interval_ms
            if interval_ms < 0:
                raise ValueError("interval_ms must be >= 0")

            if frames is None:
                frames = self.store.current_frames()
            if frames and not self.store.loaded:
                raise InvalidResult("Cannot replay frames: no simulation result loaded")
            self._frames = sorted(frames, key=lambda f: f.day)
            self._interval_s = interval_ms / 1000.0
            self._applied = 0
            self._generation += 1
            generation = self._generation
            self._handle = ReplayHandle(self, generation)
            self._set_state(ReplayState.RUNNING)
            logger.info("Replay %d started: %d frames every %d ms", generation, len(self._frames), interval_ms)

            if not self._frames:
                self._finish(generation)
                return self._handle

            handle = self._handle
            self._step(generation, 0)
            return handle

    def cancel(self) -> bool:
        """Stop the running replay. Returns False when nothing was running."""
        with self._lock:
            return self._cancel_generation(self._generation)

    def _cancel_generation(self, generation: int) -> bool:
        with self._lock:
            if self._state != ReplayState.RUNNING or generation != self._generation:
                return False
            self._generation += 1
            if self._pending is not None:
                self._pending.cancel()
                self._pending = None
            outcome = ReplayOutcome(
                state=ReplayState.CANCELLED,
                frames_applied=self._applied,
                last_day=self._frames[self._applied - 1].day if self._applied else None,
            )
            self._set_state(ReplayState.CANCELLED)
            handle = self._handle
            if handle is not None:
                handle.outcome = outcome
            logger.info("Replay %d cancelled after %d frame(s)", generation, self._applied)
            self._set_state(ReplayState.IDLE)
            if self.on_cancel is not None:
                self.on_cancel(outcome)
            return True

    def _schedule(self, generation: int, callback: Callable[[], None]) -> None:
        def fire() -> None:
            with self._lock:
                if generation != self._generation or self._state != ReplayState.RUNNING:
                    return
                self._pending = None
                callback()

        self._pending = self.timer.schedule(self._interval_s, fire)

    def _step(self, generation: int, index: int) -> None:
        frame = self._frames[index]
        report = self.store.apply_frame(frame)
        self._applied = index + 1

        view = None
        if self.render is not None:
            view = self.render(self.store.get_snapshot(), self._frames[:index + 1])
        if self.on_frame is not None:
            self.on_frame(FrameProgress(
                day=frame.day, index=index, total=len(self._frames), report=report, view=view
            ))

        # a callback may have cancelled or replaced the store
        if generation != self._generation or self._state != ReplayState.RUNNING:
            return
        if index + 1 < len(self._frames):
            self._schedule(generation, lambda: self._step(generation, index + 1))
        else:
            self._schedule(generation, lambda: self._finish(generation))

    def _finish(self, generation: int) -> None:
        self._set_state(ReplayState.COMPLETED)
        classification = None
        if self.classify is not None:
            classification = self.classify(self.store.get_snapshot())
        outcome = ReplayOutcome(
            state=ReplayState.COMPLETED,
            frames_applied=self._applied,
            last_day=self._frames[-1].day if self._frames else None,
            classification=classification,
        )
        self._generation += 1
        if self._handle is not None and self._handle.generation == generation:
            self._handle.outcome = outcome
        logger.info("Replay %d completed: %d frame(s)", generation, self._applied)
        self._set_state(ReplayState.IDLE)
        if self.on_complete is not None:
            self.on_complete(outcome)
