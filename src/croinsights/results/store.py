"""SimulationDataStore - sole owner of the loaded simulation result.

The store exposes read snapshots and synchronous change notifications:

- ``get_snapshot()`` returns deep copies, so callers can never mutate the
  live combinations.
- ``subscribe(listener)`` registers a callable invoked after every mutation
  (load, clear, applied frame) with the new snapshot.
- ``add_replace_hook(hook)`` registers a callable run before the result is
  replaced or cleared. The replay scheduler uses it to force-cancel itself so
  no timeline keeps writing into stale data.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from .errors import InvalidResult, UnknownCombo
from .models import Combination, CombinationMetrics, SimulationFrame, SimulationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreSnapshot:
    """Immutable view of the store at one point in time."""
    version: int
    simulation_id: Optional[str] = None
    combinations: List[Combination] = field(default_factory=list)
    frames: List[SimulationFrame] = field(default_factory=list)
    control_metrics: Optional[CombinationMetrics] = None
    control_combo_id: Optional[str] = None
    last_applied_day: Optional[int] = None

    @property
    def loaded(self) -> bool:
        return bool(self.combinations)


@dataclass
class FrameApplyReport:
    """Outcome of applying one frame."""
    day: int
    applied: List[str]
    unknown: List[str]


Listener = Callable[[StoreSnapshot], None]


def find_control_combo_id(combinations: List[Combination]) -> Optional[str]:
    """Return the id of the first combination with zero uplift, if any."""
    for combo in combinations:
        if combo.metrics.uplift == 0:
            return combo.combo_id
    return None


def _sort_by_conversion_rate(combinations: List[Combination]) -> None:
    combinations.sort(key=lambda c: c.metrics.conversion_rate, reverse=True)


class SimulationDataStore:
    """Holds the currently loaded simulation result (or nothing)."""

    def __init__(self):
        self._lock = threading.RLock()
        self._result: Optional[SimulationResult] = None
        self._control_combo_id: Optional[str] = None
        self._last_applied_day: Optional[int] = None
        self._version = 0
        self._listeners: List[Listener] = []
        self._replace_hooks: List[Callable[[], Any]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self, result: Union[SimulationResult, Mapping[str, Any]]) -> StoreSnapshot:
        """
        Replace the current state with ``result``.

        Args:
            result: A SimulationResult or its JSON-shaped dictionary

        Returns:
            Snapshot of the newly loaded state

        Raises:
            InvalidResult: if the payload is malformed or frames reference a
                different set of combinations; the previous state is kept.
        """
        parsed = self._parse(result)
        self.validate(parsed)

        combinations = [c.model_copy(deep=True) for c in parsed.combinations]
        _sort_by_conversion_rate(combinations)
        stored = SimulationResult(
            id=parsed.id.strip() if parsed.id and parsed.id.strip() else None,
            combinations=combinations,
            frames=sorted((f.model_copy(deep=True) for f in parsed.frames), key=lambda f: f.day),
            control_metrics=parsed.control_metrics.model_copy() if parsed.control_metrics else None,
        )

        self._run_replace_hooks()
        with self._lock:
            self._result = stored
            self._control_combo_id = find_control_combo_id(combinations)
            self._last_applied_day = None
            self._version += 1
            snapshot = self._snapshot_locked()

        logger.info(
            "Loaded simulation %s: %d combinations, %d frames",
            stored.id or "<unsaved>", len(combinations), len(stored.frames)
        )
        self._notify(snapshot)
        return snapshot

    def clear(self) -> StoreSnapshot:
        """Drop the loaded result. Any running replay is cancelled first."""
        self._run_replace_hooks()
        with self._lock:
            self._result = None
            self._control_combo_id = None
            self._last_applied_day = None
            self._version += 1
            snapshot = self._snapshot_locked()
        logger.info("Cleared simulation results")
        self._notify(snapshot)
        return snapshot

    @staticmethod
    def validate(result: SimulationResult) -> None:
        """
        Check the structural invariants of a result.

        Raises:
            InvalidResult: on duplicate combination ids, frames whose
                combination set differs from the result's, or duplicate days.
        """
        combo_ids = [c.combo_id for c in result.combinations]
        if len(set(combo_ids)) != len(combo_ids):
            raise InvalidResult("Duplicate comboId in combinations")

        expected = set(combo_ids)
        seen_days = set()
        for frame in result.frames:
            frame_ids = [c.combo_id for c in frame.combos]
            if set(frame_ids) != expected or len(frame_ids) != len(expected):
                missing = sorted(expected - set(frame_ids))
                extra = sorted(set(frame_ids) - expected)
                raise InvalidResult(
                    f"Frame for day {frame.day} does not match combinations "
                    f"(missing: {missing}, unexpected: {extra})"
                )
            if frame.day in seen_days:
                raise InvalidResult(f"Duplicate frame for day {frame.day}")
            seen_days.add(frame.day)

    @staticmethod
    def _parse(result: Union[SimulationResult, Mapping[str, Any]]) -> SimulationResult:
        if isinstance(result, SimulationResult):
            return result
        try:
            return SimulationResult.model_validate(result)
        except ValidationError as exc:
            raise InvalidResult(f"Malformed simulation result: {exc.error_count()} error(s)") from exc

    # ------------------------------------------------------------------
    # Mutation during replay
    # ------------------------------------------------------------------

    def apply_frame(self, frame: SimulationFrame, strict: bool = False) -> FrameApplyReport:
        """
        Overwrite each combination's metrics with the frame's values, by id.

        Unknown ids are skipped and logged; known entries are still applied.
        With ``strict=True`` an UnknownCombo is raised before anything changes.
        """
        with self._lock:
            if self._result is None:
                raise InvalidResult("No simulation result loaded")
            by_id: Dict[str, Combination] = {c.combo_id: c for c in self._result.combinations}
            unknown = [fc.combo_id for fc in frame.combos if fc.combo_id not in by_id]
            if unknown and strict:
                raise UnknownCombo(unknown, day=frame.day)

            applied = []
            for frame_combo in frame.combos:
                combo = by_id.get(frame_combo.combo_id)
                if combo is None:
                    continue
                combo.metrics = frame_combo.metrics()
                applied.append(combo.combo_id)

            _sort_by_conversion_rate(self._result.combinations)
            self._last_applied_day = frame.day
            self._version += 1
            snapshot = self._snapshot_locked()

        if unknown:
            logger.warning("%s", UnknownCombo(unknown, day=frame.day))
        self._notify(snapshot)
        return FrameApplyReport(day=frame.day, applied=applied, unknown=unknown)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def loaded(self) -> bool:
        with self._lock:
            return self._result is not None

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def current_combinations(self) -> List[Combination]:
        with self._lock:
            if self._result is None:
                return []
            return [c.model_copy(deep=True) for c in self._result.combinations]

    def current_frames(self) -> List[SimulationFrame]:
        with self._lock:
            if self._result is None:
                return []
            return [f.model_copy(deep=True) for f in self._result.frames]

    def current_control(self) -> Optional[Combination]:
        """Return the control combination (uplift == 0), or None."""
        with self._lock:
            if self._result is None or self._control_combo_id is None:
                return None
            for combo in self._result.combinations:
                if combo.combo_id == self._control_combo_id:
                    return combo.model_copy(deep=True)
            return None

    def current_control_metrics(self) -> Optional[CombinationMetrics]:
        with self._lock:
            if self._result is None or self._result.control_metrics is None:
                return None
            return self._result.control_metrics.model_copy()

    def get_snapshot(self) -> StoreSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> StoreSnapshot:
        if self._result is None:
            return StoreSnapshot(version=self._version)
        return StoreSnapshot(
            version=self._version,
            simulation_id=self._result.id,
            combinations=[c.model_copy(deep=True) for c in self._result.combinations],
            frames=[f.model_copy(deep=True) for f in self._result.frames],
            control_metrics=(
                self._result.control_metrics.model_copy() if self._result.control_metrics else None
            ),
            control_combo_id=self._control_combo_id,
            last_applied_day=self._last_applied_day,
        )

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def add_replace_hook(self, hook: Callable[[], Any]) -> None:
        """Register a callable run before the result is replaced or cleared."""
        with self._lock:
            self._replace_hooks.append(hook)

    def _run_replace_hooks(self) -> None:
        with self._lock:
            hooks = list(self._replace_hooks)
        for hook in hooks:
            hook()

    def _notify(self, snapshot: StoreSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(snapshot)
