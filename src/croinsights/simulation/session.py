"""Results session - wires the store, engines and replay scheduler for a host UI.

Control flow:

- ``load()`` populates the store and the host reads ``current_view()``
  (aggregation, chart series, KPIs and row classification in one pass).
- ``run_replay()`` drives the scheduler, which re-renders the view after
  every applied frame and classifies rows once the replay completes.
- ``reset()`` stops any replay and always clears the store, whether or not
  the external reset call succeeds.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from ..analysis.aggregation import (
    ALL,
    Kpis,
    best_combination_for_variant,
    compute_kpis,
    display_combination_rows,
    point_variant_rows,
    resolve_view_mode,
    sort_by_conversion_rate,
    sort_by_win_probability,
)
from ..analysis.classification import RowFlags, classify_rows
from ..analysis.display import KpiDisplay, displayable_kpis
from ..analysis.goal_metrics import default_goal_id
from ..config.schema import Config
from ..reporting.charts import (
    BarSeries,
    LineSeries,
    build_by_goal_line_series,
    build_by_point_line_series,
    build_combination_bar_series,
    build_point_variant_bar_series,
)
from ..results.models import (
    Combination,
    Goal,
    OptimizationPoint,
    PointVariantRow,
    SimulationFrame,
    SimulationResult,
    SimulationSummary,
    ViewMode,
)
from ..results.store import SimulationDataStore, StoreSnapshot
from .replay import FrameProgress, ReplayHandle, ReplayOutcome, ReplayScheduler, ReplayState

logger = logging.getLogger(__name__)


@dataclass
class TableRow:
    """A table row with its badges."""
    row: Union[Combination, PointVariantRow]
    flags: RowFlags


@dataclass
class ResultsView:
    """Everything the host renders for the active filters."""
    view_mode: ViewMode
    point_filter: str
    goal_filter: str
    simulation_id: Optional[str]
    rows: List[TableRow] = field(default_factory=list)
    kpis: Optional[Kpis] = None
    kpi_display: Optional[KpiDisplay] = None
    line_series: LineSeries = field(default_factory=LineSeries)
    bar_series: BarSeries = field(default_factory=BarSeries)
    day: Optional[int] = None

    @property
    def winner(self) -> Optional[TableRow]:
        return self.rows[0] if self.rows else None

    @property
    def losers(self) -> List[TableRow]:
        return [r for r in self.rows if r.flags.is_loser]


@dataclass
class ResetOutcome:
    success: bool
    message: Optional[str] = None


class ResultsSession:
    """State holder for one results page."""

    def __init__(self, config: Config = None, store: SimulationDataStore = None, timer=None):
        """
        Initialize session.

        Args:
            config: Workbench configuration (defaults used when omitted)
            store: Store to use (a new one when omitted)
            timer: Replay timer (ThreadingTimer when omitted)
        """
        self.config = config or Config()
        self.store = store or SimulationDataStore()
        self.points: List[OptimizationPoint] = []
        self.goals: List[Goal] = []
        self.point_filter: str = ALL
        self.goal_filter: str = ALL
        # "conversionRate" (default table order) or "winProbability" (chart order)
        self.combination_order: str = "conversionRate"

        self._last_bar_series: Optional[BarSeries] = None
        self._progress_listeners: List[Callable[[FrameProgress], None]] = []
        self._finished_listeners: List[Callable[[ReplayOutcome], None]] = []

        self.scheduler = ReplayScheduler(
            self.store,
            timer=timer,
            render=self._render_frame,
            classify=self._classify,
            on_frame=self._emit_progress,
            on_complete=self._emit_finished,
            on_cancel=self._emit_finished,
            interval_ms=self.config.replay.frame_interval_ms,
        )

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    @property
    def view_mode(self) -> ViewMode:
        return resolve_view_mode(self.point_filter)

    def set_points(self, points: Sequence[OptimizationPoint]) -> None:
        self.points = list(points)

    def set_goals(self, goals: Sequence[Goal]) -> None:
        self.goals = list(goals)
        if self.goal_filter == ALL:
            self.goal_filter = default_goal_id(self.goals)

    def select_point(self, point_id: Optional[str]) -> ResultsView:
        self.point_filter = str(point_id) if point_id else ALL
        self._last_bar_series = None
        return self.current_view()

    def select_goal(self, goal_id: Optional[str]) -> ResultsView:
        self.goal_filter = str(goal_id) if goal_id else ALL
        return self.current_view()

    def selected_point_name(self) -> str:
        for p in self.points:
            if p.id == self.point_filter:
                return p.name
        return ""

    # ------------------------------------------------------------------
    # Load / reset
    # ------------------------------------------------------------------

    def load(self, result: Union[SimulationResult, Mapping[str, Any]]) -> ResultsView:
        """Load a result without animation; filters return to the defaults."""
        self.store.load(result)
        self.point_filter = ALL
        self.goal_filter = default_goal_id(self.goals)
        self._last_bar_series = None
        return self.current_view()

    def load_latest(
        self,
        list_simulations: Callable[[], Sequence[Union[SimulationSummary, Mapping[str, Any]]]],
        get_simulation: Callable[[str], Union[SimulationResult, Mapping[str, Any]]]
    ) -> Optional[ResultsView]:
        """
        Load the most recent saved simulation.

        Args:
            list_simulations: Returns summaries, most recent first
            get_simulation: Fetches a full result by id

        Returns:
            The loaded view, or None when nothing is saved
        """
        summaries = list_simulations() or []
        if not summaries:
            return None
        latest = summaries[0]
        if not isinstance(latest, SimulationSummary):
            latest = SimulationSummary.model_validate(latest)
        return self.load(get_simulation(latest.id))

    def simulate(
        self,
        run_simulation: Callable[[], Union[SimulationResult, Mapping[str, Any]]],
        interval_ms: Optional[int] = None
    ) -> ReplayHandle:
        """Fetch a freshly computed result, load it and start the replay."""
        self.load(run_simulation())
        return self.run_replay(interval_ms=interval_ms)

    def reset(self, remote_reset: Callable[[], Any] = None) -> ResetOutcome:
        """
        Stop any replay, call the external reset and clear the store.

        The store is cleared even when ``remote_reset`` raises, so the page can
        always be re-armed for a new run.
        """
        self.scheduler.cancel()
        outcome = ResetOutcome(success=True, message="Results reset successfully.")
        try:
            if remote_reset is not None:
                remote_reset()
        except Exception as exc:
            logger.warning("Remote reset failed: %s", exc)
            outcome = ResetOutcome(success=False, message=f"Failed to reset results: {exc}")
        finally:
            self.store.clear()
            self._last_bar_series = None
        return outcome

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def on_progress(self, listener: Callable[[FrameProgress], None]) -> None:
        self._progress_listeners.append(listener)

    def on_finished(self, listener: Callable[[ReplayOutcome], None]) -> None:
        self._finished_listeners.append(listener)

    def run_replay(self, interval_ms: Optional[int] = None) -> ReplayHandle:
        """Replay the loaded frames. Raises AlreadyRunning while one is active."""
        self._last_bar_series = None
        return self.scheduler.start(interval_ms=interval_ms)

    def cancel_replay(self) -> bool:
        return self.scheduler.cancel()

    @property
    def replaying(self) -> bool:
        return self.scheduler.state == ReplayState.RUNNING

    def _render_frame(self, snapshot: StoreSnapshot, frames: Sequence[SimulationFrame]) -> ResultsView:
        day = frames[-1].day if frames else None
        refresh_bars = (
            self._last_bar_series is None
            or self.view_mode == "byPoint"
            or (day is not None and day % self.config.replay.bar_refresh_every_days == 0)
        )
        view = self.build_view(snapshot, frames=frames,
                               bar_series=None if refresh_bars else self._last_bar_series)
        self._last_bar_series = view.bar_series
        view.day = day
        return view

    def _classify(self, snapshot: StoreSnapshot) -> ResultsView:
        return self.build_view(snapshot)

    def _emit_progress(self, progress: FrameProgress) -> None:
        for listener in list(self._progress_listeners):
            listener(progress)

    def _emit_finished(self, outcome: ReplayOutcome) -> None:
        for listener in list(self._finished_listeners):
            listener(outcome)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def current_view(self) -> ResultsView:
        return self.build_view(self.store.get_snapshot())

    def build_view(
        self,
        snapshot: StoreSnapshot,
        frames: Optional[Sequence[SimulationFrame]] = None,
        bar_series: Optional[BarSeries] = None
    ) -> ResultsView:
        """Derive table rows, KPIs and chart series from a store snapshot."""
        cfg = self.config
        combinations = snapshot.combinations
        if frames is None:
            frames = snapshot.frames
            # after a cancelled or partial replay the store holds only up to this day
            if snapshot.last_applied_day is not None:
                frames = [f for f in frames if f.day <= snapshot.last_applied_day]
        control_id = snapshot.control_combo_id
        view_mode = self.view_mode
        min_users = cfg.display.min_users_for_display

        if view_mode == "byPoint":
            rows = point_variant_rows(combinations, self.point_filter, control_id)
            line = build_by_point_line_series(
                frames, combinations, self.point_filter, snapshot.control_metrics,
                label_max_length=cfg.display.variant_line_truncate,
                control_color=cfg.charts.control_color,
                variant_colors=cfg.charts.variant_colors,
                control_combo_id=control_id,
            )
            bars = bar_series or build_point_variant_bar_series(
                rows, label_max_length=cfg.display.variant_bar_truncate, min_users=min_users,
                winner_color=cfg.charts.winner_bar_color, bar_color=cfg.charts.bar_color,
            )
        else:
            if self.combination_order == "winProbability":
                rows = sort_by_win_probability(combinations)
            else:
                rows = sort_by_conversion_rate(combinations)
            displayed = display_combination_rows(combinations, self.point_filter)
            line = build_by_goal_line_series(
                frames, displayed, snapshot.control_metrics,
                control_color=cfg.charts.control_color, best_color=cfg.charts.best_color,
                control_combo_id=control_id,
            )
            bars = bar_series or build_combination_bar_series(
                displayed, top_n=cfg.charts.top_n_bars, min_users=min_users,
                winner_color=cfg.charts.winner_bar_color, bar_color=cfg.charts.bar_color,
            )

        flags = classify_rows(rows, cfg.classification.loser_fraction)
        kpis = compute_kpis(combinations, self.point_filter, snapshot.control_metrics, control_id)
        return ResultsView(
            view_mode=view_mode,
            point_filter=self.point_filter,
            goal_filter=self.goal_filter,
            simulation_id=snapshot.simulation_id,
            rows=[TableRow(row=r, flags=f) for r, f in zip(rows, flags)],
            kpis=kpis,
            kpi_display=displayable_kpis(kpis, min_users),
            line_series=line,
            bar_series=bars,
            day=snapshot.last_applied_day,
        )

    def preview_combination_for_variant(self, variant_id: str) -> Optional[Combination]:
        """Best-CR combination showing ``variant_id`` on the selected point."""
        if self.view_mode != "byPoint":
            return None
        return best_combination_for_variant(self.store.current_combinations(), self.point_filter, variant_id)
