"""Aggregation engine - by-goal and by-point views of a simulation snapshot.

Two grouping dimensions are derived from the same combinations:

- By goal: one row per combination. Table order is conversion rate
  descending; chart order (bars, display indices) is win probability
  descending.
- By point: one PointVariantRow per distinct variant of the selected point,
  aggregated over every combination that assigns that variant.

Control is the combination with ``uplift == 0``. Without one, every
control-relative figure is reported as UNAVAILABLE rather than zero.

All functions are pure: inputs are never mutated and new lists are returned.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..results.models import (
    UNAVAILABLE,
    Combination,
    CombinationMetrics,
    MaybeFloat,
    PointVariantRow,
    ViewMode,
)

ALL = "all"


@dataclass
class Kpis:
    """KPI scalars for the active view."""
    view_mode: ViewMode
    control_cr: MaybeFloat
    best_cr: float
    uplift: MaybeFloat
    users_for_uplift: int
    best_row_id: Optional[str] = None
    control_combo_id: Optional[str] = None

    @property
    def has_control(self) -> bool:
        return self.control_combo_id is not None


def resolve_view_mode(point_filter: Optional[str]) -> ViewMode:
    """'byPoint' when a specific point is selected, else 'byGoal'."""
    if point_filter and str(point_filter) != ALL:
        return "byPoint"
    return "byGoal"


def find_control(
    combinations: Sequence[Combination],
    control_combo_id: Optional[str] = None
) -> Optional[Combination]:
    """
    Return the control combination, or None.

    With ``control_combo_id`` (the id the store fixed at load) that row is
    returned; otherwise the first row with uplift == 0.
    """
    if control_combo_id is not None:
        for combo in combinations:
            if combo.combo_id == control_combo_id:
                return combo
        return None
    for combo in combinations:
        if combo.metrics.uplift == 0:
            return combo
    return None


def control_conversion_rate(
    combinations: Sequence[Combination],
    control_metrics: Optional[CombinationMetrics] = None,
    control_combo_id: Optional[str] = None
) -> MaybeFloat:
    """
    Baseline conversion rate for uplift computations.

    Uses the result's precomputed control metrics when supplied, otherwise the
    control combination's current rate. UNAVAILABLE when no control exists.
    """
    control = find_control(combinations, control_combo_id)
    if control is None:
        return UNAVAILABLE
    if control_metrics is not None:
        return control_metrics.conversion_rate
    return control.metrics.conversion_rate


def sort_by_conversion_rate(combinations: Sequence[Combination]) -> List[Combination]:
    """Table order for the by-goal view."""
    return sorted(combinations, key=lambda c: c.metrics.conversion_rate, reverse=True)


def sort_by_win_probability(combinations: Sequence[Combination]) -> List[Combination]:
    """Chart order for the by-goal view (bar index == display index)."""
    return sorted(combinations, key=lambda c: c.metrics.win_probability, reverse=True)


def combinations_with_point(combinations: Sequence[Combination], point_id: str) -> List[Combination]:
    """Combinations that assign a variant to ``point_id``."""
    return [c for c in combinations if c.point(point_id) is not None]


def display_combination_rows(
    combinations: Sequence[Combination],
    point_filter: Optional[str] = ALL
) -> List[Combination]:
    """
    Combination rows in chart order.

    By goal every combination is shown; goal selection only decides which
    simulation was loaded upstream. By point only combinations containing the
    point are kept.
    """
    if resolve_view_mode(point_filter) == "byPoint":
        rows = combinations_with_point(combinations, point_filter)
    else:
        rows = list(combinations)
    return sort_by_win_probability(rows)


def point_variant_rows(
    combinations: Sequence[Combination],
    point_id: str,
    control_combo_id: Optional[str] = None
) -> List[PointVariantRow]:
    """
    Aggregate combinations into one row per variant of ``point_id``.

    Args:
        combinations: Current combinations
        point_id: Selected optimization point
        control_combo_id: Control combination id (derived when omitted)

    Returns:
        Rows sorted by best conversion rate, descending
    """
    if not point_id or str(point_id) == ALL:
        return []
    if control_combo_id is None:
        control = find_control(combinations)
        control_combo_id = control.combo_id if control else None

    groups: Dict[str, Dict] = {}
    for combo in combinations:
        point = combo.point(point_id)
        if point is None:
            continue
        group = groups.get(point.variant_id)
        if group is None:
            group = {
                "variant_name": point.variant_name,
                "variant_text": point.variant_text,
                "combos": [],
            }
            groups[point.variant_id] = group
        group["combos"].append(combo)

    rows = []
    for variant_id, group in groups.items():
        combos: List[Combination] = group["combos"]
        total_users = sum(c.metrics.users for c in combos)
        total_conversions = sum(c.metrics.conversions for c in combos)
        rows.append(PointVariantRow(
            variant_id=variant_id,
            variant_name=group["variant_name"],
            variant_text=group["variant_text"],
            combos_count=len(combos),
            best_conversion_rate=max(c.metrics.conversion_rate for c in combos),
            avg_conversion_rate=total_conversions / total_users if total_users > 0 else 0.0,
            best_win_probability=max(c.metrics.win_probability for c in combos),
            best_uplift=max(c.metrics.uplift for c in combos),
            total_users=total_users,
            total_conversions=total_conversions,
            is_control=control_combo_id is not None and any(c.combo_id == control_combo_id for c in combos),
        ))

    rows.sort(key=lambda r: r.best_conversion_rate, reverse=True)
    return rows


def compute_kpis(
    combinations: Sequence[Combination],
    point_filter: Optional[str] = ALL,
    control_metrics: Optional[CombinationMetrics] = None,
    control_combo_id: Optional[str] = None
) -> Kpis:
    """
    KPI scalars for the active view.

    By goal, best CR and uplift come from the top combination by conversion
    rate, uplift taken as supplied. By point, best CR is the best variant's
    ``best_conversion_rate`` and uplift is derived against the control rate:
    ``(best - control) / control`` (0 when the control rate is 0).
    """
    view_mode = resolve_view_mode(point_filter)
    control = find_control(combinations, control_combo_id)
    control_id = control.combo_id if control else None
    control_cr = control_conversion_rate(combinations, control_metrics, control_id)

    if view_mode == "byPoint":
        rows = point_variant_rows(combinations, point_filter, control_id)
        if not rows:
            return Kpis(view_mode, control_cr, 0.0, 0.0 if control else UNAVAILABLE, 0,
                        control_combo_id=control_id)
        best = rows[0]
        if control_cr is UNAVAILABLE:
            uplift = UNAVAILABLE
        elif control_cr > 0:
            uplift = (best.best_conversion_rate - control_cr) / control_cr
        else:
            uplift = 0.0
        return Kpis(
            view_mode=view_mode,
            control_cr=control_cr,
            best_cr=best.best_conversion_rate,
            uplift=uplift,
            users_for_uplift=best.total_users,
            best_row_id=best.variant_id,
            control_combo_id=control_id,
        )

    ordered = sort_by_conversion_rate(combinations)
    if not ordered:
        return Kpis(view_mode, control_cr, 0.0, 0.0 if control else UNAVAILABLE, 0,
                    control_combo_id=control_id)
    best = ordered[0]
    return Kpis(
        view_mode=view_mode,
        control_cr=control_cr,
        best_cr=best.metrics.conversion_rate,
        uplift=best.metrics.uplift if control else UNAVAILABLE,
        users_for_uplift=best.metrics.users,
        best_row_id=best.combo_id,
        control_combo_id=control_id,
    )


def best_combination_for_variant(
    combinations: Sequence[Combination],
    point_id: str,
    variant_id: str
) -> Optional[Combination]:
    """Highest-CR combination assigning ``variant_id`` to ``point_id`` (for previews)."""
    matches = []
    for combo in combinations:
        point = combo.point(point_id)
        if point is not None and point.variant_id == variant_id:
            matches.append(combo)
    if not matches:
        return None
    return sort_by_conversion_rate(matches)[0]
