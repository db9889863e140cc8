"""Goal-type metric filtering for the per-variant metrics panel.

Raw metrics arrive as one row per (variant, goal type). Selecting a specific
goal type is a plain filter; selecting "all" merges every goal type per
variant: users and conversions are summed and confidence is blended with a
user-weighted mean, ``weight = max(1, users)``.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from ..results.models import Goal, ResultsMetric

ALL_GOAL_TYPES = "all"
WINNER_MIN_CONFIDENCE = 80

GOAL_TYPE_LABELS = {
    "all": "All Goals",
    "clickSelector": "Click Selector",
    "urlReached": "URL Reached",
    "dataLayerEvent": "Data Layer Event",
}


@dataclass
class GoalMetricsGroup:
    """Metrics shown for one goal in the page overview."""
    goal: Goal
    metrics: List[ResultsMetric]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def merge_goal_types(metrics: Iterable[ResultsMetric]) -> List[ResultsMetric]:
    """
    Aggregate metrics across goal types, one row per variant.

    The result does not depend on input order: sums use ``math.fsum`` and
    rows are returned sorted by variant id.
    """
    grouped: Dict[str, List[ResultsMetric]] = {}
    for m in metrics:
        grouped.setdefault(m.variant_id, []).append(m)

    merged = []
    for variant_id in sorted(grouped):
        rows = grouped[variant_id]
        users = sum(m.users for m in rows)
        conversions = sum(m.conversions for m in rows)
        weights = [max(1, m.users) for m in rows]
        weight_total = math.fsum(weights)
        confidence_sum = math.fsum(m.confidence * w for m, w in zip(rows, weights))
        merged.append(ResultsMetric(
            variant_id=variant_id,
            # a variant belongs to one point; min() keeps the pick stable if data disagrees
            point_id=min(m.point_id for m in rows),
            goal_type=ALL_GOAL_TYPES,
            users=users,
            conversions=conversions,
            conversion_rate=conversions / users if users > 0 else 0.0,
            confidence=_round_half_up(confidence_sum / weight_total) if weight_total > 0 else 0,
        ))
    return merged


def apply_goal_type_filter(metrics: Sequence[ResultsMetric], goal_type: str) -> List[ResultsMetric]:
    """Merge across goal types for "all", otherwise keep only ``goal_type`` rows."""
    if goal_type == ALL_GOAL_TYPES:
        return merge_goal_types(metrics)
    return [m for m in metrics if m.goal_type == goal_type]


def sort_metrics(metrics: Iterable[ResultsMetric]) -> List[ResultsMetric]:
    """Conversion rate descending, ties broken by confidence descending."""
    return sorted(metrics, key=lambda m: (-m.conversion_rate, -m.confidence))


def filter_metrics_for_point(metrics: Iterable[ResultsMetric], point_id: str) -> List[ResultsMetric]:
    return sort_metrics(m for m in metrics if str(m.point_id) == str(point_id))


def group_metrics_by_goal(metrics: Sequence[ResultsMetric], goals: Sequence[Goal]) -> Dict[str, GoalMetricsGroup]:
    """
    Group metrics per goal (matched by goal type), plus an "all" group.

    Args:
        metrics: Metrics after goal-type filtering
        goals: Project goals

    Returns:
        Mapping of goal id to its metrics; goals without metrics are omitted
    """
    groups: Dict[str, GoalMetricsGroup] = {}
    for goal in goals:
        goal_metrics = [m for m in metrics if m.goal_type == goal.type]
        if goal_metrics:
            groups[goal.id] = GoalMetricsGroup(goal=goal, metrics=goal_metrics)

    if metrics:
        groups[ALL_GOAL_TYPES] = GoalMetricsGroup(
            goal=Goal(id=ALL_GOAL_TYPES, type="clickSelector", is_primary=False, name="All Goals"),
            metrics=list(metrics),
        )
    return groups


def goals_for_type(goal_type: str, goals: Sequence[Goal], groups: Dict[str, GoalMetricsGroup]) -> List[Goal]:
    """Goals selectable under a goal-type filter."""
    if goal_type == ALL_GOAL_TYPES:
        return [g.goal for key, g in groups.items() if key != ALL_GOAL_TYPES]
    return [g for g in goals if g.type == goal_type]


def goal_type_label(goal_type: str) -> str:
    return GOAL_TYPE_LABELS.get(goal_type, goal_type)


def default_goal_id(goals: Sequence[Goal]) -> str:
    """Primary goal id, else the first goal, else "all"."""
    for goal in goals:
        if goal.is_primary:
            return goal.id
    return goals[0].id if goals else ALL_GOAL_TYPES


def is_winner_metric(metric: ResultsMetric, metrics: Sequence[ResultsMetric],
                     min_confidence: float = WINNER_MIN_CONFIDENCE) -> bool:
    """Top conversion rate in the panel and confident enough to call."""
    if not metrics:
        return False
    max_cr = max(m.conversion_rate for m in metrics)
    return metric.conversion_rate == max_cr and metric.confidence >= min_confidence
