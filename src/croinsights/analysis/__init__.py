"""Aggregation, classification and display rules for simulation results."""

from .aggregation import (
    Kpis,
    compute_kpis,
    display_combination_rows,
    find_control,
    point_variant_rows,
    resolve_view_mode,
)
from .classification import RowFlags, classify_rows, is_control, is_loser, is_winner
from .display import (
    KpiDisplay,
    displayable_kpis,
    displayable_rate,
    displayable_uplift,
    format_conversion_rate,
    format_uplift,
    format_win_probability,
)
from .goal_metrics import apply_goal_type_filter, merge_goal_types, sort_metrics

__all__ = [
    # Aggregation
    "Kpis",
    "compute_kpis",
    "display_combination_rows",
    "find_control",
    "point_variant_rows",
    "resolve_view_mode",
    # Classification
    "RowFlags",
    "classify_rows",
    "is_control",
    "is_loser",
    "is_winner",
    # Display rules
    "KpiDisplay",
    "displayable_kpis",
    "displayable_rate",
    "displayable_uplift",
    "format_conversion_rate",
    "format_uplift",
    "format_win_probability",
    # Goal metrics
    "apply_goal_type_filter",
    "merge_goal_types",
    "sort_metrics",
]
