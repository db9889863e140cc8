"""Tests for chart series builders and Plotly figures."""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from croinsights.analysis.aggregation import point_variant_rows
from croinsights.reporting.charts import (
    BAR_COLOR,
    CONTROL_COLOR,
    VARIANT_COLORS,
    WINNER_BAR_COLOR,
    build_by_goal_line_series,
    build_by_point_line_series,
    build_combination_bar_series,
    build_point_variant_bar_series,
    create_conversion_rate_chart,
    create_win_probability_chart,
    to_fill_color,
)
from croinsights.results.models import Combination, CombinationMetrics, SimulationFrame

from conftest import make_combo, make_point


class TestLineSeries:

    def test_by_goal_control_and_best(self, two_points):
        series = build_by_goal_line_series(two_points.frames, two_points.combinations)
        assert series.labels == ["Day 1", "Day 2", "Day 3"]
        assert [d.label for d in series.datasets] == ["Control", "Best combination"]
        control, best = series.datasets
        assert control.data == [0.10, 0.10, 0.10]
        assert best.data == pytest.approx([0.145, 0.15, 0.155])
        assert control.border_color == CONTROL_COLOR
        assert control.background_color == "rgba(75, 192, 192, 0.2)"

    def test_by_goal_without_control_falls_back(self, two_points):
        """Without a control row the control line uses controlMetrics, else 0."""
        combos = [c for c in two_points.combinations if c.combo_id != "h1c1"]
        metrics = CombinationMetrics(users=10, conversions=1, conversion_rate=0.09)
        series = build_by_goal_line_series(two_points.frames, combos, metrics)
        assert series.datasets[0].data == [0.09, 0.09, 0.09]
        series = build_by_goal_line_series(two_points.frames, combos)
        assert series.datasets[0].data == [0.0, 0.0, 0.0]

    def test_no_frames_no_series(self, two_points):
        assert build_by_goal_line_series([], two_points.combinations).datasets == []

    def test_by_point_one_line_per_non_control_variant(self, two_points):
        series = build_by_point_line_series(two_points.frames, two_points.combinations, "hero")
        labels = [d.label for d in series.datasets]
        assert labels == ["Control", "Headline h2"]
        variant = series.datasets[1]
        # mean of h2c1 and h2c2 per day
        assert variant.data == pytest.approx([0.135, 0.14, 0.145])

    def test_by_point_label_truncated(self):
        text = "A very long headline that keeps going"
        combos = [
            Combination.model_validate(make_combo("c", 100, 10, 0.1, 0.0, points=[make_point("hero", "a")])),
            Combination.model_validate(make_combo("v", 100, 12, 0.12, 0.2, points=[make_point("hero", "b", text)])),
        ]
        frames = [{"day": 1, "combos": [
            {"comboId": "c", "users": 100, "conversions": 10, "conversionRate": 0.1, "uplift": 0.0, "winProbability": 0.1},
            {"comboId": "v", "users": 100, "conversions": 12, "conversionRate": 0.12, "uplift": 0.2, "winProbability": 0.9},
        ]}]
        series = build_by_point_line_series([SimulationFrame.model_validate(f) for f in frames], combos, "hero")
        assert series.datasets[1].label == text[:20] + "…"

    def test_by_point_all_is_empty(self, two_points):
        assert build_by_point_line_series(two_points.frames, two_points.combinations, "all").datasets == []

    def test_variant_colors_cycle_by_first_seen_index(self, two_points):
        series = build_by_point_line_series(two_points.frames, two_points.combinations, "cta")
        # c1 belongs to the control and is seen first, so c2 keeps index 1
        assert series.datasets[1].label == "Button c2"
        assert series.datasets[1].border_color == VARIANT_COLORS[1]

    def test_fill_color(self):
        assert to_fill_color("rgb(1, 2, 3)") == "rgba(1, 2, 3, 0.2)"
        assert to_fill_color("#fff") == "#fff"


class TestBarSeries:

    def test_top_combinations_by_win_probability(self, two_points):
        series = build_combination_bar_series(two_points.combinations, top_n=3)
        assert series.labels == ["Combination 1", "Combination 2", "Combination 3"]
        assert series.values == pytest.approx([45.0, 30.0, 20.0])
        assert series.colors == [WINNER_BAR_COLOR, BAR_COLOR, BAR_COLOR]
        assert [m.row_id for m in series.meta] == ["h2c2", "h2c1", "h1c2"]
        assert series.meta[0].conversion_rate == "16.00%"
        assert series.meta[0].uplift == "+60.00%"

    def test_low_sample_tooltip_withheld(self, scenario):
        series = build_combination_bar_series(scenario.combinations)
        assert series.meta[0].row_id == "C"
        assert series.meta[0].conversion_rate == "—"
        assert series.meta[0].uplift == "—"

    def test_point_variant_bars(self, two_points):
        rows = point_variant_rows(two_points.combinations, "hero")
        series = build_point_variant_bar_series(rows, label_max_length=5)
        assert series.title == "Variants (win probability)"
        assert series.labels == ["Headl…", "Headl…"]
        assert series.values == pytest.approx([45.0, 20.0])
        assert series.colors[0] == WINNER_BAR_COLOR


class TestFigures:

    def test_line_figure_in_percent(self, two_points):
        series = build_by_goal_line_series(two_points.frames, two_points.combinations)
        fig = create_conversion_rate_chart(series)
        assert len(fig.data) == 2
        assert list(fig.data[0].y) == pytest.approx([10.0, 10.0, 10.0])

    def test_bar_figure(self, two_points):
        fig = create_win_probability_chart(build_combination_bar_series(two_points.combinations))
        assert fig.data[0].orientation == "h"
        assert len(fig.data[0].y) == 4
