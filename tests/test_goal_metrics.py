"""Tests for goal-type metric filtering and merging."""

import itertools
import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from croinsights.analysis.goal_metrics import (
    apply_goal_type_filter,
    default_goal_id,
    filter_metrics_for_point,
    goal_type_label,
    group_metrics_by_goal,
    goals_for_type,
    is_winner_metric,
    merge_goal_types,
    sort_metrics,
)
from croinsights.results.models import Goal, ResultsMetric


def _metric(variant_id, goal_type, users, conversions, confidence, point_id="hero"):
    return ResultsMetric(
        variant_id=variant_id,
        point_id=point_id,
        goal_type=goal_type,
        users=users,
        conversions=conversions,
        conversion_rate=conversions / users if users else 0.0,
        confidence=confidence,
    )


@pytest.fixture
def metrics():
    return [
        _metric("v1", "clickSelector", 100, 10, 61),
        _metric("v1", "urlReached", 300, 15, 90),
        _metric("v2", "clickSelector", 0, 0, 50),
        _metric("v2", "urlReached", 200, 40, 85),
        _metric("v3", "dataLayerEvent", 50, 5, 70, point_id="cta"),
    ]


class TestMerge:

    def test_sums_and_weighted_confidence(self, metrics):
        """Users and conversions sum; confidence is weighted by max(1, users)."""
        merged = {m.variant_id: m for m in merge_goal_types(metrics)}
        v1 = merged["v1"]
        assert v1.users == 400
        assert v1.conversions == 25
        assert v1.conversion_rate == pytest.approx(25 / 400)
        assert v1.confidence == round((61 * 100 + 90 * 300) / 400)
        assert v1.goal_type == "all"

        v2 = merged["v2"]
        # zero-user row still weighs 1
        assert v2.confidence == round((50 * 1 + 85 * 200) / 201)

    def test_zero_users_rate_is_zero(self):
        merged = merge_goal_types([_metric("v9", "urlReached", 0, 0, 10)])
        assert merged[0].conversion_rate == 0.0
        assert merged[0].confidence == 10

    def test_order_independent(self, metrics):
        """Any permutation of the input merges to the same output."""
        expected = [m.model_dump() for m in merge_goal_types(metrics)]
        for perm in itertools.permutations(metrics):
            assert [m.model_dump() for m in merge_goal_types(perm)] == expected

    def test_specific_goal_type_is_plain_filter(self, metrics):
        filtered = apply_goal_type_filter(metrics, "urlReached")
        assert [m.variant_id for m in filtered] == ["v1", "v2"]
        assert filtered[0].users == 300

    def test_all_goal_type_merges(self, metrics):
        assert len(apply_goal_type_filter(metrics, "all")) == 3


class TestOrdering:

    def test_sort_by_rate_then_confidence(self):
        rows = [
            _metric("a", "urlReached", 100, 10, 50),
            _metric("b", "urlReached", 100, 10, 90),
            _metric("c", "urlReached", 100, 20, 10),
        ]
        assert [m.variant_id for m in sort_metrics(rows)] == ["c", "b", "a"]

    def test_filter_for_point(self, metrics):
        rows = filter_metrics_for_point(metrics, "cta")
        assert [m.variant_id for m in rows] == ["v3"]

    def test_winner_needs_confidence(self):
        rows = [
            _metric("a", "urlReached", 100, 30, 79),
            _metric("b", "urlReached", 100, 10, 95),
        ]
        assert not is_winner_metric(rows[0], rows)
        assert not is_winner_metric(rows[1], rows)
        rows[0] = _metric("a", "urlReached", 100, 30, 80)
        assert is_winner_metric(rows[0], rows)
        assert not is_winner_metric(rows[0], [])


class TestGoals:

    @pytest.fixture
    def goals(self):
        return [
            Goal(id="g1", type="clickSelector", name="Click"),
            Goal(id="g2", type="urlReached", is_primary=True, name="Thank you page"),
        ]

    def test_default_goal_prefers_primary(self, goals):
        assert default_goal_id(goals) == "g2"
        assert default_goal_id(goals[:1]) == "g1"
        assert default_goal_id([]) == "all"

    def test_group_by_goal(self, goals, metrics):
        groups = group_metrics_by_goal(metrics, goals)
        assert set(groups) == {"g1", "g2", "all"}
        assert len(groups["g2"].metrics) == 2
        assert len(groups["all"].metrics) == len(metrics)

    def test_goals_for_type(self, goals, metrics):
        groups = group_metrics_by_goal(metrics, goals)
        assert [g.id for g in goals_for_type("urlReached", goals, groups)] == ["g2"]
        assert [g.id for g in goals_for_type("all", goals, groups)] == ["g1", "g2"]

    def test_labels(self):
        assert goal_type_label("urlReached") == "URL Reached"
        assert goal_type_label("custom") == "custom"
