"""Shared builders for simulation-result fixtures."""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from croinsights.results.models import SimulationResult


def make_point(point_id, variant_id, text=None, point_name=None):
    return {
        "pointId": point_id,
        "pointName": point_name or point_id.title(),
        "variantId": variant_id,
        "variantName": variant_id,
        "variantText": text if text is not None else f"Text {variant_id}",
        "cssSelector": f"#{point_id}",
    }


def make_combo(combo_id, users, conversions, cr, uplift, wp=0.0, points=None):
    return {
        "comboId": combo_id,
        "points": points or [make_point("hero", f"{combo_id}-v")],
        "metrics": {
            "users": users,
            "conversions": conversions,
            "conversionRate": cr,
            "uplift": uplift,
            "winProbability": wp,
        },
    }


def make_frame(day, entries):
    """``entries`` maps comboId -> (users, conversions, cr, uplift, wp)."""
    combos = []
    for combo_id, (users, conversions, cr, uplift, wp) in entries.items():
        combos.append({
            "comboId": combo_id,
            "users": users,
            "conversions": conversions,
            "conversionRate": cr,
            "uplift": uplift,
            "winProbability": wp,
        })
    return {"day": day, "combos": combos}


def scenario_payload():
    """Control A, B at +50% and low-traffic C at +100%."""
    return {
        "id": "sim-1",
        "combinations": [
            make_combo("A", 100, 10, 0.10, 0.0, 0.10),
            make_combo("B", 120, 18, 0.15, 0.5, 0.30),
            make_combo("C", 40, 8, 0.20, 1.0, 0.60),
        ],
        "controlMetrics": {"users": 100, "conversions": 10, "conversionRate": 0.10,
                           "uplift": 0.0, "winProbability": 0.10},
    }


def two_point_payload():
    """Four combinations over points hero (h1/h2) and cta (c1/c2); control is h1+c1."""
    def pts(h, c):
        return [make_point("hero", h, f"Headline {h}"), make_point("cta", c, f"Button {c}")]

    combos = [
        make_combo("h1c1", 100, 10, 0.10, 0.0, 0.05, pts("h1", "c1")),
        make_combo("h1c2", 100, 12, 0.12, 0.2, 0.20, pts("h1", "c2")),
        make_combo("h2c1", 100, 14, 0.14, 0.4, 0.30, pts("h2", "c1")),
        make_combo("h2c2", 100, 16, 0.16, 0.6, 0.45, pts("h2", "c2")),
    ]
    frames = []
    for day in (1, 2, 3):
        frames.append(make_frame(day, {
            "h1c1": (day * 30, day * 3, 0.10, 0.0, 0.05),
            "h1c2": (day * 30, day * 3, 0.10 + 0.005 * day, 0.05 * day, 0.05 * day),
            "h2c1": (day * 30, day * 4, 0.12 + 0.005 * day, 0.1 * day, 0.1 * day),
            "h2c2": (day * 30, day * 5, 0.14 + 0.005 * day, 0.15 * day, 0.15 * day),
        }))
    return {"id": "sim-2", "combinations": combos, "frames": frames}


@pytest.fixture
def scenario():
    return SimulationResult.model_validate(scenario_payload())


@pytest.fixture
def two_points():
    return SimulationResult.model_validate(two_point_payload())
