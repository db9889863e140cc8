"""Demo simulation result: 6 combinations over 3 points, one frame per day.

Combination A1|B2|C1 is set up to win by the last day. The control
(A0|B0|C0) carries zero uplift in every frame; every other combination's
uplift is measured against the control's rate for that day.
"""

from typing import Dict, List

import numpy as np

from ..config.schema import Mock
from .models import SimulationResult

_HERO = ("hero", "Hero headline", "#hero h1")
_CTA = ("cta", "Main CTA", 'button[data-qa="cta"]')
_MICRO = ("micro", "Microcopy", ".microcopy")

_VARIANTS = {
    "v1": (_HERO, "Control", "Pay securely online and in-store with real-time controls."),
    "v5": (_HERO, "Variant 3", "Bank with confidence. Your money, your control."),
    "v8": (_HERO, "Variant 6", "Simple, fast, secure. Banking that fits you."),
    "v2": (_CTA, "Control", "Start application"),
    "v4": (_CTA, "Variant 2", "Check eligibility"),
    "v6": (_CTA, "Variant 4", "Apply now - quick decision"),
    "v3": (_MICRO, "Control", "Terms and conditions apply."),
    "v7": (_MICRO, "Variant 5", "Subject to approval. Terms apply."),
}

# comboId -> (variant ids, final conversion rate, final win probability)
_COMBOS = {
    "A0|B0|C0": (("v1", "v2", "v3"), None, 0.05),
    "A0|B1|C0": (("v1", "v4", "v3"), 0.087, 0.08),
    "A1|B0|C0": (("v5", "v2", "v3"), 0.091, 0.12),
    "A1|B1|C0": (("v5", "v4", "v3"), 0.094, 0.18),
    "A1|B2|C1": (("v5", "v6", "v7"), 0.102, 0.45),
    "A2|B2|C1": (("v8", "v6", "v7"), 0.089, 0.12),
}
CONTROL_COMBO_ID = "A0|B0|C0"


def _points(variant_ids, combo_index: int) -> List[Dict]:
    winner = combo_index % len(variant_ids)
    points = []
    for i, vid in enumerate(variant_ids):
        (point_id, point_name, selector), variant_name, text = _VARIANTS[vid]
        points.append({
            "pointId": point_id,
            "pointName": point_name,
            "variantId": vid,
            "variantName": variant_name,
            "variantText": text,
            "cssSelector": selector,
            "pointUplift": round(0.01 + (0.025 if i == winner else 0.005 * (len(variant_ids) - i)), 4),
            "pointWinProbability": round(
                0.72 + combo_index * 0.02 if i == winner else 0.35 + i * 0.05, 3
            ),
        })
    return points


def build_mock_result(params: Mock = None, simulation_id: str = "") -> SimulationResult:
    """
    Build a reproducible demo result.

    Args:
        params: Generator parameters (days, control rate, traffic, seed)
        simulation_id: Id to attach ("" means unsaved)

    Returns:
        SimulationResult with combinations at their final-day metrics
    """
    params = params or Mock()
    rng = np.random.default_rng(params.random_seed)
    base_cr = params.control_cr

    frames = []
    for day in range(1, params.days + 1):
        t = day / params.days
        control_cr = base_cr + float(rng.uniform(-0.002, 0.002))
        combos = []
        for combo_id, (_, target_cr, target_wp) in _COMBOS.items():
            users = int(round(params.base_users + day * params.users_per_day + float(rng.uniform(-50, 50))))
            if combo_id == CONTROL_COMBO_ID:
                cr = control_cr
                uplift = 0.0
            else:
                cr = base_cr + (target_cr - base_cr) * t + float(rng.uniform(-0.005, 0.005))
                uplift = round((cr - control_cr) / control_cr, 4) or 0.0001
            conversions = int(round(users * min(0.2, max(0.02, cr))))
            wp = min(0.99, max(0.01, target_wp * (0.3 + 0.7 * t) + float(rng.uniform(-0.02, 0.02))))
            combos.append({
                "comboId": combo_id,
                "users": users,
                "conversions": conversions,
                "conversionRate": round(conversions / users, 4) if users else 0.0,
                "uplift": uplift,
                "winProbability": round(wp, 3),
            })
        frames.append({"day": day, "combos": combos})

    last = {c["comboId"]: c for c in frames[-1]["combos"]}
    combinations = []
    for idx, (combo_id, (variant_ids, _, _)) in enumerate(_COMBOS.items()):
        final = last[combo_id]
        combinations.append({
            "comboId": combo_id,
            "points": _points(variant_ids, idx),
            "metrics": {k: final[k] for k in ("users", "conversions", "conversionRate", "uplift", "winProbability")},
        })
    control = last[CONTROL_COMBO_ID]

    return SimulationResult.model_validate({
        "id": simulation_id,
        "combinations": combinations,
        "frames": frames,
        "controlMetrics": {
            "users": control["users"],
            "conversions": control["conversions"],
            "conversionRate": control["conversionRate"],
            "uplift": 0.0,
            "winProbability": control["winProbability"],
        },
    })
