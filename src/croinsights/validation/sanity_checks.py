"""Sanity checks for loaded simulation results.

These are data-quality warnings, not load failures: structural problems that
make a result unusable are rejected by the store with InvalidResult.
"""

from dataclasses import dataclass
from typing import List, Optional

from ..results.models import SimulationResult

CR_TOLERANCE = 5e-4


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "control", "consistency", "frames"
    message: str
    details: Optional[str] = None


def check_simulation_result(result: SimulationResult) -> List[ValidationWarning]:
    """
    Check a simulation result for implausible data.

    Returns:
        List of validation warnings
    """
    warnings = []

    controls = [c.combo_id for c in result.combinations if c.metrics.uplift == 0]
    if not controls and result.combinations:
        warnings.append(ValidationWarning(
            severity="warning",
            category="control",
            message="No control combination (uplift == 0); control-relative figures are unavailable",
        ))
    elif len(controls) > 1:
        warnings.append(ValidationWarning(
            severity="warning",
            category="control",
            message=f"{len(controls)} combinations have zero uplift; the first is used as control",
            details=", ".join(controls)
        ))

    for combo in result.combinations:
        m = combo.metrics
        expected = m.conversions / m.users if m.users > 0 else 0.0
        if abs(expected - m.conversion_rate) > CR_TOLERANCE:
            warnings.append(ValidationWarning(
                severity="warning",
                category="consistency",
                message=f"Combination {combo.combo_id}: conversion rate does not match conversions/users",
                details=f"Reported {m.conversion_rate:.4f}, computed {expected:.4f}"
            ))
        if m.conversions > m.users:
            warnings.append(ValidationWarning(
                severity="error",
                category="consistency",
                message=f"Combination {combo.combo_id}: more conversions than users",
                details=f"{m.conversions} conversions, {m.users} users"
            ))

    if result.combinations:
        reference = {p.point_id for p in result.combinations[0].points}
        for combo in result.combinations[1:]:
            point_ids = {p.point_id for p in combo.points}
            if point_ids != reference:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="consistency",
                    message=f"Combination {combo.combo_id} covers a different set of points",
                    details=f"Expected {sorted(reference)}, got {sorted(point_ids)}"
                ))

    days = [f.day for f in result.frames]
    if any(b <= a for a, b in zip(days, days[1:])):
        warnings.append(ValidationWarning(
            severity="warning",
            category="frames",
            message="Frame days are not strictly increasing; replay sorts them by day",
            details=f"Days: {days}"
        ))

    return warnings
