"""Display-eligibility rules and formatting for result figures.

Low-sample figures are withheld: a conversion rate, win probability or uplift
backed by fewer than ``min_users`` users is returned as UNAVAILABLE. Uplift is
also withheld for the control row, whose zero uplift means "nothing to report".
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from ..results.models import UNAVAILABLE, Combination, CombinationPoint, MaybeFloat
from .aggregation import Kpis

MIN_USERS_FOR_DISPLAY = 50
UNAVAILABLE_MARKER = "—"
ELLIPSIS = "…"


def displayable_rate(value: float, users: int, min_users: int = MIN_USERS_FOR_DISPLAY) -> MaybeFloat:
    """Conversion rate or win probability, or UNAVAILABLE below the sample floor."""
    if users < min_users:
        return UNAVAILABLE
    return value


def displayable_uplift(uplift: MaybeFloat, users: int, min_users: int = MIN_USERS_FOR_DISPLAY) -> MaybeFloat:
    """Uplift, or UNAVAILABLE below the sample floor or for the control (uplift == 0)."""
    if uplift is UNAVAILABLE or users < min_users or users == 0:
        return UNAVAILABLE
    if uplift == 0:
        return UNAVAILABLE
    return uplift


@dataclass
class KpiDisplay:
    """KPI values after display-eligibility rules."""
    control_cr: MaybeFloat
    best_cr: MaybeFloat
    uplift: MaybeFloat
    users_for_uplift: int


def displayable_kpis(kpis: Kpis, min_users: int = MIN_USERS_FOR_DISPLAY) -> KpiDisplay:
    """Apply the sample floor to the KPI scalars."""
    return KpiDisplay(
        control_cr=kpis.control_cr,
        best_cr=displayable_rate(kpis.best_cr, kpis.users_for_uplift, min_users),
        uplift=displayable_uplift(kpis.uplift, kpis.users_for_uplift, min_users),
        users_for_uplift=kpis.users_for_uplift,
    )


def format_percent(value: MaybeFloat, decimals: int = 2, signed: bool = False,
                   marker: str = UNAVAILABLE_MARKER) -> str:
    """Format a decimal as a percentage, or the marker when UNAVAILABLE."""
    if value is UNAVAILABLE or value is None:
        return marker
    sign = "+" if signed and value > 0 else ""
    return f"{sign}{value * 100:.{decimals}f}%"


def format_conversion_rate(cr: float, users: int, min_users: int = MIN_USERS_FOR_DISPLAY,
                           decimals: int = 2) -> str:
    return format_percent(displayable_rate(cr, users, min_users), decimals)


def format_win_probability(wp: float, users: int, min_users: int = MIN_USERS_FOR_DISPLAY,
                           decimals: int = 0) -> str:
    return format_percent(displayable_rate(wp, users, min_users), decimals)


def format_uplift(uplift: MaybeFloat, users: int = 0, min_users: int = MIN_USERS_FOR_DISPLAY,
                  decimals: int = 2) -> str:
    """'+50.00%' style uplift; the marker for low samples and for the control."""
    return format_percent(displayable_uplift(uplift, users, min_users), decimals, signed=True)


def format_point_uplift(point: CombinationPoint, decimals: int = 2) -> str:
    """Per-point contribution uplift, when the backend exposes it."""
    if point.point_uplift is None:
        return UNAVAILABLE_MARKER
    return format_percent(point.point_uplift, decimals, signed=True)


def format_point_win_probability(point: CombinationPoint, decimals: int = 0) -> str:
    """Per-point contribution win probability, when the backend exposes it."""
    if point.point_win_probability is None:
        return UNAVAILABLE_MARKER
    return format_percent(point.point_win_probability, decimals)


def is_winning_point(point: CombinationPoint, combo: Combination) -> bool:
    """True when ``point`` has the highest point win probability in its combination."""
    with_prob = [p.point_win_probability for p in combo.points if p.point_win_probability is not None]
    if not with_prob or point.point_win_probability is None:
        return False
    return point.point_win_probability >= max(with_prob)


def truncate_text(text: Optional[str], max_length: int) -> str:
    t = (text or "").strip()
    if not t:
        return UNAVAILABLE_MARKER
    if len(t) <= max_length:
        return t
    return t[:max_length] + ELLIPSIS


def _clip(text: str, max_length: int) -> str:
    return text[:max_length] + ELLIPSIS if len(text) > max_length else text


def format_combination_label(combo: Combination, truncated: bool = True, max_length: int = 12) -> str:
    """One line per point: 'Point: "text…"' (truncated) or 'Point: text' (full)."""
    if truncated:
        return "\n".join(f'{p.point_name}: "{_clip(p.variant_text, max_length)}"' for p in combo.points)
    return "\n".join(f"{p.point_name}: {p.variant_text}" for p in combo.points)


def combination_short_label(combo: Combination) -> str:
    return " + ".join(p.point_name for p in combo.points)


def combination_full_tooltip(combo: Combination) -> str:
    return "\n".join(f"{p.point_name}: {p.variant_text or UNAVAILABLE_MARKER}" for p in combo.points)


def display_index(row_id: str, row_ids: Sequence[str]) -> int:
    """1-based position of ``row_id`` in the active table (0 when absent)."""
    for i, rid in enumerate(row_ids):
        if rid == row_id:
            return i + 1
    return 0
