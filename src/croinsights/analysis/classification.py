"""Winner / loser / control classification of table rows.

Rows are combinations (by-goal view) or PointVariantRows (by-point view).
Classification is positional: the list passed in is the table as currently
ordered, and no re-sorting happens here.
"""

import math
from dataclasses import dataclass
from typing import List, Sequence, Union

from ..results.models import Combination, PointVariantRow

LOSER_FRACTION = 0.2

Row = Union[Combination, PointVariantRow]


@dataclass
class RowFlags:
    """Badges for one table row."""
    row_id: str
    rank: int  # 1-based
    is_winner: bool
    is_loser: bool
    is_control: bool


def row_id(row: Row) -> str:
    if isinstance(row, PointVariantRow):
        return row.variant_id
    return row.combo_id


def _rank(row: Row, rows: Sequence[Row]) -> int:
    rid = row_id(row)
    for i, r in enumerate(rows):
        if row_id(r) == rid:
            return i + 1
    return 0


def loser_count(length: int, fraction: float = LOSER_FRACTION) -> int:
    """Rows flagged as losers in a table of ``length`` rows."""
    if length <= 0:
        return 0
    # tolerate float noise such as 0.3 * 10 == 3.0000000000000004
    return int(math.floor(round(length * fraction, 9)))


def is_winner(row: Row, rows: Sequence[Row]) -> bool:
    """First row of the table in scope."""
    return bool(rows) and row_id(rows[0]) == row_id(row)


def is_loser(row: Row, rows: Sequence[Row], fraction: float = LOSER_FRACTION) -> bool:
    """Row falls in the bottom ``fraction`` of the table (rank >= n - floor(n * f) + 1)."""
    rank = _rank(row, rows)
    if rank == 0:
        return False
    count = loser_count(len(rows), fraction)
    if count == 0:
        return False
    return rank >= len(rows) - count + 1


def is_control(row: Row) -> bool:
    if isinstance(row, PointVariantRow):
        return row.is_control
    return row.metrics.uplift == 0


def classify_rows(rows: Sequence[Row], fraction: float = LOSER_FRACTION) -> List[RowFlags]:
    """Flags for every row of a table, in table order."""
    n = len(rows)
    count = loser_count(n, fraction)
    flags = []
    for i, row in enumerate(rows):
        rank = i + 1
        flags.append(RowFlags(
            row_id=row_id(row),
            rank=rank,
            is_winner=rank == 1,
            is_loser=count > 0 and rank >= n - count + 1,
            is_control=is_control(row),
        ))
    return flags
