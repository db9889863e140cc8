"""Exceptions raised by the results core."""

from typing import Iterable, List


class CroInsightsError(Exception):
    """Base class for results-core errors."""


class InvalidResult(CroInsightsError):
    """A simulation result failed structural validation and was not loaded."""


class UnknownCombo(CroInsightsError):
    """A frame referenced combination ids that are not loaded."""

    def __init__(self, combo_ids: Iterable[str], day: int = None):
        self.combo_ids: List[str] = sorted(combo_ids)
        self.day = day
        where = f" on day {day}" if day is not None else ""
        super().__init__(f"Frame{where} references unknown combinations: {', '.join(self.combo_ids)}")


class AlreadyRunning(CroInsightsError):
    """A replay was started while another one is still running."""
