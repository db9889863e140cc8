"""Validation and sanity checks for simulation results."""

from .sanity_checks import ValidationWarning, check_simulation_result

__all__ = [
    "ValidationWarning",
    "check_simulation_result",
]
