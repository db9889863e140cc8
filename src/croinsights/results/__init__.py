"""Simulation result types and the data store."""

from .errors import AlreadyRunning, CroInsightsError, InvalidResult, UnknownCombo
from .models import (
    UNAVAILABLE,
    Combination,
    CombinationMetrics,
    CombinationPoint,
    FrameCombo,
    Goal,
    OptimizationPoint,
    PointVariantRow,
    ResultsMetric,
    SimulationFrame,
    SimulationResult,
    SimulationSummary,
)
from .store import FrameApplyReport, SimulationDataStore, StoreSnapshot

__all__ = [
    "UNAVAILABLE",
    "AlreadyRunning",
    "Combination",
    "CombinationMetrics",
    "CombinationPoint",
    "CroInsightsError",
    "FrameApplyReport",
    "FrameCombo",
    "Goal",
    "InvalidResult",
    "OptimizationPoint",
    "PointVariantRow",
    "ResultsMetric",
    "SimulationDataStore",
    "SimulationFrame",
    "SimulationResult",
    "SimulationSummary",
    "StoreSnapshot",
    "UnknownCombo",
]
