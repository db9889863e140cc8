"""Replay scheduling and the results session."""

from .replay import FrameProgress, ManualTimer, ReplayHandle, ReplayOutcome, ReplayScheduler, ReplayState, ThreadingTimer
from .session import ResetOutcome, ResultsSession, ResultsView, TableRow

__all__ = [
    "FrameProgress",
    "ManualTimer",
    "ReplayHandle",
    "ReplayOutcome",
    "ReplayScheduler",
    "ReplayState",
    "ResetOutcome",
    "ResultsSession",
    "ResultsView",
    "TableRow",
    "ThreadingTimer",
]
