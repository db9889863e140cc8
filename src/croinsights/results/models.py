"""Domain types for simulation results.

Wire-shaped types (what an external fetch hands over) are pydantic models so a
JSON payload with camelCase keys can be validated on load. Derived rows are
plain dataclasses: they are recomputed on every read and never persisted.
"""

from dataclasses import dataclass
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Base for models exchanged with the API (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary with wire (camelCase) keys."""
        return self.model_dump(by_alias=True, mode="json")


class OptimizationPoint(_WireModel):
    """A page element under test (owned by the project collaborator)."""
    id: str
    name: str
    css_selector: str = ""


class Goal(_WireModel):
    """A conversion objective."""
    id: str
    type: str
    is_primary: bool = False
    name: str = ""


class CombinationPoint(_WireModel):
    """The variant a combination assigns to one optimization point."""
    point_id: str
    point_name: str
    variant_id: str
    variant_name: str
    variant_text: str = ""
    css_selector: str = ""
    point_uplift: Optional[float] = None
    point_win_probability: Optional[float] = None


class CombinationMetrics(_WireModel):
    """Current metrics snapshot of a combination."""
    users: int = Field(ge=0)
    conversions: int = Field(ge=0)
    conversion_rate: float = 0.0
    uplift: float = 0.0  # decimal, 0.027 == +2.70%
    win_probability: float = 0.0  # decimal, 0.97 == 97%


class FrameCombo(CombinationMetrics):
    """One combination's metrics within a simulated day."""
    combo_id: str

    def metrics(self) -> CombinationMetrics:
        """Return the metrics part of this entry as a fresh object."""
        return CombinationMetrics(
            users=self.users,
            conversions=self.conversions,
            conversion_rate=self.conversion_rate,
            uplift=self.uplift,
            win_probability=self.win_probability,
        )


class Combination(_WireModel):
    """One assignment of a variant to every optimization point."""
    combo_id: str
    points: List[CombinationPoint]
    metrics: CombinationMetrics

    def point(self, point_id: str) -> Optional[CombinationPoint]:
        """Return this combination's entry for ``point_id`` (None if absent)."""
        sid = str(point_id)
        for p in self.points:
            if str(p.point_id) == sid:
                return p
        return None


class SimulationFrame(_WireModel):
    """One simulated day's metrics for every combination."""
    day: int = Field(ge=1)
    combos: List[FrameCombo]


class SimulationResult(_WireModel):
    """A complete simulation: combinations, daily frames and control baseline."""
    id: Optional[str] = None
    combinations: List[Combination]
    frames: List[SimulationFrame] = Field(default_factory=list)
    control_metrics: Optional[CombinationMetrics] = None


class SimulationSummary(_WireModel):
    """Entry of the saved-simulations list (most recent first)."""
    id: str
    created_at: Optional[str] = None
    days: Optional[int] = None


GoalType = Literal["clickSelector", "urlReached", "dataLayerEvent", "all"]


class ResultsMetric(_WireModel):
    """Raw per-variant, per-goal-type metric used by the goal-metrics panel."""
    variant_id: str
    point_id: str
    goal_type: str
    users: int = Field(ge=0)
    conversions: int = Field(ge=0)
    conversion_rate: float = 0.0
    confidence: float = 0.0


class Unavailable:
    """Marker for a figure that must not be displayed (low sample, no control)."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNAVAILABLE"


UNAVAILABLE = Unavailable()

MaybeFloat = Union[float, Unavailable]


@dataclass
class PointVariantRow:
    """Variant-level aggregate of every combination containing that variant."""
    variant_id: str
    variant_name: str
    variant_text: str
    combos_count: int
    best_conversion_rate: float
    avg_conversion_rate: float
    best_win_probability: float
    best_uplift: float
    total_users: int
    total_conversions: int
    is_control: bool


ViewMode = Literal["byGoal", "byPoint"]
