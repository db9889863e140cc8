"""Pydantic schema for configuration validation."""

import hashlib
import json
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator


class Display(BaseModel):
    """Display-eligibility and formatting parameters."""
    min_users_for_display: int = Field(
        default=50, ge=0,
        description="Minimum backing users before CR, win probability or uplift is shown"
    )
    percent_decimals: int = Field(default=2, ge=0, le=6, description="Decimals for CR and uplift")
    win_probability_decimals: int = Field(default=0, ge=0, le=6, description="Decimals for win probability")
    unavailable_marker: str = Field(default="—", description="Marker shown in place of a withheld figure")
    combination_label_truncate: int = Field(default=12, gt=0, description="Variant text length in combination cells")
    variant_line_truncate: int = Field(default=20, gt=0, description="Variant text length in line chart legends")
    variant_bar_truncate: int = Field(default=25, gt=0, description="Variant text length in bar chart labels")


class Classification(BaseModel):
    """Winner/loser classification parameters."""
    loser_fraction: float = Field(default=0.2, ge=0, le=1, description="Bottom share of rows flagged as losers")


class Replay(BaseModel):
    """Replay animation parameters."""
    frame_interval_ms: int = Field(default=120, ge=0, description="Delay between frames (ms)")
    bar_refresh_every_days: int = Field(
        default=3, gt=0,
        description="Refresh the ranked bar series every N simulated days during replay"
    )


class Charts(BaseModel):
    """Chart series parameters."""
    top_n_bars: int = Field(default=8, gt=0, description="Combinations shown in the win probability bars")
    control_color: str = Field(default="rgb(75, 192, 192)")
    best_color: str = Field(default="rgb(255, 99, 132)")
    variant_colors: List[str] = Field(
        default_factory=lambda: [
            "rgb(255, 99, 132)",
            "rgb(255, 205, 86)",
            "rgb(54, 162, 235)",
            "rgb(153, 102, 255)",
            "rgb(201, 203, 207)",
        ]
    )
    winner_bar_color: str = Field(default="rgba(46, 125, 50, 0.8)")
    bar_color: str = Field(default="rgba(33, 150, 243, 0.8)")

    @field_validator("variant_colors")
    @classmethod
    def validate_variant_colors(cls, v):
        """Ensure the colour cycle is not empty."""
        if not v:
            raise ValueError("variant_colors must contain at least one colour")
        return v


class Mock(BaseModel):
    """Demo dataset generator parameters."""
    days: int = Field(default=30, gt=0, le=30, description="Simulated days")
    control_cr: float = Field(default=0.082, gt=0, lt=1, description="Control baseline conversion rate")
    base_users: int = Field(default=800, ge=0, description="Users per combination on day 0")
    users_per_day: int = Field(default=120, ge=0, description="Users added per combination per day")
    random_seed: int = Field(default=42, description="Random seed for reproducibility")


class Config(BaseModel):
    """Complete configuration for the results workbench."""
    display: Display = Field(default_factory=Display)
    classification: Classification = Field(default_factory=Classification)
    replay: Replay = Field(default_factory=Replay)
    charts: Charts = Field(default_factory=Charts)
    mock: Mock = Field(default_factory=Mock)

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump()
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**(data or {}))

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
