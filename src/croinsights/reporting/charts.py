"""Chart series building and rendering using Plotly.

Series builders are pure and return plain payloads (labels, datasets, colours,
tooltip metadata) so any charting surface can draw them. The ``create_*``
functions render those payloads as Plotly figures for the Streamlit host.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import plotly.graph_objects as go

from ..analysis.aggregation import find_control, sort_by_win_probability
from ..analysis.display import (
    format_conversion_rate,
    format_uplift,
    MIN_USERS_FOR_DISPLAY,
)
from ..results.models import Combination, CombinationMetrics, PointVariantRow, SimulationFrame

CONTROL_COLOR = "rgb(75, 192, 192)"
BEST_COLOR = "rgb(255, 99, 132)"
VARIANT_COLORS = [
    "rgb(255, 99, 132)",
    "rgb(255, 205, 86)",
    "rgb(54, 162, 235)",
    "rgb(153, 102, 255)",
    "rgb(201, 203, 207)",
]
WINNER_BAR_COLOR = "rgba(46, 125, 50, 0.8)"
BAR_COLOR = "rgba(33, 150, 243, 0.8)"
TOP_N_BARS = 8

# Dark layout shared by every figure
THEME = {
    "text": "#e8eaed",
    "text_secondary": "#9aa0a6",
    "grid": "rgba(30, 33, 36, 0.8)",
}


@dataclass
class LineDataset:
    label: str
    data: List[float]
    border_color: str
    background_color: str
    tension: float = 0.1


@dataclass
class LineSeries:
    """Conversion rate over time: one label per day, one dataset per line."""
    title: str = "Conversion rate over time"
    labels: List[str] = field(default_factory=list)
    datasets: List[LineDataset] = field(default_factory=list)


@dataclass
class BarLabelMeta:
    """Tooltip metadata for one bar."""
    row_id: str
    full_text: str
    conversion_rate: str
    uplift: str


@dataclass
class BarSeries:
    """Ranked win probability bars (percent values)."""
    title: str = "Win probability"
    labels: List[str] = field(default_factory=list)
    values: List[float] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    meta: List[BarLabelMeta] = field(default_factory=list)


def to_fill_color(color: str, alpha: float = 0.2) -> str:
    """'rgb(r, g, b)' -> 'rgba(r, g, b, alpha)'."""
    if color.startswith("rgb("):
        return "rgba(" + color[4:-1] + f", {alpha})"
    return color


def day_label(frame: SimulationFrame) -> str:
    return f"Day {frame.day}"


def _control_series(
    frames: Sequence[SimulationFrame],
    control_combo_id: Optional[str],
    control_metrics: Optional[CombinationMetrics]
) -> List[float]:
    fallback = control_metrics.conversion_rate if control_metrics else 0.0
    data = []
    for frame in frames:
        value = fallback
        if control_combo_id is not None:
            for fc in frame.combos:
                if fc.combo_id == control_combo_id:
                    value = fc.conversion_rate
                    break
        data.append(value)
    return data


def build_by_goal_line_series(
    frames: Sequence[SimulationFrame],
    combinations: Sequence[Combination],
    control_metrics: Optional[CombinationMetrics] = None,
    control_color: str = CONTROL_COLOR,
    best_color: str = BEST_COLOR,
    control_combo_id: Optional[str] = None
) -> LineSeries:
    """
    Control line plus 'Best combination' line (max CR among the displayed
    combinations in each frame).
    """
    if not frames:
        return LineSeries()
    if control_combo_id is None:
        control = find_control(combinations)
        control_combo_id = control.combo_id if control else None
    combo_ids = {c.combo_id for c in combinations}

    best_data = []
    for frame in frames:
        rates = [fc.conversion_rate for fc in frame.combos if fc.combo_id in combo_ids]
        best_data.append(max(rates) if rates else 0.0)

    return LineSeries(
        labels=[day_label(f) for f in frames],
        datasets=[
            LineDataset("Control", _control_series(frames, control_combo_id, control_metrics),
                        control_color, to_fill_color(control_color)),
            LineDataset("Best combination", best_data, best_color, to_fill_color(best_color)),
        ],
    )


def build_by_point_line_series(
    frames: Sequence[SimulationFrame],
    combinations: Sequence[Combination],
    point_id: str,
    control_metrics: Optional[CombinationMetrics] = None,
    label_max_length: int = 20,
    control_color: str = CONTROL_COLOR,
    variant_colors: Sequence[str] = VARIANT_COLORS,
    control_combo_id: Optional[str] = None
) -> LineSeries:
    """
    Control line plus one line per non-control variant of ``point_id``.

    Each variant's value in a frame is the mean CR of the combinations that
    assign it. Variants keep first-seen order; colours cycle by that index.
    """
    if not point_id or point_id == "all" or not frames:
        return LineSeries()

    if control_combo_id is None:
        control = find_control(combinations)
        control_combo_id = control.combo_id if control else None

    combo_to_variant: Dict[str, str] = {}
    variant_order: List[str] = []
    variant_labels: Dict[str, str] = {}
    for combo in combinations:
        point = combo.point(point_id)
        if point is None:
            continue
        combo_to_variant[combo.combo_id] = point.variant_id
        if point.variant_id not in variant_labels:
            variant_order.append(point.variant_id)
            text = point.variant_text
            variant_labels[point.variant_id] = (
                text[:label_max_length] + "…" if len(text) > label_max_length else text
            )
    control_variant_id = combo_to_variant.get(control_combo_id) if control_combo_id else None

    datasets = [
        LineDataset("Control", _control_series(frames, control_combo_id, control_metrics),
                    control_color, to_fill_color(control_color)),
    ]
    for idx, variant_id in enumerate(variant_order):
        if variant_id == control_variant_id:
            continue
        data = []
        for frame in frames:
            rates = [fc.conversion_rate for fc in frame.combos if combo_to_variant.get(fc.combo_id) == variant_id]
            data.append(sum(rates) / len(rates) if rates else 0.0)
        color = variant_colors[idx % len(variant_colors)]
        datasets.append(LineDataset(variant_labels.get(variant_id, variant_id), data, color, to_fill_color(color)))

    return LineSeries(labels=[day_label(f) for f in frames], datasets=datasets)


def build_combination_bar_series(
    combinations: Sequence[Combination],
    top_n: int = TOP_N_BARS,
    min_users: int = MIN_USERS_FOR_DISPLAY,
    winner_color: str = WINNER_BAR_COLOR,
    bar_color: str = BAR_COLOR
) -> BarSeries:
    """Top combinations by win probability, labelled 'Combination i'."""
    top = sort_by_win_probability(combinations)[:top_n]
    return BarSeries(
        title="Win probability",
        labels=[f"Combination {i + 1}" for i in range(len(top))],
        values=[c.metrics.win_probability * 100 for c in top],
        colors=[winner_color if i == 0 else bar_color for i in range(len(top))],
        meta=[
            BarLabelMeta(
                row_id=c.combo_id,
                full_text="\n".join(f"{p.point_name}: {p.variant_text}" for p in c.points),
                conversion_rate=format_conversion_rate(c.metrics.conversion_rate, c.metrics.users, min_users),
                uplift=format_uplift(c.metrics.uplift, c.metrics.users, min_users),
            )
            for c in top
        ],
    )


def build_point_variant_bar_series(
    rows: Sequence[PointVariantRow],
    label_max_length: int = 25,
    min_users: int = MIN_USERS_FOR_DISPLAY,
    winner_color: str = WINNER_BAR_COLOR,
    bar_color: str = BAR_COLOR
) -> BarSeries:
    """One bar per variant row (rows already in table order)."""
    return BarSeries(
        title="Variants (win probability)",
        labels=[
            r.variant_text[:label_max_length] + "…" if len(r.variant_text) > label_max_length else r.variant_text
            for r in rows
        ],
        values=[r.best_win_probability * 100 for r in rows],
        colors=[winner_color if i == 0 else bar_color for i in range(len(rows))],
        meta=[
            BarLabelMeta(
                row_id=r.variant_id,
                full_text=r.variant_text,
                conversion_rate=format_conversion_rate(r.best_conversion_rate, r.total_users, min_users),
                uplift=format_uplift(r.best_uplift, r.total_users, min_users),
            )
            for r in rows
        ],
    )


def apply_dark_layout(fig: go.Figure, title: str, x_title: str, y_title: str, showlegend: bool = True) -> None:
    """Apply the dark dashboard layout."""
    fig.update_layout(
        title={
            "text": title,
            "x": 0,
            "xanchor": "left",
            "font": {"size": 11, "color": THEME["text_secondary"]}
        },
        xaxis_title=x_title,
        yaxis_title=y_title,
        template="plotly_dark",
        height=340,
        margin=dict(l=50, r=20, t=40, b=40),
        showlegend=showlegend,
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0,
                    font=dict(size=10), bgcolor="rgba(0,0,0,0)"),
        plot_bgcolor="rgba(8, 9, 10, 1)",
        paper_bgcolor="rgba(8, 9, 10, 1)",
        font={"color": THEME["text"], "size": 11},
        xaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"]),
        yaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"]),
    )


def create_conversion_rate_chart(series: LineSeries) -> go.Figure:
    """Conversion rate over time, one line per dataset (values shown as %)."""
    fig = go.Figure()
    for ds in series.datasets:
        fig.add_trace(go.Scatter(
            x=series.labels,
            y=[v * 100 for v in ds.data],
            name=ds.label,
            mode='lines',
            line=dict(color=ds.border_color, width=2, shape='spline', smoothing=ds.tension * 10),
            hovertemplate=f'{ds.label}: ' + '%{y:.2f}%<extra></extra>'
        ))
    apply_dark_layout(fig, series.title, "Day", "Conversion rate (%)")
    fig.update_layout(hovermode="x unified")
    fig.update_yaxes(rangemode="tozero")
    return fig


def create_win_probability_chart(series: BarSeries) -> go.Figure:
    """Horizontal ranked bars with CR / uplift in the tooltip."""
    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=series.values,
        y=series.labels,
        orientation='h',
        marker_color=series.colors,
        customdata=[[m.full_text.replace("\n", "<br>"), m.conversion_rate, m.uplift] for m in series.meta],
        hovertemplate=(
            '%{customdata[0]}<br><b>Win probability:</b> %{x:.0f}%<br>'
            'CR %{customdata[1]} · Uplift %{customdata[2]}<extra></extra>'
        )
    ))
    apply_dark_layout(fig, series.title, "Win probability (%)", "", showlegend=False)
    fig.update_xaxes(range=[0, 100])
    # first row on top
    fig.update_yaxes(autorange="reversed")
    return fig
