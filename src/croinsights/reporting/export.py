"""Export functionality for CSV and JSON."""

import json
from datetime import date
from typing import Dict, List, Sequence

import pandas as pd

from ..analysis.display import format_percent, format_uplift
from ..results.models import Combination, PointVariantRow, ResultsMetric, SimulationResult

METRICS_COLUMNS = ['Variant', 'Users', 'Conversions', 'Conversion Rate', 'Confidence']


def default_export_filename(project_id: str, on: date = None) -> str:
    """results-<project>-<YYYY-MM-DD>.csv"""
    on = on or date.today()
    return f"results-{project_id}-{on.isoformat()}.csv"


def metrics_dataframe(metrics: Sequence[ResultsMetric], variant_texts: Dict[str, str]) -> pd.DataFrame:
    """Goal-metrics panel as a table with display-formatted cells."""
    rows = [
        {
            'Variant': variant_texts.get(m.variant_id, 'Unknown'),
            'Users': str(m.users),
            'Conversions': str(m.conversions),
            'Conversion Rate': format_percent(m.conversion_rate, 2),
            'Confidence': f"{m.confidence:g}%",
        }
        for m in metrics
    ]
    return pd.DataFrame(rows, columns=METRICS_COLUMNS)


def export_metrics_csv(metrics: Sequence[ResultsMetric], variant_texts: Dict[str, str], filepath: str):
    """
    Export the goal-metrics panel to CSV (every cell quoted).

    Raises:
        ValueError: if there is nothing to export
    """
    if not metrics:
        raise ValueError("No data to export")
    df = metrics_dataframe(metrics, variant_texts)
    df.to_csv(filepath, index=False, quoting=1)


def view_dataframe(rows: List, min_users: int = 50) -> pd.DataFrame:
    """Simulation table (combinations or point variants) as a DataFrame."""
    data = []
    for rank, row in enumerate(rows, start=1):
        if isinstance(row, PointVariantRow):
            data.append({
                'rank': rank,
                'variant_id': row.variant_id,
                'variant': row.variant_text,
                'combos': row.combos_count,
                'users': row.total_users,
                'conversions': row.total_conversions,
                'best_conversion_rate': row.best_conversion_rate,
                'avg_conversion_rate': row.avg_conversion_rate,
                'best_uplift': format_uplift(row.best_uplift, row.total_users, min_users),
                'best_win_probability': row.best_win_probability,
                'is_control': row.is_control,
            })
        elif isinstance(row, Combination):
            data.append({
                'rank': rank,
                'combo_id': row.combo_id,
                'combination': " | ".join(f"{p.point_name}: {p.variant_text}" for p in row.points),
                'users': row.metrics.users,
                'conversions': row.metrics.conversions,
                'conversion_rate': row.metrics.conversion_rate,
                'uplift': format_uplift(row.metrics.uplift, row.metrics.users, min_users),
                'win_probability': row.metrics.win_probability,
                'is_control': row.metrics.uplift == 0,
            })
    return pd.DataFrame(data)


def export_view_csv(rows: List, filepath: str, min_users: int = 50):
    """Export the current simulation table to CSV."""
    view_dataframe(rows, min_users).to_csv(filepath, index=False)


def export_json(result: SimulationResult, filepath: str):
    """Export a simulation result in its wire (camelCase) shape."""
    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
