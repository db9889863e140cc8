"""
Streamlit application for the CRO Results Workbench.

Reference host for the results core: load a simulation (demo data or an
uploaded JSON result), replay it day by day, switch between the by-goal and
by-point views, and export the current table.

Run locally with: streamlit run streamlit_app.py
"""

import csv
import json
import time

import pandas as pd
import streamlit as st

from croinsights.analysis.display import (
    displayable_rate,
    displayable_uplift,
    format_combination_label,
    format_percent,
)
from croinsights.config.loader import load_config
from croinsights.reporting.charts import create_conversion_rate_chart, create_win_probability_chart
from croinsights.analysis.goal_metrics import (
    ALL_GOAL_TYPES,
    apply_goal_type_filter,
    filter_metrics_for_point,
    goal_type_label,
    is_winner_metric,
    sort_metrics,
)
from croinsights.reporting.export import default_export_filename, metrics_dataframe, view_dataframe
from croinsights.results.errors import AlreadyRunning, InvalidResult
from croinsights.results.mock import build_mock_result
from croinsights.results.models import Combination, OptimizationPoint, ResultsMetric, SimulationResult
from croinsights.simulation.replay import ManualTimer
from croinsights.simulation.session import ResultsSession, ResultsView
from croinsights.validation.sanity_checks import check_simulation_result

st.set_page_config(
    page_title="CRO Results Workbench",
    page_icon="📈",
    layout="wide",
    initial_sidebar_state="expanded"
)

if 'config' not in st.session_state:
    st.session_state.config = load_config()
if 'timer' not in st.session_state:
    st.session_state.timer = ManualTimer()
if 'session' not in st.session_state:
    st.session_state.session = ResultsSession(st.session_state.config, timer=st.session_state.timer)
    # frame callback is swapped per script run; placeholders do not survive reruns
    st.session_state.session.on_progress(lambda event: st.session_state.frame_callback(event))
if 'frame_callback' not in st.session_state:
    st.session_state.frame_callback = lambda event: None
if 'validation_warnings' not in st.session_state:
    st.session_state.validation_warnings = []


def _points_from_view(session: ResultsSession):
    """Optimization points present in the loaded combinations."""
    combos = session.store.current_combinations()
    if not combos:
        return []
    return [OptimizationPoint(id=p.point_id, name=p.point_name, css_selector=p.css_selector)
            for p in combos[0].points]


def load_result(result) -> None:
    """Load a result into the session and record its data-quality warnings."""
    session: ResultsSession = st.session_state.session
    try:
        session.load(result)
    except InvalidResult as e:
        st.error(f"Invalid simulation result: {e}")
        return
    session.set_points(_points_from_view(session))
    if not isinstance(result, SimulationResult):
        result = SimulationResult.model_validate(result)
    st.session_state.validation_warnings = check_simulation_result(result)


def render_sidebar():
    """Load, replay and reset controls."""
    session: ResultsSession = st.session_state.session
    config = st.session_state.config
    with st.sidebar:
        st.markdown("### Data")
        if st.button("Load demo simulation", width="stretch"):
            load_result(build_mock_result(config.mock))
        uploaded = st.file_uploader("Or upload a result (JSON)", type=["json"])
        if uploaded is not None and st.button("Load uploaded result", width="stretch"):
            try:
                load_result(json.load(uploaded))
            except ValueError as e:
                st.error(f"Could not read JSON: {e}")

        st.markdown("### Replay")
        interval = st.slider("Frame interval (ms)", 0, 1000, config.replay.frame_interval_ms, step=20)
        st.session_state.replay_interval = interval
        st.session_state.run_replay = st.button(
            "Run simulation", width="stretch", disabled=not session.store.loaded
        )
        if st.button("Reset", width="stretch"):
            outcome = session.reset()
            st.session_state.validation_warnings = []
            if outcome.success:
                st.success(outcome.message)
            else:
                st.error(outcome.message)

        st.markdown("### Filters")
        points = session.points
        options = ["all"] + [p.id for p in points]
        names = {"all": "All points (by goal)"}
        names.update({p.id: p.name for p in points})
        choice = st.selectbox("Optimization point", options, format_func=lambda k: names.get(k, k),
                              index=options.index(session.point_filter) if session.point_filter in options else 0)
        if choice != session.point_filter:
            session.select_point(choice)


def render_kpis(view: ResultsView, container):
    """KPI cards with the sample floor applied."""
    cfg = st.session_state.config.display
    kd = view.kpi_display
    cols = container.columns(4)
    if kd is None:
        return
    marker = cfg.unavailable_marker
    cols[0].metric("Control CR", format_percent(kd.control_cr, cfg.percent_decimals, marker=marker))
    cols[1].metric("Best CR", format_percent(kd.best_cr, cfg.percent_decimals, marker=marker))
    cols[2].metric("Uplift", format_percent(kd.uplift, cfg.percent_decimals, signed=True, marker=marker))
    cols[3].metric("Users (best)", f"{kd.users_for_uplift:,}")


def table_frame(view: ResultsView) -> pd.DataFrame:
    """Table rows with badges, formatted for display."""
    cfg = st.session_state.config.display
    min_users = cfg.min_users_for_display

    def rate(value, users):
        return format_percent(displayable_rate(value, users, min_users), cfg.percent_decimals,
                              marker=cfg.unavailable_marker)

    def win_prob(value, users):
        return format_percent(displayable_rate(value, users, min_users), cfg.win_probability_decimals,
                              marker=cfg.unavailable_marker)

    def uplift(value, users):
        return format_percent(displayable_uplift(value, users, min_users), cfg.percent_decimals,
                              signed=True, marker=cfg.unavailable_marker)

    data = []
    for table_row in view.rows:
        row, flags = table_row.row, table_row.flags
        badge = "🏆" if flags.is_winner else ("⬇" if flags.is_loser else "")
        if flags.is_control:
            badge += " control"
        if isinstance(row, Combination):
            m = row.metrics
            data.append({
                "#": flags.rank,
                "": badge,
                "Combination": format_combination_label(row, max_length=cfg.combination_label_truncate),
                "Users": m.users,
                "Conversions": m.conversions,
                "CR": rate(m.conversion_rate, m.users),
                "Uplift": uplift(m.uplift, m.users),
                "Win prob.": win_prob(m.win_probability, m.users),
            })
        else:
            data.append({
                "#": flags.rank,
                "": badge,
                "Variant": row.variant_text,
                "Combos": row.combos_count,
                "Users": row.total_users,
                "Conversions": row.total_conversions,
                "Best CR": rate(row.best_conversion_rate, row.total_users),
                "Avg CR": rate(row.avg_conversion_rate, row.total_users),
                "Best uplift": uplift(row.best_uplift, row.total_users),
                "Win prob.": win_prob(row.best_win_probability, row.total_users),
            })
    return pd.DataFrame(data)


def render_view(view: ResultsView, slots, key: str):
    """Draw KPIs, charts and table into the placeholder slots."""
    render_kpis(view, slots["kpis"].container())
    with slots["charts"].container():
        left, right = st.columns(2)
        left.plotly_chart(create_conversion_rate_chart(view.line_series), width="stretch", key=f"line_{key}")
        right.plotly_chart(create_win_probability_chart(view.bar_series), width="stretch", key=f"bars_{key}")
    slots["table"].dataframe(table_frame(view), hide_index=True, width="stretch")


def run_replay(slots):
    """Drive the replay on the script thread, redrawing after every frame."""
    session: ResultsSession = st.session_state.session
    timer: ManualTimer = st.session_state.timer
    progress = slots["progress"].progress(0.0, text="Starting…")

    def on_frame(event):
        progress.progress(event.elapsed_fraction, text=f"Day {event.day}")
        render_view(event.view, slots, key=f"frame_{event.index}")

    st.session_state.frame_callback = on_frame
    try:
        session.run_replay(interval_ms=st.session_state.replay_interval)
    except AlreadyRunning:
        st.warning("A replay is already running. Reset to stop it first.")
        return
    while True:
        delay = timer.next_delay()
        if delay is None:
            break
        time.sleep(delay)
        timer.run_next()
    st.session_state.frame_callback = lambda event: None
    progress.empty()
    st.success("Simulation completed.")


def render_validation_panel():
    warnings = st.session_state.validation_warnings
    if not warnings:
        return
    with st.expander(f"Data quality ({len(warnings)})"):
        for w in warnings:
            icon = "🔴" if w.severity == "error" else "🟡"
            st.markdown(f"{icon} **{w.category}**: {w.message}" + (f"  \n`{w.details}`" if w.details else ""))


def render_simulation_tab():
    """KPIs, charts, table and exports for the loaded simulation."""
    session: ResultsSession = st.session_state.session
    if not session.store.loaded:
        st.info("Load a simulation to see results.")
        return

    # a widget interaction reruns the script and abandons the sleep loop mid-replay
    if session.replaying:
        session.cancel_replay()

    render_validation_panel()
    slots = {
        "progress": st.empty(),
        "kpis": st.empty(),
        "charts": st.empty(),
        "table": st.empty(),
    }
    if st.session_state.get("run_replay"):
        run_replay(slots)
    view = session.current_view()
    render_view(view, slots, key="current")

    col1, col2 = st.columns(2)
    min_users = st.session_state.config.display.min_users_for_display
    col1.download_button(
        "Export table (CSV)",
        view_dataframe([r.row for r in view.rows], min_users).to_csv(index=False),
        file_name=default_export_filename(view.simulation_id or "unsaved"),
        mime="text/csv",
    )
    snapshot = session.store.get_snapshot()
    result = SimulationResult(
        id=snapshot.simulation_id,
        combinations=snapshot.combinations,
        frames=snapshot.frames,
        control_metrics=snapshot.control_metrics,
    )
    col2.download_button(
        "Export result (JSON)",
        json.dumps(result.to_dict(), indent=2, ensure_ascii=False),
        file_name=f"simulation-{view.simulation_id or 'unsaved'}.json",
        mime="application/json",
    )


def render_goal_metrics_tab():
    """Per-variant metrics panel, filtered or merged by goal type."""
    session: ResultsSession = st.session_state.session
    uploaded = st.file_uploader("Upload per-variant goal metrics (JSON list)", type=["json"], key="metrics_upload")
    if uploaded is None:
        st.info("Upload metrics exported from the results API to compare goal types.")
        return
    try:
        metrics = [ResultsMetric.model_validate(m) for m in json.load(uploaded)]
    except (ValueError, TypeError) as e:
        st.error(f"Could not read metrics: {e}")
        return

    goal_types = [ALL_GOAL_TYPES, "clickSelector", "urlReached", "dataLayerEvent"]
    goal_type = st.selectbox("Goal type", goal_types, format_func=goal_type_label)
    filtered = apply_goal_type_filter(metrics, goal_type)
    if session.point_filter != "all":
        filtered = filter_metrics_for_point(filtered, session.point_filter)
    else:
        filtered = sort_metrics(filtered)

    variant_texts = {}
    for combo in session.store.current_combinations():
        for p in combo.points:
            variant_texts[p.variant_id] = p.variant_text
    df = metrics_dataframe(filtered, variant_texts)
    df.insert(0, "", ["🏆" if is_winner_metric(m, filtered) else "" for m in filtered])
    st.dataframe(df, hide_index=True, width="stretch")

    if filtered:
        st.download_button(
            "Export metrics (CSV)",
            metrics_dataframe(filtered, variant_texts).to_csv(index=False, quoting=csv.QUOTE_ALL),
            file_name=default_export_filename(session.store.get_snapshot().simulation_id or "project"),
            mime="text/csv",
        )


def main():
    """Main application entry point."""
    st.title("Results")
    render_sidebar()

    tab1, tab2 = st.tabs(["Simulation", "Goal metrics"])
    with tab1:
        render_simulation_tab()
    with tab2:
        render_goal_metrics_tab()


if __name__ == "__main__":
    main()
