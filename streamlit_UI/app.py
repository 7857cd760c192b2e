"""Streamlit front-end for the attack damage calculator."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import altair as alt
import pandas as pd
import streamlit as st

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from attack_core import (
    ADVANTAGE_MODES,
    DEFAULT_SETUP_VALUES,
    PREFERENCES_JSON_PATH,
    ComputationError,
    DamageClient,
    ExpressionError,
    Histogram,
    PreferenceStore,
    build_setup,
    compute_exact_distribution,
)

SHARD_SIZE = 100_000
RESPONSE_TIMEOUT_SECONDS = 600.0
DEFAULT_UI_ITERATIONS = 100_000

FIELD_DEFAULTS: dict[str, object] = {
    "attack": DEFAULT_SETUP_VALUES["attack"],
    "damage": DEFAULT_SETUP_VALUES["damage"],
    "versus": DEFAULT_SETUP_VALUES["versus"],
    "advantage": DEFAULT_SETUP_VALUES["advantage"],
    "num_attacks": DEFAULT_SETUP_VALUES["numAttacks"],
    "fails_miss": True,
    "successes_hit": True,
    "successes_crit": True,
    "cost": "",
    "reduction": "",
    "iterations": DEFAULT_UI_ITERATIONS,
}


def get_preferences() -> PreferenceStore:
    """Return the preference store, reading the file once per session."""

    if "preferences" not in st.session_state:
        st.session_state.preferences = PreferenceStore(PREFERENCES_JSON_PATH)
    return st.session_state.preferences


def get_client() -> DamageClient:
    """Return the session's computation client, starting its worker lazily."""

    if "client" not in st.session_state:
        st.session_state.client = DamageClient(seed=None)
    return st.session_state.client


def reset_results() -> None:
    """Clear cached results so the UI reflects new inputs."""

    st.session_state.histogram = None
    st.session_state.exact = None
    st.session_state.compute_error = None


def ensure_session_state_defaults() -> None:
    """Populate widget state from stored preferences, then built-in defaults."""

    preferences = get_preferences()
    for field_name, default in FIELD_DEFAULTS.items():
        widget_key = f"field_{field_name}"
        if widget_key not in st.session_state:
            st.session_state[widget_key] = preferences.get(field_name, default)
    st.session_state.setdefault("histogram", None)
    st.session_state.setdefault("exact", None)
    st.session_state.setdefault("compute_error", None)


def persist_field(field_name: str) -> None:
    """Write one widget value back to the preference store."""

    value = st.session_state[f"field_{field_name}"]
    if isinstance(value, str) and not value.strip():
        value = None
    get_preferences().set(field_name, value)
    reset_results()


def render_setup_form() -> bool:
    """Render the attack configuration and return whether compute was requested."""

    with st.container(border=True):
        st.markdown("**Attack**")
        attack_col, versus_col = st.columns([2.0, 1.0])
        attack_col.text_input(
            "Attack roll",
            key="field_attack",
            help="Dice notation. Append variables with %%, e.g. 1d20+X%%X=1d4",
            on_change=persist_field,
            args=("attack",),
        )
        versus_col.text_input(
            "Versus (AC)",
            key="field_versus",
            on_change=persist_field,
            args=("versus",),
        )

        mode_col, count_col = st.columns(2)
        mode_col.selectbox(
            "Roll mode",
            options=list(ADVANTAGE_MODES),
            key="field_advantage",
            on_change=persist_field,
            args=("advantage",),
        )
        count_col.text_input(
            "Number of attacks",
            key="field_num_attacks",
            on_change=persist_field,
            args=("num_attacks",),
        )

        st.markdown("**Damage**")
        damage_col, reduction_col, cost_col = st.columns(3)
        damage_col.text_input(
            "Damage roll",
            key="field_damage",
            on_change=persist_field,
            args=("damage",),
        )
        reduction_col.text_input(
            "Damage reduction",
            key="field_reduction",
            on_change=persist_field,
            args=("reduction",),
        )
        cost_col.text_input(
            "Cost per attack",
            key="field_cost",
            on_change=persist_field,
            args=("cost",),
        )

        st.markdown("**Critical rules**")
        crit_cols = st.columns(3)
        crit_cols[0].checkbox(
            "Critical failures miss",
            key="field_fails_miss",
            on_change=persist_field,
            args=("fails_miss",),
        )
        crit_cols[1].checkbox(
            "Critical successes hit",
            key="field_successes_hit",
            on_change=persist_field,
            args=("successes_hit",),
        )
        crit_cols[2].checkbox(
            "Critical hits double damage",
            key="field_successes_crit",
            on_change=persist_field,
            args=("successes_crit",),
        )

        st.number_input(
            "Monte Carlo trials",
            min_value=1,
            max_value=10_000_000,
            step=10_000,
            key="field_iterations",
            on_change=persist_field,
            args=("iterations",),
        )
        return st.button("Compute distribution", type="primary")


def compute_distribution() -> None:
    """Send the current setup to the computation thread and wait for it."""

    reset_results()
    state = st.session_state
    try:
        setup = build_setup(
            attack=state.field_attack,
            damage=state.field_damage,
            versus=state.field_versus,
            advantage=state.field_advantage,
            num_attacks=state.field_num_attacks,
            fails_miss=bool(state.field_fails_miss),
            successes_hit=bool(state.field_successes_hit),
            successes_crit=bool(state.field_successes_crit),
            cost=state.field_cost or None,
            reduction=state.field_reduction or None,
        )
        client = get_client()
        client.submit_sharded(setup, int(state.field_iterations), SHARD_SIZE)
        with st.spinner("Rolling dice…"):
            state.histogram = client.collect(timeout=RESPONSE_TIMEOUT_SECONDS)
        state.exact = compute_exact_distribution(setup)
    except (ExpressionError, ComputationError, TimeoutError, ValueError) as exc:
        state.compute_error = str(exc)


def build_chart_data(histogram: Histogram, exact: Optional[dict[int, float]]) -> pd.DataFrame:
    """Return long-form chart data with simulated and optional exact series."""

    frame = histogram.to_frame()[["damage", "probability"]].assign(series="Simulated")
    if exact:
        exact_frame = pd.DataFrame(
            {
                "damage": list(exact.keys()),
                "probability": list(exact.values()),
                "series": "Exact",
            }
        )
        frame = pd.concat([frame, exact_frame], ignore_index=True)
    return frame


def render_results(histogram: Histogram, exact: Optional[dict[int, float]]) -> None:
    """Render summary metrics and the damage histogram."""

    summary = histogram.summary()
    with st.container(border=True):
        st.markdown("**Results**")
        metric_cols = st.columns(4)
        metric_cols[0].metric("Mean damage", f"{summary.mean_damage:.2f}")
        metric_cols[1].metric("Hit rate", f"{summary.hit_rate * 100:.2f}%")
        metric_cols[2].metric("Attacks per trial", f"{summary.mean_attacks:.2f}")
        metric_cols[3].metric("Cost per trial", f"{summary.mean_cost:.2f}")
        st.caption(
            f"{summary.total_trials:,} trials, damage range "
            f"{summary.min_damage}–{summary.max_damage}"
        )

        chart_data = build_chart_data(histogram, exact)
        bars = alt.Chart(chart_data[chart_data["series"] == "Simulated"]).mark_bar(
            color="#6366f1",
            opacity=0.85,
        ).encode(
            x=alt.X("damage:Q", title="Total damage"),
            y=alt.Y("probability:Q", title="Probability", axis=alt.Axis(format=".1%")),
            tooltip=[
                alt.Tooltip("damage:Q", title="Damage"),
                alt.Tooltip("probability:Q", title="Probability", format=".3%"),
            ],
        )
        chart = bars
        if exact:
            points = alt.Chart(chart_data[chart_data["series"] == "Exact"]).mark_point(
                color="#f97316",
                filled=True,
            ).encode(
                x="damage:Q",
                y="probability:Q",
                tooltip=[
                    alt.Tooltip("damage:Q", title="Damage"),
                    alt.Tooltip("probability:Q", title="Exact probability", format=".3%"),
                ],
            )
            chart = bars + points
        st.altair_chart(chart.properties(height=280), use_container_width=True)
        if exact:
            st.caption("Orange points show the exact distribution.")

        with st.expander("Histogram table"):
            st.dataframe(histogram.to_frame(), hide_index=True, use_container_width=True)


def main() -> None:
    """Entry point used by Streamlit."""

    st.set_page_config(page_title="Attack Damage Calculator", layout="centered")
    ensure_session_state_defaults()
    st.title("Attack Damage Calculator")

    if render_setup_form():
        compute_distribution()

    if st.session_state.compute_error:
        st.error(f"Computation failed: {st.session_state.compute_error}")
    elif isinstance(st.session_state.histogram, Histogram):
        render_results(st.session_state.histogram, st.session_state.exact)


if __name__ == "__main__":
    main()
