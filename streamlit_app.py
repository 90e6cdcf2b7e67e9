#!/usr/bin/env python3
"""
Streamlit Weight Goal Tracker
Goal setup, weight log, progress chart and history table.
"""

import os
import sys
import time
from datetime import date
from typing import Optional

import streamlit as st

# Add current directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from auth import get_current_user, get_display_name, logout, require_auth
from chart_data import build_entries_table, compute_chart_data, create_progress_plot, total_change
from errors import WeightTrackerError
from formatting import format_date_long, format_elapsed_time
from goals import GoalStatus
from session import TrackerSession
from settings import configure_logging, get_locale, get_safety_net_seconds
from storage import init_database
from validation import (
    GoalDirection, GoalValidationError, goal_direction, is_weight_in_range,
    suggest_target_date, validate_goals, weight_bounds,
)
from weight_tracker import UserGoals, WeightEntry

ENTRIES_WAIT_SECONDS = 5.0


@st.cache_resource(show_spinner=False)
def bootstrap() -> bool:
    configure_logging()
    init_database()
    return True


def get_tracker_session() -> TrackerSession:
    """One background sync session per browser session."""
    if "tracker_session" not in st.session_state:
        st.session_state.tracker_session = TrackerSession()
    return st.session_state.tracker_session


def reset_tracker_session() -> None:
    session = st.session_state.pop("tracker_session", None)
    if session is not None:
        session.close()


# -------------------------
# Goal form
# -------------------------

def render_goal_form(session: TrackerSession, initial: Optional[UserGoals] = None) -> None:
    locale = get_locale()
    editing = initial is not None

    col1, col2 = st.columns(2)
    with col1:
        start_weight = st.number_input(
            "Peso inicial (kg)", min_value=0.0, step=0.1,
            value=float(initial.start_weight) if editing else None, key="goal_start_weight",
        )
    with col2:
        target_weight = st.number_input(
            "Peso meta (kg)", min_value=0.0, step=0.1,
            value=float(initial.target_weight) if editing else None, key="goal_target_weight",
        )
    start_date = st.date_input(
        "Fecha de inicio", value=initial.start_date if editing else date.today(), key="goal_start_date",
    )

    suggestion = None
    if start_weight and target_weight:
        suggestion = suggest_target_date(start_weight, target_weight, start_date)
    default_target = initial.target_date if editing else (suggestion.date if suggestion else None)
    target_date = st.date_input("Fecha meta", value=default_target, key="goal_target_date")

    if suggestion is not None:
        direction = goal_direction(start_weight, target_weight)
        verb = "perder" if direction is GoalDirection.LOSS else "ganar"
        st.caption(
            f"Sugerencia: {format_date_long(suggestion.date, locale)} "
            f"({suggestion.weeks} semanas, {verb} ~{suggestion.rate_kg} kg por semana)"
        )

    save_col, cancel_col = st.columns(2)
    save = save_col.button("Guardar metas", type="primary", use_container_width=True)
    if editing and cancel_col.button("Cancelar", use_container_width=True):
        st.session_state.editing_goals = False
        st.rerun()

    if not save:
        return
    if not (start_weight and target_weight and start_date and target_date):
        st.toast("Completa todos los campos")
        return

    goals = UserGoals(float(start_weight), float(target_weight), start_date, target_date)
    try:
        validate_goals(goals)
    except GoalValidationError as e:
        st.toast(str(e))
        return

    try:
        session.call(lambda: session.goals.save_goals(goals))
    except WeightTrackerError:
        st.toast("No se pudieron guardar las metas. Intenta de nuevo.")
        return
    st.session_state.editing_goals = False
    st.rerun()


# -------------------------
# Dashboard
# -------------------------

def render_entry_form(session: TrackerSession, goals: UserGoals, loading: bool) -> None:
    bounds = weight_bounds(goals.start_weight, goals.target_weight)
    with st.form("entry_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            entry_date = st.date_input(
                "Fecha",
                value=min(max(date.today(), goals.start_date), goals.target_date),
                min_value=goals.start_date,
                max_value=goals.target_date,
            )
        with col2:
            weight = st.number_input("Peso (kg)", min_value=0.0, step=0.1, value=None, placeholder="ej. 140.5")
        submitted = st.form_submit_button(
            "Guardando..." if loading else "Agregar Registro", type="primary", disabled=loading,
        )

    if not submitted or not weight or not entry_date:
        return
    if not is_weight_in_range(weight, goals.start_weight, goals.target_weight):
        st.toast(f"El peso debe estar entre {bounds.min:g} y {bounds.max:g} kg")
        return
    try:
        session.call(lambda: session.entries.add_entry(WeightEntry(entry_date, float(weight))))
    except WeightTrackerError:
        st.toast("No se pudo guardar el registro. Intenta de nuevo.")
        return
    st.rerun()


def render_stats(entries, goals: UserGoals, direction: GoalDirection) -> None:
    change = total_change(entries)
    if change is None:
        return
    cols = st.columns(4)
    cols[0].metric("Total Perdido" if direction is GoalDirection.LOSS else "Total Ganado", f"{change:.1f} kg")
    cols[1].metric("Registros", len(entries))
    cols[2].metric("Actual", f"{entries[-1].weight:g} kg")
    cols[3].metric("Tiempo", format_elapsed_time(goals.start_date, date.today()))


def render_entries_table(session: TrackerSession, entries, direction: GoalDirection) -> None:
    if not entries:
        return
    st.subheader("Registro de Peso")
    table = build_entries_table(entries, direction, get_locale())
    colors = {"positive": "green", "negative": "red"}
    for row in table.itertuples(index=False):
        c1, c2, c3, c4 = st.columns([3, 3, 3, 1])
        c1.write(row.date_formatted)
        c2.write(f"{row.weight:g} kg")
        if row.trend:
            c3.markdown(f":{colors[row.trend]}[{row.change_label}]")
        else:
            c3.write(row.change_label)
        if c4.button("🗑️", key=f"delete_{row.date.isoformat()}", help="Eliminar"):
            try:
                session.call(lambda d=row.date: session.entries.remove_entry(d))
            except WeightTrackerError:
                st.toast("No se pudo eliminar el registro. Intenta de nuevo.")
            else:
                st.rerun()


def render_dashboard(session: TrackerSession, goals: UserGoals) -> None:
    locale = get_locale()
    direction = goal_direction(goals.start_weight, goals.target_weight)

    header, actions = st.columns([4, 1])
    with header:
        st.title("Control de Peso")
        st.caption(
            f"Meta: {goals.start_weight:g}kg → {goals.target_weight:g}kg "
            f"para el {format_date_long(goals.target_date, locale)}"
        )
    with actions:
        if st.button("✏️ Metas", help="Editar metas"):
            st.session_state.editing_goals = True
            st.rerun()
        if st.button("Salir", help="Cerrar sesión"):
            logout()

    if st.session_state.get("editing_goals"):
        with st.expander("Editar metas", expanded=True):
            render_goal_form(session, initial=goals)

    deadline = time.monotonic() + ENTRIES_WAIT_SECONDS
    while session.entries_state.loading and time.monotonic() < deadline:
        time.sleep(0.1)
    state = session.entries_state
    entries = state.entries

    render_entry_form(session, goals, state.loading)
    render_stats(entries, goals, direction)

    chart = compute_chart_data(entries, goals.start_date, goals.target_date, locale)
    st.plotly_chart(create_progress_plot(chart, goals), use_container_width=True)

    render_entries_table(session, entries, direction)


# -------------------------
# Main
# -------------------------

def main() -> None:
    st.set_page_config(page_title="Control de Peso", page_icon="⚖️", layout="centered")
    bootstrap()

    if not require_auth():
        st.stop()

    session = get_tracker_session()
    session.set_user(get_current_user())

    goals_state = session.goals_state
    if goals_state.loading:
        with st.spinner("Cargando..."):
            goals_state = session.wait_for_goals(get_safety_net_seconds() + 5)
    if goals_state.loading:
        st.info("Sincronizando...")
        time.sleep(1)
        st.rerun()

    if goals_state.status is GoalStatus.ERROR:
        st.error("No se pudieron cargar las metas.")
        if st.button("Reintentar", type="primary"):
            reset_tracker_session()
            st.rerun()
        st.stop()

    if goals_state.goals is None:
        st.title("Define tus Metas")
        name = get_display_name()
        st.write(f"Hola {name}, configura tu plan de control de peso." if name else
                 "Configura tu plan de control de peso.")
        render_goal_form(session)
        st.stop()

    render_dashboard(session, goals_state.goals)


main()
