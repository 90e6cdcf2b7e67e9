#!/usr/bin/env python3
"""
Sign-in for the Streamlit Weight Goal Tracker.

Identity comes from Streamlit's built-in OIDC login (configured under
[auth] in .streamlit/secrets.toml, e.g. a Google provider). The rest of the
app only ever sees the opaque user id returned by get_current_user().
"""

from typing import Optional

try:
    import streamlit as _st  # type: ignore
except Exception:  # pragma: no cover - not running in streamlit
    _st = None  # type: ignore


def get_current_user() -> Optional[str]:
    """Return the signed-in user's stable id, or None."""
    if _st is None:
        return None
    user = getattr(_st, "user", None)
    if user is None or not user.get("is_logged_in", False):
        return None
    return user.get("sub") or user.get("email")


def get_display_name() -> Optional[str]:
    if _st is None or get_current_user() is None:
        return None
    return _st.user.get("name") or _st.user.get("email")


def require_auth() -> bool:
    """Call at the start of the app. Shows the login screen and returns False when signed out."""
    if _st is None:
        return False
    if get_current_user():
        return True
    show_login_screen()
    return False


def show_login_screen():
    """Show the sign-in screen."""
    _st.title("⚖️ Control de Peso")
    _st.write("Registra tu peso y sigue tu progreso hacia tu meta.")
    if _st.button("Iniciar sesión con Google", type="primary"):
        _st.login()
    _st.caption("Tus datos se sincronizan entre dispositivos.")


def logout():
    """Logout the current user."""
    if _st is None:
        return
    for key in ("tracker_session",):
        if key in _st.session_state:
            _st.session_state[key].close()
            del _st.session_state[key]
    _st.logout()
