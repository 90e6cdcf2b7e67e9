#!/usr/bin/env python3

"""
Configuration lookup for the Weight Goal Tracker.

Precedence: environment variable, then Streamlit secrets, then the default.
Values are read on every call so tests and the launcher can override them
through the environment.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

# Optional: Streamlit secrets when running inside `streamlit run`
try:
    import streamlit as _st  # type: ignore
except Exception:  # pragma: no cover - streamlit not installed
    _st = None  # type: ignore


DEFAULT_SAFETY_NET_SECONDS = 3.0
DEFAULT_LOCALE = "es"

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value:
        return value
    if _st is not None:
        try:
            value = _st.secrets.get(name, None)  # type: ignore[attr-defined]
        except Exception:
            # No secrets.toml, or not running under streamlit
            value = None
        if value:
            return str(value)
    return default


def get_float_setting(name: str, default: float) -> float:
    raw = get_setting(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def get_data_dir() -> str:
    """Directory holding the SQLite file, the local cache and legacy CSVs."""
    base_dir = os.path.dirname(os.path.abspath(__file__))
    data_dir = get_setting("WEIGHT_TRACKER_DATA_DIR") or os.path.join(base_dir, "data")
    os.makedirs(data_dir, exist_ok=True)
    return data_dir


def get_database_url() -> Optional[str]:
    return get_setting("DATABASE_URL")


def get_safety_net_seconds() -> float:
    return get_float_setting("GOALS_SAFETY_NET_SECONDS", DEFAULT_SAFETY_NET_SECONDS)


def get_poll_seconds() -> float:
    return get_float_setting("SYNC_POLL_SECONDS", 0.0)


def get_locale() -> str:
    return get_setting("WEIGHT_TRACKER_LOCALE", DEFAULT_LOCALE) or DEFAULT_LOCALE


def configure_logging(level: Any = None) -> None:
    """Configure root logging once; LOG_LEVEL wins when no level is given."""
    if level is None:
        level = (get_setting("LOG_LEVEL", "INFO") or "INFO").upper()
    logging.basicConfig(level=level, format=_LOG_FORMAT)
