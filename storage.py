#!/usr/bin/env python3

"""
Server-side persistence for the Weight Goal Tracker.

This module is the "remote" half of the document store:
- weight entries (per user, one row per calendar day)
- the current goal (per user, a single row replaced wholesale)

SQLite is used by default. When DATABASE_URL points at Postgres (e.g. a
Supabase project) and the server is reachable, SQLAlchemy is used instead.
Calls are blocking; document_store runs them in worker threads.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterable, Iterator, List, Optional

from settings import get_data_dir, get_database_url
from weight_tracker import UserGoals, WeightEntry, parse_date

# Optional: cache connection in Streamlit environments
try:
    import streamlit as _st  # type: ignore
except Exception:  # pragma: no cover - not running in streamlit
    _st = None  # type: ignore

logger = logging.getLogger(__name__)

DB_FILENAME = "weight_goal_tracker.db"

_DATABASE_URL: Optional[str] = get_database_url()
_USE_SQLALCHEMY = False
_engine = None

# One sqlite connection is shared across worker threads
_sqlite_lock = threading.RLock()


def _should_use_postgres(url: Optional[str]) -> bool:
    if not url:
        return False
    return url.lower().startswith("postgres")


if _should_use_postgres(_DATABASE_URL):
    try:
        from sqlalchemy import create_engine  # type: ignore
        _engine = create_engine(_DATABASE_URL, pool_pre_ping=True)
        # Eagerly verify connectivity so we can gracefully fall back to SQLite
        try:
            with _engine.connect():
                pass
            _USE_SQLALCHEMY = True
        except Exception:
            logger.warning("Postgres unreachable, falling back to SQLite", exc_info=True)
            _engine = None
            _USE_SQLALCHEMY = False
    except Exception:
        logger.warning("SQLAlchemy unavailable, falling back to SQLite", exc_info=True)
        _engine = None
        _USE_SQLALCHEMY = False


def using_sqlalchemy() -> bool:
    return _USE_SQLALCHEMY


def get_db_path() -> str:
    return os.path.join(get_data_dir(), DB_FILENAME)


def _create_connection(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(
        db_path,
        check_same_thread=False,
        isolation_level=None,  # autocommit; we manage transactions explicitly
    )
    with conn:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def get_engine():
    return _engine


if _st is not None:
    @_st.cache_resource(show_spinner=False)  # one connection per database file
    def get_connection(db_path: str) -> sqlite3.Connection:  # type: ignore[misc]
        return _create_connection(db_path)
else:  # Fallback outside of Streamlit
    _connections: dict = {}

    def get_connection(db_path: str) -> sqlite3.Connection:
        with _sqlite_lock:
            if db_path not in _connections:
                _connections[db_path] = _create_connection(db_path)
            return _connections[db_path]


@contextmanager
def db_cursor() -> Iterator[Any]:
    if _USE_SQLALCHEMY:
        eng = get_engine()
        assert eng is not None
        with eng.begin() as conn:
            yield conn
    else:
        with _sqlite_lock:
            cur = get_connection(get_db_path()).cursor()
            try:
                yield cur
            finally:
                cur.close()


def init_database() -> None:
    """Create tables if they don't exist."""
    if _USE_SQLALCHEMY:
        from sqlalchemy import text  # type: ignore
        with db_cursor() as conn:
            conn.execute(text(
                """
                CREATE TABLE IF NOT EXISTS weight_entries (
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    weight REAL NOT NULL,
                    PRIMARY KEY (user_id, date)
                );
                """
            ))
            conn.execute(text(
                """
                CREATE TABLE IF NOT EXISTS user_goals (
                    user_id TEXT PRIMARY KEY,
                    start_weight REAL NOT NULL,
                    target_weight REAL NOT NULL,
                    start_date TEXT NOT NULL,
                    target_date TEXT NOT NULL
                );
                """
            ))
    else:
        with db_cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS weight_entries (
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,  -- YYYY-MM-DD
                    weight REAL NOT NULL,
                    PRIMARY KEY (user_id, date)
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS user_goals (
                    user_id TEXT PRIMARY KEY,
                    start_weight REAL NOT NULL,
                    target_weight REAL NOT NULL,
                    start_date TEXT NOT NULL,
                    target_date TEXT NOT NULL
                );
                """
            )


# -------------------------
# Weight entries API
# -------------------------

_UPSERT_ENTRY_SQLITE = (
    "INSERT INTO weight_entries (user_id, date, weight) VALUES (?, ?, ?) "
    "ON CONFLICT(user_id, date) DO UPDATE SET weight=excluded.weight;"
)

_UPSERT_ENTRY_SQLALCHEMY = (
    "INSERT INTO weight_entries (user_id, date, weight) VALUES (:uid, :date, :w) "
    "ON CONFLICT (user_id, date) DO UPDATE SET weight=excluded.weight;"
)


def get_entries_for_user(user_id: str) -> List[WeightEntry]:
    if _USE_SQLALCHEMY:
        from sqlalchemy import text  # type: ignore
        with db_cursor() as conn:
            rows = list(conn.execute(
                text("SELECT date, weight FROM weight_entries WHERE user_id=:uid ORDER BY date ASC;"),
                {"uid": user_id},
            ))
    else:
        with db_cursor() as cur:
            cur.execute(
                "SELECT date, weight FROM weight_entries WHERE user_id=? ORDER BY date ASC;",
                (user_id,),
            )
            rows = cur.fetchall()
    return [WeightEntry(parse_date(d), float(w)) for (d, w) in rows]


def upsert_entry_for_user(user_id: str, entry: WeightEntry) -> None:
    """Create or replace the entry for entry.date."""
    upsert_entries_for_user(user_id, [entry])


def upsert_entries_for_user(user_id: str, entries: Iterable[WeightEntry]) -> int:
    rows = [(e.date.isoformat(), float(e.weight)) for e in entries]
    if not rows:
        return 0
    if _USE_SQLALCHEMY:
        from sqlalchemy import text  # type: ignore
        with db_cursor() as conn:
            conn.execute(
                text(_UPSERT_ENTRY_SQLALCHEMY),
                [{"uid": user_id, "date": d, "w": w} for d, w in rows],
            )
    else:
        with db_cursor() as cur:
            cur.execute("BEGIN;")
            try:
                cur.executemany(_UPSERT_ENTRY_SQLITE, [(user_id, d, w) for d, w in rows])
                cur.execute("COMMIT;")
            except Exception:
                cur.execute("ROLLBACK;")
                raise
    return len(rows)


def delete_entry_for_user(user_id: str, entry_date: date) -> bool:
    """Delete the entry for a calendar day. Returns True if a row was removed."""
    if _USE_SQLALCHEMY:
        from sqlalchemy import text  # type: ignore
        with db_cursor() as conn:
            result = conn.execute(
                text("DELETE FROM weight_entries WHERE user_id=:uid AND date=:dt;"),
                {"uid": user_id, "dt": entry_date.isoformat()},
            )
            deleted_count = result.rowcount
    else:
        with db_cursor() as cur:
            cur.execute(
                "DELETE FROM weight_entries WHERE user_id=? AND date=?;",
                (user_id, entry_date.isoformat()),
            )
            deleted_count = cur.rowcount
    logger.debug("Deleted %d weight entries for user %s at %s", deleted_count, user_id, entry_date)
    return deleted_count > 0


# -------------------------
# Goals API
# -------------------------

def get_goals_for_user(user_id: str) -> Optional[UserGoals]:
    query = "SELECT start_weight, target_weight, start_date, target_date FROM user_goals WHERE user_id"
    if _USE_SQLALCHEMY:
        from sqlalchemy import text  # type: ignore
        with db_cursor() as conn:
            row = conn.execute(text(query + "=:uid;"), {"uid": user_id}).fetchone()
    else:
        with db_cursor() as cur:
            cur.execute(query + "=?;", (user_id,))
            row = cur.fetchone()
    if row is None:
        return None
    return UserGoals(
        start_weight=float(row[0]),
        target_weight=float(row[1]),
        start_date=parse_date(row[2]),
        target_date=parse_date(row[3]),
    )


def set_goals_for_user(user_id: str, goals: UserGoals) -> None:
    """Replace the user's goal wholesale."""
    params = (
        user_id,
        float(goals.start_weight),
        float(goals.target_weight),
        goals.start_date.isoformat(),
        goals.target_date.isoformat(),
    )
    if _USE_SQLALCHEMY:
        from sqlalchemy import text  # type: ignore
        with db_cursor() as conn:
            conn.execute(text(
                """
                INSERT INTO user_goals (user_id, start_weight, target_weight, start_date, target_date)
                VALUES (:uid, :sw, :tw, :sd, :td)
                ON CONFLICT (user_id) DO UPDATE SET
                    start_weight=excluded.start_weight,
                    target_weight=excluded.target_weight,
                    start_date=excluded.start_date,
                    target_date=excluded.target_date;
                """
            ), dict(zip(("uid", "sw", "tw", "sd", "td"), params)))
    else:
        with db_cursor() as cur:
            cur.execute(
                """
                INSERT INTO user_goals (user_id, start_weight, target_weight, start_date, target_date)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    start_weight=excluded.start_weight,
                    target_weight=excluded.target_weight,
                    start_date=excluded.start_date,
                    target_date=excluded.target_date;
                """,
                params,
            )
