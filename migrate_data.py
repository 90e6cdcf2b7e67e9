#!/usr/bin/env python3

"""
One-shot migration of legacy local weight data into the database.

Older versions kept weights in a local ``weights.csv`` (``date,weight`` rows,
optional header, timestamps allowed). The first time a signed-in user opens
the app those rows are copied into their account and the file is renamed so
the migration never runs twice.
"""

import logging
import os
import sys
from typing import List, Optional

import pandas as pd

import storage
from settings import configure_logging, get_data_dir, get_setting
from weight_tracker import WeightEntry

logger = logging.getLogger(__name__)

LEGACY_CSV_NAME = "weights.csv"
MIGRATED_SUFFIX = ".migrated"


def get_legacy_csv_path() -> str:
    return get_setting("LEGACY_WEIGHTS_CSV") or os.path.join(get_data_dir(), LEGACY_CSV_NAME)


def read_legacy_entries(csv_path: str) -> List[WeightEntry]:
    """Read legacy rows, keeping the last weight recorded for each day."""
    if not os.path.exists(csv_path):
        return []

    df = pd.read_csv(csv_path, header=None, names=["date", "weight"], dtype=str)
    if df.empty:
        return []
    # Header rows and junk fail to parse and are dropped here
    df["date"] = pd.to_datetime(df["date"].str.strip(), errors="coerce", format="mixed")
    df["weight"] = pd.to_numeric(
        df["weight"].str.extract(r"([-+]?\d+(?:\.\d+)?)", expand=False), errors="coerce"
    )
    df = df.dropna(subset=["date", "weight"])
    df = df[df["weight"] > 0]
    if df.empty:
        return []

    df["day"] = df["date"].dt.date
    df = df.sort_values("date").drop_duplicates(subset="day", keep="last")
    return [WeightEntry(day, float(w)) for day, w in zip(df["day"], df["weight"])]


def migrate_legacy_entries(user_id: str, csv_path: Optional[str] = None, backend=storage) -> int:
    """Copy legacy entries into the user's account. Returns the number migrated."""
    csv_path = csv_path or get_legacy_csv_path()
    entries = read_legacy_entries(csv_path)
    if not entries:
        return 0

    count = backend.upsert_entries_for_user(user_id, entries)
    os.replace(csv_path, csv_path + MIGRATED_SUFFIX)
    logger.info("Migrated %d legacy entries for user %s from %s", count, user_id, csv_path)
    return count


def main(argv: Optional[List[str]] = None) -> int:
    """Run the migration from the command line: migrate_data.py USER_ID [CSV]."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("usage: migrate_data.py USER_ID [CSV_PATH]")
        return 2

    configure_logging()
    storage.init_database()
    count = migrate_legacy_entries(argv[0], argv[1] if len(argv) > 1 else None)
    if count:
        print(f"✅ Migrated {count} entries for {argv[0]}")
    else:
        print("ℹ️  Nothing to migrate")
    return 0


if __name__ == "__main__":
    sys.exit(main())
