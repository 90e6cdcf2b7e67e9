#!/usr/bin/env python3

"""
Check the database connection and create the tracker tables.

Uses Postgres when DATABASE_URL is set (e.g. a Supabase project), otherwise
the local SQLite file.
"""

import sys

import storage
from settings import configure_logging, get_database_url


def check_connection() -> bool:
    """Run a trivial query against the configured backend."""
    try:
        if storage.using_sqlalchemy():
            from sqlalchemy import text
            with storage.db_cursor() as conn:
                conn.execute(text("SELECT 1"))
            print("✅ Connected to Postgres")
        else:
            with storage.db_cursor() as cur:
                cur.execute("SELECT 1")
            print(f"✅ Using SQLite at {storage.get_db_path()}")
        return True
    except Exception as e:
        print(f"❌ Connection failed: {e}")
        return False


def setup_database() -> bool:
    try:
        storage.init_database()
        print("✅ Database tables created successfully!")
        return True
    except Exception as e:
        print(f"❌ Database setup failed: {e}")
        return False


def main() -> int:
    print("=== Database setup for Weight Goal Tracker ===")
    configure_logging()
    url = get_database_url()
    if url and not storage.using_sqlalchemy():
        print("⚠️  DATABASE_URL is set but Postgres is not reachable; falling back to SQLite")
    if not check_connection() or not setup_database():
        return 1
    print("\n🎉 Setup complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
