"""
Upgrade an existing SQLite stock ledger in place

Adds the columns introduced after the first deployment and backfills them.
Safe to run repeatedly; existing data is never removed.

    DATABASE_URL=sqlite:///./stockledger.db python migrate_db.py
"""
import os
import sqlite3

BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))

# (table, column, definition)
NEW_COLUMNS = [
    ("companies", "version", "INTEGER NOT NULL DEFAULT 1"),
    ("items", "version", "INTEGER NOT NULL DEFAULT 1"),
    ("items", "use_batch_system", "BOOLEAN NOT NULL DEFAULT 0"),
    ("stock_batches", "version", "INTEGER NOT NULL DEFAULT 1"),
    ("stock_batches", "original_quantity", "INTEGER NOT NULL DEFAULT 0"),
    ("stock_batches", "committed_cost_usd", "NUMERIC(15, 2) NOT NULL DEFAULT 0"),
]


def sqlite_path(url: str) -> str:
    for prefix in ("sqlite:///", "sqlite://", "file:"):
        if url.startswith(prefix):
            url = url[len(prefix):]
            break
    if not os.path.isabs(url):
        url = os.path.join(BACKEND_DIR, url)
    return url


def existing_columns(cursor, table: str):
    cursor.execute(f"PRAGMA table_info({table})")
    return {row[1] for row in cursor.fetchall()}


def add_missing_columns(cursor):
    """Returns the set of (table, column) pairs that were added"""
    added = set()
    for table, column, definition in NEW_COLUMNS:
        columns = existing_columns(cursor, table)
        if not columns:
            print(f"  {table}: table missing, skipped")
            continue
        if column in columns:
            print(f"  {table}.{column}: present")
            continue
        cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
        added.add((table, column))
        print(f"✓ {table}.{column}: added")
    return added


def backfill(cursor, added):
    if not existing_columns(cursor, "stock_batches"):
        return

    # lots recorded before original_quantity existed start from what they hold
    cursor.execute(
        "UPDATE stock_batches SET original_quantity = quantity "
        "WHERE original_quantity IS NULL OR original_quantity = 0"
    )
    print(f"  original_quantity backfilled on {cursor.rowcount} batches")

    if ("stock_batches", "committed_cost_usd") in added:
        # Ordered and Arrived lots were debited (cost x quantity) + freight
        cursor.execute(
            "UPDATE stock_batches "
            "SET committed_cost_usd = ROUND(cost_per_unit_usd * quantity + freight_cost_usd, 2) "
            "WHERE status IN ('Ordered', 'Arrived')"
        )
        print(f"  committed_cost_usd backfilled on {cursor.rowcount} batches")


def migrate_database(url: str = None):
    path = sqlite_path(url or os.environ.get("DATABASE_URL", "sqlite:///./stockledger.db"))
    if not os.path.exists(path):
        print(f"{path} not found; the application creates a fresh schema on start.")
        return

    print("=" * 60)
    print(f"Migrating {path}")
    print("=" * 60)

    conn = sqlite3.connect(path)
    try:
        cursor = conn.cursor()
        backfill(cursor, add_missing_columns(cursor))
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()

    print("✓ Migration completed")


if __name__ == "__main__":
    migrate_database()
