"""Database schema definition and initialization for the local cache."""

import sqlite3

from picking_sync.utils.constants import LOCAL_ID_COUNTER

SCHEMA_VERSION = 2

OPERATION_KINDS = ("validate", "cancel", "update", "create", "add_product_line")

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Mirrored remote entities, one row per (partition, key).
    # position keeps the remote ordering of the last save.
    """CREATE TABLE IF NOT EXISTS cache_entries (
        partition TEXT NOT NULL,
        cache_key TEXT NOT NULL,
        entity_id INTEGER NOT NULL,
        position INTEGER NOT NULL DEFAULT 0,
        data TEXT NOT NULL,
        PRIMARY KEY (partition, cache_key)
    )""",

    # Total-count cache for offline pagination
    """CREATE TABLE IF NOT EXISTS total_counts (
        scope TEXT PRIMARY KEY,
        total INTEGER NOT NULL DEFAULT 0 CHECK (total >= 0),
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Last refresh per partition
    """CREATE TABLE IF NOT EXISTS partition_sync (
        partition TEXT PRIMARY KEY,
        item_count INTEGER NOT NULL DEFAULT 0,
        refreshed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Outbox: one row per (kind, subject); seq gives replay order
    f"""CREATE TABLE IF NOT EXISTS pending_operations (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        kind TEXT NOT NULL
            CHECK (kind IN ({", ".join(repr(k) for k in OPERATION_KINDS)})),
        subject_id INTEGER NOT NULL,
        subject_name TEXT NOT NULL DEFAULT '',
        payload TEXT NOT NULL DEFAULT '{{}}',
        queued_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        attempts INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        UNIQUE (kind, subject_id)
    )""",

    # Persisted monotonic counters (local placeholder ids)
    """CREATE TABLE IF NOT EXISTS counters (
        name TEXT PRIMARY KEY,
        value INTEGER NOT NULL DEFAULT 0 CHECK (value >= 0)
    )""",

    # Local placeholder id -> remote id, filled when a queued create lands
    """CREATE TABLE IF NOT EXISTS id_mappings (
        local_id INTEGER PRIMARY KEY,
        remote_id INTEGER NOT NULL,
        kind TEXT NOT NULL,
        mapped_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Ids shown on each cached page, to spot records that left the page
    """CREATE TABLE IF NOT EXISTS page_members (
        scope TEXT NOT NULL,
        page INTEGER NOT NULL,
        entity_ids TEXT NOT NULL DEFAULT '[]',
        PRIMARY KEY (scope, page)
    )""",

    # Outbox replay claim shared by every session on this file
    """CREATE TABLE IF NOT EXISTS replay_claims (
        name TEXT PRIMARY KEY,
        owner TEXT NOT NULL,
        claimed_at REAL NOT NULL
    )""",

    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_cache_partition ON cache_entries(partition, position)",
    "CREATE INDEX IF NOT EXISTS idx_cache_entity ON cache_entries(partition, entity_id)",
    "CREATE INDEX IF NOT EXISTS idx_pending_kind ON pending_operations(kind)",

    # Update schema version
    f"INSERT OR REPLACE INTO schema_version (version) VALUES ({SCHEMA_VERSION})",
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except sqlite3.OperationalError:
        return 0


def initialize_database(db_connection):
    """Create all tables and indexes, and seed the local-id counter.

    Safe to call on every start: existing data is left untouched.
    """
    with db_connection.get_connection() as conn:
        version = _get_schema_version(conn)
        if version < SCHEMA_VERSION:
            for stmt in _SCHEMA_STATEMENTS:
                conn.execute(stmt)
        conn.execute(
            "INSERT OR IGNORE INTO counters (name, value) VALUES (?, 0)",
            (LOCAL_ID_COUNTER,),
        )


def get_schema_version(db_connection) -> int:
    with db_connection.get_connection() as conn:
        return _get_schema_version(conn)
