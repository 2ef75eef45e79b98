"""
Database connection management.

Provides the SQLite connection and schema for the inventory.
"""

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "server_inventory.db"

SCHEMA = """
    CREATE TABLE IF NOT EXISTS providers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        console_url TEXT,
        notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS people (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT,
        telegram TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS servers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        hostname TEXT NOT NULL,
        ip_public TEXT,
        ip_private TEXT,
        port INTEGER,
        username TEXT,
        password TEXT,
        ssh_key TEXT,
        status TEXT NOT NULL DEFAULT 'ACTIVE'
            CHECK (status IN ('ACTIVE', 'STANDBY', 'TO_DECOM')),
        purpose TEXT NOT NULL DEFAULT 'PROD'
            CHECK (purpose IN ('PROD', 'STAGING', 'DEV', 'TEST')),
        billing_type TEXT NOT NULL DEFAULT 'MONTHLY'
            CHECK (billing_type IN ('HOURLY', 'MONTHLY', 'SPOT')),
        cost_month_estimated TEXT,
        decommission_at TEXT,
        provider_id INTEGER REFERENCES providers(id) ON DELETE SET NULL,
        owner_id INTEGER REFERENCES people(id) ON DELETE SET NULL,
        os TEXT,
        cpu TEXT,
        ram TEXT,
        storage TEXT,
        location TEXT,
        description TEXT,
        tags TEXT,
        account TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_servers_provider_id ON servers(provider_id);
    CREATE INDEX IF NOT EXISTS idx_servers_owner_id ON servers(owner_id);

    CREATE TABLE IF NOT EXISTS cost_snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        server_id INTEGER NOT NULL REFERENCES servers(id) ON DELETE CASCADE,
        month TEXT NOT NULL,
        cost_month TEXT NOT NULL,
        source TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_cost_snapshots_server_month
        ON cost_snapshots(server_id, month);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    Rows come back as sqlite3.Row so callers can address columns by name.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the inventory tables if they don't exist.

    Foreign key policy:
        - deleting a provider or person unassigns its servers (SET NULL)
        - deleting a server removes its cost snapshots (CASCADE)

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    logger.debug("Initialized inventory schema at %s", db_path)
