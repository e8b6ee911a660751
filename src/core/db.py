"""
SQLite record store: connection handling and schema.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from .config import get_db_path, ensure_db_directory


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    ensure_db_directory()
    conn = sqlite3.connect(get_db_path())
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize the database with required tables."""
    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS foundries (
                id TEXT PRIMARY KEY,
                slug TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                url TEXT,
                location_city TEXT,
                location_country TEXT,
                location_country_code TEXT,
                founder TEXT,
                founded INTEGER,
                notable_typefaces TEXT NOT NULL DEFAULT '[]',  -- JSON array
                style TEXT NOT NULL DEFAULT '[]',              -- JSON array
                tier INTEGER,
                notes TEXT,
                social_instagram TEXT,
                social_twitter TEXT,
                screenshot_url TEXT,
                logo_url TEXT,
                is_popular BOOLEAN DEFAULT FALSE,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS foundry_backups (
                id TEXT PRIMARY KEY,
                created_at TIMESTAMP NOT NULL,
                reason TEXT NOT NULL,
                foundry_count INTEGER NOT NULL,
                snapshot TEXT NOT NULL,         -- JSON list of complete pre-change rows
                changes_applied TEXT NOT NULL,  -- JSON list of changesets
                checksum TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active'
                    CHECK (status IN ('active', 'rolled_back', 'expired')),
                rolled_back_at TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS job_progress (
                job_id TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                expires_at TIMESTAMP NOT NULL
            )
        ''')

        # Slugs and ids never change once assigned
        cursor.execute('''
            CREATE TRIGGER IF NOT EXISTS foundries_identity_immutable
            BEFORE UPDATE OF id, slug ON foundries
            WHEN NEW.id != OLD.id OR NEW.slug != OLD.slug
            BEGIN
                SELECT RAISE(ABORT, 'foundry id and slug are immutable');
            END
        ''')

        # Only status and rolled_back_at may change on a stored backup
        cursor.execute('''
            CREATE TRIGGER IF NOT EXISTS foundry_backups_snapshot_immutable
            BEFORE UPDATE OF id, created_at, reason, foundry_count, snapshot, changes_applied, checksum
            ON foundry_backups
            BEGIN
                SELECT RAISE(ABORT, 'backup snapshot is immutable');
            END
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_foundries_name ON foundries(name)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_backups_created_at ON foundry_backups(created_at DESC)')

        conn.commit()


def health_check():
    """Check database health."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [row[0] for row in cursor.fetchall()]
            required_tables = ['foundries', 'foundry_backups']
            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
