"""
SQLite database operations for Ranked Radio
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

from .config import get_data_dir

# Database schema version for migrations
SCHEMA_VERSION = 2


def get_database_path() -> Path:
    """Get the path to the SQLite database file."""
    return get_data_dir() / "ranked_radio.db"


@contextmanager
def get_db_connection():
    """Get a database connection with proper cleanup and concurrency support."""
    db_path = get_database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # The snapshot timer writes from a background thread while the
    # session reads from the main one
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA journal_mode=WAL")

    try:
        yield conn
    finally:
        conn.close()


def migrate_database(conn: sqlite3.Connection, current_version: int) -> None:
    """Migrate database from current_version to latest schema."""
    if current_version < 1:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS songs (
                id INTEGER PRIMARY KEY,
                title TEXT NOT NULL,
                artist TEXT,
                album TEXT,
                genre TEXT,
                year INTEGER,
                duration REAL,
                file_path TEXT,
                description TEXT,
                play_count INTEGER DEFAULT 0,
                last_played TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS rankings (
                song_id INTEGER PRIMARY KEY,
                value INTEGER NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_rankings_value ON rankings (value)")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS player_state (
                id INTEGER PRIMARY KEY CHECK (id = 1), -- Ensure only one row
                current_song_id INTEGER,
                position REAL DEFAULT 0.0,
                volume INTEGER DEFAULT 75,
                is_playing BOOLEAN DEFAULT 0,
                queue_song_ids TEXT, -- JSON array
                queue_index INTEGER DEFAULT -1,
                playlist_id INTEGER,
                play_mode TEXT DEFAULT 'sequential',
                reversed BOOLEAN DEFAULT 0,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS radio_config (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                config_json TEXT NOT NULL,
                memory_json TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    if current_version < 2:
        # Shuffle seed so a resumed shuffle keeps its order
        try:
            conn.execute("ALTER TABLE player_state ADD COLUMN shuffle_seed TEXT")
        except sqlite3.OperationalError:
            pass  # Column already exists

    conn.commit()


def init_database() -> None:
    """Initialize the database with the required tables."""
    with get_db_connection() as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            )
        """)
        row = conn.execute("SELECT MAX(version) AS version FROM schema_version").fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        if current_version < SCHEMA_VERSION:
            logger.info(f"Migrating database from v{current_version} to v{SCHEMA_VERSION}")
            migrate_database(conn, current_version)
            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()
