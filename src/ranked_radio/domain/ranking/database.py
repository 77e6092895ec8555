"""
Durable backing for the ranking store.
"""

from typing import Mapping

from loguru import logger

from ranked_radio.core.database import get_db_connection


def load_rankings() -> dict[int, int]:
    """Load every song_id -> ranking value pair."""
    with get_db_connection() as conn:
        cursor = conn.execute("SELECT song_id, value FROM rankings")
        return {row["song_id"]: row["value"] for row in cursor.fetchall()}


def save_rankings(values: Mapping[int, int]) -> None:
    """Replace the persisted ranking with `values` in one transaction.

    Last writer wins; there is no optimistic locking.
    """
    with get_db_connection() as conn:
        conn.execute("DELETE FROM rankings")
        conn.executemany(
            "INSERT INTO rankings (song_id, value) VALUES (?, ?)",
            list(values.items()),
        )
        conn.commit()
    logger.debug(f"Saved {len(values)} ranking values")
