"""
Play statistics written off the playback path.

A song that plays to its natural end gets its play count incremented and
its last-played time stamped. The write runs on a single background worker
so a slow or locked database never delays the transition to the next song.
"""

import sqlite3
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Optional

from loguru import logger

from ranked_radio.core.errors import RankedRadioError

from .catalog import CatalogProvider


class PlayRecorder:
    def __init__(self, catalog: CatalogProvider, executor: Optional[Executor] = None) -> None:
        self.catalog = catalog
        self.failures = 0
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="play-recorder"
        )
        self._owns_executor = executor is None

    def record(self, song_id: int) -> None:
        """Queue a play for `song_id` without waiting for the write."""
        try:
            self._executor.submit(self._write, song_id)
        except RuntimeError:
            logger.debug(f"Play recorder stopped, play of song {song_id} not recorded")

    def _write(self, song_id: int) -> None:
        try:
            self.catalog.record_play(song_id)
        except (sqlite3.Error, OSError, RankedRadioError) as e:
            self.failures += 1
            logger.warning(f"Could not record play of song {song_id}: {e}")
            return
        logger.debug(f"Recorded play of song {song_id}")

    def shutdown(self) -> None:
        """Finish queued writes."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)
