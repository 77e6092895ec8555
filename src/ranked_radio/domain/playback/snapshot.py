"""
Periodic persistence of the playback position.

A low-priority daemon thread saves the latest snapshot every interval and
whenever the controller submits one (pause/stop). Saves are idempotent, so
a failed save is simply retried on the next cycle with whatever snapshot is
newest by then.
"""

import sqlite3
import threading
from typing import Callable, Optional

from loguru import logger

from ranked_radio.core.errors import ExternalServiceError

from .state import PositionSnapshot, save_snapshot


class PositionSnapshotter:
    def __init__(
        self,
        take_snapshot: Callable[[], PositionSnapshot],
        save: Callable[[PositionSnapshot], None] = save_snapshot,
        interval: float = 60.0,
    ) -> None:
        self.take_snapshot = take_snapshot
        self.save = save
        self.interval = interval
        self.failures = 0
        self._pending: Optional[PositionSnapshot] = None
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._run, name="position-snapshotter", daemon=True
        )
        self._thread.start()
        logger.debug(f"Position snapshotter started (every {self.interval}s)")

    def stop(self, flush: bool = True) -> None:
        self._stopped.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        if flush:
            self.run_once()

    def submit(self, snapshot: PositionSnapshot) -> None:
        """Queue a snapshot for saving without waiting for the write."""
        with self._lock:
            self._pending = snapshot
        self._wake.set()

    def run_once(self) -> bool:
        """Save the pending snapshot (or a fresh one). True on success."""
        with self._lock:
            snapshot = self._pending
            self._pending = None
        if snapshot is None:
            snapshot = self.take_snapshot()

        try:
            self.save(snapshot)
        except (sqlite3.Error, OSError, ExternalServiceError) as e:
            self.failures += 1
            logger.warning(f"Saving playback position failed, retrying next cycle: {e}")
            with self._lock:
                # Keep it unless something newer arrived meanwhile
                if self._pending is None:
                    self._pending = snapshot
            return False

        logger.debug(
            f"Saved position: song={snapshot.current_song_id}, offset={snapshot.position:.1f}s"
        )
        return True

    def _run(self) -> None:
        while not self._stopped.is_set():
            self._wake.wait(self.interval)
            self._wake.clear()
            if self._stopped.is_set():
                break
            self.run_once()
