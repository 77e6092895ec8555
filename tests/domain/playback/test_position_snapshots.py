"""Tests for playback position persistence."""

import sqlite3
import threading
from unittest.mock import MagicMock

from ranked_radio.domain.playback import (
    PositionSnapshot,
    PositionSnapshotter,
    clear_snapshot,
    format_time,
    load_snapshot,
    save_snapshot,
)
from ranked_radio.domain.queue import PlayMode


def sample_snapshot(**overrides) -> PositionSnapshot:
    values = dict(
        current_song_id=3,
        position=61.5,
        volume=55,
        queue_song_ids=(1, 3, 2),
        queue_index=1,
        playlist_id=None,
        play_mode=PlayMode.SHUFFLE,
        reversed=True,
        shuffle_seed="abc123",
        is_playing=True,
    )
    values.update(overrides)
    return PositionSnapshot(**values)


class TestSnapshotDatabase:
    """Saving and loading the singleton player_state row."""

    def test_nothing_saved(self, temp_db) -> None:
        assert load_snapshot() is None

    def test_save_and_load(self, temp_db) -> None:
        snapshot = sample_snapshot()
        save_snapshot(snapshot)
        assert load_snapshot() == snapshot

    def test_latest_save_wins(self, temp_db) -> None:
        save_snapshot(sample_snapshot(position=10.0))
        save_snapshot(sample_snapshot(position=20.0))
        assert load_snapshot().position == 20.0

    def test_clear(self, temp_db) -> None:
        save_snapshot(sample_snapshot())
        clear_snapshot()
        assert load_snapshot() is None


class TestPositionSnapshotter:
    """Background saver behavior, driven synchronously via run_once."""

    def test_saves_fresh_snapshot_when_nothing_pending(self) -> None:
        save = MagicMock()
        snapshot = sample_snapshot()
        snapshotter = PositionSnapshotter(lambda: snapshot, save=save)

        assert snapshotter.run_once() is True
        save.assert_called_once_with(snapshot)

    def test_submitted_snapshot_preferred(self) -> None:
        save = MagicMock()
        snapshotter = PositionSnapshotter(lambda: sample_snapshot(position=1.0), save=save)
        submitted = sample_snapshot(position=99.0)

        snapshotter.submit(submitted)
        snapshotter.run_once()

        save.assert_called_once_with(submitted)

    def test_failure_is_retried_next_cycle(self) -> None:
        save = MagicMock(side_effect=[sqlite3.OperationalError("locked"), None])
        submitted = sample_snapshot(position=5.0)
        snapshotter = PositionSnapshotter(lambda: sample_snapshot(position=0.0), save=save)

        snapshotter.submit(submitted)
        assert snapshotter.run_once() is False
        assert snapshotter.failures == 1

        assert snapshotter.run_once() is True
        assert save.call_args.args[0] == submitted

    def test_stop_flushes(self) -> None:
        save = MagicMock()
        snapshotter = PositionSnapshotter(sample_snapshot, save=save, interval=3600)
        snapshotter.start()
        snapshotter.stop(flush=True)
        save.assert_called_once()

    def test_timer_saves_without_submit(self) -> None:
        saved = threading.Event()
        save = MagicMock(side_effect=lambda snapshot: saved.set())
        snapshotter = PositionSnapshotter(sample_snapshot, save=save, interval=0.01)

        snapshotter.start()
        try:
            assert saved.wait(timeout=2.0)
        finally:
            snapshotter.stop(flush=False)

        assert save.call_count >= 1


class TestFormatTime:
    def test_format(self) -> None:
        assert format_time(0) == "00:00"
        assert format_time(125.7) == "02:05"
        assert format_time(-3) == "00:00"
