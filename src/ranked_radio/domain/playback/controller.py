"""
Playback state machine.

    IDLE --load--> LOADING --media_ready--> PLAYING
    PLAYING --pause--> PAUSED --resume--> PLAYING
    PLAYING --natural_end--> ANNOUNCING | LOADING(next) | ENDED
    ANNOUNCING --announcement_end--> LOADING(next)
    LOADING --no next song, no repeat--> ENDED

Every load or announcement gets a fresh token. Backend events carrying an
older token belong to a superseded load and are ignored. All mutating
calls take the controller lock, so transitions are atomic and listeners
see every status change in order.
"""

import threading
from typing import TYPE_CHECKING, Callable, Optional, Protocol

from loguru import logger

from ranked_radio.core.errors import ExhaustedQueueError, NotFoundError
from ranked_radio.domain.library import Song
from ranked_radio.domain.queue import PlaybackQueue, PlayMode

from .media import MediaBackend
from .state import PlaybackState, PlayerStatus, PositionSnapshot

if TYPE_CHECKING:
    from ranked_radio.domain.radio.models import Announcement

DEFAULT_MAX_CONSECUTIVE_FAILURES = 3

Listener = Callable[[PlayerStatus], None]
QueueFactory = Callable[[PlayMode, bool, Optional[int]], PlaybackQueue]


class TransitionPolicy(Protocol):
    """Consulted at song boundaries (implemented by RadioScheduler)."""

    def on_natural_end(
        self, ended_song_id: int, upcoming_song_id: Optional[int]
    ) -> Optional["Announcement"]: ...

    def on_song_started(
        self, current_song_id: int, upcoming_song_id: Optional[int]
    ) -> None: ...

    def on_queue_changed(
        self, current_song_id: Optional[int], upcoming_song_id: Optional[int]
    ) -> None: ...


class PlaybackController:
    """Drives what plays now. One instance per session."""

    def __init__(
        self,
        backend: MediaBackend,
        song_lookup: Callable[[int], Song],
        queue_factory: Optional[QueueFactory] = None,
        policy: Optional[TransitionPolicy] = None,
        volume: int = 75,
        repeat: bool = False,
        max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES,
        snapshot_sink: Optional[Callable[[PositionSnapshot], None]] = None,
        on_fatal: Optional[Callable[[ExhaustedQueueError], None]] = None,
        on_song_finished: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.backend = backend
        self.song_lookup = song_lookup
        self.queue_factory = queue_factory
        self.policy = policy
        self.repeat = repeat
        self.max_consecutive_failures = max_consecutive_failures
        self.snapshot_sink = snapshot_sink
        self.on_fatal = on_fatal
        self.on_song_finished = on_song_finished
        self.fatal_error: Optional[ExhaustedQueueError] = None
        self.playlist_id: Optional[int] = None

        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._state = PlaybackState.IDLE
        self._queue = PlaybackQueue()
        self._volume = max(0, min(100, volume))
        self._token = 0
        self._position = 0.0
        self._duration = 0.0
        self._resume_offset = 0.0
        self._failures = 0
        self._announcement: Optional["Announcement"] = None

        backend.attach(self)

    # Observation

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def queue(self) -> PlaybackQueue:
        return self._queue

    @property
    def volume(self) -> int:
        return self._volume

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def current_song_id(self) -> Optional[int]:
        return self._queue.current_id

    @property
    def current_announcement(self) -> Optional["Announcement"]:
        return self._announcement

    @property
    def position(self) -> float:
        self._poll_position()
        return self._position

    def status(self) -> PlayerStatus:
        with self._lock:
            return PlayerStatus(
                state=self._state,
                current_song_id=self._queue.current_id,
                position=self._position,
                duration=self._duration,
                volume=self._volume,
                mode=self._queue.mode,
                reversed=self._queue.reversed,
                queue_index=self._queue.index,
                queue_length=len(self._queue.song_ids),
            )

    def current_pair(self) -> tuple[Optional[int], Optional[int]]:
        """(current song, song that plays after it) as of now."""
        with self._lock:
            return self._queue.current_id, self._upcoming_id()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> PositionSnapshot:
        self._poll_position()
        return self._snapshot()

    def _snapshot(self) -> PositionSnapshot:
        with self._lock:
            return PositionSnapshot(
                current_song_id=self._queue.current_id,
                position=self._position,
                volume=self._volume,
                queue_song_ids=self._queue.song_ids,
                queue_index=self._queue.index,
                playlist_id=self.playlist_id,
                play_mode=self._queue.mode,
                reversed=self._queue.reversed,
                shuffle_seed=self._queue.seed,
                is_playing=self._state in (PlaybackState.PLAYING, PlaybackState.ANNOUNCING),
            )

    # Player controls

    def load(self, queue: PlaybackQueue, index: Optional[int] = None, autoplay: bool = True) -> None:
        """Replace the queue and (by default) start loading its current song."""
        with self._lock:
            if index is not None and queue.song_ids:
                queue = queue._replace(index=max(0, min(index, len(queue.song_ids) - 1)))
            self._cancel_active()
            self._queue = queue
            self._failures = 0
            self.fatal_error = None
            self._position = 0.0
            self._duration = 0.0
            self._resume_offset = 0.0

            if queue.index < 0 or not queue.song_ids:
                logger.info("Loaded empty queue, player idle")
                self._set_state(PlaybackState.IDLE)
            elif autoplay:
                self._start_loading(queue.index)
            else:
                self._set_state(PlaybackState.IDLE)
        self._notify_queue_changed()

    def restore(self, snapshot: PositionSnapshot, queue: PlaybackQueue) -> None:
        """Prepare a resumed session: queue set, offset applied on first play."""
        with self._lock:
            self.load(queue, autoplay=False)
            self._volume = max(0, min(100, snapshot.volume))
            self.playlist_id = snapshot.playlist_id
            if queue.current_id == snapshot.current_song_id:
                self._resume_offset = max(0.0, snapshot.position)
                self._position = self._resume_offset
            self.backend.set_volume(self._volume)
            self._notify()

    def play(self) -> None:
        with self._lock:
            if self._state == PlaybackState.PAUSED:
                self.resume()
            elif self._state in (PlaybackState.IDLE, PlaybackState.ENDED) and self._queue.song_ids:
                index = self._queue.index if self._queue.index >= 0 else 0
                if self._state == PlaybackState.ENDED and self.fatal_error is None:
                    index = 0  # finished queue plays again from the top
                self.fatal_error = None
                self._failures = 0
                self._start_loading(index)

    def pause(self) -> bool:
        with self._lock:
            if self._state != PlaybackState.PLAYING:
                return False
            self.backend.pause()
            self._refresh_position()
            self._set_state(PlaybackState.PAUSED)
            self._emit_snapshot()
            return True

    def resume(self) -> bool:
        with self._lock:
            if self._state != PlaybackState.PAUSED:
                return False
            self.backend.resume()
            self._set_state(PlaybackState.PLAYING)
            return True

    def stop(self) -> None:
        with self._lock:
            self._refresh_position()
            self._cancel_active()
            self._set_state(PlaybackState.IDLE)
            self._emit_snapshot()

    def seek(self, seconds: float) -> Optional[float]:
        """Seek within the loaded song, clamped to [0, duration].

        Only a playing or paused song can be sought. Announcements are not
        seekable and a loading song has no duration yet.

        Returns:
            The position actually sought to, or None when nothing seekable is loaded
        """
        with self._lock:
            if self._state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
                return None
            target = max(0.0, min(float(seconds), self._duration))
            self.backend.seek(target)
            self._position = target
            self._notify()
            return target

    def set_volume(self, volume: int) -> int:
        with self._lock:
            self._volume = max(0, min(100, int(volume)))
            self.backend.set_volume(self._volume)
            self._notify()
            return self._volume

    def next(self) -> bool:
        return self._skip(1)

    def previous(self) -> bool:
        return self._skip(-1)

    def set_play_mode(self, mode: PlayMode) -> None:
        """Rebuild the queue for `mode`; the current song keeps playing."""
        with self._lock:
            self._rebuild(mode, self._queue.reversed)

    def toggle_reverse(self) -> bool:
        with self._lock:
            self._rebuild(self._queue.mode, not self._queue.reversed)
            return self._queue.reversed

    # Backend events

    def media_ready(self, token: int, duration: Optional[float] = None) -> None:
        with self._lock:
            if token != self._token or self._state != PlaybackState.LOADING:
                logger.debug(f"Ignoring stale media_ready (token={token}, current={self._token})")
                return
            self._failures = 0
            self._duration = float(duration) if duration else 0.0
            self._position = 0.0
            if self._resume_offset:
                self._position = min(self._resume_offset, self._duration or self._resume_offset)
                self.backend.seek(self._position)
                self._resume_offset = 0.0
            self._set_state(PlaybackState.PLAYING)
            current, upcoming = self._queue.current_id, self._upcoming_id()

        if self.policy is not None and current is not None:
            try:
                self.policy.on_song_started(current, upcoming)
            except Exception:
                logger.exception("Transition policy failed on song start")

    def media_failed(self, token: int, reason: str = "") -> None:
        with self._lock:
            if token != self._token:
                logger.debug(f"Ignoring stale media_failed (token={token})")
                return
            if self._state == PlaybackState.ANNOUNCING:
                logger.warning(f"Announcement playback failed: {reason}")
                self._announcement = None
                self._advance()
            elif self._state in (PlaybackState.LOADING, PlaybackState.PLAYING):
                self._handle_failure(reason)

    def natural_end(self, token: int) -> None:
        with self._lock:
            if token != self._token or self._state != PlaybackState.PLAYING:
                logger.debug(f"Ignoring natural_end (token={token}, state={self._state.value})")
                return
            ended = self._queue.current_id
            upcoming = self._upcoming_id()

            announcement = None
            if self.policy is not None and ended is not None:
                try:
                    announcement = self.policy.on_natural_end(ended, upcoming)
                except Exception:
                    logger.exception("Transition policy failed at song end, continuing")

            if announcement is not None and upcoming is not None:
                self._start_announcement(announcement)
            else:
                self._advance()

        if self.on_song_finished is not None and ended is not None:
            try:
                self.on_song_finished(ended)
            except Exception:
                logger.exception(f"Song-finished hook failed for song {ended}")

    def announcement_end(self, token: int) -> None:
        with self._lock:
            if token != self._token or self._state != PlaybackState.ANNOUNCING:
                logger.debug(f"Ignoring stale announcement_end (token={token})")
                return
            self._announcement = None
            self._advance()

    # Internals

    def _poll_position(self) -> None:
        """Ask the backend for the position without holding the lock."""
        with self._lock:
            if self._state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
                return
            token = self._token
        reported = self.backend.position()
        with self._lock:
            if token == self._token:
                self._apply_position(reported)

    def _refresh_position(self) -> None:
        """Position refresh for commands that already hold the lock."""
        if self._state in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            self._apply_position(self.backend.position())

    def _apply_position(self, reported: Optional[float]) -> None:
        if reported is None or self._state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            return
        upper = self._duration if self._duration > 0 else float(reported)
        self._position = max(0.0, min(float(reported), upper))

    def _upcoming_id(self) -> Optional[int]:
        upcoming = self._queue.upcoming_id
        if upcoming is None and self.repeat and self._queue.song_ids:
            return self._queue.song_ids[0]
        return upcoming

    def _skip(self, step: int) -> bool:
        with self._lock:
            if not self._queue.song_ids:
                return False
            target = self._queue.neighbor_index(step)
            if target is None and self.repeat:
                target = 0 if step > 0 else len(self._queue.song_ids) - 1
            if target is None:
                return False
            self._failures = 0
            self.fatal_error = None
            self._cancel_active()
            self._start_loading(target)
        self._notify_queue_changed()
        return True

    def _rebuild(self, mode: PlayMode, reversed_: bool) -> None:
        if self.queue_factory is None:
            self._queue = self._queue._replace(mode=mode, reversed=reversed_)
        else:
            rebuilt = self.queue_factory(mode, reversed_, self._queue.current_id)
            # Song ids equal, index may differ: the current song keeps playing
            self._queue = rebuilt
        logger.info(f"Play mode {mode.value} (reversed={reversed_}), {len(self._queue.song_ids)} songs")
        self._notify()
        self._notify_queue_changed()

    def _cancel_active(self) -> None:
        """Invalidate in-flight loads/announcements and silence the backend."""
        self._token += 1
        self._announcement = None
        if self._state in (
            PlaybackState.LOADING,
            PlaybackState.PLAYING,
            PlaybackState.PAUSED,
            PlaybackState.ANNOUNCING,
        ):
            self.backend.stop()

    def _start_loading(self, index: int) -> None:
        self._queue = self._queue._replace(index=index)
        self._token += 1
        token = self._token
        self._position = 0.0
        self._duration = 0.0
        self._set_state(PlaybackState.LOADING)

        song_id = self._queue.current_id
        try:
            song = self.song_lookup(song_id)
            if not song.file_path:
                raise NotFoundError(song_id, where="media files")
            self.backend.load(song.file_path, token)
        except Exception as e:
            if token == self._token:
                self._handle_failure(str(e))

    def _start_announcement(self, announcement: "Announcement") -> None:
        self._token += 1
        token = self._token
        self._announcement = announcement
        self._set_state(PlaybackState.ANNOUNCING)
        try:
            self.backend.play_announcement(announcement.audio_handle, token)
        except Exception:
            logger.exception("Could not start announcement, skipping it")
            if token == self._token:
                self._announcement = None
                self._advance()

    def _advance(self) -> None:
        target = self._queue.neighbor_index(1)
        if target is None and self.repeat and self._queue.song_ids:
            target = 0
        if target is None:
            logger.info("Queue finished")
            self._token += 1
            self.backend.stop()
            self._set_state(PlaybackState.ENDED)
            self._emit_snapshot()
            return
        self._start_loading(target)

    def _handle_failure(self, reason: str) -> None:
        self._failures += 1
        song_id = self._queue.current_id
        logger.warning(
            f"Media failed for song {song_id} ({self._failures}/{self.max_consecutive_failures}): {reason}"
        )
        if self._failures >= self.max_consecutive_failures:
            error = ExhaustedQueueError(self._failures, song_id)
            logger.error(str(error))
            self.fatal_error = error
            self._token += 1
            self.backend.stop()
            self._set_state(PlaybackState.ENDED)
            if self.on_fatal is not None:
                self.on_fatal(error)
            return
        self._advance()

    def _set_state(self, state: PlaybackState) -> None:
        if state != self._state:
            logger.debug(f"Playback {self._state.value} -> {state.value}")
        self._state = state
        self._notify()

    def _notify(self) -> None:
        status = self.status()
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Player listener failed")

    def _notify_queue_changed(self) -> None:
        if self.policy is None:
            return
        current, upcoming = self.current_pair()
        try:
            self.policy.on_queue_changed(current, upcoming)
        except Exception:
            logger.exception("Transition policy failed on queue change")

    def _emit_snapshot(self) -> None:
        if self.snapshot_sink is not None:
            self.snapshot_sink(self._snapshot())
