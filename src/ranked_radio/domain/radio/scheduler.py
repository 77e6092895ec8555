"""
Radio scheduler: decides when an announcement plays between two songs.

The scheduler counts natural song endings. While the song before an
announcement slot is still playing it pre-generates one announcement in
the background, tagged with the (previous, next) pair it introduces. At the
boundary the cached announcement is played only if its pair still matches;
otherwise playback simply continues. The first generation of a session also
creates the session identity that every later prompt builds on.

Locking: the controller calls into the scheduler while holding its own
lock, so the scheduler never calls the controller (or any other
collaborator) while holding `_lock`.
"""

import dataclasses
import sqlite3
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from datetime import datetime
from typing import Any, Callable, NamedTuple, Optional

from loguru import logger

from ranked_radio.core.errors import NotFoundError, ValidationError

from .generator import AnnouncementGenerator
from .memory import RadioMemory
from .models import (
    PERSONALITIES,
    Announcement,
    GenerationContext,
    GenerationResult,
    RadioConfig,
    SessionIdentity,
    SongInfo,
    calculate_transition,
    describe_personality,
)

Pair = tuple[Optional[int], Optional[int]]

MAX_UPCOMING = 10


class _Reservation(NamedTuple):
    """State captured under the lock when a generation slot is claimed."""

    token: int
    pair: tuple[int, int]
    config: RadioConfig
    script_history: str
    previous_songs: tuple[str, ...]
    announcement_number: int
    songs_played: int
    session_minutes: int
    session_start: datetime
    identity: Optional[SessionIdentity]


class RadioScheduler:
    """Transition policy that inserts AI announcements every N songs."""

    def __init__(
        self,
        generator: Optional[AnnouncementGenerator],
        song_info: Callable[[int], SongInfo],
        config: Optional[RadioConfig] = None,
        memory: Optional[RadioMemory] = None,
        persist: Optional[Callable[[RadioConfig, RadioMemory], None]] = None,
        executor: Optional[Executor] = None,
        writer: Optional[Executor] = None,
    ) -> None:
        self.generator = generator
        self.song_info = song_info
        self.persist = persist
        self._config = config or RadioConfig()
        self.memory = memory or RadioMemory()
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="radio-generation"
        )
        self._owns_executor = executor is None
        self._writer = writer or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="radio-config-writer"
        )
        self._owns_writer = writer is None

        self._lock = threading.Lock()
        self._cache: Optional[Announcement] = None
        self._generation = 0
        self._in_flight_token: Optional[int] = None
        self._in_flight_pair: Optional[Pair] = None
        self._future: Optional[Future] = None

        self._current_pair: Callable[[], Pair] = lambda: (None, None)
        self._upcoming_labels: Callable[[int], list[str]] = lambda song_id: []

        # Counters for status output and tests
        self.generation_requests = 0
        self.missed_announcements = 0
        self.stale_discards = 0

    def bind(
        self,
        current_pair: Callable[[], Pair],
        upcoming_labels: Optional[Callable[[int], list[str]]] = None,
    ) -> None:
        """Connect to the playback side once the controller exists."""
        self._current_pair = current_pair
        if upcoming_labels is not None:
            self._upcoming_labels = upcoming_labels

    # Observation

    @property
    def config(self) -> RadioConfig:
        with self._lock:
            return dataclasses.replace(self._config)

    @property
    def is_enabled(self) -> bool:
        return self._config.enabled

    @property
    def is_generating(self) -> bool:
        with self._lock:
            return self._in_flight_token is not None

    @property
    def cached_announcement(self) -> Optional[Announcement]:
        with self._lock:
            return self._cache

    # Transition policy

    def on_natural_end(
        self, ended_song_id: int, upcoming_song_id: Optional[int]
    ) -> Optional[Announcement]:
        """Decide whether an announcement plays between the two songs.

        The updated counter and memory are written by the background writer
        so the boundary itself never waits on the database.
        """
        label = self._label(ended_song_id)
        with self._lock:
            announcement = self._decide(ended_song_id, upcoming_song_id, label)
        self._save_in_background()
        return announcement

    def _decide(
        self, ended_song_id: int, upcoming_song_id: Optional[int], label: Optional[str]
    ) -> Optional[Announcement]:
        """Boundary bookkeeping. Caller holds `_lock`."""
        config = self._config
        config.song_counter += 1
        if label:
            self.memory.add_played_song(label)
        should_announce = config.enabled and config.song_counter >= config.frequency

        cached = self._cache
        if cached is not None and not cached.matches(ended_song_id, upcoming_song_id):
            logger.info(
                f"Discarding stale announcement for {cached.previous_song_id}->{cached.next_song_id} "
                f"(boundary is {ended_song_id}->{upcoming_song_id})"
            )
            self._cache = None
            self.stale_discards += 1
            cached = None

        if cached is not None and config.enabled and upcoming_song_id is not None:
            self._cache = None
            config.song_counter = 0
            self.memory.add_script(cached.script)
            logger.info(
                f"Announcement {ended_song_id}->{upcoming_song_id} ({cached.duration:.1f}s)"
            )
            return cached

        if should_announce and upcoming_song_id is not None:
            self.missed_announcements += 1
            state = "still generating" if self._in_flight_token is not None else "none ready"
            logger.warning(
                f"Missed announcement at {ended_song_id}->{upcoming_song_id} ({state}), "
                f"retrying at next boundary (counter={config.song_counter})"
            )
        return None

    def on_song_started(self, current_song_id: int, upcoming_song_id: Optional[int]) -> None:
        self.maybe_pregenerate(current_song_id, upcoming_song_id)

    def on_queue_changed(
        self, current_song_id: Optional[int], upcoming_song_id: Optional[int]
    ) -> None:
        """Drop a cached or in-flight announcement that no longer fits the queue."""
        pair = (current_song_id, upcoming_song_id)
        with self._lock:
            cached = self._cache
            if cached is not None and not cached.matches(*pair):
                logger.info(
                    f"Queue changed, discarding announcement for "
                    f"{cached.previous_song_id}->{cached.next_song_id}"
                )
                self._cache = None
                self.stale_discards += 1

            if self._in_flight_token is not None and self._in_flight_pair != pair:
                logger.info(
                    f"Queue changed, in-flight announcement for {self._in_flight_pair} will be dropped"
                )
                self._generation += 1
                if self._future is not None and self._future.cancel():
                    self._in_flight_token = None
                    self._in_flight_pair = None
                    self._future = None

    notify_queue_changed = on_queue_changed

    # Pre-generation

    def maybe_pregenerate(self, current_song_id: int, upcoming_song_id: Optional[int]) -> bool:
        """Start generating if the next boundary is an announcement slot.

        Returns:
            True if a generation request was issued
        """
        with self._lock:
            config = self._config
            if not config.enabled or self.generator is None or upcoming_song_id is None:
                return False
            if config.song_counter + 1 < config.frequency:
                return False
            reservation = self._reserve(current_song_id, upcoming_song_id)
        if reservation is None:
            return False
        return self._submit(reservation)

    def trigger_pregeneration(self) -> bool:
        """Generate for the current pair now, ignoring the frequency."""
        current, upcoming = self._current_pair()
        with self._lock:
            if not self._config.enabled or self.generator is None:
                logger.info("Radio is off, not generating")
                return False
            if current is None or upcoming is None:
                logger.info("Nothing playing or nothing up next, not generating")
                return False
            reservation = self._reserve(current, upcoming)
        if reservation is None:
            return False
        return self._submit(reservation)

    def wait_for_generation(self, timeout: Optional[float] = None) -> bool:
        """Block until the in-flight generation (if any) finishes. True if idle."""
        with self._lock:
            future = self._future
        if future is None:
            return True
        done, _ = wait_futures([future], timeout=timeout)
        return bool(done)

    def _reserve(self, current_song_id: int, upcoming_song_id: int) -> Optional[_Reservation]:
        """Claim the single generation slot. Caller holds `_lock`."""
        if self._in_flight_token is not None:
            logger.debug("Generation already in flight, trigger ignored")
            return None
        if self._cache is not None and self._cache.matches(current_song_id, upcoming_song_id):
            return None

        self._generation += 1
        self._in_flight_token = self._generation
        self._in_flight_pair = (current_song_id, upcoming_song_id)
        self.generation_requests += 1
        return _Reservation(
            token=self._generation,
            pair=(current_song_id, upcoming_song_id),
            config=dataclasses.replace(self._config),
            script_history=self.memory.formatted_script_history(),
            previous_songs=tuple(self.memory.previous_songs),
            announcement_number=self.memory.announcement_count + 1,
            songs_played=self.memory.songs_played,
            session_minutes=self.memory.session_minutes(),
            session_start=self.memory.session_start,
            identity=self.memory.identity,
        )

    def _submit(self, reservation: _Reservation) -> bool:
        try:
            context = self._build_context(reservation)
        except NotFoundError as e:
            logger.warning(f"Cannot build announcement context: {e}")
            self._release(reservation.token)
            return False

        logger.info(f"Pre-generating announcement {reservation.pair[0]}->{reservation.pair[1]}")
        try:
            future = self._executor.submit(self._run, reservation, context)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(f"Announcement generation unavailable: {e}")
            self._release(reservation.token)
            return False

        with self._lock:
            if self._in_flight_token == reservation.token:
                self._future = future
        return True

    def _build_context(self, reservation: _Reservation) -> GenerationContext:
        previous_id, next_id = reservation.pair
        config = reservation.config
        return GenerationContext(
            previous=self.song_info(previous_id),
            next=self.song_info(next_id),
            upcoming=tuple(self._upcoming_labels(next_id)[:MAX_UPCOMING]),
            previous_songs=reservation.previous_songs,
            script_history=reservation.script_history,
            announcement_number=reservation.announcement_number,
            radio_name=config.radio_name,
            host1_name=config.host1_name,
            host2_name=config.host2_name,
            personality=describe_personality(config.personality, config.custom_personality),
            personality2=describe_personality(config.personality2, config.custom_personality2),
            voice1=config.voice1,
            voice2=config.voice2,
            dual=config.is_dual,
            songs_played=reservation.songs_played,
            session_minutes=reservation.session_minutes,
            user_name=config.user_name,
            user_instructions=config.user_instructions,
            identity=reservation.identity,
        )

    def _run(self, reservation: _Reservation, context: GenerationContext) -> None:
        """Worker-thread body. Never raises."""
        if context.identity is None:
            context = context._replace(identity=self._create_identity(reservation, context))
        try:
            result = self.generator.generate(context)
        except Exception as e:
            logger.warning(
                f"Announcement generation failed for {reservation.pair[0]}->{reservation.pair[1]}: {e}"
            )
            self._release(reservation.token)
            return
        self._complete(reservation, result)

    def _create_identity(
        self, reservation: _Reservation, context: GenerationContext
    ) -> SessionIdentity:
        """Theme for a session that has none yet, kept in memory for later prompts."""
        try:
            identity = self.generator.generate_identity(context)
        except Exception as e:
            logger.warning(f"Session identity generation failed, using default: {e}")
            identity = SessionIdentity()

        with self._lock:
            # Not stored if a toggle started another session meanwhile
            adopted = (
                self.memory.identity is None
                and self.memory.session_start == reservation.session_start
            )
            if adopted:
                self.memory.identity = identity
        if adopted:
            self._save_in_background()
        return identity

    def _complete(self, reservation: _Reservation, result: GenerationResult) -> None:
        current_pair = self._current_pair()
        previous_id, next_id = reservation.pair

        with self._lock:
            if self._in_flight_token == reservation.token:
                self._in_flight_token = None
                self._in_flight_pair = None
                self._future = None

            if reservation.token != self._generation or current_pair != reservation.pair:
                logger.info(
                    f"Dropping stale announcement for {previous_id}->{next_id} "
                    f"(now {current_pair[0]}->{current_pair[1]})"
                )
                self.stale_discards += 1
                return

            self._cache = Announcement(
                audio_handle=result.audio_handle,
                duration=result.duration,
                script=result.script,
                previous_song_id=previous_id,
                next_song_id=next_id,
                transition=calculate_transition(result.duration),
            )
        logger.info(f"Announcement ready for {previous_id}->{next_id} ({result.duration:.1f}s)")

    def _release(self, token: int) -> None:
        with self._lock:
            if self._in_flight_token == token:
                self._in_flight_token = None
                self._in_flight_pair = None
                self._future = None

    def _label(self, song_id: int) -> Optional[str]:
        try:
            return self.song_info(song_id).label
        except NotFoundError:
            return None

    # Configuration

    def toggle(self) -> bool:
        """Flip radio on/off, starting a fresh session either way."""
        with self._lock:
            self._config.enabled = not self._config.enabled
            self._config.song_counter = 0
            self.memory.reset()
            self._cache = None
            self._generation += 1
            enabled = self._config.enabled
        logger.info(f"Radio {'enabled' if enabled else 'disabled'}")
        self.save()
        return enabled

    def update_config(self, **changes: Any) -> RadioConfig:
        """Apply settings changes and persist them.

        Raises:
            ValidationError: Unknown setting or personality
        """
        known = {f.name for f in dataclasses.fields(RadioConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown radio setting(s): {', '.join(sorted(unknown))}")
        for key in ("personality", "personality2"):
            if key in changes and changes[key] not in PERSONALITIES:
                raise ValidationError(
                    f"Unknown personality '{changes[key]}' (choose from {', '.join(PERSONALITIES)})"
                )
        try:
            int(changes.get("frequency", 1))
        except (TypeError, ValueError):
            raise ValidationError(f"Frequency must be a number, got {changes['frequency']!r}")

        with self._lock:
            self._config = dataclasses.replace(self._config, **changes)
            updated = dataclasses.replace(self._config)
        logger.info(f"Radio config updated: {', '.join(sorted(changes))}")
        self.save()
        return updated

    def save(self) -> bool:
        """Persist config and memory; failures are logged, never raised."""
        if self.persist is None:
            return True
        with self._lock:
            config = dataclasses.replace(self._config)
            memory = RadioMemory.from_dict(self.memory.to_dict())
        try:
            self.persist(config, memory)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Could not save radio config: {e}")
            return False
        return True

    def _save_in_background(self) -> None:
        if self.persist is None:
            return
        try:
            self._writer.submit(self.save)
        except RuntimeError:
            # Writer already shut down; shutdown() writes the final state
            logger.debug("Radio config writer stopped, skipping save")

    def shutdown(self) -> None:
        with self._lock:
            self._generation += 1
            future = self._future
        if future is not None:
            future.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_writer:
            self._writer.shutdown(wait=True)
        self.save()
