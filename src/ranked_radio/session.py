"""Session wiring.

A Session owns the one RankingService, PlaybackController, RadioScheduler,
PositionSnapshotter and PlayRecorder of a process and hands explicit references to each
other, instead of module-level singletons.
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from ranked_radio.core.config import Config
from ranked_radio.core.errors import ExhaustedQueueError, NotFoundError
from ranked_radio.domain.library import CatalogProvider, PlayRecorder
from ranked_radio.domain.playback import (
    MediaBackend,
    PlaybackController,
    PositionSnapshotter,
    load_snapshot,
)
from ranked_radio.domain.queue import PlaybackQueue, PlayMode, Recommender, build_queue
from ranked_radio.domain.radio import (
    AnnouncementGenerator,
    OpenAIAnnouncementGenerator,
    RadioScheduler,
    SongInfo,
    load_radio_config,
    save_radio_config,
)
from ranked_radio.domain.ranking import RankingService

UPCOMING_LABELS = 10


@dataclass
class Session:
    """One listening session and its collaborators.

    Attributes:
        config: Application configuration
        catalog: Song catalog provider
        ranking: Persisted ranking operations
        controller: Playback state machine
        scheduler: Announcement policy consulted at song boundaries
        snapshotter: Background position persistence
        recommender: Optional collaborator for the ai-suggested mode
        plays: Background play-count writer for finished songs
    """

    config: Config
    catalog: CatalogProvider
    ranking: RankingService
    controller: PlaybackController
    scheduler: RadioScheduler
    snapshotter: PositionSnapshotter
    recommender: Optional[Recommender] = None
    plays: Optional[PlayRecorder] = None

    @classmethod
    def create(
        cls,
        config: Config,
        catalog: CatalogProvider,
        media: MediaBackend,
        generator: Optional[AnnouncementGenerator] = None,
        recommender: Optional[Recommender] = None,
    ) -> "Session":
        """Build and connect every component of a session.

        Args:
            config: Application configuration
            catalog: Song catalog provider
            media: Media backend the controller drives
            generator: Announcement generator; OpenAI is used when omitted
                and an API key is configured
            recommender: Collaborator for the ai-suggested mode

        Returns:
            Session ready to play; call start() to begin snapshotting
        """
        ranking = RankingService.load(catalog, config.ranking)

        if generator is None and config.ai.enabled and config.ai.openai_api_key:
            generator = OpenAIAnnouncementGenerator(config.ai)
        if generator is None:
            logger.info("No announcement generator configured, radio announcements unavailable")

        radio_config, memory = load_radio_config(config.radio)

        def song_info(song_id: int) -> SongInfo:
            song = catalog.get_song(song_id)
            return SongInfo(
                song_id=song.id,
                title=song.title,
                artist=song.artist,
                album=song.album,
                genre=song.genre,
                year=song.year,
                description=song.description,
                rank_position=ranking.rank_position(song.id),
            )

        scheduler = RadioScheduler(
            generator,
            song_info,
            config=radio_config,
            memory=memory,
            persist=save_radio_config,
        )

        plays = PlayRecorder(catalog)
        controller = PlaybackController(
            media,
            catalog.get_song,
            policy=scheduler,
            volume=config.player.volume,
            repeat=config.player.repeat,
            max_consecutive_failures=config.player.max_consecutive_failures,
            on_fatal=_log_fatal,
            on_song_finished=plays.record,
        )
        snapshotter = PositionSnapshotter(
            controller.snapshot, interval=config.player.snapshot_interval_seconds
        )
        controller.snapshot_sink = snapshotter.submit

        session = cls(
            config=config,
            catalog=catalog,
            ranking=ranking,
            controller=controller,
            scheduler=scheduler,
            snapshotter=snapshotter,
            recommender=recommender,
            plays=plays,
        )
        controller.queue_factory = session.rebuild_queue
        scheduler.bind(controller.current_pair, session.upcoming_labels)
        return session

    def start(self) -> None:
        self.snapshotter.start()

    def close(self) -> None:
        """Persist everything; safe to call more than once."""
        self.snapshotter.stop(flush=True)
        self.scheduler.shutdown()
        if self.plays is not None:
            self.plays.shutdown()
        if not self.ranking.flush():
            logger.warning("Ranking has unsaved changes at shutdown")

    def build_queue(
        self,
        mode: PlayMode = PlayMode.SEQUENTIAL,
        reverse: bool = False,
        start_song_id: Optional[int] = None,
        seed: Optional[str] = None,
    ) -> PlaybackQueue:
        return build_queue(
            self.catalog.list_songs(),
            mode,
            positions=self.ranking.positions(),
            seed=seed,
            reverse=reverse,
            start_song_id=start_song_id,
            recommender=self.recommender,
        )

    def rebuild_queue(
        self, mode: PlayMode, reverse: bool, current_song_id: Optional[int]
    ) -> PlaybackQueue:
        """Queue factory for play-mode changes; keeps the shuffle seed of the same mode."""
        current = self.controller.queue
        seed = current.seed if mode is current.mode else None
        return self.build_queue(mode, reverse, start_song_id=current_song_id, seed=seed)

    def play(
        self,
        mode: PlayMode = PlayMode.SEQUENTIAL,
        reverse: bool = False,
        start_song_id: Optional[int] = None,
        seed: Optional[str] = None,
    ) -> PlaybackQueue:
        queue = self.build_queue(mode, reverse, start_song_id=start_song_id, seed=seed)
        self.controller.load(queue)
        return queue

    def restore(self) -> bool:
        """Resume the persisted queue and position. False when nothing to resume.

        Song ids that are no longer in the catalog are dropped from the queue.
        """
        snapshot = load_snapshot()
        if snapshot is None or not snapshot.queue_song_ids:
            return False

        known = {song.id for song in self.catalog.list_songs()}
        song_ids = tuple(song_id for song_id in snapshot.queue_song_ids if song_id in known)
        dropped = len(snapshot.queue_song_ids) - len(song_ids)
        if dropped:
            logger.warning(f"Dropped {dropped} unknown songs from the saved queue")
        if not song_ids:
            return False

        if snapshot.current_song_id in song_ids:
            index = song_ids.index(snapshot.current_song_id)
        else:
            index = max(0, min(snapshot.queue_index, len(song_ids) - 1))

        queue = PlaybackQueue(
            song_ids=song_ids,
            index=index,
            mode=snapshot.play_mode,
            reversed=snapshot.reversed,
            seed=snapshot.shuffle_seed,
        )
        self.controller.restore(snapshot, queue)
        logger.info(
            f"Restored queue of {len(song_ids)} songs at index {index} ({snapshot.position:.0f}s)"
        )
        return True

    def song_info(self, song_id: int) -> SongInfo:
        return self.scheduler.song_info(song_id)

    def upcoming_labels(self, next_song_id: int) -> list[str]:
        """Labels of the songs queued after `next_song_id`."""
        song_ids = self.controller.queue.song_ids
        try:
            start = song_ids.index(next_song_id, max(0, self.controller.queue.index)) + 1
        except ValueError:
            return []

        labels = []
        for song_id in song_ids[start : start + UPCOMING_LABELS]:
            try:
                labels.append(self.catalog.get_song(song_id).display_name)
            except NotFoundError:
                continue
        return labels


def _log_fatal(error: ExhaustedQueueError) -> None:
    logger.error(f"Playback halted: {error}")
