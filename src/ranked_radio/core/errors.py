"""
Error taxonomy shared by the ranking, queue, playback and radio domains.
"""


class RankedRadioError(Exception):
    """Base class for all application errors."""

    pass


class ValidationError(RankedRadioError):
    """Structurally invalid input (unknown play mode, bad frequency...).

    Out-of-range numbers (positions, volume, seek time) are clamped instead
    of raising this.
    """

    pass


class NotFoundError(RankedRadioError):
    """A song id is absent from the catalog or the ranking."""

    def __init__(self, song_id: int, where: str = "catalog") -> None:
        super().__init__(f"Song {song_id} not found in {where}")
        self.song_id = song_id
        self.where = where


class ExternalServiceError(RankedRadioError):
    """A collaborator (generation, persistence, recommender) failed.

    Callers degrade: the feature is unavailable this cycle, audio keeps
    playing.
    """

    pass


class ExhaustedQueueError(RankedRadioError):
    """No playable song found after the bounded number of auto-advances."""

    def __init__(self, attempts: int, last_song_id: int | None = None) -> None:
        super().__init__(
            f"Queue exhausted: {attempts} consecutive songs failed to load"
            + (f" (last: {last_song_id})" if last_song_id is not None else "")
        )
        self.attempts = attempts
        self.last_song_id = last_song_id
