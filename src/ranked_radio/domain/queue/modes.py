"""
Play modes - the policies that order a playback queue.
"""

from enum import Enum
from typing import Optional

from ranked_radio.core.errors import ValidationError


class PlayMode(str, Enum):
    SEQUENTIAL = "sequential"
    SHUFFLE = "shuffle"
    BY_RANKING = "by-ranking"
    TOP_50 = "top-50"
    TOP_100 = "top-100"
    TOP_200 = "top-200"
    TOP_300 = "top-300"
    TOP_400 = "top-400"
    TOP_500 = "top-500"
    UNRANKED = "unranked"
    BY_ARTIST = "by-artist"
    BY_GENRE = "by-genre"
    AI_SUGGESTED = "ai-suggested"

    @property
    def top_limit(self) -> Optional[int]:
        """N for the top-N modes, None otherwise."""
        if self.value.startswith("top-"):
            return int(self.value.split("-", 1)[1])
        return None

    @property
    def uses_ranking(self) -> bool:
        return self is PlayMode.BY_RANKING or self.top_limit is not None

    @classmethod
    def parse(cls, name: "str | PlayMode") -> "PlayMode":
        """Parse a mode name such as 'top-50' or 'TOP_50'.

        Raises:
            ValidationError: If the name is not a known play mode
        """
        if isinstance(name, PlayMode):
            return name
        normalized = name.strip().lower().replace("_", "-")
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(mode.value for mode in cls)
            raise ValidationError(f"Unknown play mode '{name}'. Valid modes: {valid}")
