"""Ranking domain - gap-based ordering of favorite songs.

This domain handles:
- Sparse ranking values with dense derived rank positions
- Insert/move/remove with rare full renumbering
- Persistence of ranking values
"""

from .database import load_rankings, save_rankings
from .service import RankingService
from .store import RankingStore, clamp

__all__ = [
    "RankingStore",
    "RankingService",
    "clamp",
    "load_rankings",
    "save_rankings",
]
