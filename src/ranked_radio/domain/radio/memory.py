"""
Session memory for the announcer.

Keeps what was already said and played so consecutive announcements read
as one continuous show instead of repeating themselves.
"""

from collections import deque
from datetime import datetime
from typing import Any, Optional

from .models import SessionIdentity

# Roughly a thousand tokens of previous scripts
MAX_SCRIPT_CHARS = 4000

MAX_SONG_HISTORY = 10

FIRST_ANNOUNCEMENT_NOTE = "(This is your first announcement of the session)"


class RadioMemory:
    def __init__(self, session_start: Optional[datetime] = None) -> None:
        self.scripts: deque[str] = deque()
        self.previous_songs: deque[str] = deque(maxlen=MAX_SONG_HISTORY)
        self.announcement_count = 0
        self.songs_played = 0
        self.session_start = session_start or datetime.now()
        self.identity: Optional[SessionIdentity] = None

    @property
    def total_script_chars(self) -> int:
        return sum(len(s) for s in self.scripts)

    @property
    def is_first_announcement(self) -> bool:
        return self.announcement_count == 0

    def add_script(self, script: str) -> None:
        if not script or not script.strip():
            return
        self.scripts.append(script.strip())
        self.announcement_count += 1
        while self.total_script_chars > MAX_SCRIPT_CHARS and self.scripts:
            self.scripts.popleft()

    def add_played_song(self, label: str) -> None:
        self.songs_played += 1
        if label and label.strip():
            self.previous_songs.append(label.strip())

    def formatted_script_history(self) -> str:
        if not self.scripts:
            return FIRST_ANNOUNCEMENT_NOTE
        return "\n\n".join(
            f"[Announcement {i}]: {script}" for i, script in enumerate(self.scripts, start=1)
        )

    def session_minutes(self, now: Optional[datetime] = None) -> int:
        elapsed = (now or datetime.now()) - self.session_start
        return max(0, int(elapsed.total_seconds() // 60))

    def reset(self) -> None:
        self.scripts.clear()
        self.previous_songs.clear()
        self.announcement_count = 0
        self.songs_played = 0
        self.session_start = datetime.now()
        self.identity = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scripts": list(self.scripts),
            "previous_songs": list(self.previous_songs),
            "announcement_count": self.announcement_count,
            "songs_played": self.songs_played,
            "session_start": self.session_start.isoformat(),
            "identity": self.identity._asdict() if self.identity is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RadioMemory":
        try:
            started = datetime.fromisoformat(data["session_start"])
        except (KeyError, TypeError, ValueError):
            started = None
        memory = cls(session_start=started)
        for script in data.get("scripts", []):
            memory.scripts.append(str(script))
        while memory.total_script_chars > MAX_SCRIPT_CHARS and memory.scripts:
            memory.scripts.popleft()
        memory.previous_songs.extend(str(s) for s in data.get("previous_songs", []))
        memory.announcement_count = int(data.get("announcement_count", len(memory.scripts)))
        memory.songs_played = int(data.get("songs_played", 0))
        identity = data.get("identity")
        if isinstance(identity, dict):
            memory.identity = SessionIdentity.from_dict(identity)
        return memory
