"""
Radio data types: configuration, announcements and generation context.
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, NamedTuple, Optional

PERSONALITY_PRESETS: dict[str, str] = {
    "energetic": (
        "You are an ENERGETIC and ENTHUSIASTIC radio DJ! You're super excited about every song. "
        "Use exclamations! Be upbeat and dynamic! Make listeners feel the energy! "
        "Keep your commentary punchy and fun."
    ),
    "classic": (
        "You are a CLASSIC radio host with a deep, smooth voice. You speak formally and professionally. "
        "Your style is reminiscent of golden age radio. You're knowledgeable and sophisticated. "
        "Use elegant language and take your time."
    ),
    "casual": (
        "You are a CASUAL, friendly radio host. You talk like you're chatting with a good friend. "
        "Be relaxed, conversational, and warm. Use everyday language. "
        "Make listeners feel comfortable and at home."
    ),
    "critic": (
        "You are a MUSIC CRITIC radio host. You love sharing fun facts and musical trivia. "
        "Analyze songs briefly, mention interesting details about artists, albums, or genres. "
        "Be knowledgeable but not pretentious. Educate while entertaining."
    ),
    "nostalgic": (
        "You are a NOSTALGIC radio host who loves reminiscing about music memories. "
        "Connect songs to emotions, memories, and life moments. "
        "Be warm, sentimental, and evocative."
    ),
}

DEFAULT_PERSONALITY_TEXT = "You are a friendly radio DJ."

# "custom" uses the user's own text instead of a preset
PERSONALITIES = (*PERSONALITY_PRESETS, "custom")


def describe_personality(name: Optional[str], custom_text: Optional[str] = None) -> str:
    """Prompt text for a personality preset (or the custom text)."""
    if name == "custom":
        return custom_text.strip() if custom_text and custom_text.strip() else DEFAULT_PERSONALITY_TEXT
    return PERSONALITY_PRESETS.get(name or "", DEFAULT_PERSONALITY_TEXT)


def extract_voice_name(voice_id: Optional[str]) -> str:
    """Human name from a voice id: "af_bella" -> "Bella"."""
    if not voice_id or not voice_id.strip():
        return "DJ"
    name = voice_id.strip().split("_", 1)[-1]
    return name[:1].upper() + name[1:] if name else "DJ"


@dataclass
class RadioConfig:
    """User-facing radio settings plus the songs-since-announcement counter."""

    enabled: bool = False
    frequency: int = 3
    song_counter: int = 0
    personality: str = "energetic"
    custom_personality: Optional[str] = None
    personality2: str = "casual"
    custom_personality2: Optional[str] = None
    voice1: str = "af_bella"
    voice2: Optional[str] = None
    dj_name1: Optional[str] = None
    dj_name2: Optional[str] = None
    dual_mode: bool = False
    radio_name: str = "Ranked Radio FM"
    user_name: Optional[str] = None
    user_instructions: Optional[str] = None

    def __post_init__(self) -> None:
        # Frequency below 1 would announce between every pair and then some
        self.frequency = max(1, int(self.frequency))
        self.song_counter = max(0, int(self.song_counter))

    @property
    def host1_name(self) -> str:
        return self.dj_name1.strip() if self.dj_name1 and self.dj_name1.strip() else extract_voice_name(self.voice1)

    @property
    def host2_name(self) -> str:
        return self.dj_name2.strip() if self.dj_name2 and self.dj_name2.strip() else extract_voice_name(self.voice2)

    @property
    def is_dual(self) -> bool:
        return self.dual_mode and bool(self.voice2)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RadioConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class TransitionParams(NamedTuple):
    """Timing hints (milliseconds) for fading music around an announcement."""

    pre_silence: int
    post_silence: int
    fade_out: int
    fade_in: int


def calculate_transition(duration: float) -> TransitionParams:
    """Transition timing for an announcement lasting `duration` seconds.

    Short announcements get quick fades, long ones get gentle fades.
    """
    if duration < 10:
        fade_out = 2000
    elif duration < 20:
        fade_out = 3000
    else:
        fade_out = 4000
    return TransitionParams(pre_silence=400, post_silence=5000, fade_out=fade_out, fade_in=2500)


@dataclass(frozen=True)
class Announcement:
    """A generated spoken segment, bound to the song pair it introduces."""

    audio_handle: str
    duration: float
    script: str
    previous_song_id: int
    next_song_id: int
    transition: TransitionParams = field(default_factory=lambda: calculate_transition(0.0))

    def matches(self, previous_song_id: Optional[int], next_song_id: Optional[int]) -> bool:
        return self.previous_song_id == previous_song_id and self.next_song_id == next_song_id


class SongInfo(NamedTuple):
    """Song metadata as the announcer sees it."""

    song_id: int
    title: str
    artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    description: Optional[str] = None
    rank_position: Optional[int] = None

    @property
    def label(self) -> str:
        return f"{self.title} - {self.artist}" if self.artist else self.title


class SessionIdentity(NamedTuple):
    """Theme the hosts keep for a whole session, created before the first announcement."""

    session_name: str = "Radio Session"
    vibe: str = "chill and friendly"
    opening_narrative: str = "Let's enjoy some great music together!"
    dj_style: str = "friendly and casual"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionIdentity":
        default = cls()
        return cls(
            session_name=str(data.get("session_name") or default.session_name),
            vibe=str(data.get("vibe") or default.vibe),
            opening_narrative=str(data.get("opening_narrative") or ""),
            dj_style=str(data.get("dj_style") or default.dj_style),
        )


class GenerationResult(NamedTuple):
    """What a generator returns: a playable handle, its length and the script."""

    audio_handle: str
    duration: float
    script: str


class GenerationContext(NamedTuple):
    """Everything the announcer needs to write one segment."""

    previous: SongInfo
    next: SongInfo
    upcoming: tuple[str, ...] = ()
    previous_songs: tuple[str, ...] = ()
    script_history: str = ""
    announcement_number: int = 1
    radio_name: str = "Ranked Radio FM"
    host1_name: str = "DJ"
    host2_name: str = "DJ"
    personality: str = DEFAULT_PERSONALITY_TEXT
    personality2: str = DEFAULT_PERSONALITY_TEXT
    voice1: str = "af_bella"
    voice2: Optional[str] = None
    dual: bool = False
    songs_played: int = 0
    session_minutes: int = 0
    user_name: Optional[str] = None
    user_instructions: Optional[str] = None
    identity: Optional[SessionIdentity] = None

    @property
    def is_first_announcement(self) -> bool:
        return self.announcement_number <= 1
