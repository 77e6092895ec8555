"""Radio domain - AI announcements between songs.

This domain handles:
- Deciding which song boundaries get an announcement
- Background pre-generation with a single cached result
- Session memory so announcements build on each other
- Persisting radio settings
"""

from .generator import AnnouncementGenerator, OpenAIAnnouncementGenerator
from .memory import RadioMemory
from .models import (
    PERSONALITIES,
    Announcement,
    GenerationContext,
    GenerationResult,
    RadioConfig,
    SessionIdentity,
    SongInfo,
    TransitionParams,
    calculate_transition,
    describe_personality,
    extract_voice_name,
)
from .scheduler import RadioScheduler
from .settings import default_radio_config, load_radio_config, save_radio_config

__all__ = [
    "AnnouncementGenerator",
    "OpenAIAnnouncementGenerator",
    "RadioMemory",
    "PERSONALITIES",
    "Announcement",
    "GenerationContext",
    "GenerationResult",
    "RadioConfig",
    "SessionIdentity",
    "SongInfo",
    "TransitionParams",
    "calculate_transition",
    "describe_personality",
    "extract_voice_name",
    "RadioScheduler",
    "default_radio_config",
    "load_radio_config",
    "save_radio_config",
]
