"""
Announcement generation via OpenAI.

The script comes from the Responses API, the audio from the speech
endpoint, and the spoken duration is measured from the written file with
mutagen. Two-host dialogues are spoken line by line in each host's voice
and joined into one file. Every failure surfaces as ExternalServiceError;
the scheduler turns that into "no announcement this time".
"""

import json
import re
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

import mutagen
import openai
from loguru import logger

from ranked_radio.core.config import AIConfig, get_data_dir
from ranked_radio.core.errors import ExternalServiceError

from .models import GenerationContext, GenerationResult, SessionIdentity, SongInfo

# Voices the speech endpoint accepts; other ids fall back to FALLBACK_VOICE
OPENAI_VOICES = frozenset(
    {"alloy", "ash", "ballad", "coral", "echo", "fable", "nova", "onyx", "sage", "shimmer", "verse"}
)
FALLBACK_VOICE = "nova"

# Generated files kept on disk; older ones are deleted after each generation
KEEP_ANNOUNCEMENT_FILES = 20

HOST_PREFIX = re.compile(r"^\s*\[HOST([12])\]\s*")

CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```\s*$")

# Songs from the queue shown when the session identity is created
IDENTITY_SONGS = 5

ANNOUNCEMENT_RULES = """Generate a SHORT radio announcement (30-60 words max).

MAKE IT INTERESTING by including ONE of these:
- A fun fact about the artist or song
- A connection to what you've said before (continue the narrative)
- Reference a song from the history ("Earlier we heard...")
- Tease an upcoming song ("Later we have...")

RULES:
1. Be NATURAL and CONVERSATIONAL
2. Keep it SHORT - this will be spoken aloud
3. NO emojis, NO hashtags, NO special characters
4. Do NOT include any prefixes like "DJ:" or "[HOST]:"
5. Just the announcement text, nothing else"""

DIALOGUE_RULES = """Generate a SHORT dialogue with EXACTLY 3 lines between {host1} and {host2}.

FORMAT YOUR RESPONSE EXACTLY LIKE THIS:
[HOST1] {host1} opens with something interesting
[HOST2] {host2} reacts, adds info, or jokes
[HOST1] {host1} wraps up and transitions to the next song

RULES:
1. Keep each line SHORT (25-50 words max)
2. NO emojis, NO hashtags
3. The last line should introduce the next song"""

IDENTITY_TASK = """=== YOUR TASK ===
Based on the time of day, user instructions, and upcoming songs,
create a creative session identity. Respond with ONLY a JSON object:

{
  "sessionName": "A creative name for tonight's session (e.g., 'Rock Nights', 'Musical Journey')",
  "sessionVibe": "2-3 words describing the mood (e.g., 'nostalgic and relaxing')",
  "openingNarrative": "Brief theme for this session - what story will you tell? (1-2 sentences)",
  "djStyle": "How you'll speak tonight (e.g., 'warm and friendly')"
}

IMPORTANT: Return ONLY the JSON, no markdown, no extra text."""


class AnnouncementGenerator(Protocol):
    """Blocking generation calls; the scheduler runs them off the playback path."""

    def generate(self, context: GenerationContext) -> GenerationResult: ...

    def generate_identity(self, context: GenerationContext) -> SessionIdentity: ...


def time_of_day(hour: int) -> str:
    if hour < 6:
        return "Late night / early morning"
    if hour < 12:
        return "Morning"
    if hour < 17:
        return "Afternoon"
    if hour < 21:
        return "Evening"
    return "Night"


def _describe_song(heading: str, song: SongInfo) -> list[str]:
    lines = [f"{heading}:", f"- Title: {song.title}"]
    if song.artist:
        lines.append(f"- Artist: {song.artist}")
    if song.year:
        lines.append(f"- Year: {song.year}")
    if song.genre:
        lines.append(f"- Genre: {song.genre}")
    if song.description:
        lines.append(f"- Description: {song.description}")
    if song.rank_position is not None:
        lines.append(f"- User Ranking: #{song.rank_position} in their personal chart")
    return lines


def build_instructions(context: GenerationContext) -> str:
    """System-style instructions: who is speaking and how."""
    identity = context.identity
    if context.dual:
        parts = [
            f'You are writing a dialogue between TWO radio hosts for radio station "{context.radio_name}".',
            "",
            f"=== HOST 1: {context.host1_name} ===",
            context.personality,
            "",
            f"=== HOST 2: {context.host2_name} ===",
            context.personality2,
            "",
        ]
        if identity is not None:
            parts += [
                "=== SESSION IDENTITY ===",
                f"Tonight's theme: {identity.session_name}",
                f"Vibe: {identity.vibe}",
                "",
            ]
        parts.append(DIALOGUE_RULES.format(host1=context.host1_name, host2=context.host2_name))
    else:
        parts = [
            f'You are {context.host1_name}, a radio DJ for radio station "{context.radio_name}".',
            "",
            "=== YOUR PERSONALITY ===",
            context.personality,
            "",
        ]
        if identity is not None:
            parts += [
                "=== SESSION IDENTITY ===",
                f"Tonight's theme: {identity.session_name}",
                f"Vibe: {identity.vibe}",
                f"Narrative: {identity.opening_narrative}",
                f"Your style tonight: {identity.dj_style}",
                "",
            ]
        parts.append(ANNOUNCEMENT_RULES)
    return "\n".join(parts)


def build_identity_prompt(context: GenerationContext, now: Optional[datetime] = None) -> str:
    """Prompt asking for a session name, vibe, narrative and DJ style as JSON."""
    now = now or datetime.now()
    lines = [
        "You are about to start a radio session. Create a unique identity for this session.",
        "",
        "=== STATION INFO ===",
        f"Station name: {context.radio_name}",
        f"Time of day: {time_of_day(now.hour)}",
        "",
    ]
    if context.user_instructions:
        lines += ["=== USER'S INSTRUCTIONS ===", context.user_instructions, ""]
    else:
        lines += ["(No specific instructions - be creative!)", ""]

    songs = [context.next.label, *context.upcoming][:IDENTITY_SONGS]
    lines.append("=== FIRST SONGS IN QUEUE ===")
    lines += [f"- {label}" for label in songs]
    lines += ["", IDENTITY_TASK]
    return "\n".join(lines)


def parse_identity(text: str) -> SessionIdentity:
    """Read the identity JSON; anything unreadable gives the default identity."""
    raw = CODE_FENCE.sub("", text.strip())
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Could not parse session identity, using default: {e}")
        return SessionIdentity()
    if not isinstance(data, dict):
        logger.warning("Session identity is not a JSON object, using default")
        return SessionIdentity()

    return SessionIdentity.from_dict(
        {
            "session_name": data.get("sessionName"),
            "vibe": data.get("sessionVibe"),
            "opening_narrative": data.get("openingNarrative", ""),
            "dj_style": data.get("djStyle"),
        }
    )


def build_announcement_input(context: GenerationContext, now: Optional[datetime] = None) -> str:
    """The per-announcement input: songs, history and memory."""
    now = now or datetime.now()
    lines: list[str] = []

    if context.user_name:
        lines += ["=== LISTENER ===", f"The listener's name is {context.user_name}.", ""]

    if context.user_instructions:
        lines += ["=== LISTENER'S INSTRUCTIONS ===", context.user_instructions, ""]

    if not context.is_first_announcement:
        lines += [
            "=== WHAT YOU'VE SAID (MEMORY) ===",
            "DON'T repeat facts or stories from previous announcements!",
            context.script_history,
            "",
        ]

    if context.previous_songs:
        lines.append("=== SONGS WE'VE PLAYED ===")
        lines += [f"- {label}" for label in context.previous_songs]
        lines.append("")

    if context.upcoming:
        lines.append("=== COMING UP LATER ===")
        lines += [f"- {label}" for label in context.upcoming]
        lines.append("")

    lines.append("=== CURRENT TRANSITION ===")
    lines += _describe_song("Just finished", context.previous)
    lines.append("")
    lines += _describe_song("Up next", context.next)
    lines.append("")

    lines.append(f"Time of day: {time_of_day(now.hour)}")
    lines.append(
        f"Announcement #{context.announcement_number} of this session "
        f"({context.songs_played} songs played, {context.session_minutes} minutes in)"
    )
    if context.is_first_announcement:
        lines.append("This is your FIRST announcement - introduce the session!")
    else:
        lines.append("Continue the narrative thread from your previous announcements.")

    return "\n".join(lines)


def clean_script(text: str) -> str:
    """Strip host markers so a dialogue can be spoken as one segment."""
    cleaned = [HOST_PREFIX.sub("", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in cleaned if line)


def split_dialogue(text: str) -> list[tuple[int, str]]:
    """Split a [HOST1]/[HOST2] dialogue into (host, line) turns.

    Unmarked lines continue the current speaker's turn; text before the
    first marker belongs to host 1.
    """
    turns: list[tuple[int, str]] = []
    for line in text.splitlines():
        match = HOST_PREFIX.match(line)
        content = HOST_PREFIX.sub("", line).strip()
        if match:
            if content:
                turns.append((int(match.group(1)), content))
        elif content:
            if turns:
                host, previous = turns[-1]
                turns[-1] = (host, f"{previous} {content}")
            else:
                turns.append((1, content))
    return turns


def join_segments(segments: list[Path], target: Path) -> Path:
    """Concatenate mp3 segments into one playable file and delete the parts."""
    try:
        with open(target, "wb") as out:
            for segment in segments:
                out.write(segment.read_bytes())
    except OSError as e:
        raise ExternalServiceError(f"Could not join announcement audio: {e}") from e
    finally:
        for segment in segments:
            segment.unlink(missing_ok=True)
    return target


def measure_duration(path: Path) -> float:
    """Spoken length of an audio file in seconds."""
    try:
        audio = mutagen.File(str(path))
    except mutagen.MutagenError as e:
        raise ExternalServiceError(f"Unreadable announcement audio {path.name}: {e}") from e
    if audio is None or audio.info is None or not audio.info.length:
        raise ExternalServiceError(f"Could not measure announcement audio {path.name}")
    return float(audio.info.length)


def prune_announcements(directory: Path, keep: int = KEEP_ANNOUNCEMENT_FILES) -> int:
    """Delete all but the newest `keep` announcement files. Returns count removed."""
    files = sorted(directory.glob("announcement-*.mp3"), key=lambda p: p.stat().st_mtime, reverse=True)
    removed = 0
    for old in files[keep:]:
        try:
            old.unlink()
            removed += 1
        except OSError as e:
            logger.debug(f"Could not remove old announcement {old.name}: {e}")
    return removed


class OpenAIAnnouncementGenerator:
    """Default generation collaborator backed by the OpenAI API."""

    def __init__(
        self,
        ai_config: AIConfig,
        output_dir: Optional[Path] = None,
        client: Optional[openai.OpenAI] = None,
    ) -> None:
        self.ai_config = ai_config
        self.output_dir = output_dir or get_data_dir() / "announcements"
        self._client = client

    @property
    def client(self) -> openai.OpenAI:
        if self._client is None:
            if not self.ai_config.openai_api_key:
                raise ExternalServiceError(
                    "No OpenAI API key configured (set OPENAI_API_KEY or [ai] openai_api_key)"
                )
            self._client = openai.OpenAI(api_key=self.ai_config.openai_api_key)
        return self._client

    def generate(self, context: GenerationContext) -> GenerationResult:
        if not self.ai_config.enabled:
            raise ExternalServiceError("Announcement generation is disabled in config")

        start_time = time.time()
        raw = self.write_script(context)
        script = clean_script(raw)

        turns = split_dialogue(raw) if context.dual and context.voice2 else []
        if len(turns) > 1:
            path, duration = self.speak_dialogue(turns, context.voice1, context.voice2)
        else:
            path = self.speak(script, context.voice1)
            duration = measure_duration(path)

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Generated announcement {context.previous.song_id}->{context.next.song_id}: "
            f"{duration:.1f}s audio in {elapsed_ms}ms"
        )
        prune_announcements(self.output_dir)
        return GenerationResult(audio_handle=str(path), duration=duration, script=script)

    def generate_identity(self, context: GenerationContext) -> SessionIdentity:
        """Ask for a session theme; unparseable answers give the default identity."""
        if not self.ai_config.enabled:
            raise ExternalServiceError("Announcement generation is disabled in config")
        try:
            response = self.client.responses.create(
                model=self.ai_config.script_model,
                input=build_identity_prompt(context),
            )
        except openai.APIError as e:
            raise ExternalServiceError(f"OpenAI API error: {e}") from e

        identity = parse_identity(response.output_text or "")
        logger.info(f"Session identity: {identity.session_name} ({identity.vibe})")
        return identity

    def write_script(self, context: GenerationContext) -> str:
        """The model's script with host markers kept for dialogue splitting."""
        try:
            response = self.client.responses.create(
                model=self.ai_config.script_model,
                instructions=build_instructions(context),
                input=build_announcement_input(context),
            )
        except openai.APIError as e:
            raise ExternalServiceError(f"OpenAI API error: {e}") from e

        raw = (response.output_text or "").strip()
        if not clean_script(raw):
            raise ExternalServiceError("OpenAI returned an empty announcement script")
        logger.debug(f"Announcement script: {raw}")
        return raw

    def speak_dialogue(
        self, turns: list[tuple[int, str]], voice1: str, voice2: str
    ) -> tuple[Path, float]:
        """Speak each turn in its host's voice and join them into one file.

        Returns:
            Path of the joined audio and the summed duration of the turns
        """
        segments: list[Path] = []
        try:
            for host, line in turns:
                segments.append(self.speak(line, voice1 if host == 1 else voice2, prefix="segment"))
            duration = sum(measure_duration(segment) for segment in segments)
        except ExternalServiceError:
            for segment in segments:
                segment.unlink(missing_ok=True)
            raise
        return join_segments(segments, self._new_path("announcement")), duration

    def _new_path(self, prefix: str) -> Path:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExternalServiceError(f"Cannot create announcement directory: {e}") from e
        return self.output_dir / f"{prefix}-{uuid.uuid4().hex[:12]}.mp3"

    def speak(self, script: str, voice_id: str, prefix: str = "announcement") -> Path:
        voice = voice_id if voice_id in OPENAI_VOICES else FALLBACK_VOICE
        if voice != voice_id:
            logger.debug(f"Voice {voice_id!r} not offered by OpenAI speech, using {voice}")

        path = self._new_path(prefix)
        try:
            with self.client.audio.speech.with_streaming_response.create(
                model=self.ai_config.speech_model,
                voice=voice,
                input=script,
                response_format="mp3",
            ) as response:
                response.stream_to_file(path)
        except openai.APIError as e:
            raise ExternalServiceError(f"OpenAI speech error: {e}") from e
        except OSError as e:
            raise ExternalServiceError(f"Could not write announcement audio: {e}") from e
        return path
