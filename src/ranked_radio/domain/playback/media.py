"""
Media backends.

A backend plays exactly one source at a time (a song or an announcement)
and reports back through a `MediaEvents` receiver, tagging every event with
the token it was given at load time so the controller can drop late events
from superseded loads.

`MpvBackend` drives mpv over its JSON IPC socket.
"""

import json
import os
import socket
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Optional, Protocol

from loguru import logger

from ranked_radio.core.errors import ExternalServiceError

# Give up on a load that never reports a duration after this long (seconds)
LOAD_TIMEOUT = 10.0

# Watcher poll period (seconds)
POLL_INTERVAL = 0.25

# Minimum playback time before allowing "track finished" (seconds)
MIN_PLAYBACK_TIME = 3.0


class MediaEvents(Protocol):
    """Callbacks a backend fires. Implemented by PlaybackController."""

    def media_ready(self, token: int, duration: Optional[float] = None) -> None: ...

    def media_failed(self, token: int, reason: str = "") -> None: ...

    def natural_end(self, token: int) -> None: ...

    def announcement_end(self, token: int) -> None: ...


class MediaBackend(Protocol):
    def attach(self, events: MediaEvents) -> None: ...

    def load(self, path: str, token: int) -> None: ...

    def play_announcement(self, handle: str, token: int) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def set_volume(self, volume: int) -> None: ...

    def stop(self) -> None: ...

    def position(self) -> Optional[float]: ...


def check_mpv_available() -> bool:
    """Check if MPV is available on the system."""
    try:
        result = subprocess.run(
            ["mpv", "--version"], capture_output=True, text=True, timeout=5
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


def _ipc_request(socket_path: str, command: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Send one JSON IPC command to mpv and return the decoded reply."""
    if not os.path.exists(socket_path):
        return None

    try:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(2.0)
        sock.connect(socket_path)
        sock.send((json.dumps(command) + "\n").encode("utf-8"))
        response = sock.recv(4096).decode("utf-8").strip()
        sock.close()
    except (socket.error, OSError):
        return None

    # mpv may interleave event lines; the reply is the line with "error"
    for line in response.splitlines():
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if "error" in data:
            return data
    return None


def send_mpv_command(socket_path: str, *args: Any) -> bool:
    """Send a command to MPV, True on success."""
    reply = _ipc_request(socket_path, {"command": list(args)})
    return reply is not None and reply.get("error") == "success"


def get_mpv_property(socket_path: str, property_name: str) -> Any:
    """Get a property value from MPV."""
    reply = _ipc_request(socket_path, {"command": ["get_property", property_name]})
    if reply and reply.get("error") == "success":
        return reply.get("data")
    return None


class MpvBackend:
    """mpv process controlled over JSON IPC, with a watcher thread."""

    def __init__(self, socket_path: Optional[str] = None, volume: int = 75) -> None:
        if socket_path is None:
            socket_path = str(Path(tempfile.gettempdir()) / f"ranked-radio-mpv-{os.getpid()}")
        self.socket_path = socket_path
        self.initial_volume = volume
        self.process: Optional[subprocess.Popen] = None
        self._events: Optional[MediaEvents] = None
        self._lock = threading.Lock()
        self._token: Optional[int] = None
        self._is_announcement = False
        self._loaded_at = 0.0
        self._ready_reported = False
        self._watcher: Optional[threading.Thread] = None
        self._stop_watching = threading.Event()

    def attach(self, events: MediaEvents) -> None:
        self._events = events

    def start(self) -> None:
        """Start MPV with JSON IPC and the watcher thread."""
        logger.info(f"Starting MPV player with socket: {self.socket_path}")

        if os.path.exists(self.socket_path):
            logger.debug(f"Removing existing socket: {self.socket_path}")
            os.unlink(self.socket_path)

        cmd = [
            "mpv",
            "--idle=yes",
            "--no-terminal",
            f"--input-ipc-server={self.socket_path}",
            f"--volume={self.initial_volume}",
            "--keep-open=no",
            "--load-scripts=no",
        ]

        try:
            self.process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                stdin=subprocess.DEVNULL,
            )
        except (subprocess.SubprocessError, OSError) as e:
            raise ExternalServiceError(f"Failed to start MPV: {e}") from e

        timeout = 5.0
        start_time = time.time()
        while not os.path.exists(self.socket_path):
            if time.time() - start_time > timeout:
                self.process.kill()
                raise ExternalServiceError(f"MPV socket creation timeout after {timeout}s")
            time.sleep(0.1)

        self._stop_watching.clear()
        self._watcher = threading.Thread(target=self._watch, daemon=True)
        self._watcher.start()
        logger.info("MPV started successfully")

    def shutdown(self) -> None:
        """Stop MPV process and cleanup."""
        self._stop_watching.set()
        if self._watcher:
            self._watcher.join(timeout=2.0)
        if self.process:
            try:
                self.process.kill()
                self.process.wait(timeout=2.0)
            except (OSError, subprocess.TimeoutExpired):
                pass  # Process already terminated
        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError:
                pass

    def is_running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def load(self, path: str, token: int) -> None:
        self._load(path, token, is_announcement=False)

    def play_announcement(self, handle: str, token: int) -> None:
        self._load(handle, token, is_announcement=True)

    def _load(self, path: str, token: int, is_announcement: bool) -> None:
        if not self.is_running():
            raise ExternalServiceError("MPV is not running")
        with self._lock:
            self._token = token
            self._is_announcement = is_announcement
            self._loaded_at = time.time()
            self._ready_reported = False
        if not send_mpv_command(self.socket_path, "loadfile", path, "replace"):
            raise ExternalServiceError(f"MPV rejected loadfile for {path}")
        send_mpv_command(self.socket_path, "set_property", "pause", False)
        logger.debug(f"MPV loading {path} (token={token}, announcement={is_announcement})")

    def pause(self) -> None:
        send_mpv_command(self.socket_path, "set_property", "pause", True)

    def resume(self) -> None:
        send_mpv_command(self.socket_path, "set_property", "pause", False)

    def seek(self, seconds: float) -> None:
        send_mpv_command(self.socket_path, "seek", seconds, "absolute")

    def set_volume(self, volume: int) -> None:
        send_mpv_command(self.socket_path, "set_property", "volume", volume)

    def stop(self) -> None:
        with self._lock:
            self._token = None
        send_mpv_command(self.socket_path, "stop")

    def position(self) -> Optional[float]:
        return get_mpv_property(self.socket_path, "time-pos")

    def _watch(self) -> None:
        """Poll mpv and translate its properties into MediaEvents."""
        while not self._stop_watching.wait(POLL_INTERVAL):
            self.poll_once()

    def poll_once(self) -> None:
        """One watcher iteration. Events go out after the lock is released."""
        with self._lock:
            token = self._token
        if token is None or self._events is None:
            return

        duration = get_mpv_property(self.socket_path, "duration")
        idle = get_mpv_property(self.socket_path, "idle-active")

        event = None
        with self._lock:
            # A newer load replaced the one these properties were read for
            if self._token != token:
                return
            is_announcement = self._is_announcement
            elapsed = time.time() - self._loaded_at

            if not self._ready_reported:
                if duration and duration > 0:
                    self._ready_reported = True
                    if not is_announcement:
                        event = "ready"
                elif (idle is True and elapsed > 1.0) or elapsed > LOAD_TIMEOUT:
                    # mpv went back to idle without ever playing: load failed
                    self._token = None
                    event = "failed"
            # Finished: mpv returns to idle once the file ends (--keep-open=no)
            elif idle is True and elapsed >= MIN_PLAYBACK_TIME:
                self._token = None
                event = "announcement_end" if is_announcement else "natural_end"

        if event == "ready":
            self._events.media_ready(token, float(duration))
        elif event == "failed":
            self._events.media_failed(token, "mpv could not play the file")
        elif event == "announcement_end":
            self._events.announcement_end(token)
        elif event == "natural_end":
            self._events.natural_end(token)
