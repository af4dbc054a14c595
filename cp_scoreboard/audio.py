"""
Audio cues for the dashboard.

Sound is played by the browsers watching the dashboard, so a cue here is an
event published to them plus a timer that stands for the cue's play and fade
time. Completion is reported once through a callback and never if the cue is
stopped first.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

SIREN = "siren"
RADIO_WAVES = "radio_waves"

CUE_FILES = {
    SIREN: "emergency-alarm-with-reverb.mp3",
    RADIO_WAVES: "radio-waves.mp3",
}


class CueUnavailable(Exception):
    """Raised when a cue could not be started."""


class AudioHandle:
    """A single playing cue."""

    def __init__(
        self,
        channel: "CueChannel",
        cue: str,
        duration_ms: int,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        self.channel = channel
        self.cue = cue
        self.active = True
        self._on_complete = on_complete
        self._timer = channel.loop.call_later(duration_ms / 1000, self._finish)

    def _finish(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._on_complete is not None:
            self._on_complete()

    def stop(self) -> None:
        """Silence the cue. Completion will not be reported afterwards."""
        if not self.active:
            return
        self.active = False
        self._timer.cancel()
        self.channel.publish_stop(self.cue)


class CueChannel:
    """Publishes cue events to listeners and hands out AudioHandles."""

    def __init__(
        self,
        publish: Optional[Callable[[Dict[str, Any]], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        volume: float = 0.5,
    ) -> None:
        self._publish = publish
        self._loop = loop
        self.volume = volume

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def set_publisher(self, publish: Callable[[Dict[str, Any]], None]) -> None:
        self._publish = publish

    def play(
        self,
        cue: str,
        sound_ms: int,
        fade_ms: int,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> AudioHandle:
        """
        Start a cue.

        @param cue: Cue name (SIREN or RADIO_WAVES)
        @param sound_ms: Full-volume play time in milliseconds
        @param fade_ms: Fade-out tail in milliseconds
        @param on_complete: Called once the fade has finished
        @return: Handle for the playing cue
        @raise CueUnavailable: If the cue is unknown or could not be published
        """
        if cue not in CUE_FILES:
            raise CueUnavailable(f"Unknown cue: {cue}")

        event = {
            "type": "cue",
            "action": "play",
            "cue": cue,
            "file": CUE_FILES[cue],
            "volume": self.volume,
            "soundMs": sound_ms,
            "fadeMs": fade_ms,
        }
        try:
            if self._publish is not None:
                self._publish(event)
        except Exception as e:
            raise CueUnavailable(f"Could not start cue {cue}: {e}") from e

        return AudioHandle(self, cue, sound_ms + fade_ms, on_complete)

    def publish_stop(self, cue: str) -> None:
        if self._publish is None:
            return
        try:
            self._publish({"type": "cue", "action": "stop", "cue": cue})
        except Exception:
            logger.exception("Failed to publish stop for cue %s", cue)
