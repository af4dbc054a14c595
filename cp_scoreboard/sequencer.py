"""
Animation sequencer for rank changes.

A single-slot state machine: ``idle`` -> ``emergency`` (leader changed) or
``glitching`` (ranks 2-5 shuffled) -> ``idle``. While an animation runs any
new trigger is dropped. The displayed team list is swapped on the
sequencer's own schedule, and a watchdog bounds every excursion.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .audio import RADIO_WAVES, SIREN, AudioHandle, CueChannel, CueUnavailable
from .models import Team

logger = logging.getLogger(__name__)


class AnimationState(str, Enum):
    IDLE = "idle"
    EMERGENCY = "emergency"
    GLITCHING = "glitching"


@dataclass
class Timing:
    """Animation timings in milliseconds."""

    emergency_sound: int = 3000
    emergency_fade: int = 400
    emergency_total: int = 3400
    emergency_update_delay: int = 1200
    glitch_sound: int = 2600
    glitch_fade: int = 400
    glitch_total: int = 3000
    glitch_update_delay: int = 150
    watchdog: int = 6000

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Timing":
        known = {f.name for f in fields(cls)}
        return cls(**{k: int(v) for k, v in (data or {}).items() if k in known})


class AnimationSequencer:
    """Owns the animation state slot, the displayed list, timers and audio."""

    def __init__(
        self,
        audio: CueChannel,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        timing: Optional[Timing] = None,
        sound_enabled: bool = True,
        on_change: Optional[Callable[["AnimationSequencer"], None]] = None,
        on_idle: Optional[Callable[["AnimationSequencer"], None]] = None,
    ) -> None:
        self.audio = audio
        self.timing = timing or Timing()
        self.sound_enabled = sound_enabled
        self.on_change = on_change
        self.on_idle = on_idle

        self.state = AnimationState.IDLE
        self.dropping_team_id: Optional[str] = None
        self.displayed: List[Team] = []

        self._loop = loop
        self._deferred: Dict[int, asyncio.TimerHandle] = {}
        self._deferred_ids = itertools.count(1)
        self._watchdog: Optional[asyncio.TimerHandle] = None
        self._audio_handle: Optional[AudioHandle] = None
        self._excursion = 0
        self._generation = 0

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def is_idle(self) -> bool:
        return self.state is AnimationState.IDLE

    @property
    def pending_actions(self) -> int:
        return len(self._deferred)

    # Deferred actions

    def schedule_deferred(self, delay_ms: int, action: Callable[[], None]) -> int:
        """
        Run an action after a delay, tracked so it can be cancelled as a group.

        @param delay_ms: Delay in milliseconds
        @param action: Callable run on the event loop
        @return: Key of the scheduled action
        """
        key = next(self._deferred_ids)

        def run() -> None:
            self._deferred.pop(key, None)
            action()

        self._deferred[key] = self.loop.call_later(delay_ms / 1000, run)
        return key

    def cancel_all(self) -> None:
        """Cancel every pending action and leave a clean idle state."""
        self._cancel_deferred()
        self._cancel_watchdog()
        self._stop_audio()
        self.dropping_team_id = None
        self.state = AnimationState.IDLE
        self._notify()

    # Triggers

    def trigger_emergency(self, old_leader: Optional[Team], ranked: List[Team]) -> bool:
        """
        Leader change: highlight the outgoing leader, swap the list mid-siren.

        @param old_leader: Team that held rank 1 before the change
        @param ranked: New canonical snapshot
        @return: False when another animation is already running
        """
        if not self._accepts(AnimationState.EMERGENCY):
            return False

        self.dropping_team_id = old_leader.id if old_leader is not None else None
        excursion = self._enter(AnimationState.EMERGENCY)

        if self.sound_enabled:
            self._play(SIREN, self.timing.emergency_sound, self.timing.emergency_fade)
        else:
            logger.debug("Siren muted")

        generation = self._generation
        self.schedule_deferred(
            self.timing.emergency_update_delay,
            lambda: self._swap(ranked, generation, clear_dropping=True),
        )
        self.schedule_deferred(
            self.timing.emergency_total,
            lambda: self._finish(excursion),
        )
        return True

    def trigger_glitch(self, ranked: List[Team]) -> bool:
        """
        Top-tier shuffle: swap the list shortly after the glitch starts.

        With sound on the glitch ends when the cue reports completion; muted,
        it ends on a timer.

        @param ranked: New canonical snapshot
        @return: False when another animation is already running
        """
        if not self._accepts(AnimationState.GLITCHING):
            return False

        excursion = self._enter(AnimationState.GLITCHING)

        generation = self._generation
        self.schedule_deferred(
            self.timing.glitch_update_delay,
            lambda: self._swap(ranked, generation),
        )

        def end() -> None:
            self._finish(excursion)

        if self.sound_enabled:
            self._play(
                RADIO_WAVES,
                self.timing.glitch_sound,
                self.timing.glitch_fade,
                on_complete=end,
            )
        else:
            self.schedule_deferred(self.timing.glitch_total, end)
        return True

    def apply_silent(self, ranked: List[Team]) -> None:
        """Swap the displayed list immediately, without animation."""
        self.replace_displayed(ranked)

    def replace_displayed(self, ranked: List[Team]) -> None:
        self._generation += 1
        self.displayed = list(ranked)
        self._notify()

    def set_sound_enabled(self, enabled: bool) -> None:
        """
        Toggle sound. Disabling silences the current cue at once, and ends a
        running glitch since its completion signal can no longer arrive.
        """
        self.sound_enabled = enabled
        if not enabled:
            self._stop_audio()
            if self.state is AnimationState.GLITCHING:
                logger.info("Sound disabled during glitch, returning to idle")
                self._force_idle()
                return
        self._notify()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "animationState": self.state.value,
            "isEmergency": self.state is AnimationState.EMERGENCY,
            "isGlitching": self.state is AnimationState.GLITCHING,
            "droppingTeamId": self.dropping_team_id,
            "soundEnabled": self.sound_enabled,
        }

    # Internals

    def _accepts(self, requested: AnimationState) -> bool:
        if self.state is not AnimationState.IDLE:
            logger.info(
                "Animation blocked: %s requested while %s is running",
                requested.value,
                self.state.value,
            )
            return False
        return True

    def _enter(self, state: AnimationState) -> int:
        self._excursion += 1
        self.state = state
        self._arm_watchdog()
        self._notify()
        return self._excursion

    def _finish(self, excursion: int) -> None:
        if excursion != self._excursion or self.state is AnimationState.IDLE:
            return
        self._set_idle()

    def _set_idle(self) -> None:
        self._cancel_watchdog()
        self.state = AnimationState.IDLE
        self._notify()
        if self.on_idle is not None:
            self.on_idle(self)

    def _swap(self, ranked: List[Team], generation: int, clear_dropping: bool = False) -> None:
        if clear_dropping:
            self.dropping_team_id = None
        if generation != self._generation:
            # The display was replaced since this swap was scheduled.
            self._notify()
            return
        self.replace_displayed(ranked)

    def _arm_watchdog(self) -> None:
        self._cancel_watchdog()
        self._watchdog = self.loop.call_later(self.timing.watchdog / 1000, self._watchdog_fired)

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def _watchdog_fired(self) -> None:
        self._watchdog = None
        if self.state is AnimationState.IDLE:
            return
        logger.warning("Animation watchdog triggered, forcing %s to idle", self.state.value)
        self._force_idle()

    def _force_idle(self) -> None:
        """End the running excursion early; none of its remaining steps will run."""
        self._cancel_deferred()
        self._stop_audio()
        self.dropping_team_id = None
        self._set_idle()

    def _cancel_deferred(self) -> None:
        for handle in self._deferred.values():
            handle.cancel()
        self._deferred.clear()

    def _play(
        self,
        cue: str,
        sound_ms: int,
        fade_ms: int,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> None:
        self._stop_audio()
        try:
            self._audio_handle = self.audio.play(cue, sound_ms, fade_ms, on_complete)
        except CueUnavailable as e:
            logger.warning("Cue unavailable: %s", e)

    def _stop_audio(self) -> None:
        if self._audio_handle is not None:
            self._audio_handle.stop()
            self._audio_handle = None

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
