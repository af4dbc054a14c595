"""
Contest phase clock: before / during / after, plus the countdown display.
"""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .models import ContestConfig

logger = logging.getLogger(__name__)

ENDED_DISPLAY = "Contest Ended"


class ContestPhase(str, Enum):
    BEFORE = "before"
    DURING = "during"
    AFTER = "after"


def format_hms(ms: float) -> str:
    """
    Format a millisecond span as HH:MM:SS.

    @param ms: Span in milliseconds; non-positive spans show as 00:00:00
    @return: Zero-padded string, seconds floor-truncated
    """
    if ms <= 0:
        return "00:00:00"
    total_sec = int(ms // 1000)
    hours, rest = divmod(total_sec, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PhaseClock:
    """Derives the contest phase once per interval from the configured schedule."""

    def __init__(
        self,
        contest: ContestConfig,
        on_after: Optional[Callable[[], None]] = None,
        on_tick: Optional[Callable[["PhaseClock"], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        interval: float = 1.0,
    ) -> None:
        self.contest = contest
        self.on_after = on_after
        self.on_tick = on_tick
        self.interval = interval
        self.phase: Optional[ContestPhase] = None
        self.countdown = "--:--:--"
        self.countdown_label = ""

        self._clock = clock or utc_now
        self._after_fired = False
        self._task: Optional[asyncio.Task] = None

    @property
    def allows_reconciliation(self) -> bool:
        return self.phase is ContestPhase.DURING

    def update_contest(self, contest: ContestConfig) -> None:
        """Replace the schedule; the next tick picks it up."""
        logger.info(
            "Contest schedule updated: %s to %s",
            contest.start_time.isoformat(),
            contest.end_time.isoformat(),
        )
        self.contest = contest

    def tick(self, now: Optional[datetime] = None) -> ContestPhase:
        """
        Recompute phase and countdown.

        The first tick that lands in ``after`` fires ``on_after``; leaving
        ``after`` through a schedule change arms it again.

        @param now: Current instant (defaults to the clock)
        @return: The phase for this tick
        """
        if now is None:
            now = self._clock()
        start = self.contest.start_time
        end = self.contest.end_time

        if now < start:
            self.phase = ContestPhase.BEFORE
            self.countdown_label = "Starts in"
            self.countdown = format_hms((start - now).total_seconds() * 1000)
        elif now <= end:
            self.phase = ContestPhase.DURING
            self.countdown_label = "Ends in"
            self.countdown = format_hms((end - now).total_seconds() * 1000)
        else:
            self.phase = ContestPhase.AFTER
            self.countdown_label = ""
            self.countdown = ENDED_DISPLAY

        if self.phase is ContestPhase.AFTER:
            if not self._after_fired:
                self._after_fired = True
                logger.info("Contest ended")
                if self.on_after is not None:
                    self.on_after()
        else:
            self._after_fired = False

        if self.on_tick is not None:
            self.on_tick(self)
        return self.phase

    def snapshot(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value if self.phase else None,
            "countdown": self.countdown,
            "countdownLabel": self.countdown_label,
        }

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        """Start ticking on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
