"""
Dashboard state: reconciles incoming standings with what is on screen.

Snapshots arrive in order from a delivery channel (the in-process relay
buffer or a remote relay). Each one is normalized and becomes the current
truth at once. While the contest is running and no animation is playing, the
change against the previous truth is classified and handed to the sequencer;
otherwise the display is replaced directly or catches up when the running
animation ends.
"""

import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .classifier import RankChange, classify, leader_of
from .models import ContestConfig, Team
from .normalizer import normalize_payload, rank_standings
from .phase_clock import PhaseClock
from .sequencer import AnimationSequencer

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]

CHAMPION_COUNT = 2


class Dashboard:
    """Single owner of the displayed standings and the contest phase."""

    def __init__(
        self,
        contest: ContestConfig,
        sequencer: AnimationSequencer,
        teams_per_page: int = 20,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.contest = contest
        self.teams_per_page = teams_per_page
        self.truth: List[Team] = []
        self.closed = False
        self._listeners: List[Listener] = []
        self._close_channel: Optional[Callable[[], None]] = None

        self.sequencer = sequencer
        self.sequencer.on_change = self._sequencer_changed
        self.sequencer.on_idle = self._catch_up
        self.sequencer.audio.set_publisher(self.publish)

        self.clock = PhaseClock(
            contest,
            on_after=self.contest_ended,
            on_tick=self._clock_ticked,
            clock=clock,
        )
        self.clock.tick()

    # Delivery channel

    def attach(self, close: Callable[[], None]) -> None:
        """
        Register the teardown of the channel feeding this dashboard.

        @param close: Called once when the contest ends
        """
        if self.closed:
            close()
            return
        self._close_channel = close

    def on_snapshot(self, payload: Any) -> Optional[RankChange]:
        """
        Apply one standings update.

        @param payload: Raw rows or a relay snapshot ``{version, ts, rows}``
        @return: The classification used, or None when no animation was considered
        """
        if self.closed:
            logger.debug("Ignoring standings update after contest end")
            return None

        ranked = rank_standings(normalize_payload(payload, self.contest.problems))
        if not ranked:
            logger.warning("No usable standings in update, keeping previous state")
            return None

        previous = self.truth
        self.truth = ranked

        if not self.clock.allows_reconciliation:
            self.sequencer.replace_displayed(ranked)
            return None

        if not self.sequencer.is_idle:
            logger.info(
                "Update received during %s, display will catch up",
                self.sequencer.state.value,
            )
            return None

        change = classify(previous, ranked)
        if change is RankChange.LEADER_CHANGE:
            self.sequencer.trigger_emergency(leader_of(previous), ranked)
        elif change is RankChange.TOP_TIER_SHUFFLE:
            self.sequencer.trigger_glitch(ranked)
        else:
            self.sequencer.apply_silent(ranked)
        return change

    def seed(self, payload: Any) -> None:
        """Load initial standings without animation."""
        ranked = rank_standings(normalize_payload(payload, self.contest.problems))
        if not ranked:
            logger.warning("No initial standings available")
            return
        self.truth = ranked
        self.sequencer.replace_displayed(ranked)

    def contest_ended(self) -> None:
        """Stop animating, show the final standings and drop the channel."""
        self.sequencer.cancel_all()
        if self.truth:
            self.sequencer.replace_displayed(self.truth)
        self.closed = True
        if self._close_channel is not None:
            logger.info("Contest ended - closing standings channel")
            close, self._close_channel = self._close_channel, None
            close()

    def update_contest(self, contest: ContestConfig) -> None:
        self.contest = contest
        self.clock.update_contest(contest)
        self.clock.tick()

    def set_sound_enabled(self, enabled: bool) -> None:
        self.sequencer.set_sound_enabled(enabled)

    # Projections

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(len(self.sequencer.displayed) / self.teams_per_page))

    def page(self, number: int = 1) -> List[Team]:
        """
        One page of the displayed standings.

        @param number: 1-based page number, clamped to the valid range
        @return: Teams on that page
        """
        number = min(max(1, number), self.total_pages)
        start = (number - 1) * self.teams_per_page
        return self.sequencer.displayed[start:start + self.teams_per_page]

    def state(self, page: Optional[int] = None) -> Dict[str, Any]:
        if page is None:
            teams = self.sequencer.displayed
            page_number = None
        else:
            page_number = min(max(1, page), self.total_pages)
            teams = self.page(page_number)

        state = {
            "title": self.contest.title,
            "problems": [problem.to_dict() for problem in self.contest.problems],
            "teams": [team.to_dict() for team in teams],
            "page": page_number,
            "totalPages": self.total_pages,
            "champions": [
                team.to_dict() for team in self.sequencer.displayed[:CHAMPION_COUNT]
            ],
        }
        state.update(self.sequencer.snapshot())
        state.update(self.clock.snapshot())
        return state

    # Browser push

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def publish(self, event: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _sequencer_changed(self, _: AnimationSequencer) -> None:
        if self._listeners:
            event = {"type": "state"}
            event.update(self.state())
            self.publish(event)

    def _clock_ticked(self, clock: PhaseClock) -> None:
        if self._listeners:
            event = {"type": "clock"}
            event.update(clock.snapshot())
            self.publish(event)

    def _catch_up(self, sequencer: AnimationSequencer) -> None:
        if self.truth and sequencer.displayed != self.truth:
            logger.debug("Applying standings received during animation")
            sequencer.replace_displayed(self.truth)
