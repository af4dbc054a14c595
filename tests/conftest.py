import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List

import pytest

from cp_scoreboard.audio import CueChannel
from cp_scoreboard.config import ScoreboardConfig
from cp_scoreboard.models import ContestConfig, Team
from cp_scoreboard.sequencer import AnimationSequencer

CONTEST_START = datetime(2026, 2, 6, 13, 0, tzinfo=timezone.utc)


class FakeHandle:
    def __init__(self, when: float, seq: int, callback: Callable, args: tuple) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class FakeLoop:
    """Manual clock standing in for the event loop's call_later."""

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: List[FakeHandle] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable, *args: Any) -> FakeHandle:
        handle = FakeHandle(self.now + delay, next(self._seq), callback, args)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return len([h for h in self._handles if not h.cancelled()])

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled() and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
        self._handles = [h for h in self._handles if not h.cancelled()]
        self.now = target

    def advance_ms(self, ms: float) -> None:
        self.advance(ms / 1000)


def make_team(name: str, solved: int = 0, penalty: int = 0, rank: int = 0) -> Team:
    return Team(id=f"team_{name}", name=name, solved=solved, penalty=penalty, rank=rank)


def standings(*names: str) -> List[Team]:
    """Teams in the given order with ranks 1..N."""
    count = len(names)
    return [
        make_team(name, solved=count - idx, rank=idx + 1)
        for idx, name in enumerate(names)
    ]


def raw_row(name: str, solved: int, penalty: int, rank: int = 0) -> dict:
    return {
        "rank": str(rank),
        "teamName": name,
        "score": str(solved),
        "penalty": str(penalty),
        "problems": [],
    }


def raw_rows(*names: str) -> List[dict]:
    """Raw scraper rows ranked in the given order."""
    count = len(names)
    return [raw_row(name, count - idx, 10, idx + 1) for idx, name in enumerate(names)]


@pytest.fixture
def fake_loop():
    return FakeLoop()


@pytest.fixture
def cue_events():
    return []


@pytest.fixture
def channel(fake_loop, cue_events):
    return CueChannel(publish=cue_events.append, loop=fake_loop)


@pytest.fixture
def sequencer(channel, fake_loop):
    return AnimationSequencer(channel, loop=fake_loop)


@pytest.fixture
def contest():
    return ContestConfig.from_start_and_duration("Test Cup", CONTEST_START, 300)


@pytest.fixture
def during():
    return CONTEST_START + timedelta(minutes=30)


@pytest.fixture
def clean_env(monkeypatch):
    for env_var in ScoreboardConfig.ENV_MAPPINGS:
        monkeypatch.delenv(env_var, raising=False)
    return monkeypatch
