from datetime import timedelta

import pytest

from cp_scoreboard.classifier import RankChange
from cp_scoreboard.dashboard import Dashboard
from cp_scoreboard.models import ContestConfig
from cp_scoreboard.phase_clock import ContestPhase
from cp_scoreboard.relay import SnapshotBuffer
from cp_scoreboard.sequencer import AnimationState

from .conftest import CONTEST_START, raw_rows


class Now:
    def __init__(self, value):
        self.value = value

    def __call__(self):
        return self.value


@pytest.fixture
def now(during):
    return Now(during)


@pytest.fixture
def board(contest, sequencer, now):
    return Dashboard(contest, sequencer, clock=now)


@pytest.fixture
def events(board):
    received = []
    board.add_listener(received.append)
    return received


def displayed(board):
    return [team.name for team in board.sequencer.displayed]


def test_first_update_applies_silently(board):
    assert board.on_snapshot(raw_rows("A", "B", "C")) is RankChange.SILENT
    assert displayed(board) == ["A", "B", "C"]
    assert board.sequencer.is_idle


def test_leader_change_runs_emergency(board, fake_loop):
    board.on_snapshot(raw_rows("A", "B", "C"))

    assert board.on_snapshot(raw_rows("B", "A", "C")) is RankChange.LEADER_CHANGE
    assert board.sequencer.state is AnimationState.EMERGENCY
    assert board.sequencer.dropping_team_id == "team_A"
    assert displayed(board) == ["A", "B", "C"]

    fake_loop.advance_ms(1200)
    assert displayed(board) == ["B", "A", "C"]
    fake_loop.advance_ms(2200)
    assert board.sequencer.is_idle


def test_top_tier_shuffle_runs_glitch(board, fake_loop):
    board.on_snapshot(raw_rows("A", "B", "C", "D"))

    assert board.on_snapshot(raw_rows("A", "C", "B", "D")) is RankChange.TOP_TIER_SHUFFLE
    assert board.sequencer.state is AnimationState.GLITCHING
    fake_loop.advance_ms(150)
    assert displayed(board) == ["A", "C", "B", "D"]


def test_update_during_animation_catches_up_on_idle(board, fake_loop):
    board.on_snapshot(raw_rows("A", "B", "C", "D", "E"))
    board.on_snapshot(raw_rows("B", "A", "C", "D", "E"))
    fake_loop.advance_ms(500)

    assert board.on_snapshot(raw_rows("C", "B", "A", "D", "E")) is None
    assert [team.name for team in board.truth] == ["C", "B", "A", "D", "E"]
    assert board.sequencer.state is AnimationState.EMERGENCY

    fake_loop.advance_ms(700)
    assert displayed(board) == ["B", "A", "C", "D", "E"]

    fake_loop.advance_ms(2200)
    assert board.sequencer.is_idle
    assert displayed(board) == ["C", "B", "A", "D", "E"]


def test_no_animation_before_contest(contest, sequencer, now):
    now.value = CONTEST_START - timedelta(minutes=5)
    board = Dashboard(contest, sequencer, clock=now)
    board.on_snapshot(raw_rows("A", "B"))

    assert board.on_snapshot(raw_rows("B", "A")) is None
    assert displayed(board) == ["B", "A"]
    assert board.sequencer.is_idle


def test_unusable_update_keeps_previous_state(board):
    board.on_snapshot(raw_rows("A", "B"))

    assert board.on_snapshot("garbage") is None
    assert board.on_snapshot([]) is None
    assert displayed(board) == ["A", "B"]
    assert [team.name for team in board.truth] == ["A", "B"]


def test_contest_end_settles_and_closes_channel(board, fake_loop, now, contest):
    closed = []
    board.attach(lambda: closed.append(True))
    board.on_snapshot(raw_rows("A", "B", "C"))
    board.on_snapshot(raw_rows("B", "A", "C"))
    fake_loop.advance_ms(500)

    now.value = contest.end_time + timedelta(seconds=1)
    board.clock.tick()

    assert board.clock.phase is ContestPhase.AFTER
    assert board.closed
    assert closed == [True]
    assert board.sequencer.is_idle
    assert board.sequencer.dropping_team_id is None
    assert board.sequencer.pending_actions == 0
    assert displayed(board) == ["B", "A", "C"]

    assert board.on_snapshot(raw_rows("C", "B", "A")) is None
    fake_loop.advance_ms(10000)
    assert displayed(board) == ["B", "A", "C"]

    board.clock.tick()
    assert closed == [True]


def test_attach_after_close_closes_immediately(board, now, contest):
    now.value = contest.end_time + timedelta(hours=1)
    board.clock.tick()
    closed = []

    board.attach(lambda: closed.append(True))

    assert closed == [True]


def test_schedule_update_can_end_contest(board):
    board.update_contest(
        ContestConfig.from_start_and_duration("Test Cup", CONTEST_START - timedelta(hours=10), 60)
    )
    assert board.closed


def test_seed_shows_standings_without_animation(board, events):
    board.seed({"version": 4, "ts": 0, "rows": raw_rows("A", "B")})

    assert displayed(board) == ["A", "B"]
    assert not any(event.get("type") == "cue" for event in events)


def test_buffer_snapshots_reach_dashboard(board):
    buffer = SnapshotBuffer()
    buffer.subscribe(board.on_snapshot)

    buffer.update(raw_rows("A", "B"))

    assert displayed(board) == ["A", "B"]


def test_state_pagination(contest, sequencer, now):
    board = Dashboard(contest, sequencer, teams_per_page=20, clock=now)
    board.on_snapshot(raw_rows(*[f"T{i:02d}" for i in range(45)]))

    assert board.total_pages == 3
    last = board.state(page=3)
    assert len(last["teams"]) == 5
    assert last["teams"][0]["rank"] == 41
    assert board.state(page=99)["page"] == 3
    assert board.state(page=0)["page"] == 1
    assert [team["name"] for team in last["champions"]] == ["T00", "T01"]


def test_state_projection_fields(board):
    board.on_snapshot(raw_rows("A"))
    state = board.state()

    assert state["title"] == "Test Cup"
    assert state["phase"] == "during"
    assert state["countdown"] == "04:30:00"
    assert state["animationState"] == "idle"
    assert len(state["problems"]) == 9
    assert state["teams"][0]["submissions"]["p9"]["status"] == "NOT_ATTEMPTED"


def test_listeners_receive_state_and_cue_events(board, events):
    board.on_snapshot(raw_rows("A", "B"))
    board.on_snapshot(raw_rows("B", "A"))

    kinds = [(event["type"], event.get("action")) for event in events]
    assert ("state", None) in kinds
    assert ("cue", "play") in kinds
    cue = next(event for event in events if event["type"] == "cue")
    assert cue["cue"] == "siren"


def test_sound_toggle_passes_through(board):
    board.set_sound_enabled(False)
    assert board.state()["soundEnabled"] is False
