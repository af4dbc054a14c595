import json

import pytest

import feed_client
from cp_scoreboard.classifier import RankChange, classify
from cp_scoreboard.feed import MockStandings
from cp_scoreboard.normalizer import normalize_rows, rank_standings

SMALL_FIELD = [("A", 2, 20), ("B", 2, 30), ("C", 1, 10), ("D", 1, 20)]


def ranked(rows):
    return rank_standings(normalize_rows(rows))


def test_initial_rows_are_raw_scraper_rows():
    rows = MockStandings(seed=1).rows()

    assert len(rows) == 10
    assert [row["rank"] for row in rows] == [str(i) for i in range(1, 11)]
    assert rows[0]["teamName"] == "SegFault Survivors"
    assert rows[0]["score"] == "3"
    assert rows[0]["penalty"] == "45"
    assert len(rows[0]["problems"]) == 9
    assert rows[-1]["problems"][0] == {"status": "Not attempted", "time": "", "penalty": "", "firstSolve": False}


def test_solves_carry_time_and_first_blood():
    rows = MockStandings(teams=SMALL_FIELD).rows()
    solved = [p for p in rows[0]["problems"] if p["status"] == "Accepted"]

    assert len(solved) == 2
    assert solved[0]["firstSolve"] is True
    assert solved[0]["time"] == "0:10:00"
    assert rows[1]["problems"][0]["firstSolve"] is False


def test_steps_produce_each_kind_of_change():
    mock = MockStandings(teams=SMALL_FIELD, seed=3)
    previous = ranked(mock.rows())
    changes = []
    for _ in range(3):
        current = ranked(mock.step())
        changes.append(classify(previous, current))
        previous = current

    assert changes == [RankChange.SILENT, RankChange.TOP_TIER_SHUFFLE, RankChange.LEADER_CHANGE]
    assert previous[0].name == "D"


def test_rows_stay_sorted_by_score():
    mock = MockStandings(seed=7)
    for _ in range(12):
        rows = mock.step()
    keys = [(-int(row["score"]), int(row["penalty"])) for row in rows]
    assert keys == sorted(keys)


def test_filter_ranked_drops_unranked_rows():
    rows = [{"rank": "1"}, {"rank": "--"}, {"rank": "2"}]
    assert feed_client.filter_ranked(rows) == [{"rank": "1"}, {"rank": "2"}]


def test_load_rows_accepts_list_or_snapshot(tmp_path):
    bare = tmp_path / "bare.json"
    bare.write_text(json.dumps([{"rank": "1"}]), encoding="utf-8")
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"rows": [{"rank": "2"}]}), encoding="utf-8")

    assert feed_client.load_rows(str(bare)) == [{"rank": "1"}]
    assert feed_client.load_rows(str(wrapped)) == [{"rank": "2"}]


def test_load_rows_rejects_other_shapes(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"data": 1}), encoding="utf-8")

    with pytest.raises(ValueError):
        feed_client.load_rows(str(path))
