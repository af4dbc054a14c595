import pytest

from cp_scoreboard.classifier import RankChange, changed_positions, classify, leader_of

from .conftest import standings


class TestClassify:
    def test_leader_change(self):
        previous = standings("A", "B", "C")
        new = standings("B", "A", "C")
        assert classify(previous, new) is RankChange.LEADER_CHANGE

    def test_leader_change_wins_over_shuffle(self):
        previous = standings("A", "B", "C", "D", "E")
        new = standings("E", "D", "C", "B", "A")
        assert classify(previous, new) is RankChange.LEADER_CHANGE

    def test_shuffle_in_ranks_two_to_five(self):
        previous = standings("A", "B", "C", "D", "E", "F")
        new = standings("A", "C", "B", "D", "E", "F")
        assert classify(previous, new) is RankChange.TOP_TIER_SHUFFLE

    def test_change_at_rank_five_is_a_shuffle(self):
        previous = standings("A", "B", "C", "D", "E", "F")
        new = standings("A", "B", "C", "D", "F", "E")
        assert classify(previous, new) is RankChange.TOP_TIER_SHUFFLE

    def test_change_below_rank_five_is_silent(self):
        previous = standings("A", "B", "C", "D", "E", "F", "G")
        new = standings("A", "B", "C", "D", "E", "G", "F")
        assert classify(previous, new) is RankChange.SILENT

    def test_identical_snapshots_are_silent(self):
        assert classify(standings("A", "B"), standings("A", "B")) is RankChange.SILENT

    def test_score_changes_without_reordering_are_silent(self):
        previous = standings("A", "B", "C")
        new = standings("A", "B", "C")
        new[0].solved += 1
        new[2].penalty += 20
        assert classify(previous, new) is RankChange.SILENT

    @pytest.mark.parametrize("previous,new", [([], []), ([], ["A"]), (["A"], [])])
    def test_empty_snapshots_are_silent(self, previous, new):
        assert classify(standings(*previous), standings(*new)) is RankChange.SILENT

    def test_positions_missing_from_one_side_are_ignored(self):
        previous = standings("A", "B")
        new = standings("A", "B", "C", "D")
        assert classify(previous, new) is RankChange.SILENT

    def test_short_lists_still_compare_shared_positions(self):
        previous = standings("A", "B", "C")
        new = standings("A", "C")
        assert classify(previous, new) is RankChange.TOP_TIER_SHUFFLE


def test_changed_positions_only_looks_at_top_five():
    previous = standings("A", "B", "C", "D", "E", "F", "G")
    new = standings("B", "A", "C", "E", "D", "G", "F")
    assert changed_positions(previous, new) == [0, 1, 3, 4]


def test_leader_of():
    assert leader_of([]) is None
    assert leader_of(standings("A", "B")).id == "team_A"
