"""
Rank-change classification between two canonical snapshots.
"""

from enum import Enum
from typing import List, Optional, Sequence

from .models import Team

# Top tier is ranks 2..5, i.e. positions 1..4 inclusive.
TOP_TIER_START = 1
TOP_TIER_END = 5


class RankChange(str, Enum):
    LEADER_CHANGE = "leader_change"
    TOP_TIER_SHUFFLE = "top_tier_shuffle"
    SILENT = "silent"


def leader_of(teams: Sequence[Team]) -> Optional[Team]:
    return teams[0] if teams else None


def _changed_at(previous: Sequence[Team], new: Sequence[Team], position: int) -> bool:
    if position >= len(previous) or position >= len(new):
        return False
    return previous[position].id != new[position].id


def changed_positions(previous: Sequence[Team], new: Sequence[Team]) -> List[int]:
    """Positions in 0..4 where both snapshots have a team and the ids differ."""
    return [
        position
        for position in range(TOP_TIER_END)
        if _changed_at(previous, new, position)
    ]


def classify(previous: Sequence[Team], new: Sequence[Team]) -> RankChange:
    """
    Classify the change from one rank-sorted snapshot to the next.

    A different team at position 0 is a leader change and wins over
    everything else. Otherwise any id change in positions 1..4 is a
    top-tier shuffle. Positions missing from either snapshot are ignored.

    @param previous: Previous canonical snapshot
    @param new: New canonical snapshot
    @return: The change classification
    """
    if _changed_at(previous, new, 0):
        return RankChange.LEADER_CHANGE

    for position in range(TOP_TIER_START, TOP_TIER_END):
        if _changed_at(previous, new, position):
            return RankChange.TOP_TIER_SHUFFLE

    return RankChange.SILENT
