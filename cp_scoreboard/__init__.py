"""
Contest Scoreboard - a live competitive-programming standings board.

This package provides:
- Relay server receiving scraped standings and fanning them out
- Normalization of raw judge rows into ranked team snapshots
- Rank-change classification (leader change, top-tier shuffle, silent)
- Single-slot animation sequencing with audio cues and a watchdog
- Contest phase clock with countdown
- Web dashboard with live websocket updates
"""

from .config import ScoreboardConfig
from .dashboard import Dashboard
from .relay import SnapshotBuffer
from .sequencer import AnimationSequencer
from .web_handlers import WebHandlers
from .scoreboard import ScoreboardSystem

__version__ = "1.0.0"
__author__ = "Contest Scoreboard Contributors"

__all__ = [
    "ScoreboardConfig",
    "Dashboard",
    "SnapshotBuffer",
    "AnimationSequencer",
    "WebHandlers",
    "ScoreboardSystem",
]
