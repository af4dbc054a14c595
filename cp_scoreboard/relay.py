"""
In-memory relay buffer for scraped standings and the contest time.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .config import parse_instant
from .models import ContestConfig, ProblemData, Snapshot

logger = logging.getLogger(__name__)

Subscriber = Callable[[Snapshot], None]


class NotEnoughTeams(Exception):
    """Raised when fewer teams are ranked than were asked for."""

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(f"Only {available} team(s) available")
        self.available = available
        self.requested = requested


def _to_number(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            pass
    return value


def coerce_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """
    Shape one uploaded row for subscribers.

    @param row: Row as posted by the scraper
    @return: Row with identity aliases and numeric fields where they parse
    """
    coerced = dict(row)
    team_name = row.get("teamName")
    coerced.setdefault("userId", team_name)
    coerced.setdefault("username", team_name)
    for field_name in ("rank", "score", "penalty"):
        if field_name in row:
            coerced[field_name] = _to_number(row[field_name])
    return coerced


class SnapshotBuffer:
    """Holds the latest standings snapshot and fans it out to subscribers."""

    def __init__(self) -> None:
        self.snapshot = Snapshot()
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a subscriber.

        @param callback: Called with every new snapshot, in arrival order
        @return: Callable that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def update(self, rows: Any) -> Optional[Snapshot]:
        """
        Replace the buffer with a new upload.

        @param rows: Uploaded rows; anything but a list is rejected
        @return: The new snapshot, or None when rejected
        """
        if not isinstance(rows, list):
            logger.warning("Invalid data provided to buffer: %r", type(rows).__name__)
            return None

        self.snapshot = Snapshot(
            version=self.snapshot.version + 1,
            timestamp=int(time.time() * 1000),
            rows=[coerce_row(row) if isinstance(row, dict) else row for row in rows],
        )
        logger.info(
            "Buffer updated. Version: %d, Rows: %d",
            self.snapshot.version,
            len(self.snapshot.rows),
        )

        for callback in list(self._subscribers):
            try:
                callback(self.snapshot)
            except Exception:
                logger.exception("Snapshot subscriber failed")
        return self.snapshot

    def top_teams(self, count: int = 3) -> List[Dict[str, Any]]:
        """
        Best ranked rows of the current snapshot.

        @param count: Number of rows wanted
        @return: Rows sorted by rank
        @raise NotEnoughTeams: If fewer than count rows are held
        """
        rows = [row for row in self.snapshot.rows if isinstance(row, dict)]
        ranked = sorted(rows, key=lambda row: _rank_key(row.get("rank")))
        if len(ranked) < count:
            raise NotEnoughTeams(len(ranked), count)
        return ranked[:count]


def _rank_key(rank: Any) -> float:
    number = _to_number(rank)
    if isinstance(number, (int, float)) and not isinstance(number, bool):
        return float(number)
    return float("inf")


class ContestClockStore:
    """Contest start time and duration as announced by the scraper."""

    def __init__(
        self,
        start_time: Optional[str] = None,
        duration: int = 300,
    ) -> None:
        self.start_time = start_time
        self.duration = duration

    def update(
        self,
        start_time: str,
        duration: Optional[int] = None,
        end_time: Optional[str] = None,
    ) -> None:
        """
        Store a new schedule. Either a duration or an end time is required.

        @param start_time: ISO 8601 start
        @param duration: Length in minutes
        @param end_time: ISO 8601 end, used when no duration is given
        @raise ValueError: If the values cannot be parsed
        """
        start = parse_instant(start_time)
        if duration is None:
            if end_time is None:
                raise ValueError("duration or endTime is required")
            end = parse_instant(end_time)
            duration = int((end - start).total_seconds() // 60)
        duration = int(duration)
        if duration <= 0:
            raise ValueError("duration must be positive")

        self.start_time = start_time
        self.duration = duration
        logger.info("Contest times updated - Start: %s, Duration: %dmin", start_time, duration)

    def end_time(self) -> Optional[datetime]:
        """End instant, expressed in the start time's UTC offset."""
        if not self.start_time:
            return None
        return parse_instant(self.start_time) + timedelta(minutes=self.duration)

    def to_dict(self) -> Dict[str, Any]:
        end = self.end_time()
        return {
            "startTime": self.start_time,
            "endTime": end.isoformat() if end else None,
            "duration": self.duration,
        }

    def contest_config(self, title: str, problems: List[ProblemData]) -> Optional[ContestConfig]:
        if not self.start_time:
            return None
        return ContestConfig.from_start_and_duration(
            title=title,
            start_time=parse_instant(self.start_time),
            duration_minutes=self.duration,
            problems=problems,
        )
