"""
Conversion of raw scraped standings rows into canonical Team snapshots.

Raw rows come from the judge scraper through the relay and look like::

    {"rank": "1", "teamName": "SegFault Survivors", "score": "3",
     "penalty": "45", "problems": [{"status": "Accepted", "time": "0:19:05",
                                    "penalty": "-1", "firstSolve": True}, ...]}

Nothing here raises on bad input: malformed fields degrade to defaults and a
payload that is not a list yields an empty result, which callers read as
"no usable data".
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from .models import ProblemData, ProblemStatus, Snapshot, Submission, Team

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "Accepted": ProblemStatus.ACCEPTED,
    "Failed": ProblemStatus.WRONG_ANSWER,
    "Pending": ProblemStatus.PENDING,
}

IDENTITY_FIELDS = ("teamId", "userId", "teamName")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_int(value: Any, default: int = 0) -> int:
    """
    Parse a leading integer out of a scraped value.

    @param value: Raw value (string, number or anything else)
    @param default: Value returned when nothing numeric can be read
    @return: Parsed integer or default
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return default
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return default


def parse_solve_time(value: Any) -> int:
    """
    Convert an ``H:MM:SS`` solve time to whole minutes, dropping seconds.

    @param value: Time string as shown on the judge's rank table
    @return: hours * 60 + minutes, or 0 when malformed or absent
    """
    if not isinstance(value, str) or not value:
        return 0
    parts = value.strip().split(":")
    if len(parts) != 3:
        return 0
    hours = parse_int(parts[0], default=-1)
    minutes = parse_int(parts[1], default=-1)
    if hours < 0 or minutes < 0:
        return 0
    return hours * 60 + minutes


def parse_attempts(value: Any) -> int:
    """Attempt count from the judge's signed penalty marker, e.g. ``"-2"``."""
    if isinstance(value, str):
        return abs(parse_int(value.replace("-", "", 1), default=0))
    if isinstance(value, int) and not isinstance(value, bool):
        return abs(value)
    return 0


def normalize_problem(problem_id: str, raw: Any) -> Submission:
    if not isinstance(raw, dict):
        return Submission(problem_id=problem_id)

    status = STATUS_MAP.get(raw.get("status"), ProblemStatus.NOT_ATTEMPTED)
    time = parse_solve_time(raw.get("time")) if status is ProblemStatus.ACCEPTED else 0

    return Submission(
        problem_id=problem_id,
        status=status,
        attempts=parse_attempts(raw.get("penalty")),
        time=time,
        is_first_blood=raw.get("firstSolve") is True,
    )


def _identity_key(row: Dict[str, Any], position: int) -> str:
    for field_name in IDENTITY_FIELDS:
        value = row.get(field_name)
        if value not in (None, ""):
            return str(value)
    return f"row-{position}"


def normalize_row(
    row: Any,
    position: int,
    problems: Optional[List[ProblemData]] = None,
) -> Team:
    """
    Convert one raw row into a Team.

    @param row: Raw scraped row
    @param position: 1-based position of the row in its batch
    @param problems: Configured problem set; missing entries become not-attempted
    @return: Team with parsed fields
    """
    if not isinstance(row, dict):
        row = {}

    raw_problems = row.get("problems")
    if not isinstance(raw_problems, list):
        raw_problems = []

    submissions: Dict[str, Submission] = {}
    for idx, raw in enumerate(raw_problems):
        problem_id = f"p{idx + 1}"
        submissions[problem_id] = normalize_problem(problem_id, raw)

    for problem in problems or []:
        if problem.id not in submissions:
            submissions[problem.id] = Submission(problem_id=problem.id)

    name = row.get("teamName")
    return Team(
        id=f"team_{_identity_key(row, position)}",
        name=str(name) if name is not None else "",
        solved=max(0, parse_int(row.get("score"))),
        penalty=max(0, parse_int(row.get("penalty"))),
        rank=parse_int(row.get("rank"), default=position),
        submissions=submissions,
        trend=row.get("trend") if row.get("trend") in ("up", "down", "same") else "same",
    )


def normalize_rows(
    rows: Any,
    problems: Optional[List[ProblemData]] = None,
) -> List[Team]:
    """
    Normalize a whole batch of raw rows.

    @param rows: Raw rows; anything other than a list is rejected
    @param problems: Configured problem set
    @return: Teams in input order, or an empty list when rejected
    """
    if not isinstance(rows, list):
        logger.warning("Rejected standings payload of type %s", type(rows).__name__)
        return []

    teams = []
    seen: Dict[str, int] = {}
    for position, row in enumerate(rows, start=1):
        team = normalize_row(row, position, problems)
        if team.id in seen:
            seen[team.id] += 1
            duplicate_id = f"{team.id}#{seen[team.id]}"
            logger.warning("Duplicate team key %s, using %s", team.id, duplicate_id)
            team.id = duplicate_id
        else:
            seen[team.id] = 1
        teams.append(team)
    return teams


def normalize_payload(
    payload: Any,
    problems: Optional[List[ProblemData]] = None,
) -> List[Team]:
    """Normalize a bare row list or a relay snapshot, as object or ``{version, ts, rows}``."""
    if isinstance(payload, Snapshot):
        payload = payload.rows
    elif isinstance(payload, dict):
        payload = payload.get("rows")
    return normalize_rows(payload, problems)


def rank_standings(teams: Iterable[Team]) -> List[Team]:
    """
    Sort teams into the canonical order and reassign contiguous ranks.

    Order is solved descending, then penalty ascending; the judge's own rank
    breaks remaining ties so equal teams keep their scraped order.

    @param teams: Teams in any order
    @return: New list with ranks 1..N matching the sort order
    """
    ranked = sorted(teams, key=lambda team: (-team.solved, team.penalty, team.rank))
    for idx, team in enumerate(ranked, start=1):
        team.rank = idx
    return ranked
