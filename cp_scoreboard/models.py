"""
Data models for the contest scoreboard.
"""

import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


class ProblemStatus(str, Enum):
    """Judge verdict for one team on one problem."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    WRONG_ANSWER = "WRONG_ANSWER"
    TIME_LIMIT = "TIME_LIMIT"
    NOT_ATTEMPTED = "NOT_ATTEMPTED"


@dataclass
class Submission:
    """A team's state on a single problem."""

    problem_id: str
    status: ProblemStatus = ProblemStatus.NOT_ATTEMPTED
    attempts: int = 0
    time: int = 0  # minutes since contest start
    is_first_blood: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "problemId": self.problem_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "time": self.time,
            "isFirstBlood": self.is_first_blood,
        }


@dataclass
class Team:
    """One contest entrant in a canonical snapshot."""

    id: str
    name: str
    solved: int = 0
    penalty: int = 0
    rank: int = 0
    submissions: Dict[str, Submission] = field(default_factory=dict)
    trend: str = "same"
    university: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "university": self.university,
            "solved": self.solved,
            "penalty": self.penalty,
            "rank": self.rank,
            "trend": self.trend,
            "submissions": {
                problem_id: submission.to_dict()
                for problem_id, submission in self.submissions.items()
            },
        }


@dataclass(frozen=True)
class ProblemData:
    id: str
    label: str
    name: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "label": self.label, "name": self.name}


def default_problems(count: int = 9) -> List[ProblemData]:
    """
    Build the synthetic problem set p1..pN labelled A, B, C...

    @param count: Number of problems in the contest
    @return: Ordered list of problem definitions
    """
    labels = string.ascii_uppercase
    problems = []
    for i in range(count):
        label = labels[i] if i < len(labels) else f"P{i + 1}"
        problems.append(ProblemData(id=f"p{i + 1}", label=label, name=f"Problem {label}"))
    return problems


@dataclass
class ContestConfig:
    """Contest schedule and problem set."""

    title: str
    start_time: datetime
    end_time: datetime
    problems: List[ProblemData] = field(default_factory=default_problems)

    @classmethod
    def from_start_and_duration(
        cls,
        title: str,
        start_time: datetime,
        duration_minutes: int,
        problems: Optional[List[ProblemData]] = None,
    ) -> "ContestConfig":
        return cls(
            title=title,
            start_time=start_time,
            end_time=start_time + timedelta(minutes=duration_minutes),
            problems=problems if problems is not None else default_problems(),
        )

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "problems": [problem.to_dict() for problem in self.problems],
        }


@dataclass
class Snapshot:
    """A versioned standings upload held by the relay."""

    version: int = 0
    timestamp: Optional[int] = None  # epoch milliseconds
    rows: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "ts": self.timestamp, "rows": self.rows}
