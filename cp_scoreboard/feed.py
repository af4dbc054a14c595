"""
Standings sources: a remote relay client and a simulated scraper.
"""

import asyncio
import json
import logging
import random
from typing import Any, Callable, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)

ROOM = "scoreboard"

MOCK_TEAMS = [
    ("SegFault Survivors", 3, 45),
    ("Binary Bandits", 3, 50),
    ("Recursive Nightmares", 2, 40),
    ("Code Phantoms", 2, 55),
    ("Logic Glitchers", 2, 60),
    ("Syntax Errors", 1, 25),
    ("Cyber Drifters", 1, 35),
    ("Null Pointers", 0, 0),
    ("Stack Overflow", 0, 0),
    ("Heap Hackers", 0, 0),
]


class RelayFeed:
    """
    Delivery channel from a remote relay.

    Fetches the current snapshot over HTTP, then joins the relay's
    scoreboard room over a websocket and forwards every pushed snapshot in
    arrival order.
    """

    def __init__(
        self,
        base_url: str,
        on_snapshot: Callable[[Any], Any],
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        reconnect_delay_max: float = 5.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.on_snapshot = on_snapshot
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.reconnect_delay_max = reconnect_delay_max
        self.closed = False
        self._task: Optional[asyncio.Task] = None

    async def fetch_initial(self, session: aiohttp.ClientSession) -> Optional[Dict[str, Any]]:
        """
        Fetch the relay's current snapshot.

        @param session: Open client session
        @return: Snapshot mapping, or None when the relay is unreachable
        """
        try:
            async with session.get(
                f"{self.base_url}/api/getRanking",
                timeout=aiohttp.ClientTimeout(total=20),
            ) as resp:
                resp.raise_for_status()
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Error fetching initial standings: %s", e)
            return None

    async def _listen(self, session: aiohttp.ClientSession) -> None:
        async with session.ws_connect(f"{self.base_url}/ws") as ws:
            logger.info("Connected to standings relay %s", self.base_url)
            await ws.send_json({"event": "joinRoom", "data": ROOM})
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    break
        logger.warning("Disconnected from standings relay")

    def _dispatch(self, data: str) -> None:
        """Forward one relay message; a bad message is logged and skipped."""
        try:
            message = json.loads(data)
        except ValueError:
            logger.warning("Ignoring undecodable relay message: %.80r", data)
            return
        if not isinstance(message, dict) or message.get("event") != "sendData":
            return
        try:
            self.on_snapshot(message.get("data"))
        except Exception:
            logger.exception("Failed to apply standings from relay")

    async def run(self, seed: Optional[Callable[[Any], Any]] = None) -> None:
        """
        Consume the relay until closed or reconnection attempts run out.

        @param seed: Receives the initial snapshot (defaults to on_snapshot)
        """
        async with aiohttp.ClientSession(headers={"User-Agent": "cp-scoreboard/1.0"}) as session:
            initial = await self.fetch_initial(session)
            if initial is not None:
                (seed or self.on_snapshot)(initial)

            attempts = 0
            delay = self.reconnect_delay
            while not self.closed:
                try:
                    await self._listen(session)
                    attempts = 0
                    delay = self.reconnect_delay
                except aiohttp.ClientError as e:
                    logger.error("Relay connection error: %s", e)

                if self.closed:
                    break
                attempts += 1
                if attempts > self.reconnect_attempts:
                    logger.error("Giving up on relay after %d attempts", self.reconnect_attempts)
                    break
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.reconnect_delay_max)

    def start(self, seed: Optional[Callable[[Any], Any]] = None) -> asyncio.Task:
        self._task = asyncio.get_running_loop().create_task(self.run(seed))
        return self._task

    def close(self) -> None:
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()


def _clock(minutes: int) -> str:
    return f"{minutes // 60}:{minutes % 60:02d}:00"


class MockStandings:
    """
    Simulated judge standings in the scraper's raw row format.

    Every third step the top two swap and the new leader solves a problem,
    every other step ranks 3 and 4 swap, and the remaining steps change a
    team below the top five.
    """

    def __init__(
        self,
        teams: Optional[List[tuple]] = None,
        problem_count: int = 9,
        seed: Optional[int] = None,
    ) -> None:
        self.problem_count = problem_count
        self.iteration = 0
        self._rng = random.Random(seed)
        self.teams: List[Dict[str, Any]] = []
        self._first_solved: set = set()
        for name, solved, penalty in teams or MOCK_TEAMS:
            team = {"name": name, "solved": 0, "penalty": 0, "problems": self._blank_problems()}
            for i in range(solved):
                self._solve(team, penalty // solved + (penalty % solved if i == 0 else 0))
            self.teams.append(team)
        self._sort()

    def _blank_problems(self) -> List[Dict[str, Any]]:
        return [
            {"status": "Not attempted", "time": "", "penalty": "", "firstSolve": False}
            for _ in range(self.problem_count)
        ]

    def _solve(self, team: Dict[str, Any], penalty: int) -> None:
        for idx, problem in enumerate(team["problems"]):
            if problem["status"] == "Accepted":
                continue
            team["solved"] += 1
            team["penalty"] += penalty
            problem["status"] = "Accepted"
            problem["time"] = _clock(team["penalty"])
            problem["firstSolve"] = idx not in self._first_solved
            self._first_solved.add(idx)
            return

    def _fail(self, team: Dict[str, Any]) -> None:
        for problem in team["problems"]:
            if problem["status"] != "Accepted":
                attempts = int(problem["penalty"].lstrip("-") or 0) + 1
                problem["status"] = "Failed"
                problem["penalty"] = f"-{attempts}"
                return

    def _sort(self) -> None:
        self.teams.sort(key=lambda team: (-team["solved"], team["penalty"]))

    def step(self) -> List[Dict[str, Any]]:
        """Advance the simulation one update and return the new rows."""
        self.iteration += 1
        teams = self.teams

        if self.iteration % 3 == 0 and len(teams) >= 2:
            teams[0], teams[1] = teams[1], teams[0]
            self._solve(teams[0], 5)
        elif self.iteration % 2 == 0 and len(teams) >= 4:
            teams[2], teams[3] = teams[3], teams[2]
            self._solve(teams[2], 3)
        else:
            idx = 5 + self._rng.randrange(5)
            if idx < len(teams):
                if self._rng.random() < 0.5:
                    self._solve(teams[idx], 2)
                else:
                    self._fail(teams[idx])

        self._sort()
        return self.rows()

    def rows(self) -> List[Dict[str, Any]]:
        return [
            {
                "rank": str(idx),
                "teamName": team["name"],
                "score": str(team["solved"]),
                "penalty": str(team["penalty"]),
                "problems": [dict(problem) for problem in team["problems"]],
            }
            for idx, team in enumerate(self.teams, start=1)
        ]
