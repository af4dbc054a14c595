"""
Web route handlers for the contest scoreboard.
"""

import asyncio
import functools
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from aiohttp import WSMsgType, web
from jinja2 import Environment, FileSystemLoader

from .dashboard import Dashboard
from .models import Snapshot
from .relay import ContestClockStore, NotEnoughTeams, SnapshotBuffer

logger = logging.getLogger(__name__)

TEMPLATES_PATH = Path(__file__).parent / "templates"

Handler = Callable[[Any, web.Request], Awaitable[web.StreamResponse]]


def authenticate(handler: Handler) -> Handler:
    """
    Require the upload key in the ``key`` request header.

    @param handler: Route handler method to protect
    @return: Wrapped handler answering 401 on a missing or wrong key
    """

    @functools.wraps(handler)
    async def wrapper(self: "WebHandlers", request: web.Request) -> web.StreamResponse:
        expected = self.config.get("relay", "key")
        provided = request.headers.get("key")
        if not expected or not provided or provided != str(expected):
            logger.warning("Authentication failed for %s", request.path)
            return web.json_response({"msg": "not Authorization"}, status=401)
        return await handler(self, request)

    return wrapper


async def _read_json(request: web.Request) -> Optional[Dict[str, Any]]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def _page_param(request: web.Request) -> int:
    try:
        return int(request.query.get("page", 1))
    except ValueError:
        return 1


class WebHandlers:
    """Handles web routes and responses."""

    def __init__(
        self,
        buffer: SnapshotBuffer,
        contest_clock: ContestClockStore,
        dashboard: Dashboard,
        config: Any,
        templates_path: str = str(TEMPLATES_PATH),
    ) -> None:
        self.buffer = buffer
        self.contest_clock = contest_clock
        self.dashboard = dashboard
        self.config = config
        self.room: Set[web.WebSocketResponse] = set()
        self.viewers: Set[web.WebSocketResponse] = set()
        self._pending: Set[asyncio.Task] = set()

        self.jinja_env = Environment(
            loader=FileSystemLoader(templates_path),
            auto_reload=False,  # Disable auto-reload for performance
            cache_size=50,  # Cache up to 50 templates
            autoescape=True,
        )

        self.buffer.subscribe(self.broadcast_snapshot)
        self.dashboard.add_listener(self.broadcast_dashboard)

    # Fan-out

    def _send(self, ws: web.WebSocketResponse, message: Dict[str, Any]) -> None:
        if ws.closed:
            return
        task = asyncio.get_running_loop().create_task(ws.send_json(message))
        self._pending.add(task)
        task.add_done_callback(self._send_done)

    def _send_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Websocket send failed: %s", task.exception())

    def broadcast_snapshot(self, snapshot: Snapshot) -> None:
        """Push a relay snapshot to every socket in the scoreboard room."""
        message = {"event": "sendData", "data": snapshot.to_dict()}
        for ws in list(self.room):
            self._send(ws, message)

    def broadcast_dashboard(self, event: Dict[str, Any]) -> None:
        """Push a dashboard state, clock or cue event to every viewer."""
        for ws in list(self.viewers):
            self._send(ws, event)

    async def close_sockets(self) -> None:
        for ws in list(self.room) + list(self.viewers):
            await ws.close()
        self.room.clear()
        self.viewers.clear()

    # Relay API

    async def web_api_health(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Health check.

        @param _: Unused request parameter
        @return: JSON response naming the scoreboard
        """
        return web.json_response({"msg": f"{self.config.get('title')} scoreboard"})

    @authenticate
    async def web_api_post_ranking(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Accept a standings upload from the scraper.

        @param request: HTTP request with body ``{"data": [row, ...]}``
        @return: JSON acknowledgement, 400 if data is not a list
        """
        body = await _read_json(request)
        data = body.get("data") if body else None
        if not isinstance(data, list):
            return web.json_response({"error": "Invalid data: expected array"}, status=400)

        self.buffer.update(data)
        return web.json_response({"message": "Buffer updated"})

    async def web_api_get_ranking(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Current relay snapshot.

        @param _: Unused request parameter
        @return: JSON ``{version, ts, rows}``
        """
        return web.json_response(self.buffer.snapshot.to_dict())

    async def web_api_top_teams(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Top three teams by rank.

        @param request: HTTP request (the batch segment is accepted but unused)
        @return: JSON list of rows, 404 with no data, 400 with fewer than three teams
        """
        if not self.buffer.snapshot.rows:
            return web.json_response({"error": "No data available yet"}, status=404)
        try:
            top = self.buffer.top_teams(3)
        except NotEnoughTeams as e:
            return web.json_response(
                {"error": "Not enough users yet", "message": str(e)},
                status=400,
            )
        return web.json_response(top)

    @authenticate
    async def web_api_post_contest_time(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Set the contest schedule.

        @param request: HTTP request with ``startTime`` and ``duration`` (or ``endTime``)
        @return: JSON acknowledgement, 400 on invalid values
        """
        body = await _read_json(request)
        if not body or not body.get("startTime"):
            return web.json_response({"error": "startTime is required"}, status=400)

        try:
            duration = body.get("duration")
            self.contest_clock.update(
                str(body["startTime"]),
                duration=int(duration) if duration is not None else None,
                end_time=body.get("endTime"),
            )
        except (TypeError, ValueError) as e:
            return web.json_response({"error": f"Invalid contest time: {e}"}, status=400)

        contest = self.contest_clock.contest_config(
            self.dashboard.contest.title,
            self.dashboard.contest.problems,
        )
        if contest is not None:
            self.dashboard.update_contest(contest)
        return web.json_response({"message": "Contest time updated"})

    async def web_api_get_contest_time(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Contest schedule with the derived end time.

        @param _: Unused request parameter
        @return: JSON ``{startTime, endTime, duration}``
        """
        return web.json_response(self.contest_clock.to_dict())

    async def web_relay_socket(
        self,
        request: web.Request,
    ) -> web.WebSocketResponse:
        """
        Relay websocket. A client joins with ``{"event": "joinRoom", "data": "scoreboard"}``
        and then receives ``sendData`` pushes, starting with the current snapshot.

        @param request: HTTP upgrade request
        @return: The websocket response once the client disconnects
        """
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)
        logger.info("A user connected")

        try:
            async for msg in ws:
                if msg.type != WSMsgType.TEXT:
                    continue
                try:
                    message = json.loads(msg.data)
                except json.JSONDecodeError:
                    continue
                if not isinstance(message, dict) or message.get("event") != "joinRoom":
                    continue
                if message.get("data") == "scoreboard":
                    self.room.add(ws)
                    logger.info("User joined scoreboard room")
                    await ws.send_json(
                        {"event": "sendData", "data": self.buffer.snapshot.to_dict()}
                    )
                else:
                    logger.info("Invalid room %r", message.get("data"))
        finally:
            self.room.discard(ws)
            logger.info("User disconnected")
        return ws

    # Dashboard

    async def web_index(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Dashboard page.

        @param request: HTTP request with optional ``page`` query
        @return: HTTP response with rendered dashboard
        """
        state = self.dashboard.state(page=_page_param(request))
        template = self.jinja_env.get_template("dashboard.html")
        html = template.render(title=state["title"], state=state)
        return web.Response(text=html, content_type="text/html")

    async def web_api_state(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Dashboard projection: page of standings, animation flags and countdown.

        @param request: HTTP request with optional ``page`` query
        @return: JSON state
        """
        return web.json_response(self.dashboard.state(page=_page_param(request)))

    async def web_api_sound(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Toggle dashboard sound.

        @param request: HTTP request with body ``{"enabled": bool}``
        @return: JSON with the resulting setting, 400 on a bad body
        """
        body = await _read_json(request)
        enabled = body.get("enabled") if body else None
        if not isinstance(enabled, bool):
            return web.json_response({"error": "enabled must be a boolean"}, status=400)

        self.dashboard.set_sound_enabled(enabled)
        return web.json_response({"soundEnabled": self.dashboard.sequencer.sound_enabled})

    async def web_dashboard_socket(
        self,
        request: web.Request,
    ) -> web.WebSocketResponse:
        """
        Dashboard websocket: current state on connect, then state, clock and cue events.

        @param request: HTTP upgrade request
        @return: The websocket response once the viewer disconnects
        """
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)
        try:
            self.viewers.add(ws)

            state = {"type": "state"}
            state.update(self.dashboard.state())
            await ws.send_json(state)

            async for _ in ws:
                pass
        finally:
            self.viewers.discard(ws)
        return ws
