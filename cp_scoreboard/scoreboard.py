"""
Main ScoreboardSystem class that orchestrates all components.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiohttp_cors
from aiohttp import web, web_runner

from .audio import CueChannel
from .config import ScoreboardConfig
from .dashboard import Dashboard
from .feed import RelayFeed
from .relay import ContestClockStore, SnapshotBuffer
from .sequencer import AnimationSequencer
from .web_handlers import WebHandlers

logger = logging.getLogger(__name__)

STATIC_PATH = Path(__file__).parent / "static"


class ScoreboardSystem:
    """Relay, dashboard and web interface in one asyncio process."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 4000,
        config_path: str = "scoreboard_config.json",
        relay_url: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port

        # Load configuration
        self.config = ScoreboardConfig(config_path)
        self.relay_url = relay_url or self.config.get("dashboard", "relay_url")

        # Initialize components
        now = datetime.now(timezone.utc)
        contest = self.config.contest_config(now)
        self.buffer = SnapshotBuffer()
        self.contest_clock = ContestClockStore(
            start_time=contest.start_time.isoformat(),
            duration=contest.duration_minutes,
        )
        self.sequencer = AnimationSequencer(
            CueChannel(),
            timing=self.config.timing(),
            sound_enabled=self.config.get("dashboard", "sound_enabled"),
        )
        self.dashboard = Dashboard(
            contest,
            self.sequencer,
            teams_per_page=self.config.get("dashboard", "teams_per_page"),
        )
        self.web_handlers = WebHandlers(
            self.buffer, self.contest_clock, self.dashboard, self.config
        )
        self.feed: Optional[RelayFeed] = None

    def build_app(self) -> web.Application:
        """
        Build the aiohttp application with all routes and CORS.

        @return: Configured web application
        """
        app = web.Application()

        # Setup CORS
        cors = aiohttp_cors.setup(
            app,
            defaults={
                "*": aiohttp_cors.ResourceOptions(
                    allow_credentials=True,
                    expose_headers="*",
                    allow_headers="*",
                    allow_methods=["GET", "POST"],
                )
            },
        )

        handlers = self.web_handlers

        # Static files route
        app.router.add_static("/static/", path=STATIC_PATH, name="static")

        # Dashboard routes
        app.router.add_get("/", handlers.web_index)
        app.router.add_get("/api/state", handlers.web_api_state)
        app.router.add_post("/api/sound", handlers.web_api_sound)

        # Relay routes
        app.router.add_get("/api/health", handlers.web_api_health)
        app.router.add_post("/api/postRanking", handlers.web_api_post_ranking)
        app.router.add_get("/api/getRanking", handlers.web_api_get_ranking)
        app.router.add_get("/api/getTopTeams/{batch}", handlers.web_api_top_teams)
        app.router.add_post("/api/postContestTime", handlers.web_api_post_contest_time)
        app.router.add_get("/api/getContestTime", handlers.web_api_get_contest_time)

        # Add CORS to all plain HTTP routes
        for route in list(app.router.routes()):
            cors.add(route)

        # Websockets
        app.router.add_get("/ws", handlers.web_relay_socket)
        app.router.add_get("/ws/dashboard", handlers.web_dashboard_socket)

        app.on_shutdown.append(self._on_shutdown)
        return app

    async def _on_shutdown(self, _: web.Application) -> None:
        await self.web_handlers.close_sockets()

    def connect_dashboard(self) -> None:
        """
        Attach the dashboard to its delivery channel: the remote relay when
        one is configured, otherwise this process's own buffer.
        """
        if self.relay_url:
            self.feed = RelayFeed(self.relay_url, self.dashboard.on_snapshot)
            self.dashboard.attach(self.feed.close)
            if not self.dashboard.closed:
                self.feed.start(seed=self.dashboard.seed)
            logger.info("Dashboard following relay %s", self.relay_url)
        else:
            if self.buffer.snapshot.rows:
                self.dashboard.seed(self.buffer.snapshot.to_dict())
            unsubscribe = self.buffer.subscribe(self.dashboard.on_snapshot)
            self.dashboard.attach(unsubscribe)

    async def start_web_server(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ) -> web_runner.AppRunner:
        """
        Start the web server.

        @param host: Host address to bind the server to (default uses configured host)
        @param port: Port number to use (default uses configured port)
        @return: AppRunner instance for the web server
        """
        if host is None:
            host = self.host
        if port is None:
            port = self.port

        app_runner = web_runner.AppRunner(self.build_app())
        await app_runner.setup()

        site = web_runner.TCPSite(app_runner, host, port)
        await site.start()

        logger.info("Web server running on http://%s:%s", host, port)
        return app_runner

    async def run(self) -> None:
        """Run the web server, the dashboard feed and the phase clock until cancelled."""
        app_runner = await self.start_web_server()
        self.connect_dashboard()
        self.dashboard.clock.start()

        contest = self.dashboard.contest
        logger.info("%s is live", contest.title)
        logger.info("Contest: %s to %s", contest.start_time.isoformat(), contest.end_time.isoformat())
        logger.info("Dashboard: http://%s:%s/", self.host, self.port)

        try:
            await asyncio.Event().wait()
        finally:
            logger.info("Shutting down servers...")
            await self.dashboard.clock.stop()
            self.sequencer.cancel_all()
            if self.feed is not None:
                self.feed.close()
            await app_runner.cleanup()
