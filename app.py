#!/usr/bin/env python3
"""
Live contest scoreboard server.
Relays scraped standings to subscribers and serves the animated dashboard.
"""

import argparse
import asyncio
import logging
import os
from pathlib import Path

from cp_scoreboard.logging_setup import configure_logging
from cp_scoreboard.scoreboard import ScoreboardSystem

logger = logging.getLogger(__name__)


async def main():
    """Main function with command line interface."""

    parser = argparse.ArgumentParser(
        description="Contest scoreboard relay and live dashboard",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "4000")),
        help="HTTP/websocket port (env: PORT)"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "scoreboard_config.json"),
        help="Configuration file path (env: CONFIG_PATH)"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "0.0.0.0"),
        help="Host to bind the server to (env: HOST)"
    )
    parser.add_argument(
        "--relay-url",
        default=os.getenv("RELAY_URL"),
        help="Follow a remote relay instead of this server's own buffer (env: RELAY_URL)"
    )

    args = parser.parse_args()
    configure_logging()

    config_path = Path(args.config)

    if config_path.exists() and not config_path.is_file():
        logger.error("%s exists but is not a file", args.config)
        return

    system = ScoreboardSystem(
        host=args.host,
        port=args.port,
        config_path=args.config,
        relay_url=args.relay_url,
    )

    await system.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server interrupted")
