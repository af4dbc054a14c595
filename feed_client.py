#!/usr/bin/env python3
"""
Feed client that plays the scraper's part against a scoreboard relay.
Posts the contest time once, then standings rows every interval until the
contest is over. Rows are simulated or loaded from a JSON file.
"""

import argparse
import asyncio
import json
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

from cp_scoreboard.config import parse_instant
from cp_scoreboard.feed import MockStandings
from cp_scoreboard.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def filter_ranked(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop rows the judge shows without a rank ("--")."""
    return [row for row in rows if row.get("rank") != "--"]


def load_rows(path: str) -> List[Dict[str, Any]]:
    """
    Load scraped rows from a JSON file.

    @param path: File holding either a row list or ``{"rows": [...]}``
    @return: Row list
    @raise ValueError: If the file holds no row list
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("rows")
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a list of rows")
    return data


async def post_ranking(
    session: aiohttp.ClientSession,
    base_url: str,
    key: str,
    rows: List[Dict[str, Any]],
) -> bool:
    """Send one standings upload to the relay."""
    try:
        async with session.post(
            f"{base_url}/api/postRanking",
            json={"data": rows},
            headers={"key": key},
        ) as resp:
            if resp.status != 200:
                logger.error("Status: %s %s", resp.status, resp.reason)
                return False
            logger.info("Data sent successfully: %s", await resp.json())
            return True
    except aiohttp.ClientError as e:
        logger.error("Error sending data: %s", e)
        return False


async def post_contest_time(
    session: aiohttp.ClientSession,
    base_url: str,
    key: str,
    start_time: str,
    duration: int,
) -> bool:
    """Announce the contest schedule to the relay."""
    try:
        async with session.post(
            f"{base_url}/api/postContestTime",
            json={"startTime": start_time, "duration": duration},
            headers={"key": key},
        ) as resp:
            if resp.status != 200:
                logger.error("Status: %s %s", resp.status, resp.reason)
                return False
            logger.info("Contest time posted successfully")
            return True
    except aiohttp.ClientError as e:
        logger.error("Error posting contest time: %s", e)
        return False


async def run_feed(
    base_url: str,
    key: str,
    start_time: str,
    duration: int,
    interval: float,
    rows_path: Optional[str] = None,
    seed: Optional[int] = None,
) -> None:
    contest_end = parse_instant(start_time) + timedelta(minutes=duration)
    logger.info("Contest timing: %s to %s (%d minutes)", start_time, contest_end.isoformat(), duration)

    mock = None if rows_path else MockStandings(seed=seed)

    async with aiohttp.ClientSession(headers={"User-Agent": "scoreboard-feed/1.0"}) as session:
        await post_contest_time(session, base_url, key, start_time, duration)

        while True:
            if datetime.now(timezone.utc) > contest_end:
                logger.info("Contest has ended. Stopping feed.")
                return

            rows = load_rows(rows_path) if rows_path else mock.step()
            rows = filter_ranked(rows)
            if rows:
                await post_ranking(session, base_url, key, rows)
            else:
                logger.warning("No valid rows after filtering")

            await asyncio.sleep(interval)


def main():
    parser = argparse.ArgumentParser(
        description="Post contest standings to a scoreboard relay",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--backend",
        default=os.getenv("BACKEND_URL", "http://localhost:4000"),
        help="Relay base URL (env: BACKEND_URL)",
    )
    parser.add_argument(
        "--key",
        default=os.getenv("KEY"),
        help="Upload key (env: KEY)",
    )
    parser.add_argument(
        "--start",
        default=os.getenv("CONTEST_START") or datetime.now(timezone.utc).isoformat(timespec="seconds"),
        help="Contest start, ISO 8601 (env: CONTEST_START)",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=int(os.getenv("CONTEST_DURATION", "300")),
        help="Contest length in minutes (env: CONTEST_DURATION)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=int(os.getenv("SCRAPING_INTERVAL", "30000")) / 1000,
        help="Seconds between uploads (env: SCRAPING_INTERVAL, in ms)",
    )
    parser.add_argument(
        "--rows",
        help="JSON file of scraped rows to post instead of simulated standings",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for simulated standings",
    )

    args = parser.parse_args()
    configure_logging()

    if not args.key:
        parser.error("an upload key is required (--key or KEY)")
    if args.rows and not Path(args.rows).is_file():
        parser.error(f"{args.rows} is not a file")

    try:
        asyncio.run(
            run_feed(
                args.backend.rstrip("/"),
                args.key,
                args.start,
                args.duration,
                args.interval,
                rows_path=args.rows,
                seed=args.seed,
            )
        )
    except KeyboardInterrupt:
        logger.info("Feed interrupted")


if __name__ == "__main__":
    main()
