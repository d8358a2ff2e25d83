"""Utility functions."""

import asyncio
import logging
import sys
from datetime import date, datetime, timedelta, timezone

import aiohttp

from . import config

logger = logging.getLogger(__name__)


def setup_logging(level=logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(config.LOG_FILE, mode="a"),
        ],
    )


def format_large_number(n: float) -> str:
    if abs(n) >= 1e9:
        return f"{n/1e9:.2f}B"
    if abs(n) >= 1e6:
        return f"{n/1e6:.2f}M"
    if abs(n) >= 1e3:
        return f"{n/1e3:.1f}K"
    return f"{n:.0f}"


def parse_date(value: str) -> date:
    return date.fromisoformat(value)


def default_date_window(days: int = config.DEFAULT_LOOKBACK_DAYS, today: date = None) -> tuple[date, date]:
    """Inclusive window ending today (UTC) and reaching `days` back."""
    if today is None:
        today = datetime.now(timezone.utc).date()
    return today - timedelta(days=days), today


def split_repo_name(full_name) -> tuple[str, str] | None:
    """Split `owner/name`; None unless there are exactly two non-empty parts."""
    if not isinstance(full_name, str):
        return None
    parts = full_name.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


async def gather_until(coros, timeout: float = None) -> tuple[list, bool]:
    """
    Run coroutines concurrently and collect the results that finish in time.

    Tasks still pending at the deadline are cancelled. A task that raises is
    logged and left out of the results; it never aborts its siblings.
    Returns (results, timed_out).
    """
    tasks = [asyncio.ensure_future(c) for c in coros]
    if not tasks:
        return [], False
    if timeout is not None:
        timeout = max(0.0, timeout)
    done, pending = await asyncio.wait(tasks, timeout=timeout)
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    results = []
    for task in tasks:
        if task not in done or task.cancelled():
            continue
        exc = task.exception()
        if exc is not None:
            logger.error(f"Task failed: {exc!r}")
            continue
        results.append(task.result())
    return results, bool(pending)


def make_session(limit: int, total_timeout: float) -> aiohttp.ClientSession:
    connector = aiohttp.TCPConnector(limit=limit)
    timeout = aiohttp.ClientTimeout(total=total_timeout)
    return aiohttp.ClientSession(connector=connector, timeout=timeout)
