"""Async GitHub contents API checks for build-tool marker files."""

import asyncio
import logging
import math
import time

import aiohttp

from . import config
from .token_manager import TokenRotator
from .utils import gather_until, make_session

logger = logging.getLogger(__name__)


def contents_url(repo_name: str, path: str, api_base: str = config.API_BASE_URL) -> str:
    return f"{api_base}/repos/{repo_name}/contents/{path}"


def parse_rate_limit(headers) -> tuple[int | None, int | None]:
    """Read (remaining quota, reset UNIX time) from response headers."""
    remaining = headers.get("x-ratelimit-remaining")
    reset_time = headers.get("x-ratelimit-reset")
    try:
        remaining = int(remaining) if remaining is not None else None
    except ValueError:
        remaining = None
    try:
        reset_time = int(reset_time) if reset_time is not None else None
    except ValueError:
        reset_time = None
    return remaining, reset_time


def rate_limit_wait(reset_time: float | None, now: float) -> float:
    if reset_time is None or not math.isfinite(reset_time):
        return config.RATE_LIMIT_MIN_SLEEP
    return max(reset_time - now, config.RATE_LIMIT_MIN_SLEEP)


async def check_repo_for_file(
    session: aiohttp.ClientSession,
    repo_name: str,
    path: str,
    rotator: TokenRotator,
    api_base: str = config.API_BASE_URL,
) -> bool:
    """
    Ask the contents API whether `path` exists in the repository.

    2xx means present and 404 means absent, both final. A 403 with no quota
    left waits until the declared reset (at least RATE_LIMIT_MIN_SLEEP) and
    retries; anything else backs off linearly. After MAX_ATTEMPTS the answer
    is False.
    """
    url = contents_url(repo_name, path, api_base)
    for attempt in range(1, config.MAX_ATTEMPTS + 1):
        token = await rotator.get_token()
        headers = {
            "Authorization": f"token {token}",
            "User-Agent": config.USER_AGENT,
            "Accept": "application/vnd.github.v3+json",
        }
        wait = config.BACKOFF_SECONDS * attempt
        try:
            async with session.get(url, headers=headers) as resp:
                if 200 <= resp.status < 300:
                    return True
                if resp.status == 404:
                    return False
                remaining, reset_time = parse_rate_limit(resp.headers)
                if resp.status == 403 and remaining == 0:
                    wait = rate_limit_wait(reset_time, time.time())
                    logger.warning(f"Rate limit exceeded on {repo_name}. Sleeping for {wait:.0f} seconds...")
                else:
                    logger.warning(f"Unexpected status {resp.status} for {url} (attempt {attempt})")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Error making request to {url}: {e!r} (attempt {attempt})")

        if attempt < config.MAX_ATTEMPTS:
            await asyncio.sleep(wait)

    logger.error(f"Failed to check {path} in {repo_name} after {config.MAX_ATTEMPTS} attempts")
    return False


async def verify_marker(
    session: aiohttp.ClientSession,
    repo_name: str,
    kind: str,
    rotator: TokenRotator,
    api_base: str = config.API_BASE_URL,
) -> bool:
    """True as soon as any candidate file for the marker kind exists remotely."""
    for path in config.MARKER_FILES[kind]:
        if await check_repo_for_file(session, repo_name, path, rotator, api_base):
            return True
    return False


async def verify_repos(
    to_check: dict[str, list[str]],
    rotator: TokenRotator,
    api_base: str = config.API_BASE_URL,
    timeout: float = None,
    progress_callback=None,
) -> tuple[dict[str, list[str]], bool]:
    """
    Verify undetermined marker kinds with bounded concurrency.

    Returns ({repo: kinds confirmed remotely} for every repo that finished,
    timed_out).
    """
    semaphore = asyncio.Semaphore(config.VERIFY_CONCURRENCY)
    async with make_session(config.VERIFY_CONCURRENCY, config.API_TIMEOUT) as session:

        async def _verify_one(repo_name, kinds):
            async with semaphore:
                found = [
                    kind for kind in kinds
                    if await verify_marker(session, repo_name, kind, rotator, api_base)
                ]
            if found:
                logger.info(f"{', '.join(found)} config found via API in repo {repo_name}")
            else:
                logger.info(f"Nothing found in {repo_name}")
            if progress_callback:
                progress_callback(1)
            return repo_name, found

        results, timed_out = await gather_until(
            [_verify_one(repo, kinds) for repo, kinds in to_check.items()], timeout
        )

    return dict(results), timed_out
