"""Async retrieval of hourly event archive shards."""

import asyncio
import logging
import os

import aiohttp

from . import config
from .models import Shard
from .utils import gather_until, make_session

logger = logging.getLogger(__name__)


def shard_url(shard: Shard, base_url: str = config.ARCHIVE_BASE_URL) -> str:
    return f"{base_url}/{shard.name}"


def shard_path(shard: Shard, data_dir: str = config.DATA_DIR) -> str:
    return os.path.join(data_dir, shard.name)


async def download_file(session: aiohttp.ClientSession, url: str, path: str):
    """Write the full response body to `path`; raise on any failure."""
    tmp_path = path + ".part"
    async with session.get(url) as resp:
        resp.raise_for_status()
        content = await resp.read()
    with open(tmp_path, "wb") as f:
        f.write(content)
    os.replace(tmp_path, path)


async def fetch_shard(
    session: aiohttp.ClientSession,
    shard: Shard,
    data_dir: str = config.DATA_DIR,
    base_url: str = config.ARCHIVE_BASE_URL,
) -> str:
    """
    Fetch one shard unless it is already on disk.

    Returns "present", "downloaded" or "failed". A failure is reported for
    this shard only and never raised.
    """
    path = shard_path(shard, data_dir)
    if os.path.exists(path):
        logger.debug(f"File already exists, skipping download: {path}")
        return "present"

    url = shard_url(shard, base_url)
    logger.info(f"Downloading: {url}")
    for attempt in range(1, config.MAX_ATTEMPTS + 1):
        try:
            await download_file(session, url, path)
            return "downloaded"
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Failed to download {url}: {e} (attempt {attempt})")
            if os.path.exists(path + ".part"):
                os.remove(path + ".part")
        if attempt < config.MAX_ATTEMPTS:
            await asyncio.sleep(config.BACKOFF_SECONDS * attempt)

    logger.error(f"Giving up on {url} after {config.MAX_ATTEMPTS} attempts")
    return "failed"


async def fetch_shards(
    shards: list[Shard],
    data_dir: str = config.DATA_DIR,
    base_url: str = config.ARCHIVE_BASE_URL,
    timeout: float = None,
    progress_callback=None,
) -> tuple[dict[Shard, str], bool]:
    """Fetch shards with bounded concurrency. Returns (status per shard, timed_out)."""
    semaphore = asyncio.Semaphore(config.FETCH_CONCURRENCY)

    async with make_session(config.FETCH_CONCURRENCY, config.DOWNLOAD_TIMEOUT) as session:

        async def _fetch_one(shard):
            async with semaphore:
                status = await fetch_shard(session, shard, data_dir, base_url)
            if progress_callback:
                progress_callback(1)
            return shard, status

        results, timed_out = await gather_until([_fetch_one(s) for s in shards], timeout)

    statuses = dict(results)
    for shard in shards:
        statuses.setdefault(shard, "failed")
    return statuses, timed_out
