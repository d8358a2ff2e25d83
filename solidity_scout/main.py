"""Main orchestration: download archives, classify push events, verify remotely.

The run is a strict sequence of phases:
  1. Fetch every hourly shard in the date window (bounded concurrency)
  2. Parse and classify every shard on disk in worker processes, then fold
     the per-shard partial verdicts into one
  3. Ask the GitHub API about marker kinds still undetermined after phase 2
Each phase starts only once the previous one has fully finished.
"""

import argparse
import asyncio
import glob
import logging
import os
import sys
from concurrent.futures import Executor, ProcessPoolExecutor
from datetime import date, timedelta

from tqdm import tqdm

from . import config
from .classifier import build_lexicon, classify_file, load_lexicon, merge_verdicts, select_for_verification
from .crawler import verify_repos
from .downloader import fetch_shards
from .models import RepositoryVerdict, RunReport, iter_shards
from .token_manager import TokenRotator
from .utils import default_date_window, format_large_number, gather_until, parse_date, setup_logging

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_FETCHING = "fetching"
STATE_CLASSIFYING = "classifying"
STATE_VERIFYING = "verifying"
STATE_DONE = "done"


class Deadline:
    """Run-level time budget shared by every phase."""

    def __init__(self, seconds: float | None):
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._expires = None if seconds is None else loop.time() + seconds

    def remaining(self) -> float | None:
        if self._expires is None:
            return None
        return max(0.0, self._expires - self._loop.time())

    @property
    def expired(self) -> bool:
        return self._expires is not None and self._loop.time() >= self._expires


# ─── Phase 1: Shard Download ─────────────────────────────────────────────────

async def phase1_fetch(start: date, end: date, data_dir: str, report: RunReport, deadline: Deadline):
    """Download every shard in the inclusive window that is not on disk yet."""
    logger.info("=" * 60)
    logger.info(f"PHASE 1: Fetching archive shards {start} .. {end}")
    logger.info("=" * 60)

    shards = iter_shards(start, end)
    report.shards_total = len(shards)
    pbar = tqdm(total=len(shards), desc="Shards", unit="shards")

    def _progress(n):
        pbar.update(n)

    statuses, timed_out = await fetch_shards(
        shards, data_dir, timeout=deadline.remaining(), progress_callback=_progress
    )
    pbar.close()

    for shard, status in sorted(statuses.items()):
        if status == "downloaded":
            report.shards_downloaded += 1
        elif status == "present":
            report.shards_present += 1
        else:
            report.failed_shards.append(shard.name)
    report.timed_out |= timed_out

    logger.info(f"Shards: {report.shards_downloaded} downloaded, {report.shards_present} already present, "
                f"{len(report.failed_shards)} failed")


# ─── Phase 2: Parse + Classify ───────────────────────────────────────────────

async def phase2_classify(
    data_dir: str,
    lexicon: frozenset[str],
    report: RunReport,
    deadline: Deadline,
    executor: Executor,
) -> RepositoryVerdict:
    """Classify every shard present on disk and fold the partial verdicts."""
    logger.info("=" * 60)
    logger.info("PHASE 2: Parsing and classifying push events")
    logger.info("=" * 60)

    files = sorted(glob.glob(os.path.join(data_dir, f"*{config.SHARD_SUFFIX}")))
    loop = asyncio.get_running_loop()
    pbar = tqdm(total=len(files), desc="Classify", unit="files")

    async def _classify_one(path):
        partial = await loop.run_in_executor(executor, classify_file, path, lexicon)
        pbar.update(1)
        return partial

    partials, timed_out = await gather_until([_classify_one(f) for f in files], deadline.remaining())
    pbar.close()

    verdict = merge_verdicts(partials)
    report.files_classified = len(partials)
    report.records = sum(p.records for p in partials)
    report.malformed_lines = sum(p.malformed_lines for p in partials)
    report.malformed_records = sum(p.malformed_records for p in partials)
    report.invalid_repo_names = sum(p.invalid_repo_names for p in partials)
    report.repos_seen = len(verdict.repos_seen)
    report.lexicon_hit_repos = len(verdict.lexicon_hits)
    report.local_confirmed = {kind: len(repos) for kind, repos in verdict.local.items()}
    report.timed_out |= timed_out

    logger.info(f"Classified {len(partials)}/{len(files)} files: {format_large_number(report.records)} push events, "
                f"{report.repos_seen:,} repos, {report.lexicon_hit_repos:,} with Solidity-related commits")
    return verdict


# ─── Phase 3: Remote Verification ────────────────────────────────────────────

async def phase3_verify(
    verdict: RepositoryVerdict,
    policy: str,
    rotator: TokenRotator,
    report: RunReport,
    deadline: Deadline,
    api_base: str = config.API_BASE_URL,
):
    """Check the GitHub API for marker kinds not confirmed locally."""
    logger.info("=" * 60)
    logger.info(f"PHASE 3: Remote verification (policy: {policy})")
    logger.info("=" * 60)

    to_check = select_for_verification(verdict, policy)
    total = len(to_check)
    logger.info(f"Total repos to process: {total}")

    pbar = tqdm(total=total, desc="Verify", unit="repos")
    processed = 0

    def _progress(n):
        nonlocal processed
        processed += n
        pbar.update(n)
        if processed % config.PROGRESS_INTERVAL == 0:
            logger.info(f"Processed {processed}/{total} repos...")

    found, timed_out = await verify_repos(
        to_check, rotator, api_base, timeout=deadline.remaining(), progress_callback=_progress
    )
    pbar.close()

    # Single-threaded fold of every finished check
    for repo_name, kinds in found.items():
        for kind in kinds:
            verdict.remote[kind].add(repo_name)
    report.repos_verified = len(found)
    report.nothing_found = sum(1 for kinds in found.values() if not kinds)
    report.timed_out |= timed_out


def finalize_report(verdict: RepositoryVerdict, report: RunReport):
    report.hardhat_repos = verdict.confirmed("hardhat")
    report.foundry_repos = verdict.confirmed("foundry")
    report.local_confirmed = {kind: len(repos) for kind, repos in verdict.local.items()}
    report.remote_confirmed = {
        kind: len(repos - verdict.local[kind]) for kind, repos in verdict.remote.items()
    }


def log_summary(report: RunReport):
    logger.info("\n" + "=" * 60)
    logger.info("RUN COMPLETE" + (" (deadline reached, results are partial)" if report.timed_out else ""))
    logger.info("=" * 60)
    logger.info(f"{'Marker':<10} {'Local':>8} {'Remote':>8} {'Total':>8}")
    logger.info("-" * 40)
    for kind, repos in (("hardhat", report.hardhat_repos), ("foundry", report.foundry_repos)):
        logger.info(f"{kind:<10} {report.local_confirmed.get(kind, 0):>8} "
                    f"{report.remote_confirmed.get(kind, 0):>8} {len(repos):>8}")
    logger.info(f"Repos seen: {report.repos_seen:,}, verified remotely: {report.repos_verified:,}, "
                f"nothing found: {report.nothing_found:,}")
    logger.info(f"Skipped: {report.invalid_repo_names:,} invalid repo names, "
                f"{report.malformed_lines:,} malformed lines, {report.malformed_records:,} malformed records, "
                f"{len(report.failed_shards)} failed shards")


# ─── Full Pipeline ────────────────────────────────────────────────────────────

async def run_pipeline(
    start: date,
    end: date,
    data_dir: str = config.DATA_DIR,
    lexicon: frozenset[str] = None,
    policy: str = config.DEFAULT_MISSING_POLICY,
    rotator: TokenRotator = None,
    timeout: float = config.RUN_TIMEOUT,
    skip_download: bool = False,
    skip_verify: bool = False,
    executor: Executor = None,
    api_base: str = config.API_BASE_URL,
) -> RunReport:
    """Run all phases and return the in-memory report."""
    if policy not in config.MISSING_POLICIES:
        raise ValueError(f"Unknown missing-marker policy: {policy!r}")
    if lexicon is None:
        lexicon = build_lexicon(config.DEFAULT_LEXICON)

    # Startup resources: fail before any work is done
    os.makedirs(data_dir, exist_ok=True)
    if rotator is None and not skip_verify:
        rotator = TokenRotator()

    report = RunReport(policy=policy)
    deadline = Deadline(timeout)

    if not skip_download:
        report.state = STATE_FETCHING
        await phase1_fetch(start, end, data_dir, report, deadline)
    else:
        logger.info("Skipping Phase 1 (using shards already on disk)")

    report.state = STATE_CLASSIFYING
    own_executor = executor is None
    if own_executor:
        executor = ProcessPoolExecutor(max_workers=config.PARSE_WORKERS)
    try:
        verdict = await phase2_classify(data_dir, lexicon, report, deadline, executor)
    finally:
        if own_executor:
            # Past the deadline, do not wait on shards still being parsed
            executor.shutdown(wait=not deadline.expired, cancel_futures=True)

    if skip_verify:
        logger.info("Skipping Phase 3 (remote verification)")
    elif deadline.expired:
        logger.error("Run deadline reached before verification; skipping Phase 3")
        report.timed_out = True
    else:
        report.state = STATE_VERIFYING
        await phase3_verify(verdict, policy, rotator, report, deadline, api_base)

    finalize_report(verdict, report)
    report.state = STATE_DONE
    log_summary(report)
    return report


def main():
    parser = argparse.ArgumentParser(description="Find Hardhat and Foundry repositories in GH Archive push events")
    parser.add_argument("--start", type=parse_date, help="First day to fetch (YYYY-MM-DD)")
    parser.add_argument("--end", type=parse_date, help="Last day to fetch, inclusive (YYYY-MM-DD)")
    parser.add_argument("--days", type=int, default=config.DEFAULT_LOOKBACK_DAYS,
                        help="Days to look back from today when --start is omitted")
    parser.add_argument("--data-dir", default=config.DATA_DIR, help="Directory holding the archive shards")
    parser.add_argument("--lexicon", help="File of commit-message keywords, one per line")
    parser.add_argument("--policy", choices=config.MISSING_POLICIES, default=config.DEFAULT_MISSING_POLICY,
                        help="Verify repos missing either marker or only those missing both")
    parser.add_argument("--timeout", type=float, default=config.RUN_TIMEOUT,
                        help="Overall run deadline in seconds")
    parser.add_argument("--skip-download", action="store_true", help="Only use shards already on disk")
    parser.add_argument("--skip-verify", action="store_true", help="Skip GitHub API checks")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    start, end = default_date_window(args.days)
    if args.start:
        start = args.start
        end = args.end or start
    elif args.end:
        end = args.end
        start = end - timedelta(days=args.days)
    if start > end:
        parser.error(f"--start {start} is after --end {end}")

    lexicon = load_lexicon(args.lexicon) if args.lexicon else build_lexicon(config.DEFAULT_LEXICON)

    try:
        report = asyncio.run(run_pipeline(
            start, end,
            data_dir=args.data_dir,
            lexicon=lexicon,
            policy=args.policy,
            timeout=args.timeout,
            skip_download=args.skip_download,
            skip_verify=args.skip_verify,
        ))
    except (RuntimeError, OSError) as e:
        logger.error(f"Cannot start: {e}")
        sys.exit(1)

    print(f"Final Hardhat Repos: {sorted(report.hardhat_repos)}")
    print(f"Final Foundry Repos: {sorted(report.foundry_repos)}")


if __name__ == "__main__":
    main()
