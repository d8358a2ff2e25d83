"""Keyword heuristics that pick out likely smart-contract repositories."""

import logging
from typing import Iterable

from . import config
from .models import ActivityRecord, RepositoryVerdict, ShardVerdict
from .parser import parse_push_events
from .utils import split_repo_name

logger = logging.getLogger(__name__)


def build_lexicon(terms: Iterable[str]) -> frozenset[str]:
    """Lower-case terms into an immutable lexicon; multi-word terms can never match a token."""
    lexicon = set()
    for term in terms:
        term = term.strip().lower()
        if not term:
            continue
        if len(term.split()) != 1:
            logger.warning(f"Ignoring lexicon term with whitespace: {term!r}")
            continue
        lexicon.add(term)
    return frozenset(lexicon)


def load_lexicon(path: str) -> frozenset[str]:
    """One term per line; blank lines and `#` comments are skipped."""
    with open(path, "r", encoding="utf-8") as f:
        terms = [line.split("#", 1)[0] for line in f]
    return build_lexicon(terms)


def is_lexicon_hit(message: str, lexicon: frozenset[str]) -> bool:
    return not lexicon.isdisjoint(message.lower().split())


def marker_kinds_for(path: str) -> list[str]:
    return [
        kind for kind, names in config.MARKER_FILES.items()
        if any(path.endswith(name) for name in names)
    ]


def classify(records: Iterable[ActivityRecord], lexicon: frozenset[str]) -> ShardVerdict:
    """Scan commit messages and added files of push events into a partial verdict."""
    verdict = ShardVerdict()
    for record in records:
        repo_full_name = record.repo_name
        if split_repo_name(repo_full_name) is None:
            logger.info(f"Invalid repo name format: {repo_full_name!r}")
            verdict.invalid_repo_names += 1
            continue

        verdict.records += 1
        verdict.repos_seen.add(repo_full_name)
        for commit in record.payload.commits:
            if is_lexicon_hit(commit.message, lexicon):
                if repo_full_name not in verdict.lexicon_hits:
                    logger.debug(f"Solidity-related commit in {repo_full_name}: {commit.message!r}")
                verdict.lexicon_hits.add(repo_full_name)

            for file_name in commit.added:
                for kind in marker_kinds_for(file_name):
                    if repo_full_name not in verdict.local[kind]:
                        logger.info(f"Found {kind} config in repo {repo_full_name} ({file_name})")
                    verdict.local[kind].add(repo_full_name)
    return verdict


def classify_file(file_path: str, lexicon: frozenset[str]) -> ShardVerdict:
    """Parse and classify one shard; runs inside a worker process."""
    parsed = parse_push_events(file_path)
    verdict = classify(parsed.records, lexicon)
    verdict.malformed_lines = parsed.malformed_lines
    verdict.malformed_records = parsed.malformed_records
    return verdict


def merge_verdicts(partials: Iterable[ShardVerdict]) -> RepositoryVerdict:
    """Fold per-shard partials into one verdict; order and repetition do not matter."""
    merged = RepositoryVerdict()
    for partial in partials:
        merged.lexicon_hits |= partial.lexicon_hits
        merged.repos_seen |= partial.repos_seen
        for kind, repos in partial.local.items():
            merged.local[kind] |= repos
    return merged


def select_for_verification(
    verdict: RepositoryVerdict,
    policy: str = config.DEFAULT_MISSING_POLICY,
) -> dict[str, list[str]]:
    """
    Map each repository that needs a remote check to the marker kinds to check.

    Only lexicon-hit repositories qualify. With the "either" policy a repository
    is checked for every kind not confirmed locally; with "both" it is checked
    only when no kind was confirmed locally.
    """
    if policy not in config.MISSING_POLICIES:
        raise ValueError(f"Unknown missing-marker policy: {policy!r}")

    to_check = {}
    for repo_name in sorted(verdict.lexicon_hits):
        missing = [kind for kind in config.MARKER_FILES if repo_name not in verdict.local[kind]]
        if not missing:
            logger.info(f"Repo {repo_name} uses both Hardhat and Foundry")
            continue
        if policy == "both" and len(missing) != len(config.MARKER_FILES):
            continue
        logger.debug(f"Marking repo {repo_name} for API checks: {', '.join(missing)}")
        to_check[repo_name] = missing
    return to_check
