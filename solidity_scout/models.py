"""Typed shapes for archive shards, activity records and run results."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from pydantic import BaseModel, Field

from . import config


# --- Archive shards ---

@dataclass(frozen=True, order=True)
class Shard:
    """One hour of one day of the public event archive."""

    day: date
    hour: int

    def __post_init__(self):
        if not 0 <= self.hour < config.HOURS_PER_DAY:
            raise ValueError(f"hour must be in [0, 23], got {self.hour}")

    @property
    def name(self) -> str:
        # Hour is deliberately not zero-padded
        return f"{self.day.isoformat()}-{self.hour}{config.SHARD_SUFFIX}"

    @property
    def starts_at(self) -> datetime:
        return datetime(self.day.year, self.day.month, self.day.day, self.hour, tzinfo=timezone.utc)


def iter_shards(start: date, end: date, now: datetime = None) -> list[Shard]:
    """All shards in the inclusive date window, skipping hours that have not begun."""
    if now is None:
        now = datetime.now(timezone.utc)
    shards = []
    day = start
    while day <= end:
        for hour in range(config.HOURS_PER_DAY):
            shard = Shard(day, hour)
            if shard.starts_at > now:
                continue
            shards.append(shard)
        day += timedelta(days=1)
    return shards


# --- Activity records (validated at the parse boundary) ---

class CommitEntry(BaseModel):
    message: str = ""
    added: list[str] = Field(default_factory=list)


class PushPayload(BaseModel):
    commits: list[CommitEntry] = Field(default_factory=list)


class RepoRef(BaseModel):
    name: str


class ActivityRecord(BaseModel):
    type: str
    repo: RepoRef
    payload: PushPayload = Field(default_factory=PushPayload)

    @property
    def repo_name(self) -> str:
        return self.repo.name


@dataclass
class ParsedShard:
    records: list[ActivityRecord]
    total_lines: int = 0
    malformed_lines: int = 0
    malformed_records: int = 0
    ignored_events: int = 0


# --- Classification results ---

@dataclass
class ShardVerdict:
    """Owned partial result of classifying one shard."""

    lexicon_hits: set[str] = field(default_factory=set)
    local: dict[str, set[str]] = field(
        default_factory=lambda: {kind: set() for kind in config.MARKER_FILES}
    )
    repos_seen: set[str] = field(default_factory=set)
    records: int = 0
    invalid_repo_names: int = 0
    malformed_lines: int = 0
    malformed_records: int = 0


CONFIRMED_LOCAL = "confirmed-local"
CONFIRMED_REMOTE = "confirmed-remote"
UNDETERMINED = "undetermined"


@dataclass
class RepositoryVerdict:
    """Merged evidence per repository and marker kind."""

    lexicon_hits: set[str] = field(default_factory=set)
    local: dict[str, set[str]] = field(
        default_factory=lambda: {kind: set() for kind in config.MARKER_FILES}
    )
    remote: dict[str, set[str]] = field(
        default_factory=lambda: {kind: set() for kind in config.MARKER_FILES}
    )
    repos_seen: set[str] = field(default_factory=set)

    def state(self, repo_name: str, kind: str) -> str:
        if repo_name in self.local[kind]:
            return CONFIRMED_LOCAL
        if repo_name in self.remote[kind]:
            return CONFIRMED_REMOTE
        return UNDETERMINED

    def confirmed(self, kind: str) -> set[str]:
        return self.local[kind] | self.remote[kind]


@dataclass
class RunReport:
    state: str = "idle"
    policy: str = config.DEFAULT_MISSING_POLICY
    hardhat_repos: set[str] = field(default_factory=set)
    foundry_repos: set[str] = field(default_factory=set)
    local_confirmed: dict[str, int] = field(default_factory=dict)
    remote_confirmed: dict[str, int] = field(default_factory=dict)
    shards_total: int = 0
    shards_downloaded: int = 0
    shards_present: int = 0
    failed_shards: list[str] = field(default_factory=list)
    files_classified: int = 0
    records: int = 0
    malformed_lines: int = 0
    malformed_records: int = 0
    invalid_repo_names: int = 0
    repos_seen: int = 0
    lexicon_hit_repos: int = 0
    repos_verified: int = 0
    nothing_found: int = 0
    timed_out: bool = False
