"""Decompression and line-oriented parsing of archive shards."""

import gzip
import json
import logging
import zlib

from pydantic import ValidationError

from . import config
from .models import ActivityRecord, ParsedShard

logger = logging.getLogger(__name__)


def parse_line(line: bytes) -> ActivityRecord | None:
    """
    Parse one archive line into a typed record.

    Raises ValueError for undecodable JSON and ValidationError for a record of
    the relevant type with missing or wrong-typed fields. Returns None for any
    other activity type.
    """
    data = json.loads(line)
    if not isinstance(data, dict) or data.get("type") != config.RELEVANT_EVENT_TYPE:
        return None
    return ActivityRecord.model_validate(data)


def parse_push_events(file_path: str) -> ParsedShard:
    """Read a whole shard once, keeping only well-formed push events."""
    parsed = ParsedShard(records=[])
    try:
        with gzip.open(file_path, "rb") as f:
            for line in f:
                if not line.strip():
                    continue
                parsed.total_lines += 1
                try:
                    record = parse_line(line)
                except ValidationError:
                    parsed.malformed_records += 1
                    continue
                except (ValueError, RecursionError):
                    # JSONDecodeError, UnicodeDecodeError and over-nested arrays
                    parsed.malformed_lines += 1
                    continue
                if record is None:
                    parsed.ignored_events += 1
                    continue
                parsed.records.append(record)
    except (OSError, EOFError, zlib.error) as e:
        # Truncated or corrupt stream: keep what was read before the damage
        logger.warning(f"Stopped reading {file_path} after {parsed.total_lines} lines: {e}")

    logger.debug(f"{file_path}: {len(parsed.records)} push events, "
                 f"{parsed.malformed_lines} malformed lines, "
                 f"{parsed.malformed_records} malformed records")
    return parsed
