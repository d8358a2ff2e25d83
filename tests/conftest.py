"""
Shared pytest fixtures and HTTP doubles.

The fakes mimic the small slice of aiohttp the package uses: `session.get()`
as an async context manager, `status`, `headers`, `read()` and
`raise_for_status()`.
"""

import gzip
import json
from unittest.mock import MagicMock

import aiohttp
import pytest


class FakeResponse:
    def __init__(self, status=200, headers=None, body=b""):
        self.status = status
        self.headers = headers or {}
        self._body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def read(self):
        return self._body

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(
                MagicMock(), (), status=self.status, message="fake error"
            )


class FakeSession:
    """Replays scripted responses; a scripted exception is raised from get()."""

    def __init__(self, responses=None, handler=None):
        self._responses = list(responses or [])
        self._handler = handler
        self.calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def get(self, url, headers=None):
        self.calls.append({"url": url, "headers": headers})
        if self._handler is not None:
            result = self._handler(url, headers)
        else:
            result = self._responses.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeRotator:
    def __init__(self, token="test-token"):
        self.token = token
        self.total_used = 0

    async def get_token(self):
        self.total_used += 1
        return self.token


@pytest.fixture
def sleeps(monkeypatch):
    """Record asyncio.sleep durations without waiting."""
    recorded = []

    async def _fake_sleep(seconds, *args, **kwargs):
        recorded.append(seconds)

    monkeypatch.setattr("solidity_scout.crawler.asyncio.sleep", _fake_sleep)
    return recorded


def push_event(repo_name, commits, event_type="PushEvent"):
    return {
        "id": "1",
        "type": event_type,
        "repo": {"id": 1, "name": repo_name},
        "payload": {"commits": commits},
    }


def commit(message, added=None):
    return {"sha": "abc", "message": message, "added": added or []}


def write_shard(path, events, extra_lines=()):
    """Write a gzip shard of JSON lines, optionally mixed with raw lines."""
    lines = [json.dumps(e).encode() for e in events]
    lines.extend(extra_lines)
    with gzip.open(path, "wb") as f:
        f.write(b"\n".join(lines) + b"\n")
    return str(path)
