"""Tests for the rate-limit aware GitHub contents checks."""

import asyncio

import aiohttp
import pytest

from solidity_scout import crawler
from solidity_scout.crawler import (
    check_repo_for_file,
    contents_url,
    parse_rate_limit,
    rate_limit_wait,
    verify_marker,
    verify_repos,
)

from conftest import FakeResponse, FakeRotator, FakeSession

NOW = 1_700_000_000.0


@pytest.fixture
def frozen_time(monkeypatch):
    monkeypatch.setattr(crawler.time, "time", lambda: NOW)
    return NOW


def rate_limited(reset):
    return FakeResponse(403, headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": str(int(reset))})


class TestHelpers:
    def test_contents_url(self):
        assert contents_url("alice/foo", "foundry.toml", "https://api.example") == \
            "https://api.example/repos/alice/foo/contents/foundry.toml"

    def test_parse_rate_limit(self):
        assert parse_rate_limit({"x-ratelimit-remaining": "0", "x-ratelimit-reset": "123"}) == (0, 123.0)
        assert parse_rate_limit({}) == (None, None)
        assert parse_rate_limit({"x-ratelimit-remaining": "lots"}) == (None, None)

    @pytest.mark.parametrize("reset", ["nan", "inf", "-inf", "1.5e9"])
    def test_non_integer_reset_is_ignored(self, reset):
        assert parse_rate_limit({"x-ratelimit-remaining": "0", "x-ratelimit-reset": reset}) == (0, None)

    @pytest.mark.parametrize("reset", [float("nan"), float("inf")])
    def test_non_finite_reset_uses_floor(self, reset):
        assert rate_limit_wait(reset, NOW) == 60

    def test_wait_uses_reset_when_far_enough(self):
        assert rate_limit_wait(NOW + 300, NOW) == 300

    def test_wait_is_clamped_to_floor(self):
        assert rate_limit_wait(NOW + 30, NOW) == 60
        assert rate_limit_wait(NOW - 100, NOW) == 60
        assert rate_limit_wait(None, NOW) == 60


class TestCheckRepoForFile:
    async def test_present(self, sleeps):
        session = FakeSession(responses=[FakeResponse(200)])
        assert await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator("tok"))

        call = session.calls[0]
        assert call["url"] == "https://api.github.com/repos/alice/foo/contents/foundry.toml"
        assert call["headers"]["Authorization"] == "token tok"
        assert call["headers"]["User-Agent"]

    async def test_not_found_is_final(self, sleeps):
        session = FakeSession(responses=[FakeResponse(404)])
        assert not await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator())
        assert len(session.calls) == 1
        assert sleeps == []

    async def test_transient_errors_use_linear_backoff(self, sleeps):
        session = FakeSession(responses=[
            FakeResponse(500),
            aiohttp.ClientConnectionError("reset"),
            asyncio.TimeoutError(),
        ])
        assert not await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator())
        assert len(session.calls) == 3
        assert sleeps == [2, 4]

    async def test_retry_then_success(self, sleeps):
        session = FakeSession(responses=[FakeResponse(502), FakeResponse(200)])
        assert await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator())
        assert sleeps == [2]

    async def test_rate_limit_waits_for_reset(self, sleeps, frozen_time):
        session = FakeSession(responses=[rate_limited(NOW + 30), FakeResponse(200)])

        assert await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator())
        assert len(sleeps) == 1
        assert sleeps[0] >= 30

    async def test_rate_limit_far_reset(self, sleeps, frozen_time):
        session = FakeSession(responses=[rate_limited(NOW + 900), FakeResponse(404)])

        assert not await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator())
        assert sleeps == [900]

    async def test_garbage_reset_header_waits_the_floor(self, sleeps, frozen_time):
        session = FakeSession(responses=[
            FakeResponse(403, headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "nan"}),
            FakeResponse(200),
        ])

        assert await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator())
        assert sleeps == [60]

    async def test_rate_limit_reset_in_past_clamps(self, sleeps, frozen_time):
        session = FakeSession(responses=[rate_limited(NOW - 5), FakeResponse(200)])

        assert await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator())
        assert sleeps == [60]

    async def test_rate_limit_respects_attempt_cap(self, sleeps, frozen_time):
        session = FakeSession(responses=[rate_limited(NOW + 120)] * 3)

        assert not await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator())
        assert len(session.calls) == 3
        assert sleeps == [120, 120]

    async def test_forbidden_with_quota_is_plain_failure(self, sleeps, frozen_time):
        session = FakeSession(responses=[
            FakeResponse(403, headers={"x-ratelimit-remaining": "42"}),
            FakeResponse(200),
        ])

        assert await check_repo_for_file(session, "alice/foo", "foundry.toml", FakeRotator())
        assert sleeps == [2]


class TestVerifyMarker:
    async def test_short_circuits_on_first_candidate(self, sleeps):
        session = FakeSession(responses=[FakeResponse(200)])

        assert await verify_marker(session, "alice/foo", "hardhat", FakeRotator())
        assert [c["url"].rsplit("/", 1)[1] for c in session.calls] == ["hardhat.config.js"]

    async def test_falls_through_to_next_candidate(self, sleeps):
        session = FakeSession(responses=[FakeResponse(404), FakeResponse(200)])

        assert await verify_marker(session, "alice/foo", "hardhat", FakeRotator())
        assert [c["url"].rsplit("/", 1)[1] for c in session.calls] == [
            "hardhat.config.js", "hardhat.config.ts",
        ]

    async def test_absent(self, sleeps):
        session = FakeSession(responses=[FakeResponse(404)])
        assert not await verify_marker(session, "alice/foo", "foundry", FakeRotator())


class TestVerifyRepos:
    async def test_only_requested_kinds_are_checked(self, sleeps, monkeypatch):
        def handler(url, headers):
            if url.endswith("/repos/alice/foo/contents/hardhat.config.ts"):
                return FakeResponse(200)
            return FakeResponse(404)

        session = FakeSession(handler=handler)
        monkeypatch.setattr(crawler, "make_session", lambda *a, **kw: session)

        found, timed_out = await verify_repos(
            {"alice/foo": ["hardhat"], "bob/bar": ["hardhat", "foundry"]}, FakeRotator()
        )

        assert found == {"alice/foo": ["hardhat"], "bob/bar": []}
        assert timed_out is False
        assert not any("alice/foo/contents/foundry.toml" in c["url"] for c in session.calls)

    async def test_deadline_cancels_pending_checks(self, monkeypatch):
        async def slow_verify(*args, **kwargs):
            await asyncio.Event().wait()

        monkeypatch.setattr(crawler, "verify_marker", slow_verify)
        monkeypatch.setattr(crawler, "make_session", lambda *a, **kw: FakeSession())

        found, timed_out = await verify_repos({"alice/foo": ["hardhat"]}, FakeRotator(), timeout=0.01)

        assert found == {}
        assert timed_out is True
