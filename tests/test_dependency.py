"""Tests for dependency memoization and failure permanence."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from switchboard.dependency import UNATTEMPTED, Dependency, Failed, Resolved
from switchboard.exceptions import DependencyResolutionError, DependencyStateError


class TestResolve:

    @pytest.mark.asyncio
    async def test_success_is_cached(self):
        resolver = AsyncMock(return_value="client")
        dep = Dependency("mongodb", resolver)

        first = await dep.resolve()
        second = await dep.resolve()

        assert first == Resolved("client")
        assert second == Resolved("client")
        resolver.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_is_never_retried(self):
        resolver = AsyncMock(side_effect=ConnectionError("refused"))
        dep = Dependency("store", resolver)

        for _ in range(3):
            outcome = await dep.resolve()
            assert isinstance(outcome, Failed)

        assert resolver.await_count == 1
        assert dep.failed
        assert isinstance(dep.outcome.error, DependencyResolutionError)
        assert isinstance(dep.outcome.error.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_sync_resolver_supported(self):
        resolver = MagicMock(return_value="api-key")
        dep = Dependency("google api key", resolver)

        outcome = await dep.resolve()

        assert outcome == Resolved("api-key")
        resolver.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_sync_resolver_failure(self):
        dep = Dependency("env", MagicMock(side_effect=KeyError("TOKEN")))
        outcome = await dep.resolve()
        assert isinstance(outcome, Failed)

    @pytest.mark.asyncio
    async def test_concurrent_first_use_collapses_to_one_attempt(self):
        calls = 0
        release = asyncio.Event()

        async def slow_resolver():
            nonlocal calls
            calls += 1
            await release.wait()
            return "conn"

        dep = Dependency("db", slow_resolver)
        waiters = [asyncio.create_task(dep.resolve()) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        outcomes = await asyncio.gather(*waiters)

        assert calls == 1
        assert all(outcome == Resolved("conn") for outcome in outcomes)

    @pytest.mark.asyncio
    async def test_timeout_becomes_failure(self):
        async def hangs():
            await asyncio.sleep(10)

        dep = Dependency("slow", hangs, timeout=0.01)
        outcome = await dep.resolve()

        assert isinstance(outcome, Failed)
        assert "timed out" in str(outcome.error)

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_attempt(self):
        release = asyncio.Event()

        async def resolver():
            await release.wait()
            return 42

        dep = Dependency("shared", resolver)
        first = asyncio.create_task(dep.resolve())
        await asyncio.sleep(0)
        first.cancel()
        second = asyncio.create_task(dep.resolve())
        await asyncio.sleep(0)
        release.set()

        assert await second == Resolved(42)
        assert dep.resolved


class TestState:

    def test_initial_state(self):
        dep = Dependency("x", AsyncMock())
        assert dep.outcome is UNATTEMPTED
        assert not dep.attempted
        assert not dep.failed
        assert not dep.resolved

    @pytest.mark.asyncio
    async def test_attempted_after_failure(self):
        dep = Dependency("x", AsyncMock(side_effect=RuntimeError))
        await dep.resolve()
        assert dep.attempted
        assert dep.failed
        assert not dep.resolved


class TestFetchValue:

    def test_raises_before_resolution(self):
        dep = Dependency("x", AsyncMock(return_value=1))
        with pytest.raises(DependencyStateError, match="has not been resolved"):
            dep.fetch_value()

    @pytest.mark.asyncio
    async def test_raises_after_failure(self):
        dep = Dependency("x", AsyncMock(side_effect=RuntimeError("down")))
        await dep.resolve()
        with pytest.raises(DependencyStateError, match="failed to resolve"):
            dep.fetch_value()

    @pytest.mark.asyncio
    async def test_returns_value_after_success(self):
        dep = Dependency("x", AsyncMock(return_value={"ok": True}))
        await dep.resolve()
        assert dep.fetch_value() == {"ok": True}

    @pytest.mark.asyncio
    async def test_none_is_a_valid_resolved_value(self):
        dep = Dependency("optional", AsyncMock(return_value=None))
        outcome = await dep.resolve()
        assert outcome == Resolved(None)
        assert dep.fetch_value() is None
