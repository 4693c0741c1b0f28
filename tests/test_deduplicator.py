"""Tests for single-flight request coalescing."""

import asyncio

import pytest

from beststories.services.deduplicator import RequestDeduplicator


class GatedRequest:
    """Request that blocks until released and counts invocations."""

    def __init__(self, result="done"):
        self.result = result
        self.calls = 0
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.cancelled = False

    async def __call__(self):
        self.calls += 1
        self.started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return self.result


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_request():
    dedup = RequestDeduplicator()
    request = GatedRequest()

    first = asyncio.create_task(dedup.dedupe("item:1", request))
    second = asyncio.create_task(dedup.dedupe("item:1", request))
    await request.started.wait()
    request.release.set()

    assert await first == "done"
    assert await second == "done"
    assert request.calls == 1
    assert dedup.get_stats().deduplicated == 1
    assert dedup.get_in_flight_count() == 0


@pytest.mark.asyncio
async def test_different_keys_do_not_share():
    dedup = RequestDeduplicator()
    calls = []

    async def request(key):
        calls.append(key)
        return key

    results = await asyncio.gather(
        dedup.dedupe("a", lambda: request("a")),
        dedup.dedupe("b", lambda: request("b")),
    )

    assert results == ["a", "b"]
    assert sorted(calls) == ["a", "b"]


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_shared_request_running():
    dedup = RequestDeduplicator()
    request = GatedRequest()

    leaving = asyncio.create_task(dedup.dedupe("item:1", request))
    staying = asyncio.create_task(dedup.dedupe("item:1", request))
    await request.started.wait()

    leaving.cancel()
    with pytest.raises(asyncio.CancelledError):
        await leaving

    request.release.set()
    assert await staying == "done"
    assert request.cancelled is False


@pytest.mark.asyncio
async def test_last_waiter_cancelling_cancels_request():
    dedup = RequestDeduplicator()
    request = GatedRequest()

    only = asyncio.create_task(dedup.dedupe("item:1", request))
    await request.started.wait()

    only.cancel()
    with pytest.raises(asyncio.CancelledError):
        await only

    # let the cancelled request unwind
    for _ in range(5):
        await asyncio.sleep(0)

    assert request.cancelled is True
    assert dedup.get_in_flight_count() == 0


@pytest.mark.asyncio
async def test_errors_reach_every_waiter():
    dedup = RequestDeduplicator()

    async def broken():
        await asyncio.sleep(0.01)
        raise RuntimeError("boom")

    results = await asyncio.gather(
        dedup.dedupe("k", broken),
        dedup.dedupe("k", broken),
        return_exceptions=True,
    )

    assert all(isinstance(r, RuntimeError) for r in results)
    assert dedup.get_in_flight_count() == 0


class SlowToCancelRequest:
    """First call blocks and takes a while to unwind when cancelled."""

    def __init__(self):
        self.calls = 0
        self.started = asyncio.Event()
        self.unwound = False

    async def __call__(self):
        self.calls += 1
        if self.calls > 1:
            return f"fresh-{self.calls}"
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            await asyncio.sleep(0.01)
            self.unwound = True
            raise


@pytest.mark.asyncio
async def test_new_caller_does_not_join_abandoned_request():
    dedup = RequestDeduplicator()
    request = SlowToCancelRequest()

    first = asyncio.create_task(dedup.dedupe("item:1", request))
    await request.started.wait()
    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    assert dedup.get_in_flight_count() == 0
    assert request.unwound is False

    second = await dedup.dedupe("item:1", request)

    assert second == "fresh-2"
    assert request.calls == 2

    await asyncio.sleep(0.05)
    assert request.unwound is True


@pytest.mark.asyncio
async def test_waiter_starts_over_when_shared_request_is_cancelled():
    dedup = RequestDeduplicator()
    calls = 0

    async def cancelled_once():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0)
        if calls == 1:
            raise asyncio.CancelledError()
        return "second try"

    result = await dedup.dedupe("item:1", cancelled_once)

    assert result == "second try"
    assert calls == 2
    assert dedup.get_stats().total == 2


@pytest.mark.asyncio
async def test_cancel_all_cancels_waiters():
    dedup = RequestDeduplicator()
    request = GatedRequest()

    waiter = asyncio.create_task(dedup.dedupe("item:1", request))
    await request.started.wait()

    assert await dedup.cancel_all() == 1
    with pytest.raises(asyncio.CancelledError):
        await waiter

    assert request.calls == 1
    assert dedup.get_in_flight_count() == 0
