from __future__ import annotations

import asyncio
from typing import Any, Callable, List

import httpx
import pytest

from onchain_credit_score.adapters.http_client import CachingHttpClient
from onchain_credit_score.core.errors import NetworkError, RequestTimeoutError, UpstreamError


URL = "https://provider.test/v1/data"


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_client(handler: Callable[[httpx.Request], Any], **kwargs: Any) -> CachingHttpClient:
    kwargs.setdefault("backoff_base", 0.0)
    return CachingHttpClient(transport=httpx.MockTransport(handler), **kwargs)


def _ok_handler(calls: List[httpx.Request], payload: Any = None) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status_code=200, json=payload if payload is not None else {"n": len(calls)})

    return handler


def test_second_call_within_ttl_uses_cache() -> None:
    calls: List[httpx.Request] = []

    async def scenario() -> tuple:
        async with _make_client(_ok_handler(calls)) as client:
            first = await client.get(URL, params={"id": "0xabc"})
            second = await client.get(URL, params={"id": "0xabc"})
            return first, second, client.cache_size

    first, second, cache_size = asyncio.run(scenario())
    assert first == second == {"n": 1}
    assert len(calls) == 1
    assert cache_size == 1
    assert calls[0].headers["accept"] == "application/json"


def test_expired_entry_is_refetched() -> None:
    calls: List[httpx.Request] = []
    clock = FakeClock()

    async def scenario() -> tuple:
        async with _make_client(_ok_handler(calls), cache_ttl=30.0, clock=clock) as client:
            first = await client.get(URL)
            clock.advance(29.9)
            cached = await client.get(URL)
            clock.advance(0.1)
            refreshed = await client.get(URL)
            return first, cached, refreshed

    first, cached, refreshed = asyncio.run(scenario())
    assert first == cached == {"n": 1}
    assert refreshed == {"n": 2}
    assert len(calls) == 2


def test_cache_key_includes_options() -> None:
    calls: List[httpx.Request] = []

    async def scenario() -> None:
        async with _make_client(_ok_handler(calls)) as client:
            await client.get(URL, params={"chain_id": "eth"})
            await client.get(URL, params={"chain_id": "bsc"})
            await client.get(URL, params={"chain_id": "eth"}, headers={"AccessKey": "other"})

    asyncio.run(scenario())
    assert len(calls) == 3


def test_use_cache_false_always_hits_network() -> None:
    calls: List[httpx.Request] = []

    async def scenario() -> int:
        async with _make_client(_ok_handler(calls)) as client:
            await client.get(URL, use_cache=False)
            await client.get(URL, use_cache=False)
            return client.cache_size

    assert asyncio.run(scenario()) == 0
    assert len(calls) == 2


def test_concurrent_identical_requests_are_coalesced() -> None:
    calls: List[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0.05)
        return httpx.Response(status_code=200, json={"shared": True})

    async def scenario() -> tuple:
        async with _make_client(handler) as client:
            results = await asyncio.gather(client.get(URL), client.get(URL))
            return results, client.pending_count

    (first, second), pending = asyncio.run(scenario())
    assert first == second == {"shared": True}
    assert len(calls) == 1
    assert pending == 0


def test_cancelling_one_waiter_keeps_shared_request_alive() -> None:
    calls: List[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0.05)
        return httpx.Response(status_code=200, json={"value": 7})

    async def scenario() -> tuple:
        async with _make_client(handler) as client:
            first = asyncio.ensure_future(client.get(URL))
            second = asyncio.ensure_future(client.get(URL))
            await asyncio.sleep(0.01)
            first.cancel()
            result = await second
            with pytest.raises(asyncio.CancelledError):
                await first
            return result

    assert asyncio.run(scenario()) == {"value": 7}
    assert len(calls) == 1


def test_retries_until_success() -> None:
    statuses = [503, 502, 200]
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        status = statuses[len(calls) - 1]
        return httpx.Response(status_code=status, json={"attempt": len(calls)})

    async def scenario() -> Any:
        async with _make_client(handler, retries=2) as client:
            return await client.get(URL)

    assert asyncio.run(scenario()) == {"attempt": 3}
    assert len(calls) == 3


def test_exhausted_retries_surface_last_error_and_are_not_cached() -> None:
    statuses = [500, 502, 503, 200]
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status_code=statuses[len(calls) - 1], json={"ok": True})

    async def scenario() -> tuple:
        async with _make_client(handler, retries=2) as client:
            with pytest.raises(NetworkError) as excinfo:
                await client.get(URL)
            pending = client.pending_count
            recovered = await client.get(URL)
            return excinfo.value, pending, recovered

    error, pending, recovered = asyncio.run(scenario())
    assert error.status_code == 503
    assert pending == 0
    assert len(calls) == 4
    assert recovered == {"ok": True}


def test_transport_errors_are_retried() -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status_code=200, json=[1, 2, 3])

    async def scenario() -> Any:
        async with _make_client(handler, retries=1) as client:
            return await client.get(URL)

    assert asyncio.run(scenario()) == [1, 2, 3]
    assert len(calls) == 2


def test_timeout_is_not_retried() -> None:
    calls: List[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(1.0)
        return httpx.Response(status_code=200, json={})

    async def scenario() -> tuple:
        async with _make_client(handler, timeout=0.05, retries=2) as client:
            with pytest.raises(RequestTimeoutError) as excinfo:
                await client.get(URL)
            return excinfo.value, client.pending_count, client.cache_size

    error, pending, cache_size = asyncio.run(scenario())
    assert isinstance(error, TimeoutError)
    assert len(calls) == 1
    assert pending == 0
    assert cache_size == 0


def test_invalid_json_raises_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=200, text="<html>maintenance</html>")

    async def scenario() -> None:
        async with _make_client(handler) as client:
            await client.get(URL)

    with pytest.raises(UpstreamError):
        asyncio.run(scenario())


def test_clear_cache_by_pattern_and_all() -> None:
    calls: List[httpx.Request] = []

    async def scenario() -> tuple:
        async with _make_client(_ok_handler(calls)) as client:
            await client.get("https://a.test/tokens")
            await client.get("https://a.test/chains")
            await client.get("https://b.test/tokens")
            removed = client.clear_cache("a.test/tokens")
            remaining = client.cache_size
            await client.get("https://a.test/tokens")
            cleared = client.clear_cache()
            return removed, remaining, cleared

    removed, remaining, cleared = asyncio.run(scenario())
    assert removed == 1
    assert remaining == 2
    assert cleared == 3
    assert len(calls) == 4


def test_max_entries_evicts_least_recently_used() -> None:
    calls: List[httpx.Request] = []

    async def scenario() -> int:
        async with _make_client(_ok_handler(calls), max_entries=2) as client:
            await client.get("https://a.test/1")
            await client.get("https://a.test/2")
            await client.get("https://a.test/1")
            await client.get("https://a.test/3")
            await client.get("https://a.test/1")
            await client.get("https://a.test/2")
            return client.cache_size

    assert asyncio.run(scenario()) == 2
    requested = [str(request.url) for request in calls]
    assert requested == [
        "https://a.test/1",
        "https://a.test/2",
        "https://a.test/3",
        "https://a.test/2",
    ]


def test_sweep_removes_expired_entries() -> None:
    calls: List[httpx.Request] = []
    clock = FakeClock()

    async def scenario() -> tuple:
        async with _make_client(_ok_handler(calls), cache_ttl=10.0, clock=clock) as client:
            await client.get("https://a.test/old")
            clock.advance(8)
            await client.get("https://a.test/new")
            clock.advance(5)
            return client.sweep(), client.cache_size

    removed, size = asyncio.run(scenario())
    assert removed == 1
    assert size == 1


def test_joining_waiter_that_wants_cache_stores_shared_result() -> None:
    calls: List[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        await asyncio.sleep(0.05)
        return httpx.Response(status_code=200, json={"n": len(calls)})

    async def scenario() -> tuple:
        async with _make_client(handler) as client:
            uncached = asyncio.ensure_future(client.get(URL, use_cache=False))
            await asyncio.sleep(0.01)
            joined = await client.get(URL)
            await uncached
            again = await client.get(URL)
            return joined, again, client.cache_size

    joined, again, cache_size = asyncio.run(scenario())
    assert joined == again == {"n": 1}
    assert len(calls) == 1
    assert cache_size == 1
