from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Set

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.errors import NetworkError, RequestTimeoutError, UpstreamError


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_RETRIES = 2
DEFAULT_BACKOFF_BASE = 0.1
DEFAULT_CACHE_TTL = 30.0


@dataclass
class CacheEntry:
    """快取項目；超過 TTL 後不得再回傳。"""

    payload: Any
    created_at: float
    ttl: float

    def is_live(self, now: float) -> bool:
        return now - self.created_at < self.ttl


class CachingHttpClient:
    """帶有 TTL 快取、請求合併與指數退避重試的非同步 GET 用戶端。

    快取與進行中請求表都存在實例上，整個程序建立一次並傳給各個提供者
    adapter 共用。所有狀態只在單一事件迴圈中存取。
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        max_entries: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._timeout = timeout
        self._retries = retries
        self._backoff_base = backoff_base
        self._cache_ttl = cache_ttl
        self._max_entries = max_entries
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._pending: Dict[str, asyncio.Task] = {}
        self._cache_requested: Set[str] = set()
        self._client = httpx.AsyncClient(
            headers={
                "Accept": "application/json",
                "Cache-Control": "max-age=30",
                "User-Agent": "onchain-credit-score/0.1.0",
                **(headers or {}),
            },
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        """關閉底層 HTTP 連線。"""

        await self._client.aclose()

    async def __aenter__(self) -> "CachingHttpClient":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @staticmethod
    def cache_key(
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> str:
        options = {
            "params": {key: str(value) for key, value in (params or {}).items()},
            "headers": dict(headers or {}),
        }
        return f"{url}:{json.dumps(options, sort_keys=True)}"

    async def get(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        use_cache: bool = True,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
    ) -> Any:
        """取得 JSON 資料；命中快取或合併進行中的相同請求時不會重複送出。"""

        key = self.cache_key(url, params, headers)
        if use_cache:
            cached = self._lookup(key)
            if cached is not None:
                logger.debug("http_cache_hit", extra={"url": url})
                return cached.payload

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._load(
                    key,
                    url,
                    params=params,
                    headers=headers,
                    use_cache=use_cache,
                    timeout=self._timeout if timeout is None else timeout,
                    retries=self._retries if retries is None else retries,
                )
            )
            self._pending[key] = task
        else:
            logger.debug("http_request_coalesced", extra={"url": url})
            if use_cache:
                self._cache_requested.add(key)
        # 個別呼叫端被取消時不影響共用的請求
        return await asyncio.shield(task)

    def clear_cache(self, url_pattern: Optional[str] = None) -> int:
        """清除全部快取，或只清除鍵值包含 url_pattern 的項目。"""

        if url_pattern is None:
            removed = len(self._cache)
            self._cache.clear()
            return removed
        keys = [key for key in self._cache if url_pattern in key]
        for key in keys:
            del self._cache[key]
        return len(keys)

    def sweep(self) -> int:
        """移除所有已過期項目。"""

        now = self._clock()
        expired = [key for key, entry in self._cache.items() if not entry.is_live(now)]
        for key in expired:
            del self._cache[key]
        return len(expired)

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if not entry.is_live(self._clock()):
            del self._cache[key]
            return None
        self._cache.move_to_end(key)
        return entry

    def _store(self, key: str, payload: Any) -> None:
        self._cache[key] = CacheEntry(payload=payload, created_at=self._clock(), ttl=self._cache_ttl)
        self._cache.move_to_end(key)
        if self._max_entries is not None:
            while len(self._cache) > self._max_entries:
                self._cache.popitem(last=False)

    async def _load(
        self,
        key: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]],
        headers: Optional[Mapping[str, str]],
        use_cache: bool,
        timeout: float,
        retries: int,
    ) -> Any:
        try:
            retrying = AsyncRetrying(
                retry=retry_if_exception_type(NetworkError),
                wait=wait_exponential(multiplier=self._backoff_base, exp_base=2),
                stop=stop_after_attempt(retries + 1),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            )
            payload = await retrying(self._send, url, params, headers, timeout)
            if use_cache or key in self._cache_requested:
                self._store(key, payload)
            return payload
        finally:
            self._pending.pop(key, None)
            self._cache_requested.discard(key)

    async def _send(
        self,
        url: str,
        params: Optional[Mapping[str, Any]],
        headers: Optional[Mapping[str, str]],
        timeout: float,
    ) -> Any:
        try:
            response = await asyncio.wait_for(
                self._client.get(url, params=params, headers=headers, timeout=timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as error:
            raise RequestTimeoutError(f"請求逾時（{timeout}s）：{url}") from error
        except httpx.TransportError as error:
            raise NetworkError(f"連線失敗：{error}") from error

        if response.is_error:
            raise NetworkError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as error:
            raise UpstreamError(f"回應不是合法的 JSON：{url}") from error
