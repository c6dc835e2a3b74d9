from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import structlog

from ..adapters.debank import DeBankClient
from ..adapters.etherscan import EtherscanClient
from ..adapters.http_client import CachingHttpClient
from ..config.settings import AppSettings
from ..config.validators import validate_client_settings
from ..core.errors import DataUnavailableError
from ..core.types import DataUsed, ScoreRequest, ScoreResponse, SelectedApis
from ..core.utils import normalize_address
from .normalize import ActivityNormalizer
from .scorer import calculate_score, interpret_score


logger = structlog.get_logger(__name__)

ETHERSCAN = "etherscan"
DEBANK = "debank"


@dataclass(frozen=True)
class SliceRequest:
    """一個具名的資料片段請求，依 provider 開關決定是否執行。"""

    name: str
    provider: str
    fetch: Callable[[], Awaitable[Any]]
    enabled: bool = True


@dataclass
class SliceResult:
    name: str
    provider: str
    ok: bool
    data: Any = None
    error: Optional[BaseException] = None


@dataclass
class FanOutResult:
    """彙整所有片段結果，失敗的片段以空列表取代。"""

    results: Dict[str, SliceResult] = field(default_factory=dict)

    def data(self, name: str, default: Any = None) -> Any:
        result = self.results.get(name)
        if result is None or not result.ok:
            return [] if default is None else default
        return result.data

    @property
    def failed(self) -> List[str]:
        return [name for name, result in self.results.items() if not result.ok]

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and all(not result.ok for result in self.results.values())


async def fan_out(requests: Sequence[SliceRequest]) -> FanOutResult:
    """並行執行所有啟用的片段並等待全部結束，個別失敗不影響其他片段。"""

    active = [request for request in requests if request.enabled]
    outcomes = await asyncio.gather(*(request.fetch() for request in active), return_exceptions=True)
    result = FanOutResult()
    for request, outcome in zip(active, outcomes):
        if isinstance(outcome, Exception):
            logger.warning(
                "slice_fetch_failed",
                slice=request.name,
                provider=request.provider,
                error=str(outcome) or type(outcome).__name__,
            )
            result.results[request.name] = SliceResult(request.name, request.provider, ok=False, error=outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            result.results[request.name] = SliceResult(request.name, request.provider, ok=True, data=outcome)
    return result


class CreditScorePipeline:
    """取得提供者資料、正規化並計算信用分數。"""

    def __init__(
        self,
        settings: AppSettings,
        http: Optional[CachingHttpClient] = None,
        etherscan: Optional[EtherscanClient] = None,
        debank: Optional[DeBankClient] = None,
    ) -> None:
        validate_client_settings(settings)
        self._settings = settings
        self._http = http or CachingHttpClient(
            timeout=settings.http_timeout_seconds,
            retries=settings.http_retries,
            backoff_base=settings.http_backoff_base_seconds,
            cache_ttl=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
        )
        self._owns_http = http is None
        self._etherscan = etherscan or EtherscanClient(
            self._http,
            api_key=settings.etherscan_api_key,
            base_url=settings.etherscan_url,
            default_chain=settings.default_chain_id,
        )
        self._debank = debank or DeBankClient(
            self._http,
            api_key=settings.debank_api_key,
            base_url=settings.debank_url,
        )
        self._normalizer = ActivityNormalizer()

    @property
    def http(self) -> CachingHttpClient:
        return self._http

    @property
    def etherscan(self) -> EtherscanClient:
        return self._etherscan

    @property
    def debank(self) -> DeBankClient:
        return self._debank

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "CreditScorePipeline":
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

    def build_requests(self, address: str, selected: SelectedApis) -> List[SliceRequest]:
        """依據選擇的資料來源建立具名片段請求。"""

        offset = self._settings.etherscan_tx_offset
        etherscan = self._etherscan
        debank = self._debank
        return [
            SliceRequest("balance", ETHERSCAN, lambda: etherscan.get_ether_balance(address), selected.etherscan),
            SliceRequest(
                "transactions",
                ETHERSCAN,
                lambda: etherscan.get_normal_transactions(address, offset=offset, sort="asc"),
                selected.etherscan,
            ),
            SliceRequest(
                "token_transfers",
                ETHERSCAN,
                lambda: etherscan.get_erc20_token_transfers(address, offset=offset, sort="desc"),
                selected.etherscan,
            ),
            SliceRequest("chains", DEBANK, lambda: debank.get_used_chains(address), selected.debank),
            SliceRequest("tokens", DEBANK, lambda: debank.get_token_list_all_chains(address), selected.debank),
            SliceRequest(
                "protocols",
                DEBANK,
                lambda: debank.get_complex_protocol_list_all_chains(address),
                selected.debank,
            ),
            SliceRequest("nfts", DEBANK, lambda: debank.get_nft_list_all_chains(address), selected.debank),
        ]

    async def calculate(self, request: ScoreRequest, now: Optional[datetime] = None) -> ScoreResponse:
        """對外的計算信用分數操作。"""

        address = normalize_address(request.address)
        selected = request.selected_apis
        log = logger.bind(address=address, etherscan=selected.etherscan, debank=selected.debank)
        log.info("credit_score_started")

        fetched = await fan_out(self.build_requests(address, selected))
        if fetched.all_failed:
            log.error("credit_score_no_data", failed=fetched.failed)
            raise DataUnavailableError(f"所有資料來源皆失敗：{', '.join(fetched.failed)}")

        slices = {name: fetched.data(name) for name in fetched.results}
        metrics = self._normalizer.normalize(slices)
        score = calculate_score(metrics, now=now)
        interpretation = interpret_score(score)
        data_used = DataUsed(
            etherscan=selected.etherscan,
            debank=selected.debank,
            transaction_count=metrics.transaction_count,
            token_count=len(fetched.data("tokens")),
            protocol_count=metrics.protocol_count,
            chain_count=metrics.chain_count,
            nft_count=metrics.nft_count,
            failed_slices=fetched.failed,
        )
        log.info(
            "credit_score_completed",
            summary=score.summarize(),
            failed=fetched.failed,
        )
        return ScoreResponse(
            address=address,
            credit_score=score,
            interpretation=interpretation,
            data_used=data_used,
        )

