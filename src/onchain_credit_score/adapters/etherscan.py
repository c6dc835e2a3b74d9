from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, List, Optional

from ..core.errors import AdapterError, UpstreamError
from .http_client import CachingHttpClient


ETHERSCAN_API_BASE_URL = "https://api.etherscan.io/v2/api"

# Etherscan 對查無資料也回 status=0，這些訊息視為空結果
EMPTY_RESULT_MESSAGES = ("No transactions found", "No records found", "No token transfers found")


class SupportedChain(IntEnum):
    """Etherscan v2 支援的鏈 ID。"""

    ETHEREUM = 1
    POLYGON = 137
    BSC = 56
    ARBITRUM = 42161
    OPTIMISM = 10
    AVALANCHE = 43114
    FANTOM = 250
    GNOSIS = 100
    MOONBEAM = 1284
    MOONRIVER = 1285
    HARMONY = 1666600000
    CRONOS = 25
    BTTC = 199
    CELO = 42220
    AURORA = 1313161554
    EVMOS = 9001
    METIS = 1088
    BOBA = 288
    RSK = 30
    HECO = 128
    OKC = 66
    KLAYTN = 8217
    IOTEX = 4689
    SMARTBCH = 10000
    ENERGYWEB = 246
    VOLTA = 73799
    THUNDERCORE = 108
    POLYGON_ZKEVM = 1101
    BASE = 8453
    LINEA = 59144
    SCROLL = 534352
    MANTLE = 5000
    ZKSYNC_ERA = 324
    POLYGON_ZKEVM_TESTNET = 1442
    BASE_TESTNET = 84531
    LINEA_TESTNET = 59140
    SCROLL_TESTNET = 534353
    MANTLE_TESTNET = 5001
    ZKSYNC_ERA_TESTNET = 280


def resolve_chain(chain_id: int | str | None) -> SupportedChain:
    """將鏈 ID 轉為 SupportedChain，不支援時拋出 AdapterError。"""

    if chain_id is None:
        return SupportedChain.ETHEREUM
    try:
        return SupportedChain(int(chain_id))
    except ValueError as error:
        raise AdapterError(f"不支援的 Etherscan 鏈 ID: {chain_id}") from error


class EtherscanClient:
    """Etherscan v2 帳戶查詢介面層（Provider A）。"""

    def __init__(
        self,
        http: CachingHttpClient,
        api_key: str = "",
        base_url: str = ETHERSCAN_API_BASE_URL,
        default_chain: int = SupportedChain.ETHEREUM,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._base_url = base_url
        self._default_chain = resolve_chain(default_chain)

    async def _request(self, params: Dict[str, Any], chain_id: int | None) -> Any:
        chain = resolve_chain(chain_id) if chain_id is not None else self._default_chain
        query: Dict[str, str] = {"chainid": str(int(chain)), "apikey": self._api_key}
        query.update({key: str(value) for key, value in params.items() if value is not None})
        payload = await self._http.get(self._base_url, params=query)
        if not isinstance(payload, dict) or "status" not in payload:
            raise UpstreamError("Etherscan 回應格式錯誤")
        if str(payload.get("status")) != "1":
            message = str(payload.get("message") or "")
            result = payload.get("result")
            if message.startswith(EMPTY_RESULT_MESSAGES) or result == []:
                return []
            raise UpstreamError(f"Etherscan API error: {message} {result or ''}".strip())
        return payload.get("result")

    async def _request_list(self, params: Dict[str, Any], chain_id: int | None) -> List[dict]:
        result = await self._request(params, chain_id)
        if not isinstance(result, list):
            raise UpstreamError("Etherscan 回傳結果不是列表")
        return [item for item in result if isinstance(item, dict)]

    async def get_ether_balance(
        self,
        address: str,
        tag: str = "latest",
        chain_id: Optional[int] = None,
    ) -> str:
        """取得單一地址的原生幣餘額（wei 字串）。"""

        result = await self._request(
            {"module": "account", "action": "balance", "address": address, "tag": tag},
            chain_id,
        )
        return str(result)

    async def get_bridge_transactions(
        self,
        address: str,
        page: int = 1,
        offset: int = 100,
        chain_id: Optional[int] = None,
    ) -> List[dict]:
        """跨鏈橋交易，僅 Gnosis、BTTC 與 Polygon 適用。"""

        return await self._request_list(
            {"module": "account", "action": "txnbridge", "address": address, "page": page, "offset": offset},
            chain_id,
        )

    async def get_normal_transactions(
        self,
        address: str,
        start_block: int = 0,
        end_block: int = 99999999,
        page: int = 1,
        offset: int = 10,
        sort: str = "asc",
        chain_id: Optional[int] = None,
    ) -> List[dict]:
        """一般交易列表。"""

        return await self._request_list(
            self._range_params("txlist", address, start_block, end_block, page, offset, sort),
            chain_id,
        )

    async def get_internal_transactions(
        self,
        address: str,
        start_block: int = 0,
        end_block: int = 99999999,
        page: int = 1,
        offset: int = 10,
        sort: str = "asc",
        chain_id: Optional[int] = None,
    ) -> List[dict]:
        return await self._request_list(
            self._range_params("txlistinternal", address, start_block, end_block, page, offset, sort),
            chain_id,
        )

    async def get_erc20_token_transfers(
        self,
        address: str,
        contract_address: Optional[str] = None,
        start_block: int = 0,
        end_block: int = 99999999,
        page: int = 1,
        offset: int = 10,
        sort: str = "asc",
        chain_id: Optional[int] = None,
    ) -> List[dict]:
        """ERC-20 代幣轉帳事件。"""

        params = self._range_params("tokentx", address, start_block, end_block, page, offset, sort)
        params["contractaddress"] = contract_address
        return await self._request_list(params, chain_id)

    async def get_erc721_token_transfers(
        self,
        address: str,
        contract_address: Optional[str] = None,
        start_block: int = 0,
        end_block: int = 99999999,
        page: int = 1,
        offset: int = 10,
        sort: str = "asc",
        chain_id: Optional[int] = None,
    ) -> List[dict]:
        params = self._range_params("tokennfttx", address, start_block, end_block, page, offset, sort)
        params["contractaddress"] = contract_address
        return await self._request_list(params, chain_id)

    async def get_erc1155_token_transfers(
        self,
        address: str,
        contract_address: Optional[str] = None,
        start_block: int = 0,
        end_block: int = 99999999,
        page: int = 1,
        offset: int = 10,
        sort: str = "asc",
        chain_id: Optional[int] = None,
    ) -> List[dict]:
        params = self._range_params("token1155tx", address, start_block, end_block, page, offset, sort)
        params["contractaddress"] = contract_address
        return await self._request_list(params, chain_id)

    async def get_plasma_deposits(
        self,
        address: str,
        page: int = 1,
        offset: int = 100,
        chain_id: Optional[int] = SupportedChain.POLYGON,
    ) -> List[dict]:
        """Plasma 存款紀錄，僅 Polygon 適用。"""

        return await self._request_list(
            {"module": "account", "action": "txnbridge", "address": address, "page": page, "offset": offset},
            chain_id,
        )

    async def get_deposit_transactions(
        self,
        address: str,
        page: int = 1,
        offset: int = 1000,
        sort: str = "asc",
        chain_id: Optional[int] = None,
    ) -> List[dict]:
        """L1 至 L2 的存款交易（Arbitrum 與 Optimism 系列）。"""

        return await self._request_list(
            {
                "module": "account",
                "action": "getdeposittxs",
                "address": address,
                "page": page,
                "offset": offset,
                "sort": sort,
            },
            chain_id,
        )

    async def get_withdrawal_transactions(
        self,
        address: str,
        page: int = 1,
        offset: int = 1000,
        sort: str = "asc",
        chain_id: Optional[int] = None,
    ) -> List[dict]:
        """L2 至 L1 的提款交易。"""

        return await self._request_list(
            {
                "module": "account",
                "action": "getwithdrawaltxs",
                "address": address,
                "page": page,
                "offset": offset,
                "sort": sort,
            },
            chain_id,
        )

    @staticmethod
    def _range_params(
        action: str,
        address: str,
        start_block: int,
        end_block: int,
        page: int,
        offset: int,
        sort: str,
    ) -> Dict[str, Any]:
        if sort not in ("asc", "desc"):
            raise AdapterError(f"sort 只能是 asc 或 desc：{sort}")
        return {
            "module": "account",
            "action": action,
            "address": address,
            "startblock": start_block,
            "endblock": end_block,
            "page": page,
            "offset": offset,
            "sort": sort,
        }
