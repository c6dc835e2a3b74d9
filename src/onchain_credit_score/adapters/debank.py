from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from ..core.errors import UpstreamError
from .http_client import CachingHttpClient


DEBANK_API_BASE_URL = "https://pro-openapi.debank.com/v1"


class DeBankClient:
    """DeBank Pro OpenAPI 錢包資產資料來源（Provider B）。"""

    def __init__(
        self,
        http: CachingHttpClient,
        api_key: str = "",
        base_url: str = DEBANK_API_BASE_URL,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._headers = {"accept": "application/json", "AccessKey": api_key}

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> Any:
        query = {key: str(value) for key, value in params.items() if value is not None}
        return await self._http.get(f"{self._base_url}{endpoint}", params=query, headers=self._headers)

    async def _get_list(self, endpoint: str, params: Dict[str, Any]) -> List[dict]:
        payload = await self._get(endpoint, params)
        if not isinstance(payload, list):
            raise UpstreamError(f"DeBank {endpoint} 回傳結果不是列表")
        return [item for item in payload if isinstance(item, dict)]

    async def _get_object(self, endpoint: str, params: Dict[str, Any]) -> dict:
        payload = await self._get(endpoint, params)
        if not isinstance(payload, dict):
            raise UpstreamError(f"DeBank {endpoint} 回傳結果不是物件")
        return payload

    async def get_used_chains(self, address: str) -> List[dict]:
        """使用者曾使用過的鏈。"""

        return await self._get_list("/user/used_chain_list", {"id": address})

    async def get_chain_balance(self, address: str, chain_id: str) -> dict:
        return await self._get_object("/user/chain_balance", {"id": address, "chain_id": chain_id})

    async def get_total_balance(self, address: str) -> dict:
        """所有支援鏈上的總資產。"""

        return await self._get_object("/user/total_balance", {"id": address})

    async def get_protocol(self, address: str, protocol_id: str) -> dict:
        return await self._get_object("/user/protocol", {"id": address, "protocol_id": protocol_id})

    async def get_complex_protocol_list(self, address: str, chain_id: str) -> List[dict]:
        return await self._get_list("/user/complex_protocol_list", {"id": address, "chain_id": chain_id})

    async def get_complex_protocol_list_all_chains(self, address: str) -> List[dict]:
        """所有鏈上的協議部位。"""

        return await self._get_list("/user/all_complex_protocol_list", {"id": address})

    async def get_token_balance(self, address: str, chain_id: str, token_id: str) -> dict:
        return await self._get_object(
            "/user/token",
            {"id": address, "chain_id": chain_id, "token_id": token_id},
        )

    async def get_token_list(self, address: str, chain_id: str) -> List[dict]:
        return await self._get_list("/user/token_list", {"id": address, "chain_id": chain_id})

    async def get_token_list_all_chains(self, address: str) -> List[dict]:
        """所有鏈上的代幣餘額。"""

        return await self._get_list("/user/all_token_list", {"id": address})

    async def get_nft_list_all_chains(self, address: str) -> List[dict]:
        return await self._get_list("/user/all_nft_list", {"id": address})

    async def get_history_list(
        self,
        address: str,
        chain_id: Optional[str] = None,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[dict]:
        """交易歷史；未指定 chain_id 時查詢所有鏈。"""

        endpoint = "/user/history_list" if chain_id else "/user/all_history_list"
        params: Dict[str, Any] = {"id": address, "chain_id": chain_id}
        if start_time:
            params["start_time"] = start_time
        if end_time:
            params["end_time"] = end_time
        payload = await self._get(endpoint, params)
        if isinstance(payload, dict):
            history = payload.get("history_list", [])
            return [item for item in history if isinstance(item, dict)]
        if isinstance(payload, list):
            return [item for item in payload if isinstance(item, dict)]
        raise UpstreamError("DeBank 歷史資料格式錯誤")

    async def get_token_authorized_list(self, address: str) -> List[dict]:
        return await self._get_list("/user/token_authorized_list", {"id": address})

    async def get_nft_authorized_list(self, address: str) -> dict | List[dict]:
        return await self._get("/user/nft_authorized_list", {"id": address})

    async def get_chain_net_curve(self, address: str, chain_id: str) -> List[dict]:
        """單一鏈 24 小時淨值曲線。"""

        return await self._get_list("/user/chain_net_curve", {"id": address, "chain_id": chain_id})

    async def get_total_net_curve(self, address: str, chain_ids: Optional[Sequence[str]] = None) -> List[dict]:
        params: Dict[str, Any] = {"id": address}
        if chain_ids:
            params["chain_ids"] = ",".join(chain_ids)
        return await self._get_list("/user/total_net_curve", params)
