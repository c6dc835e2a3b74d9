from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from ..adapters.debank import DeBankClient
from ..adapters.etherscan import EtherscanClient, SupportedChain
from ..core.errors import MissingParameterError
from ..core.utils import normalize_address


@dataclass(frozen=True)
class QueryOptions:
    """單一提供者查詢的可選參數。"""

    type: Optional[str] = None
    chain_id: Optional[str] = None
    protocol_id: Optional[str] = None
    token_id: Optional[str] = None
    contract_address: Optional[str] = None
    page: int = 1
    offset: Optional[int] = None
    sort: str = "asc"
    start_time: Optional[int] = None
    end_time: Optional[int] = None


def _require(value: Optional[str], name: str, context: str) -> str:
    if not value:
        raise MissingParameterError(f"{context} 需要 {name} 參數")
    return value


def _int_chain(chain_id: Optional[str], default: int) -> int:
    if not chain_id:
        return default
    try:
        return int(chain_id)
    except ValueError as error:
        raise MissingParameterError(f"chain_id 必須為數字：{chain_id}") from error


class ProviderQueryService:
    """依 provider / resource / type 分派單一資料查詢，並在送出前檢查必要參數。"""

    def __init__(self, etherscan: EtherscanClient, debank: DeBankClient) -> None:
        self._etherscan = etherscan
        self._debank = debank
        self._handlers: Dict[Tuple[str, str], Callable[[str, QueryOptions], Awaitable[Dict[str, Any]]]] = {
            ("etherscan", "balance"): self._etherscan_balance,
            ("etherscan", "transactions"): self._etherscan_transactions,
            ("etherscan", "internal-transactions"): self._etherscan_internal,
            ("etherscan", "token-transfers"): self._etherscan_token_transfers,
            ("etherscan", "bridge-transactions"): self._etherscan_bridge,
            ("etherscan", "plasma-deposits"): self._etherscan_plasma,
            ("etherscan", "l2-transactions"): self._etherscan_l2,
            ("debank", "chains"): self._debank_chains,
            ("debank", "chain-balance"): self._debank_chain_balance,
            ("debank", "tokens"): self._debank_tokens,
            ("debank", "protocols"): self._debank_protocols,
            ("debank", "nfts"): self._debank_nfts,
            ("debank", "history"): self._debank_history,
            ("debank", "net-curve"): self._debank_net_curve,
            ("debank", "authorized"): self._debank_authorized,
        }

    async def run(
        self,
        provider: str,
        resource: str,
        address: Optional[str],
        options: Optional[QueryOptions] = None,
    ) -> Dict[str, Any]:
        handler = self._handlers.get((provider.lower(), resource.lower()))
        if handler is None:
            raise MissingParameterError(f"未知的查詢：{provider} {resource}")
        checked = normalize_address(address)
        return await handler(checked, options or QueryOptions())

    async def _etherscan_balance(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        chain = _int_chain(options.chain_id, SupportedChain.ETHEREUM)
        balance = await self._etherscan.get_ether_balance(address, chain_id=chain)
        return {"address": address, "balance": balance, "chainId": chain}

    async def _etherscan_transactions(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        chain = _int_chain(options.chain_id, SupportedChain.ETHEREUM)
        offset = options.offset or 10
        transactions = await self._etherscan.get_normal_transactions(
            address, page=options.page, offset=offset, sort=options.sort, chain_id=chain
        )
        return {
            "address": address,
            "transactions": transactions,
            "pagination": {"page": options.page, "offset": offset, "sort": options.sort},
            "chainId": chain,
        }

    async def _etherscan_internal(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        chain = _int_chain(options.chain_id, SupportedChain.ETHEREUM)
        offset = options.offset or 10
        transactions = await self._etherscan.get_internal_transactions(
            address, page=options.page, offset=offset, sort=options.sort, chain_id=chain
        )
        return {
            "address": address,
            "transactions": transactions,
            "pagination": {"page": options.page, "offset": offset, "sort": options.sort},
            "chainId": chain,
        }

    async def _etherscan_token_transfers(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        chain = _int_chain(options.chain_id, SupportedChain.ETHEREUM)
        token_type = (options.type or "erc20").lower()
        offset = options.offset or 10
        fetchers = {
            "erc20": self._etherscan.get_erc20_token_transfers,
            "erc721": self._etherscan.get_erc721_token_transfers,
            "erc1155": self._etherscan.get_erc1155_token_transfers,
        }
        if token_type not in fetchers:
            raise MissingParameterError(f"type 只能是 erc20、erc721 或 erc1155：{token_type}")
        transfers = await fetchers[token_type](
            address,
            contract_address=options.contract_address,
            page=options.page,
            offset=offset,
            sort=options.sort,
            chain_id=chain,
        )
        return {
            "address": address,
            "transfers": transfers,
            "tokenType": token_type,
            "pagination": {"page": options.page, "offset": offset, "sort": options.sort},
            "chainId": chain,
        }

    async def _etherscan_bridge(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        chain = _int_chain(options.chain_id, SupportedChain.POLYGON)
        transactions = await self._etherscan.get_bridge_transactions(
            address, page=options.page, offset=options.offset or 100, chain_id=chain
        )
        return {"address": address, "transactions": transactions, "chainId": chain}

    async def _etherscan_plasma(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        chain = _int_chain(options.chain_id, SupportedChain.POLYGON)
        deposits = await self._etherscan.get_plasma_deposits(
            address, page=options.page, offset=options.offset or 100, chain_id=chain
        )
        return {"address": address, "deposits": deposits, "chainId": chain}

    async def _etherscan_l2(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        chain = _int_chain(options.chain_id, SupportedChain.OPTIMISM)
        transaction_type = (options.type or "deposit").lower()
        offset = options.offset or 1000
        if transaction_type == "deposit":
            fetch = self._etherscan.get_deposit_transactions
        elif transaction_type == "withdrawal":
            fetch = self._etherscan.get_withdrawal_transactions
        else:
            raise MissingParameterError(f"type 只能是 deposit 或 withdrawal：{transaction_type}")
        transactions = await fetch(address, page=options.page, offset=offset, sort=options.sort, chain_id=chain)
        return {
            "address": address,
            "transactions": transactions,
            "transactionType": transaction_type,
            "pagination": {"page": options.page, "offset": offset, "sort": options.sort},
            "chainId": chain,
        }

    async def _debank_chains(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        if (options.type or "used") == "used":
            return {"address": address, "chains": await self._debank.get_used_chains(address), "type": "used"}
        return {"address": address, "balances": await self._debank.get_total_balance(address), "type": "balance"}

    async def _debank_chain_balance(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        chain_id = _require(options.chain_id, "chain_id", "chain-balance")
        balance = await self._debank.get_chain_balance(address, chain_id)
        return {"address": address, "chainId": chain_id, "balance": balance}

    async def _debank_tokens(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        query_type = options.type or "list"
        if query_type == "balance":
            chain_id = _require(options.chain_id, "chain_id", "tokens type=balance")
            token_id = _require(options.token_id, "token_id", "tokens type=balance")
            token = await self._debank.get_token_balance(address, chain_id, token_id)
            return {"address": address, "chainId": chain_id, "tokenId": token_id, "token": token, "type": "balance"}
        if query_type == "list":
            chain_id = _require(options.chain_id, "chain_id", "tokens type=list")
            tokens = await self._debank.get_token_list(address, chain_id)
            return {"address": address, "chainId": chain_id, "tokens": tokens, "type": "list"}
        return {"address": address, "tokens": await self._debank.get_token_list_all_chains(address), "type": "all"}

    async def _debank_protocols(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        query_type = options.type or "single"
        if query_type == "single":
            protocol_id = _require(options.protocol_id, "protocol_id", "protocols type=single")
            protocol = await self._debank.get_protocol(address, protocol_id)
            return {"address": address, "protocol": protocol, "type": "single"}
        if query_type == "complex":
            chain_id = _require(options.chain_id, "chain_id", "protocols type=complex")
            protocols = await self._debank.get_complex_protocol_list(address, chain_id)
            return {"address": address, "protocols": protocols, "chainId": chain_id, "type": "complex"}
        protocols = await self._debank.get_complex_protocol_list_all_chains(address)
        return {"address": address, "protocols": protocols, "type": "complex-all"}

    async def _debank_nfts(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        return {"address": address, "nfts": await self._debank.get_nft_list_all_chains(address)}

    async def _debank_history(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        query_type = options.type or "all"
        chain_id = None
        if query_type == "chain":
            chain_id = _require(options.chain_id, "chain_id", "history type=chain")
        history = await self._debank.get_history_list(
            address, chain_id=chain_id, start_time=options.start_time, end_time=options.end_time
        )
        payload: Dict[str, Any] = {"address": address, "history": history, "type": query_type}
        if chain_id:
            payload["chainId"] = chain_id
        if options.start_time and options.end_time:
            payload["timeRange"] = {"startTime": options.start_time, "endTime": options.end_time}
        return payload

    async def _debank_net_curve(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        query_type = options.type or "total"
        if query_type == "chain":
            chain_id = _require(options.chain_id, "chain_id", "net-curve type=chain")
            curve = await self._debank.get_chain_net_curve(address, chain_id)
            return {"address": address, "chainId": chain_id, "netCurve": curve, "type": "chain"}
        chain_ids = [item.strip() for item in (options.chain_id or "").split(",") if item.strip()]
        curve = await self._debank.get_total_net_curve(address, chain_ids or None)
        return {"address": address, "netCurve": curve, "type": "total"}

    async def _debank_authorized(self, address: str, options: QueryOptions) -> Dict[str, Any]:
        query_type = options.type or "tokens"
        if query_type == "tokens":
            authorized: Any = await self._debank.get_token_authorized_list(address)
        else:
            authorized = await self._debank.get_nft_authorized_list(address)
        return {"address": address, "authorized": authorized, "type": query_type}
