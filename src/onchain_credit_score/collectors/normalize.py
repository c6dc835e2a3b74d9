from __future__ import annotations

import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ..core.types import ActivityMetrics
from ..core.utils import to_float, to_int


def _rows(value: Any) -> List[dict]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, dict)]


class ActivityNormalizer:
    """將 Etherscan 與 DeBank 原始資料轉換為 ActivityMetrics。"""

    def normalize(self, slices: Mapping[str, Sequence[dict]]) -> ActivityMetrics:
        """缺少的資料片段一律視為空列表。"""

        transactions = _rows(slices.get("transactions"))
        tokens = _rows(slices.get("tokens"))
        return ActivityMetrics(
            transaction_count=len(transactions),
            token_ids=frozenset(self.token_ids(tokens)),
            chain_count=len(_rows(slices.get("chains"))),
            protocol_count=len(_rows(slices.get("protocols"))),
            nft_count=len(_rows(slices.get("nfts"))),
            oldest_transaction_at=self.oldest_timestamp(transactions),
            total_usd_value=self.total_usd_value(tokens),
        )

    @staticmethod
    def token_ids(tokens: Iterable[dict]) -> List[str]:
        identifiers: List[str] = []
        for token in tokens:
            identifier = token.get("id") or token.get("contract_address") or token.get("token_id")
            if identifier:
                chain = token.get("chain")
                key = str(identifier).lower()
                identifiers.append(f"{chain}:{key}" if chain else key)
        return identifiers

    @staticmethod
    def oldest_timestamp(transactions: Iterable[dict]) -> Optional[int]:
        timestamps = [
            value
            for value in (to_int(tx.get("timeStamp") or tx.get("time_at")) for tx in transactions)
            if value is not None and value > 0
        ]
        return min(timestamps) if timestamps else None

    @staticmethod
    def total_usd_value(tokens: Iterable[dict]) -> float:
        total = 0.0
        for token in tokens:
            value = to_float(token.get("price")) * to_float(token.get("amount"))
            if math.isfinite(value):
                total += value
        return total
