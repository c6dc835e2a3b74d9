from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


SECONDS_PER_DAY = 24 * 60 * 60


class CamelModel(BaseModel):
    """對外序列化時使用 camelCase 欄位名稱。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActivityMetrics(CamelModel):
    """由提供者資料彙整出的鏈上活動指標，每次請求重新計算。"""

    model_config = ConfigDict(frozen=True)

    transaction_count: int = 0
    token_ids: FrozenSet[str] = Field(default_factory=frozenset)
    chain_count: int = 0
    protocol_count: int = 0
    nft_count: int = 0
    oldest_transaction_at: Optional[int] = None
    total_usd_value: float = 0.0

    @property
    def unique_token_count(self) -> int:
        return len(self.token_ids)

    def account_age_days(self, now: datetime) -> int:
        """以最早一筆交易計算帳戶天數，無交易時為 0。"""

        if self.oldest_transaction_at is None:
            return 0
        elapsed = int(now.timestamp()) - self.oldest_transaction_at
        return max(elapsed // SECONDS_PER_DAY, 0)


class ScoreBreakdown(CamelModel):
    """五項 0-100 子分數。"""

    model_config = ConfigDict(frozen=True)

    activity: int
    diversity: int
    longevity: int
    value: int
    protocol: int


class ScoreFactors(CamelModel):
    model_config = ConfigDict(frozen=True)

    total_transactions: int
    unique_tokens: int
    active_chains: int
    protocol_interactions: int
    nft_count: int
    account_age: int
    total_value: float


class CreditScore(CamelModel):
    """單次計算產生的信用分數，建立後不可變更。"""

    model_config = ConfigDict(frozen=True)

    overall: int
    breakdown: ScoreBreakdown
    factors: ScoreFactors
    credit_score: int

    def summarize(self) -> str:
        """回傳單行摘要。"""

        parts = " ".join(f"{name}={value}" for name, value in self.breakdown.model_dump().items())
        return f"score={self.credit_score} overall={self.overall} {parts}"


class CreditLevel(str, Enum):
    """由低至高排列的五個信用等級。"""

    POOR = "Poor"
    FAIR = "Fair"
    GOOD = "Good"
    VERY_GOOD = "Very Good"
    EXCELLENT = "Excellent"

    @property
    def rank(self) -> int:
        return list(CreditLevel).index(self)


class Interpretation(CamelModel):
    model_config = ConfigDict(frozen=True)

    level: CreditLevel
    description: str
    characteristics: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class SelectedApis(CamelModel):
    """要使用的資料來源開關。"""

    etherscan: bool = True
    debank: bool = True


class ScoreRequest(CamelModel):
    address: str
    selected_apis: SelectedApis = Field(default_factory=SelectedApis)


class DataUsed(CamelModel):
    """回報本次計算實際採用的資料量。"""

    etherscan: bool
    debank: bool
    transaction_count: int = 0
    token_count: int = 0
    protocol_count: int = 0
    chain_count: int = 0
    nft_count: int = 0
    failed_slices: List[str] = Field(default_factory=list)


class ScoreResponse(CamelModel):
    address: str
    credit_score: CreditScore
    interpretation: Interpretation
    data_used: DataUsed

    def to_payload(self) -> Dict[str, object]:
        """轉為對外 JSON 結構。"""

        return self.model_dump(mode="json", by_alias=True)
