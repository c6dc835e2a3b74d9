from __future__ import annotations

import math
from datetime import datetime
from typing import Dict, Optional, Tuple, Union

from ..core.types import (
    ActivityMetrics,
    CreditLevel,
    CreditScore,
    Interpretation,
    ScoreBreakdown,
    ScoreFactors,
)
from ..core.utils import utc_now


# 每項子分數達到 100 分所需的量
TRANSACTIONS_FOR_MAX = 100
TOKENS_FOR_MAX = 50
AGE_DAYS_FOR_MAX = 365
USD_VALUE_FOR_MAX = 100_000
PROTOCOLS_FOR_MAX = 20

WEIGHT_ACTIVITY = 0.25
WEIGHT_DIVERSITY = 0.20
WEIGHT_LONGEVITY = 0.15
WEIGHT_VALUE = 0.25
WEIGHT_PROTOCOL = 0.15

MIN_CREDIT_SCORE = 300
MAX_CREDIT_SCORE = 850

# 各等級的下限（含）
LEVEL_THRESHOLDS: Tuple[Tuple[int, CreditLevel], ...] = (
    (750, CreditLevel.EXCELLENT),
    (700, CreditLevel.VERY_GOOD),
    (650, CreditLevel.GOOD),
    (600, CreditLevel.FAIR),
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _sub_score(amount: float, amount_for_max: float) -> int:
    if not math.isfinite(amount) or amount <= 0:
        return 0
    return _round_half_up(min(100.0, (amount / amount_for_max) * 100))


def calculate_score(metrics: ActivityMetrics, now: Optional[datetime] = None) -> CreditScore:
    """將活動指標轉換為 300-850 的信用分數。

    所有輸入皆有預設值，任何指標組合都會得到完整的分數物件，不會拋出例外。
    """

    factors = ScoreFactors(
        total_transactions=max(metrics.transaction_count, 0),
        unique_tokens=metrics.unique_token_count,
        active_chains=max(metrics.chain_count, 0),
        protocol_interactions=max(metrics.protocol_count, 0),
        nft_count=max(metrics.nft_count, 0),
        account_age=metrics.account_age_days(now or utc_now()),
        total_value=metrics.total_usd_value if math.isfinite(metrics.total_usd_value) else 0.0,
    )
    breakdown = ScoreBreakdown(
        activity=_sub_score(factors.total_transactions, TRANSACTIONS_FOR_MAX),
        diversity=_sub_score(factors.unique_tokens, TOKENS_FOR_MAX),
        longevity=_sub_score(factors.account_age, AGE_DAYS_FOR_MAX),
        value=_sub_score(factors.total_value, USD_VALUE_FOR_MAX),
        protocol=_sub_score(factors.protocol_interactions, PROTOCOLS_FOR_MAX),
    )
    overall = _round_half_up(
        breakdown.activity * WEIGHT_ACTIVITY
        + breakdown.diversity * WEIGHT_DIVERSITY
        + breakdown.longevity * WEIGHT_LONGEVITY
        + breakdown.value * WEIGHT_VALUE
        + breakdown.protocol * WEIGHT_PROTOCOL
    )
    credit_score = _round_half_up(
        MIN_CREDIT_SCORE + (overall / 100) * (MAX_CREDIT_SCORE - MIN_CREDIT_SCORE)
    )
    return CreditScore(
        overall=overall,
        breakdown=breakdown,
        factors=factors,
        credit_score=credit_score,
    )


_INTERPRETATIONS: Dict[CreditLevel, Interpretation] = {
    CreditLevel.EXCELLENT: Interpretation(
        level=CreditLevel.EXCELLENT,
        description="Exceptional blockchain creditworthiness with extensive DeFi experience",
        characteristics=[
            "Multiple protocol interactions",
            "High transaction volume",
            "Diverse token portfolio",
            "Cross-chain activity",
            "Long account history",
            "Significant portfolio value",
        ],
        recommendations=[
            "Consider advanced DeFi strategies",
            "Explore institutional DeFi products",
            "Monitor portfolio diversification",
            "Review security practices",
            "Consider lending protocols",
        ],
    ),
    CreditLevel.VERY_GOOD: Interpretation(
        level=CreditLevel.VERY_GOOD,
        description="Strong blockchain creditworthiness with solid DeFi participation",
        characteristics=[
            "Regular DeFi interactions",
            "Moderate to high transaction activity",
            "Good token diversity",
            "Established account history",
            "Decent portfolio value",
        ],
        recommendations=[
            "Continue exploring DeFi",
            "Consider yield farming",
            "Monitor gas costs",
            "Stay updated on new protocols",
            "Consider automated strategies",
        ],
    ),
    CreditLevel.GOOD: Interpretation(
        level=CreditLevel.GOOD,
        description="Good blockchain creditworthiness with growing DeFi presence",
        characteristics=[
            "Some DeFi interactions",
            "Basic transaction patterns",
            "Limited token diversity",
            "Recent account activity",
            "Moderate portfolio value",
        ],
        recommendations=[
            "Explore more DeFi protocols",
            "Diversify token holdings",
            "Learn about yield farming",
            "Consider automated strategies",
            "Monitor portfolio performance",
        ],
    ),
    CreditLevel.FAIR: Interpretation(
        level=CreditLevel.FAIR,
        description="Fair blockchain creditworthiness with basic DeFi activity",
        characteristics=[
            "Limited DeFi interactions",
            "Basic transaction patterns",
            "Minimal token diversity",
            "Short account history",
            "Small portfolio value",
        ],
        recommendations=[
            "Start with basic DeFi protocols",
            "Learn about DEX trading",
            "Explore educational resources",
            "Consider staking opportunities",
            "Build transaction history",
        ],
    ),
    CreditLevel.POOR: Interpretation(
        level=CreditLevel.POOR,
        description="Poor blockchain creditworthiness with minimal DeFi activity",
        characteristics=[
            "Very limited transactions",
            "Basic token holdings",
            "Minimal protocol interactions",
            "New account or inactive",
            "Very small portfolio",
        ],
        recommendations=[
            "Start with basic DeFi protocols",
            "Learn about yield farming basics",
            "Consider DEX trading",
            "Explore educational resources",
            "Build consistent transaction history",
        ],
    ),
}


def level_for(score: int) -> CreditLevel:
    for lower_bound, level in LEVEL_THRESHOLDS:
        if score >= lower_bound:
            return level
    return CreditLevel.POOR


def interpret_score(score: Union[CreditScore, int]) -> Interpretation:
    """依 750/700/650/600 門檻回傳等級說明。"""

    value = score.credit_score if isinstance(score, CreditScore) else int(score)
    return _INTERPRETATIONS[level_for(value)].model_copy(deep=True)
