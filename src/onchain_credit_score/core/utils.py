from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from web3 import Web3

from .errors import MissingParameterError


def utc_now() -> datetime:
    """回傳目前 UTC 時間。"""

    return datetime.now(tz=timezone.utc)


def normalize_address(address: Optional[str]) -> str:
    """驗證地址並轉為 EIP-55 checksum 格式。"""

    value = (address or "").strip()
    if not value:
        raise MissingParameterError("address 參數為必填")
    if not Web3.is_address(value):
        raise MissingParameterError(f"無效的區塊鏈地址：{value}")
    return Web3.to_checksum_address(value)


def to_float(value: Any, default: float = 0.0) -> float:
    """寬鬆轉換數值，無法解析時回傳預設值。"""

    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, str):
            text = value.strip()
            return int(text, 16) if text.lower().startswith("0x") else int(float(text))
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None
