from __future__ import annotations

from typing import Optional


class CreditScoreError(Exception):
    """信用評分服務的基底例外。"""


class ConfigurationError(CreditScoreError):
    """設定或環境變數錯誤。"""


class MissingParameterError(CreditScoreError):
    """缺少必要參數（地址、鏈 ID 等），於發出請求前即拒絕。"""


class AdapterError(CreditScoreError):
    """外部資料提供者錯誤。"""


class UpstreamError(AdapterError):
    """提供者回應非 2xx 或內容格式錯誤。"""


class NetworkError(UpstreamError):
    """HTTP 非 2xx 狀態或傳輸層失敗，可重試。"""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RequestTimeoutError(AdapterError, TimeoutError):
    """請求超過期限，不重試。"""


class CalculationError(CreditScoreError):
    """評分計算錯誤；評分引擎對預設輸入皆有定義，正常流程不會拋出。"""


class DataUnavailableError(CreditScoreError):
    """所有啟用的資料來源皆失敗，無法組出任何資料。"""
