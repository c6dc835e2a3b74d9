from __future__ import annotations

from ..core.errors import ConfigurationError
from .settings import AppSettings


def validate_client_settings(settings: AppSettings) -> None:
    """確認逾時、重試與快取參數位於合理區間。"""

    if settings.http_timeout_seconds <= 0:
        raise ConfigurationError("HTTP_TIMEOUT_SECONDS 必須大於 0")
    if settings.http_retries < 0:
        raise ConfigurationError("HTTP_RETRIES 不可為負數")
    if settings.http_backoff_base_ms < 0:
        raise ConfigurationError("HTTP_BACKOFF_BASE_MS 不可為負數")
    if settings.cache_ttl_seconds <= 0:
        raise ConfigurationError("CACHE_TTL_SECONDS 必須大於 0")
    if settings.cache_max_entries is not None and settings.cache_max_entries < 1:
        raise ConfigurationError("CACHE_MAX_ENTRIES 必須為正整數")
    if settings.etherscan_tx_offset < 1:
        raise ConfigurationError("ETHERSCAN_TX_OFFSET 必須為正整數")
