from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """應用程式環境設定。"""

    feature_etherscan: bool = Field(True, alias="FEATURE_ETHERSCAN")
    feature_debank: bool = Field(True, alias="FEATURE_DEBANK")

    etherscan_api_key: str = Field("", alias="ETHERSCAN_API_KEY")
    etherscan_base_url: HttpUrl = Field("https://api.etherscan.io/v2/api", alias="ETHERSCAN_BASE_URL")
    etherscan_tx_offset: int = Field(100, alias="ETHERSCAN_TX_OFFSET")
    default_chain_id: int = Field(1, alias="DEFAULT_CHAIN_ID")

    debank_api_key: str = Field("", alias="DEBANK_API_KEY")
    debank_base_url: HttpUrl = Field("https://pro-openapi.debank.com/v1", alias="DEBANK_BASE_URL")

    http_timeout_seconds: float = Field(10.0, alias="HTTP_TIMEOUT_SECONDS")
    http_retries: int = Field(2, alias="HTTP_RETRIES")
    http_backoff_base_ms: float = Field(100.0, alias="HTTP_BACKOFF_BASE_MS")
    cache_ttl_seconds: float = Field(30.0, alias="CACHE_TTL_SECONDS")
    cache_max_entries: Optional[int] = Field(None, alias="CACHE_MAX_ENTRIES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=(".env",), env_file_encoding="utf-8", extra="ignore")

    @property
    def http_backoff_base_seconds(self) -> float:
        return self.http_backoff_base_ms / 1000.0

    @property
    def etherscan_url(self) -> str:
        return str(self.etherscan_base_url).rstrip("/")

    @property
    def debank_url(self) -> str:
        return str(self.debank_base_url).rstrip("/")

    @field_validator("cache_max_entries", mode="before")
    @classmethod
    def _empty_max_entries(cls, value: Optional[str | int]) -> Optional[int]:
        if value in (None, "", "null", "None", "0", 0):
            return None
        if isinstance(value, str):
            return int(value)
        return value


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """載入並快取設定。"""

    return AppSettings()
