"""Adapters package exports."""

from .debank import DeBankClient
from .etherscan import EtherscanClient, SupportedChain
from .http_client import CacheEntry, CachingHttpClient

__all__ = ["CachingHttpClient", "CacheEntry", "DeBankClient", "EtherscanClient", "SupportedChain"]
