"""Etherscan token balance provider."""
from balance_monitor.providers.etherscan.cache import SnapshotCache
from balance_monitor.providers.etherscan.models import TokenInfo, token_info
from balance_monitor.providers.etherscan.provider import EtherscanBalanceProvider

__all__ = ["EtherscanBalanceProvider", "SnapshotCache", "TokenInfo", "token_info"]
