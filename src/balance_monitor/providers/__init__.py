"""Token balance providers.

EtherscanBalanceProvider fetches ERC-20/BEP-20 balances through the Etherscan
v2 multichain API with primary/secondary key failover and a short-lived cache.

Example:
    async with EtherscanBalanceProvider([key], cache=SnapshotCache(240)) as provider:
        result = await provider.fetch_balance(wallet, usdt_contract, 56)
        if isinstance(result, BalanceSnapshot):
            print(f"{result.balance_formatted} {result.symbol}")
"""
from balance_monitor.providers.core import BalanceProviderABC
from balance_monitor.providers.etherscan import (EtherscanBalanceProvider,
                                                 SnapshotCache)

__all__ = ["BalanceProviderABC", "EtherscanBalanceProvider", "SnapshotCache"]
