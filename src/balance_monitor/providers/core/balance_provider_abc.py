"""Abstract base class for token balance providers."""
from abc import ABC, abstractmethod

from balance_monitor.schemas import BalanceSnapshot, FetchFailure


class BalanceProviderABC(ABC):
    """Base interface for all token balance providers.

    A provider never raises for an unreachable upstream: fetch_balance returns a
    FetchFailure instead so callers can tell "no data" apart from a balance.
    """

    @abstractmethod
    async def fetch_balance(
        self,
        wallet: str,
        contract_address: str,
        chain_id: int,
        force_refresh: bool = False,
        *,
        decimals: int | None = None,
        symbol: str | None = None,
    ) -> BalanceSnapshot | FetchFailure:
        """Fetch the token balance of a wallet.

        Args:
            wallet: Wallet address to inspect.
            contract_address: Token contract address.
            chain_id: EVM chain ID (56 = BSC, 1 = Ethereum).
            force_refresh: Skip the cache and always call the upstream API.
            decimals: Token decimals; looked up from known tokens when omitted.
            symbol: Token symbol; looked up from known tokens when omitted.

        Returns:
            A BalanceSnapshot on success, otherwise a FetchFailure.
        """

    def error_counts(self) -> dict[str, int]:
        """Consecutive failure count per credential label."""
        return {}

    async def refresh(self) -> None:
        """Drop cached data so the next fetch hits the upstream API."""

    async def close(self) -> None:
        """Clean up resources (connections, clients).

        Override in subclasses if cleanup is needed.
        """

    async def __aenter__(self) -> "BalanceProviderABC":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        """Async context manager exit - calls close()."""
        await self.close()
