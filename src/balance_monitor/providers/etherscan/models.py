"""Models for the Etherscan provider (API params, response, token metadata)."""
from pydantic import BaseModel

from balance_monitor.providers.core.utils import normalize_address


class EtherscanTokenBalanceParams(BaseModel):
    """Query params for module=account&action=tokenbalance. Merge apikey at call site."""

    chainid: int
    module: str = "account"
    action: str = "tokenbalance"
    contractaddress: str
    address: str
    tag: str = "latest"


class EtherscanResponse(BaseModel):
    """Envelope returned by every Etherscan API call."""

    status: str
    message: str
    result: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "1" and self.message == "OK"


class TokenInfo(BaseModel):
    symbol: str
    decimals: int
    name: str


KNOWN_TOKENS: dict[str, TokenInfo] = {
    normalize_address("0x55d398326f99059fF775485246999027B3197955"): TokenInfo(
        symbol="USDT", decimals=18, name="Tether USD"
    ),
    normalize_address("0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d"): TokenInfo(
        symbol="USDC", decimals=18, name="USD Coin"
    ),
    normalize_address("0xe9e7cea3dedca5984780bafc599bd69add087d56"): TokenInfo(
        symbol="BUSD", decimals=18, name="Binance USD"
    ),
}

UNKNOWN_TOKEN = TokenInfo(symbol="UNKNOWN", decimals=18, name="Unknown Token")


def token_info(contract_address: str) -> TokenInfo:
    """Look up symbol/decimals for well-known BSC tokens."""
    return KNOWN_TOKENS.get(normalize_address(contract_address), UNKNOWN_TOKEN)
