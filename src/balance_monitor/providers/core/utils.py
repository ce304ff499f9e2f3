"""Shared utilities for balance providers."""

DISPLAY_DECIMALS = 6
KEY_PREFIX_LENGTH = 8


def format_token_balance(raw: str | int, decimals: int) -> str:
    """Format an on-chain integer balance as a human-readable decimal string.

    Uses exact integer arithmetic only. The fractional part is truncated (never
    rounded) to six digits and trailing zeros are stripped; an all-zero fraction
    is omitted, so 10**18 with 18 decimals formats as "1".
    """
    value = int(raw)
    sign = "-" if value < 0 else ""
    value = abs(value)
    if decimals <= 0:
        return f"{sign}{value}"

    divisor = 10**decimals
    whole, fraction = divmod(value, divisor)
    if fraction == 0:
        return f"{sign}{whole}"

    digits = str(fraction).rjust(decimals, "0")[:DISPLAY_DECIMALS].rstrip("0")
    if not digits:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{digits}"


def key_prefix(api_key: str) -> str:
    """Non-secret identifier for an API key (first 8 characters)."""
    return f"{api_key[:KEY_PREFIX_LENGTH]}..." if api_key else "<none>"


def normalize_address(address: str) -> str:
    """Lowercase and strip an EVM address for use as a cache key."""
    return address.strip().lower()
