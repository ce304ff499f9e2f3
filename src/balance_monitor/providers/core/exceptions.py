"""Domain exceptions and shared exception-to-HTTP mapping."""

from fastapi import HTTPException


class BalanceMonitorError(Exception):
    """Base class for balance monitoring errors."""


class TargetNotFoundError(BalanceMonitorError, LookupError):
    """Monitored target does not exist or is inactive."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Target '{name}' not found")
        self.name = name


class TargetExistsError(BalanceMonitorError):
    """A monitored target with this name already exists."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Target '{name}' already exists")
        self.name = name


class ConfigurationError(BalanceMonitorError):
    """Wallet, contract or API credentials are missing."""


class UpstreamError(BalanceMonitorError):
    """The balance API failed with every configured credential."""

    def __init__(self, message: str, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


def provider_error_to_http(
    exc: Exception,
    resource_name: str = "Resource",
    name: str | None = None,
    api_name: str = "API",
) -> tuple[int, str]:
    """Map a provider/backend exception to (status_code, detail) for HTTP responses.

    Args:
        exc: The exception raised by the provider or service.
        resource_name: Label for 404 messages (e.g. "Target").
        name: Optional identifier to include in detail (e.g. "buy_card").
        api_name: Label for upstream errors (e.g. "Etherscan").

    Returns:
        (status_code, detail) suitable for HTTPException(status_code=..., detail=...).
    """
    if isinstance(exc, TargetNotFoundError):
        return (404, f"{resource_name} '{exc.name}' not found")
    if isinstance(exc, TargetExistsError):
        return (409, f"{resource_name} '{exc.name}' already exists")
    if isinstance(exc, ConfigurationError):
        return (503, str(exc) or f"{api_name} is not configured")
    if isinstance(exc, UpstreamError):
        if name is not None:
            return (502, f"{api_name} error for '{name}': {exc}")
        return (502, f"{api_name} error: {exc}")
    return (500, "Internal server error")


def raise_provider_http(
    exc: Exception,
    resource_name: str = "Resource",
    name: str | None = None,
    api_name: str = "API",
) -> None:
    """Map provider exception to HTTP and raise HTTPException. Never returns."""
    status_code, detail = provider_error_to_http(exc, resource_name, name, api_name)
    raise HTTPException(status_code=status_code, detail=detail) from exc
