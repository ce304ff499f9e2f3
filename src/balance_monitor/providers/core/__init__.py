"""Core provider abstractions."""
from balance_monitor.providers.core.balance_provider_abc import BalanceProviderABC
from balance_monitor.providers.core.error_mapper import ProviderErrorMapper
from balance_monitor.providers.core.exceptions import (BalanceMonitorError,
                                                       ConfigurationError,
                                                       TargetExistsError,
                                                       TargetNotFoundError,
                                                       UpstreamError,
                                                       provider_error_to_http,
                                                       raise_provider_http)
from balance_monitor.providers.core.utils import (format_token_balance,
                                                  key_prefix,
                                                  normalize_address)

__all__ = [
    "BalanceMonitorError",
    "BalanceProviderABC",
    "ConfigurationError",
    "ProviderErrorMapper",
    "TargetExistsError",
    "TargetNotFoundError",
    "UpstreamError",
    "format_token_balance",
    "key_prefix",
    "normalize_address",
    "provider_error_to_http",
    "raise_provider_http",
]
