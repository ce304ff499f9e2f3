"""Domain concept for mapping provider exceptions to HTTP responses."""
from dataclasses import dataclass

from balance_monitor.providers.core.exceptions import (provider_error_to_http,
                                                       raise_provider_http)


@dataclass(frozen=True)
class ProviderErrorMapper:
    """Maps provider/backend exceptions to HTTP (status_code, detail).

    Inject this into services to centralize error-to-HTTP mapping with the
    resource and API names appropriate to the route.
    """

    resource_name: str = "Resource"
    api_name: str = "API"

    def to_http(self, exc: Exception, name: str | None = None) -> tuple[int, str]:
        """Map a provider exception to (status_code, detail) for HTTP responses."""
        return provider_error_to_http(exc, self.resource_name, name, self.api_name)

    def raise_http(self, exc: Exception, name: str | None = None) -> None:
        """Map provider exception to HTTP and raise HTTPException. Never returns."""
        raise_provider_http(exc, self.resource_name, name, self.api_name)
