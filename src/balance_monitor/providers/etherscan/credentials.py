"""API credentials and their consecutive-failure counters."""
from dataclasses import dataclass

from balance_monitor.providers.core.utils import key_prefix


@dataclass(frozen=True)
class ApiCredential:
    label: str  # "primary" | "secondary"
    api_key: str

    @property
    def prefix(self) -> str:
        return key_prefix(self.api_key)


class CredentialErrorCounter:
    """In-memory consecutive failure count per credential label. Never persisted."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}

    def record_failure(self, label: str) -> int:
        self._counts[label] = self._counts.get(label, 0) + 1
        return self._counts[label]

    def record_success(self, label: str) -> None:
        self._counts[label] = 0

    def get(self, label: str) -> int:
        return self._counts.get(label, 0)


def build_credentials(api_keys: list[str]) -> list[ApiCredential]:
    """Primary key first; a secondary is kept only when set and distinct."""
    keys = [k for k in api_keys if k]
    if not keys:
        return []
    credentials = [ApiCredential("primary", keys[0])]
    if len(keys) > 1 and keys[1] != keys[0]:
        credentials.append(ApiCredential("secondary", keys[1]))
    return credentials
