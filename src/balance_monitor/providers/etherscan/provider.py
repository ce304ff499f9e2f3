"""Etherscan (v2 multichain API) token balance provider."""
import logging

import httpx

from balance_monitor.providers.core import (BalanceProviderABC,
                                            format_token_balance)
from balance_monitor.providers.core.protocols import AuditSink
from balance_monitor.providers.etherscan.cache import SnapshotCache
from balance_monitor.providers.etherscan.credentials import (
    ApiCredential, CredentialErrorCounter, build_credentials)
from balance_monitor.providers.etherscan.models import (
    EtherscanResponse, EtherscanTokenBalanceParams, token_info)
from balance_monitor.schemas import BalanceSnapshot, FailureKind, FetchFailure

logger = logging.getLogger(__name__)

TRANSIENT_MARKERS = ("rate limit", "maintenance", "temporarily unavailable")


class _AttemptError(Exception):
    """One credential's attempt failed."""

    def __init__(self, message: str, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


def is_transient_message(message: str) -> bool:
    """Whether an upstream error message looks temporary."""
    lowered = message.lower()
    return any(marker in lowered for marker in TRANSIENT_MARKERS)


class EtherscanBalanceProvider(BalanceProviderABC):
    """Token balance provider backed by the Etherscan v2 API.

    Tries the primary API key first and, on failure, the secondary key exactly
    once. Successful snapshots are cached briefly; per-key consecutive failure
    counts are kept in memory for diagnostics.
    """

    BASE_URL = "https://api.etherscan.io/v2/api"

    def __init__(
        self,
        api_keys: list[str],
        *,
        cache: SnapshotCache,
        audit: AuditSink | None = None,
        base_url: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Etherscan provider.

        Args:
            api_keys: [primary, secondary] keys; empty entries are ignored.
            cache: Snapshot cache shared by all fetches of this provider.
            audit: Sink for "all keys failed" diagnostics.
            base_url: Override for the API endpoint.
            timeout: Per-request timeout in seconds.
            client: Pre-built client (tests inject one with a MockTransport).
        """
        self._credentials = build_credentials(api_keys)
        self._cache = cache
        self._audit = audit
        self._url = base_url or self.BASE_URL
        self._client = client or httpx.AsyncClient(
            timeout=timeout, headers={"Accept": "application/json"}
        )
        self._errors = CredentialErrorCounter()
        if not self._credentials:
            logger.warning("ETHERSCAN_API_KEY not configured; balance fetches will fail")

    @property
    def credentials(self) -> list[ApiCredential]:
        return list(self._credentials)

    def error_counts(self) -> dict[str, int]:
        return {c.label: self._errors.get(c.label) for c in self._credentials}

    async def fetch_balance(
        self,
        wallet: str,
        contract_address: str,
        chain_id: int = 56,
        force_refresh: bool = False,
        *,
        decimals: int | None = None,
        symbol: str | None = None,
    ) -> BalanceSnapshot | FetchFailure:
        """Fetch a token balance, using the cache unless force_refresh is set."""
        missing = [
            name
            for name, value in (
                ("wallet address", wallet),
                ("contract address", contract_address),
            )
            if not value
        ]
        if not self._credentials:
            missing.append("API key")
        if missing:
            logger.error("Cannot fetch balance: missing %s", ", ".join(missing))
            return FetchFailure(
                wallet_address=wallet,
                contract_address=contract_address,
                chain_id=chain_id,
                kind=FailureKind.CONFIGURATION,
                errors=[f"missing {m}" for m in missing],
            )

        key = SnapshotCache.key(wallet, contract_address, chain_id)
        if force_refresh:
            self._cache.invalidate(key)
        else:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Balance cache hit for %s", wallet)
                return cached

        info = token_info(contract_address)
        decimals = info.decimals if decimals is None else decimals
        symbol = symbol or info.symbol
        params = EtherscanTokenBalanceParams(
            chainid=chain_id, contractaddress=contract_address, address=wallet
        ).model_dump()

        errors: list[str] = []
        transient = True
        for credential in self._credentials:
            try:
                raw = await self._request(credential, params)
            except _AttemptError as exc:
                count = self._errors.record_failure(credential.label)
                errors.append(f"{credential.label}: {exc}")
                transient = transient and exc.transient
                level = logging.WARNING if exc.transient else logging.ERROR
                logger.log(
                    level,
                    "Etherscan %s key %s failed (%d consecutive): %s",
                    credential.label,
                    credential.prefix,
                    count,
                    exc,
                )
                continue

            self._errors.record_success(credential.label)
            snapshot = BalanceSnapshot(
                wallet_address=wallet,
                contract_address=contract_address,
                chain_id=chain_id,
                balance=raw,
                balance_formatted=format_token_balance(raw, decimals),
                symbol=symbol,
                decimals=decimals,
            )
            self._cache.set(key, snapshot)
            logger.info(
                "Fetched balance for %s: %s %s (%s key)",
                wallet,
                snapshot.balance_formatted,
                symbol,
                credential.label,
            )
            return snapshot

        failure = FetchFailure(
            wallet_address=wallet,
            contract_address=contract_address,
            chain_id=chain_id,
            kind=FailureKind.UPSTREAM,
            transient=transient,
            errors=errors,
        )
        await self._report_exhausted(failure)
        return failure

    async def _request(self, credential: ApiCredential, params: dict) -> str:
        """Run one tokenbalance call; returns the raw integer balance string."""
        try:
            response = await self._client.get(
                self._url, params=params | {"apikey": credential.api_key}
            )
            response.raise_for_status()
            body = EtherscanResponse.model_validate(response.json())
        except httpx.TimeoutException as exc:
            raise _AttemptError(f"timeout: {type(exc).__name__}", True) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise _AttemptError(f"HTTP {status}", status == 429 or status >= 500) from exc
        except httpx.HTTPError as exc:
            raise _AttemptError(f"transport error: {type(exc).__name__}", True) from exc
        except ValueError as exc:
            # invalid JSON or unexpected envelope shape
            raise _AttemptError(f"malformed response: {exc}", False) from exc

        if not body.ok:
            detail = f"{body.message}: {body.result}" if body.result else body.message
            raise _AttemptError(detail, is_transient_message(detail))
        try:
            int(body.result or "")
        except ValueError as exc:
            raise _AttemptError(f"non-integer balance {body.result!r}", False) from exc
        return body.result

    async def _report_exhausted(self, failure: FetchFailure) -> None:
        counts = self.error_counts()
        severity = "warning" if failure.transient else "error"
        logger.log(
            logging.WARNING if failure.transient else logging.ERROR,
            "All Etherscan keys failed for %s: %s",
            failure.wallet_address,
            failure.message,
        )
        if self._audit is None:
            return
        metadata = {
            "severity": severity,
            "wallet_address": failure.wallet_address,
            "chain_id": failure.chain_id,
            "errors": failure.errors,
        }
        for credential in self._credentials:
            metadata[f"{credential.label}_key"] = credential.prefix
            metadata[f"{credential.label}_error_count"] = counts[credential.label]
        try:
            await self._audit.emit(
                "Etherscan API error",
                "Both primary and fallback API keys failed"
                if len(self._credentials) > 1
                else "Primary API key failed and no fallback is configured",
                metadata,
            )
        except Exception:  # pylint: disable=broad-except
            logger.exception("Audit sink failed while reporting Etherscan errors")

    async def refresh(self) -> None:
        """Drop all cached snapshots."""
        self._cache.clear()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
