import httpx
import pytest
from conftest import USDT, WALLET, RecordingAudit

from balance_monitor.providers import EtherscanBalanceProvider, SnapshotCache
from balance_monitor.schemas import BalanceSnapshot, FailureKind, FetchFailure

PRIMARY = "PRIMARYKEY123456"
SECONDARY = "SECONDKEY9876543"
OK_250 = {"status": "1", "message": "OK", "result": str(250 * 10**18)}


class EtherscanStub:
    """MockTransport handler answering per API key; records the keys used."""

    def __init__(self, responses: dict[str, object]) -> None:
        self.responses = responses
        self.keys: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = request.url.params["apikey"]
        self.keys.append(key)
        assert request.url.params["action"] == "tokenbalance"
        assert request.url.params["chainid"] == "56"
        answer = self.responses[key]
        if isinstance(answer, int):
            return httpx.Response(answer, text="upstream error")
        if isinstance(answer, Exception):
            raise answer
        return httpx.Response(200, json=answer)


def make_provider(stub, keys=(PRIMARY, SECONDARY), audit=None, ttl=240.0):
    client = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    return EtherscanBalanceProvider(
        list(keys), cache=SnapshotCache(ttl), audit=audit, client=client
    )


@pytest.mark.asyncio
async def test_primary_success_skips_secondary():
    stub = EtherscanStub({PRIMARY: OK_250})
    async with make_provider(stub) as provider:
        result = await provider.fetch_balance(WALLET, USDT, 56)
    assert isinstance(result, BalanceSnapshot)
    assert result.balance_formatted == "250"
    assert result.symbol == "USDT"
    assert stub.keys == [PRIMARY]


@pytest.mark.asyncio
async def test_failover_to_secondary_key():
    stub = EtherscanStub(
        {
            PRIMARY: {"status": "0", "message": "NOTOK", "result": "Invalid API Key"},
            SECONDARY: OK_250,
        }
    )
    async with make_provider(stub) as provider:
        result = await provider.fetch_balance(WALLET, USDT, 56)
        assert isinstance(result, BalanceSnapshot)
        assert result.balance_formatted == "250"
        assert stub.keys == [PRIMARY, SECONDARY]
        assert provider.error_counts() == {"primary": 1, "secondary": 0}


@pytest.mark.asyncio
async def test_both_keys_fail_reports_upstream_failure_and_audits():
    audit = RecordingAudit()
    stub = EtherscanStub({PRIMARY: 502, SECONDARY: 503})
    async with make_provider(stub, audit=audit) as provider:
        result = await provider.fetch_balance(WALLET, USDT, 56)
        assert provider.error_counts() == {"primary": 1, "secondary": 1}

    assert isinstance(result, FetchFailure)
    assert result.kind is FailureKind.UPSTREAM
    assert result.transient is True
    assert len(result.errors) == 2
    assert stub.keys == [PRIMARY, SECONDARY]

    title, _, metadata = audit.events[0]
    assert title == "Etherscan API error"
    assert metadata["primary_key"] == "PRIMARYK..."
    assert metadata["secondary_key"] == "SECONDKE..."
    assert metadata["secondary_error_count"] == 1
    assert PRIMARY not in str(metadata)
    assert SECONDARY not in str(metadata)


@pytest.mark.asyncio
async def test_successful_fetch_resets_credential_counter():
    stub = EtherscanStub({PRIMARY: 500, SECONDARY: OK_250})
    async with make_provider(stub) as provider:
        await provider.fetch_balance(WALLET, USDT, 56)
        stub.responses[PRIMARY] = OK_250
        await provider.fetch_balance(WALLET, USDT, 56, force_refresh=True)
        assert provider.error_counts()["primary"] == 0


@pytest.mark.asyncio
async def test_cache_hit_and_force_refresh():
    stub = EtherscanStub({PRIMARY: OK_250})
    async with make_provider(stub) as provider:
        first = await provider.fetch_balance(WALLET, USDT, 56)
        second = await provider.fetch_balance(WALLET, USDT.lower(), 56)
        assert second == first
        assert len(stub.keys) == 1

        stub.responses[PRIMARY] = {"status": "1", "message": "OK", "result": "0"}
        refreshed = await provider.fetch_balance(WALLET, USDT, 56, force_refresh=True)
        assert refreshed.balance_formatted == "0"
        assert len(stub.keys) == 2


@pytest.mark.asyncio
async def test_failures_are_not_cached():
    stub = EtherscanStub({PRIMARY: 500})
    async with make_provider(stub, keys=(PRIMARY,)) as provider:
        assert isinstance(await provider.fetch_balance(WALLET, USDT, 56), FetchFailure)
        stub.responses[PRIMARY] = OK_250
        assert isinstance(await provider.fetch_balance(WALLET, USDT, 56), BalanceSnapshot)
    assert len(stub.keys) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "wallet, contract, keys",
    [("", USDT, (PRIMARY,)), (WALLET, "", (PRIMARY,)), (WALLET, USDT, ())],
)
async def test_missing_configuration_never_calls_upstream(wallet, contract, keys):
    stub = EtherscanStub({})
    async with make_provider(stub, keys=keys) as provider:
        result = await provider.fetch_balance(wallet, contract, 56)
    assert isinstance(result, FetchFailure)
    assert result.kind is FailureKind.CONFIGURATION
    assert stub.keys == []


@pytest.mark.asyncio
async def test_rate_limit_message_is_transient():
    limited = {"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}
    stub = EtherscanStub({PRIMARY: limited})
    async with make_provider(stub, keys=(PRIMARY,)) as provider:
        result = await provider.fetch_balance(WALLET, USDT, 56)
    assert result.transient is True


@pytest.mark.asyncio
async def test_non_integer_result_is_a_hard_failure():
    stub = EtherscanStub({PRIMARY: {"status": "1", "message": "OK", "result": "abc"}})
    async with make_provider(stub, keys=(PRIMARY,)) as provider:
        result = await provider.fetch_balance(WALLET, USDT, 56)
    assert isinstance(result, FetchFailure)
    assert result.transient is False


@pytest.mark.asyncio
async def test_transport_error_is_transient():
    stub = EtherscanStub({PRIMARY: httpx.ConnectError("refused")})
    async with make_provider(stub, keys=(PRIMARY,)) as provider:
        result = await provider.fetch_balance(WALLET, USDT, 56)
    assert isinstance(result, FetchFailure)
    assert result.transient is True


def test_duplicate_secondary_key_is_ignored():
    provider = make_provider(EtherscanStub({}), keys=(PRIMARY, PRIMARY))
    assert [c.label for c in provider.credentials] == ["primary"]
