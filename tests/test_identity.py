import asyncio
from urllib.parse import parse_qs, urlsplit

import pytest

from app.core.errors import AuthAbandoned
from app.models.identity import Anonymous, Authenticated
from app.services.identity_service import IdentitySession, LoginBroker, RedirectIdentityProvider
from conftest import FakeIdentityProvider

PROVIDER_URL = "https://identity.example/#authorize"
CALLBACK_URL = "http://console.test/auth/callback"


def test_cached_credential_resolves_without_login() -> None:
    provider = FakeIdentityProvider(cached="2vxsx-fae")

    async def scenario():
        return await IdentitySession(provider).establish()

    assert asyncio.run(scenario()) == Authenticated("2vxsx-fae")
    assert provider.login_calls == 0


def test_interactive_login_publishes_principal() -> None:
    provider = FakeIdentityProvider(principal="rdmx6-jaaaa")
    published = []

    async def scenario():
        session = IdentitySession(provider)
        session.subscribe(published.append)
        return await session.establish()

    result = asyncio.run(scenario())

    assert result == Authenticated("rdmx6-jaaaa")
    assert published == [Authenticated("rdmx6-jaaaa")]


def test_authenticated_identity_is_kept_for_the_session() -> None:
    provider = FakeIdentityProvider(principal="rdmx6-jaaaa")

    async def scenario():
        session = IdentitySession(provider)
        first = await session.establish()
        provider.principal = "someone-else"
        second = await session.establish()
        return first, second

    first, second = asyncio.run(scenario())

    assert first == second == Authenticated("rdmx6-jaaaa")
    assert provider.login_calls == 1


def test_abandoned_login_falls_back_to_anonymous() -> None:
    provider = FakeIdentityProvider(error=AuthAbandoned("user closed the window"))

    async def scenario():
        return await IdentitySession(provider).establish()

    result = asyncio.run(scenario())

    assert isinstance(result, Anonymous)
    assert result.is_authenticated is False


def test_login_that_never_returns_times_out_to_anonymous() -> None:
    provider = FakeIdentityProvider(hang=True)

    async def scenario():
        return await IdentitySession(provider, login_timeout=0.05).establish()

    assert asyncio.run(scenario()) == Anonymous("login abandoned")


def test_anonymous_session_can_retry_login() -> None:
    provider = FakeIdentityProvider(error=AuthAbandoned("cancelled"))

    async def scenario():
        session = IdentitySession(provider)
        first = await session.establish()
        provider.error = None
        second = await session.establish()
        return first, second

    first, second = asyncio.run(scenario())

    assert isinstance(first, Anonymous)
    assert second == Authenticated("aaaaa-aa")


def test_login_url_carries_callback_and_state() -> None:
    broker = LoginBroker(PROVIDER_URL, CALLBACK_URL)

    async def scenario():
        nonce, _ = broker.begin("browser-1")
        return nonce, broker.login_url(nonce)

    nonce, url = asyncio.run(scenario())
    parts = urlsplit(url)
    params = parse_qs(parts.query)

    assert parts.netloc == "identity.example"
    assert parts.fragment == "authorize"
    assert params["redirect_uri"] == [CALLBACK_URL]
    assert params["state"] == [nonce]


def test_broker_completion_resolves_login_and_caches_principal() -> None:
    broker = LoginBroker(PROVIDER_URL, CALLBACK_URL)

    async def scenario():
        nonce, future = broker.begin("browser-1")
        assert broker.complete(nonce, " w7x7r-cok77 ") is True
        return await future

    assert asyncio.run(scenario()) == "w7x7r-cok77"
    assert broker.cached_principal("browser-1") == "w7x7r-cok77"
    assert broker.cached_principal("browser-2") is None


def test_broker_rejects_unknown_and_reused_state() -> None:
    broker = LoginBroker(PROVIDER_URL, CALLBACK_URL)

    async def scenario():
        nonce, future = broker.begin("browser-1")
        broker.complete(nonce, "w7x7r-cok77")
        await future
        return nonce

    nonce = asyncio.run(scenario())

    assert broker.complete(nonce, "intruder") is False
    assert broker.complete("bogus", "intruder") is False
    assert broker.abandon("bogus") is False
    assert broker.cached_principal("browser-1") == "w7x7r-cok77"


def test_broker_abandon_fails_pending_login() -> None:
    broker = LoginBroker(PROVIDER_URL, CALLBACK_URL)

    async def scenario():
        nonce, future = broker.begin("browser-1")
        broker.abandon(nonce, "access_denied")
        await future

    with pytest.raises(AuthAbandoned, match="access_denied"):
        asyncio.run(scenario())
    assert broker.cached_principal("browser-1") is None


def test_redirect_provider_round_trip_through_broker() -> None:
    broker = LoginBroker(PROVIDER_URL, CALLBACK_URL)
    opened: list[str] = []

    async def scenario():
        def navigate(url: str) -> None:
            opened.append(url)
            nonce = parse_qs(urlsplit(url).query)["state"][0]
            asyncio.get_running_loop().call_soon(broker.complete, nonce, "un4fu-tqaaa")

        provider = RedirectIdentityProvider(broker, "browser-1", navigate)
        session = IdentitySession(provider, login_timeout=1)
        first = await session.establish()
        reloaded = IdentitySession(RedirectIdentityProvider(broker, "browser-1", navigate))
        second = await reloaded.establish()
        return first, second

    first, second = asyncio.run(scenario())

    assert first == second == Authenticated("un4fu-tqaaa")
    assert len(opened) == 1


def test_forget_cancels_pending_logins() -> None:
    broker = LoginBroker(PROVIDER_URL, CALLBACK_URL)

    async def scenario():
        nonce, future = broker.begin("browser-1")
        broker.forget("browser-1")
        return nonce, future.cancelled()

    nonce, cancelled = asyncio.run(scenario())

    assert cancelled is True
    assert broker.complete(nonce, "late") is False


def test_broker_evicts_least_recently_used_credential() -> None:
    broker = LoginBroker(PROVIDER_URL, CALLBACK_URL, max_credentials=2)

    async def scenario():
        for session_key, principal in [("browser-1", "p-1"), ("browser-2", "p-2")]:
            nonce, _ = broker.begin(session_key)
            broker.complete(nonce, principal)
        broker.cached_principal("browser-1")
        nonce, _ = broker.begin("browser-3")
        broker.complete(nonce, "p-3")

    asyncio.run(scenario())

    assert broker.cached_principal("browser-1") == "p-1"
    assert broker.cached_principal("browser-2") is None
    assert broker.cached_principal("browser-3") == "p-3"


def test_resolve_cached_does_not_start_a_login() -> None:
    provider = FakeIdentityProvider()
    session = IdentitySession(provider)

    assert session.resolve_cached() is None
    provider.cached = "2vxsx-fae"
    assert session.resolve_cached() == Authenticated("2vxsx-fae")
    assert provider.login_calls == 0
