from __future__ import annotations

import asyncio
import inspect
import logging
import secrets
from collections import OrderedDict
from typing import Any, Callable, Optional, Protocol

import httpx

from app.core.config import Settings, get_settings
from app.core.errors import AuthAbandoned
from app.models.identity import Anonymous, Authenticated, AuthResult

logger = logging.getLogger(__name__)

MAX_CACHED_CREDENTIALS = 1024


class IdentityProvider(Protocol):
    def cached_principal(self) -> str | None: ...

    async def login(self) -> str: ...


class LoginBroker:
    """Tracks redirect logins in flight and the principals they produced.

    Each login is keyed by a random ``state`` nonce that the identity provider
    echoes back to ``/auth/callback``. Credentials live in memory only, are
    keyed by browser session and evict the least recently used entry once
    ``max_credentials`` is reached.
    """

    def __init__(
        self,
        provider_url: str,
        callback_url: str,
        *,
        max_credentials: int = MAX_CACHED_CREDENTIALS,
    ) -> None:
        self._provider_url = provider_url
        self._callback_url = callback_url
        self._pending: dict[str, tuple[str, asyncio.Future[str]]] = {}
        self._credentials: OrderedDict[str, str] = OrderedDict()
        self._max_credentials = max_credentials

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "LoginBroker":
        settings = settings or get_settings()
        return cls(settings.identity_provider_url, settings.auth_callback_url)

    def cached_principal(self, session_key: str) -> str | None:
        principal = self._credentials.get(session_key)
        if principal is not None:
            self._credentials.move_to_end(session_key)
        return principal

    def begin(self, session_key: str) -> tuple[str, asyncio.Future[str]]:
        nonce = secrets.token_urlsafe(24)
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending[nonce] = (session_key, future)
        return nonce, future

    def login_url(self, nonce: str) -> str:
        url = httpx.URL(self._provider_url).copy_merge_params(
            {"redirect_uri": self._callback_url, "state": nonce}
        )
        return str(url)

    def complete(self, nonce: str, principal: str | None) -> bool:
        entry = self._pending.pop(nonce, None)
        if entry is None:
            return False
        session_key, future = entry
        principal = (principal or "").strip()
        if not principal:
            self._fail(future, "identity provider returned no principal")
            return True
        self._remember(session_key, principal)
        if not future.done():
            future.set_result(principal)
        logger.info("Login completed for browser session %s", session_key)
        return True

    def abandon(self, nonce: str, reason: str = "login cancelled") -> bool:
        entry = self._pending.pop(nonce, None)
        if entry is None:
            return False
        _, future = entry
        self._fail(future, reason)
        return True

    def forget(self, session_key: str) -> None:
        stale = [nonce for nonce, (key, _) in self._pending.items() if key == session_key]
        for nonce in stale:
            _, future = self._pending.pop(nonce)
            future.cancel()

    def _remember(self, session_key: str, principal: str) -> None:
        self._credentials[session_key] = principal
        self._credentials.move_to_end(session_key)
        while len(self._credentials) > self._max_credentials:
            self._credentials.popitem(last=False)

    @staticmethod
    def _fail(future: asyncio.Future[str], reason: str) -> None:
        if not future.done():
            future.set_exception(AuthAbandoned(reason))


class RedirectIdentityProvider:
    def __init__(
        self,
        broker: LoginBroker,
        session_key: str,
        navigate: Callable[[str], Any],
    ) -> None:
        self._broker = broker
        self._session_key = session_key
        self._navigate = navigate

    def cached_principal(self) -> str | None:
        return self._broker.cached_principal(self._session_key)

    async def login(self) -> str:
        nonce, future = self._broker.begin(self._session_key)
        outcome = self._navigate(self._broker.login_url(nonce))
        if inspect.isawaitable(outcome):
            await outcome
        return await future


class IdentitySession:
    """Holds the one principal a browser session signs in with."""

    def __init__(self, provider: IdentityProvider, *, login_timeout: Optional[float] = None) -> None:
        self._provider = provider
        self._login_timeout = login_timeout
        self._result: AuthResult | None = None
        self._lock = asyncio.Lock()
        self._listeners: list[Callable[[AuthResult], None]] = []

    @property
    def result(self) -> AuthResult | None:
        return self._result

    def subscribe(self, callback: Callable[[AuthResult], None]) -> None:
        self._listeners.append(callback)

    def resolve_cached(self) -> AuthResult | None:
        """Return the session identity if it is known without an interactive login."""
        if isinstance(self._result, Authenticated):
            return self._result
        principal = self._provider.cached_principal()
        if principal:
            return self._publish(Authenticated(principal))
        return None

    async def establish(self) -> AuthResult:
        async with self._lock:
            cached = self.resolve_cached()
            if cached is not None:
                return cached
            return self._publish(await self._interactive_login())

    async def _interactive_login(self) -> AuthResult:
        try:
            principal = await asyncio.wait_for(self._provider.login(), timeout=self._login_timeout)
        except asyncio.TimeoutError:
            logger.warning("Login not completed within %ss; continuing anonymously", self._login_timeout)
            return Anonymous("login abandoned")
        except AuthAbandoned as exc:
            logger.warning("Login abandoned: %s", exc)
            return Anonymous("login abandoned")
        return Authenticated(principal)

    def _publish(self, result: AuthResult) -> AuthResult:
        self._result = result
        for listener in self._listeners:
            listener(result)
        return result


__all__ = [
    "IdentityProvider",
    "IdentitySession",
    "LoginBroker",
    "RedirectIdentityProvider",
]
