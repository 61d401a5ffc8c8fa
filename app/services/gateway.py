from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings, get_settings
from app.core.errors import RemoteCallFailure
from app.models.bot import BotConfig, TradeLogEntry

logger = logging.getLogger(__name__)

STATUS_PATH = "/bot/status"
START_PATH = "/bot/start"
STOP_PATH = "/bot/stop"
ANALYZE_PATH = "/market/analyze"
TRADE_LOGS_PATH = "/trades/logs"
BALANCE_PATH = "/balance"
CONFIG_PATH = "/bot/config"


class BotGateway(Protocol):
    """Operations exposed by the remote trading service."""

    async def get_bot_status(self) -> bool: ...

    async def start_bot(self) -> None: ...

    async def stop_bot(self) -> None: ...

    async def analyze_market(self, prices: Sequence[float]) -> str: ...

    async def get_trade_logs(self) -> list[TradeLogEntry]: ...

    async def get_balance(self) -> float: ...

    async def get_bot_config(self) -> BotConfig: ...

    async def update_config(self, strategy: str, threshold: float) -> None: ...


def create_http_client(settings: Settings | None = None) -> httpx.AsyncClient:
    settings = settings or get_settings()
    return httpx.AsyncClient(
        base_url=settings.bot_service_url,
        timeout=httpx.Timeout(settings.bot_service_timeout),
        headers={"Accept": "application/json", "User-Agent": "quanturnic-console"},
    )


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class HttpBotGateway:
    """JSON-over-HTTP client for the bot service.

    The underlying ``httpx.AsyncClient`` is shared; each browser session wraps
    it with its own ``principal_source`` so requests carry that session's
    principal in the ``X-Principal`` header.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        principal_source: Optional[Callable[[], str | None]] = None,
    ) -> None:
        self._client = client
        self._principal_source = principal_source

    def bind(self, principal_source: Callable[[], str | None]) -> "HttpBotGateway":
        return HttpBotGateway(self._client, principal_source=principal_source)

    async def aclose(self) -> None:
        await self._client.aclose()
        logger.info("Bot service client closed")

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        headers: dict[str, str] = {}
        principal = self._principal_source() if self._principal_source else None
        if principal:
            headers["X-Principal"] = principal
        try:
            response = await self._client.request(method, path, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning("Bot service %s returned HTTP %s", operation, status_code)
            raise RemoteCallFailure(operation, f"HTTP {status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Bot service %s request failed: %s", operation, exc)
            raise RemoteCallFailure(operation, str(exc) or exc.__class__.__name__) from exc
        if not response.content or not response.text.strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteCallFailure(operation, "response was not JSON") from exc

    async def get_bot_status(self) -> bool:
        payload = await self._request("get_bot_status", "GET", STATUS_PATH)
        active = payload.get("active") if isinstance(payload, dict) else payload
        if not isinstance(active, bool):
            raise RemoteCallFailure("get_bot_status", "missing boolean 'active'")
        return active

    async def start_bot(self) -> None:
        await self._request("start_bot", "POST", START_PATH)

    async def stop_bot(self) -> None:
        await self._request("stop_bot", "POST", STOP_PATH)

    async def analyze_market(self, prices: Sequence[float]) -> str:
        payload = await self._request(
            "analyze_market",
            "POST",
            ANALYZE_PATH,
            payload={"price_history": [float(price) for price in prices]},
        )
        decision = payload.get("decision") if isinstance(payload, dict) else payload
        if not isinstance(decision, str):
            raise RemoteCallFailure("analyze_market", "missing decision label")
        return decision

    async def get_trade_logs(self) -> list[TradeLogEntry]:
        payload = await self._request("get_trade_logs", "GET", TRADE_LOGS_PATH)
        items = payload.get("items") if isinstance(payload, dict) else payload
        if items is None:
            items = []
        if not isinstance(items, list):
            raise RemoteCallFailure("get_trade_logs", "items must be a list")
        try:
            return [TradeLogEntry.model_validate(item) for item in items]
        except PydanticValidationError as exc:
            raise RemoteCallFailure("get_trade_logs", f"malformed log entry: {exc.error_count()} error(s)") from exc

    async def get_balance(self) -> float:
        payload = await self._request("get_balance", "GET", BALANCE_PATH)
        raw = payload.get("balance") if isinstance(payload, dict) else payload
        balance = _number(raw)
        if balance is None:
            raise RemoteCallFailure("get_balance", "missing numeric 'balance'")
        return balance

    async def get_bot_config(self) -> BotConfig:
        payload = await self._request("get_bot_config", "GET", CONFIG_PATH)
        if not isinstance(payload, dict):
            raise RemoteCallFailure("get_bot_config", "config must be an object")
        try:
            return BotConfig.model_validate(payload)
        except PydanticValidationError as exc:
            raise RemoteCallFailure("get_bot_config", "malformed config") from exc

    async def update_config(self, strategy: str, threshold: float) -> None:
        await self._request(
            "update_config",
            "PUT",
            CONFIG_PATH,
            payload={"strategy": strategy, "threshold": threshold},
        )


__all__ = ["BotGateway", "HttpBotGateway", "create_http_client"]
