from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import RemoteCallFailure
from app.models.bot import Balance, TradeLogEntry
from app.services.gateway import BotGateway
from app.services.session_state import SessionState

logger = logging.getLogger(__name__)


def newest_first(entries: list[TradeLogEntry]) -> list[TradeLogEntry]:
    """Reverse the service's oldest-first sequence without touching it."""
    return list(reversed(entries))


class LogBalanceProjector:
    def __init__(self, gateway: BotGateway, state: SessionState) -> None:
        self._gateway = gateway
        self._state = state

    @property
    def logs(self) -> list[TradeLogEntry]:
        return self._state.logs

    @property
    def balance(self) -> Balance | None:
        return self._state.balance

    async def refresh_logs(self) -> list[TradeLogEntry]:
        with self._state.track("logs"):
            entries = await self._gateway.get_trade_logs()
        projected = newest_first(entries)
        self._state.logs = projected
        logger.debug("Trade log refreshed (%s entries)", len(projected))
        return projected

    async def refresh_balance(self) -> Balance:
        with self._state.track("balance"):
            amount = await self._gateway.get_balance()
            try:
                balance = Balance(amount=amount)
            except PydanticValidationError as exc:
                raise RemoteCallFailure("get_balance", f"invalid balance {amount!r}") from exc
        self._state.balance = balance
        return balance


__all__ = ["LogBalanceProjector", "newest_first"]
