import asyncio
from typing import Any, Sequence

import pytest

from app.core import config
from app.models.bot import BotConfig, TradeLogEntry


class FakeGateway:
    """In-memory stand-in for the bot service that records every call."""

    def __init__(self) -> None:
        self.active = False
        self.logs: list[TradeLogEntry] = []
        self.balance = 1000.0
        self.config = BotConfig(strategy="basic", threshold=0.5)
        self.decision = "HOLD"
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, Exception] = {}
        self.ignore_toggle = False
        self.normalize_strategy = False
        self.pause: dict[str, asyncio.Event] = {}

    async def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, *args))
        gate = self.pause.get(operation)
        if gate is not None:
            await gate.wait()
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def operations(self) -> list[str]:
        return [call[0] for call in self.calls]

    def count(self, operation: str) -> int:
        return self.operations().count(operation)

    async def get_bot_status(self) -> bool:
        await self._record("get_bot_status")
        return self.active

    async def start_bot(self) -> None:
        await self._record("start_bot")
        if not self.ignore_toggle:
            self.active = True

    async def stop_bot(self) -> None:
        await self._record("stop_bot")
        if not self.ignore_toggle:
            self.active = False

    async def analyze_market(self, prices: Sequence[float]) -> str:
        await self._record("analyze_market", list(prices))
        self.logs.append(
            TradeLogEntry(
                action=self.decision,
                reason=f"Strategy: {self.config.strategy}, Price: {prices[-1]:.2f}",
                price=prices[-1],
                timestamp=(len(self.logs) + 1) * 1_000_000_000,
            )
        )
        if self.decision == "BUY":
            self.balance -= 5.0
        elif self.decision == "SELL":
            self.balance += 5.0
        return self.decision

    async def get_trade_logs(self) -> list[TradeLogEntry]:
        await self._record("get_trade_logs")
        return self.logs

    async def get_balance(self) -> float:
        await self._record("get_balance")
        return self.balance

    async def get_bot_config(self) -> BotConfig:
        await self._record("get_bot_config")
        return self.config

    async def update_config(self, strategy: str, threshold: float) -> None:
        await self._record("update_config", strategy, threshold)
        if self.normalize_strategy:
            strategy = strategy.lower()
        self.config = BotConfig(strategy=strategy, threshold=threshold)


class FakeIdentityProvider:
    def __init__(
        self,
        *,
        cached: str | None = None,
        principal: str | None = "aaaaa-aa",
        error: Exception | None = None,
        hang: bool = False,
    ) -> None:
        self.cached = cached
        self.principal = principal
        self.error = error
        self.hang = hang
        self.login_calls = 0

    def cached_principal(self) -> str | None:
        return self.cached

    async def login(self) -> str:
        self.login_calls += 1
        if self.hang:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        return self.principal


@pytest.fixture(autouse=True)
def clear_settings_cache():
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


def make_entry(timestamp: int, action: str = "HOLD", price: float = 30.0) -> TradeLogEntry:
    return TradeLogEntry(action=action, reason=f"Strategy: basic, Price: {price:.2f}", price=price, timestamp=timestamp)
