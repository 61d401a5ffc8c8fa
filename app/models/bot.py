from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_PRICE_POINTS = 3
_DISPLAY_QUANTUM = Decimal("0.01")


class BotStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"

    @classmethod
    def from_active(cls, active: bool) -> "BotStatus":
        return cls.RUNNING if active else cls.STOPPED

    @property
    def label(self) -> str:
        return self.value.capitalize()


class BotConfig(BaseModel):
    """Configuration acknowledged by the bot service."""

    model_config = ConfigDict(frozen=True)

    strategy: str = Field(min_length=1)
    threshold: float = Field(allow_inf_nan=False)

    @field_validator("strategy", mode="before")
    def normalize_strategy(cls, value: str) -> str:  # noqa: N805
        if not isinstance(value, str) or not value.strip():
            msg = "Strategy must be provided"
            raise ValueError(msg)
        return value.strip()


class ConfigDraft(BaseModel):
    """Locally edited configuration; may hold text that does not parse yet."""

    strategy: str = ""
    threshold: str = ""

    @classmethod
    def from_config(cls, config: BotConfig) -> "ConfigDraft":
        return cls(strategy=config.strategy, threshold=str(config.threshold))


class TradeLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: str
    reason: str
    price: float
    timestamp: int = Field(ge=0)

    @property
    def observed_at(self) -> datetime:
        seconds, nanos = divmod(self.timestamp, 1_000_000_000)
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=nanos // 1000)


class Balance(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: float = Field(ge=0, allow_inf_nan=False)

    @property
    def display(self) -> str:
        rounded = Decimal(str(self.amount)).quantize(_DISPLAY_QUANTUM, rounding=ROUND_HALF_UP)
        return f"{rounded:.2f}"


__all__ = [
    "Balance",
    "BotConfig",
    "BotStatus",
    "ConfigDraft",
    "MIN_PRICE_POINTS",
    "TradeLogEntry",
]
