from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, Optional

from app.core.errors import ConsoleError
from app.models.bot import Balance, BotConfig, BotStatus, ConfigDraft, TradeLogEntry
from app.models.identity import Anonymous, AuthResult

ENTITIES = ("identity", "status", "config", "logs", "balance")


class RefreshStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    FAILED = "failed"


@dataclass
class SessionState:
    """Everything one browser session knows about the bot service."""

    auth: AuthResult = field(default_factory=Anonymous)
    bot_status: Optional[BotStatus] = None
    confirmed_config: Optional[BotConfig] = None
    draft_config: ConfigDraft = field(default_factory=ConfigDraft)
    logs: list[TradeLogEntry] = field(default_factory=list)
    balance: Optional[Balance] = None
    last_decision: Optional[str] = None
    ready: bool = False
    refresh: dict[str, RefreshStatus] = field(
        default_factory=lambda: {name: RefreshStatus.IDLE for name in ENTITIES}
    )
    errors: dict[str, str] = field(default_factory=dict)
    observer: Optional[Callable[[], None]] = field(default=None, repr=False, compare=False)

    @property
    def principal(self) -> str | None:
        return getattr(self.auth, "principal", None)

    def is_pending(self, entity: str) -> bool:
        return self.refresh.get(entity) is RefreshStatus.PENDING

    def is_failed(self, entity: str) -> bool:
        return self.refresh.get(entity) is RefreshStatus.FAILED

    @contextmanager
    def track(self, entity: str) -> Iterator[None]:
        """Mark ``entity`` pending for the duration of a remote round trip.

        Failures flip it to FAILED and keep the previously published value.
        """
        self._mark(entity, RefreshStatus.PENDING)
        try:
            yield
        except ConsoleError as exc:
            self.errors[entity] = str(exc)
            self._mark(entity, RefreshStatus.FAILED)
            raise
        except BaseException:
            self._mark(entity, RefreshStatus.IDLE)
            raise
        else:
            self.errors.pop(entity, None)
            self._mark(entity, RefreshStatus.IDLE)

    def _mark(self, entity: str, status: RefreshStatus) -> None:
        self.refresh[entity] = status
        if self.observer is not None:
            self.observer()


__all__ = ["ENTITIES", "RefreshStatus", "SessionState"]
