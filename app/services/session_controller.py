from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from app.core.errors import ConsoleError, RemoteCallFailure, ValidationError
from app.models.identity import Authenticated, AuthResult
from app.services.bot_control import BotControl
from app.services.config_sync import ConfigSync
from app.services.gateway import BotGateway
from app.services.identity_service import IdentitySession
from app.services.log_projector import LogBalanceProjector
from app.services.market_submission import MarketSubmission
from app.services.session_state import SessionState

logger = logging.getLogger(__name__)

ACTION_KINDS = ("toggle", "submit", "config", "sign_in")


@dataclass
class ActionOutcome:
    ok: bool
    message: str
    decision: Optional[str] = None


class SessionController:
    """Startup sequence and user actions for one browser session.

    Every action re-reads the remote state it could have changed:

    * toggle -> status and balance
    * submit prices -> trade logs and balance
    * update config -> config

    Actions of the same kind run one at a time; different kinds may overlap,
    in which case the last refresh to finish wins. An interactive login runs
    in the background so bot state loads while the provider is still open.
    """

    def __init__(
        self,
        gateway: BotGateway,
        identity: IdentitySession,
        *,
        state: SessionState | None = None,
    ) -> None:
        self.state = state or SessionState()
        self.state.observer = self._publish
        self.identity = identity
        self.bot = BotControl(gateway, self.state)
        self.config = ConfigSync(gateway, self.state)
        self.projector = LogBalanceProjector(gateway, self.state)
        self.market = MarketSubmission(gateway, self.projector, self.state)
        self._locks = {kind: asyncio.Lock() for kind in ACTION_KINDS}
        self._listeners: list[Callable[[SessionState], None]] = []
        self._login_task: asyncio.Task[ActionOutcome] | None = None

    def subscribe(self, callback: Callable[[SessionState], None]) -> None:
        self._listeners.append(callback)

    def unsubscribe(self, callback: Callable[[SessionState], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def is_busy(self, kind: str) -> bool:
        return self._locks[kind].locked()

    async def startup(self) -> SessionState:
        cached = self.identity.resolve_cached()
        if cached is not None:
            self.state.auth = cached
            self._publish()
        else:
            self._login_task = asyncio.create_task(self.sign_in())
        await self._run_refresh(self.bot.refresh)
        await asyncio.gather(
            self._run_refresh(self.projector.refresh_logs),
            self._run_refresh(self.projector.refresh_balance),
            self._run_refresh(self.config.refresh),
        )
        self.state.ready = True
        self._publish()
        logger.info(
            "Session ready (principal=%s, status=%s)",
            self.state.principal or "anonymous",
            self.state.bot_status.value if self.state.bot_status else "unknown",
        )
        return self.state

    async def sign_in(self) -> ActionOutcome:
        async with self._locks["sign_in"]:
            await self._establish_identity()
        if isinstance(self.state.auth, Authenticated):
            return ActionOutcome(True, f"Signed in as {self.state.auth.principal}")
        return ActionOutcome(False, "Sign-in was not completed")

    async def wait_for_identity(self) -> AuthResult:
        if self._login_task is not None:
            await self._login_task
        return self.state.auth

    def close(self) -> None:
        if self._login_task is not None and not self._login_task.done():
            self._login_task.cancel()

    async def toggle_bot(self) -> ActionOutcome:
        async with self._locks["toggle"]:
            try:
                status = await self.bot.toggle()
            except ConsoleError as exc:
                return self._rejected("toggle", exc)
            await self._run_refresh(self.projector.refresh_balance)
            return ActionOutcome(True, f"Bot {status.label.lower()}")

    async def submit_prices(self, raw_text: str | None) -> ActionOutcome:
        async with self._locks["submit"]:
            try:
                decision = await self.market.submit(raw_text)
            except ConsoleError as exc:
                return self._rejected("submit", exc)
            self._publish()
            return ActionOutcome(True, f"Decision: {decision}", decision=decision)

    async def update_config(self, strategy: Any, threshold: Any) -> ActionOutcome:
        async with self._locks["config"]:
            try:
                accepted = await self.config.update(strategy, threshold)
            except ConsoleError as exc:
                return self._rejected("config", exc)
            self._publish()
            return ActionOutcome(
                True,
                f"Configuration updated: {accepted.strategy} @ {accepted.threshold}",
            )

    async def _establish_identity(self) -> None:
        with self.state.track("identity"):
            result = await self.identity.establish()
        self.state.auth = result
        self._publish()

    async def _run_refresh(self, refresher: Callable[[], Awaitable[Any]]) -> bool:
        try:
            await refresher()
        except RemoteCallFailure as exc:
            logger.warning("Refresh failed: %s", exc)
            return False
        finally:
            self._publish()
        return True

    def _rejected(self, kind: str, exc: ConsoleError) -> ActionOutcome:
        if isinstance(exc, ValidationError):
            logger.warning("Rejected %s input: %s", kind, exc)
        else:
            logger.error("%s action failed: %s", kind.capitalize(), exc)
        self._publish()
        return ActionOutcome(False, str(exc))

    def _publish(self) -> None:
        for listener in list(self._listeners):
            listener(self.state)


__all__ = ["ACTION_KINDS", "ActionOutcome", "SessionController"]
