from __future__ import annotations

import logging

from app.models.bot import BotStatus
from app.services.gateway import BotGateway
from app.services.session_state import SessionState

logger = logging.getLogger(__name__)


class BotControl:
    """Running/stopped mirror of the remote bot.

    The published status is only ever taken from a status query, so a start or
    stop call that silently does nothing on the remote side cannot leave the
    dashboard showing a flipped state.
    """

    def __init__(self, gateway: BotGateway, state: SessionState) -> None:
        self._gateway = gateway
        self._state = state

    @property
    def status(self) -> BotStatus | None:
        return self._state.bot_status

    async def refresh(self) -> BotStatus:
        with self._state.track("status"):
            active = await self._gateway.get_bot_status()
        status = BotStatus.from_active(active)
        self._state.bot_status = status
        return status

    async def toggle(self) -> BotStatus:
        current = self._state.bot_status
        if current is None:
            current = await self.refresh()
        with self._state.track("status"):
            if current is BotStatus.RUNNING:
                await self._gateway.stop_bot()
            else:
                await self._gateway.start_bot()
        status = await self.refresh()
        logger.info("Bot toggled from %s; service reports %s", current.value, status.value)
        return status


__all__ = ["BotControl"]
