from __future__ import annotations

import logging
import math
from typing import Any

from app.core.errors import ValidationError
from app.models.bot import BotConfig, ConfigDraft
from app.services.gateway import BotGateway
from app.services.session_state import SessionState

logger = logging.getLogger(__name__)


def parse_threshold(value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError("Threshold must be a number")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError("Threshold is required")
    try:
        threshold = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Threshold must be a number, got {value!r}") from exc
    if not math.isfinite(threshold):
        raise ValidationError("Threshold must be a finite number")
    return threshold


def parse_strategy(value: Any) -> str:
    strategy = str(value or "").strip()
    if not strategy:
        raise ValidationError("Strategy is required")
    return strategy


class ConfigSync:
    def __init__(self, gateway: BotGateway, state: SessionState) -> None:
        self._gateway = gateway
        self._state = state

    @property
    def draft(self) -> ConfigDraft:
        return self._state.draft_config

    @property
    def confirmed(self) -> BotConfig | None:
        return self._state.confirmed_config

    def edit(self, *, strategy: str | None = None, threshold: Any = None) -> ConfigDraft:
        changes: dict[str, str] = {}
        if strategy is not None:
            changes["strategy"] = str(strategy)
        if threshold is not None:
            changes["threshold"] = str(threshold)
        self._state.draft_config = self._state.draft_config.model_copy(update=changes)
        return self._state.draft_config

    async def refresh(self) -> BotConfig:
        with self._state.track("config"):
            config = await self._gateway.get_bot_config()
        self._state.confirmed_config = config
        self._state.draft_config = ConfigDraft.from_config(config)
        return config

    async def update(self, draft_strategy: Any, draft_threshold: Any) -> BotConfig:
        self.edit(strategy=draft_strategy, threshold=draft_threshold)
        strategy = parse_strategy(draft_strategy)
        threshold = parse_threshold(draft_threshold)
        with self._state.track("config"):
            await self._gateway.update_config(strategy, threshold)
        logger.info("Config submitted strategy=%s threshold=%s", strategy, threshold)
        accepted = await self.refresh()
        if accepted.strategy != strategy or accepted.threshold != threshold:
            logger.warning(
                "Bot service normalized config to strategy=%s threshold=%s",
                accepted.strategy,
                accepted.threshold,
            )
        return accepted


__all__ = ["ConfigSync", "parse_strategy", "parse_threshold"]
