from __future__ import annotations

import asyncio
import logging
import math
import re

from app.core.errors import RemoteCallFailure, ValidationError
from app.models.bot import MIN_PRICE_POINTS
from app.services.gateway import BotGateway
from app.services.log_projector import LogBalanceProjector
from app.services.session_state import SessionState

logger = logging.getLogger(__name__)

_TOKEN_SPLIT = re.compile(r"[,\r\n]+")


def parse_price_series(raw_text: str | None) -> list[float]:
    """Parse free-text prices, silently dropping tokens that are not finite numbers."""
    prices: list[float] = []
    for token in _TOKEN_SPLIT.split(raw_text or ""):
        token = token.strip()
        if not token:
            # an empty entry is a missing price, not zero
            continue
        try:
            value = float(token)
        except ValueError:
            continue
        if math.isfinite(value):
            prices.append(value)
    return prices


class MarketSubmission:
    def __init__(
        self,
        gateway: BotGateway,
        projector: LogBalanceProjector,
        state: SessionState,
    ) -> None:
        self._gateway = gateway
        self._projector = projector
        self._state = state

    async def submit(self, raw_text: str | None) -> str:
        prices = parse_price_series(raw_text)
        if len(prices) < MIN_PRICE_POINTS:
            logger.warning(
                "Rejected price history with %s valid point(s); need %s",
                len(prices),
                MIN_PRICE_POINTS,
            )
            raise ValidationError(
                f"insufficient data points: enter at least {MIN_PRICE_POINTS} prices"
            )
        decision = await self._gateway.analyze_market(prices)
        self._state.last_decision = decision
        logger.info("Market analysis over %s prices returned %s", len(prices), decision)
        await self._refresh_projections()
        return decision

    async def _refresh_projections(self) -> None:
        results = await asyncio.gather(
            self._projector.refresh_logs(),
            self._projector.refresh_balance(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, RemoteCallFailure):
                logger.warning("Post-analysis refresh failed: %s", result)
            elif isinstance(result, BaseException):
                raise result


__all__ = ["MarketSubmission", "parse_price_series"]
