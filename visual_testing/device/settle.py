"""Fixed settle waits, used where the app exposes no readiness signal."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)


class SettleStrategy:
    """Waits until the app is assumed stable. Subclass to plug in a readiness probe."""

    async def wait(self, reason: str = "") -> None:
        raise NotImplementedError


class FixedDelay(SettleStrategy):
    def __init__(self, seconds: float):
        self.seconds = seconds

    async def wait(self, reason: str = "") -> None:
        if self.seconds <= 0:
            return
        logger.debug("Settling %.1fs%s", self.seconds, f" ({reason})" if reason else "")
        await asyncio.sleep(self.seconds)


class NoDelay(SettleStrategy):
    async def wait(self, reason: str = "") -> None:
        return None
