"""Periodic expiry sweep for pairing sessions and client tokens.

Owned by the application lifespan: ``start()`` on startup, ``stop()`` on
shutdown. A failing tick is logged and retried on the next interval.
"""

import asyncio
import logging

from homepair.services.pairing_service import PairingSessionManager
from homepair.services.token_service import TokenService

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        pairing: PairingSessionManager,
        tokens: TokenService,
        interval_seconds: float,
    ):
        self._pairing = pairing
        self._tokens = tokens
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="expiry-sweeper")
        logger.info("Expiry sweeper started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiry sweeper stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.run_once()

    async def run_once(self) -> None:
        """One sweep pass. Store calls run off the event loop."""
        try:
            await asyncio.to_thread(self._pairing.sweep)
        except Exception as e:
            logger.error("Pairing sweep failed: %s", e, exc_info=True)
        try:
            await asyncio.to_thread(self._tokens.sweep_expired)
        except Exception as e:
            logger.error("Token sweep failed: %s", e, exc_info=True)
