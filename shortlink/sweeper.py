"""Expiration Sweeper - periodic deactivation of links past their expiry.

Flow Diagram — Sweep Loop
=========================
::
    ┌─────────────┐
    │  start()    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ run_once()   │◀─────────┐
    │ bulk UPDATE  │          │
    └──────┬──────┘          │
    ERROR? │                 │
    ┌─────┴─────┐            │
    │ YES        │ NO         │
    ▼            ▼            │
┌─────────┐  ┌─────────┐      │
│ Log and │  │ Log     │      │
│ continue│  │ count   │      │
└────┬────┘  └────┬────┘      │
     └─────┬──────┘           │
           ▼                  │
    ┌─────────────┐           │
    │ sleep        │───────────┘
    │ (interval)   │
    └─────────────┘

Key Behaviours
===============
- Only flips ``active`` to false; rows and their click events are kept.
- Running twice in a row is harmless: the second run affects nothing.
"""

import asyncio
import logging

from shortlink.link_service import LinkResolutionService

__all__ = ["ExpirationSweeper"]

logger = logging.getLogger(__name__)


class ExpirationSweeper:
    def __init__(self, link_service: LinkResolutionService, interval_seconds: float = 3600.0):
        self._link_service = link_service
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        deactivated = await self._link_service.deactivate_expired()
        logger.info(f"Expiration sweep deactivated {deactivated} links")
        return deactivated

    async def _run_forever(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Expiration sweep error: {e}")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_forever(), name="expiration-sweeper")
        logger.info(f"Expiration sweeper started, interval {self._interval}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiration sweeper stopped")
