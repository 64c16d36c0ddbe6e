import asyncio
import logging
from typing import Optional

from .directory import InstanceDirectory

logger = logging.getLogger("radome.directory.poller")


class StatusPoller:
    """Background task refreshing every known instance on a fixed interval."""

    def __init__(self, directory: InstanceDirectory, interval: float):
        self.directory = directory
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.interval <= 0:
            logger.info("Status polling disabled (interval <= 0)")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Status poller started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Status poller stopped")

    async def poll_once(self) -> int:
        """Refresh all instances once; returns how many were refreshed."""
        refreshed = await self.directory.refresh_all()
        return len(refreshed)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                count = await self.poll_once()
                logger.debug(f"Refreshed status of {count} instances")
            except Exception as e:
                logger.error(f"Status poll failed: {e}")
