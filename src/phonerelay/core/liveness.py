"""Liveness monitor - periodic probe/evict sweep over connected handles."""

import asyncio
import logging

from phonerelay.core.message_router import MessageRouter

logger = logging.getLogger(__name__)


class LivenessMonitor:
    """Detects and evicts unresponsive connections.

    On every sweep, for each connected handle:
    1. If the previous probe went unanswered (alive is False), terminate it
    2. Otherwise clear alive and send a new probe; the answer sets it again

    A peer is therefore evicted after failing one full cycle.
    """

    def __init__(self, router: MessageRouter, interval_seconds: float = 30.0) -> None:
        """Initialize the monitor.

        Args:
            router: Router whose connected handles are swept
            interval_seconds: Time between sweeps
        """
        self._router = router
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    async def sweep(self) -> int:
        """Run one probe/evict cycle.

        Returns:
            Number of connections terminated
        """
        terminated = 0
        for handle in self._router.handles:
            if not handle.alive:
                logger.info(f"Terminating unresponsive connection {handle!r}")
                handle.connection.terminate()
                terminated += 1
                continue
            handle.alive = False
            try:
                await handle.connection.ping(handle.mark_alive)
            except Exception:
                logger.exception(f"Failed to probe {handle!r}")
        return terminated

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                terminated = await self.sweep()
            except Exception:
                logger.exception("Liveness sweep failed")
                continue
            if terminated:
                logger.debug(f"Liveness sweep terminated {terminated} connection(s)")

    def start(self) -> None:
        """Start the periodic sweep task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the periodic sweep task."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval_seconds(self) -> float:
        return self._interval
