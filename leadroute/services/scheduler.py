"""In-process periodic trigger for reconciliation ticks."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from leadroute.utils.config import RoutingConfig
from leadroute.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class ReconciliationScheduler:
    """
    Calls ``tick`` every ``interval_seconds`` on the running event loop.

    Ticks run one after another, so they never overlap. The scheduler does
    not own the process: callers start and stop it (e.g. from app lifespan).
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[Any]],
        interval_seconds: Optional[float] = None,
    ):
        self.tick = tick
        self.interval_seconds = interval_seconds or RoutingConfig.RECONCILE_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        logger.info("ReconciliationScheduler initialized", interval_seconds=self.interval_seconds)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info("Reconciliation scheduler started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reconciliation scheduler stopped")

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error("Scheduled reconciliation tick failed", error=str(e), exc_info=True)

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
