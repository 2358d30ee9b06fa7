"""
Periodic, single-flight refresh of global whale activity and ADA price.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Set

from .analyzer import analyze_whale_activity
from .broadcast import Broadcaster, UPDATE_ERROR, WHALE_UPDATE
from .models import WhaleSnapshot
from .store import utc_now

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class UpdateScheduler:
    """
    Drives the whale refresh loop.

    At most one run executes at a time: a trigger that arrives while a run is
    in progress returns immediately without queueing another.
    """

    def __init__(self, chain, prices, broadcaster: Broadcaster,
                 interval: float = 45.0, initial_delay: float = 2.0,
                 snapshot_size: int = 10, fallback_price: float = 0.47,
                 clock=utc_now):
        self.chain = chain
        self.prices = prices
        self.broadcaster = broadcaster
        self.interval = interval
        self.initial_delay = initial_delay
        self.snapshot_size = snapshot_size
        self.clock = clock

        self._snapshot = WhaleSnapshot.placeholder(fallback_price)
        self._lock = asyncio.Lock()
        self._state = RunState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._runs: Set[asyncio.Task] = set()
        self.completed_runs = 0

    @property
    def snapshot(self) -> WhaleSnapshot:
        return self._snapshot

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _fetch_whales(self):
        return await asyncio.to_thread(self.chain.get_whale_transactions)

    async def _fetch_price(self) -> float:
        quote = await asyncio.to_thread(self.prices.get_ada_price)
        return float(quote["price"])

    async def _gather(self):
        """Fetch whales and price independently; each branch falls back on failure."""
        whales, price = await asyncio.gather(
            self._fetch_whales(), self._fetch_price(), return_exceptions=True)

        if isinstance(whales, BaseException):
            logger.error(f"Whale transactions error: {whales}")
            whales = []
        if isinstance(price, BaseException):
            logger.error(f"Price fetch error: {price}")
            price = self._snapshot.price

        return whales, price

    async def run_once(self) -> bool:
        """Run one refresh. Returns False if a run was already in flight."""
        if self._lock.locked():
            logger.info("Update already in progress, skipping...")
            return False

        async with self._lock:
            self._state = RunState.RUNNING
            try:
                logger.info("Updating whale data...")
                whales, price = await self._gather()

                analysis = analyze_whale_activity(whales)
                snapshot = WhaleSnapshot(
                    transactions=list(whales[:self.snapshot_size]),
                    activity_score=analysis.score,
                    sentiment=analysis.sentiment,
                    price=price,
                    total_volume=analysis.total_volume,
                    last_update=self.clock(),
                )

                self._snapshot = snapshot
                await self.broadcaster.publish(WHALE_UPDATE, snapshot.to_dict())

                logger.info(
                    f"Updated: {len(whales)} transactions, price: ${price}, "
                    f"sentiment: {analysis.sentiment.value}")
            except Exception as e:
                logger.exception(f"Update error: {e}")
                await self.broadcaster.publish(UPDATE_ERROR, {
                    "message": "Failed to update whale data",
                    "timestamp": self.clock().isoformat(),
                })
            finally:
                self.completed_runs += 1
                self._state = RunState.IDLE

        return True

    def trigger(self) -> asyncio.Task:
        """Schedule a run without waiting for it (still subject to single-flight)."""
        task = asyncio.create_task(self.run_once())
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def _loop(self):
        await asyncio.sleep(self.initial_delay)
        while True:
            self.trigger()
            await asyncio.sleep(self.interval)

    def start(self) -> asyncio.Task:
        """Start background updates (first run after the initial delay)."""
        if self.running:
            self._task.cancel()
        self._task = asyncio.create_task(self._loop(), name="whale-updates")
        logger.info(
            f"Background updates every {self.interval}s, first in {self.initial_delay}s")
        return self._task

    def stop(self):
        """Cancel future ticks. A run already in flight is left to finish."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("Background updates stopped")

    async def drain(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for in-flight runs; True if none remain."""
        if not self._runs:
            return True
        _, pending = await asyncio.wait(set(self._runs), timeout=timeout)
        return not pending
