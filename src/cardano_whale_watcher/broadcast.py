"""
Best-effort fan-out of state changes to connected subscribers.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

WALLET_TRACKED = "wallet-tracked"
WALLET_UPDATED = "wallet-updated"
WALLET_REMOVED = "wallet-removed"
WALLETS_UPDATE = "wallets-update"
WHALE_UPDATE = "whale-update"
UPDATE_ERROR = "update-error"


class Broadcaster:
    """
    Publish/subscribe channel for watcher events.

    A subscriber is anything with an async ``send_json(payload)`` method, such
    as an aiohttp ``WebSocketResponse``. Delivery is at-most-once: a subscriber
    whose send fails is dropped.
    """

    def __init__(self):
        self._subscribers: Set[Any] = set()
        self._snapshot_provider: Optional[Callable[[], Dict[str, Any]]] = None
        self._wallets_provider: Optional[Callable[[], List[Dict[str, Any]]]] = None

    def set_state_providers(self, snapshot: Callable[[], Dict[str, Any]],
                            wallets: Callable[[], List[Dict[str, Any]]]):
        """Register the callables used to replay state to new subscribers."""
        self._snapshot_provider = snapshot
        self._wallets_provider = wallets

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def _send(self, subscriber: Any, event: str, payload: Any) -> bool:
        try:
            await subscriber.send_json({"event": event, "data": payload})
            return True
        except Exception as e:
            logger.warning(f"Dropping subscriber after failed {event} delivery: {e}")
            self._subscribers.discard(subscriber)
            return False

    async def publish(self, event: str, payload: Any) -> int:
        """Send an event to every subscriber; returns how many received it."""
        delivered = 0
        for subscriber in list(self._subscribers):
            if await self._send(subscriber, event, payload):
                delivered += 1
        logger.debug(f"Published {event} to {delivered} subscribers")
        return delivered

    async def subscribe(self, subscriber: Any):
        """Register a subscriber and replay current state to it."""
        self._subscribers.add(subscriber)
        logger.info(f"Subscriber connected ({len(self._subscribers)} total)")

        if self._snapshot_provider is not None:
            if not await self._send(subscriber, WHALE_UPDATE, self._snapshot_provider()):
                return
        if self._wallets_provider is not None:
            await self._send(subscriber, WALLETS_UPDATE, self._wallets_provider())

    def unsubscribe(self, subscriber: Any):
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            logger.info(f"Subscriber disconnected ({len(self._subscribers)} total)")

    async def close(self):
        """Close every subscriber connection."""
        for subscriber in list(self._subscribers):
            close = getattr(subscriber, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.warning(f"Error closing subscriber: {e}")
        self._subscribers.clear()
