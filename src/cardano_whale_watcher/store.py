"""
In-memory registry of tracked wallets with staleness-driven refresh.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from .analyzer import analyze_wallet
from .broadcast import Broadcaster, WALLET_REMOVED, WALLET_TRACKED, WALLET_UPDATED
from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import TrackedWallet, TransactionRecord
from .resolver import AddressResolver
from .utils import is_valid_address

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrackingStore:
    """
    Owns the tracked-wallet map. Addresses are unique keys; all access goes
    through the operations below.
    """

    def __init__(self, chain, broadcaster: Broadcaster,
                 resolver: Optional[AddressResolver] = None,
                 stale_after: timedelta = timedelta(minutes=5),
                 history_size: int = 20,
                 clock: Callable[[], datetime] = utc_now):
        self.chain = chain
        self.broadcaster = broadcaster
        self.resolver = resolver or AddressResolver()
        self.stale_after = stale_after
        self.history_size = history_size
        self.clock = clock
        self._wallets: Dict[str, TrackedWallet] = {}
        self._refreshing: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._wallets)

    def __contains__(self, address: str) -> bool:
        return address in self._wallets

    async def _fetch(self, address: str):
        info, transactions = await asyncio.gather(
            asyncio.to_thread(self.chain.get_wallet_info, address),
            asyncio.to_thread(self.chain.get_wallet_transactions, address,
                              1, self.history_size),
        )
        return info, transactions[:self.history_size]

    def _conflict(self, address: str) -> ConflictError:
        existing = self._wallets[address]
        return ConflictError(
            f'Already tracking this wallet as "{existing.nickname}"', existing)

    async def track(self, address: str, nickname: Optional[str] = None,
                    handle: Optional[str] = None, source: str = "direct",
                    default_name: Optional[str] = None) -> TrackedWallet:
        """Start tracking an address; raises ConflictError if it is already tracked."""
        if address in self._wallets:
            raise self._conflict(address)

        logger.info(f"Fetching wallet data for {address}")
        info, transactions = await self._fetch(address)

        # Another track of the same address may have finished while we fetched
        if address in self._wallets:
            raise self._conflict(address)

        now = self.clock()
        wallet = TrackedWallet(
            address=address,
            handle=handle,
            nickname=nickname or default_name or f"Wallet {address[:8]}",
            info=info,
            transactions=transactions,
            analysis=analyze_wallet(transactions, info),
            source=source,
            created_at=now,
            last_updated=now,
        )

        self._wallets[address] = wallet
        await self.broadcaster.publish(WALLET_TRACKED, wallet.to_dict())

        logger.info(f"Tracking: {wallet.nickname}")
        return wallet

    async def resolve_and_track(self, value: Optional[str],
                                nickname: Optional[str] = None) -> TrackedWallet:
        """Resolve an address or $handle and track the result."""
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("Address or handle is required")
        if nickname is not None and not isinstance(nickname, str):
            raise ValidationError("Nickname must be a string")

        logger.info(f"Processing: {value}")
        resolved = await self.resolver.resolve(value.strip())
        if not resolved.success:
            raise ValidationError(resolved.error)

        return await self.track(
            resolved.address,
            nickname=(nickname or "").strip() or None,
            handle=resolved.handle,
            source=resolved.source,
            default_name=resolved.default_name,
        )

    def is_stale(self, wallet: TrackedWallet) -> bool:
        return self.clock() - wallet.last_updated > self.stale_after

    async def _refresh(self, wallet: TrackedWallet) -> TrackedWallet:
        logger.info(f"Refreshing {wallet.nickname}...")
        info, transactions = await self._fetch(wallet.address)

        wallet.info = info
        wallet.transactions = transactions
        wallet.analysis = analyze_wallet(transactions, info)
        wallet.last_updated = self.clock()

        if self._wallets.get(wallet.address) is wallet:
            await self.broadcaster.publish(WALLET_UPDATED, wallet.to_dict())
        return wallet

    async def get(self, address: str) -> TrackedWallet:
        """Return a tracked wallet, refreshing it first if its data is stale."""
        wallet = self._wallets.get(address)
        if wallet is None:
            raise NotFoundError("Wallet not found")

        if not self.is_stale(wallet):
            return wallet

        # Concurrent readers of the same stale wallet share one refresh
        task = self._refreshing.get(address)
        if task is None:
            task = asyncio.ensure_future(self._refresh(wallet))
            self._refreshing[address] = task
            task.add_done_callback(lambda _: self._refreshing.pop(address, None))

        return await asyncio.shield(task)

    def list(self) -> List[TrackedWallet]:
        """All tracked wallets, newest first. Never refreshes."""
        return sorted(self._wallets.values(), key=lambda w: w.created_at, reverse=True)

    async def untrack(self, address: str) -> TrackedWallet:
        wallet = self._wallets.pop(address, None)
        if wallet is None:
            raise NotFoundError("Wallet not found")

        await self.broadcaster.publish(
            WALLET_REMOVED, {"address": address, "nickname": wallet.nickname})
        logger.info(f"Stopped tracking {wallet.nickname}")
        return wallet

    async def transactions(self, address: str, page: int = 1,
                           count: int = 20) -> List[TransactionRecord]:
        """One page of an address's on-chain history; the address need not be tracked."""
        if not is_valid_address(address):
            raise ValidationError("Invalid address")
        if page < 1 or not 1 <= count <= MAX_PAGE_SIZE:
            raise ValidationError(
                f"page must be >= 1 and count between 1 and {MAX_PAGE_SIZE}")

        return await asyncio.to_thread(
            self.chain.get_wallet_transactions, address, page, count)

    def clear(self):
        """Drop every tracked wallet."""
        for task in self._refreshing.values():
            task.cancel()
        self._refreshing.clear()
        self._wallets.clear()
