"""
Shared fixtures and fakes for the whale watcher tests.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from cardano_whale_watcher.broadcast import Broadcaster
from cardano_whale_watcher.config import Config
from cardano_whale_watcher.exceptions import UpstreamError
from cardano_whale_watcher.models import TransactionRecord, WalletInfo

ADDR_A = "addr1" + "q" * 50
ADDR_B = "addr1" + "x" * 50
ADDR_C = "addr1" + "z9" * 30

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def whale_tx(amount: float, direction: str = "buy", minutes_ago: int = 0,
             tx_hash: Optional[str] = None) -> TransactionRecord:
    return TransactionRecord(
        hash=tx_hash or f"whale-{amount}-{direction}-{minutes_ago}",
        amount=amount,
        direction=direction,
        timestamp=T0 - timedelta(minutes=minutes_ago),
        block="blk",
        confidence="Medium",
    )


def wallet_tx(net_change: float, minutes_ago: int = 0,
              tx_hash: Optional[str] = None) -> TransactionRecord:
    return TransactionRecord(
        hash=tx_hash or f"wallet-{net_change}-{minutes_ago}",
        amount=abs(net_change),
        direction="receive" if net_change > 0 else "send",
        timestamp=T0 - timedelta(minutes=minutes_ago),
        block="blk",
        net_change=net_change,
    )


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeChain:
    """In-memory chain gateway with call counters."""

    def __init__(self, whales: Optional[List[TransactionRecord]] = None):
        self.whales = whales or []
        self.histories = {}
        self.balances = {}
        self.fail_whales = False
        self.fail_wallets = False
        self.whale_calls = 0
        self.info_calls = 0
        self.history_calls = 0

    def get_whale_transactions(self):
        self.whale_calls += 1
        if self.fail_whales:
            raise UpstreamError("chain down")
        return list(self.whales)

    def get_wallet_info(self, address):
        self.info_calls += 1
        if self.fail_wallets:
            raise UpstreamError("chain down")
        return WalletInfo(address=address, balance=self.balances.get(address, 1000.0),
                          tx_count=len(self.histories.get(address, [])))

    def get_wallet_transactions(self, address, page=1, count=20):
        self.history_calls += 1
        if self.fail_wallets:
            raise UpstreamError("chain down")
        history = self.histories.get(address, [])
        start = (page - 1) * count
        return history[start:start + count]


class FakePrices:
    def __init__(self, price: float = 0.5):
        self.price = price
        self.fail = False
        self.calls = 0

    def get_ada_price(self):
        self.calls += 1
        if self.fail:
            raise UpstreamError("price feed down")
        return {"price": self.price, "change24h": 1.5, "timestamp": T0.isoformat()}


class FakeSubscriber:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages = []
        self.closed = False

    async def send_json(self, payload):
        if self.fail:
            raise ConnectionResetError("gone")
        self.messages.append(payload)

    async def close(self):
        self.closed = True

    def events(self):
        return [m["event"] for m in self.messages]


@pytest.fixture
def config():
    return Config(blockfrost_api_key="test-key", rate_limit_delay=0.0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def prices():
    return FakePrices()


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def subscriber():
    return FakeSubscriber()
