"""
Data models for Cardano whale watching and wallet tracking.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any


class Sentiment(str, Enum):
    BULLISH = "Bullish"
    BEARISH = "Bearish"
    ACTIVE = "Active"
    NEUTRAL = "Neutral"


class TradingPattern(str, Enum):
    WHALE = "Whale"
    LARGE_TRADER = "Large Trader"
    ACCUMULATOR = "Accumulator"
    DISTRIBUTOR = "Distributor"
    REGULAR = "Regular"
    INACTIVE = "Inactive"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    VERY_HIGH = "Very High"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class TransactionRecord:
    """A single transaction, either a global whale move or a wallet movement."""
    hash: str
    amount: float
    direction: str  # 'buy'/'sell' for whale records, 'receive'/'send' for wallets
    timestamp: datetime
    block: str
    fees: float = 0.0
    net_change: float = 0.0
    confidence: Optional[str] = None
    size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "hash": self.hash,
            "amount": self.amount,
            "type": self.direction,
            "timestamp": _iso(self.timestamp),
            "block": self.block,
            "fees": self.fees,
        }
        if self.direction in ("receive", "send"):
            data["netChange"] = self.net_change
        if self.confidence is not None:
            data["confidence"] = self.confidence
        if self.size is not None:
            data["size"] = self.size
        return data


@dataclass
class ActivityAnalysis:
    """Aggregate view of a batch of whale transactions."""
    score: int
    sentiment: Sentiment
    total_volume: float
    avg_size: float
    large_count: int
    buy_ratio: float  # fraction 0..1


@dataclass
class WhaleSnapshot:
    """Global whale activity as of the last scheduler run."""
    transactions: List[TransactionRecord]
    activity_score: int
    sentiment: Sentiment
    price: float
    total_volume: float
    last_update: Optional[datetime] = None

    @classmethod
    def placeholder(cls, price: float) -> "WhaleSnapshot":
        return cls(transactions=[], activity_score=0, sentiment=Sentiment.NEUTRAL,
                   price=price, total_volume=0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactions": [tx.to_dict() for tx in self.transactions],
            "activityScore": self.activity_score,
            "sentiment": self.sentiment.value,
            "price": self.price,
            "totalVolume": round(self.total_volume),
            "lastUpdate": _iso(self.last_update),
        }


@dataclass
class WalletInfo:
    """Balance and account details for one address."""
    address: str
    balance: float
    tx_count: int
    account_type: str = "shelley"
    script: bool = False
    stake_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "balance": self.balance,
            "txCount": self.tx_count,
            "type": self.account_type,
            "script": self.script,
            "stakeAddress": self.stake_address,
        }


@dataclass
class WalletAnalysis:
    """Behavioral classification of one wallet's recent history."""
    total_transactions: int
    total_volume: float
    net_flow: float
    trading_pattern: TradingPattern
    risk_level: RiskLevel
    avg_size: float
    receive_ratio: float  # percentage 0..100
    large_count: int
    balance: float
    risk_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalTransactions": self.total_transactions,
            "totalVolume": round(self.total_volume),
            "netFlow": round(self.net_flow),
            "tradingPattern": self.trading_pattern.value,
            "riskLevel": self.risk_level.value,
            "avgSize": round(self.avg_size),
            "receiveRatio": round(self.receive_ratio),
            "largeCount": self.large_count,
            "balance": self.balance,
            "riskScore": self.risk_score,
        }


@dataclass
class TrackedWallet:
    """A wallet the user asked to follow."""
    address: str
    nickname: str
    info: WalletInfo
    transactions: List[TransactionRecord]
    analysis: WalletAnalysis
    source: str
    created_at: datetime
    last_updated: datetime
    handle: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "handle": self.handle,
            "nickname": self.nickname,
            "info": self.info.to_dict(),
            "transactions": [tx.to_dict() for tx in self.transactions],
            "analysis": self.analysis.to_dict(),
            "source": self.source,
            "createdAt": _iso(self.created_at),
            "lastUpdated": _iso(self.last_updated),
        }


@dataclass
class ResolutionResult:
    """Outcome of turning user input into a chain address."""
    success: bool
    address: Optional[str] = None
    handle: Optional[str] = None
    default_name: Optional[str] = None
    source: Optional[str] = None
    kind: Optional[str] = None  # 'address' or 'handle'
    error: Optional[str] = None
