"""
Heuristic scoring of whale activity and individual wallet behavior.

Everything here is synchronous and deterministic: the same transaction list
always yields the same score, sentiment and classification.
"""

from typing import List, Optional

from .models import (
    ActivityAnalysis,
    RiskLevel,
    Sentiment,
    TradingPattern,
    TransactionRecord,
    WalletAnalysis,
    WalletInfo,
)

# Whale activity scale
WHALE_LARGE_THRESHOLD = 500_000
REFERENCE_VOLUME = 10_000_000
VOLUME_POINTS = 50
FREQUENCY_POINTS = 30
LARGE_POINTS = 20

# Wallet scale
WALLET_LARGE_THRESHOLD = 100_000
WHALE_AVG_SIZE = 1_000_000
LARGE_TRADER_AVG_SIZE = 500_000
MEDIUM_RISK_AVG_SIZE = 100_000


def analyze_whale_activity(transactions: List[TransactionRecord]) -> ActivityAnalysis:
    """Score a batch of whale transactions and derive market sentiment."""
    if not transactions:
        return ActivityAnalysis(score=0, sentiment=Sentiment.NEUTRAL, total_volume=0.0,
                                avg_size=0.0, large_count=0, buy_ratio=0.0)

    total_volume = 0.0
    large_count = 0
    buys = 0
    sells = 0

    for tx in transactions:
        total_volume += tx.amount

        if tx.amount > WHALE_LARGE_THRESHOLD:
            large_count += 1

        if tx.direction == "buy":
            buys += 1
        elif tx.direction == "sell":
            sells += 1

    avg_size = total_volume / len(transactions)

    score = min(total_volume / REFERENCE_VOLUME * VOLUME_POINTS, VOLUME_POINTS)
    score += min(len(transactions) * 3, FREQUENCY_POINTS)
    score += min(large_count * 5, LARGE_POINTS)
    score = max(0, min(100, int(round(score))))

    buy_ratio = buys / (buys + sells) if (buys + sells) else 0.0

    if buy_ratio > 0.7:
        sentiment = Sentiment.BULLISH
    elif buy_ratio < 0.3:
        sentiment = Sentiment.BEARISH
    elif large_count > 3:
        sentiment = Sentiment.ACTIVE
    else:
        sentiment = Sentiment.NEUTRAL

    return ActivityAnalysis(
        score=score,
        sentiment=sentiment,
        total_volume=total_volume,
        avg_size=avg_size,
        large_count=large_count,
        buy_ratio=buy_ratio,
    )


def analyze_wallet(transactions: List[TransactionRecord],
                   wallet_info: Optional[WalletInfo]) -> WalletAnalysis:
    """Classify a wallet's trading pattern and risk from its recent history."""
    balance = wallet_info.balance if wallet_info else 0.0

    if not transactions:
        analysis = WalletAnalysis(
            total_transactions=0,
            total_volume=0.0,
            net_flow=0.0,
            trading_pattern=TradingPattern.INACTIVE,
            risk_level=RiskLevel.LOW,
            avg_size=0.0,
            receive_ratio=0.0,
            large_count=0,
            balance=balance,
        )
        analysis.risk_score = calculate_risk_score(analysis, wallet_info)
        return analysis

    total_volume = 0.0
    net_flow = 0.0
    receive_count = 0
    large_count = 0

    for tx in transactions:
        total_volume += tx.amount
        net_flow += tx.net_change

        if tx.direction == "receive":
            receive_count += 1

        if tx.amount > WALLET_LARGE_THRESHOLD:
            large_count += 1

    avg_size = total_volume / len(transactions)
    receive_ratio = receive_count / len(transactions)

    if avg_size > WHALE_AVG_SIZE:
        pattern = TradingPattern.WHALE
    elif avg_size > LARGE_TRADER_AVG_SIZE:
        pattern = TradingPattern.LARGE_TRADER
    elif receive_ratio > 0.8:
        pattern = TradingPattern.ACCUMULATOR
    elif receive_ratio < 0.2:
        pattern = TradingPattern.DISTRIBUTOR
    else:
        pattern = TradingPattern.REGULAR

    if large_count > 10 and avg_size > WHALE_AVG_SIZE:
        risk = RiskLevel.VERY_HIGH
    elif large_count > 5 and avg_size > LARGE_TRADER_AVG_SIZE:
        risk = RiskLevel.HIGH
    elif avg_size > MEDIUM_RISK_AVG_SIZE:
        risk = RiskLevel.MEDIUM
    else:
        risk = RiskLevel.LOW

    analysis = WalletAnalysis(
        total_transactions=len(transactions),
        total_volume=total_volume,
        net_flow=net_flow,
        trading_pattern=pattern,
        risk_level=risk,
        avg_size=avg_size,
        receive_ratio=receive_count * 100 / len(transactions),
        large_count=large_count,
        balance=balance,
    )
    analysis.risk_score = calculate_risk_score(analysis, wallet_info)
    return analysis


def calculate_risk_score(analysis: WalletAnalysis, wallet_info: Optional[WalletInfo]) -> int:
    """Composite 0-100 risk score for ranking wallets within a risk level."""
    balance = wallet_info.balance if wallet_info else analysis.balance
    score = 0

    # Balance
    if balance > 10_000_000:
        score += 30
    elif balance > 1_000_000:
        score += 20
    elif balance > 100_000:
        score += 10

    # Transaction size
    if analysis.avg_size > 1_000_000:
        score += 25
    elif analysis.avg_size > 500_000:
        score += 15
    elif analysis.avg_size > 100_000:
        score += 10

    # Activity frequency
    if analysis.total_transactions > 50:
        score += 20
    elif analysis.total_transactions > 20:
        score += 10

    # Large transaction frequency
    if analysis.large_count > 10:
        score += 25
    elif analysis.large_count > 5:
        score += 15

    return min(score, 100)
