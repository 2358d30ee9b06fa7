import pytest

from cardano_whale_watcher.analyzer import (
    analyze_wallet,
    analyze_whale_activity,
    calculate_risk_score,
)
from cardano_whale_watcher.models import (
    RiskLevel,
    Sentiment,
    TradingPattern,
    WalletAnalysis,
    WalletInfo,
)

from conftest import ADDR_A, wallet_tx, whale_tx


def info(balance=0.0):
    return WalletInfo(address=ADDR_A, balance=balance, tx_count=0)


class TestWhaleActivity:

    def test_empty_is_neutral(self):
        result = analyze_whale_activity([])
        assert result.score == 0
        assert result.sentiment == Sentiment.NEUTRAL
        assert result.total_volume == 0
        assert result.avg_size == 0
        assert result.large_count == 0

    def test_score_components(self):
        # 2 txs, 1M volume: 5 volume points + 6 frequency + 5 large
        txs = [whale_tx(600_000, "buy"), whale_tx(400_000, "sell")]
        result = analyze_whale_activity(txs)
        assert result.total_volume == 1_000_000
        assert result.avg_size == 500_000
        assert result.large_count == 1
        assert result.score == 16

    def test_score_is_capped_at_100(self):
        txs = [whale_tx(5_000_000, "buy", minutes_ago=i) for i in range(20)]
        result = analyze_whale_activity(txs)
        assert result.score == 100

    def test_score_rounds_to_nearest(self):
        # 50,000 ADA = 0.25 volume points + 3 frequency -> 3.25 -> 3
        result = analyze_whale_activity([whale_tx(50_000, "buy")])
        assert result.score == 3

    @pytest.mark.parametrize("buys,sells,expected", [
        (8, 2, Sentiment.BULLISH),
        (2, 8, Sentiment.BEARISH),
        (5, 5, Sentiment.NEUTRAL),
    ])
    def test_sentiment_from_buy_ratio(self, buys, sells, expected):
        txs = ([whale_tx(60_000, "buy", minutes_ago=i) for i in range(buys)] +
               [whale_tx(60_000, "sell", minutes_ago=i) for i in range(sells)])
        assert analyze_whale_activity(txs).sentiment == expected

    def test_balanced_flow_with_many_large_is_active(self):
        txs = ([whale_tx(900_000, "buy", minutes_ago=i) for i in range(2)] +
               [whale_tx(900_000, "sell", minutes_ago=i) for i in range(2)])
        result = analyze_whale_activity(txs)
        assert result.large_count == 4
        assert result.buy_ratio == 0.5
        assert result.sentiment == Sentiment.ACTIVE

    def test_bullish_takes_priority_over_active(self):
        txs = [whale_tx(900_000, "buy", minutes_ago=i) for i in range(5)]
        assert analyze_whale_activity(txs).sentiment == Sentiment.BULLISH

    def test_exactly_threshold_is_not_large(self):
        assert analyze_whale_activity([whale_tx(500_000)]).large_count == 0

    def test_deterministic(self):
        txs = [whale_tx(750_000, "buy"), whale_tx(120_000, "sell", 3)]
        assert analyze_whale_activity(txs) == analyze_whale_activity(list(txs))


class TestWalletAnalysis:

    def test_empty_is_inactive_low_risk(self):
        result = analyze_wallet([], info(balance=42.0))
        assert result.trading_pattern == TradingPattern.INACTIVE
        assert result.risk_level == RiskLevel.LOW
        assert result.total_transactions == 0
        assert result.total_volume == 0
        assert result.balance == 42.0

    def test_whale_pattern_and_net_flow(self):
        txs = [wallet_tx(2_000_000), wallet_tx(-50_000, minutes_ago=1)]
        result = analyze_wallet(txs, info())
        assert result.trading_pattern == TradingPattern.WHALE
        assert result.net_flow == 1_950_000
        assert result.avg_size == 1_025_000
        assert result.receive_ratio == 50
        assert result.large_count == 1

    def test_large_trader(self):
        txs = [wallet_tx(700_000), wallet_tx(-600_000, minutes_ago=1)]
        assert analyze_wallet(txs, info()).trading_pattern == TradingPattern.LARGE_TRADER

    def test_accumulator(self):
        txs = [wallet_tx(100, minutes_ago=i) for i in range(9)] + [wallet_tx(-100, 10)]
        result = analyze_wallet(txs, info())
        assert result.receive_ratio == 90
        assert result.trading_pattern == TradingPattern.ACCUMULATOR

    def test_distributor(self):
        txs = [wallet_tx(-100, minutes_ago=i) for i in range(9)] + [wallet_tx(100, 10)]
        assert analyze_wallet(txs, info()).trading_pattern == TradingPattern.DISTRIBUTOR

    def test_regular(self):
        txs = [wallet_tx(100), wallet_tx(-100, 1)]
        assert analyze_wallet(txs, info()).trading_pattern == TradingPattern.REGULAR

    def test_very_high_risk(self):
        txs = [wallet_tx(1_500_000, minutes_ago=i) for i in range(11)]
        assert analyze_wallet(txs, info()).risk_level == RiskLevel.VERY_HIGH

    def test_high_risk(self):
        txs = [wallet_tx(600_000, minutes_ago=i) for i in range(6)]
        assert analyze_wallet(txs, info()).risk_level == RiskLevel.HIGH

    def test_medium_risk_uses_avg_size_only(self):
        txs = [wallet_tx(200_000)]
        assert analyze_wallet(txs, info()).risk_level == RiskLevel.MEDIUM

    def test_low_risk(self):
        assert analyze_wallet([wallet_tx(5_000)], info()).risk_level == RiskLevel.LOW

    def test_risk_score_attached(self):
        txs = [wallet_tx(1_500_000, minutes_ago=i) for i in range(11)]
        result = analyze_wallet(txs, info(balance=20_000_000))
        # balance 30 + avg size 25 + large count 25
        assert result.risk_score == 80


class TestRiskScore:

    def _analysis(self, **kwargs):
        defaults = dict(total_transactions=0, total_volume=0.0, net_flow=0.0,
                        trading_pattern=TradingPattern.REGULAR, risk_level=RiskLevel.LOW,
                        avg_size=0.0, receive_ratio=0.0, large_count=0, balance=0.0)
        defaults.update(kwargs)
        return WalletAnalysis(**defaults)

    def test_zero(self):
        assert calculate_risk_score(self._analysis(), info()) == 0

    def test_tiers_sum(self):
        analysis = self._analysis(avg_size=600_000, total_transactions=30, large_count=6)
        # balance 20 + size 15 + count 10 + large 15
        assert calculate_risk_score(analysis, info(balance=2_000_000)) == 60

    def test_capped_at_100(self):
        analysis = self._analysis(avg_size=2_000_000, total_transactions=60, large_count=20)
        assert calculate_risk_score(analysis, info(balance=50_000_000)) == 100
