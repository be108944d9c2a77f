"""
TrustWrapper Risk Analyzer Test Suite

Seven weighted sub-checks, severity tiers, warnings and fail-closed
degradation of individual checks.
"""

import unittest
from datetime import datetime, timezone
from unittest import mock

from trustwrapper import (
    Decision,
    MetricsSink,
    RiskAnalyzer,
    RiskLevel,
    RiskRules,
    VerificationContext,
)


def make_decision(**kwargs):
    fields = {"action": "buy", "asset": "BTC", "amount": 0.1}
    fields.update(kwargs)
    return Decision(**fields)


class TestScamPatterns(unittest.TestCase):
    """Scam language in reasoning and strategy."""

    def setUp(self):
        self.analyzer = RiskAnalyzer()

    def test_clean_reasoning_scores_zero(self):
        """Neutral reasoning should not trigger scam scoring."""
        result = self.analyzer.analyze(make_decision(reasoning="strong technical setup"))

        self.assertEqual(result.breakdown.scam_score, 0)

    def test_guaranteed_profit_risk_free_is_critical(self):
        """Guaranteed profit plus risk-free should saturate the scam score."""
        decision = make_decision(reasoning="This is a guaranteed profit, completely risk-free")

        result = self.analyzer.analyze(decision)

        self.assertGreaterEqual(result.breakdown.scam_score, 60)
        self.assertEqual(result.breakdown.scam_score, 100)
        self.assertEqual(result.severity, RiskLevel.CRITICAL)
        self.assertTrue(any("Scam patterns detected" in w for w in result.warnings))

    def test_strategy_text_is_scanned(self):
        """Scam language in the strategy field counts too."""
        decision = make_decision(strategy="pump and dump the microcap")

        result = self.analyzer.analyze(decision)

        self.assertGreater(result.breakdown.scam_score, 0)

    def test_custom_scam_pattern(self):
        """Configured patterns add a fixed penalty each."""
        analyzer = RiskAnalyzer(RiskRules(scam_patterns=["moonshot"]))

        result = analyzer.analyze(make_decision(reasoning="a real moonshot"))

        self.assertEqual(result.breakdown.scam_score, 25)

    def test_warning_never_echoes_reasoning(self):
        """Warnings name the check, not the matched text."""
        reasoning = "guaranteed profit with secret strategy"
        result = self.analyzer.analyze(make_decision(reasoning=reasoning))

        for warning in result.warnings:
            self.assertNotIn(reasoning, warning)


class TestTokenAmountLeverage(unittest.TestCase):
    """Token, amount, leverage and action sub-checks."""

    def setUp(self):
        self.analyzer = RiskAnalyzer()

    def test_known_token_is_safe(self):
        """Listed majors carry no token risk."""
        result = self.analyzer.analyze(make_decision(asset="ETH"))

        self.assertEqual(result.breakdown.token_risk, 0)

    def test_risk_token_and_shape(self):
        """A listed risk token with a scam-shaped symbol is critical."""
        result = self.analyzer.analyze(make_decision(asset="SCAM"))

        self.assertGreaterEqual(result.breakdown.token_risk, 80)
        self.assertEqual(result.severity, RiskLevel.CRITICAL)

    def test_unknown_short_symbol(self):
        """Unknown symbols shorter than three characters add risk."""
        result = self.analyzer.analyze(make_decision(asset="XY"))

        self.assertEqual(result.breakdown.token_risk, 25)

    def test_amount_above_max_is_capped(self):
        """Amounts above the configured max score the cap of 50."""
        result = self.analyzer.analyze(make_decision(amount=999999))

        self.assertEqual(result.breakdown.amount_risk, 50)

    def test_amount_progressive_thresholds(self):
        """Amount risk grows with the ratio to the configured max."""
        small = self.analyzer.analyze(make_decision(amount=1000)).breakdown.amount_risk
        medium = self.analyzer.analyze(make_decision(amount=60000)).breakdown.amount_risk
        large = self.analyzer.analyze(make_decision(amount=90000)).breakdown.amount_risk

        self.assertEqual(small, 0)
        self.assertEqual(medium, 15)
        self.assertEqual(large, 30)

    def test_leverage_above_max(self):
        """Leverage above the configured max scores the cap of 60."""
        result = self.analyzer.analyze(make_decision(leverage=150))

        self.assertEqual(result.breakdown.leverage_risk, 60)
        self.assertIn("High leverage detected: 150.0x", result.warnings)

    def test_leverage_tiers(self):
        """Leverage below the max follows the progressive table."""
        analyzer = RiskAnalyzer(RiskRules(max_leverage=100))

        self.assertEqual(analyzer.analyze(make_decision(leverage=3)).breakdown.leverage_risk, 3)
        self.assertEqual(analyzer.analyze(make_decision(leverage=15)).breakdown.leverage_risk, 15)
        self.assertEqual(analyzer.analyze(make_decision(leverage=60)).breakdown.leverage_risk, 40)

    def test_action_table(self):
        """Action risk is a lookup by action keyword."""
        self.assertEqual(self.analyzer.analyze(make_decision(action="options")).breakdown.action_risk, 30)
        self.assertEqual(self.analyzer.analyze(make_decision(action="limit_buy")).breakdown.action_risk, 5)
        self.assertEqual(self.analyzer.analyze(make_decision(action="pump")).breakdown.action_risk, 30)


class TestVolatilityAndContext(unittest.TestCase):
    """Volatility from market data or heuristics, and trading context."""

    def setUp(self):
        self.analyzer = RiskAnalyzer()

    def test_market_data_volatility(self):
        """Supplied volatility overrides asset heuristics."""
        context = VerificationContext(market_data={"volatility": 0.6})

        result = self.analyzer.analyze(make_decision(), context)

        self.assertEqual(result.breakdown.volatility_risk, 30)

    def test_meme_and_stablecoin_heuristics(self):
        """Meme coins are volatile; stablecoins are not."""
        self.assertEqual(self.analyzer.analyze(make_decision(asset="DOGE")).breakdown.volatility_risk, 20)
        self.assertEqual(self.analyzer.analyze(make_decision(asset="USDC")).breakdown.volatility_risk, 0)

    def test_context_risk_accumulates_and_caps(self):
        """Poor performance, bad conditions, odd hours and frequency cap at 40."""
        context = VerificationContext(
            historical_performance=0.2,
            market_conditions="high_volatility",
            timestamp=datetime(2026, 3, 1, 3, 0, tzinfo=timezone.utc),
            recent_trade_count=20,
        )

        result = self.analyzer.analyze(make_decision(), context)

        self.assertEqual(result.breakdown.context_risk, 40)

    def test_malformed_volatility_degrades_check(self):
        """A bad market data snapshot degrades only the volatility check."""
        context = VerificationContext(market_data={"volatility": "not-a-number"})

        result = self.analyzer.analyze(make_decision(), context)

        self.assertEqual(result.breakdown.volatility_risk, 30)
        self.assertIn("volatility_assessment", result.degraded_checks)
        self.assertIn("Degraded analysis: volatility_assessment", result.warnings)


class TestScoring(unittest.TestCase):
    """Weighted combination, severity and metrics."""

    def test_clean_decision_is_low(self):
        """A small BTC buy is low risk."""
        result = RiskAnalyzer().analyze(make_decision(reasoning="strong technical setup"))

        self.assertLess(result.score, 30)
        self.assertEqual(result.severity, RiskLevel.LOW)
        self.assertEqual(len(result.checks_performed), 7)

    def test_score_bounded(self):
        """Even a maximal decision stays within 0-100."""
        decision = make_decision(
            action="options",
            asset="SCAM",
            amount=999999,
            leverage=500,
            reasoning="guaranteed profit, risk-free, pump and dump, rug pull",
        )

        result = RiskAnalyzer().analyze(decision)

        self.assertGreaterEqual(result.score, 0)
        self.assertLessEqual(result.score, 100)

    def test_failing_check_fails_closed(self):
        """A check that raises is scored at its cap."""
        analyzer = RiskAnalyzer()
        with mock.patch.object(analyzer, "_token_risk", side_effect=RuntimeError("boom")):
            result = analyzer.analyze(make_decision())

        self.assertEqual(result.breakdown.token_risk, 100)
        self.assertEqual(result.severity, RiskLevel.CRITICAL)
        self.assertEqual(result.degraded_checks, ["token_risk_assessment"])

    def test_metrics_recorded(self):
        """Each analysis is counted under the risk component."""
        metrics = MetricsSink()
        analyzer = RiskAnalyzer(metrics=metrics)

        analyzer.analyze(make_decision())
        analyzer.analyze(make_decision(asset="SCAM"))

        stats = metrics.component_stats("risk")
        self.assertEqual(stats["count"], 2)
        self.assertEqual(stats["success_rate"], 1.0)
        self.assertEqual(sum(stats["severity_distribution"].values()), 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
