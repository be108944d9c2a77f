"""
TrustWrapper Pattern Detector Test Suite

Reasoning, strategy, behavioral and temporal patterns, plus the bounded
per-agent decision history behind frequency limits.
"""

import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from trustwrapper import (
    Decision,
    DecisionHistory,
    PatternDetector,
    PatternRules,
    RiskLevel,
    VerificationContext,
)


def make_decision(**kwargs):
    fields = {"action": "buy", "asset": "BTC", "amount": 0.1}
    fields.update(kwargs)
    return Decision(**fields)


class TestReasoningPatterns(unittest.TestCase):
    """Text patterns over reasoning."""

    def setUp(self):
        self.detector = PatternDetector()

    def test_clean_reasoning(self):
        """Neutral reasoning produces no patterns."""
        result = self.detector.detect(make_decision(reasoning="strong technical setup", confidence=85))

        self.assertEqual(result.patterns, [])
        self.assertEqual(result.risk_score, 0)
        self.assertEqual(result.severity, RiskLevel.LOW)

    def test_pump_dump_is_critical(self):
        """A critical-severity pattern makes the detection critical."""
        result = self.detector.detect(make_decision(reasoning="pump and dump this coin"))

        self.assertIn("pump_dump_language", result.pattern_names())
        self.assertEqual(result.severity, RiskLevel.CRITICAL)

    def test_builtin_tables_scanned(self):
        """Emotional and urgency tables run alongside configured patterns."""
        result = self.detector.detect(make_decision(reasoning="fomo buy before it's too late"))

        names = result.pattern_names()
        self.assertIn("fomo_indicators", names)
        self.assertIn("fomo", names)
        self.assertIn("loss_aversion", names)

    def test_matched_text_not_retained(self):
        """Detected patterns carry a digest of the match, never the match."""
        reasoning = "pump and dump this coin"
        result = self.detector.detect(make_decision(reasoning=reasoning))

        for pattern in result.patterns:
            serialized = str(pattern.to_dict())
            self.assertNotIn("pump and dump", serialized)
        pump = next(p for p in result.patterns if p.name == "pump_dump_language")
        self.assertEqual(len(pump.match_digest), 16)
        self.assertEqual(pump.match_length, len("pump and dump"))

    def test_duplicate_names_keep_heavier_entry(self):
        """Same-named hits from different tables collapse to the heavier one."""
        result = self.detector.detect(make_decision(reasoning="revenge trade to get back my loss"))

        revenge = [p for p in result.patterns if p.name == "revenge_trading"]
        self.assertEqual(len(revenge), 1)
        self.assertEqual(revenge[0].risk_score, 35)


class TestStrategyAndBehavior(unittest.TestCase):
    """Position heuristics and behavioral checks."""

    def setUp(self):
        self.detector = PatternDetector()

    def test_poor_risk_reward(self):
        """Reward under half the risk is flagged."""
        decision = make_decision(price=100, stopLoss=90, takeProfit=103)

        result = self.detector.detect(decision)

        self.assertIn("poor_risk_reward", result.pattern_names())

    def test_excessive_position_size(self):
        """More than half the portfolio is a high-severity pattern with a warning."""
        decision = make_decision(amount=600, portfolioSize=1000)

        result = self.detector.detect(decision)

        self.assertIn("excessive_position_size", result.pattern_names())
        self.assertIn("Position exceeds half of portfolio: excessive_position_size", result.warnings)

    def test_all_in_strategy(self):
        """All-in strategies match the configured strategy table."""
        result = self.detector.detect(make_decision(strategy="go all-in on this"))

        self.assertIn("all_in_strategy", result.pattern_names())
        self.assertEqual(result.severity, RiskLevel.CRITICAL)

    def test_overconfidence(self):
        """Stated confidence above 95 is a bias and caps overall confidence."""
        result = self.detector.detect(make_decision(confidence=99))

        self.assertIn("overconfidence_bias", result.pattern_names())
        self.assertIn("Potential overconfidence bias detected", result.warnings)
        self.assertLessEqual(result.confidence, 0.85)

    def test_very_low_confidence(self):
        """Confidence under the critical threshold adds risk and a warning."""
        result = self.detector.detect(make_decision(confidence=10))

        self.assertEqual(result.risk_score, 30)
        self.assertEqual(result.confidence_level, "very_low")
        self.assertIn("Very low AI confidence in decision", result.warnings)

    def test_bearish_reasoning_with_buy(self):
        """Bearish reasoning on a buy is inconsistent."""
        result = self.detector.detect(make_decision(reasoning="bearish divergence everywhere"))

        self.assertIn("reasoning_action_mismatch", result.pattern_names())


class TestTemporalPatterns(unittest.TestCase):
    """Frequency limits over per-agent history."""

    def test_rapid_decisions_flagged(self):
        """Six decisions inside a minute exceed the rapid-change limit."""
        history = DecisionHistory()
        detector = PatternDetector(history=history)
        base = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

        result = None
        for i in range(6):
            context = VerificationContext(agent_id="agent-1", timestamp=base + timedelta(seconds=i))
            result = detector.detect(make_decision(), context)

        self.assertIn("rapid_position_changes", result.pattern_names())
        self.assertNotIn("high_frequency_trading", result.pattern_names())
        self.assertEqual(history.count("agent-1"), 6)

    def test_no_agent_id_skips_history(self):
        """Without an agent id nothing is recorded."""
        history = DecisionHistory()
        detector = PatternDetector(history=history)

        detector.detect(make_decision(), VerificationContext())

        self.assertEqual(history.agents(), 0)

    def test_history_evicts_least_recent_agent(self):
        """The agent map is bounded."""
        history = DecisionHistory(max_agents=2, max_events=3)
        for agent in ("a", "b", "c"):
            history.record(agent, 1000.0, [60])

        self.assertEqual(history.agents(), 2)
        self.assertEqual(history.count("a"), 0)

    def test_history_events_bounded(self):
        """Each agent keeps at most max_events timestamps."""
        history = DecisionHistory(max_events=3)
        counts = None
        for i in range(5):
            counts = history.record("a", 1000.0 + i, [60])

        self.assertEqual(history.count("a"), 3)
        self.assertEqual(counts, [3])


class TestDegradation(unittest.TestCase):
    """Fail-closed handling of broken steps."""

    def test_failing_step_is_maximum_risk(self):
        """A step that raises becomes a 100-point pattern."""
        detector = PatternDetector()
        with mock.patch.object(detector, "_analyze_strategy", side_effect=RuntimeError("boom")):
            result = detector.detect(make_decision())

        self.assertIn("strategy_analysis_degraded", result.pattern_names())
        self.assertEqual(result.degraded_checks, ["strategy_analysis"])
        self.assertEqual(result.risk_score, 100)
        self.assertEqual(result.severity, RiskLevel.CRITICAL)

    def test_custom_rules(self):
        """Configured reasoning tables replace the defaults."""
        rules = PatternRules.from_dict({
            "reasoning_patterns": [{
                "name": "whale_alert",
                "pattern": "whale",
                "risk_score": 40,
                "severity": "high",
                "category": "manipulation",
                "description": "Whale chasing",
            }]
        })
        detector = PatternDetector(rules)

        result = detector.detect(make_decision(reasoning="following the whale"))

        self.assertIn("whale_alert", result.pattern_names())
        self.assertNotIn("pump_dump_language", [p.name for p in rules.reasoning_patterns])


if __name__ == "__main__":
    unittest.main(verbosity=2)
