"""
TrustWrapper Observability and Input Security Test Suite

Metrics sink, structured logging, audit events, error sanitization and
decision validation/sanitization.
"""

import json
import logging
import os
import unittest
from unittest import mock

from trustwrapper import (
    AuditLogger,
    Decision,
    MetricsSink,
    TrustWrapperError,
    ValidationError,
    VerificationError,
)
from trustwrapper.errors import sanitize_message
from trustwrapper.logging_config import StructuredFormatter, configure_logging, set_verification_id
from trustwrapper.security import (
    sanitize_decision,
    sanitize_for_logging,
    strip_sensitive_metadata,
    validate_decision,
)


class TestMetricsSink(unittest.TestCase):
    """In-process metrics."""

    def test_latency_percentiles(self):
        """Latency stats cover min, max, average and percentiles."""
        metrics = MetricsSink()
        for latency in range(1, 101):
            metrics.record_verification(float(latency), "low", success=True)

        stats = metrics.latency_stats()

        self.assertEqual(stats["min"], 1.0)
        self.assertEqual(stats["max"], 100.0)
        self.assertEqual(stats["avg"], 50.5)
        self.assertEqual(stats["p95"], 95.0)
        self.assertEqual(stats["p99"], 99.0)

    def test_window_is_bounded(self):
        """Only the most recent samples are kept."""
        metrics = MetricsSink(max_samples=10)
        for latency in range(50):
            metrics.record_verification(float(latency), None, success=True)

        self.assertEqual(metrics.latency_stats()["samples"], 10)
        self.assertEqual(metrics.snapshot()["total_verifications"], 50)

    def test_latency_target_overruns(self):
        """Verifications slower than the target are counted."""
        metrics = MetricsSink(latency_target_ms=10)

        self.assertFalse(metrics.record_verification(5.0, "low", success=True))
        self.assertTrue(metrics.record_verification(15.0, "low", success=True))
        self.assertEqual(metrics.snapshot()["latency_target_overruns"], 1)

    def test_errors_by_kind(self):
        """Unknown error kinds count as system errors."""
        metrics = MetricsSink()
        metrics.record_error("validation")
        metrics.record_error("mystery")

        errors = metrics.snapshot()["errors"]
        self.assertEqual(errors["validation"], 1)
        self.assertEqual(errors["system"], 1)
        self.assertEqual(errors["deadline"], 0)

    def test_reset(self):
        """Reset clears every counter."""
        metrics = MetricsSink()
        metrics.record_verification(3.0, "high", success=False)
        metrics.record_analysis("risk", 1.0, "high")

        metrics.reset()
        snapshot = metrics.snapshot()

        self.assertEqual(snapshot["total_verifications"], 0)
        self.assertEqual(snapshot["risk_distribution"], {})
        self.assertEqual(snapshot["components"], {})


class TestStructuredLogging(unittest.TestCase):
    """JSON log formatting and audit events."""

    def test_formatter_emits_json(self):
        """Each record becomes one JSON object with the verification id."""
        set_verification_id("abc123")
        try:
            record = logging.LogRecord("trustwrapper.engine", logging.INFO, __file__, 10,
                                       "verified %s", ("BTC",), None)
            record.extra_fields = {"trust_score": 92}

            data = json.loads(StructuredFormatter().format(record))
        finally:
            set_verification_id("")

        self.assertEqual(data["message"], "verified BTC")
        self.assertEqual(data["level"], "INFO")
        self.assertEqual(data["verification_id"], "abc123")
        self.assertEqual(data["trust_score"], 92)

    def test_configure_logging_level_from_env(self):
        """Without an explicit level the environment decides."""
        root = logging.getLogger()
        saved_level, saved_handlers = root.level, root.handlers[:]
        try:
            with mock.patch.dict(os.environ, {"TRUSTWRAPPER_LOG_LEVEL": "warning"}):
                configure_logging()

            self.assertEqual(root.level, logging.WARNING)
            self.assertIsInstance(root.handlers[0].formatter, StructuredFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_audit_payload_sanitized(self):
        """Audit payloads pass through log sanitization."""
        audit = AuditLogger("trustwrapper.audit.test")

        with self.assertLogs("trustwrapper.audit.test", level="INFO") as logs:
            audit.rules_updated(["risk"], "f" * 64)

        fields = logs.records[0].extra_fields
        self.assertEqual(fields["event_type"], "RULES_UPDATED")
        self.assertEqual(fields["rules_hash"], "f" * 16)

    def test_failed_verification_is_error(self):
        """Failed verifications log at ERROR."""
        audit = AuditLogger("trustwrapper.audit.test")

        with self.assertLogs("trustwrapper.audit.test", level="ERROR") as logs:
            audit.verification_failed("VALIDATION_ERROR", "asset: is required")

        self.assertEqual(logs.records[0].extra_fields["error_code"], "VALIDATION_ERROR")

    def test_sanitize_for_logging(self):
        """Sensitive keys are masked recursively."""
        data = {
            "signature": "abcdefghijklmnop",
            "reasoning": "buy now",
            "nested": {"password": "hunter2", "asset": "BTC"},
            "items": [{"secret": "s"}],
        }

        clean = sanitize_for_logging(data)

        self.assertEqual(clean["signature"], "abcd...mnop")
        self.assertEqual(clean["reasoning"], "[REDACTED]")
        self.assertEqual(clean["nested"]["password"], "[REDACTED]")
        self.assertEqual(clean["nested"]["asset"], "BTC")
        self.assertEqual(clean["items"][0]["secret"], "[REDACTED]")


class TestErrors(unittest.TestCase):
    """Error taxonomy."""

    def test_key_material_redacted(self):
        """Long hex runs never survive into error messages."""
        key = "0123456789abcdef" * 4
        error = VerificationError(f"signing with {key} failed")

        self.assertNotIn(key, str(error))
        self.assertEqual(error.message, "signing with [REDACTED] failed")
        self.assertEqual(sanitize_message("short abc123"), "short abc123")

    def test_validation_error_carries_field(self):
        """Validation errors name their field."""
        error = ValidationError("amount", "must be positive")

        self.assertIsInstance(error, TrustWrapperError)
        self.assertEqual(error.to_dict(), {
            "code": "VALIDATION_ERROR",
            "message": "amount: must be positive",
            "field": "amount",
        })


class TestDecisionSecurity(unittest.TestCase):
    """Validation and sanitization of incoming decisions."""

    def test_sanitize_normalizes(self):
        """Case is normalized, text truncated and confidence clamped."""
        decision = Decision(
            action="  BUY ",
            asset=" btc ",
            reasoning="x" * 1500,
            strategy="y" * 800,
            confidence=140,
        )

        clean = sanitize_decision(decision)

        self.assertEqual(clean.action, "buy")
        self.assertEqual(clean.asset, "BTC")
        self.assertEqual(len(clean.reasoning), 1000)
        self.assertEqual(len(clean.strategy), 500)
        self.assertEqual(clean.confidence, 100)
        self.assertEqual(decision.action, "  BUY ")

    def test_sensitive_metadata_stripped(self):
        """Key material and credentials are dropped regardless of spelling."""
        metadata = {
            "Private-Key": "k",
            "seed_phrase": "s",
            "API_KEY": "a",
            "Mnemonic": "m",
            "desk": "alpha",
            "nested": {"password": "p", "note": "n"},
        }

        clean = strip_sensitive_metadata(metadata)

        self.assertEqual(clean, {"desk": "alpha", "nested": {"note": "n"}})

    def test_strict_validation(self):
        """Strict mode enforces the action whitelist and ceilings."""
        validate_decision(Decision(action="hold", asset="ETH"))

        with self.assertRaises(ValidationError):
            validate_decision(Decision(action="swap", asset="ETH"))
        with self.assertRaises(ValidationError):
            validate_decision(Decision(action="buy", asset="ETH", leverage=101))

        validate_decision(Decision(action="swap", asset="ETH", leverage=101), strict=False)

    def test_non_finite_numbers_rejected(self):
        """Infinite prices are rejected even outside strict mode."""
        with self.assertRaises(ValidationError):
            validate_decision(Decision(action="buy", asset="ETH", price=float("inf")), strict=False)

    def test_blank_asset_rejected(self):
        """Whitespace-only assets count as missing."""
        with self.assertRaises(ValidationError) as ctx:
            validate_decision(Decision(action="buy", asset="   "))

        self.assertEqual(ctx.exception.field, "asset")


if __name__ == "__main__":
    unittest.main(verbosity=2)
