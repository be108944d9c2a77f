"""
TrustWrapper Local Verification Engine

Verifies a proposed trading decision entirely in-process:

    Decision (untrusted)
        ↓ validate, sanitize
    RiskAnalyzer ─┬─ PatternDetector ─┬─ ComplianceChecker   (concurrent, one deadline)
        ↓ aggregate
    VerificationResult
        ↓ sign (Ed25519), attest (optional), audit (optional)
    SignedVerificationResult

No network or disk I/O happens on the verification path. Any analyzer
error or deadline overrun is treated as maximum risk unless the engine
is configured to raise instead. Any error = fail closed.
"""

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .attestation import AttestationGenerator
from .compliance import ComplianceChecker
from .config import EngineConfig, load_rules_file, rules_path_from_env
from .crypto import CryptographicProvider
from .errors import ConfigurationError, CryptographicError, TrustWrapperError, ValidationError, VerificationError
from .hashing import text_digest, verification_id as make_verification_id
from .logging_config import audit_log, set_verification_id
from .metrics import MetricsSink
from .models import (
    Decision,
    Recommendation,
    RiskLevel,
    VerificationContext,
    parse_context,
    parse_decision,
)
from .patterns import DecisionHistory, PatternDetector
from .results import (
    ComplianceResult,
    PatternDetection,
    RiskAssessment,
    RiskBreakdown,
    SignedVerificationResult,
    VerificationResult,
)
from .risk import RiskAnalyzer
from .rules import RuleTables, create_default_rules
from .security import sanitize_decision, validate_decision

logger = logging.getLogger(__name__)

VERIFICATION_METHOD = "local-v2"
COMPONENTS = ("risk", "pattern", "compliance")
MAX_RESULT_WARNINGS = 20
COMPLIANCE_PENALTY = 20
LOW_CONFIDENCE_THRESHOLD = 70
POOR_PERFORMANCE_THRESHOLD = 0.5
POOR_PERFORMANCE_PENALTY = 10

DecisionInput = Union[Decision, Dict[str, Any]]
ContextInput = Union[VerificationContext, Dict[str, Any], None]


def _utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _trust_tier(trust_score: int) -> RiskLevel:
    if trust_score < 30:
        return RiskLevel.CRITICAL
    if trust_score < 50:
        return RiskLevel.HIGH
    if trust_score < 70:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def recommend(risk_level: RiskLevel, trust_score: int) -> Recommendation:
    """Recommendation as a pure function of risk level and trust score."""
    if risk_level == RiskLevel.CRITICAL or trust_score < 20:
        return Recommendation.REJECTED
    if risk_level == RiskLevel.HIGH or trust_score < 50:
        return Recommendation.WARNING
    return Recommendation.APPROVED


def degraded_warning(component: str) -> str:
    return f"Degraded analysis: {component}"


class LocalVerificationEngine:
    """
    Local decision verification engine.

    Owns the rule tables, the three analyzers, the cryptographic provider
    and the metrics sink. Rule tables are swapped copy-on-write, so an
    in-flight verification always sees one consistent snapshot.
    """

    def __init__(
        self,
        rules: Optional[RuleTables] = None,
        config: Optional[EngineConfig] = None,
        crypto: Optional[CryptographicProvider] = None,
        metrics: Optional[MetricsSink] = None,
        attestation_generator: Optional[AttestationGenerator] = None
    ):
        self.config = config or EngineConfig()
        self.config.validate()
        self._config_hash = self.config.config_hash()

        self.metrics = metrics or MetricsSink(latency_target_ms=self.config.max_latency_ms)
        self.crypto = crypto or CryptographicProvider(self.config.crypto)
        self.attestation_generator = attestation_generator
        self.history = DecisionHistory(
            max_agents=self.config.history_max_agents,
            max_events=self.config.history_max_events,
        )

        self._lock = threading.Lock()
        self._rules = rules or create_default_rules()
        self.risk_analyzer = RiskAnalyzer(self._rules.risk, self.metrics)
        self.pattern_detector = PatternDetector(self._rules.pattern, self.history, self.metrics)
        self.compliance_checker = ComplianceChecker(
            self._rules.compliance,
            cache_size=self.config.compliance_cache_size,
            metrics=self.metrics,
        )

    @classmethod
    def from_env(cls, **kwargs) -> "LocalVerificationEngine":
        """
        Build an engine from TRUSTWRAPPER_* environment variables.

        Rule tables come from TRUSTWRAPPER_RULES_PATH when it is set,
        otherwise the defaults apply.
        """
        path = rules_path_from_env()
        rules = load_rules_file(path) if path else None
        return cls(rules=rules, config=EngineConfig.from_env(), **kwargs)

    @property
    def rules(self) -> RuleTables:
        return self._rules

    @property
    def config_hash(self) -> str:
        return self._config_hash

    # ------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------

    async def verify(self, decision: DecisionInput, context: ContextInput = None) -> SignedVerificationResult:
        """
        Verify one decision.

        Raises:
            ValidationError: Malformed decision or context
            VerificationError: An analyzer failed and degradation is disabled
            CryptographicError: Signing or attestation failed
        """
        start = time.perf_counter()
        set_verification_id("")
        try:
            clean, ctx = self._prepare(decision, context)
            risk, pattern, compliance, degraded = await self._analyze(clean, ctx)
            result = self._aggregate(clean, ctx, risk, pattern, compliance, degraded)
            signed = self._seal(clean, result, start)
        except TrustWrapperError as e:
            self._record_failure(e, start)
            raise

        risk_level = signed.risk_level.value
        overran = self.metrics.record_verification(signed.processing_time_ms, risk_level, success=True)
        if overran:
            logger.debug(
                "Verification %s took %.3fms (target %dms)",
                signed.verification_id, signed.processing_time_ms, self.config.max_latency_ms
            )

        if self.config.audit_enabled:
            if degraded:
                audit_log.degraded_analysis(degraded)
            audit_log.verification_complete(
                verification_id=signed.verification_id,
                action=clean.action,
                asset=clean.asset,
                trust_score=signed.trust_score,
                risk_level=risk_level,
                recommendation=signed.recommendation.value,
                warning_count=len(result.warnings),
                context_present=ctx is not None,
                config_hash=self._config_hash,
                reasoning_digest=text_digest(clean.reasoning) if clean.reasoning else None,
                processing_time_ms=signed.processing_time_ms,
            )
        return signed

    async def verify_batch(
        self,
        decisions: Sequence[DecisionInput],
        context: ContextInput = None
    ) -> List[SignedVerificationResult]:
        """
        Verify many decisions against one context.

        Results pair 1:1 with the input, in input order. The first error
        raised by any item propagates.
        """
        if not decisions:
            raise ValidationError("decisions", "batch must not be empty")
        if len(decisions) > self.config.max_batch_size:
            raise ValidationError(
                "decisions",
                f"batch of {len(decisions)} exceeds maximum of {self.config.max_batch_size}"
            )

        results = await asyncio.gather(*(self.verify(d, context) for d in decisions))
        return list(results)

    def _prepare(self, decision: DecisionInput, context: ContextInput) -> Tuple[Decision, Optional[VerificationContext]]:
        parsed = parse_decision(decision)
        ctx = parse_context(context)
        validate_decision(
            parsed,
            strict=self.config.strict_mode,
            max_amount=self.config.max_amount_ceiling,
            max_leverage=self.config.max_leverage_ceiling,
        )
        return sanitize_decision(parsed), ctx

    async def _run_component(self, name: str, func, decision: Decision, context: Optional[VerificationContext]):
        # Analyzers are synchronous; a worker thread keeps a slow one from
        # holding the event loop past the deadline
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, decision, context)

    async def _analyze(
        self,
        decision: Decision,
        context: Optional[VerificationContext]
    ) -> Tuple[RiskAssessment, PatternDetection, ComplianceResult, List[str]]:
        with self._lock:
            funcs = {
                "risk": self.risk_analyzer.analyze,
                "pattern": self.pattern_detector.detect,
                "compliance": self.compliance_checker.check,
            }
            jurisdictions = self.compliance_checker.resolve_jurisdictions(context, self._rules.compliance)

        tasks = {
            name: asyncio.ensure_future(self._run_component(name, funcs[name], decision, context))
            for name in COMPONENTS
        }
        # One deadline shared by all three; whatever is still pending when it
        # passes is degraded even if it completes a moment later
        done, pending = await asyncio.wait(tasks.values(), timeout=self.config.deadline_ms / 1000)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Analysis deadline of %dms exceeded", self.config.deadline_ms)
            self.metrics.record_error("deadline")

        outcomes: Dict[str, Any] = {}
        degraded: List[str] = []
        for name, task in tasks.items():
            if task in done and task.exception() is None:
                outcomes[name] = task.result()
                continue

            if task in done:
                error = task.exception()
                logger.error("%s analysis failed", name, exc_info=error)
                self.metrics.record_error("system")
                reason = f"{name} analysis failed: {type(error).__name__}"
            else:
                reason = f"{name} analysis exceeded deadline of {self.config.deadline_ms}ms"

            if not self.config.degrade_on_error:
                raise VerificationError(reason)
            degraded.append(name)
            outcomes[name] = self._degraded_outcome(name, jurisdictions)

        if degraded:
            logger.warning("Degraded analysis: %s", ", ".join(degraded))
        return outcomes["risk"], outcomes["pattern"], outcomes["compliance"], degraded

    @staticmethod
    def _degraded_outcome(name: str, jurisdictions: List[str]):
        """Maximum-risk stand-in for an analyzer that did not finish."""
        warning = degraded_warning(name)
        if name == "risk":
            return RiskAssessment(
                score=100,
                severity=RiskLevel.CRITICAL,
                breakdown=RiskBreakdown(),
                warnings=[warning],
                degraded_checks=[name],
            )
        if name == "pattern":
            return PatternDetection(
                risk_score=100,
                severity=RiskLevel.CRITICAL,
                warnings=[warning],
                confidence=0.0,
                confidence_level="low",
                degraded_checks=[name],
            )
        return ComplianceResult(
            compliant=False,
            score=0,
            severity=RiskLevel.CRITICAL,
            violations=[warning],
            jurisdictions=list(jurisdictions),
        )

    # ------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------

    def _aggregate(
        self,
        decision: Decision,
        context: Optional[VerificationContext],
        risk: RiskAssessment,
        pattern: PatternDetection,
        compliance: ComplianceResult,
        degraded: List[str]
    ) -> VerificationResult:
        warnings: List[str] = []
        trust = 100.0

        trust -= risk.score
        warnings.extend(risk.warnings)

        trust -= pattern.risk_score
        warnings.extend(pattern.warnings)

        if not compliance.compliant:
            trust -= COMPLIANCE_PENALTY
        warnings.extend(compliance.violations)
        warnings.extend(compliance.warnings)

        confidence = decision.confidence
        if confidence is not None and confidence < LOW_CONFIDENCE_THRESHOLD:
            trust -= (LOW_CONFIDENCE_THRESHOLD - confidence) / 2
            warnings.append(f"Low AI confidence: {confidence:g}%")

        performance = context.historical_performance if context else None
        if performance is not None and performance < POOR_PERFORMANCE_THRESHOLD:
            trust -= POOR_PERFORMANCE_PENALTY
            warnings.append("Poor historical performance detected")

        trust_score = int(round(max(0.0, min(100.0, trust))))
        risk_level = RiskLevel.highest(
            _trust_tier(trust_score),
            risk.severity,
            pattern.severity,
            compliance.severity,
        )
        recommendation = recommend(risk_level, trust_score)

        details = {
            "risk_analysis": risk.summary(),
            "pattern_analysis": pattern.summary(),
            "compliance_check": compliance.summary(),
            "verification_method": VERIFICATION_METHOD,
            "processing_components": list(COMPONENTS),
            "config_version": self.config.version,
        }
        if degraded:
            details["degraded_components"] = list(degraded)

        return VerificationResult(
            verified=recommendation != Recommendation.REJECTED,
            trust_score=trust_score,
            risk_level=risk_level,
            recommendation=recommendation,
            warnings=list(dict.fromkeys(warnings))[:MAX_RESULT_WARNINGS],
            timestamp=_utc_timestamp(),
            details=details,
        )

    # ------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------

    def _seal(self, decision: Decision, result: VerificationResult, start: float) -> SignedVerificationResult:
        vid = make_verification_id(
            decision.action,
            decision.asset,
            result.timestamp,
            result.trust_score,
            result.risk_level.value,
        )
        set_verification_id(vid)

        try:
            signature = self.crypto.sign_result(result)
            attestation = None
            if self.attestation_generator:
                attestation = self.attestation_generator.generate(result, self.crypto.hash_decision(decision))
            nonce = self.crypto.generate_nonce()
        except CryptographicError:
            raise
        except Exception as e:
            raise CryptographicError(f"Signing failed: {e}") from None

        return SignedVerificationResult(
            result=result,
            signature=signature,
            nonce=nonce,
            processing_time_ms=(time.perf_counter() - start) * 1000,
            version=self.config.version,
            verification_id=vid,
            attestation=attestation,
        )

    def verify_signature(self, signed: SignedVerificationResult, verify_key: Optional[bytes] = None) -> bool:
        """Check a signed result against this engine's key (or the given one)."""
        return self.crypto.verify_signature(signed.result, signed.signature, verify_key)

    def _record_failure(self, error: TrustWrapperError, start: float) -> None:
        if isinstance(error, VerificationError):
            # Counted by kind where the analyzer failed
            kind = None
        elif isinstance(error, ValidationError):
            kind = "validation"
        elif isinstance(error, CryptographicError):
            kind = "cryptographic"
        elif isinstance(error, ConfigurationError):
            kind = "configuration"
        else:
            kind = "system"
        if kind:
            self.metrics.record_error(kind)
        self.metrics.record_verification((time.perf_counter() - start) * 1000, None, success=False)
        logger.info("Verification failed: %s", error.code)
        if self.config.audit_enabled:
            audit_log.verification_failed(error.code, error.message)

    # ------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------

    def update_rules(self, partial: Dict[str, Any]) -> RuleTables:
        """
        Merge a partial rule update and swap it in atomically.

        The update is applied to copies of the current tables. If the
        merged tables fail validation, ConfigurationError is raised and the
        current tables stay in force.
        """
        with self._lock:
            try:
                new_rules = self._rules.merged(partial)
            except ConfigurationError as e:
                self._reject_rules(e.message)
                raise
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                error = ConfigurationError(f"Invalid rule update: {e}")
                self._reject_rules(error.message)
                raise error from None

            self._rules = new_rules
            self.risk_analyzer = RiskAnalyzer(new_rules.risk, self.metrics)
            self.pattern_detector = PatternDetector(new_rules.pattern, self.history, self.metrics)
            self.compliance_checker.update_rules(new_rules.compliance)

        rules_hash = new_rules.get_hash()
        logger.info("Rules updated (%s), hash %s", ", ".join(sorted(partial)), rules_hash[:16])
        if self.config.audit_enabled:
            audit_log.rules_updated(sorted(partial), rules_hash)
        return new_rules

    def _reject_rules(self, reason: str) -> None:
        self.metrics.record_error("configuration")
        logger.warning("Rule update rejected: %s", reason)
        if self.config.audit_enabled:
            audit_log.rules_rejected(reason)

    # ------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------

    def get_statistics(self) -> Dict[str, Any]:
        snapshot = self.metrics.snapshot()
        return {
            "version": self.config.version,
            "uptime": snapshot["uptime_seconds"],
            "total_verifications": snapshot["total_verifications"],
            "average_latency": snapshot["average_latency_ms"],
            "success_rate": snapshot["success_rate"],
            "risk_distribution": snapshot["risk_distribution"],
            "config_hash": self._config_hash[:16],
            "rules_hash": self._rules.get_hash()[:16],
            "latency": snapshot["latency"],
            "latency_target_overruns": snapshot["latency_target_overruns"],
            "errors": snapshot["errors"],
            "components": snapshot["components"],
            "compliance_cache": self.compliance_checker.cache.stats(),
            "tracked_agents": self.history.agents(),
        }


def verify_decision(
    decision: DecisionInput,
    context: ContextInput = None,
    engine: Optional[LocalVerificationEngine] = None
) -> SignedVerificationResult:
    """
    Synchronous convenience wrapper around LocalVerificationEngine.verify.

    Must not be called from inside a running event loop.
    """
    engine = engine or LocalVerificationEngine()
    return asyncio.run(engine.verify(decision, context))
