"""
TrustWrapper Result Records

Intermediate assessments (RiskAssessment, PatternDetection,
ComplianceResult) are created once per call and discarded after
aggregation. VerificationResult and SignedVerificationResult are the
outputs; neither carries raw decision text, metadata or amounts.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import PatternCategory, Recommendation, RiskLevel


@dataclass
class RiskBreakdown:
    """Per-check sub-scores produced by RiskAnalyzer."""
    scam_score: int = 0
    token_risk: int = 0
    amount_risk: int = 0
    leverage_risk: int = 0
    action_risk: int = 0
    volatility_risk: int = 0
    context_risk: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "scam_score": self.scam_score,
            "token_risk": self.token_risk,
            "amount_risk": self.amount_risk,
            "leverage_risk": self.leverage_risk,
            "action_risk": self.action_risk,
            "volatility_risk": self.volatility_risk,
            "context_risk": self.context_risk,
        }


@dataclass
class RiskAssessment:
    score: int
    severity: RiskLevel
    breakdown: RiskBreakdown
    warnings: List[str] = field(default_factory=list)
    checks_performed: List[str] = field(default_factory=list)
    degraded_checks: List[str] = field(default_factory=list)
    processing_time_ms: float = 0.0

    def summary(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "severity": self.severity.value,
            "breakdown": self.breakdown.to_dict(),
            "checks_performed": list(self.checks_performed),
            "degraded_checks": list(self.degraded_checks),
        }


@dataclass
class DetectedPattern:
    """
    One matched pattern.

    For text matches only a digest and the span length of the matched text
    are kept; the text itself never leaves the detector.
    """
    name: str
    category: PatternCategory
    severity: RiskLevel
    risk_score: int
    confidence: float
    description: str
    match_digest: Optional[str] = None
    match_length: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "name": self.name,
            "category": self.category.value,
            "severity": self.severity.value,
            "risk_score": self.risk_score,
            "confidence": round(self.confidence, 4),
            "description": self.description,
        }
        if self.match_digest:
            d["match_digest"] = self.match_digest
            d["match_length"] = self.match_length
        return d


@dataclass
class PatternDetection:
    risk_score: int
    severity: RiskLevel
    patterns: List[DetectedPattern] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    confidence: float = 1.0
    confidence_level: str = "medium"
    checks_performed: List[str] = field(default_factory=list)
    degraded_checks: List[str] = field(default_factory=list)
    processing_time_ms: float = 0.0

    def pattern_names(self) -> List[str]:
        return [p.name for p in self.patterns]

    def summary(self) -> Dict[str, Any]:
        return {
            "score": self.risk_score,
            "severity": self.severity.value,
            "pattern_count": len(self.patterns),
            "patterns": self.pattern_names(),
            "confidence_level": self.confidence_level,
            "degraded_checks": list(self.degraded_checks),
        }


@dataclass
class ComplianceCheckResult:
    """Outcome of one compliance check for one jurisdiction."""
    check: str
    jurisdiction: str
    score: int = 100
    violations: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def violate(self, message: str, penalty: int) -> None:
        self.violations.append(message)
        self.score = max(0, self.score - penalty)

    def warn(self, message: str, penalty: int) -> None:
        self.warnings.append(message)
        self.score = max(0, self.score - penalty)


@dataclass
class ComplianceResult:
    compliant: bool
    score: int
    severity: RiskLevel
    violations: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    jurisdictions: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)
    reporting_required: bool = False
    checks: List[ComplianceCheckResult] = field(default_factory=list)
    processing_time_ms: float = 0.0

    def summary(self) -> Dict[str, Any]:
        return {
            "compliant": self.compliant,
            "score": self.score,
            "severity": self.severity.value,
            "violation_count": len(self.violations),
            "warning_count": len(self.warnings),
            "jurisdictions": list(self.jurisdictions),
            "frameworks": list(self.frameworks),
            "reporting_required": self.reporting_required,
        }


@dataclass
class VerificationResult:
    verified: bool
    trust_score: int
    risk_level: RiskLevel
    recommendation: Recommendation
    warnings: List[str]
    timestamp: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verified": self.verified,
            "trust_score": self.trust_score,
            "risk_level": self.risk_level.value,
            "recommendation": self.recommendation.value,
            "warnings": list(self.warnings),
            "timestamp": self.timestamp,
            "details": self.details,
        }


@dataclass
class Signature:
    algorithm: str
    signature: str
    public_key: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "signature": self.signature,
            "public_key": self.public_key,
            "timestamp": self.timestamp,
        }


@dataclass
class Attestation:
    """Signed statement about a result plus a commitment to the decision."""
    generator: str
    statement: Dict[str, Any]
    signature: Signature
    # Commitment randomness; stays with the caller and is never serialized
    opening: Optional[str] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generator": self.generator,
            "statement": self.statement,
            "signature": self.signature.to_dict(),
        }


@dataclass
class SignedVerificationResult:
    """The only artifact released past the trust boundary."""
    result: VerificationResult
    signature: Signature
    nonce: str
    processing_time_ms: float
    version: str
    verification_id: str
    attestation: Optional[Attestation] = None

    @property
    def trust_score(self) -> int:
        return self.result.trust_score

    @property
    def risk_level(self) -> RiskLevel:
        return self.result.risk_level

    @property
    def recommendation(self) -> Recommendation:
        return self.result.recommendation

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "result": self.result.to_dict(),
            "signature": self.signature.to_dict(),
            "nonce": self.nonce,
            "processing_time_ms": round(self.processing_time_ms, 3),
            "version": self.version,
            "verification_id": self.verification_id,
        }
        if self.attestation:
            d["attestation"] = self.attestation.to_dict()
        return d
