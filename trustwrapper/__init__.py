"""
TrustWrapper Local Verification Engine

Version: 2.0.0

Local, in-process verification of AI trading decisions.

Every decision is scored by three independent analyzers (risk, pattern,
compliance), aggregated into a trust score, risk level and
recommendation, and returned as an Ed25519-signed result. Nothing leaves
the process: no network calls, no persistence, no raw reasoning text in
outputs or logs. If an analyzer cannot complete, it counts as maximum
risk and the decision is rejected.

Usage:
    from trustwrapper import LocalVerificationEngine, EngineConfig

    engine = LocalVerificationEngine(config=EngineConfig(strict_mode=True))

    signed = await engine.verify(
        {"action": "buy", "asset": "BTC", "amount": 0.1, "confidence": 85},
        {"jurisdiction": "US"},
    )

    if signed.recommendation == "approved":
        # Safe to forward to the execution layer
        payload = signed.to_dict()
    else:
        warnings = signed.result.warnings

    # Tighten limits at runtime; the compliance cache is cleared
    engine.update_rules({"risk": {"max_leverage": 10}})

    # Synchronous callers
    from trustwrapper import verify_decision
    signed = verify_decision({"action": "sell", "asset": "ETH", "amount": 2})
"""

__version__ = "2.0.0"

# Errors
from .errors import (
    TrustWrapperError,
    ValidationError,
    ConfigurationError,
    CryptographicError,
    VerificationError,
)

# Canonicalization and hashing
from .canonicalization import canonicalize, canonicalize_str
from .hashing import (
    sha256_hash,
    object_hash,
    warnings_hash,
    verification_id,
)

# Models and results
from .models import (
    Decision,
    VerificationContext,
    RiskLevel,
    Recommendation,
    PatternCategory,
    Enforcement,
    parse_decision,
    parse_context,
)
from .results import (
    RiskBreakdown,
    RiskAssessment,
    DetectedPattern,
    PatternDetection,
    ComplianceResult,
    VerificationResult,
    Signature,
    Attestation,
    SignedVerificationResult,
)

# Rules and configuration
from .rules import (
    RuleTables,
    RiskRules,
    PatternRules,
    ComplianceRules,
    JurisdictionProfile,
    create_default_rules,
)
from .config import EngineConfig, load_rules_file

# Analyzers
from .risk import RiskAnalyzer
from .patterns import PatternDetector, DecisionHistory
from .compliance import ComplianceChecker, ComplianceCache

# Cryptography and attestation
from .crypto import CryptoConfig, CryptographicProvider, Commitment, ProofOfWork
from .attestation import AttestationGenerator, CommitmentAttestationGenerator

# Observability
from .metrics import MetricsSink
from .logging_config import configure_logging, AuditLogger

# Engine
from .engine import LocalVerificationEngine, verify_decision


__all__ = [
    # Version
    "__version__",

    # Errors
    "TrustWrapperError",
    "ValidationError",
    "ConfigurationError",
    "CryptographicError",
    "VerificationError",

    # Canonicalization
    "canonicalize",
    "canonicalize_str",

    # Hashing
    "sha256_hash",
    "object_hash",
    "warnings_hash",
    "verification_id",

    # Models
    "Decision",
    "VerificationContext",
    "RiskLevel",
    "Recommendation",
    "PatternCategory",
    "Enforcement",
    "parse_decision",
    "parse_context",

    # Results
    "RiskBreakdown",
    "RiskAssessment",
    "DetectedPattern",
    "PatternDetection",
    "ComplianceResult",
    "VerificationResult",
    "Signature",
    "Attestation",
    "SignedVerificationResult",

    # Rules and configuration
    "RuleTables",
    "RiskRules",
    "PatternRules",
    "ComplianceRules",
    "JurisdictionProfile",
    "create_default_rules",
    "EngineConfig",
    "load_rules_file",

    # Analyzers
    "RiskAnalyzer",
    "PatternDetector",
    "DecisionHistory",
    "ComplianceChecker",
    "ComplianceCache",

    # Cryptography
    "CryptoConfig",
    "CryptographicProvider",
    "Commitment",
    "ProofOfWork",
    "AttestationGenerator",
    "CommitmentAttestationGenerator",

    # Observability
    "MetricsSink",
    "configure_logging",
    "AuditLogger",

    # Engine
    "LocalVerificationEngine",
    "verify_decision",
]
