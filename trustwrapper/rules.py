"""
TrustWrapper Rule Tables

Risk, pattern and compliance rules are declarative data: named, tagged
entries validated and compiled once at construction. Every table
round-trips through to_dict/from_dict, which is how partial runtime
updates are applied (merge into a copy, rebuild, validate, swap).
"""

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern

from .errors import ConfigurationError
from .hashing import object_hash
from .models import Enforcement, PatternCategory, RiskLevel


RESTRICTION_TYPES = ("prohibited", "accredited_only", "licensed_only", "allowed")
RISK_LIMIT_TYPES = ("leverage", "position_size", "concentration")
JURISDICTION_PATTERN = re.compile(r'^[A-Z]{2,8}$')


def _compile(pattern: str, name: str) -> Pattern:
    if not isinstance(pattern, str) or not pattern:
        raise ConfigurationError(f"Pattern '{name}' must be a non-empty string")
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise ConfigurationError(f"Invalid pattern '{name}': {e}") from None


def _enum(enum_cls, value, what: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise ConfigurationError(f"Unknown {what}: {value}") from None


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into a copy of base. Nested dicts merge, everything else replaces."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# ============================================================
# Risk rules
# ============================================================

DEFAULT_SCAM_PATTERNS = [
    'guaranteed.*profit', 'risk.?free', '100%.*return', 'get.*rich.*quick',
    'insider.*info', 'pump.*dump', 'rug.*pull', 'honeypot', 'easy.*money',
    'no.*risk', 'unlimited.*profit', 'secret.*strategy', 'exclusive.*deal',
]


@dataclass
class RiskRules:
    """Inputs to RiskAnalyzer's seven sub-checks."""
    scam_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_SCAM_PATTERNS))
    risk_tokens: List[str] = field(default_factory=lambda: [
        'scam', 'fake', 'test', 'rug', 'honey', 'ponzi', 'pyramid', 'fraud'
    ])
    suspicious_actions: List[str] = field(default_factory=lambda: [
        'pump', 'dump', 'manipulate', 'exploit', 'hack', 'rug'
    ])
    known_tokens: List[str] = field(default_factory=lambda: [
        'btc', 'eth', 'ada', 'sol', 'matic', 'avax', 'dot', 'link'
    ])
    max_amount: float = 100000
    max_leverage: float = 20

    def __post_init__(self):
        self._validate()
        self.compiled_scam_patterns = [
            _compile(p, f"scam_patterns[{i}]") for i, p in enumerate(self.scam_patterns)
        ]

    def _validate(self):
        for name in ("scam_patterns", "risk_tokens", "suspicious_actions", "known_tokens"):
            if not isinstance(getattr(self, name), list):
                raise ConfigurationError(f"{name} must be a list")
        if not self.max_amount or self.max_amount <= 0:
            raise ConfigurationError("max_amount must be positive")
        if not self.max_leverage or self.max_leverage <= 0:
            raise ConfigurationError("max_leverage must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scam_patterns": list(self.scam_patterns),
            "risk_tokens": list(self.risk_tokens),
            "suspicious_actions": list(self.suspicious_actions),
            "known_tokens": list(self.known_tokens),
            "max_amount": self.max_amount,
            "max_leverage": self.max_leverage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RiskRules':
        defaults = cls()
        try:
            return cls(
                scam_patterns=list(data.get("scam_patterns", defaults.scam_patterns)),
                risk_tokens=[t.lower() for t in data.get("risk_tokens", defaults.risk_tokens)],
                suspicious_actions=[a.lower() for a in data.get("suspicious_actions", defaults.suspicious_actions)],
                known_tokens=[t.lower() for t in data.get("known_tokens", defaults.known_tokens)],
                max_amount=float(data.get("max_amount", defaults.max_amount)),
                max_leverage=float(data.get("max_leverage", defaults.max_leverage)),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid risk rules: {e}") from None


# ============================================================
# Pattern rules
# ============================================================

@dataclass
class PatternDefinition:
    """A named, tagged text matcher with its own risk weight."""
    name: str
    pattern: str
    risk_score: int
    severity: RiskLevel
    category: PatternCategory
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Pattern definition requires a name")
        if not 0 <= self.risk_score <= 100:
            raise ConfigurationError(f"Pattern '{self.name}' risk_score must be within 0-100")
        self.matcher = _compile(self.pattern, self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "pattern": self.pattern,
            "risk_score": self.risk_score,
            "severity": self.severity.value,
            "category": self.category.value,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PatternDefinition':
        pattern = data.get("pattern")
        if isinstance(pattern, re.Pattern):
            pattern = pattern.pattern
        try:
            return cls(
                name=data["name"],
                pattern=pattern,
                risk_score=int(data["risk_score"]),
                severity=_enum(RiskLevel, data.get("severity", "medium"), "severity"),
                category=_enum(PatternCategory, data.get("category", "behavioral"), "pattern category"),
                description=data.get("description", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid pattern definition: {e}") from None


@dataclass
class TemporalPattern:
    """Frequency limit over a sliding window of an agent's past decisions."""
    name: str
    time_window_minutes: float
    max_frequency: int
    risk_score: int
    description: str = ""

    def __post_init__(self):
        if self.time_window_minutes <= 0:
            raise ConfigurationError(f"Temporal pattern '{self.name}' window must be positive")
        if self.max_frequency < 1:
            raise ConfigurationError(f"Temporal pattern '{self.name}' max_frequency must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "time_window_minutes": self.time_window_minutes,
            "max_frequency": self.max_frequency,
            "risk_score": self.risk_score,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TemporalPattern':
        try:
            return cls(
                name=data["name"],
                time_window_minutes=float(data["time_window_minutes"]),
                max_frequency=int(data["max_frequency"]),
                risk_score=int(data["risk_score"]),
                description=data.get("description", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid temporal pattern: {e}") from None


@dataclass
class ConfidenceThresholds:
    minimum: float = 30
    warning: float = 50
    critical: float = 20

    def __post_init__(self):
        if not 0 <= self.critical <= self.warning <= 100:
            raise ConfigurationError("confidence thresholds must satisfy 0 <= critical <= warning <= 100")

    def to_dict(self) -> Dict[str, Any]:
        return {"minimum": self.minimum, "warning": self.warning, "critical": self.critical}


def pattern_definition(name, pattern, risk_score, severity, category, description) -> PatternDefinition:
    return PatternDefinition(
        name=name,
        pattern=pattern,
        risk_score=risk_score,
        severity=RiskLevel(severity),
        category=PatternCategory(category),
        description=description,
    )


def default_reasoning_patterns() -> List[PatternDefinition]:
    return [
        pattern_definition("guaranteed_returns", r"guaranteed.*return|sure.*profit", 40, "high", "scam",
                 "Guaranteed return claims"),
        pattern_definition("pump_dump_language", r"pump.*dump|dump.*pump", 50, "critical", "manipulation",
                 "Pump and dump language"),
        pattern_definition("fomo_indicators", r"fomo|fear.*missing|now.*or.*never", 25, "medium", "emotion",
                 "FOMO manipulation"),
    ]


def default_strategy_patterns() -> List[PatternDefinition]:
    return [
        pattern_definition("martingale_strategy", r"martingale|double.*down.*loss", 30, "high", "technical",
                 "High-risk martingale strategy"),
        pattern_definition("all_in_strategy", r"all.?in|everything.*on|bet.*everything", 45, "critical", "behavioral",
                 "All-in trading strategy"),
    ]


def default_behavioral_patterns() -> List[PatternDefinition]:
    return [
        pattern_definition("revenge_trading", r"revenge|get.*back.*loss", 35, "high", "behavioral",
                 "Revenge trading pattern"),
        pattern_definition("panic_selling", r"panic|emergency.*sell|must.*sell.*now", 30, "medium", "emotion",
                 "Panic trading behavior"),
    ]


def default_temporal_patterns() -> List[TemporalPattern]:
    return [
        TemporalPattern("high_frequency_trading", 5, 10, 20, "High frequency trading pattern"),
        TemporalPattern("rapid_position_changes", 1, 5, 25, "Rapid position changes"),
    ]


@dataclass
class PatternRules:
    """Tables consumed by PatternDetector."""
    reasoning_patterns: List[PatternDefinition] = field(default_factory=default_reasoning_patterns)
    strategy_patterns: List[PatternDefinition] = field(default_factory=default_strategy_patterns)
    behavioral_patterns: List[PatternDefinition] = field(default_factory=default_behavioral_patterns)
    confidence_thresholds: ConfidenceThresholds = field(default_factory=ConfidenceThresholds)
    temporal_patterns: List[TemporalPattern] = field(default_factory=default_temporal_patterns)

    def __post_init__(self):
        for table in ("reasoning_patterns", "strategy_patterns", "behavioral_patterns"):
            names = set()
            for definition in getattr(self, table):
                if definition.name in names:
                    raise ConfigurationError(f"Duplicate pattern name in {table}: {definition.name}")
                names.add(definition.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reasoning_patterns": [p.to_dict() for p in self.reasoning_patterns],
            "strategy_patterns": [p.to_dict() for p in self.strategy_patterns],
            "behavioral_patterns": [p.to_dict() for p in self.behavioral_patterns],
            "confidence_thresholds": self.confidence_thresholds.to_dict(),
            "temporal_patterns": [t.to_dict() for t in self.temporal_patterns],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PatternRules':
        defaults = cls()

        def table(key, default):
            if key not in data:
                return default
            if not isinstance(data[key], list):
                raise ConfigurationError(f"{key} must be a list")
            return [PatternDefinition.from_dict(p) for p in data[key]]

        thresholds = data.get("confidence_thresholds")
        temporal = data.get("temporal_patterns")
        try:
            return cls(
                reasoning_patterns=table("reasoning_patterns", defaults.reasoning_patterns),
                strategy_patterns=table("strategy_patterns", defaults.strategy_patterns),
                behavioral_patterns=table("behavioral_patterns", defaults.behavioral_patterns),
                confidence_thresholds=(
                    ConfidenceThresholds(**thresholds) if thresholds else defaults.confidence_thresholds
                ),
                temporal_patterns=(
                    [TemporalPattern.from_dict(t) for t in temporal]
                    if temporal is not None else defaults.temporal_patterns
                ),
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid pattern rules: {e}") from None


# ============================================================
# Compliance rules
# ============================================================

@dataclass
class FrameworkRule:
    id: str
    description: str
    rule_type: str
    severity: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "rule_type": self.rule_type,
            "severity": self.severity,
            "parameters": dict(self.parameters),
        }


@dataclass
class ComplianceFramework:
    """A named set of jurisdiction-specific rules, e.g. SEC."""
    name: str
    jurisdiction: str
    enabled: bool = True
    rules: List[FrameworkRule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "jurisdiction": self.jurisdiction,
            "enabled": self.enabled,
            "rules": [r.to_dict() for r in self.rules],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComplianceFramework':
        return cls(
            name=data["name"],
            jurisdiction=data["jurisdiction"].upper(),
            enabled=bool(data.get("enabled", True)),
            rules=[FrameworkRule(**r) for r in data.get("rules", [])],
        )


@dataclass
class TradingRestriction:
    jurisdiction: str
    asset_type: str
    restriction: str
    max_leverage: Optional[float] = None
    requires_disclosure: bool = False

    def __post_init__(self):
        if self.restriction not in RESTRICTION_TYPES:
            raise ConfigurationError(f"Unknown trading restriction: {self.restriction}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jurisdiction": self.jurisdiction,
            "asset_type": self.asset_type,
            "restriction": self.restriction,
            "max_leverage": self.max_leverage,
            "requires_disclosure": self.requires_disclosure,
        }


@dataclass
class ReportingRequirement:
    jurisdiction: str
    threshold: float
    timeframe: str
    report_type: str

    def __post_init__(self):
        if self.threshold <= 0:
            raise ConfigurationError("Reporting threshold must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jurisdiction": self.jurisdiction,
            "threshold": self.threshold,
            "timeframe": self.timeframe,
            "report_type": self.report_type,
        }


@dataclass
class RiskLimit:
    """Overrides one field of a jurisdiction profile."""
    jurisdiction: str
    limit_type: str
    max_value: float
    enforcement: Enforcement = Enforcement.MANDATORY

    def __post_init__(self):
        if self.limit_type not in RISK_LIMIT_TYPES:
            raise ConfigurationError(f"Unknown risk limit type: {self.limit_type}")
        if self.max_value <= 0:
            raise ConfigurationError(f"Risk limit {self.limit_type} must be positive")
        self.enforcement = _enum(Enforcement, self.enforcement, "enforcement")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jurisdiction": self.jurisdiction,
            "limit_type": self.limit_type,
            "max_value": self.max_value,
            "enforcement": self.enforcement.value,
        }


@dataclass
class JurisdictionProfile:
    """Numeric limits applied by the position, leverage and reporting checks."""
    max_position_size: float
    max_concentration_ratio: float
    disclosure_threshold: float
    max_retail_leverage: float
    max_professional_leverage: float
    beneficial_ownership_threshold: float
    stablecoin_requires_license: bool = False
    position_enforcement: Enforcement = Enforcement.MANDATORY
    leverage_enforcement: Enforcement = Enforcement.MANDATORY
    concentration_enforcement: Enforcement = Enforcement.MANDATORY
    asset_leverage_limits: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        self.position_enforcement = _enum(Enforcement, self.position_enforcement, "enforcement")
        self.leverage_enforcement = _enum(Enforcement, self.leverage_enforcement, "enforcement")
        self.concentration_enforcement = _enum(Enforcement, self.concentration_enforcement, "enforcement")
        if not 0 < self.max_concentration_ratio <= 1:
            raise ConfigurationError("max_concentration_ratio must be within (0, 1]")
        if self.max_professional_leverage < self.max_retail_leverage:
            raise ConfigurationError("professional leverage ceiling must not be below retail ceiling")
        self.asset_leverage_limits = {k.upper(): v for k, v in self.asset_leverage_limits.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_position_size": self.max_position_size,
            "max_concentration_ratio": self.max_concentration_ratio,
            "disclosure_threshold": self.disclosure_threshold,
            "max_retail_leverage": self.max_retail_leverage,
            "max_professional_leverage": self.max_professional_leverage,
            "beneficial_ownership_threshold": self.beneficial_ownership_threshold,
            "stablecoin_requires_license": self.stablecoin_requires_license,
            "position_enforcement": self.position_enforcement.value,
            "leverage_enforcement": self.leverage_enforcement.value,
            "concentration_enforcement": self.concentration_enforcement.value,
            "asset_leverage_limits": dict(self.asset_leverage_limits),
        }


def default_jurisdiction_profiles() -> Dict[str, JurisdictionProfile]:
    return {
        "US": JurisdictionProfile(
            max_position_size=1000000,
            max_concentration_ratio=0.25,
            disclosure_threshold=50000,
            max_retail_leverage=2,
            max_professional_leverage=50,
            beneficial_ownership_threshold=100000,
        ),
        "EU": JurisdictionProfile(
            max_position_size=500000,
            max_concentration_ratio=0.20,
            disclosure_threshold=25000,
            max_retail_leverage=30,
            max_professional_leverage=500,
            beneficial_ownership_threshold=50000,
            stablecoin_requires_license=True,
        ),
        "UK": JurisdictionProfile(
            max_position_size=750000,
            max_concentration_ratio=0.30,
            disclosure_threshold=40000,
            max_retail_leverage=30,
            max_professional_leverage=500,
            beneficial_ownership_threshold=75000,
            stablecoin_requires_license=True,
        ),
        "SG": JurisdictionProfile(
            max_position_size=1000000,
            max_concentration_ratio=0.25,
            disclosure_threshold=50000,
            max_retail_leverage=2,
            max_professional_leverage=50,
            beneficial_ownership_threshold=100000,
            stablecoin_requires_license=True,
        ),
    }


def default_frameworks() -> List[ComplianceFramework]:
    return [
        ComplianceFramework(
            name="SEC",
            jurisdiction="US",
            rules=[
                FrameworkRule("SEC_RULE_10b5", "Prohibition against insider trading",
                              "disclosure", "critical"),
                FrameworkRule("SEC_POSITION_LIMITS", "Position size limitations",
                              "position_limit", "violation", {"max_position": 50000}),
            ],
        ),
    ]


@dataclass
class ComplianceRules:
    """Jurisdiction rule tables consumed by ComplianceChecker."""
    jurisdictions: List[str] = field(default_factory=lambda: ["US"])
    frameworks: List[ComplianceFramework] = field(default_factory=default_frameworks)
    restricted_assets: Dict[str, List[str]] = field(default_factory=lambda: {
        "US": ["ponzi", "scam", "illegal", "sanctioned"]
    })
    trading_restrictions: List[TradingRestriction] = field(default_factory=lambda: [
        TradingRestriction("US", "derivative", "licensed_only", max_leverage=2, requires_disclosure=True)
    ])
    reporting_requirements: List[ReportingRequirement] = field(default_factory=lambda: [
        ReportingRequirement("US", 50000, "monthly", "position")
    ])
    risk_limits: List[RiskLimit] = field(default_factory=lambda: [
        RiskLimit("US", "leverage", 2, Enforcement.MANDATORY),
        RiskLimit("US", "position_size", 100000, Enforcement.ADVISORY),
    ])
    jurisdiction_profiles: Dict[str, JurisdictionProfile] = field(default_factory=default_jurisdiction_profiles)
    fallback_jurisdiction: str = "US"

    def __post_init__(self):
        self._validate()
        self._effective = {
            name: self._apply_limits(name, profile)
            for name, profile in self.jurisdiction_profiles.items()
        }

    def _validate(self):
        if not self.jurisdictions:
            raise ConfigurationError("At least one default jurisdiction is required")
        for j in self.jurisdictions:
            if not JURISDICTION_PATTERN.match(j):
                raise ConfigurationError(f"Invalid jurisdiction code: {j}")
        if self.fallback_jurisdiction not in self.jurisdiction_profiles:
            raise ConfigurationError(
                f"Fallback jurisdiction {self.fallback_jurisdiction} has no profile"
            )

    def _apply_limits(self, jurisdiction: str, profile: JurisdictionProfile) -> JurisdictionProfile:
        effective = copy.deepcopy(profile)
        for limit in self.risk_limits:
            if limit.jurisdiction != jurisdiction:
                continue
            if limit.limit_type == "leverage":
                effective.max_retail_leverage = limit.max_value
                effective.leverage_enforcement = limit.enforcement
            elif limit.limit_type == "position_size":
                effective.max_position_size = limit.max_value
                effective.position_enforcement = limit.enforcement
            elif limit.limit_type == "concentration":
                effective.max_concentration_ratio = limit.max_value
                effective.concentration_enforcement = limit.enforcement
        return effective

    def profile_for(self, jurisdiction: str) -> JurisdictionProfile:
        """Effective limits for a jurisdiction, risk-limit overrides applied."""
        return self._effective.get(jurisdiction, self._effective[self.fallback_jurisdiction])

    def frameworks_for(self, jurisdictions: List[str]) -> List[ComplianceFramework]:
        return [f for f in self.frameworks if f.enabled and f.jurisdiction in jurisdictions]

    def restriction_for(self, jurisdiction: str, asset_type: str) -> Optional[TradingRestriction]:
        for r in self.trading_restrictions:
            if r.jurisdiction == jurisdiction and r.asset_type == asset_type:
                return r
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jurisdictions": list(self.jurisdictions),
            "frameworks": [f.to_dict() for f in self.frameworks],
            "restricted_assets": {k: list(v) for k, v in self.restricted_assets.items()},
            "trading_restrictions": [r.to_dict() for r in self.trading_restrictions],
            "reporting_requirements": [r.to_dict() for r in self.reporting_requirements],
            "risk_limits": [r.to_dict() for r in self.risk_limits],
            "jurisdiction_profiles": {k: p.to_dict() for k, p in self.jurisdiction_profiles.items()},
            "fallback_jurisdiction": self.fallback_jurisdiction,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComplianceRules':
        defaults = cls()
        try:
            profiles = defaults.jurisdiction_profiles
            if "jurisdiction_profiles" in data:
                profiles = {
                    name.upper(): JurisdictionProfile(**p)
                    for name, p in data["jurisdiction_profiles"].items()
                }
            return cls(
                jurisdictions=[j.upper() for j in data.get("jurisdictions", defaults.jurisdictions)],
                frameworks=(
                    [ComplianceFramework.from_dict(f) for f in data["frameworks"]]
                    if "frameworks" in data else defaults.frameworks
                ),
                restricted_assets={
                    k.upper(): [a.lower() for a in v]
                    for k, v in data.get("restricted_assets", defaults.restricted_assets).items()
                },
                trading_restrictions=(
                    [TradingRestriction(**r) for r in data["trading_restrictions"]]
                    if "trading_restrictions" in data else defaults.trading_restrictions
                ),
                reporting_requirements=(
                    [ReportingRequirement(**r) for r in data["reporting_requirements"]]
                    if "reporting_requirements" in data else defaults.reporting_requirements
                ),
                risk_limits=(
                    [RiskLimit(**r) for r in data["risk_limits"]]
                    if "risk_limits" in data else defaults.risk_limits
                ),
                jurisdiction_profiles=profiles,
                fallback_jurisdiction=data.get("fallback_jurisdiction", defaults.fallback_jurisdiction).upper(),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid compliance rules: {e}") from None


# ============================================================
# Combined tables
# ============================================================

@dataclass
class RuleTables:
    """The three rule tables owned by the engine."""
    risk: RiskRules = field(default_factory=RiskRules)
    pattern: PatternRules = field(default_factory=PatternRules)
    compliance: ComplianceRules = field(default_factory=ComplianceRules)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk": self.risk.to_dict(),
            "pattern": self.pattern.to_dict(),
            "compliance": self.compliance.to_dict(),
        }

    def get_hash(self) -> str:
        return object_hash(self.to_dict())

    def merged(self, partial: Dict[str, Any]) -> 'RuleTables':
        """
        Build new tables from these plus a partial update.

        Nested mappings merge key by key; lists replace wholesale. The
        current tables are never mutated, so a failed update leaves them
        intact.
        """
        if not isinstance(partial, dict):
            raise ConfigurationError("Rule update must be a mapping")
        unknown = set(partial) - {"risk", "pattern", "compliance"}
        if unknown:
            raise ConfigurationError(f"Unknown rule sections: {', '.join(sorted(unknown))}")
        return RuleTables.from_dict(_deep_merge(self.to_dict(), partial))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RuleTables':
        return cls(
            risk=RiskRules.from_dict(data.get("risk", {})),
            pattern=PatternRules.from_dict(data.get("pattern", {})),
            compliance=ComplianceRules.from_dict(data.get("compliance", {})),
        )


def create_default_rules() -> RuleTables:
    """Default tables: US jurisdiction, SEC framework, stock pattern tables."""
    return RuleTables()
