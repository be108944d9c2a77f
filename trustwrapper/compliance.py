"""
TrustWrapper Compliance Checker

Evaluates a decision against jurisdiction rule tables. Five checks run per
jurisdiction; each starts at 100 and loses points per finding. Any
violation makes the result non-compliant.

Checks follow one contract: evaluate() returns a ComplianceCheckResult and
never raises. A check that fails internally scores 0 with a violation, so
a broken rule can only push toward rejection.
"""

import copy
import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, Hashable, List, Optional, Tuple

from .metrics import MetricsSink
from .models import Decision, Enforcement, RiskLevel, VerificationContext
from .results import ComplianceCheckResult, ComplianceResult
from .rules import ComplianceRules

logger = logging.getLogger(__name__)

DERIVATIVE_TERMS = ("future", "option", "swap", "cfd", "forward")
DERIVATIVE_ACTIONS = ("futures", "options", "margin_trade", "short")
STABLECOINS = ("usdt", "usdc", "dai", "busd", "frax", "tusd", "usdp")
MARKET_INFLUENCE_AMOUNT = 500000
MARKET_INFLUENCE_RATIO = 0.01
NEAR_LIMIT_RATIO = 0.8


def _amount(decision: Decision) -> float:
    return decision.amount or 0.0


def _market_cap_influence(context: Optional[VerificationContext]) -> Optional[float]:
    if context is None or not context.market_data:
        return None
    value = context.market_data.get("market_cap_influence", context.market_data.get("marketCapInfluence"))
    if value is None:
        return None
    value = float(value)
    if not math.isfinite(value):
        raise ValueError("market_cap_influence must be finite")
    return value


def is_derivative(decision: Decision) -> bool:
    strategy = (decision.strategy or "").lower()
    if any(term in strategy for term in DERIVATIVE_TERMS):
        return True
    if (decision.action or "") in DERIVATIVE_ACTIONS:
        return True
    return (decision.leverage or 1) > 1


# ============================================================
# Checks
# ============================================================

class ComplianceCheck(ABC):
    """Base class for per-jurisdiction compliance checks."""

    name = "compliance_check"

    @abstractmethod
    def evaluate(
        self,
        decision: Decision,
        context: Optional[VerificationContext],
        jurisdiction: str,
        rules: ComplianceRules
    ) -> ComplianceCheckResult:
        """Evaluate one jurisdiction."""

    def _result(self, jurisdiction: str) -> ComplianceCheckResult:
        return ComplianceCheckResult(check=self.name, jurisdiction=jurisdiction)


class AssetRestrictionCheck(ComplianceCheck):
    """Restricted-asset list plus derivative and stablecoin heuristics."""

    name = "asset_restrictions"

    def evaluate(self, decision, context, jurisdiction, rules):
        result = self._result(jurisdiction)
        asset = (decision.asset or "").lower()

        if asset in rules.restricted_assets.get(jurisdiction, []):
            result.violate(f"Asset {decision.asset} is restricted in {jurisdiction}", 50)

        if is_derivative(decision):
            restriction = rules.restriction_for(jurisdiction, "derivative")
            kind = restriction.restriction if restriction else "allowed"
            if kind == "prohibited":
                result.violate(f"Derivative trading is prohibited in {jurisdiction}", 50)
            elif kind == "accredited_only":
                result.warn(f"Derivative trading is limited to accredited investors in {jurisdiction}", 10)
            elif kind == "licensed_only":
                result.warn(f"Derivative trading requires a licensed intermediary in {jurisdiction}", 5)

        if asset in STABLECOINS and rules.profile_for(jurisdiction).stablecoin_requires_license:
            result.warn(f"Stablecoin {decision.asset} may require licensing in {jurisdiction}", 5)

        return result


class PositionLimitCheck(ComplianceCheck):
    """Absolute position cap, portfolio concentration and disclosure threshold."""

    name = "position_limits"

    def evaluate(self, decision, context, jurisdiction, rules):
        result = self._result(jurisdiction)
        profile = rules.profile_for(jurisdiction)
        amount = _amount(decision)

        if amount > profile.max_position_size:
            message = f"Position size exceeds {jurisdiction} limit of {profile.max_position_size:g}"
            if profile.position_enforcement == Enforcement.MANDATORY:
                result.violate(message, 30)
            else:
                result.warn(message, 15)
        elif amount > profile.max_position_size * NEAR_LIMIT_RATIO:
            result.warn(f"Position size approaching {jurisdiction} limit", 10)

        portfolio = (context.portfolio_value if context else None) or decision.portfolio_size
        if portfolio and portfolio > 0:
            ratio = amount / portfolio
            if ratio > profile.max_concentration_ratio:
                message = (
                    f"Position concentration exceeds {profile.max_concentration_ratio:.0%} limit in {jurisdiction}"
                )
                if profile.concentration_enforcement == Enforcement.MANDATORY:
                    result.violate(message, 25)
                else:
                    result.warn(message, 15)
            elif ratio > profile.max_concentration_ratio * NEAR_LIMIT_RATIO:
                result.warn(f"Position concentration approaching {jurisdiction} limit", 10)

        if amount > profile.disclosure_threshold:
            result.warn(f"Position exceeds {jurisdiction} disclosure threshold", 5)

        return result


class LeverageLimitCheck(ComplianceCheck):
    """Retail, asset-specific and professional leverage ceilings."""

    name = "leverage_limits"

    def evaluate(self, decision, context, jurisdiction, rules):
        result = self._result(jurisdiction)
        leverage = decision.leverage or 1
        if leverage <= 1:
            return result

        profile = rules.profile_for(jurisdiction)
        if leverage > profile.max_retail_leverage:
            message = (
                f"Leverage {leverage:g}x exceeds {jurisdiction} retail limit of "
                f"{profile.max_retail_leverage:g}x"
            )
            if profile.leverage_enforcement == Enforcement.MANDATORY:
                result.violate(message, 40)
            else:
                result.warn(message, 15)

        asset_limit = profile.asset_leverage_limits.get((decision.asset or "").upper())
        if asset_limit is not None and leverage > asset_limit:
            result.violate(
                f"Leverage exceeds {jurisdiction} limit of {asset_limit:g}x for {decision.asset}", 35
            )

        if leverage > profile.max_professional_leverage:
            result.warn(f"Leverage exceeds {jurisdiction} professional limit", 10)

        return result


class ReportingCheck(ComplianceCheck):
    """Reporting thresholds; these only ever warn."""

    name = "reporting_requirements"

    def evaluate(self, decision, context, jurisdiction, rules):
        result = self._result(jurisdiction)
        amount = _amount(decision)

        for requirement in rules.reporting_requirements:
            if requirement.jurisdiction == jurisdiction and amount >= requirement.threshold:
                result.warn(
                    f"Transaction may require {requirement.report_type} reporting in "
                    f"{jurisdiction} ({requirement.timeframe})",
                    5,
                )

        if amount > rules.profile_for(jurisdiction).beneficial_ownership_threshold:
            result.warn(f"Beneficial ownership reporting may be required in {jurisdiction}", 5)

        return result


class DisclosureCheck(ComplianceCheck):
    """Insider information is always a violation; other flags warn."""

    name = "disclosure_requirements"

    def evaluate(self, decision, context, jurisdiction, rules):
        result = self._result(jurisdiction)
        influence = _market_cap_influence(context)

        if _amount(decision) > MARKET_INFLUENCE_AMOUNT or (influence or 0) > MARKET_INFLUENCE_RATIO:
            result.warn(f"Transaction could influence market; disclosure may be required in {jurisdiction}", 10)

        if context is not None and context.insider_information:
            result.violate(f"Trading on insider information is prohibited in {jurisdiction}", 50)

        if context is not None and context.conflict_of_interest:
            result.warn(f"Conflict of interest must be disclosed in {jurisdiction}", 15)

        return result


COMPLIANCE_CHECKS: List[ComplianceCheck] = [
    AssetRestrictionCheck(),
    PositionLimitCheck(),
    LeverageLimitCheck(),
    ReportingCheck(),
    DisclosureCheck(),
]


# ============================================================
# Cache
# ============================================================

class ComplianceCache:
    """
    Bounded LRU cache of compliance results.

    Every clear() starts a new generation; a put() tagged with an older
    generation is dropped so a check that raced a rules update cannot
    repopulate the cache with a stale verdict.
    """

    def __init__(self, capacity: int = 1024):
        self._capacity = max(0, capacity)
        self._entries: "OrderedDict[Hashable, ComplianceResult]" = OrderedDict()
        self._lock = threading.Lock()
        self._generation = 0
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @property
    def generation(self) -> int:
        return self._generation

    def get(self, key: Hashable) -> Optional[ComplianceResult]:
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return copy.deepcopy(value)

    def put(self, key: Hashable, value: ComplianceResult, generation: int) -> None:
        if self._capacity == 0:
            return
        with self._lock:
            if generation != self._generation:
                return
            self._entries[key] = copy.deepcopy(value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._capacity:
                self._entries.popitem(last=False)
                self.evictions += 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._generation += 1

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self._capacity,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "generation": self._generation,
            }


# ============================================================
# Checker
# ============================================================

class ComplianceChecker:
    """Runs the compliance checks for every applicable jurisdiction."""

    def __init__(
        self,
        rules: Optional[ComplianceRules] = None,
        cache_size: int = 1024,
        metrics: Optional[MetricsSink] = None
    ):
        self._rules = rules or ComplianceRules()
        self._lock = threading.Lock()
        self.cache = ComplianceCache(cache_size)
        self.metrics = metrics

    @property
    def rules(self) -> ComplianceRules:
        return self._rules

    def update_rules(self, rules: ComplianceRules) -> None:
        """Swap in new rules and drop every cached verdict."""
        with self._lock:
            self._rules = rules
            self.cache.clear()

    def resolve_jurisdictions(self, context: Optional[VerificationContext], rules: ComplianceRules) -> List[str]:
        override = context.jurisdictions() if context else []
        return override or list(rules.jurisdictions)

    @staticmethod
    def _cache_key(decision: Decision, context: Optional[VerificationContext], jurisdictions: List[str]) -> Tuple:
        market_data = (context.market_data if context else None) or {}
        return (
            (decision.asset or "").lower(),
            decision.action,
            decision.amount,
            decision.leverage,
            tuple(jurisdictions),
            is_derivative(decision),
            decision.portfolio_size,
            context.portfolio_value if context else None,
            bool(context and context.insider_information),
            bool(context and context.conflict_of_interest),
            repr(market_data.get("market_cap_influence", market_data.get("marketCapInfluence"))),
        )

    def check(self, decision: Decision, context: Optional[VerificationContext] = None) -> ComplianceResult:
        start = time.perf_counter()
        with self._lock:
            rules = self._rules
            generation = self.cache.generation

        jurisdictions = self.resolve_jurisdictions(context, rules)
        key = self._cache_key(decision, context, jurisdictions)
        cached = self.cache.get(key)
        if cached is not None:
            cached.processing_time_ms = (time.perf_counter() - start) * 1000
            return cached

        results: List[ComplianceCheckResult] = []
        for jurisdiction in jurisdictions:
            for check in COMPLIANCE_CHECKS:
                try:
                    results.append(check.evaluate(decision, context, jurisdiction, rules))
                except Exception:
                    # Fail closed
                    logger.warning("Compliance check %s degraded for %s", check.name, jurisdiction, exc_info=True)
                    results.append(ComplianceCheckResult(
                        check=check.name,
                        jurisdiction=jurisdiction,
                        score=0,
                        violations=[f"Compliance check degraded: {check.name}"],
                    ))

        violations = list(dict.fromkeys(v for r in results for v in r.violations))
        warnings = list(dict.fromkeys(w for r in results for w in r.warnings))
        score = round(sum(r.score for r in results) / len(results)) if results else 100

        if violations:
            severity = RiskLevel.CRITICAL
        elif warnings:
            severity = RiskLevel.MEDIUM
        else:
            severity = RiskLevel.LOW

        elapsed_ms = (time.perf_counter() - start) * 1000
        result = ComplianceResult(
            compliant=not violations,
            score=score,
            severity=severity,
            violations=violations,
            warnings=warnings,
            jurisdictions=jurisdictions,
            frameworks=[f.name for f in rules.frameworks_for(jurisdictions)],
            reporting_required=any("reporting" in w.lower() for w in warnings),
            checks=results,
            processing_time_ms=elapsed_ms,
        )

        degraded = any(v.startswith("Compliance check degraded") for v in violations)
        if self.metrics:
            self.metrics.record_analysis("compliance", elapsed_ms, severity.value, success=not degraded)
        if not degraded:
            self.cache.put(key, result, generation)
        return result
