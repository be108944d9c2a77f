"""
TrustWrapper Risk Analyzer

Seven independent sub-checks over a sanitized decision, combined with
fixed weights into a 0-100 risk score. A sub-check that fails internally
is scored at its own cap (fail closed) and reported as degraded.
"""

import logging
import math
import re
import time
from datetime import timezone
from typing import List, Optional, Tuple

from .metrics import MetricsSink
from .models import Decision, RiskLevel, VerificationContext
from .results import RiskAssessment, RiskBreakdown
from .rules import RiskRules

logger = logging.getLogger(__name__)


# Fixed indicators added on top of the configurable scam patterns
SCAM_INDICATORS: List[Tuple[re.Pattern, int]] = [
    (re.compile(r'guaranteed.*profit', re.IGNORECASE), 30),
    (re.compile(r'risk[- ]?free', re.IGNORECASE), 35),
    (re.compile(r'100%.*return', re.IGNORECASE), 40),
    (re.compile(r'get.*rich.*quick', re.IGNORECASE), 30),
    (re.compile(r'insider.*info', re.IGNORECASE), 45),
    (re.compile(r'pump.*dump', re.IGNORECASE), 50),
    (re.compile(r'rug.*pull', re.IGNORECASE), 50),
    (re.compile(r'honeypot', re.IGNORECASE), 50),
]
SCAM_PATTERN_PENALTY = 25

# Symbol-shape heuristics; first match wins
TOKEN_SHAPE_RULES: List[Tuple[re.Pattern, int]] = [
    (re.compile(r'^(scam|fake|rug|honey)'), 60),
    (re.compile(r'\d+\.?\d*x$'), 30),
    (re.compile(r'(elon|doge|safe|moon)'), 20),
    (re.compile(r'^test|demo'), 10),
    (re.compile(r'\$[a-z]+coin$'), 15),
]

ACTION_RISK = {
    "market_buy": 10,
    "market_sell": 10,
    "limit_buy": 5,
    "limit_sell": 5,
    "stop_loss": 8,
    "take_profit": 5,
    "short": 15,
    "margin_trade": 20,
    "futures": 25,
    "options": 30,
}
SUSPICIOUS_ACTION_RISK = 30

MEME_ASSETS = ("doge", "shib", "pepe", "floki", "safemoon")
STABLECOINS = ("usdt", "usdc", "dai", "busd")
SUSPICIOUS_AMOUNT_PREFIXES = ("123", "999", "666", "777")

WEIGHTS = {
    "scam_score": 0.30,
    "token_risk": 0.25,
    "amount_risk": 0.15,
    "leverage_risk": 0.15,
    "action_risk": 0.05,
    "volatility_risk": 0.05,
    "context_risk": 0.05,
}

# (check name, breakdown field and scoring method suffix, cap, warning threshold)
CHECKS = [
    ("scam_pattern_analysis", "scam_score", 100, 20),
    ("token_risk_assessment", "token_risk", 100, 30),
    ("amount_validation", "amount_risk", 50, 20),
    ("leverage_analysis", "leverage_risk", 60, 20),
    ("action_risk_check", "action_risk", 30, 15),
    ("volatility_assessment", "volatility_risk", 30, 20),
    ("context_analysis", "context_risk", 40, 20),
]


def _format_amount(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


class RiskAnalyzer:
    """
    Scores a decision for scam language, risky assets, oversized amounts,
    excess leverage, action type, volatility and trading context.
    """

    def __init__(self, rules: Optional[RiskRules] = None, metrics: Optional[MetricsSink] = None):
        self.rules = rules or RiskRules()
        self.metrics = metrics

    def analyze(self, decision: Decision, context: Optional[VerificationContext] = None) -> RiskAssessment:
        start = time.perf_counter()
        breakdown = RiskBreakdown()
        warnings: List[str] = []
        degraded: List[str] = []
        for name, attr, cap, threshold in CHECKS:
            check = getattr(self, f"_{attr}")
            try:
                value = min(int(check(decision, context)), cap)
            except Exception:
                # Fail closed: a broken check counts as maximum risk
                logger.warning("Risk check %s degraded", name, exc_info=True)
                value = cap
                degraded.append(name)
                warnings.append(f"Degraded analysis: {name}")
            setattr(breakdown, attr, value)
            if name not in degraded and value > threshold:
                warnings.append(self._warning_for(name, value, decision))

        score = min(100, round(sum(getattr(breakdown, attr) * w for attr, w in WEIGHTS.items())))
        severity = self._severity(score, breakdown)

        elapsed_ms = (time.perf_counter() - start) * 1000
        if self.metrics:
            self.metrics.record_analysis("risk", elapsed_ms, severity.value, success=not degraded)

        return RiskAssessment(
            score=score,
            severity=severity,
            breakdown=breakdown,
            warnings=warnings,
            checks_performed=[name for name, _, _, _ in CHECKS],
            degraded_checks=degraded,
            processing_time_ms=elapsed_ms,
        )

    @staticmethod
    def _severity(score: int, breakdown: RiskBreakdown) -> RiskLevel:
        if breakdown.scam_score >= 80 or breakdown.token_risk >= 80 or score >= 80:
            return RiskLevel.CRITICAL
        if score >= 60:
            return RiskLevel.HIGH
        if score >= 30:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    @staticmethod
    def _warning_for(name: str, value: int, decision: Decision) -> str:
        if name == "scam_pattern_analysis":
            return f"Scam patterns detected in reasoning (score: {value})"
        if name == "token_risk_assessment":
            return f"High-risk token detected: {decision.asset}"
        if name == "amount_validation":
            return "Large position size relative to configured maximum"
        if name == "leverage_analysis":
            return f"High leverage detected: {decision.leverage}x"
        if name == "action_risk_check":
            return f"Risky action type: {decision.action}"
        if name == "volatility_assessment":
            return f"High volatility asset: {decision.asset}"
        return "Unfavorable trading context"

    # ------------------------------------------------------------
    # Sub-checks
    # ------------------------------------------------------------

    def _scam_score(self, decision: Decision, context: Optional[VerificationContext]) -> int:
        text = decision.text()
        if not text:
            return 0

        score = sum(SCAM_PATTERN_PENALTY for p in self.rules.compiled_scam_patterns if p.search(text))
        score += sum(points for p, points in SCAM_INDICATORS if p.search(text))
        return min(score, 100)

    def _token_risk(self, decision: Decision, context: Optional[VerificationContext]) -> int:
        asset = (decision.asset or "").lower()
        score = 0

        if asset in self.rules.risk_tokens:
            score += 50

        for pattern, points in TOKEN_SHAPE_RULES:
            if pattern.search(asset):
                score += points
                break

        if asset not in self.rules.known_tokens and len(asset) < 3:
            score += 25

        return min(score, 100)

    def _amount_risk(self, decision: Decision, context: Optional[VerificationContext]) -> int:
        amount = decision.amount
        if not amount:
            return 0

        ratio = amount / self.rules.max_amount
        if ratio > 1:
            score = 50
        elif ratio > 0.8:
            score = 30
        elif ratio > 0.5:
            score = 15
        elif ratio > 0.1:
            score = 5
        else:
            score = 0

        if _format_amount(amount).startswith(SUSPICIOUS_AMOUNT_PREFIXES):
            score += 10

        return min(score, 50)

    def _leverage_risk(self, decision: Decision, context: Optional[VerificationContext]) -> int:
        leverage = decision.leverage or 1
        if leverage <= 1:
            return 0
        if leverage > self.rules.max_leverage:
            return 60
        if leverage > 50:
            return 40
        if leverage > 20:
            return 25
        if leverage > 10:
            return 15
        if leverage > 5:
            return 8
        if leverage > 2:
            return 3
        return 0

    def _action_risk(self, decision: Decision, context: Optional[VerificationContext]) -> int:
        action = (decision.action or "").lower()
        if action in self.rules.suspicious_actions:
            return SUSPICIOUS_ACTION_RISK
        return ACTION_RISK.get(action, 0)

    def _volatility_risk(self, decision: Decision, context: Optional[VerificationContext]) -> int:
        market_data = context.market_data if context else None
        volatility = market_data.get("volatility") if market_data else None

        if volatility is not None:
            volatility = float(volatility)
            if not math.isfinite(volatility) or volatility < 0:
                raise ValueError("volatility must be a finite non-negative number")
            if volatility > 0.5:
                return 30
            if volatility > 0.3:
                return 20
            if volatility > 0.2:
                return 10
            if volatility > 0.1:
                return 5
            return 0

        asset = (decision.asset or "").lower()
        if asset in MEME_ASSETS:
            return 20
        if asset in STABLECOINS:
            return 0
        return 10

    def _context_risk(self, decision: Decision, context: Optional[VerificationContext]) -> int:
        if context is None:
            return 0

        score = 0
        performance = context.historical_performance
        if performance is not None:
            if performance < 0.3:
                score += 25
            elif performance < 0.5:
                score += 10

        if context.market_conditions == "high_volatility":
            score += 15
        elif context.market_conditions == "bear_market":
            score += 10

        if context.timestamp is not None:
            ts = context.timestamp
            if ts.tzinfo is not None:
                ts = ts.astimezone(timezone.utc)
            if ts.hour < 6 or ts.hour > 22:
                score += 5

        if context.recent_trade_count is not None and context.recent_trade_count > 10:
            score += 15

        return min(score, 40)
