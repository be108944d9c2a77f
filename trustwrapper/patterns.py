"""
TrustWrapper Pattern Detector

Scores reasoning and strategy text, behavioral heuristics and per-agent
decision frequency for manipulation, emotional bias and inconsistency.

Matched text never leaves this module: a DetectedPattern keeps only a
digest and the span length of what matched.
"""

import logging
import threading
import time
from collections import OrderedDict, deque
from typing import Dict, List, Optional, Sequence, Tuple

from .hashing import text_digest
from .metrics import MetricsSink
from .models import Decision, PatternCategory, RiskLevel, VerificationContext
from .results import DetectedPattern, PatternDetection
from .rules import PatternDefinition, PatternRules, pattern_definition

logger = logging.getLogger(__name__)

MAX_WARNINGS = 10
BUY_ACTIONS = ("buy", "market_buy", "limit_buy")


# Built-in tables scanned alongside the configurable reasoning patterns.
# Each carries a fixed confidence instead of a span-derived one.
EMOTIONAL_PATTERNS = [
    pattern_definition("fomo", r"fomo|fear.*missing", 15, "medium", "emotion", "Fear of missing out"),
    pattern_definition("panic", r"panic|emergency|urgent", 20, "medium", "emotion", "Panic language"),
    pattern_definition("revenge_trading", r"revenge.*trad|get.*back", 25, "medium", "emotion", "Revenge trading"),
    pattern_definition("desperation", r"desperate|last.*chance", 30, "high", "emotion", "Desperation"),
    pattern_definition("certainty_bias", r"sure.*thing|can.t.*lose", 20, "medium", "emotion", "Certainty bias"),
]
URGENCY_PATTERNS = [
    pattern_definition("now_or_never", r"now.*or.*never|limited.*time", 25, "medium", "manipulation", "Artificial urgency"),
    pattern_definition("rush", r"hurry|quick|fast|immediate", 15, "medium", "manipulation", "Pressure to act quickly"),
    pattern_definition("loss_aversion", r"before.*it.s.*too.*late|miss.*out", 20, "medium", "manipulation",
             "Loss aversion pressure"),
]
TECHNICAL_CLAIM_PATTERNS = [
    pattern_definition("ta_claim", r"technical.*analysis.*shows", 10, "low", "technical", "Unsupported technical claim"),
    pattern_definition("chart_claim", r"chart.*pattern.*indicates", 8, "low", "technical", "Unsupported chart claim"),
    pattern_definition("support_resistance_claim", r"support.*resistance.*at", 5, "low", "technical",
             "Unsupported support/resistance claim"),
    pattern_definition("breakout_hype", r"breakout.*imminent|moon.*incoming", 15, "low", "hype", "Breakout hype"),
]
BUILTIN_TABLES: List[Tuple[List[PatternDefinition], float]] = [
    (EMOTIONAL_PATTERNS, 0.85),
    (URGENCY_PATTERNS, 0.8),
    (TECHNICAL_CLAIM_PATTERNS, 0.6),
]

CONFIDENCE_LEVELS = [
    (20, "very_low"),
    (40, "low"),
    (60, "medium"),
    (80, "high"),
    (95, "very_high"),
]


class DecisionHistory:
    """
    Bounded per-agent window of decision timestamps.

    At most ``max_events`` timestamps are kept per agent and at most
    ``max_agents`` agents are tracked; the least recently seen agent is
    evicted first.
    """

    def __init__(self, max_agents: int = 1000, max_events: int = 256):
        self._max_agents = max(1, max_agents)
        self._max_events = max(1, max_events)
        self._events: "OrderedDict[str, deque]" = OrderedDict()
        self._lock = threading.RLock()

    def record(self, agent_id: str, timestamp: float, windows: Sequence[float]) -> List[int]:
        """
        Record a decision and count the agent's decisions inside each window.

        Args:
            agent_id: Agent identifier
            timestamp: Decision time, epoch seconds
            windows: Window sizes in seconds

        Returns:
            Count per window, including the decision just recorded
        """
        with self._lock:
            q = self._events.get(agent_id)
            if q is None:
                q = deque(maxlen=self._max_events)
                self._events[agent_id] = q
                while len(self._events) > self._max_agents:
                    self._events.popitem(last=False)
            else:
                self._events.move_to_end(agent_id)

            q.append(timestamp)
            return [sum(1 for t in q if timestamp - window <= t <= timestamp) for window in windows]

    def count(self, agent_id: str) -> int:
        with self._lock:
            return len(self._events.get(agent_id, ()))

    def agents(self) -> int:
        with self._lock:
            return len(self._events)

    def clear(self, agent_id: Optional[str] = None) -> None:
        with self._lock:
            if agent_id:
                self._events.pop(agent_id, None)
            else:
                self._events.clear()


def _confidence_level(confidence: float) -> str:
    for bound, label in CONFIDENCE_LEVELS:
        if confidence < bound:
            return label
    return "overconfident"


class PatternDetector:
    """Detects suspicious language and behavioral patterns in a decision."""

    def __init__(
        self,
        rules: Optional[PatternRules] = None,
        history: Optional[DecisionHistory] = None,
        metrics: Optional[MetricsSink] = None
    ):
        self.rules = rules or PatternRules()
        self.history = history
        self.metrics = metrics

    def detect(self, decision: Decision, context: Optional[VerificationContext] = None) -> PatternDetection:
        start = time.perf_counter()
        found: List[DetectedPattern] = []
        degraded: List[str] = []
        steps = [
            ("reasoning_analysis", self._analyze_reasoning),
            ("strategy_analysis", self._analyze_strategy),
            ("behavioral_analysis", self._analyze_behavior),
            ("temporal_analysis", self._analyze_temporal),
        ]

        for name, step in steps:
            try:
                found.extend(step(decision, context))
            except Exception:
                # Fail closed: a broken step counts as maximum risk
                logger.warning("Pattern step %s degraded", name, exc_info=True)
                degraded.append(name)
                found.append(DetectedPattern(
                    name=f"{name}_degraded",
                    category=PatternCategory.BEHAVIORAL,
                    severity=RiskLevel.HIGH,
                    risk_score=100,
                    confidence=1.0,
                    description="Degraded analysis",
                ))

        patterns = self._deduplicate(found)
        stated = decision.confidence if decision.confidence is not None else 50.0
        adjustment = self._confidence_adjustment(stated)

        risk_score = min(100, round(sum(p.risk_score * p.confidence for p in patterns) + adjustment))
        severity = self._severity(risk_score, patterns)

        overall = (sum(p.confidence for p in patterns) / len(patterns)) if patterns else 1.0
        if stated > 95:
            overall = min(overall, 0.85)

        elapsed_ms = (time.perf_counter() - start) * 1000
        if self.metrics:
            self.metrics.record_analysis("pattern", elapsed_ms, severity.value, success=not degraded)

        return PatternDetection(
            risk_score=risk_score,
            severity=severity,
            patterns=patterns,
            warnings=self._warnings(patterns, stated),
            confidence=overall,
            confidence_level=_confidence_level(stated),
            checks_performed=[name for name, _ in steps],
            degraded_checks=degraded,
            processing_time_ms=elapsed_ms,
        )

    # ------------------------------------------------------------
    # Text matching
    # ------------------------------------------------------------

    @staticmethod
    def _match(definition: PatternDefinition, text: str, confidence: Optional[float] = None) -> Optional[DetectedPattern]:
        match = definition.matcher.search(text)
        if not match:
            return None

        span = match.end() - match.start()
        if confidence is None:
            confidence = 0.5 + 0.3 * (span / len(text))
            if span == len(text):
                confidence += 0.2
            confidence = min(confidence, 1.0)

        return DetectedPattern(
            name=definition.name,
            category=definition.category,
            severity=definition.severity,
            risk_score=definition.risk_score,
            confidence=confidence,
            description=definition.description,
            match_digest=text_digest(match.group(0)),
            match_length=span,
        )

    def _scan(self, definitions, text: str, confidence: Optional[float] = None) -> List[DetectedPattern]:
        if not text:
            return []
        hits = (self._match(d, text, confidence) for d in definitions)
        return [hit for hit in hits if hit]

    def _analyze_reasoning(self, decision: Decision, context: Optional[VerificationContext]) -> List[DetectedPattern]:
        text = decision.reasoning or ""
        found = self._scan(self.rules.reasoning_patterns, text)
        for table, confidence in BUILTIN_TABLES:
            found.extend(self._scan(table, text, confidence))
        return found

    # ------------------------------------------------------------
    # Strategy and position heuristics
    # ------------------------------------------------------------

    def _analyze_strategy(self, decision: Decision, context: Optional[VerificationContext]) -> List[DetectedPattern]:
        strategy = decision.strategy or ""
        found = self._scan(self.rules.strategy_patterns, strategy)

        price, stop, target = decision.price, decision.stop_loss, decision.take_profit
        if price and stop and target:
            risk = abs(price - stop)
            reward = abs(target - price)
            if risk > 0 and reward / risk < 0.5:
                found.append(DetectedPattern(
                    name="poor_risk_reward",
                    category=PatternCategory.TECHNICAL,
                    severity=RiskLevel.MEDIUM,
                    risk_score=20,
                    confidence=0.9,
                    description="Risk/reward ratio below 0.5",
                ))

        if "scalp" in strategy.lower() and decision.timeframe and decision.timeframe > 60:
            found.append(DetectedPattern(
                name="timeframe_strategy_mismatch",
                category=PatternCategory.TECHNICAL,
                severity=RiskLevel.LOW,
                risk_score=10,
                confidence=0.7,
                description="Scalping strategy with a long timeframe",
            ))

        if decision.amount and decision.portfolio_size and decision.portfolio_size > 0:
            share = decision.amount / decision.portfolio_size
            if share > 0.5:
                found.append(DetectedPattern(
                    name="excessive_position_size",
                    category=PatternCategory.BEHAVIORAL,
                    severity=RiskLevel.HIGH,
                    risk_score=35,
                    confidence=0.95,
                    description="Position exceeds half of portfolio",
                ))
            elif share > 0.25:
                found.append(DetectedPattern(
                    name="large_position_size",
                    category=PatternCategory.BEHAVIORAL,
                    severity=RiskLevel.MEDIUM,
                    risk_score=20,
                    confidence=0.9,
                    description="Position exceeds a quarter of portfolio",
                ))

        return found

    # ------------------------------------------------------------
    # Behavioral heuristics
    # ------------------------------------------------------------

    def _analyze_behavior(self, decision: Decision, context: Optional[VerificationContext]) -> List[DetectedPattern]:
        found: List[DetectedPattern] = []
        reasoning = (decision.reasoning or "").lower()

        if decision.confidence is not None and decision.confidence > 95:
            found.append(DetectedPattern(
                name="overconfidence_bias",
                category=PatternCategory.BEHAVIORAL,
                severity=RiskLevel.MEDIUM,
                risk_score=15,
                confidence=0.8,
                description="Stated confidence above 95%",
            ))

        if "bear" in reasoning and (decision.action or "") in BUY_ACTIONS:
            found.append(DetectedPattern(
                name="reasoning_action_mismatch",
                category=PatternCategory.BEHAVIORAL,
                severity=RiskLevel.MEDIUM,
                risk_score=20,
                confidence=0.85,
                description="Bearish reasoning with a buy action",
            ))

        if "everyone" in reasoning:
            found.append(DetectedPattern(
                name="herd_mentality",
                category=PatternCategory.BEHAVIORAL,
                severity=RiskLevel.MEDIUM,
                risk_score=15,
                confidence=0.75,
                description="Herd mentality",
            ))

        found.extend(self._scan(self.rules.behavioral_patterns, decision.text(), 0.8))
        return found

    def _analyze_temporal(self, decision: Decision, context: Optional[VerificationContext]) -> List[DetectedPattern]:
        temporal = self.rules.temporal_patterns
        if self.history is None or context is None or not context.agent_id or not temporal:
            return []

        now = context.timestamp.timestamp() if context.timestamp else time.time()
        counts = self.history.record(
            context.agent_id, now, [t.time_window_minutes * 60 for t in temporal]
        )

        return [
            DetectedPattern(
                name=t.name,
                category=PatternCategory.BEHAVIORAL,
                severity=RiskLevel.MEDIUM,
                risk_score=t.risk_score,
                confidence=0.9,
                description=t.description or "Decision frequency above limit",
            )
            for t, count in zip(temporal, counts)
            if count > t.max_frequency
        ]

    # ------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------

    @staticmethod
    def _deduplicate(patterns: List[DetectedPattern]) -> List[DetectedPattern]:
        """Collapse repeated names, keeping the heavier entry in first-seen order."""
        by_name: Dict[str, DetectedPattern] = {}
        for p in patterns:
            current = by_name.get(p.name)
            if current is None or p.risk_score > current.risk_score:
                by_name[p.name] = p
        return list(by_name.values())

    def _confidence_adjustment(self, stated: float) -> int:
        thresholds = self.rules.confidence_thresholds
        adjustment = 0
        if stated < thresholds.critical:
            adjustment += 30
        elif stated < thresholds.warning:
            adjustment += 15
        if stated > 95:
            adjustment += 10
        return adjustment

    @staticmethod
    def _severity(risk_score: int, patterns: List[DetectedPattern]) -> RiskLevel:
        if any(p.severity == RiskLevel.CRITICAL for p in patterns) or risk_score >= 70:
            return RiskLevel.CRITICAL
        if risk_score >= 50:
            return RiskLevel.HIGH
        if risk_score >= 25:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def _warnings(self, patterns: List[DetectedPattern], stated: float) -> List[str]:
        warnings = [
            f"{p.description}: {p.name}"
            for p in patterns
            if p.severity in (RiskLevel.HIGH, RiskLevel.CRITICAL)
        ]
        if stated < self.rules.confidence_thresholds.critical:
            warnings.append("Very low AI confidence in decision")
        elif stated > 95:
            warnings.append("Potential overconfidence bias detected")
        return warnings[:MAX_WARNINGS]
