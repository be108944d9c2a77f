"""
TrustWrapper Metrics

In-process, thread-safe metrics sink owned by (or injected into) an engine.
Keeps a bounded window of latency samples for percentile reporting plus
plain counters; nothing is exported or persisted.
"""

import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

ERROR_KINDS = ("validation", "cryptographic", "configuration", "system", "deadline")


@dataclass
class ComponentStats:
    """Counters for one analyzer."""
    count: int = 0
    successes: int = 0
    total_latency_ms: float = 0.0
    severities: Counter = field(default_factory=Counter)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "success_rate": (self.successes / self.count) if self.count else 0.0,
            "average_latency_ms": (self.total_latency_ms / self.count) if self.count else 0.0,
            "severity_distribution": dict(self.severities),
        }


class MetricsSink:
    """
    Latency window, verification counters, error counters by kind and
    per-component analysis stats.
    """

    def __init__(self, max_samples: int = 1000, latency_target_ms: Optional[float] = None):
        self._max_samples = max_samples
        self._latency_target_ms = latency_target_ms
        self._lock = threading.RLock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._started = time.time()
            self._latencies: deque = deque(maxlen=self._max_samples)
            self._total_latency_ms = 0.0
            self._verifications = 0
            self._successes = 0
            self._target_overruns = 0
            self._risk_distribution: Counter = Counter()
            self._errors: Counter = Counter({kind: 0 for kind in ERROR_KINDS})
            self._components: Dict[str, ComponentStats] = {}

    def record_verification(self, latency_ms: float, risk_level: Optional[str], success: bool) -> bool:
        """Record one verification. Returns True if it overran the latency target."""
        with self._lock:
            self._verifications += 1
            self._latencies.append(latency_ms)
            self._total_latency_ms += latency_ms
            if success:
                self._successes += 1
            if risk_level:
                self._risk_distribution[risk_level] += 1
            overran = self._latency_target_ms is not None and latency_ms > self._latency_target_ms
            if overran:
                self._target_overruns += 1
            return overran

    def record_error(self, kind: str) -> None:
        with self._lock:
            self._errors[kind if kind in ERROR_KINDS else "system"] += 1

    def record_analysis(self, component: str, latency_ms: float, severity: Optional[str], success: bool = True) -> None:
        with self._lock:
            stats = self._components.setdefault(component, ComponentStats())
            stats.count += 1
            stats.total_latency_ms += latency_ms
            if success:
                stats.successes += 1
            if severity:
                stats.severities[severity] += 1

    @staticmethod
    def _percentile(ordered, pct: float) -> float:
        if not ordered:
            return 0.0
        index = min(len(ordered) - 1, max(0, int(round(pct * len(ordered))) - 1))
        return ordered[index]

    def latency_stats(self) -> Dict[str, float]:
        with self._lock:
            ordered = sorted(self._latencies)
        if not ordered:
            return {"min": 0.0, "max": 0.0, "avg": 0.0, "p95": 0.0, "p99": 0.0, "samples": 0}
        return {
            "min": ordered[0],
            "max": ordered[-1],
            "avg": sum(ordered) / len(ordered),
            "p95": self._percentile(ordered, 0.95),
            "p99": self._percentile(ordered, 0.99),
            "samples": len(ordered),
        }

    def component_stats(self, component: str) -> Dict[str, Any]:
        with self._lock:
            stats = self._components.get(component)
            return stats.to_dict() if stats else ComponentStats().to_dict()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            total = self._verifications
            return {
                "uptime_seconds": time.time() - self._started,
                "total_verifications": total,
                "average_latency_ms": (self._total_latency_ms / total) if total else 0.0,
                "success_rate": (self._successes / total) if total else 0.0,
                "risk_distribution": dict(self._risk_distribution),
                "errors": dict(self._errors),
                "latency_target_overruns": self._target_overruns,
                "latency": self.latency_stats(),
                "components": {name: s.to_dict() for name, s in self._components.items()},
            }
