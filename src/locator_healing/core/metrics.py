"""
Metrics collection for locator healing.

Tracks session outcomes, per-strategy effectiveness (runs, errors, qualified
results and wins) and phase durations in process memory.
"""

import json
import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Dict, Optional

from .models.healing_models import HealingStatus, StrategyOutcome


@dataclass
class MetricPoint:
    """A single metric data point."""
    timestamp: datetime
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class HealingMetrics:
    """Aggregated healing metrics."""
    total_sessions: int = 0
    completed_sessions: int = 0
    failed_sessions: int = 0
    review_sessions: int = 0
    not_healable_count: int = 0
    avg_session_time_ms: float = 0.0
    phase_avg_time_ms: Dict[str, float] = field(default_factory=dict)
    failure_type_counts: Dict[str, int] = field(default_factory=dict)
    strategy_runs: Dict[str, int] = field(default_factory=dict)
    strategy_errors: Dict[str, int] = field(default_factory=dict)
    strategy_qualified_rates: Dict[str, float] = field(default_factory=dict)
    strategy_wins: Dict[str, int] = field(default_factory=dict)
    updates_applied: int = 0
    updates_rolled_back: int = 0
    queue_depth: int = 0
    most_common_errors: Dict[str, int] = field(default_factory=dict)


class MetricsCollector:
    """Thread-safe metrics collector for healing operations."""

    def __init__(self, retention_hours: int = 24):
        self.retention_delta = timedelta(hours=retention_hours)
        self._lock = threading.RLock()

        self._counters: Dict[str, int] = defaultdict(int)
        self._gauges: Dict[str, float] = {}
        self._histograms: Dict[str, deque] = defaultdict(lambda: deque(maxlen=1000))
        self._error_patterns: Dict[str, int] = defaultdict(int)
        self._active_sessions: Dict[str, datetime] = {}

        self.logger = logging.getLogger("healing.metrics")

    def increment_counter(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
        with self._lock:
            self._counters[self._make_key(name, labels)] += value

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        with self._lock:
            self._gauges[self._make_key(name, labels)] = value

    def record_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        with self._lock:
            self._histograms[name].append(MetricPoint(
                timestamp=datetime.now(),
                value=value,
                labels=labels or {}
            ))

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        with self._lock:
            return self._counters.get(self._make_key(name, labels), 0)

    def record_session_start(self, session_id: str, failure_type: str):
        with self._lock:
            self._active_sessions[session_id] = datetime.now()
            self.increment_counter("healing_sessions_total")
            self.increment_counter("healing_sessions_by_type", labels={"failure_type": failure_type})
            self.set_gauge("active_healing_sessions", len(self._active_sessions))

    def record_phase(self, phase: str, duration_ms: float):
        self.record_histogram("healing_phase_duration_ms", duration_ms, {"phase": phase})

    def record_session_complete(self, session_id: str, status: HealingStatus,
                                duration_ms: float, error_message: Optional[str] = None):
        """Record a session reaching `failed`, `completed` or `requires_review`."""
        with self._lock:
            self._active_sessions.pop(session_id, None)
            self.increment_counter("healing_sessions_finished", labels={"status": status.value})
            self.record_histogram("healing_session_duration_ms", duration_ms)
            if error_message:
                self._error_patterns[error_message] += 1
            self.set_gauge("active_healing_sessions", len(self._active_sessions))

    def record_not_healable(self):
        self.increment_counter("healing_not_healable_total")

    def record_strategy_outcome(self, outcome: StrategyOutcome):
        """Record one strategy execution inside the adaptation pipeline."""
        labels = {"strategy": outcome.strategy}
        with self._lock:
            self.increment_counter("strategy_runs", labels=labels)
            if outcome.error:
                self.increment_counter("strategy_errors", labels=labels)
            elif outcome.qualified:
                self.increment_counter("strategy_qualified", labels=labels)
            self.record_histogram("strategy_duration_ms", outcome.execution_time_ms, labels)

    def record_strategy_win(self, strategy: str):
        self.increment_counter("strategy_wins", labels={"strategy": strategy})

    def record_update_applied(self):
        self.increment_counter("selector_updates_applied")

    def record_update_rolled_back(self):
        self.increment_counter("selector_updates_rolled_back")

    def get_healing_summary(self) -> HealingMetrics:
        """Get current aggregated metrics."""
        with self._lock:
            durations = [p.value for p in self._histograms.get("healing_session_duration_ms", [])]

            phase_values: Dict[str, list] = defaultdict(list)
            for point in self._histograms.get("healing_phase_duration_ms", []):
                phase_values[point.labels.get("phase", "unknown")].append(point.value)

            runs = self._labelled("strategy_runs", "strategy")
            qualified = self._labelled("strategy_qualified", "strategy")

            return HealingMetrics(
                total_sessions=self._counters.get("healing_sessions_total", 0),
                completed_sessions=self.get_counter("healing_sessions_finished", {"status": "completed"}),
                failed_sessions=self.get_counter("healing_sessions_finished", {"status": "failed"}),
                review_sessions=self.get_counter("healing_sessions_finished", {"status": "requires_review"}),
                not_healable_count=self._counters.get("healing_not_healable_total", 0),
                avg_session_time_ms=sum(durations) / len(durations) if durations else 0.0,
                phase_avg_time_ms={p: sum(v) / len(v) for p, v in phase_values.items()},
                failure_type_counts=self._labelled("healing_sessions_by_type", "failure_type"),
                strategy_runs=runs,
                strategy_errors=self._labelled("strategy_errors", "strategy"),
                strategy_qualified_rates={
                    name: qualified.get(name, 0) / count for name, count in runs.items() if count
                },
                strategy_wins=self._labelled("strategy_wins", "strategy"),
                updates_applied=self._counters.get("selector_updates_applied", 0),
                updates_rolled_back=self._counters.get("selector_updates_rolled_back", 0),
                queue_depth=int(self._gauges.get("healing_queue_depth", 0)),
                most_common_errors=dict(sorted(self._error_patterns.items(),
                                               key=lambda x: x[1], reverse=True)[:10]),
            )

    def export_metrics(self, format: str = "json") -> str:
        metrics = self.get_healing_summary()

        if format == "json":
            return json.dumps(asdict(metrics), default=str, indent=2)
        elif format == "prometheus":
            return self._export_prometheus_format(metrics)
        else:
            raise ValueError(f"Unsupported export format: {format}")

    def cleanup_old_data(self):
        """Drop histogram points older than the retention window."""
        cutoff_time = datetime.now() - self.retention_delta
        with self._lock:
            for hist in self._histograms.values():
                while hist and hist[0].timestamp < cutoff_time:
                    hist.popleft()

    def _labelled(self, name: str, label: str) -> Dict[str, int]:
        prefix = f"{name}_{label}:"
        return {
            key[len(prefix):]: count
            for key, count in self._counters.items()
            if key.startswith(prefix)
        }

    def _make_key(self, name: str, labels: Optional[Dict[str, str]] = None) -> str:
        if not labels:
            return name

        label_str = "_".join(f"{k}:{v}" for k, v in sorted(labels.items()))
        return f"{name}_{label_str}"

    def _export_prometheus_format(self, metrics: HealingMetrics) -> str:
        lines = [
            "# HELP healing_sessions_total Total number of healing sessions",
            "# TYPE healing_sessions_total counter",
            f"healing_sessions_total {metrics.total_sessions}",
            "# HELP healing_sessions_completed Sessions that applied a new locator",
            "# TYPE healing_sessions_completed counter",
            f"healing_sessions_completed {metrics.completed_sessions}",
            "# HELP healing_avg_duration_ms Average session duration",
            "# TYPE healing_avg_duration_ms gauge",
            f"healing_avg_duration_ms {metrics.avg_session_time_ms}",
            "# HELP healing_strategy_wins Pipeline wins per strategy",
            "# TYPE healing_strategy_wins counter",
        ]
        for strategy, wins in sorted(metrics.strategy_wins.items()):
            lines.append(f'healing_strategy_wins{{strategy="{strategy}"}} {wins}')
        return "\n".join(lines)


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector


def initialize_metrics(retention_hours: int = 24) -> MetricsCollector:
    """Initialize the global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(retention_hours)
    return _metrics_collector
