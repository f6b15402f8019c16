"""
Metrics collection for generation calls.

This module provides metrics tracking for:
- Generation attempts per provider and their outcome
- Attempt latency
- Time spent waiting on backoff and provider wait hints
"""

from typing import Any, Dict, List

from storywriter.models.generation import AttemptStatus, GenerationAttempt
from storywriter.utils.logging import LogCategory, StructuredLogger


class GenerationMetrics:
    """
    Collects metrics across generation calls.

    Tracks:
    - Attempt counts per provider, split by outcome
    - Attempt latencies per provider
    - Cumulative backoff and wait-hint sleep time
    """

    def __init__(self):
        self.attempts: Dict[str, int] = {}
        self.outcomes: Dict[str, Dict[str, int]] = {}
        self.latencies: Dict[str, List[float]] = {}
        self.waited_seconds: float = 0.0

    def record_attempt(self, service: str, attempt: GenerationAttempt) -> None:
        """
        Record one generation attempt.

        Args:
            service: Provider name (e.g. 'huggingface')
            attempt: The finished attempt
        """
        self.attempts[service] = self.attempts.get(service, 0) + 1

        outcomes = self.outcomes.setdefault(service, {})
        outcomes[attempt.status.value] = outcomes.get(attempt.status.value, 0) + 1

        self.latencies.setdefault(service, []).append(attempt.duration_ms)

    def record_wait(self, seconds: float) -> None:
        self.waited_seconds += seconds

    def success_count(self, service: str) -> int:
        return self.outcomes.get(service, {}).get(AttemptStatus.SUCCESS.value, 0)

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Get summary of collected metrics.

        Returns:
            Dictionary of metrics
        """
        summary: Dict[str, Any] = {
            "attempts": dict(self.attempts),
            "outcomes": {service: dict(counts) for service, counts in self.outcomes.items()},
            "waited_seconds": round(self.waited_seconds, 3),
        }

        latency_stats = {}
        for service, latencies in self.latencies.items():
            if latencies:
                latency_stats[service] = {
                    "count": len(latencies),
                    "min_ms": round(min(latencies), 2),
                    "max_ms": round(max(latencies), 2),
                    "avg_ms": round(sum(latencies) / len(latencies), 2),
                }
        if latency_stats:
            summary["latencies"] = latency_stats

        return summary


def emit_metric(logger: StructuredLogger, metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric as a debug log event.

    Args:
        logger: Logger to use
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.debug(
        LogCategory.SYSTEM,
        f"Metric: {metric_name}",
        {"metric_name": metric_name, "metric_value": value, "metric_tags": tags},
        "📈",
    )
