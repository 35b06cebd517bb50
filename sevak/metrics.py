"""
Metrics and alerting sinks

InMemoryMetrics keeps counters, timings and alerts for inspection and tests.
LoggingMetricsSink emits the same events as structured log records so an
external collector can pick them up from the JSONL log.
"""

import logging
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def _metric_key(name: str, tags: Optional[Dict[str, str]]) -> str:
    if not tags:
        return name
    tag_str = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
    return f"{name}[{tag_str}]"


class InMemoryMetrics:
    """Process-local metrics sink"""

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.timings: Dict[str, List[float]] = defaultdict(list)
        self.alerts: List[Dict[str, Any]] = []

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        self.counters[name] += value
        if tags:
            self.counters[_metric_key(name, tags)] += value

    def timing(self, name: str, seconds: float, tags: Optional[Dict[str, str]] = None) -> None:
        self.timings[_metric_key(name, tags)].append(seconds)

    def alert(self, name: str, details: Dict[str, Any]) -> None:
        self.alerts.append({'name': name, 'timestamp': time.time(), 'details': details})
        logger.error(f"ALERT {name}: {details.get('reason', '')}")

    def get(self, name: str) -> int:
        return self.counters.get(name, 0)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'counters': dict(self.counters),
            'timings': {
                name: {
                    'count': len(values),
                    'avg': sum(values) / len(values),
                    'max': max(values)
                }
                for name, values in self.timings.items() if values
            },
            'alerts': len(self.alerts)
        }


class LoggingMetricsSink:
    """Metrics sink that writes every event as a structured log record"""

    def __init__(self, name: str = "sevak.metrics"):
        self.logger = logging.getLogger(name)

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        self.logger.debug(
            f"metric {name} +{value}",
            extra={"structured_data": {'event': 'metric', 'metric': name, 'value': value, 'tags': tags or {}}}
        )

    def timing(self, name: str, seconds: float, tags: Optional[Dict[str, str]] = None) -> None:
        self.logger.debug(
            f"timing {name} {seconds * 1000:.1f}ms",
            extra={"structured_data": {
                'event': 'timing', 'metric': name, 'duration_ms': seconds * 1000, 'tags': tags or {}
            }}
        )

    def alert(self, name: str, details: Dict[str, Any]) -> None:
        self.logger.error(
            f"ALERT {name}",
            extra={"structured_data": {'event': 'alert', 'alert': name, 'details': details}}
        )


class CompositeMetrics:
    """Fans every event out to several sinks"""

    def __init__(self, *sinks):
        self.sinks = sinks

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None) -> None:
        for sink in self.sinks:
            sink.increment(name, value, tags)

    def timing(self, name: str, seconds: float, tags: Optional[Dict[str, str]] = None) -> None:
        for sink in self.sinks:
            sink.timing(name, seconds, tags)

    def alert(self, name: str, details: Dict[str, Any]) -> None:
        for sink in self.sinks:
            sink.alert(name, details)
