"""
ChatRelay Metrics — process-local counters, gauges and latency windows.

Read back through snapshot() on /health. Labels are folded into the key,
so "exchange.outcome" with {"state": "done"} is stored as
"exchange.outcome{state=done}".

    from chatrelay.core.metrics import metrics

    metrics.inc("exchange.outcome", labels={"state": "done"})
    metrics.observe("provider.chat.latency_ms", 842.0, labels={"provider": "gemini"})
"""

from __future__ import annotations

import time
from collections import Counter, defaultdict, deque


def _percentile(ordered: list[float], fraction: float) -> float:
    return ordered[min(int(len(ordered) * fraction), len(ordered) - 1)]


class MetricsCollector:
    # Observations kept per histogram; older ones fall off
    WINDOW = 500

    def __init__(self) -> None:
        self._started_at = time.time()
        self._counters: Counter[str] = Counter()
        self._gauges: defaultdict[str, float] = defaultdict(float)
        self._windows: defaultdict[str, deque] = defaultdict(
            lambda: deque(maxlen=self.WINDOW)
        )

    @staticmethod
    def _key(name: str, labels: dict | None) -> str:
        if not labels:
            return name
        rendered = ",".join(f"{k}={labels[k]}" for k in sorted(labels))
        return name + "{" + rendered + "}"

    # Counters
    def inc(self, name: str, value: int = 1, labels: dict | None = None) -> None:
        self._counters[self._key(name, labels)] += value

    def counter(self, name: str, labels: dict | None = None) -> int:
        return self._counters[self._key(name, labels)]

    # Gauges
    def gauge_inc(self, name: str, value: float = 1.0, labels: dict | None = None) -> None:
        self._gauges[self._key(name, labels)] += value

    def gauge_dec(self, name: str, value: float = 1.0, labels: dict | None = None) -> None:
        self._gauges[self._key(name, labels)] -= value

    def gauge(self, name: str, labels: dict | None = None) -> float:
        return self._gauges.get(self._key(name, labels), 0.0)

    # Histograms
    def observe(self, name: str, value: float, labels: dict | None = None) -> None:
        self._windows[self._key(name, labels)].append(value)

    def snapshot(self) -> dict:
        histograms = {}
        for key, window in self._windows.items():
            if not window:
                continue
            ordered = sorted(window)
            histograms[key] = {
                "count": len(ordered),
                "min": ordered[0],
                "max": ordered[-1],
                "p50": _percentile(ordered, 0.5),
                "p95": _percentile(ordered, 0.95),
            }
        return {
            "uptime_seconds": round(time.time() - self._started_at, 1),
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "histograms": histograms,
        }

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()
        self._windows.clear()


metrics = MetricsCollector()
