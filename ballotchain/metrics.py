"""
BallotChain v1.0 - Prometheus Metrics.

In-memory counters, gauges and bucketed histograms for the ledger and
its API, rendered in the Prometheus text format at ``/metrics``.
"""

import bisect
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

Labels = dict[str, str] | None

SEAL_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0)
HTTP_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0)

HELP = {
    "ballotchain_votes_admitted_total": "Votes admitted into the pending pool",
    "ballotchain_votes_rejected_total": "Votes rejected at admission, by kind",
    "ballotchain_votes_withdrawn_total": "Admitted votes withdrawn after their block failed to persist",
    "ballotchain_blocks_sealed_total": "Blocks sealed and persisted",
    "ballotchain_persistence_failures_total": "Failed gateway writes, by operation",
    "ballotchain_load_fallbacks_total": "Startups that fell back to a genesis-only chain",
    "ballotchain_chain_height": "Number of blocks in the chain, genesis included",
    "ballotchain_seal_duration_seconds": "Wall time of the proof-of-work search",
    "ballotchain_http_requests_total": "HTTP requests served",
    "ballotchain_http_request_duration_seconds": "HTTP request latency",
}


def _render_labels(labels: tuple[tuple[str, str], ...], extra: tuple[tuple[str, str], ...] = ()) -> str:
    pairs = labels + extra
    if not pairs:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in pairs) + "}"


@dataclass
class _Histogram:
    buckets: tuple[float, ...]
    counts: list[int] = field(default_factory=list)
    total: float = 0.0
    count: int = 0

    def __post_init__(self) -> None:
        self.counts = [0] * len(self.buckets)

    def observe(self, value: float) -> None:
        pos = bisect.bisect_left(self.buckets, value)
        if pos < len(self.counts):
            self.counts[pos] += 1
        self.total += value
        self.count += 1


@dataclass
class MetricsRegistry:
    """Process-wide metrics, keyed by name and sorted label pairs."""

    _counters: dict[tuple, int] = field(default_factory=lambda: defaultdict(int))
    _gauges: dict[tuple, float] = field(default_factory=dict)
    _histograms: dict[tuple, _Histogram] = field(default_factory=dict)

    @staticmethod
    def _key(name: str, labels: Labels) -> tuple:
        return (name, tuple(sorted((labels or {}).items())))

    def inc(self, name: str, labels: Labels = None, value: int = 1) -> None:
        self._counters[self._key(name, labels)] += value

    def set_gauge(self, name: str, value: float, labels: Labels = None) -> None:
        self._gauges[self._key(name, labels)] = value

    def observe(self, name: str, value: float, labels: Labels = None) -> None:
        """Record a histogram observation. Seal timings use ``SEAL_BUCKETS``."""
        key = self._key(name, labels)
        hist = self._histograms.get(key)
        if hist is None:
            buckets = SEAL_BUCKETS if name.startswith("ballotchain_seal") else HTTP_BUCKETS
            hist = self._histograms[key] = _Histogram(buckets)
        hist.observe(value)

    def get_counter(self, name: str, labels: Labels = None) -> int:
        return self._counters.get(self._key(name, labels), 0)

    def get_gauge(self, name: str, labels: Labels = None) -> float | None:
        return self._gauges.get(self._key(name, labels))

    def get_observations(self, name: str, labels: Labels = None) -> int:
        hist = self._histograms.get(self._key(name, labels))
        return hist.count if hist else 0

    # ─── Prometheus rendering ─────────────────────────────────────

    def to_prometheus(self) -> str:
        """Render every metric in Prometheus text exposition format."""
        lines: list[str] = []
        declared: set[str] = set()

        def header(name: str, kind: str) -> None:
            if name in declared:
                return
            declared.add(name)
            if name in HELP:
                lines.append(f"# HELP {name} {HELP[name]}")
            lines.append(f"# TYPE {name} {kind}")

        for (name, labels), value in sorted(self._counters.items()):
            header(name, "counter")
            lines.append(f"{name}{_render_labels(labels)} {value}")

        for (name, labels), value in sorted(self._gauges.items()):
            header(name, "gauge")
            lines.append(f"{name}{_render_labels(labels)} {value:g}")

        for (name, labels), hist in sorted(self._histograms.items(), key=lambda kv: kv[0]):
            header(name, "histogram")
            cumulative = 0
            for bound, n in zip(hist.buckets, hist.counts):
                cumulative += n
                lines.append(f"{name}_bucket{_render_labels(labels, (('le', f'{bound:g}'),))} {cumulative}")
            lines.append(f"{name}_bucket{_render_labels(labels, (('le', '+Inf'),))} {hist.count}")
            lines.append(f"{name}_sum{_render_labels(labels)} {hist.total:.6f}")
            lines.append(f"{name}_count{_render_labels(labels)} {hist.count}")

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()
        self._histograms.clear()


# Global singleton
metrics = MetricsRegistry()


class MetricsMiddleware:
    """Pure ASGI middleware counting requests and timing them per route."""

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any):
        if scope["type"] != "http" or scope.get("path") == "/metrics":
            await self.app(scope, receive, send)
            return

        status_code = 500
        start = time.perf_counter()

        async def send_wrapper(message: dict):
            nonlocal status_code
            if message.get("type") == "http.response.start":
                status_code = message.get("status", 200)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            # Prefer the matched route template over the raw path
            route = scope.get("route")
            path = getattr(route, "path", None) or scope.get("path", "unknown")
            labels = {"method": scope.get("method", "GET"), "path": path, "status": str(status_code)}
            metrics.inc("ballotchain_http_requests_total", labels)
            metrics.observe("ballotchain_http_request_duration_seconds", time.perf_counter() - start, labels)
