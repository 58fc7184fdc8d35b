"""Process-wide probe metrics.

Outcome counters and latency samples for the apply, resource-removal and
update phases, labelled by concurrency level and fleet size. Every
metric lives in the aggregator's own ``CollectorRegistry`` so several
aggregators (e.g. one per test) never collide.
"""

import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, Optional

import click
from prometheus_client import CollectorRegistry, Counter, Summary

logger = logging.getLogger(__name__)

RESULT_SUCCEEDED = "succeed"
RESULT_FAILED = "failed"
RESULT_TIMEOUT = "timeout"
RESULTS = (RESULT_SUCCEEDED, RESULT_FAILED, RESULT_TIMEOUT)

PHASE_APPLY = "apply"
PHASE_DELETE = "delete"
PHASE_UPDATE = "update"

QUANTILES = (0.5, 0.9, 0.99)
# samples kept per phase for the quantile estimate
MAX_SAMPLES = 10000

COUNT_LABELS = ["concurrency", "numTargetCluster", "result"]
LATENCY_LABELS = ["concurrency", "numTargetCluster", "latency"]


def format_latency(seconds: float) -> str:
    """Latency label value: seconds with millisecond precision."""
    return f"{seconds:.3f}"


class LatencyQuantiles:
    """Thread-safe latency sample store reporting fixed quantiles.

    Count and sum cover every observation. Quantiles are computed over
    the most recent ``max_samples`` observations only.
    """

    def __init__(self, quantiles=QUANTILES, max_samples: int = MAX_SAMPLES):
        if max_samples <= 0:
            raise ValueError(f"max_samples must be positive, got {max_samples}")
        self.quantiles = tuple(quantiles)
        self._lock = threading.Lock()
        self._samples: Deque[float] = deque(maxlen=max_samples)
        self._count = 0
        self._sum = 0.0

    def observe(self, seconds: float) -> None:
        with self._lock:
            self._samples.append(seconds)
            self._count += 1
            self._sum += seconds

    def count(self) -> int:
        with self._lock:
            return self._count

    def retained(self) -> int:
        """Number of samples currently kept for the quantiles."""
        with self._lock:
            return len(self._samples)

    def snapshot(self) -> Dict[str, Any]:
        """Return count, sum, mean and the configured quantiles."""
        with self._lock:
            samples = sorted(self._samples)
            count = self._count
            total = self._sum

        if not samples:
            return {
                "count": 0,
                "sum": 0.0,
                "mean": None,
                "quantiles": {q: None for q in self.quantiles},
            }

        result = {}
        for q in self.quantiles:
            idx = min(int(len(samples) * q), len(samples) - 1)
            result[q] = samples[idx]
        return {
            "count": count,
            "sum": round(total, 3),
            "mean": round(total / count, 3),
            "quantiles": result,
        }


class _PhaseMetrics:
    """Counter, latency counter and quantile estimator for one phase."""

    def __init__(
        self,
        registry: CollectorRegistry,
        count_name: str,
        count_help: str,
        latency_name: Optional[str] = None,
        quantile_name: Optional[str] = None,
    ):
        self.count_name = count_name
        self.outcomes = Counter(count_name, count_help, COUNT_LABELS, registry=registry)
        self.latency_counts = None
        self.summary = None
        self.quantile_name = quantile_name
        if latency_name:
            self.latency_counts = Counter(
                latency_name, f"latency samples for {count_name}", LATENCY_LABELS, registry=registry
            )
        if quantile_name:
            self.summary = Summary(quantile_name, f"quantiles for {count_name}", registry=registry)
        self.quantiles = LatencyQuantiles()
        self._lock = threading.Lock()
        self._totals = {result: 0 for result in RESULTS}

    def record(self, concurrency: str, fleet_size: str, result: str, latency: Optional[float]) -> None:
        self.outcomes.labels(concurrency, fleet_size, result).inc()
        with self._lock:
            self._totals[result] += 1
        if result == RESULT_SUCCEEDED and latency is not None:
            self.quantiles.observe(latency)
            if self.summary is not None:
                self.summary.observe(latency)
            if self.latency_counts is not None:
                self.latency_counts.labels(concurrency, fleet_size, format_latency(latency)).inc()

    def totals(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._totals)


class MetricsAggregator:
    """Collects probe outcomes and latencies across concurrent probe runs.

    One aggregator is created per load test and passed to every probe run.

    Usage::

        metrics = MetricsAggregator()
        metrics.record_apply("10", "5", "succeed", latency=12.4)
        metrics.print_metrics(use_test_resources=True)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._phases = {
            PHASE_APPLY: _PhaseMetrics(
                self.registry,
                "workload_apply_total",
                "Total number of placement",
                latency_name="apply_crp_latency_count",
                quantile_name="quantile_apply_crp_latency",
            ),
            PHASE_DELETE: _PhaseMetrics(
                self.registry,
                "workload_resource_delete_total",
                "Total number of test resource removals observed on the fleet",
            ),
            PHASE_UPDATE: _PhaseMetrics(
                self.registry,
                "workload_update_total",
                "Total number of placement updates",
                latency_name="update_crp_latency_count",
                quantile_name="quantile_update_latency",
            ),
        }
        self._placements_created = Counter(
            "load_test_placement_created",
            "Number of placements created by the load test",
            registry=self.registry,
        )

    # ── Recording ────────────────────────────────────────────

    def record_placement_created(self) -> None:
        self._placements_created.inc()

    def record_apply(self, concurrency: str, fleet_size: str, result: str, latency: Optional[float] = None) -> None:
        self._record(PHASE_APPLY, concurrency, fleet_size, result, latency)

    def record_delete(self, concurrency: str, fleet_size: str, result: str, latency: Optional[float] = None) -> None:
        self._record(PHASE_DELETE, concurrency, fleet_size, result, latency)

    def record_update(self, concurrency: str, fleet_size: str, result: str, latency: Optional[float] = None) -> None:
        self._record(PHASE_UPDATE, concurrency, fleet_size, result, latency)

    def _record(self, phase: str, concurrency: str, fleet_size: str, result: str, latency: Optional[float]) -> None:
        if result not in RESULTS:
            raise ValueError(f"Unknown result '{result}', expected one of {RESULTS}")
        self._phases[phase].record(concurrency, fleet_size, result, latency)

    # ── Reading ──────────────────────────────────────────────

    def outcome_count(self, phase: str, concurrency: str, fleet_size: str, result: str) -> float:
        """Current value of one labelled outcome counter (0 when unseen)."""
        metrics = self._phases[phase]
        value = self.registry.get_sample_value(
            metrics.count_name,
            {"concurrency": concurrency, "numTargetCluster": fleet_size, "result": result},
        )
        return value or 0.0

    def placements_created(self) -> int:
        value = self.registry.get_sample_value("load_test_placement_created_total")
        return int(value or 0)

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data view of every phase; does not reset anything."""
        phases = {}
        for phase, metrics in self._phases.items():
            phases[phase] = {
                "totals": metrics.totals(),
                "latency": metrics.quantiles.snapshot(),
            }
        return {
            "placementsCreated": self.placements_created(),
            "phases": phases,
        }

    def render(self, use_test_resources: bool) -> str:
        """Human-readable report for the end of a load test."""
        snap = self.snapshot()
        lines = [f"Placements created: {snap['placementsCreated']}"]

        shown = [PHASE_APPLY]
        if use_test_resources:
            shown += [PHASE_DELETE, PHASE_UPDATE]

        for phase in shown:
            data = snap["phases"][phase]
            totals = data["totals"]
            lines.append(
                f"Placement {phase} result: "
                f"succeed={totals[RESULT_SUCCEEDED]} "
                f"failed={totals[RESULT_FAILED]} "
                f"timeout={totals[RESULT_TIMEOUT]}"
            )
            metrics = self._phases[phase]
            if metrics.quantile_name:
                latency = data["latency"]
                lines.append(f"  {metrics.quantile_name} (count={latency['count']}, sum={latency['sum']})")
                for q, value in latency["quantiles"].items():
                    shown_value = "n/a" if value is None else format_latency(value)
                    lines.append(f"    quantile={q}: {shown_value}")
        return "\n".join(lines)

    def print_metrics(self, use_test_resources: bool) -> None:
        """Write the report to stdout and the log."""
        report = self.render(use_test_resources)
        click.echo(report)
        for phase in (PHASE_APPLY, PHASE_DELETE, PHASE_UPDATE):
            if phase != PHASE_APPLY and not use_test_resources:
                continue
            logger.info("placement %s result %s", phase, self._phases[phase].totals())
