"""Concurrent load driver.

Keeps ``concurrency`` probe runs in flight until the load-test duration
has elapsed. When the duration ends no new runs start and in-flight runs
finish normally; ``stop()`` instead cancels in-flight runs at their next
poll wait.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fleetprobe.config.loader import LoadTestConfig, ManifestBundle
from fleetprobe.metrics.aggregator import MetricsAggregator
from fleetprobe.probe.errors import ProbeSetupError
from fleetprobe.probe.phases import ProbeSettings
from fleetprobe.probe.runner import ProbeRunner

logger = logging.getLogger(__name__)


@dataclass
class LoadTestSummary:
    """Counts of probe runs executed by a load test."""

    runs: int = 0
    setup_failures: int = 0
    errors: int = 0
    cancelled: int = 0
    elapsed: float = 0.0


class LoadTest:
    """Runs probe runs on a thread pool for a fixed duration."""

    def __init__(
        self,
        hub: Any,
        bundle: ManifestBundle,
        config: LoadTestConfig,
        metrics: Optional[MetricsAggregator] = None,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.hub = hub
        self.bundle = bundle
        self.config = config
        self.metrics = metrics or MetricsAggregator()
        self.stop_event = stop_event or threading.Event()
        self.clock = clock
        self.settings = ProbeSettings(
            deadline=config.deadline,
            poll_interval=config.poll_interval,
            concurrency=config.concurrency,
            use_test_resources=config.use_test_resources,
            expected_residual_resources=config.expected_residual_resources,
        )
        self.runner = ProbeRunner(hub, bundle, self.settings, self.metrics, self.stop_event, clock)
        self._lock = threading.Lock()
        self._summary = LoadTestSummary()

    def stop(self) -> None:
        """Cancel the load test, including the runs in flight."""
        self.stop_event.set()

    def run(self) -> LoadTestSummary:
        """Run the load test until the duration elapses or ``stop()`` is called."""
        start = self.clock()
        ends_at = start + self.config.duration
        logger.info(
            "starting load test: concurrency=%d duration=%.0fs deadline=%.0fs interval=%.1fs",
            self.config.concurrency, self.config.duration, self.config.deadline, self.config.poll_interval,
        )

        with ThreadPoolExecutor(
            max_workers=self.config.concurrency, thread_name_prefix="fleetprobe-worker"
        ) as pool:
            futures = [pool.submit(self._worker, i, ends_at) for i in range(self.config.concurrency)]
            for future in futures:
                future.result()

        with self._lock:
            self._summary.elapsed = self.clock() - start
            summary = LoadTestSummary(**vars(self._summary))
        logger.info(
            "load test finished: %d run(s), %d setup failure(s), %d error(s), %d cancelled",
            summary.runs, summary.setup_failures, summary.errors, summary.cancelled,
        )
        return summary

    def _worker(self, worker_id: int, ends_at: float) -> None:
        while not self.stop_event.is_set() and self.clock() < ends_at:
            try:
                run = self.runner.run(self.config.cluster_names)
            except ProbeSetupError as e:
                logger.error("worker %d: probe run failed: %s", worker_id, e)
                with self._lock:
                    self._summary.runs += 1
                    self._summary.setup_failures += 1
                # back off before retrying against a failing hub
                self.stop_event.wait(self.config.poll_interval)
                continue
            except Exception:
                logger.exception("worker %d: probe run raised an unexpected error", worker_id)
                with self._lock:
                    self._summary.runs += 1
                    self._summary.errors += 1
                self.stop_event.wait(self.config.poll_interval)
                continue

            with self._lock:
                self._summary.runs += 1
                if run.cancelled:
                    self._summary.cancelled += 1
