"""Probe orchestration: one placement through its full lifecycle.

Sequence for one run:
1. create the test namespace and resources (optional)
2. create the placement and wait until it is available
3. delete the test resources and wait until the fleet reflects it
4. wait until the placement reports the update as complete
5. delete the placement (and test namespace) on every exit path
"""

import logging
import threading
import time
from typing import Any, Callable, Iterable, Optional

from fleetprobe.config.loader import ManifestBundle
from fleetprobe.metrics.aggregator import RESULT_FAILED, MetricsAggregator
from fleetprobe.probe.errors import ProbeSetupError
from fleetprobe.probe.phases import PhaseDriver, ProbeRun, ProbeSettings
from fleetprobe.probe.placement import (
    NAMESPACE_PREFIX,
    PLACEMENT_PREFIX,
    build_placement,
    random_suffix,
)
from fleetprobe.probe.poller import PollState

logger = logging.getLogger(__name__)


class ProbeRunner:
    """Runs probe runs for one bundle against one hub.

    A runner holds no per-run state, so a single instance can be shared
    by concurrent workers.
    """

    def __init__(
        self,
        hub: Any,
        bundle: ManifestBundle,
        settings: ProbeSettings,
        metrics: MetricsAggregator,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.hub = hub
        self.bundle = bundle
        self.settings = settings
        self.metrics = metrics
        self.stop_event = stop_event or threading.Event()
        self.clock = clock

    def run(self, cluster_names: Iterable[str] = ()) -> ProbeRun:
        """Execute one probe run.

        Args:
            cluster_names: Member clusters known up front; merged with the
                clusters the placement reports.

        Returns:
            The finished ProbeRun. Timeouts and cancellation are reported
            there, not raised.

        Raises:
            ProbeSetupError: If the test resources or the placement could
                not be created.
        """
        run = ProbeRun(placement_name=PLACEMENT_PREFIX + random_suffix())
        if self.settings.use_test_resources:
            run.namespace = NAMESPACE_PREFIX + random_suffix()

        try:
            self._setup(run)
            self._run_phases(run, list(cluster_names))
        finally:
            self._cleanup(run)
        return run

    def _setup(self, run: ProbeRun) -> None:
        if self.settings.use_test_resources:
            logger.info("create the resources in namespace %s in the hub cluster", run.namespace)
            try:
                run.namespace_created = True
                self.hub.create_namespace(run.namespace)
                run.resources_applied = True
                self.hub.apply_test_resources(run.namespace, self.bundle.resources)
            except Exception as e:
                logger.error("failed to apply namespaced resources in %s: %s", run.namespace, e)
                raise ProbeSetupError(
                    f"failed to apply test resources in namespace {run.namespace}: {e}",
                    placement_name=run.placement_name,
                ) from e

        body = build_placement(self.bundle.placement, run.placement_name, run.namespace)
        logger.info("create the placement %s in the hub cluster", run.placement_name)
        try:
            run.placement_submitted = True
            self.hub.create_placement(body)
        except Exception as e:
            logger.error("failed to create placement %s: %s", run.placement_name, e)
            run.outcomes["apply"] = PollState.FAILED
            self.metrics.record_apply(self.settings.concurrency_label, run.fleet_label, RESULT_FAILED)
            raise ProbeSetupError(
                f"failed to create placement {run.placement_name}: {e}",
                placement_name=run.placement_name,
            ) from e
        self.metrics.record_placement_created()

    def _run_phases(self, run: ProbeRun, cluster_names: list) -> None:
        driver = PhaseDriver(self.hub, self.metrics, self.settings, self.stop_event, self.clock)

        if not driver.wait_for_available(run, cluster_names).succeeded:
            return
        if run.fleet.size == 0:
            logger.info("the placement %s selected no member clusters, skipping the update", run.placement_name)
            return
        if not self.settings.use_test_resources:
            return

        mutation_started_at = self.clock()
        if not driver.remove_test_resources(run, self.bundle.resources):
            return
        if driver.wait_for_resources_removed(run).cancelled:
            return
        driver.wait_for_update_complete(run, mutation_started_at)

    def _cleanup(self, run: ProbeRun) -> None:
        """Delete everything the run created. Errors are logged, never raised."""
        if run.placement_submitted:
            try:
                self.hub.delete_placement(run.placement_name)
                logger.info("deleted placement %s", run.placement_name)
            except Exception as e:
                logger.error("failed to delete placement %s: %s", run.placement_name, e)
                run.cleanup_errors.append(f"placement: {e}")

        if run.resources_applied and not run.resources_removed:
            try:
                self.hub.delete_test_resources(run.namespace, self.bundle.resources)
                run.resources_removed = True
            except Exception as e:
                logger.error("failed to delete test resources in %s: %s", run.namespace, e)
                run.cleanup_errors.append(f"resources: {e}")

        if run.namespace_created:
            try:
                self.hub.delete_namespace(run.namespace)
            except Exception as e:
                logger.error("failed to delete namespace %s: %s", run.namespace, e)
                run.cleanup_errors.append(f"namespace: {e}")


def run_probe(
    hub: Any,
    bundle: ManifestBundle,
    settings: ProbeSettings,
    metrics: MetricsAggregator,
    cluster_names: Iterable[str] = (),
    stop_event: Optional[threading.Event] = None,
) -> ProbeRun:
    """Run a single placement probe. See ``ProbeRunner.run``."""
    runner = ProbeRunner(hub, bundle, settings, metrics, stop_event=stop_event)
    return runner.run(cluster_names)
