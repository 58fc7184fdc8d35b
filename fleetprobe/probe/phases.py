"""Phase drivers for a placement probe run.

Each phase polls the hub with a ``DeadlinePoller`` and records exactly
one outcome in the metrics aggregator when it finishes. A cancelled
phase records nothing.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from fleetprobe.metrics.aggregator import (
    RESULT_FAILED,
    RESULT_SUCCEEDED,
    RESULT_TIMEOUT,
    MetricsAggregator,
)
from fleetprobe.probe.conditions import (
    UPDATE_COMPLETE_RULE,
    ConditionType,
    is_condition_false,
    is_condition_true,
)
from fleetprobe.probe.placement import FleetSnapshot, Placement, member_namespace, work_name
from fleetprobe.probe.poller import DeadlinePoller, PollResult, PollState

logger = logging.getLogger(__name__)


@dataclass
class ProbeSettings:
    """Per-run timing and labelling parameters."""

    deadline: float
    poll_interval: float
    concurrency: int = 1
    use_test_resources: bool = False
    expected_residual_resources: int = 2

    @property
    def concurrency_label(self) -> str:
        return str(self.concurrency)


@dataclass
class ProbeRun:
    """State and outcome of one probe run."""

    placement_name: str
    namespace: Optional[str] = None
    fleet: FleetSnapshot = field(default_factory=FleetSnapshot)
    outcomes: Dict[str, PollState] = field(default_factory=dict)
    apply_latency: Optional[float] = None
    update_latency: Optional[float] = None
    cancelled: bool = False
    namespace_created: bool = False
    resources_applied: bool = False
    resources_removed: bool = False
    placement_submitted: bool = False
    cleanup_errors: List[str] = field(default_factory=list)

    @property
    def fleet_label(self) -> str:
        return self.fleet.size_label


@dataclass
class RemovalStatus:
    """What the hub reports after the test resources were deleted."""

    selected_resources: int
    lagging_cluster: Optional[str] = None


class PhaseDriver:
    """Runs the polling phases of a probe against the hub.

    Args:
        hub: Hub client (see ``fleetprobe.hub.HubClient``).
        metrics: Shared aggregator.
        settings: Deadline, interval and labels for this run.
        stop_event: Shutdown signal shared by all runs.
        clock: Monotonic clock used for latencies and deadlines.
    """

    def __init__(
        self,
        hub: Any,
        metrics: MetricsAggregator,
        settings: ProbeSettings,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.hub = hub
        self.metrics = metrics
        self.settings = settings
        self.stop_event = stop_event or threading.Event()
        self.clock = clock

    def _poller(self) -> DeadlinePoller:
        return DeadlinePoller(
            interval=self.settings.poll_interval,
            deadline=self.settings.deadline,
            stop_event=self.stop_event,
            clock=self.clock,
        )

    # ── Apply ────────────────────────────────────────────────

    def wait_for_available(self, run: ProbeRun, cluster_names: Iterable[str] = ()) -> PollResult:
        """Wait until the placement's Available condition is current and true.

        On success the run's fleet snapshot is fixed and the apply latency
        (from the start of polling) is recorded.
        """
        name = run.placement_name
        logger.info("verify that the placement %s is available", name)

        def evaluate(obj: Dict[str, Any]) -> PollState:
            placement = Placement.from_dict(obj)
            cond = placement.condition(ConditionType.AVAILABLE.value)
            if is_condition_true(cond, placement.generation):
                return PollState.SUCCEEDED
            if is_condition_false(cond, placement.generation):
                logger.warning("the placement %s failed with condition %s, trying again", name, cond)
            else:
                logger.debug("the placement %s is pending", name)
            return PollState.WAITING

        result = self._poller().poll(
            lambda: self.hub.get_placement(name), evaluate, f"placement {name} availability"
        )
        run.outcomes["apply"] = result.state
        concurrency = self.settings.concurrency_label

        if result.succeeded:
            run.fleet = FleetSnapshot.from_placement(Placement.from_dict(result.value), seed=cluster_names)
            run.apply_latency = result.elapsed
            logger.info(
                "the placement %s succeeded in %.3fs on %d cluster(s)",
                name, result.elapsed, run.fleet.size,
            )
            self.metrics.record_apply(concurrency, run.fleet_label, RESULT_SUCCEEDED, result.elapsed)
        elif result.timed_out:
            logger.info("the placement %s timeout", name)
            self.metrics.record_apply(concurrency, run.fleet_label, RESULT_TIMEOUT)
        elif result.cancelled:
            run.cancelled = True
        return result

    # ── Mutate ───────────────────────────────────────────────

    def remove_test_resources(self, run: ProbeRun, manifests: List[Dict[str, Any]]) -> bool:
        """Delete the namespaced test resources selected by the placement.

        A failure is recorded as a failed update; the run goes straight
        to cleanup.
        """
        logger.info("remove the namespaced resources applied by the placement %s", run.placement_name)
        try:
            self.hub.delete_test_resources(run.namespace, manifests)
        except Exception as e:
            logger.error("failed to delete test resources in %s: %s", run.namespace, e)
            run.outcomes["update"] = PollState.FAILED
            self.metrics.record_update(self.settings.concurrency_label, run.fleet_label, RESULT_FAILED)
            return False
        run.resources_removed = True
        return True

    # ── Verify removal ───────────────────────────────────────

    def removal_status(self, run: ProbeRun) -> RemovalStatus:
        """Read the placement and the work object of every fleet cluster.

        Stops at the first cluster whose work object is unreadable or
        still lists more manifests than expected.
        """
        expected = self.settings.expected_residual_resources
        placement = Placement.from_dict(self.hub.get_placement(run.placement_name))
        status = RemovalStatus(selected_resources=len(placement.selected_resources))
        if status.selected_resources != expected:
            return status

        for cluster in run.fleet.sorted():
            try:
                work = self.hub.get_work(work_name(run.placement_name), member_namespace(cluster))
            except Exception as e:
                logger.debug("failed to read work of %s on cluster %s: %s", run.placement_name, cluster, e)
                status.lagging_cluster = cluster
                break
            manifests = (work.get("status") or {}).get("manifestConditions") or []
            if len(manifests) != expected:
                status.lagging_cluster = cluster
                break
        return status

    def wait_for_resources_removed(self, run: ProbeRun) -> PollResult:
        """Wait until the placement and every cluster's work reflect the removal.

        A timeout is recorded but does not stop the run.
        """
        name = run.placement_name
        expected = self.settings.expected_residual_resources
        logger.info("verify that the applied resources on placement %s are deleted", name)

        def evaluate(status: RemovalStatus) -> PollState:
            if status.selected_resources != expected:
                logger.debug(
                    "the placement %s has not picked up the deletion yet (%d selected)",
                    name, status.selected_resources,
                )
                return PollState.WAITING
            if status.lagging_cluster is not None:
                logger.debug(
                    "the resources of %s in cluster %s are not removed by the member agent yet",
                    name, status.lagging_cluster,
                )
                return PollState.WAITING
            return PollState.SUCCEEDED

        result = self._poller().poll(lambda: self.removal_status(run), evaluate, f"placement {name} removal")
        run.outcomes["delete"] = result.state
        concurrency = self.settings.concurrency_label

        if result.succeeded:
            logger.info("the applied resources on placement %s delete succeeded", name)
            self.metrics.record_delete(concurrency, run.fleet_label, RESULT_SUCCEEDED, result.elapsed)
        elif result.timed_out:
            logger.info("the placement %s delete timeout", name)
            self.metrics.record_delete(concurrency, run.fleet_label, RESULT_TIMEOUT)
        elif result.cancelled:
            run.cancelled = True
        return result

    # ── Verify update ────────────────────────────────────────

    def wait_for_update_complete(self, run: ProbeRun, mutation_started_at: float) -> PollResult:
        """Wait until Applied, WorkSynchronized and Scheduled are all current and true.

        The update latency is measured from ``mutation_started_at``, the
        moment the test resources started being deleted.
        """
        name = run.placement_name
        logger.info("verify placement %s is updated", name)

        def evaluate(obj: Dict[str, Any]) -> PollState:
            placement = Placement.from_dict(obj)
            if UPDATE_COMPLETE_RULE.holds(placement.conditions, placement.generation):
                return PollState.SUCCEEDED
            applied = placement.condition(ConditionType.APPLIED.value)
            if is_condition_false(applied, placement.generation):
                logger.warning("the placement %s failed to apply, trying again", name)
            else:
                logger.debug(
                    "the placement %s is pending on %s",
                    name, ", ".join(UPDATE_COMPLETE_RULE.pending(placement.conditions, placement.generation)),
                )
            return PollState.WAITING

        result = self._poller().poll(
            lambda: self.hub.get_placement(name), evaluate, f"placement {name} update"
        )
        run.outcomes["update"] = result.state
        concurrency = self.settings.concurrency_label

        if result.succeeded:
            latency = self.clock() - mutation_started_at
            run.update_latency = latency
            logger.info("the placement %s update succeeded in %.3fs", name, latency)
            self.metrics.record_update(concurrency, run.fleet_label, RESULT_SUCCEEDED, latency)
        elif result.timed_out:
            logger.info("the placement %s update timeout", name)
            self.metrics.record_update(concurrency, run.fleet_label, RESULT_TIMEOUT)
        elif result.cancelled:
            run.cancelled = True
        return result
