"""Pytest configuration and fixtures."""

import threading
from typing import Any, Callable, Dict, List, Optional

import pytest
from kubernetes.client.rest import ApiException

from fleetprobe.config.loader import ManifestBundle
from fleetprobe.metrics.aggregator import MetricsAggregator
from fleetprobe.probe.conditions import ConditionType
from fleetprobe.probe.phases import ProbeSettings


def make_status(
    generation: int = 1,
    conditions: Optional[Dict[str, Any]] = None,
    clusters: Optional[List[str]] = None,
    selected: int = 0,
) -> Dict[str, Any]:
    """Build a placement metadata/status pair.

    ``conditions`` maps a condition type to a status string, or to a
    (status, observedGeneration) tuple for stale conditions.
    """
    conds = []
    for cond_type, value in (conditions or {}).items():
        if isinstance(value, tuple):
            status, observed = value
        else:
            status, observed = value, generation
        conds.append({
            "type": cond_type,
            "status": status,
            "observedGeneration": observed,
            "reason": "Test",
        })
    return {
        "generation": generation,
        "status": {
            "conditions": conds,
            "placementStatuses": [{"clusterName": c} for c in clusters or []],
            "selectedResources": [{"kind": "Test", "name": f"r{i}"} for i in range(selected)],
        },
    }


def available_status(clusters: List[str], generation: int = 1, selected: int = 4) -> Dict[str, Any]:
    return make_status(
        generation=generation,
        conditions={ConditionType.AVAILABLE.value: "True"},
        clusters=clusters,
        selected=selected,
    )


def updated_status(clusters: List[str], generation: int = 2, selected: int = 2) -> Dict[str, Any]:
    return make_status(
        generation=generation,
        conditions={
            ConditionType.AVAILABLE.value: "True",
            ConditionType.APPLIED.value: "True",
            ConditionType.WORK_SYNCHRONIZED.value: "True",
            ConditionType.SCHEDULED.value: "True",
        },
        clusters=clusters,
        selected=selected,
    )


class FakeHub:
    """In-memory hub with scripted placement status.

    ``status_fn(hub, name)`` returns the ``make_status`` dict for every
    ``get_placement`` call; ``hub.get_count`` counts those calls and
    ``hub.gets_at_removal`` is the count when test resources were deleted.
    """

    def __init__(self, status_fn: Optional[Callable[["FakeHub", str], Dict[str, Any]]] = None):
        self.status_fn = status_fn or (lambda hub, name: make_status())
        self._lock = threading.Lock()
        self.placements: Dict[str, Dict[str, Any]] = {}
        self.created_placements: List[str] = []
        self.deleted_placements: List[str] = []
        self.namespaces: set = set()
        self.deleted_namespaces: List[str] = []
        self.resources: Dict[str, List[Dict[str, Any]]] = {}
        self.works: Dict[tuple, Any] = {}
        self.get_count = 0
        self.gets_at_removal: Optional[int] = None

        self.fail_gets = 0
        self.fail_create_placement: Optional[Exception] = None
        self.fail_create_namespace: Optional[Exception] = None
        self.fail_apply_resources: Optional[Exception] = None
        self.fail_delete_resources: Optional[Exception] = None
        self.fail_delete_placement: Optional[Exception] = None

    # placements

    def create_placement(self, body):
        if self.fail_create_placement:
            raise self.fail_create_placement
        name = body["metadata"]["name"]
        with self._lock:
            self.placements[name] = body
            self.created_placements.append(name)
        return body

    def get_placement(self, name):
        with self._lock:
            if name not in self.placements:
                raise ApiException(status=404, reason="Not Found")
            self.get_count += 1
            if self.fail_gets > 0:
                self.fail_gets -= 1
                raise ApiException(status=500, reason="Internal Server Error")
        scripted = self.status_fn(self, name)
        return {
            "metadata": {"name": name, "generation": scripted["generation"]},
            "spec": self.placements[name].get("spec", {}),
            "status": scripted["status"],
        }

    def delete_placement(self, name):
        if self.fail_delete_placement:
            raise self.fail_delete_placement
        with self._lock:
            self.deleted_placements.append(name)
            return self.placements.pop(name, None) is not None

    # works

    def get_work(self, name, namespace):
        work = self.works.get((name, namespace))
        if callable(work):
            work = work(self)
        if work is None:
            raise ApiException(status=404, reason="Not Found")
        return work

    def set_work(self, placement_name: str, cluster: str, manifests: int):
        self.works[(f"{placement_name}-work", f"fleet-member-{cluster}")] = {
            "status": {"manifestConditions": [{"ordinal": i} for i in range(manifests)]}
        }

    # namespaces and test resources

    def create_namespace(self, name):
        if self.fail_create_namespace:
            raise self.fail_create_namespace
        self.namespaces.add(name)

    def delete_namespace(self, name):
        self.deleted_namespaces.append(name)
        self.resources.pop(name, None)
        if name in self.namespaces:
            self.namespaces.discard(name)
            return True
        return False

    def apply_test_resources(self, namespace, manifests):
        if self.fail_apply_resources:
            raise self.fail_apply_resources
        self.resources[namespace] = list(manifests)

    def delete_test_resources(self, namespace, manifests):
        if self.fail_delete_resources:
            raise self.fail_delete_resources
        with self._lock:
            self.gets_at_removal = self.get_count
        self.resources.pop(namespace, None)

    @property
    def only_placement(self) -> str:
        assert len(self.created_placements) == 1
        return self.created_placements[0]


@pytest.fixture
def placement_template():
    """A PickAll placement that selects a CRD."""
    return {
        "apiVersion": "placement.kubernetes-fleet.io/v1beta1",
        "kind": "ClusterResourcePlacement",
        "metadata": {"name": "load-test-template"},
        "spec": {
            "resourceSelectors": [
                {
                    "group": "apiextensions.k8s.io",
                    "version": "v1",
                    "kind": "CustomResourceDefinition",
                    "name": "testresources.test.kubernetes-fleet.io",
                }
            ],
            "policy": {"placementType": "PickAll"},
        },
    }


@pytest.fixture
def aux_resources():
    return [
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "test-configmap"},
            "data": {"fielda": "one"},
        },
        {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": "test-secret"},
            "stringData": {"password": "secret"},
        },
    ]


@pytest.fixture
def bundle(placement_template, aux_resources):
    return ManifestBundle(path="/tmp/bundle", placement=placement_template, resources=aux_resources)


@pytest.fixture
def plain_bundle(placement_template):
    return ManifestBundle(path="/tmp/bundle", placement=placement_template, resources=[])


@pytest.fixture
def metrics():
    return MetricsAggregator()


@pytest.fixture
def fast_settings():
    """Short interval and a generous deadline."""
    return ProbeSettings(deadline=2.0, poll_interval=0.01, concurrency=1)


@pytest.fixture
def bundle_dir(tmp_path):
    """A bundle directory with a placement template and two test resources."""
    (tmp_path / "placement.yaml").write_text(
        """
apiVersion: placement.kubernetes-fleet.io/v1beta1
kind: ClusterResourcePlacement
metadata:
  name: load-test-template
spec:
  resourceSelectors:
    - group: apiextensions.k8s.io
      version: v1
      kind: CustomResourceDefinition
      name: testresources.test.kubernetes-fleet.io
  policy:
    placementType: PickAll
"""
    )
    (tmp_path / "resources.yaml").write_text(
        """
apiVersion: v1
kind: ConfigMap
metadata:
  name: test-configmap
data:
  fielda: one
---
apiVersion: v1
kind: Secret
metadata:
  name: test-secret
stringData:
  password: secret
"""
    )
    return tmp_path
