"""Placement object model, fleet snapshot and placement construction."""

import random
import string
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from fleetprobe.probe.conditions import Condition, find_condition

PLACEMENT_GROUP = "placement.kubernetes-fleet.io"
PLACEMENT_VERSION = "v1beta1"
PLACEMENT_KIND = "ClusterResourcePlacement"
PLACEMENT_PLURAL = "clusterresourceplacements"
WORK_PLURAL = "works"

PLACEMENT_PREFIX = "load-test-placement-"
NAMESPACE_PREFIX = "load-test-ns-"
MEMBER_NAMESPACE_FORMAT = "fleet-member-{}"
WORK_NAME_FORMAT = "{}-work"

LOAD_LABEL_KEY = "workload.azure.com/load"

_NAME_ALPHABET = string.ascii_lowercase + string.digits


def random_suffix(length: int = 10) -> str:
    """Random DNS-label-safe suffix for per-run object names."""
    return "".join(random.choice(_NAME_ALPHABET) for _ in range(length))


def member_namespace(cluster_name: str) -> str:
    """Hub namespace that holds the work objects of a member cluster."""
    return MEMBER_NAMESPACE_FORMAT.format(cluster_name)


def work_name(placement_name: str) -> str:
    return WORK_NAME_FORMAT.format(placement_name)


@dataclass
class Placement:
    """Parsed view of a ClusterResourcePlacement read from the hub."""

    name: str
    generation: int = 0
    conditions: List[Condition] = field(default_factory=list)
    selected_resources: List[Dict[str, Any]] = field(default_factory=list)
    cluster_names: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "Placement":
        metadata = obj.get("metadata") or {}
        status = obj.get("status") or {}
        clusters = []
        for placement_status in status.get("placementStatuses") or []:
            name = placement_status.get("clusterName")
            if name:
                clusters.append(name)
        return cls(
            name=metadata.get("name", ""),
            generation=int(metadata.get("generation") or 0),
            conditions=[Condition.from_dict(c) for c in status.get("conditions") or []],
            selected_resources=list(status.get("selectedResources") or []),
            cluster_names=clusters,
        )

    def condition(self, condition_type: str) -> Optional[Condition]:
        return find_condition(self.conditions, condition_type)


@dataclass(frozen=True)
class FleetSnapshot:
    """Member clusters targeted by a successful placement.

    Fixed once the placement first becomes available; later status
    changes do not alter it for the rest of the run.
    """

    clusters: FrozenSet[str] = frozenset()

    @classmethod
    def from_placement(cls, placement: Placement, seed: Iterable[str] = ()) -> "FleetSnapshot":
        return cls(clusters=frozenset(seed) | frozenset(placement.cluster_names))

    @property
    def size(self) -> int:
        return len(self.clusters)

    @property
    def size_label(self) -> str:
        return str(len(self.clusters))

    def sorted(self) -> List[str]:
        return sorted(self.clusters)


def build_placement(
    template: Dict[str, Any],
    name: str,
    namespace: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the placement object for one probe run from a template.

    Args:
        template: ClusterResourcePlacement document from the bundle.
        name: Generated placement name.
        namespace: Test namespace to add to the resource selectors, when
            the run uses auxiliary test resources.

    Returns:
        A new placement body; the template is not modified.
    """
    body = deepcopy(template)
    body.setdefault("apiVersion", f"{PLACEMENT_GROUP}/{PLACEMENT_VERSION}")
    body.setdefault("kind", PLACEMENT_KIND)

    metadata = body.setdefault("metadata", {})
    metadata.pop("resourceVersion", None)
    metadata.pop("uid", None)
    metadata["name"] = name
    metadata.setdefault("labels", {})["managed-by"] = "fleetprobe"
    body.pop("status", None)

    spec = body.setdefault("spec", {})
    selectors = spec.setdefault("resourceSelectors", [])
    if namespace:
        selectors.append({
            "group": "",
            "version": "v1",
            "kind": "Namespace",
            "name": namespace,
        })
    return body
