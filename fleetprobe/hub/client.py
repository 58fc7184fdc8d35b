"""Hub cluster API access for placement probes.

Thin wrapper around the Kubernetes ``CustomObjectsApi`` for the fleet
placement and work resources, plus the core API for test namespaces.
"""

import logging
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from fleetprobe.probe.placement import (
    PLACEMENT_GROUP,
    PLACEMENT_PLURAL,
    PLACEMENT_VERSION,
    WORK_PLURAL,
)
from fleetprobe.provisioner.kubernetes import TestResourceProvisioner

logger = logging.getLogger(__name__)


def load_kube_config(kubeconfig: Optional[str] = None, context: Optional[str] = None) -> None:
    """Load in-cluster config, falling back to a kubeconfig file."""
    if kubeconfig or context:
        config.load_kube_config(config_file=kubeconfig, context=context)
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


class HubClient:
    """Reads and writes the hub objects a probe run needs.

    Errors from the API server propagate as ``ApiException``; callers
    decide which ones are transient.
    """

    def __init__(
        self,
        api_client: Optional[client.ApiClient] = None,
        kubeconfig: Optional[str] = None,
        context: Optional[str] = None,
    ):
        if api_client is None:
            load_kube_config(kubeconfig, context)
            api_client = client.ApiClient()

        self.custom_api = client.CustomObjectsApi(api_client)
        self.core_api = client.CoreV1Api(api_client)
        self.resources = TestResourceProvisioner(api_client)

    # ── Placement ────────────────────────────────────────────

    def create_placement(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return self.custom_api.create_cluster_custom_object(
            group=PLACEMENT_GROUP,
            version=PLACEMENT_VERSION,
            plural=PLACEMENT_PLURAL,
            body=body,
        )

    def get_placement(self, name: str) -> Dict[str, Any]:
        return self.custom_api.get_cluster_custom_object(
            group=PLACEMENT_GROUP,
            version=PLACEMENT_VERSION,
            plural=PLACEMENT_PLURAL,
            name=name,
        )

    def delete_placement(self, name: str) -> bool:
        """Delete a placement. Returns False when it was already gone."""
        try:
            self.custom_api.delete_cluster_custom_object(
                group=PLACEMENT_GROUP,
                version=PLACEMENT_VERSION,
                plural=PLACEMENT_PLURAL,
                name=name,
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        return True

    # ── Work ─────────────────────────────────────────────────

    def get_work(self, name: str, namespace: str) -> Dict[str, Any]:
        return self.custom_api.get_namespaced_custom_object(
            group=PLACEMENT_GROUP,
            version=PLACEMENT_VERSION,
            namespace=namespace,
            plural=WORK_PLURAL,
            name=name,
        )

    # ── Test namespace and resources ─────────────────────────

    def create_namespace(self, name: str) -> None:
        ns = client.V1Namespace(
            metadata=client.V1ObjectMeta(
                name=name,
                labels={"managed-by": "fleetprobe"},
            )
        )
        try:
            self.core_api.create_namespace(ns)
        except ApiException as e:
            if e.status != 409:
                raise
            logger.info("namespace %s already exists", name)

    def delete_namespace(self, name: str) -> bool:
        """Delete a namespace and everything in it. False when already gone."""
        try:
            self.core_api.delete_namespace(
                name=name,
                body=client.V1DeleteOptions(propagation_policy="Foreground"),
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        return True

    def apply_test_resources(self, namespace: str, manifests: List[Dict[str, Any]]) -> None:
        self.resources.apply(namespace, manifests)

    def delete_test_resources(self, namespace: str, manifests: List[Dict[str, Any]]) -> None:
        self.resources.delete(namespace, manifests)
