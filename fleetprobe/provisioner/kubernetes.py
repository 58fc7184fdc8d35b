"""Auxiliary test resources for placement probes.

Creates and deletes the namespaced resources of a manifest bundle inside
a probe run's test namespace. Each manifest is dispatched on its
``kind`` to the matching typed Kubernetes API.
"""

import logging
from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException

from fleetprobe.probe.placement import LOAD_LABEL_KEY

logger = logging.getLogger(__name__)


class TestResourceProvisioner:
    """Applies and removes test manifests in a namespace."""

    __test__ = False  # not a pytest test class

    def __init__(self, api_client: Optional[client.ApiClient] = None):
        """Initialize the provisioner.

        Args:
            api_client: Configured API client. Config must already be
                loaded when omitted.
        """
        self.core_api = client.CoreV1Api(api_client)
        self.apps_api = client.AppsV1Api(api_client)
        self.rbac_api = client.RbacAuthorizationV1Api(api_client)

    def prepare(self, namespace: str, manifest: Dict[str, Any]) -> Dict[str, Any]:
        """Copy a manifest, pinning it to the namespace and labelling it."""
        body = deepcopy(manifest)
        metadata = body.setdefault("metadata", {})
        metadata["namespace"] = namespace
        metadata.pop("resourceVersion", None)
        metadata.pop("uid", None)
        labels = metadata.setdefault("labels", {})
        labels[LOAD_LABEL_KEY] = "true"
        labels["managed-by"] = "fleetprobe"
        return body

    def apply(self, namespace: str, manifests: List[Dict[str, Any]]) -> List[Dict[str, str]]:
        """Create every manifest in the namespace.

        Resources that already exist are left as they are.

        Returns:
            List of {kind, name, namespace} for the applied resources.

        Raises:
            ValueError: If a manifest has an unsupported kind.
            ApiException: If the API server rejects a create.
        """
        applied = []
        for manifest in manifests:
            body = self.prepare(namespace, manifest)
            kind = body.get("kind", "")
            name = body["metadata"].get("name", "")
            create, _ = self._lookup(kind)
            try:
                create(namespace, body)
                logger.debug("created %s %s/%s", kind, namespace, name)
            except ApiException as e:
                if e.status != 409:
                    raise
                logger.info("%s %s/%s already exists", kind, namespace, name)
            applied.append({"kind": kind, "name": name, "namespace": namespace})
        return applied

    def delete(self, namespace: str, manifests: List[Dict[str, Any]]) -> List[Dict[str, str]]:
        """Delete every manifest from the namespace, in reverse order.

        Resources that are already gone are skipped.
        """
        deleted = []
        for manifest in reversed(manifests):
            kind = manifest.get("kind", "")
            name = manifest.get("metadata", {}).get("name", "")
            _, remove = self._lookup(kind)
            try:
                remove(name, namespace)
                logger.debug("deleted %s %s/%s", kind, namespace, name)
            except ApiException as e:
                if e.status != 404:
                    raise
            deleted.append({"kind": kind, "name": name, "namespace": namespace})
        return deleted

    def _lookup(self, kind: str) -> Tuple[Callable, Callable]:
        operations = self._operations()
        if kind not in operations:
            raise ValueError(
                f"Unsupported test resource kind: {kind} "
                f"(supported: {', '.join(sorted(operations))})"
            )
        return operations[kind]

    def _operations(self) -> Dict[str, Tuple[Callable, Callable]]:
        return {
            "ConfigMap": (
                self.core_api.create_namespaced_config_map,
                self.core_api.delete_namespaced_config_map,
            ),
            "Secret": (
                self.core_api.create_namespaced_secret,
                self.core_api.delete_namespaced_secret,
            ),
            "Service": (
                self.core_api.create_namespaced_service,
                self.core_api.delete_namespaced_service,
            ),
            "ServiceAccount": (
                self.core_api.create_namespaced_service_account,
                self.core_api.delete_namespaced_service_account,
            ),
            "Deployment": (
                self.apps_api.create_namespaced_deployment,
                self.apps_api.delete_namespaced_deployment,
            ),
            "Role": (
                self.rbac_api.create_namespaced_role,
                self.rbac_api.delete_namespaced_role,
            ),
            "RoleBinding": (
                self.rbac_api.create_namespaced_role_binding,
                self.rbac_api.delete_namespaced_role_binding,
            ),
        }


SUPPORTED_KINDS = (
    "ConfigMap",
    "Secret",
    "Service",
    "ServiceAccount",
    "Deployment",
    "Role",
    "RoleBinding",
)
