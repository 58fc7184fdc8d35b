"""Tests for the hub client."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException

from fleetprobe.hub.client import HubClient, load_kube_config


@pytest.fixture
def hub():
    client = HubClient(api_client=MagicMock())
    client.custom_api = MagicMock()
    client.core_api = MagicMock()
    client.resources = MagicMock()
    return client


class TestPlacementCalls:
    """Tests for placement and work access."""

    def test_create_placement(self, hub):
        body = {"metadata": {"name": "p"}}
        hub.create_placement(body)
        hub.custom_api.create_cluster_custom_object.assert_called_once_with(
            group="placement.kubernetes-fleet.io",
            version="v1beta1",
            plural="clusterresourceplacements",
            body=body,
        )

    def test_get_work(self, hub):
        hub.custom_api.get_namespaced_custom_object.return_value = {"status": {}}
        assert hub.get_work("p-work", "fleet-member-m1") == {"status": {}}
        kwargs = hub.custom_api.get_namespaced_custom_object.call_args.kwargs
        assert kwargs["plural"] == "works"
        assert kwargs["namespace"] == "fleet-member-m1"

    def test_delete_placement(self, hub):
        assert hub.delete_placement("p") is True

    def test_delete_missing_placement(self, hub):
        hub.custom_api.delete_cluster_custom_object.side_effect = ApiException(status=404)
        assert hub.delete_placement("p") is False

    def test_delete_placement_error(self, hub):
        hub.custom_api.delete_cluster_custom_object.side_effect = ApiException(status=500)
        with pytest.raises(ApiException):
            hub.delete_placement("p")

    def test_get_placement_errors_propagate(self, hub):
        hub.custom_api.get_cluster_custom_object.side_effect = ApiException(status=503)
        with pytest.raises(ApiException):
            hub.get_placement("p")


class TestNamespaceCalls:
    """Tests for test namespace handling."""

    def test_create_namespace_labels(self, hub):
        hub.create_namespace("load-test-ns-abc")
        ns = hub.core_api.create_namespace.call_args[0][0]
        assert ns.metadata.name == "load-test-ns-abc"
        assert ns.metadata.labels == {"managed-by": "fleetprobe"}

    def test_existing_namespace_is_tolerated(self, hub):
        hub.core_api.create_namespace.side_effect = ApiException(status=409)
        hub.create_namespace("ns")

    def test_create_namespace_error(self, hub):
        hub.core_api.create_namespace.side_effect = ApiException(status=403)
        with pytest.raises(ApiException):
            hub.create_namespace("ns")

    def test_delete_missing_namespace(self, hub):
        hub.core_api.delete_namespace.side_effect = ApiException(status=404)
        assert hub.delete_namespace("ns") is False

    def test_test_resources_delegate(self, hub, aux_resources):
        hub.apply_test_resources("ns", aux_resources)
        hub.delete_test_resources("ns", aux_resources)
        hub.resources.apply.assert_called_once_with("ns", aux_resources)
        hub.resources.delete.assert_called_once_with("ns", aux_resources)


class TestLoadKubeConfig:
    """Tests for cluster config loading."""

    @patch("fleetprobe.hub.client.config")
    def test_explicit_kubeconfig(self, mock_config):
        load_kube_config("/tmp/kubeconfig", "hub")
        mock_config.load_kube_config.assert_called_once_with(config_file="/tmp/kubeconfig", context="hub")
        mock_config.load_incluster_config.assert_not_called()

    @patch("fleetprobe.hub.client.config")
    def test_incluster_first(self, mock_config):
        mock_config.ConfigException = ConfigException
        load_kube_config()
        mock_config.load_incluster_config.assert_called_once()
        mock_config.load_kube_config.assert_not_called()

    @patch("fleetprobe.hub.client.config")
    def test_falls_back_to_kubeconfig(self, mock_config):
        mock_config.ConfigException = ConfigException
        mock_config.load_incluster_config.side_effect = ConfigException("not in cluster")
        load_kube_config()
        mock_config.load_kube_config.assert_called_once_with()
