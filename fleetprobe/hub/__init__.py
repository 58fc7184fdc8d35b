"""Hub cluster access for fleetprobe."""

from fleetprobe.hub.client import HubClient, load_kube_config

__all__ = ["HubClient", "load_kube_config"]
