"""Auxiliary test resource provisioning for fleetprobe."""

from fleetprobe.provisioner.kubernetes import SUPPORTED_KINDS, TestResourceProvisioner

__all__ = ["SUPPORTED_KINDS", "TestResourceProvisioner"]
