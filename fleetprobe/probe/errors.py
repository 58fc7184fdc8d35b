"""Exceptions raised by the placement prober."""

from typing import List, Optional


class FleetProbeError(Exception):
    """Base class for fleetprobe errors."""


class ProbeSetupError(FleetProbeError):
    """A probe run could not create its test resources or placement object.

    Raised by ``run_probe`` after best-effort cleanup of whatever was
    partially created.
    """

    def __init__(self, message: str, placement_name: Optional[str] = None):
        super().__init__(message)
        self.placement_name = placement_name


class ConfigError(FleetProbeError):
    """A manifest bundle or load-test config could not be loaded."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []
