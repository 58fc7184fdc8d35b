"""Bundle and load-test configuration for fleetprobe."""

from fleetprobe.config.loader import LoadTestConfig, ManifestBundle, load_bundle, load_config
from fleetprobe.config.validator import validate_bundle, validate_config

__all__ = [
    "LoadTestConfig",
    "ManifestBundle",
    "load_bundle",
    "load_config",
    "validate_bundle",
    "validate_config",
]
