"""fleetprobe - load testing for multi-cluster resource placement."""

__version__ = "0.1.0"
