"""Placement lifecycle probing for fleetprobe.

The orchestrator lives in ``fleetprobe.probe.runner`` and the phase
drivers in ``fleetprobe.probe.phases``.
"""

from fleetprobe.probe.conditions import ConditionRule, is_condition_false, is_condition_true
from fleetprobe.probe.errors import ConfigError, FleetProbeError, ProbeSetupError
from fleetprobe.probe.poller import DeadlinePoller, PollResult, PollState

__all__ = [
    "ConditionRule",
    "ConfigError",
    "DeadlinePoller",
    "FleetProbeError",
    "PollResult",
    "PollState",
    "ProbeSetupError",
    "is_condition_false",
    "is_condition_true",
]
