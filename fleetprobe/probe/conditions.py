"""Status condition evaluation for placement objects.

A condition only counts when it was computed against the object's
current generation. Anything else (missing, ``None``, stale) is pending
and must never be read as true or false.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple


class ConditionType(str, Enum):
    """ClusterResourcePlacement condition types watched by the prober."""

    AVAILABLE = "ClusterResourcePlacementAvailable"
    APPLIED = "ClusterResourcePlacementApplied"
    WORK_SYNCHRONIZED = "ClusterResourcePlacementWorkSynchronized"
    SCHEDULED = "ClusterResourcePlacementScheduled"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Condition:
    """A single status condition as reported by the hub API."""

    type: str
    status: str = ConditionStatus.UNKNOWN.value
    observed_generation: int = 0
    reason: str = ""
    message: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        """Build a condition from a raw ``status.conditions`` entry."""
        return cls(
            type=data.get("type", ""),
            status=data.get("status", ConditionStatus.UNKNOWN.value),
            observed_generation=int(data.get("observedGeneration") or 0),
            reason=data.get("reason") or "",
            message=data.get("message") or "",
        )

    def is_current(self, generation: int) -> bool:
        return self.observed_generation == generation


def find_condition(conditions: Iterable[Condition], condition_type: str) -> Optional[Condition]:
    """Return the condition of the given type, or None when absent."""
    for cond in conditions:
        if cond.type == condition_type:
            return cond
    return None


def is_condition_true(condition: Optional[Condition], generation: int) -> bool:
    """Check that a condition is present, current and ``True``."""
    return (
        condition is not None
        and condition.is_current(generation)
        and condition.status == ConditionStatus.TRUE.value
    )


def is_condition_false(condition: Optional[Condition], generation: int) -> bool:
    """Check that a condition is present, current and ``False``."""
    return (
        condition is not None
        and condition.is_current(generation)
        and condition.status == ConditionStatus.FALSE.value
    )


class ConditionRule:
    """A conjunction of (condition type, required status) pairs.

    Every entry must be current and match for the rule to hold. A
    pending or mismatching entry keeps the whole rule pending.

    Usage::

        rule = ConditionRule([
            (ConditionType.APPLIED, ConditionStatus.TRUE),
            (ConditionType.SCHEDULED, ConditionStatus.TRUE),
        ])
        rule.holds(placement.conditions, placement.generation)
    """

    def __init__(self, requirements: Sequence[Tuple[str, str]]):
        if not requirements:
            raise ValueError("A condition rule needs at least one requirement")
        self.requirements: List[Tuple[str, str]] = [
            (_value(cond_type), _value(status)) for cond_type, status in requirements
        ]

    def holds(self, conditions: Iterable[Condition], generation: int) -> bool:
        conditions = list(conditions)
        for cond_type, required in self.requirements:
            cond = find_condition(conditions, cond_type)
            if cond is None or not cond.is_current(generation) or cond.status != required:
                return False
        return True

    def pending(self, conditions: Iterable[Condition], generation: int) -> List[str]:
        """Return the condition types that do not yet satisfy the rule."""
        conditions = list(conditions)
        missing = []
        for cond_type, required in self.requirements:
            cond = find_condition(conditions, cond_type)
            if cond is None or not cond.is_current(generation) or cond.status != required:
                missing.append(cond_type)
        return missing


def _value(item: Any) -> str:
    return item.value if isinstance(item, Enum) else str(item)


UPDATE_COMPLETE_RULE = ConditionRule([
    (ConditionType.APPLIED, ConditionStatus.TRUE),
    (ConditionType.WORK_SYNCHRONIZED, ConditionStatus.TRUE),
    (ConditionType.SCHEDULED, ConditionStatus.TRUE),
])
