"""Tests for status condition evaluation."""

import pytest

from fleetprobe.probe.conditions import (
    UPDATE_COMPLETE_RULE,
    Condition,
    ConditionRule,
    ConditionStatus,
    ConditionType,
    find_condition,
    is_condition_false,
    is_condition_true,
)


class TestConditionFromDict:
    """Tests for parsing raw conditions."""

    def test_parses_fields(self):
        cond = Condition.from_dict({
            "type": "ClusterResourcePlacementAvailable",
            "status": "True",
            "observedGeneration": 3,
            "reason": "ResourcesAvailable",
        })
        assert cond.type == ConditionType.AVAILABLE.value
        assert cond.status == "True"
        assert cond.observed_generation == 3
        assert cond.reason == "ResourcesAvailable"
        assert cond.message == ""

    def test_missing_fields_default_to_unknown(self):
        cond = Condition.from_dict({"type": "X"})
        assert cond.status == ConditionStatus.UNKNOWN.value
        assert cond.observed_generation == 0


class TestConditionEvaluator:
    """Tests for is_condition_true / is_condition_false."""

    def test_current_true(self):
        cond = Condition("A", "True", observed_generation=2)
        assert is_condition_true(cond, 2) is True
        assert is_condition_false(cond, 2) is False

    def test_current_false(self):
        cond = Condition("A", "False", observed_generation=2)
        assert is_condition_false(cond, 2) is True
        assert is_condition_true(cond, 2) is False

    @pytest.mark.parametrize("status", ["True", "False", "Unknown"])
    @pytest.mark.parametrize("observed,current", [(1, 2), (3, 2), (0, 1)])
    def test_stale_is_neither(self, status, observed, current):
        """Stale conditions are pending, whatever their status."""
        cond = Condition("A", status, observed_generation=observed)
        assert is_condition_true(cond, current) is False
        assert is_condition_false(cond, current) is False

    def test_unknown_is_neither(self):
        cond = Condition("A", "Unknown", observed_generation=1)
        assert is_condition_true(cond, 1) is False
        assert is_condition_false(cond, 1) is False

    def test_none_is_neither(self):
        assert is_condition_true(None, 1) is False
        assert is_condition_false(None, 1) is False

    def test_find_condition(self):
        conds = [Condition("A", "True", 1), Condition("B", "False", 1)]
        assert find_condition(conds, "B").status == "False"
        assert find_condition(conds, "C") is None


class TestConditionRule:
    """Tests for multi-condition conjunctions."""

    def _conds(self, generation=2, **statuses):
        return [Condition(t, s, generation) for t, s in statuses.items()]

    def test_all_true_holds(self):
        rule = ConditionRule([("A", "True"), ("B", "True")])
        assert rule.holds(self._conds(A="True", B="True"), 2) is True
        assert rule.pending(self._conds(A="True", B="True"), 2) == []

    def test_one_missing_fails_closed(self):
        rule = ConditionRule([("A", "True"), ("B", "True")])
        assert rule.holds(self._conds(A="True"), 2) is False
        assert rule.pending(self._conds(A="True"), 2) == ["B"]

    def test_one_stale_fails_closed(self):
        rule = ConditionRule([("A", "True"), ("B", "True")])
        conds = [Condition("A", "True", 2), Condition("B", "True", 1)]
        assert rule.holds(conds, 2) is False

    def test_required_false(self):
        rule = ConditionRule([("A", ConditionStatus.FALSE)])
        assert rule.holds(self._conds(A="False"), 2) is True
        assert rule.holds(self._conds(A="True"), 2) is False

    def test_accepts_enums(self):
        rule = ConditionRule([(ConditionType.APPLIED, ConditionStatus.TRUE)])
        assert rule.requirements == [("ClusterResourcePlacementApplied", "True")]

    def test_empty_rule_rejected(self):
        with pytest.raises(ValueError):
            ConditionRule([])

    def test_update_rule_needs_three_conditions(self):
        conds = [
            Condition(ConditionType.APPLIED.value, "True", 2),
            Condition(ConditionType.WORK_SYNCHRONIZED.value, "True", 2),
        ]
        assert UPDATE_COMPLETE_RULE.holds(conds, 2) is False
        conds.append(Condition(ConditionType.SCHEDULED.value, "True", 2))
        assert UPDATE_COMPLETE_RULE.holds(conds, 2) is True
