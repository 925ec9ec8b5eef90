"""Tests for the impact state reducer."""

import pytest

from boothill_gm.impact_state import (
    evolve_impacts_over_time,
    format_impacts_for_context,
    get_impact_value,
    new_impact_state,
    process_decision_impacts,
    reconcile_conflicting_impacts,
)
from boothill_gm.models import (
    DAY_MS,
    DecisionImpact,
    ImpactState,
    PlayerDecisionRecordWithImpact,
)

T0 = 1_750_000_000_000


def _impact(value: float, type: str = "reputation", target: str = "Dusty Gulch", **kw) -> DecisionImpact:
    kw.setdefault("severity", "moderate")
    return DecisionImpact(type=type, target=target, value=value, **kw)


def _record(*impacts: DecisionImpact, decision_id: str = "d1") -> PlayerDecisionRecordWithImpact:
    return PlayerDecisionRecordWithImpact(
        decision_id=decision_id,
        selected_option_id="o1",
        timestamp=T0,
        impacts=list(impacts),
    )


class TestProcess:
    def test_applies_and_marks_record(self) -> None:
        record = _record(_impact(5))
        state = process_decision_impacts(ImpactState(), record, now=T0)
        assert state.reputation_impacts == {"Dusty Gulch": 5}
        assert record.processed_for_impact is True
        assert record.last_impact_update == T0
        assert state.last_updated == T0

    def test_input_state_untouched(self) -> None:
        original = ImpactState(reputation_impacts={"Dusty Gulch": 1})
        process_decision_impacts(original, _record(_impact(5)), now=T0)
        assert original.reputation_impacts == {"Dusty Gulch": 1}

    def test_processing_twice_is_a_no_op(self) -> None:
        record = _record(_impact(5))
        once = process_decision_impacts(ImpactState(), record, now=T0)
        twice = process_decision_impacts(once, record, now=T0 + 1000)
        assert twice is once
        assert twice.model_dump() == once.model_dump()

    def test_impacts_accumulate_across_records(self) -> None:
        state = ImpactState(last_updated=T0 - 10)
        state = process_decision_impacts(state, _record(_impact(2)), now=T0)
        state = process_decision_impacts(state, _record(_impact(5), decision_id="d2"), now=T0 + 5)
        assert state.reputation_impacts["Dusty Gulch"] == 7
        assert state.last_updated == T0 + 5

    def test_last_updated_never_moves_backwards(self) -> None:
        state = ImpactState(last_updated=T0 + 100)
        state = process_decision_impacts(state, _record(_impact(2)), now=T0)
        assert state.last_updated == T0 + 100

    @pytest.mark.parametrize("type,value,expected", [
        ("reputation", 25, 10),
        ("reputation", -25, -10),
        ("world-state", 12, 10),
        ("story-arc", 150, 100),
        ("story-arc", -5, 0),
    ])
    def test_clamping(self, type, value, expected) -> None:
        state = process_decision_impacts(ImpactState(), _record(_impact(value, type=type)), now=T0)
        assert get_impact_value(state, type, "Dusty Gulch") == expected

    def test_relationship_default_subject(self) -> None:
        record = _record(_impact(4, type="relationship", target="Sheriff Cole"))
        state = process_decision_impacts(ImpactState(), record, now=T0)
        assert state.relationship_impacts == {"player": {"Sheriff Cole": 4}}

    def test_relationship_explicit_subject(self) -> None:
        record = _record(_impact(-3, type="relationship", target="Doc Holliday:Ike Clanton"))
        state = process_decision_impacts(ImpactState(), record, now=T0)
        assert state.relationship_impacts == {"Doc Holliday": {"Ike Clanton": -3}}
        assert get_impact_value(state, "relationship", "Doc Holliday:Ike Clanton") == -3

    def test_character_and_inventory_have_no_map(self) -> None:
        record = _record(_impact(3, type="character"), _impact(3, type="inventory"))
        state = process_decision_impacts(ImpactState(), record, now=T0)
        assert state.reputation_impacts == {}
        assert state.world_state_impacts == {}
        assert record.processed_for_impact is True

    def test_get_impact_value_absent(self) -> None:
        assert get_impact_value(ImpactState(), "reputation", "nowhere") == 0
        assert get_impact_value(ImpactState(), "inventory", "nowhere") == 0

    def test_new_impact_state_is_empty(self) -> None:
        state = new_impact_state()
        assert state.reputation_impacts == {}
        assert state.last_updated > 0


class TestEvolve:
    D = 7 * DAY_MS

    def _processed(self, value: float = 2, duration: int | None = D):
        record = _record(_impact(value, duration=duration))
        state = process_decision_impacts(ImpactState(), record, now=T0)
        return state, record

    def test_within_duration_is_unchanged(self) -> None:
        state, record = self._processed()
        assert evolve_impacts_over_time(state, [record], now=T0 + self.D // 2) is state

    def test_just_after_duration_decays(self) -> None:
        state, record = self._processed()
        evolved = evolve_impacts_over_time(state, [record], now=T0 + self.D + 1)
        value = evolved.reputation_impacts["Dusty Gulch"]
        assert abs(value) < 2
        assert value == pytest.approx(1.0, abs=1e-6)
        assert state.reputation_impacts["Dusty Gulch"] == 2
        assert evolved.last_updated == T0 + self.D + 1

    def test_fully_decayed_after_two_durations(self) -> None:
        state, record = self._processed(value=-4)
        evolved = evolve_impacts_over_time(state, [record], now=T0 + 3 * self.D)
        assert evolved.reputation_impacts["Dusty Gulch"] == pytest.approx(0)

    def test_no_double_decay(self) -> None:
        state, record = self._processed()
        later = T0 + self.D + self.D // 2
        once = evolve_impacts_over_time(state, [record], now=later)
        again = evolve_impacts_over_time(once, [record], now=later)
        assert again is once
        assert once.reputation_impacts["Dusty Gulch"] == pytest.approx(0.5)

    def test_progressive_decay(self) -> None:
        state, record = self._processed(value=4)
        state = evolve_impacts_over_time(state, [record], now=T0 + self.D + 1)
        state = evolve_impacts_over_time(state, [record], now=T0 + 2 * self.D)
        assert state.reputation_impacts["Dusty Gulch"] == pytest.approx(0)

    def test_decay_stops_at_zero(self) -> None:
        state, record = self._processed(value=5)
        state = state.model_copy(update={"reputation_impacts": {"Dusty Gulch": 1}})
        evolved = evolve_impacts_over_time(state, [record], now=T0 + 2 * self.D)
        assert evolved.reputation_impacts["Dusty Gulch"] == 0

    def test_permanent_impacts_never_decay(self) -> None:
        state, record = self._processed(duration=None)
        assert evolve_impacts_over_time(state, [record], now=T0 + 100 * self.D) is state

    def test_unprocessed_records_ignored(self) -> None:
        state = ImpactState(reputation_impacts={"Dusty Gulch": 2})
        record = _record(_impact(2, duration=self.D))
        assert evolve_impacts_over_time(state, [record], now=T0 + 10 * self.D) is state


class TestReconcile:
    def test_same_target_merges(self) -> None:
        a = _impact(5, related_decision_ids=["d1"])
        b = _impact(2, related_decision_ids=["d2"])
        [merged] = reconcile_conflicting_impacts([a, b])
        assert merged.value == pytest.approx(6)
        assert 5 < merged.value < 7
        assert merged.id not in (a.id, b.id)
        assert merged.related_decision_ids == ["d1", "d2"]

    def test_order_does_not_matter(self) -> None:
        [merged] = reconcile_conflicting_impacts([_impact(2), _impact(5)])
        assert merged.value == pytest.approx(6)

    def test_different_targets_pass_through(self) -> None:
        a = _impact(5)
        b = _impact(2, target="Tombstone")
        result = reconcile_conflicting_impacts([a, b])
        assert result == [a, b]

    def test_different_types_do_not_merge(self) -> None:
        result = reconcile_conflicting_impacts([_impact(5), _impact(2, type="world-state")])
        assert len(result) == 2

    def test_three_way_merge_is_not_bounded(self) -> None:
        [merged] = reconcile_conflicting_impacts([_impact(9), _impact(8), _impact(6)])
        assert merged.value == pytest.approx(14.5)

    def test_negative_story_arc_merge_keeps_sign(self) -> None:
        a = _impact(-5, type="story-arc", target="gold")
        b = _impact(-2, type="story-arc", target="gold")
        [merged] = reconcile_conflicting_impacts([a, b])
        assert merged.value == pytest.approx(-6)
        assert -7 < merged.value < -5

    def test_merge_at_bound_grows_past_it(self) -> None:
        [merged] = reconcile_conflicting_impacts([_impact(10), _impact(4)])
        assert merged.value == pytest.approx(12)
        assert merged.value > 10

    def test_merged_value_is_bounded_when_applied(self) -> None:
        [merged] = reconcile_conflicting_impacts([_impact(10), _impact(4)])
        state = process_decision_impacts(ImpactState(), _record(merged), now=T0)
        assert get_impact_value(state, "reputation", "Dusty Gulch") == 10

    def test_empty(self) -> None:
        assert reconcile_conflicting_impacts([]) == []


class TestFormat:
    def test_empty_state(self) -> None:
        assert format_impacts_for_context(ImpactState()) == ""

    def test_sections(self) -> None:
        state = ImpactState(
            reputation_impacts={"Dusty Gulch": 8, "Tombstone": -1},
            relationship_impacts={"player": {"Sheriff Cole": -5}},
            world_state_impacts={"Dusty Gulch": 3},
            story_arc_impacts={"gold-heist": 60},
        )
        text = format_impacts_for_context(state)
        assert "- Dusty Gulch: strong positive reputation (8)" in text
        assert "Tombstone" not in text.split("Relationships:")[0]
        assert "- player is somewhat hostile toward Sheriff Cole (-5)" in text
        assert "- Dusty Gulch has improved (3)" in text
        assert "- gold-heist: well underway (60%)" in text

    def test_max_entries(self) -> None:
        state = ImpactState(reputation_impacts={f"town{i}": 5 for i in range(8)})
        text = format_impacts_for_context(state, max_entries=3)
        assert text.count("reputation (5)") == 3
