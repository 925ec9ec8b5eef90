"""Tests for per-session JSON storage."""

import json

from boothill_gm.models import (
    DecisionImpact,
    ImpactState,
    NarrativeState,
    PlayerDecisionRecordWithImpact,
    StoryPoint,
)
from boothill_gm.storage import Storage


def _record(decision_id: str, value: float = 3) -> PlayerDecisionRecordWithImpact:
    return PlayerDecisionRecordWithImpact(
        decision_id=decision_id,
        selected_option_id="o1",
        timestamp=1_750_000_000_000,
        impacts=[DecisionImpact(type="reputation", target="Dusty Gulch", severity="minor", value=value)],
    )


def test_empty_session_defaults(storage):
    """Unknown sessions read as empty state without creating anything."""
    assert storage.get_narrative_state("new") == NarrativeState()
    assert storage.get_impact_state("new") == ImpactState()
    assert storage.get_decision_records("new") == []
    assert storage.list_sessions() == []


def test_narrative_state_round_trip(storage):
    state = NarrativeState(
        current_story_point=StoryPoint(content="Dust settles."),
        narrative_history=["You rode in."],
    )
    storage.save_narrative_state("s1", state)
    assert storage.get_narrative_state("s1") == state
    assert storage.list_sessions() == ["s1"]


def test_impact_state_round_trip(storage):
    state = ImpactState(
        reputation_impacts={"Dusty Gulch": 4},
        relationship_impacts={"player": {"Sheriff Cole": -2}},
        last_updated=123,
    )
    storage.save_impact_state("s1", state)
    assert storage.get_impact_state("s1") == state


def test_decision_records_written_as_json(storage, tmp_path):
    record = _record("d1")
    storage.save_decision_records("s1", [record])
    raw = json.loads((tmp_path / "data" / "sessions" / "s1" / "decisions.json").read_text())
    assert raw[0]["decision_id"] == "d1"
    assert raw[0]["impacts"][0]["type"] == "reputation"
    assert storage.get_decision_records("s1") == [record]


def test_save_decision_record_upserts(storage):
    storage.save_decision_record("s1", _record("d1", value=1))
    storage.save_decision_record("s1", _record("d2"))
    storage.save_decision_record("s1", _record("d1", value=5))
    records = storage.get_decision_records("s1")
    assert [r.decision_id for r in records] == ["d1", "d2"]
    assert records[0].impacts[0].value == 5


def test_decision_records_bounded(tmp_path):
    """Oldest records are evicted first."""
    storage = Storage(tmp_path / "data", max_records=2)
    for i in range(3):
        storage.save_decision_record("s1", _record(f"d{i}"))
    assert [r.decision_id for r in storage.get_decision_records("s1")] == ["d1", "d2"]


def test_applied_decay_persists(storage):
    record = _record("d1")
    record.processed_for_impact = True
    record.applied_decay = {record.impacts[0].id: 0.75}
    storage.save_decision_records("s1", [record])
    [loaded] = storage.get_decision_records("s1")
    assert loaded.processed_for_impact is True
    assert loaded.applied_decay == {record.impacts[0].id: 0.75}


def test_reset_session(storage):
    storage.save_impact_state("s1", ImpactState(last_updated=5))
    assert storage.reset_session("s1") is True
    assert storage.get_impact_state("s1") == ImpactState()
    assert storage.list_sessions() == []


def test_reset_missing_session(storage):
    assert storage.reset_session("ghost") is False
