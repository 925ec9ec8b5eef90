"""JSON file storage.

All engine state is stored in flat JSON files under a configurable base
directory. Reads and writes go through plain helper methods that load and
dump JSON via the pydantic models.

Directory layout:

    {base}/
      sessions/
        {slug}/
          narrative_state.json   ← current NarrativeState
          impact_state.json      ← aggregate ImpactState
          decisions.json         ← list of PlayerDecisionRecordWithImpact, oldest first
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any

from .models import ImpactState, NarrativeState, PlayerDecisionRecordWithImpact

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 50


class Storage:
    def __init__(self, base_path: Path, max_records: int = DEFAULT_MAX_RECORDS) -> None:
        self._base = base_path
        self._sessions = base_path / "sessions"
        self._sessions.mkdir(parents=True, exist_ok=True)
        self.max_records = max_records

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _session_dir(self, slug: str) -> Path:
        path = self._sessions / slug
        path.mkdir(exist_ok=True)
        return path

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def list_sessions(self) -> list[str]:
        return sorted(p.name for p in self._sessions.iterdir() if p.is_dir())

    def reset_session(self, slug: str) -> bool:
        """Delete all state for a session. Returns False if it did not exist."""
        path = self._sessions / slug
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        return True

    # ------------------------------------------------------------------
    # Narrative state
    # ------------------------------------------------------------------

    def get_narrative_state(self, slug: str) -> NarrativeState:
        path = self._sessions / slug / "narrative_state.json"
        if not path.exists():
            return NarrativeState()
        return NarrativeState.model_validate_json(path.read_text())

    def save_narrative_state(self, slug: str, state: NarrativeState) -> None:
        path = self._session_dir(slug) / "narrative_state.json"
        path.write_text(state.model_dump_json(indent=2))

    # ------------------------------------------------------------------
    # Impact state
    # ------------------------------------------------------------------

    def get_impact_state(self, slug: str) -> ImpactState:
        path = self._sessions / slug / "impact_state.json"
        if not path.exists():
            return ImpactState()
        return ImpactState.model_validate_json(path.read_text())

    def save_impact_state(self, slug: str, state: ImpactState) -> None:
        path = self._session_dir(slug) / "impact_state.json"
        path.write_text(state.model_dump_json(indent=2))

    # ------------------------------------------------------------------
    # Decision records (bounded, oldest evicted first)
    # ------------------------------------------------------------------

    def get_decision_records(self, slug: str) -> list[PlayerDecisionRecordWithImpact]:
        path = self._sessions / slug / "decisions.json"
        if not path.exists():
            return []
        return [PlayerDecisionRecordWithImpact.model_validate(r) for r in self._read_json(path)]

    def save_decision_records(
        self, slug: str, records: list[PlayerDecisionRecordWithImpact]
    ) -> None:
        if len(records) > self.max_records:
            logger.info(
                "session %s: evicting %d old decision record(s)",
                slug, len(records) - self.max_records,
            )
            records = records[-self.max_records:]
        self._write_json(
            self._session_dir(slug) / "decisions.json",
            [r.model_dump(mode="json") for r in records],
        )

    def save_decision_record(self, slug: str, record: PlayerDecisionRecordWithImpact) -> None:
        """Upsert a record by decision id."""
        records = self.get_decision_records(slug)
        for i, r in enumerate(records):
            if r.decision_id == record.decision_id:
                records[i] = record
                break
        else:
            records.append(record)
        self.save_decision_records(slug, records)
