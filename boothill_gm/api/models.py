"""Pydantic request bodies for API endpoints."""

from typing import Any

from pydantic import BaseModel, field_validator

from ..models import Character, GameState, NarrativeState


class _StateBody(BaseModel):
    state: NarrativeState | None = None
    character: Character | None = None

    @field_validator("state", mode="before")
    @classmethod
    def _accept_legacy_state(cls, value: Any) -> Any:
        # older hosts send context/currentScene/history
        if isinstance(value, dict):
            return NarrativeState.from_legacy(value)
        return value


class DetectBody(_StateBody):
    game_state: GameState | None = None
    now: int | None = None


class GenerateBody(_StateBody):
    pass


class SelectBody(BaseModel):
    decision_id: str
    option_id: str
    narrative: str = ""


class EvolveBody(BaseModel):
    now: int | None = None
