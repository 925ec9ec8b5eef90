"""Session endpoints: detection, generation, selection, evolution, context."""

import logging

from fastapi import APIRouter, HTTPException, Request

from ..context.builder import ContextOptions, build_narrative_context
from ..decisions.service import DecisionService
from ..impact_state import (
    evolve_impacts_over_time,
    process_decision_impacts,
    reconcile_conflicting_impacts,
)
from ..impacts import (
    OptionNotFoundError,
    attach_impacts,
    create_decision_impacts,
    create_decision_record,
)
from ..models import CompressionLevel, NarrativeState, now_ms
from ..storage import Storage
from .models import DetectBody, EvolveBody, GenerateBody, SelectBody

logger = logging.getLogger(__name__)

router = APIRouter()


def _storage(request: Request) -> Storage:
    return request.app.state.storage


def _service(request: Request, slug: str) -> DecisionService:
    services: dict[str, DecisionService] = request.app.state.services
    service = services.get(slug)
    if service is None:
        service = DecisionService(request.app.state.config.decisions, llm=request.app.state.llm)
        services[slug] = service
    return service


def _load_state(storage: Storage, slug: str, state: NarrativeState | None) -> NarrativeState:
    """The given state (saved as the session's new state) or the stored one,
    with the session's impact state and decision records attached."""
    if state is None:
        state = storage.get_narrative_state(slug)
    else:
        storage.save_narrative_state(slug, state)
    ctx = state.narrative_context
    ctx.impact_state = storage.get_impact_state(slug)
    ctx.decision_history = list(storage.get_decision_records(slug))
    return state


@router.get("/health")
async def health():
    return {"ok": True}


@router.get("/sessions")
async def list_sessions(request: Request):
    return _storage(request).list_sessions()


@router.delete("/sessions/{slug}")
async def reset_session(slug: str, request: Request):
    """Drop a session's narrative, impact state and decision records."""
    request.app.state.services.pop(slug, None)
    if not _storage(request).reset_session(slug):
        raise HTTPException(404, "Session not found")
    return {"ok": True}


@router.get("/sessions/{slug}/impact-state")
async def get_impact_state(slug: str, request: Request):
    return _storage(request).get_impact_state(slug)


@router.post("/sessions/{slug}/detect")
async def detect_decision(slug: str, body: DetectBody, request: Request):
    """Should a decision be presented for this narrative moment?"""
    state = _load_state(_storage(request), slug, body.state)
    return _service(request, slug).detect_decision_point(
        state, body.character, body.game_state, body.now
    )


@router.post("/sessions/{slug}/decisions")
async def generate_decision(slug: str, body: GenerateBody, request: Request):
    """Generate (or fall back to) a decision and make it the current one."""
    storage = _storage(request)
    state = _load_state(storage, slug, body.state)
    service = _service(request, slug)
    decision = await service.generate_decision(state, body.character)
    if not service.is_current(decision):
        raise HTTPException(409, "A newer decision request superseded this one")
    service.last_decision_time = now_ms()

    stored = storage.get_narrative_state(slug)
    stored.current_decision = decision
    storage.save_narrative_state(slug, stored)
    return decision


@router.post("/sessions/{slug}/decisions/select")
async def select_option(slug: str, body: SelectBody, request: Request):
    """Resolve the current decision and apply its impacts."""
    storage = _storage(request)
    state = storage.get_narrative_state(slug)
    decision = state.current_decision
    if decision is None or decision.id != body.decision_id:
        raise HTTPException(404, "Decision not found")

    try:
        record = create_decision_record(decision, body.option_id, body.narrative)
        impacts = create_decision_impacts(decision, body.option_id)
    except OptionNotFoundError as e:
        raise HTTPException(400, str(e)) from e

    record = attach_impacts(record, reconcile_conflicting_impacts(impacts))
    impact_state = process_decision_impacts(storage.get_impact_state(slug), record)
    storage.save_impact_state(slug, impact_state)
    storage.save_decision_record(slug, record)

    _service(request, slug).record_decision(decision.id, body.option_id, body.narrative)
    state.current_decision = None
    if body.narrative:
        state.narrative_history.append(body.narrative)
    storage.save_narrative_state(slug, state)
    return {"record": record, "impact_state": impact_state}


@router.post("/sessions/{slug}/evolve")
async def evolve_impacts(slug: str, body: EvolveBody, request: Request):
    """Decay expired time-bounded impacts."""
    storage = _storage(request)
    records = storage.get_decision_records(slug)
    current = storage.get_impact_state(slug)
    evolved = evolve_impacts_over_time(current, records, body.now)
    if evolved is not current:
        storage.save_impact_state(slug, evolved)
        storage.save_decision_records(slug, records)
    return evolved


@router.get("/sessions/{slug}/context")
async def get_context(
    slug: str,
    request: Request,
    max_tokens: int = 2000,
    compression_level: CompressionLevel = "none",
):
    """The context block the next decision prompt would carry."""
    state = _load_state(_storage(request), slug, None)
    options = ContextOptions(max_tokens=max_tokens, compression_level=compression_level)
    return build_narrative_context(state, options)
