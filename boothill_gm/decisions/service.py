"""DecisionService: owns one session's decision lifecycle.

    NoDecision -> Detecting -> Generating -> Presented -> Resolved
                           \\-> NoDecision

Detection is synchronous. Generation is the only step that awaits I/O and it
never raises: without API configuration, or on any client, prompt, parse or
unexpected failure, a templated fallback decision is returned instead. A generation
that finishes after a newer one has started is reported stale by
`is_current`, so hosts can discard it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque

from ..config import ApiConfig, DecisionServiceConfig
from ..context.builder import ContextOptions, build_narrative_context
from ..impacts import OptionNotFoundError
from ..llm import LLM, HttpLLM, LLMError, call_with_retries
from ..models import (
    Character,
    DecisionHistoryEntry,
    DetectionResult,
    GameState,
    NarrativeState,
    PlayerDecision,
    now_ms,
)
from ..prompts import PromptError
from ..quality import evaluate_decision_quality
from .detector import DecisionDetector
from .generator import (
    DecisionParseError,
    DecisionResponse,
    decision_from_response,
    generate_fallback_decision,
    parse_decision_response,
    render_decision_prompt,
)

logger = logging.getLogger(__name__)

DECISION_STAGE = "decision"


class DecisionService:
    """Detects, generates and records decisions for a single session.

    Args:
        config:          Thresholds, history capacity and optional API config.
        llm:             LLM callable; built from the API config when omitted.
        context_options: Budget for the context block sent with each prompt.
        retry_backoff:   Base backoff in seconds between LLM retries.
    """

    def __init__(
        self,
        config: DecisionServiceConfig | None = None,
        llm: LLM | None = None,
        context_options: ContextOptions | None = None,
        retry_backoff: float = 0.5,
    ) -> None:
        self.config = config or DecisionServiceConfig()
        self.detector = DecisionDetector(self.config)
        self.context_options = context_options or ContextOptions()
        self.last_decision_time: int | None = None
        self._llm = llm
        self._retry_backoff = retry_backoff
        self._history: deque[DecisionHistoryEntry] = deque(maxlen=self.config.history_capacity)
        self._presented: dict[str, PlayerDecision] = {}
        self._request_seq = 0
        self._decision_seq: dict[str, int] = {}

    # ── Detection ──

    def detect_decision_point(
        self,
        state: NarrativeState,
        character: Character | None = None,
        game_state: GameState | None = None,
        now: int | None = None,
    ) -> DetectionResult:
        return self.detector.detect_decision_point(
            state, character, game_state, self.last_decision_time, now
        )

    # ── Generation ──

    def _track(self, decision: PlayerDecision, seq: int) -> PlayerDecision:
        self._decision_seq[decision.id] = seq
        self._presented[decision.id] = decision
        while len(self._presented) > self.config.history_capacity:
            oldest = next(iter(self._presented))
            del self._presented[oldest]
            self._decision_seq.pop(oldest, None)
        return decision

    def _llm_for(self, api: ApiConfig) -> LLM:
        if self._llm is None:
            self._llm = HttpLLM.from_config(api)
        return self._llm

    async def generate_decision(
        self,
        state: NarrativeState,
        character: Character | None = None,
        api_config: ApiConfig | None = None,
    ) -> PlayerDecision:
        """Return an LLM-generated decision, or a fallback. Never raises."""
        self._request_seq += 1
        seq = self._request_seq
        api = api_config or self.config.api
        if api is None:
            logger.info("no API configuration; presenting fallback decision")
            return self._track(generate_fallback_decision(state), seq)

        character = character or Character()
        try:
            context = build_narrative_context(state, self.context_options).formatted_context
            prompt = render_decision_prompt(
                state, character, context, self.config.max_options_per_decision
            )
            raw = await call_with_retries(
                self._llm_for(api),
                DECISION_STAGE,
                prompt,
                max_retries=api.max_retries,
                timeout=api.timeout,
                backoff=self._retry_backoff,
            )
            decision = parse_decision_response(raw, state, self.config.max_options_per_decision)
        except (LLMError, PromptError, DecisionParseError, asyncio.TimeoutError) as e:
            logger.warning("decision generation failed, using fallback: %s", e)
            return self._track(generate_fallback_decision(state), seq)
        except Exception:
            # an injected LLM may fail in ways of its own
            logger.exception("unexpected error during decision generation, using fallback")
            return self._track(generate_fallback_decision(state), seq)

        quality = evaluate_decision_quality(decision, state.narrative_context)
        if quality.acceptable:
            logger.info("presenting decision %s (quality %.2f)", decision.id, quality.score)
        else:
            logger.warning(
                "decision %s below quality threshold (%.2f): %s",
                decision.id, quality.score, "; ".join(quality.suggestions),
            )
        return self._track(decision, seq)

    def to_player_decision(
        self,
        response: DecisionResponse,
        state: NarrativeState | None = None,
    ) -> PlayerDecision:
        return decision_from_response(response, state, self.config.max_options_per_decision)

    def is_current(self, decision: PlayerDecision) -> bool:
        """False once a newer generation has started since `decision` was requested."""
        return self._decision_seq.get(decision.id) == self._request_seq

    async def process_narrative_state(
        self,
        state: NarrativeState,
        character: Character | None = None,
        game_state: GameState | None = None,
        now: int | None = None,
    ) -> PlayerDecision | None:
        """Detect, and generate a decision when one is warranted."""
        now = now_ms() if now is None else now
        result = self.detect_decision_point(state, character, game_state, now)
        if not result.should_present:
            logger.debug("no decision: %s (score %.3f)", result.reason, result.score)
            return None
        decision = await self.generate_decision(state, character)
        self.last_decision_time = now
        return decision

    # ── History ──

    def record_decision(
        self,
        decision_id: str,
        option_id: str,
        outcome: str,
        now: int | None = None,
    ) -> DecisionHistoryEntry:
        """Append a resolved decision to the bounded history.

        Raises OptionNotFoundError when the decision was presented by this
        service and has no option `option_id`.
        """
        prompt = choice = ""
        decision = self._presented.get(decision_id)
        if decision is not None:
            option = decision.find_option(option_id)
            if option is None:
                raise OptionNotFoundError(decision_id, option_id)
            prompt, choice = decision.prompt, option.text

        if self._history and len(self._history) == self._history.maxlen:
            logger.info("decision history full; evicting %s", self._history[0].decision_id)
        entry = DecisionHistoryEntry(
            decision_id=decision_id,
            option_id=option_id,
            outcome=outcome,
            timestamp=now_ms() if now is None else now,
            prompt=prompt,
            choice=choice,
        )
        self._history.append(entry)
        return entry

    def get_decision_history(self) -> list[DecisionHistoryEntry]:
        return list(self._history)

    def clear_history(self) -> None:
        self._history.clear()
