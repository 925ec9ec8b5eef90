"""LLM client: HTTP connection to a text-completion backend.

Decision generation injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, prompt: str) -> str: ...

`stage` identifies the caller (e.g. "decision"). Implementations may use it
for logging or routing; the simplest implementation ignores it.

HttpLLM is the real client, supporting KoboldCpp and OpenAI-compatible
backends selected by provider_format. `call_with_retries` wraps any LLM with
a per-attempt timeout and exponential backoff. Tests use StubLLM (defined in
the test helpers) instead of a network client.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any, Literal, NamedTuple, Protocol

import httpx

from .config import ApiConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# LLMError: raised for all connection, protocol and quota failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend cannot be reached or returns an error."""


# ---------------------------------------------------------------------------
# RateLimiter: sliding one-minute window
# ---------------------------------------------------------------------------

class RateLimiter:
    """Allows at most `per_minute` acquisitions in any 60 second window."""

    def __init__(self, per_minute: int, clock=time.monotonic) -> None:
        self._limit = per_minute
        self._clock = clock
        self._calls: deque[float] = deque()

    def acquire(self) -> None:
        now = self._clock()
        while self._calls and now - self._calls[0] >= 60:
            self._calls.popleft()
        if self._limit > 0 and len(self._calls) >= self._limit:
            raise LLMError(f"Rate limit of {self._limit} calls per minute exceeded")
        self._calls.append(now)


# ---------------------------------------------------------------------------
# HttpLLM: completion requests against a KoboldCpp or OpenAI-style server
# ---------------------------------------------------------------------------

ProviderFormat = Literal["koboldcpp", "openai"]


class _Envelope(NamedTuple):
    path: str
    results_key: str
    label: str


_ENVELOPES: dict[str, _Envelope] = {
    "koboldcpp": _Envelope("/api/v1/generate", "results", "KoboldCpp"),
    "openai": _Envelope("/v1/completions", "choices", "OpenAI-compatible"),
}


class HttpLLM:
    """Sends the decision prompt to a completion endpoint and returns the text.

    Both formats post `{"prompt": ...}` (plus `model` for openai when set) and
    answer with a list of completions under `results` or `choices`; the first
    completion's `text` is the result. Every failure, including transport
    errors and unexpected bodies, surfaces as LLMError.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 30.0,
        rate_limit: int = 0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._envelope = _ENVELOPES[provider_format]
        self._model = model if provider_format == "openai" else ""
        self._timeout = timeout
        self._limiter = RateLimiter(rate_limit)

    @classmethod
    def from_config(cls, config: ApiConfig) -> HttpLLM:
        return cls(
            provider_url=config.provider_url,
            api_key=config.api_key,
            provider_format=config.provider_format,
            model=config.model,
            timeout=config.timeout,
            rate_limit=config.rate_limit,
        )

    def _completion_text(self, data: Any) -> str:
        completions = data.get(self._envelope.results_key) if isinstance(data, dict) else None
        first = completions[0] if isinstance(completions, list) and completions else None
        if not isinstance(first, dict) or not isinstance(first.get("text"), str):
            raise LLMError(f"Unexpected response format from {self._envelope.label} backend")
        return first["text"]

    async def __call__(self, stage: str, prompt: str) -> str:
        self._limiter.acquire()
        url = self._base_url + self._envelope.path
        body: dict[str, Any] = {"prompt": prompt}
        if self._model:
            body["model"] = self._model
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, url, len(prompt))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=headers)
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"LLM backend returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise LLMError(f"LLM request to {url} failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError("LLM backend returned a non-JSON body") from e
        text = self._completion_text(data)
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text


# ---------------------------------------------------------------------------
# Retry wrapper
# ---------------------------------------------------------------------------

async def call_with_retries(
    llm: LLM,
    stage: str,
    prompt: str,
    max_retries: int = 3,
    timeout: float = 30.0,
    backoff: float = 0.5,
) -> str:
    """Call `llm`, retrying failed or timed-out attempts.

    Makes up to `max_retries + 1` attempts, each bounded by `timeout`
    seconds, sleeping `backoff * 2**attempt` between them. Raises LLMError
    once every attempt has failed.
    """
    last_error: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            return await asyncio.wait_for(llm(stage, prompt), timeout)
        except (LLMError, asyncio.TimeoutError) as e:
            last_error = e
            logger.warning(
                "llm attempt %d/%d failed for stage=%s: %s",
                attempt + 1, max_retries + 1, stage, e or type(e).__name__,
            )
        if attempt < max_retries and backoff > 0:
            await asyncio.sleep(backoff * 2 ** attempt)
    raise LLMError(f"LLM call failed after {max_retries + 1} attempt(s)") from last_error
