from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from boothill_gm.api import create_app
from boothill_gm.config import EngineConfig
from boothill_gm.storage import Storage


# ---------------------------------------------------------------------------
# StubLLM: dispatches by stage name, independent queue per stage
# ---------------------------------------------------------------------------

class StubLLM:
    """Deterministic LLM stand-in for tests.

    Provide a dict mapping stage name → list of responses (in call order).
    A response that is an exception instance is raised instead of returned.
    Raises if a stage is called more times than responses were provided.
    """

    def __init__(self, responses: dict[str, list]) -> None:
        self._queues: dict[str, list] = {k: list(v) for k, v in responses.items()}
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, stage: str, prompt: str) -> str:
        self.calls.append((stage, prompt))
        queue = self._queues.get(stage)
        if not queue:
            raise AssertionError(
                f"StubLLM: unexpected call to stage={stage!r} "
                f"(no responses queued). calls so far: {self.calls}"
            )
        response = queue.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    def assert_exhausted(self) -> None:
        """Assert every queued response was consumed: catches missing LLM calls."""
        leftover = {k: v for k, v in self._queues.items() if v}
        if leftover:
            raise AssertionError(
                f"StubLLM: unused responses remain: {leftover}"
            )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def stub_llm():
    """Factory: stub_llm({"decision": [...]}) -> StubLLM."""
    return StubLLM


@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    return Storage(tmp_path / "data")


@pytest.fixture
def client(tmp_path: Path) -> TestClient:
    """API client with no LLM configured, so generation uses fallbacks."""
    app = create_app(tmp_path / "data", config=EngineConfig())
    return TestClient(app)
