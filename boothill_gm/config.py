"""Engine configuration: defaults, JSON file overrides, environment overrides."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .models import DAY_MS

logger = logging.getLogger(__name__)


class ApiConfig(BaseModel):
    """Connection to the LLM backend used for decision generation."""

    provider_url: str
    api_key: str = ""
    provider_format: Literal["koboldcpp", "openai"] = "koboldcpp"
    model: str = ""
    max_retries: int = 3
    timeout: float = 30.0  # seconds, per attempt
    rate_limit: int = 60  # calls per minute


class RelevanceConfig(BaseModel):
    recency_weight: float = 0.3
    tag_match_weight: float = 0.4
    importance_weight: float = 0.2
    impact_weight: float = 0.1
    max_age: int = 14 * DAY_MS
    min_relevance_score: float = 3


class CompressionConfig(BaseModel):
    words_per_token: float = 0.75
    low_ratio: float = 0.9
    medium_ratio: float = 0.8
    high_ratio: float = 0.7


class DecisionServiceConfig(BaseModel):
    min_decision_interval: int = 5000  # ms between presented decisions
    relevance_threshold: float = 0.6  # detection score needed to present
    max_options_per_decision: int = 4
    history_capacity: int = 12
    api: ApiConfig | None = None


class EngineConfig(BaseModel):
    decisions: DecisionServiceConfig = Field(default_factory=DecisionServiceConfig)
    relevance: RelevanceConfig = Field(default_factory=RelevanceConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)


_ENV_API_KEYS = {
    "BOOTHILL_PROVIDER_URL": "provider_url",
    "BOOTHILL_API_KEY": "api_key",
    "BOOTHILL_PROVIDER_FORMAT": "provider_format",
    "BOOTHILL_MODEL": "model",
}


def load_config(path: Path | None = None) -> EngineConfig:
    """Read config, returning defaults merged with stored values.

    Environment variables (optionally from a `.env` file) override the API
    connection. Without a provider URL no API config is produced.
    """
    stored: dict[str, Any] = {}
    if path is not None and path.is_file():
        stored = json.loads(path.read_text())
        logger.debug("loaded config from %s", path)

    config: dict[str, Any] = {}
    for section in EngineConfig.model_fields:
        if isinstance(stored.get(section), dict):
            config[section] = stored[section]

    load_dotenv()
    decisions = dict(config.get("decisions", {}))
    api = dict(decisions.get("api") or {})
    for env_key, field in _ENV_API_KEYS.items():
        value = os.environ.get(env_key)
        if value:
            api[field] = value
    if api.get("provider_url"):
        decisions["api"] = api
    else:
        decisions.pop("api", None)
    config["decisions"] = decisions

    return EngineConfig.model_validate(config)
