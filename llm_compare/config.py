"""
Model registry with per-1k-token pricing, plus process settings.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 10_000
DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100

PERSIST_MODES = ("sync", "background")


@dataclass(frozen=True)
class ModelConfig:
    model_id: str
    display_name: str
    provider: str
    input_cost_per_1k: float    # USD per 1K prompt tokens
    output_cost_per_1k: float   # USD per 1K completion tokens


# Order matters: /compare returns one result per entry, in this order.
MODEL_REGISTRY: list[ModelConfig] = [
    ModelConfig(
        model_id="openai/gpt-4o",
        display_name="GPT-4o",
        provider="OpenAI",
        input_cost_per_1k=0.005,
        output_cost_per_1k=0.015,
    ),
    ModelConfig(
        model_id="anthropic/claude-3-5-sonnet-20241022",
        display_name="Claude 3.5 Sonnet",
        provider="Anthropic",
        input_cost_per_1k=0.003,
        output_cost_per_1k=0.015,
    ),
    ModelConfig(
        model_id="xai/grok-beta",
        display_name="Grok Beta",
        provider="XAi",
        input_cost_per_1k=0.005,
        output_cost_per_1k=0.015,
    ),
]


def check_unique_ids(registry: list[ModelConfig]) -> None:
    """Raise ValueError if two registry entries share a model_id."""
    seen: set[str] = set()
    for cfg in registry:
        if cfg.model_id in seen:
            raise ValueError(f"Duplicate model id in registry: {cfg.model_id!r}")
        seen.add(cfg.model_id)


check_unique_ids(MODEL_REGISTRY)


def get_model(model_id: str) -> Optional[ModelConfig]:
    for cfg in MODEL_REGISTRY:
        if cfg.model_id == model_id:
            return cfg
    return None


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    gateway_url: str = "https://ai-gateway.vercel.sh/v1/chat/completions"
    gateway_api_key: str = ""
    database_path: str = "data/comparisons.db"
    db_pool_size: int = 5
    persist_mode: str = "background"   # "sync" | "background"
    request_timeout_s: float = 30.0

    def __post_init__(self) -> None:
        if self.persist_mode not in PERSIST_MODES:
            raise ValueError(
                f"Unknown persist mode {self.persist_mode!r}; "
                f"expected one of {', '.join(PERSIST_MODES)}"
            )
        if self.db_pool_size < 1:
            raise ValueError("db_pool_size must be at least 1")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and a .env file, if any)."""
        load_dotenv()

        settings = cls(
            gateway_url=os.getenv("AI_GATEWAY_URL", cls.gateway_url),
            gateway_api_key=os.getenv("AI_GATEWAY_API_KEY", ""),
            database_path=os.getenv("DATABASE_PATH", cls.database_path),
            db_pool_size=int(os.getenv("DB_POOL_SIZE", str(cls.db_pool_size))),
            persist_mode=os.getenv("COMPARE_PERSIST_MODE", cls.persist_mode).lower(),
            request_timeout_s=float(
                os.getenv("MODEL_TIMEOUT_SECONDS", str(cls.request_timeout_s))
            ),
        )
        if not settings.gateway_api_key:
            logger.warning("AI_GATEWAY_API_KEY not set; upstream model calls will fail")
        return settings
