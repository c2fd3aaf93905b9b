"""
Comparison engine: fans one prompt out to every registered model.

Flow
────
1. Start one provider.invoke() per registry entry, all at once.
2. Wait for every call to settle (asyncio.gather, return_exceptions=True).
3. Any call that blew up outside the provider's own error handling is
   replaced by a synthesized failed ModelResult.
4. Results come back in registry order, whatever order they finished in.
"""

import asyncio
import logging
import time
from typing import Optional

from llm_compare.config import MODEL_REGISTRY, ModelConfig
from llm_compare.costs import estimate_tokens
from llm_compare.models import ModelResult
from llm_compare.providers.gateway import AIGatewayProvider

logger = logging.getLogger(__name__)

REQUEST_FAILED = "Request failed"


def prompt_preview(prompt: str, width: int = 50) -> str:
    """Single-line prompt prefix for log lines."""
    preview = prompt[:width].replace("\n", " ")
    return preview + "…" if len(prompt) > width else preview


def failed_result(model: ModelConfig, prompt: str, exc: Optional[BaseException]) -> ModelResult:
    prompt_tokens = estimate_tokens(prompt)
    return ModelResult(
        model_id=model.model_id,
        model_name=model.display_name,
        provider=model.provider,
        response_text="",
        prompt_tokens=prompt_tokens,
        completion_tokens=0,
        total_tokens=prompt_tokens,
        response_time_ms=0,
        estimated_cost=0.0,
        error=(str(exc) if exc is not None else "") or REQUEST_FAILED,
    )


class ComparisonEngine:
    """Runs one prompt against every model in the registry concurrently."""

    def __init__(
        self,
        provider: AIGatewayProvider,
        registry: Optional[list[ModelConfig]] = None,
    ) -> None:
        self._provider = provider
        self._registry = list(registry if registry is not None else MODEL_REGISTRY)

    @property
    def registry(self) -> list[ModelConfig]:
        return list(self._registry)

    async def compare(self, prompt: str) -> list[ModelResult]:
        logger.info(
            "Starting comparison | models=%d prompt=%r",
            len(self._registry),
            prompt_preview(prompt),
        )

        start = time.perf_counter()
        outcomes = await asyncio.gather(
            *(self._provider.invoke(model, prompt) for model in self._registry),
            return_exceptions=True,
        )
        elapsed_ms = (time.perf_counter() - start) * 1000

        results: list[ModelResult] = []
        for model, outcome in zip(self._registry, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Invocation aborted outside provider handling | model=%s error=%r",
                    model.model_id,
                    outcome,
                )
                results.append(failed_result(model, prompt, outcome))
            else:
                results.append(outcome)

        logger.info(
            "Comparison finished in %.0fms | %s",
            elapsed_ms,
            ", ".join(f"{r.model_name}: {r.response_time_ms}ms" for r in results),
        )
        return results
