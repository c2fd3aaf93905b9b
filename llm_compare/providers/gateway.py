"""
AI-gateway client.

Responsibilities:
  - POST one chat completion per (model, prompt) to the gateway
  - Measure wall-clock latency
  - Extract token usage from the response, estimating it when absent
  - Calculate estimated cost from the model's pricing

`invoke()` never raises: every failure comes back as a ModelResult whose
`error` field is populated.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx

from llm_compare.config import ModelConfig
from llm_compare.costs import calculate_cost, estimate_tokens
from llm_compare.models import ModelResult

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "Unknown error occurred"


class UpstreamModelError(Exception):
    """Non-2xx status or unusable body from the gateway."""


def _provider_error_message(response: httpx.Response) -> Optional[str]:
    """Pull `error.message` out of a gateway error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return None


def _extract_content(body: Any) -> str:
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise UpstreamModelError("Malformed response: missing choices[0].message.content") from exc
    if not isinstance(content, str):
        raise UpstreamModelError("Malformed response: message content is not a string")
    return content


class AIGatewayProvider:
    """Thin async wrapper around an OpenAI-compatible chat-completions gateway."""

    def __init__(
        self,
        api_key: str,
        gateway_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._api_key = api_key
        self._gateway_url = gateway_url
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, model: ModelConfig, prompt: str) -> tuple[str, dict]:
        """Return (response_text, usage). Raises on any transport or upstream failure."""
        response = await self._client.post(
            self._gateway_url,
            json={
                "model": model.model_id,
                "messages": [{"role": "user", "content": prompt}],
                "stream": False,
            },
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
        )
        if not response.is_success:
            message = _provider_error_message(response)
            raise UpstreamModelError(
                message or f"Gateway returned HTTP {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamModelError("Malformed response: body is not JSON") from exc

        text = _extract_content(body)
        usage = body.get("usage") or {}
        if not isinstance(usage, dict):
            usage = {}
        return text, usage

    async def invoke(self, model: ModelConfig, prompt: str) -> ModelResult:
        logger.info("Calling gateway | model=%s prompt_len=%d", model.model_id, len(prompt))

        start = time.perf_counter()
        try:
            # httpx timeouts are per phase; this bounds the whole call.
            text, usage = await asyncio.wait_for(self._post(model, prompt), self._timeout)
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            return self._success(model, prompt, text, usage, elapsed_ms)
        except asyncio.TimeoutError:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            exc = UpstreamModelError(f"Request timed out after {self._timeout:g}s")
            return self._failure(model, prompt, exc, elapsed_ms)
        except Exception as exc:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            return self._failure(model, prompt, exc, elapsed_ms)

    def _success(
        self,
        model: ModelConfig,
        prompt: str,
        text: str,
        usage: dict,
        elapsed_ms: int,
    ) -> ModelResult:
        prompt_tokens = usage.get("prompt_tokens")
        if prompt_tokens is None:
            prompt_tokens = estimate_tokens(prompt)
        completion_tokens = usage.get("completion_tokens")
        if completion_tokens is None:
            completion_tokens = estimate_tokens(text)
        prompt_tokens, completion_tokens = int(prompt_tokens), int(completion_tokens)
        total_tokens = usage.get("total_tokens")
        if total_tokens is None:
            total_tokens = prompt_tokens + completion_tokens

        result = ModelResult(
            model_id=model.model_id,
            model_name=model.display_name,
            provider=model.provider,
            response_text=text,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            response_time_ms=elapsed_ms,
            estimated_cost=calculate_cost(prompt_tokens, completion_tokens, model),
        )

        logger.info(
            "Gateway response | model=%s in_tok=%d out_tok=%d cost=$%.6f latency=%dms",
            model.model_id,
            result.prompt_tokens,
            result.completion_tokens,
            result.estimated_cost,
            elapsed_ms,
        )
        return result

    def _failure(
        self,
        model: ModelConfig,
        prompt: str,
        exc: Exception,
        elapsed_ms: int,
    ) -> ModelResult:
        message = str(exc) or UNKNOWN_ERROR

        logger.warning(
            "Gateway call failed | model=%s latency=%dms error=%s (%s)",
            model.model_id,
            elapsed_ms,
            message,
            type(exc).__name__,
        )

        prompt_tokens = estimate_tokens(prompt)
        return ModelResult(
            model_id=model.model_id,
            model_name=model.display_name,
            provider=model.provider,
            response_text="",
            prompt_tokens=prompt_tokens,
            completion_tokens=0,
            total_tokens=prompt_tokens,
            response_time_ms=elapsed_ms,
            estimated_cost=0.0,
            error=message,
        )
