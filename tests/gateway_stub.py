"""
Scriptable AI-gateway stub built on httpx.MockTransport, plus a pair of
test models and a ModelResult factory.
"""

import asyncio
import json
from typing import Awaitable, Callable, Optional, Union

import httpx

from llm_compare.config import ModelConfig
from llm_compare.models import ModelResult

GATEWAY_URL = "https://gateway.test/v1/chat/completions"

MODEL_A = ModelConfig(
    model_id="vendor-a/model-a",
    display_name="Model A",
    provider="VendorA",
    input_cost_per_1k=0.005,
    output_cost_per_1k=0.015,
)
MODEL_B = ModelConfig(
    model_id="vendor-b/model-b",
    display_name="Model B",
    provider="VendorB",
    input_cost_per_1k=0.003,
    output_cost_per_1k=0.015,
)

Behaviour = Callable[[httpx.Request], Union[httpx.Response, Awaitable[httpx.Response]]]


def completion_body(content: str, usage: Optional[dict] = None) -> dict:
    body: dict = {"choices": [{"message": {"role": "assistant", "content": content}}]}
    if usage is not None:
        body["usage"] = usage
    return body


def gateway_transport(
    behaviours: dict[str, Behaviour],
    calls: Optional[list] = None,
) -> httpx.MockTransport:
    """
    Route each request to the behaviour registered for its `model` field.

    Behaviours may raise httpx transport errors to simulate timeouts and
    network failures, or be coroutines (MockTransport awaits them).  Every (request, payload) pair is appended to `calls`.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if calls is not None:
            calls.append((request, payload))
        return behaviours[payload["model"]](request)

    return httpx.MockTransport(handler)


def ok(content: str, usage: Optional[dict] = None) -> Behaviour:
    return lambda request: httpx.Response(200, json=completion_body(content, usage))


def timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("Read timed out", request=request)


def stalled(seconds: float) -> Behaviour:
    """An upstream that only answers after `seconds`."""

    async def respond(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(seconds)
        return httpx.Response(200, json=completion_body("too late"))

    return respond


def make_result(model: ModelConfig, **overrides) -> ModelResult:
    fields = dict(
        model_id=model.model_id,
        model_name=model.display_name,
        provider=model.provider,
        response_text=f"answer from {model.display_name}",
        prompt_tokens=12,
        completion_tokens=30,
        total_tokens=42,
        response_time_ms=250,
        estimated_cost=0.000123,
    )
    fields.update(overrides)
    return ModelResult(**fields)
