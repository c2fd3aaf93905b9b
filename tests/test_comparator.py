"""
Tests for the fan-out comparison engine.
"""

import asyncio

import httpx
import pytest

from llm_compare.comparator import REQUEST_FAILED, ComparisonEngine, prompt_preview
from llm_compare.config import MODEL_REGISTRY, ModelConfig
from llm_compare.costs import estimate_tokens
from llm_compare.models import ModelResult
from llm_compare.providers.gateway import AIGatewayProvider
from tests.gateway_stub import (
    GATEWAY_URL,
    MODEL_A,
    MODEL_B,
    gateway_transport,
    make_result,
    ok,
    timeout,
)

PROMPT = "Which is heavier, a kilogram of feathers or a kilogram of steel?"


class ScriptedProvider:
    """Stand-in provider: per-model delay, optional exception."""

    def __init__(self, delays=None, raises=None):
        self.delays = delays or {}
        self.raises = raises or {}
        self.finished: list[str] = []

    async def invoke(self, model: ModelConfig, prompt: str) -> ModelResult:
        await asyncio.sleep(self.delays.get(model.model_id, 0))
        self.finished.append(model.model_id)
        if model.model_id in self.raises:
            raise self.raises[model.model_id]
        return make_result(model)


class TestOrdering:
    @pytest.mark.asyncio
    async def test_results_follow_registry_order_not_completion_order(self):
        third = ModelConfig("vendor-c/model-c", "Model C", "VendorC", 0.001, 0.002)
        registry = [MODEL_A, MODEL_B, third]
        provider = ScriptedProvider(
            delays={MODEL_A.model_id: 0.05, MODEL_B.model_id: 0.0, third.model_id: 0.02}
        )

        results = await ComparisonEngine(provider, registry).compare(PROMPT)

        assert provider.finished == [MODEL_B.model_id, third.model_id, MODEL_A.model_id]
        assert [r.model_id for r in results] == [m.model_id for m in registry]

    @pytest.mark.asyncio
    async def test_defaults_to_model_registry(self):
        results = await ComparisonEngine(ScriptedProvider()).compare(PROMPT)

        assert len(results) == len(MODEL_REGISTRY)
        assert [r.model_id for r in results] == [m.model_id for m in MODEL_REGISTRY]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_all_invocations_in_flight_together(self, registry):
        started = 0
        all_started = asyncio.Event()

        class BarrierProvider:
            async def invoke(self, model, prompt):
                nonlocal started
                started += 1
                if started == len(registry):
                    all_started.set()
                # Deadlocks (and times out) if calls are made one after another.
                await all_started.wait()
                return make_result(model)

        engine = ComparisonEngine(BarrierProvider(), registry)
        results = await asyncio.wait_for(engine.compare(PROMPT), timeout=2)

        assert len(results) == len(registry)


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_escaped_exception_becomes_failed_result(self, registry):
        provider = ScriptedProvider(raises={MODEL_B.model_id: RuntimeError("socket exploded")})

        results = await ComparisonEngine(provider, registry).compare(PROMPT)

        ok_result, failed = results
        assert ok_result.succeeded
        assert ok_result.response_text == "answer from Model A"

        assert failed.model_id == MODEL_B.model_id
        assert failed.model_name == MODEL_B.display_name
        assert failed.provider == MODEL_B.provider
        assert failed.error == "socket exploded"
        assert failed.response_text == ""
        assert failed.prompt_tokens == estimate_tokens(PROMPT)
        assert failed.completion_tokens == 0
        assert failed.total_tokens == failed.prompt_tokens
        assert failed.response_time_ms == 0
        assert failed.estimated_cost == 0

    @pytest.mark.asyncio
    async def test_exception_without_message_gets_generic_error(self, registry):
        provider = ScriptedProvider(raises={MODEL_A.model_id: RuntimeError()})

        results = await ComparisonEngine(provider, registry).compare(PROMPT)

        assert results[0].error == REQUEST_FAILED
        assert results[1].succeeded

    @pytest.mark.asyncio
    async def test_every_model_failing_still_returns_n_results(self, registry):
        provider = ScriptedProvider(
            raises={m.model_id: ValueError(f"{m.display_name} down") for m in registry}
        )

        results = await ComparisonEngine(provider, registry).compare(PROMPT)

        assert [r.error for r in results] == ["Model A down", "Model B down"]


class TestEndToEndWithGateway:
    @pytest.mark.asyncio
    async def test_one_success_one_timeout(self, registry):
        usage = {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150}
        client = httpx.AsyncClient(
            transport=gateway_transport(
                {MODEL_A.model_id: ok("Neither.", usage), MODEL_B.model_id: timeout}
            )
        )
        provider = AIGatewayProvider(api_key="sk-test", gateway_url=GATEWAY_URL, client=client)

        result_a, result_b = await ComparisonEngine(provider, registry).compare(PROMPT)

        assert result_a.estimated_cost == pytest.approx(0.00125)
        assert result_a.total_tokens == result_a.prompt_tokens + result_a.completion_tokens
        assert result_a.error is None

        assert result_b.error
        assert result_b.response_text == ""
        assert result_b.total_tokens == estimate_tokens(PROMPT)
        assert result_b.estimated_cost == 0

        await client.aclose()


def test_prompt_preview_truncates():
    assert prompt_preview("short") == "short"
    assert prompt_preview("a" * 80) == "a" * 50 + "…"
    assert prompt_preview("line one\nline two") == "line one line two"
