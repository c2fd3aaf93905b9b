"""
FastAPI application — side-by-side LLM comparison.

Endpoints
─────────
POST /compare            Send one prompt to every registered model and return all results.
GET  /comparison/{id}    A stored comparison with its per-model responses.
GET  /history            Most recent comparisons, newest first.
GET  /models             Registered models and their pricing.
GET  /health             Health check.

Persistence mode (COMPARE_PERSIST_MODE)
───────────────────────────────────────
sync        Store before responding; a storage failure fails the request.
            The response carries the new comparison_id.
background  Respond as soon as the fan-out completes (with server_total_time_ms),
            then store in a background task; storage failures are only logged.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from llm_compare.comparator import ComparisonEngine, prompt_preview
from llm_compare.config import (
    DEFAULT_HISTORY_LIMIT,
    MAX_HISTORY_LIMIT,
    MAX_PROMPT_LENGTH,
    MODEL_REGISTRY,
    Settings,
)
from llm_compare.database import ComparisonStore, ConnectionPool, StorageError
from llm_compare.models import (
    CompareRequest,
    CompareResponse,
    ComparisonDetail,
    ModelResult,
    ModelSpec,
    ModelsResponse,
)
from llm_compare.providers.gateway import AIGatewayProvider

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dependencies — resources live on app.state, created in the lifespan
# ---------------------------------------------------------------------------

def get_engine(request: Request) -> ComparisonEngine:
    return request.app.state.engine


def get_store(request: Request) -> ComparisonStore:
    return request.app.state.store


# ---------------------------------------------------------------------------
# Error rendering — every error body is {"error": ...}
# ---------------------------------------------------------------------------

def _validation_message(exc: RequestValidationError) -> str:
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        if not loc and err.get("type") == "missing":
            return "Prompt is required"
        if loc == ["prompt"]:
            if err.get("type") in ("missing", "string_too_short") or err.get("input") is None:
                return "Prompt is required"
            if err.get("type") == "string_too_long":
                return f"Prompt is too long (max {MAX_PROMPT_LENGTH} characters)"
            return "Prompt must be a string"
        if err.get("type") == "json_invalid":
            return "Request body is not valid JSON"
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"Invalid request: {field} {first.get('msg', '')}".strip()


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": _validation_message(exc)})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def internal_error(message: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message, "details": str(exc)})


# ---------------------------------------------------------------------------
# Background persistence
# ---------------------------------------------------------------------------

async def persist_in_background(
    store: ComparisonStore, prompt: str, results: list[ModelResult]
) -> None:
    """Store a comparison after the response has gone out.  Failures are logged only."""
    start = time.perf_counter()
    try:
        comparison_id = await store.store(prompt, results)
    except Exception:
        logger.exception(
            "Background save failed | prompt=%r", prompt_preview(prompt)
        )
        return
    logger.info(
        "Background save completed in %.0fms | comparison_id=%s",
        (time.perf_counter() - start) * 1000,
        comparison_id,
    )


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    `settings` defaults to Settings.from_env().  `http_client` lets callers
    supply the AsyncClient used for upstream model calls (tests pass one
    backed by httpx.MockTransport).
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = ConnectionPool(settings.database_path, size=settings.db_pool_size)
        await pool.open()
        store = ComparisonStore(pool)
        await store.init_schema()
        provider = AIGatewayProvider(
            api_key=settings.gateway_api_key,
            gateway_url=settings.gateway_url,
            timeout=settings.request_timeout_s,
            client=http_client,
        )
        app.state.store = store
        app.state.engine = ComparisonEngine(provider)
        logger.info("llm-compare ready | persist_mode=%s", settings.persist_mode)
        try:
            yield
        finally:
            await provider.aclose()
            await pool.close()

    app = FastAPI(
        title="LLM Compare",
        description="Send one prompt to several hosted models and compare cost, tokens and latency.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    @app.get("/health")
    def health() -> dict:
        """Health check."""
        return {
            "status": "ok",
            "api_key_configured": bool(settings.gateway_api_key),
            "persist_mode": settings.persist_mode,
        }

    @app.get("/models", response_model=ModelsResponse)
    def list_models() -> ModelsResponse:
        """Return the registered models with their pricing, in comparison order."""
        return ModelsResponse(
            models=[
                ModelSpec(
                    model_id=cfg.model_id,
                    display_name=cfg.display_name,
                    provider=cfg.provider,
                    input_cost_per_1k_tokens=cfg.input_cost_per_1k,
                    output_cost_per_1k_tokens=cfg.output_cost_per_1k,
                )
                for cfg in MODEL_REGISTRY
            ]
        )

    @app.post(
        "/compare",
        response_model=CompareResponse,
        response_model_exclude_none=True,
    )
    async def compare(
        body: CompareRequest,
        background_tasks: BackgroundTasks,
        engine: ComparisonEngine = Depends(get_engine),
        store: ComparisonStore = Depends(get_store),
    ):
        """
        Run the prompt against every registered model concurrently.

        Each model's failure is reported in its own `error` field; the request
        itself only fails on validation errors or (in sync mode) a storage error.
        """
        start = time.perf_counter()
        prompt = body.prompt
        logger.info("Received /compare request | prompt=%r", prompt_preview(prompt))

        try:
            results = await engine.compare(prompt)
        except Exception as exc:
            logger.exception("Comparison failed | prompt=%r", prompt_preview(prompt))
            return internal_error("Failed to compare models", exc)

        if settings.persist_mode == "sync":
            try:
                comparison_id = await store.store(prompt, results)
            except StorageError as exc:
                logger.exception("Failed to save comparison | prompt=%r", prompt_preview(prompt))
                return internal_error("Failed to save comparison", exc)
            return CompareResponse(responses=results, comparison_id=comparison_id)

        total_ms = int((time.perf_counter() - start) * 1000)
        logger.info("Sending /compare response after %dms", total_ms)
        background_tasks.add_task(persist_in_background, store, prompt, results)
        return CompareResponse(responses=results, server_total_time_ms=total_ms)

    @app.get("/comparison/{comparison_id}", response_model=ComparisonDetail)
    async def get_comparison(
        comparison_id: str,
        store: ComparisonStore = Depends(get_store),
    ):
        """A stored comparison and its responses, sorted by model name."""
        try:
            comparison_id = str(uuid.UUID(comparison_id))
        except ValueError:
            return JSONResponse(status_code=400, content={"error": "Invalid comparison ID"})

        try:
            detail = await store.fetch_by_id(comparison_id)
        except StorageError as exc:
            logger.exception("Error fetching comparison %s", comparison_id)
            return internal_error("Failed to fetch comparison", exc)

        if detail is None:
            return JSONResponse(status_code=404, content={"error": "Comparison not found"})
        return detail

    @app.get("/history", response_model=list[ComparisonDetail])
    async def get_history(
        limit: int = Query(
            default=DEFAULT_HISTORY_LIMIT,
            ge=1,
            le=MAX_HISTORY_LIMIT,
            description="Max comparisons to return.",
        ),
        store: ComparisonStore = Depends(get_store),
    ):
        """Most recent comparisons first, each with its responses."""
        try:
            return await store.fetch_recent(limit)
        except StorageError as exc:
            logger.exception("Error fetching history")
            return internal_error("Failed to fetch history", exc)

    return app


app = create_app()
