"""
Pydantic request/response models for the llm-compare API.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from llm_compare.config import MAX_PROMPT_LENGTH


# ---------------------------------------------------------------------------
# POST /compare
# ---------------------------------------------------------------------------

class CompareRequest(BaseModel):
    prompt: StrictStr = Field(
        ...,
        min_length=1,
        max_length=MAX_PROMPT_LENGTH,
        description="The prompt sent to every registered model.",
    )


class ModelResult(BaseModel):
    """Normalised outcome of one model call. `error` is set iff the call failed."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    model_name: str
    provider: str
    response_text: str = ""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    response_time_ms: int
    estimated_cost: float
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class CompareResponse(BaseModel):
    responses: list[ModelResult]
    comparison_id: Optional[str] = None         # set when persist_mode == "sync"
    server_total_time_ms: Optional[int] = None  # set when persist_mode == "background"


# ---------------------------------------------------------------------------
# Persisted comparisons (/comparison/{id}, /history)
# ---------------------------------------------------------------------------

class ComparisonRecord(BaseModel):
    id: str
    prompt: str
    created_at: str


class StoredModelResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    comparison_id: str
    model_name: str
    response_text: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    response_time_ms: int
    estimated_cost: float
    error: Optional[str]
    created_at: str


class ComparisonDetail(BaseModel):
    comparison: ComparisonRecord
    responses: list[StoredModelResponse]


# ---------------------------------------------------------------------------
# /models endpoint response
# ---------------------------------------------------------------------------

class ModelSpec(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    display_name: str
    provider: str
    input_cost_per_1k_tokens: float
    output_cost_per_1k_tokens: float


class ModelsResponse(BaseModel):
    models: list[ModelSpec]
