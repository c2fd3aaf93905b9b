"""
Token estimation and cost calculation helpers.
"""

from llm_compare.config import ModelConfig

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """
    Rough token count: ceil(len(text) / 4).

    Only used when the upstream response carries no usage block.
    """
    return -(-len(text) // CHARS_PER_TOKEN)


def calculate_cost(
    prompt_tokens: int,
    completion_tokens: int,
    model: ModelConfig,
) -> float:
    prompt_cost = (prompt_tokens / 1000) * model.input_cost_per_1k
    completion_cost = (completion_tokens / 1000) * model.output_cost_per_1k
    return prompt_cost + completion_cost
