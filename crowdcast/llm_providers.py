"""Model enums for the reasoning oracle.

The oracle speaks the OpenAI chat-completions dialect, so every model here is
addressed by its plain id on the configured endpoint.
"""

from enum import StrEnum


class OracleModel(StrEnum):
    """Models served by the default OpenAI-compatible oracle endpoint."""

    LLAMA_3_3_70B = "llama-3.3-70b"
    QWEN_3_235B = "qwen3-235b"
    MISTRAL_31_24B = "mistral-31-24b"
    DEEPSEEK_R1_671B = "deepseek-r1-671b"


DEFAULT_DECISION_MODEL = OracleModel.LLAMA_3_3_70B
DEFAULT_RESEARCH_MODEL = OracleModel.LLAMA_3_3_70B


def get_model_string(model: OracleModel | str | None) -> str:
    """Return the API model id, falling back to the default decision model."""
    if not model:
        return DEFAULT_DECISION_MODEL.value
    if isinstance(model, OracleModel):
        return model.value
    return str(model)
