"""Model ID registry — single source of truth for LLM model identifiers.

Every LLM call in the platform resolves its model ID through this module.
The rest of the codebase imports family-name constants from here — no raw
model ID strings anywhere else.

Two layers:
  Layer 1: Model ID constants (updated when OpenAI releases new versions)
  Layer 2: MODEL_MAP resolves env-var family names → model IDs

To swap the evaluator model: set EVALUATOR_MODEL in .env to another key
of MODEL_MAP. No code change needed.
"""

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Layer 1: Model IDs (update when providers release new versions)
# ---------------------------------------------------------------------------

GPT_4O: str = "gpt-4o"
GPT_4O_MINI: str = "gpt-4o-mini"
GPT_4_1: str = "gpt-4.1"
GPT_4_1_MINI: str = "gpt-4.1-mini"

# Evaluations are graded with some variety in wording but stable scoring.
EVALUATION_TEMPERATURE: float = 0.7


# ---------------------------------------------------------------------------
# ModelConfig: bundles the provider-specific call configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelConfig:
    """Bundles the configuration for one kind of LLM call.

    Leaf module — no project imports. Constructed at startup from
    Settings, consumed by provider implementations.
    """

    provider: str          # "openai" or "mock"
    model_id: str          # e.g. "gpt-4o"
    temperature: float = EVALUATION_TEMPERATURE


# ---------------------------------------------------------------------------
# Layer 2: Lookup map: env var value → actual model ID
# ---------------------------------------------------------------------------
# Keys match the constant names exactly (case-sensitive).
MODEL_MAP: dict[str, str] = {
    "GPT_4O": GPT_4O,
    "GPT_4O_MINI": GPT_4O_MINI,
    "GPT_4_1": GPT_4_1,
    "GPT_4_1_MINI": GPT_4_1_MINI,
}
