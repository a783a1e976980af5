"""
Built-in provider and model definitions.

This is the catalog every deployment starts from. Admins can override
it with a YAML file (switchboard.config.loader) and dynamic providers
(Ollama, vLLM, OpenRouter) fill in their model lists at runtime.

Entries are listed in registration order. That order is provider
precedence: when two providers enumerate the same model id, or two
patterns match the same name, the earlier provider wins.

Prices are USD per million tokens.
"""

from __future__ import annotations

import re
import threading
from typing import Optional

from switchboard.llm.catalog import (
    CatalogHolder,
    CatalogSnapshot,
    CredentialMode,
    ModelCapabilities,
    ModelCatalogEntry,
    ModelDefinition,
    PricingEntry,
    ProviderId,
    ToolFamily,
)

# ---------------------------------------------------------------------------
# Shared capability presets
# ---------------------------------------------------------------------------

TEMP_0_2 = ModelCapabilities(max_temperature=2.0, max_output_tokens=16384)
TEMP_0_1 = ModelCapabilities(max_temperature=1.0, max_output_tokens=8192)

OPENAI_REASONING = ModelCapabilities(
    reasoning_effort=("low", "medium", "high"),
    max_output_tokens=100000,
)
GPT5 = ModelCapabilities(
    reasoning_effort=("minimal", "low", "medium", "high"),
    verbosity=("low", "medium", "high"),
    max_output_tokens=128000,
)
CLAUDE_THINKING = ModelCapabilities(
    max_temperature=1.0,
    thinking=("low", "medium", "high"),
    max_output_tokens=64000,
)
GEMINI_THINKING = ModelCapabilities(
    max_temperature=2.0,
    thinking=("low", "high"),
    max_output_tokens=65536,
)


def _price(input: float, output: float, cached: Optional[float] = None,
           updated: str = "2025-06-17") -> PricingEntry:
    return PricingEntry(input=input, cached_input=cached, output=output, updated_at=updated)


def _model(model_id: str, pricing: Optional[PricingEntry] = None,
           capabilities: ModelCapabilities = TEMP_0_2) -> ModelDefinition:
    return ModelDefinition(id=model_id, pricing=pricing, capabilities=capabilities)


def _patterns(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p) for p in patterns)


# ---------------------------------------------------------------------------
# Provider definitions (registration order)
# ---------------------------------------------------------------------------

OLLAMA = ModelCatalogEntry(
    provider_id=ProviderId.OLLAMA,
    name="Ollama",
    description="Local models served by Ollama",
    credential_mode=CredentialMode.LOCAL,
    accepts_bearer_token=False,
    dynamic=True,
)

VLLM = ModelCatalogEntry(
    provider_id=ProviderId.VLLM,
    name="vLLM",
    description="Self-hosted OpenAI-compatible vLLM server",
    model_patterns=_patterns(r"^vllm/"),
    credential_mode=CredentialMode.LOCAL,
    accepts_bearer_token=True,
    dynamic=True,
)

OPENAI = ModelCatalogEntry(
    provider_id=ProviderId.OPENAI,
    name="OpenAI",
    models=(
        _model("gpt-4o", _price(2.5, 10.0, cached=1.25)),
        _model("gpt-4o-mini", _price(0.15, 0.6, cached=0.075)),
        _model("gpt-4.1", _price(2.0, 8.0, cached=0.5)),
        _model("gpt-4.1-mini", _price(0.4, 1.6, cached=0.1)),
        _model("gpt-4.1-nano", _price(0.1, 0.4, cached=0.025)),
        _model("gpt-5", _price(1.25, 10.0, cached=0.125, updated="2025-08-07"), GPT5),
        _model("gpt-5-mini", _price(0.25, 2.0, cached=0.025, updated="2025-08-07"), GPT5),
        _model("o3", _price(2.0, 8.0, cached=0.5), OPENAI_REASONING),
        _model("o4-mini", _price(1.1, 4.4, cached=0.275), OPENAI_REASONING),
    ),
    default_model="gpt-4o",
    model_patterns=_patterns(r"^gpt", r"^o\d", r"^text-embedding"),
    hosted=True,
    supports_tool_usage_control=True,
)

ANTHROPIC = ModelCatalogEntry(
    provider_id=ProviderId.ANTHROPIC,
    name="Anthropic",
    models=(
        _model("claude-sonnet-4-5", _price(3.0, 15.0, cached=0.3, updated="2025-09-29"),
               CLAUDE_THINKING),
        _model("claude-opus-4-1", _price(15.0, 75.0, cached=1.5, updated="2025-08-05"),
               CLAUDE_THINKING),
        _model("claude-haiku-4-5", _price(1.0, 5.0, cached=0.1, updated="2025-10-15"),
               CLAUDE_THINKING),
        _model("claude-3-7-sonnet-latest", _price(3.0, 15.0, cached=0.3), TEMP_0_1),
    ),
    default_model="claude-sonnet-4-5",
    model_patterns=_patterns(r"^claude"),
    tool_family=ToolFamily.TOOL_NAME,
    hosted=True,
    supports_tool_usage_control=True,
)

GOOGLE = ModelCatalogEntry(
    provider_id=ProviderId.GOOGLE,
    name="Google",
    models=(
        _model("gemini-2.5-pro", _price(1.25, 10.0, cached=0.31), GEMINI_THINKING),
        _model("gemini-2.5-flash", _price(0.3, 2.5, cached=0.075), GEMINI_THINKING),
        _model("gemini-2.0-flash", _price(0.1, 0.4, cached=0.025)),
    ),
    default_model="gemini-2.5-pro",
    model_patterns=_patterns(r"^gemini"),
    tool_family=ToolFamily.ALLOWED_FUNCTION_NAMES,
    hosted=True,
    supports_tool_usage_control=True,
)

VERTEX = ModelCatalogEntry(
    provider_id=ProviderId.VERTEX,
    name="Vertex AI",
    models=(
        _model("vertex/gemini-2.5-pro", _price(1.25, 10.0, cached=0.31), GEMINI_THINKING),
        _model("vertex/gemini-2.5-flash", _price(0.3, 2.5, cached=0.075), GEMINI_THINKING),
    ),
    default_model="vertex/gemini-2.5-pro",
    model_patterns=_patterns(r"^vertex/"),
    tool_family=ToolFamily.ALLOWED_FUNCTION_NAMES,
    credential_mode=CredentialMode.VENDOR_CHAIN,
    supports_tool_usage_control=True,
)

AZURE_OPENAI = ModelCatalogEntry(
    provider_id=ProviderId.AZURE_OPENAI,
    name="Azure OpenAI",
    models=(
        _model("azure/gpt-4o", _price(2.5, 10.0, cached=1.25)),
        _model("azure/gpt-4.1", _price(2.0, 8.0, cached=0.5)),
        _model("azure/o3", _price(2.0, 8.0, cached=0.5), OPENAI_REASONING),
    ),
    default_model="azure/gpt-4o",
    model_patterns=_patterns(r"^azure/"),
    supports_tool_usage_control=True,
)

AZURE_ANTHROPIC = ModelCatalogEntry(
    provider_id=ProviderId.AZURE_ANTHROPIC,
    name="Azure Anthropic",
    models=(
        _model("azure-anthropic/claude-sonnet-4-5",
               _price(3.0, 15.0, cached=0.3, updated="2025-09-29"), CLAUDE_THINKING),
        _model("azure-anthropic/claude-opus-4-1",
               _price(15.0, 75.0, cached=1.5, updated="2025-08-05"), CLAUDE_THINKING),
    ),
    default_model="azure-anthropic/claude-sonnet-4-5",
    model_patterns=_patterns(r"^azure-anthropic/"),
    tool_family=ToolFamily.TOOL_NAME,
    supports_tool_usage_control=True,
)

DEEPSEEK = ModelCatalogEntry(
    provider_id=ProviderId.DEEPSEEK,
    name="DeepSeek",
    models=(
        _model("deepseek-chat", _price(0.27, 1.1, cached=0.07)),
        _model("deepseek-v3", _price(0.27, 1.1, cached=0.07)),
        _model("deepseek-r1", _price(0.55, 2.19, cached=0.14),
               ModelCapabilities(max_output_tokens=32768)),
    ),
    default_model="deepseek-chat",
    model_patterns=_patterns(r"^deepseek"),
    supports_tool_usage_control=True,
)

XAI = ModelCatalogEntry(
    provider_id=ProviderId.XAI,
    name="xAI",
    models=(
        _model("grok-4-latest", _price(3.0, 15.0, cached=0.75, updated="2025-07-10")),
        _model("grok-3-latest", _price(3.0, 15.0, cached=0.75)),
        _model("grok-3-fast-latest", _price(5.0, 25.0, cached=1.25)),
    ),
    default_model="grok-4-latest",
    model_patterns=_patterns(r"^grok"),
    supports_tool_usage_control=True,
)

CEREBRAS = ModelCatalogEntry(
    provider_id=ProviderId.CEREBRAS,
    name="Cerebras",
    models=(
        _model("cerebras/llama-3.3-70b", _price(0.85, 1.2)),
        _model("cerebras/gpt-oss-120b", _price(0.25, 0.69, updated="2025-08-05")),
    ),
    default_model="cerebras/llama-3.3-70b",
    model_patterns=_patterns(r"^cerebras"),
    supports_tool_usage_control=True,
)

GROQ = ModelCatalogEntry(
    provider_id=ProviderId.GROQ,
    name="Groq",
    models=(
        _model("groq/openai/gpt-oss-120b", _price(0.15, 0.75, updated="2025-08-05")),
        _model("groq/llama-3.3-70b-versatile", _price(0.59, 0.79)),
        _model("groq/llama-3.1-8b-instant", _price(0.05, 0.08)),
    ),
    default_model="groq/openai/gpt-oss-120b",
    model_patterns=_patterns(r"^groq"),
    supports_tool_usage_control=True,
)

MISTRAL = ModelCatalogEntry(
    provider_id=ProviderId.MISTRAL,
    name="Mistral AI",
    models=(
        _model("mistral-large-latest", _price(2.0, 6.0), TEMP_0_1),
        _model("mistral-medium-latest", _price(0.4, 2.0), TEMP_0_1),
        _model("magistral-medium-latest", _price(2.0, 5.0), TEMP_0_1),
        _model("codestral-latest", _price(0.3, 0.9), TEMP_0_1),
        _model("ministral-8b-latest", _price(0.1, 0.1), TEMP_0_1),
    ),
    default_model="mistral-large-latest",
    model_patterns=_patterns(
        r"^mistral", r"^magistral", r"^open-mistral", r"^codestral",
        r"^ministral", r"^devstral",
    ),
    supports_tool_usage_control=True,
)

BEDROCK = ModelCatalogEntry(
    provider_id=ProviderId.BEDROCK,
    name="AWS Bedrock",
    models=(
        _model("bedrock/anthropic.claude-sonnet-4-5-20250929-v1:0",
               _price(3.0, 15.0, cached=0.3, updated="2025-09-29"), CLAUDE_THINKING),
        _model("bedrock/amazon.nova-pro-v1:0", _price(0.8, 3.2, cached=0.2), TEMP_0_1),
        _model("bedrock/meta.llama3-3-70b-instruct-v1:0", _price(0.72, 0.72), TEMP_0_1),
    ),
    default_model="bedrock/anthropic.claude-sonnet-4-5-20250929-v1:0",
    model_patterns=_patterns(r"^bedrock/"),
    credential_mode=CredentialMode.VENDOR_CHAIN,
    supports_tool_usage_control=True,
)

OPENROUTER = ModelCatalogEntry(
    provider_id=ProviderId.OPENROUTER,
    name="OpenRouter",
    description="Routed access to many upstream vendors",
    model_patterns=_patterns(r"^openrouter/"),
    dynamic=True,
    supports_tool_usage_control=True,
)

PROVIDER_DEFINITIONS: tuple[ModelCatalogEntry, ...] = (
    OLLAMA,
    VLLM,
    OPENAI,
    ANTHROPIC,
    GOOGLE,
    VERTEX,
    AZURE_OPENAI,
    AZURE_ANTHROPIC,
    DEEPSEEK,
    XAI,
    CEREBRAS,
    GROQ,
    MISTRAL,
    BEDROCK,
    OPENROUTER,
)

# ---------------------------------------------------------------------------
# Embedding pricing (output is not billed)
# ---------------------------------------------------------------------------

EMBEDDING_MODEL_PRICING: dict[str, PricingEntry] = {
    "text-embedding-3-small": _price(0.02, 0.0, updated="2025-07-10"),
    "text-embedding-3-large": _price(0.13, 0.0, updated="2025-07-10"),
    "text-embedding-ada-002": _price(0.1, 0.0, updated="2025-07-10"),
}


def build_default_snapshot() -> CatalogSnapshot:
    """Fresh snapshot of the built-in catalog."""
    return CatalogSnapshot(
        entries=PROVIDER_DEFINITIONS,
        embedding_pricing=EMBEDDING_MODEL_PRICING,
    )


# ---------------------------------------------------------------------------
# Process-wide holder
# ---------------------------------------------------------------------------

_holder: Optional[CatalogHolder] = None
_holder_lock = threading.Lock()


def get_catalog_holder() -> CatalogHolder:
    """The process-wide CatalogHolder, created on first use."""
    global _holder
    if _holder is None:
        with _holder_lock:
            if _holder is None:
                _holder = CatalogHolder(build_default_snapshot())
    return _holder


def get_catalog() -> CatalogSnapshot:
    """Current process-wide snapshot."""
    return get_catalog_holder().snapshot


def reset_catalog() -> None:
    """Drop the process-wide holder. Used by tests."""
    global _holder
    with _holder_lock:
        _holder = None
