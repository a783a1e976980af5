"""
Switchboard LLM orchestration.

    resolve_model_provider   model name → provider id
    resolve_credential       tiered API key resolution
    build_tool_policy        provider-agnostic tools → vendor payload
    advance_forced_tool_cycle  next turn's forced tool choice
    decode_stream            vendor stream → text deltas + usage
    compute_cost             token usage → USD
"""

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
    discover_ollama_models,
    discover_vllm_models,
)
from switchboard.llm.model_defs import get_catalog, get_catalog_holder
from switchboard.llm.availability import BlacklistRules
from switchboard.llm.resolver import ModelResolver, resolve_model_provider
from switchboard.llm.key_pool import KeyPool, RotatingKeyPool
from switchboard.llm.credentials import (
    CredentialOrigin,
    CredentialRequest,
    CredentialResolution,
    CredentialResolver,
    requires_api_key,
    resolve_credential,
    should_bill_model_usage,
)
from switchboard.llm.tools import (
    AllowedFunctions,
    AutoChoice,
    ForceFunction,
    ForceToolName,
    ToolChoice,
    ToolDescriptor,
    ToolPolicy,
    UnsetChoice,
    UsageControl,
    build_tool_policy,
)
from switchboard.llm.forced_tools import ForcedToolAdvance, advance_forced_tool_cycle
from switchboard.llm.streaming import StreamAccumulator, StreamUsage, collect_stream, decode_stream
from switchboard.llm.pricing import (
    CostResult,
    compute_cost,
    cost_multiplier,
    format_cost,
    get_model_pricing,
)

__all__ = [
    "AllowedFunctions",
    "AutoChoice",
    "BlacklistRules",
    "CatalogHolder",
    "CatalogSnapshot",
    "CostResult",
    "CredentialMode",
    "CredentialOrigin",
    "CredentialRequest",
    "CredentialResolution",
    "CredentialResolver",
    "ForceFunction",
    "ForceToolName",
    "ForcedToolAdvance",
    "KeyPool",
    "ModelCapabilities",
    "ModelCatalogEntry",
    "ModelDefinition",
    "ModelResolver",
    "PricingEntry",
    "ProviderId",
    "RotatingKeyPool",
    "StreamAccumulator",
    "StreamUsage",
    "ToolChoice",
    "ToolDescriptor",
    "ToolFamily",
    "ToolPolicy",
    "UnsetChoice",
    "UsageControl",
    "advance_forced_tool_cycle",
    "build_tool_policy",
    "collect_stream",
    "compute_cost",
    "cost_multiplier",
    "decode_stream",
    "discover_ollama_models",
    "discover_vllm_models",
    "format_cost",
    "get_catalog",
    "get_catalog_holder",
    "get_model_pricing",
    "requires_api_key",
    "resolve_credential",
    "resolve_model_provider",
    "should_bill_model_usage",
]
