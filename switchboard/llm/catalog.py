"""
Model Catalog — immutable provider/model registry snapshots.

A CatalogSnapshot answers every static question about providers and
models: which provider enumerates a model, which regex patterns claim
dynamic model names, what a model costs, and which request knobs
(temperature, reasoning effort, verbosity, thinking) it accepts.

Snapshots are never mutated. Refreshing a dynamic model list (Ollama,
vLLM, OpenRouter) or loading an admin-edited catalog file builds a new
snapshot, and CatalogHolder swaps the reference in one assignment.
Readers grab `holder.snapshot` once and keep using that object, so a
concurrent refresh can never change a list they are iterating.

Usage:
    from switchboard.llm.model_defs import get_catalog_holder

    snapshot = get_catalog_holder().snapshot
    snapshot.provider_models("anthropic")
    snapshot.max_temperature("gpt-4o")          # → 2.0

    get_catalog_holder().update_dynamic_models("ollama", ["llama3.1:8b"])
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

import httpx

from switchboard.exceptions import CatalogError

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_TOKENS = 4096


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ProviderId(str, Enum):
    """Every backend known at build time, in registration order."""

    OLLAMA = "ollama"
    VLLM = "vllm"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    VERTEX = "vertex"
    AZURE_OPENAI = "azure-openai"
    AZURE_ANTHROPIC = "azure-anthropic"
    DEEPSEEK = "deepseek"
    XAI = "xai"
    CEREBRAS = "cerebras"
    GROQ = "groq"
    MISTRAL = "mistral"
    BEDROCK = "bedrock"
    OPENROUTER = "openrouter"


class ToolFamily(str, Enum):
    """Groups of vendors sharing one wire-level tool-calling shape."""

    TOOL_NAME = "tool-name"                          # {"type": "tool", "name": ...}
    FUNCTION_CALL = "function-call"                  # OpenAI-compatible
    ALLOWED_FUNCTION_NAMES = "allowed-function-names"  # Gemini functionCallingConfig


class CredentialMode(str, Enum):
    """How a provider authenticates requests."""

    API_KEY = "api-key"            # key string (BYOK, rotation or caller key)
    LOCAL = "local"                # self-hosted inference, no key needed
    VENDOR_CHAIN = "vendor-chain"  # ambient cloud credentials (AWS, GCP)


# ---------------------------------------------------------------------------
# Pricing & Capabilities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PricingEntry:
    """
    Token prices in USD per million tokens.

    cached_input is the discounted price for prompt-cache hits; None
    means the model has no cached pricing and the standard input price
    applies.
    """

    input: float
    output: float
    updated_at: str
    cached_input: Optional[float] = None

    def __post_init__(self) -> None:
        prices = {"input": self.input, "output": self.output}
        if self.cached_input is not None:
            prices["cached_input"] = self.cached_input
        negative = [name for name, value in prices.items() if value < 0]
        if negative:
            raise CatalogError(
                f"Prices must be >= 0, got negative {', '.join(negative)}",
                details=prices,
            )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "input": self.input,
            "output": self.output,
            "updatedAt": self.updated_at,
        }
        if self.cached_input is not None:
            data["cachedInput"] = self.cached_input
        return data


@dataclass(frozen=True)
class ModelCapabilities:
    """Request knobs a model accepts. Empty tuples mean unsupported."""

    max_temperature: Optional[float] = None   # None → temperature unsupported
    reasoning_effort: tuple[str, ...] = ()
    verbosity: tuple[str, ...] = ()
    thinking: tuple[str, ...] = ()
    max_output_tokens: Optional[int] = None


@dataclass(frozen=True)
class ModelDefinition:
    """One canonical model id with its pricing and capabilities."""

    id: str
    pricing: Optional[PricingEntry] = None
    capabilities: ModelCapabilities = field(default_factory=ModelCapabilities)


# ---------------------------------------------------------------------------
# Provider Entry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ModelCatalogEntry:
    """
    Static metadata for one provider.

    models:           Ordered, unique canonical models.
    model_patterns:   Regexes claiming dynamic model names (tested on the
                      lowercased model string, in registration order).
    tool_family:      Which tool-choice wire shape the vendor speaks.
    credential_mode:  How requests authenticate.
    accepts_bearer_token: For local providers, whether a caller key is
                      forwarded (vLLM) or dropped (Ollama).
    hosted:           Platform supplies working keys for these models.
    dynamic:          Model list is discovered at runtime, not enumerated.
    """

    provider_id: ProviderId
    name: str
    models: tuple[ModelDefinition, ...] = ()
    default_model: str = ""
    model_patterns: tuple[re.Pattern, ...] = ()
    tool_family: ToolFamily = ToolFamily.FUNCTION_CALL
    credential_mode: CredentialMode = CredentialMode.API_KEY
    accepts_bearer_token: bool = True
    hosted: bool = False
    dynamic: bool = False
    supports_tool_usage_control: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for model in self.models:
            if model.id in seen:
                raise CatalogError(
                    f"Duplicate model '{model.id}' in provider {self.provider_id.value}",
                    details={"provider": self.provider_id.value, "model": model.id},
                )
            seen.add(model.id)
        if self.models and self.default_model and self.default_model not in seen:
            raise CatalogError(
                f"Default model '{self.default_model}' is not listed for "
                f"provider {self.provider_id.value}",
                details={"provider": self.provider_id.value},
            )

    @property
    def model_ids(self) -> tuple[str, ...]:
        return tuple(m.id for m in self.models)

    def matches_pattern(self, folded_model: str) -> bool:
        return any(p.search(folded_model) for p in self.model_patterns)

    def with_models(self, model_ids: Iterable[str]) -> "ModelCatalogEntry":
        """Return a copy listing exactly `model_ids` (first occurrence kept)."""
        unique: list[str] = []
        for model_id in model_ids:
            if model_id and model_id not in unique:
                unique.append(model_id)
        existing = {m.id: m for m in self.models}
        models = tuple(existing.get(m, ModelDefinition(id=m)) for m in unique)
        default = self.default_model if self.default_model in unique else (
            unique[0] if unique else ""
        )
        return replace(self, models=models, default_model=default)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CatalogSnapshot:
    """
    Immutable view of every provider entry plus embedding pricing.

    Lookup indexes are computed once at construction. The exact-match
    index maps lowercased model ids to the FIRST provider that
    enumerates them; registration order encodes provider precedence.
    """

    entries: tuple[ModelCatalogEntry, ...]
    embedding_pricing: Mapping[str, PricingEntry] = field(default_factory=dict)
    version: int = 1

    _by_provider: Mapping[ProviderId, ModelCatalogEntry] = field(
        init=False, repr=False, compare=False,
    )
    _exact_index: Mapping[str, ProviderId] = field(
        init=False, repr=False, compare=False,
    )
    _definitions: Mapping[str, ModelDefinition] = field(
        init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        by_provider: dict[ProviderId, ModelCatalogEntry] = {}
        exact: dict[str, ProviderId] = {}
        definitions: dict[str, ModelDefinition] = {}

        for entry in self.entries:
            if entry.provider_id in by_provider:
                raise CatalogError(
                    f"Provider {entry.provider_id.value} registered twice",
                    details={"provider": entry.provider_id.value},
                )
            by_provider[entry.provider_id] = entry
            for model in entry.models:
                folded = model.id.lower()
                exact.setdefault(folded, entry.provider_id)
                definitions.setdefault(folded, model)

        embeddings = {k.lower(): v for k, v in dict(self.embedding_pricing).items()}

        object.__setattr__(self, "embedding_pricing", MappingProxyType(embeddings))
        object.__setattr__(self, "_by_provider", MappingProxyType(by_provider))
        object.__setattr__(self, "_exact_index", MappingProxyType(exact))
        object.__setattr__(self, "_definitions", MappingProxyType(definitions))

    # --- Provider lookups ---

    def get(self, provider_id: str | ProviderId) -> ModelCatalogEntry:
        """Entry for a provider id. Raises CatalogError if unknown."""
        try:
            return self._by_provider[ProviderId(provider_id)]
        except (ValueError, KeyError):
            raise CatalogError(
                f"Unknown provider: {provider_id}",
                details={"provider": str(provider_id)},
            ) from None

    def has_provider(self, provider_id: str | ProviderId) -> bool:
        try:
            return ProviderId(provider_id) in self._by_provider
        except ValueError:
            return False

    def provider_ids(self) -> list[ProviderId]:
        return [e.provider_id for e in self.entries]

    def provider_models(self, provider_id: str | ProviderId) -> list[str]:
        return list(self.get(provider_id).model_ids)

    def default_model(self, provider_id: str | ProviderId) -> str:
        return self.get(provider_id).default_model

    def all_models(self) -> list[str]:
        return [m for e in self.entries for m in e.model_ids]

    @property
    def exact_index(self) -> Mapping[str, ProviderId]:
        """Lowercased model id → first provider enumerating it."""
        return self._exact_index

    def match_pattern(self, folded_model: str) -> Optional[ProviderId]:
        """First provider (registration order) whose pattern claims the model."""
        for entry in self.entries:
            if entry.matches_pattern(folded_model):
                return entry.provider_id
        return None

    def hosted_models(self) -> list[str]:
        """Models for which the platform supplies credentials."""
        return [m for e in self.entries if e.hosted for m in e.model_ids]

    def is_hosted_model(self, model: str) -> bool:
        folded = model.lower()
        return any(m.lower() == folded for m in self.hosted_models())

    def providers_with_tool_usage_control(self) -> list[ProviderId]:
        return [e.provider_id for e in self.entries if e.supports_tool_usage_control]

    def supports_tool_usage_control(self, provider_id: str | ProviderId) -> bool:
        return self.has_provider(provider_id) and self.get(provider_id).supports_tool_usage_control

    # --- Model lookups ---

    def model_definition(self, model: str) -> Optional[ModelDefinition]:
        return self._definitions.get(model.lower())

    def model_pricing(self, model: str) -> Optional[PricingEntry]:
        definition = self.model_definition(model)
        return definition.pricing if definition else None

    def embedding_pricing_for(self, model: str) -> Optional[PricingEntry]:
        return self.embedding_pricing.get(model.lower())

    def _capabilities(self, model: str) -> ModelCapabilities:
        definition = self.model_definition(model)
        return definition.capabilities if definition else ModelCapabilities()

    def supports_temperature(self, model: str) -> bool:
        return self._capabilities(model).max_temperature is not None

    def max_temperature(self, model: str) -> Optional[float]:
        return self._capabilities(model).max_temperature

    def reasoning_effort_values(self, model: str) -> Optional[list[str]]:
        values = self._capabilities(model).reasoning_effort
        return list(values) if values else None

    def verbosity_values(self, model: str) -> Optional[list[str]]:
        values = self._capabilities(model).verbosity
        return list(values) if values else None

    def thinking_levels(self, model: str) -> Optional[list[str]]:
        values = self._capabilities(model).thinking
        return list(values) if values else None

    def max_output_tokens(self, model: str) -> int:
        return self._capabilities(model).max_output_tokens or DEFAULT_MAX_OUTPUT_TOKENS

    # --- Derivation ---

    def with_provider_models(
        self,
        provider_id: str | ProviderId,
        model_ids: Iterable[str],
    ) -> "CatalogSnapshot":
        """New snapshot with one provider's model list replaced."""
        target = self.get(provider_id)
        entries = tuple(
            e.with_models(model_ids) if e.provider_id == target.provider_id else e
            for e in self.entries
        )
        return CatalogSnapshot(
            entries=entries,
            embedding_pricing=dict(self.embedding_pricing),
            version=self.version + 1,
        )


# ---------------------------------------------------------------------------
# Holder (atomic swap)
# ---------------------------------------------------------------------------

class CatalogHolder:
    """
    Owns the process-wide current snapshot.

    Reads are a single attribute load. Writers serialize on a lock so
    two refreshes cannot lose each other's update, then publish the new
    snapshot with one assignment.
    """

    def __init__(self, snapshot: CatalogSnapshot):
        self._snapshot = snapshot
        self._write_lock = threading.Lock()

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def swap(self, snapshot: CatalogSnapshot) -> CatalogSnapshot:
        """Publish a replacement snapshot. Returns the previous one."""
        with self._write_lock:
            previous = self._snapshot
            self._snapshot = snapshot
        logger.info(
            "catalog_swapped",
            extra={"from_version": previous.version, "to_version": snapshot.version},
        )
        return previous

    def update_dynamic_models(
        self,
        provider_id: str | ProviderId,
        model_ids: Iterable[str],
    ) -> CatalogSnapshot:
        """
        Replace the model list of a dynamic provider (Ollama, vLLM,
        OpenRouter) and publish the resulting snapshot.

        Raises:
            CatalogError: If the provider enumerates a fixed model list.
        """
        model_ids = list(model_ids)
        with self._write_lock:
            current = self._snapshot
            entry = current.get(provider_id)
            if not entry.dynamic:
                raise CatalogError(
                    f"Provider {entry.provider_id.value} has a fixed model list",
                    details={"provider": entry.provider_id.value},
                )
            updated = current.with_provider_models(entry.provider_id, model_ids)
            self._snapshot = updated

        logger.info(
            "dynamic_models_updated",
            extra={
                "provider": entry.provider_id.value,
                "model_count": len(updated.get(entry.provider_id).models),
                "to_version": updated.version,
            },
        )
        return updated

    def refresh_from_file(self, path: str) -> CatalogSnapshot:
        """
        Load an admin-edited YAML catalog over the current snapshot and
        publish it. Providers the file omits keep their current entries,
        including discovered dynamic models.

        Raises:
            CatalogError: The file is missing or invalid. The current
                          snapshot stays published.
        """
        from switchboard.config.loader import load_catalog_file

        with self._write_lock:
            current = self._snapshot
            snapshot = load_catalog_file(path, base=current)
            snapshot = replace(snapshot, version=current.version + 1)
            self._snapshot = snapshot

        logger.info(
            "catalog_refreshed_from_file",
            extra={"source": str(path), "to_version": snapshot.version},
        )
        return snapshot

    async def refresh_ollama_models(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> CatalogSnapshot:
        """Discover locally pulled Ollama models and publish them."""
        models = await discover_ollama_models(base_url, client=client)
        return self.update_dynamic_models(ProviderId.OLLAMA, models)

    async def refresh_vllm_models(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> CatalogSnapshot:
        """Discover the models a vLLM server is serving and publish them."""
        models = await discover_vllm_models(base_url, api_key=api_key, client=client)
        return self.update_dynamic_models(ProviderId.VLLM, models)


# ---------------------------------------------------------------------------
# Local model discovery
# ---------------------------------------------------------------------------

async def _get_json(
    url: str,
    client: Optional[httpx.AsyncClient],
    timeout: float,
    headers: Optional[dict[str, str]] = None,
) -> Any:
    if client is None:
        async with httpx.AsyncClient(timeout=timeout) as own_client:
            response = await own_client.get(url, headers=headers)
    else:
        response = await client.get(url, headers=headers)
    response.raise_for_status()
    return response.json()


def _local_base_url(base_url: Optional[str], setting: str) -> str:
    from switchboard.config.settings import get_settings

    resolved = base_url or getattr(get_settings(), setting)
    if not resolved:
        raise CatalogError(
            f"No base URL given and {setting.upper()} is not configured",
            details={"setting": setting},
        )
    return resolved.rstrip("/")


async def discover_ollama_models(
    base_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
) -> list[str]:
    """
    List models pulled into an Ollama server via GET /api/tags.

    Args:
        base_url: Server root, e.g. "http://localhost:11434". Defaults
                  to the OLLAMA_URL setting.
        client: Optional shared httpx client (a temporary one is created
                and closed otherwise).

    Raises:
        CatalogError: If no base URL is given or configured.
        httpx.HTTPError: If the server is unreachable or errors.
    """
    base_url = _local_base_url(base_url, "ollama_url")
    payload = await _get_json(f"{base_url}/api/tags", client, timeout)
    models = [m.get("name", "") for m in payload.get("models", []) if m.get("name")]
    logger.debug(
        "ollama_models_discovered",
        extra={"base_url": base_url, "model_count": len(models)},
    )
    return models


async def discover_vllm_models(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
) -> list[str]:
    """
    List served models from a vLLM server's OpenAI-compatible
    GET /v1/models, prefixed "vllm/" the way requests address them.

    base_url and api_key default to VLLM_BASE_URL and VLLM_API_KEY.
    """
    from switchboard.config.settings import get_settings

    base_url = _local_base_url(base_url, "vllm_base_url")
    api_key = api_key or get_settings().vllm_api_key
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else None

    payload = await _get_json(f"{base_url}/v1/models", client, timeout, headers=headers)
    models = [f"vllm/{m['id']}" for m in payload.get("data", []) if m.get("id")]
    logger.debug(
        "vllm_models_discovered",
        extra={"base_url": base_url, "model_count": len(models)},
    )
    return models
