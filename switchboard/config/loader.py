"""
Catalog file loader.

Loads an admin-edited catalog YAML, validates it against the Pydantic
schema and merges it over the built-in catalog into a new
CatalogSnapshot. Providers missing from the file keep their built-in
entries; registration order always follows the built-in catalog.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from switchboard.config.schema import (
    CatalogFileSchema,
    ModelSchema,
    PricingSchema,
    ProviderSchema,
)
from switchboard.exceptions import CatalogError
from switchboard.llm.catalog import (
    CatalogSnapshot,
    ModelCapabilities,
    ModelCatalogEntry,
    ModelDefinition,
    PricingEntry,
)

logger = logging.getLogger(__name__)


def load_catalog_file(
    path: str | Path,
    base: Optional[CatalogSnapshot] = None,
) -> CatalogSnapshot:
    """
    Load and validate a catalog file.

    Args:
        path: Path to the YAML file.
        base: Snapshot to merge over. Defaults to the built-in catalog.

    Returns:
        A new CatalogSnapshot.

    Raises:
        CatalogError: If the file is missing, empty, not YAML, or fails
                      validation.
    """
    path = Path(path)
    if not path.exists():
        raise CatalogError(f"Catalog file not found: {path}", source=str(path))

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise CatalogError(
            f"Catalog file is not valid YAML: {path}", source=str(path),
        ) from e

    if raw is None:
        raise CatalogError(f"Catalog file is empty: {path}", source=str(path))

    snapshot = parse_catalog(raw, base=base, source=str(path))
    logger.info(
        "catalog_file_loaded",
        extra={"source": str(path), "providers": len(snapshot.entries)},
    )
    return snapshot


def parse_catalog(
    raw: Any,
    base: Optional[CatalogSnapshot] = None,
    source: str = "<memory>",
) -> CatalogSnapshot:
    """Validate an already-parsed catalog mapping and build a snapshot."""
    if not isinstance(raw, dict):
        raise CatalogError(
            f"Catalog must be a mapping with a 'providers' list: {source}",
            source=source,
        )

    try:
        parsed = CatalogFileSchema(**raw)
    except ValidationError as e:
        raise CatalogError(f"Invalid catalog '{source}':\n{e}", source=source) from e

    if base is None:
        from switchboard.llm.model_defs import build_default_snapshot

        base = build_default_snapshot()

    overrides = {p.id: p for p in parsed.providers}
    entries = tuple(
        _merge_provider(entry, overrides[entry.provider_id])
        if entry.provider_id in overrides else entry
        for entry in base.entries
    )

    embedding_pricing = dict(base.embedding_pricing)
    for model_id, pricing in parsed.embedding_pricing.items():
        embedding_pricing[model_id.lower()] = _to_pricing(pricing)

    # Entry and snapshot constructors re-check invariants
    return CatalogSnapshot(
        entries=entries,
        embedding_pricing=embedding_pricing,
        version=base.version,
    )


def _to_pricing(pricing: PricingSchema) -> PricingEntry:
    return PricingEntry(
        input=pricing.input,
        cached_input=pricing.cached_input,
        output=pricing.output,
        updated_at=pricing.updated_at,
    )


def _to_definition(model: ModelSchema) -> ModelDefinition:
    caps = model.capabilities
    return ModelDefinition(
        id=model.id,
        pricing=_to_pricing(model.pricing) if model.pricing else None,
        capabilities=ModelCapabilities(
            max_temperature=caps.max_temperature,
            reasoning_effort=tuple(caps.reasoning_effort),
            verbosity=tuple(caps.verbosity),
            thinking=tuple(caps.thinking),
            max_output_tokens=caps.max_output_tokens,
        ),
    )


def _merge_provider(entry: ModelCatalogEntry, block: ProviderSchema) -> ModelCatalogEntry:
    changes: dict[str, Any] = {}

    if block.models is not None:
        changes["models"] = tuple(_to_definition(m) for m in block.models)
        listed = [m.id for m in block.models]
        if block.default_model is None:
            changes["default_model"] = (
                entry.default_model if entry.default_model in listed
                else (listed[0] if listed else "")
            )
    if block.default_model is not None:
        changes["default_model"] = block.default_model
    if block.model_patterns is not None:
        changes["model_patterns"] = tuple(re.compile(p) for p in block.model_patterns)

    for name in (
        "name", "description", "tool_family", "credential_mode",
        "accepts_bearer_token", "hosted", "dynamic", "supports_tool_usage_control",
    ):
        value = getattr(block, name)
        if value is not None:
            changes[name] = value

    try:
        return replace(entry, **changes)
    except CatalogError as e:
        e.source = e.source or block.id.value
        raise
