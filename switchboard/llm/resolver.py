"""
Model Resolver — maps a requested model name to the provider serving it.

Resolution order (on the lowercased name):
    1. Exact match against enumerated models (first registered provider wins)
    2. Provider regex patterns, in registration order
    3. Fallback to Ollama with a warning, or UnavailableModel when
       strict resolution is enabled

Blacklists are applied after resolution, so a blacklisted provider
makes its models unavailable even when another pattern would also match.

Usage:
    resolver = ModelResolver()
    resolver.resolve("Claude-Sonnet-4-5")   # → ProviderId.ANTHROPIC
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from switchboard.config.settings import Settings, get_settings
from switchboard.exceptions import UnavailableModel, UnavailableProvider
from switchboard.llm.availability import BlacklistRules
from switchboard.llm.catalog import (
    CatalogHolder,
    CatalogSnapshot,
    ModelCatalogEntry,
    ProviderId,
)
from switchboard.llm.model_defs import get_catalog_holder

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER = ProviderId.OLLAMA

CatalogSource = Union[CatalogSnapshot, CatalogHolder]


def current_snapshot(catalog: Optional[CatalogSource]) -> CatalogSnapshot:
    """Resolve a snapshot from an explicit snapshot, a holder, or the default."""
    if catalog is None:
        return get_catalog_holder().snapshot
    if isinstance(catalog, CatalogHolder):
        return catalog.snapshot
    return catalog


class ModelResolver:
    """
    Stateless resolver over an injected catalog.

    Pass a CatalogHolder to always see the latest snapshot, or a fixed
    CatalogSnapshot to pin one. Settings default to the process-wide
    instance and are re-read on every call.
    """

    def __init__(
        self,
        catalog: Optional[CatalogSource] = None,
        settings: Optional[Settings] = None,
    ):
        self._catalog = catalog
        self._settings = settings

    @property
    def snapshot(self) -> CatalogSnapshot:
        return current_snapshot(self._catalog)

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def rules(self) -> BlacklistRules:
        return BlacklistRules.from_settings(self.settings)

    # --- Resolution ---

    def resolve(self, model: str) -> ProviderId:
        """
        Return the provider serving `model`.

        Raises:
            UnavailableProvider: The resolved provider is blacklisted.
            UnavailableModel: The model is blacklisted, or unmatched
                              under strict resolution.
        """
        snapshot = self.snapshot
        settings = self.settings
        folded = model.lower()

        provider_id = snapshot.exact_index.get(folded)
        if provider_id is None:
            provider_id = snapshot.match_pattern(folded)

        if provider_id is None:
            if settings.strict_model_resolution:
                raise UnavailableModel(
                    f'Model "{model}" is not served by any provider',
                    model=model,
                )
            logger.warning(
                "model_provider_fallback",
                extra={"model": model, "provider": FALLBACK_PROVIDER.value},
            )
            provider_id = FALLBACK_PROVIDER

        rules = BlacklistRules.from_settings(settings)
        if rules.is_provider_blacklisted(provider_id.value):
            raise UnavailableProvider(
                f'Provider "{provider_id.value}" is not available',
                provider_id=provider_id.value,
            )
        if rules.is_model_blacklisted(folded):
            raise UnavailableModel(
                f'Model "{model}" is not available',
                model=model,
                provider_id=provider_id.value,
            )

        logger.debug(
            "model_resolved",
            extra={"model": model, "provider": provider_id.value},
        )
        return provider_id

    def provider_config(self, model: str) -> ModelCatalogEntry:
        """Catalog entry of the provider serving `model`."""
        return self.snapshot.get(self.resolve(model))

    # --- Listings ---

    def base_model_providers(self) -> dict[str, ProviderId]:
        """
        Enumerated model → provider map for non-dynamic providers,
        with blacklisted providers and models removed.
        """
        snapshot = self.snapshot
        rules = self.rules()
        result: dict[str, ProviderId] = {}
        for entry in snapshot.entries:
            if entry.dynamic or rules.is_provider_blacklisted(entry.provider_id.value):
                continue
            for model_id in entry.model_ids:
                folded = model_id.lower()
                if folded in result or rules.is_model_blacklisted(folded):
                    continue
                result[folded] = entry.provider_id
        return result

    def available_models(self, provider_id: str | ProviderId) -> list[str]:
        """A provider's models minus blacklisted ones; empty if the provider is."""
        rules = self.rules()
        entry = self.snapshot.get(provider_id)
        if rules.is_provider_blacklisted(entry.provider_id.value):
            return []
        return rules.filter_models(entry.model_ids)


def resolve_model_provider(
    model: str,
    catalog: Optional[CatalogSource] = None,
    settings: Optional[Settings] = None,
) -> ProviderId:
    """Resolve a model against the process-wide catalog and settings."""
    return ModelResolver(catalog, settings).resolve(model)
