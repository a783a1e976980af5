"""
Operator blacklists for providers and models.

Rules come from two settings:
    BLACKLISTED_PROVIDERS="deepseek,xai"
    BLACKLISTED_MODELS="gpt-4o-mini,claude-*"

Model entries ending in "*" are prefix rules. Matching is
case-insensitive; "claude-*" blocks "Claude-3-Opus" but not
"my-claude-3-opus".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from switchboard.config.settings import Settings, get_settings


@dataclass(frozen=True)
class BlacklistRules:
    """Parsed blacklist. All values are lowercase."""

    providers: frozenset[str] = frozenset()
    models: frozenset[str] = frozenset()
    prefixes: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BlacklistRules":
        settings = settings or get_settings()
        return cls.parse(settings.blacklisted_providers, settings.blacklisted_models)

    @classmethod
    def parse(cls, providers: Iterable[str], models: Iterable[str]) -> "BlacklistRules":
        exact: set[str] = set()
        prefixes: list[str] = []
        for raw in models:
            entry = raw.strip().lower()
            if not entry:
                continue
            if entry.endswith("*"):
                prefixes.append(entry[:-1])
            else:
                exact.add(entry)
        return cls(
            providers=frozenset(p.strip().lower() for p in providers if p.strip()),
            models=frozenset(exact),
            prefixes=tuple(prefixes),
        )

    def is_provider_blacklisted(self, provider_id: str) -> bool:
        return str(getattr(provider_id, "value", provider_id)).lower() in self.providers

    def is_model_blacklisted(self, model: str) -> bool:
        folded = model.lower()
        if folded in self.models:
            return True
        return any(folded.startswith(prefix) for prefix in self.prefixes)

    def filter_models(self, models: Iterable[str]) -> list[str]:
        """Drop blacklisted models, preserving order."""
        return [m for m in models if not self.is_model_blacklisted(m)]


def is_provider_blacklisted(provider_id: str, settings: Optional[Settings] = None) -> bool:
    return BlacklistRules.from_settings(settings).is_provider_blacklisted(provider_id)


def is_model_blacklisted(model: str, settings: Optional[Settings] = None) -> bool:
    return BlacklistRules.from_settings(settings).is_model_blacklisted(model)


def filter_blacklisted_models(
    models: Iterable[str],
    settings: Optional[Settings] = None,
) -> list[str]:
    return BlacklistRules.from_settings(settings).filter_models(models)
