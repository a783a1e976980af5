"""
Pydantic schema for admin-edited model catalog files.

A catalog file lists providers in registration order. Fields left out
of a provider block inherit from the built-in definition of the same
provider id, so a file can override just a model list or a price.

Example:
    providers:
      - id: openai
        default_model: gpt-4o
        models:
          - id: gpt-4o
            pricing: {input: 2.5, cached_input: 1.25, output: 10.0, updated_at: "2025-06-17"}
            capabilities: {max_temperature: 2.0}
    embedding_pricing:
      text-embedding-3-small: {input: 0.02, output: 0.0, updated_at: "2025-07-10"}
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from switchboard.llm.catalog import CredentialMode, ProviderId, ToolFamily


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class PricingSchema(BaseModel):
    """USD per million tokens."""
    input: float = Field(..., ge=0.0)
    cached_input: Optional[float] = Field(None, ge=0.0)
    output: float = Field(..., ge=0.0)
    updated_at: str = Field(..., min_length=1)


class CapabilitiesSchema(BaseModel):
    max_temperature: Optional[float] = Field(None, ge=0.0)
    reasoning_effort: list[str] = Field(default_factory=list)
    verbosity: list[str] = Field(default_factory=list)
    thinking: list[str] = Field(default_factory=list)
    max_output_tokens: Optional[int] = Field(None, ge=1)


class ModelSchema(BaseModel):
    id: str = Field(..., min_length=1)
    pricing: Optional[PricingSchema] = None
    capabilities: CapabilitiesSchema = Field(default_factory=CapabilitiesSchema)


class ProviderSchema(BaseModel):
    """One provider block. Unset optional fields inherit built-in values."""
    id: ProviderId
    name: Optional[str] = None
    description: Optional[str] = None
    models: Optional[list[ModelSchema]] = None
    default_model: Optional[str] = None
    model_patterns: Optional[list[str]] = None
    tool_family: Optional[ToolFamily] = None
    credential_mode: Optional[CredentialMode] = None
    accepts_bearer_token: Optional[bool] = None
    hosted: Optional[bool] = None
    dynamic: Optional[bool] = None
    supports_tool_usage_control: Optional[bool] = None

    @field_validator("models")
    @classmethod
    def unique_model_ids(cls, v: Optional[list[ModelSchema]]) -> Optional[list[ModelSchema]]:
        if v is None:
            return v
        seen: set[str] = set()
        for model in v:
            if model.id in seen:
                raise ValueError(f"Duplicate model id: {model.id}")
            seen.add(model.id)
        return v

    @field_validator("model_patterns")
    @classmethod
    def patterns_compile(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        for pattern in v or []:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid model pattern '{pattern}': {e}") from e
        return v

    @model_validator(mode="after")
    def default_model_listed(self) -> "ProviderSchema":
        if self.models and self.default_model:
            if self.default_model not in {m.id for m in self.models}:
                raise ValueError(
                    f"default_model '{self.default_model}' is not in models"
                )
        return self


# ---------------------------------------------------------------------------
# Top-level
# ---------------------------------------------------------------------------

class CatalogFileSchema(BaseModel):
    providers: list[ProviderSchema] = Field(..., min_length=1)
    embedding_pricing: dict[str, PricingSchema] = Field(default_factory=dict)

    @field_validator("providers")
    @classmethod
    def unique_provider_ids(cls, v: list[ProviderSchema]) -> list[ProviderSchema]:
        ids = [p.id for p in v]
        duplicates = sorted({pid.value for pid in ids if ids.count(pid) > 1})
        if duplicates:
            raise ValueError(f"Duplicate provider ids: {', '.join(duplicates)}")
        return v
