"""
Custom exception hierarchy for Switchboard.

Structured error handling with clear categories:
- Policy denials (blacklisted provider or model, user-facing, not retryable)
- Configuration errors (no usable credential, invalid catalog)
- Infrastructure faults (key pool exhausted, decryption failed), which
  trigger credential tier fallback rather than surfacing directly
- Stream decode failures (terminate the stream, never retried internally)
- Pricing lookups (non-fatal, handled by the cost calculator)

Usage:
    from switchboard.exceptions import MissingCredential, UnavailableModel

    try:
        provider_id = resolve_model_provider("gpt-4o")
    except UnavailableModel as e:
        return {"error": str(e), "model": e.model}
"""

from __future__ import annotations

from typing import Optional


class SwitchboardError(Exception):
    """
    Base exception for all Switchboard errors.

    All custom exceptions inherit from this, so you can catch
    `SwitchboardError` to handle any orchestration-layer error.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Availability (policy denial) ──────────────────────────────────


class UnavailableProvider(SwitchboardError):
    """
    Raised when the provider serving a model has been blacklisted
    by the operator (BLACKLISTED_PROVIDERS).
    """

    def __init__(
        self,
        message: str,
        *,
        provider_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider_id = provider_id


class UnavailableModel(SwitchboardError):
    """
    Raised when a model is blacklisted (exact name or prefix rule),
    or cannot be resolved while strict resolution is enabled.
    """

    def __init__(
        self,
        message: str,
        *,
        model: Optional[str] = None,
        provider_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.model = model
        self.provider_id = provider_id


# ── Configuration Errors ──────────────────────────────────────────


class MissingCredential(SwitchboardError):
    """
    Raised when no usable API key exists for a provider/model pair.

    Actionable: the caller should add a key (workspace BYOK, server
    rotation keys, or a key supplied with the request).
    """

    def __init__(
        self,
        message: str,
        *,
        provider_id: Optional[str] = None,
        model: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider_id = provider_id
        self.model = model


class CatalogError(SwitchboardError):
    """
    Raised when a model catalog violates its invariants
    (duplicate model ids, negative prices, unknown default model)
    or a catalog file cannot be loaded.
    """

    def __init__(
        self,
        message: str,
        *,
        source: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.source = source


# ── Infrastructure Faults ─────────────────────────────────────────


class KeyPoolError(SwitchboardError):
    """Base for rotating server-key pool failures."""

    def __init__(
        self,
        message: str,
        *,
        family: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.family = family


class PoolExhausted(KeyPoolError):
    """No server-managed key is configured for the requested family."""


class PoolMisconfigured(KeyPoolError):
    """The pool has no rotation set up for the requested family at all."""


class DecryptionFailed(SwitchboardError):
    """
    Raised by a secret store when a stored ciphertext cannot be
    decrypted (wrong master key, corrupted value).
    """


# ── Streaming ─────────────────────────────────────────────────────


class StreamDecodeError(SwitchboardError):
    """
    Raised when a vendor stream fails mid-flight or yields a chunk
    that cannot be decoded. Terminates the normalized stream.
    """

    def __init__(
        self,
        message: str,
        *,
        provider_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider_id = provider_id


# ── Pricing ───────────────────────────────────────────────────────


class PricingNotFound(SwitchboardError):
    """
    No pricing entry exists for a model.

    Non-fatal: cost calculation falls back to default pricing
    and logs a warning.
    """

    def __init__(
        self,
        message: str,
        *,
        model: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.model = model
