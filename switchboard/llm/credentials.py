"""
Credential Resolver — picks the API key for one provider call.

Tiers, first applicable wins:
    1. Local inference (Ollama, vLLM)      → "empty" (vLLM forwards a caller key)
    2. Vendor credential chains (Bedrock,
       Vertex)                             → "vendor-native-credentials"
    3. Workspace BYOK key                  → decrypted at rest
    4. Rotating server key (hosted models) → minute-based pool
    5. Caller-supplied key                 → required otherwise

Tiers only fall through on an explicit miss: the BYOK store returning
None, DecryptionFailed, PoolExhausted or PoolMisconfigured. Any other
failure surfaces as MissingCredential with provider and model context.
Keys are never logged unmasked.

Usage:
    resolver = CredentialResolver(byok_store=store, secret_store=secrets)
    resolution = resolver.resolve(CredentialRequest(
        provider_id="anthropic",
        model_id="claude-sonnet-4-5",
        workspace_id="ws_123",
    ))
    resolution.origin   # → CredentialOrigin.BYOK
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from switchboard.config.settings import Settings, get_settings
from switchboard.exceptions import (
    DecryptionFailed,
    KeyPoolError,
    MissingCredential,
    SwitchboardError,
)
from switchboard.llm.catalog import CatalogSnapshot, CredentialMode, ProviderId
from switchboard.llm.key_pool import KeyPool, RotatingKeyPool
from switchboard.llm.resolver import CatalogSource, ModelResolver, current_snapshot
from switchboard.observability.logging_config import mask_key
from switchboard.security.secret_store import BYOKStore, FernetSecretStore, SecretStore

logger = logging.getLogger(__name__)

LOCAL_KEY_SENTINEL = "empty"
VENDOR_CHAIN_SENTINEL = "vendor-native-credentials"

BYOK_PROVIDERS = frozenset({
    ProviderId.OPENAI, ProviderId.ANTHROPIC, ProviderId.GOOGLE, ProviderId.MISTRAL,
})

# Rotation families differ from provider ids for Gemini
_ROTATION_FAMILY = {ProviderId.GOOGLE: "gemini"}

_VENDOR_CHAIN_PREFIXES = ("bedrock/", "vertex/")


class CredentialOrigin(str, Enum):
    BYOK = "byok"
    ROTATING_SERVER_KEY = "rotating-server-key"
    USER_SUPPLIED = "user-supplied"
    NO_CREDENTIAL_REQUIRED = "no-credential-required"
    VENDOR_NATIVE_CHAIN = "vendor-native-chain"


@dataclass(frozen=True)
class CredentialRequest:
    provider_id: str
    model_id: str
    workspace_id: Optional[str] = None
    user_supplied_key: Optional[str] = None


@dataclass(frozen=True)
class CredentialResolution:
    key: str
    origin: CredentialOrigin

    @property
    def is_byok(self) -> bool:
        return self.origin == CredentialOrigin.BYOK

    def __repr__(self) -> str:
        return f"CredentialResolution(key={mask_key(self.key)!r}, origin={self.origin.value!r})"


class CredentialResolver:
    """
    Tiered credential resolution.

    Args:
        byok_store: Workspace key storage. None disables the BYOK tier.
        secret_store: Decrypts BYOK ciphertext. Built from the master key
                      on first use when omitted.
        key_pool: Server key rotation. Defaults to RotatingKeyPool.
        catalog: Snapshot or holder; defaults to the process catalog.
        settings: Deployment flags; defaults to process settings.
    """

    def __init__(
        self,
        byok_store: Optional[BYOKStore] = None,
        secret_store: Optional[SecretStore] = None,
        key_pool: Optional[KeyPool] = None,
        catalog: Optional[CatalogSource] = None,
        settings: Optional[Settings] = None,
    ):
        self._byok_store = byok_store
        self._secret_store = secret_store
        self._settings = settings
        self._key_pool = key_pool or RotatingKeyPool(settings)
        self._catalog = catalog

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    def _secrets(self) -> SecretStore:
        if self._secret_store is None:
            self._secret_store = FernetSecretStore()
        return self._secret_store

    # --- Resolution ---

    def resolve(self, request: CredentialRequest) -> CredentialResolution:
        """
        Resolve the credential for a call.

        Raises:
            MissingCredential: No usable key exists.
        """
        snapshot = current_snapshot(self._catalog)
        settings = self.settings
        provider = _provider_id(request.provider_id)
        model = request.model_id
        user_key = request.user_supplied_key or None
        context = {"provider": _provider_name(request.provider_id), "model": model}

        # 1. Local inference
        local = self._local_provider(snapshot, provider, model)
        if local is not None:
            entry = snapshot.get(local)
            key = LOCAL_KEY_SENTINEL
            if entry.accepts_bearer_token:
                bearer = user_key
                if local == ProviderId.VLLM:
                    bearer = bearer or settings.vllm_api_key
                key = bearer or LOCAL_KEY_SENTINEL
            return self._resolved(key, CredentialOrigin.NO_CREDENTIAL_REQUIRED, context)

        # 2. Vendor credential chains
        if self._uses_vendor_chain(snapshot, provider, model):
            return self._resolved(
                VENDOR_CHAIN_SENTINEL, CredentialOrigin.VENDOR_NATIVE_CHAIN, context,
            )

        byok_eligible = provider is not None and (
            (settings.hosted and provider in BYOK_PROVIDERS)
            or (settings.server_keys_enabled and provider == ProviderId.ANTHROPIC)
        )
        model_hosted = byok_eligible and snapshot.is_hosted_model(model)

        # 3. BYOK
        if byok_eligible and request.workspace_id and (
            model_hosted or provider == ProviderId.MISTRAL
        ):
            byok_key = self._lookup_byok(request.workspace_id, provider, context)
            if byok_key:
                return self._resolved(byok_key, CredentialOrigin.BYOK, {
                    **context, "workspace_id": request.workspace_id,
                })
            logger.debug("byok_key_not_found", extra=context)

        # 4. Rotating server keys
        if model_hosted:
            family = _ROTATION_FAMILY.get(provider, provider.value)
            try:
                server_key = self._key_pool.next(family)
            except KeyPoolError as e:
                logger.warning(
                    "rotating_key_unavailable",
                    extra={**context, "family": family, "error": str(e)},
                )
                if user_key:
                    return self._resolved(user_key, CredentialOrigin.USER_SUPPLIED, context)
                raise MissingCredential(
                    f"No API key available for {context['provider']} {model}",
                    provider_id=context["provider"],
                    model=model,
                ) from e
            except Exception as e:
                raise MissingCredential(
                    f"Server key lookup failed for {context['provider']} {model}",
                    provider_id=context["provider"],
                    model=model,
                ) from e
            return self._resolved(server_key, CredentialOrigin.ROTATING_SERVER_KEY, context)

        # 5. Caller key
        if not user_key:
            logger.debug("credential_missing", extra=context)
            raise MissingCredential(
                f"API key is required for {context['provider']} {model}",
                provider_id=context["provider"],
                model=model,
            )
        return self._resolved(user_key, CredentialOrigin.USER_SUPPLIED, context)

    # --- Tier helpers ---

    @staticmethod
    def _local_provider(
        snapshot: CatalogSnapshot,
        provider: Optional[ProviderId],
        model: str,
    ) -> Optional[ProviderId]:
        for entry in snapshot.entries:
            if entry.credential_mode != CredentialMode.LOCAL:
                continue
            if provider == entry.provider_id or model in entry.model_ids:
                return entry.provider_id
        return None

    @staticmethod
    def _uses_vendor_chain(
        snapshot: CatalogSnapshot,
        provider: Optional[ProviderId],
        model: str,
    ) -> bool:
        if provider is not None and snapshot.has_provider(provider):
            if snapshot.get(provider).credential_mode == CredentialMode.VENDOR_CHAIN:
                return True
        return model.lower().startswith(_VENDOR_CHAIN_PREFIXES)

    def _lookup_byok(
        self,
        workspace_id: str,
        provider: ProviderId,
        context: dict,
    ) -> Optional[str]:
        if self._byok_store is None:
            return None
        try:
            ciphertext = self._byok_store.get_encrypted_key(workspace_id, provider.value)
            if ciphertext is None:
                return None
            return self._secrets().decrypt(ciphertext)
        except DecryptionFailed:
            logger.warning(
                "byok_decryption_failed",
                extra={**context, "workspace_id": workspace_id},
            )
            return None
        except Exception as e:
            raise MissingCredential(
                f"BYOK lookup failed for {provider.value} {context['model']}",
                provider_id=provider.value,
                model=context["model"],
            ) from e

    @staticmethod
    def _resolved(key: str, origin: CredentialOrigin, context: dict) -> CredentialResolution:
        logger.info(
            "credential_resolved",
            extra={**context, "origin": origin.value, "key": mask_key(key)},
        )
        return CredentialResolution(key=key, origin=origin)

    # --- Hosted-model policy ---

    def requires_api_key(self, model: str) -> bool:
        """Whether a caller must supply a key to use `model`."""
        folded = model.strip().lower()
        if not folded:
            return False

        snapshot = current_snapshot(self._catalog)
        settings = self.settings

        if (settings.hosted or settings.server_keys_enabled) and snapshot.is_hosted_model(folded):
            return False
        if folded.startswith(_VENDOR_CHAIN_PREFIXES) or folded.startswith("vllm/"):
            return False
        if snapshot.has_provider(ProviderId.OLLAMA) and any(
            m.lower() == folded for m in snapshot.provider_models(ProviderId.OLLAMA)
        ):
            return False

        if not settings.hosted:
            try:
                provider = ModelResolver(snapshot, settings).resolve(model)
            except SwitchboardError:
                return True
            entry = snapshot.get(provider)
            if entry.credential_mode in (CredentialMode.LOCAL, CredentialMode.VENDOR_CHAIN):
                return False

        return True

    def should_bill_model_usage(self, model: str) -> bool:
        """Hosted models run on platform keys, so their usage is billed."""
        return current_snapshot(self._catalog).is_hosted_model(model)


def _provider_id(provider: str) -> Optional[ProviderId]:
    try:
        return ProviderId(provider)
    except ValueError:
        return None


def _provider_name(provider: str) -> str:
    return str(getattr(provider, "value", provider))


def resolve_credential(
    request: CredentialRequest,
    byok_store: Optional[BYOKStore] = None,
    secret_store: Optional[SecretStore] = None,
    key_pool: Optional[KeyPool] = None,
    settings: Optional[Settings] = None,
) -> CredentialResolution:
    """One-shot resolution against the process-wide catalog."""
    return CredentialResolver(
        byok_store=byok_store,
        secret_store=secret_store,
        key_pool=key_pool,
        settings=settings,
    ).resolve(request)


def requires_api_key(model: str, settings: Optional[Settings] = None) -> bool:
    return CredentialResolver(settings=settings).requires_api_key(model)


def should_bill_model_usage(model: str) -> bool:
    return CredentialResolver().should_bill_model_usage(model)
