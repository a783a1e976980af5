"""
Tests for tiered credential resolution and the rotating server key pool.

No network, no real keys: settings are built explicitly and the pool
clock is injected.
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from switchboard.config.settings import Settings
from switchboard.exceptions import MissingCredential, PoolExhausted, PoolMisconfigured
from switchboard.llm.catalog import CatalogHolder
from switchboard.llm.credentials import (
    LOCAL_KEY_SENTINEL,
    VENDOR_CHAIN_SENTINEL,
    CredentialOrigin,
    CredentialRequest,
    CredentialResolver,
    resolve_credential,
)
from switchboard.llm.key_pool import RotatingKeyPool
from switchboard.llm.model_defs import build_default_snapshot
from switchboard.security.secret_store import FernetSecretStore, InMemoryBYOKStore

BYOK_KEY = "sk-ant-workspace-key-9876"
USER_KEY = "sk-user-supplied-5555"


@pytest.fixture
def snapshot():
    return build_default_snapshot()


@pytest.fixture
def secrets():
    return FernetSecretStore(master_key="test-master-key")


@pytest.fixture
def byok_store(secrets):
    store = InMemoryBYOKStore()
    store.set_key("ws_123", "anthropic", secrets.encrypt(BYOK_KEY))
    return store


@pytest.fixture
def hosted_settings():
    return Settings(
        hosted=True,
        rotating_keys={
            "openai": ["sk-openai-slot-1", "sk-openai-slot-2"],
            "anthropic": ["sk-ant-slot-1", "sk-ant-slot-2", "sk-ant-slot-3"],
            "gemini": ["gm-slot-1"],
        },
    )


def _resolver(snapshot, settings, byok_store=None, secrets=None, key_pool=None, clock=lambda: 0.0):
    return CredentialResolver(
        byok_store=byok_store,
        secret_store=secrets,
        key_pool=key_pool or RotatingKeyPool(settings, clock=clock),
        catalog=snapshot,
        settings=settings,
    )


# ===========================================================================
# Rotating key pool
# ===========================================================================

class TestRotatingKeyPool:

    def test_rotates_by_minute(self, hosted_settings):
        now = [0.0]
        pool = RotatingKeyPool(hosted_settings, clock=lambda: now[0])

        assert pool.next("anthropic") == "sk-ant-slot-1"
        now[0] = 59.9
        assert pool.next("anthropic") == "sk-ant-slot-1"
        now[0] = 60.0
        assert pool.next("anthropic") == "sk-ant-slot-2"
        now[0] = 180.0
        assert pool.next("anthropic") == "sk-ant-slot-1"

    def test_family_case_insensitive(self, hosted_settings):
        pool = RotatingKeyPool(hosted_settings, clock=lambda: 60.0)
        assert pool.next("OpenAI") == "sk-openai-slot-2"

    def test_unknown_family(self, hosted_settings):
        pool = RotatingKeyPool(hosted_settings)
        with pytest.raises(PoolMisconfigured) as exc_info:
            pool.next("mistral")
        assert exc_info.value.family == "mistral"

    def test_empty_family(self):
        pool = RotatingKeyPool(Settings(hosted=True))
        with pytest.raises(PoolExhausted):
            pool.next("gemini")


# ===========================================================================
# Local and vendor-chain tiers
# ===========================================================================

class TestLocalProviders:

    def test_ollama_ignores_user_key(self, snapshot):
        resolution = _resolver(snapshot, Settings()).resolve(CredentialRequest(
            provider_id="ollama", model_id="llama3.1:8b", user_supplied_key=USER_KEY,
        ))
        assert resolution.key == LOCAL_KEY_SENTINEL
        assert resolution.origin == CredentialOrigin.NO_CREDENTIAL_REQUIRED

    def test_vllm_forwards_user_key(self, snapshot):
        resolution = _resolver(snapshot, Settings()).resolve(CredentialRequest(
            provider_id="vllm", model_id="vllm/qwen2.5", user_supplied_key=USER_KEY,
        ))
        assert resolution.key == USER_KEY
        assert resolution.origin == CredentialOrigin.NO_CREDENTIAL_REQUIRED

    def test_vllm_without_key_uses_sentinel(self, snapshot):
        resolution = _resolver(snapshot, Settings()).resolve(CredentialRequest(
            provider_id="vllm", model_id="vllm/qwen2.5",
        ))
        assert resolution.key == LOCAL_KEY_SENTINEL

    def test_vllm_falls_back_to_configured_key(self, snapshot):
        settings = Settings(vllm_api_key="vllm-server-token")
        resolver = _resolver(snapshot, settings)

        resolution = resolver.resolve(CredentialRequest(
            provider_id="vllm", model_id="vllm/qwen2.5",
        ))
        assert resolution.key == "vllm-server-token"
        assert resolution.origin == CredentialOrigin.NO_CREDENTIAL_REQUIRED

        resolution = resolver.resolve(CredentialRequest(
            provider_id="vllm", model_id="vllm/qwen2.5", user_supplied_key=USER_KEY,
        ))
        assert resolution.key == USER_KEY

    def test_ollama_ignores_configured_vllm_key(self, snapshot):
        resolution = _resolver(snapshot, Settings(vllm_api_key="vllm-server-token")).resolve(
            CredentialRequest(provider_id="ollama", model_id="llama3.1:8b"),
        )
        assert resolution.key == LOCAL_KEY_SENTINEL

    def test_model_listed_by_local_provider(self, snapshot):
        """A discovered Ollama model is local whatever provider the caller names."""
        holder = CatalogHolder(snapshot)
        holder.update_dynamic_models("ollama", ["mistral:7b"])
        resolver = _resolver(holder, Settings(hosted=True))

        resolution = resolver.resolve(CredentialRequest(provider_id="mistral", model_id="mistral:7b"))
        assert resolution.key == LOCAL_KEY_SENTINEL


class TestVendorChain:

    def test_bedrock_provider(self, snapshot, hosted_settings):
        resolution = _resolver(snapshot, hosted_settings).resolve(CredentialRequest(
            provider_id="bedrock",
            model_id="bedrock/amazon.nova-pro-v1:0",
            workspace_id="ws_123",
            user_supplied_key=USER_KEY,
        ))
        assert resolution.key == VENDOR_CHAIN_SENTINEL
        assert resolution.origin == CredentialOrigin.VENDOR_NATIVE_CHAIN

    def test_vertex_model_prefix(self, snapshot, hosted_settings):
        resolution = _resolver(snapshot, hosted_settings).resolve(CredentialRequest(
            provider_id="google", model_id="vertex/gemini-2.5-pro",
        ))
        assert resolution.key == VENDOR_CHAIN_SENTINEL


# ===========================================================================
# BYOK and rotation
# ===========================================================================

class TestHostedResolution:

    def test_byok_beats_rotating_keys(self, snapshot, hosted_settings, byok_store, secrets):
        resolution = _resolver(snapshot, hosted_settings, byok_store, secrets).resolve(
            CredentialRequest(
                provider_id="anthropic", model_id="claude-sonnet-4-5", workspace_id="ws_123",
            )
        )
        assert resolution.key == BYOK_KEY
        assert resolution.origin == CredentialOrigin.BYOK
        assert resolution.is_byok

    def test_byok_requires_workspace(self, snapshot, hosted_settings, byok_store, secrets):
        resolution = _resolver(snapshot, hosted_settings, byok_store, secrets).resolve(
            CredentialRequest(provider_id="anthropic", model_id="claude-sonnet-4-5")
        )
        assert resolution.origin == CredentialOrigin.ROTATING_SERVER_KEY
        assert resolution.key == "sk-ant-slot-1"

    def test_workspace_without_key_uses_rotation(self, snapshot, hosted_settings, byok_store, secrets):
        resolution = _resolver(snapshot, hosted_settings, byok_store, secrets, clock=lambda: 120.0).resolve(
            CredentialRequest(provider_id="anthropic", model_id="claude-haiku-4-5", workspace_id="ws_other")
        )
        assert resolution.key == "sk-ant-slot-3"
        assert resolution.origin == CredentialOrigin.ROTATING_SERVER_KEY

    def test_google_rotates_gemini_family(self, snapshot, hosted_settings):
        resolution = _resolver(snapshot, hosted_settings).resolve(CredentialRequest(
            provider_id="google", model_id="gemini-2.5-flash",
        ))
        assert resolution.key == "gm-slot-1"

    def test_undecryptable_byok_falls_through(self, snapshot, hosted_settings, secrets):
        store = InMemoryBYOKStore()
        store.set_key("ws_123", "anthropic", FernetSecretStore("other-master").encrypt(BYOK_KEY))

        resolution = _resolver(snapshot, hosted_settings, store, secrets).resolve(
            CredentialRequest(provider_id="anthropic", model_id="claude-sonnet-4-5", workspace_id="ws_123")
        )
        assert resolution.origin == CredentialOrigin.ROTATING_SERVER_KEY

    def test_byok_store_failure_is_missing_credential(self, snapshot, hosted_settings, secrets):
        store = MagicMock()
        store.get_encrypted_key.side_effect = RuntimeError("database unavailable")

        with pytest.raises(MissingCredential) as exc_info:
            _resolver(snapshot, hosted_settings, store, secrets).resolve(CredentialRequest(
                provider_id="anthropic", model_id="claude-sonnet-4-5", workspace_id="ws_123",
            ))

        assert exc_info.value.provider_id == "anthropic"
        assert exc_info.value.model == "claude-sonnet-4-5"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_exhausted_pool_falls_back_to_user_key(self, snapshot):
        settings = Settings(hosted=True)
        resolution = _resolver(snapshot, settings).resolve(CredentialRequest(
            provider_id="openai", model_id="gpt-4o", user_supplied_key=USER_KEY,
        ))
        assert resolution.key == USER_KEY
        assert resolution.origin == CredentialOrigin.USER_SUPPLIED

    def test_exhausted_pool_without_user_key(self, snapshot):
        with pytest.raises(MissingCredential, match="No API key available") as exc_info:
            _resolver(snapshot, Settings(hosted=True)).resolve(CredentialRequest(
                provider_id="openai", model_id="gpt-4o",
            ))
        assert isinstance(exc_info.value.__cause__, PoolExhausted)

    def test_pool_fault_is_missing_credential(self, snapshot, hosted_settings):
        pool = MagicMock()
        pool.next.side_effect = ConnectionError("secret manager down")

        with pytest.raises(MissingCredential):
            _resolver(snapshot, hosted_settings, key_pool=pool).resolve(CredentialRequest(
                provider_id="openai", model_id="gpt-4o", user_supplied_key=USER_KEY,
            ))

    def test_mistral_byok_for_unhosted_model(self, snapshot, hosted_settings, secrets):
        store = InMemoryBYOKStore()
        store.set_key("ws_123", "mistral", secrets.encrypt("mistral-workspace-key"))

        resolution = _resolver(snapshot, hosted_settings, store, secrets).resolve(
            CredentialRequest(provider_id="mistral", model_id="mistral-large-latest", workspace_id="ws_123")
        )
        assert resolution.key == "mistral-workspace-key"
        assert resolution.origin == CredentialOrigin.BYOK

    def test_unhosted_provider_needs_user_key(self, snapshot, hosted_settings):
        with pytest.raises(MissingCredential, match="API key is required"):
            _resolver(snapshot, hosted_settings).resolve(CredentialRequest(
                provider_id="deepseek", model_id="deepseek-chat", workspace_id="ws_123",
            ))


class TestServerKeyMode:
    """USE_SERVER_KEYS on a self-hosted deployment only covers Anthropic."""

    def test_anthropic_uses_rotation(self, snapshot):
        settings = Settings(use_server_keys=True, rotating_keys={"anthropic": ["sk-ant-own"]})
        resolution = _resolver(snapshot, settings).resolve(CredentialRequest(
            provider_id="anthropic", model_id="claude-sonnet-4-5",
        ))
        assert resolution.key == "sk-ant-own"

    def test_openai_still_needs_user_key(self, snapshot):
        settings = Settings(use_server_keys=True, rotating_keys={"openai": ["sk-openai-own"]})
        resolution = _resolver(snapshot, settings).resolve(CredentialRequest(
            provider_id="openai", model_id="gpt-4o", user_supplied_key=USER_KEY,
        ))
        assert resolution.origin == CredentialOrigin.USER_SUPPLIED


class TestSelfHosted:

    def test_user_key_passed_through(self, snapshot):
        resolution = _resolver(snapshot, Settings()).resolve(CredentialRequest(
            provider_id="openai", model_id="gpt-4o", user_supplied_key=USER_KEY,
        ))
        assert resolution.key == USER_KEY
        assert resolution.origin == CredentialOrigin.USER_SUPPLIED

    def test_missing_user_key(self, snapshot):
        with pytest.raises(MissingCredential) as exc_info:
            _resolver(snapshot, Settings()).resolve(CredentialRequest(
                provider_id="xai", model_id="grok-4-latest", user_supplied_key="",
            ))
        assert exc_info.value.provider_id == "xai"

    def test_unknown_provider_string(self, snapshot):
        resolution = _resolver(snapshot, Settings(hosted=True)).resolve(CredentialRequest(
            provider_id="custom-gateway", model_id="my-model", user_supplied_key=USER_KEY,
        ))
        assert resolution.origin == CredentialOrigin.USER_SUPPLIED


# ===========================================================================
# Logging and representation
# ===========================================================================

class TestKeyHygiene:

    def test_repr_masks_key(self):
        from switchboard.llm.credentials import CredentialResolution

        resolution = CredentialResolution(key=BYOK_KEY, origin=CredentialOrigin.BYOK)
        assert BYOK_KEY not in repr(resolution)
        assert "***9876" in repr(resolution)

    def test_resolution_logged_masked(self, snapshot, hosted_settings, byok_store, secrets, caplog):
        with caplog.at_level(logging.INFO, logger="switchboard.llm.credentials"):
            _resolver(snapshot, hosted_settings, byok_store, secrets).resolve(CredentialRequest(
                provider_id="anthropic", model_id="claude-sonnet-4-5", workspace_id="ws_123",
            ))

        records = [r for r in caplog.records if r.getMessage() == "credential_resolved"]
        assert len(records) == 1
        assert records[0].origin == "byok"
        assert records[0].key == "***9876"
        assert BYOK_KEY not in caplog.text


# ===========================================================================
# Hosted-model policy
# ===========================================================================

class TestRequiresApiKey:

    def test_hosted_model_on_hosted_deployment(self, snapshot):
        resolver = _resolver(snapshot, Settings(hosted=True))
        assert resolver.requires_api_key("gpt-4o") is False
        assert resolver.requires_api_key("Claude-Sonnet-4-5") is False
        assert resolver.requires_api_key("deepseek-chat") is True

    def test_blank_model(self, snapshot):
        assert _resolver(snapshot, Settings()).requires_api_key("  ") is False

    def test_vendor_chain_and_vllm(self, snapshot):
        resolver = _resolver(snapshot, Settings(hosted=True))
        assert resolver.requires_api_key("bedrock/amazon.nova-pro-v1:0") is False
        assert resolver.requires_api_key("vertex/gemini-2.5-pro") is False
        assert resolver.requires_api_key("vllm/llama-3-8b") is False

    def test_self_hosted_requires_keys_for_cloud_models(self, snapshot):
        resolver = _resolver(snapshot, Settings())
        assert resolver.requires_api_key("gpt-4o") is True
        assert resolver.requires_api_key("llama3.1:8b") is False

    def test_strict_unknown_model_requires_key(self, snapshot):
        resolver = _resolver(snapshot, Settings(strict_model_resolution=True))
        assert resolver.requires_api_key("llama3.1:8b") is True

    def test_discovered_ollama_model(self, snapshot):
        holder = CatalogHolder(snapshot)
        holder.update_dynamic_models("ollama", ["qwen2.5:14b"])
        resolver = _resolver(holder, Settings(hosted=True))
        assert resolver.requires_api_key("qwen2.5:14b") is False


class TestShouldBill:

    def test_hosted_models_billed(self, snapshot):
        resolver = _resolver(snapshot, Settings())
        assert resolver.should_bill_model_usage("gpt-4o") is True
        assert resolver.should_bill_model_usage("deepseek-chat") is False
        assert resolver.should_bill_model_usage("llama3.1:8b") is False


class TestModuleFacade:

    def test_resolve_credential(self, hosted_settings):
        resolution = resolve_credential(
            CredentialRequest(provider_id="ollama", model_id="llama3.1:8b"),
            settings=hosted_settings,
        )
        assert resolution.key == LOCAL_KEY_SENTINEL
