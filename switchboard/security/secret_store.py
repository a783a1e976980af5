"""
Secret Store — decrypt-at-rest for workspace BYOK keys.

Workspace-scoped provider keys are stored encrypted. The credential
resolver only ever sees ciphertext from the BYOK store and hands it to
a SecretStore for decryption.

Security model:
    - Plaintext keys are NEVER stored at rest
    - Encryption key is derived from SWITCHBOARD_MASTER_KEY
    - Each key is independently encrypted (Fernet, AES-128-CBC + HMAC)
    - Decryption failures surface as DecryptionFailed so the resolver
      can fall through to the next credential tier

Usage:
    from switchboard.security.secret_store import FernetSecretStore, InMemoryBYOKStore

    secrets = FernetSecretStore(master_key="...")
    byok = InMemoryBYOKStore()
    byok.set_key("ws_123", "anthropic", secrets.encrypt("sk-ant-..."))
"""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import Optional, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

from switchboard.config.settings import get_settings
from switchboard.exceptions import DecryptionFailed

logger = logging.getLogger(__name__)

MASTER_KEY_ENV = "SWITCHBOARD_MASTER_KEY"


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class SecretStore(Protocol):
    def decrypt(self, ciphertext: str) -> str:
        """Return plaintext. Raises DecryptionFailed."""
        ...


@runtime_checkable
class BYOKStore(Protocol):
    def get_encrypted_key(self, workspace_id: str, provider_id: str) -> Optional[str]:
        """Ciphertext of the workspace's key for a provider, or None."""
        ...


# ---------------------------------------------------------------------------
# Encryption Utilities
# ---------------------------------------------------------------------------

def _derive_fernet_key(master_key: str) -> bytes:
    """
    Derive a Fernet-compatible key from a master key string.

    Fernet requires exactly 32 url-safe base64-encoded bytes, which
    is what a base64-encoded SHA-256 digest gives us.
    """
    hashed = hashlib.sha256(master_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(hashed)


class FernetSecretStore:
    """Fernet encryption keyed by a master secret."""

    def __init__(self, master_key: Optional[str] = None):
        """
        Args:
            master_key: Explicit master key. If None, taken from
                        settings (SWITCHBOARD_MASTER_KEY).

        Raises:
            EnvironmentError: If no master key is available.
        """
        key = (master_key or get_settings().master_key or "").strip()
        if not key:
            raise EnvironmentError(
                f"{MASTER_KEY_ENV} environment variable is not set. "
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )
        self._fernet = Fernet(_derive_fernet_key(key))

    def encrypt(self, plaintext: str) -> str:
        if not plaintext or not plaintext.strip():
            raise ValueError("Cannot encrypt an empty secret")
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored value.

        Raises:
            DecryptionFailed: Wrong master key or corrupted ciphertext.
        """
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            logger.warning("secret_decryption_failed")
            raise DecryptionFailed("Stored secret could not be decrypted") from e


# ---------------------------------------------------------------------------
# BYOK Store (in-memory reference)
# ---------------------------------------------------------------------------

class InMemoryBYOKStore:
    """
    Workspace-scoped encrypted key storage held in a dict.

    Production deployments back BYOKStore with their own database; this
    one serves tests and local development.
    """

    def __init__(self):
        # {(workspace_id, provider_id): ciphertext}
        self._keys: dict[tuple[str, str], str] = {}

    def set_key(self, workspace_id: str, provider_id: str, ciphertext: str) -> None:
        provider = _provider_key(provider_id)
        self._keys[(workspace_id, provider)] = ciphertext
        logger.info(
            "byok_key_stored",
            extra={"workspace_id": workspace_id, "provider": provider},
        )

    def delete_key(self, workspace_id: str, provider_id: str) -> bool:
        return self._keys.pop((workspace_id, _provider_key(provider_id)), None) is not None

    def get_encrypted_key(self, workspace_id: str, provider_id: str) -> Optional[str]:
        return self._keys.get((workspace_id, _provider_key(provider_id)))


def _provider_key(provider_id: str) -> str:
    # ProviderId members and plain strings share one key space
    return str(getattr(provider_id, "value", provider_id))
