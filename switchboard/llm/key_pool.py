"""
Rotating pool of server-managed API keys.

Hosted deployments spread traffic over up to three keys per vendor
family (OPENAI_API_KEY_1..3, ANTHROPIC_API_KEY_1..3, GEMINI_API_KEY_1..3).
The key is picked from the current wall-clock minute, so every worker
process agrees on the active key without sharing state.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol, runtime_checkable

from switchboard.config.settings import ROTATING_KEY_FAMILIES, Settings, get_settings
from switchboard.exceptions import PoolExhausted, PoolMisconfigured

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyPool(Protocol):
    def next(self, family: str) -> str:
        """Return a key. Raises PoolExhausted or PoolMisconfigured."""
        ...


class RotatingKeyPool:
    """
    Minute-based round robin over the keys configured in Settings.

    Args:
        settings: Source of `rotating_keys`. Defaults to process settings.
        clock: Returns epoch seconds. Injected by tests.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._clock = clock

    def next(self, family: str) -> str:
        family = family.lower()
        if family not in ROTATING_KEY_FAMILIES:
            raise PoolMisconfigured(
                f"No key rotation configured for '{family}'",
                family=family,
            )

        settings = self._settings or get_settings()
        keys = settings.rotating_keys.get(family, [])
        if not keys:
            raise PoolExhausted(
                f"No server API keys configured for '{family}'",
                family=family,
            )

        index = int(self._clock() // 60) % len(keys)
        logger.debug(
            "rotating_key_selected",
            extra={"family": family, "slot": index, "pool_size": len(keys)},
        )
        return keys[index]
