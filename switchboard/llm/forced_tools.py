"""
Forced-Tool Cycle Tracker.

Vendors can force only one tool per call, so a policy that forces
several tools walks through them turn by turn: once the model calls the
currently forced tool, the next unused one is forced; after the last one
the choice reverts to the family's free mode.

State is explicit. The caller passes the forced list, the used list and
the previous choice in, and threads the returned values into the next
turn. Nothing is remembered here between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from switchboard.llm.catalog import ProviderId, ToolFamily
from switchboard.llm.resolver import CatalogSource, current_snapshot
from switchboard.llm.tools import ToolChoice, force_choice, revert_choice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForcedToolAdvance:
    satisfied_this_turn: bool
    used_forced_tool_ids: tuple[str, ...]
    next_tool_choice: Optional[ToolChoice]


def tool_call_name(tool_call: Any) -> Optional[str]:
    """Name of a tool call: function.name, then name, then id."""
    if isinstance(tool_call, dict):
        function = tool_call.get("function")
        name = function.get("name") if isinstance(function, dict) else getattr(function, "name", None)
        return name or tool_call.get("name") or tool_call.get("id")
    function = getattr(tool_call, "function", None)
    name = getattr(function, "name", None) if function is not None else None
    return name or getattr(tool_call, "name", None) or getattr(tool_call, "id", None)


def advance_forced_tool_cycle(
    tool_calls: Optional[Sequence[Any]],
    prior_tool_choice: Optional[ToolChoice],
    forced_tool_ids: Sequence[str],
    used_forced_tool_ids: Sequence[str] = (),
    provider_id: Optional[str | ProviderId] = None,
    *,
    family: Optional[ToolFamily] = None,
    catalog: Optional[CatalogSource] = None,
) -> ForcedToolAdvance:
    """
    Compute the next turn's tool choice.

    Args:
        tool_calls: Tool calls the model made this turn (dicts or SDK objects).
        prior_tool_choice: The choice sent this turn.
        forced_tool_ids: All forced tool ids, in registration order.
        used_forced_tool_ids: Forced tools already called on earlier turns.
        provider_id: Provider of the call; its family picks the encoding.
        family: Explicit family, skipping the catalog lookup.
    """
    if family is None:
        if provider_id is None:
            raise ValueError("advance_forced_tool_cycle needs provider_id or family")
        family = current_snapshot(catalog).get(provider_id).tool_family

    used = list(used_forced_tool_ids)
    forced_names = prior_tool_choice.forced_names if prior_tool_choice else ()

    if not forced_names or not tool_calls:
        return ForcedToolAdvance(False, tuple(used), prior_tool_choice)

    called = {tool_call_name(tc) for tc in tool_calls}
    invoked = [name for name in forced_names if name in called]
    if not invoked:
        return ForcedToolAdvance(False, tuple(used), prior_tool_choice)

    for name in invoked:
        if name not in used:
            used.append(name)

    remaining = [t for t in dict.fromkeys(forced_tool_ids) if t not in used]
    if remaining:
        next_choice = force_choice(family, remaining)
        logger.info(
            "forced_tool_used_switching",
            extra={"family": family.value, "tool": ",".join(invoked), "remaining": remaining},
        )
    else:
        next_choice = revert_choice(family)
        logger.info(
            "forced_tools_exhausted_switching_to_auto",
            extra={"family": family.value, "tool": ",".join(invoked)},
        )

    return ForcedToolAdvance(True, tuple(used), next_choice)
