"""
Tool Policy Translator — provider-agnostic tool use to vendor payloads.

Callers describe tools once (ToolDescriptor) with a usage control:
    auto   → the model decides
    force  → the model must call it before answering freely
    none   → never sent to the model

build_tool_policy() drops "none" tools, queues the forced ones and
encodes the tool choice in the shape the provider's family expects:

    tool-name               {"type": "tool", "name": "search"}
    function-call           {"type": "function", "function": {"name": "search"}}
    allowed-function-names  tool_choice="auto" plus
                            {"functionCallingConfig": {"mode": "ANY",
                             "allowedFunctionNames": ["search"]}}

Usage:
    policy = build_tool_policy(
        [ToolDescriptor(id="search", name="Search", usage_control="force")],
        provider_id="anthropic",
    )
    client.messages.create(..., **policy.to_request_kwargs())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence, Union

from switchboard.llm.catalog import CatalogSnapshot, ProviderId, ToolFamily
from switchboard.llm.resolver import CatalogSource, current_snapshot

logger = logging.getLogger(__name__)


class UsageControl(str, Enum):
    AUTO = "auto"
    FORCE = "force"
    NONE = "none"


# ---------------------------------------------------------------------------
# Tool Descriptor
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolDescriptor:
    """
    Provider-agnostic tool definition.

    `id` is the function name the model sees and the name forced tool
    choices refer to. `parameters` maps property names to JSON Schema
    fragments (a bare string is read as a string parameter's
    description). `params` holds caller-preset argument values that are
    merged into the model's arguments at execution time.
    """

    id: str
    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    usage_control: UsageControl = UsageControl.AUTO
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "usage_control", UsageControl(self.usage_control))
        object.__setattr__(self, "required", tuple(self.required))

    @property
    def json_schema(self) -> dict[str, Any]:
        properties = {}
        for param_name, param_spec in self.parameters.items():
            if isinstance(param_spec, dict):
                properties[param_name] = param_spec
            else:
                properties[param_name] = {"type": "string", "description": str(param_spec)}
        return {
            "type": "object",
            "properties": properties,
            "required": list(self.required),
        }

    def to_anthropic(self) -> dict[str, Any]:
        """Anthropic Messages tool format."""
        return {
            "name": self.id,
            "description": self.description,
            "input_schema": self.json_schema,
        }

    def to_openai(self) -> dict[str, Any]:
        """OpenAI-compatible function tool format."""
        return {
            "type": "function",
            "function": {
                "name": self.id,
                "description": self.description,
                "parameters": self.json_schema,
            },
        }

    def to_google(self) -> dict[str, Any]:
        """Gemini function declaration (wrap a list in function_declarations)."""
        return {
            "name": self.id,
            "description": self.description,
            "parameters": self.json_schema,
        }

    def to_vendor(self, family: ToolFamily) -> dict[str, Any]:
        if family == ToolFamily.TOOL_NAME:
            return self.to_anthropic()
        if family == ToolFamily.ALLOWED_FUNCTION_NAMES:
            return self.to_google()
        return self.to_openai()


# ---------------------------------------------------------------------------
# Tool Choice variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AutoChoice:
    """Model decides. Gemini also needs an explicit AUTO calling config."""

    with_calling_config: bool = False

    @property
    def forced_names(self) -> tuple[str, ...]:
        return ()

    @property
    def tool_choice(self) -> Any:
        return "auto"

    @property
    def tool_config(self) -> Optional[dict[str, Any]]:
        if self.with_calling_config:
            return {"functionCallingConfig": {"mode": "AUTO"}}
        return None


@dataclass(frozen=True)
class ForceToolName:
    """Anthropic-style forced tool."""

    name: str

    @property
    def forced_names(self) -> tuple[str, ...]:
        return (self.name,)

    @property
    def tool_choice(self) -> Any:
        return {"type": "tool", "name": self.name}

    @property
    def tool_config(self) -> Optional[dict[str, Any]]:
        return None


@dataclass(frozen=True)
class ForceFunction:
    """OpenAI-compatible forced function."""

    name: str

    @property
    def forced_names(self) -> tuple[str, ...]:
        return (self.name,)

    @property
    def tool_choice(self) -> Any:
        return {"type": "function", "function": {"name": self.name}}

    @property
    def tool_config(self) -> Optional[dict[str, Any]]:
        return None


@dataclass(frozen=True)
class AllowedFunctions:
    """Gemini: must call one of the allow-listed functions."""

    names: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "names", tuple(self.names))

    @property
    def forced_names(self) -> tuple[str, ...]:
        return self.names

    @property
    def tool_choice(self) -> Any:
        return "auto"

    @property
    def tool_config(self) -> Optional[dict[str, Any]]:
        return {
            "functionCallingConfig": {
                "mode": "ANY",
                "allowedFunctionNames": list(self.names),
            }
        }


@dataclass(frozen=True)
class UnsetChoice:
    """Explicit null: the tool_choice field is dropped from the request."""

    @property
    def forced_names(self) -> tuple[str, ...]:
        return ()

    @property
    def tool_choice(self) -> Any:
        return None

    @property
    def tool_config(self) -> Optional[dict[str, Any]]:
        return None


ToolChoice = Union[AutoChoice, ForceToolName, ForceFunction, AllowedFunctions, UnsetChoice]


def auto_choice(family: ToolFamily) -> ToolChoice:
    return AutoChoice(with_calling_config=family == ToolFamily.ALLOWED_FUNCTION_NAMES)


def force_choice(family: ToolFamily, forced_ids: Sequence[str]) -> ToolChoice:
    """
    Force the first of `forced_ids`.

    The allowed-function-names family lists only the first id when it
    is alone and every id otherwise.
    """
    if not forced_ids:
        raise ValueError("force_choice needs at least one tool id")
    first = forced_ids[0]
    if family == ToolFamily.TOOL_NAME:
        return ForceToolName(first)
    if family == ToolFamily.ALLOWED_FUNCTION_NAMES:
        return AllowedFunctions((first,) if len(forced_ids) == 1 else tuple(forced_ids))
    return ForceFunction(first)


def revert_choice(family: ToolFamily) -> ToolChoice:
    """Choice once every forced tool has been used."""
    if family == ToolFamily.TOOL_NAME:
        return UnsetChoice()
    return auto_choice(family)


def tool_choice_from_wire(
    tool_choice: Any,
    tool_config: Optional[dict[str, Any]] = None,
) -> Optional[ToolChoice]:
    """Rebuild a ToolChoice variant from a vendor payload."""
    config = (tool_config or {}).get("functionCallingConfig") or {}
    if config.get("mode") == "ANY" and config.get("allowedFunctionNames"):
        return AllowedFunctions(tuple(config["allowedFunctionNames"]))
    if isinstance(tool_choice, dict):
        if tool_choice.get("type") == "tool" and tool_choice.get("name"):
            return ForceToolName(tool_choice["name"])
        function = tool_choice.get("function") or {}
        if function.get("name"):
            return ForceFunction(function["name"])
    if tool_choice == "auto":
        return AutoChoice(with_calling_config=config.get("mode") == "AUTO")
    if tool_choice is None and tool_config is None:
        return UnsetChoice()
    return None


# ---------------------------------------------------------------------------
# Tool Policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolPolicy:
    """
    Per-turn tool configuration. Caller-owned: thread it from turn to
    turn with advance().
    """

    provider_id: ProviderId
    family: ToolFamily
    active_tools: tuple[ToolDescriptor, ...] = ()
    tool_choice: Optional[ToolChoice] = None
    forced_tool_ids: tuple[str, ...] = ()
    used_forced_tool_ids: tuple[str, ...] = ()
    has_filtered_tools: bool = False

    @property
    def has_tools(self) -> bool:
        return bool(self.active_tools)

    @property
    def vendor_tools(self) -> Optional[list[dict[str, Any]]]:
        if not self.active_tools:
            return None
        return [t.to_vendor(self.family) for t in self.active_tools]

    @property
    def vendor_tool_choice(self) -> Any:
        return self.tool_choice.tool_choice if self.tool_choice else None

    @property
    def tool_config(self) -> Optional[dict[str, Any]]:
        return self.tool_choice.tool_config if self.tool_choice else None

    @property
    def remaining_forced_tool_ids(self) -> tuple[str, ...]:
        return tuple(t for t in self.forced_tool_ids if t not in self.used_forced_tool_ids)

    def to_request_kwargs(self) -> dict[str, Any]:
        """tools / tool_choice / tool_config entries for a vendor call."""
        kwargs: dict[str, Any] = {}
        if not self.active_tools:
            return kwargs
        if self.family == ToolFamily.ALLOWED_FUNCTION_NAMES:
            kwargs["tools"] = [{"function_declarations": self.vendor_tools}]
        else:
            kwargs["tools"] = self.vendor_tools
        if self.vendor_tool_choice is not None:
            kwargs["tool_choice"] = self.vendor_tool_choice
        if self.tool_config is not None:
            kwargs["tool_config"] = self.tool_config
        return kwargs

    def advance(self, tool_calls: Optional[Sequence[Any]]) -> "ToolPolicy":
        """Policy for the next turn given this turn's tool calls."""
        from switchboard.llm.forced_tools import advance_forced_tool_cycle

        if not self.tool_choice:
            return self
        result = advance_forced_tool_cycle(
            tool_calls,
            self.tool_choice,
            self.forced_tool_ids,
            self.used_forced_tool_ids,
            family=self.family,
        )
        return ToolPolicy(
            provider_id=self.provider_id,
            family=self.family,
            active_tools=self.active_tools,
            tool_choice=result.next_tool_choice,
            forced_tool_ids=self.forced_tool_ids,
            used_forced_tool_ids=result.used_forced_tool_ids,
            has_filtered_tools=self.has_filtered_tools,
        )


def family_for_provider(
    provider_id: str | ProviderId,
    snapshot: Optional[CatalogSnapshot] = None,
) -> ToolFamily:
    snapshot = snapshot or current_snapshot(None)
    return snapshot.get(provider_id).tool_family


def build_tool_policy(
    tools: Optional[Sequence[ToolDescriptor]],
    provider_id: str | ProviderId,
    catalog: Optional[CatalogSource] = None,
) -> ToolPolicy:
    """
    Build the first-turn tool policy.

    Raises:
        CatalogError: If the provider is unknown.
    """
    snapshot = current_snapshot(catalog)
    entry = snapshot.get(provider_id)
    family = entry.tool_family
    provider = entry.provider_id

    if not tools:
        return ToolPolicy(provider_id=provider, family=family)

    active = tuple(t for t in tools if t.usage_control != UsageControl.NONE)
    filtered = len(active) < len(tools)
    if filtered:
        logger.info(
            "tools_filtered",
            extra={"provider": provider.value, "filtered": len(tools) - len(active)},
        )

    if not active:
        logger.info("all_tools_filtered", extra={"provider": provider.value})
        return ToolPolicy(provider_id=provider, family=family, has_filtered_tools=True)

    # A tool registered twice is forced once.
    forced_ids = tuple(dict.fromkeys(
        t.id for t in active if t.usage_control == UsageControl.FORCE
    ))

    if forced_ids:
        choice = force_choice(family, forced_ids)
        logger.info(
            "tool_forced",
            extra={"provider": provider.value, "tool": forced_ids[0], "family": family.value},
        )
        if len(forced_ids) > 1:
            logger.info(
                "multiple_forced_tools_will_cycle_sequentially",
                extra={"provider": provider.value, "tools": list(forced_ids)},
            )
    else:
        choice = auto_choice(family)
        logger.debug("tool_choice_auto", extra={"provider": provider.value})

    return ToolPolicy(
        provider_id=provider,
        family=family,
        active_tools=active,
        tool_choice=choice,
        forced_tool_ids=forced_ids,
        has_filtered_tools=filtered,
    )


def merge_tool_params(
    preset: dict[str, Any],
    llm_args: dict[str, Any],
) -> dict[str, Any]:
    """
    Merge caller-preset params with the arguments the model produced.

    Non-empty preset values win; empty ones ("" or None) let the
    model's value through.
    """
    merged = dict(llm_args)
    for key, value in preset.items():
        if value is None or value == "":
            continue
        merged[key] = value
    return merged
