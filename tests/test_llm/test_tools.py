"""
Tests for tool descriptors, vendor tool-choice encodings and the
per-turn tool policy.
"""

from __future__ import annotations

import logging

import pytest

from switchboard.exceptions import CatalogError
from switchboard.llm.catalog import ProviderId, ToolFamily
from switchboard.llm.model_defs import build_default_snapshot
from switchboard.llm.tools import (
    AllowedFunctions,
    AutoChoice,
    ForceFunction,
    ForceToolName,
    ToolDescriptor,
    UnsetChoice,
    UsageControl,
    auto_choice,
    build_tool_policy,
    force_choice,
    merge_tool_params,
    revert_choice,
    tool_choice_from_wire,
)


@pytest.fixture
def snapshot():
    return build_default_snapshot()


def _tool(tool_id: str, usage: str = "auto") -> ToolDescriptor:
    return ToolDescriptor(
        id=tool_id,
        name=tool_id.replace("_", " ").title(),
        description=f"Run {tool_id}",
        parameters={"query": {"type": "string"}},
        required=("query",),
        usage_control=usage,
    )


@pytest.fixture
def mixed_tools():
    return [_tool("search", "auto"), _tool("lookup", "force"), _tool("delete_all", "none")]


# ===========================================================================
# Descriptors
# ===========================================================================

class TestToolDescriptor:

    def test_usage_control_coerced(self):
        assert _tool("search", "force").usage_control == UsageControl.FORCE

    def test_invalid_usage_control(self):
        with pytest.raises(ValueError):
            _tool("search", "sometimes")

    def test_string_parameters_become_string_properties(self):
        tool = ToolDescriptor(id="email", parameters={"to": "Recipient address"}, required=["to"])
        assert tool.json_schema == {
            "type": "object",
            "properties": {"to": {"type": "string", "description": "Recipient address"}},
            "required": ["to"],
        }

    def test_anthropic_format(self):
        payload = _tool("search").to_anthropic()
        assert payload["name"] == "search"
        assert payload["input_schema"]["required"] == ["query"]

    def test_openai_format(self):
        payload = _tool("search").to_openai()
        assert payload["type"] == "function"
        assert payload["function"]["name"] == "search"
        assert payload["function"]["parameters"]["properties"]["query"] == {"type": "string"}

    def test_vendor_format_by_family(self):
        tool = _tool("search")
        assert "input_schema" in tool.to_vendor(ToolFamily.TOOL_NAME)
        assert tool.to_vendor(ToolFamily.FUNCTION_CALL)["type"] == "function"
        assert tool.to_vendor(ToolFamily.ALLOWED_FUNCTION_NAMES) == tool.to_google()


# ===========================================================================
# Choice encodings
# ===========================================================================

class TestChoiceEncodings:

    def test_tool_name_family(self):
        choice = force_choice(ToolFamily.TOOL_NAME, ["search", "lookup"])
        assert choice == ForceToolName("search")
        assert choice.tool_choice == {"type": "tool", "name": "search"}
        assert choice.tool_config is None

    def test_function_call_family(self):
        choice = force_choice(ToolFamily.FUNCTION_CALL, ["search"])
        assert choice.tool_choice == {"type": "function", "function": {"name": "search"}}

    def test_allowed_names_single(self):
        choice = force_choice(ToolFamily.ALLOWED_FUNCTION_NAMES, ["search"])
        assert choice.tool_choice == "auto"
        assert choice.tool_config == {
            "functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": ["search"]}
        }

    def test_allowed_names_lists_all_when_several(self):
        choice = force_choice(ToolFamily.ALLOWED_FUNCTION_NAMES, ["search", "lookup"])
        assert choice.tool_config["functionCallingConfig"]["allowedFunctionNames"] == ["search", "lookup"]

    def test_force_choice_needs_ids(self):
        with pytest.raises(ValueError):
            force_choice(ToolFamily.FUNCTION_CALL, [])

    def test_auto_choices(self):
        assert auto_choice(ToolFamily.FUNCTION_CALL).tool_config is None
        assert auto_choice(ToolFamily.ALLOWED_FUNCTION_NAMES).tool_config == {
            "functionCallingConfig": {"mode": "AUTO"}
        }

    def test_revert_choices(self):
        assert revert_choice(ToolFamily.TOOL_NAME) == UnsetChoice()
        assert revert_choice(ToolFamily.FUNCTION_CALL).tool_choice == "auto"
        assert revert_choice(ToolFamily.ALLOWED_FUNCTION_NAMES) == AutoChoice(with_calling_config=True)


class TestChoiceFromWire:

    def test_tool_name(self):
        assert tool_choice_from_wire({"type": "tool", "name": "search"}) == ForceToolName("search")

    def test_function(self):
        wire = {"type": "function", "function": {"name": "lookup"}}
        assert tool_choice_from_wire(wire) == ForceFunction("lookup")

    def test_allowed_names(self):
        config = {"functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": ["a", "b"]}}
        assert tool_choice_from_wire("auto", config) == AllowedFunctions(("a", "b"))

    def test_auto(self):
        assert tool_choice_from_wire("auto") == AutoChoice()
        config = {"functionCallingConfig": {"mode": "AUTO"}}
        assert tool_choice_from_wire("auto", config) == AutoChoice(with_calling_config=True)

    def test_null(self):
        assert tool_choice_from_wire(None) == UnsetChoice()

    def test_unrecognised(self):
        assert tool_choice_from_wire("required") is None


# ===========================================================================
# Policy
# ===========================================================================

class TestBuildToolPolicy:

    def test_none_tools_filtered(self, snapshot, mixed_tools):
        policy = build_tool_policy(mixed_tools, "openai", snapshot)

        assert [t.id for t in policy.active_tools] == ["search", "lookup"]
        assert policy.has_filtered_tools
        assert policy.forced_tool_ids == ("lookup",)
        assert policy.tool_choice == ForceFunction("lookup")

    def test_anthropic_forced(self, snapshot, mixed_tools):
        policy = build_tool_policy(mixed_tools, ProviderId.ANTHROPIC, snapshot)
        assert policy.family == ToolFamily.TOOL_NAME
        assert policy.vendor_tool_choice == {"type": "tool", "name": "lookup"}
        assert all("input_schema" in t for t in policy.vendor_tools)

    def test_google_forced(self, snapshot, mixed_tools):
        policy = build_tool_policy(mixed_tools, "google", snapshot)
        assert policy.vendor_tool_choice == "auto"
        assert policy.tool_config["functionCallingConfig"]["allowedFunctionNames"] == ["lookup"]

    def test_auto_only(self, snapshot):
        policy = build_tool_policy([_tool("search")], "deepseek", snapshot)
        assert policy.tool_choice == AutoChoice()
        assert policy.forced_tool_ids == ()
        assert not policy.has_filtered_tools

    def test_all_tools_filtered(self, snapshot, caplog):
        with caplog.at_level(logging.INFO, logger="switchboard.llm.tools"):
            policy = build_tool_policy([_tool("a", "none"), _tool("b", "none")], "openai", snapshot)

        assert not policy.has_tools
        assert policy.has_filtered_tools
        assert policy.tool_choice is None
        assert policy.to_request_kwargs() == {}
        assert "all_tools_filtered" in caplog.text

    def test_no_tools(self, snapshot):
        policy = build_tool_policy([], "anthropic", snapshot)
        assert not policy.has_tools
        assert policy.vendor_tools is None

    def test_multiple_forced_logged(self, snapshot, caplog):
        tools = [_tool("a", "force"), _tool("b", "force")]
        with caplog.at_level(logging.INFO, logger="switchboard.llm.tools"):
            policy = build_tool_policy(tools, "openai", snapshot)

        assert policy.tool_choice == ForceFunction("a")
        assert policy.remaining_forced_tool_ids == ("a", "b")
        assert "multiple_forced_tools_will_cycle_sequentially" in caplog.text

    def test_duplicate_forced_ids_forced_once(self, snapshot):
        tools = [_tool("a", "force"), _tool("b", "force"), _tool("a", "force")]
        policy = build_tool_policy(tools, "google", snapshot)

        assert policy.forced_tool_ids == ("a", "b")
        assert policy.tool_choice == AllowedFunctions(("a", "b"))

        advanced = policy.advance([{"name": "a"}])
        assert advanced.tool_choice == AllowedFunctions(("b",))

    def test_unknown_provider(self, snapshot):
        with pytest.raises(CatalogError):
            build_tool_policy([_tool("search")], "nope", snapshot)


class TestRequestKwargs:

    def test_openai_kwargs(self, snapshot):
        kwargs = build_tool_policy([_tool("search", "force")], "openai", snapshot).to_request_kwargs()
        assert kwargs["tools"][0]["function"]["name"] == "search"
        assert kwargs["tool_choice"] == {"type": "function", "function": {"name": "search"}}
        assert "tool_config" not in kwargs

    def test_google_kwargs(self, snapshot):
        kwargs = build_tool_policy([_tool("search")], "google", snapshot).to_request_kwargs()
        assert kwargs["tools"] == [{"function_declarations": [_tool("search").to_google()]}]
        assert kwargs["tool_config"] == {"functionCallingConfig": {"mode": "AUTO"}}

    def test_unset_choice_omitted(self, snapshot):
        policy = build_tool_policy([_tool("search", "force")], "anthropic", snapshot)
        reverted = policy.advance([{"name": "search"}])
        kwargs = reverted.to_request_kwargs()
        assert "tool_choice" not in kwargs
        assert len(kwargs["tools"]) == 1


class TestMergeToolParams:

    def test_preset_wins(self):
        merged = merge_tool_params({"channel": "#ops"}, {"channel": "#general", "text": "hi"})
        assert merged == {"channel": "#ops", "text": "hi"}

    def test_empty_preset_values_ignored(self):
        merged = merge_tool_params({"channel": "", "limit": None}, {"channel": "#general"})
        assert merged == {"channel": "#general"}

    def test_inputs_not_mutated(self):
        preset, args = {"a": 1}, {"b": 2}
        merge_tool_params(preset, args)
        assert preset == {"a": 1}
        assert args == {"b": 2}
