"""
Structured output helpers for providers without native JSON schema mode.

Builds the prompt instructions that ask a model for JSON and recovers
the JSON object from the reply, tolerating prose or code fences around
it and trailing commas inside it.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_WHITESPACE = re.compile(r"\s+")


def generate_schema_instructions(schema: dict[str, Any], schema_name: Optional[str] = None) -> str:
    """Prompt text requiring a reply that matches a JSON Schema."""
    name = schema_name or "response"
    return (
        "IMPORTANT: You must respond with a valid JSON object that conforms to the "
        "following schema.\n"
        "Do not include any text before or after the JSON object. Only output the JSON.\n"
        "\n"
        f"Schema name: {name}\n"
        "JSON Schema:\n"
        f"{json.dumps(schema, indent=2)}\n"
        "\n"
        "Your response must be valid JSON that exactly matches this schema structure."
    )


def _example_value(field: dict[str, Any]) -> str:
    field_type = field.get("type")
    if field_type == "object" and field.get("properties"):
        lines = []
        for key, prop in field["properties"].items():
            value = "0" if prop.get("type") == "number" else '"value"'
            lines.append(f'"{key}": {value}')
        return "{\n    " + ",\n    ".join(lines) + "\n  }"
    return {
        "string": '"value"',
        "number": "0",
        "boolean": "true/false",
    }.get(field_type, "[]")


def generate_structured_output_instructions(response_format: Optional[dict[str, Any]]) -> str:
    """
    Prompt text for a field-list response format.

    Returns "" when there is nothing to describe or when the format is
    already a JSON Schema (those go through the provider's native
    structured output instead).
    """
    if not response_format:
        return ""
    if response_format.get("schema") or (
        response_format.get("type") == "object" and response_format.get("properties")
    ):
        return ""
    fields = response_format.get("fields")
    if not fields:
        return ""

    example = ",\n".join(f'  "{f["name"]}": {_example_value(f)}' for f in fields)

    descriptions = []
    for f in fields:
        desc = f"{f['name']} ({f.get('type')})"
        if f.get("description"):
            desc += f": {f['description']}"
        if f.get("type") == "object" and f.get("properties"):
            desc += "\nProperties:"
            for key, prop in f["properties"].items():
                desc += f"\n  - {key} ({prop.get('type')}): {prop.get('description', '')}"
        descriptions.append(desc)

    return (
        "\nPlease provide your response in the following JSON format:\n"
        "{\n"
        f"{example}\n"
        "}\n"
        "\n"
        "Field descriptions:\n"
        + "\n".join(descriptions)
        + "\n\nYour response MUST be valid JSON and include all the specified fields "
        "with their correct types."
    )


def extract_and_parse_json(content: str) -> Any:
    """
    Parse the outermost JSON object in a model reply.

    Raises:
        ValueError: No object found, or it still fails to parse after
                    collapsing whitespace and dropping trailing commas.
    """
    trimmed = content.strip()
    first = trimmed.find("{")
    last = trimmed.rfind("}")
    if first == -1 or last == -1 or last < first:
        raise ValueError("No JSON object found in content")

    json_str = trimmed[first:last + 1]
    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        cleaned = _TRAILING_COMMA.sub(r"\1", _WHITESPACE.sub(" ", json_str))

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(
            "structured_output_parse_failed",
            extra={
                "content_length": len(content),
                "extracted_length": len(json_str),
                "error": str(e),
            },
        )
        raise ValueError(f"Failed to parse JSON after cleanup: {e}") from e
