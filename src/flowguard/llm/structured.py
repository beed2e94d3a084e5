"""Parsing of schema-shaped JSON out of model completions."""

import json
import logging
import re
from typing import Any

from flowguard.verify.errors import LanguageModelError

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)

# JSON schema type name -> accepted Python types
_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "array": (list,),
    "object": (dict,),
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
}


class StructuredResponseError(LanguageModelError):
    """Raised when a completion is not JSON or misses required keys."""

    def __init__(self, message: str, phase: str = "unknown", raw: str = "") -> None:
        self.raw = raw
        super().__init__(message, phase=phase)


def extract_json(text: str) -> Any:
    """Extract a JSON value from a completion, handling markdown code blocks.

    Raises:
        json.JSONDecodeError: If no JSON value can be decoded.
    """
    match = _FENCED_JSON.search(text)
    if match:
        return json.loads(match.group(1))

    stripped = text.strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        # Prose around a bare object: fall back to the outermost braces
        start = stripped.find("{")
        end = stripped.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(stripped[start : end + 1])


def parse_structured_response(
    text: str, schema: dict[str, Any], phase: str = "unknown"
) -> dict[str, Any]:
    """Parse a completion into a dict conforming to the schema's top level.

    Required top-level keys must be present and every non-null top-level
    value must have the type its property declares; callers coerce the
    contents of arrays and objects.

    Raises:
        StructuredResponseError: If the text is not a JSON object, a
            required key is missing, or a top-level value has the wrong type.
    """
    try:
        data = extract_json(text)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse %s response: %s", phase, e)
        raise StructuredResponseError(
            f"Response is not valid JSON: {e}", phase=phase, raw=text
        ) from e

    if not isinstance(data, dict):
        raise StructuredResponseError(
            f"Expected a JSON object, got {type(data).__name__}", phase=phase, raw=text
        )

    missing = [key for key in schema.get("required", []) if key not in data]
    if missing:
        raise StructuredResponseError(
            f"Response missing required keys: {', '.join(missing)}",
            phase=phase,
            raw=text,
        )

    mistyped = [
        key
        for key, spec in schema.get("properties", {}).items()
        if data.get(key) is not None and not _matches_type(data[key], spec.get("type"))
    ]
    if mistyped:
        raise StructuredResponseError(
            f"Response has wrongly typed keys: {', '.join(mistyped)}",
            phase=phase,
            raw=text,
        )
    return data


def _matches_type(value: Any, type_name: str | None) -> bool:
    accepted = _JSON_TYPES.get(type_name or "")
    if accepted is None:
        return True
    # bool is an int subclass but never a JSON number
    if isinstance(value, bool) and type_name != "boolean":
        return False
    return isinstance(value, accepted)


def schema_instruction(schema: dict[str, Any]) -> str:
    """Instruction appended to prompts for providers without native schemas."""
    return (
        "Respond with a single JSON object that conforms to this JSON schema. "
        "Do not include any prose outside the JSON.\n\n"
        f"```json\n{json.dumps(schema, indent=2)}\n```"
    )
