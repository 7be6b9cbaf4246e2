"""Pull a JSON object out of free-text model replies."""

from __future__ import annotations

import json
from typing import Any


class JSONExtractionError(ValueError):
    pass


def find_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span in `text`, or None.

    Braces inside JSON string literals are ignored, so replies wrapped in prose
    or markdown fences still resolve to the embedded object.
    """

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        # Unbalanced from this brace; try the next one.
        start = text.find("{", start + 1)
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the first balanced JSON object embedded in `text`.

    Raises:
        JSONExtractionError: If no object is present or it is not valid JSON.
    """

    span = find_json_object(text.strip())
    if span is None:
        raise JSONExtractionError("No JSON in response")
    try:
        obj = json.loads(span)
    except json.JSONDecodeError as e:
        raise JSONExtractionError("Invalid JSON in response") from e
    if not isinstance(obj, dict):
        raise JSONExtractionError("Invalid JSON in response")
    return obj
