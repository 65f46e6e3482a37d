"""
JSON utilities for parsing analysis-capability responses.

Model output is free text that usually, but not always, contains JSON:
wrapped in markdown fences, surrounded by prose, or slightly malformed
(single quotes, trailing commas, unquoted keys). Standard json.loads() is
tried first and json-repair is the fallback.
"""

import json
import re
from typing import Any, Dict, List

from json_repair import repair_json

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _strip_markdown_blocks(text: str) -> str:
    """Remove ```json ... ``` wrappers."""
    return _FENCE_PATTERN.sub("", text.strip()).strip()


def _extract_json(text: str, opener: str, closer: str) -> str:
    """
    Cut the outermost {...} or [...] span out of surrounding prose.

    Raises:
        ValueError: If the text holds no such span
    """
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        raise ValueError(f"No JSON {opener}{closer} found in text: {text[:200]}")
    return text[start:end + 1]


def _loads_or_repair(json_str: str) -> Any:
    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        pass  # Fall through to repair

    repaired = repair_json(json_str, return_objects=True)
    # repair_json gives back "" when nothing could be salvaged
    if repaired == "" or repaired is None:
        raise ValueError("json_repair could not recover any JSON content")
    return repaired


def parse_llm_json(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object from a model response with robust error recovery.

    Args:
        text: Raw response text that may contain a JSON object

    Returns:
        Parsed dictionary

    Raises:
        ValueError: If no valid JSON object can be extracted or repaired

    Example:
        >>> parse_llm_json('```json\\n{"score": 7}\\n```')
        {'score': 7}
    """
    if not text or not text.strip():
        raise ValueError("Empty input: no JSON content to parse")

    json_str = _extract_json(_strip_markdown_blocks(text), "{", "}")
    parsed = _loads_or_repair(json_str)

    if isinstance(parsed, list) and len(parsed) == 1 and isinstance(parsed[0], dict):
        # Single object wrapped in brackets
        return parsed[0]
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def parse_llm_json_list(text: str, key: str = "findings") -> List[Dict[str, Any]]:
    """
    Parse a list of JSON objects from a model response.

    Accepts either a bare array or an object holding the array under `key`.
    Non-object items are dropped.

    Raises:
        ValueError: If no list of objects can be extracted or repaired
    """
    if not text or not text.strip():
        raise ValueError("Empty input: no JSON content to parse")

    stripped = _strip_markdown_blocks(text)
    array_start = stripped.find("[")
    object_start = stripped.find("{")

    if array_start != -1 and (object_start == -1 or array_start < object_start):
        parsed: Any = _loads_or_repair(_extract_json(stripped, "[", "]"))
    else:
        parsed = _loads_or_repair(_extract_json(stripped, "{", "}"))

    if isinstance(parsed, dict):
        parsed = parsed.get(key)
    if not isinstance(parsed, list):
        raise ValueError(f"Expected a JSON list of objects under '{key}'")

    return [item for item in parsed if isinstance(item, dict)]
