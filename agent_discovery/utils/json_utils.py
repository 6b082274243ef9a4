"""
JSON Utilities
Parsing helpers for completion-service output
"""
import json
from typing import Any, Dict


def strip_code_fences(content: str) -> str:
    """
    Remove markdown fences wrapped around a model reply

    Args:
        content: Raw model output

    Returns:
        Content without ```json / ``` fences
    """
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]
    return content.strip()


def string_to_json_object(content: str) -> Dict[str, Any]:
    """
    Parse a model reply into a JSON object

    Tolerates markdown fences and prose around the outermost braces.

    Args:
        content: Raw model output

    Returns:
        Parsed dict

    Raises:
        ValueError: If no JSON object can be parsed
    """
    text = strip_code_fences(content or "")
    if not text:
        raise ValueError("empty reply")

    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("no JSON object in reply")
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("reply is not a JSON object")
    return data
