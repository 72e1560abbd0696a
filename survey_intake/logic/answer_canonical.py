"""Canonicalization helpers for answer values.

Provides stable string tokens used for visibility comparisons and the column
split used when answers are persisted.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional, Tuple, Union

from survey_intake.models.submission import AnswerValue, ListValue, NumberValue, TextValue


def canonical_token(value: Any) -> str:
    """Return a stable string representation for a scalar.

    - Booleans -> "true" / "false"
    - Numbers  -> integer form when integral, else decimal string
    - Text     -> stripped; "TRUE"/"False" lowered to the boolean tokens
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        f = float(value)
        if f.is_integer():
            return str(int(f))
        return str(f)
    s = str(value).strip()
    return s.lower() if s.lower() in {"true", "false"} else s


def canonical_tokens(value: Optional[AnswerValue]) -> List[str]:
    """Return the canonical tokens an answer value contributes to comparisons."""
    if value is None:
        return []
    if isinstance(value, TextValue):
        return [canonical_token(value.text)]
    if isinstance(value, ListValue):
        return [canonical_token(item) for item in value.items]
    return [canonical_token(value.number)]


def storage_columns(value: Optional[AnswerValue]) -> Tuple[Optional[str], Optional[float], Optional[List[str]]]:
    """Split an answer value into (answer_value, answer_numeric, answer_json).

    Lists are stored as JSON text with the selections mirrored in answer_json;
    numbers keep a string form alongside the numeric column.
    """
    if value is None:
        return None, None, None
    if isinstance(value, ListValue):
        items = list(value.items)
        return json.dumps(items, ensure_ascii=False), None, items
    if isinstance(value, NumberValue):
        return canonical_token(value.number), float(value.number), None
    return value.text, None, None


def raw_from_storage(
    answer_value: Optional[str],
    answer_numeric: Optional[float],
    answer_json: Optional[List[str]],
) -> Union[str, List[str], float, int, None]:
    """Rebuild the plain answer value from stored columns."""
    if answer_json is not None:
        return list(answer_json)
    if answer_numeric is not None:
        f = float(answer_numeric)
        return int(f) if f.is_integer() else f
    return answer_value


__all__ = ["canonical_token", "canonical_tokens", "storage_columns", "raw_from_storage"]
