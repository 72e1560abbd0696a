"""Security screen for free-text answer content.

Values are inspected, never rewritten: a hit is reported as a validation
message so the respondent (or volunteer) can correct the answer. Stripping
characters here could silently change a legitimate survey answer.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from survey_intake.models.submission import AnswerValue, ListValue, TextValue


MAX_VALUE_LENGTH = 10_000

_SQL_METACHARACTERS = re.compile(r"(--|;|\||\*)")
_SQL_KEYWORDS = re.compile(
    r"\b(union|select|insert|delete|update|drop|create|alter|exec|execute)\b|\b(sp|xp)_\w+",
    re.IGNORECASE,
)
_MARKUP_MARKERS = re.compile(
    r"<\s*(script|iframe|object|embed|svg)\b"
    r"|\b(javascript|vbscript)\s*:"
    r"|data\s*:\s*text/html"
    r"|\bon\w+\s*=",
    re.IGNORECASE,
)

MSG_FORBIDDEN_CHARACTERS = "answer contains characters or statements that are not allowed"
MSG_TOO_LONG = "answer exceeds the maximum length of {limit} characters"
MSG_MARKUP = "answer contains markup or script content that is not allowed"


def screen_text(value: str, max_length: int = MAX_VALUE_LENGTH) -> List[str]:
    """Return screen findings for one string; empty list when clean.

    Each category is reported at most once per value.
    """
    findings: List[str] = []
    if _SQL_METACHARACTERS.search(value) or _SQL_KEYWORDS.search(value):
        findings.append(MSG_FORBIDDEN_CHARACTERS)
    if len(value) > max_length:
        findings.append(MSG_TOO_LONG.format(limit=max_length))
    if _MARKUP_MARKERS.search(value):
        findings.append(MSG_MARKUP)
    return findings


def _texts(value: AnswerValue) -> Iterable[str]:
    if isinstance(value, TextValue):
        return [value.text]
    if isinstance(value, ListValue):
        return list(value.items)
    return []


def screen_value(value: Optional[AnswerValue], max_length: int = MAX_VALUE_LENGTH) -> List[str]:
    """Screen every textual part of an answer value.

    Findings from list items are merged without repeating a message.
    """
    if value is None:
        return []
    out: List[str] = []
    for text in _texts(value):
        for finding in screen_text(text, max_length=max_length):
            if finding not in out:
                out.append(finding)
    return out


__all__ = [
    "MAX_VALUE_LENGTH",
    "MSG_FORBIDDEN_CHARACTERS",
    "MSG_TOO_LONG",
    "MSG_MARKUP",
    "screen_text",
    "screen_value",
]
