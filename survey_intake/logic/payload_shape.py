"""Structural parsing of raw submission payloads.

Turns a decoded JSON object into a SubmissionPayload. Shape problems (missing
top-level fields, non-list answers, nested answer values) surface as a single
StructuralError listing every offending path, so callers see them all in one
round trip. Content rules are not checked here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from survey_intake.logic.errors import StructuralError
from survey_intake.models.submission import SubmissionPayload


logger = logging.getLogger(__name__)


def _path(loc: tuple) -> str:
    parts: List[str] = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        elif parts:
            parts.append(f".{item}")
        else:
            parts.append(str(item))
    return "".join(parts) or "payload"


def structural_errors(exc: PydanticValidationError) -> Dict[str, List[str]]:
    """Group pydantic error entries by dotted field path."""
    out: Dict[str, List[str]] = {}
    for err in exc.errors():
        loc = tuple(p for p in err.get("loc", ()) if p not in ("text", "list", "number", "single", "all-of"))
        out.setdefault(_path(loc), []).append(str(err.get("msg", "invalid")))
    return out


def parse_payload(raw: Any) -> SubmissionPayload:
    if isinstance(raw, SubmissionPayload):
        return raw
    if not isinstance(raw, dict):
        raise StructuralError("payload must be an object", {"payload": ["expected an object"]})
    try:
        return SubmissionPayload.model_validate(raw)
    except PydanticValidationError as exc:
        errors = structural_errors(exc)
        logger.info("payload_rejected paths=%s", sorted(errors))
        raise StructuralError("malformed submission payload", errors) from exc


__all__ = ["parse_payload", "structural_errors"]
