"""
Boundary adapter for the reasoning service's analysis output.

The provider is asked for a JSON object but has been seen to return
  - the object itself,
  - a JSON string that contains the object,
  - a one-element list holding either of the above,
sometimes wrapped in a markdown code fence. Everything else is rejected.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from billscan.models.schemas import ANALYSIS_NUMERIC_FIELDS, Analysis
from billscan.services.errors import MalformedAnalysis

logger = logging.getLogger("billscan.normalizer")

MAX_UNWRAP = 4
_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def _strip_fence(text: str) -> str:
    text = text.strip()
    m = _FENCE.match(text)
    return m.group(1) if m else text


def _raw_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw[:2000]
    try:
        return json.dumps(raw)[:2000]
    except (TypeError, ValueError):
        return repr(raw)[:2000]


def unwrap(raw: Any) -> dict:
    """Peel strings and single-element lists until a dict remains."""
    value = raw
    for _ in range(MAX_UNWRAP):
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            try:
                value = json.loads(_strip_fence(value))
            except ValueError as e:
                raise MalformedAnalysis(f"not valid JSON: {e}", raw=_raw_text(raw))
            continue
        if isinstance(value, list):
            if not value:
                raise MalformedAnalysis("empty list", raw=_raw_text(raw))
            if len(value) > 1:
                logger.warning("analysis list has %d elements; using the first", len(value))
            value = value[0]
            continue
        raise MalformedAnalysis(f"unexpected JSON type {type(value).__name__}", raw=_raw_text(raw))
    if isinstance(value, dict):
        return value
    raise MalformedAnalysis("too deeply wrapped", raw=_raw_text(raw))


def normalize_analysis(raw: Any) -> Analysis:
    """Raw provider text (or an already-decoded value) -> canonical Analysis."""
    obj = unwrap(raw)

    if not any(obj.get(k) is not None for k in ANALYSIS_NUMERIC_FIELDS):
        raise MalformedAnalysis("no numeric analysis fields present", raw=_raw_text(raw))

    try:
        return Analysis.model_validate(obj)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise MalformedAnalysis(f"incomplete analysis: {', '.join(fields)}", raw=_raw_text(raw))
