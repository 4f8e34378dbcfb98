"""Shared utilities for cleaning and parsing LLM responses."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)
_QUOTE_CHARS = "\"'`“”‘’"


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def parse_llm_json(raw: str) -> Dict[str, Any]:
    """Parse a JSON object from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Body of the first markdown code fence
    2. Direct json.loads on the stripped string
    3. Substring between the first '{' and the last '}'

    Returns an empty dict when nothing parses to a JSON object. Arrays and
    scalars are not accepted.
    """
    if not raw:
        return {}

    text = raw.strip()

    fence = _FENCE_RE.search(text)
    if fence:
        parsed = _loads_object(fence.group(1).strip())
        if parsed is not None:
            return parsed

    parsed = _loads_object(text)
    if parsed is not None:
        return parsed

    start = text.find("{")
    end = text.rfind("}") + 1
    if start >= 0 and end > start:
        parsed = _loads_object(text[start:end])
        if parsed is not None:
            return parsed

    return {}


def strip_wrapping_quotes(text: Optional[str]) -> str:
    """Trim whitespace and any leading/trailing quote characters.

    Models often echo a rewritten query as ``"query"``; the quotes are not
    part of the search text.
    """
    if not text:
        return ""
    return text.strip().strip(_QUOTE_CHARS).strip()


def truncate(text: Optional[str], limit: int, suffix: str = "...") -> str:
    """Cut ``text`` to at most ``limit`` characters, marking the cut."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(suffix))].rstrip() + suffix
