"""Helpers for parsing loosely formatted JSON from LLM responses.

Even in JSON mode, models occasionally wrap the object in Markdown code
fences or prepend a stray ``json`` label.  These helpers strip that noise
and extract the first JSON object from the text.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import json
import logging
import re


def strip_markdown_json(text: str) -> str:
    """Remove Markdown fences and leading ``json`` labels from *text*."""

    cleaned = str(text or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", cleaned, flags=re.IGNORECASE)
        cleaned = re.sub(r"\s*```$", "", cleaned)
    if cleaned.lower().startswith("json"):
        cleaned = cleaned[4:].strip()
        cleaned = cleaned.lstrip(":").strip()
    return cleaned


def _as_object(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, dict):
        return data
    return None


def parse_json_object(
    raw_text: str,
    *,
    logger: logging.Logger | None = None,
) -> Optional[Dict[str, Any]]:
    """Return the JSON object contained in ``raw_text`` or ``None``.

    The raw text is tried first, then the fence-stripped text, then the
    slice between the first ``{`` and the last ``}``.  Arrays and scalars
    are not objects and yield ``None``.
    """

    text = str(raw_text or "").strip()
    if not text:
        return None

    candidates: list[str] = []
    for candidate in (text, strip_markdown_json(text)):
        if candidate and candidate not in candidates:
            candidates.append(candidate)

    stripped = candidates[-1]
    first = stripped.find("{")
    last = stripped.rfind("}")
    if first != -1 and last > first:
        snippet = stripped[first : last + 1]
        if snippet not in candidates:
            candidates.append(snippet)

    for candidate in candidates:
        try:
            parsed = _as_object(json.loads(candidate))
        except json.JSONDecodeError as exc:
            if logger:
                logger.debug("Failed to parse JSON candidate: %s", exc)
            continue
        if parsed is not None:
            return parsed
    return None


__all__ = ["parse_json_object", "strip_markdown_json"]
