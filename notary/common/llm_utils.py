"""Shared utilities for reading LLM responses."""

from __future__ import annotations

import json
import re
from typing import Optional

_FENCE_RE = re.compile(r"^\s*```[\w-]*\s*$")


def strip_code_fences(raw: str) -> str:
    """Drop markdown fence lines (```json, ```) and keep everything else."""
    if "```" not in raw:
        return raw
    lines = [line for line in raw.split("\n") if not _FENCE_RE.match(line)]
    return "\n".join(lines)


def extract_json(raw: str) -> Optional[str]:
    """Return the substring from the first '{' through the last '}', if any."""
    if not raw:
        return None
    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        return raw[start:end]
    return None


def looks_like_json(raw: str) -> bool:
    """True when the response (fences aside) opens with a JSON object."""
    return strip_code_fences(raw or "").lstrip().startswith("{")


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads
    3. Return empty dict

    Anything that parses to something other than an object counts as a miss.
    """
    if not raw:
        return {}

    text = strip_code_fences(raw)
    candidates = [text]
    extracted = extract_json(text)
    if extracted is not None and extracted != text:
        candidates.append(extracted)

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data

    return {}
