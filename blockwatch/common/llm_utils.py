"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
import re
from typing import Optional

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_CODE_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*$", re.MULTILINE)


def clean_response(text: str) -> str:
    """Strip reasoning blocks and markdown code fences from model output.

    Closed ``<think>...</think>`` blocks are removed. An unclosed ``<think>``
    (the model ran out of tokens while reasoning) keeps only what follows the
    tag, since any answer can only appear there.
    """
    if not text:
        return ""

    cleaned = _THINK_BLOCK.sub("", text)
    lowered = cleaned.lower()
    if "<think>" in lowered:
        idx = lowered.index("<think>")
        cleaned = cleaned[idx + len("<think>"):]

    cleaned = _CODE_FENCE.sub("", cleaned)
    return cleaned.strip()


def extract_balanced_json(text: str) -> Optional[str]:
    """Return the first balanced JSON object or array in ``text``.

    Brackets inside string literals (including escaped quotes) are ignored.
    Returns None when no opening bracket exists or it is never closed.
    """
    if not text:
        return None

    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if not starts:
        return None
    start = min(starts)

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
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM response.

    Tries in order:
    1. Clean the response (think blocks, code fences), then json.loads
    2. Extract the first balanced JSON value from the cleaned text
    3. Return empty dict

    Non-object JSON (a bare list or scalar) also yields an empty dict.
    """
    if not raw:
        return {}

    text = clean_response(raw)

    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else {}
    except json.JSONDecodeError:
        pass

    candidate = extract_balanced_json(text)
    if candidate:
        try:
            parsed = json.loads(candidate)
            return parsed if isinstance(parsed, dict) else {}
        except json.JSONDecodeError:
            pass

    return {}
