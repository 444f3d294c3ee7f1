"""Utilities to extract JSON from LLM responses."""

from __future__ import annotations

import json

LIST_KEYS = ("bullets", "items", "rewritten", "results")


def extract_json(text: str) -> dict | list:
    """Extract JSON from an LLM response, handling ```json blocks.

    Tries in order:
    1. Direct json.loads on the full text
    2. Strip fenced code block markers and parse
    3. First '{' to last '}' (object)
    4. First '[' to last ']' (array)
    """
    text = (text or "").strip()

    # 1) Direct parse
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        pass

    # 2) Strip fenced code block markers
    stripped = _strip_code_fences(text)
    if stripped != text:
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass

    # 3) / 4) Outermost object or array, whichever opens first
    candidates = [("{", "}"), ("[", "]")]
    candidates.sort(key=lambda pair: _index_or_max(stripped, pair[0]))
    for open_ch, close_ch in candidates:
        result = _extract_between(stripped, open_ch, close_ch)
        if result is not None:
            return result

    raise ValueError(f"Could not extract JSON from text: {text[:200]}...")


def extract_string_list(text: str) -> list[str]:
    """Extract a list of strings from an LLM response.

    Accepts a bare JSON array or an object holding the array under one of
    ``LIST_KEYS``. Non-string entries become "" so positions are kept.
    """
    data = extract_json(text)
    if isinstance(data, dict):
        for key in LIST_KEYS:
            if isinstance(data.get(key), list):
                data = data[key]
                break
        else:
            raise ValueError(f"No string list found in object with keys {sorted(data)}")
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON array, got {type(data).__name__}")
    return [item.strip() if isinstance(item, str) else "" for item in data]


def _strip_code_fences(text: str) -> str:
    """Remove markdown code fence markers from text."""
    start = text.find("```")
    if start == -1:
        return text
    body = text[start + 3 :]
    # drop the language tag line (```json)
    newline = body.find("\n")
    if newline != -1 and body[:newline].strip().isalpha():
        body = body[newline + 1 :]
    end = body.rfind("```")
    if end != -1:
        body = body[:end]
    return body.strip()


def _index_or_max(text: str, ch: str) -> int:
    i = text.find(ch)
    return i if i != -1 else len(text) + 1


def _extract_between(text: str, open_ch: str, close_ch: str) -> dict | list | None:
    start = text.find(open_ch)
    end = text.rfind(close_ch)
    if start != -1 and end != -1 and end > start:
        try:
            return json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            pass
    return None
