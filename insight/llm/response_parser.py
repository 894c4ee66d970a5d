"""
Utilities to pull a JSON payload out of a model reply.

Replies may wrap JSON in ```json fences, add prose around it, or return a bare
list. Parsing never raises; callers get None and decide what that means.
"""

import json
from typing import Any, List, Optional


def _extract_from_fence(text: str) -> Optional[str]:
    start = text.find("```")
    if start == -1:
        return None
    body_start = text.find("\n", start)
    if body_start == -1:
        return None
    end = text.find("```", body_start)
    if end == -1:
        return None
    return text[body_start:end].strip()


def _extract_first_balanced(text: str, opener: str, closer: str) -> Optional[str]:
    """Extract the first balanced ``opener``...``closer`` substring, skipping string contents."""
    start = text.find(opener)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
        if in_string:
            continue
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


def parse_json_reply(reply: str) -> Optional[Any]:
    """Return the first JSON object (or array) found in ``reply``, or None."""
    if not isinstance(reply, str) or not reply.strip():
        return None

    candidates: List[str] = []
    fenced = _extract_from_fence(reply)
    if fenced:
        candidates.append(fenced)
    candidates.append(reply.strip())
    for text in list(candidates):
        obj = _extract_first_balanced(text, "{", "}")
        if obj:
            candidates.append(obj)
        arr = _extract_first_balanced(text, "[", "]")
        if arr:
            candidates.append(arr)

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def coerce_bbox(value: Any) -> Optional[List[float]]:
    """Accept ``[x1, y1, x2, y2]`` or a dict with x/y/width/height; return a 4-float list."""
    if isinstance(value, dict):
        try:
            x = float(value.get("x", value.get("left")))
            y = float(value.get("y", value.get("top")))
            w = float(value.get("width") or value.get("w"))
            h = float(value.get("height") or value.get("h"))
        except (TypeError, ValueError):
            return None
        return [x, y, x + w, y + h]
    if isinstance(value, (list, tuple)) and len(value) >= 4:
        try:
            return [float(v) for v in value[:4]]
        except (TypeError, ValueError):
            return None
    return None


def normalize_errors(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item]
    return [str(value)]


__all__ = ["coerce_bbox", "normalize_errors", "parse_json_reply"]
