from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Collection, Dict, Mapping, Optional

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError

# Structured event logger configured in logging_setup.
event_logger = logging.getLogger("insight.events")

IMAGE_KEYS = frozenset({"screenshot_base64", "image_base64"})
RAW_TEXT_KEYS = frozenset({"raw_response", "search_area_raw_response", "format_response"})
MAX_TEXT = 2000
MAX_ITEMS = 50


def generate_log_id() -> str:
    """Return a short, collision-resistant id for a dump."""
    return uuid.uuid4().hex


def clip_text(text: str, limit: int = MAX_TEXT) -> str:
    overflow = len(text) - limit
    if overflow <= 0:
        return text
    return f"{text[:limit]}...<truncated {overflow} chars>"


def _scrub_entry(key: str, value: Any, keep_full: Collection[str]) -> Any:
    if key in IMAGE_KEYS:
        return "<redacted:image>"
    if key in keep_full:
        return value
    if key in RAW_TEXT_KEYS and value is not None:
        return clip_text(str(value))
    return _scrub(value, keep_full)


def _scrub(value: Any, keep_full: Collection[str]) -> Any:
    if isinstance(value, Mapping):
        return {key: _scrub_entry(key, item, keep_full) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(item, keep_full) for item in value[:MAX_ITEMS]]
    if isinstance(value, str):
        return clip_text(value)
    return value


def sanitize_payload(payload: Mapping[str, Any], keep_full: Collection[str] = ()) -> Dict[str, Any]:
    """Copy of ``payload`` with screenshots redacted and long text clipped."""
    try:
        return _scrub(payload, frozenset(keep_full))
    except Exception:  # noqa: BLE001
        return {"error": "failed_to_sanitize"}


def summarize_dump(record: BaseModel) -> Dict[str, Any]:
    """
    Flatten a dump record for the event log.

    Matched elements are reduced to their ids. Caller metadata that has no JSON form
    is kept as-is and stringified when the event is written.
    """
    exclude = {"matched_element", "log_id"}
    try:
        summary = record.model_dump(mode="json", exclude=exclude)
    except PydanticSerializationError:
        summary = record.model_dump(exclude=exclude)
    summary["matched_element_ids"] = [element.id for element in getattr(record, "matched_element", [])]
    return summary


def log_event(event: str, log_id: str, payload: Optional[Mapping[str, Any]] = None) -> None:
    """Write one structured event as a JSON line; never raise."""
    body: Dict[str, Any] = {"event": event, "log_id": log_id}
    if payload:
        body.update(sanitize_payload(payload, keep_full={"user_query"}))
    try:
        line = json.dumps(body, ensure_ascii=True, default=str)
    except (TypeError, ValueError):
        line = f"{event} {log_id} {body!r}"
    event_logger.info(line)


__all__ = ["clip_text", "generate_log_id", "log_event", "sanitize_payload", "summarize_dump"]
