from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from insight.contracts.dump import DumpRecord
from insight.contracts.types import TaskInfo
from insight.logging_utils import generate_log_id, log_event, summarize_dump

logger = logging.getLogger(__name__)

DumpSubscriber = Callable[[DumpRecord], None]


def now_iso_utc() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_task_info(baseline: Optional[Dict[str, Any]], **fields: Any) -> TaskInfo:
    """Merge caller-supplied baseline task metadata with this call's telemetry."""
    merged: Dict[str, Any] = dict(baseline or {})
    merged.update({key: value for key, value in fields.items() if value is not None})
    return TaskInfo(**merged)


def emit_insight_dump(record: DumpRecord, subscriber: Optional[DumpSubscriber] = None) -> DumpRecord:
    """
    Stamp and publish a dump for one insight call.

    The subscriber is called once. Subscriber and event-log failures are logged
    and never reach the caller.
    """
    if not record.log_id:
        record.log_id = generate_log_id()
    if not record.log_time:
        record.log_time = now_iso_utc()

    if subscriber is not None:
        try:
            subscriber(record)
        except Exception as exc:  # noqa: BLE001
            logger.warning("insight dump subscriber failed for %s %s: %s", record.type, record.log_id, exc)

    try:
        log_event("insight_dump", record.log_id, summarize_dump(record))
    except Exception as exc:  # noqa: BLE001
        logger.warning("insight dump event not logged for %s %s: %s", record.type, record.log_id, exc)
    return record


__all__ = ["DumpSubscriber", "build_task_info", "emit_insight_dump", "now_iso_utc"]
