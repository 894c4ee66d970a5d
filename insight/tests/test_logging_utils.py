import json
import logging

from insight.contracts.dump import ExtractDump
from insight.contracts.types import TaskInfo
from insight.logging_setup import setup_logging
from insight.logging_utils import generate_log_id, log_event, sanitize_payload, summarize_dump


def test_sanitize_redacts_images_and_truncates():
    payload = {
        "screenshot_base64": "AAAA",
        "raw_response": "r" * 3000,
        "nested": {"image_base64": "BBBB", "items": list(range(80))},
    }

    sanitized = sanitize_payload(payload)

    assert sanitized["screenshot_base64"] == "<redacted:image>"
    assert sanitized["nested"]["image_base64"] == "<redacted:image>"
    assert sanitized["raw_response"].endswith("<truncated 1000 chars>")
    assert len(sanitized["nested"]["items"]) == 50


def test_sanitize_keeps_requested_keys_full():
    long_query = "q" * 3000

    sanitized = sanitize_payload({"user_query": long_query}, keep_full={"user_query"})

    assert sanitized["user_query"] == long_query


def test_log_event_writes_json(caplog):
    with caplog.at_level(logging.INFO, logger="insight.events"):
        log_event("insight_dump", "abc", {"type": "locate"})

    body = json.loads(caplog.records[-1].getMessage())
    assert body == {"event": "insight_dump", "log_id": "abc", "type": "locate"}


def test_generate_log_id_is_unique():
    assert generate_log_id() != generate_log_id()


def test_setup_logging_writes_event_file(tmp_path):
    event_logger = logging.getLogger("insight.events")
    package_logger = logging.getLogger("insight")
    before_events = list(event_logger.handlers)
    before_package = list(package_logger.handlers)
    try:
        setup_logging(tmp_path)
        log_event("insight_dump", "file-check", {"type": "extract"})
        for handler in event_logger.handlers:
            handler.flush()

        lines = (tmp_path / "insight_events.log").read_text(encoding="utf-8").splitlines()
        assert any('"log_id": "file-check"' in line for line in lines)
    finally:
        for handler in event_logger.handlers[len(before_events):]:
            handler.close()
        for handler in package_logger.handlers[len(before_package):]:
            handler.close()
        event_logger.handlers[:] = before_events
        package_logger.handlers[:] = before_package
        event_logger.propagate = True


class _Opaque:
    def __str__(self):
        return "opaque-handle"


def test_summarize_dump_keeps_values_without_json_form(caplog):
    record = ExtractDump(user_query={"data_demand": "price"}, task_info=TaskInfo(handle=_Opaque()))

    summary = summarize_dump(record)
    with caplog.at_level(logging.INFO, logger="insight.events"):
        log_event("insight_dump", "opaque", summary)

    assert summary["matched_element_ids"] == []
    assert isinstance(summary["task_info"]["handle"], _Opaque)
    assert json.loads(caplog.records[-1].getMessage())["task_info"]["handle"] == "opaque-handle"
