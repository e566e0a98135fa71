from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from troublecode.bundle import CIRCULAR_MARKER, safe_json_clone
from troublecode.codec import decode_bundle_sync, encode_bundle_sync
from troublecode.collect import (
    NO_DESCRIPTION,
    LogSink,
    LogSinkHandler,
    collect_info,
    make_sample_logs,
)


def test_sink_drops_oldest_entries() -> None:
    sink = LogSink(capacity=3)
    for number in range(5):
        sink.push("info", f"message {number}")
    assert len(sink) == 3
    assert [entry["message"] for entry in sink.snapshot()] == ["message 2", "message 3", "message 4"]


def test_default_capacity_is_eighty() -> None:
    sink = LogSink()
    for number in range(100):
        sink.push("info", number)
    assert sink.capacity == 80
    assert len(sink) == 80
    assert sink.snapshot()[0]["message"] == "20"


def test_snapshot_is_a_copy() -> None:
    sink = LogSink()
    sink.push("warn", "first")
    snapshot = sink.snapshot()
    snapshot[0]["message"] = "changed"
    sink.push("warn", "second")
    assert len(snapshot) == 1
    assert sink.snapshot()[0]["message"] == "first"


def test_push_stringifies_arguments() -> None:
    sink = LogSink()
    entry = sink.push("error", "failed:", {"code": 7}, ValueError("bad value"))
    assert entry["level"] == "error"
    assert entry["message"] == 'failed: {"code": 7} ValueError: bad value'
    assert entry["args"][1] == {"code": 7}
    assert entry["args"][2]["__type"] == "Error"
    assert entry["args"][2]["name"] == "ValueError"
    assert entry["time"].endswith("Z")


def test_clear_empties_the_sink() -> None:
    sink = LogSink()
    make_sample_logs(sink)
    assert [entry["level"] for entry in sink.snapshot()] == ["warn", "info", "error"]
    sink.clear()
    assert len(sink) == 0


def test_concurrent_pushes_stay_bounded() -> None:
    sink = LogSink(capacity=50)

    def _worker(prefix: str) -> None:
        for number in range(200):
            sink.push("info", f"{prefix}-{number}")

    threads = [threading.Thread(target=_worker, args=(str(i),)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(sink) == 50


def test_handler_routes_logging_records() -> None:
    sink = LogSink()
    logger = logging.getLogger("troublecode.tests.collect")
    logger.propagate = False
    handler = LogSinkHandler(sink)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    try:
        logger.warning("disk at %d%%", 91)
        try:
            raise RuntimeError("explode")
        except RuntimeError:
            logger.exception("operation failed")
        logger.debug("details")
    finally:
        logger.removeHandler(handler)
    entries = sink.snapshot()
    assert [entry["level"] for entry in entries] == ["warn", "error", "debug"]
    assert entries[0]["message"] == "disk at 91%"
    assert entries[0]["logger"] == "troublecode.tests.collect"
    assert "RuntimeError: explode" in entries[1]["stack"]


def test_safe_json_clone_marks_cycles() -> None:
    value: dict = {"name": "loop"}
    value["self"] = value
    value["items"] = [1, value]
    cloned = safe_json_clone(value)
    assert cloned == {"name": "loop", "self": CIRCULAR_MARKER, "items": [1, CIRCULAR_MARKER]}


def test_safe_json_clone_handles_unusual_values() -> None:
    cloned = safe_json_clone(
        {
            1: b"\x00\xff",
            "set": {3},
            "nan": float("nan"),
            "func": len,
            "when": datetime(2024, 1, 2, tzinfo=timezone.utc),
            "obj": object,
        }
    )
    assert cloned["1"] == {"__type": "Bytes", "length": 2, "base64url": "AP8"}
    assert cloned["set"] == {"__type": "Set", "values": [3]}
    assert cloned["nan"] is None
    assert cloned["func"] == {"__type": "Function", "name": "len"}
    assert cloned["when"] == "2024-01-02T00:00:00+00:00"
    assert cloned["obj"] == {"__type": "Function", "name": "object"}


def test_collect_info_fields() -> None:
    sink = LogSink()
    make_sample_logs(sink)
    info = collect_info("  Button does nothing  ", sink=sink)
    for key in (
        "version",
        "timestamp",
        "localeTime",
        "userError",
        "host",
        "runtime",
        "process",
        "locale",
        "timezone",
        "storage",
        "logs",
    ):
        assert key in info
    assert info["version"] == "1.0"
    assert info["userError"] == "Button does nothing"
    assert len(info["logs"]) == 3
    assert info["runtime"]["compression"] is True


def test_collect_info_defaults() -> None:
    moment = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
    info = collect_info(now=moment)
    assert info["userError"] == NO_DESCRIPTION
    assert info["logs"] == []
    assert info["timestamp"] == "2024-05-06T07:08:09.000Z"


def test_collected_bundle_encodes() -> None:
    sink = LogSink()
    make_sample_logs(sink)
    info = collect_info("boom", sink=sink)
    assert decode_bundle_sync(encode_bundle_sync(info)) == info
