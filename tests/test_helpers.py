from dataclasses import dataclass
from datetime import datetime, timezone

from greflect.utils.helpers import (
    new_id,
    parse_json_payload,
    parse_timestamp,
    strip_code_fence,
    to_jsonable,
    truncate_string,
)


def test_parse_json_payload_accepts_fenced_json():
    result = parse_json_payload('```json\n{"consciousness_level": 7}\n```', expect=dict)
    assert result.ok
    assert result.value == {"consciousness_level": 7}


def test_parse_json_payload_failures_carry_reason():
    assert parse_json_payload(None).error == "empty"
    assert parse_json_payload("   ").error == "empty"
    assert parse_json_payload("not json").error.startswith("invalid_json")
    assert parse_json_payload("[1, 2]", expect=dict).error == "unexpected_type: list"


def test_strip_code_fence_leaves_plain_text():
    assert strip_code_fence("  [1]  ") == "[1]"


def test_truncate_string():
    assert truncate_string("short", 10) == "short"
    assert truncate_string("a" * 20, 10) == "aaaaaaa..."


def test_parse_timestamp_normalizes_to_utc():
    ts = parse_timestamp("2025-01-02T03:04:05Z")
    assert ts == datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    naive = parse_timestamp(datetime(2025, 1, 1))
    assert naive.tzinfo is timezone.utc
    assert parse_timestamp("garbage").tzinfo is not None


def test_new_id_is_unique():
    assert len({new_id() for _ in range(100)}) == 100


def test_to_jsonable_handles_nested_dataclasses():
    @dataclass
    class Inner:
        at: datetime
        tags: set

    @dataclass
    class Outer:
        inner: Inner
        items: tuple

    ts = datetime(2025, 1, 1, tzinfo=timezone.utc)
    data = to_jsonable(Outer(inner=Inner(at=ts, tags={"a"}), items=(1, 2)))
    assert data == {"inner": {"at": ts.isoformat(), "tags": ["a"]}, "items": [1, 2]}
