from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from birthday_reminders.errors import StoreError
from birthday_reminders.record_store import JsonRecordStore
from fakes import NOW, OWNER, make_record


def test_missing_owner_is_empty(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path)

    assert store.get(OWNER) == []
    assert store.get_next_tick_time(OWNER) is None
    assert store.owners() == []


def test_put_then_get_preserves_records_and_order(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path / "owners")
    records = [
        make_record("a", offset=timedelta(hours=2), last_name="Smith"),
        make_record("b", offset=timedelta(days=9), on_day=False, one_week_before=True),
    ]

    store.put(OWNER, records)

    assert store.get(OWNER) == records
    assert store.owners() == [OWNER]


def test_next_tick_time_is_kept_alongside_records(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path)
    store.put(OWNER, [make_record()])

    store.set_next_tick_time(OWNER, NOW + timedelta(hours=3))
    store.put(OWNER, [])

    assert store.get_next_tick_time(OWNER) == NOW + timedelta(hours=3)
    assert store.get(OWNER) == []


def test_owners_are_partitioned(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path)
    store.put("1", [make_record("x", owner_id="1")])
    store.put("2", [make_record("y", owner_id="2")])

    assert sorted(store.owners()) == ["1", "2"]
    assert [record.id for record in store.get("1")] == ["x"]
    assert [record.id for record in store.get("2")] == ["y"]


def test_document_uses_wire_format(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path)
    store.put(OWNER, [make_record()])
    store.set_next_tick_time(OWNER, NOW)

    [path] = list(tmp_path.glob("*.json"))
    document = json.loads(path.read_text(encoding="utf-8"))

    assert document["version"] == 1
    assert document["owner_id"] == OWNER
    assert document["next_tick_at"] == 1772366400000
    assert document["records"][0]["ownerId"] == OWNER
    assert "nextOccurrence" in document["records"][0]


def test_corrupt_document_raises_store_error(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path)
    store.put(OWNER, [])
    [path] = list(tmp_path.glob("*.json"))
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StoreError):
        store.get(OWNER)
    assert store.owners() == []


def test_invalid_stored_record_raises_store_error(tmp_path: Path) -> None:
    store = JsonRecordStore(tmp_path)
    store.put(OWNER, [make_record()])
    [path] = list(tmp_path.glob("*.json"))
    document = json.loads(path.read_text(encoding="utf-8"))
    document["records"][0]["month"] = 14
    path.write_text(json.dumps(document), encoding="utf-8")

    with pytest.raises(StoreError):
        store.get(OWNER)
