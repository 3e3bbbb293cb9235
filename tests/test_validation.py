from __future__ import annotations

from datetime import UTC, datetime

import pytest

from birthday_reminders.errors import ValidationError
from birthday_reminders.validation import parse_record, record_to_payload
from fakes import OWNER


def _payload(**overrides):
    payload = {
        "id": "rec-1",
        "ownerId": OWNER,
        "month": 3,
        "day": 14,
        "nextOccurrence": 1773478800000,
        "name": "Alice",
    }
    payload.update(overrides)
    return payload


def test_parse_record_applies_flag_defaults() -> None:
    record = parse_record(_payload(), OWNER)

    assert record.on_day is True
    assert record.day_before is False
    assert record.one_week_before is False
    assert record.two_weeks_before is False
    assert record.last_name is None
    assert record.next_occurrence == datetime(2026, 3, 14, 9, 0, tzinfo=UTC)


def test_parse_record_trims_name() -> None:
    record = parse_record(_payload(name="  Bob  ", lastName="  Smith "), OWNER)

    assert record.name == "Bob"
    assert record.last_name == "Smith"


@pytest.mark.parametrize("name", ["", "   ", "ElevenChars"])
def test_parse_record_rejects_bad_name_length(name: str) -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_record(_payload(name=name), OWNER)

    assert excinfo.value.field == "name"


def test_parse_record_accepts_ten_character_name() -> None:
    assert parse_record(_payload(name=" TenLetters "), OWNER).name == "TenLetters"


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"month": 0}, "month"),
        ({"month": 13}, "month"),
        ({"month": "3"}, "month"),
        ({"month": True}, "month"),
        ({"day": 30, "month": 2}, "day"),
        ({"id": ""}, "id"),
        ({"onDay": "yes"}, "onDay"),
        ({"nextOccurrence": "tomorrow"}, "nextOccurrence"),
        ({"nextOccurrence": "2026-03-14T09:00:00"}, "nextOccurrence"),
        ({"ownerId": "someone-else"}, "ownerId"),
        ({"lastName": 5}, "lastName"),
    ],
)
def test_parse_record_rejects_invalid_fields(overrides: dict, field: str) -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_record(_payload(**overrides), OWNER)

    assert excinfo.value.field == field


@pytest.mark.parametrize("missing", ["id", "month", "day", "nextOccurrence", "name"])
def test_parse_record_requires_fields(missing: str) -> None:
    payload = _payload()
    del payload[missing]

    with pytest.raises(ValidationError) as excinfo:
        parse_record(payload, OWNER)

    assert excinfo.value.field == missing


def test_parse_record_accepts_iso_timestamp_and_feb_29() -> None:
    record = parse_record(_payload(month=2, day=29, nextOccurrence="2028-02-29T09:00:00+01:00"), OWNER)

    assert record.next_occurrence == datetime(2028, 2, 29, 8, 0, tzinfo=UTC)


def test_owner_id_defaults_to_requesting_owner() -> None:
    payload = _payload()
    del payload["ownerId"]

    assert parse_record(payload, OWNER).owner_id == OWNER


def test_record_to_payload_uses_wire_keys() -> None:
    record = parse_record(_payload(lastName="Smith", twoWeeksBefore=True), OWNER)

    assert record_to_payload(record) == {
        "id": "rec-1",
        "ownerId": OWNER,
        "month": 3,
        "day": 14,
        "nextOccurrence": 1773478800000,
        "name": "Alice",
        "lastName": "Smith",
        "onDay": True,
        "dayBefore": False,
        "oneWeekBefore": False,
        "twoWeeksBefore": True,
    }
