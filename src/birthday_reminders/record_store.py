from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from birthday_reminders.date_logic import from_epoch_ms, to_epoch_ms
from birthday_reminders.errors import StoreError, ValidationError
from birthday_reminders.models import BirthdayRecord
from birthday_reminders.validation import parse_record, record_to_payload

LOGGER = logging.getLogger(__name__)

STORE_VERSION = 1


class RecordStore(Protocol):
    def get(self, owner_id: str) -> list[BirthdayRecord]: ...

    def put(self, owner_id: str, records: list[BirthdayRecord]) -> None: ...

    def get_next_tick_time(self, owner_id: str) -> datetime | None: ...

    def set_next_tick_time(self, owner_id: str, at: datetime) -> None: ...

    def owners(self) -> list[str]: ...


def _owner_filename(owner_id: str) -> str:
    digest = hashlib.sha256(owner_id.encode("utf-8")).hexdigest()
    return f"{digest}.json"


class JsonRecordStore:
    """One JSON document per owner holding its records and next tick."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    def _path(self, owner_id: str) -> Path:
        return self._directory / _owner_filename(owner_id)

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            with path.open("r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Could not read {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise StoreError(f"Malformed owner document: {path}")
        return data

    def _load_document(self, owner_id: str) -> dict[str, Any]:
        path = self._path(owner_id)
        if not path.exists():
            return {"version": STORE_VERSION, "owner_id": owner_id, "records": [], "next_tick_at": None}
        return self._read(path)

    def _save_document_atomic(self, owner_id: str, document: dict[str, Any]) -> None:
        path = self._path(owner_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                delete=False,
            ) as temp_file:
                json.dump(document, temp_file, indent=2)
                temp_file.write("\n")
                temp_name = temp_file.name

            os.replace(temp_name, path)
        except OSError as exc:
            raise StoreError(f"Could not write {path}: {exc}") from exc

    def get(self, owner_id: str) -> list[BirthdayRecord]:
        document = self._load_document(owner_id)
        rows = document.get("records", [])
        if not isinstance(rows, list):
            raise StoreError(f"Malformed records for owner {owner_id}")

        try:
            return [parse_record(row, owner_id) for row in rows]
        except ValidationError as exc:
            raise StoreError(f"Stored record for owner {owner_id} is invalid: {exc}") from exc

    def put(self, owner_id: str, records: list[BirthdayRecord]) -> None:
        document = self._load_document(owner_id)
        document["version"] = STORE_VERSION
        document["owner_id"] = owner_id
        document["records"] = [record_to_payload(record) for record in records]
        self._save_document_atomic(owner_id, document)

    def get_next_tick_time(self, owner_id: str) -> datetime | None:
        value = self._load_document(owner_id).get("next_tick_at")
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise StoreError(f"Malformed next tick for owner {owner_id}")
        return from_epoch_ms(value)

    def set_next_tick_time(self, owner_id: str, at: datetime) -> None:
        document = self._load_document(owner_id)
        document["version"] = STORE_VERSION
        document["owner_id"] = owner_id
        document["next_tick_at"] = to_epoch_ms(at)
        self._save_document_atomic(owner_id, document)

    def owners(self) -> list[str]:
        if not self._directory.exists():
            return []

        found: list[str] = []
        for path in sorted(self._directory.glob("*.json")):
            try:
                owner_id = self._read(path).get("owner_id")
            except StoreError:
                LOGGER.exception("Skipping unreadable owner document %s", path)
                continue
            if isinstance(owner_id, str) and owner_id:
                found.append(owner_id)
        return found
