"""Errors raised by the birthday record service, store and dispatcher."""

from __future__ import annotations


class BirthdayError(Exception):
    """Base class for all birthday reminder errors."""


class ValidationError(BirthdayError, ValueError):
    """A record payload is malformed or a required field is missing."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class ConflictError(BirthdayError):
    """A record with the same id already exists for the owner."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Birthday id already exists: {record_id}")
        self.record_id = record_id


class NotFoundError(BirthdayError, LookupError):
    """No record with the requested id exists for the owner."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Birthday id not found: {record_id}")
        self.record_id = record_id


class StoreError(BirthdayError):
    """Loading or persisting an owner's record set failed."""


class DispatchError(BirthdayError):
    """A notification could not be queued or delivered."""
