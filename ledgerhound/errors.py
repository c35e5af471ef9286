# ledgerhound/errors.py
from __future__ import annotations

from typing import Sequence


class LedgerError(Exception):
    """Base class for every error surfaced to callers of ledgerhound."""


class MissingColumn(LedgerError):
    """A mandatory column could not be located in the header row."""

    def __init__(self, field: str, synonyms: Sequence[str], header: Sequence[str]):
        self.field = field
        self.synonyms = list(synonyms)
        self.header = list(header)
        super().__init__(
            f"Could not find the '{field}' column (tried {self.synonyms}). "
            f"Found headers: {self.header}"
        )


class CsvSyntaxError(LedgerError):
    def __init__(self, row: int, detail: str):
        self.row = row
        super().__init__(f"Malformed CSV at row {row}: {detail}")


class EncodingError(LedgerError):
    pass


class InvalidDate(LedgerError, ValueError):
    def __init__(self, raw: str, reason: str = "Invalid date"):
        self.raw = raw
        super().__init__(f"{reason}: '{raw}'")


class InvalidAmount(LedgerError, ValueError):
    def __init__(self, raw: str, reason: str = "Invalid amount"):
        self.raw = raw
        super().__init__(f"{reason}: '{raw}'")


class PersistenceError(LedgerError):
    """Storage failure; the message is passed through from sqlite."""
