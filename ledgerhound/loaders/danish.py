# ledgerhound/loaders/danish.py
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ledgerhound.errors import CsvSyntaxError, EncodingError, MissingColumn
from ledgerhound.loaders.base import BaseLoader

logger = logging.getLogger(__name__)

# Ordered synonym lists, matched as case-insensitive substrings of a header.
SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "date": ("dato", "date"),
    "category": ("kategori", "category"),
    "subcategory": ("underkategori", "subcategory"),
    "payee": ("tekst", "text", "description", "payee"),
    "amount": ("beløb", "belob", "bel", "amount"),
    "balance": ("saldo", "balance"),
    "status": ("status",),
    "reconciled": ("afstemt", "reconciled"),
}
MANDATORY = ("date", "payee", "amount")


def decode_bytes(data: bytes, filename: str | None = None) -> Tuple[str, str]:
    """Decode a raw export as UTF-8, falling back to Windows-1252.

    The fallback replaces the handful of bytes cp1252 leaves undefined
    instead of failing, since bank exports in that codepage are otherwise
    readable.
    """
    try:
        text, encoding = data.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        logger.debug("%s is not UTF-8, decoding as windows-1252", filename or "<bytes>")
        text, encoding = data.decode("cp1252", errors="replace"), "cp1252"

    if data and not text:
        raise EncodingError(f"Could not decode {filename or 'input'} as UTF-8 or Windows-1252")
    if text.startswith("\ufeff"):
        text = text[1:]
    return text, encoding


def find_column(header: Sequence[str], names: Sequence[str]) -> Optional[int]:
    for idx, title in enumerate(header):
        low = title.lower()
        if any(name in low for name in names):
            return idx
    return None


@dataclass(frozen=True)
class ColumnMap:
    date: int
    payee: int
    amount: int
    category: Optional[int] = None
    subcategory: Optional[int] = None
    balance: Optional[int] = None
    status: Optional[int] = None
    reconciled: Optional[int] = None

    @classmethod
    def from_header(cls, header: Sequence[str]) -> "ColumnMap":
        found = {name: find_column(header, SYNONYMS[name]) for name in SYNONYMS}

        for name in MANDATORY:
            if found[name] is None:
                raise MissingColumn(name, SYNONYMS[name], header)

        # A header that was not split by the current delimiter collapses into
        # one column that contains every synonym.
        seen: Dict[int, str] = {}
        for name in MANDATORY:
            idx = found[name]
            if idx in seen:
                raise MissingColumn(name, SYNONYMS[name], header)
            seen[idx] = name

        return cls(**found)


@dataclass
class RawRecord:
    line: int
    fields: List[str]
    columns: ColumnMap

    def get(self, name: str) -> Optional[str]:
        """Return the trimmed field for a logical column, or None when unmapped."""
        idx = getattr(self.columns, name)
        if idx is None:
            return None
        if idx >= len(self.fields):
            return ""
        return self.fields[idx]


@dataclass
class LoadedFile:
    filename: Optional[str]
    encoding: str
    delimiter: str
    header: List[str]
    columns: ColumnMap
    rows: List[Tuple[int, List[str]]] = field(default_factory=list)

    def records(self) -> Iterator[RawRecord]:
        for line, values in self.rows:
            yield RawRecord(line=line, fields=values, columns=self.columns)


def read_table(text: str, delimiter: str) -> Tuple[List[str], List[Tuple[int, List[str]]]]:
    """Tokenize a whole buffer. Blank lines are skipped and fields trimmed."""
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)
    header: List[str] = []
    rows: List[Tuple[int, List[str]]] = []
    try:
        for values in reader:
            if not values or all(not v.strip() for v in values):
                continue
            cleaned = [v.strip() for v in values]
            if not header:
                header = cleaned
            else:
                rows.append((reader.line_num, cleaned))
    except csv.Error as exc:
        raise CsvSyntaxError(reader.line_num, str(exc)) from exc
    return header, rows


class DanishCsvLoader(BaseLoader):
    """
    Loader for Danish net-bank CSV exports.

    Tries ``;`` first and then ``,``; each attempt re-reads the decoded text
    from scratch. A header without the date, text and amount columns, or a
    tokenizer error, abandons the attempt. When every delimiter fails the
    error of the last attempt is raised.
    """
    DELIMITERS = (";", ",")

    def load(self, data, filename=None):
        text, encoding = decode_bytes(data, filename)
        return self.load_text(text, filename, encoding)

    def load_text(self, text, filename=None, encoding="utf-8"):
        last_error = None
        for delimiter in self.DELIMITERS:
            try:
                header, rows = read_table(text, delimiter)
                columns = ColumnMap.from_header(header)
            except (MissingColumn, CsvSyntaxError) as exc:
                logger.debug("Delimiter %r rejected for %s: %s", delimiter, filename, exc)
                last_error = exc
                continue
            logger.debug(
                "Reading %s as %s with delimiter %r (%d rows)",
                filename, encoding, delimiter, len(rows),
            )
            return LoadedFile(
                filename=filename,
                encoding=encoding,
                delimiter=delimiter,
                header=header,
                columns=columns,
                rows=rows,
            )
        raise last_error
