# ledgerhound/importer.py
"""
Row ingestion for bank CSV exports.

Each row is parsed, fingerprinted and written unless a transaction with the
same import hash already exists. Rows are committed one at a time unless
``atomic=True`` is requested, in which case the whole file is a single unit
of work and any failure rolls every row back.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, Optional

from ledgerhound import database
from ledgerhound.core.models import ImportResult, Transaction
from ledgerhound.core.parsers import parse_amount, parse_date, parse_reconciled
from ledgerhound.errors import InvalidAmount, LedgerError, PersistenceError
from ledgerhound.loaders.base import BaseLoader
from ledgerhound.loaders.danish import DanishCsvLoader, LoadedFile, RawRecord
from ledgerhound.utils import import_hash

logger = logging.getLogger(__name__)


def _optional_text(record: RawRecord, name: str) -> Optional[str]:
    value = record.get(name)
    if value is None:
        return None
    return value.strip() or None


def _optional_amount(record: RawRecord, name: str) -> Optional[int]:
    value = record.get(name)
    if value is None:
        return None
    try:
        return parse_amount(value)
    except InvalidAmount:
        return None


def _resolve_category(
    conn: sqlite3.Connection,
    category: Optional[str],
    subcategory: Optional[str],
) -> Optional[int]:
    if not category:
        return None
    parent_id = database.find_or_create_category(conn, category)
    if subcategory:
        return database.find_or_create_category(conn, subcategory, parent_id)
    return parent_id


def ingest_records(
    conn: sqlite3.Connection,
    records: Iterable[RawRecord],
    account_id: int,
    *,
    atomic: bool = False,
) -> ImportResult:
    """Write parsed rows for *account_id* and count what happened.

    A row that fails date or amount parsing aborts the whole run. Rows
    committed before the failure stay in place unless *atomic* is set.
    """
    result = ImportResult()
    for record in records:
        result.total_rows += 1

        date = parse_date(record.get("date") or "")
        payee = (record.get("payee") or "").strip()
        amount = parse_amount(record.get("amount") or "")
        balance = _optional_amount(record, "balance")

        fingerprint = import_hash(date, payee, amount, balance)
        if database.exists_by_hash(conn, fingerprint):
            logger.debug("Row %d already imported (%s), skipping", record.line, fingerprint[:12])
            result.skipped_duplicates += 1
            continue

        category_id = _resolve_category(
            conn,
            _optional_text(record, "category"),
            _optional_text(record, "subcategory"),
        )
        database.create_transaction(
            conn,
            Transaction(
                account_id=account_id,
                category_id=category_id,
                date=date,
                payee=payee,
                amount=amount,
                balance_snapshot=balance,
                status=_optional_text(record, "status"),
                is_reconciled=parse_reconciled(record.get("reconciled")),
                import_hash=fingerprint,
            ),
        )
        if not atomic:
            conn.commit()
        result.imported += 1
    return result


def _run_import(
    conn: sqlite3.Connection,
    loaded: LoadedFile,
    account_id: int,
    filename: str,
    atomic: bool,
) -> ImportResult:
    try:
        result = ingest_records(conn, loaded.records(), account_id, atomic=atomic)
        database.log_import(conn, filename, result.imported)
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        raise PersistenceError(str(exc)) from exc
    except LedgerError:
        conn.rollback()
        raise

    logger.info(
        "Imported %s into account %s: %d rows, %d new, %d duplicates",
        filename,
        account_id,
        result.total_rows,
        result.imported,
        result.skipped_duplicates,
    )
    return result


def import_csv_bytes(
    conn: sqlite3.Connection,
    data: bytes,
    account_id: int,
    filename: str,
    *,
    atomic: bool = False,
    loader: BaseLoader | None = None,
) -> ImportResult:
    """Import a raw export, detecting its encoding and delimiter."""
    loaded = (loader or DanishCsvLoader()).load(data, filename)
    return _run_import(conn, loaded, account_id, filename, atomic)


def import_csv(
    conn: sqlite3.Connection,
    text: str,
    account_id: int,
    filename: str,
    *,
    atomic: bool = False,
) -> ImportResult:
    """Import already decoded CSV text."""
    loaded = DanishCsvLoader().load_text(text, filename)
    return _run_import(conn, loaded, account_id, filename, atomic)
