# ledgerhound/utils.py
import hashlib
import struct


def _le_int64(value):
    return struct.pack("<q", int(value))


def import_hash(date, payee, amount, balance=None):
    """
    Fingerprint a parsed row for duplicate detection.

    SHA-256 over the ISO date, the payee, the amount as a little-endian
    64-bit integer and, when present, the balance in the same encoding.
    Rows that differ only by a missing balance hash differently.
    """
    digest = hashlib.sha256()
    digest.update(date.encode("utf-8"))
    digest.update(payee.encode("utf-8"))
    digest.update(_le_int64(amount))
    if balance is not None:
        digest.update(_le_int64(balance))
    return digest.hexdigest()


def format_amount(minor_units):
    """Render minor units the way the bank exports them, e.g. ``-1.234,56``."""
    sign = "-" if minor_units < 0 else ""
    major, minor = divmod(abs(int(minor_units)), 100)
    return f"{sign}{major:,}".replace(",", ".") + f",{minor:02d}"
