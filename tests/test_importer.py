import pytest

from ledgerhound import database
from ledgerhound.errors import InvalidAmount, InvalidDate, MissingColumn, PersistenceError
from ledgerhound.importer import import_csv, import_csv_bytes

HEADER = "Dato;Kategori;Underkategori;Tekst;Beløb"


def _csv(*rows, header=HEADER):
    return "\n".join((header,) + rows) + "\n"


def _count(conn):
    return conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]


def test_import_creates_category_hierarchy(conn, account_id):
    text = _csv(
        "01-01-2025;Mad;Supermarked;Netto;-200,00",
        "01-02-2025;Mad;Supermarked;Netto;-200,00",
    )
    result = import_csv(conn, text, account_id, "januar.csv")

    assert (result.total_rows, result.imported, result.skipped_duplicates) == (2, 2, 0)

    cats = database.list_categories(conn)
    assert [(c.name, c.parent_id) for c in cats][0] == ("Mad", None)
    mad = cats[0]
    assert [(c.name, c.parent_id) for c in cats[1:]] == [("Supermarked", mad.id)]

    txs = database.get_transactions_by_account(conn, account_id)
    assert {tx["category_id"] for tx in txs} == {cats[1].id}
    assert {tx["parent_category_name"] for tx in txs} == {"Mad"}
    assert [tx["date"] for tx in txs] == ["2025-02-01", "2025-01-01"]
    assert all(tx["amount"] == -20000 for tx in txs)


def test_reimport_skips_every_row(conn, account_id):
    text = _csv(
        "01-01-2025;Mad;Supermarked;Netto;-200,00",
        "03-01-2025;Bolig;;Husleje;-8.500,00",
        "05-01-2025;;;Løn;25.000,00",
    )
    first = import_csv(conn, text, account_id, "konto.csv")
    second = import_csv(conn, text, account_id, "konto.csv")

    assert first.imported == 3
    assert second.imported == 0
    assert second.skipped_duplicates == second.total_rows == 3
    assert _count(conn) == 3

    log = database.list_import_log(conn)
    assert [(entry["filename"], entry["records_added"]) for entry in log] == [
        ("konto.csv", 3),
        ("konto.csv", 0),
    ]
    assert all(entry["timestamp"] for entry in log)


def test_duplicate_rows_within_one_file(conn, account_id):
    text = _csv(
        "01-01-2025;;;Kiosk;-20,00",
        "01-01-2025;;;Kiosk;-20,00",
    )
    result = import_csv(conn, text, account_id, "dup.csv")
    assert (result.imported, result.skipped_duplicates) == (1, 1)


def test_balance_makes_rows_distinct(conn, account_id):
    text = _csv(
        "01-01-2025;Kiosk;-20,00;",
        "01-01-2025;Kiosk;-20,00;980,00",
        "01-01-2025;Kiosk;-20,00;960,00",
        header="Dato;Tekst;Beløb;Saldo",
    )
    result = import_csv(conn, text, account_id, "saldo.csv")
    assert result.imported == 3

    balances = sorted(
        (tx["balance_snapshot"] is None, tx["balance_snapshot"])
        for tx in database.get_transactions_by_account(conn, account_id)
    )
    assert balances == [(False, 96000), (False, 98000), (True, None)]


def test_unparseable_balance_is_stored_as_missing(conn, account_id):
    text = _csv("01-01-2025;Kiosk;-20,00;n/a", header="Dato;Tekst;Beløb;Saldo")
    import_csv(conn, text, account_id, "saldo.csv")
    (tx,) = database.get_transactions_by_account(conn, account_id)
    assert tx["balance_snapshot"] is None


def test_oversized_amount_aborts_import(conn, account_id):
    text = _csv("01-01-2025;;;Netto;99999999999999999999")
    with pytest.raises(InvalidAmount, match="Amount out of range"):
        import_csv(conn, text, account_id, "huge.csv")
    assert _count(conn) == 0
    assert database.list_import_log(conn) == []


def test_oversized_balance_is_stored_as_missing(conn, account_id):
    text = _csv("01-01-2025;Kiosk;-20,00;99999999999999999999", header="Dato;Tekst;Beløb;Saldo")
    result = import_csv(conn, text, account_id, "saldo.csv")

    assert result.imported == 1
    (tx,) = database.get_transactions_by_account(conn, account_id)
    assert tx["balance_snapshot"] is None


def test_optional_status_and_reconciled(conn, account_id):
    text = _csv(
        "01-01-2025;Netto;-1,00;Udført;Ja",
        "02-01-2025;Netto;-1,00;;nej",
        header="Dato;Tekst;Beløb;Status;Afstemt",
    )
    import_csv(conn, text, account_id, "status.csv")
    txs = {tx["date"]: tx for tx in database.get_transactions_by_account(conn, account_id)}

    assert txs["2025-01-01"]["status"] == "Udført"
    assert txs["2025-01-01"]["is_reconciled"] is True
    assert txs["2025-01-02"]["status"] is None
    assert txs["2025-01-02"]["is_reconciled"] is False


def test_subcategory_without_category_is_ignored(conn, account_id):
    import_csv(conn, _csv("01-01-2025;;Supermarked;Netto;-1,00"), account_id, "x.csv")
    (tx,) = database.get_transactions_by_account(conn, account_id)
    assert tx["category_id"] is None
    assert database.list_categories(conn) == []


def test_invalid_date_aborts_but_keeps_earlier_rows(conn, account_id):
    text = _csv(
        "01-01-2025;;;Netto;-1,00",
        "13-13-2025;;;Netto;-2,00",
        "03-01-2025;;;Netto;-3,00",
    )
    with pytest.raises(InvalidDate, match="13-13-2025"):
        import_csv(conn, text, account_id, "bad.csv")

    assert _count(conn) == 1
    assert database.list_import_log(conn) == []


def test_atomic_import_rolls_back_everything(conn, account_id):
    text = _csv(
        "01-01-2025;Mad;;Netto;-1,00",
        "02-01-2025;;;Netto;12 kr",
    )
    with pytest.raises(InvalidAmount, match="12 kr"):
        import_csv(conn, text, account_id, "bad.csv", atomic=True)

    assert _count(conn) == 0
    assert database.list_categories(conn) == []


def test_atomic_import_commits_on_success(conn, account_id, db_path):
    import_csv(conn, _csv("01-01-2025;;;Netto;-1,00"), account_id, "ok.csv", atomic=True)
    with database.connect(db_path) as other:
        assert _count(other) == 1


def test_missing_column_writes_nothing(conn, account_id):
    with pytest.raises(MissingColumn):
        import_csv(conn, "Dato;Tekst\n01-01-2025;Netto\n", account_id, "bad.csv")
    assert _count(conn) == 0
    assert database.list_import_log(conn) == []


def test_unknown_account_is_a_persistence_error(conn):
    with pytest.raises(PersistenceError):
        import_csv(conn, _csv("01-01-2025;;;Netto;-1,00"), 999, "x.csv")
    assert _count(conn) == 0


def test_import_bytes_in_windows_1252(conn, account_id):
    data = _csv("01-01-2025;Fritid;;Café Øresund;-45,50").encode("cp1252")
    result = import_csv_bytes(conn, data, account_id, "cp1252.csv")

    assert result.imported == 1
    (tx,) = database.get_transactions_by_account(conn, account_id)
    assert tx["payee"] == "Café Øresund"
    assert tx["amount"] == -4550


def test_same_row_hashes_alike_across_delimiters(conn, account_id):
    semicolon = "Dato;Tekst;Beløb\n01-01-2025;Netto;-200,00\n"
    comma = 'Dato,Tekst,Beløb\n01-01-2025,Netto,"-200,00"\n'

    assert import_csv(conn, semicolon, account_id, "a.csv").imported == 1
    second = import_csv_bytes(conn, comma.encode("cp1252"), account_id, "b.csv")
    assert (second.imported, second.skipped_duplicates) == (0, 1)
