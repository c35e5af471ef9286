import pytest

from ledgerhound import database
from ledgerhound.core.models import Account


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "ledger.db")


@pytest.fixture
def conn(db_path):
    with database.connect(db_path) as c:
        yield c


@pytest.fixture
def account_id(conn):
    return database.create_account(conn, Account(name="Lønkonto", account_number="1234-5678"))


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("LEDGERHOUND_DB", raising=False)
    monkeypatch.delenv("LEDGERHOUND_LOG", raising=False)
