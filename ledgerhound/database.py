import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from ledgerhound.core.models import (
    Account,
    Category,
    Frequency,
    SubscriptionCandidate,
    Transaction,
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    account_number TEXT,
    currency TEXT DEFAULT 'DKK'
);

CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    parent_id INTEGER,
    FOREIGN KEY(parent_id) REFERENCES categories(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id INTEGER NOT NULL,
    category_id INTEGER,
    date TEXT NOT NULL,
    payee TEXT NOT NULL,
    amount INTEGER NOT NULL,
    balance_snapshot INTEGER,
    status TEXT,
    is_reconciled INTEGER DEFAULT 0,
    import_hash TEXT UNIQUE,
    FOREIGN KEY(account_id) REFERENCES accounts(id) ON DELETE CASCADE,
    FOREIGN KEY(category_id) REFERENCES categories(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS import_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    filename TEXT NOT NULL,
    import_date TEXT DEFAULT (datetime('now')),
    records_added INTEGER
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id INTEGER NOT NULL,
    payee_pattern TEXT NOT NULL,
    amount INTEGER NOT NULL,
    frequency TEXT NOT NULL,
    last_charge_date TEXT,
    next_charge_date TEXT,
    is_active INTEGER DEFAULT 1,
    category_id INTEGER,
    confidence REAL DEFAULT 0.0,
    FOREIGN KEY(account_id) REFERENCES accounts(id) ON DELETE CASCADE,
    FOREIGN KEY(category_id) REFERENCES categories(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS subscription_transactions (
    subscription_id INTEGER NOT NULL,
    transaction_id INTEGER NOT NULL,
    PRIMARY KEY (subscription_id, transaction_id),
    FOREIGN KEY(subscription_id) REFERENCES subscriptions(id) ON DELETE CASCADE,
    FOREIGN KEY(transaction_id) REFERENCES transactions(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_transactions_account ON transactions(account_id);
CREATE INDEX IF NOT EXISTS idx_transactions_category ON transactions(category_id);
CREATE INDEX IF NOT EXISTS idx_categories_parent ON categories(parent_id);
CREATE INDEX IF NOT EXISTS idx_subscriptions_account ON subscriptions(account_id);
"""


def _init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA)
    conn.commit()


@contextmanager
def connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """Open a session handle on the ledger database.

    The handle is passed explicitly to every operation; nothing in ledgerhound
    shares a connection between callers. File databases run in WAL mode so a
    detection run can read while another handle writes.
    """
    in_memory = str(db_path) == ":memory:"
    if not in_memory:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        if not in_memory:
            conn.execute("PRAGMA journal_mode = WAL")
        _init_db(conn)
        yield conn
    finally:
        conn.close()


# --- accounts -----------------------------------------------------------------

def create_account(conn: sqlite3.Connection, account: Account) -> int:
    cur = conn.execute(
        "INSERT INTO accounts (name, account_number, currency) VALUES (?, ?, ?)",
        (account.name, account.account_number, account.currency),
    )
    conn.commit()
    return cur.lastrowid


def list_accounts(conn: sqlite3.Connection) -> List[Account]:
    rows = conn.execute(
        "SELECT id, name, account_number, currency FROM accounts ORDER BY name"
    ).fetchall()
    return [
        Account(id=r[0], name=r[1], account_number=r[2], currency=r[3])
        for r in rows
    ]


# --- categories ---------------------------------------------------------------

def find_or_create_category(
    conn: sqlite3.Connection,
    name: str,
    parent_id: Optional[int] = None,
) -> int:
    """Return the id of the category called *name* under *parent_id*.

    The lookup treats a missing parent as part of the key, so "Mad" at the top
    level and "Mad" under another category are different rows. Does not
    commit.
    """
    row = conn.execute(
        "SELECT id FROM categories WHERE name = ? AND parent_id IS ?",
        (name, parent_id),
    ).fetchone()
    if row:
        return row[0]
    cur = conn.execute(
        "INSERT INTO categories (name, parent_id) VALUES (?, ?)",
        (name, parent_id),
    )
    return cur.lastrowid


def list_categories(conn: sqlite3.Connection) -> List[Category]:
    rows = conn.execute(
        "SELECT id, name, parent_id FROM categories ORDER BY parent_id IS NOT NULL, parent_id, name"
    ).fetchall()
    return [Category(id=r[0], name=r[1], parent_id=r[2]) for r in rows]


def get_children(conn: sqlite3.Connection, parent_id: int) -> List[Category]:
    rows = conn.execute(
        "SELECT id, name, parent_id FROM categories WHERE parent_id = ? ORDER BY name",
        (parent_id,),
    ).fetchall()
    return [Category(id=r[0], name=r[1], parent_id=r[2]) for r in rows]


def category_descendants(
    conn: sqlite3.Connection,
    category_ids: Iterable[int],
    depth: Optional[int] = 1,
) -> Set[int]:
    """Return *category_ids* plus their descendants down to *depth* generations.

    ``depth=1`` adds immediate children only, ``depth=0`` adds nothing and
    ``None`` follows the whole subtree.
    """
    ids = list(dict.fromkeys(category_ids))
    if not ids:
        return set()
    placeholders = ",".join("?" for _ in ids)
    if depth is None:
        query = f"""
            WITH RECURSIVE tree(id) AS (
                SELECT id FROM categories WHERE id IN ({placeholders})
                UNION
                SELECT c.id FROM categories c JOIN tree ON c.parent_id = tree.id
            )
            SELECT id FROM tree
        """
        params: list = ids
    else:
        query = f"""
            WITH RECURSIVE tree(id, level) AS (
                SELECT id, 0 FROM categories WHERE id IN ({placeholders})
                UNION
                SELECT c.id, tree.level + 1
                FROM categories c JOIN tree ON c.parent_id = tree.id
                WHERE tree.level < ?
            )
            SELECT DISTINCT id FROM tree
        """
        params = ids + [depth]
    return {row[0] for row in conn.execute(query, params).fetchall()}


# --- transactions -------------------------------------------------------------

def create_transaction(conn: sqlite3.Connection, tx: Transaction) -> int:
    """Insert *tx* and return its id. Does not commit."""
    cur = conn.execute(
        """
        INSERT INTO transactions
        (account_id, category_id, date, payee, amount, balance_snapshot,
         status, is_reconciled, import_hash)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            tx.account_id,
            tx.category_id,
            tx.date,
            tx.payee,
            tx.amount,
            tx.balance_snapshot,
            tx.status,
            int(tx.is_reconciled),
            tx.import_hash,
        ),
    )
    return cur.lastrowid


def exists_by_hash(conn: sqlite3.Connection, import_hash: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM transactions WHERE import_hash = ? LIMIT 1",
        (import_hash,),
    ).fetchone()
    return row is not None


def get_expenses_by_account(
    conn: sqlite3.Connection, account_id: int
) -> List[Tuple[int, str, int, str]]:
    """Return ``(id, payee, amount, date)`` for every expense, newest first."""
    return [
        tuple(r)
        for r in conn.execute(
            """
            SELECT id, payee, amount, date
            FROM transactions
            WHERE account_id = ? AND amount < 0
            ORDER BY date DESC
            """,
            (account_id,),
        ).fetchall()
    ]


def get_transactions_by_account(
    conn: sqlite3.Connection,
    account_id: int,
    limit: Optional[int] = None,
) -> List[Dict[str, object]]:
    """Transactions for an account with category and parent category names."""
    query = """
        SELECT t.id, t.account_id, t.category_id, t.date, t.payee, t.amount,
               t.balance_snapshot, t.status, t.is_reconciled, t.import_hash,
               c.name, p.name
        FROM transactions t
        LEFT JOIN categories c ON t.category_id = c.id
        LEFT JOIN categories p ON c.parent_id = p.id
        WHERE t.account_id = ?
        ORDER BY t.date DESC, t.id DESC
    """
    params: list = [account_id]
    if limit is not None:
        query += " LIMIT ?"
        params.append(limit)
    rows = conn.execute(query, params).fetchall()
    return [
        {
            "id": r[0],
            "account_id": r[1],
            "category_id": r[2],
            "date": r[3],
            "payee": r[4],
            "amount": r[5],
            "balance_snapshot": r[6],
            "status": r[7],
            "is_reconciled": bool(r[8]),
            "import_hash": r[9],
            "category_name": r[10],
            "parent_category_name": r[11],
        }
        for r in rows
    ]


def update_transaction_category(
    conn: sqlite3.Connection,
    transaction_id: int,
    category_id: Optional[int],
) -> int:
    cur = conn.execute(
        "UPDATE transactions SET category_id = ? WHERE id = ?",
        (category_id, transaction_id),
    )
    conn.commit()
    return cur.rowcount


# --- import log ---------------------------------------------------------------

def log_import(conn: sqlite3.Connection, filename: str, records_added: int) -> None:
    conn.execute(
        "INSERT INTO import_log (filename, records_added) VALUES (?, ?)",
        (filename, records_added),
    )


def list_import_log(conn: sqlite3.Connection) -> List[Dict[str, object]]:
    rows = conn.execute(
        "SELECT filename, import_date, records_added FROM import_log ORDER BY id"
    ).fetchall()
    return [
        {"filename": r[0], "timestamp": r[1], "records_added": r[2]}
        for r in rows
    ]


# --- subscriptions ------------------------------------------------------------

def save_subscription(conn: sqlite3.Connection, sub: SubscriptionCandidate) -> int:
    """Persist a detected subscription and link the transactions it was built from."""
    cur = conn.execute(
        """
        INSERT INTO subscriptions
        (account_id, payee_pattern, amount, frequency, last_charge_date,
         next_charge_date, is_active, category_id, confidence)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            sub.account_id,
            sub.payee_pattern,
            sub.amount,
            Frequency(sub.frequency).value,
            sub.last_charge_date,
            sub.next_charge_date,
            int(sub.is_active),
            sub.category_id,
            float(sub.confidence),
        ),
    )
    sub_id = cur.lastrowid
    conn.executemany(
        """
        INSERT OR IGNORE INTO subscription_transactions
        (subscription_id, transaction_id) VALUES (?, ?)
        """,
        [(sub_id, tx_id) for tx_id in sub.transaction_ids],
    )
    conn.commit()
    return sub_id


def list_subscriptions(
    conn: sqlite3.Connection, account_id: int
) -> List[SubscriptionCandidate]:
    rows = conn.execute(
        """
        SELECT s.id, s.account_id, s.payee_pattern, s.amount, s.frequency,
               s.last_charge_date, s.next_charge_date, s.is_active, s.category_id,
               s.confidence, st.transaction_id
        FROM subscriptions s
        LEFT JOIN subscription_transactions st ON st.subscription_id = s.id
        WHERE s.account_id = ? AND s.is_active = 1
        ORDER BY s.next_charge_date ASC, s.id, st.transaction_id
        """,
        (account_id,),
    ).fetchall()
    subs: Dict[int, SubscriptionCandidate] = {}
    for r in rows:
        sub = subs.get(r[0])
        if sub is None:
            sub = subs[r[0]] = SubscriptionCandidate(
                id=r[0],
                account_id=r[1],
                payee_pattern=r[2],
                amount=r[3],
                frequency=Frequency(r[4]),
                last_charge_date=r[5],
                next_charge_date=r[6],
                is_active=bool(r[7]),
                category_id=r[8],
                confidence=float(r[9]),
            )
        if r[10] is not None:
            sub.transaction_ids.append(r[10])
    return list(subs.values())


def dismiss_subscription(conn: sqlite3.Connection, subscription_id: int) -> int:
    cur = conn.execute(
        "UPDATE subscriptions SET is_active = 0 WHERE id = ?",
        (subscription_id,),
    )
    conn.commit()
    return cur.rowcount


def get_saved_subscription_patterns(
    conn: sqlite3.Connection, account_id: int
) -> Set[Tuple[str, int]]:
    """Return ``(payee_pattern, amount)`` for the account's active subscriptions."""
    rows = conn.execute(
        """
        SELECT payee_pattern, amount FROM subscriptions
        WHERE account_id = ? AND is_active = 1
        """,
        (account_id,),
    ).fetchall()
    return {(r[0], r[1]) for r in rows}


# --- spending -----------------------------------------------------------------

def category_spend(
    conn: sqlite3.Connection,
    category_ids: Iterable[int],
    month: str,
    depth: Optional[int] = 1,
) -> int:
    """Total expense (positive minor units) for categories in a ``YYYY-MM`` month.

    Parameters
    ----------
    category_ids:
        Categories whose spending is summed.
    month:
        Month in ``YYYY-MM`` form, compared against the transaction date prefix.
    depth:
        How many generations of subcategories to include; see
        :func:`category_descendants`.
    """
    ids = sorted(category_descendants(conn, category_ids, depth))
    if not ids:
        return 0
    placeholders = ",".join("?" for _ in ids)
    row = conn.execute(
        f"""
        SELECT COALESCE(SUM(ABS(amount)), 0)
        FROM transactions
        WHERE category_id IN ({placeholders})
          AND substr(date, 1, 7) = ?
          AND amount < 0
        """,
        ids + [month],
    ).fetchone()
    return int(row[0] or 0)


def spending_by_category(
    conn: sqlite3.Connection,
    account_id: int,
    start_date: str,
    end_date: str,
) -> List[Tuple[str, int]]:
    """Expenses grouped by top-level category name, largest spend first.

    Totals are positive minor units, as in :func:`category_spend`.
    """
    rows = conn.execute(
        """
        SELECT COALESCE(p.name, c.name, 'Uncategorized') AS category,
               SUM(ABS(t.amount)) AS total
        FROM transactions t
        LEFT JOIN categories c ON t.category_id = c.id
        LEFT JOIN categories p ON c.parent_id = p.id
        WHERE t.account_id = ? AND t.date >= ? AND t.date <= ? AND t.amount < 0
        GROUP BY category
        ORDER BY total DESC, category
        """,
        (account_id, start_date, end_date),
    ).fetchall()
    return [(r[0], int(r[1])) for r in rows]
