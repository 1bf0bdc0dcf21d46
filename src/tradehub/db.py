"""SQLite persistence for the marketplace ledger."""

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from .config import DEFAULT_DB_PATH
from .errors import StoreError
from .hub import DEFAULT_ADDRESS, DEFAULT_NAME, DEFAULT_SYMBOL, EnergyTradeHub
from .models import EnergyToken, Event, TokenSale

SCHEMA = """
-- Hub identity and counters
CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Energy token records (deleted on burn); values stored as text for arbitrary precision
CREATE TABLE IF NOT EXISTS tokens (
    token_id INTEGER PRIMARY KEY,
    owner TEXT NOT NULL,
    energy_type TEXT NOT NULL,
    valid_from TEXT NOT NULL,
    valid_to TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    amount_in_kw TEXT NOT NULL,
    balance_in_kw TEXT NOT NULL
);

-- Sale listings (kept after burn); prices stored as text for arbitrary precision
CREATE TABLE IF NOT EXISTS token_sales (
    token_id INTEGER PRIMARY KEY,
    is_for_sale INTEGER NOT NULL,
    price TEXT NOT NULL
);

-- Ownership registry
CREATE TABLE IF NOT EXISTS owners (
    token_id INTEGER PRIMARY KEY,
    owner TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS token_uris (
    token_id INTEGER PRIMARY KEY,
    uri TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS token_approvals (
    token_id INTEGER PRIMARY KEY,
    approved TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS operator_approvals (
    owner TEXT NOT NULL,
    operator TEXT NOT NULL,
    PRIMARY KEY (owner, operator)
);

-- Access control
CREATE TABLE IF NOT EXISTS role_members (
    role TEXT NOT NULL,
    account TEXT NOT NULL,
    PRIMARY KEY (role, account)
);

CREATE TABLE IF NOT EXISTS role_admins (
    role TEXT PRIMARY KEY,
    admin_role TEXT NOT NULL
);

-- Wallet balances in the smallest currency unit
CREATE TABLE IF NOT EXISTS balances (
    account TEXT PRIMARY KEY,
    amount TEXT NOT NULL
);

-- Committed events, args as JSON
CREATE TABLE IF NOT EXISTS events (
    seq INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    args TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_name ON events(name);
CREATE INDEX IF NOT EXISTS idx_owners_owner ON owners(owner);
"""

STATE_TABLES = (
    "meta",
    "tokens",
    "token_sales",
    "owners",
    "token_uris",
    "token_approvals",
    "operator_approvals",
    "role_members",
    "role_admins",
    "balances",
    "events",
)


def get_db_path() -> Path:
    """Get the database path, creating parent directories if needed."""
    db_path = Path(DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Get a database connection with row factory enabled."""
    path = db_path or get_db_path()
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)
        conn.commit()


def is_initialized(db_path: Path | None = None) -> bool:
    """Whether a hub has been saved to this database."""
    with get_connection(db_path) as conn:
        table = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='meta'"
        ).fetchone()
        if not table:
            return False
        row = conn.execute("SELECT value FROM meta WHERE key = 'admin'").fetchone()
        return row is not None


def save_hub(hub: EnergyTradeHub, db_path: Path | None = None) -> None:
    """Write the complete hub state, replacing whatever was stored."""
    registry = hub.registry.snapshot()
    roles = hub.roles.snapshot()

    with get_connection(db_path) as conn:
        conn.executescript(SCHEMA)
        with conn:
            for table in STATE_TABLES:
                conn.execute(f"DELETE FROM {table}")

            conn.executemany(
                "INSERT INTO meta (key, value) VALUES (?, ?)",
                [
                    ("admin", hub.admin),
                    ("name", hub.name),
                    ("symbol", hub.symbol),
                    ("address", hub.address),
                    ("next_token_id", str(hub.next_token_id)),
                ],
            )
            conn.executemany(
                """INSERT INTO tokens
                   (token_id, owner, energy_type, valid_from, valid_to,
                    start_time, end_time, amount_in_kw, balance_in_kw)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        t.token_id,
                        t.owner,
                        t.energy_type,
                        str(t.valid_from),
                        str(t.valid_to),
                        str(t.start_time),
                        str(t.end_time),
                        str(t.amount_in_kw),
                        str(t.balance_in_kw),
                    )
                    for t in hub.all_tokens()
                ],
            )
            conn.executemany(
                "INSERT INTO token_sales (token_id, is_for_sale, price) VALUES (?, ?, ?)",
                [
                    (token_id, int(sale.is_for_sale), str(sale.price))
                    for token_id, sale in hub.all_sales().items()
                ],
            )
            conn.executemany(
                "INSERT INTO owners (token_id, owner) VALUES (?, ?)",
                list(registry["owners"].items()),
            )
            conn.executemany(
                "INSERT INTO token_uris (token_id, uri) VALUES (?, ?)",
                list(registry["uris"].items()),
            )
            conn.executemany(
                "INSERT INTO token_approvals (token_id, approved) VALUES (?, ?)",
                list(registry["token_approvals"].items()),
            )
            conn.executemany(
                "INSERT INTO operator_approvals (owner, operator) VALUES (?, ?)",
                [
                    (owner, operator)
                    for owner, operators in registry["operator_approvals"].items()
                    for operator in operators
                ],
            )
            conn.executemany(
                "INSERT INTO role_members (role, account) VALUES (?, ?)",
                [
                    (role, account)
                    for role, accounts in roles["members"].items()
                    for account in accounts
                ],
            )
            conn.executemany(
                "INSERT INTO role_admins (role, admin_role) VALUES (?, ?)",
                list(roles["admins"].items()),
            )
            conn.executemany(
                "INSERT INTO balances (account, amount) VALUES (?, ?)",
                [(account, str(amount)) for account, amount in hub.payments.snapshot().items()],
            )
            conn.executemany(
                "INSERT INTO events (seq, name, args) VALUES (?, ?, ?)",
                [(e.seq, e.name, json.dumps(e.args)) for e in hub.events()],
            )


def load_hub(db_path: Path | None = None, clock=None) -> EnergyTradeHub:
    """Rebuild a hub from the database.

    Raises StoreError if no hub has been saved yet.
    """
    if not is_initialized(db_path):
        raise StoreError("No marketplace found - run 'tradehub init' first")

    with get_connection(db_path) as conn:
        meta = {row["key"]: row["value"] for row in conn.execute("SELECT key, value FROM meta")}

        tokens = [
            EnergyToken(
                token_id=row["token_id"],
                owner=row["owner"],
                energy_type=row["energy_type"],
                valid_from=int(row["valid_from"]),
                valid_to=int(row["valid_to"]),
                start_time=int(row["start_time"]),
                end_time=int(row["end_time"]),
                amount_in_kw=int(row["amount_in_kw"]),
                balance_in_kw=int(row["balance_in_kw"]),
            )
            for row in conn.execute("SELECT * FROM tokens ORDER BY token_id")
        ]
        sales = {
            row["token_id"]: TokenSale(is_for_sale=bool(row["is_for_sale"]), price=int(row["price"]))
            for row in conn.execute("SELECT * FROM token_sales")
        }

        owners = {row["token_id"]: row["owner"] for row in conn.execute("SELECT * FROM owners")}
        holdings: dict[str, int] = {}
        for owner in owners.values():
            holdings[owner] = holdings.get(owner, 0) + 1
        operator_approvals: dict[str, set[str]] = {}
        for row in conn.execute("SELECT * FROM operator_approvals"):
            operator_approvals.setdefault(row["owner"], set()).add(row["operator"])
        registry_state = {
            "owners": owners,
            "balances": holdings,
            "uris": {row["token_id"]: row["uri"] for row in conn.execute("SELECT * FROM token_uris")},
            "token_approvals": {
                row["token_id"]: row["approved"]
                for row in conn.execute("SELECT * FROM token_approvals")
            },
            "operator_approvals": operator_approvals,
        }

        members: dict[str, set[str]] = {}
        for row in conn.execute("SELECT * FROM role_members"):
            members.setdefault(row["role"], set()).add(row["account"])
        roles_state = {
            "members": members,
            "admins": {row["role"]: row["admin_role"] for row in conn.execute("SELECT * FROM role_admins")},
        }

        balances = {row["account"]: int(row["amount"]) for row in conn.execute("SELECT * FROM balances")}

        try:
            events = [
                Event(seq=row["seq"], name=row["name"], args=json.loads(row["args"]))
                for row in conn.execute("SELECT * FROM events ORDER BY seq")
            ]
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt event log: {e}")

    hub = EnergyTradeHub(
        meta["admin"],
        clock=clock,
        name=meta.get("name", DEFAULT_NAME),
        symbol=meta.get("symbol", DEFAULT_SYMBOL),
        address=meta.get("address", DEFAULT_ADDRESS),
        bootstrap=False,
    )
    hub.registry.restore(registry_state)
    hub.roles.restore(roles_state)
    hub.payments.restore(balances)
    hub.load_ledger(tokens, sales, events, int(meta["next_token_id"]))
    return hub


def get_stats(db_path: Path | None = None) -> dict:
    """Get database statistics."""
    with get_connection(db_path) as conn:
        stats = {}

        row = conn.execute("SELECT COUNT(*) as count, MAX(token_id) as latest FROM tokens").fetchone()
        stats["tokens"] = {"count": row["count"], "latest": row["latest"]}

        row = conn.execute("SELECT COUNT(*) as count FROM token_sales WHERE is_for_sale = 1").fetchone()
        stats["listed"] = {"count": row["count"]}

        rows = conn.execute(
            "SELECT role, COUNT(*) as count FROM role_members GROUP BY role"
        ).fetchall()
        stats["roles"] = {row["role"]: row["count"] for row in rows}

        row = conn.execute("SELECT COUNT(*) as count FROM balances").fetchone()
        stats["wallets"] = {"count": row["count"]}

        rows = conn.execute("SELECT name, COUNT(*) as count FROM events GROUP BY name").fetchall()
        stats["events"] = {row["name"]: row["count"] for row in rows}

        return stats
