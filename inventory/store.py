"""
inventory/store.py -- SQLAlchemy-backed data-access layer for HomeInv.

Every route talks to the database through one call:

    store.execute_query(table, operation, params)

where table is one of Users / Items / Locations / Transactions, operation is
CREATE / READ / UPDATE / DELETE / TEST, and params is a flat dict keyed by
column name. Column names are the historical PascalCase ones (Username,
PasswordHash, SQL_USER, ...) so existing databases and clients keep working.

Uses SQLAlchemy Core (not ORM): swapping SQLite for PostgreSQL or SQL Server
is a connection string change, not a rewrite.

Security: all queries use bound parameters. Column names are never taken from
the request -- every key in params is checked against the table definition
and unknown keys raise QueryError.

Usage:
    store = InventoryStore()                                 # SQLite default
    store = InventoryStore("postgresql://user:pw@host/db")   # PostgreSQL
    store.execute_query("Items", "CREATE", {"ID": "...", "Name": "Drill"})
    rows = store.execute_query("Items", "READ", {"filterColumn": "Name", "searchValue": "dri"})
    store.close()
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, text
from sqlalchemy.engine import Engine

from core.config import _DEFAULT_DB_URL

logger = logging.getLogger("homeinv.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "Users",
    metadata,
    Column("ID", String(36), primary_key=True),
    Column("Username", String(255), nullable=False, unique=True),
    Column("PasswordHash", Text),  # NULL for directory users
    Column("Role", String(30), nullable=False, server_default="viewer"),
    Column("Email", String(255)),
    Column("DisplayName", String(255)),
    Column("AvatarURL", Text),
    Column("UITheme", String(30)),
    Column("Team", String(100)),
    Column("Bio", Text),
    Column("SQL_USER", Integer, nullable=False, server_default="1"),  # 1 = local, 0 = directory
    Column("CreatedAt", String(32), nullable=False),
)

_items = Table(
    "Items",
    metadata,
    Column("ID", String(36), primary_key=True),
    Column("Name", String(255), nullable=False),
    Column("Description", Text),
    Column("Location", String(255)),
    Column("Bin", String(100)),
    Column("Quantity", Integer, nullable=False, server_default="1"),
    Column("Image", Text),
    Column("Owner", String(255)),
    Column("CreatedAt", String(32), nullable=False),
)

_locations = Table(
    "Locations",
    metadata,
    Column("ID", String(36), primary_key=True),
    Column("Name", String(255), nullable=False),
    Column("Description", Text),
    Column("Building", String(255)),
    Column("Owner", String(255)),
    Column("Image", Text),
    Column("CreatedAt", String(32), nullable=False),
)

_transactions = Table(
    "Transactions",
    metadata,
    Column("ID", String(36), primary_key=True),
    Column("Route", Text, nullable=False),
    Column("RequestPayload", Text),
    Column("AuthenticatedUsername", String(255), nullable=False),
    Column("CreatedAt", String(32), nullable=False),
)

_TABLES: dict[str, Table] = {t.name.lower(): t for t in (_users, _items, _locations, _transactions)}

# Columns compared case-insensitively on READ. Usernames are unique without
# regard to case; everything else is exact.
_CASE_INSENSITIVE = {("Users", "Username")}

# Search controls accepted by READ alongside plain column filters.
_SEARCH_KEYS = ("filterColumn", "searchValue", "exactMatch")


class QueryError(ValueError):
    """Raised for an unknown table, operation, or column."""


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truthy(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class InventoryStore:
    """Generic (table, operation, params) gateway over SQLAlchemy Core."""

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def execute_query(self, table: str, operation: str, params: dict | None = None) -> list[dict] | int:
        """Run one operation against one table.

        Returns a list of row dicts for READ and TEST, and a row count for
        CREATE, UPDATE and DELETE. Database errors (IntegrityError and friends)
        propagate unchanged; the caller decides what they mean.
        """
        op = operation.upper()
        params = dict(params or {})
        if op == "TEST":
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return []

        tbl = self._table(table)
        if op == "CREATE":
            return self._create(tbl, params)
        if op == "READ":
            return self._read(tbl, params)
        if op == "UPDATE":
            return self._update(tbl, params)
        if op == "DELETE":
            return self._delete(tbl, params)
        raise QueryError(f"Unknown operation {operation!r}")

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def _create(self, tbl: Table, params: dict) -> int:
        values = self._columns(tbl, params)
        if "CreatedAt" in tbl.c and not values.get("CreatedAt"):
            values["CreatedAt"] = _now_iso()
        if tbl is _users and values.get("Username"):
            values["Username"] = values["Username"].lower()
        with self.engine.connect() as conn:
            conn.execute(tbl.insert().values(**values))
            conn.commit()
        return 1

    def _read(self, tbl: Table, params: dict) -> list[dict]:
        filter_column = params.pop("filterColumn", None)
        search_value = params.pop("searchValue", None)
        exact = _truthy(params.pop("exactMatch", False))

        stmt = tbl.select()
        for name, value in self._columns(tbl, params).items():
            col = tbl.c[name]
            if (tbl.name, name) in _CASE_INSENSITIVE and isinstance(value, str):
                stmt = stmt.where(func.lower(col) == value.lower())
            else:
                stmt = stmt.where(col == value)

        if filter_column and search_value not in (None, ""):
            col = self._column(tbl, filter_column)
            if exact:
                stmt = stmt.where(col == search_value)
            else:
                stmt = stmt.where(col.ilike(f"%{search_value}%"))

        if "CreatedAt" in tbl.c:
            stmt = stmt.order_by(tbl.c.CreatedAt)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [dict(r._mapping) for r in rows]

    def _update(self, tbl: Table, params: dict) -> int:
        row_id = params.pop("ID", None)
        if not row_id:
            raise QueryError("UPDATE requires ID")
        values = {k: v for k, v in self._columns(tbl, params).items() if v is not None}
        values.pop("CreatedAt", None)
        if not values:
            return 0
        if tbl is _users and values.get("Username"):
            values["Username"] = values["Username"].lower()
        with self.engine.connect() as conn:
            result = conn.execute(tbl.update().where(tbl.c.ID == row_id).values(**values))
            conn.commit()
        return result.rowcount

    def _delete(self, tbl: Table, params: dict) -> int:
        row_id = params.get("ID")
        if not row_id:
            raise QueryError("DELETE requires ID")
        with self.engine.connect() as conn:
            result = conn.execute(tbl.delete().where(tbl.c.ID == row_id))
            conn.commit()
        return result.rowcount

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _table(name: str) -> Table:
        tbl = _TABLES.get(name.lower())
        if tbl is None:
            raise QueryError(f"Unknown table {name!r}")
        return tbl

    @staticmethod
    def _column(tbl: Table, name: str):
        if name not in tbl.c:
            raise QueryError(f"Unknown column {name!r} on {tbl.name}")
        return tbl.c[name]

    def _columns(self, tbl: Table, params: dict) -> dict:
        """Validate every key against the table; search controls are not columns."""
        unknown = [k for k in params if k not in tbl.c and k not in _SEARCH_KEYS]
        if unknown:
            raise QueryError(f"Unknown column(s) {unknown!r} on {tbl.name}")
        return {k: v for k, v in params.items() if k in tbl.c}
