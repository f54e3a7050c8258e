# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for SMB Billing.

This module provides all low-level accessors for the SQLite database used
by the application. It is responsible for:

- Initializing and migrating the database schema.
- Opening connections and write transactions (``BEGIN IMMEDIATE``).
- Reading and writing financial documents together with their line items.
- Maintaining per-kind, per-year numbering counters.
- CRUD on ledger records (charges, tax declarations, fiscal years).
- Loading raw yearly frames (pandas) consumed by the reporting aggregator.

The database is the single source of truth: no running totals are cached,
reports are recomputed from these tables on every call.

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) documents
   One row per quote or invoice (``kind`` = 'QUOTE' | 'INVOICE').

   - id                   TEXT    PRIMARY KEY (uuid4 hex)
   - kind                 TEXT    NOT NULL  -- closed enum (CHECK)
   - number               TEXT    NOT NULL  -- UNIQUE index, never updated
   - issue_date           TEXT    NOT NULL  -- ISO date "YYYY-MM-DD"
   - client_name          TEXT    NOT NULL
   - client_tel / client_email / client_address / client_tax_id  TEXT
   - subtotal_millimes    INTEGER NOT NULL
   - stamp_duty_millimes  INTEGER NOT NULL  -- >= 0 (CHECK)
   - total_millimes       INTEGER NOT NULL
   - status               TEXT    NOT NULL  -- 'PENDING' | 'PAID' | 'CANCELLED'
   - created_at / updated_at TEXT (ISO datetime, UTC)

2) document_items
   Line items, owned by exactly one document (ON DELETE CASCADE).

   - id, document_id, position, designation
   - quantity, unit_price   TEXT (full precision decimal)
   - line_total_millimes    INTEGER (rounded to 3 decimals)

3) number_sequences
   Last value handed out per (kind, year). Incremented in the same
   transaction as the insert that consumes the number.

4) charges
   Business expenses with pre-tax (HT) and tax-included (TTC) amounts.

5) declarations
   Periodic tax obligations (unique ``reference``).

6) fiscal_years
   One row per fiscal year (unique ``year``): dates, status and notes.
   Revenue, expenses and result are never stored.

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- Connections run in autocommit mode; writers open explicit
  ``BEGIN IMMEDIATE`` transactions so that the write lock is taken up
  front. This serialises number allocation between concurrent writers.
- Foreign key enforcement is explicitly enabled on every connection.
- Monetary amounts are stored as integer millimes.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import pandas as pd

from .errors import PersistenceError
from .models import (
    Charge,
    ChargeCategory,
    Declaration,
    DeclarationPeriod,
    DeclarationStatus,
    DeclarationType,
    DocumentItem,
    DocumentKind,
    DocumentStatus,
    FinancialDocument,
    FiscalYear,
    FiscalYearStatus,
)
from .money import from_millimes, to_millimes

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for SMB Billing.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    timeout:
        Seconds a writer waits for the database lock before failing.
    """

    engine: str
    path: Path
    timeout: float = 30.0


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _sql_in(enum_cls) -> str:
    """Render the values of an enum as a SQL list for CHECK constraints."""
    return ", ".join(f"'{member.value}'" for member in enum_cls)


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection in autocommit mode with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path, timeout=cfg.timeout, isolation_level=None)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _get_table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    """Return the set of column names for the given table."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    return {row[1] for row in cur.fetchall()}


def _migrate_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Bring older databases up to date. Idempotent.

    - documents: add ``client_tax_id`` (matricule fiscale) if missing.
    - declarations: add ``penalties_millimes`` if missing.
    """
    if "client_tax_id" not in _get_table_columns(conn, "documents"):
        conn.execute("ALTER TABLE documents ADD COLUMN client_tax_id TEXT;")

    if "penalties_millimes" not in _get_table_columns(conn, "declarations"):
        conn.execute("ALTER TABLE declarations ADD COLUMN penalties_millimes INTEGER;")


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet and migrate the schema.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS documents (
            id                   TEXT    PRIMARY KEY,
            kind                 TEXT    NOT NULL CHECK (kind IN ({_sql_in(DocumentKind)})),
            number               TEXT    NOT NULL,
            issue_date           TEXT    NOT NULL,  -- ISO date 'YYYY-MM-DD'
            client_name          TEXT    NOT NULL,
            client_tel           TEXT,
            client_email         TEXT,
            client_address       TEXT,
            client_tax_id        TEXT,
            subtotal_millimes    INTEGER NOT NULL,
            stamp_duty_millimes  INTEGER NOT NULL DEFAULT 0
                                 CHECK (stamp_duty_millimes >= 0),
            total_millimes       INTEGER NOT NULL,
            status               TEXT    NOT NULL DEFAULT 'PENDING'
                                 CHECK (status IN ({_sql_in(DocumentStatus)})),
            created_at           TEXT    NOT NULL,
            updated_at           TEXT
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS document_items (
            id                   INTEGER PRIMARY KEY AUTOINCREMENT,
            document_id          TEXT    NOT NULL,
            position             INTEGER NOT NULL,
            designation          TEXT    NOT NULL,
            quantity             TEXT    NOT NULL,
            unit_price           TEXT    NOT NULL,
            line_total_millimes  INTEGER NOT NULL,

            FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS number_sequences (
            kind        TEXT    NOT NULL,
            year        INTEGER NOT NULL,
            last_value  INTEGER NOT NULL,
            PRIMARY KEY (kind, year)
        );
        """
    )

    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS charges (
            id                   TEXT    PRIMARY KEY,
            reference            TEXT    NOT NULL,
            designation          TEXT    NOT NULL,
            category             TEXT    NOT NULL
                                 CHECK (category IN ({_sql_in(ChargeCategory)})),
            amount_ht_millimes   INTEGER NOT NULL,
            vat_rate             TEXT    NOT NULL,
            amount_ttc_millimes  INTEGER NOT NULL,
            date                 TEXT    NOT NULL,  -- ISO date 'YYYY-MM-DD'
            supplier             TEXT,
            invoice_ref          TEXT,
            notes                TEXT,
            created_at           TEXT    NOT NULL,
            updated_at           TEXT
        );
        """
    )

    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS declarations (
            id                    TEXT    PRIMARY KEY,
            reference             TEXT    NOT NULL,
            type                  TEXT    NOT NULL
                                  CHECK (type IN ({_sql_in(DeclarationType)})),
            period                TEXT    NOT NULL
                                  CHECK (period IN ({_sql_in(DeclarationPeriod)})),
            year                  INTEGER NOT NULL,
            month                 INTEGER,
            quarter               INTEGER,
            due_date              TEXT    NOT NULL,
            filed_date            TEXT,
            amount_due_millimes   INTEGER NOT NULL,
            amount_paid_millimes  INTEGER,
            penalties_millimes    INTEGER,
            status                TEXT    NOT NULL DEFAULT 'TO_DECLARE'
                                  CHECK (status IN ({_sql_in(DeclarationStatus)})),
            notes                 TEXT,
            created_at            TEXT    NOT NULL,
            updated_at            TEXT
        );
        """
    )

    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS fiscal_years (
            id          TEXT    PRIMARY KEY,
            year        INTEGER NOT NULL,
            start_date  TEXT    NOT NULL,
            end_date    TEXT    NOT NULL,
            status      TEXT    NOT NULL DEFAULT 'OPEN'
                        CHECK (status IN ({_sql_in(FiscalYearStatus)})),
            notes       TEXT,
            created_at  TEXT    NOT NULL,
            updated_at  TEXT
        );
        """
    )

    _migrate_schema_if_needed(conn)

    # Indexes
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS ux_documents_number ON documents(number);"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_documents_kind_date ON documents(kind, issue_date);"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_document_items_document "
        "ON document_items(document_id);"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_charges_date ON charges(date);")
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS ux_declarations_reference "
        "ON declarations(reference);"
    )
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS ux_fiscal_years_year ON fiscal_years(year);"
    )


def _to_iso_date(value) -> str:
    """Convert a date-like value to ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value)).isoformat()


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _opt_millimes(value: Optional[Decimal]) -> Optional[int]:
    return None if value is None else to_millimes(value)


def _opt_amount(value: Optional[int]) -> Optional[Decimal]:
    return None if value is None else from_millimes(value)


# ---------------------------------------------------------------------------
# Public API: connections & schema
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if missing.
    - Creates tables and indexes if they are missing.
    - This function is idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        with transaction(conn):
            _create_schema_if_needed(conn)
    finally:
        conn.close()


@contextmanager
def open_connection(cfg: DatabaseConfig) -> Iterator[sqlite3.Connection]:
    """Open a connection and close it when the block exits."""
    conn = _connect(cfg)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run a block inside a ``BEGIN IMMEDIATE`` transaction.

    The write lock is acquired before the block starts, so concurrent
    writers are serialised (waiting up to the connection timeout). The
    transaction is committed on success and rolled back on any exception.
    """
    conn.execute("BEGIN IMMEDIATE;")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK;")
        raise
    conn.execute("COMMIT;")


# ---------------------------------------------------------------------------
# Numbering counters
# ---------------------------------------------------------------------------


def next_sequence_value(conn: sqlite3.Connection, kind: str, year: int) -> int:
    """
    Increment and return the counter for (kind, year).

    Must be called inside a write transaction so that the read-modify-write
    cannot interleave with another writer.
    """
    conn.execute(
        """
        INSERT INTO number_sequences (kind, year, last_value)
        VALUES (?, ?, 0)
        ON CONFLICT(kind, year) DO NOTHING;
        """,
        (kind, year),
    )
    conn.execute(
        """
        UPDATE number_sequences
           SET last_value = last_value + 1
         WHERE kind = ? AND year = ?;
        """,
        (kind, year),
    )
    row = conn.execute(
        "SELECT last_value FROM number_sequences WHERE kind = ? AND year = ?;",
        (kind, year),
    ).fetchone()
    return int(row[0])


def document_number_exists(conn: sqlite3.Connection, number: str) -> bool:
    cur = conn.execute("SELECT 1 FROM documents WHERE number = ? LIMIT 1;", (number,))
    return cur.fetchone() is not None


def declaration_reference_exists(conn: sqlite3.Connection, reference: str) -> bool:
    cur = conn.execute(
        "SELECT 1 FROM declarations WHERE reference = ? LIMIT 1;", (reference,)
    )
    return cur.fetchone() is not None


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

_DOCUMENT_COLUMNS = """
    id, kind, number, issue_date,
    client_name, client_tel, client_email, client_address, client_tax_id,
    subtotal_millimes, stamp_duty_millimes, total_millimes,
    status, created_at, updated_at
"""


def _row_to_document(row: tuple, items: tuple[DocumentItem, ...]) -> FinancialDocument:
    """Materialize a FinancialDocument from a `documents` row and its items."""
    try:
        return FinancialDocument(
            id=row[0],
            kind=DocumentKind(row[1]),
            number=row[2],
            issue_date=date.fromisoformat(row[3]),
            client_name=row[4],
            client_tel=row[5],
            client_email=row[6],
            client_address=row[7],
            client_tax_id=row[8],
            items=items,
            subtotal=from_millimes(row[9]),
            stamp_duty=from_millimes(row[10]),
            total=from_millimes(row[11]),
            status=DocumentStatus(row[12]),
            created_at=datetime.fromisoformat(row[13]),
            updated_at=_parse_dt(row[14]),
        )
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Corrupt document row {row[0]!r}: {exc}") from exc


def _stored_decimal(value: str) -> Decimal:
    number = Decimal(value)
    if not number.is_finite():
        raise ValueError(f"non-finite value {value!r}")
    return number


def _load_items(conn: sqlite3.Connection, document_id: str) -> tuple[DocumentItem, ...]:
    cur = conn.execute(
        """
        SELECT position, designation, quantity, unit_price, line_total_millimes
          FROM document_items
         WHERE document_id = ?
         ORDER BY position, id;
        """,
        (document_id,),
    )
    try:
        return tuple(
            DocumentItem(
                position=row[0],
                designation=row[1],
                quantity=_stored_decimal(row[2]),
                unit_price=_stored_decimal(row[3]),
                line_total=from_millimes(row[4]),
            )
            for row in cur.fetchall()
        )
    except (TypeError, ValueError, InvalidOperation) as exc:
        raise PersistenceError(f"Corrupt line item of document {document_id!r}: {exc}") from exc


def _insert_items(
    conn: sqlite3.Connection, document_id: str, items: tuple[DocumentItem, ...]
) -> None:
    conn.executemany(
        """
        INSERT INTO document_items (
            document_id, position, designation, quantity, unit_price,
            line_total_millimes
        )
        VALUES (?, ?, ?, ?, ?, ?);
        """,
        [
            (
                document_id,
                item.position,
                item.designation,
                str(item.quantity),
                str(item.unit_price),
                to_millimes(item.line_total),
            )
            for item in items
        ],
    )


def insert_document(conn: sqlite3.Connection, doc: FinancialDocument) -> None:
    """Insert a document row and its items (caller owns the transaction)."""
    conn.execute(
        f"""
        INSERT INTO documents ({_DOCUMENT_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            doc.id,
            doc.kind.value,
            doc.number,
            _to_iso_date(doc.issue_date),
            doc.client_name,
            doc.client_tel,
            doc.client_email,
            doc.client_address,
            doc.client_tax_id,
            to_millimes(doc.subtotal),
            to_millimes(doc.stamp_duty),
            to_millimes(doc.total),
            doc.status.value,
            doc.created_at.isoformat(timespec="seconds"),
            None,
        ),
    )
    _insert_items(conn, doc.id, doc.items)


def rewrite_document(conn: sqlite3.Connection, doc: FinancialDocument) -> bool:
    """
    Replace the editable content of a document: client fields, totals and
    the complete set of line items (delete then recreate).

    ``number``, ``kind``, ``issue_date`` and ``status`` are never written here.

    Returns
    -------
    bool
        False if no document with this id exists.
    """
    cur = conn.execute(
        """
        UPDATE documents
           SET client_name = ?,
               client_tel = ?,
               client_email = ?,
               client_address = ?,
               client_tax_id = ?,
               subtotal_millimes = ?,
               stamp_duty_millimes = ?,
               total_millimes = ?,
               updated_at = ?
         WHERE id = ?;
        """,
        (
            doc.client_name,
            doc.client_tel,
            doc.client_email,
            doc.client_address,
            doc.client_tax_id,
            to_millimes(doc.subtotal),
            to_millimes(doc.stamp_duty),
            to_millimes(doc.total),
            _now_utc_iso(),
            doc.id,
        ),
    )
    if cur.rowcount == 0:
        return False

    conn.execute("DELETE FROM document_items WHERE document_id = ?;", (doc.id,))
    _insert_items(conn, doc.id, doc.items)
    return True


def update_document_status(
    conn: sqlite3.Connection, document_id: str, status: DocumentStatus
) -> bool:
    """Set the status of a document. Returns False if the id is unknown."""
    cur = conn.execute(
        "UPDATE documents SET status = ?, updated_at = ? WHERE id = ?;",
        (status.value, _now_utc_iso(), document_id),
    )
    return cur.rowcount > 0


def delete_document(conn: sqlite3.Connection, document_id: str) -> bool:
    """Delete a document; its items go with it (ON DELETE CASCADE)."""
    cur = conn.execute("DELETE FROM documents WHERE id = ?;", (document_id,))
    return cur.rowcount > 0


def get_document(conn: sqlite3.Connection, document_id: str) -> Optional[FinancialDocument]:
    """Load a document and its items, or None if it does not exist."""
    row = conn.execute(
        f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?;", (document_id,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_document(row, _load_items(conn, document_id))


def list_documents(
    conn: sqlite3.Connection,
    *,
    kind: Optional[DocumentKind] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    status: Optional[DocumentStatus] = None,
) -> list[FinancialDocument]:
    """
    List documents (newest first) with optional filters.

    Date bounds are inclusive and apply to ``issue_date``.
    """
    clauses: list[str] = []
    params: list[object] = []
    if kind is not None:
        clauses.append("kind = ?")
        params.append(kind.value)
    if start is not None:
        clauses.append("issue_date >= ?")
        params.append(_to_iso_date(start))
    if end is not None:
        clauses.append("issue_date <= ?")
        params.append(_to_iso_date(end))
    if status is not None:
        clauses.append("status = ?")
        params.append(status.value)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = conn.execute(
        f"""
        SELECT {_DOCUMENT_COLUMNS}
          FROM documents
          {where}
         ORDER BY created_at DESC, number DESC;
        """,
        params,
    ).fetchall()
    return [_row_to_document(row, _load_items(conn, row[0])) for row in rows]


# ---------------------------------------------------------------------------
# Charges
# ---------------------------------------------------------------------------

_CHARGE_COLUMNS = """
    id, reference, designation, category,
    amount_ht_millimes, vat_rate, amount_ttc_millimes, date,
    supplier, invoice_ref, notes, created_at, updated_at
"""


def _row_to_charge(row: tuple) -> Charge:
    try:
        return Charge(
            id=row[0],
            reference=row[1],
            designation=row[2],
            category=ChargeCategory(row[3]),
            amount_ht=from_millimes(row[4]),
            vat_rate=Decimal(row[5]),
            amount_ttc=from_millimes(row[6]),
            date=date.fromisoformat(row[7]),
            supplier=row[8],
            invoice_ref=row[9],
            notes=row[10],
            created_at=datetime.fromisoformat(row[11]),
            updated_at=_parse_dt(row[12]),
        )
    except (TypeError, ValueError, ArithmeticError) as exc:
        raise PersistenceError(f"Corrupt charge row {row[0]!r}: {exc}") from exc


def insert_charge(conn: sqlite3.Connection, charge: Charge) -> None:
    conn.execute(
        f"""
        INSERT INTO charges ({_CHARGE_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            charge.id,
            charge.reference,
            charge.designation,
            charge.category.value,
            to_millimes(charge.amount_ht),
            str(charge.vat_rate),
            to_millimes(charge.amount_ttc),
            _to_iso_date(charge.date),
            charge.supplier,
            charge.invoice_ref,
            charge.notes,
            charge.created_at.isoformat(timespec="seconds"),
            None,
        ),
    )


def update_charge(conn: sqlite3.Connection, charge: Charge) -> bool:
    cur = conn.execute(
        """
        UPDATE charges
           SET reference = ?,
               designation = ?,
               category = ?,
               amount_ht_millimes = ?,
               vat_rate = ?,
               amount_ttc_millimes = ?,
               date = ?,
               supplier = ?,
               invoice_ref = ?,
               notes = ?,
               updated_at = ?
         WHERE id = ?;
        """,
        (
            charge.reference,
            charge.designation,
            charge.category.value,
            to_millimes(charge.amount_ht),
            str(charge.vat_rate),
            to_millimes(charge.amount_ttc),
            _to_iso_date(charge.date),
            charge.supplier,
            charge.invoice_ref,
            charge.notes,
            _now_utc_iso(),
            charge.id,
        ),
    )
    return cur.rowcount > 0


def delete_charge(conn: sqlite3.Connection, charge_id: str) -> bool:
    cur = conn.execute("DELETE FROM charges WHERE id = ?;", (charge_id,))
    return cur.rowcount > 0


def get_charge(conn: sqlite3.Connection, charge_id: str) -> Optional[Charge]:
    row = conn.execute(
        f"SELECT {_CHARGE_COLUMNS} FROM charges WHERE id = ?;", (charge_id,)
    ).fetchone()
    return None if row is None else _row_to_charge(row)


def list_charges(
    conn: sqlite3.Connection,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[Charge]:
    """List charges (most recent first), optionally within inclusive bounds."""
    clauses: list[str] = []
    params: list[str] = []
    if start is not None:
        clauses.append("date >= ?")
        params.append(_to_iso_date(start))
    if end is not None:
        clauses.append("date <= ?")
        params.append(_to_iso_date(end))
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = conn.execute(
        f"SELECT {_CHARGE_COLUMNS} FROM charges {where} ORDER BY date DESC, created_at DESC;",
        params,
    ).fetchall()
    return [_row_to_charge(row) for row in rows]


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------

_DECLARATION_COLUMNS = """
    id, reference, type, period, year, month, quarter,
    due_date, filed_date,
    amount_due_millimes, amount_paid_millimes, penalties_millimes,
    status, notes, created_at, updated_at
"""


def _row_to_declaration(row: tuple) -> Declaration:
    try:
        return Declaration(
            id=row[0],
            reference=row[1],
            type=DeclarationType(row[2]),
            period=DeclarationPeriod(row[3]),
            year=int(row[4]),
            month=row[5],
            quarter=row[6],
            due_date=date.fromisoformat(row[7]),
            filed_date=_parse_date(row[8]),
            amount_due=from_millimes(row[9]),
            amount_paid=_opt_amount(row[10]),
            penalties=_opt_amount(row[11]),
            status=DeclarationStatus(row[12]),
            notes=row[13],
            created_at=datetime.fromisoformat(row[14]),
            updated_at=_parse_dt(row[15]),
        )
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Corrupt declaration row {row[0]!r}: {exc}") from exc


def _declaration_values(decl: Declaration) -> tuple:
    return (
        decl.type.value,
        decl.period.value,
        decl.year,
        decl.month,
        decl.quarter,
        _to_iso_date(decl.due_date),
        _to_iso_date(decl.filed_date) if decl.filed_date else None,
        to_millimes(decl.amount_due),
        _opt_millimes(decl.amount_paid),
        _opt_millimes(decl.penalties),
        decl.status.value,
        decl.notes,
    )


def insert_declaration(conn: sqlite3.Connection, decl: Declaration) -> None:
    conn.execute(
        f"""
        INSERT INTO declarations ({_DECLARATION_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            decl.id,
            decl.reference,
            *_declaration_values(decl),
            decl.created_at.isoformat(timespec="seconds"),
            None,
        ),
    )


def update_declaration(conn: sqlite3.Connection, decl: Declaration) -> bool:
    """Rewrite every editable field; ``reference`` is immutable."""
    cur = conn.execute(
        """
        UPDATE declarations
           SET type = ?,
               period = ?,
               year = ?,
               month = ?,
               quarter = ?,
               due_date = ?,
               filed_date = ?,
               amount_due_millimes = ?,
               amount_paid_millimes = ?,
               penalties_millimes = ?,
               status = ?,
               notes = ?,
               updated_at = ?
         WHERE id = ?;
        """,
        (*_declaration_values(decl), _now_utc_iso(), decl.id),
    )
    return cur.rowcount > 0


def update_declaration_status(
    conn: sqlite3.Connection, declaration_id: str, status: DeclarationStatus
) -> bool:
    cur = conn.execute(
        "UPDATE declarations SET status = ?, updated_at = ? WHERE id = ?;",
        (status.value, _now_utc_iso(), declaration_id),
    )
    return cur.rowcount > 0


def delete_declaration(conn: sqlite3.Connection, declaration_id: str) -> bool:
    cur = conn.execute("DELETE FROM declarations WHERE id = ?;", (declaration_id,))
    return cur.rowcount > 0


def get_declaration(conn: sqlite3.Connection, declaration_id: str) -> Optional[Declaration]:
    row = conn.execute(
        f"SELECT {_DECLARATION_COLUMNS} FROM declarations WHERE id = ?;",
        (declaration_id,),
    ).fetchone()
    return None if row is None else _row_to_declaration(row)


def list_declarations(
    conn: sqlite3.Connection, year: Optional[int] = None
) -> list[Declaration]:
    """List declarations ordered by year (desc) then due date (asc)."""
    where = "WHERE year = ?" if year is not None else ""
    params = (year,) if year is not None else ()
    rows = conn.execute(
        f"""
        SELECT {_DECLARATION_COLUMNS}
          FROM declarations
          {where}
         ORDER BY year DESC, due_date ASC;
        """,
        params,
    ).fetchall()
    return [_row_to_declaration(row) for row in rows]


# ---------------------------------------------------------------------------
# Fiscal years
# ---------------------------------------------------------------------------

_FISCAL_YEAR_COLUMNS = """
    id, year, start_date, end_date, status, notes, created_at, updated_at
"""


def _row_to_fiscal_year(row: tuple) -> FiscalYear:
    try:
        return FiscalYear(
            id=row[0],
            year=int(row[1]),
            start_date=date.fromisoformat(row[2]),
            end_date=date.fromisoformat(row[3]),
            status=FiscalYearStatus(row[4]),
            notes=row[5],
            created_at=datetime.fromisoformat(row[6]),
            updated_at=_parse_dt(row[7]),
        )
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Corrupt fiscal year row {row[0]!r}: {exc}") from exc


def insert_fiscal_year(conn: sqlite3.Connection, fy: FiscalYear) -> None:
    conn.execute(
        f"""
        INSERT INTO fiscal_years ({_FISCAL_YEAR_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            fy.id,
            fy.year,
            _to_iso_date(fy.start_date),
            _to_iso_date(fy.end_date),
            fy.status.value,
            fy.notes,
            fy.created_at.isoformat(timespec="seconds"),
            None,
        ),
    )


def update_fiscal_year(conn: sqlite3.Connection, fy: FiscalYear) -> bool:
    """Rewrite dates, status and notes; ``year`` is immutable."""
    cur = conn.execute(
        """
        UPDATE fiscal_years
           SET start_date = ?,
               end_date = ?,
               status = ?,
               notes = ?,
               updated_at = ?
         WHERE id = ?;
        """,
        (
            _to_iso_date(fy.start_date),
            _to_iso_date(fy.end_date),
            fy.status.value,
            fy.notes,
            _now_utc_iso(),
            fy.id,
        ),
    )
    return cur.rowcount > 0


def update_fiscal_year_status(
    conn: sqlite3.Connection, fiscal_year_id: str, status: FiscalYearStatus
) -> bool:
    cur = conn.execute(
        "UPDATE fiscal_years SET status = ?, updated_at = ? WHERE id = ?;",
        (status.value, _now_utc_iso(), fiscal_year_id),
    )
    return cur.rowcount > 0


def get_fiscal_year(conn: sqlite3.Connection, fiscal_year_id: str) -> Optional[FiscalYear]:
    row = conn.execute(
        f"SELECT {_FISCAL_YEAR_COLUMNS} FROM fiscal_years WHERE id = ?;",
        (fiscal_year_id,),
    ).fetchone()
    return None if row is None else _row_to_fiscal_year(row)


def list_fiscal_years(conn: sqlite3.Connection) -> list[FiscalYear]:
    """List fiscal years, most recent year first."""
    rows = conn.execute(
        f"SELECT {_FISCAL_YEAR_COLUMNS} FROM fiscal_years ORDER BY year DESC;"
    ).fetchall()
    return [_row_to_fiscal_year(row) for row in rows]


# ---------------------------------------------------------------------------
# Reporting loaders (raw frames, validated by the aggregator)
# ---------------------------------------------------------------------------

DOCUMENT_FRAME_COLUMNS = [
    "id",
    "kind",
    "number",
    "issue_date",
    "status",
    "subtotal_millimes",
    "stamp_duty_millimes",
    "total_millimes",
]

CHARGE_FRAME_COLUMNS = [
    "id",
    "reference",
    "date",
    "category",
    "amount_ht_millimes",
    "vat_rate",
    "amount_ttc_millimes",
]


def load_documents_frame(cfg: DatabaseConfig, start: date, end: date) -> pd.DataFrame:
    """
    Load document headers whose issue date falls in [start, end].

    Values are returned raw (strings / integers as stored); parsing and
    invariant checks are the aggregator's job. Line items are not needed:
    the stored totals are written in the same transaction as the items, so
    a header is never visible without its complete item set.

    Returns
    -------
    pandas.DataFrame
        Columns: DOCUMENT_FRAME_COLUMNS (empty frame if nothing matches).
    """
    init_database(cfg)

    conn = _connect(cfg)
    try:
        rows = conn.execute(
            f"""
            SELECT {", ".join(DOCUMENT_FRAME_COLUMNS)}
              FROM documents
             WHERE issue_date BETWEEN ? AND ?
             ORDER BY issue_date, number;
            """,
            (_to_iso_date(start), _to_iso_date(end)),
        ).fetchall()
    finally:
        conn.close()

    if not rows:
        return pd.DataFrame(columns=DOCUMENT_FRAME_COLUMNS)
    return pd.DataFrame(rows, columns=DOCUMENT_FRAME_COLUMNS)


def load_charges_frame(cfg: DatabaseConfig, start: date, end: date) -> pd.DataFrame:
    """
    Load charges whose date falls in [start, end] (raw values).

    Returns
    -------
    pandas.DataFrame
        Columns: CHARGE_FRAME_COLUMNS (empty frame if nothing matches).
    """
    init_database(cfg)

    conn = _connect(cfg)
    try:
        rows = conn.execute(
            f"""
            SELECT {", ".join(CHARGE_FRAME_COLUMNS)}
              FROM charges
             WHERE date BETWEEN ? AND ?
             ORDER BY date, id;
            """,
            (_to_iso_date(start), _to_iso_date(end)),
        ).fetchall()
    finally:
        conn.close()

    if not rows:
        return pd.DataFrame(columns=CHARGE_FRAME_COLUMNS)
    return pd.DataFrame(rows, columns=CHARGE_FRAME_COLUMNS)
