# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Sequential numbering of quotes, invoices, import procedures and declarations.

Numbers have the shape ``<prefix><sequence>-<year>`` where the sequence is
zero-padded (``0001-2025``, ``DEV-0001-2025``, ``IMP-0001-2025``). Each
(kind, year) pair has its own counter in the ``number_sequences`` table.

Uniqueness relies on the SQLite write lock: ``allocate`` must run inside a
``BEGIN IMMEDIATE`` transaction, the same one that inserts the numbered
record, so two writers can never read the same counter value. As a second
line of defence the formatted number is checked against the owning table
and the counter is advanced again if it is already taken (e.g. a number
inserted by hand).
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Optional

from . import db
from .config import NumberingSettings
from .errors import ConflictError
from .models import SequenceKind

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 20


def _prefix(kind: SequenceKind, settings: NumberingSettings) -> str:
    return {
        SequenceKind.QUOTE: settings.quote_prefix,
        SequenceKind.INVOICE: settings.invoice_prefix,
        SequenceKind.IMPORT_PROCEDURE: settings.import_prefix,
        SequenceKind.DECLARATION: settings.declaration_prefix,
    }[kind]


def format_number(
    kind: SequenceKind, sequence: int, year: int, settings: Optional[NumberingSettings] = None
) -> str:
    """
    Format a sequence value.

    >>> format_number(SequenceKind.INVOICE, 1, 2025)
    '0001-2025'
    >>> format_number(SequenceKind.QUOTE, 12, 2025)
    'DEV-0012-2025'
    """
    settings = settings or NumberingSettings()
    return f"{_prefix(kind, settings)}{sequence:0{settings.width}d}-{year}"


def _is_taken(conn: sqlite3.Connection, kind: SequenceKind, number: str) -> bool:
    if kind in (SequenceKind.QUOTE, SequenceKind.INVOICE):
        return db.document_number_exists(conn, number)
    if kind is SequenceKind.DECLARATION:
        return db.declaration_reference_exists(conn, number)
    return False


def allocate(
    conn: sqlite3.Connection,
    kind: SequenceKind,
    year: int,
    settings: Optional[NumberingSettings] = None,
) -> str:
    """
    Hand out the next free number for (kind, year).

    Parameters
    ----------
    conn:
        Connection with an open write transaction.
    kind:
        Sequence to draw from.
    year:
        Calendar year embedded in the number; counters restart at 1 each year.

    Raises
    ------
    ConflictError
        If no free number was found after ``MAX_ATTEMPTS`` increments.
    """
    settings = settings or NumberingSettings()
    for _ in range(MAX_ATTEMPTS):
        value = db.next_sequence_value(conn, kind.value, year)
        number = format_number(kind, value, year, settings)
        if not _is_taken(conn, kind, number):
            return number
        logger.warning("Number %s already in use, skipping", number)

    raise ConflictError(
        f"Could not allocate a free {kind.value} number for {year} "
        f"after {MAX_ATTEMPTS} attempts."
    )


class NumberingService:
    """Standalone allocator that opens its own short transaction."""

    def __init__(
        self, db_config: db.DatabaseConfig, settings: Optional[NumberingSettings] = None
    ) -> None:
        self.db_config = db_config
        self.settings = settings or NumberingSettings()
        db.init_database(db_config)

    def allocate(self, kind: SequenceKind, year: Optional[int] = None) -> str:
        year = year or date.today().year
        with db.open_connection(self.db_config) as conn:
            with db.transaction(conn):
                number = allocate(conn, kind, year, self.settings)
        logger.info("Allocated %s number %s", kind.value, number)
        return number
