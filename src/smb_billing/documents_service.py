# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Quotes and invoices service.

This module exposes the operations used by the CLI (and any UI) to manage
financial documents:

- ``create``      : compute totals, allocate a number, insert.
- ``update``      : recompute totals and replace every line item.
- ``delete``      : remove a document together with its items.
- ``set_status``  : the only way a document changes status.
- ``get`` / ``list`` / ``stats`` / ``recompute`` / ``build_print_payload``.

Every mutation runs in a single ``BEGIN IMMEDIATE`` transaction, so a
document is never visible with a partial set of line items, and the number
allocated on creation is consumed by the same transaction that inserts it.

Public methods never raise for expected failures: they return an
``OperationResult`` carrying either the data or an error kind plus a
French user message. Committed mutations are announced on the event bus.
"""

from __future__ import annotations

import dataclasses
import logging
import sqlite3
import uuid
from collections.abc import Callable
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, TypeVar

from . import db, events, numbering
from .calculator import ComputedTotals, compute_totals, recompute_from_items
from .config import AppConfig, CompanySettings, NumberingSettings, TaxSettings
from .errors import (
    BillingError,
    ConflictError,
    NotFoundError,
    OperationResult,
    PersistenceError,
    ValidationError,
)
from .events import EventBus, MutationEvent
from .models import (
    DocumentInput,
    DocumentKind,
    DocumentStats,
    DocumentStatus,
    FinancialDocument,
    SequenceKind,
    parse_enum,
)
from .money import ZERO
from .printing import PrintPayload, payload_from_document

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _not_found(document_id: str) -> NotFoundError:
    return NotFoundError(f"Document {document_id!r} not found.", "Document introuvable.")


def run_operation(name: str, operation: Callable[[], T]) -> OperationResult[T]:
    """
    Execute ``operation`` and wrap its outcome in an ``OperationResult``.

    ``BillingError`` subclasses keep their kind; SQLite errors become
    ``conflict`` (unique constraint) or ``persistence`` failures.
    """
    try:
        return OperationResult.success(operation())
    except BillingError as exc:
        logger.warning(
            "%s failed (%s): %s", name, exc.kind, exc.detail, extra={"error_kind": exc.kind}
        )
        return OperationResult.failure(exc)
    except sqlite3.IntegrityError as exc:
        logger.exception("%s failed on a database constraint", name)
        if "UNIQUE" in str(exc):
            return OperationResult.failure(ConflictError(str(exc)))
        return OperationResult.failure(PersistenceError(str(exc)))
    except sqlite3.Error as exc:
        logger.exception("%s failed on a database error", name)
        return OperationResult.failure(PersistenceError(str(exc)))


class DocumentService:
    """
    Manage quotes and invoices stored in the SQLite database.

    Parameters
    ----------
    db_config:
        Where the documents live.
    events:
        Bus receiving ``document.*`` events (a private bus if omitted).
    settings:
        Application configuration providing tax defaults, numbering
        prefixes and the company boilerplate used for printing.
    """

    def __init__(
        self,
        db_config: db.DatabaseConfig,
        events: Optional[EventBus] = None,
        settings: Optional[AppConfig] = None,
    ) -> None:
        self.db_config = db_config
        self.events = events if events is not None else EventBus()
        self.tax: TaxSettings = settings.tax if settings else TaxSettings()
        self.numbering: NumberingSettings = (
            settings.numbering if settings else NumberingSettings()
        )
        self.company: CompanySettings = settings.company if settings else CompanySettings()
        db.init_database(db_config)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _publish(self, topic: str, doc_id: str, **payload: object) -> None:
        self.events.publish(MutationEvent(topic=topic, entity_id=doc_id, payload=payload))

    def _validated(self, data: DocumentInput, stamp_default: Decimal) -> tuple[str, ComputedTotals]:
        client_name = _clean(data.client_name)
        if not client_name:
            raise ValidationError("Missing client name.", "Le nom du client est requis.")
        stamp = data.stamp_duty if data.stamp_duty is not None else stamp_default
        return client_name, compute_totals(data.items, stamp)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, kind: DocumentKind | str, data: DocumentInput) -> OperationResult[FinancialDocument]:
        """
        Create a quote or an invoice with status PENDING.

        The stamp duty defaults to ``tax.default_stamp_duty`` and the issue
        date to today. The number is drawn from the (kind, issue year)
        sequence.
        """

        def _create() -> FinancialDocument:
            doc_kind = parse_enum(DocumentKind, kind, "type de document")
            client_name, totals = self._validated(data, self.tax.default_stamp_duty)
            issue_date = data.issue_date or date.today()

            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    number = numbering.allocate(
                        conn, SequenceKind(doc_kind.value), issue_date.year, self.numbering
                    )
                    doc = FinancialDocument(
                        id=uuid.uuid4().hex,
                        kind=doc_kind,
                        number=number,
                        issue_date=issue_date,
                        client_name=client_name,
                        client_tel=_clean(data.client_tel),
                        client_email=_clean(data.client_email),
                        client_address=_clean(data.client_address),
                        client_tax_id=_clean(data.client_tax_id),
                        items=totals.items,
                        stamp_duty=totals.stamp_duty,
                        subtotal=totals.subtotal,
                        total=totals.total,
                        status=DocumentStatus.PENDING,
                        created_at=datetime.now(timezone.utc).replace(microsecond=0),
                    )
                    db.insert_document(conn, doc)

            logger.info(
                "Created %s %s (total %s)", doc.kind.value, doc.number, doc.total,
                extra={"entity_id": doc.id},
            )
            self._publish(events.DOCUMENT_CREATED, doc.id, kind=doc.kind.value, number=doc.number)
            return doc

        return run_operation("create document", _create)

    def update(self, document_id: str, data: DocumentInput) -> OperationResult[FinancialDocument]:
        """
        Replace client fields and line items, recomputing the totals.

        Number, kind, issue date and status are left untouched. When
        ``data.stamp_duty`` is None the document keeps its current stamp duty.
        """

        def _update() -> FinancialDocument:
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    existing = db.get_document(conn, document_id)
                    if existing is None:
                        raise _not_found(document_id)
                    client_name, totals = self._validated(data, existing.stamp_duty)
                    doc = dataclasses.replace(
                        existing,
                        client_name=client_name,
                        client_tel=_clean(data.client_tel),
                        client_email=_clean(data.client_email),
                        client_address=_clean(data.client_address),
                        client_tax_id=_clean(data.client_tax_id),
                        items=totals.items,
                        stamp_duty=totals.stamp_duty,
                        subtotal=totals.subtotal,
                        total=totals.total,
                    )
                    if not db.rewrite_document(conn, doc):
                        raise _not_found(document_id)
                    doc = db.get_document(conn, document_id)

            logger.info("Updated %s (total %s)", doc.number, doc.total, extra={"entity_id": doc.id})
            self._publish(events.DOCUMENT_UPDATED, doc.id, number=doc.number)
            return doc

        return run_operation("update document", _update)

    def delete(self, document_id: str) -> OperationResult[None]:
        """Delete a document and its line items atomically."""

        def _delete() -> None:
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    if not db.delete_document(conn, document_id):
                        raise _not_found(document_id)
            logger.info("Deleted document %s", document_id, extra={"entity_id": document_id})
            self._publish(events.DOCUMENT_DELETED, document_id)

        return run_operation("delete document", _delete)

    def set_status(
        self, document_id: str, status: DocumentStatus | str
    ) -> OperationResult[FinancialDocument]:
        """Move a document to any of PENDING, PAID or CANCELLED."""

        def _set_status() -> FinancialDocument:
            new_status = parse_enum(DocumentStatus, status, "statut")
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    existing = db.get_document(conn, document_id)
                    if existing is None:
                        raise _not_found(document_id)
                    db.update_document_status(conn, document_id, new_status)
                    doc = db.get_document(conn, document_id)

            logger.info(
                "Status of %s: %s -> %s", doc.number, existing.status.value, new_status.value,
                extra={"entity_id": doc.id},
            )
            self._publish(
                events.DOCUMENT_STATUS_CHANGED,
                doc.id,
                previous=existing.status.value,
                status=new_status.value,
            )
            return doc

        return run_operation("set document status", _set_status)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, document_id: str) -> OperationResult[FinancialDocument]:
        def _get() -> FinancialDocument:
            with db.open_connection(self.db_config) as conn:
                doc = db.get_document(conn, document_id)
            if doc is None:
                raise _not_found(document_id)
            return doc

        return run_operation("get document", _get)

    def list(
        self,
        kind: DocumentKind | str | None = None,
        year: Optional[int] = None,
        status: DocumentStatus | str | None = None,
    ) -> OperationResult[list[FinancialDocument]]:
        """List documents, newest first, optionally filtered."""

        def _list() -> list[FinancialDocument]:
            doc_kind = parse_enum(DocumentKind, kind, "type de document") if kind else None
            doc_status = parse_enum(DocumentStatus, status, "statut") if status else None
            start = date(year, 1, 1) if year else None
            end = date(year, 12, 31) if year else None
            with db.open_connection(self.db_config) as conn:
                return db.list_documents(
                    conn, kind=doc_kind, start=start, end=end, status=doc_status
                )

        return run_operation("list documents", _list)

    def stats(
        self, kind: DocumentKind | str, year: Optional[int] = None
    ) -> OperationResult[DocumentStats]:
        """
        Count documents of a kind and sum their totals.

        ``revenue`` is the total of PAID documents, ``pending_amount`` the
        total of PENDING ones; cancelled documents only count in ``count``.
        """

        def _stats() -> DocumentStats:
            doc_kind = parse_enum(DocumentKind, kind, "type de document")
            start = date(year, 1, 1) if year else None
            end = date(year, 12, 31) if year else None
            with db.open_connection(self.db_config) as conn:
                docs = db.list_documents(conn, kind=doc_kind, start=start, end=end)
            revenue = sum((d.total for d in docs if d.status is DocumentStatus.PAID), ZERO)
            pending = sum((d.total for d in docs if d.status is DocumentStatus.PENDING), ZERO)
            paid_count = sum(1 for d in docs if d.status is DocumentStatus.PAID)
            return DocumentStats(
                count=len(docs), revenue=revenue, pending_amount=pending, paid_count=paid_count
            )

        return run_operation("document stats", _stats)

    def recompute(self, document_id: str) -> OperationResult[ComputedTotals]:
        """
        Recompute totals from the stored line items (read only).

        Comparing the result with the stored document detects drift;
        calling it repeatedly always gives the same answer.
        """

        def _recompute() -> ComputedTotals:
            with db.open_connection(self.db_config) as conn:
                doc = db.get_document(conn, document_id)
            if doc is None:
                raise _not_found(document_id)
            return recompute_from_items(doc.items, doc.stamp_duty)

        return run_operation("recompute document", _recompute)

    def build_print_payload(self, document_id: str) -> OperationResult[PrintPayload]:
        def _build() -> PrintPayload:
            with db.open_connection(self.db_config) as conn:
                doc = db.get_document(conn, document_id)
            if doc is None:
                raise _not_found(document_id)
            return payload_from_document(doc, self.company)

        return run_operation("build print payload", _build)
