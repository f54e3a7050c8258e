# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Print payload builder.

Assembles the flat, labelled set of strings an external renderer turns
into a PDF (quote or invoice). No layout happens here and no amount is
rounded again: stored, already rounded values are formatted as they are.

Before formatting, totals are recomputed from the stored line items. A
mismatch with the stored subtotal or total raises ``IntegrityError``:
a printed document must never disagree with its own lines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from . import db
from .calculator import recompute_from_items
from .config import CompanySettings
from .errors import IntegrityError, NotFoundError
from .models import DocumentKind, FinancialDocument
from .money import format_amount
from .words import amount_to_words

logger = logging.getLogger(__name__)

TITLES = {DocumentKind.INVOICE: "FACTURE", DocumentKind.QUOTE: "DEVIS"}

LABELS = {
    "number": "N° Pièces",
    "date": "Date",
    "company": "Société",
    "tel": "Tel",
    "email": "Email",
    "tax_id": "MF",
    "designation": "DESIGNATION",
    "quantity": "QUANTITE",
    "unit_price": "PRIX (TND)",
    "line_total": "TOTAL (TND)",
    "subtotal": "Sous-total",
    "stamp_duty": "Timbre",
    "total": "TOTAL",
    "payee": "PAYABLE A :",
    "rib": "R.I.B :",
    "bank": "Banque:",
}

AMOUNT_IN_WORDS_WORDING = {
    DocumentKind.INVOICE: "Arrêtée la présente Facture à la somme de :",
    DocumentKind.QUOTE: "Arrêté le présent Devis à la somme de :",
}


def format_print_date(value: date) -> str:
    """``date(2025, 3, 7)`` -> ``"07 / 03 / 2025"``."""
    return f"{value.day:02d} / {value.month:02d} / {value.year}"


@dataclass(frozen=True)
class PrintLine:
    designation: str
    quantity: str
    unit_price: str
    line_total: str


@dataclass(frozen=True)
class PrintPayload:
    """Every string the renderer needs, already formatted."""

    title: str
    number: str
    date: str
    client_name: str
    client_tel: str
    client_email: str
    client_address: str
    client_tax_id: str
    lines: tuple[PrintLine, ...]
    subtotal: str
    stamp_duty: str
    total: str
    amount_in_words_label: str
    amount_in_words: str
    company_name: str
    company_address: str
    company_tax_id: str
    company_phone: str
    company_email: str
    bank_payee: str
    bank_rib: str
    bank_name: str

    def to_fields(self) -> dict[str, str]:
        """
        Flatten the payload to ``{field: text}``.

        Line fields are indexed from 1: ``line.1.designation``, ...
        Column headers and fixed labels are included under ``label.*``.
        """
        fields: dict[str, str] = {}
        for name, value in self.__dict__.items():
            if name == "lines":
                continue
            fields[name] = value
        fields["line_count"] = str(len(self.lines))
        for index, line in enumerate(self.lines, start=1):
            fields[f"line.{index}.designation"] = line.designation
            fields[f"line.{index}.quantity"] = line.quantity
            fields[f"line.{index}.unit_price"] = line.unit_price
            fields[f"line.{index}.line_total"] = line.line_total
        for key, label in LABELS.items():
            fields[f"label.{key}"] = label
        return fields


def check_document_totals(doc: FinancialDocument) -> None:
    """
    Raise ``IntegrityError`` if stored totals disagree with the line items.
    """
    expected = recompute_from_items(doc.items, doc.stamp_duty)
    if expected.subtotal != doc.subtotal or expected.total != doc.total:
        logger.error(
            "Stored totals of %s drifted: subtotal %s (expected %s), total %s (expected %s)",
            doc.number,
            doc.subtotal,
            expected.subtotal,
            doc.total,
            expected.total,
            extra={"entity_id": doc.id},
        )
        raise IntegrityError(
            f"Document {doc.number}: stored subtotal/total {doc.subtotal}/{doc.total} "
            f"!= recomputed {expected.subtotal}/{expected.total}"
        )


def _currency(value: Decimal, currency: str) -> str:
    return f"{format_amount(value)} {currency}"


def payload_from_document(doc: FinancialDocument, company: CompanySettings) -> PrintPayload:
    """Build the payload of an already loaded document."""
    check_document_totals(doc)

    lines = tuple(
        PrintLine(
            designation=item.designation,
            quantity=format_amount(item.quantity),
            unit_price=format_amount(item.unit_price),
            line_total=format_amount(item.line_total),
        )
        for item in doc.items
    )

    return PrintPayload(
        title=TITLES[doc.kind],
        number=doc.number,
        date=format_print_date(doc.issue_date),
        client_name=doc.client_name,
        client_tel=doc.client_tel or "",
        client_email=doc.client_email or "",
        client_address=doc.client_address or "",
        client_tax_id=doc.client_tax_id or "",
        lines=lines,
        subtotal=_currency(doc.subtotal, company.currency),
        stamp_duty=_currency(doc.stamp_duty, company.currency),
        total=_currency(doc.total, company.currency),
        amount_in_words_label=AMOUNT_IN_WORDS_WORDING[doc.kind],
        amount_in_words=amount_to_words(doc.total),
        company_name=company.name,
        company_address=company.address,
        company_tax_id=company.tax_id,
        company_phone=company.phone,
        company_email=company.email,
        bank_payee=company.bank_payee,
        bank_rib=company.bank_rib,
        bank_name=company.bank_name,
    )


def build_print_payload(
    cfg: db.DatabaseConfig, document_id: str, company: CompanySettings
) -> PrintPayload:
    """
    Load a document and build its print payload.

    Raises
    ------
    NotFoundError
        If the document does not exist.
    IntegrityError
        If its stored totals disagree with its line items.
    """
    db.init_database(cfg)

    with db.open_connection(cfg) as conn:
        doc = db.get_document(conn, document_id)
    if doc is None:
        raise NotFoundError(f"Document {document_id!r} not found.", "Document introuvable.")
    return payload_from_document(doc, company)
