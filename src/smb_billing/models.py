# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Domain records and closed enumerations.

Status, kind and category values are modelled as ``Enum`` members rather
than free-form strings so that an invalid state cannot be constructed.
Values coming from the outside world (CLI, CSV, database rows) go through
``parse_enum`` which raises ``ValidationError`` on unknown values.

Money is always ``decimal.Decimal`` with 3 decimal places (millimes).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, TypeVar

from .errors import ValidationError


class DocumentKind(str, Enum):
    """Quote (devis) or invoice (facture); both share the same shape."""

    QUOTE = "QUOTE"
    INVOICE = "INVOICE"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class SequenceKind(str, Enum):
    """Kinds of identifiers handed out by the numbering service."""

    QUOTE = "QUOTE"
    INVOICE = "INVOICE"
    IMPORT_PROCEDURE = "IMPORT_PROCEDURE"
    DECLARATION = "DECLARATION"


class ChargeCategory(str, Enum):
    ACHATS_MARCHANDISES = "ACHATS_MARCHANDISES"
    SERVICES_EXTERIEURS = "SERVICES_EXTERIEURS"
    LOYER = "LOYER"
    ELECTRICITE_EAU = "ELECTRICITE_EAU"
    TELEPHONE_INTERNET = "TELEPHONE_INTERNET"
    TRANSPORT = "TRANSPORT"
    ASSURANCES = "ASSURANCES"
    ENTRETIEN_REPARATIONS = "ENTRETIEN_REPARATIONS"
    FOURNITURES_BUREAU = "FOURNITURES_BUREAU"
    PUBLICITE = "PUBLICITE"
    FRAIS_BANCAIRES = "FRAIS_BANCAIRES"
    IMPOTS_TAXES = "IMPOTS_TAXES"
    SALAIRES = "SALAIRES"
    CHARGES_SOCIALES = "CHARGES_SOCIALES"
    AMORTISSEMENTS = "AMORTISSEMENTS"
    AUTRES = "AUTRES"


class DeclarationType(str, Enum):
    TVA = "TVA"
    ACOMPTE_IS = "ACOMPTE_IS"
    IS_ANNUEL = "IS_ANNUEL"
    IRPP = "IRPP"
    RETENUE_SOURCE = "RETENUE_SOURCE"
    TCL = "TCL"
    DROIT_TIMBRE = "DROIT_TIMBRE"
    CNSS = "CNSS"
    DECLARATION_EMPLOYEUR = "DECLARATION_EMPLOYEUR"


class DeclarationPeriod(str, Enum):
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


class DeclarationStatus(str, Enum):
    TO_DECLARE = "TO_DECLARE"
    IN_PROGRESS = "IN_PROGRESS"
    DECLARED = "DECLARED"
    PAID = "PAID"
    LATE = "LATE"
    CANCELLED = "CANCELLED"


class FiscalYearStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"


# Statuses for which a declaration is still awaiting action.
OPEN_DECLARATION_STATUSES = frozenset(
    {DeclarationStatus.TO_DECLARE, DeclarationStatus.IN_PROGRESS}
)

E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: type[E], value: Any, field_name: str) -> E:
    """
    Convert a raw value (member or string, case-insensitive) to an enum member.

    Raises
    ------
    ValidationError
        If the value does not name a member of ``enum_cls``.
    """
    if isinstance(value, enum_cls):
        return value
    raw = str(value or "").strip().upper()
    try:
        return enum_cls(raw)
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field_name}: {value!r}. Expected one of: {allowed}.",
            f"Valeur invalide pour « {field_name} ».",
        ) from exc


# ---------------------------------------------------------------------------
# Financial documents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineItemInput:
    """Raw line item as typed by the user (amounts not yet validated)."""

    designation: str
    quantity: Any
    unit_price: Any


@dataclass(frozen=True)
class DocumentInput:
    """
    Create/update request for a quote or an invoice.

    ``stamp_duty`` defaults to the configured default stamp duty when None.
    ``issue_date`` is only used on creation (defaults to today).
    """

    client_name: str
    items: list[LineItemInput]
    client_tel: Optional[str] = None
    client_email: Optional[str] = None
    client_address: Optional[str] = None
    client_tax_id: Optional[str] = None
    stamp_duty: Any = None
    issue_date: Optional[date] = None


@dataclass(frozen=True)
class DocumentItem:
    """Persisted line item with its derived (rounded) total."""

    position: int
    designation: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class FinancialDocument:
    """
    A stored quote or invoice.

    Invariants (enforced by the document service)
    ----------------------------------------------
    - ``subtotal`` equals the full-precision sum of quantity x unit price,
      rounded once to 3 decimals.
    - ``total == subtotal + stamp_duty``.
    - ``number`` never changes after creation.
    """

    id: str
    kind: DocumentKind
    number: str
    issue_date: date
    client_name: str
    client_tel: Optional[str]
    client_email: Optional[str]
    client_address: Optional[str]
    client_tax_id: Optional[str]
    items: tuple[DocumentItem, ...]
    stamp_duty: Decimal
    subtotal: Decimal
    total: Decimal
    status: DocumentStatus
    created_at: datetime
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class DocumentStats:
    count: int
    revenue: Decimal
    pending_amount: Decimal
    paid_count: int


# ---------------------------------------------------------------------------
# Ledger: charges & declarations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChargeInput:
    """
    Create/update request for a charge.

    ``amount_ttc`` may be supplied by a form but is never trusted: the
    ledger recomputes it from ``amount_ht`` and ``vat_rate``.
    """

    reference: str
    designation: str
    category: Any
    amount_ht: Any
    date: date
    vat_rate: Any = None
    amount_ttc: Any = None
    supplier: Optional[str] = None
    invoice_ref: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Charge:
    id: str
    reference: str
    designation: str
    category: ChargeCategory
    amount_ht: Decimal
    vat_rate: Decimal
    amount_ttc: Decimal
    date: date
    supplier: Optional[str]
    invoice_ref: Optional[str]
    notes: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def vat_amount(self) -> Decimal:
        return self.amount_ttc - self.amount_ht


@dataclass(frozen=True)
class DeclarationInput:
    type: Any
    period: Any
    year: int
    due_date: date
    amount_due: Any
    month: Optional[int] = None
    quarter: Optional[int] = None
    filed_date: Optional[date] = None
    amount_paid: Any = None
    penalties: Any = None
    status: Any = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Declaration:
    id: str
    reference: str
    type: DeclarationType
    period: DeclarationPeriod
    year: int
    month: Optional[int]
    quarter: Optional[int]
    due_date: date
    filed_date: Optional[date]
    amount_due: Decimal
    amount_paid: Optional[Decimal]
    penalties: Optional[Decimal]
    status: DeclarationStatus
    notes: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class DeclarationStats:
    total: int
    pending: int
    late: int
    late_references: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Fiscal years
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FiscalYearInput:
    """
    Create/update request for a fiscal year.

    ``start_date``/``end_date`` default to 1 January and 31 December of
    ``year``. ``status`` defaults to OPEN on creation and is kept on update.
    """

    year: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Any = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class FiscalYear:
    id: str
    year: int
    start_date: date
    end_date: date
    status: FiscalYearStatus
    notes: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class FiscalYearOverview:
    """
    A fiscal year with its figures.

    The figures are computed from the stored documents and charges of the
    calendar year each time the overview is read; nothing is stored.
    """

    fiscal_year: FiscalYear
    revenue: Decimal
    expenses: Decimal
    result: Decimal
