# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Charges, tax declarations and fiscal years service.

Charges
-------
Business expenses entered with a pre-tax amount (HT) and a VAT rate. The
tax-included amount (TTC) is always recomputed here, whatever a form or a
CSV file supplied, so that the reporting aggregator can rely on
``TTC = round(HT x (1 + rate / 100), 3)``.

Declarations
------------
Periodic tax obligations (VAT, income tax instalments, social charges...).
Each declaration gets a ``DEC-0001-2025`` style reference allocated in the
same transaction as its insert. Status changes are free-form among the six
states.

Fiscal years
------------
One record per year (dates, status OPEN / CLOSED / ARCHIVED, notes). Its
revenue, expenses and result are read from the reporting aggregator every
time the fiscal year is read; they are never stored.

Like ``DocumentService``, every public method returns an
``OperationResult`` and committed mutations are published on the bus.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Union

from . import db, events, numbering, reporting
from .calculator import compute_ttc
from .config import AppConfig, NumberingSettings, TaxSettings
from .documents_service import run_operation
from .errors import NotFoundError, OperationResult, ValidationError
from .events import EventBus, MutationEvent
from .io import read_charges
from .models import (
    OPEN_DECLARATION_STATUSES,
    Charge,
    ChargeCategory,
    ChargeInput,
    Declaration,
    DeclarationInput,
    DeclarationPeriod,
    DeclarationStats,
    DeclarationStatus,
    DeclarationType,
    FiscalYear,
    FiscalYearInput,
    FiscalYearOverview,
    FiscalYearStatus,
    SequenceKind,
    parse_enum,
)
from .money import check_magnitude, quantize_amount, to_decimal

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _required_text(value: Optional[str], field_name: str) -> str:
    text = _clean(value)
    if not text:
        raise ValidationError(
            f"Missing {field_name}.", f"Le champ « {field_name} » est requis."
        )
    return text


def _non_negative(value: object, field_name: str) -> Decimal:
    amount = quantize_amount(to_decimal(value, field_name))
    if amount < 0:
        raise ValidationError(
            f"Negative {field_name}: {amount}",
            f"Le montant « {field_name} » ne peut pas être négatif.",
        )
    return amount


def _optional_amount(value: object, field_name: str) -> Optional[Decimal]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _non_negative(value, field_name)


def _optional_int(value: object, field_name: str, low: int, high: int) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"Invalid {field_name}: {value!r}", f"Valeur invalide pour « {field_name} »."
        ) from exc
    if not low <= number <= high:
        raise ValidationError(
            f"{field_name} out of range: {number}", f"Valeur invalide pour « {field_name} »."
        )
    return number


class LedgerService:
    """
    Manage charges and tax declarations.

    Parameters
    ----------
    db_config:
        Where the ledger lives (same database as the documents).
    events:
        Bus receiving ``charge.*`` and ``declaration.*`` events.
    settings:
        Application configuration (default VAT rate, numbering prefixes).
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
        db.init_database(db_config)

    def _publish(self, topic: str, entity_id: str, **payload: object) -> None:
        self.events.publish(MutationEvent(topic=topic, entity_id=entity_id, payload=payload))

    # ------------------------------------------------------------------
    # Charges
    # ------------------------------------------------------------------

    def _build_charge(self, charge_id: str, data: ChargeInput, created_at: datetime) -> Charge:
        """Validate a charge request; TTC is derived, never taken from input."""
        if data.date is None:
            raise ValidationError("Missing charge date.", "La date de la charge est requise.")
        amount_ht = _non_negative(data.amount_ht, "montant HT")
        vat_rate = (
            self.tax.default_charge_vat_rate
            if data.vat_rate is None
            else to_decimal(data.vat_rate, "taux de TVA")
        )
        if vat_rate < 0:
            raise ValidationError(
                f"Negative VAT rate: {vat_rate}", "Le taux de TVA ne peut pas être négatif."
            )
        return Charge(
            id=charge_id,
            reference=_required_text(data.reference, "référence"),
            designation=_required_text(data.designation, "désignation"),
            category=parse_enum(ChargeCategory, data.category, "catégorie"),
            amount_ht=amount_ht,
            vat_rate=vat_rate,
            amount_ttc=check_magnitude(compute_ttc(amount_ht, vat_rate), "montant TTC"),
            date=data.date,
            supplier=_clean(data.supplier),
            invoice_ref=_clean(data.invoice_ref),
            notes=_clean(data.notes),
            created_at=created_at,
        )

    def create_charge(self, data: ChargeInput) -> OperationResult[Charge]:
        def _create() -> Charge:
            charge = self._build_charge(uuid.uuid4().hex, data, _now())
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    db.insert_charge(conn, charge)
            logger.info(
                "Created charge %s (TTC %s)", charge.reference, charge.amount_ttc,
                extra={"entity_id": charge.id},
            )
            self._publish(events.CHARGE_CREATED, charge.id, reference=charge.reference)
            return charge

        return run_operation("create charge", _create)

    def update_charge(self, charge_id: str, data: ChargeInput) -> OperationResult[Charge]:
        def _update() -> Charge:
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    existing = db.get_charge(conn, charge_id)
                    if existing is None:
                        raise NotFoundError(f"Charge {charge_id!r} not found.", "Charge introuvable.")
                    charge = self._build_charge(charge_id, data, existing.created_at)
                    db.update_charge(conn, charge)
                    charge = db.get_charge(conn, charge_id)
            logger.info("Updated charge %s", charge.reference, extra={"entity_id": charge.id})
            self._publish(events.CHARGE_UPDATED, charge.id, reference=charge.reference)
            return charge

        return run_operation("update charge", _update)

    def delete_charge(self, charge_id: str) -> OperationResult[None]:
        def _delete() -> None:
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    if not db.delete_charge(conn, charge_id):
                        raise NotFoundError(f"Charge {charge_id!r} not found.", "Charge introuvable.")
            logger.info("Deleted charge %s", charge_id, extra={"entity_id": charge_id})
            self._publish(events.CHARGE_DELETED, charge_id)

        return run_operation("delete charge", _delete)

    def get_charge(self, charge_id: str) -> OperationResult[Charge]:
        def _get() -> Charge:
            with db.open_connection(self.db_config) as conn:
                charge = db.get_charge(conn, charge_id)
            if charge is None:
                raise NotFoundError(f"Charge {charge_id!r} not found.", "Charge introuvable.")
            return charge

        return run_operation("get charge", _get)

    def list_charges(self, year: Optional[int] = None) -> OperationResult[list[Charge]]:
        def _list() -> list[Charge]:
            start = date(year, 1, 1) if year else None
            end = date(year, 12, 31) if year else None
            with db.open_connection(self.db_config) as conn:
                return db.list_charges(conn, start, end)

        return run_operation("list charges", _list)

    def import_charges(
        self, path: Union[str, "os.PathLike[str]"]
    ) -> OperationResult[list[Charge]]:
        """
        Import charges from a CSV file (see ``io.read_charges``).

        The file is validated completely before anything is written; all
        rows are then inserted in a single transaction.
        """

        def _import() -> list[Charge]:
            try:
                rows = read_charges(path)
            except (OSError, ValueError) as exc:
                raise ValidationError(
                    f"Cannot import charges from {path}: {exc}",
                    "Le fichier de charges est invalide.",
                ) from exc

            created_at = _now()
            charges = [
                self._build_charge(uuid.uuid4().hex, data, created_at) for data in rows
            ]
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    for charge in charges:
                        db.insert_charge(conn, charge)

            logger.info("Imported %d charges from %s", len(charges), path)
            for charge in charges:
                self._publish(events.CHARGE_CREATED, charge.id, reference=charge.reference)
            return charges

        return run_operation("import charges", _import)

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def _build_declaration(
        self, decl_id: str, reference: str, data: DeclarationInput, created_at: datetime
    ) -> Declaration:
        period = parse_enum(DeclarationPeriod, data.period, "périodicité")
        try:
            year = int(data.year)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid year: {data.year!r}", "Année invalide.") from exc
        if data.due_date is None:
            raise ValidationError("Missing due date.", "La date d'échéance est requise.")

        return Declaration(
            id=decl_id,
            reference=reference,
            type=parse_enum(DeclarationType, data.type, "type de déclaration"),
            period=period,
            year=year,
            month=_optional_int(data.month, "mois", 1, 12),
            quarter=_optional_int(data.quarter, "trimestre", 1, 4),
            due_date=data.due_date,
            filed_date=data.filed_date,
            amount_due=_non_negative(data.amount_due, "montant dû"),
            amount_paid=_optional_amount(data.amount_paid, "montant payé"),
            penalties=_optional_amount(data.penalties, "pénalités"),
            status=(
                DeclarationStatus.TO_DECLARE
                if data.status is None
                else parse_enum(DeclarationStatus, data.status, "statut")
            ),
            notes=_clean(data.notes),
            created_at=created_at,
        )

    def create_declaration(self, data: DeclarationInput) -> OperationResult[Declaration]:
        """Create a declaration; its reference is drawn from the year's sequence."""

        def _create() -> Declaration:
            # Validate before taking the write lock.
            draft = self._build_declaration(uuid.uuid4().hex, "", data, _now())
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    reference = numbering.allocate(
                        conn, SequenceKind.DECLARATION, draft.year, self.numbering
                    )
                    decl = dataclasses.replace(draft, reference=reference)
                    db.insert_declaration(conn, decl)
            logger.info(
                "Created declaration %s (%s, due %s)", decl.reference, decl.type.value,
                decl.due_date, extra={"entity_id": decl.id},
            )
            self._publish(events.DECLARATION_CREATED, decl.id, reference=decl.reference)
            return decl

        return run_operation("create declaration", _create)

    def update_declaration(
        self, declaration_id: str, data: DeclarationInput
    ) -> OperationResult[Declaration]:
        """Rewrite a declaration; the reference never changes."""

        def _update() -> Declaration:
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    existing = db.get_declaration(conn, declaration_id)
                    if existing is None:
                        raise _declaration_not_found(declaration_id)
                    decl = self._build_declaration(
                        declaration_id, existing.reference, data, existing.created_at
                    )
                    if data.status is None:
                        decl = dataclasses.replace(decl, status=existing.status)
                    db.update_declaration(conn, decl)
                    decl = db.get_declaration(conn, declaration_id)
            logger.info("Updated declaration %s", decl.reference, extra={"entity_id": decl.id})
            self._publish(events.DECLARATION_UPDATED, decl.id, reference=decl.reference)
            return decl

        return run_operation("update declaration", _update)

    def set_declaration_status(
        self, declaration_id: str, status: DeclarationStatus | str
    ) -> OperationResult[Declaration]:
        def _set_status() -> Declaration:
            new_status = parse_enum(DeclarationStatus, status, "statut")
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    existing = db.get_declaration(conn, declaration_id)
                    if existing is None:
                        raise _declaration_not_found(declaration_id)
                    db.update_declaration_status(conn, declaration_id, new_status)
                    decl = db.get_declaration(conn, declaration_id)
            logger.info(
                "Status of %s: %s -> %s", decl.reference, existing.status.value,
                new_status.value, extra={"entity_id": decl.id},
            )
            self._publish(
                events.DECLARATION_STATUS_CHANGED,
                decl.id,
                previous=existing.status.value,
                status=new_status.value,
            )
            return decl

        return run_operation("set declaration status", _set_status)

    def delete_declaration(self, declaration_id: str) -> OperationResult[None]:
        def _delete() -> None:
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    if not db.delete_declaration(conn, declaration_id):
                        raise _declaration_not_found(declaration_id)
            logger.info("Deleted declaration %s", declaration_id, extra={"entity_id": declaration_id})
            self._publish(events.DECLARATION_DELETED, declaration_id)

        return run_operation("delete declaration", _delete)

    def get_declaration(self, declaration_id: str) -> OperationResult[Declaration]:
        def _get() -> Declaration:
            with db.open_connection(self.db_config) as conn:
                decl = db.get_declaration(conn, declaration_id)
            if decl is None:
                raise _declaration_not_found(declaration_id)
            return decl

        return run_operation("get declaration", _get)

    def list_declarations(self, year: Optional[int] = None) -> OperationResult[list[Declaration]]:
        """Declarations ordered by year (newest first) then due date."""

        def _list() -> list[Declaration]:
            with db.open_connection(self.db_config) as conn:
                return db.list_declarations(conn, year)

        return run_operation("list declarations", _list)

    def declaration_stats(self, today: Optional[date] = None) -> OperationResult[DeclarationStats]:
        """
        Count declarations awaiting action.

        ``pending`` covers TO_DECLARE and IN_PROGRESS; ``late`` is the part
        of them whose due date is before ``today``.
        """

        def _stats() -> DeclarationStats:
            reference_day = today or date.today()
            with db.open_connection(self.db_config) as conn:
                declarations = db.list_declarations(conn)
            pending = [d for d in declarations if d.status in OPEN_DECLARATION_STATUSES]
            late = [d for d in pending if d.due_date < reference_day]
            return DeclarationStats(
                total=len(declarations),
                pending=len(pending),
                late=len(late),
                late_references=[d.reference for d in late],
            )

        return run_operation("declaration stats", _stats)

    # ------------------------------------------------------------------
    # Fiscal years
    # ------------------------------------------------------------------

    def _build_fiscal_year(
        self, fy_id: str, data: FiscalYearInput, status: FiscalYearStatus, created_at: datetime
    ) -> FiscalYear:
        year = _optional_int(data.year, "année", 1900, 9999)
        if year is None:
            raise ValidationError("Missing fiscal year.", "L'année de l'exercice est requise.")
        start = data.start_date or date(year, 1, 1)
        end = data.end_date or date(year, 12, 31)
        if end < start:
            raise ValidationError(
                f"Fiscal year {year} ends before it starts ({start} > {end}).",
                "La date de fin de l'exercice précède sa date de début.",
            )
        return FiscalYear(
            id=fy_id,
            year=year,
            start_date=start,
            end_date=end,
            status=status,
            notes=_clean(data.notes),
            created_at=created_at,
        )

    def _overview(self, fy: FiscalYear) -> FiscalYearOverview:
        summary = reporting.get_yearly_summary(self.db_config, fy.year, self.tax)
        return FiscalYearOverview(
            fiscal_year=fy,
            revenue=summary.revenue,
            expenses=summary.expenses,
            result=summary.profit,
        )

    def create_fiscal_year(self, data: FiscalYearInput) -> OperationResult[FiscalYear]:
        """Open a fiscal year; a year can only be recorded once."""

        def _create() -> FiscalYear:
            status = (
                FiscalYearStatus.OPEN
                if data.status is None
                else parse_enum(FiscalYearStatus, data.status, "statut")
            )
            fy = self._build_fiscal_year(uuid.uuid4().hex, data, status, _now())
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    db.insert_fiscal_year(conn, fy)
            logger.info("Created fiscal year %s", fy.year, extra={"entity_id": fy.id})
            self._publish(events.FISCAL_YEAR_CREATED, fy.id, year=fy.year)
            return fy

        return run_operation("create fiscal year", _create)

    def update_fiscal_year(
        self, fiscal_year_id: str, data: FiscalYearInput
    ) -> OperationResult[FiscalYear]:
        """Rewrite dates, notes and (if given) status; the year never changes."""

        def _update() -> FiscalYear:
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    existing = db.get_fiscal_year(conn, fiscal_year_id)
                    if existing is None:
                        raise _fiscal_year_not_found(fiscal_year_id)
                    status = (
                        existing.status
                        if data.status is None
                        else parse_enum(FiscalYearStatus, data.status, "statut")
                    )
                    fy = self._build_fiscal_year(
                        fiscal_year_id, data, status, existing.created_at
                    )
                    if fy.year != existing.year:
                        raise ValidationError(
                            f"Fiscal year {existing.year} cannot become {fy.year}.",
                            "L'année d'un exercice ne peut pas être modifiée.",
                        )
                    db.update_fiscal_year(conn, fy)
                    fy = db.get_fiscal_year(conn, fiscal_year_id)
            logger.info("Updated fiscal year %s", fy.year, extra={"entity_id": fy.id})
            self._publish(events.FISCAL_YEAR_UPDATED, fy.id, year=fy.year)
            return fy

        return run_operation("update fiscal year", _update)

    def set_fiscal_year_status(
        self, fiscal_year_id: str, status: FiscalYearStatus | str
    ) -> OperationResult[FiscalYear]:
        def _set_status() -> FiscalYear:
            new_status = parse_enum(FiscalYearStatus, status, "statut")
            with db.open_connection(self.db_config) as conn:
                with db.transaction(conn):
                    existing = db.get_fiscal_year(conn, fiscal_year_id)
                    if existing is None:
                        raise _fiscal_year_not_found(fiscal_year_id)
                    db.update_fiscal_year_status(conn, fiscal_year_id, new_status)
                    fy = db.get_fiscal_year(conn, fiscal_year_id)
            logger.info(
                "Status of fiscal year %s: %s -> %s", fy.year, existing.status.value,
                new_status.value, extra={"entity_id": fy.id},
            )
            self._publish(
                events.FISCAL_YEAR_STATUS_CHANGED,
                fy.id,
                previous=existing.status.value,
                status=new_status.value,
            )
            return fy

        return run_operation("set fiscal year status", _set_status)

    def get_fiscal_year(self, fiscal_year_id: str) -> OperationResult[FiscalYearOverview]:
        def _get() -> FiscalYearOverview:
            with db.open_connection(self.db_config) as conn:
                fy = db.get_fiscal_year(conn, fiscal_year_id)
            if fy is None:
                raise _fiscal_year_not_found(fiscal_year_id)
            return self._overview(fy)

        return run_operation("get fiscal year", _get)

    def list_fiscal_years(self) -> OperationResult[list[FiscalYearOverview]]:
        """Fiscal years, most recent first, with figures recomputed from the store."""

        def _list() -> list[FiscalYearOverview]:
            with db.open_connection(self.db_config) as conn:
                fiscal_years = db.list_fiscal_years(conn)
            return [self._overview(fy) for fy in fiscal_years]

        return run_operation("list fiscal years", _list)


def _declaration_not_found(declaration_id: str) -> NotFoundError:
    return NotFoundError(
        f"Declaration {declaration_id!r} not found.", "Déclaration introuvable."
    )


def _fiscal_year_not_found(fiscal_year_id: str) -> NotFoundError:
    return NotFoundError(
        f"Fiscal year {fiscal_year_id!r} not found.", "Exercice introuvable."
    )
