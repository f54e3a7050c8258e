# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for SMB Billing.

This module wires together the main building blocks of SMB Billing:

- global configuration (database, tax settings, numbering, company),
- the documents service (quotes and invoices),
- the ledger service (charges, tax declarations and fiscal years),
- the reporting aggregator (monthly and yearly figures),
- the print payload builder.

The CLI is intentionally thin: it does not implement any billing logic
itself. It parses arguments, calls the services and renders their results
as console tables (``pandas.DataFrame.to_string``).


Commands
--------

    init
    documents create|update|list|show|status|delete|print
    charges   add|list|delete|import
    declarations add|list|status|delete
    fiscal-years add|list|status
    report    monthly|yearly|dashboard

Line items are passed as ``--item "designation;quantity;unit price"``
(repeatable). Decimal amounts accept a dot or a comma.


Configuration
-------------

By default, the CLI reads ``smb_billing_config.toml`` in the current
working directory. You can override this path using ``--config PATH``, or
skip the file entirely with ``--db PATH`` (default settings around the
given SQLite file).

Failures reported by the services are printed with their French user
message and the process exits with status 1.
"""

from __future__ import annotations

import argparse
from datetime import date
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .config import AppConfig, default_app_config, load_app_config
from .db import init_database
from .documents_service import DocumentService
from .errors import OperationResult
from .events import EventBus
from .ledger_service import LedgerService
from .logger import configure_logging
from .models import (
    ChargeCategory,
    ChargeInput,
    DeclarationInput,
    DeclarationPeriod,
    DeclarationStatus,
    DeclarationType,
    DocumentInput,
    DocumentKind,
    DocumentStatus,
    FinancialDocument,
    FiscalYearInput,
    FiscalYearStatus,
    LineItemInput,
)
from .money import format_amount
from .periods import resolve_year
from .reporting import get_dashboard, get_monthly_summary, get_yearly_summary, monthly_frame


def _enum_choices(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


def _parse_date(value: str) -> date:
    """argparse type for YYYY-MM-DD dates."""
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"Invalid date format: {value!r}. Expected YYYY-MM-DD."
        ) from exc


def _parse_item(value: str) -> LineItemInput:
    """argparse type for ``designation;quantity;unit price``."""
    parts = value.rsplit(";", 2)
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(
            f"Invalid item: {value!r}. Expected 'designation;quantity;unit price'."
        )
    designation, quantity, unit_price = (p.strip() for p in parts)
    return LineItemInput(designation=designation, quantity=quantity, unit_price=unit_price)


def _add_document_fields(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--client", dest="client_name", required=True, help="Client name.")
    parser.add_argument("--tel", dest="client_tel", help="Client phone number.")
    parser.add_argument("--email", dest="client_email", help="Client email.")
    parser.add_argument("--address", dest="client_address", help="Client address.")
    parser.add_argument(
        "--tax-id", dest="client_tax_id", help="Client tax identifier (matricule fiscale)."
    )
    parser.add_argument(
        "--item",
        dest="items",
        action="append",
        type=_parse_item,
        default=[],
        metavar="'DESIGNATION;QTY;PRICE'",
        help="Line item (repeatable).",
    )
    parser.add_argument(
        "--stamp",
        dest="stamp_duty",
        help="Stamp duty (timbre fiscal). Defaults to the configured value.",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m smb_billing.cli",
        description=(
            "SMB Billing - Quotes, invoices & financial reporting engine for SMBs. "
            "Manages quotes, invoices, charges and tax declarations and computes "
            "yearly figures (revenue, expenses, VAT)."
        ),
    )

    # Generic options
    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of smb_billing and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the main TOML configuration file. "
            "If omitted, 'smb_billing_config.toml' in the current directory is used."
        ),
    )
    ap.add_argument(
        "--db",
        dest="db_path",
        help="Use default settings with this SQLite file instead of a config file.",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    subparsers.add_parser("init", help="Create the database and its schema.")

    # ------------------------------------------------------------------
    # documents
    # ------------------------------------------------------------------
    documents = subparsers.add_parser("documents", help="Manage quotes and invoices.")
    documents_sub = documents.add_subparsers(
        dest="documents_command", metavar="documents-command"
    )

    doc_create = documents_sub.add_parser("create", help="Create a quote or an invoice.")
    doc_create.add_argument(
        "--kind",
        type=str.upper,
        choices=_enum_choices(DocumentKind),
        default=DocumentKind.INVOICE.value,
        help="Document kind (default: INVOICE).",
    )
    doc_create.add_argument(
        "--date", dest="issue_date", type=_parse_date, help="Issue date (default: today)."
    )
    _add_document_fields(doc_create)

    doc_update = documents_sub.add_parser(
        "update", help="Replace the client fields and line items of a document."
    )
    doc_update.add_argument("document_id")
    _add_document_fields(doc_update)

    doc_list = documents_sub.add_parser("list", help="List documents.")
    doc_list.add_argument("--kind", type=str.upper, choices=_enum_choices(DocumentKind))
    doc_list.add_argument("--year", type=int)
    doc_list.add_argument("--status", type=str.upper, choices=_enum_choices(DocumentStatus))

    doc_show = documents_sub.add_parser("show", help="Show a document and its items.")
    doc_show.add_argument("document_id")

    doc_status = documents_sub.add_parser("status", help="Change the status of a document.")
    doc_status.add_argument("document_id")
    doc_status.add_argument("status", type=str.upper, choices=_enum_choices(DocumentStatus))

    doc_delete = documents_sub.add_parser("delete", help="Delete a document.")
    doc_delete.add_argument("document_id")

    doc_print = documents_sub.add_parser(
        "print", help="Print the labelled fields handed to the PDF renderer."
    )
    doc_print.add_argument("document_id")

    # ------------------------------------------------------------------
    # charges
    # ------------------------------------------------------------------
    charges = subparsers.add_parser("charges", help="Manage charges (expenses).")
    charges_sub = charges.add_subparsers(dest="charges_command", metavar="charges-command")

    charge_add = charges_sub.add_parser("add", help="Record a charge.")
    charge_add.add_argument("--reference", required=True)
    charge_add.add_argument("--designation", required=True)
    charge_add.add_argument(
        "--category", required=True, type=str.upper, choices=_enum_choices(ChargeCategory)
    )
    charge_add.add_argument("--amount-ht", dest="amount_ht", required=True)
    charge_add.add_argument(
        "--vat-rate", dest="vat_rate", help="VAT rate in percent (default from config)."
    )
    charge_add.add_argument("--date", type=_parse_date, required=True)
    charge_add.add_argument("--supplier")
    charge_add.add_argument("--invoice-ref", dest="invoice_ref")
    charge_add.add_argument("--notes")

    charge_list = charges_sub.add_parser("list", help="List charges.")
    charge_list.add_argument("--year", type=int)

    charge_delete = charges_sub.add_parser("delete", help="Delete a charge.")
    charge_delete.add_argument("charge_id")

    charge_import = charges_sub.add_parser("import", help="Import charges from a CSV file.")
    charge_import.add_argument("csv_path")

    # ------------------------------------------------------------------
    # declarations
    # ------------------------------------------------------------------
    declarations = subparsers.add_parser("declarations", help="Manage tax declarations.")
    declarations_sub = declarations.add_subparsers(
        dest="declarations_command", metavar="declarations-command"
    )

    decl_add = declarations_sub.add_parser("add", help="Record a tax declaration.")
    decl_add.add_argument(
        "--type", dest="decl_type", required=True, type=str.upper,
        choices=_enum_choices(DeclarationType),
    )
    decl_add.add_argument(
        "--period", required=True, type=str.upper, choices=_enum_choices(DeclarationPeriod)
    )
    decl_add.add_argument("--year", type=int, required=True)
    decl_add.add_argument("--month", type=int)
    decl_add.add_argument("--quarter", type=int)
    decl_add.add_argument("--due-date", dest="due_date", type=_parse_date, required=True)
    decl_add.add_argument("--amount-due", dest="amount_due", required=True)
    decl_add.add_argument("--notes")

    decl_list = declarations_sub.add_parser("list", help="List declarations.")
    decl_list.add_argument("--year", type=int)

    decl_status = declarations_sub.add_parser("status", help="Change a declaration status.")
    decl_status.add_argument("declaration_id")
    decl_status.add_argument(
        "status", type=str.upper, choices=_enum_choices(DeclarationStatus)
    )

    decl_delete = declarations_sub.add_parser("delete", help="Delete a declaration.")
    decl_delete.add_argument("declaration_id")

    # ------------------------------------------------------------------
    # fiscal years
    # ------------------------------------------------------------------
    fiscal = subparsers.add_parser("fiscal-years", help="Manage fiscal years.")
    fiscal_sub = fiscal.add_subparsers(dest="fiscal_command", metavar="fiscal-command")

    fy_add = fiscal_sub.add_parser("add", help="Open a fiscal year.")
    fy_add.add_argument("--year", type=int, required=True)
    fy_add.add_argument("--start", dest="start_date", type=_parse_date)
    fy_add.add_argument("--end", dest="end_date", type=_parse_date)
    fy_add.add_argument("--notes")

    fiscal_sub.add_parser("list", help="List fiscal years with their figures.")

    fy_status = fiscal_sub.add_parser("status", help="Change a fiscal year status.")
    fy_status.add_argument("fiscal_year_id")
    fy_status.add_argument("status", type=str.upper, choices=_enum_choices(FiscalYearStatus))

    # ------------------------------------------------------------------
    # report
    # ------------------------------------------------------------------
    report = subparsers.add_parser("report", help="Yearly figures.")
    report.add_argument(
        "report_kind", choices=["monthly", "yearly", "dashboard"], help="Report to render."
    )
    report.add_argument("--year", type=int, help="Calendar year (default: current year).")

    return ap


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _unwrap(result: OperationResult):
    """Return the result data or exit with the user-facing message."""
    if not result.ok:
        raise SystemExit(f"Error ({result.error}): {result.message}")
    return result.data


def _documents_frame(docs: list[FinancialDocument]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "id": d.id,
                "kind": d.kind.value,
                "number": d.number,
                "date": d.issue_date.isoformat(),
                "client": d.client_name,
                "total": format_amount(d.total),
                "status": d.status.value,
            }
            for d in docs
        ]
    )


def _print_document(doc: FinancialDocument) -> None:
    print(f"{doc.kind.value} {doc.number} ({doc.status.value})")
    print(f"  id       : {doc.id}")
    print(f"  date     : {doc.issue_date.isoformat()}")
    print(f"  client   : {doc.client_name}")
    items = pd.DataFrame(
        [
            {
                "designation": i.designation,
                "quantity": format_amount(i.quantity),
                "unit_price": format_amount(i.unit_price),
                "line_total": format_amount(i.line_total),
            }
            for i in doc.items
        ]
    )
    print()
    print(items.to_string(index=False))
    print()
    print(f"  subtotal : {format_amount(doc.subtotal)}")
    print(f"  stamp    : {format_amount(doc.stamp_duty)}")
    print(f"  total    : {format_amount(doc.total)}")


def _document_input(args: argparse.Namespace) -> DocumentInput:
    return DocumentInput(
        client_name=args.client_name,
        items=list(args.items),
        client_tel=args.client_tel,
        client_email=args.client_email,
        client_address=args.client_address,
        client_tax_id=args.client_tax_id,
        stamp_duty=args.stamp_duty,
        issue_date=getattr(args, "issue_date", None),
    )


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _handle_documents(args: argparse.Namespace, config: AppConfig, bus: EventBus) -> None:
    service = DocumentService(config.database, events=bus, settings=config)
    command = args.documents_command

    if command == "create":
        doc = _unwrap(service.create(args.kind, _document_input(args)))
        print(f"Created {doc.kind.value} {doc.number} (id {doc.id}).")
        _print_document(doc)
    elif command == "update":
        doc = _unwrap(service.update(args.document_id, _document_input(args)))
        print(f"Updated {doc.number}.")
        _print_document(doc)
    elif command == "list":
        docs = _unwrap(service.list(kind=args.kind, year=args.year, status=args.status))
        if not docs:
            print("No documents found for the given criteria.")
            return
        print(_documents_frame(docs).to_string(index=False))
    elif command == "show":
        _print_document(_unwrap(service.get(args.document_id)))
    elif command == "status":
        doc = _unwrap(service.set_status(args.document_id, args.status))
        print(f"{doc.number} is now {doc.status.value}.")
    elif command == "delete":
        _unwrap(service.delete(args.document_id))
        print(f"Deleted document {args.document_id}.")
    elif command == "print":
        payload = _unwrap(service.build_print_payload(args.document_id))
        for key, value in payload.to_fields().items():
            print(f"{key}: {value}")
    else:
        raise SystemExit("Missing documents subcommand (see --help).")


def _handle_charges(args: argparse.Namespace, config: AppConfig, bus: EventBus) -> None:
    service = LedgerService(config.database, events=bus, settings=config)
    command = args.charges_command

    if command == "add":
        charge = _unwrap(
            service.create_charge(
                ChargeInput(
                    reference=args.reference,
                    designation=args.designation,
                    category=args.category,
                    amount_ht=args.amount_ht,
                    vat_rate=args.vat_rate,
                    date=args.date,
                    supplier=args.supplier,
                    invoice_ref=args.invoice_ref,
                    notes=args.notes,
                )
            )
        )
        print(
            f"Recorded charge {charge.reference}: HT {format_amount(charge.amount_ht)}, "
            f"TTC {format_amount(charge.amount_ttc)} (id {charge.id})."
        )
    elif command == "list":
        charges = _unwrap(service.list_charges(year=args.year))
        if not charges:
            print("No charges found for the given criteria.")
            return
        df = pd.DataFrame(
            [
                {
                    "id": c.id,
                    "date": c.date.isoformat(),
                    "reference": c.reference,
                    "category": c.category.value,
                    "amount_ht": format_amount(c.amount_ht),
                    "vat_rate": str(c.vat_rate),
                    "amount_ttc": format_amount(c.amount_ttc),
                }
                for c in charges
            ]
        )
        print(df.to_string(index=False))
    elif command == "delete":
        _unwrap(service.delete_charge(args.charge_id))
        print(f"Deleted charge {args.charge_id}.")
    elif command == "import":
        csv_path = Path(args.csv_path)
        if not csv_path.is_file():
            raise SystemExit(f"CSV file not found: {csv_path}")
        charges = _unwrap(service.import_charges(csv_path))
        print(f"Imported {len(charges)} charges from {csv_path}.")
    else:
        raise SystemExit("Missing charges subcommand (see --help).")


def _handle_declarations(args: argparse.Namespace, config: AppConfig, bus: EventBus) -> None:
    service = LedgerService(config.database, events=bus, settings=config)
    command = args.declarations_command

    if command == "add":
        decl = _unwrap(
            service.create_declaration(
                DeclarationInput(
                    type=args.decl_type,
                    period=args.period,
                    year=args.year,
                    month=args.month,
                    quarter=args.quarter,
                    due_date=args.due_date,
                    amount_due=args.amount_due,
                    notes=args.notes,
                )
            )
        )
        print(f"Created declaration {decl.reference} (id {decl.id}).")
    elif command == "list":
        declarations = _unwrap(service.list_declarations(year=args.year))
        if not declarations:
            print("No declarations found for the given criteria.")
            return
        df = pd.DataFrame(
            [
                {
                    "id": d.id,
                    "reference": d.reference,
                    "type": d.type.value,
                    "period": d.period.value,
                    "year": d.year,
                    "due_date": d.due_date.isoformat(),
                    "amount_due": format_amount(d.amount_due),
                    "status": d.status.value,
                }
                for d in declarations
            ]
        )
        print(df.to_string(index=False))
        stats = _unwrap(service.declaration_stats())
        print()
        print(f"Total: {stats.total} | Pending: {stats.pending} | Late: {stats.late}")
    elif command == "status":
        decl = _unwrap(service.set_declaration_status(args.declaration_id, args.status))
        print(f"{decl.reference} is now {decl.status.value}.")
    elif command == "delete":
        _unwrap(service.delete_declaration(args.declaration_id))
        print(f"Deleted declaration {args.declaration_id}.")
    else:
        raise SystemExit("Missing declarations subcommand (see --help).")


def _handle_fiscal_years(args: argparse.Namespace, config: AppConfig, bus: EventBus) -> None:
    service = LedgerService(config.database, events=bus, settings=config)
    command = args.fiscal_command

    if command == "add":
        fy = _unwrap(
            service.create_fiscal_year(
                FiscalYearInput(
                    year=args.year,
                    start_date=args.start_date,
                    end_date=args.end_date,
                    notes=args.notes,
                )
            )
        )
        print(f"Opened fiscal year {fy.year} (id {fy.id}).")
    elif command == "list":
        overviews = _unwrap(service.list_fiscal_years())
        if not overviews:
            print("No fiscal years recorded.")
            return
        df = pd.DataFrame(
            [
                {
                    "id": o.fiscal_year.id,
                    "year": o.fiscal_year.year,
                    "start": o.fiscal_year.start_date.isoformat(),
                    "end": o.fiscal_year.end_date.isoformat(),
                    "status": o.fiscal_year.status.value,
                    "revenue": format_amount(o.revenue),
                    "expenses": format_amount(o.expenses),
                    "result": format_amount(o.result),
                }
                for o in overviews
            ]
        )
        print(df.to_string(index=False))
    elif command == "status":
        fy = _unwrap(service.set_fiscal_year_status(args.fiscal_year_id, args.status))
        print(f"Fiscal year {fy.year} is now {fy.status.value}.")
    else:
        raise SystemExit("Missing fiscal-years subcommand (see --help).")


def _print_yearly(summary) -> None:
    rows = [
        ("Revenue", format_amount(summary.revenue)),
        ("Expenses", format_amount(summary.expenses)),
        ("Profit", format_amount(summary.profit)),
        ("Profit margin (%)", str(summary.profit_margin_percent)),
        ("VAT collected", format_amount(summary.vat_collected)),
        ("VAT deductible", format_amount(summary.vat_deductible)),
        ("VAT due", format_amount(summary.vat_due)),
    ]
    print(pd.DataFrame(rows, columns=["measure", "value"]).to_string(index=False))
    if summary.skipped_records:
        print()
        print(f"Skipped {len(summary.skipped_records)} corrupt record(s):")
        for entry in summary.skipped_records:
            print(f"  - {entry}")


def _handle_report(args: argparse.Namespace, config: AppConfig) -> None:
    year = resolve_year(args.year)
    print(f"Applied period: {year}-01-01 → {year}-12-31")
    print()

    if args.report_kind == "monthly":
        df = monthly_frame(get_monthly_summary(config.database, year))
        for col in ("revenue", "expenses", "profit"):
            df[col] = df[col].map(format_amount)
        print(df.to_string(index=False))
    elif args.report_kind == "yearly":
        _print_yearly(get_yearly_summary(config.database, year, config.tax))
    else:
        dashboard = get_dashboard(config.database, year, config.tax)
        _print_yearly(dashboard.summary)
        print()
        df = monthly_frame(dashboard.months)
        for col in ("revenue", "expenses", "profit"):
            df[col] = df[col].map(format_amount)
        print(df.to_string(index=False))
        if dashboard.expenses_by_category:
            print()
            by_category = pd.DataFrame(
                [
                    {"category": k, "amount_ttc": format_amount(v)}
                    for k, v in dashboard.expenses_by_category.items()
                ]
            )
            print(by_category.to_string(index=False))
        counts = dashboard.counts
        print()
        print(
            f"Quotes: {counts.quotes} ({counts.pending_quotes} pending) | "
            f"Invoices: {counts.invoices} ({counts.pending_invoices} pending, "
            f"{counts.paid_invoices} paid)"
        )


def _load_config(args: argparse.Namespace) -> AppConfig:
    if args.config_path:
        return load_app_config(args.config_path)
    if args.db_path:
        return default_app_config(Path(args.db_path))
    return load_app_config()


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the SMB Billing CLI.

    This function parses command-line arguments, loads the application
    configuration, configures logging, initializes the database and
    dispatches to the selected command handler.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"smb_billing version {__version__}")
        return

    if not args.command:
        parser.print_help()
        return

    config = _load_config(args)
    configure_logging(config.logging.level, config.logging.json)

    init_database(config.database)
    bus = EventBus()

    if args.command == "init":
        print(f"Database ready at {config.database.path}.")
    elif args.command == "documents":
        _handle_documents(args, config, bus)
    elif args.command == "charges":
        _handle_charges(args, config, bus)
    elif args.command == "declarations":
        _handle_declarations(args, config, bus)
    elif args.command == "fiscal-years":
        _handle_fiscal_years(args, config, bus)
    elif args.command == "report":
        _handle_report(args, config)


if __name__ == "__main__":
    main()
