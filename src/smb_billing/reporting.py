# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Reporting aggregator.

Computes dashboard figures for a calendar year directly from the stored
documents and charges. Nothing is cached: every call rescans the year.

Figures
-------
- Monthly buckets (always 12):
    revenue[m]  = Σ total of PAID invoices issued in month m
    expenses[m] = Σ amount TTC of charges dated in month m
- Yearly summary:
    profit                = revenue - expenses
    profit_margin_percent = round(profit / revenue x 100), 0 if revenue <= 0
    vat_collected         = round(Σ subtotal of PAID invoices x standard rate, 3)
    vat_deductible        = Σ (TTC - HT) of charges
    vat_due               = vat_collected - vat_deductible (negative = credit)

Corrupt rows
------------
Rows whose date or amounts cannot be parsed, or which violate a stored
invariant (``total = subtotal + stamp duty`` for documents, ``TTC = HT x
(1 + rate)`` for charges), are excluded from every figure, logged with a
warning and reported in ``skipped_records``.

Amounts are summed as integer millimes, then converted back to Decimal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional

import pandas as pd

from . import db
from .calculator import compute_ttc
from .config import TaxSettings
from .models import ChargeCategory, DocumentKind, DocumentStatus
from .money import from_millimes, quantize_amount, round_percent, to_millimes
from .periods import filter_frame_by_period, month_periods, year_period

logger = logging.getLogger(__name__)

DOCUMENT_AMOUNTS = ["subtotal_millimes", "stamp_duty_millimes", "total_millimes"]
CHARGE_AMOUNTS = ["amount_ht_millimes", "amount_ttc_millimes"]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonthlyBucket:
    month: int
    label: str
    revenue: Decimal
    expenses: Decimal

    @property
    def profit(self) -> Decimal:
        return self.revenue - self.expenses


@dataclass(frozen=True)
class YearlySummary:
    year: int
    revenue: Decimal
    expenses: Decimal
    profit: Decimal
    profit_margin_percent: int
    vat_collected: Decimal
    vat_deductible: Decimal
    vat_due: Decimal
    skipped_records: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DocumentCounts:
    quotes: int
    invoices: int
    pending_quotes: int
    pending_invoices: int
    paid_invoices: int


@dataclass(frozen=True)
class Dashboard:
    """Everything a yearly dashboard shows, computed from one scan."""

    year: int
    summary: YearlySummary
    months: list[MonthlyBucket]
    expenses_by_category: dict[str, Decimal]
    counts: DocumentCounts


@dataclass(frozen=True)
class _YearData:
    documents: pd.DataFrame
    charges: pd.DataFrame
    skipped: list[str]


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------


def _first_reason(checks: list[tuple[pd.Series, str]], index: pd.Index) -> pd.Series:
    """Return, per row, the first failing check's message ('' if none)."""
    reasons = pd.Series("", index=index, dtype=object)
    for failed, message in reversed(checks):
        reasons = reasons.mask(failed, message)
    return reasons


def _parse_amount_columns(frame: pd.DataFrame, columns: list[str]) -> pd.Series:
    """Coerce millime columns to numbers in place; return the invalid-row mask."""
    for col in columns:
        frame[col] = pd.to_numeric(frame[col], errors="coerce")
    amounts = frame[columns]
    return amounts.isna().any(axis=1) | (amounts % 1 != 0).any(axis=1)


def clean_documents_frame(raw: pd.DataFrame) -> tuple[pd.DataFrame, list[str]]:
    """
    Validate raw document rows.

    Returns
    -------
    (clean, skipped)
        ``clean`` has a datetime ``date`` column and int64 millime columns;
        ``skipped`` describes each rejected row.
    """
    df = raw.copy()
    df["date"] = pd.to_datetime(df["issue_date"], errors="coerce", format="%Y-%m-%d")
    bad_amounts = _parse_amount_columns(df, DOCUMENT_AMOUNTS)
    mismatch = df["total_millimes"] != df["subtotal_millimes"] + df["stamp_duty_millimes"]
    checks = [
        (df["date"].isna(), "invalid issue date"),
        (bad_amounts, "invalid amount"),
        (~df["kind"].isin([k.value for k in DocumentKind]), "unknown kind"),
        (~df["status"].isin([s.value for s in DocumentStatus]), "unknown status"),
        (df["stamp_duty_millimes"] < 0, "negative stamp duty"),
        (mismatch, "total != subtotal + stamp duty"),
    ]
    reasons = _first_reason(checks, df.index)
    bad = reasons != ""

    skipped = [
        f"document {number or doc_id}: {reason}"
        for doc_id, number, reason in zip(df.loc[bad, "id"], df.loc[bad, "number"], reasons[bad])
    ]
    clean = df.loc[~bad].copy()
    clean[DOCUMENT_AMOUNTS] = clean[DOCUMENT_AMOUNTS].astype("int64")
    return clean, skipped


def _parse_rate(value: object) -> Optional[Decimal]:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not rate.is_finite() or rate < 0:
        return None
    return rate


def clean_charges_frame(raw: pd.DataFrame) -> tuple[pd.DataFrame, list[str]]:
    """
    Validate raw charge rows (same contract as ``clean_documents_frame``).
    """
    df = raw.copy()
    df["date"] = pd.to_datetime(df["date"], errors="coerce", format="%Y-%m-%d")
    bad_amounts = _parse_amount_columns(df, CHARGE_AMOUNTS)
    rates = df["vat_rate"].map(_parse_rate)

    ttc_mismatch = pd.Series(False, index=df.index)
    for idx in df.index[(~bad_amounts & rates.notna()).to_numpy()]:
        expected = compute_ttc(from_millimes(int(df.at[idx, "amount_ht_millimes"])), rates[idx])
        ttc_mismatch[idx] = to_millimes(expected) != int(df.at[idx, "amount_ttc_millimes"])

    checks = [
        (df["date"].isna(), "invalid date"),
        (bad_amounts, "invalid amount"),
        (rates.isna(), "invalid VAT rate"),
        (~df["category"].isin([c.value for c in ChargeCategory]), "unknown category"),
        (ttc_mismatch, "TTC != HT x (1 + VAT rate)"),
    ]
    reasons = _first_reason(checks, df.index)
    bad = reasons != ""

    skipped = [
        f"charge {reference or charge_id}: {reason}"
        for charge_id, reference, reason in zip(
            df.loc[bad, "id"], df.loc[bad, "reference"], reasons[bad]
        )
    ]
    clean = df.loc[~bad].copy()
    clean[CHARGE_AMOUNTS] = clean[CHARGE_AMOUNTS].astype("int64")
    return clean, skipped


def _load_year(cfg: db.DatabaseConfig, year: int) -> _YearData:
    period = year_period(year)
    documents, skipped_docs = clean_documents_frame(
        db.load_documents_frame(cfg, period.start, period.end)
    )
    charges, skipped_charges = clean_charges_frame(
        db.load_charges_frame(cfg, period.start, period.end)
    )
    skipped = skipped_docs + skipped_charges
    for entry in skipped:
        logger.warning("Skipping corrupt record in %s report: %s", year, entry)
    return _YearData(documents=documents, charges=charges, skipped=skipped)


def _paid_invoices(documents: pd.DataFrame) -> pd.DataFrame:
    mask = (documents["kind"] == DocumentKind.INVOICE.value) & (
        documents["status"] == DocumentStatus.PAID.value
    )
    return documents.loc[mask]


def _sum(frame: pd.DataFrame, column: str) -> Decimal:
    return from_millimes(int(frame[column].sum()))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _monthly(data: _YearData, year: int) -> list[MonthlyBucket]:
    paid = _paid_invoices(data.documents)
    buckets = []
    for month, period in enumerate(month_periods(year), start=1):
        buckets.append(
            MonthlyBucket(
                month=month,
                label=period.label,
                revenue=_sum(filter_frame_by_period(paid, period), "total_millimes"),
                expenses=_sum(
                    filter_frame_by_period(data.charges, period), "amount_ttc_millimes"
                ),
            )
        )
    return buckets


def _yearly(data: _YearData, year: int, tax: TaxSettings) -> YearlySummary:
    paid = _paid_invoices(data.documents)
    revenue = _sum(paid, "total_millimes")
    expenses = _sum(data.charges, "amount_ttc_millimes")
    profit = revenue - expenses
    margin = round_percent(profit / revenue * 100) if revenue > 0 else 0

    vat_collected = quantize_amount(
        _sum(paid, "subtotal_millimes") * tax.vat_standard_rate / Decimal(100)
    )
    vat_deductible = from_millimes(
        int((data.charges["amount_ttc_millimes"] - data.charges["amount_ht_millimes"]).sum())
    )

    return YearlySummary(
        year=year,
        revenue=revenue,
        expenses=expenses,
        profit=profit,
        profit_margin_percent=margin,
        vat_collected=vat_collected,
        vat_deductible=vat_deductible,
        vat_due=vat_collected - vat_deductible,
        skipped_records=list(data.skipped),
    )


def _by_category(data: _YearData) -> dict[str, Decimal]:
    grouped = data.charges.groupby("category")["amount_ttc_millimes"].sum()
    return {
        str(category): from_millimes(int(total))
        for category, total in grouped.sort_values(ascending=False).items()
    }


def _counts(data: _YearData) -> DocumentCounts:
    docs = data.documents
    quotes = docs["kind"] == DocumentKind.QUOTE.value
    invoices = docs["kind"] == DocumentKind.INVOICE.value
    pending = docs["status"] == DocumentStatus.PENDING.value
    paid = docs["status"] == DocumentStatus.PAID.value
    return DocumentCounts(
        quotes=int(quotes.sum()),
        invoices=int(invoices.sum()),
        pending_quotes=int((quotes & pending).sum()),
        pending_invoices=int((invoices & pending).sum()),
        paid_invoices=int((invoices & paid).sum()),
    )


def get_monthly_summary(cfg: db.DatabaseConfig, year: int) -> list[MonthlyBucket]:
    """Twelve monthly buckets for ``year``; empty months report zero."""
    return _monthly(_load_year(cfg, year), year)


def get_yearly_summary(
    cfg: db.DatabaseConfig, year: int, tax: Optional[TaxSettings] = None
) -> YearlySummary:
    """
    Revenue, expenses, profit, margin and VAT position for ``year``.

    Parameters
    ----------
    cfg:
        Database configuration.
    year:
        Calendar year to aggregate.
    tax:
        Tax settings providing the standard VAT rate (defaults apply if None).
    """
    return _yearly(_load_year(cfg, year), year, tax or TaxSettings())


def expenses_by_category(cfg: db.DatabaseConfig, year: int) -> dict[str, Decimal]:
    """Σ TTC of the year's charges per category, largest first."""
    return _by_category(_load_year(cfg, year))


def document_counts(cfg: db.DatabaseConfig, year: int) -> DocumentCounts:
    return _counts(_load_year(cfg, year))


def get_dashboard(
    cfg: db.DatabaseConfig, year: int, tax: Optional[TaxSettings] = None
) -> Dashboard:
    """Bundle every figure of the year, reading the store only once."""
    data = _load_year(cfg, year)
    return Dashboard(
        year=year,
        summary=_yearly(data, year, tax or TaxSettings()),
        months=_monthly(data, year),
        expenses_by_category=_by_category(data),
        counts=_counts(data),
    )


def monthly_frame(buckets: list[MonthlyBucket]) -> pd.DataFrame:
    """Tabular view of monthly buckets (used by the CLI)."""
    return pd.DataFrame(
        [
            {
                "month": b.label,
                "revenue": b.revenue,
                "expenses": b.expenses,
                "profit": b.profit,
            }
            for b in buckets
        ],
        columns=["month", "revenue", "expenses", "profit"],
    )
