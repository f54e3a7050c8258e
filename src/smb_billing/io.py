# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for SMB Billing.

This module handles reading charges (business expenses) from a CSV file
and normalizing them into ``ChargeInput`` requests for the ledger.

Expected input format
---------------------

Column names are case-insensitive:

    date, reference, designation, category, amount_ht[, vat_rate,
    supplier, invoice_ref, notes]

- ``date``:        date of the charge (YYYY-MM-DD)
- ``reference``:   internal reference of the charge
- ``designation``: free text label
- ``category``:    one of the charge categories (e.g. LOYER, TRANSPORT)
- ``amount_ht``:   pre-tax amount (dot or comma decimal separator)
- ``vat_rate``:    VAT rate in percent; empty means the configured default

Aliases
-------
``label`` is accepted for ``designation`` and ``montant_ht`` for
``amount_ht``. A ``amount_ttc`` column, if present, is ignored: the
ledger always recomputes the tax-included amount.

Any other columns present in the input file are ignored. Amounts are kept
as text so that no precision is lost through binary floats.

If the CSV structure does not match the expected format, or a date or
amount cannot be parsed, a clear ValueError is raised.
"""

import os
from typing import Optional, Union

import pandas as pd

from .models import ChargeInput

REQUIRED_COLUMNS = {"date", "reference", "designation", "category", "amount_ht"}
OPTIONAL_COLUMNS = ("vat_rate", "supplier", "invoice_ref", "notes")
ALIASES = {"label": "designation", "montant_ht": "amount_ht", "tva": "vat_rate"}


def _text(value: object) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def _numeric(series: pd.Series) -> pd.Series:
    cleaned = series.str.replace(",", ".", regex=False).str.replace(" ", "", regex=False)
    return pd.to_numeric(cleaned, errors="coerce")


def read_charges(path: Union[str, "os.PathLike[str]"]) -> list[ChargeInput]:
    """
    Read charges from a CSV file and normalize them.

    Parameters
    ----------
    path:
        Path to the CSV file containing charges.

    Returns
    -------
    list[ChargeInput]
        One request per CSV row, in file order.

    Raises
    ------
    ValueError
        If required columns are missing or if date/amount parsing fails.
    """

    # Read everything as text
    df = pd.read_csv(path, dtype=str, keep_default_na=False)

    # Normalize column names to lowercase (to make the check case-insensitive)
    df.columns = [c.lower().strip() for c in df.columns]
    # Aliases -> canonical names (only when the canonical column is absent)
    renames = {
        alias: name
        for alias, name in ALIASES.items()
        if alias in df.columns and name not in df.columns
    }
    if renames:
        df = df.rename(columns=renames)

    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(
            "Invalid charges structure. Missing column(s): "
            f"{', '.join(sorted(missing))}. Expected:\n"
            "  date, reference, designation, category, amount_ht"
            "[, vat_rate, supplier, invoice_ref, notes]\n"
            "(column names are case-insensitive)."
        )

    for col in OPTIONAL_COLUMNS:
        if col not in df.columns:
            df[col] = ""

    # Parse date strictly: invalid dates should fail loudly
    try:
        dates = pd.to_datetime(df["date"].str.strip(), format="%Y-%m-%d", errors="raise")
    except (ValueError, TypeError) as exc:
        raise ValueError("Invalid values in 'date' column.") from exc

    if _numeric(df["amount_ht"]).isna().any():
        raise ValueError("Invalid numeric values in 'amount_ht' column.")

    rates = df["vat_rate"].str.strip()
    if _numeric(rates[rates != ""]).isna().any():
        raise ValueError("Invalid numeric values in 'vat_rate' column.")

    return [
        ChargeInput(
            reference=row["reference"].strip(),
            designation=row["designation"].strip(),
            category=row["category"].strip(),
            amount_ht=row["amount_ht"].strip(),
            date=day.date(),
            vat_rate=_text(row["vat_rate"]),
            supplier=_text(row["supplier"]),
            invoice_ref=_text(row["invoice_ref"]),
            notes=_text(row["notes"]),
        )
        for (_, row), day in zip(df.iterrows(), dates)
    ]
