# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for SMB Billing.

This module defines a Period value object and helpers to derive the
calendar periods used by reporting (full year, the twelve months of a
year) and to filter loaded frames on a period.
"""

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import pandas as pd

# Short French month labels used on dashboards.
MONTH_LABELS = (
    "Jan", "Fév", "Mar", "Avr", "Mai", "Juin",
    "Juil", "Août", "Sep", "Oct", "Nov", "Déc",
)


@dataclass
class Period:
    """Represents a reporting period with a human-readable label."""

    start: date
    end: date
    label: str


def _today() -> date:
    """Return today's date as a date object (isolated for easier testing)."""
    return datetime.today().date()


def resolve_year(year: Optional[int] = None) -> int:
    """Return ``year`` or the current calendar year when omitted."""
    return year if year is not None else _today().year


def year_period(year: int) -> Period:
    """Full calendar year, 1 January to 31 December."""
    return Period(start=date(year, 1, 1), end=date(year, 12, 31), label=str(year))


def month_period(year: int, month: int) -> Period:
    """One calendar month, labelled with its short French name."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month!r}")
    last_day = monthrange(year, month)[1]
    return Period(
        start=date(year, month, 1),
        end=date(year, month, last_day),
        label=MONTH_LABELS[month - 1],
    )


def month_periods(year: int) -> list[Period]:
    """The twelve months of ``year``, January first."""
    return [month_period(year, month) for month in range(1, 13)]


def filter_frame_by_period(
    frame: pd.DataFrame, period: Period, column: str = "date"
) -> pd.DataFrame:
    """
    Filter a DataFrame to keep only rows within the period.

    The ``column`` is expected to hold datetime64 values (rows with NaT
    are dropped).

    Parameters
    ----------
    frame:
        DataFrame with at least the ``column`` column.
    period:
        Period defining the [start, end] boundaries (inclusive).

    Returns
    -------
    pandas.DataFrame
        Filtered copy.
    """
    mask = (frame[column] >= pd.Timestamp(period.start)) & (
        frame[column] <= pd.Timestamp(period.end)
    )
    return frame.loc[mask].copy()
