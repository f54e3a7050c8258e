# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Fixed-point money helpers.

All monetary values use 3 decimal places (the dinar is divided into 1000
millimes). Amounts are kept as ``Decimal`` in memory and as integer
millimes in the database, the same way accounting amounts are stored as
integer cents elsewhere in SMB tooling.

Rounding is half away from zero (``ROUND_HALF_UP`` in ``decimal`` terms).
External-facing strings use French grouping: a narrow no-break space as
thousands separator and a comma as decimal separator ("1 250,500").
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError

MILLIME = Decimal("0.001")
ZERO = Decimal("0.000")

# Exclusive upper bound of any amount or quantity (keeps millimes in int64).
MAX_AMOUNT = 10**12

# Thousands separator produced by the fr-FR locale.
FR_THOUSANDS_SEPARATOR = "\u202f"
FR_DECIMAL_SEPARATOR = ","


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """
    Convert user input to a finite Decimal without binary float artifacts.

    Floats go through ``str()`` so that ``0.1`` becomes ``Decimal("0.1")``.
    Strings may use a comma as decimal separator.

    Raises
    ------
    ValidationError
        If the value is empty, boolean, not numeric, NaN or infinite.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(
            f"Missing or invalid numeric value for {field_name}: {value!r}",
            f"Valeur numérique invalide pour « {field_name} ».",
        )
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        raw = str(value).strip().replace(" ", "").replace(FR_THOUSANDS_SEPARATOR, "")
        raw = raw.replace(",", ".")
        try:
            result = Decimal(raw)
        except InvalidOperation as exc:
            raise ValidationError(
                f"Invalid numeric value for {field_name}: {value!r}",
                f"Valeur numérique invalide pour « {field_name} ».",
            ) from exc

    if not result.is_finite():
        raise ValidationError(
            f"Non-finite value for {field_name}: {value!r}",
            f"Valeur numérique invalide pour « {field_name} ».",
        )
    return check_magnitude(result, field_name)


def check_magnitude(value: Decimal, field_name: str = "amount") -> Decimal:
    """
    Return ``value`` unchanged if its magnitude is below ``MAX_AMOUNT``.

    Raises
    ------
    ValidationError
        If ``abs(value) >= MAX_AMOUNT``.
    """
    if abs(value) >= MAX_AMOUNT:
        raise ValidationError(
            f"Value out of range for {field_name}: {value}",
            f"Le montant « {field_name} » est trop élevé.",
        )
    return value


def quantize_amount(value: Decimal) -> Decimal:
    """Round to 3 decimals, half away from zero."""
    return value.quantize(MILLIME, rounding=ROUND_HALF_UP)


def to_millimes(value: Decimal) -> int:
    """Convert an amount to integer millimes (rounding to 3 decimals first)."""
    return int(quantize_amount(value).scaleb(3))


def from_millimes(millimes: int) -> Decimal:
    """Rebuild a 3-decimal amount from integer millimes."""
    return Decimal(int(millimes)).scaleb(-3)


def round_percent(value: Decimal) -> int:
    """Round a percentage to the nearest integer, half away from zero."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_amount(value: Decimal, decimals: int = 3) -> str:
    """
    Format a number for display with French grouping.

    Examples
    --------
    >>> format_amount(Decimal("1250.5"))
    '1 250,500'
    >>> format_amount(Decimal("0"))
    '0,000'
    """
    quantum = Decimal(1).scaleb(-decimals)
    q = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    text = format(q, f",.{decimals}f")
    return text.translate(
        str.maketrans({",": FR_THOUSANDS_SEPARATOR, ".": FR_DECIMAL_SEPARATOR})
    )
