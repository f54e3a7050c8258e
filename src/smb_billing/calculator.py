# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Line-item calculator.

Pure functions turning a list of (designation, quantity, unit price)
entries into per-line totals, a subtotal and a document total.

Rules
-----
- Negative quantities or unit prices are rejected with ``ValidationError``.
- Entries with a blank designation are dropped before their amounts are
  parsed; entries with a zero quantity are dropped after validation.
- ``line_total = round(quantity x unit_price, 3)`` (half away from zero).
- ``subtotal`` is computed from the *full precision* products and rounded
  once, so that per-line rounding errors do not accumulate.
- ``total = subtotal + stamp_duty``; the stamp duty must be >= 0.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .errors import ValidationError
from .models import DocumentItem, LineItemInput
from .money import check_magnitude, quantize_amount, to_decimal


@dataclass(frozen=True)
class PreparedItem:
    """Validated line item, amounts at full precision."""

    designation: str
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class ComputedTotals:
    items: tuple[DocumentItem, ...]
    subtotal: Decimal
    stamp_duty: Decimal
    total: Decimal


def _coerce_item(raw: Any) -> LineItemInput:
    if isinstance(raw, LineItemInput):
        return raw
    if isinstance(raw, dict):
        return LineItemInput(
            designation=raw.get("designation", ""),
            quantity=raw.get("quantity"),
            unit_price=raw.get("unit_price", raw.get("unitPrice")),
        )
    raise ValidationError(f"Unsupported line item: {raw!r}", "Ligne d'article invalide.")


def prepare_line_items(raw_items: Iterable[Any]) -> list[PreparedItem]:
    """
    Validate and filter raw line items.

    Raises
    ------
    ValidationError
        If a quantity or unit price is negative or not a number.
    """
    prepared: list[PreparedItem] = []
    for position, raw in enumerate(raw_items, start=1):
        item = _coerce_item(raw)
        designation = (item.designation or "").strip()
        if not designation:
            continue
        quantity = to_decimal(item.quantity, "quantité")
        unit_price = to_decimal(item.unit_price, "prix unitaire")

        if quantity < 0:
            raise ValidationError(
                f"Line {position}: negative quantity {quantity}",
                "La quantité ne peut pas être négative.",
            )
        if unit_price < 0:
            raise ValidationError(
                f"Line {position}: negative unit price {unit_price}",
                "Le prix unitaire ne peut pas être négatif.",
            )

        if quantity == 0:
            continue

        prepared.append(
            PreparedItem(designation=designation, quantity=quantity, unit_price=unit_price)
        )
    return prepared


def compute_line_items(items: Iterable[PreparedItem]) -> tuple[tuple[DocumentItem, ...], Decimal]:
    """
    Annotate each item with its rounded line total and compute the subtotal.

    Returns
    -------
    (items, subtotal)
        ``items`` keep their input order (positions start at 1).
    """
    lines: list[DocumentItem] = []
    exact_sum = Decimal(0)
    for position, item in enumerate(items, start=1):
        product = check_magnitude(item.quantity * item.unit_price, "total de ligne")
        exact_sum = check_magnitude(exact_sum + product, "sous-total")
        lines.append(
            DocumentItem(
                position=position,
                designation=item.designation,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=quantize_amount(product),
            )
        )
    return tuple(lines), quantize_amount(exact_sum)


def compute_totals(raw_items: Iterable[Any], stamp_duty: Any = 0) -> ComputedTotals:
    """
    Full computation used by create and update.

    Raises
    ------
    ValidationError
        If no valid line item remains after filtering, or if the stamp
        duty is negative.
    """
    prepared = prepare_line_items(raw_items)
    if not prepared:
        raise ValidationError(
            "No valid line item (non-empty designation and positive quantity).",
            "Ajoutez au moins un article valide.",
        )

    stamp = quantize_amount(to_decimal(0 if stamp_duty is None else stamp_duty, "timbre"))
    if stamp < 0:
        raise ValidationError(
            f"Negative stamp duty: {stamp}", "Le timbre fiscal ne peut pas être négatif."
        )

    lines, subtotal = compute_line_items(prepared)
    return ComputedTotals(
        items=lines,
        subtotal=subtotal,
        stamp_duty=stamp,
        total=check_magnitude(subtotal + stamp, "total"),
    )


def recompute_from_items(items: Iterable[DocumentItem], stamp_duty: Decimal) -> ComputedTotals:
    """
    Recompute totals from already stored items (no filtering).

    Used to check that stored totals did not drift; calling it twice on the
    same items yields the same result.
    """
    prepared = [
        PreparedItem(designation=i.designation, quantity=i.quantity, unit_price=i.unit_price)
        for i in items
    ]
    lines, subtotal = compute_line_items(prepared)
    stamp = quantize_amount(stamp_duty)
    return ComputedTotals(items=lines, subtotal=subtotal, stamp_duty=stamp, total=subtotal + stamp)


def compute_ttc(amount_ht: Decimal, vat_rate: Decimal) -> Decimal:
    """
    Tax-included amount of a charge: ``round(HT x (1 + rate / 100), 3)``.

    >>> compute_ttc(Decimal("100"), Decimal("19"))
    Decimal('119.000')
    """
    return quantize_amount(amount_ht * (Decimal(100) + vat_rate) / Decimal(100))
