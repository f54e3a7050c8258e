from decimal import Decimal

import pytest

from smb_billing.calculator import (
    compute_totals,
    compute_ttc,
    prepare_line_items,
    recompute_from_items,
)
from smb_billing.errors import ValidationError
from smb_billing.models import LineItemInput


def test_scenario_two_lines_with_stamp_duty() -> None:
    """[A, 2, 100] + [B, 1, 50] with stamp 0.6 -> subtotal 250, total 250.6."""
    totals = compute_totals(
        [LineItemInput("A", 2, 100), LineItemInput("B", 1, 50)], stamp_duty=Decimal("0.6")
    )

    assert [i.line_total for i in totals.items] == [Decimal("200.000"), Decimal("50.000")]
    assert totals.subtotal == Decimal("250.000")
    assert totals.stamp_duty == Decimal("0.600")
    assert totals.total == Decimal("250.600")


def test_subtotal_is_rounded_once_from_exact_products() -> None:
    """Three lines of 0.0005 round to 0.001 each but sum to 0.002 (0.0015 -> 0.002)."""
    items = [LineItemInput(f"L{i}", 1, "0.0005") for i in range(3)]
    totals = compute_totals(items)

    assert all(i.line_total == Decimal("0.001") for i in totals.items)
    assert totals.subtotal == Decimal("0.002")


def test_half_away_from_zero_rounding() -> None:
    totals = compute_totals([LineItemInput("X", "1", "2.0005")])
    assert totals.items[0].line_total == Decimal("2.001")


def test_no_binary_float_artifacts() -> None:
    totals = compute_totals([LineItemInput("X", 3, 0.1)])
    assert totals.subtotal == Decimal("0.300")


def test_blank_designation_and_zero_quantity_are_dropped() -> None:
    prepared = prepare_line_items(
        [
            LineItemInput("   ", "abc", "def"),
            LineItemInput("Zero", 0, 10),
            LineItemInput("Kept", "1,5", "10"),
        ]
    )

    assert len(prepared) == 1
    assert prepared[0].designation == "Kept"
    assert prepared[0].quantity == Decimal("1.5")


def test_dict_items_are_accepted() -> None:
    totals = compute_totals([{"designation": "A", "quantity": 2, "unitPrice": "10.5"}])
    assert totals.total == Decimal("21.000")


@pytest.mark.parametrize(
    "item",
    [LineItemInput("A", -1, 10), LineItemInput("A", 1, -10)],
)
def test_negative_quantity_or_price_is_rejected(item) -> None:
    with pytest.raises(ValidationError):
        prepare_line_items([item])


def test_no_valid_item_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        compute_totals([LineItemInput("", 1, 1), LineItemInput("Zero", 0, 5)])
    assert excinfo.value.kind == "validation"


def test_negative_stamp_duty_is_rejected() -> None:
    with pytest.raises(ValidationError):
        compute_totals([LineItemInput("A", 1, 1)], stamp_duty="-0.5")


def test_recompute_is_idempotent() -> None:
    first = compute_totals([LineItemInput("A", "3", "33.3333")], stamp_duty="1")
    again = recompute_from_items(first.items, first.stamp_duty)
    twice = recompute_from_items(again.items, again.stamp_duty)

    assert first.total == again.total == twice.total
    assert first.subtotal == Decimal("100.000")


def test_compute_ttc() -> None:
    assert compute_ttc(Decimal("100"), Decimal("19")) == Decimal("119.000")
    assert compute_ttc(Decimal("10.005"), Decimal("7")) == Decimal("10.705")
    assert compute_ttc(Decimal("50"), Decimal("0")) == Decimal("50.000")
