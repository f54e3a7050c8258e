from datetime import date

import pandas as pd
import pytest

import smb_billing.periods as periods


def test_filter_frame_by_period_inclusive_bounds() -> None:
    """filter_frame_by_period should keep rows with dates in [start, end]."""
    df = pd.DataFrame(
        {
            "date": pd.to_datetime(
                ["2025-01-01", "2025-02-15", "2025-03-10", "2025-04-01", "2025-05-01"]
            ),
            "amount": [10, 20, -5, -15, 30],
        }
    )

    p = periods.Period(
        start=date(2025, 2, 1),
        end=date(2025, 4, 1),
        label="Test period",
    )

    filtered = periods.filter_frame_by_period(df, p)

    assert len(filtered) == 3
    assert filtered["date"].min() == pd.Timestamp("2025-02-15")
    assert filtered["date"].max() == pd.Timestamp("2025-04-01")


def test_filter_frame_drops_missing_dates() -> None:
    df = pd.DataFrame({"date": pd.to_datetime(["2025-03-01", None])})

    filtered = periods.filter_frame_by_period(df, periods.month_period(2025, 3))

    assert len(filtered) == 1


def test_month_period_bounds_and_labels() -> None:
    feb = periods.month_period(2024, 2)
    assert feb.start == date(2024, 2, 1)
    assert feb.end == date(2024, 2, 29)
    assert feb.label == "Fév"

    assert periods.month_period(2025, 2).end == date(2025, 2, 28)
    assert periods.month_period(2025, 12).end == date(2025, 12, 31)

    with pytest.raises(ValueError):
        periods.month_period(2025, 13)


def test_month_periods_cover_the_year() -> None:
    months = periods.month_periods(2025)

    assert len(months) == 12
    assert months[0].start == date(2025, 1, 1)
    assert months[-1].end == date(2025, 12, 31)
    assert [m.label for m in months] == list(periods.MONTH_LABELS)


def test_year_period() -> None:
    p = periods.year_period(2025)
    assert (p.start, p.end, p.label) == (date(2025, 1, 1), date(2025, 12, 31), "2025")


def test_resolve_year_defaults_to_today(monkeypatch) -> None:
    monkeypatch.setattr(periods, "_today", lambda: date(2031, 6, 15))

    assert periods.resolve_year() == 2031
    assert periods.resolve_year(2024) == 2024
