from datetime import date
from decimal import Decimal

from smb_billing import db, reporting
from smb_billing.config import TaxSettings
from smb_billing.db import DatabaseConfig
from smb_billing.documents_service import DocumentService
from smb_billing.ledger_service import LedgerService
from smb_billing.models import ChargeInput, DocumentInput, LineItemInput


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    return DatabaseConfig(engine="sqlite", path=tmp_path / "reporting.sqlite")


def add_invoice(cfg, day, items, status=None, kind="INVOICE"):
    service = DocumentService(cfg)
    doc = service.create(
        kind,
        DocumentInput("Client", items, stamp_duty=Decimal("0.6"), issue_date=day),
    ).unwrap()
    if status:
        doc = service.set_status(doc.id, status).unwrap()
    return doc


def add_charge(cfg, reference, day, amount_ht, vat_rate, category="LOYER"):
    return LedgerService(cfg).create_charge(
        ChargeInput(
            reference=reference,
            designation=reference,
            category=category,
            amount_ht=amount_ht,
            vat_rate=vat_rate,
            date=day,
        )
    ).unwrap()


def seed_year(cfg):
    """March: one paid and one pending invoice, one paid quote; charges in March and May."""
    add_invoice(cfg, date(2025, 3, 7), [LineItemInput("A", 2, 100), LineItemInput("B", 1, 50)], "PAID")
    add_invoice(cfg, date(2025, 3, 20), [LineItemInput("C", 1, 1000)])
    add_invoice(cfg, date(2025, 3, 21), [LineItemInput("D", 1, 500)], "PAID", kind="QUOTE")
    add_invoice(cfg, date(2024, 12, 31), [LineItemInput("E", 1, 999)], "PAID")
    add_charge(cfg, "CH-1", date(2025, 3, 1), "100", "19")
    add_charge(cfg, "CH-2", date(2025, 5, 15), "50", "7", category="TRANSPORT")


def test_empty_year_has_twelve_zero_months(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)

    months = reporting.get_monthly_summary(cfg, 2025)

    assert [m.month for m in months] == list(range(1, 13))
    assert months[0].label == "Jan"
    assert months[11].label == "Déc"
    assert all(m.revenue == 0 and m.expenses == 0 for m in months)

    summary = reporting.get_yearly_summary(cfg, 2025)
    assert summary.revenue == 0
    assert summary.profit_margin_percent == 0
    assert summary.skipped_records == []


def test_monthly_buckets(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_year(cfg)

    months = reporting.get_monthly_summary(cfg, 2025)

    assert months[2].revenue == Decimal("250.600")
    assert months[2].expenses == Decimal("119.000")
    assert months[2].profit == Decimal("131.600")
    assert months[4].revenue == Decimal("0.000")
    assert months[4].expenses == Decimal("53.500")
    assert sum(m.revenue for m in months) == Decimal("250.600")


def test_yearly_summary_and_vat(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_year(cfg)

    summary = reporting.get_yearly_summary(cfg, 2025)

    assert summary.revenue == Decimal("250.600")
    assert summary.expenses == Decimal("172.500")
    assert summary.profit == Decimal("78.100")
    assert summary.profit_margin_percent == 31
    assert summary.vat_collected == Decimal("47.500")
    assert summary.vat_deductible == Decimal("22.500")
    assert summary.vat_due == Decimal("25.000")


def test_vat_rate_comes_from_settings(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_year(cfg)

    summary = reporting.get_yearly_summary(cfg, 2025, TaxSettings(vat_standard_rate=Decimal("7")))

    assert summary.vat_collected == Decimal("17.500")


def test_vat_credit_and_margin_without_revenue(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    add_charge(cfg, "CH-1", date(2025, 1, 5), "100", "19")

    summary = reporting.get_yearly_summary(cfg, 2025)

    assert summary.revenue == 0
    assert summary.profit == Decimal("-119.000")
    assert summary.profit_margin_percent == 0
    assert summary.vat_due == Decimal("-19.000")


def test_corrupt_rows_are_skipped_and_reported(tmp_path, caplog):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_year(cfg)
    with db.open_connection(cfg) as conn:
        conn.execute(
            "UPDATE documents SET total_millimes = total_millimes + 1 WHERE number = '0001-2025'"
        )
        conn.execute("UPDATE charges SET date = '2025-02-30' WHERE reference = 'CH-1'")

    with caplog.at_level("WARNING", logger="smb_billing.reporting"):
        summary = reporting.get_yearly_summary(cfg, 2025)

    assert summary.revenue == 0
    assert summary.expenses == Decimal("53.500")
    assert summary.skipped_records == [
        "document 0001-2025: total != subtotal + stamp duty",
        "charge CH-1: invalid date",
    ]
    assert "Skipping corrupt record" in caplog.text


def test_charge_with_inconsistent_ttc_is_skipped(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    add_charge(cfg, "CH-1", date(2025, 1, 5), "100", "19")
    add_charge(cfg, "CH-2", date(2025, 1, 6), "10", "19")
    with db.open_connection(cfg) as conn:
        conn.execute("UPDATE charges SET amount_ttc_millimes = 1 WHERE reference = 'CH-2'")

    summary = reporting.get_yearly_summary(cfg, 2025)

    assert summary.expenses == Decimal("119.000")
    assert summary.skipped_records == ["charge CH-2: TTC != HT x (1 + VAT rate)"]


def test_expenses_by_category_largest_first(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_year(cfg)
    add_charge(cfg, "CH-3", date(2025, 6, 1), "10", "0", category="TRANSPORT")

    by_category = reporting.expenses_by_category(cfg, 2025)

    assert list(by_category) == ["LOYER", "TRANSPORT"]
    assert by_category["LOYER"] == Decimal("119.000")
    assert by_category["TRANSPORT"] == Decimal("63.500")


def test_document_counts(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_year(cfg)

    counts = reporting.document_counts(cfg, 2025)

    assert counts.quotes == 1
    assert counts.invoices == 2
    assert counts.pending_quotes == 0
    assert counts.pending_invoices == 1
    assert counts.paid_invoices == 1


def test_dashboard_bundles_every_figure(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    seed_year(cfg)

    dashboard = reporting.get_dashboard(cfg, 2025)

    assert dashboard.year == 2025
    assert dashboard.summary == reporting.get_yearly_summary(cfg, 2025)
    assert dashboard.months == reporting.get_monthly_summary(cfg, 2025)
    assert dashboard.counts.paid_invoices == 1
    assert set(dashboard.expenses_by_category) == {"LOYER", "TRANSPORT"}

    frame = reporting.monthly_frame(dashboard.months)
    assert list(frame.columns) == ["month", "revenue", "expenses", "profit"]
    assert len(frame) == 12


def test_negative_margin_rounds_half_away_from_zero(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    add_invoice(cfg, date(2025, 2, 3), [LineItemInput("A", 1, 1000)], "PAID")
    add_charge(cfg, "CH-1", date(2025, 2, 4), "1125.675", "0")

    summary = reporting.get_yearly_summary(cfg, 2025)

    assert summary.revenue == Decimal("1000.600")
    assert summary.profit == Decimal("-125.075")
    assert summary.profit_margin_percent == -13
