from datetime import date
from decimal import Decimal

from smb_billing import reporting
from smb_billing.db import DatabaseConfig
from smb_billing.events import EventBus
from smb_billing.ledger_service import LedgerService
from smb_billing.models import (
    ChargeCategory,
    ChargeInput,
    DeclarationInput,
    DeclarationStatus,
    FiscalYearInput,
    FiscalYearStatus,
)


def make_service(tmp_path, bus=None) -> LedgerService:
    cfg = DatabaseConfig(engine="sqlite", path=tmp_path / "ledger.sqlite")
    return LedgerService(cfg, events=bus)


def charge_input(**overrides) -> ChargeInput:
    values = dict(
        reference="CH-001",
        designation="Loyer mars",
        category="LOYER",
        amount_ht="100",
        vat_rate="19",
        date=date(2025, 3, 1),
    )
    values.update(overrides)
    return ChargeInput(**values)


def declaration_input(**overrides) -> DeclarationInput:
    values = dict(
        type="TVA",
        period="MONTHLY",
        year=2025,
        month=3,
        due_date=date(2025, 4, 28),
        amount_due="1200.500",
    )
    values.update(overrides)
    return DeclarationInput(**values)


# ---------------------------------------------------------------------------
# Charges
# ---------------------------------------------------------------------------


def test_charge_ttc_is_computed(tmp_path):
    service = make_service(tmp_path)

    charge = service.create_charge(charge_input()).unwrap()

    assert charge.category is ChargeCategory.LOYER
    assert charge.amount_ht == Decimal("100.000")
    assert charge.amount_ttc == Decimal("119.000")
    assert charge.vat_amount == Decimal("19.000")


def test_client_supplied_ttc_is_ignored(tmp_path):
    service = make_service(tmp_path)

    charge = service.create_charge(charge_input(amount_ttc="500")).unwrap()

    assert charge.amount_ttc == Decimal("119.000")


def test_default_vat_rate_applies(tmp_path):
    service = make_service(tmp_path)

    charge = service.create_charge(charge_input(vat_rate=None, amount_ht="200")).unwrap()

    assert charge.vat_rate == Decimal("19")
    assert charge.amount_ttc == Decimal("238.000")


def test_invalid_charges_are_rejected(tmp_path):
    service = make_service(tmp_path)

    assert service.create_charge(charge_input(amount_ht="-1")).error == "validation"
    assert service.create_charge(charge_input(category="BEER")).error == "validation"
    assert service.create_charge(charge_input(reference=" ")).error == "validation"
    assert service.create_charge(charge_input(vat_rate="-5")).error == "validation"
    assert service.list_charges().unwrap() == []


def test_oversized_charge_amounts_are_rejected(tmp_path):
    service = make_service(tmp_path)

    assert service.create_charge(charge_input(amount_ht="1e30")).error == "validation"
    assert service.create_charge(charge_input(amount_ht="1e17")).error == "validation"
    assert (
        service.create_charge(charge_input(amount_ht="900000000000", vat_rate="50")).error
        == "validation"
    )
    assert service.list_charges().unwrap() == []


def test_deleted_charge_leaves_yearly_expenses(tmp_path):
    service = make_service(tmp_path)
    charge = service.create_charge(charge_input()).unwrap()

    before = reporting.get_yearly_summary(service.db_config, 2025)
    assert before.expenses == Decimal("119.000")
    assert before.vat_deductible == Decimal("19.000")

    service.delete_charge(charge.id).unwrap()

    after = reporting.get_yearly_summary(service.db_config, 2025)
    assert after.expenses == Decimal("0")
    assert after.vat_deductible == Decimal("0")


def test_update_charge_recomputes_ttc(tmp_path):
    service = make_service(tmp_path)
    charge = service.create_charge(charge_input()).unwrap()

    updated = service.update_charge(
        charge.id, charge_input(amount_ht="50", vat_rate="7")
    ).unwrap()

    assert updated.reference == "CH-001"
    assert updated.amount_ttc == Decimal("53.500")
    assert updated.created_at == charge.created_at
    assert service.update_charge("missing", charge_input()).error == "not_found"


def test_delete_and_list_charges(tmp_path):
    service = make_service(tmp_path)
    first = service.create_charge(charge_input()).unwrap()
    service.create_charge(charge_input(reference="CH-002", date=date(2024, 5, 1)))

    assert len(service.list_charges().unwrap()) == 2
    assert [c.reference for c in service.list_charges(year=2025).unwrap()] == ["CH-001"]

    assert service.delete_charge(first.id).ok
    assert service.get_charge(first.id).error == "not_found"
    assert service.delete_charge(first.id).error == "not_found"


def test_import_charges_from_csv(tmp_path):
    csv_path = tmp_path / "charges.csv"
    csv_path.write_text(
        "Date,Reference,Label,Category,Amount_HT,VAT_Rate,Supplier\n"
        "2025-01-10,IMP-1,Electricité,ELECTRICITE_EAU,\"100,5\",19,STEG\n"
        "2025-02-01,IMP-2,Transport,TRANSPORT,40,,\n",
        encoding="utf-8",
    )
    service = make_service(tmp_path)

    charges = service.import_charges(csv_path).unwrap()

    assert [c.reference for c in charges] == ["IMP-1", "IMP-2"]
    assert charges[0].amount_ttc == Decimal("119.595")
    assert charges[0].supplier == "STEG"
    assert charges[1].vat_rate == Decimal("19")
    assert len(service.list_charges(year=2025).unwrap()) == 2


def test_import_is_all_or_nothing(tmp_path):
    csv_path = tmp_path / "charges.csv"
    csv_path.write_text(
        "date,reference,designation,category,amount_ht\n"
        "2025-01-10,A,Ok,AUTRES,10\n"
        "2025-01-11,B,Bad category,UNKNOWN,10\n",
        encoding="utf-8",
    )
    service = make_service(tmp_path)

    result = service.import_charges(csv_path)

    assert result.error == "validation"
    assert service.list_charges().unwrap() == []


def test_import_rejects_malformed_files(tmp_path):
    csv_path = tmp_path / "charges.csv"
    csv_path.write_text("date,reference\n2025-01-10,A\n", encoding="utf-8")
    service = make_service(tmp_path)

    assert service.import_charges(csv_path).error == "validation"
    assert service.import_charges(tmp_path / "missing.csv").error == "validation"


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


def test_declaration_references_are_sequential(tmp_path):
    service = make_service(tmp_path)

    first = service.create_declaration(declaration_input()).unwrap()
    second = service.create_declaration(declaration_input(month=4)).unwrap()

    assert first.reference == "DEC-0001-2025"
    assert second.reference == "DEC-0002-2025"
    assert first.status is DeclarationStatus.TO_DECLARE
    assert first.amount_due == Decimal("1200.500")


def test_invalid_declarations_are_rejected(tmp_path):
    service = make_service(tmp_path)

    assert service.create_declaration(declaration_input(month=13)).error == "validation"
    assert service.create_declaration(declaration_input(quarter=5)).error == "validation"
    assert service.create_declaration(declaration_input(type="VAT")).error == "validation"
    assert service.create_declaration(declaration_input(amount_due="-1")).error == "validation"
    assert service.create_declaration(declaration_input(amount_due="1e13")).error == "validation"
    assert service.list_declarations().unwrap() == []


def test_update_declaration_keeps_reference_and_status(tmp_path):
    service = make_service(tmp_path)
    decl = service.create_declaration(declaration_input()).unwrap()
    service.set_declaration_status(decl.id, "DECLARED").unwrap()

    updated = service.update_declaration(
        decl.id, declaration_input(amount_due="900", amount_paid="900", penalties="0")
    ).unwrap()

    assert updated.reference == decl.reference
    assert updated.status is DeclarationStatus.DECLARED
    assert updated.amount_due == Decimal("900.000")
    assert updated.amount_paid == Decimal("900.000")
    assert updated.penalties == Decimal("0.000")


def test_declaration_status_is_free_form(tmp_path):
    service = make_service(tmp_path)
    decl = service.create_declaration(declaration_input()).unwrap()

    for status in ("PAID", "TO_DECLARE", "LATE", "CANCELLED", "IN_PROGRESS"):
        assert service.set_declaration_status(decl.id, status).unwrap().status.value == status

    assert service.set_declaration_status(decl.id, "DONE").error == "validation"
    assert service.set_declaration_status("missing", "PAID").error == "not_found"


def test_list_declarations_ordering(tmp_path):
    service = make_service(tmp_path)
    service.create_declaration(declaration_input(due_date=date(2025, 6, 28)))
    service.create_declaration(declaration_input(due_date=date(2025, 2, 28)))
    service.create_declaration(declaration_input(year=2024, due_date=date(2024, 12, 28)))

    listed = service.list_declarations().unwrap()

    assert [(d.year, d.due_date.month) for d in listed] == [(2025, 2), (2025, 6), (2024, 12)]
    assert len(service.list_declarations(year=2024).unwrap()) == 1


def test_declaration_stats(tmp_path):
    service = make_service(tmp_path)
    late = service.create_declaration(declaration_input(due_date=date(2025, 1, 15))).unwrap()
    service.create_declaration(declaration_input(due_date=date(2025, 12, 15)))
    done = service.create_declaration(declaration_input(due_date=date(2025, 1, 10))).unwrap()
    service.set_declaration_status(done.id, "PAID")

    stats = service.declaration_stats(today=date(2025, 6, 1)).unwrap()

    assert stats.total == 3
    assert stats.pending == 2
    assert stats.late == 1
    assert stats.late_references == [late.reference]


def test_delete_declaration(tmp_path):
    service = make_service(tmp_path)
    decl = service.create_declaration(declaration_input()).unwrap()

    assert service.delete_declaration(decl.id).ok
    assert service.get_declaration(decl.id).error == "not_found"
    assert service.delete_declaration(decl.id).error == "not_found"


def test_ledger_events(tmp_path):
    bus = EventBus()
    seen = []
    bus.subscribe("*", lambda event: seen.append(event.topic))
    service = make_service(tmp_path, bus=bus)

    charge = service.create_charge(charge_input()).unwrap()
    service.delete_charge(charge.id)
    decl = service.create_declaration(declaration_input()).unwrap()
    service.set_declaration_status(decl.id, "DECLARED")

    assert seen == [
        "charge.created",
        "charge.deleted",
        "declaration.created",
        "declaration.status_changed",
    ]


# ---------------------------------------------------------------------------
# Fiscal years
# ---------------------------------------------------------------------------


def test_fiscal_year_defaults_to_calendar_year(tmp_path):
    service = make_service(tmp_path)

    fy = service.create_fiscal_year(FiscalYearInput(year=2025, notes=" Premier exercice ")).unwrap()

    assert fy.start_date == date(2025, 1, 1)
    assert fy.end_date == date(2025, 12, 31)
    assert fy.status is FiscalYearStatus.OPEN
    assert fy.notes == "Premier exercice"


def test_fiscal_year_is_unique_per_year(tmp_path):
    service = make_service(tmp_path)
    service.create_fiscal_year(FiscalYearInput(year=2025)).unwrap()

    assert service.create_fiscal_year(FiscalYearInput(year=2025)).error == "conflict"


def test_invalid_fiscal_years_are_rejected(tmp_path):
    service = make_service(tmp_path)

    backwards = FiscalYearInput(year=2025, start_date=date(2025, 12, 31), end_date=date(2025, 1, 1))
    assert service.create_fiscal_year(backwards).error == "validation"
    assert service.create_fiscal_year(FiscalYearInput(year=None)).error == "validation"
    bad_status = FiscalYearInput(year=2025, status="DONE")
    assert service.create_fiscal_year(bad_status).error == "validation"
    assert service.list_fiscal_years().unwrap() == []


def test_fiscal_year_figures_follow_the_ledger(tmp_path):
    service = make_service(tmp_path)
    fy = service.create_fiscal_year(FiscalYearInput(year=2025)).unwrap()
    charge = service.create_charge(charge_input()).unwrap()

    overview = service.get_fiscal_year(fy.id).unwrap()
    assert overview.fiscal_year == fy
    assert overview.revenue == Decimal("0")
    assert overview.expenses == Decimal("119.000")
    assert overview.result == Decimal("-119.000")

    service.delete_charge(charge.id)

    assert service.get_fiscal_year(fy.id).unwrap().expenses == Decimal("0")


def test_update_fiscal_year_keeps_year_and_status(tmp_path):
    service = make_service(tmp_path)
    fy = service.create_fiscal_year(FiscalYearInput(year=2025)).unwrap()
    service.set_fiscal_year_status(fy.id, "closed").unwrap()

    updated = service.update_fiscal_year(
        fy.id, FiscalYearInput(year=2025, end_date=date(2026, 6, 30), notes="Exercice long")
    ).unwrap()

    assert updated.status is FiscalYearStatus.CLOSED
    assert updated.end_date == date(2026, 6, 30)
    assert updated.notes == "Exercice long"
    assert updated.updated_at is not None
    assert service.update_fiscal_year(fy.id, FiscalYearInput(year=2026)).error == "validation"
    assert service.update_fiscal_year("missing", FiscalYearInput(year=2025)).error == "not_found"


def test_fiscal_year_status_and_listing(tmp_path):
    bus = EventBus()
    seen = []
    bus.subscribe("fiscal_year.*", lambda event: seen.append(event.topic))
    service = make_service(tmp_path, bus=bus)
    older = service.create_fiscal_year(FiscalYearInput(year=2024)).unwrap()
    service.create_fiscal_year(FiscalYearInput(year=2025))

    archived = service.set_fiscal_year_status(older.id, FiscalYearStatus.ARCHIVED).unwrap()

    assert archived.status is FiscalYearStatus.ARCHIVED
    assert [o.fiscal_year.year for o in service.list_fiscal_years().unwrap()] == [2025, 2024]
    assert service.set_fiscal_year_status("missing", "OPEN").error == "not_found"
    assert service.get_fiscal_year("missing").error == "not_found"
    assert seen == [
        "fiscal_year.created",
        "fiscal_year.created",
        "fiscal_year.status_changed",
    ]
