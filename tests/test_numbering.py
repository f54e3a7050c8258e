from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from smb_billing import db, numbering
from smb_billing.config import NumberingSettings
from smb_billing.db import DatabaseConfig
from smb_billing.documents_service import DocumentService
from smb_billing.errors import ConflictError
from smb_billing.models import DocumentInput, LineItemInput, SequenceKind
from smb_billing.numbering import NumberingService, format_number


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    return DatabaseConfig(engine="sqlite", path=tmp_path / "numbering.sqlite", timeout=60.0)


def test_format_number_per_kind() -> None:
    assert format_number(SequenceKind.INVOICE, 1, 2025) == "0001-2025"
    assert format_number(SequenceKind.QUOTE, 12, 2025) == "DEV-0012-2025"
    assert format_number(SequenceKind.IMPORT_PROCEDURE, 3, 2024) == "IMP-0003-2024"
    assert format_number(SequenceKind.DECLARATION, 7, 2025) == "DEC-0007-2025"


def test_format_number_uses_settings() -> None:
    settings = NumberingSettings(invoice_prefix="FAC-", width=6)
    assert format_number(SequenceKind.INVOICE, 42, 2025, settings) == "FAC-000042-2025"


def test_sequences_restart_each_year(tmp_path) -> None:
    service = NumberingService(make_tmp_db_cfg(tmp_path))

    assert service.allocate(SequenceKind.IMPORT_PROCEDURE, 2025) == "IMP-0001-2025"
    assert service.allocate(SequenceKind.IMPORT_PROCEDURE, 2025) == "IMP-0002-2025"
    assert service.allocate(SequenceKind.IMPORT_PROCEDURE, 2026) == "IMP-0001-2026"


def test_allocate_skips_numbers_already_taken(tmp_path) -> None:
    """A document inserted by hand with the next number must not be duplicated."""
    cfg = make_tmp_db_cfg(tmp_path)
    docs = DocumentService(cfg)
    first = docs.create(
        "INVOICE",
        DocumentInput("Client", [LineItemInput("A", 1, 1)], issue_date=date(2025, 1, 1)),
    ).unwrap()
    assert first.number == "0001-2025"

    # Simulate a counter lagging behind the stored numbers.
    with db.open_connection(cfg) as conn:
        conn.execute("UPDATE number_sequences SET last_value = 0 WHERE kind = 'INVOICE'")
        with db.transaction(conn):
            number = numbering.allocate(conn, SequenceKind.INVOICE, 2025)

    assert number == "0002-2025"


def test_allocate_gives_up_with_conflict(tmp_path, monkeypatch) -> None:
    cfg = make_tmp_db_cfg(tmp_path)
    db.init_database(cfg)
    monkeypatch.setattr(numbering, "_is_taken", lambda conn, kind, number: True)

    with db.open_connection(cfg) as conn:
        with pytest.raises(ConflictError):
            with db.transaction(conn):
                numbering.allocate(conn, SequenceKind.QUOTE, 2025)


def test_concurrent_allocations_are_unique(tmp_path) -> None:
    """Threads racing on the same sequence never receive the same number."""
    cfg = make_tmp_db_cfg(tmp_path)
    service = NumberingService(cfg)

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(
            pool.map(lambda _: service.allocate(SequenceKind.INVOICE, 2025), range(40))
        )

    assert len(set(numbers)) == 40
    assert sorted(numbers) == [f"{i:04d}-2025" for i in range(1, 41)]


def test_concurrent_document_creation_yields_distinct_numbers(tmp_path) -> None:
    cfg = make_tmp_db_cfg(tmp_path)
    service = DocumentService(cfg)
    data = DocumentInput("Client", [LineItemInput("A", 1, 10)], issue_date=date(2025, 6, 1))

    with ThreadPoolExecutor(max_workers=6) as pool:
        results = list(pool.map(lambda _: service.create("QUOTE", data), range(12)))

    assert all(r.ok for r in results)
    numbers = {r.data.number for r in results}
    assert numbers == {f"DEV-{i:04d}-2025" for i in range(1, 13)}
