from datetime import date

import pytest

from smb_billing.io import read_charges


def write_csv(tmp_path, content: str):
    path = tmp_path / "charges.csv"
    path.write_text(content, encoding="utf-8")
    return path


def test_read_charges_normalizes_rows(tmp_path):
    path = write_csv(
        tmp_path,
        "DATE,Reference,Designation,Category,Amount_HT,VAT_Rate,Notes,Extra\n"
        "2025-01-10, CH-1 ,Loyer,loyer,\"1 200,5\",19,janvier,ignored\n"
        "2025-02-01,CH-2,Taxi,TRANSPORT,12.3,,,\n",
    )

    rows = read_charges(path)

    assert len(rows) == 2
    first, second = rows
    assert first.date == date(2025, 1, 10)
    assert first.reference == "CH-1"
    assert first.category == "loyer"
    assert first.amount_ht == "1 200,5"
    assert first.vat_rate == "19"
    assert first.notes == "janvier"
    assert first.supplier is None
    assert second.vat_rate is None
    assert second.notes is None


def test_read_charges_accepts_aliases(tmp_path):
    path = write_csv(
        tmp_path,
        "date,reference,label,category,montant_ht,tva\n"
        "2025-03-01,A,Papier,FOURNITURES_BUREAU,10,7\n",
    )

    (row,) = read_charges(path)

    assert row.designation == "Papier"
    assert row.amount_ht == "10"
    assert row.vat_rate == "7"


def test_read_charges_missing_columns(tmp_path):
    path = write_csv(tmp_path, "date,reference,designation\n2025-01-01,A,B\n")

    with pytest.raises(ValueError, match="amount_ht"):
        read_charges(path)


@pytest.mark.parametrize(
    "row",
    [
        "01/03/2025,A,B,AUTRES,10,19",
        "2025-03-01,A,B,AUTRES,ten,19",
        "2025-03-01,A,B,AUTRES,10,x",
    ],
)
def test_read_charges_rejects_bad_values(tmp_path, row):
    path = write_csv(tmp_path, "date,reference,designation,category,amount_ht,vat_rate\n" + row + "\n")

    with pytest.raises(ValueError):
        read_charges(path)
