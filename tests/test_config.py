from decimal import Decimal
from pathlib import Path

import pytest

from smb_billing.config import NumberingSettings, TaxSettings, load_app_config


def write_config(tmp_path, content: str) -> Path:
    path = tmp_path / "smb_billing_config.toml"
    path.write_text(content, encoding="utf-8")
    return path


def test_load_app_config_reads_every_section(tmp_path):
    path = write_config(
        tmp_path,
        """
[database]
engine = "sqlite"
path = "data/billing.sqlite"
timeout = 5

[tax]
vat_standard_rate = "19"
default_charge_vat_rate = 7
default_stamp_duty = "1.000"

[numbering]
invoice_prefix = "FAC-"
width = 5

[company]
name = "Atelier Démo"
bank_rib = "08 006 0123456789012 34"

[logging]
level = "debug"
json = true
""",
    )

    cfg = load_app_config(str(path))

    assert cfg.database.path == (tmp_path / "data" / "billing.sqlite").resolve()
    assert cfg.database.timeout == 5.0
    assert cfg.tax.default_charge_vat_rate == Decimal("7")
    assert cfg.tax.default_stamp_duty == Decimal("1.000")
    assert cfg.numbering.invoice_prefix == "FAC-"
    assert cfg.numbering.quote_prefix == "DEV-"
    assert cfg.numbering.width == 5
    assert cfg.company.name == "Atelier Démo"
    assert cfg.company.currency == "TND"
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.json is True


def test_empty_config_uses_defaults(tmp_path):
    path = write_config(tmp_path, "")

    cfg = load_app_config(str(path))

    assert cfg.database.engine == "sqlite"
    assert cfg.database.path == (tmp_path / "data/db/smb_billing.sqlite").resolve()
    assert cfg.tax.vat_standard_rate == Decimal("19")
    assert cfg.tax.default_stamp_duty == Decimal("0.000")
    assert cfg.numbering.width == 4
    assert cfg.logging.level == "INFO"


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "nope.toml"))


@pytest.mark.parametrize(
    "content",
    [
        "not = [valid toml",
        "[tax]\ndefault_stamp_duty = \"-1\"",
        "[tax]\nvat_standard_rate = \"abc\"",
        "[numbering]\nwidth = 0",
        "[database]\ntimeout = \"soon\"",
        "[logging]\nlevel = \"LOUD\"",
    ],
)
def test_invalid_values_are_rejected(tmp_path, content):
    path = write_config(tmp_path, content)

    with pytest.raises(ValueError):
        load_app_config(str(path))


def test_shipped_config_matches_defaults():
    shipped = Path(__file__).parents[1] / "smb_billing_config.toml"

    cfg = load_app_config(str(shipped))

    assert cfg.tax == TaxSettings()
    assert cfg.numbering == NumberingSettings()
