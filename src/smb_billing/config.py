# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for SMB Billing.

This module is responsible for:
- loading the application configuration from a TOML file,
- validating tax, numbering and company settings,
- exposing typed dataclasses used by the rest of the application.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for older Python
    import tomli as tomllib  # type: ignore[import]

from .db import DatabaseConfig
from .errors import ValidationError
from .money import to_decimal

DEFAULT_CONFIG_FILENAME = "smb_billing_config.toml"


@dataclass(frozen=True)
class TaxSettings:
    """
    VAT and stamp duty settings.

    Attributes
    ----------
    vat_standard_rate:
        Standard VAT rate (percent) implicitly applied to invoiced line
        totals when computing collected VAT.
    default_charge_vat_rate:
        VAT rate (percent) applied to a charge when none is given.
    default_stamp_duty:
        Stamp duty (timbre fiscal) used when a document request omits it.
    """

    vat_standard_rate: Decimal = Decimal("19")
    default_charge_vat_rate: Decimal = Decimal("19")
    default_stamp_duty: Decimal = Decimal("0.000")


@dataclass(frozen=True)
class NumberingSettings:
    """Prefixes and zero-padding width of allocated numbers."""

    quote_prefix: str = "DEV-"
    invoice_prefix: str = ""
    import_prefix: str = "IMP-"
    declaration_prefix: str = "DEC-"
    width: int = 4


@dataclass(frozen=True)
class CompanySettings:
    """Company and bank boilerplate printed on every document."""

    name: str = ""
    address: str = ""
    tax_id: str = ""
    phone: str = ""
    email: str = ""
    bank_payee: str = ""
    bank_rib: str = ""
    bank_name: str = ""
    currency: str = "TND"


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    json: bool = False


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for SMB Billing.

    This aggregates:
    - the database configuration (where documents and ledger entries live),
    - tax settings (VAT rates, default stamp duty),
    - numbering settings (prefixes, width),
    - company boilerplate for print payloads,
    - logging options.
    """

    database: DatabaseConfig
    tax: TaxSettings
    numbering: NumberingSettings
    company: CompanySettings
    logging: LoggingSettings


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        return {}
    return section


def _parse_decimal(section: Mapping[str, Any], key: str, default: Decimal) -> Decimal:
    value = section.get(key)
    if value is None:
        return default
    try:
        parsed = to_decimal(value, key)
    except ValidationError as exc:
        raise ValueError(f"Invalid value for '{key}' in the configuration.") from exc
    if parsed < 0:
        raise ValueError(f"'{key}' cannot be negative in the configuration.")
    return parsed


def _parse_tax(raw: Mapping[str, Any]) -> TaxSettings:
    section = _section(raw, "tax")
    defaults = TaxSettings()
    return TaxSettings(
        vat_standard_rate=_parse_decimal(
            section, "vat_standard_rate", defaults.vat_standard_rate
        ),
        default_charge_vat_rate=_parse_decimal(
            section, "default_charge_vat_rate", defaults.default_charge_vat_rate
        ),
        default_stamp_duty=_parse_decimal(
            section, "default_stamp_duty", defaults.default_stamp_duty
        ),
    )


def _parse_numbering(raw: Mapping[str, Any]) -> NumberingSettings:
    section = _section(raw, "numbering")
    defaults = NumberingSettings()
    try:
        width = int(section.get("width", defaults.width))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'numbering.width' in the configuration. "
            "Expected an integer."
        ) from exc
    if width < 1:
        raise ValueError("'numbering.width' must be at least 1.")

    return NumberingSettings(
        quote_prefix=str(section.get("quote_prefix", defaults.quote_prefix)),
        invoice_prefix=str(section.get("invoice_prefix", defaults.invoice_prefix)),
        import_prefix=str(section.get("import_prefix", defaults.import_prefix)),
        declaration_prefix=str(
            section.get("declaration_prefix", defaults.declaration_prefix)
        ),
        width=width,
    )


def _parse_company(raw: Mapping[str, Any]) -> CompanySettings:
    section = _section(raw, "company")
    defaults = CompanySettings()
    values = {
        key: str(section.get(key, getattr(defaults, key)))
        for key in CompanySettings.__dataclass_fields__
    }
    return CompanySettings(**values)


def _parse_logging(raw: Mapping[str, Any]) -> LoggingSettings:
    section = _section(raw, "logging")
    level = str(section.get("level", "INFO")).upper()
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ValueError(f"Invalid logging level in the configuration: {level!r}")
    return LoggingSettings(level=level, json=bool(section.get("json", False)))


def default_app_config(db_path: Path) -> AppConfig:
    """Build a configuration with default settings around a database path."""
    return AppConfig(
        database=DatabaseConfig(engine="sqlite", path=Path(db_path)),
        tax=TaxSettings(),
        numbering=NumberingSettings(),
        company=CompanySettings(),
        logging=LoggingSettings(),
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the SMB Billing application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [database]
        Database engine ("sqlite"), file path and busy timeout (seconds).

    [tax]
        vat_standard_rate, default_charge_vat_rate, default_stamp_duty.

    [numbering]
        Prefixes for quotes, invoices, import procedures and declarations,
        and the zero-padding width of the sequence part.

    [company]
        Company and bank boilerplate printed on documents.

    [logging]
        level ("INFO" by default) and json (bool).

    Every section is optional. Relative paths are resolved against the
    directory of the TOML file itself.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILENAME).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    db_path_raw = database_section.get("path") or "data/db/smb_billing.sqlite"
    db_path = (base_dir / str(db_path_raw)).resolve()
    try:
        timeout = float(database_section.get("timeout", 30.0))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'database.timeout' in the configuration. "
            "Expected a number of seconds."
        ) from exc

    return AppConfig(
        database=DatabaseConfig(engine=db_engine, path=db_path, timeout=timeout),
        tax=_parse_tax(raw),
        numbering=_parse_numbering(raw),
        company=_parse_company(raw),
        logging=_parse_logging(raw),
    )
