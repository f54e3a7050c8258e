# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
SMB Billing
-----------

The financial document & reporting engine of a small-business management
tool. It owns everything that touches money:

- quotes (devis) and invoices (factures) with their line items,
- exact fixed-point totals (3 decimals, millimes) and stamp duty,
- unique, human-readable document numbers (counter per kind and year),
- payment status (PENDING / PAID / CANCELLED),
- a ledger of charges (expenses) and tax declarations,
- monthly and yearly reporting (revenue, expenses, VAT, profit margin),
- French legal transcription of amounts ("mille deux cent cinquante dinars"),
- print payloads consumed by an external PDF renderer.

Computation (calculator, words, reporting), persistence (SQLite) and
presentation (CLI, external renderer) are kept in separate modules.

Version: 0.1.0

Usage:
    python -m smb_billing.cli --help
"""

__all__ = ["calculator", "documents_service", "ledger_service", "reporting", "words"]

__version__ = "0.1.0"
