# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Error kinds and operation results for SMB Billing.

Low-level modules (calculator, numbering, db, words, printing) raise the
exceptions defined here. The service layer (documents_service,
ledger_service) catches them at its public boundary and returns an
``OperationResult`` instead, so that callers (CLI, UI) branch on
``result.ok`` and display ``result.message`` rather than a raw traceback.

Error kinds
-----------
- ``validation``  : missing client name, no valid line items, negative
                    quantity / price / amount, unknown enum value.
- ``not_found``   : the operation targets an unknown id.
- ``conflict``    : duplicate document number detected at commit.
- ``persistence`` : the underlying store failed (SQLite error).
- ``integrity``   : stored totals no longer match their line items.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, Optional, TypeVar

ErrorKind = Literal["validation", "not_found", "conflict", "persistence", "integrity"]

T = TypeVar("T")


class BillingError(Exception):
    """Base class for every error raised by the engine."""

    kind: ErrorKind = "persistence"
    default_message = "Une erreur inattendue est survenue."

    def __init__(self, detail: str, user_message: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.user_message = user_message or self.default_message


class ValidationError(BillingError):
    kind: ErrorKind = "validation"
    default_message = "Les données saisies sont invalides."


class NotFoundError(BillingError):
    kind: ErrorKind = "not_found"
    default_message = "Élément introuvable."


class ConflictError(BillingError):
    kind: ErrorKind = "conflict"
    default_message = "Ce numéro de document est déjà utilisé."


class PersistenceError(BillingError):
    kind: ErrorKind = "persistence"
    default_message = "Erreur d'accès à la base de données."


class IntegrityError(BillingError):
    """Stored totals disagree with the totals recomputed from line items."""

    kind: ErrorKind = "integrity"
    default_message = "Les totaux enregistrés sont incohérents."


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Success/failure discriminated result returned by service operations.

    Attributes
    ----------
    ok:
        True when the operation succeeded.
    data:
        Operation output on success (may be None for deletions).
    error:
        Error kind on failure.
    message:
        User-facing message on failure (French).
    """

    ok: bool
    data: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, exc: BillingError) -> "OperationResult[T]":
        return cls(ok=False, error=exc.kind, message=exc.user_message)

    def unwrap(self) -> T:
        """Return ``data`` or raise a BillingError when the result is a failure."""
        if not self.ok:
            raise BillingError(
                f"unwrap() called on a failed result ({self.error}): {self.message}"
            )
        return self.data  # type: ignore[return-value]
