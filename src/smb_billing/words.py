# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Amount-in-words transcription (French legal prose).

Printed invoices must state their total in words, e.g.::

    1250.500 -> "Mille deux cent cinquante dinars et cinq cents millimes"

French rules applied
--------------------
- 21, 31, ... 61 and 71 take "et": "vingt et un", "soixante et onze".
- 70-79 and 90-99 are built on 60 and 80: "soixante-dix", "quatre-vingt-dix".
- "quatre-vingts" and "deux cents" take an "s" only when they end the
  number (or precede "million(s)" / "milliard(s)", which are nouns);
  they stay invariable before "mille" and when followed by another word.
- "mille" is invariable and never preceded by "un".
- "un million", "deux millions"; same for "milliard".

The currency unit is always written in the plural ("un dinars"), zero is
"zéro dinars", and a zero minor part omits the "et ... millimes" clause.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from .errors import ValidationError
from .money import MAX_AMOUNT, quantize_amount, to_decimal

UNITS = (
    "zéro", "un", "deux", "trois", "quatre", "cinq", "six", "sept", "huit", "neuf",
    "dix", "onze", "douze", "treize", "quatorze", "quinze", "seize",
    "dix-sept", "dix-huit", "dix-neuf",
)

TENS = {
    2: "vingt",
    3: "trente",
    4: "quarante",
    5: "cinquante",
    6: "soixante",
}


def _below_hundred(n: int, final: bool) -> str:
    if n < 20:
        return UNITS[n]
    if n < 70:
        tens, unit = divmod(n, 10)
        base = TENS[tens]
        if unit == 0:
            return base
        if unit == 1:
            return f"{base} et un"
        return f"{base}-{UNITS[unit]}"
    if n < 80:
        rest = n - 60
        if rest == 11:
            return "soixante et onze"
        return f"soixante-{UNITS[rest]}"
    rest = n - 80
    if rest == 0:
        return "quatre-vingts" if final else "quatre-vingt"
    return f"quatre-vingt-{UNITS[rest]}"


def _below_thousand(n: int, final: bool) -> str:
    """Words for 1..999. ``final`` is False when the group precedes "mille"."""
    hundreds, rest = divmod(n, 100)
    parts: list[str] = []
    if hundreds == 1:
        parts.append("cent")
    elif hundreds > 1:
        plural = "s" if rest == 0 and final else ""
        parts.append(f"{UNITS[hundreds]} cent{plural}")
    if rest:
        parts.append(_below_hundred(rest, final))
    return " ".join(parts)


def _scale(n: int, singular: str) -> str:
    if n == 1:
        return f"un {singular}"
    return f"{_below_thousand(n, final=True)} {singular}s"


def integer_to_words(n: int) -> str:
    """
    Spell out a non-negative integer below one thousand billions.

    Raises
    ------
    ValidationError
        If ``n`` is negative or too large.
    """
    if n < 0 or n >= MAX_AMOUNT:
        raise ValidationError(
            f"Cannot transcribe {n} in words.", "Montant hors limites pour la transcription."
        )
    if n == 0:
        return UNITS[0]

    billions, rest = divmod(n, 10**9)
    millions, rest = divmod(rest, 10**6)
    thousands, remainder = divmod(rest, 1000)

    parts: list[str] = []
    if billions:
        parts.append(_scale(billions, "milliard"))
    if millions:
        parts.append(_scale(millions, "million"))
    if thousands == 1:
        parts.append("mille")
    elif thousands > 1:
        parts.append(f"{_below_thousand(thousands, final=False)} mille")
    if remainder:
        parts.append(_below_thousand(remainder, final=True))
    return " ".join(parts)


def amount_to_words(amount: Any) -> str:
    """
    Transcribe a monetary amount (dinars + 3-decimal millimes) into French.

    Examples
    --------
    >>> amount_to_words(Decimal("0"))
    'Zéro dinars'
    >>> amount_to_words(Decimal("1250.5"))
    'Mille deux cent cinquante dinars et cinq cents millimes'
    """
    value = quantize_amount(to_decimal(amount, "montant"))
    if value < 0:
        raise ValidationError(
            f"Negative amount {value} cannot be transcribed.",
            "Un montant négatif ne peut pas être transcrit en lettres.",
        )

    dinars = int(value)
    millimes = int((value - Decimal(dinars)).scaleb(3))

    text = f"{integer_to_words(dinars)} dinars"
    if millimes:
        text += f" et {integer_to_words(millimes)} millimes"
    return text[0].upper() + text[1:]
