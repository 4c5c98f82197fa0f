"""Normalize human-written money amounts into integer smallest units.

Two grammars are tried in order:

* shorthand -- ``50rb``, ``10k``, ``2.5jt``, ``1,5 juta``: a decimal number
  followed by a unit token, scaled by the unit multiplier and rounded half-up;
* plain -- ``Rp 50.000``, ``50,000``, ``IDR 1 000``: currency prefixes,
  whitespace and both separators are stripped, and the first digit run is the
  amount.

In the plain grammar ``.`` and ``,`` are always thousands separators, so a
fractional amount of the base unit cannot be written. The unit is treated as
indivisible.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

_SHORTHAND_RE = re.compile(r"([0-9]+(?:[.,][0-9]+)?)\s*(rb|k|jt|juta)\b")
_DIGITS_RE = re.compile(r"[0-9]+")
_WHITESPACE_RE = re.compile(r"\s+")

UNIT_MULTIPLIERS = {
    "rb": 1_000,
    "k": 1_000,
    "jt": 1_000_000,
    "juta": 1_000_000,
}

# Longest first so "idrx" is not left as "x" after stripping "idr".
CURRENCY_PREFIXES = ("idrx", "idr", "rp")


class AmountParseFailure(ValueError):
    """Raised when text holds neither a shorthand amount nor a digit run."""

    def __init__(self, text: str, reason: str = "no recognizable amount"):
        self.text = text
        self.reason = reason
        super().__init__(f"Cannot parse amount {text!r}: {reason}")


def normalize_amount(text: str) -> int:
    """Parse ``text`` into an exact non-negative integer amount."""

    if not text or not text.strip():
        raise AmountParseFailure(text or "", "empty amount")

    lowered = text.lower()

    shorthand = _SHORTHAND_RE.search(lowered)
    if shorthand:
        return _scale_shorthand(text, shorthand.group(1), shorthand.group(2))

    return _parse_plain(text, lowered)


def _scale_shorthand(text: str, literal: str, unit: str) -> int:
    try:
        number = Decimal(literal.replace(",", "."))
    except InvalidOperation as exc:
        raise AmountParseFailure(text, f"invalid number {literal!r}") from exc
    if not number.is_finite():
        raise AmountParseFailure(text, f"non-finite number {literal!r}")

    multiplier = UNIT_MULTIPLIERS[unit]
    # Precision covers every digit of literal times multiplier, so the product is exact.
    with localcontext() as ctx:
        ctx.prec = len(literal) + len(str(multiplier))
        try:
            scaled = number * multiplier
            return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))
        except (InvalidOperation, ValueError) as exc:
            raise AmountParseFailure(text, f"amount {literal!r} {unit} is out of range") from exc


def _parse_plain(text: str, lowered: str) -> int:
    cleaned = lowered
    for prefix in CURRENCY_PREFIXES:
        cleaned = cleaned.replace(prefix, "")
    cleaned = _WHITESPACE_RE.sub("", cleaned)
    cleaned = cleaned.replace(".", "").replace(",", "")

    digits = _DIGITS_RE.search(cleaned)
    if not digits:
        raise AmountParseFailure(text)
    try:
        return int(digits.group(0))
    except ValueError as exc:
        # int() refuses digit strings past sys.get_int_max_str_digits().
        raise AmountParseFailure(text, "amount has too many digits") from exc


__all__ = [
    "AmountParseFailure",
    "CURRENCY_PREFIXES",
    "UNIT_MULTIPLIERS",
    "normalize_amount",
]
