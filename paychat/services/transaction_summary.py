"""
Transaction directive parsing.

The assistant proposes a transfer by ending its reply with a directive such as::

    Transaction Details: [To: Kopi Kenangan | Nominal: Rp 10.000 | Category: Food]

Parsing is a two-stage scan with an explicit failure at each stage:

1. bracket locate -- find ``<marker>: [`` and the first ``]`` after it;
2. field scan -- split the payload on ``|`` and pick each field by its label.

Any deviation fails closed: ``extract_summary`` returns ``None`` rather than
a partially filled summary.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional

from .address import resolve_recipient_address
from .amount import AmountParseFailure, normalize_amount

DEFAULT_RECIPIENT_LABEL = "(Recipient)"
DEFAULT_CATEGORY = "Uncategorized Expense"


class TransactionParseError(Exception):
    """Base class for directive parsing failures."""


class MalformedDirective(TransactionParseError):
    """Marker phrase present but the bracketed payload cannot be read."""


@dataclass(frozen=True)
class DirectiveGrammar:
    """Vocabulary of the directive in one assistant language."""

    language: str
    marker: str
    recipient_label: str
    amount_label: str
    category_label: str
    sign_off: str

    def render(self, recipient: str, amount: str, category: str) -> str:
        return (
            f"{self.marker}: [{self.recipient_label}: {recipient} | "
            f"{self.amount_label}: {amount} | {self.category_label}: {category}]"
        )

    def template(self) -> str:
        """Directive line with placeholders, used in the assistant prompt."""
        return self.render("<Recipient>", "<Amount>", "<Category>") + f". {self.sign_off}"

    @property
    def marker_pattern(self) -> re.Pattern[str]:
        words = [re.escape(word) for word in self.marker.split()]
        return re.compile(r"\s+".join(words) + r"\s*:\s*\[", re.IGNORECASE)

    def field_for(self, label: str) -> Optional[str]:
        lowered = label.strip().lower()
        for field, field_label in (
            ("recipient", self.recipient_label),
            ("amount", self.amount_label),
            ("category", self.category_label),
        ):
            if lowered == field_label.lower():
                return field
        return None


ENGLISH = DirectiveGrammar(
    language="en",
    marker="Transaction Details",
    recipient_label="To",
    amount_label="Nominal",
    category_label="Category",
    sign_off="Please sign below.",
)

INDONESIAN = DirectiveGrammar(
    language="id",
    marker="Rincian Transaksi",
    recipient_label="Ke",
    amount_label="Nominal",
    category_label="Kategori",
    sign_off="Silakan tanda tangani di bawah.",
)

GRAMMARS: Dict[str, DirectiveGrammar] = {
    ENGLISH.language: ENGLISH,
    INDONESIAN.language: INDONESIAN,
}


def get_grammar(language: Optional[str] = None) -> DirectiveGrammar:
    """Return the grammar for ``language`` (defaults to the configured language)."""

    if language is None:
        from ..config import settings

        language = settings.directive_language
    key = (language or "").strip().lower()
    if key not in GRAMMARS:
        raise ValueError(
            f"Unsupported directive language '{language}'. Available: {', '.join(GRAMMARS)}"
        )
    return GRAMMARS[key]


@dataclass(frozen=True)
class TransactionSummary:
    recipient_label: str
    recipient_address: str
    amount: int
    category: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "recipient_label": self.recipient_label,
            "recipient_address": self.recipient_address,
            "amount": self.amount,
            "category": self.category,
        }


def _configured_fallback() -> str:
    from ..config import settings

    return settings.demo_recipient_address


_FIELD_RE = re.compile(r"^\s*([^:|\]]+?)\s*:\s*(.*)$", re.DOTALL)


def locate_payload(text: str, grammar: DirectiveGrammar) -> str:
    """Return the text between the directive's brackets."""

    opening = grammar.marker_pattern.search(text)
    if opening is None:
        raise MalformedDirective(f"'{grammar.marker}' is not followed by '['")

    start = opening.end()
    end = text.find("]", start)
    if end == -1:
        raise MalformedDirective("directive payload has no closing ']'")
    return text[start:end]


def scan_fields(payload: str, grammar: DirectiveGrammar) -> Dict[str, str]:
    """Pick recipient/amount/category out of the ``|``-separated payload."""

    fields: Dict[str, str] = {}
    for segment in payload.split("|"):
        match = _FIELD_RE.match(segment)
        if not match:
            continue
        field = grammar.field_for(match.group(1))
        if field is None or field in fields:
            continue
        fields[field] = match.group(2).strip()
    return fields


def parse_directive(
    text: str,
    *,
    grammar: Optional[DirectiveGrammar] = None,
    fallback_address: Optional[str] = None,
) -> TransactionSummary:
    """Parse the directive in ``text``.

    Raises ``MalformedDirective`` when the bracketed payload cannot be located
    and ``AmountParseFailure`` when the amount field is unusable.
    """

    grammar = grammar or get_grammar()
    if grammar.marker not in text:
        raise MalformedDirective(f"no '{grammar.marker}' marker")

    fields = scan_fields(locate_payload(text, grammar), grammar)
    if fallback_address is None:
        fallback_address = _configured_fallback()

    amount = normalize_amount(fields.get("amount", ""))
    recipient_label = fields.get("recipient") or DEFAULT_RECIPIENT_LABEL
    category = fields.get("category") or DEFAULT_CATEGORY

    return TransactionSummary(
        recipient_label=recipient_label,
        recipient_address=resolve_recipient_address(recipient_label, fallback_address),
        amount=amount,
        category=category,
    )


def extract_summary(
    text: str,
    *,
    grammar: Optional[DirectiveGrammar] = None,
    fallback_address: Optional[str] = None,
) -> Optional[TransactionSummary]:
    """Return the proposal in an assistant reply, or ``None`` when there is none."""

    if not text:
        return None
    grammar = grammar or get_grammar()
    if grammar.marker not in text:
        return None
    try:
        return parse_directive(text, grammar=grammar, fallback_address=fallback_address)
    except (TransactionParseError, AmountParseFailure):
        return None


__all__ = [
    "DEFAULT_CATEGORY",
    "DEFAULT_RECIPIENT_LABEL",
    "DirectiveGrammar",
    "ENGLISH",
    "GRAMMARS",
    "INDONESIAN",
    "MalformedDirective",
    "TransactionParseError",
    "TransactionSummary",
    "extract_summary",
    "get_grammar",
    "locate_payload",
    "parse_directive",
    "scan_fields",
]
