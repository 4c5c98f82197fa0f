"""Helpers for validating EVM account addresses and resolving proposal recipients."""

from __future__ import annotations

import re
from typing import Optional

_EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

ZERO_ADDRESS = "0x" + "0" * 40


def is_evm_address(value: Optional[str]) -> bool:
    """Return True when ``value`` is ``0x`` followed by exactly 40 hex digits."""

    if not value:
        return False
    return bool(_EVM_ADDRESS_RE.fullmatch(value))


def resolve_recipient_address(label: str, fallback: Optional[str] = None) -> str:
    """Map a recipient label onto an account address.

    Labels that already are addresses pass through verbatim. Anything else
    (a name, a shop, "(Recipient)") resolves to ``fallback`` when that is a
    well-formed address, otherwise to the zero address. Names are never
    looked up off-chain.
    """

    if is_evm_address(label):
        return label
    if is_evm_address(fallback):
        return fallback  # type: ignore[return-value]
    return ZERO_ADDRESS


def address_or_zero(value: Optional[str]) -> str:
    return value if is_evm_address(value) else ZERO_ADDRESS  # type: ignore[return-value]


__all__ = [
    "ZERO_ADDRESS",
    "is_evm_address",
    "resolve_recipient_address",
    "address_or_zero",
]
