"""Build the ERC-20 transfer a signed proposal submits."""

from __future__ import annotations

from typing import Any, Dict, Optional

from eth_utils import keccak, to_checksum_address

from .address import address_or_zero
from .transaction_summary import TransactionSummary

TRANSFER_SIGNATURE = "transfer(address,uint256)"
TRANSFER_SELECTOR = keccak(text=TRANSFER_SIGNATURE)[:4]

_UINT256_MAX = 2**256 - 1


def encode_transfer_data(recipient: str, amount: int) -> str:
    """ABI-encode ``transfer(recipient, amount)`` calldata as a hex string."""

    if amount < 0 or amount > _UINT256_MAX:
        raise ValueError(f"amount {amount} does not fit in uint256")
    recipient_word = recipient[2:].lower().rjust(64, "0")
    amount_word = format(amount, "064x")
    return "0x" + TRANSFER_SELECTOR.hex() + recipient_word + amount_word


def build_transfer_call(summary: TransactionSummary, token_address: Optional[str] = None) -> Dict[str, Any]:
    """Contract call for a summary, ready for a wallet to sign and submit.

    A missing or malformed token address becomes the zero address, so the
    call is still well-formed in unconfigured demo setups.
    """

    if token_address is None:
        from ..config import settings

        token_address = settings.token_address

    token = address_or_zero(token_address)
    return {
        "to": to_checksum_address(token),
        "value": 0,
        "data": encode_transfer_data(summary.recipient_address, summary.amount),
        "function": TRANSFER_SIGNATURE,
        "args": [to_checksum_address(summary.recipient_address), summary.amount],
    }


def format_idr(amount: int) -> str:
    """Render an amount the way Indonesian rupiah is written: ``Rp 50.000``."""

    sign = "-" if amount < 0 else ""
    return f"{sign}Rp {abs(amount):,}".replace(",", ".")


__all__ = [
    "TRANSFER_SELECTOR",
    "TRANSFER_SIGNATURE",
    "build_transfer_call",
    "encode_transfer_data",
    "format_idr",
]
