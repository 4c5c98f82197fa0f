"""Server-side checks of an ``X-PAYMENT`` authorization against the advertised requirements."""

from __future__ import annotations

import time
from typing import Optional

from eth_keys.exceptions import ValidationError as SignatureValidationError

from .authorization import (
    DecodedPayment,
    InvalidPaymentHeader,
    PaymentRequirements,
    build_typed_data,
    decode_payment_header,
    recover_signer,
)


class PaymentVerificationError(Exception):
    """The payment header does not authorize the required payment."""


def verify_payment(
    header_value: str,
    requirements: PaymentRequirements,
    *,
    now: Optional[int] = None,
    chain_id: Optional[int] = None,
) -> DecodedPayment:
    try:
        payment = decode_payment_header(header_value)
    except InvalidPaymentHeader as exc:
        raise PaymentVerificationError(str(exc)) from exc

    if payment.scheme != requirements.scheme:
        raise PaymentVerificationError(f"unsupported scheme '{payment.scheme}'")
    if payment.network.lower() != requirements.network.lower():
        raise PaymentVerificationError(f"wrong network '{payment.network}'")

    authorization = payment.authorization
    if authorization.to.lower() != requirements.pay_to.lower():
        raise PaymentVerificationError("authorization pays the wrong recipient")
    if authorization.value < requirements.max_amount_required:
        raise PaymentVerificationError(
            f"authorized {authorization.value}, required {requirements.max_amount_required}"
        )

    current = int(time.time()) if now is None else now
    if not authorization.valid_after <= current < authorization.valid_before:
        raise PaymentVerificationError("authorization is outside its validity window")

    try:
        typed_data = build_typed_data(requirements, authorization, chain_id=chain_id)
        signer = recover_signer(typed_data, payment.signature)
    except (SignatureValidationError, TypeError, ValueError) as exc:  # BadSignature is a ValidationError
        raise PaymentVerificationError(f"signature cannot be verified: {exc}") from exc

    if signer.lower() != authorization.from_address.lower():
        raise PaymentVerificationError("signature does not match the payer")
    return payment


__all__ = ["PaymentVerificationError", "verify_payment"]
