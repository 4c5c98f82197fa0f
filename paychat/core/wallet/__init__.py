from .authorization import (
    DecodedPayment,
    InvalidPaymentHeader,
    PAYMENT_HEADER,
    PaymentRequirements,
    TransferAuthorization,
    build_authorization,
    build_typed_data,
    chain_id_for_network,
    decode_payment_header,
    encode_payment_header,
    recover_signer,
)
from .signer import LocalAccountSigner, SigningRejected, TypedDataSigner, signer_from_settings
from .verification import PaymentVerificationError, verify_payment

__all__ = [
    "DecodedPayment",
    "InvalidPaymentHeader",
    "PAYMENT_HEADER",
    "PaymentRequirements",
    "TransferAuthorization",
    "build_authorization",
    "build_typed_data",
    "chain_id_for_network",
    "decode_payment_header",
    "encode_payment_header",
    "recover_signer",
    "LocalAccountSigner",
    "SigningRejected",
    "TypedDataSigner",
    "signer_from_settings",
    "PaymentVerificationError",
    "verify_payment",
]
