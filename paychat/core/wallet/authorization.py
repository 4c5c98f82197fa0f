"""
Payment authorization typed data.

A payment challenge is answered with an EIP-3009 ``TransferWithAuthorization``
signed as EIP-712 typed data (the x402 "exact" scheme). The signed
authorization travels back to the server base64-encoded in the ``X-PAYMENT``
request header.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import to_bytes, to_checksum_address

from ...services.address import address_or_zero, is_evm_address

X402_VERSION = 1
PAYMENT_HEADER = "X-PAYMENT"

NETWORK_CHAIN_IDS: Dict[str, int] = {
    "ethereum": 1,
    "base": 8453,
    "base-mainnet": 8453,
    "base-sepolia": 84532,
    "polygon": 137,
}

TRANSFER_WITH_AUTHORIZATION_TYPES: Dict[str, Any] = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}


class InvalidPaymentHeader(ValueError):
    """The X-PAYMENT header could not be decoded into an authorization."""


def chain_id_for_network(network: str, default: Optional[int] = None) -> int:
    """Resolve a network name or CAIP-2 id (``eip155:84532``) to a chain id."""

    value = (network or "").strip().lower()
    if value.startswith("eip155:"):
        try:
            return int(value.split(":", 1)[1])
        except ValueError as exc:
            raise ValueError(f"Invalid CAIP-2 network '{network}'") from exc
    if value in NETWORK_CHAIN_IDS:
        return NETWORK_CHAIN_IDS[value]
    if default is not None:
        return default
    raise ValueError(f"Unknown network '{network}'")


@dataclass(frozen=True)
class PaymentRequirements:
    """What the server asks to be paid, as advertised on a 402 response."""

    scheme: str
    network: str
    max_amount_required: int
    pay_to: str
    asset: str
    token_name: str = "USDC"
    token_version: str = "2"
    max_timeout_seconds: int = 300
    resource: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_accepts(cls, body: Any) -> Optional["PaymentRequirements"]:
        """Parse ``accepts[0]`` of an x402 challenge body; ``None`` if absent or unusable."""

        if not isinstance(body, dict):
            return None
        accepts = body.get("accepts")
        if not isinstance(accepts, list) or not accepts or not isinstance(accepts[0], dict):
            return None
        entry = accepts[0]
        extra = entry.get("extra") if isinstance(entry.get("extra"), dict) else {}
        try:
            return cls(
                scheme=str(entry.get("scheme") or "exact"),
                network=str(entry["network"]),
                max_amount_required=int(entry["maxAmountRequired"]),
                pay_to=str(entry["payTo"]),
                asset=str(entry["asset"]),
                token_name=str(extra.get("name") or "USDC"),
                token_version=str(extra.get("version") or "2"),
                max_timeout_seconds=int(entry.get("maxTimeoutSeconds") or 300),
                resource=entry.get("resource"),
                description=entry.get("description"),
            )
        except (KeyError, TypeError, ValueError):
            return None

    @classmethod
    def from_settings(cls) -> "PaymentRequirements":
        from ...config import settings

        return cls(
            scheme="exact",
            network=settings.network,
            max_amount_required=settings.payment_amount,
            pay_to=address_or_zero(settings.payment_pay_to),
            asset=address_or_zero(settings.payment_asset),
            token_name=settings.payment_token_name,
            token_version=settings.payment_token_version,
            max_timeout_seconds=settings.payment_validity_seconds,
        )

    def to_accepts_entry(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "scheme": self.scheme,
            "network": self.network,
            "maxAmountRequired": str(self.max_amount_required),
            "payTo": self.pay_to,
            "asset": self.asset,
            "maxTimeoutSeconds": self.max_timeout_seconds,
            "extra": {"name": self.token_name, "version": self.token_version},
        }
        if self.resource:
            entry["resource"] = self.resource
        if self.description:
            entry["description"] = self.description
        return entry


@dataclass(frozen=True)
class TransferAuthorization:
    from_address: str
    to: str
    value: int
    valid_after: int
    valid_before: int
    nonce: str = field(default_factory=lambda: "0x" + secrets.token_hex(32))

    def to_json(self) -> Dict[str, str]:
        return {
            "from": self.from_address,
            "to": self.to,
            "value": str(self.value),
            "validAfter": str(self.valid_after),
            "validBefore": str(self.valid_before),
            "nonce": self.nonce,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "TransferAuthorization":
        return cls(
            from_address=str(data["from"]),
            to=str(data["to"]),
            value=int(data["value"]),
            valid_after=int(data["validAfter"]),
            valid_before=int(data["validBefore"]),
            nonce=str(data["nonce"]),
        )


def build_authorization(
    requirements: PaymentRequirements,
    payer: str,
    *,
    now: Optional[int] = None,
    nonce: Optional[str] = None,
) -> TransferAuthorization:
    """Authorization for exactly the required amount, valid from now for the timeout."""

    issued_at = int(time.time()) if now is None else now
    kwargs: Dict[str, Any] = {}
    if nonce is not None:
        kwargs["nonce"] = nonce
    return TransferAuthorization(
        from_address=to_checksum_address(payer),
        to=to_checksum_address(address_or_zero(requirements.pay_to)),
        value=requirements.max_amount_required,
        valid_after=max(issued_at - 60, 0),
        valid_before=issued_at + requirements.max_timeout_seconds,
        **kwargs,
    )


def build_typed_data(
    requirements: PaymentRequirements,
    authorization: TransferAuthorization,
    *,
    chain_id: Optional[int] = None,
) -> Dict[str, Any]:
    """EIP-712 structure (domain, types, primary type, message) for signing."""

    if chain_id is None:
        from ...config import settings

        chain_id = chain_id_for_network(requirements.network, default=settings.chain_id)

    return {
        "types": TRANSFER_WITH_AUTHORIZATION_TYPES,
        "primaryType": "TransferWithAuthorization",
        "domain": {
            "name": requirements.token_name,
            "version": requirements.token_version,
            "chainId": chain_id,
            "verifyingContract": to_checksum_address(address_or_zero(requirements.asset)),
        },
        "message": {
            "from": to_checksum_address(authorization.from_address),
            "to": to_checksum_address(authorization.to),
            "value": authorization.value,
            "validAfter": authorization.valid_after,
            "validBefore": authorization.valid_before,
            "nonce": to_bytes(hexstr=authorization.nonce),
        },
    }


def recover_signer(typed_data: Dict[str, Any], signature: str) -> str:
    """Checksummed address that produced ``signature`` over ``typed_data``."""

    signable = encode_typed_data(full_message=typed_data)
    return Account.recover_message(signable, signature=signature)


def encode_payment_header(
    requirements: PaymentRequirements,
    authorization: TransferAuthorization,
    signature: str,
) -> str:
    payload = {
        "x402Version": X402_VERSION,
        "scheme": requirements.scheme,
        "network": requirements.network,
        "payload": {
            "signature": signature,
            "authorization": authorization.to_json(),
        },
    }
    return base64.b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8")).decode("ascii")


@dataclass(frozen=True)
class DecodedPayment:
    scheme: str
    network: str
    authorization: TransferAuthorization
    signature: str


def decode_payment_header(header_value: str) -> DecodedPayment:
    """Inverse of ``encode_payment_header``; raises ``InvalidPaymentHeader``."""

    if not header_value:
        raise InvalidPaymentHeader("empty payment header")
    try:
        decoded = json.loads(base64.b64decode(header_value, validate=True))
    except (binascii.Error, ValueError) as exc:
        raise InvalidPaymentHeader(f"payment header is not base64 JSON: {exc}") from exc

    if not isinstance(decoded, dict) or not isinstance(decoded.get("payload"), dict):
        raise InvalidPaymentHeader("payment header has no payload")

    payload = decoded["payload"]
    signature = payload.get("signature")
    if not isinstance(signature, str) or not signature:
        raise InvalidPaymentHeader("payment header has no signature")
    try:
        authorization = TransferAuthorization.from_json(payload.get("authorization") or {})
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidPaymentHeader(f"malformed authorization: {exc}") from exc
    if not is_evm_address(authorization.from_address) or not is_evm_address(authorization.to):
        raise InvalidPaymentHeader("authorization addresses are malformed")

    return DecodedPayment(
        scheme=str(decoded.get("scheme") or ""),
        network=str(decoded.get("network") or ""),
        authorization=authorization,
        signature=signature,
    )


__all__ = [
    "DecodedPayment",
    "InvalidPaymentHeader",
    "NETWORK_CHAIN_IDS",
    "PAYMENT_HEADER",
    "PaymentRequirements",
    "TRANSFER_WITH_AUTHORIZATION_TYPES",
    "TransferAuthorization",
    "X402_VERSION",
    "build_authorization",
    "build_typed_data",
    "chain_id_for_network",
    "decode_payment_header",
    "encode_payment_header",
    "recover_signer",
]
