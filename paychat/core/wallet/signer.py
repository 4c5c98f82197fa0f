"""Signing capability used to answer payment challenges."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import to_hex

logger = logging.getLogger(__name__)


class SigningRejected(Exception):
    """The signer declined to sign (user rejected, wallet locked, bad payload)."""


@runtime_checkable
class TypedDataSigner(Protocol):
    """Anything that can sign EIP-712 typed data on behalf of ``address``."""

    @property
    def address(self) -> str: ...

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        """Return a 65-byte ``0x``-prefixed hex signature or raise ``SigningRejected``."""
        ...


class LocalAccountSigner:
    """Signs with a private key held in process (CLI and tests)."""

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        try:
            signable = encode_typed_data(full_message=typed_data)
            signed = self._account.sign_message(signable)
        except (TypeError, ValueError) as exc:
            logger.warning(f"Refusing to sign malformed typed data: {exc}")
            raise SigningRejected(str(exc)) from exc
        return to_hex(signed.signature)


def signer_from_settings() -> Optional[LocalAccountSigner]:
    """Signer for the configured wallet key, or ``None`` when no wallet is connected."""

    from ...config import settings

    if not settings.has_wallet:
        return None
    return LocalAccountSigner(settings.wallet_private_key)


__all__ = [
    "LocalAccountSigner",
    "SigningRejected",
    "TypedDataSigner",
    "signer_from_settings",
]
