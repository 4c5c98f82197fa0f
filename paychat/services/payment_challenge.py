"""
HTTP 402 payment challenge handling for agent requests.

Every outbound message gets its own ``PaymentExchange`` that moves through an
explicit state machine::

    IDLE -> SENT -> FULFILLED
                 -> CHALLENGE_RECEIVED -> AWAITING_AUTHORIZATION -> RETRIED -> FULFILLED
                                                                            -> FAILED
                                                   -> FAILED (unusable requirements)

Paying is never automatic: ``pay_and_retry`` runs only when the caller asks
for it, because the signer may need the user's approval. The retried request
is not itself protected against a 402; a second challenge fails the exchange.
The transition table has no edge out of ``RETRIED`` back into
``CHALLENGE_RECEIVED``, which is what bounds an exchange to a single retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

import httpx

from ..core.wallet.authorization import (
    PAYMENT_HEADER,
    PaymentRequirements,
    build_authorization,
    build_typed_data,
    encode_payment_header,
)
from ..core.wallet.signer import SigningRejected, TypedDataSigner

logger = logging.getLogger(__name__)

PAYMENT_REQUIRED_STATUS = 402

CHALLENGE_DETAIL_HEADERS = ("WWW-Authenticate", "X-Payment-Required")
REQUEST_ID_HEADER = "X-Request-Id"


class PaymentState(str, Enum):
    IDLE = "idle"
    SENT = "sent"
    FULFILLED = "fulfilled"
    CHALLENGE_RECEIVED = "challenge_received"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    RETRIED = "retried"
    FAILED = "failed"


_TRANSITIONS: Dict[PaymentState, FrozenSet[PaymentState]] = {
    PaymentState.IDLE: frozenset({PaymentState.SENT}),
    PaymentState.SENT: frozenset(
        {PaymentState.FULFILLED, PaymentState.CHALLENGE_RECEIVED, PaymentState.FAILED}
    ),
    PaymentState.CHALLENGE_RECEIVED: frozenset(
        {PaymentState.AWAITING_AUTHORIZATION, PaymentState.FAILED}
    ),
    # A rejected signature hands the challenge back to the user.
    PaymentState.AWAITING_AUTHORIZATION: frozenset(
        {PaymentState.RETRIED, PaymentState.CHALLENGE_RECEIVED, PaymentState.FAILED}
    ),
    PaymentState.RETRIED: frozenset({PaymentState.FULFILLED, PaymentState.FAILED}),
    PaymentState.FULFILLED: frozenset(),
    PaymentState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({PaymentState.FULFILLED, PaymentState.FAILED})


class PaymentError(Exception):
    """Base class for agent request / payment errors."""


class TransportFailure(PaymentError):
    """Network error or a status that is neither success nor 402."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class PaymentChallengeFailure(PaymentError):
    """The challenge cannot be paid, or the paid retry was challenged again."""

    def __init__(self, message: str, challenge: Optional["PaymentChallenge"] = None):
        self.challenge = challenge
        super().__init__(message)


class SignerUnavailable(PaymentError):
    """No signing capability is connected, so the challenge cannot be paid."""


class InvalidPaymentTransition(PaymentError):
    def __init__(self, current: PaymentState, target: PaymentState):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move payment exchange from {current.value} to {target.value}")


@dataclass(frozen=True)
class PaymentChallenge:
    """Metadata of a 402 response, kept until paid or dismissed."""

    last_message: str
    details: Optional[str] = None
    request_id: Optional[str] = None
    requirements: Optional[PaymentRequirements] = None
    status: int = PAYMENT_REQUIRED_STATUS

    @classmethod
    def from_response(cls, response: httpx.Response, last_message: str) -> "PaymentChallenge":
        details = None
        for header in CHALLENGE_DETAIL_HEADERS:
            value = response.headers.get(header)
            if value:
                details = value
                break
        return cls(
            last_message=last_message,
            details=details,
            request_id=response.headers.get(REQUEST_ID_HEADER) or None,
            requirements=PaymentRequirements.from_accepts(_json_or_none(response)),
        )


@dataclass
class PaymentExchange:
    """One outbound agent request and its optional paid retry."""

    message: str
    state: PaymentState = PaymentState.IDLE
    challenge: Optional[PaymentChallenge] = None
    response: Optional[httpx.Response] = None
    error: Optional[Exception] = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, target: PaymentState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidPaymentTransition(self.state, target)
        logger.debug(f"Payment exchange {self.state.value} -> {target.value}")
        self.state = target


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class PaymentChallengeHandler:
    """Send agent requests and answer payment challenges on request."""

    def __init__(
        self,
        endpoint: str,
        *,
        signer: Optional[TypedDataSigner] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: Optional[float] = None,
        default_requirements: Optional[PaymentRequirements] = None,
        chain_id: Optional[int] = None,
    ) -> None:
        self.endpoint = endpoint
        self.signer = signer
        self._client = client
        self.timeout_s = timeout_s
        self._default_requirements = default_requirements
        self.chain_id = chain_id

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "content-type": "application/json",
        }

    async def _post(self, message: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        merged_headers = {**self._headers(), **(headers or {})}
        body = {"message": message}
        try:
            if self._client is not None:
                return await self._client.post(self.endpoint, json=body, headers=merged_headers)
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                return await client.post(self.endpoint, json=body, headers=merged_headers)
        except httpx.RequestError as exc:
            raise TransportFailure(f"Agent request failed: {exc}") from exc

    def _fail(self, exchange: PaymentExchange, error: PaymentError) -> PaymentError:
        exchange.error = error
        exchange.advance(PaymentState.FAILED)
        return error

    async def send(self, message: str) -> PaymentExchange:
        """Post ``message`` once; the exchange ends FULFILLED or CHALLENGE_RECEIVED.

        Raises ``TransportFailure`` (exchange FAILED) for anything else.
        """

        exchange = PaymentExchange(message=message)
        exchange.advance(PaymentState.SENT)

        try:
            response = await self._post(message)
        except TransportFailure as exc:
            raise self._fail(exchange, exc)

        if response.status_code == PAYMENT_REQUIRED_STATUS:
            exchange.challenge = PaymentChallenge.from_response(response, message)
            exchange.response = response
            exchange.advance(PaymentState.CHALLENGE_RECEIVED)
            logger.info(
                f"Payment required for agent request (request_id={exchange.challenge.request_id}, "
                f"details={exchange.challenge.details!r})"
            )
            return exchange

        if not response.is_success:
            raise self._fail(
                exchange,
                TransportFailure(
                    f"Agent request failed ({response.status_code}): {response.text[:200]}",
                    status_code=response.status_code,
                ),
            )

        exchange.response = response
        exchange.advance(PaymentState.FULFILLED)
        return exchange

    def _requirements_for(self, challenge: PaymentChallenge) -> PaymentRequirements:
        if challenge.requirements is not None:
            return challenge.requirements
        if self._default_requirements is not None:
            return self._default_requirements
        return PaymentRequirements.from_settings()

    async def pay_and_retry(self, exchange: PaymentExchange) -> PaymentExchange:
        """Sign a payment authorization and resend the original message once."""

        if exchange.state != PaymentState.CHALLENGE_RECEIVED or exchange.challenge is None:
            raise InvalidPaymentTransition(exchange.state, PaymentState.AWAITING_AUTHORIZATION)
        if self.signer is None:
            raise SignerUnavailable("Connect a wallet to pay for this request")

        challenge = exchange.challenge
        exchange.advance(PaymentState.AWAITING_AUTHORIZATION)

        try:
            requirements = self._requirements_for(challenge)
            authorization = build_authorization(requirements, self.signer.address)
            typed_data = build_typed_data(requirements, authorization, chain_id=self.chain_id)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Cannot build payment authorization (request_id={challenge.request_id}): {exc}")
            exchange.challenge = None
            raise self._fail(
                exchange,
                PaymentChallengeFailure(f"Payment requirements cannot be signed: {exc}", challenge=challenge),
            )

        try:
            signature = await self.signer.sign_typed_data(typed_data)
        except SigningRejected:
            exchange.advance(PaymentState.CHALLENGE_RECEIVED)
            raise
        except Exception as exc:
            # Any signer failure hands the challenge back to the user.
            logger.warning(f"Signer failed (request_id={challenge.request_id}): {exc!r}")
            exchange.advance(PaymentState.CHALLENGE_RECEIVED)
            raise SigningRejected(f"Signer failed: {exc}") from exc

        headers = {PAYMENT_HEADER: encode_payment_header(requirements, authorization, signature)}
        if challenge.request_id:
            headers[REQUEST_ID_HEADER] = challenge.request_id

        exchange.advance(PaymentState.RETRIED)
        try:
            response = await self._post(challenge.last_message, headers=headers)
        except TransportFailure as exc:
            raise self._fail(exchange, exc)

        exchange.response = response
        if response.status_code == PAYMENT_REQUIRED_STATUS:
            second = PaymentChallenge.from_response(response, challenge.last_message)
            exchange.challenge = None
            raise self._fail(
                exchange,
                PaymentChallengeFailure(
                    f"Payment was not accepted: {second.details or 'payment required'}",
                    challenge=second,
                ),
            )
        if not response.is_success:
            raise self._fail(
                exchange,
                TransportFailure(
                    f"Paid agent request failed ({response.status_code}): {response.text[:200]}",
                    status_code=response.status_code,
                ),
            )

        exchange.challenge = None
        exchange.advance(PaymentState.FULFILLED)
        logger.info(f"Paid agent request fulfilled (request_id={challenge.request_id})")
        return exchange

    def dismiss(self, exchange: PaymentExchange) -> None:
        """Drop a pending challenge without paying."""

        exchange.advance(PaymentState.FAILED)
        exchange.challenge = None


__all__ = [
    "CHALLENGE_DETAIL_HEADERS",
    "InvalidPaymentTransition",
    "PAYMENT_REQUIRED_STATUS",
    "PaymentChallenge",
    "PaymentChallengeFailure",
    "PaymentChallengeHandler",
    "PaymentError",
    "PaymentExchange",
    "PaymentState",
    "REQUEST_ID_HEADER",
    "SignerUnavailable",
    "SigningRejected",
    "TERMINAL_STATES",
    "TransportFailure",
]
