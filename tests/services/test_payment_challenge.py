"""
Tests for the 402 payment challenge handler.

Covers:
- Plain success and transport failures
- Challenge metadata (details header fallback, request id, requirements)
- Paying and retrying exactly once
- Refusal without a signer and after a rejected signature
- Dismissal and the exchange state machine
"""

import json

import httpx
import pytest

from paychat.core.wallet import (
    PAYMENT_HEADER,
    LocalAccountSigner,
    PaymentRequirements,
    SigningRejected,
    verify_payment,
)
from paychat.services.payment_challenge import (
    InvalidPaymentTransition,
    PaymentChallengeFailure,
    PaymentChallengeHandler,
    PaymentExchange,
    PaymentState,
    SignerUnavailable,
    TransportFailure,
)

ENDPOINT = "http://agent.test/api/agent"

REQUIREMENTS = PaymentRequirements(
    scheme="exact",
    network="base-sepolia",
    max_amount_required=10_000,
    pay_to="0x" + "ab" * 20,
    asset="0x" + "cd" * 20,
)

CHALLENGE_BODY = {
    "x402Version": 1,
    "error": "payment required",
    "accepts": [REQUIREMENTS.to_accepts_entry()],
}


def _challenge_response(headers=None):
    return httpx.Response(
        402,
        json=CHALLENGE_BODY,
        headers=headers or {"WWW-Authenticate": 'X402 scheme="exact"', "X-Request-Id": "req-1"},
    )


class RecordingAgent:
    """Fake agent endpoint: replays scripted responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if callable(response):
            return response(request)
        return response


class RejectingSigner:
    address = "0x" + "12" * 20

    async def sign_typed_data(self, typed_data):
        raise SigningRejected("User rejected the request")


class DisconnectedSigner:
    address = "0x" + "12" * 20

    async def sign_typed_data(self, typed_data):
        raise RuntimeError("wallet disconnected")


def _handler(agent, signer=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(agent))
    return PaymentChallengeHandler(ENDPOINT, signer=signer, client=client)


@pytest.fixture
def signer():
    return LocalAccountSigner("0x" + "11" * 32)


# =============================================================================
# Send
# =============================================================================

class TestSend:
    @pytest.mark.asyncio
    async def test_success(self):
        agent = RecordingAgent(httpx.Response(200, json={"reply": "Your Balance is 100.000 IDRX."}))
        exchange = await _handler(agent).send("What is my balance?")

        assert exchange.state == PaymentState.FULFILLED
        assert exchange.response.json()["reply"].startswith("Your Balance")
        assert json.loads(agent.requests[0].content) == {"message": "What is my balance?"}
        assert PAYMENT_HEADER not in agent.requests[0].headers

    @pytest.mark.asyncio
    async def test_challenge_metadata(self):
        agent = RecordingAgent(_challenge_response())
        exchange = await _handler(agent).send("Pay Budi 50rb")

        assert exchange.state == PaymentState.CHALLENGE_RECEIVED
        challenge = exchange.challenge
        assert challenge.status == 402
        assert challenge.last_message == "Pay Budi 50rb"
        assert challenge.details == 'X402 scheme="exact"'
        assert challenge.request_id == "req-1"
        assert challenge.requirements == REQUIREMENTS

    @pytest.mark.asyncio
    async def test_challenge_details_fallback_header(self):
        agent = RecordingAgent(_challenge_response({"X-Payment-Required": "10000 units"}))
        exchange = await _handler(agent).send("hi")

        assert exchange.challenge.details == "10000 units"
        assert exchange.challenge.request_id is None

    @pytest.mark.asyncio
    async def test_challenge_without_body(self):
        agent = RecordingAgent(httpx.Response(402, text="pay up"))
        exchange = await _handler(agent).send("hi")

        assert exchange.challenge.details is None
        assert exchange.challenge.requirements is None

    @pytest.mark.asyncio
    async def test_server_error(self):
        agent = RecordingAgent(httpx.Response(500, text="boom"))
        with pytest.raises(TransportFailure) as exc_info:
            await _handler(agent).send("hi")
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_network_error(self):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        agent = RecordingAgent(unreachable)
        with pytest.raises(TransportFailure) as exc_info:
            await _handler(agent).send("hi")
        assert exc_info.value.status_code is None


# =============================================================================
# Pay and Retry
# =============================================================================

class TestPayAndRetry:
    @pytest.mark.asyncio
    async def test_paid_retry(self, signer):
        def paid(request):
            payment = verify_payment(request.headers[PAYMENT_HEADER], REQUIREMENTS)
            assert payment.authorization.from_address == signer.address
            assert request.headers["X-Request-Id"] == "req-1"
            return httpx.Response(200, json={"reply": "paid"})

        agent = RecordingAgent(_challenge_response(), paid)
        handler = _handler(agent, signer)

        exchange = await handler.send("Pay Budi 50rb")
        exchange = await handler.pay_and_retry(exchange)

        assert exchange.state == PaymentState.FULFILLED
        assert exchange.challenge is None
        assert exchange.response.json() == {"reply": "paid"}
        assert len(agent.requests) == 2
        assert json.loads(agent.requests[1].content) == {"message": "Pay Budi 50rb"}

    @pytest.mark.asyncio
    async def test_default_requirements_when_body_is_empty(self, signer):
        def paid(request):
            verify_payment(request.headers[PAYMENT_HEADER], REQUIREMENTS)
            return httpx.Response(200, json={"reply": "paid"})

        agent = RecordingAgent(httpx.Response(402), paid)
        client = httpx.AsyncClient(transport=httpx.MockTransport(agent))
        handler = PaymentChallengeHandler(
            ENDPOINT, signer=signer, client=client, default_requirements=REQUIREMENTS
        )

        exchange = await handler.pay_and_retry(await handler.send("hi"))
        assert exchange.state == PaymentState.FULFILLED

    @pytest.mark.asyncio
    async def test_second_challenge_fails_without_looping(self, signer):
        agent = RecordingAgent(_challenge_response(), _challenge_response())
        handler = _handler(agent, signer)

        exchange = await handler.send("hi")
        with pytest.raises(PaymentChallengeFailure) as exc_info:
            await handler.pay_and_retry(exchange)

        assert exchange.state == PaymentState.FAILED
        assert exchange.challenge is None
        assert exc_info.value.challenge.details == 'X402 scheme="exact"'
        assert len(agent.requests) == 2

        with pytest.raises(InvalidPaymentTransition):
            await handler.pay_and_retry(exchange)
        assert len(agent.requests) == 2

    @pytest.mark.asyncio
    async def test_retry_server_error(self, signer):
        agent = RecordingAgent(_challenge_response(), httpx.Response(503))
        handler = _handler(agent, signer)

        exchange = await handler.send("hi")
        with pytest.raises(TransportFailure):
            await handler.pay_and_retry(exchange)
        assert exchange.state == PaymentState.FAILED

    @pytest.mark.asyncio
    async def test_refused_without_signer(self):
        agent = RecordingAgent(_challenge_response())
        handler = _handler(agent)

        exchange = await handler.send("hi")
        with pytest.raises(SignerUnavailable):
            await handler.pay_and_retry(exchange)

        assert exchange.state == PaymentState.CHALLENGE_RECEIVED
        assert exchange.challenge is not None
        assert len(agent.requests) == 1

    @pytest.mark.asyncio
    async def test_rejected_signature_keeps_challenge(self):
        agent = RecordingAgent(_challenge_response())
        handler = _handler(agent, RejectingSigner())

        exchange = await handler.send("hi")
        with pytest.raises(SigningRejected):
            await handler.pay_and_retry(exchange)

        assert exchange.state == PaymentState.CHALLENGE_RECEIVED
        assert exchange.challenge is not None
        assert len(agent.requests) == 1

    @pytest.mark.asyncio
    async def test_signer_error_keeps_challenge(self):
        agent = RecordingAgent(_challenge_response())
        handler = _handler(agent, DisconnectedSigner())

        exchange = await handler.send("hi")
        with pytest.raises(SigningRejected) as exc_info:
            await handler.pay_and_retry(exchange)

        assert "wallet disconnected" in str(exc_info.value)
        assert exchange.state == PaymentState.CHALLENGE_RECEIVED
        assert len(agent.requests) == 1

        handler.dismiss(exchange)
        assert exchange.state == PaymentState.FAILED

    @pytest.mark.asyncio
    async def test_unusable_network_fails_exchange(self, signer):
        body = {**CHALLENGE_BODY, "accepts": [{**REQUIREMENTS.to_accepts_entry(), "network": "eip155:abc"}]}
        agent = RecordingAgent(httpx.Response(402, json=body))
        handler = _handler(agent, signer)

        exchange = await handler.send("hi")
        with pytest.raises(PaymentChallengeFailure) as exc_info:
            await handler.pay_and_retry(exchange)

        assert exchange.state == PaymentState.FAILED
        assert exchange.challenge is None
        assert exc_info.value.challenge.requirements.network == "eip155:abc"
        assert len(agent.requests) == 1

    @pytest.mark.asyncio
    async def test_cannot_pay_fulfilled_exchange(self, signer):
        agent = RecordingAgent(httpx.Response(200, json={"reply": "ok"}))
        handler = _handler(agent, signer)

        exchange = await handler.send("hi")
        with pytest.raises(InvalidPaymentTransition):
            await handler.pay_and_retry(exchange)


# =============================================================================
# State Machine
# =============================================================================

class TestExchangeState:
    @pytest.mark.asyncio
    async def test_dismiss(self):
        agent = RecordingAgent(_challenge_response())
        handler = _handler(agent)

        exchange = await handler.send("hi")
        handler.dismiss(exchange)

        assert exchange.state == PaymentState.FAILED
        assert exchange.challenge is None
        assert exchange.is_terminal

    def test_illegal_transitions(self):
        exchange = PaymentExchange(message="hi")
        with pytest.raises(InvalidPaymentTransition):
            exchange.advance(PaymentState.FULFILLED)

        exchange.advance(PaymentState.SENT)
        exchange.advance(PaymentState.CHALLENGE_RECEIVED)
        exchange.advance(PaymentState.AWAITING_AUTHORIZATION)
        exchange.advance(PaymentState.RETRIED)
        with pytest.raises(InvalidPaymentTransition):
            exchange.advance(PaymentState.CHALLENGE_RECEIVED)

    def test_terminal_states(self):
        exchange = PaymentExchange(message="hi", state=PaymentState.FULFILLED)
        assert exchange.is_terminal
        with pytest.raises(InvalidPaymentTransition):
            exchange.advance(PaymentState.SENT)
