"""
Tests for x402 payment authorizations.

Covers:
- Network to chain id resolution
- Parsing payment requirements from a 402 body
- EIP-712 typed data and signer recovery
- X-PAYMENT header encoding/decoding
- Server-side verification failures
"""

import base64
import json

import pytest

from paychat.config import settings
from paychat.core.wallet import (
    InvalidPaymentHeader,
    LocalAccountSigner,
    PaymentRequirements,
    PaymentVerificationError,
    TypedDataSigner,
    build_authorization,
    build_typed_data,
    chain_id_for_network,
    decode_payment_header,
    encode_payment_header,
    recover_signer,
    signer_from_settings,
    verify_payment,
)

PAYER_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32
PAY_TO = "0x" + "ab" * 20
ASSET = "0x" + "cd" * 20
NOW = 1_700_000_000
NONCE = "0x" + "ef" * 32


@pytest.fixture
def requirements():
    return PaymentRequirements(
        scheme="exact",
        network="base-sepolia",
        max_amount_required=10_000,
        pay_to=PAY_TO,
        asset=ASSET,
        max_timeout_seconds=300,
    )


@pytest.fixture
def signer():
    return LocalAccountSigner(PAYER_KEY)


async def _signed_header(requirements, signer, *, payer=None, now=NOW, nonce=NONCE):
    authorization = build_authorization(requirements, payer or signer.address, now=now, nonce=nonce)
    signature = await signer.sign_typed_data(build_typed_data(requirements, authorization))
    return encode_payment_header(requirements, authorization, signature)


# =============================================================================
# Requirements
# =============================================================================

class TestPaymentRequirements:
    def test_chain_id_for_network(self):
        assert chain_id_for_network("base-sepolia") == 84532
        assert chain_id_for_network("Base") == 8453
        assert chain_id_for_network("eip155:10") == 10
        assert chain_id_for_network("unknown-net", default=1) == 1

    def test_chain_id_for_unknown_network(self):
        with pytest.raises(ValueError):
            chain_id_for_network("unknown-net")
        with pytest.raises(ValueError):
            chain_id_for_network("eip155:base")

    def test_from_accepts(self, requirements):
        body = {"x402Version": 1, "error": "payment required", "accepts": [requirements.to_accepts_entry()]}
        assert PaymentRequirements.from_accepts(body) == requirements

    def test_accepts_entry_uses_string_amount(self, requirements):
        entry = requirements.to_accepts_entry()
        assert entry["maxAmountRequired"] == "10000"
        assert entry["extra"] == {"name": "USDC", "version": "2"}

    @pytest.mark.parametrize(
        "body",
        [
            None,
            "payment required",
            {},
            {"accepts": []},
            {"accepts": ["exact"]},
            {"accepts": [{"scheme": "exact", "network": "base-sepolia"}]},
            {"accepts": [{"network": "base", "maxAmountRequired": "ten", "payTo": PAY_TO, "asset": ASSET}]},
        ],
    )
    def test_from_accepts_unusable_bodies(self, body):
        assert PaymentRequirements.from_accepts(body) is None

    def test_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "payment_pay_to", PAY_TO)
        monkeypatch.setattr(settings, "payment_asset", "not-an-address")
        monkeypatch.setattr(settings, "payment_amount", 2_500)

        requirements = PaymentRequirements.from_settings()

        assert requirements.pay_to == PAY_TO
        assert requirements.asset == "0x" + "0" * 40
        assert requirements.max_amount_required == 2_500
        assert requirements.network == settings.network


# =============================================================================
# Authorization and Signing
# =============================================================================

class TestAuthorization:
    def test_authorization_window(self, requirements, signer):
        authorization = build_authorization(requirements, signer.address, now=NOW)

        assert authorization.valid_after == NOW - 60
        assert authorization.valid_before == NOW + 300
        assert authorization.value == 10_000
        assert authorization.to.lower() == PAY_TO
        assert len(authorization.nonce) == 66

    def test_nonces_are_unique(self, requirements, signer):
        first = build_authorization(requirements, signer.address, now=NOW)
        second = build_authorization(requirements, signer.address, now=NOW)
        assert first.nonce != second.nonce

    def test_typed_data_domain(self, requirements, signer):
        authorization = build_authorization(requirements, signer.address, now=NOW, nonce=NONCE)
        typed_data = build_typed_data(requirements, authorization)

        assert typed_data["primaryType"] == "TransferWithAuthorization"
        assert typed_data["domain"]["chainId"] == 84532
        assert typed_data["domain"]["verifyingContract"].lower() == ASSET
        assert typed_data["message"]["nonce"] == bytes.fromhex("ef" * 32)

    def test_explicit_chain_id(self, requirements, signer):
        authorization = build_authorization(requirements, signer.address, now=NOW)
        assert build_typed_data(requirements, authorization, chain_id=8453)["domain"]["chainId"] == 8453

    @pytest.mark.asyncio
    async def test_signature_recovers_signer(self, requirements, signer):
        authorization = build_authorization(requirements, signer.address, now=NOW, nonce=NONCE)
        typed_data = build_typed_data(requirements, authorization)

        signature = await signer.sign_typed_data(typed_data)

        assert signature.startswith("0x")
        assert len(signature) == 2 + 65 * 2
        assert recover_signer(typed_data, signature) == signer.address

    def test_local_signer_satisfies_protocol(self, signer):
        assert isinstance(signer, TypedDataSigner)

    def test_signer_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "wallet_private_key", "")
        assert signer_from_settings() is None

        monkeypatch.setattr(settings, "wallet_private_key", PAYER_KEY)
        assert signer_from_settings().address == LocalAccountSigner(PAYER_KEY).address


# =============================================================================
# Header Encoding
# =============================================================================

class TestPaymentHeader:
    @pytest.mark.asyncio
    async def test_header_layout(self, requirements, signer):
        header = await _signed_header(requirements, signer)
        decoded = json.loads(base64.b64decode(header))

        assert decoded["x402Version"] == 1
        assert decoded["scheme"] == "exact"
        assert decoded["network"] == "base-sepolia"
        assert decoded["payload"]["authorization"]["value"] == "10000"
        assert decoded["payload"]["authorization"]["nonce"] == NONCE

    @pytest.mark.asyncio
    async def test_decode(self, requirements, signer):
        payment = decode_payment_header(await _signed_header(requirements, signer))

        assert payment.scheme == "exact"
        assert payment.authorization.from_address == signer.address
        assert payment.authorization.valid_before == NOW + 300

    @pytest.mark.parametrize(
        "header",
        [
            "",
            "not base64!!",
            base64.b64encode(b"not json").decode(),
            base64.b64encode(json.dumps({"payload": "x"}).encode()).decode(),
            base64.b64encode(json.dumps({"payload": {"signature": "0x1"}}).encode()).decode(),
            base64.b64encode(
                json.dumps(
                    {
                        "payload": {
                            "signature": "0x1",
                            "authorization": {
                                "from": "payer",
                                "to": PAY_TO,
                                "value": "1",
                                "validAfter": "0",
                                "validBefore": "1",
                                "nonce": NONCE,
                            },
                        }
                    }
                ).encode()
            ).decode(),
        ],
    )
    def test_decode_rejects_malformed_headers(self, header):
        with pytest.raises(InvalidPaymentHeader):
            decode_payment_header(header)


# =============================================================================
# Verification
# =============================================================================

class TestVerifyPayment:
    @pytest.mark.asyncio
    async def test_valid_payment(self, requirements, signer):
        header = await _signed_header(requirements, signer)
        payment = verify_payment(header, requirements, now=NOW)
        assert payment.authorization.value == 10_000

    @pytest.mark.asyncio
    async def test_expired_payment(self, requirements, signer):
        header = await _signed_header(requirements, signer)
        with pytest.raises(PaymentVerificationError, match="validity window"):
            verify_payment(header, requirements, now=NOW + 300)

    @pytest.mark.asyncio
    async def test_underpayment(self, requirements, signer):
        header = await _signed_header(requirements, signer)
        pricier = PaymentRequirements(
            scheme="exact",
            network="base-sepolia",
            max_amount_required=20_000,
            pay_to=PAY_TO,
            asset=ASSET,
        )
        with pytest.raises(PaymentVerificationError, match="required 20000"):
            verify_payment(header, pricier, now=NOW)

    @pytest.mark.asyncio
    async def test_wrong_recipient(self, requirements, signer):
        header = await _signed_header(requirements, signer)
        elsewhere = PaymentRequirements(
            scheme="exact",
            network="base-sepolia",
            max_amount_required=10_000,
            pay_to="0x" + "12" * 20,
            asset=ASSET,
        )
        with pytest.raises(PaymentVerificationError, match="wrong recipient"):
            verify_payment(header, elsewhere, now=NOW)

    @pytest.mark.asyncio
    async def test_wrong_network(self, requirements, signer):
        header = await _signed_header(requirements, signer)
        mainnet = PaymentRequirements(
            scheme="exact",
            network="base",
            max_amount_required=10_000,
            pay_to=PAY_TO,
            asset=ASSET,
        )
        with pytest.raises(PaymentVerificationError, match="wrong network"):
            verify_payment(header, mainnet, now=NOW)

    @pytest.mark.asyncio
    async def test_signature_from_someone_else(self, requirements, signer):
        victim = LocalAccountSigner(OTHER_KEY).address
        header = await _signed_header(requirements, signer, payer=victim)
        with pytest.raises(PaymentVerificationError, match="does not match the payer"):
            verify_payment(header, requirements, now=NOW)

    def test_garbage_header(self, requirements):
        with pytest.raises(PaymentVerificationError):
            verify_payment("garbage", requirements, now=NOW)

    @pytest.mark.parametrize("signature", ["0x1234", "0x" + "00" * 64 + "05", "0xnothex"])
    def test_unrecoverable_signature(self, requirements, signature):
        authorization = build_authorization(requirements, "0x" + "12" * 20, now=NOW, nonce=NONCE)
        header = encode_payment_header(requirements, authorization, signature)
        with pytest.raises(PaymentVerificationError, match="cannot be verified"):
            verify_payment(header, requirements, now=NOW)
