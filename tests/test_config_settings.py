from paychat.config import Settings


def test_recipient_address_alias(monkeypatch):
    """Demo recipient should load from the public web alias when present."""

    monkeypatch.delenv("DEMO_RECIPIENT_ADDRESS", raising=False)
    monkeypatch.setenv("NEXT_PUBLIC_DEMO_RECIPIENT_ADDRESS", "0x" + "ab" * 20)

    settings = Settings()

    assert settings.demo_recipient_address == "0x" + "ab" * 20


def test_token_address_aliases(monkeypatch):
    monkeypatch.delenv("TOKEN_ADDRESS", raising=False)
    monkeypatch.setenv("IDRX_ADDRESS", "0x" + "cd" * 20)
    monkeypatch.setenv("NEXT_PUBLIC_IDRX_ADDRESS", "0x" + "ef" * 20)

    settings = Settings()

    assert settings.token_address == "0x" + "cd" * 20


def test_claude_api_key_fallback(monkeypatch):
    """Legacy CLAUDE_API_KEY is used when ANTHROPIC_API_KEY is blank."""

    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("CLAUDE_API_KEY", "legacy-key")

    settings = Settings()

    assert settings.anthropic_api_key == "legacy-key"
    assert settings.has_llm_key is True


def test_anthropic_api_key_direct_env(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "primary-key")
    monkeypatch.setenv("CLAUDE_API_KEY", "legacy-key")

    settings = Settings()

    assert settings.anthropic_api_key == "primary-key"


def test_wallet_key(monkeypatch):
    monkeypatch.setenv("WALLET_PRIVATE_KEY", "0x" + "11" * 32)
    assert Settings().has_wallet is True

    monkeypatch.setenv("WALLET_PRIVATE_KEY", "")
    assert Settings().has_wallet is False


def test_payment_gate_settings(monkeypatch):
    monkeypatch.setenv("PAYMENT_REQUIRED", "true")
    monkeypatch.setenv("PAYMENT_AMOUNT", "2500")

    settings = Settings()

    assert settings.payment_required is True
    assert settings.payment_amount == 2500


def test_model_catalog_helpers():
    settings = Settings()

    assert settings.resolve_default_model("anthropic") == "claude-sonnet-4-20250514"
    assert settings.resolve_provider_for_model("CLAUDE-SONNET-4-20250514") == "anthropic"
    assert settings.resolve_provider_for_model("unknown") is None
    assert settings.resolve_default_model("other") == settings.llm_model
