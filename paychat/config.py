import os

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    def model_post_init(self, __context: Any) -> None:
        """Ensure we pick up legacy environment variable aliases."""

        super().model_post_init(__context)

        if not self.anthropic_api_key:
            fallback = os.getenv("CLAUDE_API_KEY")
            if fallback:
                object.__setattr__(self, "anthropic_api_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="auto", description="Log output: json, console, or auto (console on a terminal)")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Origins allowed to call the API")

    # Client Settings
    agent_url: str = Field(
        default="http://127.0.0.1:8000/api/agent",
        description="Agent endpoint the chat client posts messages to",
    )
    request_timeout_seconds: int = Field(default=30, description="Request timeout")
    threads_file: Path = Field(
        default=BASE_DIR / ".paychat" / "threads.json",
        description="Snapshot file holding the persisted chat threads",
    )

    # Transaction Directive
    directive_language: str = Field(
        default="en",
        description="Language of the transaction directive the assistant writes (en, id)",
    )
    demo_recipient_address: str = Field(
        default="",
        description="Fallback recipient used when the assistant names a recipient instead of an address",
        validation_alias=AliasChoices(
            "demo_recipient_address",
            "DEMO_RECIPIENT_ADDRESS",
            "NEXT_PUBLIC_DEMO_RECIPIENT_ADDRESS",
        ),
    )
    token_address: str = Field(
        default="",
        description="ERC-20 token transferred when a proposal is signed",
        validation_alias=AliasChoices("token_address", "IDRX_ADDRESS", "NEXT_PUBLIC_IDRX_ADDRESS"),
    )

    # Chain
    chain_id: int = Field(default=84532, description="EVM chain id (Base Sepolia)")
    network: str = Field(default="base-sepolia", description="Network name used in payment requirements")

    # LLM Provider Settings
    llm_provider: str = Field(default="anthropic", description="Default LLM provider")
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    llm_model: str = Field(default="claude-sonnet-4-20250514", description="Default LLM model")
    max_tokens: int = Field(default=1024, description="Maximum tokens for LLM response")
    temperature: float = Field(default=0.2, description="LLM temperature setting")
    provider_models_catalog: Dict[str, List[Dict[str, Any]]] = Field(
        default_factory=lambda: {
            "anthropic": [
                {
                    "id": "claude-sonnet-4-20250514",
                    "label": "Claude Sonnet 4",
                    "description": "Balanced depth and latency for daily use.",
                    "default": True,
                },
            ],
        },
        description="Provider models metadata",
    )

    # Payment Gate (server side)
    payment_required: bool = Field(
        default=False,
        description="Require an X-PAYMENT authorization on agent requests",
    )
    payment_pay_to: str = Field(default="", description="Address that receives agent payments")
    payment_asset: str = Field(default="", description="EIP-3009 token contract used for agent payments")
    payment_amount: int = Field(default=10000, ge=0, description="Price per agent request in smallest units")
    payment_token_name: str = Field(default="USDC", description="EIP-712 domain name of the payment token")
    payment_token_version: str = Field(default="2", description="EIP-712 domain version of the payment token")
    payment_validity_seconds: int = Field(default=300, ge=1, description="Lifetime of a signed authorization")
    payment_challenge_detail: str = Field(
        default='X402 scheme="exact"',
        description="Value sent in WWW-Authenticate on payment challenges",
    )

    # Client Wallet
    wallet_private_key: str = Field(
        default="",
        description="Private key used by the CLI to sign payment authorizations",
        validation_alias=AliasChoices("wallet_private_key", "WALLET_PRIVATE_KEY"),
    )

    @property
    def has_anthropic_key(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def has_llm_key(self) -> bool:
        """Check if we have an API key for the configured LLM provider"""
        if self.llm_provider.lower() in ["anthropic", "claude"]:
            return self.has_anthropic_key
        return False

    @property
    def has_wallet(self) -> bool:
        return bool(self.wallet_private_key)

    def resolve_default_model(self, provider: str) -> str:
        provider_lower = provider.lower()
        options = self.provider_models_catalog.get(provider_lower, [])
        for option in options:
            default_flag = option.get("default")
            if isinstance(default_flag, str):
                is_default = default_flag.lower() in {"true", "1", "yes"}
            else:
                is_default = bool(default_flag)
            if is_default:
                return option.get("id", self.llm_model)
        if options:
            return options[0].get("id", self.llm_model)
        return self.llm_model

    def resolve_provider_for_model(self, model_id: str) -> Optional[str]:
        target = (model_id or "").strip().lower()
        if not target:
            return None
        for provider, options in self.provider_models_catalog.items():
            for option in options:
                option_id = option.get("id")
                if option_id and option_id.lower() == target:
                    return provider
        return None


# Global settings instance
settings = Settings()
