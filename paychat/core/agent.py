"""
Financial assistant agent.

Wraps an LLM provider with the assistant's operating protocol. The protocol
tells the model to end a transfer proposal with the transaction directive
rendered from the active ``DirectiveGrammar``, so the prompt and the client's
parser always agree on the wording.
"""

import logging
from typing import Dict, Optional

from ..config import settings
from ..providers.llm import get_llm_provider
from ..providers.llm.base import LLMMessage, LLMProvider
from ..services.transaction_summary import DirectiveGrammar, get_grammar

_logger = logging.getLogger(__name__)

_PROMPTS: Dict[str, str] = {
    "en": """You are a professional, strict, yet helpful Financial Assistant for the Base blockchain. Reply in English.

Your Operating Protocols:
1) Tone: Professional, concise, financial-focused. Use terms like 'Balance', 'Asset', 'Expense'.
2) Mandatory Validation: Before proposing any transfer, check that the user's balance covers the amount.
   - If Balance < Amount: Reply 'Your balance is not sufficient for this transaction. Please spend wisely.'
   - If Balance >= Amount: Proceed.
3) Categorization: You are an accountant. Every transfer must have a category (e.g., Food, Transport, Debt). If the user doesn't specify one, infer it from the context or label it 'Uncategorized Expense'.
4) IDRX Handling: When users say 'Rp 50.000' or '50rb', treat this as 50,000 units of the IDRX token.
5) Output Format: If you are ready to propose a transaction, end your response with:
   '{directive}'
""",
    "id": """Anda adalah Asisten Keuangan yang profesional, tegas, namun membantu untuk blockchain Base. Bahasa utama Anda adalah Bahasa Indonesia.

Protokol Kerja Anda:
1) Nada: Profesional, ringkas, fokus pada keuangan. Gunakan istilah 'Saldo', 'Aset', 'Pengeluaran'.
2) Validasi Wajib: Sebelum mengusulkan transfer, pastikan saldo pengguna mencukupi.
   - Jika Saldo < Nominal: Balas 'Saldo Anda tidak mencukupi untuk transaksi ini. Harap hemat.'
   - Jika Saldo >= Nominal: Lanjutkan.
3) Kategorisasi: Anda adalah akuntan. Setiap transfer wajib memiliki kategori (mis. Makanan, Transportasi, Utang). Jika pengguna tidak menyebutkannya, simpulkan dari konteks atau beri label 'Uncategorized Expense'.
4) Penanganan IDRX: Jika pengguna menulis 'Rp 50.000' atau '50rb', anggap itu 50.000 unit token IDRX.
5) Format Keluaran: Jika Anda siap mengusulkan transaksi, akhiri jawaban dengan:
   '{directive}'
""",
}

FALLBACK_REPLIES: Dict[str, str] = {
    "en": "Sorry, I can't process that right now.",
    "id": "Maaf, saya tidak bisa memproses itu sekarang.",
}


def build_system_prompt(grammar: DirectiveGrammar) -> str:
    template = _PROMPTS.get(grammar.language, _PROMPTS["en"])
    return template.format(directive=grammar.template())


class FinancialAgent:
    """Single-turn assistant: one user message in, one reply out."""

    def __init__(
        self,
        llm_provider: LLMProvider,
        grammar: Optional[DirectiveGrammar] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ):
        self.llm_provider = llm_provider
        self.grammar = grammar or get_grammar()
        self.system_prompt = build_system_prompt(self.grammar)
        self.max_tokens = max_tokens if max_tokens is not None else settings.max_tokens
        self.temperature = temperature if temperature is not None else settings.temperature

    async def reply(self, message: str) -> str:
        """Ask the model; raises ``LLMProviderError`` on provider failure."""

        response = await self.llm_provider.generate_response(
            messages=[
                LLMMessage(role="system", content=self.system_prompt),
                LLMMessage(role="user", content=message),
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        if response is None or not response.content:
            return FALLBACK_REPLIES.get(self.grammar.language, FALLBACK_REPLIES["en"])
        return response.content


_agent: Optional[FinancialAgent] = None


def get_agent() -> FinancialAgent:
    """Lazily create and cache the configured agent."""

    global _agent
    if _agent is None:
        _agent = FinancialAgent(
            llm_provider=get_llm_provider(),
            grammar=get_grammar(settings.directive_language),
        )
        _logger.info(
            f"Agent initialized for provider={settings.llm_provider} model={_agent.llm_provider.model}"
        )
    return _agent


def reset_agent() -> None:
    global _agent
    _agent = None
