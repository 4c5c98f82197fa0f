"""
Per-message request lifecycle of a chat thread.

send -> (402 -> user pays -> resend once) -> decode reply -> append to thread

Every user-initiated send ends in exactly one outcome: an agent reply
appended to the thread, a pending payment challenge, or an apology plus a
notification. Failures never propagate into the caller's event loop.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Protocol, Set

import httpx

from ...services.payment_challenge import (
    PaymentChallenge,
    PaymentChallengeFailure,
    PaymentChallengeHandler,
    PaymentError,
    PaymentExchange,
    PaymentState,
    SignerUnavailable,
)
from ...services.transaction_summary import (
    DirectiveGrammar,
    TransactionSummary,
    extract_summary,
    get_grammar,
)
from ..wallet.signer import SigningRejected
from .models import ConversationMessage
from .store import ConversationStore

logger = logging.getLogger(__name__)

# Preference order for the reply text in a JSON object body.
REPLY_FIELDS = ("reply", "message", "text", "result", "output", "content")

APOLOGIES: Dict[str, str] = {
    "en": "Sorry, something went wrong while processing your request. Please try again in a moment.",
    "id": "Maaf, terjadi kendala saat memproses permintaan. Coba lagi sebentar.",
}

GREETINGS: Dict[str, str] = {
    "en": "I'm your financial assistant. Ask about your Balance, an Expense summary, or have me prepare an IDRX transfer.",
    "id": "Saya asisten keuangan Anda. Tanyakan Saldo, ringkasan Pengeluaran, atau minta saya siapkan transfer IDRX.",
}


class ReplyDecodeError(ValueError):
    """The agent answered with a body that is not JSON."""


class SendInProgress(RuntimeError):
    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"A message is already being sent on thread {thread_id}")


class NoPendingChallenge(LookupError):
    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"No payment challenge pending on thread {thread_id}")


class Notifier(Protocol):
    def notify(self, level: str, message: str) -> None: ...


class LoggingNotifier:
    """Transient notifications routed to the log."""

    _LEVELS = {
        "error": logging.ERROR,
        "warning": logging.WARNING,
        "success": logging.INFO,
        "info": logging.INFO,
    }

    def notify(self, level: str, message: str) -> None:
        logger.log(self._LEVELS.get(level, logging.INFO), f"[{level}] {message}")


class SendOutcome(str, Enum):
    REPLIED = "replied"
    CHALLENGED = "challenged"
    FAILED = "failed"


@dataclass
class SendResult:
    outcome: SendOutcome
    thread_id: str
    message: Optional[ConversationMessage] = None
    summary: Optional[TransactionSummary] = None
    challenge: Optional[PaymentChallenge] = None
    error: Optional[str] = None


def decode_reply(response: httpx.Response) -> str:
    """Pull the assistant text out of a loosely specified response body."""

    try:
        data = response.json()
    except ValueError as exc:
        raise ReplyDecodeError(f"Agent reply is not JSON: {exc}") from exc

    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        for key in REPLY_FIELDS:
            value = data.get(key)
            if isinstance(value, str):
                return value
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


class ConversationOrchestrator:
    """Owns sends for every thread of a ``ConversationStore``."""

    def __init__(
        self,
        store: ConversationStore,
        handler: PaymentChallengeHandler,
        *,
        grammar: Optional[DirectiveGrammar] = None,
        fallback_address: Optional[str] = None,
        notifier: Optional[Notifier] = None,
        apology: Optional[str] = None,
    ):
        self.store = store
        self.handler = handler
        self.grammar = grammar or get_grammar()
        self.fallback_address = fallback_address
        self.notifier = notifier or LoggingNotifier()
        self.apology = apology or APOLOGIES.get(self.grammar.language, APOLOGIES["en"])
        self._in_flight: Set[str] = set()
        self._challenges: Dict[str, PaymentExchange] = {}

    def start_thread(self, title: Optional[str] = None) -> str:
        greeting = GREETINGS.get(self.grammar.language, GREETINGS["en"])
        return self.store.create_thread(title=title, greeting=greeting).thread_id

    def is_sending(self, thread_id: str) -> bool:
        return thread_id in self._in_flight

    def pending_challenge(self, thread_id: str) -> Optional[PaymentChallenge]:
        exchange = self._challenges.get(thread_id)
        return exchange.challenge if exchange else None

    def _begin(self, thread_id: str) -> None:
        self.store.get_thread(thread_id)
        if thread_id in self._in_flight:
            raise SendInProgress(thread_id)
        self._in_flight.add(thread_id)

    async def send(self, thread_id: str, text: str, *, append_user: bool = True) -> SendResult:
        """Send ``text`` on a thread.

        ``append_user=False`` is for callers that already put the text in the
        thread (quick-action buttons).
        """

        text = (text or "").strip()
        if not text:
            raise ValueError("Cannot send an empty message")

        self._begin(thread_id)
        try:
            # A new message supersedes an unpaid challenge.
            self._drop_challenge(thread_id)

            if append_user:
                self.store.append_message(thread_id, "user", text)

            try:
                exchange = await self.handler.send(text)
            except PaymentError as exc:
                return self._apologize(thread_id, exc)
            return self._settle(thread_id, exchange)
        finally:
            self._in_flight.discard(thread_id)

    async def pay_and_retry(self, thread_id: str) -> SendResult:
        """Pay the thread's pending challenge and resend its message (user action)."""

        exchange = self._challenges.get(thread_id)
        if exchange is None:
            raise NoPendingChallenge(thread_id)

        self._begin(thread_id)
        try:
            try:
                exchange = await self.handler.pay_and_retry(exchange)
            except (SignerUnavailable, SigningRejected) as exc:
                error = str(exc) or "Payment was not authorized"
                self.notifier.notify("error", error)
                return SendResult(
                    outcome=SendOutcome.CHALLENGED,
                    thread_id=thread_id,
                    challenge=exchange.challenge,
                    error=error,
                )
            except PaymentChallengeFailure as exc:
                self._challenges.pop(thread_id, None)
                return self._apologize(thread_id, exc, challenge=exc.challenge)
            except PaymentError as exc:
                self._challenges.pop(thread_id, None)
                return self._apologize(thread_id, exc)

            self._challenges.pop(thread_id, None)
            return self._settle(thread_id, exchange)
        finally:
            self._in_flight.discard(thread_id)

    def dismiss_challenge(self, thread_id: str) -> bool:
        return self._drop_challenge(thread_id)

    def _drop_challenge(self, thread_id: str) -> bool:
        exchange = self._challenges.pop(thread_id, None)
        if exchange is None:
            return False
        if exchange.state == PaymentState.CHALLENGE_RECEIVED:
            self.handler.dismiss(exchange)
        return True

    def _settle(self, thread_id: str, exchange: PaymentExchange) -> SendResult:
        if exchange.state == PaymentState.CHALLENGE_RECEIVED:
            self._challenges[thread_id] = exchange
            detail = exchange.challenge.details if exchange.challenge else None
            self.notifier.notify("warning", f"Payment required{f': {detail}' if detail else ''}")
            return SendResult(
                outcome=SendOutcome.CHALLENGED,
                thread_id=thread_id,
                challenge=exchange.challenge,
            )

        try:
            reply = decode_reply(exchange.response)
        except ReplyDecodeError as exc:
            return self._apologize(thread_id, exc)

        message = self.store.append_message(thread_id, "agent", reply)
        summary = extract_summary(
            reply,
            grammar=self.grammar,
            fallback_address=self.fallback_address,
        )
        if summary is not None:
            logger.info(
                f"Transfer proposal on thread {thread_id}: {summary.amount} to {summary.recipient_label}"
            )
        return SendResult(
            outcome=SendOutcome.REPLIED,
            thread_id=thread_id,
            message=message,
            summary=summary,
        )

    def _apologize(
        self,
        thread_id: str,
        error: Exception,
        challenge: Optional[PaymentChallenge] = None,
    ) -> SendResult:
        logger.warning(f"Send on thread {thread_id} failed: {error}")
        message = self.store.append_message(thread_id, "agent", self.apology)
        self.notifier.notify("error", str(error) or self.apology)
        return SendResult(
            outcome=SendOutcome.FAILED,
            thread_id=thread_id,
            message=message,
            challenge=challenge,
            error=str(error),
        )


def create_orchestrator(
    *,
    store: Optional[ConversationStore] = None,
    handler: Optional[PaymentChallengeHandler] = None,
    notifier: Optional[Notifier] = None,
) -> ConversationOrchestrator:
    """Orchestrator wired from settings: file-backed threads, configured agent and wallet."""

    from ...config import settings
    from ..wallet.signer import signer_from_settings
    from .store import JsonFileThreadPersistence

    if store is None:
        store = ConversationStore(JsonFileThreadPersistence(settings.threads_file))
    if handler is None:
        handler = PaymentChallengeHandler(
            settings.agent_url,
            signer=signer_from_settings(),
            timeout_s=settings.request_timeout_seconds,
        )
    return ConversationOrchestrator(
        store,
        handler,
        grammar=get_grammar(settings.directive_language),
        fallback_address=settings.demo_recipient_address,
        notifier=notifier,
    )


__all__ = [
    "APOLOGIES",
    "ConversationOrchestrator",
    "create_orchestrator",
    "GREETINGS",
    "LoggingNotifier",
    "NoPendingChallenge",
    "Notifier",
    "REPLY_FIELDS",
    "ReplyDecodeError",
    "SendInProgress",
    "SendOutcome",
    "SendResult",
    "decode_reply",
]
