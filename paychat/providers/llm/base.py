"""Provider-neutral chat completion interface used by the financial agent."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel


class LLMMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class LLMResponse(BaseModel):
    content: Optional[str] = None
    model: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    stop_reason: Optional[str] = None
    latency_ms: Optional[float] = None

    @property
    def truncated(self) -> bool:
        return self.stop_reason == "max_tokens"


class LLMProviderError(Exception):
    """Base exception for LLM provider errors"""

    retryable = False


class LLMProviderAuthError(LLMProviderError):
    """Missing, invalid or unauthorized API key"""


class LLMProviderRateLimitError(LLMProviderError):
    retryable = True


class LLMProviderAPIError(LLMProviderError):
    """Provider unreachable, timed out or answered with an error"""

    retryable = True


def split_system(messages: List[LLMMessage]) -> Tuple[Optional[str], List[LLMMessage]]:
    """Separate system instructions from the dialogue.

    Providers take the system prompt out of band; several system messages are
    joined with a blank line in their original order.
    """

    system_parts = [m.content for m in messages if m.role == "system"]
    dialogue = [m for m in messages if m.role != "system"]
    return ("\n\n".join(system_parts) or None), dialogue


class LLMProvider(ABC):
    """One configured model behind a vendor SDK."""

    name = "base"

    def __init__(self, api_key: str, model: str, *, timeout_s: Optional[float] = None, **client_options: Any):
        if not model:
            raise ValueError(f"{self.__class__.__name__} requires a model")
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self.logger = logging.getLogger(f"{__name__}.{self.name}")
        self.client = self._create_client(**client_options)

    @abstractmethod
    def _create_client(self, **client_options: Any) -> Any:
        """Build the vendor SDK client"""

    @abstractmethod
    async def _complete(
        self,
        system: Optional[str],
        dialogue: List[LLMMessage],
        max_tokens: int,
        temperature: Optional[float],
    ) -> LLMResponse:
        """Run one completion; raise an ``LLMProviderError`` subclass on failure"""

    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> LLMResponse:
        """Complete a conversation.

        Args:
            messages: Conversation; "system" messages become the system prompt
            max_tokens: Cap on generated tokens (default 1024)
            temperature: Sampling temperature (provider default when None)
        """
        system, dialogue = split_system(messages)
        if not dialogue:
            raise ValueError("At least one user or assistant message is required")

        started = time.perf_counter()
        try:
            response = await self._complete(system, dialogue, max_tokens or 1024, temperature)
        except LLMProviderError as exc:
            self.logger.error(f"{self.name} completion failed ({self.model}): {exc}")
            raise

        response.latency_ms = round((time.perf_counter() - started) * 1000, 1)
        if response.truncated:
            self.logger.warning(f"{self.name} reply truncated at {max_tokens or 1024} tokens")
        return response

    async def health_check(self) -> Dict[str, Any]:
        """Send a tiny prompt and report whether the provider answered."""

        status: Dict[str, Any] = {"provider": self.name, "model": self.model}
        try:
            response = await self.generate_response(
                [LLMMessage(role="user", content="ping")],
                max_tokens=8,
                temperature=0,
            )
        except LLMProviderError as exc:
            status.update(status="error", error=str(exc))
            return status

        status.update(status="healthy", latency_ms=response.latency_ms)
        return status
