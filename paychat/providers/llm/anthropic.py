from typing import Any, List, Optional

import anthropic
from anthropic import AsyncAnthropic

from .base import (
    LLMMessage,
    LLMProvider,
    LLMProviderAPIError,
    LLMProviderAuthError,
    LLMProviderRateLimitError,
    LLMResponse,
)


class AnthropicProvider(LLMProvider):
    """Claude via the Messages API"""

    name = "anthropic"

    def _create_client(self, **client_options: Any) -> AsyncAnthropic:
        if self.timeout_s is not None:
            client_options.setdefault("timeout", self.timeout_s)
        return AsyncAnthropic(api_key=self.api_key, **client_options)

    async def _complete(
        self,
        system: Optional[str],
        dialogue: List[LLMMessage],
        max_tokens: int,
        temperature: Optional[float],
    ) -> LLMResponse:
        params: dict = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": m.role, "content": m.content} for m in dialogue],
        }
        if system:
            params["system"] = system
        if temperature is not None:
            params["temperature"] = temperature

        try:
            message = await self.client.messages.create(**params)
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as exc:
            raise LLMProviderAuthError(f"Anthropic rejected the API key: {exc}") from exc
        except anthropic.RateLimitError as exc:
            raise LLMProviderRateLimitError(f"Anthropic rate limit exceeded: {exc}") from exc
        except anthropic.APIError as exc:
            raise LLMProviderAPIError(f"Anthropic API error: {exc}") from exc

        text = "".join(
            block.text for block in (message.content or []) if getattr(block, "type", None) == "text"
        )
        usage = getattr(message, "usage", None)
        return LLMResponse(
            content=text or None,
            model=self.model,
            input_tokens=getattr(usage, "input_tokens", None),
            output_tokens=getattr(usage, "output_tokens", None),
            stop_reason=getattr(message, "stop_reason", None),
        )
