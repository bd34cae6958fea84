"""Anthropic adapter: the single text-generation primitive used by every phase."""

from __future__ import annotations

import logging
import time

import anthropic

from article_engine.errors import AuthenticationError, BadRequestError, ProviderError

log = logging.getLogger(__name__)


class AnthropicGenerator:
    """Wraps ``AsyncAnthropic.messages.create`` and maps SDK errors onto ProviderError."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        max_retries: int = 2,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self.model = model
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key, max_retries=max_retries)

    async def aclose(self):
        await self._client.close()

    async def generate(
        self,
        prompt: str,
        system_prompt: str = "",
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> str:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        start = time.monotonic()
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.AuthenticationError as e:
            raise AuthenticationError(f"Anthropic authentication failed: {e}", 401) from e
        except anthropic.PermissionDeniedError as e:
            raise AuthenticationError(f"Anthropic permission denied: {e}", 403) from e
        except anthropic.BadRequestError as e:
            raise BadRequestError(f"Anthropic rejected the request: {e}", 400) from e
        except anthropic.APIStatusError as e:
            raise ProviderError(f"Anthropic returned {e.status_code}: {e}", e.status_code) from e
        except anthropic.APIConnectionError as e:
            raise ProviderError(f"Anthropic connection error: {e}") from e

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        log.info(
            f"Generated {len(text)} chars with {self.model} (stop={response.stop_reason})",
            extra={"endpoint": "messages", "response_time": round(time.monotonic() - start, 3)},
        )
        return text
