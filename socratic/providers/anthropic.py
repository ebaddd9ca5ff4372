"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import Callable

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from socratic.providers.base import (
    CompletionGateway,
    Content,
    MissingCredentialError,
    UpstreamError,
    ensure_json,
)

logger = logging.getLogger(__name__)

_ROLE_MAP = {"user": "user", "model": "assistant"}

# Claude has no JSON response mode; structured calls get this appended to the system prompt
_JSON_ONLY = "Respond with a single JSON object only. No prose, no code fences."


def _messages(content: Content) -> list[dict[str, str]]:
    if isinstance(content, str):
        return [{"role": "user", "content": content}]
    return [{"role": _ROLE_MAP.get(m.role, "user"), "content": m.text} for m in content]


class AnthropicProvider(CompletionGateway):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        self._clients: dict[str, anthropic_sdk.AsyncAnthropic] = {}

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _client(self, api_key: str | None) -> anthropic_sdk.AsyncAnthropic:
        key = (api_key or os.environ.get(self._config.api_key_env, "")).strip()
        if not key:
            raise MissingCredentialError(self._config.name, f"Missing API key: {self._config.api_key_env}")
        client = self._clients.get(key)
        if client is None:
            client = anthropic_sdk.AsyncAnthropic(api_key=key)
            self._clients[key] = client
        return client

    async def complete(
        self,
        content: Content,
        system_instruction: str,
        *,
        structured: bool = False,
        api_key: str | None = None,
    ) -> str:
        client = self._client(api_key)
        system = f"{system_instruction}\n\n{_JSON_ONLY}" if structured else system_instruction
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.messages.create(
                    model=self._config.model,
                    max_tokens=self._config.max_tokens,
                    temperature=self._config.temperature,
                    system=system or anthropic_sdk.NOT_GIVEN,
                    messages=_messages(content),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise UpstreamError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise UpstreamError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise UpstreamError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise UpstreamError(self._config.name, "No text blocks in response")

        text = "\n".join(text_blocks)

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        logger.info("Anthropic completion: %.2fs, %s tokens", latency, token_count)

        if structured:
            return ensure_json(self._config.name, text)
        return text

    async def complete_stream(
        self,
        content: Content,
        system_instruction: str,
        on_chunk: Callable[[str], None],
        *,
        api_key: str | None = None,
    ) -> str:
        client = self._client(api_key)
        parts: list[str] = []

        async def _consume() -> None:
            async with client.messages.stream(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                system=system_instruction or anthropic_sdk.NOT_GIVEN,
                messages=_messages(content),
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        parts.append(text)
                        on_chunk(text)

        start = time.monotonic()
        try:
            await asyncio.wait_for(_consume(), timeout=self._config.timeout_sec)
        except TimeoutError as exc:
            raise UpstreamError(self._config.name, f"Stream timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise UpstreamError(self._config.name, f"Stream failed: {exc}") from exc

        full_text = "".join(parts)
        if not full_text:
            raise UpstreamError(self._config.name, "Empty stream")

        logger.info("Anthropic stream: %.2fs, %d chunks", time.monotonic() - start, len(parts))
        return full_text
