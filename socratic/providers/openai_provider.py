"""OpenAI provider using openai SDK. Also serves OpenAI-compatible APIs via base_url."""

import asyncio
import logging
import os
import time
from collections.abc import Callable

from openai import AsyncOpenAI

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


def _messages(content: Content, system_instruction: str) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if system_instruction:
        messages.append({"role": "system", "content": system_instruction})
    if isinstance(content, str):
        messages.append({"role": "user", "content": content})
    else:
        messages.extend({"role": _ROLE_MAP.get(m.role, "user"), "content": m.text} for m in content)
    return messages


class OpenAIProvider(CompletionGateway):
    """OpenAI provider via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        self._clients: dict[str, AsyncOpenAI] = {}

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _client(self, api_key: str | None) -> AsyncOpenAI:
        key = (api_key or os.environ.get(self._config.api_key_env, "")).strip()
        if not key:
            raise MissingCredentialError(self._config.name, f"Missing API key: {self._config.api_key_env}")
        client = self._clients.get(key)
        if client is None:
            client = AsyncOpenAI(api_key=key, base_url=self._config.base_url)
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
        extra: dict = {"response_format": {"type": "json_object"}} if structured else {}
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=self._config.model,
                    messages=_messages(content, system_instruction),
                    max_tokens=self._config.max_tokens,
                    temperature=self._config.temperature,
                    **extra,
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise UpstreamError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise UpstreamError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise UpstreamError(self._config.name, "Empty response content")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.total_tokens

        logger.info("OpenAI completion: %.2fs, %s tokens", latency, token_count)

        if structured:
            return ensure_json(self._config.name, choice.message.content)
        return choice.message.content

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
            stream = await client.chat.completions.create(
                model=self._config.model,
                messages=_messages(content, system_instruction),
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content
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

        logger.info("OpenAI stream: %.2fs, %d chunks", time.monotonic() - start, len(parts))
        return full_text
