"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import os
import time
from collections.abc import Callable

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from socratic.providers.base import (
    CompletionGateway,
    Content,
    MissingCredentialError,
    UpstreamError,
    ensure_json,
)

logger = logging.getLogger(__name__)


class GeminiProvider(CompletionGateway):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        self._clients: dict[str, genai.Client] = {}

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _client(self, api_key: str | None) -> genai.Client:
        key = (api_key or os.environ.get(self._config.api_key_env, "")).strip()
        if not key:
            raise MissingCredentialError(self._config.name, f"Missing API key: {self._config.api_key_env}")
        # One client per credential so an override never shares quota state with the primary key
        client = self._clients.get(key)
        if client is None:
            client = genai.Client(api_key=key)
            self._clients[key] = client
        return client

    def _generation_config(self, system_instruction: str, structured: bool) -> genai_types.GenerateContentConfig:
        return genai_types.GenerateContentConfig(
            system_instruction=system_instruction or None,
            max_output_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
            response_mime_type="application/json" if structured else None,
        )

    @staticmethod
    def _contents(content: Content) -> str | list[genai_types.Content]:
        if isinstance(content, str):
            return content
        return [
            genai_types.Content(role=msg.role, parts=[genai_types.Part(text=msg.text)])
            for msg in content
        ]

    async def complete(
        self,
        content: Content,
        system_instruction: str,
        *,
        structured: bool = False,
        api_key: str | None = None,
    ) -> str:
        client = self._client(api_key)
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self._config.model,
                    contents=self._contents(content),
                    config=self._generation_config(system_instruction, structured),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise UpstreamError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise UpstreamError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise UpstreamError(self._config.name, "Empty response text")

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info(
            "Gemini %s: %.2fs, %s tokens",
            "structured" if structured else "completion",
            latency,
            token_count,
        )

        if structured:
            return ensure_json(self._config.name, response.text)
        return response.text

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
            stream = await client.aio.models.generate_content_stream(
                model=self._config.model,
                contents=self._contents(content),
                config=self._generation_config(system_instruction, structured=False),
            )
            async for chunk in stream:
                text = chunk.text
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

        logger.info("Gemini stream: %.2fs, %d chunks", time.monotonic() - start, len(parts))
        return full_text
