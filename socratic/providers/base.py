"""Abstract completion gateway and the gateway error taxonomy."""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence

from socratic.models import ChatMessage

Content = str | Sequence[ChatMessage]

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class GatewayError(Exception):
    """Raised when a completion call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class MissingCredentialError(GatewayError):
    """No API key configured for the provider (or for the requested seat)."""


class UpstreamError(GatewayError):
    """Provider error, rate limit, empty response or timeout."""


class SchemaViolationError(GatewayError):
    """Structured output was requested but the response did not parse."""


def ensure_json(provider_name: str, text: str) -> str:
    """Return the JSON body of a structured response or raise SchemaViolationError.

    Tolerates a single markdown code fence around the body.
    """
    body = text.strip()
    match = _FENCE_RE.match(body)
    if match:
        body = match.group(1)
    try:
        json.loads(body)
    except ValueError as exc:
        raise SchemaViolationError(provider_name, f"Response is not valid JSON: {exc}") from exc
    return body


class CompletionGateway(ABC):
    """Abstract base for all text-generation providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def complete(
        self,
        content: Content,
        system_instruction: str,
        *,
        structured: bool = False,
        api_key: str | None = None,
    ) -> str:
        """Generate one response.

        Args:
            content: Plain prompt text or ordered role-tagged messages.
            system_instruction: System prompt for this call only.
            structured: Request machine-parseable JSON back.
            api_key: Per-call credential override.

        Returns:
            The response text (the JSON body when structured).

        Raises:
            MissingCredentialError: No key configured and none passed.
            UpstreamError: On API failure, timeout, or empty response.
            SchemaViolationError: Structured output requested but unparsable.
        """
        ...

    @abstractmethod
    async def complete_stream(
        self,
        content: Content,
        system_instruction: str,
        on_chunk: Callable[[str], None],
        *,
        api_key: str | None = None,
    ) -> str:
        """Stream one response, forwarding each text delta to on_chunk.

        Returns:
            The full concatenated text.

        Raises:
            MissingCredentialError, UpstreamError: As for complete().
        """
        ...
