"""Final synthesis: flatten a transcript, call the gateway once, return the artifact text."""

import logging
from collections.abc import Iterable

from config.config_loader import PromptsConfig, localize
from socratic.models import Turn
from socratic.providers.base import CompletionGateway, UpstreamError
from socratic.transcript import flatten_turns

logger = logging.getLogger(__name__)


def format_transcript(turns: Iterable[Turn]) -> str:
    """Format turns into a single transcript string, one block per turn."""
    return "\n\n".join(f"{t.author or t.speaker.value}: {t.content}" for t in turns)


async def condense(
    gateway: CompletionGateway,
    turns: Iterable[Turn],
    topic: str,
    prompts: PromptsConfig,
    language: str = "en",
) -> str:
    """Collapse a finished discussion into one structured plan.

    The result replaces the working transcript for display; redundant
    back-and-forth is dropped by instruction.

    Raises:
        GatewayError: If the condensation call fails.
        UpstreamError: If the gateway returns blank text.
    """
    transcript = format_transcript(turns)
    system = localize(prompts, prompts.condense.format(topic=topic), language)

    logger.info("Condensing %d characters of transcript via %s", len(transcript), gateway.name())
    result = await gateway.complete(transcript, system)

    if not result.strip():
        raise UpstreamError(gateway.name(), "Condensation returned empty content")
    return result.strip()


async def synthesize_note(
    gateway: CompletionGateway,
    turns: Iterable[Turn],
    prompts: PromptsConfig,
    language: str = "en",
) -> str:
    """Turn a dialogue into a structured markdown note (summary, diagram, comparison, tags)."""
    history = flatten_turns(turns)
    prompt = localize(prompts, prompts.note_synthesis.format(history=history), language)

    logger.info("Synthesizing note via %s", gateway.name())
    result = await gateway.complete(prompt, "")

    if not result.strip():
        raise UpstreamError(gateway.name(), "Note synthesis returned empty content")
    return result.strip()
