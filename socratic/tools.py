"""One-shot thinking tools: a single request/response each, no transcript."""

import logging

from config.config_loader import PromptsConfig, localize
from socratic.errors import PreconditionFailed
from socratic.providers.base import CompletionGateway, GatewayError, UpstreamError
from socratic.schemas import DevilsDefinition, parse_artifact

logger = logging.getLogger(__name__)

FALLBACK_TITLE = "New Note"
_MAX_TITLE_LEN = 60


async def first_principles(
    gateway: CompletionGateway,
    prompts: PromptsConfig,
    problem: str,
    language: str = "en",
) -> str:
    """Deconstruct a problem into common illusions, core truths and a rebuilt solution."""
    if not problem.strip():
        raise PreconditionFailed("Problem statement is empty")
    text = await gateway.complete(problem.strip(), localize(prompts, prompts.first_principles, language))
    if not text.strip():
        raise UpstreamError(gateway.name(), "Empty analysis")
    return text.strip()


async def devils_dictionary(
    gateway: CompletionGateway,
    prompts: PromptsConfig,
    word: str,
    language: str = "en",
) -> DevilsDefinition:
    if not word.strip():
        raise PreconditionFailed("Word is empty")
    raw = await gateway.complete(
        word.strip(),
        localize(prompts, prompts.devils_dictionary, language),
        structured=True,
    )
    return parse_artifact(DevilsDefinition, raw)


async def generate_title(
    gateway: CompletionGateway,
    prompts: PromptsConfig,
    first_message: str,
    language: str = "en",
) -> str:
    """Short session title from the first user message. Never raises on gateway errors."""
    prompt = localize(prompts, prompts.title.format(message=first_message), language)
    try:
        text = await gateway.complete(prompt, "")
    except GatewayError as exc:
        logger.warning("Title generation failed: %s", exc)
        return FALLBACK_TITLE
    title = text.strip().strip("\"'").strip()
    return title[:_MAX_TITLE_LEN] or FALLBACK_TITLE
