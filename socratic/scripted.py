"""Scripted multi-phase runs: one structured call, then a paced reveal of the result."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from config.config_loader import PromptsConfig, RevealConfig, localize
from socratic.errors import PreconditionFailed
from socratic.providers.base import CompletionGateway
from socratic.schemas import DecisionArtifact, SixHatsArtifact, parse_artifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RevealPacing:
    reaction_delay: float = 0.8
    debate_intro_delay: float = 1.5
    debate_line_delay: float = 1.5
    verdict_delay: float = 2.5
    hat_delay: float = 0.6

    @classmethod
    def from_config(cls, config: RevealConfig) -> "RevealPacing":
        return cls(
            reaction_delay=config.reaction_delay_sec,
            debate_intro_delay=config.debate_intro_delay_sec,
            debate_line_delay=config.debate_line_delay_sec,
            verdict_delay=config.verdict_delay_sec,
            hat_delay=config.hat_delay_sec,
        )

    @classmethod
    def instant(cls) -> "RevealPacing":
        return cls(0.0, 0.0, 0.0, 0.0, 0.0)


class RevealEventKind(str, Enum):
    REACTION_ADDED = "REACTION_ADDED"
    DEBATE_LINE_ADDED = "DEBATE_LINE_ADDED"
    HAT_REVEALED = "HAT_REVEALED"
    VERDICT_READY = "VERDICT_READY"


@dataclass(frozen=True)
class RevealEvent:
    kind: RevealEventKind
    index: int
    payload: Any


Artifact = DecisionArtifact | SixHatsArtifact


class ScriptedOrchestrator:
    def __init__(self, gateway: CompletionGateway, prompts: PromptsConfig, language: str = "en") -> None:
        self._gateway = gateway
        self._prompts = prompts
        self._language = language

    async def run_decision(self, problem: str, options: str) -> DecisionArtifact:
        """Simulate the five-persona board meeting over a problem and its options.

        Raises:
            ArtifactSchemaError: The response is not a valid board transcript.
            GatewayError: The upstream call failed.
        """
        if not problem.strip():
            raise PreconditionFailed("Problem statement is empty")
        content = f"Problem: {problem.strip()}\nCurrent Options: {options.strip() or '(none given)'}"
        raw = await self._gateway.complete(
            content,
            localize(self._prompts, self._prompts.decision_lab, self._language),
            structured=True,
        )
        artifact = parse_artifact(DecisionArtifact, raw)
        logger.info(
            "Decision board ready: %d reactions, %d debate lines",
            len(artifact.reactions), len(artifact.debate),
        )
        return artifact

    async def run_six_hats(self, topic: str) -> SixHatsArtifact:
        if not topic.strip():
            raise PreconditionFailed("Topic is empty")
        raw = await self._gateway.complete(
            topic.strip(),
            localize(self._prompts, self._prompts.six_hats, self._language),
            structured=True,
        )
        return parse_artifact(SixHatsArtifact, raw)


async def reveal(
    artifact: Artifact,
    pacing: RevealPacing | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> AsyncIterator[RevealEvent]:
    """Yield the artifact piece by piece with presentation delays in between.

    Decision artifacts yield every reaction, then every debate line, then the
    verdict. Six-hats reports yield one event per hat in fixed order, then the
    whole report.
    """
    pacing = pacing or RevealPacing()

    if isinstance(artifact, DecisionArtifact):
        for i, reaction in enumerate(artifact.reactions):
            if i:
                await sleep(pacing.reaction_delay)
            yield RevealEvent(RevealEventKind.REACTION_ADDED, i, reaction)

        await sleep(pacing.debate_intro_delay)
        for i, line in enumerate(artifact.debate):
            if i:
                await sleep(pacing.debate_line_delay)
            yield RevealEvent(RevealEventKind.DEBATE_LINE_ADDED, i, line)

        await sleep(pacing.verdict_delay)
        yield RevealEvent(RevealEventKind.VERDICT_READY, 0, artifact.verdict)
        return

    for i, (name, hat) in enumerate(artifact.hats()):
        if i:
            await sleep(pacing.hat_delay)
        yield RevealEvent(RevealEventKind.HAT_REVEALED, i, (name, hat))
    yield RevealEvent(RevealEventKind.VERDICT_READY, 0, artifact)
