"""Five whys investigation: iterative "why?" questions ending in a root-cause analysis."""

import logging
from dataclasses import dataclass

from config.config_loader import PromptsConfig, localize
from socratic.errors import ConcurrentCallRejected, PreconditionFailed
from socratic.providers.base import CompletionGateway, UpstreamError
from socratic.schemas import RootCauseAnalysis, parse_artifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WhyStep:
    question: str
    answer: str


class FiveWhysInvestigation:
    """One investigation per instance.

    Each answered question is recorded only after the follow-up call succeeds,
    so a failed call can be retried with the same answer.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        prompts: PromptsConfig,
        depth: int = 5,
        language: str = "en",
    ) -> None:
        if depth < 1:
            raise ValueError(f"depth must be >= 1, got {depth}")
        self._gateway = gateway
        self._prompts = prompts
        self._depth = depth
        self._language = language
        self._problem: str | None = None
        self._steps: list[WhyStep] = []
        self._question: str | None = None
        self._analysis: RootCauseAnalysis | None = None
        self._busy = False

    @property
    def problem(self) -> str | None:
        return self._problem

    @property
    def steps(self) -> tuple[WhyStep, ...]:
        return tuple(self._steps)

    @property
    def current_question(self) -> str | None:
        return self._question

    @property
    def analysis(self) -> RootCauseAnalysis | None:
        return self._analysis

    @property
    def done(self) -> bool:
        return self._analysis is not None

    def _chain(self) -> str:
        return "\n".join(
            f"Why {i}: {step.question}\nAnswer: {step.answer}"
            for i, step in enumerate(self._steps, start=1)
        )

    async def _ask(self, last_answer: str) -> str:
        prompt = self._prompts.five_whys_prompt.format(
            problem=self._problem,
            chain=self._chain() or "(none yet)",
            last_answer=last_answer,
        )
        question = await self._gateway.complete(
            prompt, localize(self._prompts, self._prompts.five_whys_question, self._language)
        )
        question = question.strip()
        if not question:
            raise UpstreamError(self._gateway.name(), "Empty question")
        return question

    async def start(self, problem: str) -> str:
        """Begin the investigation and return the first "why?" question."""
        problem = problem.strip()
        if not problem:
            raise PreconditionFailed("Problem statement is empty")
        if self._problem is not None:
            raise PreconditionFailed("Investigation already started")
        if self._busy:
            raise ConcurrentCallRejected("A question is already being generated")

        self._busy = True
        try:
            self._problem = problem
            try:
                self._question = await self._ask(problem)
            except Exception:
                self._problem = None
                raise
        finally:
            self._busy = False
        logger.info("Five whys started (depth %d)", self._depth)
        return self._question

    async def answer(self, text: str) -> str | RootCauseAnalysis:
        """Record an answer; return the next question, or the analysis at full depth."""
        text = text.strip()
        if self.done:
            raise PreconditionFailed("Investigation is complete")
        if self._problem is None or self._question is None:
            raise PreconditionFailed("Investigation has not started")
        if not text:
            raise PreconditionFailed("Answer is empty")
        if self._busy:
            raise ConcurrentCallRejected("A question is already being generated")

        step = WhyStep(question=self._question, answer=text)
        self._busy = True
        try:
            if len(self._steps) + 1 >= self._depth:
                self._analysis = await self._analyze(self._steps + [step])
                self._steps.append(step)
                self._question = None
                logger.info("Five whys complete after %d steps", len(self._steps))
                return self._analysis

            next_question = await self._ask(text)
            self._steps.append(step)
            self._question = next_question
            return next_question
        finally:
            self._busy = False

    async def _analyze(self, steps: list[WhyStep]) -> RootCauseAnalysis:
        chain = "\n".join(f"Q: {s.question}\nA: {s.answer}" for s in steps)
        raw = await self._gateway.complete(
            f"Problem: {self._problem}\n\nChain:\n{chain}",
            localize(self._prompts, self._prompts.five_whys_analysis, self._language),
            structured=True,
        )
        return parse_artifact(RootCauseAnalysis, raw)
