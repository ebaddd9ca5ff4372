"""Debate arena: an opponent persona against the user (or an ally persona in the user's seat)."""

import logging
from collections.abc import Callable, Sequence
from enum import Enum

from config.config_loader import PromptsConfig, localize
from socratic.errors import PreconditionFailed
from socratic.loop import AlternatingSeatLoop, LoopEvent, Seat, StopPolicy, TurnRequest, default_phase_hint
from socratic.models import ChatMessage, LoopPhase, OrchestrationState, Persona, PhaseHint, Speaker, Turn, TurnKind
from socratic.providers.base import CompletionGateway, MissingCredentialError
from socratic.schemas import Scorecard, parse_artifact
from socratic.transcript import TranscriptStore, new_turn, to_chat_messages

logger = logging.getLogger(__name__)

OPPONENT = 0
DEFENDER = 1
JUDGE_AUTHOR = "Judge"


class Difficulty(str, Enum):
    EASY = "EASY"
    HARD = "HARD"
    EXTREME = "EXTREME"


class DebateLoop(AlternatingSeatLoop):
    """The opponent always opens. The defender seat is the live user until
    enable_ally() hands it to the ally persona; a user send() takes it back.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        store: TranscriptStore,
        prompts: PromptsConfig,
        *,
        max_rounds: int,
        difficulty: Difficulty = Difficulty.EASY,
        ally_api_key: str | None = None,
        stop_policy: StopPolicy | None = None,
        phase_hint: Callable[[int, int], PhaseHint] = default_phase_hint,
        language: str = "en",
        on_event: Callable[[LoopEvent], None] | None = None,
    ) -> None:
        super().__init__(
            gateway,
            store,
            prompts,
            max_rounds=max_rounds,
            stop_policy=stop_policy,
            phase_hint=phase_hint,
            language=language,
            on_event=on_event,
        )
        self._difficulty = Difficulty(difficulty)
        self._ally_api_key = ally_api_key
        self.scorecard: Scorecard | None = None

    @property
    def difficulty(self) -> Difficulty:
        return self._difficulty

    @property
    def ally_active(self) -> bool:
        return len(self._seats) > DEFENDER and not self._seats[DEFENDER].human

    async def _assign_seats(self, topic: str) -> list[Seat]:
        opponent = Persona(
            role_name="Opponent",
            goal=f"Oppose: {topic}",
            voice_instruction=self._prompts.difficulties[self._difficulty.value],
        )
        return [Seat("opponent", opponent), Seat("defender", human=True)]

    def _build_request(self, seat: Seat, turns: Sequence[Turn], hint: PhaseHint, override: bool) -> TurnRequest:
        dialogue = [t for t in turns if t.kind is TurnKind.DIALOGUE]

        if seat.seat_id == "opponent":
            opened = any(t.seat == "opponent" for t in dialogue)
            task = self._prompts.debate_rebuttal if opened else self._prompts.debate_opening.format(topic=self._topic)
            system = f"{seat.persona.voice_instruction.rstrip()}\n{task}"
            # The user's stance is the first thing the opponent hears
            content = [ChatMessage(role="user", text=f"I believe: {self._topic}")]
            content += to_chat_messages(dialogue, own_seat="opponent")
        else:
            system = self._prompts.debate_ally.format(topic=self._topic)
            content = to_chat_messages(dialogue, own_seat="defender")

        if override:
            system = f"{system.rstrip()}\n{self._prompts.debate_override}"
        return TurnRequest(
            content=content,
            system_instruction=localize(self._prompts, system, self._language),
            api_key=seat.api_key,
        )

    async def send(self, text: str) -> OrchestrationState:
        """The user speaks as defender. Cancels ally auto-play for this and later rounds.

        Raises:
            PreconditionFailed: The loop is not live or it is the opponent's turn.
        """
        text = text.strip()
        if not text:
            raise PreconditionFailed("Argument is empty")
        if self._phase not in (LoopPhase.RUNNING, LoopPhase.PAUSED):
            raise PreconditionFailed(f"Debate is {self._phase.value}")
        if self._active != DEFENDER:
            raise PreconditionFailed("Wait for the opponent to finish")

        if self.ally_active:
            logger.info("User took the defender seat back from the ally")
            self._seats[DEFENDER] = Seat("defender", human=True)
        self._cancel_seat(DEFENDER)
        self._commit(DEFENDER, Speaker.USER, text)

        if self._phase is LoopPhase.PAUSED:
            return await self.resume()
        return await self.run()

    async def enable_ally(self) -> OrchestrationState:
        """Hand the defender seat to the ally persona and keep the debate running.

        Raises:
            MissingCredentialError: No ally API key is configured.
            PreconditionFailed: The loop is not live.
        """
        if self._phase not in (LoopPhase.RUNNING, LoopPhase.PAUSED):
            raise PreconditionFailed(f"Debate is {self._phase.value}")
        if not self._ally_api_key:
            raise MissingCredentialError(self._gateway.name(), "No ally API key configured")

        ally = Persona(role_name="Ally", goal=f"Defend: {self._topic}")
        self._seats[DEFENDER] = Seat("defender", ally, api_key=self._ally_api_key)
        logger.info("Ally now holds the defender seat")
        if self._phase is LoopPhase.RUNNING:
            return await self.run()
        return self.state

    async def _synthesize(self, turns: Sequence[Turn]) -> Turn:
        labelled = []
        for turn in turns:
            if turn.kind is not TurnKind.DIALOGUE:
                continue
            label = {"opponent": "AI", "defender": "USER"}.get(turn.seat or "", turn.author.upper())
            labelled.append(f"{label}: {turn.content}")

        raw = await self._gateway.complete(
            "\n\n".join(labelled),
            localize(self._prompts, self._prompts.debate_judge.format(topic=self._topic), self._language),
            structured=True,
        )
        self.scorecard = parse_artifact(Scorecard, raw)
        logger.info("Debate graded: %s (%d/100)", self.scorecard.winner.value, self.scorecard.score)

        summary = f"Winner: {self.scorecard.winner.value} | Score: {self.scorecard.score}/100"
        if self.scorecard.commentary:
            summary = f"{summary}\n\n{self.scorecard.commentary}"
        return new_turn(Speaker.AGENT, summary, kind=TurnKind.ARTIFACT, author=JUDGE_AUTHOR)
