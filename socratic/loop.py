"""Alternating-seat loop: two seats take turns over a shared transcript.

The loop is an explicit state machine:

    SETUP -> DISPATCHING -> RUNNING <-> PAUSED -> SYNTHESIZING -> DONE

Subclasses decide who sits in each seat and what each seat is asked; the
base class owns scheduling, the stop-token floor, interjections, pausing
and the final synthesis.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from config.config_loader import LoopPolicyConfig, PromptsConfig
from socratic.errors import ConcurrentCallRejected, PreconditionFailed
from socratic.models import LoopPhase, OrchestrationState, Persona, PhaseHint, Speaker, Turn, TurnKind
from socratic.providers.base import CompletionGateway, Content, GatewayError
from socratic.synthesis import condense
from socratic.transcript import USER_AUTHOR, TranscriptStore, new_turn

logger = logging.getLogger(__name__)

SYNTHESIS_AUTHOR = "Synthesis"


@dataclass(frozen=True)
class Seat:
    seat_id: str
    persona: Persona | None = None
    human: bool = False
    api_key: str | None = None

    @property
    def label(self) -> str:
        if self.persona is not None:
            return self.persona.role_name
        return USER_AUTHOR if self.human else self.seat_id.title()


@dataclass(frozen=True)
class StopPolicy:
    token: str = "[[DONE]]"
    floor_ratio: float = 0.5
    min_floor_rounds: int = 2
    auto_pause_on_interject: bool = False

    @classmethod
    def from_config(cls, config: LoopPolicyConfig) -> "StopPolicy":
        return cls(
            token=config.stop_token,
            floor_ratio=config.floor_ratio,
            min_floor_rounds=config.min_floor_rounds,
            auto_pause_on_interject=config.auto_pause_on_interject,
        )

    def floor(self, max_rounds: int) -> int:
        """Rounds that must be completed before a stop token is honored."""
        return max(self.min_floor_rounds, int(max_rounds * self.floor_ratio))

    def honors(self, rounds_completed: int, max_rounds: int) -> bool:
        return rounds_completed >= self.floor(max_rounds)

    def scan(self, text: str) -> tuple[str, bool]:
        """Return (text without the token, whether the token was present)."""
        if self.token not in text:
            return text.strip(), False
        return text.replace(self.token, "").strip(), True


def default_phase_hint(round_number: int, max_rounds: int) -> PhaseHint:
    """Round numbers are 1-based: the round about to be generated."""
    if round_number <= 2:
        return PhaseHint.EXPLORATION
    if round_number < max_rounds - 1:
        return PhaseHint.CRITIQUE_REFINE
    return PhaseHint.CONVERGENCE


class LoopEventKind(str, Enum):
    PHASE_CHANGED = "PHASE_CHANGED"
    TURN_COMMITTED = "TURN_COMMITTED"
    TURN_DISCARDED = "TURN_DISCARDED"
    STOP_TOKEN_IGNORED = "STOP_TOKEN_IGNORED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class LoopEvent:
    kind: LoopEventKind
    state: OrchestrationState
    turn: Turn | None = None
    error: Exception | None = None


@dataclass(frozen=True)
class TurnRequest:
    content: Content
    system_instruction: str
    api_key: str | None = None


class AlternatingSeatLoop(ABC):
    """Shared scheduling for the think tank and the debate arena.

    At most one call is outstanding per seat. Pausing never cancels a call in
    flight: its result still commits, the loop just stops advancing. Results
    that arrive after the seat was reassigned or the loop was stopped are
    discarded.
    """

    human_author: str = USER_AUTHOR

    def __init__(
        self,
        gateway: CompletionGateway,
        store: TranscriptStore,
        prompts: PromptsConfig,
        *,
        max_rounds: int,
        stop_policy: StopPolicy | None = None,
        phase_hint: Callable[[int, int], PhaseHint] = default_phase_hint,
        language: str = "en",
        on_event: Callable[[LoopEvent], None] | None = None,
    ) -> None:
        if max_rounds < 1:
            raise ValueError(f"max_rounds must be >= 1, got {max_rounds}")
        self._gateway = gateway
        self._store = store
        self._prompts = prompts
        self._max_rounds = max_rounds
        self._stop_policy = stop_policy or StopPolicy()
        self._phase_hint = phase_hint
        self._language = language
        self._on_event = on_event

        self._phase = LoopPhase.SETUP
        self._seats: list[Seat] = []
        self._active = 0
        self._rounds = 0
        self._topic = ""
        self._session_id: str | None = None
        self._awaiting: set[int] = set()
        self._epochs: list[int] = []
        self._override_pending = False
        self._driving = False
        self._finishing = False
        self._synthesis_pending = False
        self.last_error: Exception | None = None
        self.artifact: Turn | None = None

    # --- subclass hooks ---

    @abstractmethod
    async def _assign_seats(self, topic: str) -> list[Seat]:
        """Fill the seats for a new run. Runs during DISPATCHING."""

    @abstractmethod
    def _build_request(self, seat: Seat, turns: Sequence[Turn], hint: PhaseHint, override: bool) -> TurnRequest:
        """Build the call for the seat about to speak."""

    async def _synthesize(self, turns: Sequence[Turn]) -> Turn:
        text = await condense(
            self._gateway,
            [t for t in turns if t.kind is TurnKind.DIALOGUE],
            self._topic,
            self._prompts,
            self._language,
        )
        return new_turn(Speaker.AGENT, text, kind=TurnKind.ARTIFACT, author=SYNTHESIS_AUTHOR)

    # --- state ---

    @property
    def state(self) -> OrchestrationState:
        return OrchestrationState(
            phase=self._phase,
            active_speaker_index=self._active,
            rounds_completed=self._rounds,
            max_rounds=self._max_rounds,
        )

    @property
    def phase(self) -> LoopPhase:
        return self._phase

    @property
    def topic(self) -> str:
        return self._topic

    @property
    def seats(self) -> tuple[Seat, ...]:
        return tuple(self._seats)

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def turns(self) -> tuple[Turn, ...]:
        if self._session_id is None:
            return ()
        return self._store.get_session(self._session_id).turns

    @property
    def stop_policy(self) -> StopPolicy:
        return self._stop_policy

    def _emit(self, kind: LoopEventKind, turn: Turn | None = None, error: Exception | None = None) -> None:
        if self._on_event:
            self._on_event(LoopEvent(kind=kind, state=self.state, turn=turn, error=error))

    def _set_phase(self, phase: LoopPhase) -> None:
        if phase is self._phase:
            return
        logger.info("Loop %s -> %s (round %d/%d)", self._phase.value, phase.value, self._rounds, self._max_rounds)
        self._phase = phase
        if phase is LoopPhase.SYNTHESIZING:
            self._synthesis_pending = True
        elif phase is LoopPhase.DONE:
            self._synthesis_pending = False
        self._emit(LoopEventKind.PHASE_CHANGED)

    def _cancel_seat(self, index: int) -> None:
        # Any result still in flight for this seat is dropped on arrival
        self._epochs[index] += 1

    # --- lifecycle ---

    async def start(self, topic: str) -> OrchestrationState:
        """Assign the seats and open a session for the run.

        Raises:
            PreconditionFailed: Not in SETUP, or the topic is empty.
            GatewayError: Seat assignment failed; the loop is back in SETUP.
        """
        if self._phase is not LoopPhase.SETUP:
            raise PreconditionFailed(f"Cannot start from {self._phase.value}")
        topic = topic.strip()
        if not topic:
            raise PreconditionFailed("Topic is empty")

        self._topic = topic
        self._set_phase(LoopPhase.DISPATCHING)
        try:
            seats = await self._assign_seats(topic)
        except Exception as exc:
            logger.warning("Seat assignment failed: %s", exc)
            self.last_error = exc
            self._set_phase(LoopPhase.SETUP)
            self._emit(LoopEventKind.ERROR, error=exc)
            raise

        self._seats = list(seats)
        self._epochs = [0] * len(self._seats)
        self._active = 0
        self._rounds = 0
        self.last_error = None
        self._session_id = self._store.create_session(welcome=None, title=topic).id
        logger.info("Seats: %s", ", ".join(s.label for s in self._seats))
        self._set_phase(LoopPhase.RUNNING)
        return self.state

    def _can_dispatch(self) -> bool:
        if self._phase is not LoopPhase.RUNNING or self._rounds >= self._max_rounds:
            return False
        seat = self._seats[self._active]
        if seat.human or self._active in self._awaiting:
            return False
        turns = self.turns
        return not (turns and turns[-1].seat == seat.seat_id)

    async def advance(self) -> bool:
        """Generate one turn for the active seat.

        Returns True while the loop should keep driving.

        Raises:
            ConcurrentCallRejected: A call for the active seat is already outstanding.
            PreconditionFailed: The loop is not RUNNING or the active seat is a waiting human.
        """
        if self._phase is not LoopPhase.RUNNING:
            raise PreconditionFailed(f"Cannot advance while {self._phase.value}")
        index = self._active
        if index in self._awaiting:
            raise ConcurrentCallRejected(f"Seat {self._seats[index].seat_id} already has a call in flight")
        if not self._can_dispatch():
            raise PreconditionFailed(f"Seat {self._seats[index].seat_id} cannot speak now")

        seat = self._seats[index]
        hint = self._phase_hint(self._rounds + 1, self._max_rounds)
        override = self._override_pending
        self._override_pending = False
        request = self._build_request(seat, self.turns, hint, override)
        epoch = self._epochs[index]

        logger.debug("Round %d: %s speaking (%s)", self._rounds + 1, seat.label, hint.value)
        self._awaiting.add(index)
        try:
            text = await self._gateway.complete(
                request.content, request.system_instruction, api_key=request.api_key
            )
        except GatewayError as exc:
            if self._is_stale(index, epoch):
                return self._phase is LoopPhase.RUNNING
            self._override_pending = self._override_pending or override
            logger.warning("Turn for %s failed, pausing: %s", seat.label, exc)
            self.last_error = exc
            self._set_phase(LoopPhase.PAUSED)
            self._emit(LoopEventKind.ERROR, error=exc)
            return False
        finally:
            self._awaiting.discard(index)

        if self._is_stale(index, epoch):
            logger.info("Discarding late result for seat %s", seat.seat_id)
            self._emit(LoopEventKind.TURN_DISCARDED)
            return self._phase is LoopPhase.RUNNING

        self._commit(index, Speaker.AGENT, text)
        return self._phase is LoopPhase.RUNNING

    def _is_stale(self, index: int, epoch: int) -> bool:
        return self._epochs[index] != epoch or self._phase in (LoopPhase.SYNTHESIZING, LoopPhase.DONE)

    def _commit(self, index: int, speaker: Speaker, text: str) -> Turn:
        seat = self._seats[index]
        rounds_before = self._rounds
        stop_requested = False
        if speaker is Speaker.AGENT:
            text, stop_requested = self._stop_policy.scan(text)

        turn = new_turn(speaker, text, author=seat.label, seat=seat.seat_id)
        self._store.append_turn(self._session_id, turn)
        self._rounds += 1
        self._active = (index + 1) % len(self._seats)
        self._emit(LoopEventKind.TURN_COMMITTED, turn=turn)

        honored = False
        if stop_requested:
            if self._stop_policy.honors(rounds_before, self._max_rounds):
                logger.info("Stop token honored after %d rounds", self._rounds)
                honored = True
            else:
                logger.warning(
                    "Ignoring stop token from %s at round %d (floor %d)",
                    seat.label, self._rounds, self._stop_policy.floor(self._max_rounds),
                )
                self._emit(LoopEventKind.STOP_TOKEN_IGNORED, turn=turn)

        if self._rounds >= self._max_rounds or honored:
            self._set_phase(LoopPhase.SYNTHESIZING)
        return turn

    async def run(self) -> OrchestrationState:
        """Drive turns until the loop pauses, waits for a human, or finishes.

        A second concurrent call returns immediately; the first keeps driving.
        """
        if self._driving:
            return self.state
        self._driving = True
        try:
            while self._phase is LoopPhase.RUNNING:
                if self._rounds >= self._max_rounds:
                    self._set_phase(LoopPhase.SYNTHESIZING)
                    break
                if not self._can_dispatch():
                    break
                if not await self.advance():
                    break
            if self._phase is LoopPhase.SYNTHESIZING and not self._finishing:
                await self._finish()
        finally:
            self._driving = False
        return self.state

    async def _finish(self) -> None:
        self._finishing = True
        try:
            artifact = await self._synthesize(self.turns)
        except GatewayError as exc:
            logger.warning("Synthesis failed, pausing: %s", exc)
            self.last_error = exc
            self._set_phase(LoopPhase.PAUSED)
            self._emit(LoopEventKind.ERROR, error=exc)
            return
        finally:
            self._finishing = False

        self._store.append_turn(self._session_id, artifact)
        self.artifact = artifact
        self._emit(LoopEventKind.TURN_COMMITTED, turn=artifact)
        self._set_phase(LoopPhase.DONE)

    # --- controls ---

    def pause(self) -> OrchestrationState:
        if self._phase is not LoopPhase.RUNNING:
            raise PreconditionFailed(f"Cannot pause while {self._phase.value}")
        self._set_phase(LoopPhase.PAUSED)
        return self.state

    async def resume(self) -> OrchestrationState:
        """Continue after a pause. A discussion that already ended retries only its synthesis."""
        if self._phase is not LoopPhase.PAUSED:
            raise PreconditionFailed(f"Cannot resume while {self._phase.value}")
        self.last_error = None
        self._set_phase(LoopPhase.SYNTHESIZING if self._synthesis_pending else LoopPhase.RUNNING)
        return await self.run()

    async def interject(self, text: str) -> OrchestrationState:
        """Inject a human turn; the next generated turn must address it first.

        The interjection is not a round and does not change whose turn it is.
        """
        text = text.strip()
        if not text:
            raise PreconditionFailed("Interjection is empty")
        if self._phase is LoopPhase.RUNNING and self._stop_policy.auto_pause_on_interject:
            self.pause()
        if self._phase is not LoopPhase.PAUSED:
            raise PreconditionFailed(f"Pause before interjecting (loop is {self._phase.value})")
        if self._active in self._awaiting:
            # The reply in flight predates the interjection
            logger.info("Dropping in-flight turn for %s", self._seats[self._active].label)
            self._cancel_seat(self._active)

        turn = new_turn(Speaker.USER, text, author=self.human_author)
        self._store.append_turn(self._session_id, turn)
        self._override_pending = True
        self._emit(LoopEventKind.TURN_COMMITTED, turn=turn)
        logger.info("%s interjected at round %d", self.human_author, self._rounds)
        return await self.resume()

    async def stop(self) -> OrchestrationState:
        """End the discussion now and condense it. Calling again after a failed synthesis retries."""
        if self._phase not in (LoopPhase.RUNNING, LoopPhase.PAUSED):
            raise PreconditionFailed(f"Cannot stop while {self._phase.value}")
        if self._finishing:
            raise ConcurrentCallRejected("Synthesis already in progress")
        for index in range(len(self._seats)):
            self._cancel_seat(index)
        self._set_phase(LoopPhase.SYNTHESIZING)
        await self._finish()
        return self.state
