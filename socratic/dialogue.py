"""Single-agent dialogue engine: one streamed exchange at a time per session."""

import logging
from collections.abc import Callable
from enum import Enum

from config.config_loader import PromptsConfig, localize
from socratic.errors import ConcurrentCallRejected, PreconditionFailed
from socratic.models import Speaker, Turn, TurnKind
from socratic.providers.base import CompletionGateway, GatewayError, MissingCredentialError
from socratic.synthesis import synthesize_note
from socratic.tools import generate_title
from socratic.transcript import (
    DEFAULT_TITLE,
    TranscriptStore,
    new_turn,
    real_turns,
    to_chat_messages,
)

logger = logging.getLogger(__name__)


class DialogueState(str, Enum):
    IDLE = "IDLE"
    AWAITING_RESPONSE = "AWAITING_RESPONSE"
    SYNTHESIZING = "SYNTHESIZING"


class DialogueMode(str, Enum):
    SOCRATIC = "socratic"
    SHADOW = "shadow"


class DialogueEngine:
    """Drives one conversational partner over sessions owned by a TranscriptStore.

    At most one generating call is outstanding per session; a second request
    while busy raises ConcurrentCallRejected and changes nothing.
    """

    def __init__(
        self,
        gateway: CompletionGateway,
        store: TranscriptStore,
        prompts: PromptsConfig,
        *,
        language: str = "en",
        mode: DialogueMode = DialogueMode.SOCRATIC,
        auto_title: bool = True,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._prompts = prompts
        self._language = language
        self._mode = mode
        self._auto_title = auto_title
        self._states: dict[str, DialogueState] = {}
        self._buffers: dict[str, list[str]] = {}

    @property
    def welcome(self) -> str:
        return self._prompts.shadow_welcome if self._mode is DialogueMode.SHADOW else self._prompts.welcome

    @property
    def system_instruction(self) -> str:
        base = self._prompts.shadow_system if self._mode is DialogueMode.SHADOW else self._prompts.chat_system
        return localize(self._prompts, base, self._language)

    def state(self, session_id: str) -> DialogueState:
        return self._states.get(session_id, DialogueState.IDLE)

    def in_flight(self, session_id: str) -> str:
        """Text streamed so far for the pending reply; not yet a committed turn."""
        return "".join(self._buffers.get(session_id, []))

    def new_session(self):
        return self._store.create_session(welcome=self.welcome)

    def _acquire(self, session_id: str, state: DialogueState) -> None:
        current = self.state(session_id)
        if current is not DialogueState.IDLE:
            raise ConcurrentCallRejected(f"Session {session_id} is {current.value}")
        self._states[session_id] = state

    def _release(self, session_id: str) -> None:
        self._states[session_id] = DialogueState.IDLE
        self._buffers.pop(session_id, None)

    def _is_synthesis_request(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self._prompts.synthesis_keywords)

    async def send(
        self,
        session_id: str,
        text: str,
        on_chunk: Callable[[str], None] | None = None,
    ) -> Turn:
        """Append a user turn and stream the agent's reply into one committed turn."""
        text = text.strip()
        if not text:
            raise PreconditionFailed("Message is empty")
        session = self._store.get_session(session_id)

        if self._is_synthesis_request(text):
            self._acquire(session_id, DialogueState.SYNTHESIZING)
            try:
                user_turn = new_turn(Speaker.USER, text)
                self._store.append_turn(session_id, user_turn)
                try:
                    return await self._synthesize(session_id)
                except MissingCredentialError:
                    self._store.delete_turn(session_id, user_turn.id)
                    raise
            finally:
                self._release(session_id)

        first_message = not any(t.speaker is Speaker.USER for t in real_turns(session.turns))
        self._acquire(session_id, DialogueState.AWAITING_RESPONSE)
        try:
            reply = await self._exchange(session_id, text, on_chunk)
        finally:
            self._release(session_id)

        if first_message and self._auto_title and session.title == DEFAULT_TITLE:
            title = await generate_title(self._gateway, self._prompts, text, self._language)
            self._store.rename_session(session_id, title)
        return reply

    async def send_intent(
        self,
        session_id: str,
        intent: str,
        on_chunk: Callable[[str], None] | None = None,
    ) -> Turn:
        """Send a canned perspective prompt (analogy, deep_dive, architect, challenge)."""
        prompt = self._prompts.intents.get(intent)
        if prompt is None:
            raise PreconditionFailed(f"Unknown intent '{intent}'")
        session = self._store.get_session(session_id)
        if not real_turns(session.turns):
            raise PreconditionFailed("Intents need at least one exchange beyond the welcome turn")

        self._acquire(session_id, DialogueState.AWAITING_RESPONSE)
        try:
            return await self._exchange(session_id, prompt, on_chunk)
        finally:
            self._release(session_id)

    async def synthesize(self, session_id: str) -> Turn:
        """Commit a structured note over the whole session as an ARTIFACT turn."""
        self._store.get_session(session_id)
        self._acquire(session_id, DialogueState.SYNTHESIZING)
        try:
            return await self._synthesize(session_id)
        finally:
            self._release(session_id)

    async def _exchange(
        self,
        session_id: str,
        text: str,
        on_chunk: Callable[[str], None] | None,
    ) -> Turn:
        user_turn = new_turn(Speaker.USER, text)
        session = self._store.append_turn(session_id, user_turn)
        # The welcome turn and prior notes are display-only; the model sees the dialogue
        history = to_chat_messages(
            [t for t in real_turns(session.turns) if t.kind is TurnKind.DIALOGUE]
        )
        buffer = self._buffers.setdefault(session_id, [])

        def _collect(chunk: str) -> None:
            buffer.append(chunk)
            if on_chunk:
                on_chunk(chunk)

        try:
            reply = await self._gateway.complete_stream(history, self.system_instruction, _collect)
        except MissingCredentialError:
            # Not accepted: no reply can follow this turn
            self._store.delete_turn(session_id, user_turn.id)
            raise
        except GatewayError as exc:
            logger.warning("Dialogue turn failed in session %s: %s", session_id, exc)
            return self._commit_error(session_id)

        turn = new_turn(Speaker.AGENT, reply)
        self._store.append_turn(session_id, turn)
        logger.debug("Committed reply %s (%d chars) in session %s", turn.id, len(reply), session_id)
        return turn

    async def _synthesize(self, session_id: str) -> Turn:
        session = self._store.get_session(session_id)
        try:
            note = await synthesize_note(self._gateway, real_turns(session.turns), self._prompts, self._language)
        except MissingCredentialError:
            raise
        except GatewayError as exc:
            logger.warning("Synthesis failed in session %s: %s", session_id, exc)
            return self._commit_error(session_id)

        turn = new_turn(Speaker.AGENT, note, kind=TurnKind.ARTIFACT)
        self._store.append_turn(session_id, turn)
        logger.info("Committed note %s in session %s", turn.id, session_id)
        return turn

    def _commit_error(self, session_id: str) -> Turn:
        turn = new_turn(Speaker.AGENT, self._prompts.error_message)
        self._store.append_turn(session_id, turn)
        return turn
