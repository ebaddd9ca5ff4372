"""Transcript store: copy-on-write sessions persisted through a key-value collaborator."""

import dataclasses
import logging
import time
import uuid
from collections.abc import Iterable, Sequence
from typing import Any

from socratic.models import ChatMessage, Session, Speaker, Turn, TurnKind
from socratic.storage import KeyValueStore

logger = logging.getLogger(__name__)

WELCOME_TURN_ID = "welcome"
DEFAULT_TITLE = "New Note"
USER_AUTHOR = "You"
AGENT_AUTHOR = "Assistant"


class SessionNotFound(KeyError):
    """No session with the given id."""


def now_ms() -> int:
    return int(time.time() * 1000)


def new_turn(
    speaker: Speaker,
    content: str,
    *,
    kind: TurnKind = TurnKind.DIALOGUE,
    author: str | None = None,
    seat: str | None = None,
    turn_id: str | None = None,
) -> Turn:
    if author is None:
        author = USER_AUTHOR if speaker is Speaker.USER else AGENT_AUTHOR
    return Turn(
        id=turn_id or uuid.uuid4().hex,
        speaker=speaker,
        content=content,
        kind=kind,
        timestamp=now_ms(),
        author=author,
        seat=seat,
    )


def turn_to_dict(turn: Turn) -> dict[str, Any]:
    data = dataclasses.asdict(turn)
    data["speaker"] = turn.speaker.value
    data["kind"] = turn.kind.value
    return data


def turn_from_dict(data: dict[str, Any]) -> Turn:
    return Turn(
        id=str(data["id"]),
        speaker=Speaker(data["speaker"]),
        content=str(data["content"]),
        kind=TurnKind(data.get("kind", TurnKind.DIALOGUE.value)),
        timestamp=int(data["timestamp"]),
        author=str(data.get("author", "")),
        seat=data.get("seat"),
    )


def session_to_dict(session: Session) -> dict[str, Any]:
    return {
        "id": session.id,
        "title": session.title,
        "turns": [turn_to_dict(t) for t in session.turns],
        "created_at": session.created_at,
        "updated_at": session.updated_at,
    }


def session_from_dict(data: dict[str, Any]) -> Session:
    return Session(
        id=str(data["id"]),
        title=str(data.get("title", DEFAULT_TITLE)),
        turns=tuple(turn_from_dict(t) for t in data.get("turns", [])),
        created_at=int(data["created_at"]),
        updated_at=int(data["updated_at"]),
    )


def real_turns(turns: Iterable[Turn]) -> list[Turn]:
    """Turns excluding the seeded welcome turn."""
    return [t for t in turns if t.id != WELCOME_TURN_ID]


def flatten_turns(turns: Iterable[Turn]) -> str:
    """Render turns as 'AUTHOR: content' lines for prompts."""
    return "\n".join(f"{t.author or t.speaker.value}: {t.content}" for t in turns)


def to_chat_messages(turns: Sequence[Turn], own_seat: str | None = None) -> list[ChatMessage]:
    """Render turns as role-tagged messages from one participant's perspective.

    With own_seat=None the agent is the model (single-agent chat). With a seat id,
    that seat's turns become "model" and every other turn becomes "user".
    """
    messages: list[ChatMessage] = []
    for turn in turns:
        if own_seat is None:
            mine = turn.speaker is Speaker.AGENT
        else:
            mine = turn.seat == own_seat
        messages.append(ChatMessage(role="model" if mine else "user", text=turn.content))
    return messages


class TranscriptStore:
    """Owns every session. All mutations return a new Session and persist the full list."""

    def __init__(self, kv: KeyValueStore, namespace: str = "socratic_notes") -> None:
        self._kv = kv
        self._key = f"{namespace}:sessions"
        self._sessions: list[Session] = self.load_all()
        self._sort()
        self._last_stamp = max((s.updated_at for s in self._sessions), default=0)
        self._active_id: str | None = self._sessions[0].id if self._sessions else None

    # --- persistence adapters ---

    def load_all(self) -> list[Session]:
        raw = self._kv.get(self._key)
        if not raw:
            return []
        try:
            return [session_from_dict(item) for item in raw]
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Failed to load sessions from %s, starting empty: %s", self._key, exc)
            return []

    def save(self, session: Session) -> None:
        """Replace or insert session, keep ordering, and persist."""
        for idx, existing in enumerate(self._sessions):
            if existing.id == session.id:
                self._sessions[idx] = session
                break
        else:
            self._sessions.insert(0, session)
        self._sort()
        self._kv.set(self._key, [session_to_dict(s) for s in self._sessions])

    def _sort(self) -> None:
        self._sessions.sort(key=lambda s: s.updated_at, reverse=True)

    def _stamp(self) -> int:
        # Strictly increasing so the most recent mutation always sorts first
        stamp = max(now_ms(), self._last_stamp + 1)
        self._last_stamp = stamp
        return stamp

    # --- queries ---

    @property
    def active_id(self) -> str | None:
        return self._active_id

    def set_active(self, session_id: str) -> Session:
        session = self.get_session(session_id)
        self._active_id = session.id
        return session

    def get_session(self, session_id: str) -> Session:
        for session in self._sessions:
            if session.id == session_id:
                return session
        raise SessionNotFound(session_id)

    def list_sessions(self) -> list[Session]:
        return list(self._sessions)

    # --- mutations ---

    def create_session(self, welcome: str | None = None, title: str = DEFAULT_TITLE) -> Session:
        stamp = self._stamp()
        turns: tuple[Turn, ...] = ()
        if welcome:
            turns = (new_turn(Speaker.AGENT, welcome, turn_id=WELCOME_TURN_ID),)
        session = Session(
            id=uuid.uuid4().hex,
            title=title,
            turns=turns,
            created_at=stamp,
            updated_at=stamp,
        )
        self.save(session)
        self._active_id = session.id
        logger.debug("Created session %s", session.id)
        return session

    def append_turn(self, session_id: str, turn: Turn) -> Session:
        current = self.get_session(session_id)
        updated = dataclasses.replace(current, turns=current.turns + (turn,), updated_at=self._stamp())
        self.save(updated)
        return updated

    def delete_turn(self, session_id: str, turn_id: str) -> Session:
        current = self.get_session(session_id)
        remaining = tuple(t for t in current.turns if t.id != turn_id)
        if len(remaining) == len(current.turns):
            logger.debug("Turn %s not in session %s", turn_id, session_id)
            return current
        updated = dataclasses.replace(current, turns=remaining, updated_at=self._stamp())
        self.save(updated)
        return updated

    def rename_session(self, session_id: str, title: str) -> Session:
        current = self.get_session(session_id)
        updated = dataclasses.replace(current, title=title, updated_at=self._stamp())
        self.save(updated)
        return updated

    def delete_session(self, session_id: str, welcome: str | None = None) -> Session:
        """Delete permanently and return the session that is active afterwards.

        Falls back to the most recently updated session, or a fresh one when none remain.
        """
        self.get_session(session_id)
        self._sessions = [s for s in self._sessions if s.id != session_id]
        self._kv.set(self._key, [session_to_dict(s) for s in self._sessions])
        logger.info("Deleted session %s", session_id)

        if self._active_id == session_id or self._active_id is None:
            if self._sessions:
                self._active_id = self._sessions[0].id
            else:
                return self.create_session(welcome=welcome)
        return self.get_session(self._active_id)
