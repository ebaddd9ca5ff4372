"""Pure dataclasses for sessions, turns and orchestration state. No logic, no deps."""

from dataclasses import dataclass
from enum import Enum


class Speaker(str, Enum):
    USER = "USER"
    AGENT = "AGENT"


class TurnKind(str, Enum):
    DIALOGUE = "DIALOGUE"
    ARTIFACT = "ARTIFACT"   # synthesized note, condensed plan, scorecard summary


class LoopPhase(str, Enum):
    SETUP = "SETUP"
    DISPATCHING = "DISPATCHING"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    SYNTHESIZING = "SYNTHESIZING"
    DONE = "DONE"


class PhaseHint(str, Enum):
    EXPLORATION = "exploration"
    CRITIQUE_REFINE = "critique_refine"
    CONVERGENCE = "convergence"


@dataclass(frozen=True)
class ChatMessage:
    role: str              # "user" or "model"
    text: str


@dataclass(frozen=True)
class Turn:
    id: str
    speaker: Speaker
    content: str
    kind: TurnKind
    timestamp: int         # epoch milliseconds
    author: str = ""       # display name: "You", "Assistant", a persona role, "Manager"
    seat: str | None = None


@dataclass(frozen=True)
class Session:
    id: str
    title: str
    turns: tuple[Turn, ...]
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class Persona:
    role_name: str
    goal: str
    voice_instruction: str = ""


@dataclass(frozen=True)
class OrchestrationState:
    phase: LoopPhase
    active_speaker_index: int
    rounds_completed: int
    max_rounds: int
