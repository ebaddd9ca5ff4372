"""Tests for socratic/models.py dataclasses."""

import dataclasses

import pytest

from socratic.models import (
    ChatMessage,
    LoopPhase,
    OrchestrationState,
    Persona,
    PhaseHint,
    Speaker,
    Turn,
    TurnKind,
)


def test_turn_defaults():
    turn = Turn(id="t1", speaker=Speaker.USER, content="hi", kind=TurnKind.DIALOGUE, timestamp=1)
    assert turn.author == ""
    assert turn.seat is None


def test_turn_is_frozen():
    turn = Turn(id="t1", speaker=Speaker.AGENT, content="hi", kind=TurnKind.DIALOGUE, timestamp=1)
    with pytest.raises(dataclasses.FrozenInstanceError):
        turn.content = "changed"


def test_enums_are_strings():
    assert Speaker.AGENT == "AGENT"
    assert LoopPhase("PAUSED") is LoopPhase.PAUSED
    assert PhaseHint.CRITIQUE_REFINE.value == "critique_refine"


def test_persona_voice_optional():
    assert Persona(role_name="CFO", goal="Protect budget").voice_instruction == ""


def test_chat_message_equality():
    assert ChatMessage("user", "q") == ChatMessage(role="user", text="q")


def test_orchestration_state_fields():
    state = OrchestrationState(phase=LoopPhase.RUNNING, active_speaker_index=1, rounds_completed=3, max_rounds=6)
    assert dataclasses.asdict(state)["rounds_completed"] == 3
