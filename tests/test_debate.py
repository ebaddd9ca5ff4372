"""Tests for socratic/debate.py."""

import asyncio

import pytest

from socratic.debate import DEFENDER, OPPONENT, DebateLoop, Difficulty
from socratic.errors import PreconditionFailed
from socratic.loop import LoopEventKind
from socratic.models import ChatMessage, LoopPhase, Speaker, TurnKind
from socratic.providers.base import MissingCredentialError
from socratic.schemas import Winner
from tests.conftest import scorecard_json

TOPIC = "Remote work beats the office"


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def make_debate(mock_gateway, store, prompts, events):
    def _make(max_rounds: int = 4, **kwargs) -> DebateLoop:
        return DebateLoop(mock_gateway, store, prompts, max_rounds=max_rounds, on_event=events.append, **kwargs)
    return _make


async def _opened(debate: DebateLoop) -> DebateLoop:
    await debate.start(TOPIC)
    await debate.run()
    return debate


async def test_opponent_opens_then_waits_for_user(make_debate, mock_gateway):
    mock_gateway.responses = ["Offices build trust."]
    debate = await _opened(make_debate())

    assert debate.phase is LoopPhase.RUNNING
    assert debate.state.active_speaker_index == DEFENDER
    assert [t.content for t in debate.turns] == ["Offices build trust."]
    call = mock_gateway.calls[0]
    assert call["content"] == [ChatMessage("user", f"I believe: {TOPIC}")]
    assert "opening statement" in call["system"]
    assert TOPIC in call["system"]
    assert "polite but firm" in call["system"]
    assert len(mock_gateway.calls) == 1


async def test_difficulty_selects_voice(make_debate, mock_gateway):
    await _opened(make_debate(difficulty=Difficulty.EXTREME))
    assert "The Destroyer" in mock_gateway.calls[0]["system"]


async def test_send_commits_user_turn_and_gets_rebuttal(make_debate, mock_gateway):
    mock_gateway.responses = ["Offices build trust.", "Trust needs presence."]
    debate = await _opened(make_debate())

    await debate.send("Trust comes from results")

    turns = debate.turns
    assert [t.speaker for t in turns] == [Speaker.AGENT, Speaker.USER, Speaker.AGENT]
    assert turns[1].seat == "defender"
    assert debate.state.rounds_completed == 3
    rebuttal = mock_gateway.calls[1]
    assert "Rebut" in rebuttal["system"]
    assert rebuttal["content"] == [
        ChatMessage("user", f"I believe: {TOPIC}"),
        ChatMessage("model", "Offices build trust."),
        ChatMessage("user", "Trust comes from results"),
    ]


async def test_send_out_of_turn_rejected(make_debate, mock_gateway):
    debate = make_debate()
    await debate.start(TOPIC)
    mock_gateway.gate = asyncio.Event()
    opening = asyncio.create_task(debate.run())
    await asyncio.sleep(0)

    with pytest.raises(PreconditionFailed, match="opponent"):
        await debate.send("Too early")

    mock_gateway.gate.set()
    await opening


async def test_send_before_start_rejected(make_debate):
    with pytest.raises(PreconditionFailed):
        await make_debate().send("Hello")


async def test_user_reaching_max_rounds_triggers_judge(make_debate, mock_gateway):
    mock_gateway.responses = ["Offices build trust.", scorecard_json()]
    debate = await _opened(make_debate(max_rounds=2))

    state = await debate.send("Trust comes from results")

    assert state.phase is LoopPhase.DONE
    assert debate.scorecard.winner is Winner.USER
    assert debate.scorecard.score == 72
    judge = mock_gateway.calls[-1]
    assert judge["structured"] is True
    assert judge["content"] == "AI: Offices build trust.\n\nUSER: Trust comes from results"
    assert "debate judge" in judge["system"]
    assert debate.artifact.kind is TurnKind.ARTIFACT
    assert debate.artifact.content == "Winner: USER | Score: 72/100\n\nA close match."
    assert debate.artifact.author == "Judge"


async def test_invalid_scorecard_pauses_and_stop_retries(make_debate, mock_gateway):
    mock_gateway.responses = ["Opening.", '{"winner": "NOBODY", "score": 500}', scorecard_json("AGENT", 40)]
    debate = await _opened(make_debate(max_rounds=2))

    state = await debate.send("My point")
    assert state.phase is LoopPhase.PAUSED
    assert debate.scorecard is None

    state = await debate.stop()
    assert state.phase is LoopPhase.DONE
    assert debate.scorecard.winner is Winner.AGENT


async def test_stop_mid_debate_grades_now(make_debate, mock_gateway):
    mock_gateway.responses = ["Opening.", scorecard_json("DRAW", 50)]
    debate = await _opened(make_debate(max_rounds=10))

    state = await debate.stop()

    assert state.phase is LoopPhase.DONE
    assert debate.scorecard.winner is Winner.DRAW


async def test_enable_ally_requires_key(make_debate, mock_gateway):
    debate = await _opened(make_debate())
    with pytest.raises(MissingCredentialError):
        await debate.enable_ally()
    assert not debate.ally_active


async def test_ally_plays_defender_with_its_own_key(make_debate, mock_gateway):
    mock_gateway.responses = ["Opening.", "Ally defends.", "Opponent again.", "Ally again.", scorecard_json()]
    debate = await _opened(make_debate(max_rounds=4, ally_api_key="ally-key"))

    state = await debate.enable_ally()

    assert state.phase is LoopPhase.DONE
    assert debate.ally_active
    ally_call = mock_gateway.calls[1]
    assert ally_call["api_key"] == "ally-key"
    assert "Ally Debater" in ally_call["system"]
    assert ally_call["content"] == [ChatMessage("user", "Opening.")]
    assert mock_gateway.calls[2]["api_key"] is None
    assert [t.author for t in debate.turns if t.kind is TurnKind.DIALOGUE] == ["Opponent", "Ally", "Opponent", "Ally"]


async def test_user_send_cancels_ally_in_flight(make_debate, mock_gateway, events):
    mock_gateway.responses = ["Opening.", "Ally text.", "Rebuttal."]
    debate = await _opened(make_debate(max_rounds=10, ally_api_key="ally-key"))
    mock_gateway.gate = asyncio.Event()
    ally = asyncio.create_task(debate.enable_ally())
    await asyncio.sleep(0)

    await debate.send("I will argue myself")
    mock_gateway.gate.set()
    await ally

    assert not debate.ally_active
    assert [t.content for t in debate.turns] == ["Opening.", "I will argue myself", "Rebuttal."]
    assert any(e.kind is LoopEventKind.TURN_DISCARDED for e in events)
    assert debate.state.active_speaker_index == DEFENDER


async def test_interjection_prioritized_in_next_rebuttal(make_debate, mock_gateway):
    mock_gateway.responses = ["Opening.", "Rebuttal."]
    debate = await _opened(make_debate())
    debate.pause()

    await debate.interject("Consider commute time")
    await debate.send("Commutes waste hours")

    interjection = debate.turns[1]
    assert interjection.author == "You"
    assert interjection.seat is None
    assert "PRIORITY" in mock_gateway.calls[-1]["system"]
    assert debate.state.active_speaker_index == DEFENDER


async def test_seats_are_opponent_then_defender(make_debate):
    debate = make_debate()
    await debate.start(TOPIC)
    assert debate.seats[OPPONENT].persona.role_name == "Opponent"
    assert debate.seats[DEFENDER].human
