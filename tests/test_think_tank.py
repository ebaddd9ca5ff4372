"""Tests for socratic/think_tank.py."""

import json

import pytest

from socratic.loop import StopPolicy
from socratic.models import LoopPhase, Speaker, TurnKind
from socratic.providers.base import UpstreamError
from socratic.schemas import ArtifactSchemaError
from socratic.think_tank import MANAGER_AUTHOR, ThinkTankLoop

_PAIR = json.dumps(
    {
        "persona_a": {"role": "Growth Marketer", "goal": "Find the audience"},
        "persona_b": {"role": "CFO", "goal": "Protect the budget"},
    }
)


@pytest.fixture
def tank(mock_gateway, store, prompts) -> ThinkTankLoop:
    return ThinkTankLoop(mock_gateway, store, prompts, max_rounds=4)


async def test_dispatch_assigns_contrasting_personas(tank, mock_gateway):
    mock_gateway.responses = [_PAIR]

    await tank.start("A subscription box for houseplants")

    assert [s.label for s in tank.seats] == ["Growth Marketer", "CFO"]
    call = mock_gateway.calls[0]
    assert call["structured"] is True
    assert call["content"] == "A subscription box for houseplants"
    assert "assign 2 personas" in call["system"]


async def test_identical_personas_rejected(tank, mock_gateway):
    mock_gateway.responses = [
        json.dumps({"persona_a": {"role": "CFO", "goal": "x"}, "persona_b": {"role": "cfo", "goal": "y"}})
    ]
    with pytest.raises(ArtifactSchemaError):
        await tank.start("Idea")
    assert tank.phase is LoopPhase.SETUP


async def test_malformed_dispatch_returns_to_setup(tank, mock_gateway):
    mock_gateway.responses = ["not json at all"]
    with pytest.raises(ArtifactSchemaError):
        await tank.start("Idea")
    assert tank.phase is LoopPhase.SETUP


async def test_dispatch_failure_can_be_retried(tank, mock_gateway):
    mock_gateway.responses = [UpstreamError("mock", "down"), _PAIR]
    with pytest.raises(UpstreamError):
        await tank.start("Idea")
    state = await tank.start("Idea")
    assert state.phase is LoopPhase.RUNNING


async def test_full_run_produces_plan(tank, mock_gateway):
    mock_gateway.responses = [_PAIR, "a1", "b1", "a2", "b2", "## Plan"]
    await tank.start("Idea")

    state = await tank.run()

    assert state.phase is LoopPhase.DONE
    assert [t.author for t in tank.turns] == ["Growth Marketer", "CFO", "Growth Marketer", "CFO", "Synthesis"]
    assert tank.artifact.content == "## Plan"
    assert "Idea" in mock_gateway.calls[-1]["system"]
    assert "Growth Marketer: a1" in mock_gateway.calls[-1]["content"]


async def test_turn_prompt_carries_role_round_and_phase(tank, mock_gateway):
    mock_gateway.responses = [_PAIR, "a1", "b1"]
    await tank.start("Idea")
    await tank.advance()
    await tank.advance()

    first, second = mock_gateway.calls[1], mock_gateway.calls[2]
    assert "Your Role: Growth Marketer" in first["system"]
    assert "Your Partner: CFO" in first["system"]
    assert "Current Round: 1 of 4" in first["system"]
    assert "Phase: EXPLORATION" in first["system"]
    assert "until at least round 3" in first["system"]
    assert "[[DONE]]" in first["system"]
    assert "(The discussion has not started yet.)" in first["content"]

    assert "Current Round: 2 of 4" in second["system"]
    assert "Growth Marketer: a1" in second["content"]
    assert "Your Turn (CFO):" in second["content"]


async def test_convergence_phase_in_final_rounds(tank, mock_gateway):
    mock_gateway.responses = [_PAIR]
    await tank.start("Idea")
    await tank.run()
    assert "Phase: CONVERGENCE" in mock_gateway.calls[4]["system"]


async def test_manager_interjection_overrides_next_turn(tank, mock_gateway):
    mock_gateway.responses = [_PAIR, "a1"]
    await tank.start("Idea")
    await tank.advance()
    tank.pause()

    await tank.interject("Think about retention")

    manager = [t for t in tank.turns if t.author == MANAGER_AUTHOR]
    assert len(manager) == 1
    assert manager[0].speaker is Speaker.USER
    next_call = mock_gateway.calls[2]
    assert "THE MANAGER HAS SPOKEN" in next_call["system"]
    assert "Manager: Think about retention" in next_call["content"]
    assert "THE MANAGER HAS SPOKEN" not in mock_gateway.calls[3]["system"]


async def test_premature_stop_token_ignored(mock_gateway, store, prompts):
    mock_gateway.responses = [_PAIR, "We are done [[DONE]]"]
    tank = ThinkTankLoop(mock_gateway, store, prompts, max_rounds=6, stop_policy=StopPolicy())
    await tank.start("Idea")

    await tank.run()

    dialogue = [t for t in tank.turns if t.kind is TurnKind.DIALOGUE]
    assert len(dialogue) == 6
    assert dialogue[0].content == "We are done"


async def test_vietnamese_turn_prompt(mock_gateway, store, prompts):
    mock_gateway.responses = [_PAIR, "a1"]
    tank = ThinkTankLoop(mock_gateway, store, prompts, max_rounds=2, language="vi")
    await tank.start("Ý tưởng")
    await tank.advance()
    assert "VIETNAMESE" in mock_gateway.calls[1]["system"]
