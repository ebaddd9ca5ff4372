"""Shared pytest fixtures."""

import asyncio
import json
from collections.abc import Callable

import pytest

from config.config_loader import AppConfig, ModelConfig, PromptsConfig, load_config
from socratic.providers.base import CompletionGateway, Content
from socratic.storage import MemoryKeyValueStore
from socratic.transcript import TranscriptStore


class MockGateway(CompletionGateway):
    """Scripted test double.

    Responses are consumed in call order; an exception instance in the queue is
    raised instead of returned. When the queue is empty the default is used.
    Setting `gate` to an asyncio.Event holds every call until the event is set.
    """

    def __init__(self, provider_name: str = "mock", responses: list | None = None, default: str = "Mock response") -> None:
        self._name = provider_name
        self.responses: list = list(responses or [])
        self.default = default
        self.calls: list[dict] = []
        self.gate: asyncio.Event | None = None

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def _next(self, call: dict) -> str:
        self.calls.append(call)
        if self.gate is not None:
            await self.gate.wait()
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        return item

    async def complete(
        self,
        content: Content,
        system_instruction: str,
        *,
        structured: bool = False,
        api_key: str | None = None,
    ) -> str:
        return await self._next(
            {
                "method": "complete",
                "content": content,
                "system": system_instruction,
                "structured": structured,
                "api_key": api_key,
            }
        )

    async def complete_stream(
        self,
        content: Content,
        system_instruction: str,
        on_chunk: Callable[[str], None],
        *,
        api_key: str | None = None,
    ) -> str:
        text = await self._next(
            {"method": "stream", "content": content, "system": system_instruction, "api_key": api_key}
        )
        for i in range(0, len(text), 8):
            on_chunk(text[i:i + 8])
        return text


def decision_json(debate_lines: int = 4) -> str:
    roles = ["Skeptic", "Visionary", "Pragmatist", "Innovator", "Critic"]
    return json.dumps(
        {
            "phase_1": [{"role": r, "initial_thought": f"{r} reacts."} for r in roles],
            "phase_2": [
                {"role": roles[i % 5], "target_role": roles[(i + 1) % 5], "argument": f"Point {i}."}
                for i in range(debate_lines)
            ],
            "phase_3": {
                "winner": "Take option A, carefully.",
                "vote_summary": "3 votes for A, 2 for B",
                "critical_warning": "It fails if cash runs out.",
            },
        }
    )


def six_hats_json() -> str:
    return json.dumps(
        {
            f"{hat}_hat": {"title": f"{hat.title()} title", "content": f"{hat} content"}
            for hat in ("white", "red", "black", "yellow", "green", "blue")
        }
    )


def scorecard_json(winner: str = "USER", score: int = 72) -> str:
    return json.dumps(
        {
            "winner": winner,
            "score": score,
            "commentary": "A close match.",
            "strengths": ["Clear framing"],
            "weaknesses": ["Ignored costs"],
        }
    )


@pytest.fixture
def app_config() -> AppConfig:
    return load_config()


@pytest.fixture
def prompts(app_config: AppConfig) -> PromptsConfig:
    return app_config.prompts


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="gemini",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
    )


@pytest.fixture
def mock_gateway() -> MockGateway:
    return MockGateway()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv: MemoryKeyValueStore) -> TranscriptStore:
    return TranscriptStore(kv)
