"""Tests for socratic/healthcheck.py."""

import asyncio

from socratic import healthcheck
from socratic.healthcheck import run_health_checks
from socratic.providers.base import MissingCredentialError
from tests.conftest import MockGateway


async def test_all_healthy():
    gateways = {"gemini": MockGateway("gemini"), "openai": MockGateway("openai")}

    results = await run_health_checks(gateways)

    assert results == {"gemini": (True, ""), "openai": (True, "")}
    assert gateways["gemini"].calls[0]["content"] == "Reply with the word OK only."


async def test_failure_is_reported_not_raised(caplog):
    broken = MockGateway("openai", responses=[MissingCredentialError("openai", "OPENAI_API_KEY not set")])

    with caplog.at_level("WARNING"):
        results = await run_health_checks({"gemini": MockGateway("gemini"), "openai": broken})

    assert results["gemini"] == (True, "")
    ok, err = results["openai"]
    assert not ok
    assert "OPENAI_API_KEY" in err
    assert "Health check failed for openai" in caplog.text


async def test_timeout_reported(monkeypatch):
    monkeypatch.setattr(healthcheck, "_TIMEOUT_SEC", 0.01)
    slow = MockGateway("gemini")
    slow.gate = asyncio.Event()

    results = await run_health_checks({"gemini": slow})

    assert results["gemini"][0] is False
    assert "No reply within" in results["gemini"][1]


async def test_no_gateways():
    assert await run_health_checks({}) == {}
