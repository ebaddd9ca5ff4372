"""Tests for config/config_loader.py."""

import os
from pathlib import Path

import pytest
import yaml

from config.config_loader import (
    AppConfig,
    LoopPolicyConfig,
    ModelConfig,
    PromptsConfig,
    _SETTINGS_PATH,
    load_config,
    localize,
)


@pytest.fixture
def raw_settings() -> dict:
    return yaml.safe_load(_SETTINGS_PATH.read_text(encoding="utf-8"))


def _write(tmp_path: Path, settings: dict) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings, allow_unicode=True), encoding="utf-8")
    return path


def test_load_config_returns_app_config():
    config = load_config()
    assert isinstance(config, AppConfig)
    assert isinstance(config.prompts, PromptsConfig)


def test_load_config_defaults():
    config = load_config()
    assert config.defaults.provider == "gemini"
    assert config.defaults.language == "en"
    assert config.defaults.think_tank_rounds == 6
    assert isinstance(config.defaults.output_dir, Path)


def test_load_config_models():
    config = load_config()
    gemini = config.models["gemini"]
    assert isinstance(gemini, ModelConfig)
    assert gemini.model == "gemini-2.5-flash"
    assert gemini.temperature == 0.7
    assert gemini.ally_api_key_env == "GEMINI_ALLY_API_KEY"
    assert config.models["claude"].sdk == "anthropic"


def test_load_config_loop_policy():
    config = load_config()
    assert config.loop == LoopPolicyConfig(
        stop_token="[[DONE]]", floor_ratio=0.5, min_floor_rounds=2, auto_pause_on_interject=False
    )


def test_load_config_reveal_pacing():
    config = load_config()
    assert config.reveal.reaction_delay_sec == 0.8
    assert config.reveal.debate_line_delay_sec == 1.5
    assert config.reveal.verdict_delay_sec == 2.5


def test_prompts_collections_normalized():
    prompts = load_config().prompts
    assert set(prompts.intents) == {"analogy", "deep_dive", "architect", "challenge"}
    assert set(prompts.difficulties) == {"EASY", "HARD", "EXTREME"}
    assert {"exploration", "critique_refine", "convergence", "manager_override"} <= set(prompts.phases)
    assert "synthesize" in prompts.synthesis_keywords


def test_prompt_placeholders_format_cleanly():
    prompts = load_config().prompts
    assert "Input: \"hello\"" in prompts.title.format(message="hello")
    assert "{" not in prompts.condense.format(topic="x")
    judge = prompts.debate_judge.format(topic="Cats")
    assert "Topic: Cats" in judge
    assert '"winner"' in judge
    turn = prompts.think_tank_turn.format(
        role="A", goal="G", partner="B", round=1, max_rounds=6,
        phase_instruction="P", idea="I", min_round=5, stop_token="[[DONE]]",
    )
    assert "[[DONE]]" in turn


def test_missing_settings_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_unsupported_language_raises(tmp_path, raw_settings):
    raw_settings["defaults"]["language"] = "fr"
    with pytest.raises(ValueError, match="language"):
        load_config(_write(tmp_path, raw_settings))


def test_floor_ratio_out_of_range_raises(tmp_path, raw_settings):
    raw_settings["loop"]["floor_ratio"] = 1.5
    with pytest.raises(ValueError, match="floor_ratio"):
        load_config(_write(tmp_path, raw_settings))


def test_unknown_default_provider_raises(tmp_path, raw_settings):
    raw_settings["defaults"]["provider"] = "nobody"
    with pytest.raises(ValueError, match="nobody"):
        load_config(_write(tmp_path, raw_settings))


def test_available_providers_tracks_env(tmp_path, raw_settings, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    config = load_config(_write(tmp_path, raw_settings))
    assert config.available_providers == {"gemini"}


def test_missing_key_is_logged_not_raised(tmp_path, raw_settings, monkeypatch, caplog):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with caplog.at_level("INFO"):
        config = load_config(_write(tmp_path, raw_settings))
    assert "claude" not in config.available_providers
    assert "ANTHROPIC_API_KEY" in caplog.text


def test_optional_sections_fall_back_to_defaults(tmp_path, raw_settings):
    for section in ("loop", "reveal", "storage"):
        raw_settings.pop(section)
    config = load_config(_write(tmp_path, raw_settings))
    assert config.loop.stop_token == "[[DONE]]"
    assert config.reveal.hat_delay_sec == 0.6
    assert config.storage.namespace == "socratic_notes"


def test_localize_appends_language_sentence():
    prompts = load_config().prompts
    result = localize(prompts, "Be brief.", "vi")
    assert result.startswith("Be brief.")
    assert "VIETNAMESE" in result


def test_localize_unknown_language_is_noop():
    prompts = load_config().prompts
    assert localize(prompts, "Be brief.", "xx") == "Be brief."


def test_env_var_not_required_for_load(monkeypatch):
    for key in ("GEMINI_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    config = load_config()
    assert config.available_providers == set()
    assert "gemini" in config.models
    assert os.environ.get("GEMINI_API_KEY") is None
