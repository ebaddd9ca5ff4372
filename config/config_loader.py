"""Load settings.yaml into typed dataclasses. Reports credential availability at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

SUPPORTED_LANGUAGES = ("en", "vi")


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    temperature: float = 0.7
    ally_api_key_env: str | None = None
    base_url: str | None = None


@dataclass
class DefaultsConfig:
    provider: str
    language: str
    output_dir: Path
    think_tank_rounds: int = 6
    debate_rounds: int = 10
    five_whys_depth: int = 5


@dataclass
class LoopPolicyConfig:
    stop_token: str = "[[DONE]]"
    floor_ratio: float = 0.5
    min_floor_rounds: int = 2
    auto_pause_on_interject: bool = False


@dataclass
class RevealConfig:
    reaction_delay_sec: float = 0.8
    debate_intro_delay_sec: float = 1.5
    debate_line_delay_sec: float = 1.5
    verdict_delay_sec: float = 2.5
    hat_delay_sec: float = 0.6


@dataclass
class StorageConfig:
    path: Path
    namespace: str = "socratic_notes"


@dataclass
class PromptsConfig:
    welcome: str
    shadow_welcome: str
    error_message: str
    chat_system: str
    shadow_system: str
    title: str
    note_synthesis: str
    condense: str
    decision_lab: str
    six_hats: str
    first_principles: str
    devils_dictionary: str
    five_whys_question: str
    five_whys_prompt: str
    five_whys_analysis: str
    think_tank_dispatch: str
    think_tank_turn: str
    think_tank_history: str
    debate_opening: str
    debate_rebuttal: str
    debate_ally: str
    debate_judge: str
    debate_override: str
    intents: dict[str, str] = field(default_factory=dict)
    phases: dict[str, str] = field(default_factory=dict)
    difficulties: dict[str, str] = field(default_factory=dict)
    languages: dict[str, str] = field(default_factory=dict)
    synthesis_keywords: list[str] = field(default_factory=list)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    loop: LoopPolicyConfig = field(default_factory=LoopPolicyConfig)
    reveal: RevealConfig = field(default_factory=RevealConfig)
    storage: StorageConfig = field(default_factory=lambda: StorageConfig(path=Path("./data/sessions.json")))
    available_providers: set[str] = field(default_factory=set)


def localize(prompts: PromptsConfig, instruction: str, language: str) -> str:
    """Append the output-language enforcement sentence to a system instruction."""
    suffix = prompts.languages.get(language)
    if not suffix:
        return instruction
    return f"{instruction.rstrip()}\n{suffix}"


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs missing API keys but does not raise; the gateway reports
    MissingCredentialError on first use and the CLI checks
    available_providers before starting a mode.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    language = str(defaults_raw.get("language", "en"))
    if language not in SUPPORTED_LANGUAGES:
        raise ValueError(f"Unsupported language '{language}', expected one of {SUPPORTED_LANGUAGES}")
    defaults = DefaultsConfig(
        provider=str(defaults_raw["provider"]),
        language=language,
        output_dir=Path(defaults_raw["output_dir"]),
        think_tank_rounds=int(defaults_raw.get("think_tank_rounds", 6)),
        debate_rounds=int(defaults_raw.get("debate_rounds", 10)),
        five_whys_depth=int(defaults_raw.get("five_whys_depth", 5)),
    )

    loop_raw = raw.get("loop", {})
    loop = LoopPolicyConfig(
        stop_token=str(loop_raw.get("stop_token", "[[DONE]]")),
        floor_ratio=float(loop_raw.get("floor_ratio", 0.5)),
        min_floor_rounds=int(loop_raw.get("min_floor_rounds", 2)),
        auto_pause_on_interject=bool(loop_raw.get("auto_pause_on_interject", False)),
    )
    if not 0.0 <= loop.floor_ratio <= 1.0:
        raise ValueError(f"loop.floor_ratio must be within [0, 1], got {loop.floor_ratio}")

    reveal_raw = raw.get("reveal", {})
    reveal = RevealConfig(**{k: float(v) for k, v in reveal_raw.items()})

    storage_raw = raw.get("storage", {})
    storage = StorageConfig(
        path=Path(storage_raw.get("path", "./data/sessions.json")),
        namespace=str(storage_raw.get("namespace", "socratic_notes")),
    )

    prompts_raw = dict(raw["prompts"])
    prompts = PromptsConfig(
        intents={k: str(v) for k, v in prompts_raw.pop("intents", {}).items()},
        phases={k: str(v) for k, v in prompts_raw.pop("phases", {}).items()},
        difficulties={k.upper(): str(v) for k, v in prompts_raw.pop("difficulties", {}).items()},
        languages={k: str(v) for k, v in prompts_raw.pop("languages", {}).items()},
        synthesis_keywords=[str(k).lower() for k in prompts_raw.pop("synthesis_keywords", [])],
        **{k: str(v) for k, v in prompts_raw.items()},
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            temperature=float(model_raw.get("temperature", 0.7)),
            ally_api_key_env=model_raw.get("ally_api_key_env"),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    if defaults.provider not in models:
        raise ValueError(f"Default provider '{defaults.provider}' has no entry under models")

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        loop=loop,
        reveal=reveal,
        storage=storage,
        available_providers=available_providers,
    )
