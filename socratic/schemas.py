"""Validated shapes for every structured response the engines request."""

import logging
from enum import Enum
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from socratic.providers.base import SchemaViolationError

logger = logging.getLogger(__name__)

BoardRole = Literal["Skeptic", "Visionary", "Pragmatist", "Innovator", "Critic"]
BOARD_ROLES: tuple[str, ...] = ("Skeptic", "Visionary", "Pragmatist", "Innovator", "Critic")

HAT_ORDER: tuple[str, ...] = ("white", "red", "black", "yellow", "green", "blue")


class ArtifactSchemaError(SchemaViolationError):
    """A structured response parsed as JSON but does not match the artifact shape."""


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Reaction(_Frozen):
    role: BoardRole
    initial_thought: str = Field(min_length=1)


class DebateLine(_Frozen):
    role: BoardRole
    target_role: BoardRole | Literal["Group"]
    argument: str = Field(min_length=1)


class Verdict(_Frozen):
    winner: str = Field(min_length=1)
    vote_summary: str = Field(min_length=1)
    critical_warning: str = Field(min_length=1)   # the pre-mortem


class DecisionArtifact(_Frozen):
    """Decision lab board meeting: reactions, then the debate, then the verdict."""

    reactions: tuple[Reaction, ...] = Field(alias="phase_1")
    debate: tuple[DebateLine, ...] = Field(alias="phase_2", min_length=1)
    verdict: Verdict = Field(alias="phase_3")

    @model_validator(mode="after")
    def _each_persona_reacts_once(self) -> "DecisionArtifact":
        roles = [r.role for r in self.reactions]
        missing = [r for r in BOARD_ROLES if r not in roles]
        repeated = sorted({r for r in roles if roles.count(r) > 1})
        if missing or repeated:
            raise ValueError(f"reactions must cover each persona once (missing={missing}, repeated={repeated})")
        for line in self.debate:
            if line.role == line.target_role:
                raise ValueError(f"{line.role} cannot address itself")
        return self


class Hat(_Frozen):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)


class SixHatsArtifact(_Frozen):
    white: Hat = Field(alias="white_hat")
    red: Hat = Field(alias="red_hat")
    black: Hat = Field(alias="black_hat")
    yellow: Hat = Field(alias="yellow_hat")
    green: Hat = Field(alias="green_hat")
    blue: Hat = Field(alias="blue_hat")

    def hats(self) -> list[tuple[str, Hat]]:
        return [(name, getattr(self, name)) for name in HAT_ORDER]


class Winner(str, Enum):
    USER = "USER"
    AGENT = "AGENT"
    DRAW = "DRAW"


class Scorecard(_Frozen):
    """Terminal verdict of a debate, scored from the defender's side."""

    winner: Winner
    score: int = Field(ge=0, le=100)
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    commentary: str = ""

    @model_validator(mode="before")
    @classmethod
    def _fold_single_fields(cls, data: Any) -> Any:
        # Judges sometimes answer with best_point / critical_feedback strings instead of lists
        if isinstance(data, dict):
            data = dict(data)
            if "strengths" not in data and data.get("best_point"):
                data["strengths"] = [data.pop("best_point")]
            if "weaknesses" not in data and data.get("critical_feedback"):
                data["weaknesses"] = [data.pop("critical_feedback")]
        return data

    @field_validator("winner", mode="before")
    @classmethod
    def _normalize_winner(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().upper()
            return "AGENT" if value == "AI" else value
        return value

    @field_validator("strengths", "weaknesses", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value


class PersonaSpec(_Frozen):
    role: str = Field(min_length=1)
    goal: str = Field(min_length=1)


class PersonaPair(_Frozen):
    persona_a: PersonaSpec
    persona_b: PersonaSpec


class RootCauseAnalysis(_Frozen):
    root_cause: str = Field(min_length=1)
    solution: str = Field(min_length=1)
    advice: str = ""


class DevilsDefinition(_Frozen):
    word: str = Field(min_length=1)
    definition: str = Field(min_length=1)
    usage: str = ""


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_artifact(model: type[ModelT], text: str) -> ModelT:
    """Validate a structured response against its artifact model.

    Raises:
        ArtifactSchemaError: The text is not JSON or does not match the model.
    """
    try:
        return model.model_validate_json(text)
    except ValidationError as exc:
        logger.warning("%s failed validation: %d error(s)", model.__name__, exc.error_count())
        logger.debug("Rejected %s payload: %s", model.__name__, text)
        raise ArtifactSchemaError(model.__name__, f"Response does not match schema: {exc}") from exc
