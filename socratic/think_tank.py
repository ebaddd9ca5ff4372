"""Think tank: two contrasting personas brainstorm an idea, the user steers as Manager."""

import logging
from collections.abc import Sequence

from config.config_loader import localize
from socratic.loop import AlternatingSeatLoop, Seat, TurnRequest
from socratic.models import Persona, PhaseHint, Turn, TurnKind
from socratic.schemas import ArtifactSchemaError, PersonaPair, parse_artifact
from socratic.transcript import flatten_turns

logger = logging.getLogger(__name__)

MANAGER_AUTHOR = "Manager"


class ThinkTankLoop(AlternatingSeatLoop):
    human_author = MANAGER_AUTHOR

    async def _assign_seats(self, topic: str) -> list[Seat]:
        raw = await self._gateway.complete(
            topic,
            localize(self._prompts, self._prompts.think_tank_dispatch, self._language),
            structured=True,
        )
        pair = parse_artifact(PersonaPair, raw)
        if pair.persona_a.role.strip().lower() == pair.persona_b.role.strip().lower():
            raise ArtifactSchemaError("PersonaPair", f"Both personas are '{pair.persona_a.role}'")
        return [
            Seat("persona_a", Persona(role_name=pair.persona_a.role, goal=pair.persona_a.goal)),
            Seat("persona_b", Persona(role_name=pair.persona_b.role, goal=pair.persona_b.goal)),
        ]

    def _partner(self, seat: Seat) -> Seat:
        return next(s for s in self._seats if s.seat_id != seat.seat_id)

    def _build_request(self, seat: Seat, turns: Sequence[Turn], hint: PhaseHint, override: bool) -> TurnRequest:
        phase_instruction = self._prompts.phases.get(hint.value, "")
        if override:
            phase_instruction = f"{self._prompts.phases.get('manager_override', '').rstrip()}\n{phase_instruction}"

        system = self._prompts.think_tank_turn.format(
            role=seat.persona.role_name,
            goal=seat.persona.goal,
            partner=self._partner(seat).label,
            round=self._rounds + 1,
            max_rounds=self._max_rounds,
            phase_instruction=phase_instruction,
            idea=self._topic,
            min_round=max(1, self._max_rounds - 1),
            stop_token=self._stop_policy.token,
        )
        history = flatten_turns(t for t in turns if t.kind is TurnKind.DIALOGUE)
        content = self._prompts.think_tank_history.format(
            history=history or "(The discussion has not started yet.)",
            role=seat.label,
        )
        return TurnRequest(content=content, system_instruction=localize(self._prompts, system, self._language))
