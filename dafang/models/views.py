from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from ..config import PlayerConfig
from ..core.formations import FormationResult
from .api import Action, DecisionRecord
from .enums import Color, Coord, FormationKind, Phase
from .game import GameView


class SessionView(BaseModel):
    id: str
    game: GameView
    players: dict[Color, PlayerConfig]


class FormationView(BaseModel):
    bonus_moves: int
    positions: list[Coord]
    kinds: list[FormationKind]

    @classmethod
    def of(cls, f: FormationResult | None) -> Optional[FormationView]:
        if f is None:
            return None
        return cls(bonus_moves=f.bonus_moves, positions=sorted(f.positions), kinds=list(f.kinds))


class LegalActionsResponse(BaseModel):
    color: Color
    phase: Phase
    scope: str
    actions: list[Action]


class ApplyActionResponse(BaseModel):
    applied: bool
    message: str
    formation: Optional[FormationView] = None
    session: SessionView


class AITurnResponse(BaseModel):
    decision: DecisionRecord
    message: str
    formation: Optional[FormationView] = None
    session: SessionView
