from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, Field

from .api import MoveAction
from .board import Board
from .enums import Color, Phase


@dataclass
class GameCounters:
    stones: dict[Color, int] = field(
        default_factory=lambda: {Color.BLACK: 0, Color.WHITE: 0}
    )
    pending: int = 0  # bonus placements or removals owed to the player to move
    exchange_removal: bool = False  # full-board exchange: both sides remove one


@dataclass
class GameState:
    board: Board = field(default_factory=Board)
    phase: Phase = Phase.PLACING
    to_move: Color = Color.BLACK
    counters: GameCounters = field(default_factory=GameCounters)
    last_moves: dict[Color, Optional[MoveAction]] = field(
        default_factory=lambda: {Color.BLACK: None, Color.WHITE: None}
    )
    turn: int = 0
    winner: Color | None = None
    reason: str | None = None

    @property
    def over(self) -> bool:
        return self.winner is not None

    def copy(self) -> GameState:
        return GameState(
            board=self.board.copy(),
            phase=self.phase,
            to_move=self.to_move,
            counters=GameCounters(
                stones=dict(self.counters.stones),
                pending=self.counters.pending,
                exchange_removal=self.counters.exchange_removal,
            ),
            last_moves=dict(self.last_moves),
            turn=self.turn,
            winner=self.winner,
            reason=self.reason,
        )

    def view(self) -> GameView:
        return GameView(
            board=self.board.to_wire(),
            phase=self.phase,
            to_move=self.to_move,
            stones=dict(self.counters.stones),
            pending=self.counters.pending,
            exchange_removal=self.counters.exchange_removal,
            last_moves=dict(self.last_moves),
            turn=self.turn,
            winner=self.winner,
            reason=self.reason,
        )

    @classmethod
    def from_view(cls, v: GameView) -> GameState:
        return cls(
            board=Board.from_wire(v.board),
            phase=v.phase,
            to_move=v.to_move,
            counters=GameCounters(
                stones=dict(v.stones),
                pending=v.pending,
                exchange_removal=v.exchange_removal,
            ),
            last_moves={c: v.last_moves.get(c) for c in Color},
            turn=v.turn,
            winner=v.winner,
            reason=v.reason,
        )


class GameView(BaseModel):
    board: list[list[Optional[dict[str, Any]]]]
    phase: Phase
    to_move: Color
    stones: dict[Color, int]
    pending: int = 0
    exchange_removal: bool = False
    last_moves: dict[Color, Optional[MoveAction]] = Field(default_factory=dict)
    turn: int = 0
    winner: Color | None = None
    reason: str | None = None
