# tests/utils/boards.py
# Build game states from text diagrams.
#
# Rows use "B"/"W" for stones (lowercase marks a formation flag) and "."
# for empty points, e.g. ["BB....", "B.....", ...].
from dafang.models.board import Board
from dafang.models.enums import Color, Phase
from dafang.models.game import GameCounters, GameState

EMPTY = ["......"] * 6


def build_state(
    rows: list[str],
    phase: Phase = Phase.PLACING,
    to_move: Color = Color.BLACK,
    pending: int = 0,
    exchange: bool = False,
) -> GameState:
    board = Board.from_rows(rows)
    counters = GameCounters(
        stones={c: board.count(c) for c in Color},
        pending=pending,
        exchange_removal=exchange,
    )
    return GameState(board=board, phase=phase, to_move=to_move, counters=counters)
