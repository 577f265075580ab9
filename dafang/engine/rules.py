"""Rule-level legality, commit and phase transitions.

``validate`` answers ``(ok, reason)`` for any action against the full rules;
``apply_action`` is the only code path that mutates a live ``GameState``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from ..core.cache import BoundedCache
from ..core.formations import (
    FormationResult,
    detect_formation,
    in_square,
    is_still_in_formation,
)
from ..core.geometry import MAX_STONES, MIN_STONES_TO_PLAY, orthogonal
from ..errors import IllegalAction
from ..models.api import Action, MoveAction, PlaceAction, RemoveAction, describe_action
from ..models.board import Board
from ..models.enums import Color, Coord, Phase
from ..models.game import GameState

logger = logging.getLogger(__name__)


@dataclass
class Outcome:
    color: Color
    action: Action
    formation: FormationResult | None
    message: str


# ----- queries -----


def removable_stones(board: Board, victim: Color) -> list[Coord]:
    """Stones of ``victim`` that may be taken right now.

    Stones outside any formation go first; once every stone is in a formation,
    stones that are not part of a square; only then anything.
    """
    stones = board.stones(victim)
    free = [p for p in stones if not board[p].in_formation]
    if free:
        return free
    not_square = [p for p in stones if not in_square(p, victim, board)]
    return not_square or stones


def can_remove(board: Board, remover: Color, pos: Coord) -> tuple[bool, str]:
    st = board[pos]
    if st is None:
        return False, "no stone at target"
    if st.color is remover:
        return False, "cannot remove your own stone"
    if pos not in removable_stones(board, st.color):
        if st.in_formation and any(
            not board[p].in_formation for p in board.stones(st.color)
        ):
            return False, "stone is protected by a formation"
        return False, "stone is protected by a square"
    return True, "ok"


def moves_for(board: Board, color: Color) -> list[MoveAction]:
    out: list[MoveAction] = []
    for pos in board.stones(color):
        for dst in orthogonal(pos):
            if board.is_empty(dst):
                out.append(MoveAction(position=pos, new_position=dst))
    return out


def has_valid_moves(board: Board, color: Color) -> bool:
    for pos in board.stones(color):
        if any(board.is_empty(dst) for dst in orthogonal(pos)):
            return True
    return False


def all_actions(state: GameState) -> list[Action]:
    """Every action the full rules allow for the player to move."""
    if state.over:
        return []
    board, color = state.board, state.to_move
    if state.phase is Phase.PLACING:
        return [PlaceAction(position=p) for p in board.empty_cells()]
    if state.phase is Phase.MOVING:
        return list(moves_for(board, color))
    return [RemoveAction(position=p) for p in removable_stones(board, color.opponent)]


def validate(state: GameState, action: Action) -> tuple[bool, str]:
    if state.over:
        return False, "game is over"
    if action.phase is not state.phase:
        return False, f"expected a {state.phase.value} action, got {action.action}"
    board, color = state.board, state.to_move
    if isinstance(action, PlaceAction):
        if not board.is_empty(action.position):
            return False, "cell is occupied"
        return True, "ok"
    if isinstance(action, MoveAction):
        src, dst = action.position, action.new_position
        st = board[src]
        if st is None or st.color is not color:
            return False, "no stone of yours at origin"
        if abs(src[0] - dst[0]) + abs(src[1] - dst[1]) != 1:
            return False, "stones move one orthogonal step"
        if not board.is_empty(dst):
            return False, "destination is occupied"
        return True, "ok"
    return can_remove(board, color, action.position)


def is_repeat_move(
    state: GameState, color: Color, action: Action, cache: BoundedCache | None = None
) -> bool:
    """Whether ``action`` undoes ``color``'s previous move without any formation change."""
    last = state.last_moves.get(color)
    if not isinstance(action, MoveAction) or last is None:
        return False
    if action.position != last.new_position or action.new_position != last.position:
        return False
    board = state.board
    if detect_formation(action.position, color, board, cache):
        return False  # breaks a formation
    work = board.copy()
    work.remove(action.position)
    return detect_formation(action.new_position, color, work, cache) is None


# ----- commit -----


def _refresh_flags(board: Board, positions: Iterable[Coord], color: Color) -> None:
    for pos in positions:
        st = board[pos]
        if st is not None and st.color is color and st.in_formation:
            st.in_formation = is_still_in_formation(pos, color, board)


def _mark(board: Board, formation: FormationResult) -> None:
    for pos in formation.positions:
        board.set_flag(pos, True)


def _pass_turn(state: GameState) -> None:
    state.to_move = state.to_move.opponent


def apply_action(
    state: GameState, action: Action, cache: BoundedCache | None = None
) -> Outcome:
    """Validate and commit ``action`` for the player to move."""
    ok, why = validate(state, action)
    if not ok:
        raise IllegalAction(why, action=action)
    color = state.to_move
    if isinstance(action, PlaceAction):
        out = _apply_place(state, color, action, cache)
    elif isinstance(action, MoveAction):
        out = _apply_move(state, color, action, cache)
        check_game_over(state)
    else:
        out = _apply_remove(state, color, action, cache)
        check_game_over(state)
    state.turn += 1
    logger.debug("turn %d: %s %s", state.turn, color.value, describe_action(action))
    return out


def _apply_place(
    state: GameState, color: Color, action: PlaceAction, cache: BoundedCache | None
) -> Outcome:
    board, counters = state.board, state.counters
    pos = action.position
    formation = detect_formation(pos, color, board, cache)
    board.place(pos, color)
    counters.stones[color] += 1
    if formation:
        _mark(board, formation)

    msg = f"{color.value} placed at {list(pos)}"
    if formation:
        msg += f" and formed {formation.describe()}"
    if board.total() == MAX_STONES:
        state.phase = Phase.REMOVING
        counters.pending = 1
        counters.exchange_removal = True
        return Outcome(color, action, formation, msg + "; the board is full, each side removes one stone")
    bonus = formation.bonus_moves if formation else 0
    if counters.pending > 0:
        counters.pending = counters.pending - 1 + bonus
        if counters.pending == 0:
            _pass_turn(state)
    elif bonus:
        counters.pending = bonus
    else:
        _pass_turn(state)
    if counters.pending and state.to_move is color:
        msg += f"; {counters.pending} bonus placement(s) left"
    return Outcome(color, action, formation, msg)


def _apply_remove(
    state: GameState, color: Color, action: RemoveAction, cache: BoundedCache | None
) -> Outcome:
    board, counters = state.board, state.counters
    pos = action.position
    victim = color.opponent
    broken = detect_formation(pos, victim, board, cache)
    board.remove(pos)
    counters.stones[victim] -= 1
    if broken:
        _refresh_flags(board, broken.positions - {pos}, victim)

    msg = f"{color.value} removed {victim.value} stone at {list(pos)}"
    if counters.exchange_removal:
        counters.exchange_removal = False
        counters.pending = 1
        _pass_turn(state)
        return Outcome(color, action, None, msg)
    counters.pending -= 1
    if counters.pending <= 0:
        counters.pending = 0
        _pass_turn(state)
        state.phase = Phase.MOVING
    else:
        msg += f"; {counters.pending} removal(s) left"
    return Outcome(color, action, None, msg)


def _apply_move(
    state: GameState, color: Color, action: MoveAction, cache: BoundedCache | None
) -> Outcome:
    board, counters = state.board, state.counters
    src, dst = action.position, action.new_position
    broken = detect_formation(src, color, board, cache)
    board.move(src, dst)
    if broken:
        _refresh_flags(board, broken.positions - {src}, color)
    formation = detect_formation(dst, color, board, cache)

    msg = f"{color.value} moved {list(src)} -> {list(dst)}"
    if formation:
        _mark(board, formation)
        counters.pending = formation.bonus_moves
        state.phase = Phase.REMOVING
        msg += f" and formed {formation.describe()}; {formation.bonus_moves} removal(s)"
    else:
        counters.pending = 0
        _pass_turn(state)
    state.last_moves[color] = action
    return Outcome(color, action, formation, msg)


def check_game_over(state: GameState) -> None:
    if state.over:
        return
    cur = state.to_move
    opp = cur.opponent
    stones = state.counters.stones
    if stones[cur] < MIN_STONES_TO_PLAY:
        state.winner, state.reason = opp, f"{cur.value} has fewer than {MIN_STONES_TO_PLAY} stones"
    elif (
        state.phase is Phase.REMOVING
        and state.counters.pending > 0
        and state.counters.pending + MIN_STONES_TO_PLAY > stones[opp]
    ):
        state.winner, state.reason = cur, f"{opp.value} will be left with fewer than {MIN_STONES_TO_PLAY} stones"
    elif state.phase is Phase.MOVING and not has_valid_moves(state.board, cur):
        state.winner, state.reason = opp, f"{cur.value} has no legal move"
    if state.over:
        logger.info("game over: %s wins (%s)", state.winner.value, state.reason)
