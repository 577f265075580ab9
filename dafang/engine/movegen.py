"""Heuristic legal-action generator.

``legal_actions`` returns the subset of rule-legal actions a machine player
is allowed to pick from, best first. Ties are never collapsed: every action
that scores equal to the best under the documented tie-breaks is returned.
All trial placements happen on a private copy of the board.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, TypeVar

from ..core.cache import BoundedCache
from ..core.formations import formation_bonus
from ..core.geometry import OPENING_CELLS, orthogonal, surrounding, weight
from ..errors import InvariantViolation
from ..models.api import Action, MoveAction, PlaceAction, RemoveAction
from ..models.board import Board
from ..models.enums import Color, Coord, Difficulty, Phase
from ..models.game import GameCounters
from .rules import moves_for, removable_stones

if TYPE_CHECKING:
    from .simulation import SimulationAgent

T = TypeVar("T")


def _best(items: Sequence[T], key: Callable[[T], tuple]) -> list[T]:
    """All items whose key equals the maximum key, in input order."""
    if not items:
        return []
    keyed = [(key(it), it) for it in items]
    top = max(k for k, _ in keyed)
    return [it for k, it in keyed if k == top]


def _same_neighbors(board: Board, pos: Coord, color: Color) -> int:
    return sum(1 for p in orthogonal(pos) if board.color_at(*p) is color)


def placing_candidates(board: Board) -> list[Coord]:
    """Empty cells touching at least one stone; all empty cells on a bare board."""
    empty = board.empty_cells()
    near = [p for p in empty if any(not board.is_empty(n) for n in surrounding(p))]
    return near or empty


def forming_cells(
    board: Board, color: Color, opponent: Color, cache: BoundedCache | None = None
) -> list[Coord]:
    """Cells where ``color`` forms right now, else cells that block ``opponent`` forming."""
    cands = placing_candidates(board)
    for who in (color, opponent):
        scored = [(p, formation_bonus(p, who, board, cache)) for p in cands]
        hits = [(p, b) for p, b in scored if b > 0]
        if hits:
            best = _best(hits, lambda pb: (pb[1], weight(pb[0])))
            return [p for p, _ in best]
    return []


def _placement_threats(board: Board, color: Color, cache: BoundedCache | None) -> int:
    return sum(1 for p in board.empty_cells() if formation_bonus(p, color, board, cache))


def _two_ply(
    board: Board, cands: list[Coord], who: Color, cache: BoundedCache | None
) -> list[Coord]:
    """Candidates after which ``who`` has the most follow-up forming cells."""
    counts: list[tuple[Coord, int]] = []
    for p in cands:
        board.place(p, who)
        counts.append((p, _placement_threats(board, who, cache)))
        board.remove(p)
    if not counts or max(n for _, n in counts) == 0:
        return []
    return [p for p, _ in _best(counts, lambda pn: (pn[1], weight(pn[0])))]


def _placing(
    board: Board,
    color: Color,
    difficulty: Difficulty,
    cache: BoundedCache | None,
    agent: SimulationAgent | None,
) -> list[Coord]:
    if board.total() == 0:
        return list(OPENING_CELLS)
    empty = board.empty_cells()
    if len(empty) == 1:
        return empty
    opp = color.opponent
    hits = forming_cells(board, color, opp, cache)
    if hits:
        return hits
    cands = placing_candidates(board)
    if difficulty is not Difficulty.EASY:
        for who in (color, opp):
            found = _two_ply(board, cands, who, cache)
            if found:
                return found
    if agent is not None:
        return [a.position for a in agent.best_placement(color, opp, board, forming_cells)]
    return _best(cands, lambda p: (weight(p), _same_neighbors(board, p, color)))


def best_step_threat(board: Board, color: Color, cache: BoundedCache | None) -> int:
    """Largest bonus ``color`` can earn with a single orthogonal step."""
    best = 0
    for src in board.stones(color):
        dsts = [d for d in orthogonal(src) if board.is_empty(d)]
        if not dsts:
            continue
        stone = board.remove(src)
        for dst in dsts:
            best = max(best, formation_bonus(dst, color, board, cache))
        board.restore(src, stone)
    return best


def _step_threat_count(board: Board, color: Color, cache: BoundedCache | None) -> int:
    n = 0
    for src in board.stones(color):
        dsts = [d for d in orthogonal(src) if board.is_empty(d)]
        if not dsts:
            continue
        stone = board.remove(src)
        n += sum(1 for d in dsts if formation_bonus(d, color, board, cache))
        board.restore(src, stone)
    return n


def _opening_for(board: Board, cell: Coord, color: Color, cache: BoundedCache | None) -> int:
    """Best bonus ``color`` gets by stepping into the empty ``cell``."""
    best = 0
    for src in orthogonal(cell):
        st = board[src]
        if st is None or st.color is not color:
            continue
        board.remove(src)
        best = max(best, formation_bonus(cell, color, board, cache))
        board.restore(src, st)
    return best


def _moving(
    board: Board, color: Color, difficulty: Difficulty, cache: BoundedCache | None
) -> list[MoveAction]:
    opp = color.opponent
    moves = moves_for(board, color)
    if not moves:
        return []
    before = best_step_threat(board, opp, cache)

    rows: list[tuple[MoveAction, int, int, int, tuple]] = []
    for mv in moves:
        src, dst = mv.position, mv.new_position
        stone = board.remove(src)
        forms = formation_bonus(dst, color, board, cache)
        board.place(dst, color)
        after = best_step_threat(board, opp, cache)
        opens = _opening_for(board, src, opp, cache)
        if difficulty is not Difficulty.EASY:
            lookahead = (
                _step_threat_count(board, color, cache),
                -_step_threat_count(board, opp, cache),
            )
        else:
            lookahead = (0, 0)
        tie = lookahead + (weight(dst), _same_neighbors(board, dst, color))
        board.remove(dst)
        board.restore(src, stone)
        rows.append((mv, forms, after, opens, tie))

    forming = [r for r in rows if r[1] > 0]
    if forming:
        return [r[0] for r in _best(forming, lambda r: (r[1],) + r[4])]
    denying = [r for r in rows if before > 0 and r[2] < before and r[3] == 0]
    if denying:
        return [r[0] for r in _best(denying, lambda r: (before - r[2],) + r[4])]
    neutral = [r for r in rows if r[3] == 0]
    if neutral:
        return [r[0] for r in _best(neutral, lambda r: r[4])]
    return [r[0] for r in _best(rows, lambda r: (-r[3], -r[2]))]


def _removing(board: Board, color: Color, cache: BoundedCache | None) -> list[Coord]:
    opp = color.opponent
    eligible = removable_stones(board, opp)

    def isolation(p: Coord) -> int:
        return -_same_neighbors(board, p, opp)

    gains: list[tuple[Coord, int]] = []
    for p in eligible:
        stone = board.remove(p)
        gains.append((p, _opening_for(board, p, color, cache)))
        board.restore(p, stone)
    if any(g for _, g in gains):
        return [p for p, _ in _best(gains, lambda pg: (pg[1], isolation(pg[0])))]

    threat = best_step_threat(board, opp, cache)
    if threat:
        relief: list[tuple[Coord, int]] = []
        for p in eligible:
            stone = board.remove(p)
            relief.append((p, threat - best_step_threat(board, opp, cache)))
            board.restore(p, stone)
        if any(r > 0 for _, r in relief):
            return [p for p, _ in _best(relief, lambda pr: (pr[1], isolation(pr[0])))]
    return _best(eligible, lambda p: (isolation(p),))


def legal_actions(
    phase: Phase,
    color: Color,
    board: Board,
    counters: GameCounters | None = None,
    *,
    difficulty: Difficulty = Difficulty.EASY,
    cache: BoundedCache | None = None,
    agent: SimulationAgent | None = None,
) -> list[Action]:
    """Heuristic legal-action set for ``color`` in ``phase``, best first."""
    stones = counters.stones if counters else {c: board.count(c) for c in Color}
    if phase is Phase.MOVING and stones[color] == 0:
        raise InvariantViolation(f"{color.value} has no stones to move")
    if phase is Phase.REMOVING and stones[color.opponent] == 0:
        raise InvariantViolation(f"{color.opponent.value} has no stones to remove")

    work = board.copy()
    if phase is Phase.PLACING:
        return [PlaceAction(position=p) for p in _placing(work, color, difficulty, cache, agent)]
    if phase is Phase.MOVING:
        return list(_moving(work, color, difficulty, cache))
    return [RemoveAction(position=p) for p in _removing(work, color, cache)]
