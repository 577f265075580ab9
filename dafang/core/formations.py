"""Formation detection.

Every check answers the question "if ``color`` stands at ``pos``, which
formations does that stone complete?". The cell at ``pos`` itself is never
read, so callers can test an empty cell without placing anything.

Three formation kinds exist:

* square: any 2x2 block, +1 bonus move per block;
* diagonal: a full 45-degree diagonal running edge to edge, at least
  3 stones long, worth ``length - 2``;
* line: a full interior rank or file (rows/cols 1..4), worth 4.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from ..models.board import Board
from ..models.enums import Color, Coord, FormationKind
from .cache import BoundedCache
from .geometry import SIZE, in_bounds, on_edge

# For each of the four 2x2 blocks around a point: the three other corners.
SQUARE_PATTERNS: tuple[tuple[Coord, Coord, Coord], ...] = (
    ((-1, -1), (-1, 0), (0, -1)),
    ((-1, 0), (-1, 1), (0, 1)),
    ((0, -1), (1, -1), (1, 0)),
    ((0, 1), (1, 0), (1, 1)),
)
DIAGONAL_DIRECTIONS: tuple[Coord, ...] = ((1, 1), (1, -1))
LINE_DIRECTIONS: tuple[Coord, ...] = ((0, 1), (1, 0))

MIN_DIAGONAL = 3
LINE_BONUS = 4
MAX_EDGE_CELLS = 3


@dataclass(frozen=True)
class FormationResult:
    bonus_moves: int
    positions: frozenset[Coord]
    kinds: tuple[FormationKind, ...]
    diagonals: tuple[int, ...] = ()

    def describe(self) -> str:
        counts = Counter(self.kinds)
        parts: list[str] = []
        if counts[FormationKind.SQUARE]:
            n = counts[FormationKind.SQUARE]
            parts.append(f"{n} square" + ("s" if n > 1 else ""))
        for length in self.diagonals:
            parts.append(f"{length}-stone diagonal")
        if counts[FormationKind.LINE]:
            n = counts[FormationKind.LINE]
            parts.append(f"{n} line" + ("s" if n > 1 else ""))
        return ", ".join(parts)


def check_square(pos: Coord, color: Color, board: Board) -> tuple[int, set[Coord]]:
    r, c = pos
    count = 0
    cells: set[Coord] = set()
    for pattern in SQUARE_PATTERNS:
        triple = [(r + dr, c + dc) for dr, dc in pattern]
        if all(board.color_at(x, y) is color for x, y in triple):
            count += 1
            cells.update(triple)
    return count, cells


def _walk(pos: Coord, step: Coord, color: Color, board: Board) -> list[Coord]:
    out: list[Coord] = []
    r, c = pos[0] + step[0], pos[1] + step[1]
    while board.color_at(r, c) is color:
        out.append((r, c))
        r, c = r + step[0], c + step[1]
    return out


def check_diagonal(
    pos: Coord, color: Color, board: Board
) -> tuple[list[int], set[Coord]]:
    lengths: list[int] = []
    cells: set[Coord] = set()
    for dr, dc in DIAGONAL_DIRECTIONS:
        forward = _walk(pos, (dr, dc), color, board)
        backward = _walk(pos, (-dr, -dc), color, board)
        start = backward[-1] if backward else pos
        end = forward[-1] if forward else pos
        count = 1 + len(forward) + len(backward)
        if on_edge(*start) and on_edge(*end) and count >= MIN_DIAGONAL:
            lengths.append(count)
            cells.update(forward)
            cells.update(backward)
    return lengths, cells


def check_line(pos: Coord, color: Color, board: Board) -> tuple[int, set[Coord]]:
    count_lines = 0
    cells: set[Coord] = set()
    for dr, dc in LINE_DIRECTIONS:
        run: list[Coord] = []
        edge_count = 1 if on_edge(*pos) else 0
        disqualified = False
        for sr, sc in ((dr, dc), (-dr, -dc)):
            r, c = pos[0] + sr, pos[1] + sc
            while in_bounds(r, c) and board.color_at(r, c) is color:
                run.append((r, c))
                if on_edge(r, c):
                    edge_count += 1
                if edge_count >= MAX_EDGE_CELLS:
                    disqualified = True
                    break
                r, c = r + sr, c + sc
            if disqualified:
                break
        if not disqualified and len(run) + 1 == SIZE:
            count_lines += 1
            cells.update(run)
    return count_lines, cells


def _detect(pos: Coord, color: Color, board: Board) -> FormationResult | None:
    squares, square_cells = check_square(pos, color, board)
    diagonals, diagonal_cells = check_diagonal(pos, color, board)
    lines, line_cells = check_line(pos, color, board)

    bonus = squares + sum(n - 2 for n in diagonals) + lines * LINE_BONUS
    if bonus <= 0:
        return None
    kinds = (
        (FormationKind.SQUARE,) * squares
        + (FormationKind.DIAGONAL,) * len(diagonals)
        + (FormationKind.LINE,) * lines
    )
    positions = frozenset(square_cells | diagonal_cells | line_cells | {pos})
    return FormationResult(bonus, positions, kinds, tuple(diagonals))


def detect_formation(
    pos: Coord, color: Color, board: Board, cache: BoundedCache | None = None
) -> FormationResult | None:
    """Formations completed by ``color`` at ``pos``; ``None`` when nothing forms."""
    if cache is None:
        return _detect(pos, color, board)
    key = ("formation", pos[0], pos[1], color.value, board.digest)
    return cache.get_or_compute(key, lambda: _detect(pos, color, board))


def formation_bonus(
    pos: Coord, color: Color, board: Board, cache: BoundedCache | None = None
) -> int:
    res = detect_formation(pos, color, board, cache)
    return res.bonus_moves if res else 0


def is_still_in_formation(pos: Coord, color: Color, board: Board) -> bool:
    """Whether the stone at ``pos`` still belongs to any formation."""
    squares, _ = check_square(pos, color, board)
    if squares:
        return True
    diagonals, _ = check_diagonal(pos, color, board)
    if diagonals:
        return True
    lines, _ = check_line(pos, color, board)
    return lines > 0


def in_square(pos: Coord, color: Color, board: Board) -> bool:
    squares, _ = check_square(pos, color, board)
    return squares > 0


# ----- static pattern table -----


@dataclass(frozen=True)
class Pattern:
    kind: FormationKind
    cells: tuple[Coord, ...]
    bonus: int


def _build_patterns() -> tuple[Pattern, ...]:
    out: list[Pattern] = []
    for r in range(SIZE - 1):
        for c in range(SIZE - 1):
            cells = ((r, c), (r, c + 1), (r + 1, c), (r + 1, c + 1))
            out.append(Pattern(FormationKind.SQUARE, cells, 1))
    starts = {
        (1, 1): [(0, c) for c in range(SIZE)] + [(r, 0) for r in range(1, SIZE)],
        (1, -1): [(0, c) for c in range(SIZE)] + [(r, SIZE - 1) for r in range(1, SIZE)],
    }
    for (dr, dc), origins in starts.items():
        for r, c in origins:
            cells_l: list[Coord] = []
            while in_bounds(r, c):
                cells_l.append((r, c))
                r, c = r + dr, c + dc
            if len(cells_l) >= MIN_DIAGONAL:
                out.append(Pattern(FormationKind.DIAGONAL, tuple(cells_l), len(cells_l) - 2))
    for i in range(1, SIZE - 1):
        out.append(Pattern(FormationKind.LINE, tuple((i, c) for c in range(SIZE)), LINE_BONUS))
        out.append(Pattern(FormationKind.LINE, tuple((r, i) for r in range(SIZE)), LINE_BONUS))
    return tuple(out)


PATTERNS: tuple[Pattern, ...] = _build_patterns()
PATTERNS_BY_CELL: dict[Coord, tuple[int, ...]] = {
    (r, c): tuple(i for i, p in enumerate(PATTERNS) if (r, c) in p.cells)
    for r in range(SIZE)
    for c in range(SIZE)
}


def pattern_bonus(pos: Coord, color: Color, board: Board) -> int:
    """Bonus at ``pos`` computed from the pattern table instead of walking."""
    total = 0
    for idx in PATTERNS_BY_CELL[pos]:
        pat = PATTERNS[idx]
        if all(cell == pos or board.color_at(*cell) is color for cell in pat.cells):
            total += pat.bonus
    return total
