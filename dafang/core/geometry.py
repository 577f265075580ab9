from __future__ import annotations

from ..models.enums import Coord

SIZE = 6
MAX_STONES = SIZE * SIZE
MIN_STONES_TO_PLAY = 3

# Orthogonal steps used for moving stones.
ADJACENT: tuple[Coord, ...] = ((-1, 0), (1, 0), (0, -1), (0, 1))
# Full 8-neighbourhood used for candidate placement cells.
NEIGHBORS: tuple[Coord, ...] = (
    (-1, -1),
    (-1, 0),
    (-1, 1),
    (0, -1),
    (0, 1),
    (1, -1),
    (1, 0),
    (1, 1),
)

# The first stone of the game goes on one of the corner-adjacent points.
OPENING_CELLS: tuple[Coord, ...] = ((1, 1), (1, 4), (4, 1), (4, 4))

# Static positional weights; corners are worthless, the inner ring is prime.
WEIGHTS: tuple[tuple[float, ...], ...] = (
    (0.0, 0.5, 0.7, 0.7, 0.5, 0.0),
    (0.5, 1.0, 0.9, 0.9, 1.0, 0.5),
    (0.7, 0.9, 0.8, 0.8, 0.9, 0.7),
    (0.7, 0.9, 0.8, 0.8, 0.9, 0.7),
    (0.5, 1.0, 0.9, 0.9, 1.0, 0.5),
    (0.0, 0.5, 0.7, 0.7, 0.5, 0.0),
)

ALL_CELLS: tuple[Coord, ...] = tuple((r, c) for r in range(SIZE) for c in range(SIZE))


def in_bounds(r: int, c: int) -> bool:
    return 0 <= r < SIZE and 0 <= c < SIZE


def on_edge(r: int, c: int) -> bool:
    return r == 0 or c == 0 or r == SIZE - 1 or c == SIZE - 1


def weight(pos: Coord) -> float:
    return WEIGHTS[pos[0]][pos[1]]


def orthogonal(pos: Coord) -> list[Coord]:
    r, c = pos
    return [(r + dr, c + dc) for dr, dc in ADJACENT if in_bounds(r + dr, c + dc)]


def surrounding(pos: Coord) -> list[Coord]:
    r, c = pos
    return [(r + dr, c + dc) for dr, dc in NEIGHBORS if in_bounds(r + dr, c + dc)]
