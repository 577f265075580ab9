"""Playout-based scoring of candidate placements.

Playouts run on a flat 36-cell integer grid (0 empty, 1 the scoring color,
2 its opponent) with per-pattern stone counters, so finding forming cells is
a scan of the static pattern table rather than a board walk.
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Generic, TypeVar

from ..config import SimulationBudget
from ..core.cache import MISSING, BoundedCache
from ..core.formations import PATTERNS, PATTERNS_BY_CELL
from ..core.geometry import ALL_CELLS, SIZE, weight
from ..models.api import PlaceAction
from ..models.board import Board
from ..models.enums import Color, Coord
from .movegen import placing_candidates

logger = logging.getLogger(__name__)

T = TypeVar("T")

Evaluator = Callable[[Board, Color, Color, BoundedCache | None], list[Coord]]

ME, THEM = 1, 2
MIN_DEPTH = 4
THREAT_WEIGHT = 0.5

_PAT_CELLS: tuple[tuple[int, ...], ...] = tuple(
    tuple(r * SIZE + c for r, c in p.cells) for p in PATTERNS
)
_PAT_BY_INDEX: tuple[tuple[int, ...], ...] = tuple(
    PATTERNS_BY_CELL[(i // SIZE, i % SIZE)] for i in range(SIZE * SIZE)
)


class ShuffledBag(Generic[T]):
    """Draws items in random order without replacement, refilling when empty."""

    def __init__(self, items: Iterable[T], rng: random.Random) -> None:
        self._items = list(items)
        if not self._items:
            raise ValueError("bag needs at least one item")
        self._rng = rng
        self._pool: list[T] = []

    def draw(self) -> T:
        if not self._pool:
            self._pool = list(self._items)
            self._rng.shuffle(self._pool)
        return self._pool.pop()

    def draw_where(self, pred: Callable[[T], bool]) -> T | None:
        # Two passes cover a partially drained pool plus one full refill.
        for _ in range(2 * len(self._items)):
            item = self.draw()
            if pred(item):
                return item
        return None


class _Grid:
    __slots__ = ("cells", "counts")

    def __init__(self, cells: list[int]) -> None:
        self.cells = cells
        self.counts = {ME: [0] * len(PATTERNS), THEM: [0] * len(PATTERNS)}
        for idx, who in enumerate(cells):
            if who:
                for pid in _PAT_BY_INDEX[idx]:
                    self.counts[who][pid] += 1

    def place(self, idx: int, who: int) -> None:
        self.cells[idx] = who
        mine = self.counts[who]
        for pid in _PAT_BY_INDEX[idx]:
            mine[pid] += 1

    def _open_cells(self, who: int, missing: int) -> set[int]:
        mine, theirs = self.counts[who], self.counts[3 - who]
        out: set[int] = set()
        for pid, cells in enumerate(_PAT_CELLS):
            if theirs[pid] == 0 and mine[pid] == len(cells) - missing:
                out.update(i for i in cells if self.cells[i] == 0)
        return out

    def forming(self, who: int) -> set[int]:
        return self._open_cells(who, 1)

    def opportunities(self, who: int) -> set[int]:
        return self._open_cells(who, 2)

    def has_empty(self) -> bool:
        return 0 in self.cells

    def score(self) -> float:
        diff = self.cells.count(ME) - self.cells.count(THEM)
        raw = diff + THREAT_WEIGHT * (bool(self.forming(ME)) - bool(self.forming(THEM)))
        return 1.0 / (1.0 + math.exp(-raw))


def encode(board: Board, color: Color) -> list[int]:
    out: list[int] = []
    for r, c in ALL_CELLS:
        who = board.color_at(r, c)
        out.append(0 if who is None else (ME if who is color else THEM))
    return out


def playout(cells: list[int], depth: int, rng: random.Random) -> float:
    """One random continuation after our placement; the opponent moves first."""
    grid = _Grid(list(cells))
    bag = ShuffledBag(range(SIZE * SIZE), rng)
    mover = THEM
    for _ in range(depth):
        if not grid.has_empty():
            break
        if grid.forming(mover):
            return 1.0 if mover == ME else 0.0
        chosen = grid.opportunities(mover) or grid.forming(3 - mover)
        if chosen:
            idx = rng.choice(sorted(chosen))
        else:
            idx = bag.draw_where(lambda i: grid.cells[i] == 0)
            if idx is None:
                break
        grid.place(idx, mover)
        mover = 3 - mover
    return grid.score()


class SimulationAgent:
    def __init__(
        self,
        budget: SimulationBudget,
        *,
        cache: BoundedCache | None = None,
        seed: int | None = None,
        time_limit: float | None = None,
        max_workers: int = 1,
    ) -> None:
        self.budget = budget
        self.cache = cache
        self.time_limit = time_limit
        self.max_workers = max(1, max_workers)
        self._rng = random.Random(seed)
        self._cancel = threading.Event()
        self.last_playouts = 0

    def cancel(self) -> None:
        """Ask the running search to stop after each candidate's minimum playouts."""
        self._cancel.set()

    def budget_for(self, empty_cells: int) -> tuple[int, int]:
        b = self.budget
        n = max(1, min(b.max_simulations, empty_cells * empty_cells))
        d = max(MIN_DEPTH, b.min_depth, min(b.max_depth, empty_cells))
        return n, d

    def best_placement(
        self, color: Color, opponent: Color, board: Board, evaluator: Evaluator
    ) -> list[PlaceAction]:
        """Highest-scoring placements for ``color``; all ties by score and weight."""
        self._cancel.clear()
        hits = evaluator(board, color, opponent, self.cache)
        if hits:
            return [PlaceAction(position=p) for p in hits]
        cands = placing_candidates(board)
        if len(cands) <= 1:
            return [PlaceAction(position=p) for p in cands]

        n, d = self.budget_for(len(board.empty_cells()))
        cells = encode(board, color)
        seeds = [self._rng.getrandbits(64) for _ in cands]
        stop_at = time.monotonic() + self.time_limit if self.time_limit else None
        jobs = [(p, board.digest_with(p, color), s) for p, s in zip(cands, seeds)]

        def run(job: tuple[Coord, int, int]) -> tuple[float, int]:
            pos, digest, seed = job
            return self._score(cells, pos, color, digest, n, d, seed, stop_at)

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(run, jobs))
        else:
            results = [run(j) for j in jobs]

        self.last_playouts = sum(done for _, done in results)
        scored = [(p, round(s, 9)) for p, (s, _) in zip(cands, results)]
        top = max((s, weight(p)) for p, s in scored)
        logger.debug(
            "simulated %d candidates, %d playouts, best %.3f", len(cands), self.last_playouts, top[0]
        )
        return [PlaceAction(position=p) for p, s in scored if (s, weight(p)) == top]

    def _score(
        self,
        cells: list[int],
        pos: Coord,
        color: Color,
        digest: int,
        n: int,
        d: int,
        seed: int,
        stop_at: float | None,
    ) -> tuple[float, int]:
        key = ("playout", color.value, digest, n, d)
        if self.cache is not None:
            hit = self.cache.get(key, MISSING)
            if hit is not MISSING:
                return hit, 0
        rng = random.Random(seed)
        start = list(cells)
        start[pos[0] * SIZE + pos[1]] = ME
        floor = min(n, self.budget.min_simulations)
        total = 0.0
        done = 0
        for i in range(n):
            if i >= floor and (
                self._cancel.is_set() or (stop_at is not None and time.monotonic() > stop_at)
            ):
                break
            total += playout(start, d, rng)
            done += 1
        score = total / done
        if self.cache is not None and done == n:
            self.cache.set(key, score)
        return score, done
