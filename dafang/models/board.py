from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

from ..core.geometry import ALL_CELLS, SIZE, in_bounds
from .enums import Color, Coord


@dataclass(slots=True)
class Stone:
    color: Color
    in_formation: bool = False

    def to_wire(self) -> dict[str, Any]:
        return {"color": self.color.value, "isFormation": self.in_formation}


def _zobrist_table() -> dict[tuple[Coord, Color], int]:
    # Fixed seed: digests must be stable across processes for cache keys.
    rng = random.Random(0x6DAF)
    return {(pos, color): rng.getrandbits(64) for pos in ALL_CELLS for color in Color}


ZOBRIST = _zobrist_table()


class Board:
    """6x6 intersection grid.

    Every write goes through ``place``/``remove``/``move``/``restore`` so the
    Zobrist digest of the color layout stays in sync. Formation flags are
    bookkeeping and are not part of the digest.
    """

    __slots__ = ("_cells", "_digest", "_counts")

    def __init__(self) -> None:
        self._cells: list[list[Stone | None]] = [[None] * SIZE for _ in range(SIZE)]
        self._digest = 0
        self._counts = {Color.BLACK: 0, Color.WHITE: 0}

    # ----- reads -----

    def __getitem__(self, pos: Coord) -> Stone | None:
        return self._cells[pos[0]][pos[1]]

    def color_at(self, r: int, c: int) -> Color | None:
        if not in_bounds(r, c):
            return None
        st = self._cells[r][c]
        return st.color if st else None

    def is_empty(self, pos: Coord) -> bool:
        return self._cells[pos[0]][pos[1]] is None

    @property
    def digest(self) -> int:
        return self._digest

    def digest_with(self, pos: Coord, color: Color) -> int:
        """Digest the board would have after ``color`` is placed at the empty ``pos``."""
        return self._digest ^ ZOBRIST[(pos, color)]

    def count(self, color: Color) -> int:
        return self._counts[color]

    def total(self) -> int:
        return self._counts[Color.BLACK] + self._counts[Color.WHITE]

    def is_full(self) -> bool:
        return self.total() == SIZE * SIZE

    def empty_cells(self) -> list[Coord]:
        return [p for p in ALL_CELLS if self._cells[p[0]][p[1]] is None]

    def stones(self, color: Color) -> list[Coord]:
        out: list[Coord] = []
        for r, c in ALL_CELLS:
            st = self._cells[r][c]
            if st is not None and st.color is color:
                out.append((r, c))
        return out

    def snapshot(self) -> tuple[tuple[str | None, ...], ...]:
        """Color layout only, for equality checks that ignore formation flags."""
        return tuple(
            tuple(st.color.value if st else None for st in row) for row in self._cells
        )

    # ----- writes -----

    def place(self, pos: Coord, color: Color, in_formation: bool = False) -> Stone:
        r, c = pos
        if self._cells[r][c] is not None:
            raise ValueError(f"cell {pos} is occupied")
        st = Stone(color, in_formation)
        self._cells[r][c] = st
        self._digest ^= ZOBRIST[(pos, color)]
        self._counts[color] += 1
        return st

    def restore(self, pos: Coord, stone: Stone) -> None:
        """Put back a stone object previously taken off with ``remove``."""
        r, c = pos
        if self._cells[r][c] is not None:
            raise ValueError(f"cell {pos} is occupied")
        self._cells[r][c] = stone
        self._digest ^= ZOBRIST[(pos, stone.color)]
        self._counts[stone.color] += 1

    def remove(self, pos: Coord) -> Stone:
        r, c = pos
        st = self._cells[r][c]
        if st is None:
            raise ValueError(f"cell {pos} is empty")
        self._cells[r][c] = None
        self._digest ^= ZOBRIST[(pos, st.color)]
        self._counts[st.color] -= 1
        return st

    def move(self, src: Coord, dst: Coord) -> Stone:
        st = self.remove(src)
        # The moved stone arrives without a formation flag.
        return self.place(dst, st.color)

    def set_flag(self, pos: Coord, value: bool) -> None:
        st = self._cells[pos[0]][pos[1]]
        if st is not None:
            st.in_formation = value

    def copy(self) -> Board:
        other = Board.__new__(Board)
        other._cells = [
            [Stone(st.color, st.in_formation) if st else None for st in row]
            for row in self._cells
        ]
        other._digest = self._digest
        other._counts = dict(self._counts)
        return other

    # ----- wire format -----

    def to_wire(self) -> list[list[dict[str, Any] | None]]:
        return [[st.to_wire() if st else None for st in row] for row in self._cells]

    @classmethod
    def from_wire(cls, data: list[list[dict[str, Any] | None]]) -> Board:
        if len(data) != SIZE or any(len(row) != SIZE for row in data):
            raise ValueError("board must be 6x6")
        b = cls()
        for r, row in enumerate(data):
            for c, cell in enumerate(row):
                if cell is None:
                    continue
                b.place((r, c), Color(cell["color"]), bool(cell.get("isFormation", False)))
        return b

    @classmethod
    def from_rows(cls, rows: list[str]) -> Board:
        """Build from text rows: ``B``/``W`` stones (lowercase = flagged), ``.`` empty."""
        b = cls()
        for r, line in enumerate(rows):
            for c, ch in enumerate(line.replace(" ", "")):
                if ch in "Bb":
                    b.place((r, c), Color.BLACK, ch == "b")
                elif ch in "Ww":
                    b.place((r, c), Color.WHITE, ch == "w")
        return b

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Board):
            return NotImplemented
        return self._cells == other._cells

    def __repr__(self) -> str:
        rows = []
        for row in self._cells:
            chars = []
            for st in row:
                if st is None:
                    chars.append(".")
                else:
                    ch = "B" if st.color is Color.BLACK else "W"
                    chars.append(ch.lower() if st.in_formation else ch)
            rows.append("".join(chars))
        return "Board(" + "/".join(rows) + ")"
