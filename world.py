from __future__ import annotations
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from lexer import LightBotError, split_source


class ConstructionError(LightBotError):
    """Raised when a map cannot be turned into a world."""


class Cell(IntEnum):
    EMPTY = 0
    LAMP_OFF = 1
    LAMP_ON = 2
    FLOOR_LIT = 3


class Direction(IntEnum):
    EAST = 0
    SOUTH = 1
    WEST = 2
    NORTH = 3


# Indexed by Direction.
DELTAS: Tuple[Tuple[int, int], ...] = ((1, 0), (0, 1), (-1, 0), (0, -1))

GLYPHS: Dict[str, Cell] = {
    ".": Cell.EMPTY,
    "O": Cell.LAMP_OFF,
    "X": Cell.LAMP_ON,
    "x": Cell.FLOOR_LIT,
}
CELL_GLYPHS: Dict[Cell, str] = {cell: glyph for glyph, cell in GLYPHS.items()}

MARKERS: Dict[str, Direction] = {
    "R": Direction.EAST,
    "D": Direction.SOUTH,
    "L": Direction.WEST,
    "U": Direction.NORTH,
}
MARKER_GLYPHS: Dict[Direction, str] = {direction: glyph for glyph, direction in MARKERS.items()}

PASSABLE = frozenset({Cell.EMPTY, Cell.LAMP_OFF, Cell.LAMP_ON})


class Grid:
    def __init__(self, cells: NDArray[np.int8]) -> None:
        self.height, self.width = cells.shape
        self.initial = cells.copy()
        self.initial.flags.writeable = False
        self.cells = cells.copy()

    def cell_at(self, x: int, y: int) -> Cell:
        return Cell(int(self.cells[y, x]))

    def set_cell(self, x: int, y: int, cell: Cell) -> None:
        self.cells[y, x] = int(cell)

    def wrap(self, x: int, y: int) -> Tuple[int, int]:
        return x % self.width, y % self.height

    def reset(self) -> None:
        np.copyto(self.cells, self.initial)

    def count(self, cell: Cell) -> int:
        return int(np.count_nonzero(self.cells == int(cell)))

    def rows(self) -> List[str]:
        return ["".join(CELL_GLYPHS[Cell(int(value))] for value in row) for row in self.cells]


@dataclass
class Robot:
    x: int
    y: int
    direction: Direction

    @property
    def position(self) -> Tuple[int, int]:
        return self.x, self.y

    def turn_left(self) -> None:
        self.direction = Direction((self.direction + 3) % 4)

    def turn_right(self) -> None:
        self.direction = Direction((self.direction + 1) % 4)

    def ahead(self) -> Tuple[int, int]:
        dx, dy = DELTAS[self.direction]
        return self.x + dx, self.y + dy


def render_rows(grid: Grid, robot: Robot) -> List[str]:
    rows = grid.rows()
    row = rows[robot.y]
    rows[robot.y] = row[:robot.x] + MARKER_GLYPHS[robot.direction] + row[robot.x + 1:]
    return rows


def parse_map(source: Union[str, Sequence[str]]) -> Tuple[Grid, Robot]:
    rows = [line.strip() for line in split_source(source)]
    # Only surrounding blank lines are dropped; an interior one is a short row.
    while rows and not rows[-1]:
        rows.pop()
    while rows and not rows[0]:
        rows.pop(0)
    if not rows:
        raise ConstructionError("Map is empty")
    width = len(rows[0])
    for y, row in enumerate(rows):
        if len(row) != width:
            raise ConstructionError(f"Row {y} has length {len(row)}, expected {width}")

    cells = np.zeros((len(rows), width), dtype=np.int8)
    start: List[Tuple[int, int, Direction]] = []
    for y, row in enumerate(rows):
        for x, glyph in enumerate(row):
            if glyph in MARKERS:
                # The robot stands on plain floor.
                start.append((x, y, MARKERS[glyph]))
                continue
            if glyph not in GLYPHS:
                raise ConstructionError(f"Unknown map glyph '{glyph}' at column {x}, row {y}")
            cells[y, x] = int(GLYPHS[glyph])

    if not start:
        raise ConstructionError("No robot marker found in map")
    if len(start) > 1:
        places = ", ".join(f"({x}, {y})" for x, y, _ in start)
        raise ConstructionError(f"Map has {len(start)} robot markers at {places}")
    x, y, direction = start[0]
    return Grid(cells), Robot(x=x, y=y, direction=direction)
