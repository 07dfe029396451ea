# Self-contained, non-networked, non-GUI
# Rules for a single falling-block board: the shape catalog,
# the 7-bag randomizer, the piece model and the board grid.
# The engine in common.game_engine drives these.

import math
import random

# Constants
BOARD_WIDTH = 10
BOARD_HEIGHT = 20

# Timing (ms)
TICK_INITIAL_MS = 1000
LEVEL_DROP_MODIFIER = 0.85
MIN_DROP_INTERVAL_MS = 120
LINES_PER_LEVEL = 10

# 0 represents an empty cell, otherwise the cell holds a piece type tag
EMPTY = 0

PIECE_TYPES = ("I", "J", "L", "O", "S", "T", "Z")

# Base orientation of every piece, as square 0/1 matrices.
# Size is fixed per type (I: 4x4, O: 2x2, others: 3x3).
PIECE_SHAPES = {
    "I": ((0, 0, 0, 0),
          (1, 1, 1, 1),
          (0, 0, 0, 0),
          (0, 0, 0, 0)),
    "J": ((1, 0, 0),
          (1, 1, 1),
          (0, 0, 0)),
    "L": ((0, 0, 1),
          (1, 1, 1),
          (0, 0, 0)),
    "O": ((1, 1),
          (1, 1)),
    "S": ((0, 1, 1),
          (1, 1, 0),
          (0, 0, 0)),
    "T": ((0, 1, 0),
          (1, 1, 1),
          (0, 0, 0)),
    "Z": ((1, 1, 0),
          (0, 1, 1),
          (0, 0, 0)),
}

# Scoring: index is the number of lines cleared by one lock
SCORING = (0, 100, 300, 500, 800)


def rotate_matrix(matrix) -> list:
    """
    Returns a new matrix rotated 90 degrees clockwise.
    rotated[y][x] = matrix[N-1-x][y]; only defined for square matrices.
    """
    size = len(matrix)
    return [[matrix[size - 1 - x][y] for x in range(size)] for y in range(size)]


def score_for_lines(lines: int, level: int) -> int:
    """Points awarded for clearing 'lines' rows at 'level'."""
    if 0 <= lines < len(SCORING):
        return SCORING[lines] * level
    return 0


def level_for_lines(lines: int) -> int:
    return lines // LINES_PER_LEVEL + 1


def drop_interval_for_level(level: int) -> float:
    """Gravity interval in ms, non-increasing with level and floored."""
    return max(MIN_DROP_INTERVAL_MS, TICK_INITIAL_MS * LEVEL_DROP_MODIFIER ** (level - 1))


#  Helper Classes

class BagRandomizer:
    """Implements the 7-bag piece randomizer."""

    def __init__(self, seed=None):
        # Accept either a ready RNG or a seed for deterministic sequences
        if isinstance(seed, random.Random):
            self._rng = seed
        else:
            self._rng = random.Random(seed)
        self._bag = []

    def next(self) -> str:
        """Returns one piece type; every run of 7 draws holds each type once."""
        if not self._bag:
            # Refill the bag when empty
            self._bag = list(PIECE_TYPES)
            self._rng.shuffle(self._bag)
        return self._bag.pop()

    def remaining(self) -> int:
        return len(self._bag)


class Piece:
    """Represents a single falling piece."""

    def __init__(self, piece_type: str, matrix, x: int = 0, y: int = 0):
        self.type = piece_type
        self.matrix = [list(row) for row in matrix]
        self.x = x
        self.y = y

    @classmethod
    def spawn(cls, piece_type: str) -> "Piece":
        """Fresh piece of the given type, centered on the top row."""
        piece = cls(piece_type, PIECE_SHAPES[piece_type])
        piece.move_to_spawn()
        return piece

    @property
    def width(self) -> int:
        return len(self.matrix[0])

    def move_to_spawn(self):
        self.x = BOARD_WIDTH // 2 - math.ceil(self.width / 2)
        self.y = 0

    def get_blocks(self, matrix=None, x=None, y=None):
        """Get the (x, y) board coordinates of every filled cell."""
        matrix = self.matrix if matrix is None else matrix
        x = self.x if x is None else x
        y = self.y if y is None else y
        return [(x + c, y + r)
                for r, row in enumerate(matrix)
                for c, value in enumerate(row) if value]

    def copy(self) -> "Piece":
        return Piece(self.type, self.matrix, self.x, self.y)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "matrix": [list(row) for row in self.matrix],
            "x": self.x,
            "y": self.y
        }

    def __repr__(self):
        return f"Piece({self.type!r}, x={self.x}, y={self.y})"


class Board:
    """Fixed-size grid holding locked piece material."""

    def __init__(self, rows: int = BOARD_HEIGHT, cols: int = BOARD_WIDTH):
        self.rows = rows
        self.cols = cols
        self.cells = [self._empty_row() for _ in range(rows)]

    def _empty_row(self):
        return [EMPTY for _ in range(self.cols)]

    def is_occupied(self, x: int, y: int) -> bool:
        """
        Collision view of a single cell.
        Walls and the floor always block; rows above the top are free.
        """
        if x < 0 or x >= self.cols or y >= self.rows:
            return True
        if y < 0:
            return False
        return self.cells[y][x] != EMPTY

    def collides(self, matrix, x: int, y: int) -> bool:
        """Checks if a matrix placed at (x, y) overlaps walls, floor or material."""
        for r, row in enumerate(matrix):
            for c, value in enumerate(row):
                if value and self.is_occupied(x + c, y + r):
                    return True
        return False

    def lock(self, piece: Piece) -> bool:
        """
        Stamps the piece onto the board.
        Returns False if any cell landed above row 0 (game over);
        the visible cells are still written.
        """
        inside = True
        for x, y in piece.get_blocks():
            if y < 0:
                inside = False
                continue
            self.cells[y][x] = piece.type
        return inside

    def clear_full_rows(self) -> int:
        """
        Removes every full row and inserts an empty one at the top.
        Scans bottom to top and re-checks the same index after a removal,
        since the rows above have shifted down into it.
        """
        cleared = 0
        y = self.rows - 1
        while y >= 0:
            if all(cell != EMPTY for cell in self.cells[y]):
                del self.cells[y]
                self.cells.insert(0, self._empty_row())
                cleared += 1
            else:
                y -= 1
        return cleared

    def get_cells(self) -> list:
        return [list(row) for row in self.cells]
