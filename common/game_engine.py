# Game Engine.
# Owns the single source of truth for one player's game:
# board, active/next piece, score, lines, level and drop timing.
# Not tied to any scheduler or renderer: the host calls tick(elapsed_ms)
# and the input commands, and registers listeners for state snapshots.

import logging
import random

from common.game_rules import (
    BagRandomizer, Board, Piece,
    TICK_INITIAL_MS,
    drop_interval_for_level, level_for_lines, rotate_matrix, score_for_lines,
)

logger = logging.getLogger(__name__)

# Snapshot status values
STATUS_IDLE = "idle"
STATUS_RUNNING = "running"
STATUS_PAUSED = "paused"

# Input boundary: command name -> engine method name
COMMANDS = {
    "moveLeft": "move_left",
    "moveRight": "move_right",
    "softDrop": "soft_drop",
    "hardDrop": "hard_drop",
    "rotate": "rotate",
    "togglePause": "toggle_pause",
    "start": "start",
    "reset": "reset",
}


class TetrisGame:
    """Manages the state of one board."""

    def __init__(self, seed=None):
        # Use a seedable RNG for deterministic piece sequences
        self._rng = random.Random(seed)
        self._listeners = []
        self._init_state()

    def _init_state(self):
        self.board = Board()
        self.randomizer = BagRandomizer(self._rng)
        self.active_piece = self._create_piece()
        self.next_piece = self._create_piece()
        self.score = 0
        self.lines_cleared = 0
        self.level = 1
        self.drop_interval_ms = TICK_INITIAL_MS
        self.drop_buffer = 0
        self.running = False
        self.paused = False
        self.game_over = False

    def _create_piece(self) -> Piece:
        return Piece.spawn(self.randomizer.next())

    # Listeners

    def add_listener(self, callback):
        """callback(snapshot) runs after every operation that changed state."""
        self._listeners.append(callback)

    def remove_listener(self, callback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self):
        if not self._listeners:
            return
        snapshot = self.get_state_snapshot()
        for callback in list(self._listeners):
            callback(snapshot)

    # State helpers

    @property
    def status(self) -> str:
        if not self.running:
            return STATUS_IDLE
        return STATUS_PAUSED if self.paused else STATUS_RUNNING

    def _accepts_input(self) -> bool:
        return self.running and not self.paused

    def _collides(self, matrix, dx: int = 0, dy: int = 0) -> bool:
        piece = self.active_piece
        return self.board.collides(matrix, piece.x + dx, piece.y + dy)

    def ghost_y(self) -> int:
        """Lowest row the active piece could rest at, for display only."""
        piece = self.active_piece
        y = piece.y
        while not self.board.collides(piece.matrix, piece.x, y + 1):
            y += 1
        return y

    # Public API (input boundary)

    def execute(self, command: str) -> bool:
        """Runs one input command by name (e.g. 'moveLeft', 'hardDrop')."""
        method_name = COMMANDS.get(command)
        if method_name is None:
            raise ValueError(f"Unknown command: {command}")
        return getattr(self, method_name)()

    def reset(self) -> bool:
        """Any state -> idle, with a fresh board, bag and counters."""
        self._init_state()
        self._notify()
        return True

    def start(self) -> bool:
        """Idle -> running, or resume from pause. No-op once the game is over."""
        if self.game_over:
            return False
        if not self.running:
            self.running = True
            self.drop_buffer = 0
        # A second start only clears the pause flag
        self.paused = False
        self._notify()
        return True

    def toggle_pause(self) -> bool:
        if not self.running:
            return False
        self.paused = not self.paused
        self._notify()
        return True

    def tick(self, elapsed_ms: float) -> bool:
        """Accumulates elapsed time and applies gravity once per interval."""
        if not self._accepts_input():
            return False
        self.drop_buffer += elapsed_ms
        if self.drop_buffer >= self.drop_interval_ms:
            self.drop_buffer = 0
            return self.soft_drop()
        return False

    def move(self, direction: str) -> bool:
        """Move the active piece 'left' or 'right'."""
        if direction not in ("left", "right"):
            raise ValueError(f"Unknown direction: {direction}")
        if not self._accepts_input():
            return False

        dx = -1 if direction == "left" else 1
        if self._collides(self.active_piece.matrix, dx=dx):
            return False
        self.active_piece.x += dx
        self._notify()
        return True

    def move_left(self) -> bool:
        return self.move("left")

    def move_right(self) -> bool:
        return self.move("right")

    def rotate(self) -> bool:
        """
        Rotate the active piece clockwise with a horizontal kick search.
        Trial offsets zig-zag (+1, -2, +3, ...) from the running position
        and the search gives up once the next offset exceeds the rotated
        width; the piece is then left untouched.
        """
        if not self._accepts_input():
            return False

        piece = self.active_piece
        rotated = rotate_matrix(piece.matrix)
        x = piece.x
        offset = 1
        while self.board.collides(rotated, x, piece.y):
            x += offset
            offset = -(offset + (1 if offset > 0 else -1))
            if offset > len(rotated[0]):
                return False

        piece.x = x
        piece.matrix = rotated
        self._notify()
        return True

    def soft_drop(self) -> bool:
        """Move the active piece down by one, or lock it if it is resting."""
        if not self._accepts_input():
            return False

        if self._collides(self.active_piece.matrix, dy=1):
            self._lock_and_spawn()
        else:
            self.active_piece.y += 1
        self._notify()
        return True

    def hard_drop(self) -> bool:
        """Drop straight down and lock."""
        if not self._accepts_input():
            return False

        while not self._collides(self.active_piece.matrix, dy=1):
            self.active_piece.y += 1
        self._lock_and_spawn()
        self._notify()
        return True

    # Lock / clear / score

    def _lock_and_spawn(self):
        inside = self.board.lock(self.active_piece)

        cleared = self.board.clear_full_rows()
        if cleared > 0:
            self._apply_cleared_lines(cleared)

        if not inside:
            logger.info("Piece locked above the board.")
            self._end_game()
            return

        self._spawn_next_piece()

    def _apply_cleared_lines(self, cleared: int):
        self.lines_cleared += cleared
        self.score += score_for_lines(cleared, self.level)
        new_level = level_for_lines(self.lines_cleared)
        if new_level != self.level:
            self.level = new_level
            self.drop_interval_ms = drop_interval_for_level(self.level)
            logger.debug(f"Level {self.level}, drop interval {self.drop_interval_ms:.0f} ms")

    def _spawn_next_piece(self):
        """Promotes next_piece to active and checks for game over."""
        self.active_piece = self.next_piece
        self.active_piece.move_to_spawn()
        self.next_piece = self._create_piece()

        # Check for game over (spawn collision)
        if self._collides(self.active_piece.matrix):
            logger.info("Spawned piece collides with the stack.")
            self._end_game()

    def _end_game(self):
        self.game_over = True
        self.running = False
        self.paused = False
        self.drop_buffer = 0

    # Render boundary

    def get_state_snapshot(self) -> dict:
        """
        Returns the complete state of the game as a
        JSON-serializable dictionary, safe to render or broadcast.
        """
        active_piece_data = self.active_piece.to_dict()
        active_piece_data["ghost_y"] = self.ghost_y()

        return {
            "board": self.board.get_cells(),
            "active_piece": active_piece_data,
            "next_piece": self.next_piece.to_dict(),
            "score": self.score,
            "lines": self.lines_cleared,
            "level": self.level,
            "status": self.status,
            "game_over": self.game_over
        }
