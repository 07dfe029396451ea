# gui/player_gui.py
# Desktop client: runs the local game, renders it next to the opponent's
# mirrored board and forwards snapshots through the relay session.

import sys
import os
import logging
import argparse

import pygame

# Add project root to path
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from common import config
from common.game_engine import TetrisGame
from client.session import SessionClient, generate_room_code
from gui.base_gui import (
    BASE_CONFIG, Button, TextInput,
    draw_board, draw_piece, draw_preview, draw_text, load_fonts,
)

logger = logging.getLogger(__name__)

KEY_BINDINGS = {
    pygame.K_LEFT: "moveLeft",
    pygame.K_RIGHT: "moveRight",
    pygame.K_DOWN: "softDrop",
    pygame.K_UP: "rotate",
    pygame.K_SPACE: "hardDrop",
    pygame.K_p: "togglePause",
}

BOARD_ORIGIN = (20, 20)
PANEL_X = 340
OPPONENT_ORIGIN = (600, 60)


def describe_status(snapshot: dict) -> str:
    if snapshot["game_over"]:
        return "Game over"
    return {"idle": "Waiting", "running": "Playing", "paused": "Paused"}[snapshot["status"]]


class PlayerGUI:
    def __init__(self, host=config.RELAY_HOST, port=config.RELAY_PORT, seed=None):
        self.running = True
        self.game = TetrisGame(seed)
        self.session = SessionClient(host, port)
        self.snapshot = self.game.get_state_snapshot()
        self.multiplayer_status = "Not connected to a room."

        # Every engine change is rendered and mirrored to the peer
        self.game.add_listener(self._on_game_state)
        self.game.add_listener(self.session.send_state)

        self.session.on("status", self._on_session_status)
        self.session.on("room", self._on_room)
        self.session.on("disconnect", self._on_disconnect)

        self.screen = None
        self.clock = None
        self.fonts = {}
        self.ui_elements = {}

    # Session callbacks (run inside session.poll())

    def _on_game_state(self, snapshot):
        self.snapshot = snapshot

    def _on_session_status(self, message):
        self.multiplayer_status = message

    def _on_room(self, room_id):
        self.ui_elements["room_input"].set_text(room_id)
        self.multiplayer_status = f"Connected to room {room_id}."
        # Let the new peer see our board right away
        self.session.send_state(self.game.get_state_snapshot())

    def _on_disconnect(self, _payload):
        self.multiplayer_status = "Not connected to a room."

    # Lifecycle

    def run(self):
        self._init_pygame()
        self._create_ui_elements()
        try:
            self._main_loop()
        finally:
            self._cleanup()

    def _init_pygame(self):
        pygame.init()
        pygame.font.init()
        self.screen = pygame.display.set_mode((BASE_CONFIG["SCREEN"]["WIDTH"], BASE_CONFIG["SCREEN"]["HEIGHT"]))
        pygame.display.set_caption("Falling-Block Duel")
        self.clock = pygame.time.Clock()
        self.fonts = load_fonts()

    def _create_ui_elements(self):
        font = self.fonts["SMALL"]
        self.ui_elements = {
            "start_btn": Button(PANEL_X, 330, 70, 36, font, "Start"),
            "pause_btn": Button(PANEL_X + 80, 330, 70, 36, font, "Pause"),
            "reset_btn": Button(PANEL_X + 160, 330, 70, 36, font, "Reset"),
            "room_input": TextInput(PANEL_X, 470, 230, 32, font, max_length=config.ROOM_CODE_LENGTH),
            "create_btn": Button(PANEL_X, 512, 110, 36, font, "Create"),
            "join_btn": Button(PANEL_X + 120, 512, 110, 36, font, "Join"),
        }

    def _main_loop(self):
        while self.running:
            elapsed_ms = self.clock.tick(BASE_CONFIG["TIMING"]["FPS"])
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    self.running = False
                else:
                    self._handle_event(event)

            self.session.poll()
            self.game.tick(elapsed_ms)

            self._draw()
            pygame.display.flip()

    def _handle_event(self, event):
        room_input = self.ui_elements["room_input"]
        if room_input.handle_event(event) == "enter":
            self._join_room()
            return
        if room_input.active:
            return

        if event.type == pygame.KEYDOWN:
            command = KEY_BINDINGS.get(event.key)
            if command:
                self.game.execute(command)
            return

        if self.ui_elements["start_btn"].handle_event(event):
            self._start_game()
        elif self.ui_elements["pause_btn"].handle_event(event):
            self.game.toggle_pause()
        elif self.ui_elements["reset_btn"].handle_event(event):
            self.game.reset()
        elif self.ui_elements["create_btn"].handle_event(event):
            self._create_room()
        elif self.ui_elements["join_btn"].handle_event(event):
            self._join_room()

    def _start_game(self):
        # A finished or idle game starts over from a clean board
        if not self.game.running:
            self.game.reset()
        self.game.start()

    def _create_room(self):
        room_id = self.ui_elements["room_input"].text.strip() or generate_room_code()
        self.session.create_room(room_id)

    def _join_room(self):
        room_id = self.ui_elements["room_input"].text.strip()
        if not room_id:
            self.multiplayer_status = "Enter a room code."
            return
        self.session.join_room(room_id)

    def _cleanup(self):
        logger.info("Shutting down...")
        self.game.remove_listener(self.session.send_state)
        self.session.close()
        pygame.quit()

    # Drawing

    def _draw(self):
        colors = BASE_CONFIG["COLORS"]
        sizes = BASE_CONFIG["SIZES"]
        self.screen.fill(colors["BACKGROUND"])

        # Own board, ghost first so the piece draws over it
        snapshot = self.snapshot
        draw_board(self.screen, snapshot["board"], BOARD_ORIGIN, sizes["BLOCK_SIZE"])
        if not snapshot["game_over"]:
            draw_piece(self.screen, snapshot["active_piece"], BOARD_ORIGIN, sizes["BLOCK_SIZE"], ghost=True)
        draw_piece(self.screen, snapshot["active_piece"], BOARD_ORIGIN, sizes["BLOCK_SIZE"])

        # Side panel
        draw_text(self.screen, f"Score: {snapshot['score']}", PANEL_X, 20, self.fonts["MEDIUM"], colors["TEXT"])
        draw_text(self.screen, f"Lines: {snapshot['lines']}", PANEL_X, 50, self.fonts["MEDIUM"], colors["TEXT"])
        draw_text(self.screen, f"Level: {snapshot['level']}", PANEL_X, 80, self.fonts["MEDIUM"], colors["TEXT"])
        draw_text(self.screen, "Next", PANEL_X, 120, self.fonts["SMALL"], colors["MUTED_TEXT"])
        draw_preview(self.screen, snapshot["next_piece"], pygame.Rect(PANEL_X, 145, 120, 120), sizes["NEXT_BLOCK_SIZE"])
        draw_text(self.screen, describe_status(snapshot), PANEL_X, 290, self.fonts["MEDIUM"], colors["TEXT"])

        for name in ("start_btn", "pause_btn", "reset_btn", "room_input", "create_btn", "join_btn"):
            self.ui_elements[name].draw(self.screen)
        draw_text(self.screen, "Room code", PANEL_X, 445, self.fonts["SMALL"], colors["MUTED_TEXT"])
        draw_text(self.screen, self.multiplayer_status, PANEL_X, 560, self.fonts["TINY"], colors["MUTED_TEXT"])

        # Opponent mirror
        opponent = self.session.opponent_state
        ox, oy = OPPONENT_ORIGIN
        if opponent is None:
            draw_text(self.screen, "No opponent", ox, oy - 30, self.fonts["SMALL"], colors["MUTED_TEXT"])
            return
        draw_text(self.screen, f"Opponent: {opponent['score']}", ox, oy - 30, self.fonts["SMALL"], colors["TEXT"])
        draw_board(self.screen, opponent["board"], OPPONENT_ORIGIN, sizes["SMALL_BLOCK_SIZE"])
        draw_piece(self.screen, opponent.get("active_piece"), OPPONENT_ORIGIN, sizes["SMALL_BLOCK_SIZE"])


def main():
    parser = argparse.ArgumentParser(description="Falling-block duel client")
    parser.add_argument('--host', type=str, default=config.RELAY_HOST, help='Relay server host')
    parser.add_argument('--port', type=int, default=config.RELAY_PORT, help='Relay server port')
    parser.add_argument('--seed', type=int, default=None, help='Seed for the piece sequence')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='[TETRIS_CLIENT] %(asctime)s - %(levelname)s: %(message)s')

    client = PlayerGUI(host=args.host, port=args.port, seed=args.seed)
    client.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
