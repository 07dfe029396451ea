# gui/base_gui.py
# Shared pygame widgets and board drawing.
# Drawing reads state snapshots only; it never touches the engine.

import pygame

from common import config
from common.game_rules import BOARD_HEIGHT, BOARD_WIDTH, EMPTY

# --- Base Configuration ---
BASE_CONFIG = {
    "TIMING": {"FPS": config.FPS},
    "SCREEN": {"WIDTH": 820, "HEIGHT": 680},
    "SIZES": {"BLOCK_SIZE": 30, "SMALL_BLOCK_SIZE": 18, "NEXT_BLOCK_SIZE": 24},
    "STYLE": {"CORNER_RADIUS": 5},
    "COLORS": {
        "BACKGROUND": (20, 20, 30),
        "BOARD": (15, 23, 42),
        "GRID_LINE": (30, 41, 59),
        "GHOST": (148, 163, 184),
        "TEXT": (255, 255, 255),
        "MUTED_TEXT": (200, 200, 200),
        "BUTTON": (70, 70, 90),
        "BUTTON_HOVER": (100, 100, 120),
        "INPUT_BOX": (10, 10, 20),
        "INPUT_TEXT": (200, 200, 200),
        "INPUT_ACTIVE": (50, 50, 70),
        "PIECE_COLORS": {
            "I": (56, 189, 248),
            "J": (99, 102, 241),
            "L": (249, 115, 22),
            "O": (250, 204, 21),
            "S": (34, 197, 94),
            "T": (168, 85, 247),
            "Z": (239, 68, 68),
        }
    },
    "FONTS": {
        "SIZES": {
            "TINY": 16, "SMALL": 20, "MEDIUM": 26, "LARGE": 34, "TITLE": 44,
        }
    },
}

# --- UI Helper Classes ---

class TextInput:
    def __init__(self, x, y, w, h, font, text='', max_length=None):
        self.rect = pygame.Rect(x, y, w, h)
        self.color = BASE_CONFIG["COLORS"]["INPUT_BOX"]
        self.text = text
        self.font = font
        self.active = False
        self.max_length = max_length
        self._update_surface()

    def handle_event(self, event):
        if event.type == pygame.MOUSEBUTTONDOWN:
            self.active = self.rect.collidepoint(event.pos)
            self.color = BASE_CONFIG["COLORS"]["INPUT_ACTIVE"] if self.active else BASE_CONFIG["COLORS"]["INPUT_BOX"]
        if event.type == pygame.KEYDOWN and self.active:
            if event.key == pygame.K_RETURN:
                return "enter"
            elif event.key == pygame.K_BACKSPACE:
                self.text = self.text[:-1]
            elif event.unicode.isalnum():
                if self.max_length is None or len(self.text) < self.max_length:
                    self.text += event.unicode.upper()
            self._update_surface()

    def set_text(self, text):
        self.text = text
        self._update_surface()

    def _update_surface(self):
        self.text_surface = self.font.render(self.text, True, BASE_CONFIG["COLORS"]["INPUT_TEXT"])

    def draw(self, screen):
        pygame.draw.rect(screen, self.color, self.rect, 0, border_radius=BASE_CONFIG["STYLE"]["CORNER_RADIUS"])
        pygame.draw.rect(screen, BASE_CONFIG["COLORS"]["TEXT"], self.rect, 1, border_radius=BASE_CONFIG["STYLE"]["CORNER_RADIUS"])
        screen.blit(self.text_surface, (self.rect.x + 6, self.rect.y + 6))

class Button:
    def __init__(self, x, y, w, h, font, text=''):
        self.rect = pygame.Rect(x, y, w, h)
        self.color = BASE_CONFIG["COLORS"]["BUTTON"]
        self.text = text
        self.font = font

    def handle_event(self, event):
        if event.type == pygame.MOUSEBUTTONDOWN:
            return self.rect.collidepoint(event.pos)
        return False

    def draw(self, screen):
        color = self.color
        if self.rect.collidepoint(pygame.mouse.get_pos()):
            color = BASE_CONFIG["COLORS"]["BUTTON_HOVER"]
        pygame.draw.rect(screen, color, self.rect, 0, border_radius=BASE_CONFIG["STYLE"]["CORNER_RADIUS"])
        text_surf = self.font.render(self.text, True, BASE_CONFIG["COLORS"]["TEXT"])
        text_rect = text_surf.get_rect(center=self.rect.center)
        screen.blit(text_surf, text_rect)

# --- Drawing Functions ---

def draw_text(surface, text, x, y, font, color):
    text_surface = font.render(text, True, color)
    surface.blit(text_surface, (x, y))

def load_fonts() -> dict:
    fonts = {}
    for name, size in BASE_CONFIG["FONTS"]["SIZES"].items():
        fonts[name.upper()] = pygame.font.Font(None, size)
    fonts["DEFAULT"] = fonts["SMALL"]
    return fonts

def draw_block(surface, x, y, block_size, color, outline_only=False):
    rect = pygame.Rect(x, y, block_size, block_size)
    if outline_only:
        pygame.draw.rect(surface, color, rect, 2)
        return
    pygame.draw.rect(surface, color, rect)
    pygame.draw.rect(surface, BASE_CONFIG["COLORS"]["BOARD"], rect, 2)

def draw_board(surface, board, origin, block_size):
    """Draws the locked cells of a snapshot board at 'origin' (x, y)."""
    ox, oy = origin
    pygame.draw.rect(surface, BASE_CONFIG["COLORS"]["BOARD"],
                     (ox, oy, BOARD_WIDTH * block_size, BOARD_HEIGHT * block_size))
    for r, row in enumerate(board):
        for c, value in enumerate(row):
            if value == EMPTY:
                continue
            color = BASE_CONFIG["COLORS"]["PIECE_COLORS"].get(value, BASE_CONFIG["COLORS"]["TEXT"])
            draw_block(surface, ox + c * block_size, oy + r * block_size, block_size, color)

def draw_piece(surface, piece, origin, block_size, ghost=False):
    """Draws a snapshot piece dict; cells above the board are skipped."""
    if not piece:
        return
    ox, oy = origin
    y = piece.get("ghost_y", piece["y"]) if ghost else piece["y"]
    if ghost:
        color = BASE_CONFIG["COLORS"]["GHOST"]
    else:
        color = BASE_CONFIG["COLORS"]["PIECE_COLORS"].get(piece.get("type"), BASE_CONFIG["COLORS"]["TEXT"])
    for r, row in enumerate(piece["matrix"]):
        for c, value in enumerate(row):
            if not value or y + r < 0:
                continue
            draw_block(surface, ox + (piece["x"] + c) * block_size, oy + (y + r) * block_size,
                       block_size, color, outline_only=ghost)

def draw_preview(surface, piece, rect, block_size):
    """Draws a piece matrix centered in 'rect', ignoring its board position."""
    pygame.draw.rect(surface, BASE_CONFIG["COLORS"]["BOARD"], rect)
    if not piece:
        return
    matrix = piece["matrix"]
    offset_x = rect.x + (rect.width - len(matrix[0]) * block_size) // 2
    offset_y = rect.y + (rect.height - len(matrix) * block_size) // 2
    color = BASE_CONFIG["COLORS"]["PIECE_COLORS"].get(piece.get("type"), BASE_CONFIG["COLORS"]["TEXT"])
    for r, row in enumerate(matrix):
        for c, value in enumerate(row):
            if value:
                draw_block(surface, offset_x + c * block_size, offset_y + r * block_size, block_size, color)
