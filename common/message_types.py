# Message type constants and validation
# Defines all message types used between the game client and the relay.

from common.game_rules import BOARD_HEIGHT, BOARD_WIDTH, EMPTY, PIECE_TYPES

# Client -> relay
MSG_TYPE_CREATE = "create"
MSG_TYPE_JOIN = "join"
MSG_TYPE_STATE = "state"

# Relay -> client
MSG_TYPE_ROOM = "room"
MSG_TYPE_STATUS = "status"
MSG_TYPE_OPPONENT = "opponent"

CLIENT_MESSAGE_TYPES = (MSG_TYPE_CREATE, MSG_TYPE_JOIN, MSG_TYPE_STATE)
RELAY_MESSAGE_TYPES = (MSG_TYPE_ROOM, MSG_TYPE_STATUS, MSG_TYPE_OPPONENT)

SNAPSHOT_STATUSES = ("idle", "running", "paused")
SNAPSHOT_COUNTERS = ("score", "lines", "level")

def _valid_room_id(room_id) -> bool:
    return isinstance(room_id, str) and room_id.isalnum()

def validate_message(message: dict) -> tuple[bool, str]:
    """
    Validate a message structure.

    Args:
        message: Dictionary decoded from one frame

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(message, dict):
        return False, "Message must be a dictionary"

    msg_type = message.get("type")
    if not isinstance(msg_type, str):
        return False, "Message must contain a string 'type' field"

    if msg_type not in CLIENT_MESSAGE_TYPES and msg_type not in RELAY_MESSAGE_TYPES:
        return False, f"Unknown message type '{msg_type}'"

    if msg_type in (MSG_TYPE_CREATE, MSG_TYPE_JOIN, MSG_TYPE_ROOM):
        if not _valid_room_id(message.get("roomId")):
            return False, f"Message '{msg_type}' requires an alphanumeric 'roomId'"

    if msg_type == MSG_TYPE_STATE:
        if not _valid_room_id(message.get("roomId")):
            return False, "Message 'state' requires an alphanumeric 'roomId'"
        if "state" not in message:
            return False, "Message 'state' requires 'state' field"

    if msg_type == MSG_TYPE_STATUS:
        if not isinstance(message.get("message"), str):
            return False, "Message 'status' requires a string 'message'"

    if msg_type == MSG_TYPE_OPPONENT:
        if "state" not in message:
            return False, "Message 'opponent' requires 'state' field"
        # A null state means the opponent left
        if message["state"] is not None:
            return validate_snapshot(message["state"])

    return True, ""

def _valid_cell(value) -> bool:
    return value == EMPTY or value in PIECE_TYPES

def _valid_piece(piece) -> bool:
    if not isinstance(piece, dict):
        return False
    if piece.get("type") not in PIECE_TYPES:
        return False
    matrix = piece.get("matrix")
    if not isinstance(matrix, list) or not matrix:
        return False
    if not all(isinstance(row, list) and len(row) == len(matrix) for row in matrix):
        return False
    if not all(cell in (0, 1) for row in matrix for cell in row):
        return False
    if "ghost_y" in piece and not isinstance(piece["ghost_y"], int):
        return False
    return isinstance(piece.get("x"), int) and isinstance(piece.get("y"), int)

def validate_snapshot(state: dict) -> tuple[bool, str]:
    """
    Validate a session snapshot received from the peer.
    Everything the renderer reads is checked, so a snapshot that
    passes can be drawn as is.
    """
    if not isinstance(state, dict):
        return False, "Snapshot must be a dictionary"

    board = state.get("board")
    if not isinstance(board, list) or len(board) != BOARD_HEIGHT:
        return False, f"Snapshot 'board' must have {BOARD_HEIGHT} rows"
    if not all(isinstance(row, list) and len(row) == BOARD_WIDTH for row in board):
        return False, f"Snapshot 'board' rows must have {BOARD_WIDTH} cells"
    if not all(_valid_cell(cell) for row in board for cell in row):
        return False, "Snapshot 'board' cells must be empty or a piece type"

    for field in SNAPSHOT_COUNTERS:
        value = state.get(field)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            return False, f"Snapshot '{field}' must be a non-negative integer"
    if state["level"] < 1:
        return False, "Snapshot 'level' must be at least 1"

    if state.get("status") not in SNAPSHOT_STATUSES:
        return False, f"Snapshot 'status' must be one of {SNAPSHOT_STATUSES}"
    if not isinstance(state.get("game_over", False), bool):
        return False, "Snapshot 'game_over' must be a boolean"

    for field in ("active_piece", "next_piece"):
        piece = state.get(field)
        if piece is not None and not _valid_piece(piece):
            return False, f"Snapshot '{field}' is malformed"

    return True, ""
