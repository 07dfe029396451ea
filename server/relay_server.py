# Room Relay Server.
# TCP server that pairs two game clients in a room identified by a short code.
# Handles client connections in separate threads.
# Forwards each client's state snapshots to the other member of its room.
# Speaks the framed JSON messages from common.protocol.

import socket
import threading
import sys
import logging
import os
import argparse

# Add project root to path
current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from common import config
from common.protocol import FrameError, send_message, recv_message
from common.message_types import (
    MSG_TYPE_CREATE, MSG_TYPE_JOIN, MSG_TYPE_STATE,
    MSG_TYPE_ROOM, MSG_TYPE_STATUS, MSG_TYPE_OPPONENT,
    validate_message,
)

logger = logging.getLogger(__name__)

# Global State
# g_rooms: maps {room_id: [client sockets]} (at most ROOM_CAPACITY each)
# g_client_rooms: maps {client socket: room_id}
# g_send_locks: maps {client socket: Lock} so frames from different threads never interleave
g_rooms = {}
g_client_rooms = {}
g_room_lock = threading.Lock()
g_send_locks = {}
g_send_lock_guard = threading.Lock()

# Client Helper Functions

def register_client(client_sock: socket.socket):
    with g_send_lock_guard:
        g_send_locks[client_sock] = threading.Lock()

def unregister_client(client_sock: socket.socket):
    """Leaves any room and forgets the client's send lock."""
    handle_leave_room(client_sock)
    with g_send_lock_guard:
        g_send_locks.pop(client_sock, None)

def send_to_client(client_sock: socket.socket, message: dict):
    """
    Encodes and sends a JSON message to a client. Failures are logged, not raised.
    Clients that are not registered (or already gone) are skipped.
    """
    with g_send_lock_guard:
        send_lock = g_send_locks.get(client_sock)
    if send_lock is None:
        logger.debug("Skipping send to an unregistered client.")
        return
    try:
        with send_lock:
            send_message(client_sock, message)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to send message to client: {e}")

def send_status(client_sock: socket.socket, text: str):
    send_to_client(client_sock, {"type": MSG_TYPE_STATUS, "message": text})

def _peers(room_id: str, client_sock: socket.socket) -> list:
    """Other members of a room. Caller holds g_room_lock."""
    return [sock for sock in g_rooms.get(room_id, []) if sock is not client_sock]

# Room Handlers

def _leave_current_room(client_sock: socket.socket) -> tuple[str | None, list]:
    """Removes the client from its room. Caller holds g_room_lock."""
    room_id = g_client_rooms.pop(client_sock, None)
    if room_id is None:
        return None, []
    members = g_rooms.get(room_id, [])
    if client_sock in members:
        members.remove(client_sock)
    if not members:
        g_rooms.pop(room_id, None)
        logger.info(f"Room {room_id} closed.")
    return room_id, list(members)

def _notify_opponent_left(room_id: str, remaining: list):
    for sock in remaining:
        send_status(sock, f"Opponent left room {room_id}.")
        send_to_client(sock, {"type": MSG_TYPE_OPPONENT, "state": None})

def handle_create_room(client_sock: socket.socket, room_id: str):
    """Handles 'create'. The creator becomes the first member."""
    with g_room_lock:
        if g_client_rooms.get(client_sock) == room_id:
            # Already the owner of this room, just confirm again
            left_room, remaining = None, []
        elif room_id in g_rooms:
            left_room, remaining = None, None
        else:
            left_room, remaining = _leave_current_room(client_sock)
            g_rooms[room_id] = [client_sock]
            g_client_rooms[client_sock] = room_id

    if remaining is None:
        send_status(client_sock, f"Room {room_id} already exists.")
        return

    if left_room:
        _notify_opponent_left(left_room, remaining)

    logger.info(f"Room {room_id} created.")
    send_to_client(client_sock, {"type": MSG_TYPE_ROOM, "roomId": room_id})
    send_status(client_sock, f"Room {room_id} created. Waiting for an opponent...")

def handle_join_room(client_sock: socket.socket, room_id: str):
    """Handles 'join'. The room must exist and have a free seat."""
    error = None
    left_room, remaining, peers = None, [], []
    with g_room_lock:
        members = g_rooms.get(room_id)
        if members is None:
            error = f"Room {room_id} not found."
        elif client_sock in members:
            peers = _peers(room_id, client_sock)
        elif len(members) >= config.ROOM_CAPACITY:
            error = f"Room {room_id} is full."
        else:
            left_room, remaining = _leave_current_room(client_sock)
            members.append(client_sock)
            g_client_rooms[client_sock] = room_id
            peers = _peers(room_id, client_sock)

    if error:
        send_status(client_sock, error)
        return

    if left_room:
        _notify_opponent_left(left_room, remaining)

    logger.info(f"Client joined room {room_id} ({len(peers) + 1} player(s)).")
    send_to_client(client_sock, {"type": MSG_TYPE_ROOM, "roomId": room_id})
    if peers:
        send_status(client_sock, f"Joined room {room_id}. Opponent connected.")
    for sock in peers:
        send_status(sock, f"Opponent joined room {room_id}.")

def handle_state(client_sock: socket.socket, room_id: str, state):
    """Handles 'state'. Forwards the snapshot to the other member of the room."""
    with g_room_lock:
        if g_client_rooms.get(client_sock) != room_id:
            peers = None
        else:
            peers = _peers(room_id, client_sock)

    if peers is None:
        logger.warning(f"Dropping state for room {room_id}: sender is not a member.")
        return

    for sock in peers:
        send_to_client(sock, {"type": MSG_TYPE_OPPONENT, "state": state})

def handle_leave_room(client_sock: socket.socket):
    with g_room_lock:
        room_id, remaining = _leave_current_room(client_sock)
    if room_id:
        _notify_opponent_left(room_id, remaining)

def handle_message(client_sock: socket.socket, message: dict):
    """Validates one decoded message and dispatches it."""
    is_valid, error = validate_message(message)
    if not is_valid:
        logger.warning(f"Invalid message: {error}")
        send_status(client_sock, f"Invalid message: {error}")
        return

    msg_type = message["type"]
    if msg_type == MSG_TYPE_CREATE:
        handle_create_room(client_sock, message["roomId"])
    elif msg_type == MSG_TYPE_JOIN:
        handle_join_room(client_sock, message["roomId"])
    elif msg_type == MSG_TYPE_STATE:
        handle_state(client_sock, message["roomId"], message["state"])
    else:
        logger.warning(f"Unexpected message type from client: {msg_type}")
        send_status(client_sock, f"Unexpected message type: {msg_type}")

def handle_client(client_sock: socket.socket, addr: tuple):
    """
    Runs in a separate thread for each connected client.
    Serves the client's messages until it disconnects.
    """
    logger.info(f"Client connected from {addr}")
    register_client(client_sock)
    send_status(client_sock, "Connected to relay server.")

    try:
        while True:
            # 1. Receive and decode a message
            try:
                message = recv_message(client_sock)
            except FrameError as e:
                logger.warning(f"Invalid frame from {addr}: {e}")
                send_status(client_sock, "Invalid message format.")
                continue
            if message is None:
                logger.info(f"Client {addr} disconnected.")
                break

            # 2. Process the message
            handle_message(client_sock, message)

    except Exception as e:
        logger.error(f"Unhandled exception for {addr}: {e}", exc_info=True)

    finally:
        # Clean-up
        unregister_client(client_sock)
        try:
            client_sock.close()
        except OSError:
            pass
        logger.info(f"Connection closed for {addr}")

# Main Server Loop

def create_server_socket(host: str, port: int) -> socket.socket:
    """Binds and listens. Port 0 picks a free port (see getsockname())."""
    server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server_socket.bind((host, port))
    server_socket.listen()
    return server_socket

def serve_forever(server_socket: socket.socket):
    """Accepts clients until the server socket is closed."""
    while True:
        try:
            client_socket, addr = server_socket.accept()
        except OSError as e:
            if server_socket.fileno() == -1:
                # Closed by shutdown
                break
            logger.error(f"Socket error while accepting connections: {e}")
            continue

        # Start a new thread for each client
        client_thread = threading.Thread(
            target=handle_client,
            args=(client_socket, addr),
            daemon=True
        )
        client_thread.start()

def main():
    """Starts the Relay server."""
    parser = argparse.ArgumentParser(description="Falling-block duel relay server")
    parser.add_argument('--host', type=str, default=config.RELAY_BIND_HOST, help='Address to bind')
    parser.add_argument('--port', type=int, default=config.RELAY_PORT, help='Port to listen on')
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format='[RELAY_SERVER] %(asctime)s - %(message)s')

    try:
        server_socket = create_server_socket(args.host, args.port)
    except OSError as e:
        logger.critical(f"Failed to bind socket: {e}")
        return 1

    logger.info(f"Relay Server listening on {args.host}:{args.port}...")
    logger.info("Press Ctrl+C to stop.")
    try:
        serve_forever(server_socket)
    except KeyboardInterrupt:
        logger.info("Shutting down relay server.")
    finally:
        server_socket.close()
    return 0

if __name__ == "__main__":
    sys.exit(main())
