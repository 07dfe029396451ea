# Session synchronizer.
# Mirrors the local game to an opponent through the relay server.
#
# The network runs in a background thread that only parses messages and
# queues events. poll() is called from the game loop and applies them
# there, so the engine and the cached opponent state have a single writer.

import logging
import queue
import random
import socket
import string
import threading

from common import config
from common.protocol import FrameError, send_message, recv_message
from common.message_types import (
    MSG_TYPE_CREATE, MSG_TYPE_JOIN, MSG_TYPE_STATE,
    MSG_TYPE_ROOM, MSG_TYPE_STATUS, MSG_TYPE_OPPONENT,
    validate_message,
)

logger = logging.getLogger(__name__)

# Events delivered through on()/poll()
EVENT_STATUS = "status"
EVENT_ROOM = "room"
EVENT_OPPONENT = "opponent"
EVENT_DISCONNECT = "disconnect"

REQUEST_TEXT = {
    MSG_TYPE_CREATE: ("Room {} create requested.", "Failed to create room."),
    MSG_TYPE_JOIN: ("Room {} join requested.", "Failed to join room."),
}


def generate_room_code(length: int = config.ROOM_CODE_LENGTH) -> str:
    """Random uppercase base-36 room code."""
    alphabet = string.ascii_uppercase + string.digits
    return "".join(random.choice(alphabet) for _ in range(length))


class SessionClient:
    """Relay connection for one player: rooms, outbound snapshots, opponent cache."""

    def __init__(self, host: str = config.RELAY_HOST, port: int = config.RELAY_PORT,
                 connect_timeout: float = config.CONNECT_TIMEOUT):
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout

        # Written only by poll()
        self.room_id = None
        self.opponent_state = None

        self._sock = None
        self._connecting = False
        self._closed = False
        self._pending = []  # (msg_type, room_id) waiting for the in-flight connection
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._events = queue.Queue()
        self._handlers = {}
        self._network_thread = None

    # Events

    def on(self, event: str, handler):
        """Registers handler(payload) for 'status', 'room', 'opponent' or 'disconnect'."""
        self._handlers.setdefault(event, []).append(handler)

    def _emit(self, event: str, payload=None):
        # Safe from any thread; handlers run later in poll()
        self._events.put((event, payload))

    def poll(self) -> int:
        """Applies queued network events on the calling thread. Returns how many ran."""
        handled = 0
        while True:
            try:
                event, payload = self._events.get_nowait()
            except queue.Empty:
                return handled

            if event == EVENT_ROOM:
                self.room_id = payload
            elif event == EVENT_OPPONENT:
                # Every snapshot replaces the previous one wholesale
                self.opponent_state = payload
            elif event == EVENT_DISCONNECT:
                self.room_id = None
                self.opponent_state = None

            for handler in list(self._handlers.get(event, [])):
                handler(payload)
            handled += 1

    # Connection

    @property
    def connected(self) -> bool:
        with self._lock:
            return self._sock is not None

    @property
    def connecting(self) -> bool:
        with self._lock:
            return self._connecting

    def create_room(self, room_id: str):
        self._request(MSG_TYPE_CREATE, room_id)

    def join_room(self, room_id: str):
        self._request(MSG_TYPE_JOIN, room_id)

    def _request(self, msg_type: str, room_id: str):
        """Sends now if connected, otherwise queues on the (single) connection attempt."""
        with self._lock:
            sock = self._sock
            if sock is None:
                self._pending.append((msg_type, room_id))
                if self._connecting:
                    logger.info(f"Connection in progress, queued '{msg_type}' for room {room_id}.")
                    return
                self._connecting = True
                self._closed = False
                self._network_thread = threading.Thread(target=self._network_thread_main, daemon=True)
                self._network_thread.start()
                return
        self._send_request(sock, msg_type, room_id)

    def _send_request(self, sock: socket.socket, msg_type: str, room_id: str):
        requested_text, failed_text = REQUEST_TEXT[msg_type]
        try:
            with self._send_lock:
                send_message(sock, {"type": msg_type, "roomId": room_id})
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to send '{msg_type}' request: {e}")
            self._emit(EVENT_STATUS, failed_text)
            return
        self._emit(EVENT_STATUS, requested_text.format(room_id))

    def _network_thread_main(self):
        logger.info(f"Connecting to relay at {self.host}:{self.port}...")
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.connect_timeout)
            sock.settimeout(None)
        except OSError as e:
            logger.error(f"Failed to connect to relay: {e}")
            with self._lock:
                self._connecting = False
                pending, self._pending = self._pending, []
            self._emit(EVENT_STATUS, "Server connection failed.")
            for msg_type, _ in pending:
                self._emit(EVENT_STATUS, REQUEST_TEXT[msg_type][1])
            return

        logger.info("Connection successful.")
        self._emit(EVENT_STATUS, "Connected to server.")

        # Requests queued while connecting go out in order before the socket
        # is published; _connecting stays set so new ones keep queueing.
        while True:
            with self._lock:
                if self._closed:
                    self._connecting = False
                    sock.close()
                    return
                pending, self._pending = self._pending, []
                if not pending:
                    self._connecting = False
                    self._sock = sock
                    break
            for msg_type, room_id in pending:
                self._send_request(sock, msg_type, room_id)

        self._receive_loop(sock)

    def _receive_loop(self, sock: socket.socket):
        try:
            while True:
                try:
                    message = recv_message(sock)
                except FrameError as e:
                    logger.warning(f"Invalid message from relay: {e}")
                    continue
                if message is None:
                    logger.info("Relay connection closed.")
                    break
                self._handle_message(message)
        finally:
            with self._lock:
                if self._sock is sock:
                    self._sock = None
            try:
                sock.close()
            except OSError:
                pass
            self._emit(EVENT_DISCONNECT)

    def _handle_message(self, message: dict):
        is_valid, error = validate_message(message)
        if not is_valid:
            logger.warning(f"Discarding malformed message: {error}")
            return

        msg_type = message["type"]
        if msg_type == MSG_TYPE_ROOM:
            self._emit(EVENT_ROOM, message["roomId"])
        elif msg_type == MSG_TYPE_STATUS:
            self._emit(EVENT_STATUS, message["message"])
        elif msg_type == MSG_TYPE_OPPONENT:
            self._emit(EVENT_OPPONENT, message["state"])
        else:
            logger.warning(f"Discarding unexpected message type: {msg_type}")

    # Outbound state

    def send_state(self, state: dict) -> bool:
        """
        Fire-and-forget broadcast of one snapshot to the room peer.
        Dropped silently when not connected or not in a room.
        """
        with self._lock:
            sock = self._sock
        room_id = self.room_id
        if sock is None or room_id is None:
            return False

        try:
            with self._send_lock:
                send_message(sock, {"type": MSG_TYPE_STATE, "roomId": room_id, "state": state})
        except (OSError, ValueError) as e:
            logger.warning(f"Dropped state update: {e}")
            return False
        return True

    def close(self):
        """User-initiated disconnect. No automatic reconnect follows."""
        with self._lock:
            sock, self._sock = self._sock, None
            self._pending = []
            self._closed = True
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        if self._network_thread and self._network_thread.is_alive():
            self._network_thread.join(timeout=1.0)
