# Wire format shared by the game client and the relay.
# Every message travels as one frame:
# [ 4-byte length, '!I' big-endian ] [ UTF-8 JSON object of that length ]
# Frames longer than MAX_FRAME_SIZE are refused on both ends.

import json
import socket
import struct
import logging

FRAME_HEADER = struct.Struct('!I')

# 64 KiB is far above a full board snapshot
MAX_FRAME_SIZE = 65536

logger = logging.getLogger(__name__)


class FrameError(ValueError):
    """A complete frame arrived but its body is not a JSON object."""


def encode_message(message: dict) -> bytes:
    """Serializes a message into one ready-to-send frame."""
    body = json.dumps(message, separators=(',', ':')).encode('utf-8')
    if len(body) > MAX_FRAME_SIZE:
        raise ValueError(f"Message size ({len(body)} bytes) exceeds limit ({MAX_FRAME_SIZE} bytes)")
    return FRAME_HEADER.pack(len(body)) + body


def decode_message(body: bytes) -> dict:
    """Parses a frame body. Raises FrameError for bad UTF-8, bad JSON or a non-object."""
    try:
        message = json.loads(body.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise FrameError(f"Undecodable frame: {e}") from e
    if not isinstance(message, dict):
        raise FrameError("Message must be a JSON object")
    return message


def send_message(sock: socket.socket, message: dict):
    """
    Sends one message as a single sendall() call.
    ValueError for an oversized message, OSError if the peer is gone;
    callers sharing a socket across threads hold their own send lock.
    """
    sock.sendall(encode_message(message))


def _read_exact(sock: socket.socket, length: int) -> bytes | None:
    buf = bytearray()
    while len(buf) < length:
        chunk = sock.recv(length - len(buf))
        if not chunk:
            if buf:
                logger.warning(f"Connection closed mid-frame ({len(buf)}/{length} bytes).")
            return None
        buf += chunk
    return bytes(buf)


def recv_message(sock: socket.socket) -> dict | None:
    """
    Blocks for the next message.

    Returns None once the connection is finished: a clean close, a socket
    error, or a length outside 1..MAX_FRAME_SIZE (the socket is closed then,
    since the stream can no longer be resynchronized).
    Raises FrameError when a whole frame arrived but could not be decoded;
    the stream is still aligned and the caller may keep reading.
    """
    try:
        header = _read_exact(sock, FRAME_HEADER.size)
        if header is None:
            return None

        (length,) = FRAME_HEADER.unpack(header)
        if not 0 < length <= MAX_FRAME_SIZE:
            logger.error(f"Refusing frame of {length} bytes. Closing connection.")
            sock.close()
            return None

        body = _read_exact(sock, length)
    except OSError as e:
        logger.error(f"Error during recv: {e}")
        return None

    if body is None:
        return None
    return decode_message(body)
