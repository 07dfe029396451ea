#!/usr/bin/env python3
"""
Test suite for the wire protocol and the relay room handlers.
Uses socket pairs in place of real client connections.
Tests:
- Framing and JSON decoding
- Message and snapshot validation
- Room create / join / full / missing
- State forwarding and opponent-left notices
"""

import os
import socket
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from common import protocol
from common.game_engine import TetrisGame
from common.message_types import validate_message, validate_snapshot
from server import relay_server

# Helpers

def recv_json(sock: socket.socket, timeout: float = 2.0) -> dict:
    sock.settimeout(timeout)
    message = protocol.recv_message(sock)
    assert message is not None, "Expected a message"
    return message

def assert_nothing_pending(sock: socket.socket):
    sock.settimeout(0.2)
    try:
        data = sock.recv(1)
    except socket.timeout:
        return
    raise AssertionError(f"Unexpected data: {data!r}")

class RelayPeer:
    """Both ends of a socket pair: 'server' is handed to the relay, 'client' reads replies."""

    def __init__(self):
        self.server, self.client = socket.socketpair()
        relay_server.register_client(self.server)

    def close(self):
        relay_server.unregister_client(self.server)
        self.server.close()
        self.client.close()

# Protocol

def test_framing_over_socket_pair():
    a, b = socket.socketpair()
    try:
        protocol.send_message(a, {"type": "status", "message": "hello"})
        protocol.send_message(a, {"type": "room", "roomId": "ABC"})
        assert recv_json(b) == {"type": "status", "message": "hello"}
        assert recv_json(b) == {"type": "room", "roomId": "ABC"}
    finally:
        a.close()
        b.close()

def test_oversized_message_rejected():
    blob = {"type": "status", "message": "x" * protocol.MAX_FRAME_SIZE}
    try:
        protocol.encode_message(blob)
    except ValueError:
        pass
    else:
        raise AssertionError("Oversized message should raise ValueError")

def test_oversized_header_closes_connection():
    a, b = socket.socketpair()
    try:
        a.sendall(protocol.FRAME_HEADER.pack(protocol.MAX_FRAME_SIZE + 1))
        assert protocol.recv_message(b) is None
        assert b.fileno() == -1
    finally:
        a.close()
        b.close()

def test_recv_returns_none_on_close():
    a, b = socket.socketpair()
    a.close()
    try:
        assert protocol.recv_message(b) is None
    finally:
        b.close()

def test_decode_rejects_bad_payloads():
    for body in (b"[1, 2]", b"\xff\xfe", b"{not json"):
        try:
            protocol.decode_message(body)
        except protocol.FrameError:
            continue
        raise AssertionError(f"{body!r} should be rejected")

def test_bad_frame_keeps_stream_aligned():
    a, b = socket.socketpair()
    try:
        a.sendall(protocol.FRAME_HEADER.pack(2) + b"[]")
        protocol.send_message(a, {"type": "status", "message": "after"})
        try:
            protocol.recv_message(b)
        except protocol.FrameError:
            pass
        else:
            raise AssertionError("A non-object frame should raise FrameError")
        assert recv_json(b) == {"type": "status", "message": "after"}
    finally:
        a.close()
        b.close()

# Validation

def test_validate_client_messages():
    assert validate_message({"type": "create", "roomId": "ABC123"}) == (True, "")
    assert validate_message({"type": "join", "roomId": "XYZ"})[0]
    assert not validate_message({"type": "join"})[0]
    assert not validate_message({"type": "create", "roomId": "AB C"})[0]
    assert not validate_message({"type": "state", "roomId": "ABC"})[0]
    assert not validate_message({"type": "teleport"})[0]
    assert not validate_message(["create"])[0]

def test_validate_relay_messages():
    assert validate_message({"type": "status", "message": "hi"})[0]
    assert not validate_message({"type": "status"})[0]
    assert validate_message({"type": "opponent", "state": None})[0]
    assert not validate_message({"type": "opponent", "state": {"board": []}})[0]

def test_engine_snapshot_is_valid():
    game = TetrisGame(4)
    game.start()
    game.hard_drop()
    assert validate_snapshot(game.get_state_snapshot()) == (True, "")

def test_snapshot_validation_rejects_bad_fields():
    snapshot = TetrisGame(4).get_state_snapshot()
    for field, value in (("score", -1), ("level", "2"), ("level", 0), ("status", "flying"),
                         ("board", [[0] * 10]), ("game_over", "yes")):
        broken = dict(snapshot)
        broken[field] = value
        assert not validate_snapshot(broken)[0], f"Bad '{field}' = {value!r} accepted"

def test_snapshot_validation_checks_cell_contents():
    for cell in ([1], {"x": 1}, "Q", 7):
        snapshot = TetrisGame(4).get_state_snapshot()
        snapshot["board"][19][0] = cell
        assert not validate_snapshot(snapshot)[0], f"Board cell {cell!r} accepted"

    snapshot = TetrisGame(4).get_state_snapshot()
    snapshot["board"][19][0] = "T"
    assert validate_snapshot(snapshot)[0]

def test_snapshot_validation_checks_pieces():
    for field in ("active_piece", "next_piece"):
        for key, value in (("type", {"x": 1}), ("type", "Q"), ("x", "3"), ("ghost_y", None)):
            snapshot = TetrisGame(4).get_state_snapshot()
            snapshot[field][key] = value
            assert not validate_snapshot(snapshot)[0], f"{field} {key}={value!r} accepted"

        snapshot = TetrisGame(4).get_state_snapshot()
        snapshot[field]["matrix"][0][0] = 2
        assert not validate_snapshot(snapshot)[0], f"{field} matrix value 2 accepted"

# Rooms

def test_create_and_join_room():
    host, guest = RelayPeer(), RelayPeer()
    try:
        relay_server.handle_create_room(host.server, "ROOM1")
        assert recv_json(host.client) == {"type": "room", "roomId": "ROOM1"}
        assert recv_json(host.client)["type"] == "status"

        relay_server.handle_join_room(guest.server, "ROOM1")
        assert recv_json(guest.client) == {"type": "room", "roomId": "ROOM1"}
        assert "Opponent connected" in recv_json(guest.client)["message"]
        assert "Opponent joined" in recv_json(host.client)["message"]
    finally:
        host.close()
        guest.close()

def test_state_is_forwarded_to_peer():
    host, guest = RelayPeer(), RelayPeer()
    try:
        relay_server.handle_create_room(host.server, "ROOM2")
        relay_server.handle_join_room(guest.server, "ROOM2")
        recv_json(host.client)
        recv_json(host.client)
        recv_json(host.client)
        recv_json(guest.client)
        recv_json(guest.client)

        snapshot = TetrisGame(8).get_state_snapshot()
        relay_server.handle_message(host.server, {"type": "state", "roomId": "ROOM2", "state": snapshot})

        assert recv_json(guest.client) == {"type": "opponent", "state": snapshot}
        assert_nothing_pending(host.client)
    finally:
        host.close()
        guest.close()

def test_join_missing_room():
    peer = RelayPeer()
    try:
        relay_server.handle_join_room(peer.server, "NOROOM")
        message = recv_json(peer.client)
        assert message["type"] == "status" and "not found" in message["message"]
    finally:
        peer.close()

def test_room_is_full():
    host, guest, third = RelayPeer(), RelayPeer(), RelayPeer()
    try:
        relay_server.handle_create_room(host.server, "ROOM3")
        relay_server.handle_join_room(guest.server, "ROOM3")
        relay_server.handle_join_room(third.server, "ROOM3")
        message = recv_json(third.client)
        assert message["type"] == "status" and "full" in message["message"]
    finally:
        host.close()
        guest.close()
        third.close()

def test_create_existing_room():
    host, other = RelayPeer(), RelayPeer()
    try:
        relay_server.handle_create_room(host.server, "ROOM4")
        relay_server.handle_create_room(other.server, "ROOM4")
        message = recv_json(other.client)
        assert message["type"] == "status" and "already exists" in message["message"]
    finally:
        host.close()
        other.close()

def test_state_from_non_member_is_dropped():
    host, outsider = RelayPeer(), RelayPeer()
    try:
        relay_server.handle_create_room(host.server, "ROOM5")
        recv_json(host.client)
        recv_json(host.client)

        relay_server.handle_state(outsider.server, "ROOM5", {"score": 1})

        assert_nothing_pending(host.client)
        assert_nothing_pending(outsider.client)
    finally:
        host.close()
        outsider.close()

def test_leaving_notifies_peer():
    host, guest = RelayPeer(), RelayPeer()
    try:
        relay_server.handle_create_room(host.server, "ROOM6")
        relay_server.handle_join_room(guest.server, "ROOM6")
        recv_json(guest.client)
        recv_json(guest.client)

        relay_server.handle_leave_room(host.server)

        assert "left" in recv_json(guest.client)["message"]
        assert recv_json(guest.client) == {"type": "opponent", "state": None}
        assert "ROOM6" in relay_server.g_rooms
    finally:
        host.close()
        guest.close()
    assert "ROOM6" not in relay_server.g_rooms

def test_send_to_departed_client_is_skipped():
    peer = RelayPeer()
    try:
        relay_server.unregister_client(peer.server)
        relay_server.send_status(peer.server, "Too late.")

        assert peer.server not in relay_server.g_send_locks
        assert_nothing_pending(peer.client)
    finally:
        peer.close()
    assert peer.server not in relay_server.g_send_locks

def test_invalid_message_reports_status():
    peer = RelayPeer()
    try:
        relay_server.handle_message(peer.server, {"type": "bogus"})
        message = recv_json(peer.client)
        assert message["type"] == "status" and message["message"].startswith("Invalid message")
    finally:
        peer.close()

def main():
    """Run all tests."""
    print("=" * 60)
    print("RELAY SERVER TEST SUITE")
    print("=" * 60)

    tests = [value for name, value in sorted(globals().items())
             if name.startswith("test_") and callable(value)]

    results = []
    for test in tests:
        try:
            test()
            print(f"✓ {test.__name__}")
            results.append(True)
        except AssertionError as e:
            print(f"✗ {test.__name__} FAILED: {e}")
            results.append(False)

    print("\n" + "=" * 60)
    passed = sum(results)
    print(f"Passed: {passed}/{len(results)}")
    return 0 if passed == len(results) else 1

if __name__ == "__main__":
    sys.exit(main())
