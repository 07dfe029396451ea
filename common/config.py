# Shared configuration for the relay server and the game client.
# Values can be overridden through environment variables
# or through each program's command-line arguments.

import os

# Relay server address
RELAY_HOST = os.environ.get("TETRIS_RELAY_HOST", "127.0.0.1")
RELAY_PORT = int(os.environ.get("TETRIS_RELAY_PORT", "3000"))

# The relay binds to every interface unless told otherwise
RELAY_BIND_HOST = os.environ.get("TETRIS_RELAY_BIND_HOST", "0.0.0.0")

# Seconds to wait for the TCP connection to the relay
CONNECT_TIMEOUT = 5.0

# Two players per room
ROOM_CAPACITY = 2

# Room codes generated by the client
ROOM_CODE_LENGTH = 6

# Client frame rate
FPS = 60
