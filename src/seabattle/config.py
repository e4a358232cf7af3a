"""Central configuration for runtime-tunable parameters.

All constants can be overridden via environment variables so that the
production game server runs with sensible defaults, while the automated
test-suite can shrink timings or pick free ports if necessary.
"""

from __future__ import annotations

import os


# ===========================================================================
# Network Defaults
# ===========================================================================
# SEABATTLE_HOST: Default host address for the server to bind to.
#   Defaults to "127.0.0.1".
#   Example: export SEABATTLE_HOST=0.0.0.0
DEFAULT_HOST: str = os.getenv("SEABATTLE_HOST", "127.0.0.1")

# SEABATTLE_PORT: Default port for the server to listen on.
#   Defaults to 3000
#   Example: export SEABATTLE_PORT=3001
DEFAULT_PORT: int = int(os.getenv("SEABATTLE_PORT", "3000"))


# ===========================================================================
# Heartbeat
# ===========================================================================
# SEABATTLE_HEARTBEAT: seconds between ping frames sent to every connection.
#   A ping that cannot be written closes the connection, which counts as a
#   disconnect for the player bound to it.
#   Defaults to 30 seconds. Set to 0 to disable.
#   Example: export SEABATTLE_HEARTBEAT=5
HEARTBEAT_INTERVAL: float = float(os.getenv("SEABATTLE_HEARTBEAT", "30"))


# ===========================================================================
# Game Constants
# ===========================================================================
# SEABATTLE_BOARD_SIZE: Defines the width and height of the game board.
#   Defaults to 10 (for a 10x10 grid).
#   Example: export SEABATTLE_BOARD_SIZE=12
BOARD_SIZE: int = int(os.getenv("SEABATTLE_BOARD_SIZE", "10"))

# Fleet composition: ship length -> number of ships of that length.
# Not typically overridden by env vars.
FLEET_QUOTA: dict[int, int] = {
    4: 1,
    3: 2,
    2: 3,
    1: 4,
}


# ===========================================================================
# Credentials
# ===========================================================================
# SEABATTLE_SCRYPT_N: scrypt CPU/memory cost used when hashing player secrets.
#   Must be a power of two. Defaults to 2**14.
#   Tests lower it to keep registration fast.
#   Example: export SEABATTLE_SCRYPT_N=1024
SCRYPT_N: int = int(os.getenv("SEABATTLE_SCRYPT_N", str(2**14)))


# ===========================================================================
# Debugging and Logging
# ===========================================================================
# SEABATTLE_DEBUG: If "1", enables detailed debug logging across modules.
#   Defaults to "0" (disabled).
#   Example: export SEABATTLE_DEBUG=1
DEBUG: bool = os.getenv("SEABATTLE_DEBUG", "0") == "1"
