"""Constants for pygree library."""

from __future__ import annotations


# Network Configuration
DEFAULT_PORT = 7000
DEFAULT_BROADCAST_ADDRESS = "255.255.255.255"
DEFAULT_LOCAL_ADDRESS = ("0.0.0.0", 0)  # noqa: S104 - replies arrive on the ephemeral port
DEFAULT_TIMEOUT = 3.0  # seconds to wait for a matching reply
DEFAULT_DISCOVERY_WINDOW = 3.0  # seconds
DEFAULT_MAX_DEVICES = 10
MAX_DATAGRAM_SIZE = 64000

# Protocol Constants
GENERIC_KEY = b"a3K8Bx%2r8Y7#xDh"
KEY_LENGTH = 16
BLOCK_SIZE = 16
DEFAULT_UID = 0
APP_CID = "app"
STATUS_OK = 200

# Message Types
MSG_PACK = "pack"
MSG_SCAN = "scan"
MSG_SCAN_RESULT = "dev"
MSG_BIND = "bind"
MSG_BIND_RESULT = "bindok"
MSG_STATUS = "status"
MSG_STATUS_RESULT = "dat"
MSG_COMMAND = "cmd"
MSG_COMMAND_RESULT = "res"

# Scan Cache Configuration
DEFAULT_MIN_SCAN_AGE = 60.0  # forced rescans are ignored before this age
DEFAULT_MAX_SCAN_AGE = 3600.0 * 24  # cached scans are refreshed after this age

# Temperature Conversion
TEMSEN_OFFSET = 40
FAHRENHEIT_MIN = 61
FAHRENHEIT_MAX = 86

# Request Queue Configuration
DEFAULT_MIN_REQUEST_INTERVAL = 0.5  # 500ms minimum between device writes
DEFAULT_COMMAND_TIMEOUT = 10.0  # Max time to wait for queued command
DEFAULT_MAX_QUEUE_SIZE = 10  # Maximum pending commands

# HTTP Bridge
DEFAULT_SERVICE_HOST = "127.0.0.1"
DEFAULT_SERVICE_PORT = 7777
