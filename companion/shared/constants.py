"""
Named constants - protocol values and operational limits.

All tunable limits and wire-level values live here so that the logger,
the watcher and both discovery strategies agree on them.
"""

# ── Application Log ──────────────────────────────────────────

LOG_MAX_BYTES = 5 * 1024 * 1024
"""Hard cap on the log file. A line that would push the file past this
size truncates the file to empty before it is written."""

DEFAULT_TAIL_BYTES = 512 * 1024
"""Default number of trailing bytes returned by read_log."""

LOG_DIR_NAME = "logs"

DEFAULT_APP_NAME = "nascraft-companion"

# ── Directory Watcher ────────────────────────────────────────

FILE_CREATED_EVENT = "file-created"
"""Name of the notification emitted for every newly created path."""

MAX_NOTIFICATION_QUEUE_SIZE = 1000
"""Pending notifications kept for the UI layer. Further ones are dropped."""

# ── Service Discovery ────────────────────────────────────────

NASCRAFT_SERVICE_TYPE = "_nascraft._tcp.local."
GENERIC_SERVICE_TYPE = "_http._tcp.local."

DISCOVERY_PORT = 53530
LIMITED_BROADCAST_ADDR = "255.255.255.255"

PROBE_TYPE = "nascraft_discover"
RESPONSE_TYPE = "nascraft_here"
PROTOCOL_VERSION = 1

DEFAULT_SERVER_PORT = 8080
"""Port assumed when a broadcast responder does not announce one."""

DEFAULT_DISCOVERY_TIMEOUT_MS = 3000
MAX_DISCOVERY_TIMEOUT_MS = 60000

POLL_INTERVAL_MS = 250
"""Upper bound on a single wait inside a discovery loop."""

MAX_DATAGRAM_SIZE = 2048

RESOLVE_TIMEOUT_MS = 1000
"""Upper bound on resolving one mDNS instance; the call deadline still applies."""
