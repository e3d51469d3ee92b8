"""
UDP broadcast discovery strategy (platforms that restrict multicast).

Sends one JSON probe ``{"t":"nascraft_discover","v":1}`` to each broadcast
target, then collects ``{"t":"nascraft_here","v":1,...}`` replies until the
call deadline. Anything else arriving on the socket is ignored.
"""

import json
import logging
import socket
from typing import Callable, Iterable, Optional

from companion.shared.constants import (
    DEFAULT_SERVER_PORT,
    DISCOVERY_PORT,
    LIMITED_BROADCAST_ADDR,
    MAX_DATAGRAM_SIZE,
    NASCRAFT_SERVICE_TYPE,
    POLL_INTERVAL_MS,
    PROBE_TYPE,
    PROTOCOL_VERSION,
    RESPONSE_TYPE,
)
from companion.shared.diagnostics import Diagnostics
from companion.shared.errors import DiscoveryError
from companion.shared.interfaces import IDiscoveryStrategy
from companion.shared.models import DiscoveredServer

from .common import Deadline

logger = logging.getLogger(__name__)


def build_probe() -> bytes:
    return json.dumps(
        {"t": PROBE_TYPE, "v": PROTOCOL_VERSION}, separators=(",", ":")
    ).encode("utf-8")


def parse_response(
    data: bytes,
    sender_ip: str,
    *,
    default_port: int = DEFAULT_SERVER_PORT,
    service_type: str = NASCRAFT_SERVICE_TYPE,
) -> Optional[DiscoveredServer]:
    """Turn one datagram into a server, or None if it is not a valid reply."""
    try:
        message = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(message, dict):
        return None
    version = message.get("v")
    if message.get("t") != RESPONSE_TYPE or isinstance(version, bool) or version != PROTOCOL_VERSION:
        return None

    port = message.get("port")
    if port is None:
        port = default_port
    elif isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        return None

    name = message.get("name")
    if not isinstance(name, str) or not name.strip():
        name = sender_ip

    return DiscoveredServer(
        instance_name=name,
        service_type=service_type,
        hostname=sender_ip,
        ip_v4=(sender_ip,),
        port=port,
    )


def _broadcast_socket() -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
    sock.bind(("0.0.0.0", 0))
    return sock


class BroadcastDiscoveryStrategy(IDiscoveryStrategy):
    """Probe/response discovery over UDP broadcast."""

    name = "broadcast"

    def __init__(
        self,
        *,
        port: int = DISCOVERY_PORT,
        broadcast_addrs: Iterable[str] = (LIMITED_BROADCAST_ADDR,),
        default_server_port: int = DEFAULT_SERVER_PORT,
        service_type: str = NASCRAFT_SERVICE_TYPE,
        poll_interval_ms: int = POLL_INTERVAL_MS,
        socket_factory: Callable[[], socket.socket] = _broadcast_socket,
        diagnostics: Optional[Diagnostics] = None,
    ):
        self._port = port
        self._broadcast_addrs = tuple(broadcast_addrs) or (LIMITED_BROADCAST_ADDR,)
        self._default_server_port = default_server_port
        self._service_type = service_type
        self._poll_interval_ms = poll_interval_ms
        self._socket_factory = socket_factory
        self._diagnostics = diagnostics or Diagnostics()

    def discover(self, timeout_ms: int) -> list[DiscoveredServer]:
        deadline = Deadline(timeout_ms, self._poll_interval_ms)
        try:
            sock = self._socket_factory()
        except OSError as e:
            raise DiscoveryError(f"Cannot open discovery socket: {e}") from e

        servers: list[DiscoveredServer] = []
        seen = set()
        try:
            self._send_probes(sock)
            while not deadline.expired():
                sock.settimeout(max(deadline.next_wait(), 0.001))
                try:
                    data, addr = sock.recvfrom(MAX_DATAGRAM_SIZE)
                except socket.timeout:
                    continue
                except OSError as e:
                    # e.g. ICMP port-unreachable surfacing as a reset on Windows
                    logger.debug(f"Discovery receive error: {e}")
                    continue

                sender_ip = addr[0]
                server = parse_response(
                    data,
                    sender_ip,
                    default_port=self._default_server_port,
                    service_type=self._service_type,
                )
                if server is None:
                    self._diagnostics.record("datagram_ignored", sender_ip)
                    continue
                if server.endpoint_key in seen:
                    continue
                seen.add(server.endpoint_key)
                servers.append(server)
                logger.info(f"Discovered {server.instance_name} at {sender_ip}:{server.port}")
        finally:
            sock.close()
        return servers

    def _send_probes(self, sock: socket.socket) -> None:
        """A failed send is logged; the receive window still runs."""
        probe = build_probe()
        for addr in self._broadcast_addrs:
            try:
                sock.sendto(probe, (addr, self._port))
            except OSError as e:
                logger.warning(f"Discovery probe to {addr}:{self._port} failed: {e}")
                self._diagnostics.record("probe_send_failed", f"{addr}: {e}")
