"""
Tests for discovery/broadcast.py - UDP probe/response discovery.
"""

import json
import socket
import threading
import time

import pytest

from companion.discovery.broadcast import (
    BroadcastDiscoveryStrategy,
    build_probe,
    parse_response,
)
from companion.shared.errors import DiscoveryError
from companion.shared.models import DiscoveredServer

from conftest import FakeSocket


def _reply(payload, ip="192.0.2.5", port=40000):
    data = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return (data, (ip, port))


def _strategy(sock, diagnostics=None, **kwargs):
    return BroadcastDiscoveryStrategy(
        socket_factory=lambda: sock, diagnostics=diagnostics, **kwargs
    )


class TestProbe:
    def test_probe_payload(self):
        assert build_probe() == b'{"t":"nascraft_discover","v":1}'
        assert json.loads(build_probe()) == {"t": "nascraft_discover", "v": 1}


class TestParseResponse:
    def test_valid_response(self):
        server = parse_response(
            b'{"t":"nascraft_here","v":1,"name":"box1","port":9090}', "192.0.2.5"
        )
        assert server == DiscoveredServer(
            instance_name="box1",
            service_type="_nascraft._tcp.local.",
            hostname="192.0.2.5",
            ip_v4=("192.0.2.5",),
            port=9090,
        )

    def test_missing_port_defaults_to_8080(self):
        server = parse_response(b'{"t":"nascraft_here","v":1,"name":"box1"}', "192.0.2.5")
        assert server.port == 8080

    def test_missing_name_uses_sender_ip(self):
        server = parse_response(b'{"t":"nascraft_here","v":1}', "192.0.2.9")
        assert server.instance_name == "192.0.2.9"

    @pytest.mark.parametrize("payload", [
        b'{"t":"nascraft_discover","v":1}',
        b'{"t":"nascraft_here","v":2}',
        b'{"t":"nascraft_here"}',
        b'{"t":"nascraft_here","v":1,"port":"9090"}',
        b'{"t":"nascraft_here","v":1,"port":70000}',
        b'{"t":"nascraft_here","v":1,"port":true}',
        b'["nascraft_here", 1]',
        b"not json at all",
        b"\xff\xfe\x00",
        b'{"t":"nascraft_here","v":true}',
        b'{"t":"nascraft_here","v":1.5}',
    ])
    def test_invalid_datagrams_rejected(self, payload):
        assert parse_response(payload, "192.0.2.5") is None


class TestDiscover:
    def test_end_to_end_single_responder(self):
        sock = FakeSocket(replies=[
            _reply({"t": "nascraft_here", "v": 1, "name": "box1", "port": 9090}),
        ])
        servers = _strategy(sock).discover(200)

        assert sock.sent == [(b'{"t":"nascraft_discover","v":1}', ("255.255.255.255", 53530))]
        assert len(servers) == 1
        assert servers[0].instance_name == "box1"
        assert servers[0].hostname == "192.0.2.5"
        assert servers[0].ip_v4 == ("192.0.2.5",)
        assert servers[0].port == 9090

    def test_duplicate_endpoint_reported_once(self):
        sock = FakeSocket(replies=[
            _reply({"t": "nascraft_here", "v": 1, "name": "box1", "port": 9090}),
            _reply({"t": "nascraft_here", "v": 1, "name": "renamed", "port": 9090}),
        ])
        servers = _strategy(sock).discover(200)
        assert [s.instance_name for s in servers] == ["box1"]

    def test_same_host_different_ports_kept(self):
        sock = FakeSocket(replies=[
            _reply({"t": "nascraft_here", "v": 1, "port": 9090}),
            _reply({"t": "nascraft_here", "v": 1, "port": 9091}),
        ])
        assert [s.port for s in _strategy(sock).discover(200)] == [9090, 9091]

    def test_default_port_used_for_dedup(self):
        sock = FakeSocket(replies=[
            _reply({"t": "nascraft_here", "v": 1}),
            _reply({"t": "nascraft_here", "v": 1, "port": 8080}),
        ])
        assert len(_strategy(sock).discover(200)) == 1

    def test_malformed_datagrams_ignored_and_counted(self, diagnostics):
        sock = FakeSocket(replies=[
            _reply(b"garbage"),
            _reply({"t": "something_else", "v": 1}),
            _reply({"t": "nascraft_here", "v": 1, "name": "box2"}, ip="192.0.2.6"),
        ])
        servers = _strategy(sock, diagnostics).discover(200)
        assert [s.instance_name for s in servers] == ["box2"]
        assert diagnostics.count("datagram_ignored") == 2

    def test_probe_failure_still_listens(self, diagnostics):
        sock = FakeSocket(
            replies=[_reply({"t": "nascraft_here", "v": 1, "name": "stray"})],
            send_error=OSError("Network is unreachable"),
        )
        servers = _strategy(sock, diagnostics).discover(200)
        assert [s.instance_name for s in servers] == ["stray"]
        assert diagnostics.count("probe_send_failed") == 1

    def test_probe_sent_to_each_target(self):
        sock = FakeSocket()
        _strategy(sock, broadcast_addrs=("192.168.1.255", "10.0.0.255"), port=6000).discover(50)
        assert [addr for _, addr in sock.sent] == [("192.168.1.255", 6000), ("10.0.0.255", 6000)]

    def test_no_responder_returns_empty_within_deadline(self):
        sock = FakeSocket()
        started = time.monotonic()
        servers = _strategy(sock).discover(200)
        elapsed = time.monotonic() - started
        assert servers == []
        assert elapsed < 0.2 + 0.25 + 0.2

    def test_socket_closed_after_discovery(self):
        sock = FakeSocket()
        _strategy(sock).discover(50)
        assert sock.closed is True

    def test_socket_closed_on_unexpected_error(self):
        sock = FakeSocket(recv_error=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            _strategy(sock).discover(200)
        assert sock.closed is True

    def test_transient_receive_errors_skipped(self):
        class ResetOnce(FakeSocket):
            def __init__(self):
                super().__init__(replies=[_reply({"t": "nascraft_here", "v": 1})])
                self.reset = False

            def recvfrom(self, bufsize):
                if not self.reset:
                    self.reset = True
                    raise ConnectionResetError("port unreachable")
                return super().recvfrom(bufsize)

        assert len(_strategy(ResetOnce()).discover(200)) == 1

    def test_socket_open_failure_raises_discovery_error(self):
        def factory():
            raise OSError("Address family not supported")

        with pytest.raises(DiscoveryError):
            BroadcastDiscoveryStrategy(socket_factory=factory).discover(100)


class TestLoopback:
    @pytest.fixture
    def responder(self):
        """A responder on 127.0.0.1 answering every probe once."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind(("127.0.0.1", 0))
        sock.settimeout(3)
        probes = []

        def serve():
            try:
                data, addr = sock.recvfrom(2048)
            except OSError:
                return
            probes.append(json.loads(data))
            reply = {"t": "nascraft_here", "v": 1, "name": "loopback-box", "port": 9090}
            sock.sendto(json.dumps(reply).encode(), addr)

        thread = threading.Thread(target=serve, daemon=True)
        thread.start()
        yield sock.getsockname()[1], probes
        thread.join(timeout=3)
        sock.close()

    def test_discovers_real_responder(self, responder):
        port, probes = responder
        strategy = BroadcastDiscoveryStrategy(port=port, broadcast_addrs=("127.0.0.1",))

        servers = strategy.discover(1000)

        assert probes == [{"t": "nascraft_discover", "v": 1}]
        assert len(servers) == 1
        assert servers[0].instance_name == "loopback-box"
        assert servers[0].hostname == "127.0.0.1"
        assert servers[0].port == 9090

    def test_silent_port_times_out_empty(self):
        silent = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        silent.bind(("127.0.0.1", 0))
        try:
            strategy = BroadcastDiscoveryStrategy(
                port=silent.getsockname()[1], broadcast_addrs=("127.0.0.1",)
            )
            started = time.monotonic()
            assert strategy.discover(200) == []
            assert time.monotonic() - started < 0.2 + 0.25 + 0.3
        finally:
            silent.close()
