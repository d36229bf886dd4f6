from __future__ import annotations
import socket

import pytest

from synq.config import ServerConfig
from synq.crypto.handshake import generate_keypair, compute_agreement, derive_session_key
from synq.server.bind import BindManager
from synq.server.connection import Connection
from synq.server.registry import Registry
from synq.server.listener import RelayServer


@pytest.fixture
def clock():
    """Manually advanced clock; tests bump ``clock["now"]``."""
    return {"now": 1_000.0}


@pytest.fixture
def registry(clock):
    return Registry(clock=lambda: clock["now"])


@pytest.fixture
def binder(registry):
    return BindManager(registry, bind_timeout_s=60.0, sweep_interval_s=30.0)


@pytest.fixture
def online(registry):
    """Register placeholder connections so bind prechecks see users as online."""
    def _online(*names):
        for name in names:
            assert registry.register_user(name, object())
    return _online


@pytest.fixture(scope="session")
def session_key():
    a, b = generate_keypair(), generate_keypair()
    return derive_session_key(compute_agreement(a, b.public_key()))


@pytest.fixture
def socket_conn():
    """A server-side Connection wired to a local socket; yields (conn, peer_socket)."""
    made = []

    def _make(username=None, key=None):
        server_side, peer = socket.socketpair()
        peer.settimeout(5.0)
        conn = Connection(server_side, address="local", username=username, session_key=key)
        made.append((conn, peer))
        return conn, peer

    yield _make

    for conn, peer in made:
        conn.close()
        peer.close()


@pytest.fixture
def server():
    def _start(**overrides):
        cfg = ServerConfig(**{"host": "127.0.0.1", "port": 0, "socket_timeout_s": 5.0, **overrides})
        srv = RelayServer(cfg)
        srv.serve_in_background()
        started.append(srv)
        return srv

    started = []
    yield _start
    for srv in started:
        srv.close()
