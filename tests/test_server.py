from __future__ import annotations
import base64
import socket
import time

import pytest

from synq.client.errors import ProtocolError
from synq.client.linkclient import LinkClient
from synq.crypto.primitives import bind_hash
from synq.crypto.secure import encrypt


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def clients():
    made = []

    def _client(srv, username=None):
        c = LinkClient(*srv.address, timeout=5.0)
        made.append(c)
        if username is None:
            c.connect()
            return c
        return c.open(username)

    yield _client
    for c in made:
        c.close()


def test_keyless_session_end_to_end(server, clients):
    srv = server()
    alice = clients(srv, "alice")
    bob = clients(srv, "bob")

    alice.bind_keyless("bob")
    assert alice.recv() == {"type": "info", "message": "waiting_for_partner"}
    bob.bind_keyless("alice")
    assert bob.recv() == {"type": "bind_success", "partner": "alice"}
    assert alice.recv() == {"type": "bind_success", "partner": "bob"}
    assert alice.state.partner == "bob"

    alice.say("hello bob")
    assert bob.recv() == {"type": "message", "from": "alice", "text": "hello bob"}
    bob.say("hi alice")
    assert alice.recv() == {"type": "message", "from": "bob", "text": "hi alice"}

    alice.close()
    assert bob.recv() == {"type": "partner_disconnected"}
    assert bob.state.partner is None
    assert wait_for(lambda: srv.registry.stats()["binds"] == 0 and srv.registry.stats()["users"] == 1)


def test_keyed_session_with_shared_passphrase(server, clients):
    srv = server()
    alice = clients(srv, "alice")
    bob = clients(srv, "bob")

    alice.bind_passphrase("bob", "open sesame")
    assert alice.recv()["message"] == "waiting_for_partner"
    bob.bind_passphrase("alice", "open sesame")
    assert bob.recv() == {"type": "bind_success", "partner": "alice"}
    assert alice.recv() == {"type": "bind_success", "partner": "bob"}


def test_keyed_mismatch_keeps_both_waiting(server, clients):
    srv = server()
    alice = clients(srv, "alice")
    bob = clients(srv, "bob")

    alice.bind_keyed("bob", bind_hash())
    alice.recv()
    bob.bind_keyed("alice", bind_hash())
    assert bob.recv() == {"type": "info", "message": "waiting_for_partner"}
    assert srv.registry.stats()["keyed_waiting"] == 2


def test_duplicate_username_is_rejected(server, clients):
    srv = server()
    clients(srv, "alice")
    intruder = clients(srv)
    with pytest.raises(ProtocolError, match="username_taken"):
        intruder.login("alice")
    assert intruder.sock.recv(1) == b""


def test_username_is_free_again_after_disconnect(server, clients):
    srv = server()
    first = clients(srv, "alice")
    first.close()
    assert wait_for(lambda: not srv.registry.is_online("alice"))
    assert clients(srv, "alice").state.session_key is not None


@pytest.mark.parametrize("line, code", [
    ('{"type":"login","username":"x"}', "invalid_username"),
    ('{"type":"login","username":"bad name"}', "invalid_username"),
    ('{"type":"hello","username":"alice"}', "invalid_request_type"),
    ('{"type":"login"}', "invalid_login_request"),
    ('{"username":"alice"}', "invalid_login_request"),
    ("not json at all", "invalid_login_request"),
])
def test_login_rejections_are_plaintext_and_close(server, clients, line, code):
    srv = server()
    c = clients(srv)
    c.send_raw(line)
    assert c.recv_plain() == {"type": "error", "message": code}
    with pytest.raises(ProtocolError):
        c.read_line()


def test_login_username_is_trimmed(server, clients):
    srv = server()
    c = clients(srv)
    reply = c.login("  carol  ")
    assert reply == {"type": "success", "message": "login_success"}
    assert wait_for(lambda: srv.registry.is_online("carol"))


def test_invalid_public_value_closes_connection(server, clients):
    srv = server()
    c = clients(srv)
    c.login("mallory")
    c.read_line()
    c.send_raw(base64.b64encode(b"\x01" * 32).decode())
    with pytest.raises(ProtocolError):
        c.read_line()
    assert wait_for(lambda: not srv.registry.is_online("mallory"))


def test_server_refuses_connections_beyond_capacity(server, clients):
    srv = server(max_clients=1)
    alice = clients(srv, "alice")
    assert srv.slots_used == 1

    extra = clients(srv)
    assert extra.sock.recv(1) == b""

    alice.close()
    assert wait_for(lambda: srv.slots_used == 0)
    assert clients(srv, "bob").state.session_key is not None


def test_idle_connection_times_out(server, clients):
    srv = server(socket_timeout_s=0.3)
    c = clients(srv)
    assert c.sock.recv(1) == b""
    assert wait_for(lambda: srv.slots_used == 0)


def test_close_disconnects_everyone(server, clients):
    srv = server()
    alice = clients(srv, "alice")
    srv.close()
    with pytest.raises(ProtocolError):
        alice.read_line()
    assert srv.registry.stats()["users"] == 0


NESTED = "[" * 3000 + "]" * 3000


def test_deeply_nested_login_line_is_rejected(server, clients):
    c = clients(server())
    c.send_raw(NESTED)
    assert c.recv_plain() == {"type": "error", "message": "invalid_login_request"}


def test_deeply_nested_secure_message_keeps_session(server, clients):
    srv = server()
    alice = clients(srv, "alice")
    alice.send_raw(encrypt(alice.state.session_key, NESTED))
    assert alice.recv() == {"type": "error", "error": "invalid_json"}
    alice.bind_keyless("ghost")
    assert alice.recv() == {"type": "error", "error": "target_offline"}
    assert srv.registry.is_online("alice")


def test_client_read_line_tolerates_invalid_utf8():
    ours, theirs = socket.socketpair()
    try:
        c = LinkClient("localhost", 0)
        c.sock, c._reader = ours, ours.makefile("rb")
        theirs.sendall(b"ok\xff\n")
        assert c.read_line() == "ok\ufffd"
        c.close()
    finally:
        theirs.close()
