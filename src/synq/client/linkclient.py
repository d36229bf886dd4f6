from __future__ import annotations
import socket
from typing import Any, Dict, Optional

from synq.crypto.handshake import (
    generate_keypair, encode_public_key, decode_public_key,
    compute_agreement, derive_session_key,
)
from synq.crypto.primitives import bind_hash
from synq.crypto.secure import encrypt, decrypt
from synq.protocol.constants import MAX_LINE_BYTES
from synq.protocol.phases import Phase
from synq.protocol.validation import parse_message, serialize_message

from .errors import ProtocolError
from .state import ClientState


class LinkClient:
    """Blocking client for the line protocol: login, DH handshake, then encrypted JSON lines."""

    def __init__(self, host: str, port: int, timeout: Optional[float] = 10.0, logger=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.logger = logger
        self.sock: Optional[socket.socket] = None
        self._reader = None
        self.state = ClientState()

    def connect(self):
        self.sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        self._reader = self.sock.makefile("rb")
        self.state.phase = Phase.LOGGING_IN

    def _send_line(self, text: str):
        if not self.sock:
            raise ProtocolError("not connected")
        self.sock.sendall((text + "\n").encode("utf-8"))

    def read_line(self) -> str:
        if not self._reader:
            raise ProtocolError("not connected")
        raw = self._reader.readline(MAX_LINE_BYTES + 1)
        if not raw:
            raise ProtocolError("connection closed by server")
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    def recv_plain(self) -> Dict[str, Any]:
        return parse_message(self.read_line())

    def login(self, username: str) -> Dict[str, Any]:
        self._send_line(serialize_message({"type": "login", "username": username}))
        reply = self.recv_plain()
        if reply.get("type") != "success":
            raise ProtocolError(f"login failed: {reply.get('message')}")
        self.state.username = username
        self.state.phase = Phase.KEY_EXCHANGING
        return reply

    def key_exchange(self):
        server_pub = decode_public_key(self.read_line())
        private_key = generate_keypair()
        self._send_line(encode_public_key(private_key.public_key()))
        self.state.session_key = derive_session_key(compute_agreement(private_key, server_pub))
        self.state.phase = Phase.SECURE
        if self.logger:
            self.logger.info("secure_channel", username=self.state.username)

    def open(self, username: str) -> "LinkClient":
        self.connect()
        self.login(username)
        self.key_exchange()
        return self

    def send(self, msg: Dict[str, Any]):
        if not self.state.session_key:
            raise ProtocolError("Not established")
        self._send_line(encrypt(self.state.session_key, serialize_message(msg)))

    def send_raw(self, line: str):
        self._send_line(line)

    def recv(self) -> Dict[str, Any]:
        if not self.state.session_key:
            raise ProtocolError("Not established")
        msg = parse_message(decrypt(self.state.session_key, self.read_line()))
        if msg.get("type") == "bind_success":
            self.state.partner = msg.get("partner")
        elif msg.get("type") == "partner_disconnected":
            self.state.partner = None
        return msg

    def bind_keyless(self, target: str):
        self.send({"type": "bind_request", "mode": "keyless", "target": target})

    def bind_keyed(self, target: str, hash_hex: str):
        self.send({"type": "bind_request", "mode": "keyed", "target": target, "hash": hash_hex})

    def bind_passphrase(self, target: str, passphrase: str):
        self.bind_keyed(target, bind_hash(passphrase))

    def say(self, text: str):
        self.send({"type": "message", "text": text})

    def close(self):
        if self._reader:
            try:
                self._reader.close()
            except OSError:
                pass
            self._reader = None
        if self.sock:
            try:
                self.sock.close()
            except OSError:
                pass
            self.sock = None
        self.state.cleanup()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
