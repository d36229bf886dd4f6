"""Per-connection lifecycle.

CONNECTING -> LOGGING_IN -> KEY_EXCHANGING -> SECURE -> CLOSING. Each
accepted socket gets one handler running on its own thread; only the
registry is shared with other connections.
"""
from __future__ import annotations
from typing import Callable, Optional

import structlog

from synq.config import ServerConfig
from synq.crypto.handshake import (
    generate_keypair, encode_public_key, decode_public_key,
    compute_agreement, derive_session_key,
)
from synq.protocol.errors import ErrorCode, FramingError, HandshakeError, SecurityError
from synq.protocol.messages import plain_response
from synq.protocol.phases import Phase
from synq.protocol.validation import get_str, is_valid_username, parse_message, sanitize_username

from .bind import BindManager
from .connection import Connection
from .dispatch import MessageDispatcher
from .registry import Registry
from .router import MessageRouter

logger = structlog.get_logger()


class ConnectionHandler:
    def __init__(self, conn: Connection, config: ServerConfig, registry: Registry,
                 bind_manager: BindManager, router: MessageRouter,
                 dispatcher: MessageDispatcher, release: Optional[Callable[[], None]] = None):
        self.conn = conn
        self.config = config
        self.registry = registry
        self.bind_manager = bind_manager
        self.router = router
        self.dispatcher = dispatcher
        self.release = release
        self._cleaned_up = False

    def run(self) -> None:
        try:
            self._setup()
            username = self._login()
            if username is None:
                return
            self._key_exchange()
            self._message_loop()
        except SecurityError as e:
            logger.warning("security_failure", peer=str(self.conn), error=str(e))
        except (HandshakeError, FramingError) as e:
            logger.info("connection_dropped", peer=str(self.conn), phase=self.conn.phase.name, error=str(e))
        except (TimeoutError, OSError) as e:
            logger.info("connection_lost", peer=str(self.conn), phase=self.conn.phase.name, error=str(e))
        except Exception as e:
            logger.exception("client_error", peer=str(self.conn), error=str(e))
        finally:
            self.cleanup()

    def _setup(self) -> None:
        self.conn.sock.settimeout(self.config.socket_timeout_s)
        self.conn.phase = Phase.LOGGING_IN
        logger.info("connection_accepted", peer=self.conn.address)

    def _read(self) -> Optional[str]:
        return self.conn.read_line(self.config.max_line_bytes)

    def _reject(self, code: str) -> None:
        self.conn.send_plain(plain_response("error", code))
        logger.info("login_rejected", peer=self.conn.address, reason=code)

    def _login(self) -> Optional[str]:
        line = self._read()
        if line is None:
            raise HandshakeError("client disconnected during login")

        try:
            msg = parse_message(line, self.config.max_json_size)
        except ValueError:
            self._reject(ErrorCode.INVALID_LOGIN_REQUEST)
            return None

        msg_type = get_str(msg, "type")
        raw_username = get_str(msg, "username")
        if msg_type is None or raw_username is None:
            self._reject(ErrorCode.INVALID_LOGIN_REQUEST)
            return None

        if msg_type != "login":
            self._reject(ErrorCode.INVALID_REQUEST_TYPE)
            return None

        username = sanitize_username(raw_username)
        if not is_valid_username(username, self.config.min_username_length, self.config.max_username_length):
            self._reject(ErrorCode.INVALID_USERNAME)
            return None

        if not self.registry.register_user(username, self.conn):
            self._reject(ErrorCode.USERNAME_TAKEN)
            return None

        self.conn.username = username
        self.conn.send_plain(plain_response("success", "login_success"))
        logger.info("login_success", username=username, peer=self.conn.address)
        return username

    def _key_exchange(self) -> None:
        self.conn.phase = Phase.KEY_EXCHANGING
        private_key = generate_keypair()
        self.conn.send_line(encode_public_key(private_key.public_key()))

        line = self._read()
        if line is None:
            raise HandshakeError("client disconnected during key exchange")

        peer_key = decode_public_key(line)
        agreement = compute_agreement(private_key, peer_key)
        self.conn.session_key = derive_session_key(agreement, self.config.aes_key_size)
        self.conn.phase = Phase.SECURE
        logger.info("secure_channel", username=self.conn.username)

    def _message_loop(self) -> None:
        while True:
            line = self._read()
            if line is None:
                logger.info("client_disconnected", username=self.conn.username)
                return
            if not line.strip():
                continue
            self.dispatcher.handle_encrypted_message(self.conn, line)

    def cleanup(self) -> None:
        if self._cleaned_up:
            return
        self._cleaned_up = True
        self.conn.phase = Phase.CLOSING

        try:
            username = self.conn.username
            partner = None
            if username is not None:
                # a stale handler must not unbind a newer session under the same name
                with self.registry.lock:
                    if self.registry.remove_user(username, self.conn):
                        partner = self.bind_manager.unbind_user(username)
                if partner is not None:
                    self.router.notify_partner_disconnected(username, partner)
                logger.info("cleanup", username=username)
            self.conn.close()
        except Exception as e:
            logger.exception("cleanup_error", peer=str(self.conn), error=str(e))
        finally:
            if self.release is not None:
                self.release()
