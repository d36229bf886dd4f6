from __future__ import annotations
from typing import Any, Dict

import structlog

from synq.crypto.secure import decrypt
from synq.protocol.constants import MAX_DECRYPT_FAILURES, MAX_JSON_SIZE, BIND_MODES
from synq.protocol.errors import DecryptionError, ErrorCode, SecurityError
from synq.protocol.messages import BindSuccess, bind_success, error
from synq.protocol.validation import get_str, parse_message, sanitize_username

from .bind import BindManager
from .connection import Connection
from .router import MessageRouter

logger = structlog.get_logger()


class MessageDispatcher:
    def __init__(self, bind_manager: BindManager, router: MessageRouter,
                 max_json_size: int = MAX_JSON_SIZE,
                 max_decrypt_failures: int = MAX_DECRYPT_FAILURES):
        self.bind_manager = bind_manager
        self.router = router
        self.max_json_size = max_json_size
        self.max_decrypt_failures = max_decrypt_failures

    def handle_encrypted_message(self, conn: Connection, line: str) -> None:
        try:
            plaintext = decrypt(conn.session_key, line)
        except DecryptionError as e:
            conn.decrypt_failures += 1
            logger.warning("decryption_failed", username=conn.username, error=str(e),
                           failures=conn.decrypt_failures)
            self._send(conn, error(ErrorCode.PROCESSING_ERROR))
            if conn.decrypt_failures >= self.max_decrypt_failures:
                raise SecurityError(f"Too many decrypt failures ({conn.decrypt_failures})") from e
            return
        conn.decrypt_failures = 0

        try:
            message = parse_message(plaintext, self.max_json_size)
        except ValueError as e:
            logger.warning("invalid_json", username=conn.username, error=str(e))
            self._send(conn, error(ErrorCode.INVALID_JSON))
            return

        msg_type = get_str(message, "type")
        if msg_type is None:
            self._send(conn, error(ErrorCode.MISSING_TYPE))
            return

        try:
            if msg_type == "bind_request":
                self._handle_bind_request(conn, message)
            elif msg_type == "message":
                self._handle_chat_message(conn, message)
            else:
                self._send(conn, error(ErrorCode.UNKNOWN_MESSAGE_TYPE))
        except Exception as e:
            logger.exception("processing_error", username=conn.username, error=str(e))
            self._send(conn, error(ErrorCode.PROCESSING_ERROR))

    def _handle_bind_request(self, conn: Connection, message: Dict[str, Any]) -> None:
        mode = get_str(message, "mode")
        target = sanitize_username(get_str(message, "target"))
        if mode is None or target is None:
            self._send(conn, error(ErrorCode.INVALID_BIND_REQUEST))
            return

        if mode not in BIND_MODES:
            self._send(conn, error(ErrorCode.INVALID_BIND_MODE))
            return

        if mode == "keyless":
            result = self.bind_manager.handle_keyless_bind(conn.username, target)
        else:
            hash_hex = get_str(message, "hash")
            if hash_hex is None:
                self._send(conn, error(ErrorCode.MISSING_HASH))
                return
            result = self.bind_manager.handle_keyed_bind(conn.username, target, hash_hex)

        self._send(conn, result.to_message())

        if isinstance(result, BindSuccess):
            self.router.send_to_user(result.partner, bind_success(conn.username))

    def _handle_chat_message(self, conn: Connection, message: Dict[str, Any]) -> None:
        if "text" not in message or message["text"] is None:
            self._send(conn, error(ErrorCode.MISSING_TEXT))
            return

        text = message["text"]
        err = self.router.route_message(conn.username, text if isinstance(text, str) else None)
        if err:
            self._send(conn, error(err))

    def _send(self, conn: Connection, message: Dict[str, Any]) -> None:
        try:
            conn.send_secure(message)
        except OSError as e:
            logger.warning("send_failed", username=conn.username, error=str(e))
