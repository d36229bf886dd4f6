from __future__ import annotations
import socket
import threading
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, Optional

import structlog

from synq.crypto.secure import encrypt
from synq.protocol.errors import FramingError
from synq.protocol.phases import Phase
from synq.protocol.validation import serialize_message

logger = structlog.get_logger()


@dataclass(eq=False)
class Connection:
    sock: socket.socket
    address: str = "unknown"
    username: Optional[str] = None
    session_key: Optional[bytes] = None
    phase: Phase = Phase.CONNECTING
    decrypt_failures: int = 0

    reader: BinaryIO = field(init=False, repr=False)
    _write_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _closed: bool = field(default=False, repr=False)

    def __post_init__(self):
        self.reader = self.sock.makefile("rb")

    @property
    def is_secure(self) -> bool:
        return self.session_key is not None

    @property
    def is_authenticated(self) -> bool:
        return self.username is not None

    def read_line(self, max_bytes: int) -> Optional[str]:
        """Next line without its terminator, or None on EOF."""
        raw = self.reader.readline(max_bytes + 1)
        if not raw:
            return None
        if len(raw) > max_bytes:
            raise FramingError(f"line exceeds {max_bytes} bytes")
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    def send_line(self, text: str) -> None:
        data = (text + "\n").encode("utf-8")
        with self._write_lock:
            self.sock.sendall(data)

    def send_plain(self, msg: Dict[str, Any]) -> None:
        self.send_line(serialize_message(msg))

    def send_secure(self, msg: Dict[str, Any]) -> None:
        key = self.session_key
        if key is None:
            raise RuntimeError("Cannot send encrypted - no session key")
        self.send_line(encrypt(key, serialize_message(msg)))

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # peer already gone
            pass
        for closer in (self.reader.close, self.sock.close):
            try:
                closer()
            except OSError as e:
                logger.warning("connection_close_error", peer=str(self), error=str(e))

    def __str__(self) -> str:
        return self.username if self.username else self.address
