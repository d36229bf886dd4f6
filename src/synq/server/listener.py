from __future__ import annotations
import socket
import threading
from typing import Optional, Set, Tuple

import structlog

from synq.config import ServerConfig

from .bind import BindManager
from .connection import Connection
from .dispatch import MessageDispatcher
from .handler import ConnectionHandler
from .registry import Registry
from .router import MessageRouter

logger = structlog.get_logger()

ACCEPT_POLL_S = 0.5


class RelayServer:
    def __init__(self, config: ServerConfig, registry: Optional[Registry] = None):
        self.config = config
        self.registry = registry if registry is not None else Registry()
        self.bind_manager = BindManager(self.registry, config.bind_timeout_s, config.bind_sweep_s)
        self.router = MessageRouter(self.registry, config.max_message_length)
        self.dispatcher = MessageDispatcher(
            self.bind_manager, self.router,
            max_json_size=config.max_json_size,
            max_decrypt_failures=config.max_decrypt_failures,
        )

        self._slots = threading.BoundedSemaphore(config.max_clients)
        self._slots_used = 0
        self._lock = threading.Lock()
        self._open: Set[Connection] = set()
        self._sock: Optional[socket.socket] = None
        self._stop = threading.Event()
        self.address: Optional[Tuple[str, int]] = None

    @property
    def slots_used(self) -> int:
        with self._lock:
            return self._slots_used

    def status(self) -> dict:
        stats = self.registry.stats()
        stats.update({"slots_used": self.slots_used, "max_clients": self.config.max_clients})
        return stats

    def start(self) -> Tuple[str, int]:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.config.host, self.config.port))
        sock.listen()
        sock.settimeout(ACCEPT_POLL_S)
        self._sock = sock
        self.address = sock.getsockname()[:2]
        logger.info("server_started", host=self.address[0], port=self.address[1],
                    max_clients=self.config.max_clients)
        return self.address

    def serve_forever(self) -> None:
        if self._sock is None:
            self.start()
        while not self._stop.is_set():
            self.bind_manager.sweep_expired()
            try:
                client_sock, addr = self._sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop.is_set():
                    break
                logger.error("accept_error", error=str(e))
                continue
            self._admit(client_sock, addr)

    def serve_in_background(self) -> threading.Thread:
        if self._sock is None:
            self.start()
        t = threading.Thread(target=self.serve_forever, name="synq-listener", daemon=True)
        t.start()
        return t

    def _admit(self, client_sock: socket.socket, addr) -> None:
        peer = f"{addr[0]}:{addr[1]}"
        if not self._slots.acquire(blocking=False):
            logger.warning("connection_rejected", reason="server_full", peer=peer)
            try:
                client_sock.close()
            except OSError:
                pass
            return

        try:
            conn = Connection(client_sock, address=peer)
        except OSError as e:
            logger.error("connection_setup_failed", peer=peer, error=str(e))
            client_sock.close()
            self._slots.release()
            return

        with self._lock:
            self._slots_used += 1
            self._open.add(conn)
            used = self._slots_used
        logger.info("connection_admitted", peer=peer, slots=f"{used}/{self.config.max_clients}")

        handler = ConnectionHandler(
            conn, self.config, self.registry, self.bind_manager, self.router,
            self.dispatcher, release=lambda: self._release(conn),
        )
        threading.Thread(target=handler.run, name=f"synq-conn-{peer}", daemon=True).start()

    def _release(self, conn: Connection) -> None:
        with self._lock:
            self._open.discard(conn)
            self._slots_used -= 1
        self._slots.release()

    def close(self) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        if self._sock is not None:
            self._sock.close()

        with self._lock:
            conns = list(self._open)
        for conn in conns:
            conn.close()
        self.registry.shutdown()
        logger.info("server_stopped")
