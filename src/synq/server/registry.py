from __future__ import annotations
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import structlog

from .connection import Connection

logger = structlog.get_logger()


@dataclass
class KeyedEntry:
    user_a: str
    user_b: str
    hash: str
    created_at: float
    requester: str

    def names(self, username: str) -> bool:
        return self.user_a == username or self.user_b == username

    def is_expired(self, now: float, timeout_s: float) -> bool:
        return (now - self.created_at) > timeout_s


class Registry:
    """Process-wide directories shared by every connection.

    ``lock`` guards all four directories; the bind manager holds it across
    each check-then-act sequence.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.users: Dict[str, Connection] = {}
        self.waiting_keyless: Dict[str, str] = {}
        self.waiting_keyed: List[KeyedEntry] = []
        self.active_pairs: Dict[str, str] = {}
        self.lock = threading.RLock()
        self.clock = clock

    def now(self) -> float:
        return self.clock()

    def register_user(self, username: str, conn: Connection) -> bool:
        with self.lock:
            if username in self.users:
                return False
            self.users[username] = conn
            return True

    def remove_user(self, username: str, conn: Connection) -> bool:
        with self.lock:
            if self.users.get(username) is not conn:
                return False
            del self.users[username]
            return True

    def get_user(self, username: str) -> Optional[Connection]:
        with self.lock:
            return self.users.get(username)

    def is_online(self, username: str) -> bool:
        with self.lock:
            return username in self.users

    def pair(self, user_a: str, user_b: str) -> None:
        with self.lock:
            self.active_pairs[user_a] = user_b
            self.active_pairs[user_b] = user_a

    def unpair(self, username: str) -> Optional[str]:
        with self.lock:
            partner = self.active_pairs.pop(username, None)
            if partner is not None and self.active_pairs.get(partner) == username:
                del self.active_pairs[partner]
            return partner

    def get_partner(self, username: str) -> Optional[str]:
        with self.lock:
            return self.active_pairs.get(username)

    def user_count(self) -> int:
        with self.lock:
            return len(self.users)

    def bind_count(self) -> int:
        with self.lock:
            return len(self.active_pairs) // 2

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return {
                "users": len(self.users),
                "binds": len(self.active_pairs) // 2,
                "keyless_waiting": len(self.waiting_keyless),
                "keyed_waiting": len(self.waiting_keyed),
            }

    def shutdown(self) -> None:
        with self.lock:
            conns = list(self.users.values())
            self.users.clear()
            self.waiting_keyless.clear()
            self.waiting_keyed.clear()
            self.active_pairs.clear()

        for conn in conns:
            conn.close()
        logger.info("registry_shutdown", closed=len(conns))
