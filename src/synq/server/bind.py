"""Pairing of logged-in users.

Two rules produce a bind. Keyless: both users name each other. Keyed: both
users submit the same 64-hex secret hash for the same pair; the pair is
stored in canonical (sorted) order so either side finds the other's entry
with one scan. Every public operation runs under ``Registry.lock``.
"""
from __future__ import annotations
from typing import Optional

import structlog

from synq.crypto.primitives import safe_compare
from synq.protocol.constants import BIND_TIMEOUT_S, BIND_SWEEP_S
from synq.protocol.errors import ErrorCode
from synq.protocol.messages import BindError, BindResult, BindSuccess, BindWaiting
from synq.protocol.validation import is_valid_hash

from .registry import KeyedEntry, Registry

logger = structlog.get_logger()


class BindManager:
    def __init__(self, registry: Registry, bind_timeout_s: float = BIND_TIMEOUT_S,
                 sweep_interval_s: float = BIND_SWEEP_S):
        self.registry = registry
        self.bind_timeout_s = bind_timeout_s
        self.sweep_interval_s = sweep_interval_s
        self.last_sweep = registry.now()

    def _precheck(self, requester: str, target: str) -> Optional[BindError]:
        if target not in self.registry.users:
            return BindError(ErrorCode.TARGET_OFFLINE)
        if requester == target:
            return BindError(ErrorCode.CANNOT_BIND_SELF)
        if requester in self.registry.active_pairs:
            return BindError(ErrorCode.ALREADY_BOUND)
        return None

    def handle_keyless_bind(self, requester: str, target: str) -> BindResult:
        reg = self.registry
        with reg.lock:
            err = self._precheck(requester, target)
            if err:
                return err

            reg.waiting_keyless[requester] = target

            if reg.waiting_keyless.get(target) == requester and target not in reg.active_pairs:
                self._complete_bind(requester, target)
                return BindSuccess(partner=target)

        logger.info("bind_waiting", mode="keyless", requester=requester, target=target)
        return BindWaiting()

    def handle_keyed_bind(self, requester: str, target: str, hash_hex: str) -> BindResult:
        if not is_valid_hash(hash_hex):
            return BindError(ErrorCode.INVALID_HASH)
        hash_hex = hash_hex.lower()

        reg = self.registry
        with reg.lock:
            err = self._precheck(requester, target)
            if err:
                return err

            user_a, user_b = sorted((requester, target))
            now = reg.now()

            for entry in reg.waiting_keyed:
                if entry.user_a != user_a or entry.user_b != user_b:
                    continue
                if entry.requester == requester:
                    continue
                if entry.is_expired(now, self.bind_timeout_s):
                    continue
                if not safe_compare(entry.hash, hash_hex):
                    continue
                if target in reg.active_pairs:
                    continue
                reg.waiting_keyed.remove(entry)
                self._complete_bind(user_a, user_b)
                return BindSuccess(partner=user_b if requester == user_a else user_a)

            reg.waiting_keyed[:] = [
                e for e in reg.waiting_keyed
                if not (e.requester == requester and e.user_a == user_a and e.user_b == user_b)
            ]
            reg.waiting_keyed.append(KeyedEntry(user_a, user_b, hash_hex, now, requester))

        logger.info("bind_waiting", mode="keyed", requester=requester, target=target)
        return BindWaiting()

    def _complete_bind(self, user_a: str, user_b: str) -> None:
        reg = self.registry
        reg.pair(user_a, user_b)
        reg.waiting_keyless.pop(user_a, None)
        reg.waiting_keyless.pop(user_b, None)
        reg.waiting_keyed[:] = [e for e in reg.waiting_keyed if not (e.names(user_a) or e.names(user_b))]
        logger.info("bind_complete", user_a=user_a, user_b=user_b)

    def unbind_user(self, username: str) -> Optional[str]:
        reg = self.registry
        with reg.lock:
            reg.waiting_keyless.pop(username, None)
            reg.waiting_keyed[:] = [e for e in reg.waiting_keyed if not e.names(username)]
            partner = reg.unpair(username)

        if partner is not None:
            logger.info("unbind", username=username, partner=partner)
        return partner

    def get_partner(self, username: str) -> Optional[str]:
        return self.registry.get_partner(username)

    def is_bound(self, username: str) -> bool:
        return self.registry.get_partner(username) is not None

    def sweep_expired(self, force: bool = False) -> int:
        reg = self.registry
        now = reg.now()
        if not force and now - self.last_sweep < self.sweep_interval_s:
            return 0

        with reg.lock:
            before = len(reg.waiting_keyed)
            reg.waiting_keyed[:] = [e for e in reg.waiting_keyed if not e.is_expired(now, self.bind_timeout_s)]
            removed = before - len(reg.waiting_keyed)
            self.last_sweep = now

        if removed:
            logger.info("keyed_entries_expired", count=removed)
        return removed
