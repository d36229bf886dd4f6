from __future__ import annotations
from typing import Any, Dict, Optional

import structlog

from synq.protocol.constants import MAX_MESSAGE_LENGTH
from synq.protocol.errors import ErrorCode
from synq.protocol.messages import chat, partner_disconnected
from synq.protocol.validation import is_valid_message

from .registry import Registry

logger = structlog.get_logger()


class MessageRouter:
    def __init__(self, registry: Registry, max_message_length: int = MAX_MESSAGE_LENGTH):
        self.registry = registry
        self.max_message_length = max_message_length

    def route_message(self, sender: str, text: Optional[str]) -> Optional[str]:
        """Relay ``text`` to the sender's partner; returns an error code or None."""
        if not is_valid_message(text, self.max_message_length):
            return ErrorCode.INVALID_MESSAGE

        with self.registry.lock:
            partner = self.registry.active_pairs.get(sender)
            partner_conn = self.registry.users.get(partner) if partner else None

        if partner is None:
            return ErrorCode.NOT_BOUND
        if partner_conn is None or not partner_conn.is_secure:
            return ErrorCode.PARTNER_OFFLINE

        try:
            partner_conn.send_secure(chat(sender, text))
        except (OSError, RuntimeError) as e:
            logger.warning("relay_failed", sender=sender, partner=partner, error=str(e))
            return ErrorCode.RELAY_FAILED
        return None

    def send_to_user(self, username: str, message: Dict[str, Any]) -> bool:
        conn = self.registry.get_user(username)
        if conn is None or not conn.is_secure:
            return False
        try:
            conn.send_secure(message)
            return True
        except (OSError, RuntimeError) as e:
            logger.warning("send_failed", username=username, error=str(e))
            return False

    def notify_partner_disconnected(self, disconnected_user: str, partner: str) -> bool:
        sent = self.send_to_user(partner, partner_disconnected())
        if sent:
            logger.info("partner_notified", username=partner, disconnected=disconnected_user)
        return sent
