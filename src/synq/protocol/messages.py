"""Wire shapes of every message the server emits."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Union


def plain_response(msg_type: str, message: str) -> Dict[str, str]:
    return {"type": msg_type, "message": message}


def error(code: str) -> Dict[str, str]:
    return {"type": "error", "error": code}


def info(message: str) -> Dict[str, str]:
    return {"type": "info", "message": message}


def bind_success(partner: str) -> Dict[str, str]:
    return {"type": "bind_success", "partner": partner}


def chat(sender: str, text: str) -> Dict[str, str]:
    return {"type": "message", "from": sender, "text": text}


def partner_disconnected() -> Dict[str, str]:
    return {"type": "partner_disconnected"}


@dataclass(frozen=True)
class BindSuccess:
    partner: str

    def to_message(self) -> Dict[str, str]:
        return bind_success(self.partner)


@dataclass(frozen=True)
class BindWaiting:
    def to_message(self) -> Dict[str, str]:
        return info("waiting_for_partner")


@dataclass(frozen=True)
class BindError:
    code: str

    def to_message(self) -> Dict[str, str]:
        return error(self.code)


BindResult = Union[BindSuccess, BindWaiting, BindError]
