from __future__ import annotations
from enum import Enum, auto


class Phase(Enum):
    CONNECTING = auto()
    LOGGING_IN = auto()
    KEY_EXCHANGING = auto()
    SECURE = auto()
    CLOSING = auto()
