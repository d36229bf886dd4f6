from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from synq.protocol.phases import Phase

@dataclass
class ClientState:
    username: Optional[str] = None
    phase: Phase = Phase.CONNECTING
    session_key: Optional[bytes] = None
    partner: Optional[str] = None

    def cleanup(self):
        self.session_key = None
        self.partner = None
        self.phase = Phase.CLOSING
