from __future__ import annotations


class ProtocolError(Exception):
    pass
