from __future__ import annotations
import base64
import hashlib
import hmac
import secrets
from synq.protocol.constants import MAX_B64_LENGTH

def sha256(b: bytes) -> bytes:
    return hashlib.sha256(b).digest()

def safe_compare(a: str | bytes, b: str | bytes, expected_length: int | None = None) -> bool:
    if isinstance(a, str):
        a = a.encode("utf-8")
    if isinstance(b, str):
        b = b.encode("utf-8")
    if expected_length and (len(a) != expected_length or len(b) != expected_length):
        return False
    return hmac.compare_digest(a, b)

def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def b64d(s: str) -> bytes:
    if len(s) > MAX_B64_LENGTH:
        raise ValueError(f"Base64 too long: {len(s)} > {MAX_B64_LENGTH}")
    return base64.b64decode(s, validate=True)

def bind_hash(passphrase: str | None = None) -> str:
    """64-hex SHA-256 value usable as a keyed bind secret."""
    if passphrase is None:
        return secrets.token_hex(32)
    return hashlib.sha256(passphrase.encode("utf-8")).hexdigest()
