from __future__ import annotations
import secrets
from synq.crypto.primitives import b64e, b64d
from synq.protocol.constants import GCM_IV_LENGTH, GCM_TAG_LENGTH
from synq.protocol.errors import DecryptionError

def require_aead():
    try:
        from cryptography.hazmat.primitives.ciphers.aead import AESGCM
        from cryptography.exceptions import InvalidTag
        return AESGCM, InvalidTag
    except ImportError as e:
        raise RuntimeError("Missing dependency 'cryptography'") from e

def encrypt(key: bytes, plaintext: str) -> str:
    """Base64(nonce || ciphertext || tag); a new random nonce on every call."""
    AESGCM, _ = require_aead()
    nonce = secrets.token_bytes(GCM_IV_LENGTH)
    ct = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    return b64e(nonce + ct)

def decrypt(key: bytes, blob: str) -> str:
    AESGCM, InvalidTag = require_aead()
    try:
        data = b64d(blob.strip())
    except ValueError as e:
        raise DecryptionError("malformed blob") from e

    if len(data) < GCM_IV_LENGTH + GCM_TAG_LENGTH:
        raise DecryptionError("blob too short")

    nonce, ct = data[:GCM_IV_LENGTH], data[GCM_IV_LENGTH:]
    try:
        pt = AESGCM(key).decrypt(nonce, ct, None)
    except InvalidTag as e:
        raise DecryptionError("authentication failed") from e

    try:
        return pt.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("plaintext is not utf-8") from e
