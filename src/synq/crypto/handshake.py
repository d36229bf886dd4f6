from __future__ import annotations
import functools
from synq.crypto.primitives import sha256, b64e, b64d
from synq.protocol.constants import DH_P, DH_G, AES_KEY_SIZE
from synq.protocol.errors import InvalidPublicValue

def require_crypto():
    try:
        from cryptography.hazmat.primitives.asymmetric import dh
        from cryptography.hazmat.primitives.serialization import (
            Encoding, PublicFormat, load_der_public_key,
        )
        return dh, Encoding, PublicFormat, load_der_public_key
    except ImportError as e:
        raise RuntimeError("Missing dependency 'cryptography'") from e

@functools.lru_cache(maxsize=1)
def group_parameters():
    dh, _, _, _ = require_crypto()
    return dh.DHParameterNumbers(DH_P, DH_G).parameters()

def generate_keypair():
    """Fresh ephemeral private key over MODP group 14; its public half is ``.public_key()``."""
    return group_parameters().generate_private_key()

def encode_public_key(public_key) -> str:
    _, Encoding, PublicFormat, _ = require_crypto()
    der = public_key.public_bytes(Encoding.DER, PublicFormat.SubjectPublicKeyInfo)
    return b64e(der)

def validate_peer_public_value(y: int, p: int = DH_P) -> None:
    if not (1 < y < p - 1):
        raise InvalidPublicValue("DH public value out of range")

def decode_public_key(text: str):
    dh, _, _, load_der_public_key = require_crypto()
    try:
        key = load_der_public_key(b64d(text.strip()))
    except Exception as e:
        raise InvalidPublicValue("malformed DH public key") from e

    if not isinstance(key, dh.DHPublicKey):
        raise InvalidPublicValue("not a DH public key")

    numbers = key.public_numbers()
    params = numbers.parameter_numbers
    if params.p != DH_P or params.g != DH_G:
        raise InvalidPublicValue("unexpected DH group")

    validate_peer_public_value(numbers.y)
    return key

def compute_agreement(private_key, peer_public_key) -> bytes:
    try:
        return private_key.exchange(peer_public_key)
    except ValueError as e:
        raise InvalidPublicValue("DH agreement failed") from e

def derive_session_key(agreement: bytes, key_size: int = AES_KEY_SIZE) -> bytes:
    return sha256(agreement)[:key_size // 8]
