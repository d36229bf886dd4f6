from __future__ import annotations
import base64

import pytest

from synq.crypto import handshake
from synq.crypto.secure import encrypt, decrypt
from synq.protocol.constants import DH_P, GCM_IV_LENGTH
from synq.protocol.errors import DecryptionError, InvalidPublicValue


def test_dh_agreement_yields_same_128_bit_key_on_both_sides():
    server, client = handshake.generate_keypair(), handshake.generate_keypair()
    k1 = handshake.derive_session_key(handshake.compute_agreement(server, client.public_key()))
    k2 = handshake.derive_session_key(handshake.compute_agreement(client, server.public_key()))
    assert k1 == k2
    assert len(k1) == 16


def test_keypairs_are_fresh_per_call():
    a, b = handshake.generate_keypair(), handshake.generate_keypair()
    assert a.public_key().public_numbers().y != b.public_key().public_numbers().y


def test_public_key_encoding_round_trips_through_validation():
    priv = handshake.generate_keypair()
    decoded = handshake.decode_public_key(handshake.encode_public_key(priv.public_key()))
    assert decoded.public_numbers().y == priv.public_key().public_numbers().y


@pytest.mark.parametrize("y", [0, 1, DH_P - 1, DH_P, DH_P + 5, -3])
def test_out_of_range_public_values_rejected(y):
    with pytest.raises(InvalidPublicValue):
        handshake.validate_peer_public_value(y)


@pytest.mark.parametrize("y", [2, DH_P - 2, 2 ** 1000])
def test_in_range_public_values_accepted(y):
    handshake.validate_peer_public_value(y)


@pytest.mark.parametrize("text", ["", "not base64!!", base64.b64encode(b"garbage").decode()])
def test_malformed_public_key_rejected(text):
    with pytest.raises(InvalidPublicValue):
        handshake.decode_public_key(text)


def test_session_key_derivation_is_deterministic():
    assert handshake.derive_session_key(b"\x01" * 256) == handshake.derive_session_key(b"\x01" * 256)
    assert handshake.derive_session_key(b"\x01" * 256) != handshake.derive_session_key(b"\x02" * 256)


def test_encrypt_is_non_deterministic(session_key):
    assert encrypt(session_key, "hello") != encrypt(session_key, "hello")


@pytest.mark.parametrize("text", ["", "hi", "ünïcødé ✓", "x" * 5000, '{"type":"message"}'])
def test_decrypt_recovers_plaintext(session_key, text):
    assert decrypt(session_key, encrypt(session_key, text)) == text


def test_blob_layout_is_nonce_then_ciphertext_and_tag(session_key):
    raw = base64.b64decode(encrypt(session_key, "abc"))
    assert len(raw) == GCM_IV_LENGTH + 3 + 16


def test_wrong_key_fails(session_key):
    blob = encrypt(session_key, "secret")
    with pytest.raises(DecryptionError):
        decrypt(bytes(16), blob)


def test_tampered_blob_fails(session_key):
    raw = bytearray(base64.b64decode(encrypt(session_key, "secret")))
    raw[-1] ^= 0x01
    with pytest.raises(DecryptionError):
        decrypt(session_key, base64.b64encode(bytes(raw)).decode())


@pytest.mark.parametrize("blob", ["", "%%%", base64.b64encode(b"short").decode()])
def test_malformed_blob_fails(session_key, blob):
    with pytest.raises(DecryptionError):
        decrypt(session_key, blob)
