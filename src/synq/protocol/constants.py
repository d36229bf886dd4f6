from __future__ import annotations

PROTO_NAME = "SYNQ"
PROTO_VER = "1.0"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 12345
MAX_CLIENTS = 10

# RFC 3526, 2048-bit MODP Group 14
DH_P = int(
    "FFFFFFFFFFFFFFFFC90FDAA22168C234C4C6628B80DC1CD1"
    "29024E088A67CC74020BBEA63B139B22514A08798E3404DD"
    "EF9519B3CD3A431B302B0A6DF25F14374FE1356D6D51C245"
    "E485B576625E7EC6F44C42E9A637ED6B0BFF5CB6F406B7ED"
    "EE386BFB5A899FA5AE9F24117C4B1FE649286651ECE45B3D"
    "C2007CB8A163BF0598DA48361C55D39A69163FA8FD24CF5F"
    "83655D23DCA3AD961C62F356208552BB9ED529077096966D"
    "670C354E4ABC9804F1746C08CA18217C32905E462E36CE3B"
    "E39E772C180E86039B2783A2EC07A28FB5C55DF06F4C52C9"
    "DE2BCBF6955817183995497CEA956AE515D2261898FA0510"
    "15728E5A8AACAA68FFFFFFFFFFFFFFFF",
    16,
)
DH_G = 2
DH_KEY_SIZE = 2048

AES_KEY_SIZE = 128
GCM_IV_LENGTH = 12
GCM_TAG_LENGTH = 16

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 20
MAX_MESSAGE_LENGTH = 5000
MAX_JSON_SIZE = 10000
MAX_JSON_DEPTH = 10
MAX_JSON_KEYS = 100
MAX_LINE_BYTES = 64 * 1024
MAX_B64_LENGTH = 64 * 1024

SOCKET_TIMEOUT_S = 30.0
BIND_TIMEOUT_S = 60.0
BIND_SWEEP_S = 30.0
MAX_DECRYPT_FAILURES = 10

BIND_MODES = {"keyless", "keyed"}
