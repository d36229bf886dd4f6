# Synq: DH-secured rendezvous and relay server
# Users log in by name, negotiate an AES-GCM session key, pair up (keyless or
# keyed), and exchange messages through the server.

from __future__ import annotations

import argparse
import signal
import sys
import threading

from synq.protocol.constants import (
    DEFAULT_HOST, DEFAULT_PORT, MAX_CLIENTS, SOCKET_TIMEOUT_S, BIND_TIMEOUT_S,
)
from synq.util.deps import check_dependencies

logger = None  # structlog logger, set in main()


# =============================
# Security Self-Check
# =============================

def security_self_check():
    from synq.crypto.handshake import (
        generate_keypair, group_parameters, validate_peer_public_value,
        compute_agreement, derive_session_key,
    )
    from synq.crypto.primitives import b64d
    from synq.crypto.secure import encrypt, decrypt
    from synq.protocol.constants import DH_P, DH_G
    from synq.protocol.errors import InvalidPublicValue, DecryptionError

    checks = []

    checks.append(("Python >= 3.9", sys.version_info >= (3, 9)))

    try:
        numbers = group_parameters().parameter_numbers()
        checks.append(("DH group 14", numbers.p == DH_P and numbers.g == DH_G and DH_P.bit_length() == 2048))
    except Exception:
        checks.append(("DH group 14", False))

    try:
        a, b = generate_keypair(), generate_keypair()
        ka = derive_session_key(compute_agreement(a, b.public_key()))
        kb = derive_session_key(compute_agreement(b, a.public_key()))
        checks.append(("DH agreement", ka == kb and len(ka) == 16))
    except Exception:
        checks.append(("DH agreement", False))
        ka = bytes(16)

    rejected = 0
    for y in (0, 1, DH_P - 1, DH_P):
        try:
            validate_peer_public_value(y)
        except InvalidPublicValue:
            rejected += 1
    checks.append(("DH public value bounds", rejected == 4))

    try:
        c1, c2 = encrypt(ka, "self-check"), encrypt(ka, "self-check")
        checks.append(("AEAD round trip", decrypt(ka, c1) == "self-check"))
        checks.append(("AEAD nonce freshness", c1 != c2))
    except Exception:
        checks.append(("AEAD round trip", False))

    try:
        decrypt(bytes(16), encrypt(ka, "x"))
        checks.append(("AEAD wrong key rejected", False))
    except DecryptionError:
        checks.append(("AEAD wrong key rejected", True))

    try:
        b64d("invalid!@#$")
        checks.append(("Base64 strict decode (invalid)", False))
    except ValueError:
        checks.append(("Base64 strict decode (invalid)", True))

    all_ok = all(ok for _, ok in checks)
    for name, ok in checks:
        (logger.info if ok else logger.error)("security_check", check=name, status=("OK" if ok else "FAILED"))

    if not all_ok:
        raise RuntimeError("Security self-check failed")
    logger.info("security_self_check_passed")
    return True


# =============================
# Commands
# =============================

def run_server(args):
    from synq.config import ServerConfig
    from synq.server.listener import RelayServer

    config = ServerConfig(
        host=args.host,
        port=args.port,
        max_clients=args.max_clients,
        socket_timeout_s=args.socket_timeout,
        bind_timeout_s=args.bind_timeout,
        status_port=args.status_port,
    )
    server = RelayServer(config)
    server.start()

    if config.status_port is not None:
        from synq.server.status import run_status_server
        run_status_server(server, args.status_host, config.status_port)

    def _shutdown(signum, frame):
        logger.info("server_shutdown", signal=signum)
        server.close()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _shutdown)

    try:
        server.serve_forever()
    finally:
        server.close()


def run_client(args):
    from synq.client.errors import ProtocolError
    from synq.client.linkclient import LinkClient

    client = LinkClient(args.host, args.port, timeout=None, logger=logger)
    try:
        client.open(args.username)
    except (ProtocolError, OSError) as e:
        print(f"Connection failed: {e}")
        client.close()
        return 1

    print(f"Logged in as {args.username}. Commands: /bind <user>, /bindkey <user> <passphrase>, /quit")

    def _recv_loop():
        while True:
            try:
                msg = client.recv()
            except Exception as e:
                logger.info("recv_loop_stopped", error=str(e))
                return
            kind = msg.get("type")
            if kind == "message":
                print(f"[{msg.get('from')}] {msg.get('text')}")
            elif kind == "bind_success":
                print(f"* bound to {msg.get('partner')}")
            elif kind == "partner_disconnected":
                print("* partner disconnected")
            elif kind == "info":
                print(f"* {msg.get('message')}")
            else:
                print(f"! {msg.get('error', msg)}")

    threading.Thread(target=_recv_loop, daemon=True).start()

    try:
        for line in sys.stdin:
            line = line.rstrip("\n")
            if not line:
                continue
            if line == "/quit":
                break
            parts = line.split(" ", 2)
            if parts[0] == "/bind" and len(parts) >= 2:
                client.bind_keyless(parts[1])
            elif parts[0] == "/bindkey" and len(parts) == 3:
                client.bind_passphrase(parts[1], parts[2])
            else:
                client.say(line)
    except KeyboardInterrupt:
        logger.info("client_shutdown", reason="keyboard_interrupt")
    except (ProtocolError, OSError) as e:
        logger.error("client_error", error=str(e))
        print(f"Connection error: {e}")
    finally:
        client.close()
    return 0


# =============================
# Main Entry Point
# =============================

def main():
    ok, missing = check_dependencies()
    if not ok:
        print("ERROR: Missing dependencies:")
        for dep in missing:
            print(f"  - {dep}")
        print(f"\nInstall with:\npip install {' '.join(missing)}")
        sys.exit(1)

    global logger
    import structlog
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    )
    logger = structlog.get_logger()

    parser = argparse.ArgumentParser(description="Synq secure rendezvous/relay server")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the relay server")
    serve_parser.add_argument("--host", default=DEFAULT_HOST)
    serve_parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve_parser.add_argument("--max-clients", type=int, default=MAX_CLIENTS)
    serve_parser.add_argument("--socket-timeout", type=float, default=SOCKET_TIMEOUT_S)
    serve_parser.add_argument("--bind-timeout", type=float, default=BIND_TIMEOUT_S)
    serve_parser.add_argument("--status-host", default="127.0.0.1")
    serve_parser.add_argument("--status-port", type=int, default=None, help="Serve GET /status on this port")

    client_parser = subparsers.add_parser("client", help="Run an interactive client")
    client_parser.add_argument("--host", default="127.0.0.1")
    client_parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    client_parser.add_argument("--username", required=True)

    key_parser = subparsers.add_parser("gen-key", help="Print a 64-hex keyed bind hash")
    key_parser.add_argument("passphrase", nargs="?", default=None)

    subparsers.add_parser("check", help="Run security self-check")

    args = parser.parse_args()

    if args.command == "check":
        security_self_check()
        print("✓ Security self-check passed")
        return

    if args.command == "gen-key":
        from synq.crypto.primitives import bind_hash
        print(bind_hash(args.passphrase))
        return

    if args.command == "serve":
        security_self_check()
        run_server(args)
        return

    if args.command == "client":
        sys.exit(run_client(args))

if __name__ == "__main__":
    main()
