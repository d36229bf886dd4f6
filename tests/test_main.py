from __future__ import annotations
import sys

import structlog

from synq import main as cli
from synq.protocol.validation import is_valid_hash
from synq.util.deps import check_dependencies


def test_dependencies_present():
    assert check_dependencies() == (True, [])


def test_security_self_check_passes(monkeypatch):
    monkeypatch.setattr(cli, "logger", structlog.get_logger())
    assert cli.security_self_check() is True


def test_gen_key_prints_bind_hash(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["synq", "gen-key", "open sesame"])
    cli.main()
    first = capsys.readouterr().out.strip()
    assert is_valid_hash(first)

    cli.main()
    assert capsys.readouterr().out.strip() == first


def test_gen_key_without_passphrase_is_random(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["synq", "gen-key"])
    cli.main()
    cli.main()
    a, b = capsys.readouterr().out.split()
    assert is_valid_hash(a) and a != b
