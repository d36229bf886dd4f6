from __future__ import annotations
import json
import re
from typing import Any, Dict, Optional
from .constants import (
    MAX_JSON_SIZE, MAX_JSON_DEPTH, MAX_JSON_KEYS,
    MIN_USERNAME_LENGTH, MAX_USERNAME_LENGTH, MAX_MESSAGE_LENGTH,
)

USERNAME_RE = re.compile(r"[A-Za-z0-9_]+")
HASH_RE = re.compile(r"[A-Fa-f0-9]{64}")


def parse_message(s: str, max_size: int = MAX_JSON_SIZE) -> Dict[str, Any]:
    """Parse one structured message; raises ValueError on anything but a bounded JSON object."""
    if len(s) > max_size:
        raise ValueError("Message too large")

    def object_hook(obj):
        if len(obj) > MAX_JSON_KEYS:
            raise ValueError("Too many JSON keys")
        return obj

    try:
        parsed = json.loads(s, object_hook=object_hook)
    except RecursionError:
        raise ValueError("JSON nesting too deep") from None

    def check_depth(obj, depth=0):
        if depth > MAX_JSON_DEPTH:
            raise ValueError("JSON nesting too deep")
        if isinstance(obj, dict):
            for v in obj.values():
                check_depth(v, depth + 1)
        elif isinstance(obj, list):
            for v in obj:
                check_depth(v, depth + 1)

    check_depth(parsed)
    if not isinstance(parsed, dict):
        raise ValueError("Message must be a JSON object")
    return parsed


def serialize_message(o: Dict[str, Any]) -> str:
    return json.dumps(o, ensure_ascii=False, separators=(",", ":"), sort_keys=True)


def get_str(msg: Dict[str, Any], field: str) -> Optional[str]:
    value = msg.get(field)
    return value if isinstance(value, str) else None


def sanitize_username(username: Optional[str]) -> Optional[str]:
    if username is None:
        return None
    return username.strip()


def is_valid_username(username: Optional[str],
                      min_len: int = MIN_USERNAME_LENGTH,
                      max_len: int = MAX_USERNAME_LENGTH) -> bool:
    if not username:
        return False
    if not (min_len <= len(username) <= max_len):
        return False
    return USERNAME_RE.fullmatch(username) is not None


def is_valid_message(text: Optional[str], max_len: int = MAX_MESSAGE_LENGTH) -> bool:
    return bool(text) and len(text) <= max_len


def is_valid_hash(value: Optional[str]) -> bool:
    return value is not None and HASH_RE.fullmatch(value) is not None
