from __future__ import annotations
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from synq.protocol.constants import (
    DEFAULT_HOST, DEFAULT_PORT, MAX_CLIENTS, DH_KEY_SIZE, AES_KEY_SIZE,
    MIN_USERNAME_LENGTH, MAX_USERNAME_LENGTH, MAX_MESSAGE_LENGTH, MAX_JSON_SIZE,
    MAX_LINE_BYTES, SOCKET_TIMEOUT_S, BIND_TIMEOUT_S, BIND_SWEEP_S, MAX_DECRYPT_FAILURES,
)


class ServerConfig(BaseModel):
    """Read once at startup and handed to every server component."""

    model_config = ConfigDict(frozen=True)

    host: str = DEFAULT_HOST
    port: int = Field(DEFAULT_PORT, ge=0, le=65535)
    max_clients: int = Field(MAX_CLIENTS, gt=0)

    dh_key_size: int = DH_KEY_SIZE
    aes_key_size: int = AES_KEY_SIZE

    min_username_length: int = Field(MIN_USERNAME_LENGTH, gt=0)
    max_username_length: int = Field(MAX_USERNAME_LENGTH, gt=0)
    max_message_length: int = Field(MAX_MESSAGE_LENGTH, gt=0)
    max_json_size: int = Field(MAX_JSON_SIZE, gt=0)
    max_line_bytes: int = Field(MAX_LINE_BYTES, gt=0)

    socket_timeout_s: Optional[float] = Field(SOCKET_TIMEOUT_S, gt=0)
    bind_timeout_s: float = Field(BIND_TIMEOUT_S, gt=0)
    bind_sweep_s: float = Field(BIND_SWEEP_S, gt=0)
    max_decrypt_failures: int = Field(MAX_DECRYPT_FAILURES, gt=0)

    status_port: Optional[int] = Field(None, ge=0, le=65535)

    @field_validator("dh_key_size")
    @classmethod
    def _dh_group_14_only(cls, v: int) -> int:
        if v != DH_KEY_SIZE:
            raise ValueError(f"only the {DH_KEY_SIZE}-bit MODP group is supported")
        return v

    @field_validator("aes_key_size")
    @classmethod
    def _aes_sizes(cls, v: int) -> int:
        if v not in (128, 192, 256):
            raise ValueError("aes_key_size must be 128, 192 or 256")
        return v
