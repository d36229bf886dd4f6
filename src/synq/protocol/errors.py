from __future__ import annotations


class ErrorCode:
    # login phase (plaintext replies)
    INVALID_LOGIN_REQUEST = "invalid_login_request"
    INVALID_REQUEST_TYPE = "invalid_request_type"
    INVALID_USERNAME = "invalid_username"
    USERNAME_TAKEN = "username_taken"

    # secure phase
    MISSING_TYPE = "missing_type"
    INVALID_JSON = "invalid_json"
    PROCESSING_ERROR = "processing_error"
    UNKNOWN_MESSAGE_TYPE = "unknown_message_type"

    INVALID_BIND_REQUEST = "invalid_bind_request"
    MISSING_HASH = "missing_hash"
    INVALID_BIND_MODE = "invalid_bind_mode"
    TARGET_OFFLINE = "target_offline"
    CANNOT_BIND_SELF = "cannot_bind_self"
    ALREADY_BOUND = "already_bound"
    INVALID_HASH = "invalid_hash"

    MISSING_TEXT = "missing_text"
    INVALID_MESSAGE = "invalid_message"
    NOT_BOUND = "not_bound"
    PARTNER_OFFLINE = "partner_offline"
    RELAY_FAILED = "relay_failed"


class SecurityError(Exception):
    """Fatal to the connection that raised it; never retried."""


class InvalidPublicValue(SecurityError):
    pass


class DecryptionError(SecurityError):
    pass


class HandshakeError(Exception):
    pass


class FramingError(Exception):
    pass
