"""
Application errors for clean error handling across the bridge.

TransportError surfaces as a 500 envelope, ValidationError as a 400 envelope.
DecodeError never leaves the decoder: it is caught per frame and written to the trace.
"""


class BridgeError(Exception):
    """Base class; keeps the user-facing message on .message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TransportError(BridgeError):
    """Raised when the agent call fails: network error, missing credentials, or non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class DecodeError(BridgeError):
    """Raised for one undecodable frame (bad base64, bad UTF-8, bad JSON)."""


class ValidationError(BridgeError):
    """Raised when a required request field is missing or not a string."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"Missing required field '{field}'")
