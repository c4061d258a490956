"""
Shared fixtures: build real event-stream frames (prelude, headers, payload, CRCs)
so decoder tests run against the same bytes the agent runtime sends.
"""

import base64
import binascii
import json
import struct
from typing import Any, Callable

import pytest

CHUNK_HEADERS = {
    ":event-type": "chunk",
    ":content-type": "application/json",
    ":message-type": "event",
}
TRACE_HEADERS = {
    ":event-type": "trace",
    ":content-type": "application/json",
    ":message-type": "event",
}


def _encode_headers(headers: dict[str, str]) -> bytes:
    out = b""
    for name, value in headers.items():
        raw_name = name.encode("utf-8")
        raw_value = value.encode("utf-8")
        out += bytes([len(raw_name)]) + raw_name + b"\x07" + struct.pack(">H", len(raw_value)) + raw_value
    return out


def _encode_frame(headers: dict[str, str], payload: bytes) -> bytes:
    header_bytes = _encode_headers(headers)
    total_len = 12 + len(header_bytes) + len(payload) + 4
    prelude = struct.pack(">II", total_len, len(header_bytes))
    prelude += struct.pack(">I", binascii.crc32(prelude))
    message = prelude + header_bytes + payload
    return message + struct.pack(">I", binascii.crc32(message))


@pytest.fixture
def encode_frame() -> Callable[[dict[str, str], bytes], bytes]:
    return _encode_frame


@pytest.fixture
def chunk_frame() -> Callable[..., bytes]:
    """chunk_frame("Hello") or chunk_frame(raw_bytes_field="@@bad@@")."""

    def build(text: str | None = None, raw_bytes_field: Any = None) -> bytes:
        if raw_bytes_field is None:
            raw_bytes_field = base64.b64encode(text.encode("utf-8")).decode("ascii")
        payload = json.dumps({"bytes": raw_bytes_field}).encode("utf-8")
        return _encode_frame(CHUNK_HEADERS, payload)

    return build


@pytest.fixture
def trace_frame() -> Callable[[dict], bytes]:
    def build(doc: dict) -> bytes:
        return _encode_frame(TRACE_HEADERS, json.dumps(doc).encode("utf-8"))

    return build
