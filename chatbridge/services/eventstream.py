"""
Event-stream response decoder for Bedrock Agent text invocations.

Responsibility: turn the raw, fully buffered response body of an InvokeAgent call
into (trace, answer). The body is a sequence of binary event-stream frames:

    [total length: u32][headers length: u32][prelude crc32: u32]
    [headers][payload][message crc32: u32]

Each header is [name length: u8][name][value type: u8][value]. Answer text arrives
in "chunk" events whose JSON payload holds a base64 "bytes" field; agent traces
arrive in "trace" events and may carry orchestrationTrace.observation.finalResponse.

Decoding is total: bad frames are dropped with a trace line, and decode_response
never raises. Bytes of a rejected frame are never read as answer text. Bodies in
which no frame prelude is found at all (e.g. already text-mangled by a proxy) are
split on the ":message-type" marker instead.
"""

import base64
import binascii
import json
import logging
import re
import struct
import uuid
from dataclasses import dataclass, field
from typing import Any

from chatbridge.core.errors import DecodeError

logger = logging.getLogger(__name__)

_PRELUDE = struct.Struct(">III")
_PRELUDE_LEN = _PRELUDE.size
_CRC = struct.Struct(">I")
_CRC_LEN = _CRC.size
_MIN_FRAME_LEN = _PRELUDE_LEN + _CRC_LEN
_MAX_FRAME_LEN = 16 * 1024 * 1024

# Header value types -> fixed-width struct formats
_FIXED_HEADER_VALUES: dict[int, struct.Struct] = {
    2: struct.Struct(">b"),
    3: struct.Struct(">h"),
    4: struct.Struct(">i"),
    5: struct.Struct(">q"),
    8: struct.Struct(">q"),  # timestamp, epoch millis
}
_LENGTH_PREFIX = struct.Struct(">H")
_BOOL_TRUE, _BOOL_FALSE, _BYTE_ARRAY, _STRING, _UUID = 0, 1, 6, 7, 9

MESSAGE_TYPE_MARKER = ":message-type"
BYTES_MARKER = "bytes"
FINAL_RESPONSE_MARKER = 'finalResponse":'

# Removed in this order until nothing changes
NOISE_SUBSTRINGS: tuple[str, ...] = ('"', "{input:{value:", ",source:null}}")

# First quoted base64 string after the "bytes" key in mangled text
_TEXT_BYTES_VALUE = re.compile(r'bytes\W*?"([A-Za-z0-9+/]+={0,2})"')


@dataclass(frozen=True)
class EventFrame:
    """One checksummed frame: decoded headers plus raw payload bytes."""

    offset: int
    headers: dict[str, Any]
    payload: bytes

    @property
    def message_type(self) -> str:
        return str(self.headers.get(":message-type", ""))

    @property
    def event_type(self) -> str:
        return str(self.headers.get(":event-type", ""))

    @property
    def exception_type(self) -> str:
        return str(self.headers.get(":exception-type", ""))

    def json_payload(self) -> Any:
        """Payload parsed as JSON. Raises DecodeError."""
        try:
            return json.loads(self.payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"payload is not JSON: {e}") from e


@dataclass(frozen=True)
class FrameIssue:
    """A region of the body that could not be read as a frame."""

    offset: int
    message: str
    # True when a valid prelude was read here, i.e. the region is a rejected frame
    framed: bool = True


@dataclass
class DecodedResult:
    trace: list[str] = field(default_factory=list)
    answer: str = ""

    @property
    def trace_text(self) -> str:
        return "\n".join(self.trace)


# --- Binary framing ---

def _read_prelude(body: bytes, pos: int) -> tuple[int, int] | None:
    """(total_len, headers_len) when a valid prelude starts at pos, else None."""
    if pos + _PRELUDE_LEN > len(body):
        return None
    total_len, headers_len, prelude_crc = _PRELUDE.unpack_from(body, pos)
    if binascii.crc32(body[pos:pos + 8]) != prelude_crc:
        return None
    if not _MIN_FRAME_LEN <= total_len <= _MAX_FRAME_LEN:
        return None
    if headers_len > total_len - _MIN_FRAME_LEN:
        return None
    return total_len, headers_len


def _find_prelude(body: bytes, start: int) -> int | None:
    for pos in range(start, len(body) - _PRELUDE_LEN + 1):
        if _read_prelude(body, pos) is not None:
            return pos
    return None


def _read_header_value(data: bytes, pos: int, value_type: int) -> tuple[Any, int]:
    if value_type == _BOOL_TRUE:
        return True, pos
    if value_type == _BOOL_FALSE:
        return False, pos
    fixed = _FIXED_HEADER_VALUES.get(value_type)
    if fixed is not None:
        if pos + fixed.size > len(data):
            raise DecodeError(f"header value of type {value_type} overruns header block")
        return fixed.unpack_from(data, pos)[0], pos + fixed.size
    if value_type in (_BYTE_ARRAY, _STRING):
        if pos + _LENGTH_PREFIX.size > len(data):
            raise DecodeError("header value length overruns header block")
        (length,) = _LENGTH_PREFIX.unpack_from(data, pos)
        pos += _LENGTH_PREFIX.size
        if pos + length > len(data):
            raise DecodeError("header value overruns header block")
        raw = data[pos:pos + length]
        if value_type == _BYTE_ARRAY:
            return raw, pos + length
        try:
            return raw.decode("utf-8"), pos + length
        except UnicodeDecodeError as e:
            raise DecodeError(f"header string is not UTF-8: {e}") from e
    if value_type == _UUID:
        if pos + 16 > len(data):
            raise DecodeError("uuid header overruns header block")
        return uuid.UUID(bytes=data[pos:pos + 16]), pos + 16
    raise DecodeError(f"unknown header value type {value_type}")


def parse_headers(data: bytes) -> dict[str, Any]:
    """Decode a frame's header block. Raises DecodeError on malformed input."""
    headers: dict[str, Any] = {}
    pos = 0
    while pos < len(data):
        name_len = data[pos]
        pos += 1
        if name_len == 0 or pos + name_len >= len(data):
            raise DecodeError("header name overruns header block")
        try:
            name = data[pos:pos + name_len].decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"header name is not UTF-8: {e}") from e
        pos += name_len
        value_type = data[pos]
        pos += 1
        headers[name], pos = _read_header_value(data, pos, value_type)
    return headers


def scan_frames(body: bytes) -> list[EventFrame | FrameIssue]:
    """
    Split body into frames, in body order.

    A bad prelude (checksum, impossible length) makes the reader scan forward for the
    next valid prelude; a bad message checksum or header block drops that frame only.
    """
    items: list[EventFrame | FrameIssue] = []
    pos = 0
    size = len(body)
    while pos < size:
        prelude = _read_prelude(body, pos)
        if prelude is None:
            nxt = _find_prelude(body, pos + 1)
            end = size if nxt is None else nxt
            items.append(FrameIssue(pos, f"no valid frame prelude, skipped {end - pos} bytes", framed=False))
            pos = end
            continue
        total_len, headers_len = prelude
        if pos + total_len > size:
            items.append(FrameIssue(pos, f"truncated frame: needs {total_len} bytes, {size - pos} left"))
            nxt = _find_prelude(body, pos + 1)
            pos = size if nxt is None else nxt
            continue
        frame = body[pos:pos + total_len]
        (message_crc,) = _CRC.unpack_from(frame, total_len - _CRC_LEN)
        if binascii.crc32(frame[:-_CRC_LEN]) != message_crc:
            items.append(FrameIssue(pos, "message checksum mismatch, frame dropped"))
            pos += total_len
            continue
        try:
            headers = parse_headers(frame[_PRELUDE_LEN:_PRELUDE_LEN + headers_len])
        except DecodeError as e:
            items.append(FrameIssue(pos, f"malformed headers, frame dropped: {e.message}"))
            pos += total_len
            continue
        payload = frame[_PRELUDE_LEN + headers_len:-_CRC_LEN]
        items.append(EventFrame(offset=pos, headers=headers, payload=payload))
        pos += total_len
    return items


# --- Payload extraction ---

def decode_bytes_field(value: Any) -> str:
    """Strict base64 -> UTF-8 text. Raises DecodeError."""
    if not isinstance(value, str):
        raise DecodeError(f"bytes field is {type(value).__name__}, expected base64 string")
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64: {e}") from e
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"decoded bytes are not UTF-8: {e}") from e


def _find_final_response(doc: Any) -> str | None:
    """Depth-first search for finalResponse.text in a parsed trace payload."""
    if isinstance(doc, dict):
        final = doc.get("finalResponse")
        if isinstance(final, dict) and isinstance(final.get("text"), str):
            return final["text"]
        children = doc.values()
    elif isinstance(doc, list):
        children = doc
    else:
        return None
    for child in children:
        found = _find_final_response(child)
        if found is not None:
            return found
    return None


def final_response_from_text(text: str) -> str | None:
    """
    Locate 'finalResponse":' in raw text and parse the JSON object after it.
    None when the marker is absent; DecodeError when it is present but unusable.
    """
    start = text.find(FINAL_RESPONSE_MARKER)
    if start == -1:
        return None
    rest = text[start + len(FINAL_RESPONSE_MARKER):].lstrip()
    if rest.startswith('"'):
        rest = rest[1:].lstrip()
    try:
        doc, _ = json.JSONDecoder().raw_decode(rest)
    except json.JSONDecodeError as e:
        raise DecodeError(f"finalResponse is not JSON: {e.msg}") from e
    answer = doc.get("text") if isinstance(doc, dict) else None
    if not isinstance(answer, str):
        raise DecodeError("finalResponse has no text field")
    return answer


def normalize_answer(text: str) -> str:
    """Strip quotes and the {input:{value: ... ,source:null}} wrapper; idempotent."""
    previous = None
    while previous != text:
        previous = text
        for noise in NOISE_SUBSTRINGS:
            text = text.replace(noise, "")
    return text


# --- Decoding strategies ---

def _decode_frames(items: list[EventFrame | FrameIssue], trace: list[str]) -> tuple[str | None, str | None]:
    """Walk frames in order. Returns (last chunk text, last finalResponse text)."""
    answer: str | None = None
    final_response: str | None = None
    for index, item in enumerate(items):
        if isinstance(item, FrameIssue):
            trace.append(f"frame {index} @{item.offset}: error: {item.message}")
            continue
        label = f"frame {index} @{item.offset} [{item.message_type}/{item.event_type or item.exception_type}]"
        if item.message_type in ("exception", "error"):
            detail = item.payload.decode("utf-8", errors="replace")
            trace.append(f"{label}: service exception {item.exception_type}: {detail}")
            continue
        try:
            doc = item.json_payload()
        except DecodeError as e:
            if item.event_type == "chunk":
                trace.append(f"{label}: error decoding chunk: {e.message}")
            else:
                trace.append(f"{label}: no bytes")
            continue
        if isinstance(doc, dict) and BYTES_MARKER in doc:
            try:
                text = decode_bytes_field(doc[BYTES_MARKER])
            except DecodeError as e:
                trace.append(f"{label}: error decoding bytes: {e.message}")
                continue
            trace.append(f"{label}: bytes")
            trace.append(text)
            answer = text
            continue
        trace.append(f"{label}: no bytes")
        found = _find_final_response(doc)
        if found is not None:
            trace.append(f"{label}: finalResponse present")
            final_response = found
    return answer, final_response


def _decode_segments(text: str, trace: list[str]) -> str | None:
    """Marker-split fallback for bodies with no readable frame."""
    segments = text.split(MESSAGE_TYPE_MARKER)
    trace.append(f"Split response: {segments!r}")
    trace.append(f"length of split: {len(segments)}")
    answer: str | None = None
    for index, segment in enumerate(segments):
        if BYTES_MARKER not in segment:
            trace.append(f"segment {index}: no bytes")
            continue
        match = _TEXT_BYTES_VALUE.search(segment)
        try:
            if match is None:
                raise DecodeError("no quoted base64 value after 'bytes'")
            decoded = decode_bytes_field(match.group(1))
        except DecodeError as e:
            trace.append(f"segment {index}: error decoding base64: {e.message}")
            continue
        trace.append(f"segment {index}: bytes")
        trace.append(decoded)
        answer = decoded
    return answer


def _decode(body: bytes, trace: list[str]) -> tuple[str, str]:
    text = body.decode("utf-8", errors="replace")
    trace.append(f"Decoded response: {text}")

    items = scan_frames(body)
    frame_count = sum(1 for item in items if isinstance(item, EventFrame))
    framed = frame_count > 0 or any(item.framed for item in items if isinstance(item, FrameIssue))
    final_response: str | None = None
    if framed:
        trace.append(f"Frames: {frame_count} read, {len(items) - frame_count} dropped")
        answer, final_response = _decode_frames(items, trace)
    else:
        trace.append("No event-stream frames found; splitting on :message-type")
        answer = _decode_segments(text, trace)

    if answer is not None:
        return answer, "bytes"
    trace.append("no bytes in response")
    if final_response is not None:
        return final_response, "finalResponse"
    if framed:
        # Bytes of rejected frames are never read as text
        return "", "none"
    try:
        from_text = final_response_from_text(text)
    except DecodeError as e:
        trace.append(f"Error parsing finalResponse: {e.message}")
        return "", "none"
    if from_text is not None:
        return from_text, "finalResponse"
    return "", "none"


def decode_response(body: bytes | str) -> DecodedResult:
    """
    Decode a raw InvokeAgent body into (trace, answer). Never raises.

    The answer is the last successfully decoded chunk; failing that, the agent's
    finalResponse text; failing that, "". It is normalized before return.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    logger.info("[eventstream:decode_response] IN  body_len=%d", len(body))
    trace: list[str] = []
    try:
        answer, source = _decode(body, trace)
    except Exception as e:
        logger.exception("[eventstream:decode_response] unexpected failure")
        trace.append(f"Unexpected decode failure: {e!r}")
        answer, source = "", "none"
    answer = normalize_answer(answer)
    trace.append(f"Answer source: {source}")
    logger.info("[eventstream:decode_response] OUT source=%s answer_len=%d trace_lines=%d", source, len(answer), len(trace))
    return DecodedResult(trace=trace, answer=answer)
