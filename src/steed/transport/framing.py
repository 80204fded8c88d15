"""Message framing for the driver protocol.

Each frame is a 4-byte big-endian length followed by a UTF-8 JSON body.
Three message shapes travel over a channel:

* request  ``{"id": 1, "method": "navigate", "params": {...}}``
* response ``{"id": 1, "result": ...}`` or ``{"id": 1, "error": {"code": ..., "message": ...}}``
* event    ``{"event": "loadFinished", "params": {...}}``
"""

from __future__ import annotations

import asyncio
import json
import struct
from typing import Any, Union

from pydantic import BaseModel, Field, ValidationError

from steed.exceptions import ProtocolError

HEADER = struct.Struct(">I")
MAX_FRAME_BYTES = 64 * 1024 * 1024


# ---------------------------------------------------------------------------
# Message models
# ---------------------------------------------------------------------------


class Request(BaseModel):
    """A command sent to the driver."""

    id: int
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class ErrorInfo(BaseModel):
    """Error payload of a failed response."""

    code: str
    message: str = ""


class Response(BaseModel):
    """The driver's reply to one request."""

    id: int
    result: Any = None
    error: ErrorInfo | None = None


class Event(BaseModel):
    """An unsolicited notification from the driver."""

    event: str
    params: dict[str, Any] = Field(default_factory=dict)


Message = Union[Request, Response, Event]


# ---------------------------------------------------------------------------
# Encode / decode
# ---------------------------------------------------------------------------


def encode(message: BaseModel) -> bytes:
    """Serialize a message into a length-prefixed frame."""
    body = message.model_dump_json(exclude_none=True).encode("utf-8")
    if len(body) > MAX_FRAME_BYTES:
        raise ProtocolError(f"Frame too large: {len(body)} bytes")
    return HEADER.pack(len(body)) + body


def decode_body(body: bytes) -> Message:
    """Parse a frame body into the matching message model."""
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Malformed frame body: {exc}") from exc
    if not isinstance(data, dict):
        raise ProtocolError(f"Frame body is not an object: {type(data).__name__}")

    try:
        if "event" in data:
            return Event.model_validate(data)
        if "method" in data:
            return Request.model_validate(data)
        if "id" in data:
            return Response.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid message: {exc}") from exc
    raise ProtocolError(f"Unrecognised message keys: {sorted(data)}")


async def read_frame(reader: asyncio.StreamReader) -> Message | None:
    """Read one message from *reader*. Returns ``None`` on clean EOF."""
    try:
        header = await reader.readexactly(HEADER.size)
    except asyncio.IncompleteReadError as exc:
        if not exc.partial:
            return None
        raise ProtocolError("Stream ended inside a frame header") from exc

    (length,) = HEADER.unpack(header)
    if length > MAX_FRAME_BYTES:
        raise ProtocolError(f"Frame too large: {length} bytes")
    try:
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError as exc:
        raise ProtocolError("Stream ended inside a frame body") from exc
    return decode_body(body)
