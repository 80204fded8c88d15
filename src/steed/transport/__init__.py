"""Framed request/response transport to the browser driver."""

from steed.transport.channel import TransportChannel
from steed.transport.framing import Event, Request, Response

__all__ = ["Event", "Request", "Response", "TransportChannel"]
