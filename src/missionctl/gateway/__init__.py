"""Execution gateway: event types, protocol and the httpx client."""

from missionctl.gateway.base import Gateway, SendAck
from missionctl.gateway.events import (
    AbortedEvent,
    DeltaEvent,
    ErrorEvent,
    FinalEvent,
    GatewayEvent,
    decode_event,
)

__all__ = [
    "AbortedEvent",
    "DeltaEvent",
    "ErrorEvent",
    "FinalEvent",
    "Gateway",
    "GatewayEvent",
    "SendAck",
    "decode_event",
]
