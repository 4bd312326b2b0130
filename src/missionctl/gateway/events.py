"""Gateway run events, decoded at the boundary into a tagged union."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(slots=True, frozen=True)
class DeltaEvent:
    run_id: str
    text: str


@dataclass(slots=True, frozen=True)
class FinalEvent:
    run_id: str
    text: str


@dataclass(slots=True, frozen=True)
class ErrorEvent:
    run_id: str
    message: str


@dataclass(slots=True, frozen=True)
class AbortedEvent:
    run_id: str
    message: str


GatewayEvent = Union[DeltaEvent, FinalEvent, ErrorEvent, AbortedEvent]


def extract_text(message: Any) -> str:
    """Pull plain text out of a string, ``{content|text}`` dict or content-chunk list."""
    if not message:
        return ""
    if isinstance(message, str):
        return message
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content
        if isinstance(message.get("text"), str):
            return message["text"]
        if isinstance(content, list):
            return "".join(
                chunk["text"]
                for chunk in content
                if isinstance(chunk, dict) and chunk.get("type") == "text" and isinstance(chunk.get("text"), str)
            )
    return ""


def decode_event(raw: Any) -> GatewayEvent | None:
    """Decode a wire message. Returns None for anything that is not a run event.

    Accepts the envelope ``{"type": "event", "event": "chat", "payload": {...}}``
    or a bare payload ``{"runId": ..., "state": ..., "message": ...}``.
    """
    if not isinstance(raw, dict):
        return None
    payload: Any = raw
    if "payload" in raw:
        if raw.get("type") != "event" or raw.get("event") != "chat":
            return None
        payload = raw.get("payload")
    if not isinstance(payload, dict):
        return None

    run_id = payload.get("runId") or payload.get("run_id")
    if not isinstance(run_id, str) or not run_id:
        return None
    state = payload.get("state")
    text = extract_text(payload.get("message"))

    if state == "delta":
        return DeltaEvent(run_id=run_id, text=text)
    if state == "final":
        return FinalEvent(run_id=run_id, text=text)
    if state == "error":
        return ErrorEvent(run_id=run_id, message=str(payload.get("errorMessage") or "Run error"))
    if state == "aborted":
        return AbortedEvent(run_id=run_id, message=str(payload.get("errorMessage") or "Run aborted"))
    return None
