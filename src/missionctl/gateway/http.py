"""HTTP gateway client: POST to launch a run, server-sent events for run output."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

import httpx

from missionctl.config.schema import GatewayConfig
from missionctl.errors import GatewayError
from missionctl.gateway.base import (
    EventHandler,
    Listeners,
    QualityHandler,
    ReconnectHandler,
    SendAck,
)
from missionctl.gateway.events import decode_event
from missionctl.protocol.models import ConnectionQuality

logger = logging.getLogger(__name__)

SEND_PATH = "/api/chat/send"
EVENTS_PATH = "/api/events"


class HttpGateway:
    """Gateway over plain HTTP.

    ``send`` is a JSON POST returning ``{"runId": ...}``. Run events arrive on a
    long-lived SSE stream; each ``data:`` line holds one wire message. Stream
    failures degrade the connection quality, and after ``lost_after_failures``
    consecutive failures it is reported as ``lost``. The first successful
    reconnect after a degraded or lost period fires the reconnect handlers.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._listener: asyncio.Task[None] | None = None
        self._closed = False
        self._failures = 0
        self.quality: ConnectionQuality = "good"
        self._events = Listeners("gateway event")
        self._quality_handlers = Listeners("connection quality")
        self._reconnect_handlers = Listeners("reconnect")

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self._config.token:
                headers["Authorization"] = f"Bearer {self._config.token}"
            self._client = httpx.AsyncClient(
                base_url=self._config.url.rstrip("/"),
                headers=headers,
                timeout=self._config.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    # -- subscriptions -------------------------------------------------------

    def on_event(self, handler: EventHandler) -> Callable[[], None]:
        return self._events.add(handler)

    def on_quality_change(self, handler: QualityHandler) -> Callable[[], None]:
        return self._quality_handlers.add(handler)

    def on_reconnect(self, handler: ReconnectHandler) -> Callable[[], None]:
        return self._reconnect_handlers.add(handler)

    # -- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        """Start the event listener if it is not already running."""
        self._closed = False
        self._ensure_client()
        if self._listener is None or self._listener.done():
            self._listener = asyncio.create_task(self._listen(), name="missionctl-gateway-events")

    async def close(self) -> None:
        self._closed = True
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._client:
            await self._client.aclose()
            self._client = None

    # -- requests ------------------------------------------------------------

    async def send(self, session_key: str, message: str, idempotency_key: str) -> SendAck:
        client = self._ensure_client()
        body: dict[str, Any] = {
            "sessionKey": session_key,
            "message": message,
            "deliver": False,
            "idempotencyKey": idempotency_key,
        }
        try:
            resp = await client.post(SEND_PATH, json=body)
            resp.raise_for_status()
            data = resp.json() if resp.content else {}
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise GatewayError(
                f"Gateway send failed: {status} {e.response.text[:200]}",
                status_code=status,
                retryable=status in (429, 500, 502, 503, 504),
            ) from e
        except httpx.RequestError as e:
            raise GatewayError(f"Gateway request error: {e}") from e
        except json.JSONDecodeError as e:
            raise GatewayError(f"Gateway returned invalid JSON: {e}", retryable=False) from e

        run_id = data.get("runId") if isinstance(data, dict) else None
        return SendAck(run_id=run_id if isinstance(run_id, str) and run_id else None)

    # -- event stream --------------------------------------------------------

    async def read_events_once(self) -> int:
        """Consume the event stream until the server closes it. Returns events dispatched."""
        client = self._ensure_client()
        dispatched = 0
        try:
            async with client.stream("GET", EVENTS_PATH, timeout=None) as response:
                response.raise_for_status()
                await self._mark_connected()
                async for line in response.aiter_lines():
                    event = _parse_sse_line(line)
                    if event is None:
                        continue
                    await self._events.dispatch(event)
                    dispatched += 1
        except httpx.HTTPStatusError as e:
            raise GatewayError(
                f"Event stream rejected: {e.response.status_code}", status_code=e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise GatewayError(f"Event stream error: {e}") from e
        return dispatched

    async def _listen(self) -> None:
        while not self._closed:
            try:
                await self.read_events_once()
            except GatewayError as exc:
                logger.warning("gateway event stream failed: %s", exc)
                await self.record_failure()
            if self._closed:
                break
            await asyncio.sleep(self._config.reconnect_delay_seconds)

    async def record_failure(self) -> None:
        self._failures += 1
        quality: ConnectionQuality = (
            "lost" if self._failures >= self._config.lost_after_failures else "degraded"
        )
        await self._set_quality(quality)

    async def _mark_connected(self) -> None:
        was_unhealthy = self.quality != "good"
        self._failures = 0
        await self._set_quality("good")
        if was_unhealthy:
            logger.info("gateway event stream reconnected")
            await self._reconnect_handlers.dispatch()

    async def _set_quality(self, quality: ConnectionQuality) -> None:
        if quality == self.quality:
            return
        self.quality = quality
        await self._quality_handlers.dispatch(quality)


def _parse_sse_line(line: str) -> Any:
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if not data or data == "[DONE]":
        return None
    try:
        raw = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("skipping malformed event line: %s", data[:200])
        return None
    return decode_event(raw)
