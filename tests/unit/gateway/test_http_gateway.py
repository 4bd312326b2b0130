"""Tests for the HTTP gateway client against an httpx mock transport."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from missionctl.config.schema import GatewayConfig
from missionctl.errors import GatewayError
from missionctl.gateway.events import DeltaEvent, FinalEvent, GatewayEvent
from missionctl.gateway.http import HttpGateway


def _sse(*messages: Any) -> bytes:
    lines = [": keep-alive", ""]
    for message in messages:
        data = message if isinstance(message, str) else json.dumps(message)
        lines.extend([f"data: {data}", ""])
    return ("\n".join(lines) + "\n").encode()


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(url="http://gateway.test/", token="tok", lost_after_failures=2)


class TestSend:
    @pytest.mark.asyncio
    async def test_send_posts_and_returns_run_id(self, gateway_config: GatewayConfig) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"runId": "srv-1"})

        gateway = HttpGateway(gateway_config, transport=httpx.MockTransport(handler))
        ack = await gateway.send("mission:m1:scheduler:k", "do it", "idem-1")
        await gateway.close()

        assert ack.run_id == "srv-1"
        request = seen[0]
        assert request.url.path == "/api/chat/send"
        assert request.headers["Authorization"] == "Bearer tok"
        assert json.loads(request.content) == {
            "sessionKey": "mission:m1:scheduler:k",
            "message": "do it",
            "deliver": False,
            "idempotencyKey": "idem-1",
        }

    @pytest.mark.asyncio
    async def test_empty_ack(self, gateway_config: GatewayConfig) -> None:
        gateway = HttpGateway(gateway_config, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        ack = await gateway.send("s", "m", "k")
        await gateway.close()
        assert ack.run_id is None

    @pytest.mark.asyncio
    async def test_http_error_becomes_gateway_error(self, gateway_config: GatewayConfig) -> None:
        gateway = HttpGateway(
            gateway_config,
            transport=httpx.MockTransport(lambda r: httpx.Response(503, text="overloaded")),
        )
        with pytest.raises(GatewayError) as excinfo:
            await gateway.send("s", "m", "k")
        await gateway.close()
        assert excinfo.value.status_code == 503
        assert excinfo.value.retryable
        assert "overloaded" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_client_error_not_retryable(self, gateway_config: GatewayConfig) -> None:
        gateway = HttpGateway(
            gateway_config,
            transport=httpx.MockTransport(lambda r: httpx.Response(400, text="bad session")),
        )
        with pytest.raises(GatewayError) as excinfo:
            await gateway.send("s", "m", "k")
        await gateway.close()
        assert not excinfo.value.retryable

    @pytest.mark.asyncio
    async def test_connection_error(self, gateway_config: GatewayConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        gateway = HttpGateway(gateway_config, transport=httpx.MockTransport(handler))
        with pytest.raises(GatewayError, match="Gateway request error"):
            await gateway.send("s", "m", "k")
        await gateway.close()


class TestEventStream:
    @pytest.mark.asyncio
    async def test_reads_and_dispatches_run_events(self, gateway_config: GatewayConfig) -> None:
        body = _sse(
            {"type": "event", "event": "chat", "payload": {"runId": "r1", "state": "delta", "message": "he"}},
            {"type": "event", "event": "tick", "payload": {}},
            "{broken json",
            {"runId": "r1", "state": "final", "message": "hello"},
            "[DONE]",
        )

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/events"
            return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

        gateway = HttpGateway(gateway_config, transport=httpx.MockTransport(handler))
        received: list[GatewayEvent] = []
        gateway.on_event(received.append)
        count = await gateway.read_events_once()
        await gateway.close()

        assert count == 2
        assert received == [DeltaEvent("r1", "he"), FinalEvent("r1", "hello")]

    @pytest.mark.asyncio
    async def test_rejected_stream_raises(self, gateway_config: GatewayConfig) -> None:
        gateway = HttpGateway(gateway_config, transport=httpx.MockTransport(lambda r: httpx.Response(401)))
        with pytest.raises(GatewayError) as excinfo:
            await gateway.read_events_once()
        await gateway.close()
        assert excinfo.value.status_code == 401

    @pytest.mark.asyncio
    async def test_quality_transitions_and_reconnect(self, gateway_config: GatewayConfig) -> None:
        gateway = HttpGateway(
            gateway_config,
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"")),
        )
        qualities: list[str] = []
        reconnects: list[bool] = []
        gateway.on_quality_change(qualities.append)

        async def on_reconnect() -> None:
            reconnects.append(True)

        gateway.on_reconnect(on_reconnect)

        await gateway.record_failure()
        await gateway.record_failure()
        await gateway.record_failure()
        assert qualities == ["degraded", "lost"]
        assert gateway.quality == "lost"

        await gateway.read_events_once()
        assert qualities == ["degraded", "lost", "good"]
        assert reconnects == [True]

        # A healthy re-read is not a reconnect.
        await gateway.read_events_once()
        assert reconnects == [True]
        await gateway.close()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_others(self, gateway_config: GatewayConfig) -> None:
        body = _sse({"runId": "r1", "state": "delta", "message": "x"})
        gateway = HttpGateway(
            gateway_config,
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=body)),
        )

        def broken(event: GatewayEvent) -> None:
            raise RuntimeError("listener bug")

        received: list[GatewayEvent] = []
        gateway.on_event(broken)
        gateway.on_event(received.append)
        await gateway.read_events_once()
        await gateway.close()
        assert received == [DeltaEvent("r1", "x")]
