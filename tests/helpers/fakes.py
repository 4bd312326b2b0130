"""Fake gateway, fake clock and task/mission factories."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Iterable

from missionctl.config.schema import MissionCtlConfig
from missionctl.coordinator.execution import ExecutionEngine
from missionctl.errors import GatewayError
from missionctl.gateway.base import Listeners, SendAck
from missionctl.gateway.events import DeltaEvent, FinalEvent, GatewayEvent
from missionctl.protocol.models import AgentProfile, ConnectionQuality, Mission, Task, iso_from_ms
from missionctl.store.base import MissionStore
from missionctl.store.memory import InMemoryStore

T0 = datetime(2026, 2, 24, 12, 0, 0, tzinfo=UTC).timestamp()
T0_ISO = iso_from_ms(T0 * 1000)


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = T0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now

    def iso(self) -> str:
        return iso_from_ms(self.now * 1000)


@dataclass
class SentMessage:
    session_key: str
    message: str
    idempotency_key: str


@dataclass
class FakeGateway:
    """In-process gateway: records sends and lets tests push run events."""

    server_run_ids: bool = False
    fail_with: GatewayError | None = None
    sent: list[SentMessage] = field(default_factory=list)
    connected: bool = False
    closed: bool = False

    def __post_init__(self) -> None:
        self._events = Listeners("event")
        self._quality = Listeners("quality")
        self._reconnect = Listeners("reconnect")

    async def connect(self) -> None:
        self.connected = True

    async def send(self, session_key: str, message: str, idempotency_key: str) -> SendAck:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(SentMessage(session_key, message, idempotency_key))
        if self.server_run_ids:
            return SendAck(run_id=f"gw-run-{len(self.sent)}")
        return SendAck()

    def on_event(self, handler: Callable[..., Any]) -> Callable[[], None]:
        return self._events.add(handler)

    def on_quality_change(self, handler: Callable[..., Any]) -> Callable[[], None]:
        return self._quality.add(handler)

    def on_reconnect(self, handler: Callable[..., Any]) -> Callable[[], None]:
        return self._reconnect.add(handler)

    async def close(self) -> None:
        self.closed = True

    # -- test drivers --------------------------------------------------------

    @property
    def last(self) -> SentMessage:
        return self.sent[-1]

    def run_id(self, index: int = -1) -> str:
        """Run id the engine expects events for: the server id when issued, else the idempotency key."""
        if self.server_run_ids:
            position = len(self.sent) + index + 1 if index < 0 else index + 1
            return f"gw-run-{position}"
        return self.sent[index].idempotency_key

    async def emit(self, event: GatewayEvent) -> None:
        await self._events.dispatch(event)

    async def reply(self, text: str, index: int = -1) -> None:
        """Stream *text* as one delta followed by an empty final."""
        run_id = self.run_id(index)
        await self.emit(DeltaEvent(run_id=run_id, text=text))
        await self.emit(FinalEvent(run_id=run_id, text=""))

    async def set_quality(self, quality: ConnectionQuality) -> None:
        await self._quality.dispatch(quality)

    async def reconnect(self) -> None:
        await self._reconnect.dispatch()


def make_task(task_id: str = "task-1", **overrides: Any) -> Task:
    values: dict[str, Any] = {
        "id": task_id,
        "title": f"Task {task_id}",
        "primary_agent_id": "agent-a",
        "input_text": "Write the release notes.",
        "created_at": T0_ISO,
        "updated_at": T0_ISO,
    }
    values.update(overrides)
    return Task(**values)


def make_mission(mission_id: str = "task-1", **overrides: Any) -> Mission:
    values: dict[str, Any] = {
        "id": mission_id,
        "title": f"Mission {mission_id}",
        "created_at": T0_ISO,
        "updated_at": T0_ISO,
    }
    values.update(overrides)
    return Mission(**values)


def make_agent(agent_id: str, level: int = 4, name: str = "") -> AgentProfile:
    return AgentProfile(agent_id=agent_id, name=name or agent_id.title(), level=level)


async def seed(
    store: MissionStore,
    tasks: Iterable[Task] = (),
    missions: Iterable[Mission] = (),
    agents: Iterable[AgentProfile] = (),
) -> None:
    for mission in missions:
        await store.upsert_mission(mission, origin="seed")
    for task in tasks:
        await store.insert_task(task, origin="seed")
    for profile in agents:
        await store.upsert_agent(profile)


def make_engine(
    *,
    config: MissionCtlConfig | None = None,
    store: MissionStore | None = None,
    gateway: FakeGateway | None = None,
    clock: FakeClock | None = None,
) -> ExecutionEngine:
    clock = clock or FakeClock()
    engine = ExecutionEngine(
        config=config or MissionCtlConfig(),
        store=store or InMemoryStore(now=clock.iso),
        gateway=gateway or FakeGateway(),
        clock=clock,
    )
    engine.attach()
    return engine
