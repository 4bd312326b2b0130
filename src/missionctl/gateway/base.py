"""Gateway contract and listener plumbing shared by implementations."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from missionctl.gateway.events import GatewayEvent
from missionctl.protocol.models import ConnectionQuality

logger = logging.getLogger(__name__)

EventHandler = Callable[[GatewayEvent], Awaitable[None] | None]
QualityHandler = Callable[[ConnectionQuality], Awaitable[None] | None]
ReconnectHandler = Callable[[], Awaitable[None] | None]


@dataclass(slots=True, frozen=True)
class SendAck:
    run_id: str | None = None


@runtime_checkable
class Gateway(Protocol):
    """Runs an agent turn and streams its text back as run events."""

    async def connect(self) -> None: ...

    async def send(self, session_key: str, message: str, idempotency_key: str) -> SendAck: ...

    def on_event(self, handler: EventHandler) -> Callable[[], None]: ...

    def on_quality_change(self, handler: QualityHandler) -> Callable[[], None]: ...

    def on_reconnect(self, handler: ReconnectHandler) -> Callable[[], None]: ...

    async def close(self) -> None: ...


class Listeners:
    """Ordered handler list. Handlers may be sync or async; failures are logged."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._handlers: list[Callable[..., Any]] = []

    def add(self, handler: Callable[..., Any]) -> Callable[[], None]:
        self._handlers.append(handler)

        def _remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _remove

    def __len__(self) -> int:
        return len(self._handlers)

    async def dispatch(self, *args: Any) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("%s handler failed", self._name)
