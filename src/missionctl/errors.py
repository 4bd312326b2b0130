"""missionctl error hierarchy."""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCategory(StrEnum):
    """Category of error for classification and handling."""

    GATE = "gate"
    TRANSPORT = "transport"
    POLICY = "policy"
    PARSE = "parse"
    STORE = "store"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class MissionCtlError(Exception):
    """Base error for all missionctl exceptions."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        retryable: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.details: dict[str, Any] = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r}, category={self.category!r})"


class GatewayError(MissionCtlError):
    """Error talking to the execution gateway (send failure, broken stream)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, category=ErrorCategory.TRANSPORT, retryable=retryable, **kwargs)
        self.status_code = status_code


class RunTimeoutError(GatewayError):
    """A run produced no terminal event before the local timeout."""

    def __init__(self, run_id: str, timeout: float) -> None:
        super().__init__(f"Run timed out after {timeout:g}s", retryable=False)
        self.run_id = run_id
        self.timeout = timeout


class StoreError(MissionCtlError):
    """Backing store read/write failure."""

    def __init__(self, message: str, *, retryable: bool = True, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.STORE, retryable=retryable, **kwargs)


class ConfigurationError(MissionCtlError):
    """Invalid or missing configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION, retryable=False)


class ProofError(MissionCtlError):
    """Proof generation or verification could not run."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, category=ErrorCategory.POLICY, retryable=False, **kwargs)


class SchedulerLockedError(StoreError):
    """Another scheduler process already drives the same store."""

    def __init__(self, path: str) -> None:
        super().__init__(f"another scheduler holds {path}", retryable=False)
        self.path = path
