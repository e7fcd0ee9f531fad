"""Connection status and connection test domain models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


class Mode(str, Enum):
    """Operating mode derived from ``preferences.use_mock_data``."""

    DEMO = "demo"
    PRODUCTION = "production"

    @classmethod
    def from_mock_flag(cls, use_mock_data: bool) -> "Mode":
        return cls.DEMO if use_mock_data else cls.PRODUCTION


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    TESTING = "testing"
    CONNECTED = "connected"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Failure taxonomy kept for telemetry; the UI only sees messages."""

    INCOMPLETE_CONFIG = "incomplete_config"
    SERIALIZATION = "serialization"
    NETWORK = "network"
    AUTH = "auth"
    TIMEOUT = "timeout"
    SSL = "ssl"


@dataclass(frozen=True)
class TestResult:
    """Outcome of a single connection test."""

    __test__ = False  # не тестовый класс для pytest

    success: bool
    response_time_ms: int
    message: str
    server_info: dict[str, Any] | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def failed(cls, message: str, error_kind: ErrorKind) -> "TestResult":
        """Failed test: response time is always 0 and there is no server info."""
        return cls(
            success=False,
            response_time_ms=0,
            message=message,
            error_kind=error_kind,
        )


@dataclass(frozen=True)
class ValidationError:
    """Typed (non-exception) validation failure."""

    kind: ErrorKind
    missing_fields: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        if not self.missing_fields:
            return "incomplete configuration"
        return f"incomplete configuration: missing {', '.join(self.missing_fields)}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _StatusBase:
    mode: Mode
    last_checked_at: datetime = field(default_factory=utcnow)

    state = ConnectionState.DISCONNECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "mode": self.mode.value,
            "last_checked_at": self.last_checked_at.isoformat(),
        }


@dataclass(frozen=True)
class Disconnected(_StatusBase):
    """No check has completed yet."""

    state = ConnectionState.DISCONNECTED


@dataclass(frozen=True)
class Testing(_StatusBase):
    """A check is in flight."""

    __test__ = False

    state = ConnectionState.TESTING


@dataclass(frozen=True)
class Connected(_StatusBase):
    """Last check succeeded."""

    response_time_ms: int = 0
    server_label: str = ""
    database_label: str = ""

    state = ConnectionState.CONNECTED

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            response_time_ms=self.response_time_ms,
            server=self.server_label,
            database=self.database_label,
        )
        return data


@dataclass(frozen=True)
class Error(_StatusBase):
    """Last check failed; ``message`` is kept for display."""

    message: str = ""
    error_kind: ErrorKind | None = None

    state = ConnectionState.ERROR

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            message=self.message,
            error_kind=self.error_kind.value if self.error_kind else None,
        )
        return data


ConnectionStatus = Union[Disconnected, Testing, Connected, Error]
