"""Types and constants for structured logging."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Level(str, Enum):
    """Log level определяет уровень важности лога."""

    TRACE = "trace"  # Детальная трассировка выполнения
    DEBUG = "debug"  # Отладочная информация
    INFO = "info"  # Информационные сообщения
    WARN = "warn"  # Предупреждения
    ERROR = "error"  # Ошибки (recoverable)
    FATAL = "fatal"  # Критические ошибки (требуют вмешательства)
    PANIC = "panic"  # Паника (программа падает)

    @property
    def severity(self) -> int:
        """Numeric severity, used for minimum-level filtering."""
        return _SEVERITY[self]

    @classmethod
    def parse(cls, value: str | None, default: "Level") -> "Level":
        """Parse level name, accepting ``warning`` as an alias of ``warn``."""
        if not value:
            return default
        name = value.strip().lower()
        if name == "warning":
            name = "warn"
        try:
            return cls(name)
        except ValueError:
            return default


_SEVERITY = {
    Level.TRACE: 0,
    Level.DEBUG: 10,
    Level.INFO: 20,
    Level.WARN: 30,
    Level.ERROR: 40,
    Level.FATAL: 50,
    Level.PANIC: 60,
}


class Category(str, Enum):
    """Category определяет категорию события для группировки логов."""

    CONFIG = "config"  # Загрузка/сохранение конфигурации FileMaker
    CONNECTION = "connection"  # Тесты подключения
    MONITOR = "monitor"  # Периодический мониторинг статуса
    DATABASE = "database"  # Операции с БД
    MESSENGER = "messenger"  # Event messaging (Redis Streams)
    EXTERNAL_API = "external_api"  # FileMaker Data API
    SECURITY = "security"  # События безопасности


# Ключи, значения которых никогда не попадают в логи
SENSITIVE_KEYS = frozenset({"password", "token", "secret", "authorization"})
MASK = "***"


@dataclass
class LogEntry:
    """LogEntry представляет одну запись лога для вставки в PostgreSQL."""

    timestamp: datetime
    service_name: str
    instance_id: str
    environment: str
    level: Level
    message: str
    ingestion_time: datetime = field(default_factory=datetime.utcnow)
    node_name: str | None = None
    category: Category | None = None
    trace_id: str | None = None
    span_id: str | None = None
    request_id: str | None = None
    function_name: str | None = None
    file_path: str | None = None
    line_number: int | None = None
    error_message: str | None = None
    stack_trace: str | None = None
    context: dict[str, Any] | None = None
    duration_ms: int | None = None


@dataclass
class Field:
    """Field для структурированных данных в логах."""

    key: str
    value: Any


# Helper функции для создания полей


def category(cat: Category) -> Field:
    """Создаёт поле для категории лога."""
    return Field(key="_category", value=cat)


def param(key: str, value: Any) -> Field:
    """Универсальная функция для добавления параметра."""
    return Field(key=key, value=value)


def duration_ms(value: int) -> Field:
    """Создаёт поле для duration в миллисекундах."""
    return Field(key="duration_ms", value=value)


def is_sensitive(key: str) -> bool:
    """Check whether a context key holds a secret (password, token, ...)."""
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_KEYS)


def redact(value: Any, key: str = "") -> Any:
    """
    Mask secrets in a context value.

    Dicts are walked recursively so a nested ``authentication.password``
    is masked as well.
    """
    if key and is_sensitive(key):
        return MASK
    if isinstance(value, dict):
        return {k: redact(v, str(k)) for k, v in value.items()}
    return value
