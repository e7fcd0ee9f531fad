"""Основной logger для структурированного логирования."""

import asyncio
import os
import sys
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from types import FrameType
from typing import Any

from fmconnect.logger.postgres_writer import PostgresWriter
from fmconnect.logger.types import Category, Field, Level, LogEntry, redact

# Уровни, для которых сохраняется stack trace
_TRACEBACK_LEVELS = (Level.ERROR, Level.FATAL, Level.PANIC)


class Logger:
    """
    Structured logger writing LogEntry rows through PostgresWriter.

    Derived loggers (``with_category``, ``with_fields``, ``with_request_id``)
    share the writer and the minimum level of their parent. Values of
    sensitive keys are masked before an entry is built.
    """

    def __init__(
        self,
        service_name: str,
        environment: str,
        writer: PostgresWriter | None = None,
        level: Level = Level.DEBUG,
    ) -> None:
        """
        Initialize Logger.

        Args:
            service_name: Имя сервиса
            environment: Окружение (dev, stage, prod)
            writer: PostgresWriter для записи логов (None - stdout)
            level: Минимальный уровень, ниже которого записи отбрасываются
        """
        self.service_name = service_name
        self.environment = environment
        self.writer = writer
        self.level = level
        self.instance_id = os.getenv("HOSTNAME") or os.getenv("CONTAINER_ID") or str(uuid.uuid4())
        self.node_name = os.getenv("NODE_NAME")

        self._fields: dict[str, Any] = {}
        self._category: Category | None = None
        self._request_id: str | None = None

    def trace(self, msg: str, *fields: Field) -> None:
        self._log(Level.TRACE, msg, None, *fields)

    def debug(self, msg: str, *fields: Field) -> None:
        self._log(Level.DEBUG, msg, None, *fields)

    def info(self, msg: str, *fields: Field) -> None:
        self._log(Level.INFO, msg, None, *fields)

    def warn(self, msg: str, *fields: Field) -> None:
        self._log(Level.WARN, msg, None, *fields)

    def error(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        self._log(Level.ERROR, msg, err, *fields)

    def fatal(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        """Log fatal level message and exit."""
        self._log(Level.FATAL, msg, err, *fields)
        raise SystemExit(1)

    def is_enabled(self, level: Level) -> bool:
        return level.severity >= self.level.severity

    def _log(self, level: Level, msg: str, err: Exception | None, *fields: Field) -> None:
        if not self.is_enabled(level):
            return
        self._emit(self._build_entry(level, msg, err, *fields))

    def _emit(self, entry: LogEntry) -> None:
        if self.writer is None:
            # Без writer (тесты, локальный запуск) - короткая строка в stdout
            category = entry.category.value if entry.category else "-"
            suffix = f" {entry.context}" if entry.context else ""
            print(f"[{entry.level.value}] {category}: {entry.message}{suffix}")
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Нет running loop (shutdown, sync-код) - пишем в буфер синхронно
            asyncio.run(self.writer.write(entry))
        else:
            loop.create_task(self.writer.write(entry))

    def _build_entry(
        self,
        level: Level,
        msg: str,
        err: Exception | None,
        *fields: Field,
    ) -> LogEntry:
        """Собирает LogEntry: caller info, контекст без секретов, ошибка."""
        context: dict[str, Any] = dict(self._fields)
        category = self._category
        for field in fields:
            if field.key == "_category":
                if isinstance(field.value, Category):
                    category = field.value
                continue
            context[field.key] = field.value

        context = redact(context)
        duration = context.pop("duration_ms", None)

        caller = _caller_frame()
        entry = LogEntry(
            timestamp=datetime.utcnow(),
            service_name=self.service_name,
            instance_id=self.instance_id,
            node_name=self.node_name,
            environment=self.environment,
            level=level,
            category=category,
            request_id=self._request_id,
            function_name=caller.f_code.co_name if caller else None,
            file_path=_clean_file_path(caller.f_code.co_filename) if caller else None,
            line_number=caller.f_lineno if caller else None,
            message=msg,
            context=context or None,
            duration_ms=int(duration) if duration is not None else None,
        )

        if err is not None:
            entry.error_message = str(err)
            if level in _TRACEBACK_LEVELS:
                entry.stack_trace = "".join(
                    traceback.format_exception(type(err), err, err.__traceback__)
                )
        return entry

    def with_category(self, category: Category) -> "Logger":
        new_logger = self._copy()
        new_logger._category = category
        return new_logger

    def with_request_id(self, request_id: str | None) -> "Logger":
        """Logger for one command: every entry carries its event_id."""
        new_logger = self._copy()
        new_logger._request_id = request_id
        return new_logger

    def with_fields(self, *fields: Field) -> "Logger":
        new_logger = self._copy()
        for field in fields:
            new_logger._fields[field.key] = field.value
        return new_logger

    def _copy(self) -> "Logger":
        new_logger = Logger.__new__(Logger)
        new_logger.__dict__.update(self.__dict__)
        new_logger._fields = dict(self._fields)
        return new_logger


def _caller_frame() -> FrameType | None:
    """First frame outside this module (the code that called info/warn/...)."""
    frame: FrameType | None = sys._getframe(1)
    while frame is not None and frame.f_code.co_filename == __file__:
        frame = frame.f_back
    return frame


def _clean_file_path(file_path: str) -> str:
    """Путь относительно пакета fmconnect (или только имя файла)."""
    parts = Path(file_path).parts
    if "fmconnect" in parts:
        return str(Path(*parts[parts.index("fmconnect") :]))
    return Path(file_path).name


# Глобальный logger instance
_global_logger: Logger | None = None


def get_logger() -> Logger:
    """Возвращает глобальный logger instance."""
    if _global_logger is None:
        raise RuntimeError("Logger not initialized. Call init_logger() first.")
    return _global_logger


def init_logger(
    service_name: str,
    environment: str,
    writer: PostgresWriter | None = None,
    level: Level | str = Level.DEBUG,
) -> Logger:
    """
    Инициализирует глобальный logger.

    Args:
        service_name: Имя сервиса
        environment: Окружение (dev, stage, prod)
        writer: PostgresWriter для записи логов
        level: Минимальный уровень (Level или имя уровня из LOG_LEVEL)

    Returns:
        Logger instance
    """
    global _global_logger
    if isinstance(level, str):
        level = Level.parse(level, default=Level.DEBUG)
    _global_logger = Logger(service_name, environment, writer, level)
    return _global_logger
