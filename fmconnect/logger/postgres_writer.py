"""PostgreSQL writer для логов с батчингом."""

import asyncio
import contextlib
import json
import sys
from typing import Any

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as Connection

from fmconnect.logger.types import LogEntry

LOG_COLUMNS = (
    "timestamp",
    "service_name",
    "instance_id",
    "node_name",
    "environment",
    "level",
    "category",
    "trace_id",
    "request_id",
    "function_name",
    "file_path",
    "line_number",
    "message",
    "error_message",
    "stack_trace",
    "context",
    "duration_ms",
    "ingestion_time",
)

CREATE_LOGS_TABLE = """
    CREATE TABLE IF NOT EXISTS {table} (
        id BIGSERIAL PRIMARY KEY,
        timestamp TIMESTAMP NOT NULL,
        service_name TEXT NOT NULL,
        instance_id TEXT NOT NULL,
        node_name TEXT,
        environment TEXT NOT NULL,
        level TEXT NOT NULL,
        category TEXT,
        trace_id TEXT,
        request_id TEXT,
        function_name TEXT,
        file_path TEXT,
        line_number INTEGER,
        message TEXT NOT NULL,
        error_message TEXT,
        stack_trace TEXT,
        context JSONB,
        duration_ms BIGINT,
        ingestion_time TIMESTAMP NOT NULL
    )
"""


def entry_to_row(entry: LogEntry) -> tuple[Any, ...]:
    """Convert LogEntry to a row matching LOG_COLUMNS."""
    return (
        entry.timestamp,
        entry.service_name,
        entry.instance_id,
        entry.node_name,
        entry.environment,
        entry.level.value,
        entry.category.value if entry.category else None,
        entry.trace_id,
        entry.request_id,
        entry.function_name,
        entry.file_path,
        entry.line_number,
        entry.message,
        entry.error_message,
        entry.stack_trace,
        json.dumps(entry.context, default=str) if entry.context is not None else None,
        entry.duration_ms,
        entry.ingestion_time,
    )


class PostgresWriter:
    """PostgresWriter записывает логи в PostgreSQL с батчингом."""

    def __init__(
        self,
        dsn: str,
        batch_size: int = 100,
        flush_interval: float = 5.0,
        table: str = "logs",
    ) -> None:
        """
        Initialize PostgresWriter.

        Args:
            dsn: PostgreSQL connection string
            batch_size: Размер батча для flush
            flush_interval: Интервал автоматического flush в секундах
            table: Таблица для логов
        """
        self.dsn = dsn
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.table = table
        self.buffer: list[LogEntry] = []
        self._lock = asyncio.Lock()
        self._conn: Connection | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._closed = False

    async def connect(self) -> None:
        """Подключается к PostgreSQL, создаёт таблицу логов и запускает фоновый flush."""
        try:
            self._conn = psycopg2.connect(self.dsn)
            self._conn.set_session(autocommit=False)
            with self._conn.cursor() as cursor:
                cursor.execute(CREATE_LOGS_TABLE.format(table=self.table))
            self._conn.commit()
            self._flush_task = asyncio.create_task(self._background_flush())
        except Exception as e:
            print(
                f"[LOGGER ERROR] Failed to connect to PostgreSQL: {e}",
                file=sys.stderr,
            )
            raise

    async def write(self, entry: LogEntry) -> None:
        """Добавляет запись в буфер."""
        if self._closed:
            return

        async with self._lock:
            self.buffer.append(entry)

            # Автоматический flush при достижении batch_size
            if len(self.buffer) >= self.batch_size:
                await self._flush_locked()

    async def flush(self) -> None:
        """Принудительно записывает буфер в БД."""
        async with self._lock:
            await self._flush_locked()

    async def _flush_locked(self) -> None:
        """Записывает буфер в БД (должен вызываться с захваченным lock)."""
        if not self.buffer:
            return
        if not self._conn:
            self._fallback_to_stderr()
            return

        query = f"INSERT INTO {self.table} ({', '.join(LOG_COLUMNS)}) VALUES %s"
        values = [entry_to_row(entry) for entry in self.buffer]

        try:
            with self._conn.cursor() as cursor:
                psycopg2.extras.execute_values(
                    cursor,
                    query,
                    values,
                    page_size=self.batch_size,
                )
            self._conn.commit()
            self.buffer.clear()
        except Exception as e:
            print(
                f"[LOGGER ERROR] Failed to insert logs into PostgreSQL: {e}",
                file=sys.stderr,
            )
            self._conn.rollback()
            # Fallback в stderr если PostgreSQL недоступен
            self._fallback_to_stderr()

    def _fallback_to_stderr(self) -> None:
        """Записывает логи в stderr и очищает буфер."""
        for entry in self.buffer:
            data: dict[str, Any] = {
                "timestamp": entry.timestamp.isoformat(),
                "level": entry.level.value,
                "category": entry.category.value if entry.category else None,
                "message": entry.message,
                "service_name": entry.service_name,
                "environment": entry.environment,
            }
            if entry.error_message:
                data["error"] = entry.error_message
            if entry.context:
                data["context"] = entry.context

            print(json.dumps(data, default=str), file=sys.stderr)
        self.buffer.clear()

    async def _background_flush(self) -> None:
        """Периодически сбрасывает буфер."""
        while not self._closed:
            try:
                await asyncio.sleep(self.flush_interval)
                await self.flush()
            except asyncio.CancelledError:
                break
            except Exception as e:
                print(
                    f"[LOGGER ERROR] Background flush failed: {e}",
                    file=sys.stderr,
                )

    async def close(self) -> None:
        """Закрывает writer и сбрасывает оставшиеся логи."""
        self._closed = True

        if self._flush_task:
            self._flush_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task

        # Финальный flush
        await self.flush()

        if self._conn:
            self._conn.close()
            self._conn = None

