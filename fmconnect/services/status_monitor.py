"""
Connection status monitor.

Single owner of the displayed ConnectionStatus. Manual checks, periodic
ticks and checks scheduled after a mode switch all go through
``check_now()``; overlapping calls join the check already in flight, so
the status is written once per test.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

from fmconnect.domain.config import ConfigRecord
from fmconnect.domain.status import (
    Connected,
    ConnectionStatus,
    Disconnected,
    Error,
    Mode,
    TestResult,
    Testing,
    utcnow,
)
from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, param
from fmconnect.services.config_store import ConfigStore
from fmconnect.services.connection_tester import (
    DEMO_DATABASE_LABEL,
    DEMO_SERVER_LABEL,
    ConnectionTester,
)

StatusListener = Callable[[ConnectionStatus], Awaitable[None]]

DEFAULT_CHECK_INTERVAL = 30.0


def status_from_result(record: ConfigRecord, result: TestResult) -> ConnectionStatus:
    """Map a TestResult to the status displayed for ``record``."""
    mode = Mode.from_mock_flag(record.is_demo)
    if not result.success:
        return Error(mode=mode, message=result.message, error_kind=result.error_kind)

    if mode is Mode.DEMO:
        server_label, database_label = DEMO_SERVER_LABEL, DEMO_DATABASE_LABEL
    else:
        server_label = f"{record.server.host}:{record.server.port}"
        database_label = record.database.name

    return Connected(
        mode=mode,
        response_time_ms=max(result.response_time_ms, 0),
        server_label=server_label,
        database_label=database_label,
    )


class PeriodicCheckHandle:
    """
    Cancellation handle of a periodic check loop.

    After ``cancel()`` no further tick fires. A check already running is
    shielded and still updates the status.
    """

    def __init__(self, task: asyncio.Task[None], interval: float) -> None:
        self._task = task
        self.interval = interval
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        self._task.cancel()

    async def wait(self) -> None:
        """Wait until the loop has stopped (after ``cancel()``)."""
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class StatusMonitor:
    """Keeps the latest ConnectionStatus and drives re-checks."""

    def __init__(self, store: ConfigStore, tester: ConnectionTester) -> None:
        """
        Initialize StatusMonitor.

        Args:
            store: ConfigStore the record is loaded from on every check
            tester: Single-flight ConnectionTester
        """
        self.store = store
        self.tester = tester
        self.logger = get_logger().with_category(Category.MONITOR)

        self._status: ConnectionStatus = Disconnected(mode=Mode.DEMO)
        self._inflight: asyncio.Task[ConnectionStatus] | None = None
        self._listeners: list[StatusListener] = []
        self._handles: list[PeriodicCheckHandle] = []
        # Ссылки на fire-and-forget задачи, чтобы их не собрал GC
        self._scheduled: set[asyncio.Task[ConnectionStatus]] = set()
        self.checks_started = 0
        self._checked_record: ConfigRecord | None = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def add_listener(self, listener: StatusListener) -> None:
        """Register an async callback invoked on every status replacement."""
        self._listeners.append(listener)

    async def initialize(self) -> ConnectionStatus:
        """Set ``Disconnected`` with the mode of the stored record."""
        record = self.store.load()
        await self._replace(Disconnected(mode=Mode.from_mock_flag(record.is_demo)))
        return self._status

    async def check_now(self) -> ConnectionStatus:
        """
        Run a connection check and replace the held status.

        Joins the check in flight if there is one.

        Returns:
            The new ConnectionStatus
        """
        if self._inflight is not None and not self._inflight.done():
            self.logger.debug("Status check already running, joining")
            return await asyncio.shield(self._inflight)

        self._inflight = asyncio.create_task(self._check())
        return await asyncio.shield(self._inflight)

    def schedule_check(self) -> asyncio.Task[ConnectionStatus]:
        """
        Fire-and-forget check of the record as stored now.

        If the check it joins was started on an older record (e.g. demo
        before a production switch), one more check runs afterwards.
        """
        task = asyncio.get_running_loop().create_task(self._check_current())
        self._scheduled.add(task)
        task.add_done_callback(self._scheduled.discard)
        return task

    async def _check_current(self) -> ConnectionStatus:
        status = await self.check_now()
        if self._checked_record != self.store.load():
            self.logger.debug("Config changed during joined check, checking again")
            status = await self.check_now()
        return status

    def start_periodic_checks(
        self,
        interval: float = DEFAULT_CHECK_INTERVAL,
        immediate: bool = True,
    ) -> PeriodicCheckHandle:
        """
        Schedule ``check_now()`` every ``interval`` seconds until cancelled.

        Args:
            interval: Period in seconds
            immediate: Run the first check right away instead of after one period

        Returns:
            PeriodicCheckHandle
        """
        if interval <= 0:
            raise ValueError("interval must be positive")

        task = asyncio.get_running_loop().create_task(self._periodic(interval, immediate))
        handle = PeriodicCheckHandle(task, interval)
        self._handles.append(handle)

        self.logger.info("Periodic status checks started", param("interval", interval))
        return handle

    async def close(self) -> None:
        """Stop all periodic loops and wait for scheduled checks."""
        for handle in self._handles:
            handle.cancel()
        for handle in self._handles:
            await handle.wait()
        self._handles.clear()

        if self._scheduled:
            await asyncio.gather(*self._scheduled, return_exceptions=True)

        if self._inflight is not None and not self._inflight.done():
            with contextlib.suppress(asyncio.CancelledError):
                await self._inflight

    async def _periodic(self, interval: float, immediate: bool) -> None:
        if not immediate:
            await asyncio.sleep(interval)
        while True:
            try:
                await self.check_now()
            except Exception as e:
                # Ошибка одного тика не останавливает мониторинг
                self.logger.error("Periodic status check failed", e)
            await asyncio.sleep(interval)

    async def _check(self) -> ConnectionStatus:
        self.checks_started += 1
        record = self.store.load()
        self._checked_record = record
        mode = Mode.from_mock_flag(record.is_demo)

        await self._replace(Testing(mode=mode))
        result = await self.tester.test_connection(record)

        status = status_from_result(record, result)
        await self._replace(status)

        self.logger.info(
            "Connection status updated",
            param("state", status.state.value),
            param("mode", mode.value),
            param("response_time_ms", result.response_time_ms),
            param("message", result.message),
        )
        return status

    async def _replace(self, status: ConnectionStatus) -> None:
        self._status = status
        for listener in list(self._listeners):
            try:
                await listener(status)
            except Exception as e:
                self.logger.error(
                    "Status listener failed",
                    e,
                    param("state", status.state.value),
                )
