"""Single-flight FileMaker connection test."""

import asyncio
import time
from dataclasses import asdict
from enum import Enum

from fmconnect.domain.config import ConfigRecord
from fmconnect.domain.status import ErrorKind, TestResult
from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, duration_ms, param
from fmconnect.services.filemaker_client import ClientFactory, FileMakerClient
from fmconnect.services.validator import build_endpoint_url, has_required_production_fields

DEMO_SERVER_LABEL = "Demo Mode"
DEMO_DATABASE_LABEL = "Demo data"


class TesterState(str, Enum):
    __test__ = False

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class ConnectionTester:
    """
    Runs one connection test at a time.

    A call made while a test is RUNNING does not start a second one: it
    awaits the in-flight test and returns the same TestResult. The shared
    test is shielded, so a cancelled caller never aborts it for the others.
    """

    def __init__(
        self,
        client_factory: ClientFactory = FileMakerClient.from_record,
        demo_latency: float = 0.5,
    ) -> None:
        """
        Initialize ConnectionTester.

        Args:
            client_factory: Builds a Data API client for (record, endpoint)
            demo_latency: Simulated demo round trip in seconds
        """
        self.client_factory = client_factory
        self.demo_latency = demo_latency
        self.state = TesterState.IDLE
        self.last_result: TestResult | None = None
        self._inflight: asyncio.Task[TestResult] | None = None
        self.logger = get_logger().with_category(Category.CONNECTION)

    @property
    def is_running(self) -> bool:
        return self.state is TesterState.RUNNING

    async def test_connection(self, record: ConfigRecord) -> TestResult:
        """
        Test the connection described by ``record``.

        Joins the in-flight test if one is running.

        Returns:
            TestResult (failures are results, never exceptions)
        """
        if self._inflight is not None and not self._inflight.done():
            self.logger.debug("Connection test already running, joining")
            return await asyncio.shield(self._inflight)

        self.state = TesterState.RUNNING
        self._inflight = asyncio.create_task(self._run(record))
        return await asyncio.shield(self._inflight)

    async def _run(self, record: ConfigRecord) -> TestResult:
        try:
            if record.is_demo:
                result = await self._test_demo(record)
            else:
                result = await self._test_production(record)
        finally:
            self.state = TesterState.COMPLETED

        self.last_result = result
        return result

    async def _test_demo(self, record: ConfigRecord) -> TestResult:
        started = time.monotonic()
        await asyncio.sleep(self.demo_latency)
        elapsed = int((time.monotonic() - started) * 1000)

        self.logger.debug("Demo connection test completed", duration_ms(elapsed))
        return TestResult(
            success=True,
            response_time_ms=elapsed,
            message="demo mode nominal",
            server_info={
                "server": DEMO_SERVER_LABEL,
                "database": DEMO_DATABASE_LABEL,
                "layouts": list(asdict(record.layouts).values()),
            },
        )

    async def _test_production(self, record: ConfigRecord) -> TestResult:
        if not has_required_production_fields(record):
            self.logger.warn(
                "Production connection test skipped: incomplete configuration",
                param("error_kind", ErrorKind.INCOMPLETE_CONFIG.value),
            )
            return TestResult.failed("incomplete configuration", ErrorKind.INCOMPLETE_CONFIG)

        deadline = record.server.timeout / 1000
        try:
            endpoint = build_endpoint_url(record)
            client = self.client_factory(record, endpoint)
            result = await asyncio.wait_for(client.test_connection(), timeout=deadline)
        except asyncio.TimeoutError:
            self.logger.warn(
                "FileMaker connection test exceeded timeout",
                param("host", record.server.host),
                param("timeout_ms", record.server.timeout),
            )
            return TestResult.failed(
                f"connection timed out after {record.server.timeout} ms",
                ErrorKind.TIMEOUT,
            )
        except Exception as e:
            self.logger.error(
                "FileMaker connection test raised",
                e,
                param("host", record.server.host),
            )
            return TestResult.failed(str(e) or type(e).__name__, ErrorKind.NETWORK)

        if not result.success:
            # Клиент может не указать причину; по умолчанию это сетевая ошибка
            return TestResult.failed(result.message, result.error_kind or ErrorKind.NETWORK)

        self.logger.info(
            "FileMaker connection test succeeded",
            param("host", record.server.host),
            param("database", record.database.name),
            duration_ms(result.response_time_ms),
        )
        return result
