import asyncio
from dataclasses import replace

import pytest

from fmconnect.domain.config import AuthenticationConfig, ConfigRecord, ServerConfig
from fmconnect.domain.status import ErrorKind, TestResult
from fmconnect.logger.logger import init_logger
from fmconnect.services.config_store import ConfigStore
from fmconnect.services.connection_tester import ConnectionTester
from fmconnect.services.status_monitor import StatusMonitor

# Короткая задержка demo, чтобы тесты шли быстро
DEMO_LATENCY = 0.02


class MemoryPersistence:
    """In-memory stand-in for ConfigRepository."""

    def __init__(self, values=None):
        self.values = dict(values or {})
        self.writes = []

    def get_value(self, key, default=None):
        return self.values.get(key, default)

    def set(self, key, value, updated_by="system"):
        self.values[key] = value
        self.writes.append((key, updated_by))


class StubClient:
    """Data API client returning a canned result, optionally after a delay."""

    def __init__(self, result, delay=0.0, gate=None):
        self.result = result
        self.delay = delay
        self.gate = gate
        self.calls = 0

    async def test_connection(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class StubFactory:
    """ClientFactory that hands out one StubClient and records endpoints."""

    def __init__(self, client):
        self.client = client
        self.endpoints = []

    def __call__(self, record, endpoint):
        self.endpoints.append(endpoint)
        return self.client


@pytest.fixture(autouse=True)
def logger():
    return init_logger(service_name="fmconnect-test", environment="test")


@pytest.fixture
def persistence():
    return MemoryPersistence()


@pytest.fixture
def store(persistence):
    return ConfigStore(persistence)


@pytest.fixture
def production_record():
    record = ConfigRecord(
        server=ServerConfig(host="fm.example.com", port=443, protocol="https", timeout=2000),
        authentication=AuthenticationConfig(username="api_user", password="s3cret"),
    )
    return record.with_mock_data(False)


@pytest.fixture
def incomplete_record():
    record = ConfigRecord().with_mock_data(False)
    return replace(record, authentication=AuthenticationConfig(username="", password=""))


@pytest.fixture
def success_client():
    return StubClient(
        TestResult(
            success=True,
            response_time_ms=120,
            message="Connected",
            server_info={"productVersion": "21.0.1"},
        )
    )


@pytest.fixture
def auth_failure_client():
    return StubClient(TestResult.failed("auth rejected", ErrorKind.AUTH))


def make_monitor(store, client=None):
    factory = StubFactory(client) if client is not None else StubFactory(None)
    tester = ConnectionTester(client_factory=factory, demo_latency=DEMO_LATENCY)
    return StatusMonitor(store, tester), tester, factory
