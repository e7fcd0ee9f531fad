import asyncio
from dataclasses import replace

import pytest

from fmconnect.domain.config import ConfigRecord
from fmconnect.domain.status import ErrorKind, TestResult
from fmconnect.services.connection_tester import ConnectionTester, TesterState

from conftest import DEMO_LATENCY, StubClient, StubFactory


def make_tester(client=None, latency=DEMO_LATENCY):
    factory = StubFactory(client)
    return ConnectionTester(client_factory=factory, demo_latency=latency), factory


class TestDemoMode:
    async def test_always_succeeds(self):
        tester, factory = make_tester()
        result = await tester.test_connection(ConfigRecord())

        assert result.success is True
        assert result.message == "demo mode nominal"
        assert result.server_info["server"] == "Demo Mode"
        assert factory.endpoints == []

    async def test_response_time_within_latency_bound(self):
        tester, _ = make_tester(latency=0.05)
        result = await tester.test_connection(ConfigRecord())
        # Нижняя граница - сама задержка, сверху запас на планировщик
        assert 45 <= result.response_time_ms <= 50 + 250

    async def test_demo_ignores_missing_credentials(self, incomplete_record):
        tester, _ = make_tester()
        result = await tester.test_connection(incomplete_record.with_mock_data(True))
        assert result.success is True


class TestProductionMode:
    async def test_incomplete_config_never_contacts_backend(self, incomplete_record, success_client):
        tester, factory = make_tester(success_client)
        result = await tester.test_connection(incomplete_record)

        assert result == TestResult.failed("incomplete configuration", ErrorKind.INCOMPLETE_CONFIG)
        assert result.response_time_ms == 0
        assert success_client.calls == 0
        assert factory.endpoints == []

    async def test_success_passes_client_result(self, production_record, success_client):
        tester, factory = make_tester(success_client)
        result = await tester.test_connection(production_record)

        assert result.success is True
        assert result.response_time_ms == 120
        assert result.server_info == {"productVersion": "21.0.1"}
        assert factory.endpoints == ["https://fm.example.com:443/fmi/data/v1/databases/AuditPro"]

    async def test_failure_keeps_message_and_kind(self, production_record, auth_failure_client):
        tester, _ = make_tester(auth_failure_client)
        result = await tester.test_connection(production_record)

        assert result.success is False
        assert result.response_time_ms == 0
        assert result.message == "auth rejected"
        assert result.error_kind is ErrorKind.AUTH

    async def test_failure_without_kind_is_network(self, production_record):
        client = StubClient(TestResult(success=False, response_time_ms=15, message="boom"))
        tester, _ = make_tester(client)
        result = await tester.test_connection(production_record)
        assert result.error_kind is ErrorKind.NETWORK
        assert result.response_time_ms == 0

    async def test_server_timeout_is_deadline(self, production_record, success_client):
        record = replace(production_record, server=replace(production_record.server, timeout=20))
        success_client.delay = 1.0
        tester, _ = make_tester(success_client)

        result = await tester.test_connection(record)

        assert result.success is False
        assert result.error_kind is ErrorKind.TIMEOUT
        assert "20 ms" in result.message

    async def test_client_exception_folded(self, production_record):
        tester, _ = make_tester(StubClient(OSError("connection reset")))
        result = await tester.test_connection(production_record)
        assert result.success is False
        assert result.error_kind is ErrorKind.NETWORK
        assert result.message == "connection reset"

    async def test_malformed_host_folded(self, production_record, success_client):
        record = replace(production_record, server=replace(production_record.server, host="bad host"))
        tester, _ = make_tester(success_client)
        result = await tester.test_connection(record)
        assert result.success is False
        assert result.error_kind is ErrorKind.NETWORK
        assert success_client.calls == 0


class TestSingleFlight:
    async def test_state_transitions(self, production_record, success_client):
        gate = asyncio.Event()
        success_client.gate = gate
        tester, _ = make_tester(success_client)
        assert tester.state is TesterState.IDLE

        task = asyncio.create_task(tester.test_connection(production_record))
        await asyncio.sleep(0)
        assert tester.state is TesterState.RUNNING
        assert tester.is_running

        gate.set()
        await task
        assert not tester.is_running
        assert tester.state is TesterState.COMPLETED
        assert tester.last_result == task.result()

    async def test_concurrent_calls_share_one_test(self, production_record, success_client):
        gate = asyncio.Event()
        success_client.gate = gate
        tester, _ = make_tester(success_client)

        first = asyncio.create_task(tester.test_connection(production_record))
        await asyncio.sleep(0)
        second = asyncio.create_task(tester.test_connection(production_record))
        await asyncio.sleep(0)
        gate.set()

        results = await asyncio.gather(first, second)
        assert success_client.calls == 1
        assert results[0] is results[1]

    async def test_new_test_after_completion(self, production_record, success_client):
        tester, _ = make_tester(success_client)
        await tester.test_connection(production_record)
        await tester.test_connection(production_record)
        assert success_client.calls == 2

    async def test_cancelled_caller_does_not_abort_shared_test(self, production_record, success_client):
        gate = asyncio.Event()
        success_client.gate = gate
        tester, _ = make_tester(success_client)

        first = asyncio.create_task(tester.test_connection(production_record))
        await asyncio.sleep(0)
        second = asyncio.create_task(tester.test_connection(production_record))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        gate.set()
        result = await second
        assert result.success is True
        assert success_client.calls == 1


def test_tester_state_not_collected():
    assert TesterState.__test__ is False
    assert [s.value for s in TesterState] == ["idle", "running", "completed"]
