"""
FileMaker Data API client (connection test only).

A connection test opens a Data API session with Basic credentials, reads the
server product info and closes the session again:

1. POST   {endpoint}/sessions            -> token
2. GET    {server}/fmi/data/v1/productInfo (best effort)
3. DELETE {endpoint}/sessions/{token}

FileMaker reports failures inside the body: ``messages[0].code`` is "0" on
success, e.g. "212" for invalid credentials.
"""

import ssl
import time
from collections.abc import Callable
from typing import Any, Protocol

import httpx

from fmconnect.domain.config import ConfigRecord
from fmconnect.domain.status import ErrorKind, TestResult
from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, duration_ms, param
from fmconnect.services.validator import DATA_API_PATH, build_server_url

# Коды FileMaker, означающие отказ в авторизации
AUTH_ERROR_CODES = {"212", "952"}


class DataApiClient(Protocol):
    """Port of the external Data API client."""

    async def test_connection(self) -> TestResult: ...


ClientFactory = Callable[[ConfigRecord, str], DataApiClient]


class DataApiError(Exception):
    """Data API failure with its ErrorKind."""

    def __init__(self, message: str, kind: ErrorKind) -> None:
        super().__init__(message)
        self.kind = kind


def _is_ssl_error(err: BaseException) -> bool:
    """Walk the exception chain looking for a TLS failure."""
    current: BaseException | None = err
    while current is not None:
        if isinstance(current, ssl.SSLError):
            return True
        text = str(current)
        if "[SSL:" in text or "CERTIFICATE_VERIFY_FAILED" in text:
            return True
        current = current.__cause__ or current.__context__
    return False


class FileMakerClient:
    """httpx based implementation of DataApiClient."""

    def __init__(
        self,
        endpoint: str,
        server_url: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize FileMakerClient.

        Args:
            endpoint: Database endpoint ({server}/fmi/data/v1/databases/{name})
            server_url: {protocol}://{host}:{port}
            username: Data API account
            password: Data API password
            timeout: Per-request timeout in seconds
            verify_ssl: Verify server certificate
            transport: Custom httpx transport (tests)
        """
        self.endpoint = endpoint
        self.server_url = server_url
        self.username = username
        self.password = password
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.transport = transport
        self.logger = get_logger().with_category(Category.EXTERNAL_API).with_fields(
            param("server", server_url)
        )

    @classmethod
    def from_record(cls, record: ConfigRecord, endpoint: str) -> "FileMakerClient":
        """Default ClientFactory: build a client from a ConfigRecord."""
        return cls(
            endpoint=endpoint,
            server_url=build_server_url(record),
            username=record.authentication.username,
            password=record.authentication.password,
            timeout=record.server.timeout / 1000,
            verify_ssl=record.connection.verify_ssl,
        )

    async def test_connection(self) -> TestResult:
        """Open and close a Data API session, measuring the round trip."""
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify_ssl,
                transport=self.transport,
            ) as client:
                token = await self._open_session(client)
                server_info = await self._product_info(client)
                await self._close_session(client, token)
        except DataApiError as e:
            return self._failed(str(e), e.kind)
        except httpx.TimeoutException as e:
            return self._failed(f"FileMaker server timed out: {e}", ErrorKind.TIMEOUT)
        except httpx.HTTPError as e:
            kind = ErrorKind.SSL if _is_ssl_error(e) else ErrorKind.NETWORK
            return self._failed(f"FileMaker server unreachable: {e}", kind)

        elapsed = int((time.monotonic() - started) * 1000)
        self.logger.info(
            "FileMaker connection test succeeded",
            duration_ms(elapsed),
        )
        return TestResult(
            success=True,
            response_time_ms=elapsed,
            message=f"Connected to {self.endpoint}",
            server_info=server_info,
        )

    def _failed(self, message: str, kind: ErrorKind) -> TestResult:
        self.logger.warn(
            "FileMaker connection test failed",
            param("error_kind", kind.value),
            param("error", message),
        )
        return TestResult.failed(message, kind)

    async def _open_session(self, client: httpx.AsyncClient) -> str:
        """POST /sessions, returns the session token."""
        response = await client.post(
            f"{self.endpoint}/sessions",
            auth=(self.username, self.password),
            json={},
        )
        body = self._json(response)
        code, message = self._first_message(body)

        if response.status_code == 401 or code in AUTH_ERROR_CODES:
            raise DataApiError(f"FileMaker authentication failed: {message}", ErrorKind.AUTH)
        if response.is_error or code != "0":
            raise DataApiError(
                f"FileMaker API error ({response.status_code}): {message}",
                ErrorKind.NETWORK,
            )

        token = body.get("response", {}).get("token")
        if not token:
            raise DataApiError("FileMaker returned no session token", ErrorKind.NETWORK)
        return str(token)

    async def _product_info(self, client: httpx.AsyncClient) -> dict[str, Any]:
        """Server descriptor; product info is optional."""
        info: dict[str, Any] = {"server": self.server_url, "endpoint": self.endpoint}
        try:
            response = await client.get(f"{self.server_url}{DATA_API_PATH}/productInfo")
            response.raise_for_status()
            product = response.json()["response"]["productInfo"]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            self.logger.debug("FileMaker productInfo unavailable", param("error", str(e)))
            return info

        if isinstance(product, dict):
            info.update(product)
        return info

    async def _close_session(self, client: httpx.AsyncClient, token: str) -> None:
        try:
            await client.delete(f"{self.endpoint}/sessions/{token}")
        except httpx.HTTPError as e:
            # Сессия истечёт сама, тест подключения уже успешен
            self.logger.warn("Failed to close FileMaker session", param("error", str(e)))

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _first_message(body: dict[str, Any]) -> tuple[str | None, str]:
        messages = body.get("messages") or []
        if not messages or not isinstance(messages[0], dict):
            return None, "no message"
        first = messages[0]
        return str(first.get("code")), str(first.get("message", ""))
