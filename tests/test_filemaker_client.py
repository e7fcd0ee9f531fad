import ssl

import httpx

from fmconnect.domain.status import ErrorKind
from fmconnect.services.filemaker_client import FileMakerClient

SERVER = "https://fm.example.com:443"
ENDPOINT = f"{SERVER}/fmi/data/v1/databases/AuditPro"


def ok_body(response):
    return {"response": response, "messages": [{"code": "0", "message": "OK"}]}


def make_client(handler):
    return FileMakerClient(
        endpoint=ENDPOINT,
        server_url=SERVER,
        username="api_user",
        password="s3cret",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


class TestConnectionSuccess:
    async def test_session_opened_and_closed(self):
        requests = []

        def handler(request):
            requests.append((request.method, request.url.path))
            if request.method == "POST":
                assert request.headers["Authorization"].startswith("Basic ")
                return httpx.Response(200, json=ok_body({"token": "tok-1"}))
            if request.url.path.endswith("/productInfo"):
                return httpx.Response(
                    200,
                    json=ok_body({"productInfo": {"name": "FileMaker Data API Engine", "version": "21.0.1"}}),
                )
            return httpx.Response(200, json=ok_body({}))

        result = await make_client(handler).test_connection()

        assert result.success is True
        assert result.response_time_ms >= 0
        assert result.server_info["version"] == "21.0.1"
        assert result.server_info["server"] == SERVER
        assert requests == [
            ("POST", "/fmi/data/v1/databases/AuditPro/sessions"),
            ("GET", "/fmi/data/v1/productInfo"),
            ("DELETE", "/fmi/data/v1/databases/AuditPro/sessions/tok-1"),
        ]

    async def test_product_info_optional(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json=ok_body({"token": "tok-1"}))
            if request.method == "GET":
                return httpx.Response(404)
            return httpx.Response(200, json=ok_body({}))

        result = await make_client(handler).test_connection()

        assert result.success is True
        assert result.server_info == {"server": SERVER, "endpoint": ENDPOINT}


class TestConnectionFailure:
    async def test_invalid_credentials(self):
        def handler(request):
            return httpx.Response(
                401,
                json={"response": {}, "messages": [{"code": "212", "message": "Invalid user account and/or password"}]},
            )

        result = await make_client(handler).test_connection()

        assert result.success is False
        assert result.response_time_ms == 0
        assert result.error_kind is ErrorKind.AUTH
        assert "Invalid user account" in result.message

    async def test_api_error_code(self):
        def handler(request):
            return httpx.Response(
                500,
                json={"response": {}, "messages": [{"code": "802", "message": "Unable to open file"}]},
            )

        result = await make_client(handler).test_connection()
        assert result.error_kind is ErrorKind.NETWORK
        assert "Unable to open file" in result.message

    async def test_timeout(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        result = await make_client(handler).test_connection()
        assert result.error_kind is ErrorKind.TIMEOUT

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("Name or service not known", request=request)

        result = await make_client(handler).test_connection()
        assert result.error_kind is ErrorKind.NETWORK
        assert "unreachable" in result.message

    async def test_ssl_error(self):
        def handler(request):
            try:
                raise ssl.SSLCertVerificationError("certificate verify failed")
            except ssl.SSLError as e:
                raise httpx.ConnectError("handshake failed", request=request) from e

        result = await make_client(handler).test_connection()
        assert result.error_kind is ErrorKind.SSL

    async def test_missing_token(self):
        def handler(request):
            return httpx.Response(200, json=ok_body({}))

        result = await make_client(handler).test_connection()
        assert result.success is False
        assert result.error_kind is ErrorKind.NETWORK

    async def test_ssl_marker_in_message(self):
        def handler(request):
            raise httpx.ConnectError(
                "[SSL: CERTIFICATE_VERIFY_FAILED] certificate verify failed", request=request
            )

        result = await make_client(handler).test_connection()
        assert result.error_kind is ErrorKind.SSL

    async def test_ssl_word_alone_is_network(self):
        def handler(request):
            raise httpx.ConnectError("connection refused by SSLproxy.local", request=request)

        result = await make_client(handler).test_connection()
        assert result.error_kind is ErrorKind.NETWORK
