"""Pure checks over a ConfigRecord. No I/O."""

import re

from fmconnect.domain.config import ConfigRecord

DATA_API_PATH = "/fmi/data/v1"

# Hostname, IPv4 или IPv6 в квадратных скобках
_HOST_RE = re.compile(r"^(\[[0-9A-Fa-f:.]+\]|[A-Za-z0-9]([A-Za-z0-9.\-_]*[A-Za-z0-9])?)$")


class EndpointError(ValueError):
    """Raised when the Data API endpoint cannot be built from a record."""


def missing_production_fields(record: ConfigRecord) -> list[str]:
    """Dotted names of required production fields that are empty."""
    required = {
        "server.host": record.server.host,
        "database.name": record.database.name,
        "authentication.username": record.authentication.username,
        "authentication.password": record.authentication.password,
    }
    return [name for name, value in required.items() if not value.strip()]


def has_required_production_fields(record: ConfigRecord) -> bool:
    """
    Check that a record can be used against a live server.

    Port, timeout and protocol are not required: they have safe defaults.
    """
    return not missing_production_fields(record)


def build_server_url(record: ConfigRecord) -> str:
    """``{protocol}://{host}:{port}`` for the configured server."""
    host = record.server.host.strip()
    if not host or not _HOST_RE.match(host):
        raise EndpointError(f"Malformed FileMaker host: {record.server.host!r}")
    return f"{record.server.protocol}://{host}:{record.server.port}"


def build_endpoint_url(record: ConfigRecord) -> str:
    """
    Data API database endpoint.

    Format is fixed by FileMaker Server:
    ``{protocol}://{host}:{port}/fmi/data/v1/databases/{database.name}``.

    Raises:
        EndpointError: if host is malformed
    """
    return f"{build_server_url(record)}{DATA_API_PATH}/databases/{record.database.name}"
