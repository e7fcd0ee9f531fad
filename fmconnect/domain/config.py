"""FileMaker configuration domain models.

ConfigRecord is a value: sections are frozen dataclasses and updates go
through ``dataclasses.replace``. The serialized form keeps the camelCase keys
used by the UI so records written by older clients load unchanged.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any

PROTOCOLS = ("http", "https")
AUTH_TYPES = ("basic", "oauth", "token")
LOG_LEVELS = ("error", "warn", "info", "debug")


@dataclass(frozen=True)
class ServerConfig:
    """FileMaker Server address."""

    host: str = "localhost"
    port: int = 443
    protocol: str = "https"
    timeout: int = 30000  # ms


@dataclass(frozen=True)
class DatabaseConfig:
    """Hosted solution."""

    name: str = "AuditPro"
    solution: str = "AuditPro.fmp12"
    version: str = "19.0"


@dataclass(frozen=True)
class AuthenticationConfig:
    """Data API credentials."""

    username: str = ""
    password: str = field(default="", repr=False)
    auth_type: str = "basic"
    token_expiry: int = 3600  # seconds


@dataclass(frozen=True)
class ConnectionConfig:
    """Connection pool and transport options."""

    max_connections: int = 10
    retry_attempts: int = 3
    enable_ssl: bool = True
    verify_ssl: bool = True


@dataclass(frozen=True)
class LayoutsConfig:
    """Logical resource -> FileMaker layout name."""

    audits: str = "Audits"
    non_conformities: str = "NonConformities"
    users: str = "Users"
    evidence: str = "Evidence"
    comments: str = "Comments"


@dataclass(frozen=True)
class PreferencesConfig:
    """Client behaviour; ``use_mock_data`` selects demo vs production."""

    use_mock_data: bool = True
    debug_mode: bool = False
    log_level: str = "info"
    auto_reconnect: bool = True


# Поле dataclass -> ключ в сериализованной записи
_WIRE_NAMES: dict[str, str] = {
    "auth_type": "authType",
    "token_expiry": "tokenExpiry",
    "max_connections": "maxConnections",
    "retry_attempts": "retryAttempts",
    "enable_ssl": "enableSSL",
    "verify_ssl": "verifySSL",
    "non_conformities": "nonConformities",
    "use_mock_data": "useMockData",
    "debug_mode": "debugMode",
    "log_level": "logLevel",
    "auto_reconnect": "autoReconnect",
}

# Допустимые значения для enum-полей
_CHOICES: dict[str, tuple[str, ...]] = {
    "protocol": PROTOCOLS,
    "auth_type": AUTH_TYPES,
    "log_level": LOG_LEVELS,
}


def _wire_name(name: str) -> str:
    return _WIRE_NAMES.get(name, name)


def _coerce(name: str, value: Any, default: Any) -> Any:
    """
    Coerce a loaded value to the type of its default.

    Returns the default when the value has the wrong type or is out of range.
    """
    if isinstance(default, bool):
        return value if isinstance(value, bool) else default

    if isinstance(default, int):
        if isinstance(value, bool):
            return default
        if isinstance(value, str) and value.strip().isdecimal():
            try:
                value = int(value.strip())
            except ValueError:
                # Больше лимита длины int (4300 цифр)
                return default
        if not isinstance(value, int):
            return default
        if name == "port" and not 1 <= value <= 65535:
            return default
        if name == "timeout" and value <= 0:
            return default
        if value < 0:
            return default
        return value

    if not isinstance(value, str):
        return default
    if name in _CHOICES and value not in _CHOICES[name]:
        return default
    return value


def _section_from_dict(cls: type, data: Any) -> Any:
    """Build one section, filling missing or invalid fields from defaults."""
    defaults = cls()
    if not isinstance(data, dict):
        return defaults

    values = {}
    for f in fields(cls):
        default = getattr(defaults, f.name)
        key = _wire_name(f.name)
        if key in data:
            values[f.name] = _coerce(f.name, data[key], default)
        elif f.name in data:
            values[f.name] = _coerce(f.name, data[f.name], default)
    return replace(defaults, **values)


def _section_to_dict(section: Any) -> dict[str, Any]:
    return {_wire_name(name): value for name, value in asdict(section).items()}


@dataclass(frozen=True)
class ConfigRecord:
    """
    Durable FileMaker connectivity profile.

    Every instance has all sections populated; ``from_dict`` merges partial
    or stale records with the defaults section by section.
    """

    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    authentication: AuthenticationConfig = field(default_factory=AuthenticationConfig)
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    layouts: LayoutsConfig = field(default_factory=LayoutsConfig)
    preferences: PreferencesConfig = field(default_factory=PreferencesConfig)

    @property
    def is_demo(self) -> bool:
        return self.preferences.use_mock_data

    def with_mock_data(self, use_mock_data: bool) -> "ConfigRecord":
        """Return a copy with ``preferences.use_mock_data`` changed."""
        return replace(
            self,
            preferences=replace(self.preferences, use_mock_data=use_mock_data),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted (camelCase) structure."""
        return {
            name: _section_to_dict(getattr(self, name)) for name in _SECTIONS
        }

    def to_env(self) -> dict[str, str]:
        """Flattened environment-style mirror of the connection settings."""
        return {
            "FILEMAKER_HOST": self.server.host,
            "FILEMAKER_PORT": str(self.server.port),
            "FILEMAKER_DATABASE": self.database.name,
            "FILEMAKER_USERNAME": self.authentication.username,
            "FILEMAKER_PASSWORD": self.authentication.password,
            "USE_MOCK_DATA": "true" if self.preferences.use_mock_data else "false",
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ConfigRecord":
        """
        Create ConfigRecord from persisted data.

        Missing sections and fields come from the defaults, unknown keys are
        ignored.

        Args:
            data: Parsed JSON (normally a dict of sections)

        Returns:
            ConfigRecord instance
        """
        if not isinstance(data, dict):
            return cls()
        return cls(
            **{
                name: _section_from_dict(section_cls, data.get(name))
                for name, section_cls in _SECTIONS.items()
            }
        )


_SECTIONS: dict[str, type] = {
    "server": ServerConfig,
    "database": DatabaseConfig,
    "authentication": AuthenticationConfig,
    "connection": ConnectionConfig,
    "layouts": LayoutsConfig,
    "preferences": PreferencesConfig,
}


def default_record() -> ConfigRecord:
    """Fixed default record used for missing or corrupt configuration."""
    return ConfigRecord()
