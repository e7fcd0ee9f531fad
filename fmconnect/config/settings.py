"""Settings module for fmconnect service."""

import os

from fmconnect.config.secrets import read_secret
from fmconnect.database.postgres import PostgresConfig


class RedisConfig:
    """Redis configuration."""

    def __init__(self) -> None:
        self.host = os.getenv("MESSENGER_HOST", "messenger")
        self.port = int(os.getenv("MESSENGER_PORT", "6379"))
        self.db = int(os.getenv("MESSENGER_DB", "0"))
        self.password = read_secret("redis_password", "MESSENGER_PASSWORD")
        self.connect_retries = int(os.getenv("MESSENGER_CONNECT_RETRIES", "10"))
        self.consumer_group = f"fmconnect-{os.getenv('ENVIRONMENT', 'dev')}"

        # Команды от UI (тест подключения, смена режима, сохранение конфигурации)
        self.command_stream = os.getenv("COMMAND_STREAM", "filemaker-commands")

        # Публикация статуса подключения для UI
        self.status_stream = os.getenv("STATUS_STREAM", "filemaker-status")

    @property
    def subscribe_streams(self) -> list[str]:
        return [self.command_stream]


class MonitorConfig:
    """Connection status monitor configuration."""

    def __init__(self) -> None:
        self.check_interval = float(os.getenv("STATUS_CHECK_INTERVAL", "30"))
        self.demo_latency_ms = int(os.getenv("DEMO_LATENCY_MS", "500"))
        self.config_key = os.getenv("CONFIG_KEY", "filemaker-config")
        self.env_key = os.getenv("CONFIG_ENV_KEY", "filemaker-env")

    @property
    def demo_latency(self) -> float:
        """Simulated demo latency in seconds."""
        return self.demo_latency_ms / 1000


class Settings:
    """Application settings."""

    def __init__(self) -> None:
        # Service info
        self.environment = os.getenv("ENVIRONMENT", "dev")
        self.service_name = os.getenv("SERVICE_NAME", "fmconnect")
        self.service_version = os.getenv("SERVICE_VERSION", "0.1.0")
        self.log_level = os.getenv("LOG_LEVEL", "debug")

        # PostgreSQL (конфигурация FileMaker + логи)
        self.postgres = PostgresConfig.from_env()

        # Redis
        self.redis = RedisConfig()

        # Мониторинг подключения
        self.monitor = MonitorConfig()
