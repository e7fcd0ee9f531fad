"""Load/save of the FileMaker ConfigRecord through a persistence port."""

import json
from typing import Protocol

from fmconnect.domain.config import ConfigRecord, default_record
from fmconnect.domain.status import ErrorKind
from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, param

DEFAULT_CONFIG_KEY = "filemaker-config"
DEFAULT_ENV_KEY = "filemaker-env"


class ConfigPersistence(Protocol):
    """Key/value storage used by ConfigStore (ConfigRepository in production)."""

    def get_value(self, key: str, default: str | None = None) -> str | None: ...

    def set(self, key: str, value: str, updated_by: str = "system") -> None: ...


class ConfigStore:
    """
    Sole durable-write path for the FileMaker configuration.

    ``load`` never fails: an absent or corrupt record is replaced by the
    default record. ``save`` replaces the whole stored record and then writes
    the environment-style mirror under ``env_key``; the mirror is never read.
    """

    def __init__(
        self,
        persistence: ConfigPersistence,
        config_key: str = DEFAULT_CONFIG_KEY,
        env_key: str = DEFAULT_ENV_KEY,
    ) -> None:
        """
        Initialize ConfigStore.

        Args:
            persistence: Storage port (get_value/set)
            config_key: Key of the structured record
            env_key: Key of the flattened mirror
        """
        self.persistence = persistence
        self.config_key = config_key
        self.env_key = env_key
        self.logger = get_logger().with_category(Category.CONFIG)

    def load(self) -> ConfigRecord:
        """Load the stored record merged with defaults."""
        raw = self.persistence.get_value(self.config_key)
        if raw is None:
            self.logger.debug(
                "No stored FileMaker config, using defaults",
                param("key", self.config_key),
            )
            return default_record()

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise TypeError(f"expected a JSON object, got {type(data).__name__}")
            return ConfigRecord.from_dict(data)
        except (ValueError, TypeError, RecursionError) as e:
            # JSONDecodeError - подкласс ValueError; слишком длинные числа и
            # глубокая вложенность тоже сюда
            self.logger.warn(
                "Stored FileMaker config is corrupt, using defaults",
                param("key", self.config_key),
                param("error_kind", ErrorKind.SERIALIZATION.value),
                param("error", str(e)[:200]),
            )
            return default_record()

    def save(self, record: ConfigRecord, updated_by: str = "system") -> None:
        """
        Persist the full record, then emit the environment-style mirror.

        Args:
            record: Complete record (replaces the stored one)
            updated_by: Who saved (system, ui, ...)
        """
        self.persistence.set(self.config_key, json.dumps(record.to_dict()), updated_by)
        self.persistence.set(self.env_key, json.dumps(record.to_env()), updated_by)

        self.logger.info(
            "FileMaker config saved",
            param("host", record.server.host),
            param("database", record.database.name),
            param("use_mock_data", record.preferences.use_mock_data),
            param("updated_by", updated_by),
        )

    def reset(self, updated_by: str = "system") -> ConfigRecord:
        """Persist and return the default record."""
        record = default_record()
        self.save(record, updated_by)
        return record
