"""Key/value storage for the FileMaker configuration."""

from psycopg2.extras import RealDictCursor

from fmconnect.database.postgres import PostgresClient
from fmconnect.domain.config_entry import ConfigEntry
from fmconnect.logger.logger import get_logger
from fmconnect.logger.types import Category, param

CREATE_CONFIG_TABLE = """
    CREATE TABLE IF NOT EXISTS config (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        description TEXT,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_by TEXT NOT NULL DEFAULT 'system'
    )
"""

UPSERT_CONFIG = """
    INSERT INTO config (key, value, updated_by, updated_at)
    VALUES (%s, %s, %s, NOW())
    ON CONFLICT (key) DO UPDATE SET
        value = EXCLUDED.value,
        updated_by = EXCLUDED.updated_by,
        updated_at = NOW()
"""


class ConfigRepository:
    """
    Persistence port of ConfigStore, backed by the ``config`` table.

    The FileMaker record and its environment-style mirror are JSON values
    under fixed keys. A write is a single upsert, so a stored value is
    always replaced whole and a reader never sees a partial record.
    """

    def __init__(self, postgres_client: PostgresClient) -> None:
        self.postgres = postgres_client
        self.logger = get_logger().with_category(Category.DATABASE)

    def ensure_table_exists(self) -> None:
        try:
            with self.postgres.transaction() as conn, conn.cursor() as cur:
                cur.execute(CREATE_CONFIG_TABLE)
        except Exception as e:
            self.logger.error("Failed to create config table", e)
            raise

    def get(self, key: str) -> ConfigEntry | None:
        """
        Get configuration entry by key.

        Args:
            key: Configuration key

        Returns:
            ConfigEntry or None if not found
        """
        with self.postgres.connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT key, value, description, updated_at, updated_by
                    FROM config
                    WHERE key = %s
                    """,
                    (key,),
                )
                row = cur.fetchone()
            # Закрываем read-only транзакцию до возврата соединения в пул
            conn.rollback()

        return ConfigEntry(**row) if row else None

    def get_value(self, key: str, default: str | None = None) -> str | None:
        entry = self.get(key)
        return entry.value if entry else default

    def set(self, key: str, value: str, updated_by: str = "system") -> None:
        """
        Insert or replace a value.

        Args:
            key: Configuration key
            value: Serialized value (JSON)
            updated_by: Who updated (system, admin, ui)
        """
        try:
            with self.postgres.transaction() as conn, conn.cursor() as cur:
                cur.execute(UPSERT_CONFIG, (key, value, updated_by))
        except Exception as e:
            self.logger.error("Failed to update config", e, param("key", key))
            raise

        self.logger.debug(
            "Config updated",
            param("key", key),
            param("updated_by", updated_by),
        )
