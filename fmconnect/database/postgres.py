"""PostgreSQL pool shared by the config repository."""

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from psycopg2.extensions import connection as Connection
from psycopg2.extensions import make_dsn
from psycopg2.pool import ThreadedConnectionPool

from fmconnect.config.secrets import read_secret


@dataclass
class PostgresConfig:
    """PostgreSQL connection settings (the FileMaker record and logs live here)."""

    host: str = "localhost"
    port: int = 5432
    database: str = "fmconnect"
    user: str = "fmconnect"
    password: str = field(default="", repr=False)
    min_conn: int = 1
    max_conn: int = 5

    @classmethod
    def from_env(cls) -> "PostgresConfig":
        """Read DB_* variables; the password may come from the db_password secret."""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "fmconnect"),
            user=os.getenv("DB_USER", "fmconnect"),
            password=read_secret("db_password", "DB_PASSWORD", "fmconnect") or "",
            max_conn=int(os.getenv("DB_POOL_SIZE", "5")),
        )

    @property
    def dsn(self) -> str:
        # make_dsn экранирует пароль с пробелами и кавычками
        return make_dsn(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.user,
            password=self.password,
        )


class PostgresClient:
    """Thread-safe connection pool; callers borrow a connection per operation."""

    def __init__(self, config: PostgresConfig | None = None) -> None:
        self.config = config or PostgresConfig.from_env()
        self.pool: ThreadedConnectionPool | None = None

    async def connect(self) -> None:
        """
        Create connection pool.

        Raises:
            ConnectionError: If the pool cannot open its first connection
        """
        try:
            self.pool = ThreadedConnectionPool(
                minconn=self.config.min_conn,
                maxconn=self.config.max_conn,
                dsn=self.config.dsn,
            )
        except Exception as e:
            raise ConnectionError(
                f"Failed to connect to PostgreSQL at {self.config.host}:{self.config.port}: {e}"
            ) from e

    async def close(self) -> None:
        if self.pool:
            self.pool.closeall()
            self.pool = None

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Borrow a connection from the pool and return it afterwards."""
        if not self.pool:
            raise RuntimeError("Connection pool not initialized. Call connect() first.")
        conn = self.pool.getconn()
        try:
            yield conn
        finally:
            self.pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Borrowed connection that commits on success and rolls back on error."""
        with self.connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
