"""PostgreSQL connections for the flag, calibration and notification tables.

One pooled ``ConnectionManager`` per process. Without ``DB_HOST`` (or
``DB_SECRET_ARN``) no manager is created and every repository falls back to
its in-memory store, which is how the services run locally and in tests.
"""
import json
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings.

    ``application_name`` shows up in ``pg_stat_activity`` so decision and
    notification traffic can be told apart on a shared database.
    """
    host: str
    port: int = 5432
    database: str = "hearthguard"
    username: str = ""
    password: str = ""
    min_connections: int = 2
    max_connections: int = 10
    connect_timeout: int = 10
    ssl_mode: str = "require"
    application_name: str = "hearthguard"
    statement_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Read ``DB_*`` variables (DB_HOST, DB_PORT, DB_NAME, DB_USER,
        DB_PASSWORD, DB_MIN_CONN, DB_MAX_CONN, DB_SSL_MODE, DB_APP_NAME,
        DB_STATEMENT_TIMEOUT_MS)."""
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=_env_int("DB_PORT", 5432),
            database=os.getenv("DB_NAME", "hearthguard"),
            username=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            min_connections=_env_int("DB_MIN_CONN", 2),
            max_connections=_env_int("DB_MAX_CONN", 10),
            ssl_mode=os.getenv("DB_SSL_MODE", "require"),
            application_name=os.getenv("DB_APP_NAME", "hearthguard"),
            statement_timeout_ms=_env_int("DB_STATEMENT_TIMEOUT_MS", 5000),
        )

    @classmethod
    def from_secrets_manager(cls, secret_arn: str, region: str = "us-east-1") -> "DatabaseConfig":
        """Build config from an RDS-style secret; pool sizing still comes from env.

        Raises whatever boto3 raises; a service must not start against the
        wrong database.
        """
        import boto3

        try:
            client = boto3.client("secretsmanager", region_name=region)
            secret = json.loads(client.get_secret_value(SecretId=secret_arn)["SecretString"])
        except Exception as e:
            logger.error(
                "DB_SECRET_LOAD_FAILED",
                extra={"error_type": type(e).__name__, "secret_arn": secret_arn}
            )
            raise

        base = cls.from_env()
        return cls(
            host=secret.get("host", base.host),
            port=int(secret.get("port", base.port)),
            database=secret.get("dbname", base.database),
            username=secret.get("username", ""),
            password=secret.get("password", ""),
            min_connections=base.min_connections,
            max_connections=base.max_connections,
            ssl_mode=base.ssl_mode,
            application_name=base.application_name,
            statement_timeout_ms=base.statement_timeout_ms,
        )

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``psycopg2.connect`` (and the pool)."""
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.username,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
            "sslmode": self.ssl_mode,
            "application_name": self.application_name,
            "options": f"-c statement_timeout={self.statement_timeout_ms}",
        }


class ConnectionManager:
    """Lazily created ``ThreadedConnectionPool``; Flask handlers share it across threads."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool = None

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> None:
        if self._pool is not None:
            return

        from psycopg2 import pool

        try:
            self._pool = pool.ThreadedConnectionPool(
                minconn=self.config.min_connections,
                maxconn=self.config.max_connections,
                **self.config.connect_kwargs(),
            )
        except Exception as e:
            logger.error(
                "DB_POOL_INIT_FAILED",
                extra={"error_type": type(e).__name__, "host": self.config.host}
            )
            raise

        logger.info(
            "DB_POOL_READY",
            extra={
                "host": self.config.host,
                "database": self.config.database,
                "application_name": self.config.application_name,
                "max_connections": self.config.max_connections,
            }
        )

    @contextmanager
    def get_connection(self):
        """Borrow a pooled connection; it is always handed back, even on error."""
        if self._pool is None:
            self.initialize()

        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    def health_check(self) -> Dict[str, Any]:
        """Round-trip ``SELECT 1`` for the ``/ready`` endpoints."""
        if self._pool is None:
            return {"status": "not_initialized", "healthy": False}

        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
        except Exception as e:
            logger.warning("DB_HEALTH_CHECK_FAILED", extra={"error_type": type(e).__name__})
            return {"status": "error", "healthy": False, "error": str(e)}

        return {"status": "connected", "healthy": True, "database": self.config.database}

    def close(self) -> None:
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("DB_POOL_CLOSED")


_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> Optional[ConnectionManager]:
    """Process-wide manager, or None when no database is configured.

    ``DB_SECRET_ARN`` takes precedence over plain ``DB_*`` credentials.
    """
    global _connection_manager

    if _connection_manager is not None:
        return _connection_manager

    secret_arn = os.getenv("DB_SECRET_ARN")
    if secret_arn:
        config = DatabaseConfig.from_secrets_manager(
            secret_arn, region=os.getenv("AWS_REGION", "us-east-1"),
        )
    elif os.getenv("DB_HOST"):
        config = DatabaseConfig.from_env()
    else:
        return None

    _connection_manager = ConnectionManager(config)
    return _connection_manager
