"""Pooled connections to the hosted Postgres store.

``DatabaseConfig`` resolves credentials from ``DB_*`` variables, or from
an AWS Secrets Manager secret when ``DB_SECRET_ARN`` is set. An empty
host means there is no hosted store and callers stay local.
"""
import json
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import boto3
from psycopg2 import pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the hosted store."""
    host: str
    port: int = 5432
    database: str = "postgres"
    username: str = ""
    password: str = ""
    min_connections: int = 1
    max_connections: int = 5
    connect_timeout: int = 10
    ssl_mode: str = "require"

    @property
    def is_configured(self) -> bool:
        return bool(self.host) and bool(self.username)

    def pool_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for psycopg2's connection pool."""
        return {
            "minconn": self.min_connections,
            "maxconn": self.max_connections,
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.username,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
            "sslmode": self.ssl_mode,
        }

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables.

        Environment variables:
            DB_SECRET_ARN: Secrets Manager secret to read credentials from
            AWS_REGION: Region of that secret (default us-east-1)
            DB_HOST: Database host (empty means no hosted store)
            DB_PORT: Database port (default 5432)
            DB_NAME: Database name (default postgres)
            DB_USER / DB_PASSWORD: Credentials
            DB_MIN_CONN / DB_MAX_CONN: Pool bounds (default 1 / 5)
            DB_SSL_MODE: SSL mode (default require)
        """
        secret_arn = os.getenv("DB_SECRET_ARN")
        if secret_arn:
            return cls.from_secrets_manager(secret_arn, region=os.getenv("AWS_REGION", "us-east-1"))

        return cls(
            host=os.getenv("DB_HOST", ""),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "postgres"),
            username=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            min_connections=int(os.getenv("DB_MIN_CONN", "1")),
            max_connections=int(os.getenv("DB_MAX_CONN", "5")),
            ssl_mode=os.getenv("DB_SSL_MODE", "require"),
        )

    @classmethod
    def from_secrets_manager(cls, secret_arn: str, region: str = "us-east-1") -> "DatabaseConfig":
        """Read credentials from a Secrets Manager JSON secret.

        The secret holds ``host``, ``port``, ``dbname``, ``username`` and
        ``password``; missing host, port and dbname fall back to ``DB_*``.

        Raises:
            Exception: Whatever boto3 raises when the secret cannot be read
        """
        try:
            client = boto3.client("secretsmanager", region_name=region)
            secret = json.loads(client.get_secret_value(SecretId=secret_arn)["SecretString"])
        except Exception as e:
            logger.error(
                "SECRETS_MANAGER_LOAD_FAILED",
                extra={
                    "secret_arn": secret_arn,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            raise

        return cls(
            host=secret.get("host") or os.getenv("DB_HOST", ""),
            port=int(secret.get("port") or os.getenv("DB_PORT", "5432")),
            database=secret.get("dbname") or os.getenv("DB_NAME", "postgres"),
            username=secret.get("username", ""),
            password=secret.get("password", ""),
        )


class ConnectionManager:
    """Thread-safe pool of Postgres connections, opened on first use."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: Optional[pool.ThreadedConnectionPool] = None

        logger.info(
            "CONNECTION_MANAGER_CREATED",
            extra={
                "host": config.host,
                "database": config.database,
                "max_connections": config.max_connections,
            }
        )

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> None:
        """Open the pool; a no-op once it is open.

        Raises:
            psycopg2.Error: If the pool cannot connect
        """
        if self._pool is not None:
            return

        try:
            self._pool = pool.ThreadedConnectionPool(**self.config.pool_kwargs())
        except Exception as e:
            logger.error(
                "CONNECTION_POOL_INIT_FAILED",
                extra={
                    "host": self.config.host,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            raise

        logger.info(
            "CONNECTION_POOL_INITIALIZED",
            extra={"host": self.config.host, "database": self.config.database}
        )

    @contextmanager
    def get_connection(self) -> Iterator[Any]:
        """Borrow a pooled connection for the duration of a ``with`` block.

        Uncommitted work is rolled back if the block raises, and the
        connection always goes back to the pool.
        """
        self.initialize()

        conn = self._pool.getconn()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def health_check(self) -> Dict[str, Any]:
        """Round-trip ``SELECT 1`` for readiness probes."""
        if self._pool is None:
            return {"status": "not_initialized", "healthy": False}

        start = time.time()
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
        except Exception as e:
            logger.error(
                "DATABASE_HEALTH_CHECK_FAILED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return {"status": "error", "healthy": False, "error_type": type(e).__name__}

        return {
            "status": "connected",
            "healthy": True,
            "latency_ms": (time.time() - start) * 1000,
        }

    def close(self) -> None:
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("CONNECTION_POOL_CLOSED")
