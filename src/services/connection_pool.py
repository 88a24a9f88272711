"""
Pooled PostgreSQL connections for the governance store.

Shared by request handlers (through ``asyncio.to_thread``) and the proposal
monitor. After ``max_failures`` consecutive connection failures the pool
refuses work for ``backoff_seconds`` so an unreachable database is not
hammered with connection attempts on every vote.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional

import psycopg2
from psycopg2 import pool

from src.config.database_config import DatabaseConfig, get_database_config
from src.utils.logger import logger


class DatabaseConnectionPool:
    """Thread-safe psycopg2 pool that commits or rolls back per unit of work."""

    def __init__(self, config_loader: Callable[[], DatabaseConfig] = get_database_config,
                 max_failures: int = 3, backoff_seconds: float = 30):
        self._config_loader = config_loader
        self._pool: Optional[pool.ThreadedConnectionPool] = None
        self._lock = threading.Lock()
        self._max_failures = max_failures
        self._backoff_seconds = backoff_seconds
        self._failures = 0
        self._last_failure_at = 0.0
        self._sizes = (0, 0)

    def _create_pool(self) -> pool.ThreadedConnectionPool:
        config = self._config_loader()
        self._sizes = (config.pool_min, config.pool_max)
        logger.info("DatabaseConnectionPool: opening %s (min=%d, max=%d)", config.describe(), *self._sizes)
        return pool.ThreadedConnectionPool(config.pool_min, config.pool_max, **config.get_connection_params())

    def _in_backoff(self) -> bool:
        return (
            self._failures >= self._max_failures
            and time.monotonic() - self._last_failure_at <= self._backoff_seconds
        )

    def _record_failure(self) -> None:
        self._failures += 1
        self._last_failure_at = time.monotonic()

    def get_connection(self):
        """Check out a live connection. Raises ``RuntimeError`` when the database is unavailable."""
        with self._lock:
            if self._in_backoff():
                raise RuntimeError(
                    f"Database unavailable after {self._failures} failures; "
                    f"retrying in at most {self._backoff_seconds:.0f}s"
                )
            if self._pool is None:
                try:
                    self._pool = self._create_pool()
                except (psycopg2.Error, RuntimeError) as e:
                    self._record_failure()
                    logger.error("DatabaseConnectionPool: could not open pool: %s", e)
                    raise RuntimeError(f"Could not open database pool: {e}") from e

            conn = None
            try:
                conn = self._pool.getconn()
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
            except (psycopg2.Error, pool.PoolError) as e:
                self._record_failure()
                logger.error("DatabaseConnectionPool: connection check failed: %s", e)
                if conn is not None:
                    self._pool.putconn(conn, close=True)
                if self._failures >= 2:
                    # Stale sockets after a database restart; start over with a fresh pool
                    self._close_pool()
                raise RuntimeError(f"Database connection failed: {e}") from e
            self._failures = 0
            return conn

    def return_connection(self, conn, close_connection: bool = False) -> None:
        if self._pool is None:
            return
        try:
            self._pool.putconn(conn, close=close_connection)
        except pool.PoolError as e:
            logger.error("DatabaseConnectionPool: could not return connection: %s", e)

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Borrow a connection for one unit of work: commit on success, roll back on error."""
        conn = self.get_connection()
        broken = False
        try:
            yield conn
            conn.commit()
        except psycopg2.InterfaceError:
            broken = True
            raise
        except Exception:
            try:
                conn.rollback()
            except psycopg2.Error as e:
                logger.warning("DatabaseConnectionPool: rollback failed: %s", e)
                broken = True
            raise
        finally:
            self.return_connection(conn, close_connection=broken)

    def _close_pool(self) -> None:
        if self._pool is None:
            return
        try:
            self._pool.closeall()
            logger.info("DatabaseConnectionPool: pool closed")
        except pool.PoolError as e:
            logger.error("DatabaseConnectionPool: error closing pool: %s", e)
        finally:
            self._pool = None

    def close(self) -> None:
        with self._lock:
            self._close_pool()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "pool_exists": self._pool is not None,
                "min_connections": self._sizes[0],
                "max_connections": self._sizes[1],
                "failure_count": self._failures,
                "in_backoff": self._in_backoff(),
            }


_connection_pool: Optional[DatabaseConnectionPool] = None
_pool_lock = threading.Lock()


def get_connection_pool() -> DatabaseConnectionPool:
    """Process-wide pool, created on first use."""
    global _connection_pool
    with _pool_lock:
        if _connection_pool is None:
            _connection_pool = DatabaseConnectionPool()
        return _connection_pool


def close_connection_pool() -> None:
    global _connection_pool
    with _pool_lock:
        if _connection_pool is not None:
            _connection_pool.close()
            _connection_pool = None
