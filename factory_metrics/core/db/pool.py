"""
Database Connection Pool Manager

Provides thread-safe PostgreSQL connection pooling with usage statistics
and fallback connections for the production database.
"""

import threading
import time
import logging
from contextlib import contextmanager
from typing import Optional, Dict, Any

import psycopg2
from psycopg2 import pool

from factory_metrics.utils.config import get_database_config


# Configure logging
logger = logging.getLogger(__name__)


class DatabasePool:
    """Thread-safe database connection pool manager."""

    def __init__(self, db_config: Optional[Dict[str, Any]] = None):
        """
        Initialize the database pool.

        Args:
            db_config: psycopg2 connection arguments; read from the environment when omitted

        Raises:
            ValueError: If required configuration is missing
        """
        self.db_config = dict(db_config) if db_config is not None else get_database_config()
        self.pool: Optional[pool.AbstractConnectionPool] = None
        self.pool_lock = threading.Lock()
        self.stats = {
            "connections_created": 0,
            "connections_used": 0,
            "connections_returned": 0,
            "pool_exhausted": 0,
            "fallback_connections": 0,
            "errors": 0
        }

        required_keys = ["host", "port", "database", "user", "password"]
        missing = [k for k in required_keys if not self.db_config.get(k)]
        if missing:
            raise ValueError(f"Missing production database configuration: {missing}")

    def initialize_pool(self, min_connections: int = 2, max_connections: int = 10) -> bool:
        """
        Initialize the connection pool.

        Args:
            min_connections: Minimum number of connections to maintain
            max_connections: Maximum number of connections allowed

        Returns:
            bool: True if pool was created successfully, False otherwise
        """
        try:
            with self.pool_lock:
                if self.pool is not None:
                    logger.info("Production pool already initialized")
                    return True

                self.pool = psycopg2.pool.ThreadedConnectionPool(
                    min_connections,
                    max_connections,
                    **self.db_config
                )
                self.stats["connections_created"] = min_connections

            logger.info(
                f"Initialized production pool with {min_connections}-{max_connections} connections"
            )
            return True

        except psycopg2.Error as e:
            logger.error(f"Failed to initialize production pool: {e}")
            self.stats["errors"] += 1
            return False

    @contextmanager
    def get_connection(self):
        """
        Get a connection from the pool using context manager.

        Falls back to a direct connection when the pool is missing or exhausted.

        Yields:
            psycopg2.connection: Database connection

        Example:
            >>> db_pool = DatabasePool()
            >>> with db_pool.get_connection() as conn:
            ...     cursor = conn.cursor()
            ...     cursor.execute('SELECT * FROM "Sewing" LIMIT 1')
        """
        connection = None
        pooled = False
        start_time = time.time()

        try:
            if self.pool is not None:
                try:
                    connection = self.pool.getconn()
                    pooled = True
                    self.stats["connections_used"] += 1
                except pool.PoolError:
                    self.stats["pool_exhausted"] += 1
                    logger.warning("Production pool exhausted, using fallback")

            if connection is None:
                self.stats["fallback_connections"] += 1
                connection = psycopg2.connect(**self.db_config)

            yield connection

        except psycopg2.Error as e:
            self.stats["errors"] += 1
            elapsed = time.time() - start_time
            logger.error(f"Production connection error after {elapsed:.2f}s: {e}")
            raise

        finally:
            if connection is not None:
                try:
                    if pooled and self.pool is not None:
                        self.pool.putconn(connection)
                        self.stats["connections_returned"] += 1
                    else:
                        connection.close()
                except (psycopg2.Error, pool.PoolError) as e:
                    logger.warning(f"Error returning connection to pool: {e}")
                    self.stats["errors"] += 1

    def close_pool(self):
        """Close all connections in the pool."""
        with self.pool_lock:
            if self.pool is not None:
                try:
                    self.pool.closeall()
                except (psycopg2.Error, pool.PoolError) as e:
                    logger.warning(f"Error closing production pool: {e}")
                    self.stats["errors"] += 1
                self.pool = None
                logger.info("Closed production connection pool")

    def get_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics.

        Returns:
            Dictionary with pool statistics
        """
        stats = self.stats.copy()
        stats["pool_initialized"] = self.pool is not None
        if self.pool is not None:
            stats["pool_type"] = type(self.pool).__name__
        return stats


# Global pool instance
_production_pool: Optional[DatabasePool] = None
_pool_lock = threading.Lock()


def get_pool() -> DatabasePool:
    """
    Get or create the production database pool.

    Returns:
        DatabasePool: Pool instance

    Raises:
        ValueError: If required configuration is missing
    """
    global _production_pool

    with _pool_lock:
        if _production_pool is None:
            _production_pool = DatabasePool()
            _production_pool.initialize_pool()
        return _production_pool


def close_all_pools():
    """Close all database pools."""
    global _production_pool

    with _pool_lock:
        if _production_pool is not None:
            _production_pool.close_pool()
            _production_pool = None


@contextmanager
def get_production_connection():
    """
    Get a production database connection using context manager.

    Yields:
        psycopg2.connection: Database connection

    Example:
        >>> with get_production_connection() as conn:
        ...     cursor = conn.cursor()
        ...     cursor.execute('SELECT * FROM "Sewing" LIMIT 1')
    """
    db_pool = get_pool()
    with db_pool.get_connection() as conn:
        yield conn
