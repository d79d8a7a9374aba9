#!/usr/bin/env python3
"""corsgate - PostgreSQL Connection Pool.

A single process-wide psycopg2 ThreadedConnectionPool shared by every
request thread.  Thread safety of getconn/putconn is psycopg2's; this module
guarantees that a borrowed connection is always handed back and that a
borrower waits for a free connection instead of failing when all are out.

Usage:
    from corsgate.db.connection_pool import StorePool

    store = StorePool(dsn).open()      # creates the pool and pings it
    version = store.fetch_version()
    store.close()
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from corsgate.resilience.errors import StoreQueryError, StoreUnavailableError

logger = logging.getLogger("corsgate.db.pool")

PING_SQL = "SELECT 1"
VERSION_SQL = "SELECT version()"


class StorePool:
    """Owns the connection pool for one PostgreSQL database."""

    def __init__(self, dsn: str, min_conn: int = 1, max_conn: int = 10,
                 acquire_timeout: Optional[float] = None):
        self._dsn = dsn
        self._min_conn = min_conn
        self._max_conn = max_conn
        self._acquire_timeout = acquire_timeout
        # getconn() raises instead of blocking when every connection is out
        self._slots = threading.BoundedSemaphore(max_conn)
        self._pool: Optional[ThreadedConnectionPool] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self) -> "StorePool":
        """Create the pool and verify the database answers.

        Raises:
            StoreUnavailableError: the pool could not be created or pinged.
        """
        with self._lock:
            if self._pool is not None:
                return self
            try:
                self._pool = ThreadedConnectionPool(
                    self._min_conn, self._max_conn, self._dsn)
            except psycopg2.Error as exc:
                raise StoreUnavailableError(
                    "Unable to create connection pool: {}".format(exc)) from exc

        try:
            self.ping()
        except StoreQueryError as exc:
            self.close()
            raise StoreUnavailableError(
                "Could not ping database: {}".format(exc)) from exc

        logger.info(
            "Created PG pool (min=%d, max=%d)", self._min_conn, self._max_conn)
        return self

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Borrow a connection; it is returned to the pool on exit.

        Blocks while all max_conn connections are borrowed, up to
        acquire_timeout seconds (forever when None).
        """
        pool = self._pool
        if pool is None:
            raise StoreQueryError("Connection pool is not open")
        if not self._slots.acquire(timeout=self._acquire_timeout):
            raise StoreQueryError(
                "Timed out after {}s waiting for a pooled connection".format(
                    self._acquire_timeout))
        try:
            try:
                conn = pool.getconn()
            except psycopg2.Error as exc:
                raise StoreQueryError(
                    "Could not acquire connection: {}".format(exc)) from exc
            try:
                yield conn
            finally:
                # Broken connections are discarded instead of recycled
                pool.putconn(conn, close=bool(conn.closed))
        finally:
            self._slots.release()

    def query_scalar(self, sql: str) -> Any:
        """Run a read-only query and return the first column of the first row."""
        try:
            with self.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(sql)
                    row = cur.fetchone()
        except psycopg2.Error as exc:
            raise StoreQueryError(
                "Query failed: {}".format(exc), query=sql) from exc
        return row[0] if row else None

    def ping(self) -> None:
        self.query_scalar(PING_SQL)

    def fetch_version(self) -> str:
        """Return the server's ``version()`` string."""
        version = self.query_scalar(VERSION_SQL)
        if version is None:
            raise StoreQueryError("version() returned no rows", query=VERSION_SQL)
        return str(version)

    def close(self) -> None:
        """Close every pooled connection.  Safe to call more than once."""
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is None:
            return
        try:
            pool.closeall()
        except psycopg2.Error as exc:
            logger.warning("Error closing PG pool: %s", exc)
        else:
            logger.info("PG pool closed")

    def __repr__(self) -> str:
        return "<StorePool open={} min={} max={}>".format(
            self.is_open, self._min_conn, self._max_conn)


def open_store(config) -> StorePool:
    """Build and open the pool described by a ServerConfig."""
    return StorePool(
        config.database_url,
        min_conn=config.pool_min_conn,
        max_conn=config.pool_max_conn,
        acquire_timeout=config.socket_timeout,
    ).open()
