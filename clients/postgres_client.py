"""
PostgreSQL access for the invoicing engine.

One ThreadedConnectionPool per database URL, shared by every client built
for that URL. Each connection checked out of the pool is stamped with
app.current_shop from the merchant contextvar, and the schema's row level
security policies filter on it. Without a merchant in context the setting
is empty and every shop-scoped table reads as empty.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

from utils.merchant_context import _current_shop

logger = logging.getLogger(__name__)

Params = Tuple | Dict | None


class PostgresClient:
    """
    Row-dict queries plus explicit transactions, all scoped to the current shop.

    Single statements (execute*, execute_returning) commit on their own.
    Work that must be atomic, such as reading and advancing an invoice
    counter under SELECT ... FOR UPDATE, goes through transaction():

        with merchant_context(shop):
            with db.transaction() as cur:
                cur.execute("SELECT ... FOR UPDATE", (...))
                cur.execute("UPDATE ...", (...))
    """

    _pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.Lock()
    _jsonb_registered = False

    def __init__(self, database_url: str, min_connections: int = 2, max_connections: int = 20):
        self._database_url = database_url
        self._min_connections = min_connections
        self._max_connections = max_connections
        self._pool()

    def _pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        with self._pools_lock:
            pool = self._pools.get(self._database_url)
            if pool is None:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._min_connections,
                    maxconn=self._max_connections,
                    dsn=self._database_url,
                    connect_timeout=30,
                )
                if not PostgresClient._jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    PostgresClient._jsonb_registered = True
                self._pools[self._database_url] = pool
                logger.info(
                    "Connection pool created (%d-%d connections)",
                    self._min_connections, self._max_connections
                )
            return pool

    @contextmanager
    def get_connection(self):
        """Borrow a pooled connection stamped with the current shop."""
        pool = self._pool()
        conn = pool.getconn()
        if conn is None:
            raise RuntimeError("Could not get connection from pool")

        try:
            with conn.cursor() as cur:
                # '' matches no shop column, so RLS returns nothing
                cur.execute("SET app.current_shop = %s", (_current_shop.get() or "",))
            yield conn
        except Exception:
            # Never hand an aborted transaction back to the pool
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[psycopg2.extras.RealDictCursor]:
        """
        Run several statements as one atomic unit.

        Yields a dict cursor; commits on normal exit, rolls back and
        re-raises otherwise. Row locks live until then.
        """
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                yield cur
            conn.commit()

    def convert_params(self, params: Params) -> Params:
        """UUIDs to strings, at any depth of tuple/list/dict nesting."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, (list, tuple)):
                return type(value)(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(params)

    def execute(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """Run one statement; rows as dicts, [] for statements without a result set."""
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, self.convert_params(params))
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
            conn.commit()
            return rows

    def execute_single(self, query: str, params: Params = None) -> Dict[str, Any] | None:
        rows = self.execute(query, params)
        return rows[0] if rows else None

    def execute_scalar(self, query: str, params: Params = None) -> Any:
        """First column of the first row, or None."""
        row = self.execute_single(query, params)
        return next(iter(row.values())) if row else None

    def execute_returning(self, query: str, params: Params = None) -> List[Dict[str, Any]]:
        """INSERT/UPDATE/DELETE ... RETURNING; same as execute, named for intent."""
        return self.execute(query, params)

    def close(self) -> None:
        """Close this URL's pool; other clients on the same URL lose it too."""
        with self._pools_lock:
            pool = self._pools.pop(self._database_url, None)
        if pool is not None:
            pool.closeall()
            logger.info("Connection pool closed")
