"""
PostgreSQL Client Wrapper

Centralized PostgreSQL access built on an asyncpg connection pool.
Provides environment-based configuration and a consistent query API
(list-style positional params, dict rows).

Usage:
    from core.postgres_client import PostgresClientWrapper

    db = PostgresClientWrapper("offer_service")
    rows = await db.query("SELECT * FROM offers.offers WHERE status = $1", ["draft"])

    async with db.transaction() as tx:
        await tx.execute("UPDATE ...", [...])
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

from core.config import InfraConfig

logger = logging.getLogger(__name__)


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode json/jsonb columns into Python objects"""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


class _ConnectionScope:
    """Query API bound to a single connection (used inside transactions)"""

    def __init__(self, conn: asyncpg.Connection):
        self._conn = conn

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        rows = await self._conn.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        row = await self._conn.fetchrow(sql, *(params or []))
        return dict(row) if row else None

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> int:
        status = await self._conn.execute(sql, *(params or []))
        return _affected_rows(status)


def _affected_rows(status: str) -> int:
    """Parse the row count out of an asyncpg command tag ("UPDATE 3")"""
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError, AttributeError):
        return 0


class PostgresClientWrapper:
    """
    PostgreSQL client wrapper around an asyncpg pool.

    The pool is created lazily on first use, so constructing the wrapper
    never touches the network.
    """

    def __init__(
        self,
        service_name: str,
        config: Optional[InfraConfig] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
    ):
        """
        Initialize PostgreSQL client wrapper.

        Args:
            service_name: Name of the service using this client
            config: Infrastructure config (defaults to environment)
            host: PostgreSQL host override
            port: PostgreSQL port override
            database: Database name override
        """
        config = config or InfraConfig.from_env()

        self.service_name = service_name
        self.host = host or config.postgres_host
        self.port = port or config.postgres_port
        self.database = database or config.postgres_db
        self.username = config.postgres_user
        self.password = config.postgres_password
        self.min_size = config.postgres_pool_min
        self.max_size = config.postgres_pool_max

        self._pool: Optional[asyncpg.Pool] = None

        logger.info(f"PostgreSQL client initialized for {service_name}: {self.host}:{self.port}/{self.database}")

    async def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.username,
                password=self.password,
                min_size=self.min_size,
                max_size=self.max_size,
                init=_init_connection,
            )
        return self._pool

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            return await _ConnectionScope(conn).query(sql, params)

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return single row"""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            return await _ConnectionScope(conn).query_row(sql, params)

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> int:
        """Execute SQL statement, returning the affected row count"""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            return await _ConnectionScope(conn).execute(sql, params)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_ConnectionScope]:
        """Run several statements in one transaction"""
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield _ConnectionScope(conn)

    async def close(self):
        """Close the pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
