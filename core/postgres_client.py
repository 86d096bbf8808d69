"""
PostgreSQL Client Wrapper for the SMS platform

Centralized asyncpg connection-pool wrapper shared by all repositories.
Provides environment-driven configuration, JSONB codecs and a consistent
transaction pattern so that several repositories can join one unit of work.

Usage:
    from core.postgres_client import get_postgres_client

    db = await get_postgres_client("campaign_service")

    rows = await db.query("SELECT * FROM sms.campaigns WHERE owner_id = $1", [owner_id])

    async with db.transaction() as conn:
        await conn.execute("UPDATE ...")
        await other_repository.write(..., conn=conn)
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import InfraConfig

logger = logging.getLogger(__name__)


class ExtendedJSONEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and datetime types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def json_dumps(obj):
    """JSON dumps with Decimal and datetime support"""
    return json.dumps(obj, cls=ExtendedJSONEncoder)


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Register JSON codecs so JSONB columns round-trip as dicts"""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json_dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


class PostgresClient:
    """
    PostgreSQL client wrapper around an asyncpg pool.

    - Environment / InfraConfig driven host, port and credentials
    - Lazily created pool (``initialize``)
    - ``transaction()`` yields a connection inside a transaction
    - ``connection(conn)`` reuses a caller-supplied connection so repository
      methods can take part in an outer transaction
    """

    def __init__(
        self,
        service_name: str,
        config: Optional[InfraConfig] = None,
        dsn: Optional[str] = None,
    ):
        self.service_name = service_name
        self.config = config or InfraConfig.from_env()
        self.dsn = dsn
        self._pool: Optional[asyncpg.Pool] = None

        logger.info(
            f"PostgreSQL client configured for {service_name}: "
            f"{self.config.postgres_host}:{self.config.postgres_port}/{self.config.postgres_db}"
        )

    async def initialize(self) -> None:
        """Create the connection pool"""
        if self._pool is not None:
            return

        self._pool = await self._create_pool()
        logger.info(f"PostgreSQL pool ready for {self.service_name}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((OSError, asyncpg.CannotConnectNowError)),
        reraise=True,
    )
    async def _create_pool(self) -> asyncpg.Pool:
        """Create the pool, retrying while the server is not accepting connections"""
        if self.dsn:
            return await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.config.postgres_pool_min,
                max_size=self.config.postgres_pool_max,
                init=_init_connection,
            )
        return await asyncpg.create_pool(
            host=self.config.postgres_host,
            port=self.config.postgres_port,
            user=self.config.postgres_user,
            password=self.config.postgres_password,
            database=self.config.postgres_db,
            min_size=self.config.postgres_pool_min,
            max_size=self.config.postgres_pool_max,
            init=_init_connection,
        )

    @property
    def pool(self) -> asyncpg.Pool:
        """Get underlying asyncpg pool"""
        if self._pool is None:
            raise RuntimeError("PostgreSQL pool not initialized. Call initialize() first.")
        return self._pool

    @asynccontextmanager
    async def connection(
        self, conn: Optional[asyncpg.Connection] = None
    ) -> AsyncIterator[asyncpg.Connection]:
        """Yield the given connection, or acquire one from the pool"""
        if conn is not None:
            yield conn
            return
        async with self.pool.acquire() as acquired:
            yield acquired

    @asynccontextmanager
    async def transaction(
        self, conn: Optional[asyncpg.Connection] = None
    ) -> AsyncIterator[asyncpg.Connection]:
        """
        Run a block inside a transaction.

        When ``conn`` is supplied the block runs in a savepoint of the
        caller's transaction.
        """
        async with self.connection(conn) as c:
            async with c.transaction():
                yield c

    async def query(
        self,
        sql: str,
        params: Optional[List[Any]] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        async with self.connection(conn) as c:
            rows = await c.fetch(sql, *(params or []))
        return [dict(row) for row in rows]

    async def query_row(
        self,
        sql: str,
        params: Optional[List[Any]] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Optional[Dict[str, Any]]:
        """Execute query and return single row"""
        async with self.connection(conn) as c:
            row = await c.fetchrow(sql, *(params or []))
        return dict(row) if row else None

    async def query_value(
        self,
        sql: str,
        params: Optional[List[Any]] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Any:
        """Execute query and return the first column of the first row"""
        async with self.connection(conn) as c:
            return await c.fetchval(sql, *(params or []))

    async def execute(
        self,
        sql: str,
        params: Optional[List[Any]] = None,
        conn: Optional[asyncpg.Connection] = None,
    ) -> int:
        """Execute SQL statement and return the number of affected rows"""
        async with self.connection(conn) as c:
            status = await c.execute(sql, *(params or []))
        # asyncpg returns the command tag, e.g. "UPDATE 3"
        try:
            return int(status.split()[-1])
        except (ValueError, IndexError):
            return 0

    async def execute_many(
        self,
        sql: str,
        params_list: List[List[Any]],
        conn: Optional[asyncpg.Connection] = None,
    ) -> None:
        """Execute SQL statement with multiple parameter sets"""
        async with self.connection(conn) as c:
            await c.executemany(sql, params_list)

    async def health_check(self) -> bool:
        """Check database health"""
        try:
            return await self.query_value("SELECT 1") == 1
        except Exception as e:
            logger.error(f"PostgreSQL health check failed: {e}")
            return False

    async def close(self) -> None:
        """Close the pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info(f"PostgreSQL pool closed for {self.service_name}")


# Singleton instances per service
_postgres_clients: Dict[str, PostgresClient] = {}


async def get_postgres_client(
    service_name: str,
    config: Optional[InfraConfig] = None,
) -> PostgresClient:
    """
    Get or create an initialized PostgreSQL client for a service.

    Args:
        service_name: Service name
        config: Optional infrastructure config override

    Returns:
        PostgresClient instance
    """
    global _postgres_clients

    if service_name not in _postgres_clients:
        client = PostgresClient(service_name=service_name, config=config)
        await client.initialize()
        _postgres_clients[service_name] = client

    return _postgres_clients[service_name]


async def close_postgres_clients() -> None:
    """Close every pool created through get_postgres_client"""
    global _postgres_clients
    for client in list(_postgres_clients.values()):
        await client.close()
    _postgres_clients = {}


__all__ = [
    "PostgresClient",
    "get_postgres_client",
    "close_postgres_clients",
    "json_dumps",
]
