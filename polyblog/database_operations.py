from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import asyncpg
import structlog

from polyblog.db_context import DatabaseManager

logger = structlog.get_logger("polyblog.database_operations")

PoolProvider = Callable[[], Awaitable[asyncpg.Pool]]


class DatabaseOperations:
    """Composition class for database operations.

    Each call is one statement: it runs on the current transaction's
    connection when there is one, otherwise on a connection checked out
    of the pool for just that statement.
    """

    def __init__(self, pool_provider: PoolProvider):
        self._pool_provider = pool_provider

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        conn = DatabaseManager.get_current_connection()
        if conn is not None:
            yield conn
            return
        pool = await self._pool_provider()
        async with pool.acquire() as conn:
            yield conn

    @staticmethod
    def _log(query: str, params: list[Any]):
        logger.debug("query", sql=query, param_count=len(params))
        DatabaseManager.log_query(query, params)

    async def fetch_all(self, query: str, params: list[Any]) -> list[Any]:
        """Execute query and fetch all rows"""
        async with self.connection() as conn:
            self._log(query, params)
            return await conn.fetch(query, *params)

    async def fetch_one(self, query: str, params: list[Any]) -> Any:
        """Execute a query and fetch one row"""
        async with self.connection() as conn:
            self._log(query, params)
            return await conn.fetchrow(query, *params)

    async def fetch_value(self, query: str, params: list[Any]) -> Any:
        """Execute query and fetch single value"""
        async with self.connection() as conn:
            self._log(query, params)
            return await conn.fetchval(query, *params)

    async def execute_query(self, query: str, params: list[Any]) -> str:
        """Execute query and return the status string, e.g. "DELETE 3" """
        async with self.connection() as conn:
            self._log(query, params)
            return await conn.execute(query, *params)
