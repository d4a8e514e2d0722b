import asyncio
import json
import traceback
import weakref
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import wraps
from typing import Any

import asyncpg
import structlog

from polyblog.config import DatabaseConfig
from polyblog.errors import PoolNotFoundError

logger = structlog.get_logger("polyblog.db_context")

# Context variable to store the current database connection (only one per context)
_current_connection: ContextVar[asyncpg.Connection | None] = ContextVar(
    "current_connection", default=None
)
_db_pools: dict[str, asyncpg.Pool] = {}
# One creation lock per event loop; an asyncio.Lock only works on the loop it first waits on
_pool_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock] = (
    weakref.WeakKeyDictionary()
)


def _pool_lock() -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    lock = _pool_locks.get(loop)
    if lock is None:
        lock = _pool_locks[loop] = asyncio.Lock()
    return lock


async def init_connection(conn: asyncpg.Connection):
    """Decode json/jsonb columns to Python objects on every pooled connection"""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name, encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
        )


@dataclass
class QueryLog:
    """Represents a logged query"""

    query: str
    params: list[Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    stack_trace: str | None = None

    def __repr__(self) -> str:
        return f"QueryLog(query={self.query!r}, params={self.params!r}, timestamp={self.timestamp})"


class QueryTracker:
    """Tracks queries executed during a context"""

    def __init__(self):
        self.queries: list[QueryLog] = []
        self._enabled: bool = False

    def enable(self):
        self._enabled = True

    def disable(self):
        self._enabled = False

    def is_enabled(self) -> bool:
        return self._enabled

    def log_query(self, query: str, params: list[Any], stack_trace: str | None = None):
        """Log a query with its parameters and optional stack trace"""
        if self._enabled:
            self.queries.append(
                QueryLog(query=query, params=list(params), stack_trace=stack_trace)
            )

    def get_queries(self) -> list[QueryLog]:
        """Get all logged queries"""
        return self.queries.copy()

    def clear(self):
        self.queries.clear()

    def count(self) -> int:
        return len(self.queries)

    def to_dict(self) -> list[dict[str, Any]]:
        """Convert logged queries to a list of dictionaries"""
        return [
            {
                "query": log.query,
                "params": log.params,
                "timestamp": log.timestamp.isoformat(),
                "stack_trace": log.stack_trace,
            }
            for log in self.queries
        ]


# Context variable to store the query tracker
_query_tracker: ContextVar[QueryTracker | None] = ContextVar(
    "query_tracker", default=None
)


class DatabaseManager:
    """Manages named, long-lived database pools and connections.

    One pool exists per name for the life of the process; repositories
    look their pool up by name instead of opening their own.
    """

    @classmethod
    async def add_pool(cls, name: str, pool: asyncpg.Pool):
        """Add a database pool with a name"""
        _db_pools[name] = pool

    @classmethod
    async def get_pool(cls, name: str = "default") -> asyncpg.Pool:
        """Get a database pool by name"""
        if name not in _db_pools:
            raise PoolNotFoundError(f"Database pool '{name}' not found")
        return _db_pools[name]

    @classmethod
    async def get_or_create_pool(
        cls, name: str, config: DatabaseConfig | None = None
    ) -> asyncpg.Pool:
        """Return the pool registered under `name`, creating it once from `config`"""
        if name in _db_pools:
            return _db_pools[name]

        async with _pool_lock():
            if name in _db_pools:
                return _db_pools[name]
            resolved = (config or DatabaseConfig()).resolve()
            pool = await asyncpg.create_pool(**resolved.pool_kwargs(), init=init_connection)
            _db_pools[name] = pool
            logger.info(
                "pool_created",
                pool=name,
                host=resolved.host,
                database=resolved.database,
                max_size=resolved.max_connections,
            )
            return pool

    @classmethod
    async def close_pool(cls, name: str = "default"):
        """Close and forget a pool; closing an unknown or closed pool is a no-op"""
        pool = _db_pools.pop(name, None)
        if pool is None:
            return
        await pool.close()
        logger.info("pool_closed", pool=name)

    @classmethod
    async def close_all(cls):
        for name in list(_db_pools):
            await cls.close_pool(name)

    @classmethod
    def get_current_connection(cls) -> asyncpg.Connection | None:
        """Get the current active connection from context"""
        return _current_connection.get()

    @classmethod
    def get_query_tracker(cls) -> QueryTracker | None:
        """Get the current query tracker from context"""
        return _query_tracker.get()

    @classmethod
    def log_query(cls, query: str, params: list[Any]):
        """Log a query to the current query tracker if available"""
        tracker = _query_tracker.get()
        if tracker:
            # Skip the last 2 frames: this method and the DatabaseOperations method
            relevant_stack = traceback.extract_stack()[:-2]
            stack_trace = "".join(traceback.format_list(relevant_stack))
            tracker.log_query(query, params, stack_trace)

    @classmethod
    @asynccontextmanager
    async def transaction(
        cls,
        db_name: str = "default",
        track_queries: bool = False,
        config: DatabaseConfig | None = None,
    ):
        """Context manager for database transactions.

        Repository calls made inside share one connection and commit or
        roll back together. Outside of it every repository call runs as
        its own single statement.

        Behavior:
        - If called within an existing transaction, it opens a nested transaction using the same connection.
        - Otherwise it acquires a connection from the named pool and starts a transaction.
          The connection is always released back to the pool when the context exits.

        Args:
            db_name: Name of the database pool to use
            track_queries: Whether to enable query tracking for this transaction
            config: When given, the named pool is created from it if it does not exist yet
        """
        current_conn = _current_connection.get()
        current_tracker = _query_tracker.get()

        if current_conn:
            async with current_conn.transaction():
                yield current_conn
        else:
            if config is not None:
                pool = await cls.get_or_create_pool(db_name, config)
            else:
                pool = await cls.get_pool(db_name)
            async with pool.acquire() as conn, conn.transaction():
                conn_token = _current_connection.set(conn)

                tracker_token = None
                if track_queries and not current_tracker:
                    tracker = QueryTracker()
                    tracker.enable()
                    tracker_token = _query_tracker.set(tracker)

                try:
                    yield conn
                finally:
                    _current_connection.reset(conn_token)
                    if tracker_token:
                        _query_tracker.reset(tracker_token)

    @classmethod
    @asynccontextmanager
    async def track_queries(cls):
        """Context manager for query tracking.

        async with DatabaseManager.track_queries() as tracker:
            await posts.update({"id": 7}, {"status": "translated"})
            queries = tracker.get_queries()
        """
        current_tracker = _query_tracker.get()

        if current_tracker:
            was_enabled = current_tracker.is_enabled()
            current_tracker.enable()
            try:
                yield current_tracker
            finally:
                if not was_enabled:
                    current_tracker.disable()
        else:
            tracker = QueryTracker()
            tracker.enable()
            token = _query_tracker.set(tracker)
            try:
                yield tracker
            finally:
                _query_tracker.reset(token)


def transactional(
    db_name: str = "default",
    query_logs: bool = False,
    config: DatabaseConfig | None = None,
):
    """Decorator to run a function within a database transaction.

    Args:
        db_name: Name of the database pool to use
        query_logs: Whether to enable query tracking for this transaction
        config: Creates the named pool on first use, as RepositoryConfig.database does

    Example:
        @transactional()
        async def import_project(data, source):
            return await ProjectRepository().register(data, source)
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            async with DatabaseManager.transaction(
                db_name, track_queries=query_logs, config=config
            ):
                return await func(*args, **kwargs)

        return wrapper

    return decorator
