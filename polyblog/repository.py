"""Repository class"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

import asyncpg
import structlog
from pydantic import BaseModel, Field

from polyblog.config import DatabaseConfig
from polyblog.database_operations import DatabaseOperations
from polyblog.db_context import DatabaseManager
from polyblog.entities import BaseEntity
from polyblog.entity_mapper import EntityMapper
from polyblog.errors import (
    EmptyUpdateError,
    FilterRequiredError,
    ImmutableColumnError,
    PoolNotFoundError,
    RecordNotFoundError,
    RepositoryError,
    StoreError,
)
from polyblog.query_builder import QueryBuilder, SortSpec, SqlFragment

logger = structlog.get_logger("polyblog.repository")

FilterInput = Mapping[str, Any] | BaseModel | None
DataInput = Mapping[str, Any] | BaseModel

# Failures raised by the driver, the network or the pool registry.
# Caller mistakes are ValidationErrors and pass through unwrapped.
_STORE_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    TimeoutError,
    PoolNotFoundError,
)


class RepositoryConfig(BaseModel):
    """Configuration options for Repository"""

    model_config = {"arbitrary_types_allowed": True}

    db_name: str = Field(default="default", description="Name of the shared pool")
    db_schema: str | None = Field(default=None, description="Database schema name")
    database: DatabaseConfig | None = Field(
        default=None,
        description="When set, the named pool is created from it on first use",
    )


def _plain(value: Any) -> Any:
    """Turn nested pydantic models into plain data the json codec can encode"""
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


def _row_count(status: str) -> int:
    """Affected rows from a command status such as "DELETE 3" """
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


T = TypeVar("T", bound=BaseEntity)


class Repository(Generic[T]):
    """Generic relational adapter for one (entity, table) pair.

    Every operation is a single statement against the shared pool named
    by `config.db_name`. Driver failures surface as StoreError; caller
    mistakes surface as ValidationError subclasses before anything runs.
    """

    def __init__(
        self,
        entity_class: type[T],
        table_name: str | None = None,
        config: RepositoryConfig | None = None,
    ):
        if entity_class is None:
            raise ValueError("entity_class is required")
        if table_name is None:
            raise ValueError("table_name is required")

        self.entity_class = entity_class
        self.table_name = table_name
        self.config = config or RepositoryConfig()
        self._qualified_table_name = (
            f"{self.config.db_schema}.{table_name}"
            if self.config.db_schema
            else table_name
        )
        self.columns = entity_class.columns()
        self._has_created_at = "created_at" in self.columns
        self._has_updated_at = "updated_at" in self.columns

        # Composition: Inject dependencies
        self.db_ops = DatabaseOperations(self._get_pool)
        self.entity_mapper = EntityMapper(entity_class)

    async def _get_pool(self) -> asyncpg.Pool:
        if self.config.database is not None:
            return await DatabaseManager.get_or_create_pool(
                self.config.db_name, self.config.database
            )
        return await DatabaseManager.get_pool(self.config.db_name)

    def query(self) -> QueryBuilder:
        """A fresh builder bound to this table and its column allow-list"""
        return QueryBuilder(self._qualified_table_name, self.columns)

    @contextmanager
    def _store_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except RepositoryError:
            raise
        except _STORE_ERRORS as e:
            logger.warning(
                "store_error", table=self._qualified_table_name, action=action, error=str(e)
            )
            raise StoreError(f"Failed to {action}: {e}") from e

    @staticmethod
    def _filter_dict(filter: FilterInput) -> dict[str, Any]:
        if filter is None:
            return {}
        if isinstance(filter, BaseModel):
            return filter.model_dump()
        return dict(filter)

    @staticmethod
    def _data_dict(data: DataInput, *, exclude_unset: bool) -> dict[str, Any]:
        if isinstance(data, BaseModel):
            fields = data.model_dump(exclude_unset=exclude_unset)
        else:
            fields = {k: _plain(v) for k, v in dict(data).items()}
        if "id" in fields:
            raise ImmutableColumnError("The primary key 'id' is assigned by the store")
        return fields

    def _apply_automatic_fields(
        self, data: dict[str, Any], is_create: bool = True
    ) -> dict[str, Any]:
        """Automatically handle created_at and updated_at fields"""
        current_time = datetime.now(UTC)

        if is_create and self._has_created_at and data.get("created_at") is None:
            data["created_at"] = current_time
        if self._has_updated_at and data.get("updated_at") is None:
            data["updated_at"] = current_time

        return data

    async def _fetch_entities(self, fragment: SqlFragment) -> list[T]:
        rows = await self.db_ops.fetch_all(fragment.text, fragment.params)
        return self.entity_mapper.map_rows_to_entities(rows)

    # CRUD operations
    async def find_one(self, filter: FilterInput = None) -> T | None:
        """First entity matching the filter, or None when nothing matches"""
        with self._store_errors("find record"):
            query, params = self.query().filter_by(self._filter_dict(filter)).limit(1).build()
            row = await self.db_ops.fetch_one(query, params)
            if row is None:
                return None
            return self.entity_mapper.map_row_to_entity(row)

    async def find_many(
        self,
        filter: FilterInput = None,
        sort: SortSpec | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[T]:
        """Entities matching the filter.

        Without `limit` the full matching set is returned. Without `sort`
        the order is whatever the store returns.
        """
        with self._store_errors("find records"):
            builder = self.query().filter_by(self._filter_dict(filter)).sort_by(sort)
            if limit is not None:
                builder = builder.limit(limit)
            if offset is not None:
                builder = builder.offset(offset)
            return await self._fetch_entities(builder.build())

    async def count(self, filter: FilterInput = None) -> int:
        """Number of rows matching the filter"""
        with self._store_errors("count records"):
            query, params = self.query().filter_by(self._filter_dict(filter)).build_count()
            result = await self.db_ops.fetch_value(query, params)
            return result or 0

    async def create(self, data: DataInput) -> T:
        """Insert a row and return it as stored, defaults and id included"""
        with self._store_errors("create record"):
            fields = self._data_dict(data, exclude_unset=False)
            fields = self._apply_automatic_fields(fields, is_create=True)

            query, params = self.query().build_insert(fields)
            row = await self.db_ops.fetch_one(query, params)
            if row is None:
                raise StoreError("Failed to create record")
            return self.entity_mapper.map_row_to_entity(row)

    async def _run_update(self, filter: FilterInput, data: DataInput) -> list[T]:
        builder = self.query().filter_by(self._filter_dict(filter))
        if not builder.has_conditions():
            raise FilterRequiredError("Where clause is required for update")

        # Only explicitly set fields are written, so None can still clear a column
        fields = self._data_dict(data, exclude_unset=True)
        if not fields:
            raise EmptyUpdateError("Update data is required")
        fields = self._apply_automatic_fields(fields, is_create=False)

        return await self._fetch_entities(builder.build_update(fields))

    async def update(self, filter: FilterInput, data: DataInput) -> T:
        """Update the rows matching a mandatory filter and return the updated row.

        A filter matching several rows updates all of them in the one
        statement; the first returned row is the result. Use update_many
        to get every updated row back.
        """
        with self._store_errors("update record"):
            entities = await self._run_update(filter, data)
            if not entities:
                raise RecordNotFoundError("Record not found or not updated")
            if len(entities) > 1:
                logger.warning(
                    "update_matched_multiple_rows",
                    table=self._qualified_table_name,
                    rows=len(entities),
                )
            return entities[0]

    async def update_many(self, filter: FilterInput, data: DataInput) -> list[T]:
        """Update every row matching a mandatory filter and return them all"""
        with self._store_errors("update records"):
            return await self._run_update(filter, data)

    async def delete(self, filter: FilterInput) -> bool:
        """Delete the rows matching a mandatory filter; True if any were removed"""
        with self._store_errors("delete record"):
            builder = self.query().filter_by(self._filter_dict(filter))
            if not builder.has_conditions():
                raise FilterRequiredError("Where clause is required for delete")

            query, params = builder.build_delete()
            result = await self.db_ops.execute_query(query, params)
            return _row_count(result) > 0

    async def close(self):
        """Release this repository's pool. Safe to call more than once."""
        await DatabaseManager.close_pool(self.config.db_name)

    @staticmethod
    def get_query_tracker():
        """Get the current query tracker if query tracking is enabled."""
        return DatabaseManager.get_query_tracker()
