"""
QueryBuilder for the statements a repository issues.
The goal is to produce SQL text plus bound parameters without execution.
Values never enter the SQL text; identifiers are checked against the
entity's column allow-list.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any, NamedTuple

from polyblog.entities import Field, SortOrder
from polyblog.errors import (
    EmptyUpdateError,
    FilterRequiredError,
    UnknownColumnError,
    ValidationError,
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PLACEHOLDER = re.compile(r"\$(\d+)")

SortSpec = Mapping[str, Any] | Iterable[tuple[str, Any]]


class SqlFragment(NamedTuple):
    """SQL text with its positional parameters, in placeholder order"""

    text: str
    params: list[Any]

    def shift(self, offset: int) -> "SqlFragment":
        """Renumber every $n placeholder to $n+offset.

        Used when this fragment follows `offset` other parameters in the
        same statement, e.g. a WHERE clause after an UPDATE's SET clause.
        """
        if offset == 0:
            return SqlFragment(self.text, list(self.params))

        def replace_param(match):
            return f"${int(match.group(1)) + offset}"

        return SqlFragment(_PLACEHOLDER.sub(replace_param, self.text), list(self.params))


def _sort_pairs(sort: SortSpec | None) -> list[tuple[str, Any]]:
    if not sort:
        return []
    if isinstance(sort, Mapping):
        return list(sort.items())
    return [(column, direction) for column, direction in sort]


class QueryBuilder:
    """
    Immutable query builder for SELECT, COUNT, INSERT, UPDATE and DELETE.

    Usage:
        builder = QueryBuilder("posts", columns=Post.columns())
        query, params = builder.filter_by({"project_id": 1}).order_by_desc("created_at").build()
    """

    def __init__(self, table_name: str, columns: Iterable[str] | None = None):
        self.table_name = table_name
        self.columns = frozenset(columns) if columns is not None else None
        self.select_fields = "*"
        self.where_conditions: list[str] = []
        self.params: list[Any] = []
        self.order_by_parts: list[str] = []
        self.limit_count: int | None = None
        self.offset_count: int | None = None

    def _clone(self) -> "QueryBuilder":
        """Create a copy of the current QueryBuilder instance"""
        new_builder = QueryBuilder(self.table_name)
        new_builder.columns = self.columns
        new_builder.select_fields = self.select_fields
        new_builder.where_conditions = self.where_conditions.copy()
        new_builder.params = self.params.copy()
        new_builder.order_by_parts = self.order_by_parts.copy()
        new_builder.limit_count = self.limit_count
        new_builder.offset_count = self.offset_count
        return new_builder

    def _check_column(self, column: Any) -> str:
        """Reject identifiers that are malformed or outside the allow-list"""
        if isinstance(column, Field):
            column = column.column
        if not isinstance(column, str) or not _IDENTIFIER.match(column):
            raise UnknownColumnError(f"Invalid column name: {column!r}")
        if self.columns is not None and column not in self.columns:
            raise UnknownColumnError(
                f"Unknown column '{column}' for table {self.table_name}"
            )
        return column

    @staticmethod
    def _check_count(name: str, count: int) -> int:
        try:
            count = int(count)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer, got {count!r}") from None
        if count < 0:
            raise ValidationError(f"{name} must be 0 or greater")
        return count

    def select(self, *fields: str) -> "QueryBuilder":
        """Set the SELECT columns; defaults to * when none is provided."""
        new_builder = self._clone()
        if not fields:
            new_builder.select_fields = "*"
        else:
            new_builder.select_fields = ", ".join(
                self._check_column(field) for field in fields
            )
        return new_builder

    def where(self, field: str | Field, value: Any) -> "QueryBuilder":
        """Add an equality condition. A None value means "ignore this column"."""
        column = self._check_column(field)
        if value is None:
            return self
        new_builder = self._clone()
        param_index = len(new_builder.params) + 1
        new_builder.where_conditions.append(f"{column} = ${param_index}")
        new_builder.params.append(value)
        return new_builder

    def filter_by(self, filter: Mapping[str, Any] | None) -> "QueryBuilder":
        """Add one equality condition per filter entry, in insertion order."""
        new_builder = self
        for field, value in (filter or {}).items():
            new_builder = new_builder.where(field, value)
        return new_builder

    def has_conditions(self) -> bool:
        return bool(self.where_conditions)

    def where_fragment(self) -> SqlFragment:
        """The WHERE predicate alone (without the keyword), numbered from $1"""
        return SqlFragment(" AND ".join(self.where_conditions), self.params.copy())

    def order_by(self, field: str | Field, direction: Any = SortOrder.ASC) -> "QueryBuilder":
        """Add ORDER BY for a field. Chain to add multiple fields."""
        new_builder = self._clone()
        column = self._check_column(field)
        new_builder.order_by_parts.append(f"{column} {SortOrder.parse(direction).value}")
        return new_builder

    def order_by_asc(self, field: str | Field) -> "QueryBuilder":
        return self.order_by(field, SortOrder.ASC)

    def order_by_desc(self, field: str | Field) -> "QueryBuilder":
        return self.order_by(field, SortOrder.DESC)

    def sort_by(self, sort: SortSpec | None) -> "QueryBuilder":
        """Apply (column, direction) pairs in the order given."""
        new_builder = self
        for field, direction in _sort_pairs(sort):
            new_builder = new_builder.order_by(field, direction)
        return new_builder

    def limit(self, count: int) -> "QueryBuilder":
        """Set the LIMIT clause"""
        new_builder = self._clone()
        new_builder.limit_count = self._check_count("limit", count)
        return new_builder

    def offset(self, count: int) -> "QueryBuilder":
        """Set the OFFSET clause"""
        new_builder = self._clone()
        new_builder.offset_count = self._check_count("offset", count)
        return new_builder

    def paginate(self, page: int, per_page: int = 10) -> "QueryBuilder":
        """
        Set pagination parameters using a page-based interface

        Args:
            page: Page number (1-based)
            per_page: Number of records per page (default: 10)

        Returns:
            QueryBuilder with LIMIT and OFFSET set for the specified page
        """
        if page < 1:
            raise ValidationError("Page number must be 1 or greater")
        if per_page < 1:
            raise ValidationError("Per page count must be 1 or greater")

        offset = (page - 1) * per_page
        return self.limit(per_page).offset(offset)

    def _where_clause(self) -> str:
        if not self.where_conditions:
            return ""
        return f" WHERE {' AND '.join(self.where_conditions)}"

    def build(self) -> SqlFragment:
        """Build the SELECT query: WHERE, ORDER BY, LIMIT, OFFSET in that order"""
        query_parts = [f"SELECT {self.select_fields} FROM {self.table_name}"]

        if self.where_conditions:
            query_parts.append(f"WHERE {' AND '.join(self.where_conditions)}")

        if self.order_by_parts:
            query_parts.append(f"ORDER BY {', '.join(self.order_by_parts)}")

        if self.limit_count is not None:
            query_parts.append(f"LIMIT {self.limit_count}")

        if self.offset_count is not None:
            query_parts.append(f"OFFSET {self.offset_count}")

        return SqlFragment(" ".join(query_parts), self.params.copy())

    def build_count(self) -> SqlFragment:
        """Build a COUNT(*) query sharing this builder's WHERE predicate"""
        return SqlFragment(
            f"SELECT COUNT(*) FROM {self.table_name}{self._where_clause()}",
            self.params.copy(),
        )

    def build_insert(self, data: Mapping[str, Any]) -> SqlFragment:
        """Build INSERT ... RETURNING * for the given column values"""
        columns = [self._check_column(column) for column in data]
        if not columns:
            return SqlFragment(
                f"INSERT INTO {self.table_name} DEFAULT VALUES RETURNING *", []
            )

        placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
        return SqlFragment(
            f"INSERT INTO {self.table_name} ({', '.join(columns)}) "
            f"VALUES ({placeholders}) RETURNING *",
            list(data.values()),
        )

    def build_update(self, data: Mapping[str, Any]) -> SqlFragment:
        """Build UPDATE ... SET ... WHERE ... RETURNING *.

        SET parameters take $1..$m; the WHERE placeholders are shifted to
        continue after them.
        """
        if not self.where_conditions:
            raise FilterRequiredError("Where clause is required for update")
        if not data:
            raise EmptyUpdateError("Update data is required")

        columns = [self._check_column(column) for column in data]
        set_clause = ", ".join(f"{column} = ${i + 1}" for i, column in enumerate(columns))
        where = self.where_fragment().shift(len(columns))

        return SqlFragment(
            f"UPDATE {self.table_name} SET {set_clause} WHERE {where.text} RETURNING *",
            list(data.values()) + where.params,
        )

    def build_delete(self) -> SqlFragment:
        """Build DELETE ... WHERE ...; an unfiltered delete is refused"""
        if not self.where_conditions:
            raise FilterRequiredError("Where clause is required for delete")
        return SqlFragment(
            f"DELETE FROM {self.table_name}{self._where_clause()}", self.params.copy()
        )

    def to_sql(self) -> str:
        """Return only the SQL query string without parameters"""
        query, _ = self.build()
        return query

    def __str__(self) -> str:
        """String representation showing the built query"""
        query, params = self.build()
        return f"Query: {query}\nParams: {params}"


def build_where(
    filter: Mapping[str, Any] | None,
    start: int = 1,
    columns: Iterable[str] | None = None,
) -> SqlFragment:
    """Equality predicate for a filter mapping, placeholders numbered from `start`.

    Entries whose value is None are skipped; when none qualify the text is empty.
    """
    fragment = QueryBuilder("", columns).filter_by(filter).where_fragment()
    return fragment.shift(start - 1)


def build_order_by(sort: SortSpec | None, columns: Iterable[str] | None = None) -> str:
    """ORDER BY body ("a ASC, b DESC") for a sort spec; empty when there is none."""
    return ", ".join(QueryBuilder("", columns).sort_by(sort).order_by_parts)
