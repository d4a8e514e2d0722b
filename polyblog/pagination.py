"""Pagination parameters, metadata and paginated results.

Metadata is derived on every listing call from a live count; it is never
stored. Field aliases give the camelCase shape API consumers expect,
e.g. `meta.model_dump(by_alias=True)["hasNextPage"]`.
"""

import math
import re
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

T = TypeVar("T")

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class PaginationParams(BaseModel):
    """Validated listing request"""

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    tenant_id: int | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def _parse_positive(value: Any) -> int | None:
    """Leading integer of a raw value ("3.7" -> 3, "12abc" -> 12), if positive"""
    if value is None:
        return None
    match = _LEADING_INT.match(str(value))
    if match is None:
        return None
    number = int(match.group(1))
    return number if number >= 1 else None


class PaginationQuery(BaseModel):
    """Page and page size as parsed from raw query-string values"""

    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def parse(
        cls,
        page: Any = None,
        page_size: Any = None,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> "PaginationQuery":
        """Never fails: bad pages become 1, bad sizes the default, sizes cap at 100"""
        parsed_page = _parse_positive(page) or 1
        parsed_size = _parse_positive(page_size) or default_page_size
        return cls(page=parsed_page, page_size=min(parsed_size, MAX_PAGE_SIZE))


class PaginationMeta(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_page: int
    total_pages: int
    total_items: int
    page_size: int
    has_next_page: bool
    has_previous_page: bool


def create_pagination_meta(
    current_page: int, page_size: int, total_items: int
) -> PaginationMeta:
    """Metadata for one page of a listing of `total_items` rows"""
    total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0
    return PaginationMeta(
        current_page=current_page,
        total_pages=total_pages,
        total_items=total_items,
        page_size=page_size,
        has_next_page=current_page < total_pages,
        has_previous_page=current_page > 1,
    )


class PaginatedResult(BaseModel, Generic[T]):
    """One page of data plus its metadata.

    `len(data)` may differ from `pagination.page_size`: a caller can
    fetch extra rows for layout while reporting a smaller page size.
    """

    data: list[T]
    pagination: PaginationMeta
