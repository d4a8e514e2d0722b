"""Per-project page sizes for post listings.

Some projects list more posts per page than the default, and a project
with a featured-post layout shows one extra post on its first page while
its pagination still reports the normal page size.
"""

from pydantic import BaseModel, ConfigDict, Field

from polyblog.entities import Post, Project
from polyblog.pagination import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    PaginatedResult,
    PaginationParams,
    create_pagination_meta,
)
from polyblog.post_repository import PostRepository


class PageSizePlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    fetch_size: int
    reported_size: int


class PageSizePolicy(BaseModel):
    default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    tenant_page_sizes: dict[str, int] = {"mimo": 15, "iotex": 15}
    featured_tenants: frozenset[str] = frozenset({"iotex"})

    def default_for(self, tenant: str | None) -> int:
        if tenant is None:
            return self.default_page_size
        return self.tenant_page_sizes.get(tenant, self.default_page_size)

    def resolve_page_size(
        self, tenant: str | None, page: int, requested_size: int | None = None
    ) -> PageSizePlan:
        default = self.default_for(tenant)
        if requested_size is None:
            size = default
        else:
            size = max(1, min(int(requested_size), MAX_PAGE_SIZE))

        if tenant in self.featured_tenants and page <= 1 and size == default:
            return PageSizePlan(
                fetch_size=min(size + 1, MAX_PAGE_SIZE), reported_size=size
            )
        return PageSizePlan(fetch_size=size, reported_size=size)


DEFAULT_POLICY = PageSizePolicy()


def resolve_page_size(
    tenant: str | None,
    page: int,
    requested_size: int | None = None,
    policy: PageSizePolicy | None = None,
) -> PageSizePlan:
    """How many posts to fetch and how many to report for one listing page"""
    return (policy or DEFAULT_POLICY).resolve_page_size(tenant, page, requested_size)


async def fetch_listing(
    posts: PostRepository,
    project: Project,
    page: int = 1,
    requested_size: int | None = None,
    policy: PageSizePolicy | None = None,
) -> PaginatedResult[Post]:
    """A project's listing page with its page-size plan applied.

    The metadata is computed with the reported size, so `data` may hold
    one post more than `pagination.page_size`.
    """
    page = max(1, page)
    plan = resolve_page_size(project.prefix, page, requested_size, policy)
    result = await posts.find_many_paginated(
        PaginationParams(page=page, page_size=plan.fetch_size, tenant_id=project.id)
    )
    if plan.fetch_size != plan.reported_size:
        result.pagination = create_pagination_meta(
            page, plan.reported_size, result.pagination.total_items
        )
    return result
