from polyblog.entities import I18nContent, Post, PostSchema, PostStatus
from polyblog.pagination import PaginatedResult, PaginationParams, create_pagination_meta
from polyblog.query_builder import QueryBuilder
from polyblog.repository import Repository, RepositoryConfig


class PostRepository(Repository[Post]):
    def __init__(self, config: RepositoryConfig | None = None):
        super().__init__(entity_class=Post, table_name="posts", config=config)

    def _tenant_query(self, tenant_id: int | None) -> QueryBuilder:
        """The one predicate shared by the count and the page select"""
        return self.query().where(PostSchema.project_id, tenant_id)

    async def count_posts(self, tenant_id: int | None = None) -> int:
        """Total posts, optionally for one project"""
        with self._store_errors("count posts"):
            query, params = self._tenant_query(tenant_id).build_count()
            result = await self.db_ops.fetch_value(query, params)
            return result or 0

    async def find_many_paginated(self, params: PaginationParams) -> PaginatedResult[Post]:
        """One page of posts, newest first, with pagination metadata.

        The count runs before the select. A page past the end yields no
        data but still reports the real totals.
        """
        total_items = await self.count_posts(params.tenant_id)

        with self._store_errors("find paginated posts"):
            fragment = (
                self._tenant_query(params.tenant_id)
                .order_by_desc(PostSchema.created_at)
                .order_by_desc(PostSchema.id)
                .paginate(params.page, params.page_size)
                .build()
            )
            posts = await self._fetch_entities(fragment)

        return PaginatedResult[Post](
            data=posts,
            pagination=create_pagination_meta(params.page, params.page_size, total_items),
        )

    # Custom finders
    async def find_by_slug(self, project_id: int, slug: str) -> Post | None:
        return await self.find_one({"project_id": project_id, "slug": slug})

    async def find_pending(
        self, project_id: int | None = None, limit: int | None = None
    ) -> list[Post]:
        """Posts waiting for translation, oldest first"""
        return await self.find_many(
            {"project_id": project_id, "status": PostStatus.PENDING.value},
            sort=[("created_at", "asc"), ("id", "asc")],
            limit=limit,
        )

    async def mark_translated(
        self, post_id: int, i18n: dict[str, I18nContent | dict]
    ) -> Post:
        """Store a post's translations and flag it as translated"""
        return await self.update(
            {"id": post_id},
            {"i18n": i18n, "status": PostStatus.TRANSLATED.value},
        )
