from collections.abc import Mapping
from typing import Any, Protocol

import structlog

from polyblog.entities import PostCreate, PostStatus, Project, ProjectCreate, ProjectSchema
from polyblog.errors import ValidationError
from polyblog.post_repository import PostRepository
from polyblog.repository import Repository, RepositoryConfig

logger = structlog.get_logger("polyblog.project_repository")

# Ghost posts at or above this size are not imported
MAX_IMPORT_HTML_LENGTH = 10_000


class GhostPostSource(Protocol):
    """Anything that can list a Ghost site's posts (Content API shape)"""

    async def get_posts(self, api_key: str, domain: str) -> list[dict[str, Any]]: ...


class ProjectRepository(Repository[Project]):
    def __init__(self, config: RepositoryConfig | None = None):
        super().__init__(entity_class=Project, table_name="projects", config=config)

    async def find_by_prefix(self, prefix: str) -> Project | None:
        return await self.find_one({ProjectSchema.prefix.column: prefix})

    async def register(
        self, data: ProjectCreate | Mapping[str, Any], source: GhostPostSource
    ) -> Project:
        """Create a project (or reuse the one for the same Ghost site) and import its posts.

        Each imported post is its own statement; wrap the call in
        DatabaseManager.transaction to make the whole import atomic. For a
        pool configured through RepositoryConfig.database, pass that same
        config to transaction() so the pool exists before it starts:

            async with DatabaseManager.transaction(config.db_name, config=config.database):
                await ProjectRepository(config).register(data, source)
        """
        fields = self._data_dict(data, exclude_unset=False)
        ghost_domain = fields.get("ghost_domain")
        ghost_api_key = fields.get("ghost_api_key")
        if not ghost_domain or not ghost_api_key:
            raise ValidationError("ghost_domain and ghost_api_key are required")

        project = await self.find_one(
            {
                ProjectSchema.ghost_domain.column: ghost_domain,
                ProjectSchema.ghost_api_key.column: ghost_api_key,
            }
        )
        if project is None:
            project = await self.create(fields)
            logger.info("project_created", project_id=project.id, prefix=project.prefix)

        await self.import_posts(project, source)
        return project

    async def import_posts(self, project: Project, source: GhostPostSource) -> int:
        """Store the project's Ghost posts as pending posts; returns how many were new"""
        ghost_posts = await source.get_posts(project.ghost_api_key, project.ghost_domain)
        posts = PostRepository(self.config)

        imported = 0
        for ghost_post in ghost_posts:
            html = ghost_post.get("html") or ""
            if not html or len(html) >= MAX_IMPORT_HTML_LENGTH:
                continue
            slug = ghost_post.get("slug") or ""
            if slug and await posts.find_by_slug(project.id, slug) is not None:
                continue

            await posts.create(
                PostCreate(
                    project_id=project.id,
                    title=ghost_post.get("title") or "",
                    slug=slug,
                    content=html,
                    status=PostStatus.PENDING.value,
                    data=dict(ghost_post),
                    # Ghost publication time orders the newest-first listing
                    created_at=ghost_post.get("published_at") or ghost_post.get("created_at"),
                )
            )
            imported += 1

        logger.info(
            "ghost_posts_imported",
            project_id=project.id,
            fetched=len(ghost_posts),
            imported=imported,
        )
        return imported
