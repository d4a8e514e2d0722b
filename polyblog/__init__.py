"""Multi-tenant blog post storage: repositories, pagination and listing policy"""

from polyblog.config import DatabaseConfig, DatabaseEnvironment
from polyblog.db_context import DatabaseManager, transactional
from polyblog.errors import (
    ErrorCode,
    FilterRequiredError,
    RecordNotFoundError,
    RepositoryError,
    StoreError,
    ValidationError,
)
from polyblog.pagination import PaginatedResult, PaginationMeta, PaginationParams
from polyblog.post_repository import PostRepository
from polyblog.project_repository import ProjectRepository
from polyblog.repository import Repository, RepositoryConfig
from polyblog.serving_policy import PageSizePolicy, fetch_listing, resolve_page_size

__all__ = [
    "DatabaseConfig",
    "DatabaseEnvironment",
    "DatabaseManager",
    "transactional",
    "ErrorCode",
    "RepositoryError",
    "ValidationError",
    "FilterRequiredError",
    "RecordNotFoundError",
    "StoreError",
    "PaginatedResult",
    "PaginationMeta",
    "PaginationParams",
    "Repository",
    "RepositoryConfig",
    "PostRepository",
    "ProjectRepository",
    "PageSizePolicy",
    "fetch_listing",
    "resolve_page_size",
]
