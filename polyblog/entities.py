from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel
from pydantic.config import ConfigDict


T = TypeVar("T")


class Field(Generic[T]):
    """Type-safe column reference for schema classes.

    Usage:
        class PostSchema(SchemaBase):
            project_id = Field[int]("project_id")
            created_at = Field[datetime]("created_at")

    This allows for:
        builder.where(PostSchema.project_id, 1)
        builder.order_by_desc(PostSchema.created_at)
    """

    def __init__(self, column_name: str):
        """
        Args:
            column_name: The actual database column name
        """
        self._column_name = column_name

    @property
    def column(self) -> str:
        """Return the underlying database column name."""
        return self._column_name

    def __str__(self) -> str:
        return self._column_name

    def __repr__(self) -> str:
        return f"Field({self._column_name})"


class SchemaBase:
    """Base class for schema definitions with type-safe fields."""

    pass


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: Any) -> "SortOrder":
        """Case-insensitive "desc" sorts descending; anything else ascending."""
        if isinstance(value, str) and value.strip().lower() == "desc":
            return cls.DESC
        return cls.ASC


class BaseEntity(BaseModel):
    """Base entity class for all database models.

    The primary key is assigned by the store, so a row without one is not
    an entity.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(use_enum_values=True, extra="allow")
    id: int

    @classmethod
    def columns(cls) -> frozenset[str]:
        """Column allow-list used for filters, sorts and written data"""
        return frozenset(cls.model_fields)


class Project(BaseEntity):
    prefix: str = ""
    name: str = ""
    locales: list[str] = []
    ghost_api_key: str = ""
    ghost_admin_key: str | None = None
    ghost_domain: str = ""
    rule: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProjectSchema(SchemaBase):
    id = Field[int]("id")
    prefix = Field[str]("prefix")
    ghost_api_key = Field[str]("ghost_api_key")
    ghost_domain = Field[str]("ghost_domain")


class I18nContent(BaseModel):
    title: str | None = None
    content: str | None = None
    desc: str | None = None


class PostStatus(str, Enum):
    PENDING = "pending"
    TRANSLATED = "translated"


class Post(BaseEntity):
    project_id: int = 0
    title: str = ""
    slug: str | None = None
    content: str = ""
    i18n: dict[str, I18nContent] | None = None
    status: str = PostStatus.PENDING.value
    # raw Ghost payload
    data: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PostSchema(SchemaBase):
    id = Field[int]("id")
    project_id = Field[int]("project_id")
    slug = Field[str]("slug")
    status = Field[str]("status")
    created_at = Field[datetime]("created_at")


# Filter models - all fields optional, None means "ignore this column"
class ProjectFilter(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int | None = None
    prefix: str | None = None
    name: str | None = None
    ghost_api_key: str | None = None
    ghost_domain: str | None = None


class PostFilter(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int | None = None
    project_id: int | None = None
    slug: str | None = None
    status: str | None = None
    title: str | None = None


# Create models - the store assigns id
class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prefix: str
    name: str
    locales: list[str] = []
    ghost_api_key: str
    ghost_admin_key: str | None = None
    ghost_domain: str
    rule: str | None = None


class PostCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: int
    title: str = ""
    slug: str | None = None
    content: str = ""
    i18n: dict[str, I18nContent] | None = None
    status: str = PostStatus.PENDING.value
    data: dict[str, Any] | None = None
    # left unset, the repository stamps the insert time
    created_at: datetime | None = None


# Update models - only explicitly set fields are written
class ProjectUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prefix: str | None = None
    name: str | None = None
    locales: list[str] | None = None
    ghost_api_key: str | None = None
    ghost_admin_key: str | None = None
    ghost_domain: str | None = None
    rule: str | None = None


class PostUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    slug: str | None = None
    content: str | None = None
    i18n: dict[str, I18nContent] | None = None
    status: str | None = None
    data: dict[str, Any] | None = None
