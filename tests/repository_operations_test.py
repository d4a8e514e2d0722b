"""CRUD operations of the generic repository against a real PostgreSQL"""

import pytest

from polyblog.db_context import DatabaseManager
from polyblog.entities import I18nContent, PostCreate, PostFilter, PostUpdate
from polyblog.errors import (
    EmptyUpdateError,
    ErrorCode,
    FilterRequiredError,
    ImmutableColumnError,
    RecordNotFoundError,
    StoreError,
    UnknownColumnError,
    ValidationError,
)
from polyblog.post_repository import PostRepository
from polyblog.repository import RepositoryConfig
from tests.post_fixtures import BASE_TIME, seed_posts


@pytest.mark.usefixtures("db_pool")
class TestRepositoryOperations:
    """Test all CRUD operations and filter/sort functionality."""

    @pytest.fixture
    def posts(self, repo_config):
        return PostRepository(repo_config)

    @pytest.mark.asyncio
    async def test_create_and_find_one_round_trip(self, posts):
        data = {
            "project_id": 1,
            "title": "Hello",
            "slug": "hello",
            "content": "<p>Hi</p>",
            "data": {"featured": True, "tags": [{"slug": "news"}]},
        }

        created = await posts.create(data)
        found = await posts.find_one({"id": created.id})

        assert found == created
        for key, value in data.items():
            assert getattr(found, key) == value

    @pytest.mark.asyncio
    async def test_create_fills_store_defaults(self, posts):
        created = await posts.create(PostCreate(project_id=1, title="T"))

        assert created.id == 1
        assert created.status == "pending"
        assert created.created_at is not None
        assert created.updated_at is not None

    @pytest.mark.asyncio
    async def test_create_rejects_primary_key(self, posts):
        with pytest.raises(ImmutableColumnError):
            await posts.create({"id": 99, "project_id": 1})

        assert await posts.count() == 0

    @pytest.mark.asyncio
    async def test_find_one_returns_none_when_nothing_matches(self, posts):
        assert await posts.find_one({"id": 12345}) is None

    @pytest.mark.asyncio
    async def test_find_many_filter_and_sort(self, posts):
        await seed_posts(posts, 1, 3, "a")
        await seed_posts(posts, 2, 2, "b")

        found = await posts.find_many({"project_id": 1}, sort={"created_at": "desc"})

        assert [p.title for p in found] == ["a-02", "a-01", "a-00"]

    @pytest.mark.asyncio
    async def test_find_many_limit_and_offset(self, posts):
        await seed_posts(posts, 1, 5, "a")

        found = await posts.find_many(sort=[("id", "asc")], limit=2, offset=1)

        assert [p.id for p in found] == [2, 3]

    @pytest.mark.asyncio
    async def test_find_many_without_limit_returns_everything(self, posts):
        await seed_posts(posts, 1, 12, "a")

        assert len(await posts.find_many()) == 12

    @pytest.mark.asyncio
    async def test_all_none_filter_equals_no_filter(self, posts):
        await seed_posts(posts, 1, 3, "a")
        await seed_posts(posts, 2, 2, "b")

        unfiltered = await posts.find_many(sort={"id": "asc"})
        none_filter = await posts.find_many(
            {"project_id": None, "status": None, "slug": None}, sort={"id": "asc"}
        )
        empty_model = await posts.find_many(PostFilter(), sort={"id": "asc"})

        assert none_filter == unfiltered
        assert empty_model == unfiltered
        assert len(unfiltered) == 5

    @pytest.mark.asyncio
    async def test_filter_model(self, posts):
        await seed_posts(posts, 1, 2, "a")

        found = await posts.find_one(PostFilter(slug="a-01"))

        assert found is not None
        assert found.title == "a-01"

    @pytest.mark.asyncio
    async def test_unknown_filter_column_is_rejected(self, posts):
        with pytest.raises(UnknownColumnError):
            await posts.find_many({"1 = 1 OR id": 1})

    @pytest.mark.asyncio
    async def test_update_single_row(self, posts):
        """update({id: 7}) changes only row 7"""
        await seed_posts(posts, 1, 8, "a")

        updated = await posts.update({"id": 7}, {"status": "translated"})

        assert updated.id == 7
        assert updated.status == "translated"
        statuses = {p.id: p.status for p in await posts.find_many()}
        assert statuses.pop(7) == "translated"
        assert set(statuses.values()) == {"pending"}

    @pytest.mark.asyncio
    async def test_update_refreshes_updated_at(self, posts):
        created = await posts.create(
            {"project_id": 1, "updated_at": BASE_TIME, "created_at": BASE_TIME}
        )

        updated = await posts.update({"id": created.id}, PostUpdate(title="New"))

        assert updated.title == "New"
        assert updated.updated_at > BASE_TIME
        assert updated.created_at == BASE_TIME

    @pytest.mark.asyncio
    async def test_update_can_clear_a_column(self, posts):
        created = await posts.create({"project_id": 1, "slug": "s"})

        updated = await posts.update({"id": created.id}, PostUpdate(slug=None))

        assert updated.slug is None

    @pytest.mark.asyncio
    async def test_update_json_column(self, posts):
        created = await posts.create({"project_id": 1})

        updated = await posts.update(
            {"id": created.id}, {"i18n": {"fr": I18nContent(title="Bonjour")}}
        )

        assert updated.i18n == {"fr": I18nContent(title="Bonjour")}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("where", [{}, None, {"id": None}, {"status": None, "slug": None}])
    async def test_update_without_filter_fails_and_changes_nothing(self, posts, where):
        await seed_posts(posts, 1, 3, "a")

        with pytest.raises(FilterRequiredError):
            await posts.update(where, {"status": "translated"})

        assert await posts.count({"status": "pending"}) == 3

    @pytest.mark.asyncio
    async def test_update_without_data_fails(self, posts):
        await seed_posts(posts, 1, 1, "a")

        with pytest.raises(EmptyUpdateError):
            await posts.update({"id": 1}, PostUpdate())

    @pytest.mark.asyncio
    async def test_update_missing_row_is_not_found(self, posts):
        with pytest.raises(RecordNotFoundError, match="Record not found"):
            await posts.update({"id": 404}, {"status": "translated"})

    @pytest.mark.asyncio
    async def test_update_matching_many_rows(self, posts):
        await seed_posts(posts, 1, 3, "a")

        first = await posts.update({"project_id": 1}, {"status": "translated"})

        assert first.status == "translated"
        assert await posts.count({"status": "translated"}) == 3

    @pytest.mark.asyncio
    async def test_update_many_returns_every_row(self, posts):
        await seed_posts(posts, 1, 3, "a")
        await seed_posts(posts, 2, 1, "b")

        updated = await posts.update_many({"project_id": 1}, {"status": "translated"})

        assert sorted(p.id for p in updated) == [1, 2, 3]
        assert await posts.update_many({"project_id": 9}, {"status": "x"}) == []

    @pytest.mark.asyncio
    async def test_delete(self, posts):
        await seed_posts(posts, 1, 2, "a")
        await seed_posts(posts, 2, 2, "b")

        assert await posts.delete({"project_id": 1}) is True
        assert await posts.delete({"project_id": 1}) is False
        assert await posts.count() == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("where", [{}, None, {"project_id": None}])
    async def test_delete_without_filter_fails_and_changes_nothing(self, posts, where):
        await seed_posts(posts, 1, 3, "a")

        with pytest.raises(FilterRequiredError, match="Where clause is required for delete"):
            await posts.delete(where)

        assert await posts.count() == 3

    @pytest.mark.asyncio
    async def test_count(self, posts):
        await seed_posts(posts, 1, 4, "a")
        await seed_posts(posts, 2, 1, "b")

        assert await posts.count() == 5
        assert await posts.count({"project_id": 2}) == 1


@pytest.mark.usefixtures("db_pool")
class TestStoreErrors:
    @pytest.mark.asyncio
    async def test_constraint_violation_is_wrapped(self, repo_config):
        posts = PostRepository(repo_config)

        with pytest.raises(StoreError, match="Failed to create record") as exc_info:
            await posts.create({"title": "no project"})

        assert "project_id" in exc_info.value.message
        assert exc_info.value.__cause__ is not None

    @pytest.mark.asyncio
    async def test_missing_pool_is_wrapped(self):
        posts = PostRepository(RepositoryConfig(db_name="nonexistent"))

        with pytest.raises(StoreError, match="Database pool 'nonexistent' not found"):
            await posts.find_many()

    @pytest.mark.asyncio
    async def test_bad_limit_is_a_validation_error(self, repo_config):
        posts = PostRepository(repo_config)

        with pytest.raises(ValidationError, match="limit must be an integer") as exc_info:
            await posts.find_many(limit="x")

        assert not isinstance(exc_info.value, StoreError)
        assert exc_info.value.code == ErrorCode.BAD_REQUEST

    @pytest.mark.asyncio
    async def test_missing_table_is_wrapped(self, repo_config):
        posts = PostRepository(repo_config.model_copy(update={"db_schema": "missing"}))

        with pytest.raises(StoreError, match="Failed to find records"):
            await posts.find_many()


@pytest.mark.usefixtures("db_pool")
class TestQueryShape:
    @pytest.mark.asyncio
    async def test_update_is_one_statement_with_shifted_where(self, repo_config):
        posts = PostRepository(repo_config)
        await posts.create({"project_id": 1})

        async with DatabaseManager.track_queries() as tracker:
            await posts.update({"id": 1, "project_id": 1}, {"status": "translated"})

        queries = tracker.get_queries()
        assert len(queries) == 1
        assert queries[0].query == (
            "UPDATE posts SET status = $1, updated_at = $2 "
            "WHERE id = $3 AND project_id = $4 RETURNING *"
        )
        assert queries[0].params[0] == "translated"
        assert queries[0].params[2:] == [1, 1]

    @pytest.mark.asyncio
    async def test_find_one_appends_limit(self, repo_config):
        posts = PostRepository(repo_config)

        async with DatabaseManager.track_queries() as tracker:
            await posts.find_one({"slug": "x"})

        assert tracker.get_queries()[0].query == "SELECT * FROM posts WHERE slug = $1 LIMIT 1"


@pytest.mark.usefixtures("db_pool")
class TestTransactions:
    @pytest.mark.asyncio
    async def test_transaction_rolls_back_every_statement(self, repo_config):
        posts = PostRepository(repo_config)

        with pytest.raises(RuntimeError):
            async with DatabaseManager.transaction("test_db"):
                await posts.create({"project_id": 1})
                await posts.create({"project_id": 1})
                raise RuntimeError("abort")

        assert await posts.count() == 0

    @pytest.mark.asyncio
    async def test_without_transaction_partial_work_stays(self, repo_config):
        posts = PostRepository(repo_config)

        await posts.create({"project_id": 1})
        with pytest.raises(StoreError):
            await posts.create({"title": "missing project"})

        assert await posts.count() == 1
