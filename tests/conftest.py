import asyncpg
import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer

from polyblog.db_context import DatabaseManager, init_connection
from polyblog.repository import RepositoryConfig

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id SERIAL PRIMARY KEY,
    prefix VARCHAR(100) NOT NULL,
    name VARCHAR(255) NOT NULL DEFAULT '',
    locales TEXT[] NOT NULL DEFAULT '{}',
    ghost_api_key TEXT NOT NULL DEFAULT '',
    ghost_admin_key TEXT,
    ghost_domain TEXT NOT NULL DEFAULT '',
    rule TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS posts (
    id SERIAL PRIMARY KEY,
    project_id INTEGER NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    slug TEXT,
    content TEXT NOT NULL DEFAULT '',
    i18n JSONB,
    status VARCHAR(32) NOT NULL DEFAULT 'pending',
    data JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""


@pytest.fixture(scope="session")
def postgres_container():
    """Start a PostgreSQL test container for the session."""
    with PostgresContainer("postgres:17") as postgres:
        yield postgres


@pytest.fixture(scope="session")
def postgres_dsn(postgres_container):
    host = postgres_container.get_container_host_ip()
    port = postgres_container.get_exposed_port(5432)
    return (
        f"postgresql://{postgres_container.username}:{postgres_container.password}"
        f"@{host}:{port}/{postgres_container.dbname}"
    )


@pytest_asyncio.fixture
async def db_pool(postgres_dsn):
    """A fresh pool registered as "test_db", on empty tables."""
    # Create a new pool for each test to avoid event loop issues
    pool = await asyncpg.create_pool(
        postgres_dsn, min_size=1, max_size=5, init=init_connection
    )

    async with pool.acquire() as conn:
        await conn.execute(SCHEMA)
        await conn.execute("TRUNCATE TABLE posts, projects RESTART IDENTITY;")

    await DatabaseManager.add_pool("test_db", pool)

    yield pool

    await DatabaseManager.close_pool("test_db")


@pytest.fixture
def repo_config(db_pool):
    return RepositoryConfig(db_name="test_db")
