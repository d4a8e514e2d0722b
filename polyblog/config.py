"""Database configuration.

Every option can be given explicitly on `DatabaseConfig`; anything left
unset falls back to the environment (`DatabaseEnvironment`), which in
turn carries the built-in defaults. The precedence is applied per field
by `DatabaseConfig.resolve`.
"""

from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from polyblog.errors import ConfigurationError


class DatabaseEnvironment(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    DATABASE_URL: str | None = None
    POSTGRES_HOST: str | None = None
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str | None = None
    POSTGRES_USER: str | None = None
    POSTGRES_PASSWORD: str | None = None
    POSTGRES_SSL: bool = False
    POSTGRES_MAX_CONNECTIONS: int = 20
    POSTGRES_IDLE_TIMEOUT: float = 20
    POSTGRES_CONNECT_TIMEOUT: float = 10


def _first(explicit: Any, fallback: Any) -> Any:
    return explicit if explicit is not None else fallback


class DatabaseConfig(BaseModel):
    """Connection options for one pool"""

    connection_string: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    username: str | None = None
    password: str | None = None
    ssl: bool | None = None
    max_connections: int | None = Field(default=None, ge=1)
    idle_timeout_seconds: float | None = Field(default=None, ge=0)
    connect_timeout_seconds: float | None = Field(default=None, gt=0)

    def resolve(self, environment: DatabaseEnvironment | None = None) -> "DatabaseConfig":
        """Fill unset fields from the environment.

        Raises ConfigurationError when neither a connection string nor
        host, database and username are available.
        """
        env = environment if environment is not None else DatabaseEnvironment()
        resolved = DatabaseConfig(
            connection_string=_first(self.connection_string, env.DATABASE_URL),
            host=_first(self.host, env.POSTGRES_HOST),
            port=_first(self.port, env.POSTGRES_PORT),
            database=_first(self.database, env.POSTGRES_DB),
            username=_first(self.username, env.POSTGRES_USER),
            password=_first(self.password, env.POSTGRES_PASSWORD),
            ssl=_first(self.ssl, env.POSTGRES_SSL),
            max_connections=_first(self.max_connections, env.POSTGRES_MAX_CONNECTIONS),
            idle_timeout_seconds=_first(
                self.idle_timeout_seconds, env.POSTGRES_IDLE_TIMEOUT
            ),
            connect_timeout_seconds=_first(
                self.connect_timeout_seconds, env.POSTGRES_CONNECT_TIMEOUT
            ),
        )

        if not resolved.connection_string and not (
            resolved.host and resolved.database and resolved.username
        ):
            raise ConfigurationError(
                "Missing required PostgreSQL configuration. Please provide either "
                "DATABASE_URL or host, database, and username."
            )
        return resolved

    def pool_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for asyncpg.create_pool (call on a resolved config)"""
        kwargs: dict[str, Any] = {
            "min_size": 1,
            "max_size": self.max_connections,
            "max_inactive_connection_lifetime": self.idle_timeout_seconds,
            "timeout": self.connect_timeout_seconds,
        }
        if self.connection_string:
            kwargs["dsn"] = self.connection_string
        else:
            kwargs.update(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.username,
                password=self.password or "",
            )
        if self.ssl:
            kwargs["ssl"] = "require"
        return kwargs
