from urllib.parse import quote_plus

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    socket_timeout_seconds: float = 2.0


class DatabaseConfig(BaseSettings):
    """Connection settings for the document store.

    ``url`` wins over the individual PostgreSQL fields when set, which is
    how local runs point the services at a SQLite file.
    """

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str | None = None
    host: str = "localhost"
    port: int = 5432
    name: str = "attendx_notify"
    user: str = "postgres"
    password: str = "postgres"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def dsn(self) -> str:
        if self.url:
            return self.url
        return (
            f"postgresql://{quote_plus(self.user)}:{quote_plus(self.password)}"
            f"@{self.host}:{self.port}/{self.name}"
        )


class CeleryConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CELERY_")

    broker_url: str = "redis://localhost:6379/0"
    campaign_queue: str = "campaigns"
    maintenance_queue: str = "maintenance"
    provider_reload_queue: str = "provider_reloads"
