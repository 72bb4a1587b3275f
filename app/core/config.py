from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    app_name: str = "Fitcoach"
    environment: str = "development"
    debug: bool = False
    app_base_url: str = "http://localhost:3000"

    # Postgres
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "fitcoach"
    postgres_user: str = "fitcoach"
    postgres_password: str = "fitcoach"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Magic links
    magic_link_ttl_minutes: int = 15
    rate_limit_window_seconds: int = 600
    rate_limit_max: int = 5

    # Email
    email_backend: str = "log"
    email_from: str = "Fitcoach <no-reply@fitcoach.app>"
    resend_api_key: str | None = None
    email_timeout_seconds: float = 10.0

    # Tokens / Cookies
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_ttl_minutes: int = 60 * 24 * 7
    cookie_secure: bool = False
    cookie_samesite: str = "lax"
    cookie_domain: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
