"""Application settings loaded from the environment."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "production"
    log_level: str = "INFO"
    allow_insecure_http_cookies: bool = False

    database_url: str = "sqlite+aiosqlite:///./inkwell.db"
    redis_url: str = "redis://localhost:6379/0"

    session_secret: str = "change-me"

    server_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"
    github_client_id: str = ""
    github_client_secret: str = ""
    qq_oauth_proxy_url: str = "https://api-space.tnxg.top"
    oauth_timeout_seconds: float = 10.0

    turnstile_secret: str = ""

    revalidation_url: str = ""
    revalidation_secret: str = ""
    revalidation_salt: str = ""
    revalidation_timeout_seconds: float = 10.0

    cache_max_entries: int = 1000
    cache_ttl_seconds: int = 300

    change_feed_enabled: bool = True
    change_feed_stream_maxlen: int = 10_000
    change_feed_block_ms: int = 5_000
    change_feed_reconnect_seconds: float = 5.0

    classifier_timeout_seconds: float = 30.0

    rate_limit_requests: int = 120
    rate_limit_window_seconds: int = 60
    rate_limit_trusted_proxies: list[str] = Field(default_factory=list)
    rate_limit_ip_headers: list[str] = Field(
        default_factory=lambda: ["x-forwarded-for", "x-real-ip"]
    )


settings = Settings()
