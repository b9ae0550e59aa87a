from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    internal_api_token: str = Field(
        default="dev_internal_token_change_me",
        alias="INTERNAL_API_TOKEN",
    )
    internal_api_allowlist: str = Field(
        default="127.0.0.1/32,::1/128",
        alias="INTERNAL_API_ALLOWLIST",
    )
    internal_api_trusted_proxies: str = Field(default="", alias="INTERNAL_API_TRUSTED_PROXIES")

    database_url: str = Field(default="sqlite+aiosqlite:///./app.db", alias="DATABASE_URL")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    celery_broker_url: str = Field(default="redis://localhost:6379/1", alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(default="redis://localhost:6379/2", alias="CELERY_RESULT_BACKEND")

    google_play_credentials: str = Field(default="", alias="GOOGLE_PLAY_CREDENTIALS")
    android_package_name: str = Field(default="com.premiumdramastream", alias="ANDROID_PACKAGE_NAME")
    apple_shared_secret: str = Field(default="", alias="APPLE_SHARED_SECRET")
    apple_bundle_id: str = Field(default="com.premiumdramastream", alias="APPLE_BUNDLE_ID")
    apple_use_sandbox: bool = Field(default=True, alias="APPLE_USE_SANDBOX")
    receipt_verify_timeout_seconds: float = Field(default=10.0, gt=0, alias="RECEIPT_VERIFY_TIMEOUT_SECONDS")
    receipt_simulation_enabled: bool = Field(default=True, alias="RECEIPT_SIMULATION_ENABLED")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
