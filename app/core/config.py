import secrets
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    bot_service_url: str = Field(default="http://127.0.0.1:8080", alias="BOT_SERVICE_URL")
    bot_service_timeout: Optional[float] = Field(default=None, alias="BOT_SERVICE_TIMEOUT", gt=0)
    identity_provider_url: str = Field(
        default="https://identity.ic0.app/#authorize",
        alias="IDENTITY_PROVIDER_URL",
    )
    public_base_url: str = Field(default="http://127.0.0.1:8000", alias="PUBLIC_BASE_URL")
    login_timeout: float = Field(default=60.0, alias="LOGIN_TIMEOUT", gt=0)
    storage_secret: str = Field(
        default_factory=lambda: secrets.token_urlsafe(32),
        alias="STORAGE_SECRET",
    )

    @field_validator("bot_service_timeout", mode="before")
    def blank_timeout_is_unset(cls, value):  # noqa: N805
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def auth_callback_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/auth/callback"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
