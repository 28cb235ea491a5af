from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import AnyUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    SERVICE_NAME: str = Field(default="portal-service")
    PORT: int = Field(default=8040)

    # 🗄️ Airtable (primary session store)
    AIRTABLE_API_KEY: Optional[str] = Field(default=None)
    AIRTABLE_BASE_ID: Optional[str] = Field(default=None)
    AIRTABLE_API_URL: AnyUrl = Field(default="https://api.airtable.com/v0")
    AIRTABLE_SESSIONS_TABLE: str = Field(default="Sessions")
    AIRTABLE_TIMEOUT_SECONDS: float = Field(default=10.0)

    # Sessions
    SESSION_STORE: Literal["airtable", "redis", "cookie"] = Field(default="airtable")
    SESSION_TTL_SECONDS: int = Field(default=86400)
    SESSION_FALLBACK_COOLDOWN_SECONDS: float = Field(default=300.0)
    SESSION_COOKIE_NAME: str = Field(default="sv.sid")
    SESSION_SIGNING_SECRET: str = Field(default="dev-secret")

    COOKIE_SECURE: bool = Field(default=False)
    COOKIE_SAMESITE: str = Field(default="lax")
    COOKIE_MAX_AGE_SECONDS: int = Field(default=30 * 24 * 60 * 60)

    # Redis (alternate session store)
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    REDIS_KEY_PREFIX: str = Field(default="sv:sess:")

    # JSON list in the environment, e.g. CORS_ALLOW_ORIGINS=["http://localhost:5173"]
    CORS_ALLOW_ORIGINS: List[str] = Field(default_factory=list)

    # Admin endpoints are disabled unless a token is configured
    ADMIN_TOKEN: Optional[str] = Field(default=None)

    LOG_LEVEL: str = Field(default="INFO")

    @property
    def airtable_configured(self) -> bool:
        return bool(self.AIRTABLE_API_KEY and self.AIRTABLE_BASE_ID)

    @property
    def airtable_api_url(self) -> str:
        return str(self.AIRTABLE_API_URL).rstrip("/")


settings = Settings()
