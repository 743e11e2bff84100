from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except Exception:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")
    session_cookie_secure: bool = Field(default=False, alias="SESSION_COOKIE_SECURE")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="imagestudio", alias="MONGODB_DB_NAME")

    # Assets: "imagekit" or "local"
    asset_backend: str = Field(default="local", alias="ASSET_BACKEND")
    asset_local_path: str = Field(default="./uploads", alias="ASSET_LOCAL_PATH")
    asset_local_url: str = Field(default="http://localhost:8000/uploads", alias="ASSET_LOCAL_URL")
    render_timeout_seconds: float = Field(default=20.0, alias="RENDER_TIMEOUT_SECONDS")

    # ImageKit
    imagekit_public_key: str = Field(default="", alias="IMAGEKIT_PUBLIC_KEY")
    imagekit_private_key: str = Field(default="", alias="IMAGEKIT_PRIVATE_KEY")
    imagekit_url_endpoint: str = Field(default="", alias="IMAGEKIT_URL_ENDPOINT")

    # Polar
    polar_access_token: str = Field(default="", alias="POLAR_ACCESS_TOKEN")
    polar_server: str = Field(default="sandbox", alias="POLAR_SERVER")
    polar_webhook_secret: str = Field(default="", alias="POLAR_WEBHOOK_SECRET")
    polar_success_url: str = Field(default="http://localhost:3000/dashboard", alias="POLAR_SUCCESS_URL")
    polar_product_small: str = Field(default="5af2909c-3272-4bc2-bae8-a7e91958d37f", alias="POLAR_PRODUCT_SMALL")
    polar_product_medium: str = Field(default="0aebc527-b797-43ca-a6bb-5508a5a6f44d", alias="POLAR_PRODUCT_MEDIUM")
    polar_product_large: str = Field(default="dcd55a8e-0515-43f6-b2fc-f1849753e609", alias="POLAR_PRODUCT_LARGE")
    webhook_tolerance_seconds: int = 5 * 60

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Pricing (credits)
    credits_per_background_removal: int = 2
    credits_per_upscale: int = 1
    credits_small_pack: int = 70
    credits_medium_pack: int = 140
    credits_large_pack: int = 300
    signup_bonus_credits: int = 0


@lru_cache
def get_settings() -> Settings:
    return Settings()
