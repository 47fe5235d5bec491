from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import ClassVar

class Settings(BaseSettings):
    PROJECT_NAME: str = "Library API"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    MONGODB_URI: str = "mongodb://localhost:27017"
    DB_NAME: str = "library"
    MONGO_TIMEOUT_MS: int = 5000

    # Auth0 resource server
    AUTH0_AUDIENCE: str | None = None
    AUTH0_ISSUER_BASE_URL: str | None = None
    AUTH0_DOMAIN: str | None = None
    AUTH0_CLIENT_ID: str | None = None
    AUTH_DISABLE: bool = False
    REQUIRE_READ_SCOPE: bool = False
    JWKS_CACHE_TTL: int = 3600

    CORS_ORIGIN: str = "*"

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.strip().lower() == "production"

    @property
    def issuer(self) -> str | None:
        """Issuer URL with the trailing slash Auth0 puts in the `iss` claim."""
        base = self.AUTH0_ISSUER_BASE_URL
        if not base and self.AUTH0_DOMAIN:
            base = f"https://{self.AUTH0_DOMAIN}"
        if not base:
            return None
        return base.rstrip("/") + "/"

    @property
    def has_auth_config(self) -> bool:
        return bool(self.AUTH0_AUDIENCE) and self.issuer is not None

@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
