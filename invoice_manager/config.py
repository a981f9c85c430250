from typing import Literal

from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache

# Known weak values that must never sign sessions outside development
WEAK_SECRET_KEYS = {
    "development-secret-key-change-in-production",
    "changeme",
    "secret",
    "password",
    "default",
    "test",
}

MIN_PRODUCTION_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (durable token store)
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/invoice_manager"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # "database" persists tokens in DATABASE_URL, "memory" keeps them per process
    TOKEN_STORE_BACKEND: Literal["database", "memory"] = "database"

    # Session signing
    SECRET_KEY: str = "development-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    SESSION_COOKIE_NAME: str = "hs_portal"
    SESSION_MAX_AGE_DAYS: int = 30

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # HubSpot OAuth app
    HUBSPOT_CLIENT_ID: str | None = None
    HUBSPOT_CLIENT_SECRET: str | None = None
    HUBSPOT_REDIRECT_URI: str | None = "http://localhost:5001/auth/callback"
    HUBSPOT_SCOPES: str = (
        "oauth crm.objects.companies.read crm.objects.companies.write "
        "crm.objects.deals.read crm.objects.deals.write "
        "crm.objects.invoices.read crm.objects.invoices.write"
    )

    # Static private-app token used when no OAuth token is stored
    HS_PRIVATE_APP_TOKEN: str | None = None

    # HubSpot endpoints
    HUBSPOT_API_BASE: str = "https://api.hubapi.com"
    HUBSPOT_AUTHORIZE_URL: str = "https://app.hubspot.com/oauth/authorize"
    HUBSPOT_TIMEOUT_SECONDS: float = 15.0

    # Token lifecycle
    TOKEN_REFRESH_SKEW_SECONDS: int = 60
    OAUTH_STATE_TTL_SECONDS: int = 600

    # Error tracking
    SENTRY_DSN: str | None = None

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True
    SQL_ECHO: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True

    @model_validator(mode="after")
    def enforce_production_security(self) -> "Settings":
        """Reject weak signing secrets and force debug off in production."""
        if self.is_production:
            if self.SECRET_KEY in WEAK_SECRET_KEYS:
                raise ValueError("SECRET_KEY uses a known weak value in production")
            if len(self.SECRET_KEY) < MIN_PRODUCTION_SECRET_LENGTH:
                raise ValueError(
                    f"SECRET_KEY must be at least {MIN_PRODUCTION_SECRET_LENGTH} characters in production"
                )
            self.DEBUG = False
            self.DOCS_ENABLED = False
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT in ("production", "staging")

    @property
    def sqlalchemy_echo(self) -> bool:
        # SECURITY: never echo SQL (and bound tokens) outside local debugging
        return self.SQL_ECHO and not self.is_production

    @property
    def hubspot_oauth_configured(self) -> bool:
        return bool(self.HUBSPOT_CLIENT_ID and self.HUBSPOT_CLIENT_SECRET)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
