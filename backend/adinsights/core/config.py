"""Application configuration loaded from environment variables.

Settings for the database, session cookie, OAuth provider credentials,
and rate limiting. Uses pydantic-settings for validation and .env file
support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure defaults that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "adinsights_dev_password"  # nosec B105
_INSECURE_DEFAULT_SESSION_SECRET = (
    "adinsights-development-session-secret-do-not-deploy"  # nosec B105
)

# Minimum length for SESSION_SECRET (256 bits = 32 bytes)
_MIN_SESSION_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "adinsights"
    database_user: str = "adinsights_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    # Full SQLAlchemy URL; takes precedence over the parts above when set
    database_url_override: str = ""

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Externally reachable base URL. Used to build redirect_uri values, which
    # must match what was registered with each provider byte for byte.
    app_url: str = "http://localhost:3000"

    # Session cookie
    session_secret: SecretStr = SecretStr(_INSECURE_DEFAULT_SESSION_SECRET)
    session_cookie_name: str = "session"

    # OAuth Providers
    facebook_app_id: str = ""
    facebook_app_secret: SecretStr = SecretStr("")
    facebook_business_config_id: str = ""
    instagram_app_id: str = ""
    instagram_app_secret: SecretStr = SecretStr("")
    twitter_client_id: str = ""
    twitter_client_secret: SecretStr = SecretStr("")
    oauth_http_timeout: float = 10.0

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/15minute")
    rate_limit_auth: str = "100/15minute"
    rate_limit_storage_uri: str = "memory://"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def app_base_url(self) -> str:
        """APP_URL without a trailing slash."""
        return self.app_url.rstrip("/")

    @property
    def session_cookie_secure(self) -> bool:
        """Session cookie carries the Secure flag in production only."""
        return self.environment == "production"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Security: Prevents deployment with known insecure defaults.
        Checks:
        - SESSION_SECRET must be >= 32 chars (all environments)
        - APP_URL, when set, must be an absolute http(s) URL (all environments)
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password and session secret must not be defaults in production
        """
        if len(self.session_secret.get_secret_value()) < _MIN_SESSION_SECRET_LENGTH:
            msg = (
                f"SESSION_SECRET must be at least {_MIN_SESSION_SECRET_LENGTH} "
                "characters for adequate security."
            )
            raise ValueError(msg)

        if self.app_url and not self.app_url.startswith(("http://", "https://")):
            msg = f"APP_URL must be an absolute http(s) URL. Got: {self.app_url!r}"
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            if (
                self.session_secret.get_secret_value()
                == _INSECURE_DEFAULT_SESSION_SECRET
            ):
                msg = (
                    "Cannot use default SESSION_SECRET in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)

        return self


settings = Settings()
