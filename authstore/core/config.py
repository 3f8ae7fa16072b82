"""Configuration loaded from environment variables.

Settings for the durable store connection, logging, and the refresh-token
family walk. Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "authstore_dev_password"  # nosec B105

# Upper bound on replaced_by hops followed by a single family revocation.
_DEFAULT_FAMILY_MAX_LENGTH = 1000


class Settings(BaseSettings):
    """Store settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "authstore"
    database_user: str = "authstore_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # Full SQLAlchemy URL, e.g. "sqlite+aiosqlite:///./auth.db".
    # When set it wins over the individual database_* fields.
    database_url_override: str = ""
    database_echo: bool = False
    database_pool_pre_ping: bool = True

    # Application
    environment: str = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    # Refresh tokens
    refresh_token_family_max_length: int = _DEFAULT_FAMILY_MAX_LENGTH

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants.

        Checks:
        - The family walk cap must be positive (all environments)
        - Database password must not be the default in production
        """
        if self.refresh_token_family_max_length <= 0:
            msg = (
                "REFRESH_TOKEN_FAMILY_MAX_LENGTH must be positive. "
                f"Got: {self.refresh_token_family_max_length}"
            )
            raise ValueError(msg)

        if (
            self.environment == "production"
            and not self.database_url_override
            and self.database_password == _INSECURE_DEFAULT_PASSWORD
        ):
            msg = (
                "Cannot use default database password in production. "
                "Set DATABASE_PASSWORD environment variable to a secure value."
            )
            raise ValueError(msg)

        return self


settings = Settings()
