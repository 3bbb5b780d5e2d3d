"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration settings."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = Field(
        default="sqlite+aiosqlite:///./devhub.db",
        description="SQLAlchemy async connection URL",
    )
    pool_size: int = Field(default=10, description="Connection pool size")
    max_overflow: int = Field(default=20, description="Max overflow connections")
    echo: bool = Field(default=False, description="Echo SQL statements")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class ChatBackendSettings(BaseSettings):
    """LLM chat backend and sibling FastAPI services."""

    model_config = SettingsConfigDict(env_prefix="CHAT_API_")

    url: str = Field(default="http://localhost:8000", description="Chat backend base URL")
    timeout: int = Field(default=90, description="Request timeout in seconds")
    stream_path: str = Field(default="/api/query/stream", description="Chat streaming endpoint")
    generate_path: str = Field(default="/api/generate", description="Plain text generation endpoint")
    analysis_timeout: int = Field(
        default=300, description="Upper bound for a requirement analysis stream in seconds"
    )


class GitHubSettings(BaseSettings):
    """GitHub REST API configuration."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_")

    url: str = Field(default="", description="GitHub Enterprise host (empty for github.com)")
    token: str = Field(default="", description="Fallback token when the request carries none")
    default_org: str = Field(default="IBMSC", description="Organization used when none is given")
    default_repo: str = Field(default="PRM", description="Repository used when none is given")
    repos_cache_ttl: int = Field(default=300, description="Repository listing cache TTL in seconds")

    @property
    def api_base(self) -> str:
        if self.url:
            return f"{self.url.rstrip('/')}/api/v3"
        return "https://api.github.com"


class JiraSettings(BaseSettings):
    """JIRA REST API configuration."""

    model_config = SettingsConfigDict(env_prefix="JIRA_")

    base_url: str = Field(default="", description="JIRA site URL")
    email: str = Field(default="", description="Account email for basic auth")
    api_token: str = Field(default="", description="API token for basic auth")
    feedback_project_key: str = Field(
        default="ISCCC", description="Project receiving feedback sub-tasks"
    )
    batch_size: int = Field(default=5, description="Concurrent issue fetches per batch")

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.email and self.api_token)


class ModelSettings(BaseSettings):
    """LLM model catalog configuration."""

    available_models: str = Field(
        default="",
        validation_alias=AliasChoices("AVAILABLE_MODELS", "MODEL_LIST"),
        description="JSON array or comma-separated list of model ids",
    )
    default_model: str = Field(
        default="",
        validation_alias=AliasChoices("DEFAULT_MODEL"),
        description="Model used when the client does not pick one",
    )


class SecuritySettings(BaseSettings):
    """Security configuration."""

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    secret_key: str = Field(default="change-me-in-production", description="Secret key for hashing")
    user_email_header: str = Field(default="X-User-Email", description="Signed-in user email header")
    user_name_header: str = Field(default="X-User-Name", description="Signed-in user name header")
    github_token_header: str = Field(default="X-GitHub-Token", description="GitHub token header")
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="CORS allowed origins",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="devhub-gateway", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=True, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    chat_api: ChatBackendSettings = Field(default_factory=ChatBackendSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    jira: JiraSettings = Field(default_factory=JiraSettings)
    models: ModelSettings = Field(default_factory=ModelSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


settings = get_settings()
