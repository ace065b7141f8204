"""Configuration management for the Ops Assistant core."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Model endpoint (OpenAI-compatible; OpenRouter by default)
    OPENAI_API_KEY: str = Field(..., description="API key for the model endpoint")
    OPENAI_BASE_URL: str = Field(
        default="https://openrouter.ai/api/v1",
        description="Base URL of the OpenAI-compatible chat completions endpoint",
    )
    AI_MODEL: str = Field(default="gpt-4o", description="Model used for summaries")
    AI_TEMPERATURE: float = Field(default=0.7, description="Sampling temperature")
    AI_MAX_TOKENS: int = Field(default=1500, description="Max completion tokens")

    # Environment
    OPS_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Model call resilience
    MODEL_TIMEOUT_SECONDS: float = Field(default=30.0, description="Per-attempt model timeout")
    MODEL_MAX_ATTEMPTS: int = Field(default=3, description="Total model call attempts")
    MODEL_BACKOFF_BASE_SECONDS: float = Field(
        default=1.0, description="First backoff interval; doubles per retry"
    )

    # Entity cache
    CONTEXT_CACHE_TTL_SECONDS: float = Field(default=300.0, description="Entity cache TTL")
    CONTEXT_CACHE_MAX_ENTRIES: int = Field(
        default=100, description="Max resident entries per entity pool"
    )

    # Feedback learning
    PREFERENCE_TTL_SECONDS: float = Field(
        default=300.0, description="Preference profile cache TTL"
    )
    PREFERENCE_ANALYSIS_LIMIT: int = Field(
        default=20, description="Edit analyses considered per profile recompute"
    )
    FEEDBACK_WINDOW_DAYS: int = Field(
        default=30, description="Trailing window for feedback statistics"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
