"""
Application Configuration

LLM Provider Configuration:
---------------------------
Select the completion backend with LLM_PROVIDER:
- LLM_PROVIDER=openai      -> Direct OpenAI API
- LLM_PROVIDER=openrouter  -> OpenRouter (OpenAI-compatible)
- LLM_PROVIDER=anthropic   -> Anthropic
- LLM_PROVIDER=onprem      -> On-Premise Ollama (OpenAI-compatible)
- LLM_PROVIDER=disabled    -> No completion service, deterministic fallbacks only

See .env for the remaining options.
"""
from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "Agent Discovery Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # LLM provider
    LLM_PROVIDER: str = "openai"
    DEFAULT_LLM_MODEL: str = "gpt-4o-mini"

    # API Keys (loaded from environment)
    OPENAI_API_KEY: Optional[str] = None
    OPENROUTER_API_KEY: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None

    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    ONPREM_BASE_URL: str = "http://localhost:11434/v1"

    # Classification calls
    CLASSIFIER_TEMPERATURE: float = 0.3
    CLASSIFIER_MAX_TOKENS: int = 500

    # Synthesis calls
    SYNTHESIS_TEMPERATURE: float = 0.8
    SYNTHESIS_MAX_OUTPUT_TOKENS: int = 1000
    SYNTHESIS_MAX_CHARS: int = 6000

    # Every completion call is bounded by this timeout
    COMPLETION_TIMEOUT_SECONDS: float = 8.0

    # Sessions
    SESSION_TTL_MINUTES: int = 60
    SESSION_EVICTION_INTERVAL_SECONDS: int = 300
    HISTORY_CONTEXT_TURNS: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_DIR: Optional[str] = "logs"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance
    Using lru_cache ensures settings are loaded once and reused
    """
    return Settings()
