from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # core
    ENV: str = "dev"
    API_PREFIX: str = "/api"

    # database & redis
    # Unset means "not configured"; the API answers 503 rather than empty data.
    DATABASE_URL: str | None = None
    # Keep this as a plain string so redis:// URLs are always accepted
    REDIS_URL: str = "redis://localhost:6379/0"

    # external APIs
    OPENROUTER_API_KEY: str | None = None
    OPENAI_API_KEY: str | None = None

    # cors
    FRONTEND_ORIGIN: str | None = None
    # Explicit debug-only switch for wide-open CORS in non-prod envs
    CORS_ALLOW_ALL_ORIGINS: bool = False

    # llm
    LLM_MODEL: str = "openai/gpt-5"
    # Hard cap on concurrent LLM calls per process
    LLM_MAX_CONCURRENCY: int = 4
    LLM_MAX_OUTPUT_TOKENS: int = 4000
    LLM_MAX_TOOL_ROUNDS: int = 3

    # accounting & segmentation
    COST_PER_1K_TOKENS_USD: float = 0.01
    STEP_FLUSH_THRESHOLD: int = 100

    # read surface / uploads
    HISTORY_DEFAULT_LIMIT: int = 10
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
