from functools import lru_cache
from typing import Optional

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    clickhouse_url: str = Field(default="http://localhost:8123", alias="CLICKHOUSE_URL")
    clickhouse_user: Optional[str] = Field(default=None, alias="CLICKHOUSE_USER")
    clickhouse_password: Optional[str] = Field(default=None, alias="CLICKHOUSE_PASSWORD")
    clickhouse_database: str = Field(default="default", alias="CLICKHOUSE_DATABASE")
    clickhouse_timeout_seconds: float = Field(default=15, alias="CLICKHOUSE_TIMEOUT_SECONDS")
    repos_table: str = Field(default="repos_new", alias="REPOS_TABLE")

    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_api_base: Optional[HttpUrl] = Field(
        default=None, alias="OPENAI_API_BASE"
    )  # deepseek and other openai-compatible endpoints
    openai_model: str = Field(default="deepseek-coder", alias="OPENAI_MODEL")
    llm_timeout_seconds: float = Field(default=8, alias="LLM_TIMEOUT_SECONDS")

    page_size: int = Field(default=50, alias="PAGE_SIZE")
    max_page_size: int = Field(default=100, alias="MAX_PAGE_SIZE")
    cache_ttl_seconds: int = Field(default=3600, alias="CACHE_TTL_SECONDS")
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # ignore unrelated env vars to avoid validation errors
        populate_by_name = True


@lru_cache
def get_settings() -> Settings:
    return Settings()
