"""
Configuration management for the negotiation change intelligence pipeline.

Loads settings from environment variables with sensible defaults.
"""

import logging
from functools import lru_cache
from typing import Literal

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # ==========================================================================
    # LLM API Keys
    # ==========================================================================
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openai_api_key: str = Field(default="", description="OpenAI API key for GPT-4o")

    # ==========================================================================
    # LLM Configuration
    # ==========================================================================
    primary_llm_model: str = "claude-sonnet-4-20250514"
    primary_llm_provider: Literal["anthropic", "openai"] = "anthropic"
    fallback_llm_model: str = "gpt-4o"
    fallback_llm_provider: Literal["anthropic", "openai"] = "openai"
    llm_temperature: float = 0.0
    # Defaults keep one compose call to one provider request
    llm_max_attempts: int = 1
    llm_fallback_on_error: bool = False

    # ==========================================================================
    # Change Analysis
    # ==========================================================================
    analysis_timeout_seconds: float = 15.0
    analysis_max_tokens: int = 600
    batch_max_tokens: int = 2_000
    max_change_text_chars: int = 2_000

    # Batch budget
    batch_max_model_calls: int = 10
    batch_max_seconds: float = 30.0
    editorial_group_size: int = 8
    batch_item_text_chars: int = 500

    # ==========================================================================
    # Counterproposal Generation
    # ==========================================================================
    generation_timeout_seconds: float = 15.0
    generation_max_tokens: int = 800
    short_text_threshold: int = 50
    reference_clause_chars: int = 500

    # ==========================================================================
    # Context Gathering
    # ==========================================================================
    context_query_timeout_seconds: float = 5.0
    max_query_terms: int = 10
    max_entity_search_terms: int = 3
    max_context_entities: int = 10
    min_clause_search_chars: int = 20
    clause_similarity_floor: int = 20  # 0-100 scale

    # Persistence writes
    persistence_timeout_seconds: float = 5.0

    # Prompt rendering caps
    prompt_max_entities: int = 5
    prompt_max_clauses: int = 3
    prompt_max_policies: int = 5

    @field_validator(
        "analysis_timeout_seconds",
        "generation_timeout_seconds",
        "context_query_timeout_seconds",
        "persistence_timeout_seconds",
        "batch_max_seconds",
    )
    @classmethod
    def positive_duration(cls, v: float) -> float:
        """Timeouts and time budgets must be positive."""
        if v <= 0:
            raise ValueError("duration must be positive")
        return v

    @field_validator("batch_max_model_calls", "editorial_group_size", "max_change_text_chars", "llm_max_attempts")
    @classmethod
    def positive_count(cls, v: int) -> int:
        """Call budgets and size limits must be positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structlog once for the process."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer(colors=settings.debug)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
