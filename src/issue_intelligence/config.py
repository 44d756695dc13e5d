"""Configuration management using pydantic-settings."""

import logging

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Issue Intelligence"
    DEBUG: bool = False

    # Generation provider selection
    LLM_PROVIDER: str = ""  # 'claude', 'ollama', or empty for auto-select
    GENERATION_TIMEOUT: float = 60.0

    # Anthropic (Claude)
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MODEL: str = "claude-sonnet-4-20250514"

    # Ollama (local LLM and embeddings)
    OLLAMA_BASE_URL: str = ""  # e.g. http://localhost:11434, empty = disabled
    OLLAMA_LLM_MODEL: str = "llama3.1:8b"
    OLLAMA_EMBEDDING_MODEL: str = "nomic-embed-text"

    # Embeddings
    EMBEDDING_PROVIDER: str = ""  # 'openai', 'ollama', 'sentence-transformer', or empty
    EMBEDDING_MODEL: str = "all-MiniLM-L6-v2"  # sentence-transformer model
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_BATCH_SIZE: int = 100  # Max texts per outbound embedding request
    EMBEDDING_TIMEOUT: float = 60.0

    # Embedding cache
    EMBEDDING_CACHE_TTL_SECONDS: int = 24 * 60 * 60
    EMBEDDING_CACHE_MAX_SIZE: int = 10000

    # Duplicate detection (cosine similarity, 0-1)
    DUPLICATE_HIGH_THRESHOLD: float = 0.92  # Auto-link grade
    DUPLICATE_MEDIUM_THRESHOLD: float = 0.75  # Review grade
    DUPLICATE_FALLBACK_HIGH_THRESHOLD: float = 0.8  # Jaccard, keyword fallback
    DUPLICATE_FALLBACK_MEDIUM_THRESHOLD: float = 0.6
    DUPLICATE_MAX_RESULTS: int = 10

    # Label suggestions (confidence, 0-1)
    LABEL_HIGH_THRESHOLD: float = 0.8
    LABEL_MEDIUM_THRESHOLD: float = 0.5
    LABEL_MAX_SUGGESTIONS: int = 10

    # Section confidence cut points (score, 0-100)
    CONFIDENCE_HIGH_SCORE: int = 80
    CONFIDENCE_MEDIUM_SCORE: int = 50

    # Related issue linking
    RELATED_SEMANTIC_THRESHOLD: float = 0.75
    RELATED_COMPONENT_THRESHOLD: float = 0.3  # Minimum label Jaccard overlap
    RELATED_MAX_RELATIONSHIPS: int = 20

    # Enrichment
    ENRICHMENT_SUBSTANTIAL_LENGTH: int = 200  # Body chars above which the original is kept

    @model_validator(mode="after")
    def check_thresholds(self) -> "Settings":
        """Validate that every medium cut point sits below its high cut point."""
        pairs = [
            ("DUPLICATE", self.DUPLICATE_MEDIUM_THRESHOLD, self.DUPLICATE_HIGH_THRESHOLD),
            (
                "DUPLICATE_FALLBACK",
                self.DUPLICATE_FALLBACK_MEDIUM_THRESHOLD,
                self.DUPLICATE_FALLBACK_HIGH_THRESHOLD,
            ),
            ("LABEL", self.LABEL_MEDIUM_THRESHOLD, self.LABEL_HIGH_THRESHOLD),
            ("CONFIDENCE", self.CONFIDENCE_MEDIUM_SCORE, self.CONFIDENCE_HIGH_SCORE),
        ]
        for name, medium, high in pairs:
            if medium > high:
                raise ValueError(
                    f"{name} medium threshold ({medium}) must not exceed high threshold ({high})"
                )
        if not self.ANTHROPIC_API_KEY and not self.OLLAMA_BASE_URL and self.DEBUG:
            logging.warning("No generation provider configured; AI paths will use fallbacks")
        return self


settings = Settings()
