"""Configuration management for the quality scoring engine."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List
from dotenv import load_dotenv

load_dotenv()


@dataclass
class Config:
    """Application configuration."""

    # API Keys
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    openai_base_url: str = field(default_factory=lambda: os.getenv("OPENAI_BASE_URL", ""))

    # OpenAI request settings
    openai_temperature: float = 0.2
    ai_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("AI_TIMEOUT_SECONDS", "30"))
    )

    # Scoring settings
    quality_pass_threshold: int = field(
        default_factory=lambda: int(os.getenv("QUALITY_PASS_THRESHOLD", "80"))
    )
    quality_flag_threshold: int = field(
        default_factory=lambda: int(os.getenv("QUALITY_FLAG_THRESHOLD", "60"))
    )
    related_keys_limit: int = 10

    # Batch settings
    evaluation_concurrency: int = field(
        default_factory=lambda: int(os.getenv("EVALUATION_CONCURRENCY", "10"))
    )
    max_batch_size: int = 1000

    # Retry settings (seconds)
    retry_max_retries: int = field(
        default_factory=lambda: int(os.getenv("RETRY_MAX_RETRIES", "3"))
    )
    retry_initial_delay: float = field(
        default_factory=lambda: float(os.getenv("RETRY_INITIAL_DELAY", "1.0"))
    )
    retry_max_delay: float = field(
        default_factory=lambda: float(os.getenv("RETRY_MAX_DELAY", "30.0"))
    )
    retry_multiplier: float = 2.0

    # Circuit breaker settings
    breaker_failure_threshold: int = field(
        default_factory=lambda: int(os.getenv("BREAKER_FAILURE_THRESHOLD", "5"))
    )
    breaker_reset_timeout: float = field(
        default_factory=lambda: float(os.getenv("BREAKER_RESET_TIMEOUT", "60"))
    )

    # Storage and logging
    data_dir: Path = field(
        default_factory=lambda: Path(os.getenv("QUALITYGATE_DATA_DIR", ".qualitygate"))
    )
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []
        if not self.openai_api_key:
            errors.append("OPENAI_API_KEY is not set (AI evaluation will fall back to heuristics)")
        if not 0 <= self.quality_pass_threshold <= 100:
            errors.append("QUALITY_PASS_THRESHOLD must be between 0 and 100")
        if not 0 <= self.quality_flag_threshold <= self.quality_pass_threshold:
            errors.append("QUALITY_FLAG_THRESHOLD must be between 0 and QUALITY_PASS_THRESHOLD")
        if self.evaluation_concurrency < 1:
            errors.append("EVALUATION_CONCURRENCY must be at least 1")
        if self.breaker_failure_threshold < 1:
            errors.append("BREAKER_FAILURE_THRESHOLD must be at least 1")
        return errors


# Global config instance
config = Config()
