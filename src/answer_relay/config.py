"""Configuration models for the answer relay service."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

_FALLBACK_ENV_PATH = Path("/etc/gptbot/.env")


class ConfigError(ValueError):
    """Raised when required process configuration is missing or invalid."""


class BucketConfig(BaseModel):
    """Token bucket sizing for one upstream channel."""

    capacity: int = Field(ge=1)
    tokens_per_interval: int = Field(ge=1)
    interval_ms: float = Field(gt=0.0)


class RateLimitConfig(BaseModel):
    """Per-channel quotas protecting shared upstream limits."""

    completions: BucketConfig = Field(
        default_factory=lambda: BucketConfig(
            capacity=80000, tokens_per_interval=80000, interval_ms=60000
        )
    )
    search: BucketConfig = Field(
        default_factory=lambda: BucketConfig(
            capacity=100, tokens_per_interval=100, interval_ms=60000
        )
    )

    def channels(self) -> dict[str, BucketConfig]:
        return {"completions": self.completions, "search": self.search}


class ScoringConfig(BaseModel):
    """Configures the layered relevance heuristic and result filter."""

    max_score: float = Field(default=20.0, gt=0.0)
    confidence_threshold: float = Field(default=0.45, ge=0.0, le=1.0)
    max_results: int = Field(default=3, ge=1)

    query_exact_score: float = Field(default=19.0, ge=0.0)
    query_prefix_score: float = Field(default=18.0, ge=0.0)
    prefix_match_chars: int = Field(default=20, ge=1)
    min_match_chars: int = Field(default=12, ge=1)
    hit_prefix_chars: int = Field(default=100, ge=1)

    domain_floor: float = Field(default=0.3, ge=0.0, le=1.0)
    domain_low_score: float = Field(default=5.0, ge=0.0)
    domain_topical_score: float = Field(default=16.0, ge=0.0)
    domain_generic_score: float = Field(default=10.0, ge=0.0)

    hit_score_scale: float = Field(default=10.0, gt=0.0)
    hit_score_cap: float = Field(default=0.95, ge=0.0, le=1.0)

    @property
    def threshold_score(self) -> float:
        return self.confidence_threshold * self.max_score


class PipelineConfig(BaseModel):
    """Configures the similar-answer flow."""

    search_mode: str = Field(default="keyword", pattern="^(keyword|semantic|vector)$")
    search_top: int = Field(default=10, ge=1, le=50)
    domain_tag: str = "health"
    search_channel: str = "search"
    completion_channel: str = "completions"
    fallback_question: str = "No closely related questions or answers found"
    fallback_message: str = "Please try rephrasing your question or ask something else."


class AzureConfig(BaseModel):
    """Azure OpenAI and Azure Cognitive Search connection settings."""

    base_url: str
    api_key: str
    deployment: str
    api_version: str = "2023-07-01-preview"
    search_endpoint: str
    search_key: str
    index_name: str
    pm_index_name: str
    answers_index_name: str
    search_api_version: str = "2023-07-01-Preview"
    embedding_deployment: str | None = None
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)


class DrupalConfig(BaseModel):
    """CMS credentials used to persist similar answers."""

    base_url: str
    username: str
    password: str


class Settings(BaseModel):
    """Top-level process configuration."""

    azure: AzureConfig
    drupal: DrupalConfig
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    log_level: str = "INFO"
    log_dir: str | None = "logs"

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Settings":
        """Load settings from the environment, reading `.env` files first.

        Falls back to `/etc/gptbot/.env` when the local file does not define the
        search endpoint. Every missing required variable is reported at once.
        """

        load_dotenv(env_file)
        if not os.getenv("AZ_SEARCH_ENDPOINT") and _FALLBACK_ENV_PATH.exists():
            load_dotenv(_FALLBACK_ENV_PATH)

        required = {
            "AZ_BASE_URL": "azure.base_url",
            "AZ_API_KEY": "azure.api_key",
            "AZ_DEPLOYMENT_NAME": "azure.deployment",
            "AZ_SEARCH_ENDPOINT": "azure.search_endpoint",
            "AZ_SEARCH_KEY": "azure.search_key",
            "AZ_INDEX_NAME": "azure.index_name",
            "AZ_PM_VECTOR_INDEX_NAME": "azure.pm_index_name",
            "AZ_ANSWERS_INDEX_NAME": "azure.answers_index_name",
            "DRUPAL_BASE_URL": "drupal.base_url",
            "DRUPAL_USERNAME": "drupal.username",
            "DRUPAL_PASSWORD": "drupal.password",
        }
        missing = [name for name in required if not os.getenv(name)]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        azure = AzureConfig(
            base_url=os.environ["AZ_BASE_URL"],
            api_key=os.environ["AZ_API_KEY"],
            deployment=os.environ["AZ_DEPLOYMENT_NAME"],
            search_endpoint=os.environ["AZ_SEARCH_ENDPOINT"],
            search_key=os.environ["AZ_SEARCH_KEY"],
            index_name=os.environ["AZ_INDEX_NAME"],
            pm_index_name=os.environ["AZ_PM_VECTOR_INDEX_NAME"],
            answers_index_name=os.environ["AZ_ANSWERS_INDEX_NAME"],
            embedding_deployment=os.getenv("AZ_EMBEDDING_DEPLOYMENT") or None,
        )
        drupal = DrupalConfig(
            base_url=os.environ["DRUPAL_BASE_URL"],
            username=os.environ["DRUPAL_USERNAME"],
            password=os.environ["DRUPAL_PASSWORD"],
        )

        rate_limits = RateLimitConfig()
        search_per_minute = os.getenv("RATE_LIMIT_SEARCH_PER_MINUTE")
        if search_per_minute:
            per_minute = int(search_per_minute)
            rate_limits.search = BucketConfig(
                capacity=per_minute, tokens_per_interval=per_minute, interval_ms=60000
            )
        completions_per_minute = os.getenv("RATE_LIMIT_COMPLETIONS_PER_MINUTE")
        if completions_per_minute:
            per_minute = int(completions_per_minute)
            rate_limits.completions = BucketConfig(
                capacity=per_minute, tokens_per_interval=per_minute, interval_ms=60000
            )

        return cls(
            azure=azure,
            drupal=drupal,
            rate_limits=rate_limits,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_dir=os.getenv("LOG_DIR", "logs"),
        )
