from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Provider = Literal["gemini", "groq"]

PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


def _normalize_model_list(values: list[str]) -> list[str]:
    out: list[str] = []
    for item in values:
        model = (item or "").strip()
        if model and model not in out:
            out.append(model)
    return out


class ProviderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_key_env: str
    model: str
    base_url: str
    fallback_models: list[str] = Field(default_factory=list)
    max_output_tokens: PositiveInt = 8192
    json_mode: bool = True

    @field_validator("api_key_env")
    @classmethod
    def _api_key_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @field_validator("fallback_models")
    @classmethod
    def _normalize_fallbacks(cls, v: list[str]) -> list[str]:
        return _normalize_model_list(v)


def _default_gemini() -> ProviderConfig:
    return ProviderConfig(
        api_key_env="GEMINI_API_KEY",
        model="gemini-3-flash-preview",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        fallback_models=["gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash"],
    )


def _default_groq() -> ProviderConfig:
    return ProviderConfig(
        api_key_env="GROQ_API_KEY",
        model="moonshotai/kimi-k2-instruct",
        base_url="https://api.groq.com/openai/v1",
    )


class AIConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    provider: Provider = "gemini"
    gemini: ProviderConfig = Field(default_factory=_default_gemini)
    groq: ProviderConfig = Field(default_factory=_default_groq)

    def active(self) -> ProviderConfig:
        return self.groq if self.provider == "groq" else self.gemini


class ForumConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    site_url: str = "https://www.mediavida.com"
    request_timeout_seconds: NonNegativeFloat = 15.0
    fetch_concurrency: PositiveInt = 4
    fetch_batch_delay_seconds: NonNegativeFloat = 0.2
    user_agent: str = "thread-summarizer/0.1"

    @field_validator("site_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise ValueError("must be an absolute http(s) URL")
        return url


class ExtractionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_total_chars: PositiveInt = 32000
    max_chars_per_post: PositiveInt = 1500
    min_chars_per_post: PositiveInt = 50

    multi_page_max_chars_per_post: PositiveInt = 1000
    multi_page_min_chars_per_post: PositiveInt = 40

    @model_validator(mode="after")
    def _floors_below_caps(self) -> "ExtractionConfig":
        if self.min_chars_per_post >= self.max_chars_per_post:
            raise ValueError("min_chars_per_post must be < max_chars_per_post")
        if self.multi_page_min_chars_per_post >= self.multi_page_max_chars_per_post:
            raise ValueError("multi_page_min_chars_per_post must be < multi_page_max_chars_per_post")
        if self.max_chars_per_post > self.max_total_chars:
            raise ValueError("max_chars_per_post must be <= max_total_chars")
        return self


class BatchingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pages_per_batch: PositiveInt
    max_chars_per_batch: PositiveInt
    max_pages: PositiveInt = 30

    large_range_threshold: PositiveInt | None = None
    large_range_pages_per_batch: PositiveInt | None = None
    large_range_max_chars_per_batch: PositiveInt | None = None

    @model_validator(mode="after")
    def _large_range_all_or_none(self) -> "BatchingConfig":
        values = (
            self.large_range_threshold,
            self.large_range_pages_per_batch,
            self.large_range_max_chars_per_batch,
        )
        if any(v is not None for v in values) and not all(v is not None for v in values):
            raise ValueError("large_range_* settings must be given together")
        return self

    def limits_for(self, requested_pages: int) -> tuple[int, int]:
        """Return (pages_per_batch, max_chars_per_batch) for a requested range size."""
        if (
            self.large_range_threshold is not None
            and requested_pages >= self.large_range_threshold
            and self.large_range_pages_per_batch is not None
            and self.large_range_max_chars_per_batch is not None
        ):
            return self.large_range_pages_per_batch, self.large_range_max_chars_per_batch
        return self.pages_per_batch, self.max_chars_per_batch


class SummarizeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    gemini: BatchingConfig = Field(
        default_factory=lambda: BatchingConfig(
            pages_per_batch=8,
            max_chars_per_batch=40000,
            max_pages=30,
        )
    )
    groq: BatchingConfig = Field(
        default_factory=lambda: BatchingConfig(
            pages_per_batch=4,
            max_chars_per_batch=16000,
            max_pages=20,
            large_range_threshold=20,
            large_range_pages_per_batch=3,
            large_range_max_chars_per_batch=12000,
        )
    )

    def for_provider(self, provider: Provider) -> BatchingConfig:
        return self.groq if provider == "groq" else self.gemini


class RetryPolicyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_retries: Annotated[int, Field(ge=0)] = 3
    base_delay_seconds: NonNegativeFloat = 5.0


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ttl_seconds: Annotated[float, Field(gt=0.0)] = 300.0


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ai: AIConfig = Field(default_factory=AIConfig)
    forum: ForumConfig = Field(default_factory=ForumConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    summarize: SummarizeConfig = Field(default_factory=SummarizeConfig)
    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
