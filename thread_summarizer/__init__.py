from __future__ import annotations

from .cache import SummaryCache
from .config import load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, DecodeError, FetchError, GenerationError, NoUsableContentError
from .llm_schema import MultiPageSummary, PostSummary, ThreadSummary
from .summarize import ThreadSummarizer

__all__ = [
    "AppConfig",
    "ConfigError",
    "DecodeError",
    "FetchError",
    "GenerationError",
    "MultiPageSummary",
    "NoUsableContentError",
    "PostSummary",
    "SummaryCache",
    "ThreadSummarizer",
    "ThreadSummary",
    "load_config",
    "resolve_runtime_secrets",
]
