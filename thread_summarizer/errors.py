from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class FetchError(RuntimeError):
    """Raised when a thread page cannot be retrieved."""


class NoUsableContentError(RuntimeError):
    """Raised when no posts survive cleaning for the requested pages."""


class GenerationError(RuntimeError):
    """Raised when a text-generation call fails."""


class DecodeError(RuntimeError):
    """Raised when model output cannot be decoded into JSON."""
