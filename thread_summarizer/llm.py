from __future__ import annotations

from typing import Any, Protocol

from openai import OpenAI

from .config_schema import ProviderConfig
from .errors import GenerationError
from .rate_limit import is_rate_limit_error, rate_limit_retry_policy
from .retry import IsRetryableFn, OnRetryFn, RetryConfig, SleepFn, call_with_retries
from .run_log import RunLogger

ALL_MODELS_EXHAUSTED = "Todos los modelos agotados. Espera un momento."


class TextGenerator(Protocol):
    """Opaque text-generation transport: prompt in, raw model text out."""

    def generate(self, prompt: str) -> str: ...


class _CompletionsAPI(Protocol):
    def create(self, **kwargs: Any) -> Any: ...


class _ChatAPI(Protocol):
    completions: _CompletionsAPI


class _OpenAIClient(Protocol):
    chat: _ChatAPI


def _extract_message_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    for choice in choices:
        message = getattr(choice, "message", None)
        text = getattr(message, "content", None)
        if isinstance(text, str) and text.strip():
            return text.strip()

    raise GenerationError("Model response did not include any text")


class OpenAICompatibleGenerator:
    """
    Chat-completions transport for any OpenAI-compatible endpoint (Gemini, Groq).

    Tries the configured model first, then each fallback model in order whenever the
    current one is rate limited. Other failures are raised straight away.
    """

    def __init__(
        self,
        api_key: str,
        *,
        provider_cfg: ProviderConfig,
        client: _OpenAIClient | None = None,
    ) -> None:
        key = (api_key or "").strip()
        if not key:
            raise ValueError("api_key must be a non-empty string")

        self._cfg = provider_cfg
        self._client: _OpenAIClient = client or OpenAI(api_key=key, base_url=provider_cfg.base_url)
        self.last_model_used: str | None = None

    def models(self) -> list[str]:
        primary = (self._cfg.model or "").strip()
        out = [primary] if primary else []
        out.extend(m for m in self._cfg.fallback_models if m not in out)
        return out

    def _call_raw(self, *, model: str, prompt: str) -> str:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self._cfg.max_output_tokens,
        }
        if self._cfg.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = self._client.chat.completions.create(**kwargs)
        return _extract_message_text(response)

    def generate(self, prompt: str) -> str:
        models = self.models()
        if not models:
            raise ValueError("provider_cfg.model must be non-empty")

        for model in models:
            try:
                text = self._call_raw(model=model, prompt=prompt)
            except GenerationError:
                raise
            except Exception as e:
                if is_rate_limit_error(e):
                    continue
                raise GenerationError(f"Generation call failed ({model}): {e}") from e

            self.last_model_used = model
            return text

        raise GenerationError(ALL_MODELS_EXHAUSTED)


class ResilientGenerator:
    """
    Wraps a transport with bounded exponential backoff on rate-limit failures.

    Each call retries independently; nothing is remembered across calls.
    """

    def __init__(
        self,
        transport: TextGenerator,
        *,
        retry_cfg: RetryConfig | None = None,
        is_retryable: IsRetryableFn = rate_limit_retry_policy,
        sleep_fn: SleepFn | None = None,
        on_retry: OnRetryFn | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._transport = transport
        self._cfg = retry_cfg or RetryConfig()
        self._is_retryable = is_retryable
        self._sleep_fn = sleep_fn
        self._on_retry = on_retry
        self._logger = logger

    @property
    def last_model_used(self) -> str | None:
        return getattr(self._transport, "last_model_used", None)

    def _handle_retry(self, event: Any) -> None:
        if self._logger is not None:
            self._logger.warning(
                "generation_retry",
                attempt=event.failure_attempt,
                next_attempt=event.next_attempt,
                max_attempts=event.max_attempts,
                delay_seconds=event.delay_seconds,
                reason=event.reason,
                error=event.error_message,
            )
        if self._on_retry is not None:
            self._on_retry(event)

    def generate(self, prompt: str) -> str:
        return call_with_retries(
            lambda: self._transport.generate(prompt),
            cfg=self._cfg,
            is_retryable=self._is_retryable,
            operation="generate",
            on_retry=self._handle_retry,
            sleep_fn=self._sleep_fn,
        )


def generate_with_retry(
    transport: TextGenerator,
    prompt: str,
    *,
    retry_cfg: RetryConfig | None = None,
    sleep_fn: SleepFn | None = None,
) -> str:
    return ResilientGenerator(transport, retry_cfg=retry_cfg, sleep_fn=sleep_fn).generate(prompt)
