from __future__ import annotations

import time
from typing import Any, Callable, Sequence

from bs4 import BeautifulSoup

from .avatars import build_avatar_map, hydrate_participant_avatars
from .cache import SummaryCache, multi_page_key, single_page_key
from .config_schema import AppConfig, Provider
from .errors import DecodeError, NoUsableContentError
from .extract import (
    TruncationLimits,
    as_soup,
    current_page_number,
    extract_all_page_posts,
    format_posts_for_prompt,
    thread_title,
    unique_author_count,
)
from .fetch import PageSource, ProgressFn, SummaryProgress, fetch_pages
from .llm import ResilientGenerator, TextGenerator
from .llm_schema import MultiPageSummary, SummaryPayload, ThreadSummary
from .post import ExtractedPost, PageData
from .prompts import (
    SUMMARY_JSON_STRUCTURE,
    build_batch_prompt,
    build_meta_prompt,
    build_repair_prompt,
    build_single_page_prompt,
    build_stats_block,
    format_batch_content,
    page_range_label,
    scaled_limits,
)
from .rate_limit import is_content_too_long_error, is_rate_limit_error
from .retry import RetryConfig, SleepFn
from .run_log import RunLogger, truncate_text
from .tolerant_json import parse_ai_json_response

ClockFn = Callable[[], float]

MSG_NOT_CONFIGURED = "IA no configurada. Ve a Ajustes > Inteligencia Artificial."
MSG_NO_POSTS_ON_PAGE = "No se detectaron posts en esta pagina."
MSG_NO_PAGES = "No se pudieron obtener posts de las paginas solicitadas."
MSG_SINGLE_PAGE_RANGE = 'Para resumir una sola página, usa el botón "Resumir" del hilo.'

MSG_RATE_LIMITED = "Límite de velocidad excedido. Espera un momento e inténtalo de nuevo."
MSG_TOO_LONG = "Contenido demasiado largo para procesar."
MSG_FAILED = "Error al generar el resumen."

MSG_MULTI_RATE_LIMITED = (
    "Límite de velocidad excedido. El plan gratuito es limitado para resúmenes largos. "
    "Espera un momento o reduce el rango de páginas."
)
MSG_MULTI_TOO_LONG = "Contenido demasiado largo para procesar. Intenta reducir el número de páginas."
MSG_MULTI_FAILED = "Error al generar el resumen multi-pagina."


def max_pages_message(provider: Provider, max_pages: int) -> str:
    if provider == "groq":
        return (
            f"Con Groq (Kimi) el máximo es {max_pages} páginas por resumen debido a límites de tokens "
            "por minuto (TPM). Usa un rango más corto o cambia a Gemini para hasta 30 páginas."
        )
    return f"El máximo para este proveedor es {max_pages} páginas por resumen."


def user_facing_error(exc: BaseException, *, multi_page: bool) -> str:
    """Map any generation/decoding failure to one of three short user messages."""
    if is_rate_limit_error(exc):
        return MSG_MULTI_RATE_LIMITED if multi_page else MSG_RATE_LIMITED
    # Decode errors carry parser offsets, which must not be read as HTTP codes.
    if not isinstance(exc, DecodeError) and is_content_too_long_error(exc):
        return MSG_MULTI_TOO_LONG if multi_page else MSG_TOO_LONG
    return MSG_MULTI_FAILED if multi_page else MSG_FAILED


def split_into_batches(pages: Sequence[PageData], batch_size: int) -> list[list[PageData]]:
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [list(pages[i : i + batch_size]) for i in range(0, len(pages), batch_size)]


def _multi_error(title: str, from_page: int, to_page: int, error: str) -> MultiPageSummary:
    return MultiPageSummary(title=title, page_range=f"{from_page}-{to_page}", error=error)


class ThreadSummarizer:
    """
    Turns forum pages into structured summaries.

    `generator=None` means no credentials are configured: every call returns an
    error summary without touching the network. Public methods never raise;
    failures come back as summaries with `error` set.
    """

    def __init__(
        self,
        generator: TextGenerator | None,
        *,
        config: AppConfig | None = None,
        provider: Provider | None = None,
        retry_cfg: RetryConfig | None = None,
        sleep_fn: SleepFn | None = None,
        logger: RunLogger | None = None,
        clock: ClockFn | None = None,
        cache: SummaryCache[Any] | None = None,
    ) -> None:
        self._cfg = config or AppConfig()
        self._provider: Provider = provider or self._cfg.ai.provider
        self._logger = logger
        self._clock = clock or time.monotonic
        self._sleep_fn = sleep_fn
        self._cache = cache

        self._generator: ResilientGenerator | None = None
        if generator is not None:
            self._generator = ResilientGenerator(
                generator,
                retry_cfg=retry_cfg or RetryConfig.from_policy(self._cfg.retry),
                sleep_fn=sleep_fn,
                logger=logger,
            )

    @classmethod
    def from_config(
        cls,
        generator: TextGenerator | None,
        config: AppConfig,
        *,
        sleep_fn: SleepFn | None = None,
        logger: RunLogger | None = None,
        cache_clock: ClockFn | None = None,
    ) -> "ThreadSummarizer":
        """Build a summarizer whose retry policy and result cache come from config."""
        return cls(
            generator,
            config=config,
            sleep_fn=sleep_fn,
            logger=logger,
            cache=SummaryCache.from_config(config.cache, clock=cache_clock),
        )

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def is_configured(self) -> bool:
        return self._generator is not None

    def _log(self, level: str, event: str, **data: Any) -> None:
        if self._logger is not None:
            self._logger.log(level, event, location="summarize", **data)

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int(round((self._clock() - started) * 1000)))

    # -- decoding --

    def _decode(self, generator: ResilientGenerator, raw: str, *, label: str) -> SummaryPayload:

        try:
            data = parse_ai_json_response(raw)
        except DecodeError as e:
            self._log("WARN", "json_repair_ai_fallback", label=label, reason=str(e))
            repaired = generator.generate(build_repair_prompt(raw, SUMMARY_JSON_STRUCTURE))
            try:
                data = parse_ai_json_response(repaired)
            except DecodeError:
                self._log(
                    "ERROR",
                    "summary_decode_failed",
                    label=label,
                    raw=truncate_text(raw, limit=4000),
                    repaired=truncate_text(repaired, limit=4000),
                )
                raise

        if not isinstance(data, dict):
            raise DecodeError(f"AI response for {label} is not a JSON object")
        return SummaryPayload.model_validate(data)

    # -- single page --

    def summarize_page(
        self,
        posts: Sequence[ExtractedPost],
        *,
        title: str,
        page_number: int = 1,
        location: str | None = None,
    ) -> ThreadSummary:
        """Summarize one page's already-extracted posts in a single generation."""
        key = single_page_key(location, page_number) if location else None
        if key is not None and self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                self._log("INFO", "summary_cache_hit", key=key)
                return cached

        post_count = len(posts)
        authors = unique_author_count(posts)

        def error_summary(message: str) -> ThreadSummary:
            return ThreadSummary(
                title=title,
                page_number=page_number,
                posts_analyzed=post_count,
                unique_authors=authors,
                error=message,
            )

        if not posts:
            return error_summary(MSG_NO_POSTS_ON_PAGE)
        generator = self._generator
        if generator is None:
            return error_summary(MSG_NOT_CONFIGURED)

        self._log("INFO", "summary_started", mode="single", page=page_number, posts=post_count)
        started = self._clock()

        try:
            prompt = build_single_page_prompt(
                thread_title=title,
                page_number=page_number,
                formatted_posts=format_posts_for_prompt(posts),
                post_count=post_count,
            )
            raw = generator.generate(prompt)
            limits = scaled_limits(1)
            payload = self._decode(generator, raw, label="resumen de página").capped(
                max_key_points=limits.max_key_points,
                max_participants=limits.max_participants,
            )
        except Exception as e:
            message = user_facing_error(e, multi_page=False)
            self._log("ERROR", "summary_failed", mode="single", page=page_number, error=str(e), message=message)
            return error_summary(message)

        summary = ThreadSummary(
            topic=payload.topic,
            key_points=payload.key_points,
            participants=hydrate_participant_avatars(payload.participants, build_avatar_map(posts)),
            status=payload.status,
            title=title,
            posts_analyzed=post_count,
            unique_authors=authors,
            page_number=page_number,
            generation_ms=self._elapsed_ms(started),
            model_used=generator.last_model_used,
        )
        self._log("INFO", "summary_completed", mode="single", page=page_number, ms=summary.generation_ms)

        if key is not None and self._cache is not None:
            self._cache.set(key, summary)
        return summary

    def summarize_document(
        self,
        document: BeautifulSoup | str,
        *,
        url: str | None = None,
        location: str | None = None,
    ) -> ThreadSummary:
        """Extract the posts of a page document and summarize them."""
        soup = as_soup(document)
        posts = extract_all_page_posts(
            soup,
            limits=TruncationLimits.single_page(self._cfg.extraction),
            site_url=self._cfg.forum.site_url,
            logger=self._logger,
        )
        return self.summarize_page(
            posts,
            title=thread_title(soup),
            page_number=current_page_number(soup, url),
            location=location,
        )

    # -- multi page --

    def summarize_pages(
        self,
        source: PageSource,
        from_page: int,
        to_page: int,
        *,
        on_progress: ProgressFn | None = None,
        location: str | None = None,
        fallback_title: str = "",
    ) -> MultiPageSummary:
        """
        Summarize a page range with a map-reduce over batches of pages.

        Up to `pages_per_batch` pages go into one generation. Longer ranges are
        summarized batch by batch and then merged by a single meta generation over
        the partial summaries.
        """
        key = multi_page_key(location, from_page, to_page) if location else None
        if key is not None and self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                self._log("INFO", "summary_cache_hit", key=key)
                return cached

        generator = self._generator
        if generator is None:
            return _multi_error("", from_page, to_page, MSG_NOT_CONFIGURED)

        requested = max(1, to_page - from_page + 1)
        batching = self._cfg.summarize.for_provider(self._provider)

        if requested < 2:
            return _multi_error("", from_page, to_page, MSG_SINGLE_PAGE_RANGE)
        if requested > batching.max_pages:
            return _multi_error("", from_page, to_page, max_pages_message(self._provider, batching.max_pages))

        pages_per_batch, max_chars_per_batch = batching.limits_for(requested)
        self._log(
            "INFO",
            "summary_started",
            mode="multi",
            from_page=from_page,
            to_page=to_page,
            provider=self._provider,
            pages_per_batch=pages_per_batch,
        )

        try:
            fetched = fetch_pages(
                source,
                from_page,
                to_page,
                limits=TruncationLimits.multi_page(self._cfg.extraction),
                concurrency=self._cfg.forum.fetch_concurrency,
                batch_delay_seconds=self._cfg.forum.fetch_batch_delay_seconds,
                on_progress=on_progress,
                sleep_fn=self._sleep_fn,
                logger=self._logger,
                site_url=self._cfg.forum.site_url,
                fallback_title=fallback_title,
            )
            if not fetched.pages or fetched.total_posts == 0:
                raise NoUsableContentError(f"no usable posts in pages {from_page}-{to_page}")
        except Exception as e:
            self._log("ERROR", "summary_failed", mode="multi", stage="fetch", error=str(e))
            return _multi_error(fallback_title, from_page, to_page, MSG_NO_PAGES)

        pages = list(fetched.pages)
        avatar_map = build_avatar_map(fetched.all_posts)
        stats_block = build_stats_block(pages)
        started = self._clock()

        def report(current: int, total: int, batch: int | None = None, total_batches: int | None = None) -> None:
            if on_progress is not None:
                on_progress(
                    SummaryProgress(
                        phase="summarizing",
                        current=current,
                        total=total,
                        batch=batch,
                        total_batches=total_batches,
                    )
                )

        try:
            if len(pages) <= pages_per_batch:
                report(1, 2)
                raw = self._summarize_batch(generator, fetched.thread_title, pages, stats_block, max_chars_per_batch)
                report(2, 2)
            else:
                batches = split_into_batches(pages, pages_per_batch)
                partials: list[str] = []
                labels: list[str] = []

                for i, batch in enumerate(batches):
                    report(i + 1, len(batches) + 1, i + 1, len(batches))
                    labels.append(f"Paginas {batch[0].page_number}-{batch[-1].page_number}")
                    partials.append(
                        self._summarize_batch(generator, fetched.thread_title, batch, stats_block, max_chars_per_batch)
                    )
                    self._log("INFO", "batch_summarized", batch=i + 1, total_batches=len(batches), label=labels[-1])

                report(len(batches) + 1, len(batches) + 1, len(batches) + 1, len(batches) + 1)
                raw = generator.generate(
                    build_meta_prompt(
                        provider=self._provider,
                        thread_title=fetched.thread_title,
                        partial_summaries=partials,
                        range_labels=labels,
                        from_page=from_page,
                        to_page=to_page,
                        page_count=len(pages),
                        stats_block=stats_block,
                    )
                )

            limits = scaled_limits(len(pages))
            payload = self._decode(generator, raw, label="resumen multi-pagina").capped(
                max_key_points=limits.max_key_points,
                max_participants=limits.max_participants,
            )
        except Exception as e:
            message = user_facing_error(e, multi_page=True)
            self._log("ERROR", "summary_failed", mode="multi", stage="generate", error=str(e), message=message)
            return _multi_error(fetched.thread_title, from_page, to_page, message)

        summary = MultiPageSummary(
            topic=payload.topic,
            key_points=payload.key_points,
            participants=hydrate_participant_avatars(payload.participants, avatar_map),
            status=payload.status,
            title=fetched.thread_title,
            total_posts_analyzed=fetched.total_posts,
            total_unique_authors=fetched.total_unique_authors,
            pages_analyzed=len(pages),
            page_range=f"{from_page}-{to_page}",
            fetch_errors=list(fetched.fetch_errors),
            generation_ms=self._elapsed_ms(started),
            model_used=generator.last_model_used,
        )
        self._log(
            "INFO",
            "summary_completed",
            mode="multi",
            pages=summary.pages_analyzed,
            fetch_errors=summary.fetch_errors,
            ms=summary.generation_ms,
        )

        if key is not None and self._cache is not None:
            self._cache.set(key, summary)
        return summary

    def _summarize_batch(
        self,
        generator: ResilientGenerator,
        title: str,
        pages: Sequence[PageData],
        stats_block: str,
        max_chars: int,
    ) -> str:
        prompt = build_batch_prompt(
            provider=self._provider,
            thread_title=title,
            pages=pages,
            stats_block=stats_block,
            content=format_batch_content(pages, max_chars=max_chars),
        )
        self._log("DEBUG", "batch_prompt_built", label=page_range_label(pages), chars=len(prompt))
        return generator.generate(prompt)
