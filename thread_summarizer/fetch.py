from __future__ import annotations

import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Literal, Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import requests
from bs4 import BeautifulSoup

from .config_schema import ForumConfig
from .errors import FetchError
from .extract import TruncationLimits, extract_all_page_posts, thread_title
from .post import FetchResult, PageData
from .run_log import RunLogger

_THREAD_PATH_RE = re.compile(r"^(/foro/[^/]+/[^/]+)(?:/\d+)?/?$")
_PAGE_SUFFIX_RE = re.compile(r"/\d+/?$")


def thread_base_url(url: str) -> str:
    """Thread URL without page number or query string."""
    parts = urlsplit((url or "").strip())
    match = _THREAD_PATH_RE.match(parts.path)
    path = match.group(1) if match else _PAGE_SUFFIX_RE.sub("", parts.path)
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def build_page_url(thread_url: str, page_number: int) -> str:
    """
    URL of one page of a thread.

    Page 1 is the bare thread URL and page N is `<base>/N`. A thread filtered by user
    (`?u=...`) is paginated through the `pagina` query parameter instead.
    """
    base = thread_base_url(thread_url)
    params = parse_qsl(urlsplit(thread_url).query, keep_blank_values=True)

    if any(key == "u" for key, _ in params):
        params = [(k, v) for k, v in params if k != "pagina"]
        if page_number > 1:
            params.append(("pagina", str(page_number)))
        return f"{base}?{urlencode(params)}"

    return base if page_number == 1 else f"{base}/{page_number}"


class PageSource(Protocol):
    """Page retrieval collaborator: page number in, raw page HTML out."""

    def fetch_page(self, page_number: int) -> str: ...


class HttpPageSource:
    def __init__(
        self,
        thread_url: str,
        *,
        forum_cfg: ForumConfig | None = None,
        session: Any | None = None,
    ) -> None:
        url = (thread_url or "").strip()
        if not url:
            raise ValueError("thread_url must be a non-empty string")

        cfg = forum_cfg or ForumConfig()
        if url.startswith("/"):
            url = cfg.site_url + url

        self.thread_url = url
        self._timeout = float(cfg.request_timeout_seconds)
        self._user_agent = cfg.user_agent
        self._session = session or requests.Session()

    def page_url(self, page_number: int) -> str:
        return build_page_url(self.thread_url, page_number)

    def fetch_page(self, page_number: int) -> str:
        url = self.page_url(page_number)
        try:
            response = self._session.get(
                url,
                headers={"Accept": "text/html", "User-Agent": self._user_agent},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch page {page_number} ({url}): {e}") from e

        return response.text


@dataclass(frozen=True)
class SummaryProgress:
    phase: Literal["fetching", "summarizing"]
    current: int
    total: int
    batch: int | None = None
    total_batches: int | None = None

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, max(0.0, self.current / self.total))


ProgressFn = Callable[[SummaryProgress], None]
SleepFn = Callable[[float], None]


@dataclass(frozen=True)
class _PageOutcome:
    page: PageData
    title: str


def _fetch_one(
    source: PageSource,
    page_number: int,
    *,
    limits: TruncationLimits,
    site_url: str,
    logger: RunLogger | None,
) -> _PageOutcome:
    html = source.fetch_page(page_number)
    soup = BeautifulSoup(html, "html.parser")
    posts = extract_all_page_posts(soup, limits=limits, site_url=site_url, logger=logger)
    return _PageOutcome(page=PageData(page_number=page_number, posts=tuple(posts)), title=thread_title(soup))


def fetch_pages(
    source: PageSource,
    from_page: int,
    to_page: int,
    *,
    limits: TruncationLimits | None = None,
    concurrency: int = 4,
    batch_delay_seconds: float = 0.2,
    on_progress: ProgressFn | None = None,
    sleep_fn: SleepFn | None = None,
    logger: RunLogger | None = None,
    site_url: str = "https://www.mediavida.com",
    fallback_title: str = "",
) -> FetchResult:
    """
    Fetch and extract every page in [from_page, to_page].

    Pages are fetched in chunks of `concurrency`, with a short pause between
    chunks. A failing page is recorded in fetch_errors and never stops the others.
    """
    if from_page < 1 or to_page < from_page:
        raise ValueError(f"invalid page range: {from_page}-{to_page}")
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    page_limits = limits or TruncationLimits(max_chars_per_post=1000, min_chars_per_post=40, max_total_chars=None)
    sleeper = sleep_fn or time.sleep
    page_numbers = list(range(from_page, to_page + 1))
    total = len(page_numbers)

    outcomes: dict[int, _PageOutcome] = {}
    failed: list[int] = []
    fetched = 0

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        for start in range(0, total, concurrency):
            chunk = page_numbers[start : start + concurrency]

            if on_progress is not None:
                on_progress(SummaryProgress(phase="fetching", current=fetched, total=total))

            futures = [
                (
                    n,
                    pool.submit(
                        _fetch_one,
                        source,
                        n,
                        limits=page_limits,
                        site_url=site_url,
                        logger=logger,
                    ),
                )
                for n in chunk
            ]

            for n, future in futures:
                fetched += 1
                try:
                    outcomes[n] = future.result()
                except Exception as e:
                    failed.append(n)
                    if logger is not None:
                        logger.warning("page_fetch_failed", page=n, error=str(e), error_type=type(e).__name__)

            if start + concurrency < total and batch_delay_seconds > 0:
                sleeper(float(batch_delay_seconds))

    if on_progress is not None:
        on_progress(SummaryProgress(phase="fetching", current=total, total=total))

    pages = tuple(outcomes[n].page for n in sorted(outcomes))
    title = next((outcomes[n].title for n in sorted(outcomes) if outcomes[n].title), "") or fallback_title

    authors: set[str] = set()
    for page in pages:
        authors.update(page.unique_authors)

    result = FetchResult(
        thread_title=title,
        pages=pages,
        total_posts=sum(p.post_count for p in pages),
        total_unique_authors=len(authors),
        fetch_errors=tuple(sorted(failed)),
    )

    if logger is not None:
        logger.info(
            "pages_fetched",
            from_page=from_page,
            to_page=to_page,
            pages=len(pages),
            posts=result.total_posts,
            fetch_errors=list(result.fetch_errors),
        )

    return result
