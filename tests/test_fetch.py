from __future__ import annotations

import threading
import unittest
from typing import Any

import requests

from thread_summarizer.errors import FetchError
from thread_summarizer.fetch import HttpPageSource, SummaryProgress, build_page_url, fetch_pages, thread_base_url
from thread_summarizer.offline import OfflinePageSource
from thread_summarizer.run_log import RunLogger


class _FakeResponse:
    def __init__(self, text: str, status: int = 200) -> None:
        self.text = text
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


class _FakeSession:
    def __init__(self, responses: dict[str, _FakeResponse]) -> None:
        self._responses = responses
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def get(self, url: str, **kwargs: Any) -> _FakeResponse:
        with self._lock:
            self.calls.append({"url": url, **kwargs})
        return self._responses.get(url, _FakeResponse("", status=404))


class _ShortPostSource:
    """Two posts per page: a short reply and a real comment."""

    def fetch_page(self, page_number: int) -> str:
        posts = [
            (page_number * 2 - 1, "Ferran", "pole, que no se diga"),
            (page_number * 2, "Txema", "Después de actualizar drivers el juego ya no se cierra al cargar partida."),
        ]
        return "<html><body>" + "".join(
            f'<div class="post" data-num="{num}"><div class="post-header"><a class="autor">{author}</a></div>'
            f'<div class="post-contents"><div class="body"><p>{body}</p></div></div></div>'
            for num, author, body in posts
        ) + "</body></html>"


class TestPageUrls(unittest.TestCase):
    def test_thread_base_url_strips_page_and_query(self) -> None:
        self.assertEqual(
            thread_base_url("https://www.mediavida.com/foro/off-topic/hilo-oficial-123/7?x=1"),
            "https://www.mediavida.com/foro/off-topic/hilo-oficial-123",
        )
        self.assertEqual(
            thread_base_url("https://www.mediavida.com/foro/off-topic/hilo-oficial-123"),
            "https://www.mediavida.com/foro/off-topic/hilo-oficial-123",
        )

    def test_build_page_url(self) -> None:
        url = "https://www.mediavida.com/foro/juegos/hilo-1/3"
        self.assertEqual(build_page_url(url, 1), "https://www.mediavida.com/foro/juegos/hilo-1")
        self.assertEqual(build_page_url(url, 9), "https://www.mediavida.com/foro/juegos/hilo-1/9")

    def test_build_page_url_with_user_filter(self) -> None:
        url = "https://www.mediavida.com/foro/juegos/hilo-1?u=Ferran&pagina=2"
        self.assertEqual(build_page_url(url, 1), "https://www.mediavida.com/foro/juegos/hilo-1?u=Ferran")
        self.assertEqual(build_page_url(url, 4), "https://www.mediavida.com/foro/juegos/hilo-1?u=Ferran&pagina=4")


class TestHttpPageSource(unittest.TestCase):
    def test_fetch_page_sends_html_accept_and_timeout(self) -> None:
        session = _FakeSession({"https://www.mediavida.com/foro/a/b/2": _FakeResponse("<html>ok</html>")})
        source = HttpPageSource("https://www.mediavida.com/foro/a/b", session=session)

        self.assertEqual(source.fetch_page(2), "<html>ok</html>")
        call = session.calls[0]
        self.assertEqual(call["headers"]["Accept"], "text/html")
        self.assertEqual(call["timeout"], 15.0)

    def test_http_errors_become_fetch_errors(self) -> None:
        source = HttpPageSource("https://www.mediavida.com/foro/a/b", session=_FakeSession({}))
        with self.assertRaises(FetchError):
            source.fetch_page(3)

    def test_relative_thread_url_uses_site(self) -> None:
        source = HttpPageSource("/foro/a/b/4", session=_FakeSession({}))
        self.assertEqual(source.page_url(2), "https://www.mediavida.com/foro/a/b/2")


class TestFetchPages(unittest.TestCase):
    def test_failed_pages_are_reported_not_included(self) -> None:
        source = OfflinePageSource(posts_per_page=3, failing_pages=frozenset({11, 12}))
        progress: list[SummaryProgress] = []
        sleeps: list[float] = []
        log = RunLogger.in_memory()

        result = fetch_pages(
            source,
            5,
            20,
            on_progress=progress.append,
            sleep_fn=sleeps.append,
            logger=log,
        )

        self.assertEqual(result.fetch_errors, (11, 12))
        self.assertEqual(len(result.pages), 14)
        self.assertEqual([p.page_number for p in result.pages], [n for n in range(5, 21) if n not in (11, 12)])
        self.assertEqual(result.total_posts, 14 * 3)
        self.assertEqual(result.thread_title, "Hilo de pruebas offline")
        self.assertEqual(log.events().count("page_fetch_failed"), 2)

        currents = [p.current for p in progress]
        self.assertEqual(currents, sorted(currents))
        self.assertEqual(progress[-1].current, 16)
        self.assertTrue(all(p.phase == "fetching" and p.total == 16 for p in progress))
        self.assertEqual(sleeps, [0.2, 0.2, 0.2])

    def test_unique_authors_are_case_insensitive(self) -> None:
        source = OfflinePageSource(posts_per_page=10)
        result = fetch_pages(source, 1, 2, sleep_fn=lambda _s: None)
        self.assertEqual(result.total_unique_authors, 5)

    def test_every_page_failing_yields_empty_result(self) -> None:
        source = OfflinePageSource(failing_pages=frozenset({1, 2}))
        result = fetch_pages(source, 1, 2, sleep_fn=lambda _s: None, fallback_title="fallback")

        self.assertEqual(result.pages, ())
        self.assertEqual(result.fetch_errors, (1, 2))
        self.assertEqual(result.thread_title, "fallback")

    def test_short_posts_are_left_out_of_the_totals(self) -> None:
        result = fetch_pages(_ShortPostSource(), 1, 2, sleep_fn=lambda _s: None)

        self.assertEqual(result.total_posts, 2)
        self.assertEqual(result.total_unique_authors, 1)
        self.assertEqual([p.author for p in result.all_posts], ["Txema", "Txema"])

    def test_rejects_inverted_range(self) -> None:
        with self.assertRaises(ValueError):
            fetch_pages(OfflinePageSource(), 5, 4)


if __name__ == "__main__":
    unittest.main()
