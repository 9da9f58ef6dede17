from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from typing import Iterable, Sequence
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag

from .clean import MIN_MEANINGFUL_CHARS, clean_post_content
from .config_schema import ExtractionConfig
from .post import ExtractedPost
from .run_log import RunLogger

POST_SELECTOR = '.post[data-num], div[id^="post-"]'
POST_AUTHOR_SELECTOR = ".post-header .autor, .post-meta .autor, a.autor"
POST_AVATAR_SELECTOR = ".post-avatar img"
POST_BODY_SELECTOR = ".post-contents .body, .post-body, .cuerpo"
POST_TIME_SELECTOR = "time, .date"
POST_VOTES_SELECTOR = ".btnmola span"
THREAD_TITLE_SELECTOR = "#topic h1, .hd h1, h1.title, .thread-header h1"
PAGINATION_CURRENT_SELECTOR = ".pg .current, .pags .current"
PAGINATION_LINKS_SELECTOR = ".pg a, .pags a"

ANONYMOUS_AUTHOR = "Anónimo"
ELLIPSIS = "..."

_DEFAULT_SITE_URL = "https://www.mediavida.com"
_TRAILING_NUMBER_RE = re.compile(r"/(\d+)/?$")
_DIGITS_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class TruncationLimits:
    """
    Character budget applied to a page's posts.

    max_total_chars=None disables the proportional (second) phase; posts are then
    dropped when their capped content is min_chars_per_post chars or shorter.
    """

    max_chars_per_post: int = 1500
    min_chars_per_post: int = 50
    max_total_chars: int | None = 32000

    @classmethod
    def single_page(cls, cfg: ExtractionConfig) -> "TruncationLimits":
        return cls(
            max_chars_per_post=cfg.max_chars_per_post,
            min_chars_per_post=cfg.min_chars_per_post,
            max_total_chars=cfg.max_total_chars,
        )

    @classmethod
    def multi_page(cls, cfg: ExtractionConfig) -> "TruncationLimits":
        return cls(
            max_chars_per_post=cfg.multi_page_max_chars_per_post,
            min_chars_per_post=cfg.multi_page_min_chars_per_post,
            max_total_chars=None,
        )


def _cut(post: ExtractedPost, target: int) -> ExtractedPost:
    keep = max(0, target - len(ELLIPSIS))
    content = post.content[:keep].rstrip() + ELLIPSIS
    return replace(post, content=content, char_count=len(content))


def truncate_posts(posts: Sequence[ExtractedPost], limits: TruncationLimits) -> list[ExtractedPost]:
    """
    Fit posts into the character budget.

    Phase 1 caps every post at max_chars_per_post (ellipsis included). Phase 2, only
    when the capped total still exceeds max_total_chars, shrinks each post to
    floor(len * budget / total); a post whose share falls below min_chars_per_post
    is dropped. Without a total budget, posts at or under min_chars_per_post are
    dropped instead. Input order is preserved and the input is not modified.
    """
    capped: list[ExtractedPost] = []
    for post in posts:
        if len(post.content) > limits.max_chars_per_post:
            capped.append(_cut(post, limits.max_chars_per_post))
        else:
            capped.append(post)

    budget = limits.max_total_chars
    if budget is None:
        return [p for p in capped if len(p.content) > limits.min_chars_per_post]

    total = sum(len(p.content) for p in capped)
    if total <= budget:
        return capped

    ratio = budget / total
    out: list[ExtractedPost] = []
    for post in capped:
        target = math.floor(len(post.content) * ratio)
        if target < limits.min_chars_per_post:
            continue
        out.append(_cut(post, target))
    return out


def normalize_avatar_url(raw: str | None, *, site_url: str = _DEFAULT_SITE_URL) -> str | None:
    value = (raw or "").strip()
    if not value:
        return None
    if value.startswith("//"):
        return "https:" + value
    if value.startswith("/"):
        return site_url.rstrip("/") + value
    if not value.startswith("http"):
        return f"{site_url.rstrip('/')}/img/users/avatar/{value}"
    return value


def _parse_post_number(post_el: Tag) -> int:
    raw = post_el.get("data-num") or str(post_el.get("id") or "").replace("post-", "")
    match = _DIGITS_RE.search(str(raw or ""))
    return int(match.group(0)) if match else 0


def _parse_votes(post_el: Tag) -> int | None:
    votes_el = post_el.select_one(POST_VOTES_SELECTOR)
    if votes_el is None:
        return None
    match = _DIGITS_RE.search(votes_el.get_text().strip())
    if not match:
        return None
    votes = int(match.group(0))
    return votes if votes > 0 else None


def extract_single_post(post_el: Tag, *, site_url: str = _DEFAULT_SITE_URL) -> ExtractedPost | None:
    """Parse one post element; returns None when the body is missing or cleans to nothing."""
    number = _parse_post_number(post_el)

    author_el = post_el.select_one(POST_AUTHOR_SELECTOR)
    author = (author_el.get_text().strip() if author_el is not None else "") or ANONYMOUS_AUTHOR

    avatar_el = post_el.select_one(POST_AVATAR_SELECTOR)
    avatar_url = None
    if avatar_el is not None:
        avatar_url = normalize_avatar_url(
            avatar_el.get("data-src") or avatar_el.get("src"),
            site_url=site_url,
        )

    body_el = post_el.select_one(POST_BODY_SELECTOR)
    if body_el is None:
        return None

    content = clean_post_content(body_el)
    if not content:
        return None

    time_el = post_el.select_one(POST_TIME_SELECTOR)
    timestamp = None
    if time_el is not None:
        timestamp = (time_el.get("datetime") or time_el.get_text().strip()) or None

    return ExtractedPost(
        number=number,
        author=author,
        content=content,
        timestamp=timestamp,
        avatar_url=avatar_url,
        votes=_parse_votes(post_el),
        char_count=len(content),
    )


def as_soup(document: BeautifulSoup | str) -> BeautifulSoup:
    if isinstance(document, BeautifulSoup):
        return document
    return BeautifulSoup(document, "html.parser")


def extract_posts(
    document: BeautifulSoup | str,
    *,
    site_url: str = _DEFAULT_SITE_URL,
    logger: RunLogger | None = None,
) -> list[ExtractedPost]:
    """Scan post elements in document order; broken posts are skipped and logged."""
    soup = as_soup(document)
    posts: list[ExtractedPost] = []

    for post_el in soup.select(POST_SELECTOR):
        try:
            post = extract_single_post(post_el, site_url=site_url)
        except Exception as e:
            if logger is not None:
                logger.warning(
                    "post_extract_failed",
                    element_id=str(post_el.get("id") or ""),
                    error=str(e),
                )
            continue
        if post is not None and len(post.content) > MIN_MEANINGFUL_CHARS:
            posts.append(post)

    posts.sort(key=lambda p: p.number)
    return posts


def extract_all_page_posts(
    document: BeautifulSoup | str,
    *,
    limits: TruncationLimits | None = None,
    site_url: str = _DEFAULT_SITE_URL,
    logger: RunLogger | None = None,
) -> list[ExtractedPost]:
    """Extract every usable post on a page and fit the set into the character budget."""
    posts = extract_posts(document, site_url=site_url, logger=logger)
    return truncate_posts(posts, limits or TruncationLimits())


def thread_title(document: BeautifulSoup | str) -> str:
    soup = as_soup(document)
    h1 = soup.select_one(THREAD_TITLE_SELECTOR)
    if h1 is not None and h1.get_text().strip():
        return h1.get_text().strip()
    if soup.title is not None:
        return soup.title.get_text().replace(" - Mediavida", "").strip()
    return ""


def current_page_number(document: BeautifulSoup | str, url: str | None = None) -> int:
    if url:
        match = _TRAILING_NUMBER_RE.search(urlsplit(url).path)
        if match:
            return int(match.group(1))

    active = as_soup(document).select_one(PAGINATION_CURRENT_SELECTOR)
    if active is not None:
        text = active.get_text().strip()
        if text.isdigit():
            return int(text)
    return 1


def total_pages(document: BeautifulSoup | str) -> int:
    soup = as_soup(document)
    max_page = 1

    for link in soup.select(PAGINATION_LINKS_SELECTOR):
        match = _TRAILING_NUMBER_RE.search(str(link.get("href") or ""))
        if match:
            max_page = max(max_page, int(match.group(1)))

    current = soup.select_one(PAGINATION_CURRENT_SELECTOR)
    if current is not None and current.get_text().strip().isdigit():
        max_page = max(max_page, int(current.get_text().strip()))

    return max_page


def unique_author_count(posts: Iterable[ExtractedPost]) -> int:
    return len({p.author.casefold() for p in posts})


def format_posts_for_prompt(posts: Iterable[ExtractedPost]) -> str:
    lines: list[str] = []
    for p in posts:
        author = f"{p.author} (OP)" if p.number == 1 else p.author
        votes = f" [👍{p.votes}]" if p.votes else ""
        lines.append(f"#{p.number} {author}{votes}: {p.content}")
    return "\n\n".join(lines)
