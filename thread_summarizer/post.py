from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class ExtractedPost:
    """
    One forum post, cleaned and size-bounded for summarization.

    char_count is the length of content after truncation; left unset it is
    taken from content.
    """

    number: int
    author: str
    content: str
    timestamp: str | None = None
    avatar_url: str | None = None
    votes: int | None = None
    char_count: int = -1

    def __post_init__(self) -> None:
        if self.char_count < 0:
            object.__setattr__(self, "char_count", len(self.content))


@dataclass(frozen=True)
class PageData:
    page_number: int
    posts: Sequence[ExtractedPost] = ()

    @property
    def post_count(self) -> int:
        return len(self.posts)

    @property
    def unique_authors(self) -> list[str]:
        seen: list[str] = []
        for post in self.posts:
            key = post.author.casefold()
            if key not in seen:
                seen.append(key)
        return seen


@dataclass(frozen=True)
class FetchResult:
    """Aggregate of a multi-page retrieval; failed pages are listed, never included."""

    thread_title: str
    pages: Sequence[PageData]
    total_posts: int
    total_unique_authors: int
    fetch_errors: tuple[int, ...] = ()

    @property
    def all_posts(self) -> list[ExtractedPost]:
        return [post for page in self.pages for post in page.posts]
