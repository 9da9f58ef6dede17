from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from .llm_schema import Participant
from .post import ExtractedPost

PARTIAL_MATCH_MIN_LENGTH = 4


def build_avatar_map(posts: Iterable[ExtractedPost]) -> dict[str, str]:
    """author -> avatar URL, first avatar seen per author wins."""
    out: dict[str, str] = {}
    for post in posts:
        if post.avatar_url and post.author not in out:
            out[post.author] = post.avatar_url
    return out


def _normalize_url(url: str | None) -> str | None:
    if url and url.startswith("//"):
        return "https:" + url
    return url


def find_avatar(name: str, avatar_map: Mapping[str, str]) -> str | None:
    """
    Exact case-insensitive match first, then a substring match in either direction.

    The substring pass only runs when both names have at least four characters, so
    "Ana" never picks up "AnaMaria89".
    """
    clean = (name or "").strip().casefold()
    if not clean:
        return None

    for key, url in avatar_map.items():
        if key.strip().casefold() == clean:
            return _normalize_url(url)

    if len(clean) < PARTIAL_MATCH_MIN_LENGTH:
        return None

    for key, url in avatar_map.items():
        key_clean = key.strip().casefold()
        if len(key_clean) < PARTIAL_MATCH_MIN_LENGTH:
            continue
        if clean in key_clean or key_clean in clean:
            return _normalize_url(url)

    return None


def hydrate_participant_avatars(
    participants: Sequence[Participant], avatar_map: Mapping[str, str]
) -> list[Participant]:
    return [p.model_copy(update={"avatar_url": find_avatar(p.name, avatar_map)}) for p in participants]
