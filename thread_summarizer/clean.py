from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

# Always removed: quotes, edit notes, scripts, embeds, images and signatures.
_BASE_SELECTORS = (
    ".post-meta",
    ".post-meta-reply",
    ".post-controls",
    "blockquote",
    ".cita",
    ".ref",
    ".edit",
    ".edited",
    "script",
    "style",
    "[data-s9e-mediaembed]",
    ".twitter-tweet",
    ".instagram-media",
    ".tiktok-embed",
    ".fb-post",
    ".bluesky-embed",
    "iframe",
    "video",
    "audio",
    "object",
    "embed",
    ".media-container",
    ".iframe-container",
    ".video-container",
    "img",
    ".post-signature",
    ".signature",
)

_SPOILER_SELECTORS = (".spoiler", ".sp")
_SPOILER_TRIGGER_SELECTORS = (".spoiler-wrap > a.spoiler", ".quote")
_CODE_SELECTORS = ("pre", "code")

_MEDIA_URL_PATTERNS = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^https?://(?:www\.)?(?:twitter\.com|x\.com)/\S+$",
        r"^https?://(?:www\.)?instagram\.com/\S+$",
        r"^https?://(?:www\.)?(?:tiktok\.com|vm\.tiktok\.com)/\S+$",
        r"^https?://(?:www\.)?youtube\.com/\S+$",
        r"^https?://(?:www\.)?youtu\.be/\S+$",
        r"^https?://(?:www\.)?twitch\.tv/\S+$",
        r"^https?://(?:www\.)?clips\.twitch\.tv/\S+$",
    )
)

_WS_RE = re.compile(r"\s+")
_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_WWW_RE = re.compile(r"\bwww\.\S+", re.IGNORECASE)

MIN_MEANINGFUL_CHARS = 3


def _as_fragment(element: Tag | str) -> BeautifulSoup:
    # Work on a detached copy so the caller's tree is never mutated.
    return BeautifulSoup(str(element), "html.parser")


def is_media_only_url(url: str) -> bool:
    return any(p.match(url or "") for p in _MEDIA_URL_PATTERNS)


def _normalize_url_like(value: str) -> str:
    s = re.sub(r"^https?://", "", value or "", flags=re.IGNORECASE)
    s = re.sub(r"^www\.", "", s, flags=re.IGNORECASE)
    return s.rstrip("/").strip().casefold()


def has_meaningful_text(text: str) -> bool:
    if not text:
        return False
    without_urls = _WWW_RE.sub(" ", _URL_RE.sub(" ", text))
    return len(_WS_RE.sub(" ", without_urls).strip()) >= MIN_MEANINGFUL_CHARS


def clean_post_content(
    element: Tag | str,
    *,
    keep_spoilers: bool = False,
    remove_code_blocks: bool = False,
) -> str:
    """
    Return the plain text of a post body with forum noise removed.

    Quotes, signatures, embeds, scripts and images are always dropped. Spoilers are
    dropped unless keep_spoilers is set, in which case only their trigger links go.
    Returns "" when nothing but bare media URLs (or < 3 characters) remains.
    """
    fragment = _as_fragment(element)

    selectors = list(_BASE_SELECTORS)
    selectors.extend(_SPOILER_TRIGGER_SELECTORS if keep_spoilers else _SPOILER_SELECTORS)
    if remove_code_blocks:
        selectors.extend(_CODE_SELECTORS)

    for node in fragment.select(", ".join(selectors)):
        if node.decomposed:
            continue
        node.decompose()

    for anchor in fragment.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if not is_media_only_url(href):
            continue
        text = anchor.get_text().strip()
        bare = (
            not text
            or _normalize_url_like(text) == _normalize_url_like(href)
            or re.match(r"^https?://", text, re.IGNORECASE) is not None
        )
        if bare:
            anchor.decompose()

    normalized = _WS_RE.sub(" ", fragment.get_text()).strip()
    return normalized if has_meaningful_text(normalized) else ""
