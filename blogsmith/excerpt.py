"""Plain-text excerpt for the WordPress ``excerpt`` field and meta description."""

from __future__ import annotations

import re

from blogsmith.markdown_html import IMAGE_RE

DEFAULT_EXCERPT = "An in-depth look at the ideas, tools and practical steps covered in this article."
MAX_EXCERPT_CHARS = 160
MIN_SENTENCE_CHARS = 20

_TITLE_RE = re.compile(r"^# .+$", re.MULTILINE)
_STOCK_URL_RES = (
    re.compile(r"https?://\S*unsplash\S*", re.IGNORECASE),
    re.compile(r"https?://images\.\S*", re.IGNORECASE),
)
_CAPTION_RES = (
    re.compile(r"\*Photo by[^*]*\*"),
    re.compile(r"\*[^*]*Unsplash[^*]*\*"),
    re.compile(r"\*[^*]*Photo[^*]*\*"),
)
_HEADING_MARK_RE = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_PUNCT_RE = re.compile(r"[*_`#]")
_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_URL_START_RE = re.compile(r"^https?://")


def _trim_to_word(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text[:limit]
    trimmed = re.sub(r"\s+\S*$", "", cut)
    return trimmed or cut


def clean_text(markdown: str) -> str:
    """Reduce markdown to a single line of prose."""
    text = _TITLE_RE.sub("", markdown or "")
    # twice: a stripped reference can expose a nested one
    text = IMAGE_RE.sub("", text)
    text = IMAGE_RE.sub("", text)
    for pattern in _STOCK_URL_RES:
        text = pattern.sub("", text)
    for pattern in _CAPTION_RES:
        text = pattern.sub("", text)
    text = _HEADING_MARK_RE.sub("", text)
    text = _PUNCT_RE.sub("", text)
    text = _LINK_RE.sub(r"\1", text)
    return re.sub(r"\s+", " ", text).strip()


def extract_excerpt(markdown: str) -> str:
    """
    First meaningful sentence of *markdown*, never empty.

    A sentence qualifies when it is longer than 20 characters, is not a bare
    URL and does not mention unsplash. Without one, the first 160 characters
    trimmed to a whole word are used, and failing that a generic sentence.
    """
    text = clean_text(markdown)

    for sentence in _SENTENCE_SPLIT_RE.split(text):
        candidate = sentence.strip()
        if (
            len(candidate) > MIN_SENTENCE_CHARS
            and not _URL_START_RE.match(candidate)
            and "unsplash" not in candidate.lower()
        ):
            return _trim_to_word(candidate, MAX_EXCERPT_CHARS) + "."

    if len(text) > MIN_SENTENCE_CHARS:
        return _trim_to_word(text, MAX_EXCERPT_CHARS)

    return DEFAULT_EXCERPT
