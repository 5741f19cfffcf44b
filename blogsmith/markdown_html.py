"""
Markdown to WordPress-ready HTML.

Image references and photo credits are removed before rendering because the
featured image is attached separately as WordPress media. Rendering itself is
done by Python-Markdown; links are then made to open in a new tab and bare
URLs are linked.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from markdown import markdown as render_markdown

# Alt text may hold one level of balanced brackets, the URL one level of
# balanced parentheses or an <angle-bracketed> destination.
IMAGE_RE = re.compile(
    r"!\[((?:[^\[\]\n]|\[[^\[\]\n]*\])*)\]"
    r"\(\s*(<[^>\n]*>|(?:[^()\s]|\([^()\s]*\))+)(?:\s+\"[^\"\n]*\")?\s*\)"
)
_TITLE_RE = re.compile(r"^# .+$", re.MULTILINE)
_CREDIT_RES = (
    re.compile(r"\*Photo by[^*]*\*"),
    re.compile(r"\*[^*]*Unsplash[^*]*\*"),
    re.compile(r"\*[^*]*Photo[^*]*\*"),
)
_TAG_SPLIT_RE = re.compile(r"(<[^>]+>)")
_ANCHOR_OPEN_RE = re.compile(r"<a\b([^>]*)>")
_BARE_URL_RE = re.compile(r"https?://[^\s<>\"]*[^\s<>\".,;:!?)]")
_IMG_TAG_RE = re.compile(r"<img\b[^>]*>")
_EMPTY_P_RE = re.compile(r"<p>\s*</p>\n?")

NEW_TAB_ATTRS = ' target="_blank" rel="noopener noreferrer"'
MARKDOWN_EXTENSIONS = ["sane_lists"]


def image_url(raw: str) -> str:
    """Destination of an image reference without its angle brackets."""
    if raw.startswith("<") and raw.endswith(">"):
        return raw[1:-1]
    return raw


def first_image(text: str) -> Optional[Tuple[str, str]]:
    """Return ``(alt, url)`` of the first image reference, or None."""
    match = IMAGE_RE.search(text or "")
    if not match:
        return None
    return match.group(1), image_url(match.group(2))


def strip_images(text: str) -> str:
    """Remove image references and photo-credit lines."""
    text = IMAGE_RE.sub("", text)
    for pattern in _CREDIT_RES:
        text = pattern.sub("", text)
    return text


def _link_bare_urls(html: str) -> str:
    # Only text nodes outside existing anchors are touched
    pieces: List[str] = []
    in_anchor = False
    for piece in _TAG_SPLIT_RE.split(html):
        if piece.startswith("<"):
            if _ANCHOR_OPEN_RE.match(piece):
                in_anchor = True
            elif piece == "</a>":
                in_anchor = False
            pieces.append(piece)
        elif in_anchor:
            pieces.append(piece)
        else:
            pieces.append(_BARE_URL_RE.sub(
                lambda m: f'<a href="{m.group(0)}">{m.group(0)}</a>', piece
            ))
    return "".join(pieces)


def _open_in_new_tab(match: "re.Match[str]") -> str:
    attrs = match.group(1)
    if "target=" in attrs:
        return match.group(0)
    return f"<a{attrs}{NEW_TAB_ATTRS}>"


def markdown_to_html(text: str) -> str:
    """
    Convert generated markdown into classic-editor HTML.

    Parameters
    ----------
    text : str
        Article body; may contain ``# Title``, images and photo credits.

    Returns
    -------
    str
        HTML with no image syntax and no top-level title line.
    """
    text = strip_images(text or "")
    text = _TITLE_RE.sub("", text)
    if not text.strip():
        return ""

    html = render_markdown(text, extensions=MARKDOWN_EXTENSIONS, output_format="html")
    html = _IMG_TAG_RE.sub("", html)
    html = _EMPTY_P_RE.sub("", html)
    html = _link_bare_urls(html)
    html = _ANCHOR_OPEN_RE.sub(_open_in_new_tab, html)
    # Reference syntax the matcher could not parse is never passed through
    return html.replace("![", "[").strip()
