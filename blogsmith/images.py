"""
Stock-photo search and markdown image addressing.

``UnsplashClient`` searches Unsplash, rotating across the configured access
keys; a 403 (rate limit) moves on to the next key. Image references inside
article markdown are addressed by their position in reading order, which is
the only index callers may rely on.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import aiohttp

from blogsmith.markdown_html import IMAGE_RE, image_url
from blogsmith.models import BlogImage

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("blogsmith.images")
logger.setLevel(logging.INFO)

if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(_handler)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"
SEARCH_TIMEOUT = 15.0
MAX_CONTENT_IMAGES = 5

_PLACEHOLDER_RE = re.compile(r"\{\{[^}]+\}\}")
_ALT_UNSAFE_RE = re.compile(r"[\[\]\r\n]")
URL_SAFE_CHARS = ":/?#@!$&'*+,;=%~"


class ImageServiceError(Exception):
    """Raised when an image provider is unavailable or returns an error."""
    pass


# ---------------------------------------------------------------------------
# Key rotation
# ---------------------------------------------------------------------------


class KeyRotator:
    """Round-robin selector over API keys. One instance per provider."""

    def __init__(self, keys: Sequence[str]):
        self.keys = [k for k in keys if k]
        self._index = 0

    def __len__(self) -> int:
        return len(self.keys)

    def next_key(self) -> Optional[str]:
        if not self.keys:
            return None
        key = self.keys[self._index]
        self._index = (self._index + 1) % len(self.keys)
        return key


# ---------------------------------------------------------------------------
# Unsplash
# ---------------------------------------------------------------------------


def photo_to_image(photo: Dict[str, Any], fallback_description: str = "Unsplash image") -> BlogImage:
    urls = photo.get("urls") or {}
    links = photo.get("links") or {}
    user = photo.get("user") or {}
    return BlogImage(
        id=str(photo.get("id", "")),
        url=urls.get("regular", ""),
        thumb_url=urls.get("thumb", ""),
        description=photo.get("alt_description") or photo.get("description") or fallback_description,
        photographer=user.get("name", ""),
        download_url=links.get("download_location", ""),
    )


class UnsplashClient:
    """
    Unsplash photo search.

    Parameters
    ----------
    rotator : KeyRotator
        Supplies the ``Client-ID`` access key for each request.
    timeout : float
        Per-request timeout in seconds.
    """

    def __init__(self, rotator: KeyRotator, timeout: float = SEARCH_TIMEOUT):
        self.rotator = rotator
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return len(self.rotator) > 0

    async def _fetch(self, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """GET the search endpoint, trying each key at most once."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            for attempt in range(len(self.rotator)):
                key = self.rotator.next_key()
                headers = {"Authorization": f"Client-ID {key}"}
                try:
                    async with session.get(UNSPLASH_SEARCH_URL, params=params, headers=headers) as resp:
                        if resp.status == 200:
                            return await resp.json()
                        if resp.status == 403:
                            logger.info("Unsplash key %d rate limited, trying next key", attempt + 1)
                            continue
                        logger.warning("Unsplash search failed: HTTP %d", resp.status)
                        return None
                except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    logger.warning("Unsplash request error with key %d: %s", attempt + 1, exc)
        return None

    async def search(
        self, query: str, per_page: int = 5, fallback_description: Optional[str] = None
    ) -> List[BlogImage]:
        """
        Search landscape photos for *query*.

        Raises
        ------
        ImageServiceError
            When no key is configured or every key failed.
        """
        if not self.is_configured:
            raise ImageServiceError("Unsplash API key not configured")
        data = await self._fetch(
            {"query": query, "per_page": per_page, "orientation": "landscape"}
        )
        if data is None:
            raise ImageServiceError(f"Unsplash search failed for '{query}'")
        return [
            photo_to_image(photo, fallback_description or "Unsplash image")
            for photo in data.get("results", [])
        ]

    async def collect(self, queries: Sequence[str], count: int, per_query: int = 2) -> List[BlogImage]:
        """Gather up to *count* images across *queries*, stopping early when full."""
        images: List[BlogImage] = []
        for query in queries:
            if len(images) >= count:
                break
            try:
                found = await self.search(query, per_page=per_query, fallback_description=query)
            except ImageServiceError as exc:
                logger.warning("Skipping image query '%s': %s", query, exc)
                continue
            images.extend(found[: count - len(images)])
        logger.info("Collected %d/%d images", len(images), count)
        return images


# ---------------------------------------------------------------------------
# Markdown image references
# ---------------------------------------------------------------------------


@dataclass
class ImageRef:
    index: int
    alt: str
    url: str
    start: int
    end: int


def image_reference(description: str, url: str) -> str:
    """
    Build a ``![alt](url)`` reference that always parses back as one image.

    Brackets and line breaks are dropped from the alt text and characters
    that would end the destination early are percent-encoded.
    """
    alt = _ALT_UNSAFE_RE.sub("", description or "").strip()
    destination = quote(url or "", safe=URL_SAFE_CHARS)
    return f"![{alt}]({destination})"


def image_markdown(image: BlogImage) -> str:
    """Image reference followed by the photographer credit line."""
    md = image_reference(image.description, image.url)
    if image.photographer:
        md += f"\n*Photo by {image.photographer} on Unsplash*"
    return md


def fill_placeholders(content: str, images: Sequence[BlogImage]) -> str:
    """
    Replace ``{{HEADER_IMAGE}}`` with ``images[0]`` and ``{{IMAGE_n}}`` with
    ``images[n]`` (n up to 5), then drop any placeholder left over.
    """
    if images:
        content = content.replace("{{HEADER_IMAGE}}", image_markdown(images[0]))
        for n in range(1, min(MAX_CONTENT_IMAGES, len(images) - 1) + 1):
            content = content.replace("{{IMAGE_%d}}" % n, image_markdown(images[n]))
    return _PLACEHOLDER_RE.sub("", content)


def find_image_refs(content: str) -> List[ImageRef]:
    """All ``![alt](url)`` references in reading order."""
    return [
        ImageRef(i, m.group(1), image_url(m.group(2)), m.start(), m.end())
        for i, m in enumerate(IMAGE_RE.finditer(content or ""))
    ]


def replace_image_at(
    content: str, images: Sequence[BlogImage], index: int, new_image: BlogImage
) -> Tuple[str, List[BlogImage]]:
    """
    Rewrite the *index*-th image reference in *content*.

    Only that reference changes; every other byte of *content* is preserved.
    ``images[index]`` is replaced to match, or *new_image* is appended when
    the list is shorter.

    Raises
    ------
    IndexError
        When *content* has no reference at *index*.
    """
    refs = find_image_refs(content)
    if index < 0 or index >= len(refs):
        raise IndexError(f"No image reference at index {index} ({len(refs)} found)")
    ref = refs[index]
    new_ref = image_reference(new_image.description, new_image.url)
    new_content = content[: ref.start] + new_ref + content[ref.end:]

    new_images = list(images)
    if index < len(new_images):
        new_images[index] = new_image
    else:
        new_images.append(new_image)
    return new_content, new_images
