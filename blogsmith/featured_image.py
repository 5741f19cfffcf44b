"""
Featured image: download a remote image and attach it as WordPress media.

Single attempt, never raises. Any failure yields ``None`` and the post is
published without a featured image.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

import aiohttp

from blogsmith.wordpress_client import WordPressClient

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("blogsmith.featured_image")
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

DOWNLOAD_TIMEOUT = 8.0
UPLOAD_TIMEOUT = 12.0
MAX_IMAGE_BYTES = 10_000_000
DOWNLOAD_CHUNK_BYTES = 64 * 1024
DOWNLOAD_USER_AGENT = "Mozilla/5.0 (compatible; BlogGen/1.0)"


def guess_image_type(url: str) -> str:
    return "image/png" if ".png" in url else "image/jpeg"


def featured_filename(content_type: str) -> str:
    ext = "png" if content_type == "image/png" else "jpg"
    return f"featured-{int(time.time() * 1000)}.{ext}"


class FeaturedImageUploader:
    """
    Fetch an image URL and upload it to the media library.

    Parameters
    ----------
    download_timeout : float
        Seconds allowed for the image download.
    upload_timeout : float
        Seconds allowed for the media upload.
    """

    def __init__(
        self,
        download_timeout: float = DOWNLOAD_TIMEOUT,
        upload_timeout: float = UPLOAD_TIMEOUT,
        max_bytes: int = MAX_IMAGE_BYTES,
    ):
        self.download_timeout = download_timeout
        self.upload_timeout = upload_timeout
        self.max_bytes = max_bytes

    async def _download(self, url: str) -> Optional[bytes]:
        timeout = aiohttp.ClientTimeout(total=self.download_timeout)
        headers = {"User-Agent": DOWNLOAD_USER_AGENT}
        async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
            async with session.get(url) as resp:
                if resp.status >= 400:
                    logger.warning("Image download failed: HTTP %d", resp.status)
                    return None
                declared = resp.content_length
                if declared is not None and declared >= self.max_bytes:
                    logger.warning("Rejecting featured image of %d bytes", declared)
                    return None
                body = bytearray()
                async for chunk in resp.content.iter_chunked(DOWNLOAD_CHUNK_BYTES):
                    body.extend(chunk)
                    if len(body) >= self.max_bytes:
                        logger.warning("Featured image exceeded %d bytes, download aborted", self.max_bytes)
                        return None
                return bytes(body)

    async def upload(
        self, image_url: str, alt_text: str, client: WordPressClient
    ) -> Optional[int]:
        """
        Upload *image_url* as a media attachment.

        Returns
        -------
        int or None
            The media id, or None when any step failed.
        """
        if not image_url:
            return None
        try:
            content = await self._download(image_url)
            if content is None:
                return None
            size = len(content)
            if size <= 0 or size >= self.max_bytes:
                logger.warning("Rejecting featured image of %d bytes", size)
                return None

            content_type = guess_image_type(image_url)
            media = await client.upload_media(
                content,
                filename=featured_filename(content_type),
                content_type=content_type,
                title=alt_text or "Featured Image",
                alt_text=alt_text or "",
                timeout=self.upload_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Featured image timed out, continuing without it")
            return None
        except Exception as exc:
            logger.warning("Featured image failed, continuing without it: %s", exc)
            return None

        media_id = media.get("id")
        if media_id is None:
            logger.warning("Media upload returned no id")
            return None
        logger.info("Featured image uploaded: media id %s", media_id)
        return int(media_id)
