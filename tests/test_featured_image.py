"""Tests for the featured-image uploader."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from blogsmith.featured_image import (
    FeaturedImageUploader,
    featured_filename,
    guess_image_type,
)
from blogsmith.wordpress_client import WordPressTimeoutError


def _mock_client_session(response):
    """Patchable stand-in for ``aiohttp.ClientSession`` returning *response* from ``get``."""
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    session.get = MagicMock(return_value=response)
    return MagicMock(return_value=session)


class TestHelpers:

    @pytest.mark.unit
    def test_guess_image_type(self):
        assert guess_image_type("https://cdn.example.com/a.png?w=10") == "image/png"
        assert guess_image_type("https://images.unsplash.com/photo-1") == "image/jpeg"

    @pytest.mark.unit
    def test_featured_filename(self):
        assert featured_filename("image/png").startswith("featured-")
        assert featured_filename("image/png").endswith(".png")
        assert featured_filename("image/jpeg").endswith(".jpg")


class TestUpload:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_success(self, fake_wp):
        uploader = FeaturedImageUploader()
        with patch.object(uploader, "_download", AsyncMock(return_value=b"\x89PNG data")):
            media_id = await uploader.upload("https://cdn.example.com/bin.png", "Compost bin", fake_wp)
        assert media_id == 55
        assert fake_wp.uploads[0]["content_type"] == "image/png"
        assert fake_wp.uploads[0]["alt_text"] == "Compost bin"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dead_url(self, fake_wp, mock_aiohttp_response):
        uploader = FeaturedImageUploader()
        session_cls = _mock_client_session(mock_aiohttp_response(404))
        with patch("blogsmith.featured_image.aiohttp.ClientSession", session_cls):
            media_id = await uploader.upload("https://dead.example.com/x.jpg", "x", fake_wp)
        assert media_id is None
        assert fake_wp.uploads == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_download_reads_body(self, mock_aiohttp_response):
        uploader = FeaturedImageUploader()
        session_cls = _mock_client_session(mock_aiohttp_response(200, body=b"jpeg-bytes"))
        with patch("blogsmith.featured_image.aiohttp.ClientSession", session_cls):
            assert await uploader._download("https://cdn.example.com/x.jpg") == b"jpeg-bytes"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_declared_oversize_not_read(self, mock_aiohttp_response):
        uploader = FeaturedImageUploader(max_bytes=1000)
        response = mock_aiohttp_response(200, body=b"x" * 10)
        response.content_length = 5000
        with patch("blogsmith.featured_image.aiohttp.ClientSession", _mock_client_session(response)):
            assert await uploader._download("https://cdn.example.com/big.jpg") is None
        response.content.iter_chunked.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_undeclared_oversize_aborted(self, mock_aiohttp_response):
        uploader = FeaturedImageUploader(max_bytes=100)
        response = mock_aiohttp_response(200, body=b"x" * (200 * 1024))
        response.content_length = None
        with patch("blogsmith.featured_image.aiohttp.ClientSession", _mock_client_session(response)):
            assert await uploader._download("https://cdn.example.com/big.jpg") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connection_error(self, fake_wp):
        uploader = FeaturedImageUploader()
        failing = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with patch.object(uploader, "_download", failing):
            assert await uploader.upload("https://cdn.example.com/x.jpg", "x", fake_wp) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_download_timeout(self, fake_wp):
        uploader = FeaturedImageUploader()
        with patch.object(uploader, "_download", AsyncMock(side_effect=asyncio.TimeoutError())):
            assert await uploader.upload("https://cdn.example.com/x.jpg", "x", fake_wp) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_and_oversized_rejected(self, fake_wp):
        uploader = FeaturedImageUploader(max_bytes=10)
        with patch.object(uploader, "_download", AsyncMock(return_value=b"")):
            assert await uploader.upload("https://cdn.example.com/x.jpg", "x", fake_wp) is None
        with patch.object(uploader, "_download", AsyncMock(return_value=b"x" * 10)):
            assert await uploader.upload("https://cdn.example.com/x.jpg", "x", fake_wp) is None
        assert fake_wp.uploads == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_upload_failure(self, fake_wp):
        uploader = FeaturedImageUploader()
        fake_wp.upload_media = AsyncMock(side_effect=WordPressTimeoutError("slow"))
        with patch.object(uploader, "_download", AsyncMock(return_value=b"data")):
            assert await uploader.upload("https://cdn.example.com/x.jpg", "x", fake_wp) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_url(self, fake_wp):
        assert await FeaturedImageUploader().upload("", "x", fake_wp) is None
