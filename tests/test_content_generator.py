"""Tests for topic, article, SEO and smart image search generation."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from blogsmith.ai_client import AIServiceError
from blogsmith.content_generator import (
    ARTICLE_LENGTHS,
    ContentGenerator,
    _build_article_prompt,
    get_article_length,
)
from blogsmith.images import ImageServiceError
from blogsmith.models import BlogImage


@pytest.fixture
def ai():
    service = MagicMock()
    service.is_configured = True
    service.complete = AsyncMock()
    return service


@pytest.fixture
def unsplash():
    client = MagicMock()
    client.is_configured = True
    client.collect = AsyncMock(return_value=[
        BlogImage(url="https://img/h.jpg", description="compost heap", photographer="Ana"),
        BlogImage(url="https://img/1.jpg", description="worm bin"),
    ])
    client.search = AsyncMock(return_value=[BlogImage(url="https://img/s.jpg", id="s1")])
    return client


@pytest.fixture
def generator(ai, unsplash, settings):
    return ContentGenerator(ai, unsplash, settings)


class TestArticleLengths:

    @pytest.mark.unit
    def test_unknown_length_defaults_to_long(self):
        assert get_article_length("huge").name == "long"
        assert get_article_length(None).name == "long"

    @pytest.mark.unit
    def test_prompt_lists_placeholders(self):
        prompt = _build_article_prompt("T", "k", ARTICLE_LENGTHS["medium"])
        assert "{{HEADER_IMAGE}}, {{IMAGE_1}}" in prompt
        assert "{{IMAGE_2}}" not in prompt
        assert "500-700" in prompt


class TestContentGenerator:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generate_topics(self, generator, ai, settings):
        ai.complete.return_value = {"topics": [{"title": "A"}, {"title": "B"}]}
        result = await generator.generate_topics("composting")
        assert result == {"topics": [{"title": "A"}, {"title": "B"}]}
        assert ai.complete.await_args.kwargs["model"] == settings.fast_model

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generate_article_fills_images(self, generator, ai, unsplash):
        ai.complete.return_value = {
            "title": "Compost",
            "content": "# Compost\n\n{{HEADER_IMAGE}}\n\n## Step one\n\n{{IMAGE_1}}\n\nText.",
        }
        article = await generator.generate_article("Compost", "composting", "medium")

        assert article.article_length == "medium"
        assert "![compost heap](https://img/h.jpg)" in article.content
        assert "*Photo by Ana on Unsplash*" in article.content
        assert "![worm bin](https://img/1.jpg)" in article.content
        assert len(article.images) == 2
        assert unsplash.collect.await_args.kwargs["count"] == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generate_article_without_images(self, generator, ai, unsplash):
        unsplash.collect.side_effect = ImageServiceError("rate limited")
        ai.complete.return_value = {"content": "# T\n\n{{HEADER_IMAGE}}\n\nBody."}
        article = await generator.generate_article("T", "k", "short")
        assert article.images == []
        assert "{{" not in article.content

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_generate_article_empty_content(self, generator, ai):
        ai.complete.return_value = {"title": "T"}
        with pytest.raises(AIServiceError):
            await generator.generate_article("T", "k")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_analyze_seo(self, generator, ai):
        ai.complete.return_value = {
            "suggestedCategories": ["Technology"],
            "seoTags": ["compost"],
            "metaDescription": "Learn to compost at home.",
        }
        result = await generator.analyze_seo("T", "C", "k", [{"id": 7, "name": "Technology"}])

        assert result["suggestedCategories"] == ["Technology"]
        assert result["focusKeywords"] == []
        assert "Technology" in ai.complete.await_args.args[0]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_smart_image_search(self, generator, ai, unsplash):
        ai.complete.return_value = {"searchTerms": ["compost bin", "worm farm"]}
        unsplash.search.side_effect = [
            [BlogImage(url="https://img/a.jpg", id="a")],
            ImageServiceError("HTTP 500"),
        ]
        result = await generator.smart_image_search("Compost", "content")

        assert result["searchTerms"] == ["compost bin", "worm farm"]
        assert result["total"] == 1
        assert result["images"][0]["searchTerm"] == "compost bin"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_smart_search_requires_unsplash(self, ai, settings):
        unconfigured = MagicMock()
        unconfigured.is_configured = False
        with pytest.raises(ImageServiceError):
            await ContentGenerator(ai, unconfigured, settings).smart_image_search("T", "C")
