"""Tests for excerpt extraction."""

import pytest

from blogsmith.excerpt import DEFAULT_EXCERPT, MAX_EXCERPT_CHARS, clean_text, extract_excerpt


class TestExtractExcerpt:

    @pytest.mark.unit
    def test_first_sentence(self, sample_markdown):
        assert extract_excerpt(sample_markdown) == (
            "Composting at home turns kitchen scraps into rich soil for your garden."
        )

    @pytest.mark.unit
    def test_never_starts_with_url(self):
        md = "https://example.com/foo is great. This is a real sentence about gardens."
        excerpt = extract_excerpt(md)
        assert not excerpt.startswith("http")
        assert excerpt == "This is a real sentence about gardens."

    @pytest.mark.unit
    def test_skips_unsplash_sentences(self):
        md = (
            "Photos courtesy of unsplash contributors everywhere. "
            "Gardening builds patience and grows food."
        )
        assert extract_excerpt(md) == "Gardening builds patience and grows food."

    @pytest.mark.unit
    def test_long_sentence_trimmed_to_word(self):
        words = " ".join(["compost"] * 60)
        excerpt = extract_excerpt(words + ".")
        assert len(excerpt) <= MAX_EXCERPT_CHARS + 5
        assert excerpt.endswith("compost.")

    @pytest.mark.unit
    def test_empty_uses_default(self):
        assert extract_excerpt("") == DEFAULT_EXCERPT

    @pytest.mark.unit
    def test_only_images_uses_default(self):
        md = "# Title\n\n![a](https://images.unsplash.com/x)\n*Photo by A on Unsplash*"
        assert extract_excerpt(md) == DEFAULT_EXCERPT

    @pytest.mark.unit
    def test_short_text_uses_default(self):
        assert extract_excerpt("Hi there.") == DEFAULT_EXCERPT

    @pytest.mark.unit
    def test_link_text_kept(self):
        md = "Read the [composting handbook](https://example.com/h) before you start a pile."
        assert extract_excerpt(md) == "Read the composting handbook before you start a pile."


class TestCleanText:

    @pytest.mark.unit
    def test_strips_markup(self):
        text = clean_text("## Heading\n\nSome **bold** and _under_ `code` text")
        assert text == "Heading Some bold and under code text"

    @pytest.mark.unit
    def test_strips_stock_urls(self):
        text = clean_text("Before https://images.unsplash.com/photo-1 after")
        assert "unsplash" not in text
        assert text == "Before after"
