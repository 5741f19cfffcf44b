"""
Content generation: topics, full articles, SEO analysis and image search terms.

Pipeline for a new draft:
    1. TOPICS   - five practical topic ideas for a seed keyword
    2. ARTICLE  - long-form markdown with {{HEADER_IMAGE}} / {{IMAGE_n}} placeholders
    3. IMAGES   - Unsplash photos collected for the keyword, placeholders filled

Usage:
    from blogsmith.content_generator import ContentGenerator

    generator = ContentGenerator(ai_service, unsplash_client)
    topics = await generator.generate_topics("home composting")
    article = await generator.generate_article("Composting in 30 Days", "home composting", "medium")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from blogsmith.ai_client import AIService, AIServiceError
from blogsmith.config import Settings, get_settings
from blogsmith.images import ImageServiceError, UnsplashClient, fill_placeholders
from blogsmith.models import BlogImage, count_words

logger = logging.getLogger("blogsmith.content_generator")
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

MAX_TOKENS_TOPICS = 1500
MAX_TOKENS_ARTICLE = 8000
MAX_TOKENS_SEO = 600
MAX_TOKENS_SEARCH_TERMS = 150

ARTICLE_TIMEOUT = 120.0
SHORT_TIMEOUT = 45.0

SMART_SEARCH_LIMIT = 24


@dataclass(frozen=True)
class ArticleLength:
    name: str
    words: str
    target_words: int
    images: int
    sections: int
    structure: str


ARTICLE_LENGTHS: Dict[str, ArticleLength] = {
    "short": ArticleLength(
        "short", "300-400", 350, 1, 2,
        "- Introduction (80 words): Hook + overview\n"
        "- 2 main sections (100-120 words each): Key points with examples\n"
        "- Conclusion (50 words): Summary + call to action",
    ),
    "medium": ArticleLength(
        "medium", "500-700", 600, 2, 3,
        "- Introduction (100 words): Hook + overview\n"
        "- 3 main sections (140-180 words each): Detailed explanations\n"
        "- FAQ section (100 words): 2-3 questions\n"
        "- Conclusion (80 words): Summary + action steps",
    ),
    "long": ArticleLength(
        "long", "1400-1700", 1500, 4, 5,
        "- Introduction (200 words): Hook + overview\n"
        "- 5 main sections (200-300 words each): Deep explanations with examples\n"
        "- FAQ section (200 words): 3-4 questions with detailed answers\n"
        "- Conclusion (150 words): Summary + action steps",
    ),
    "extra-long": ArticleLength(
        "extra-long", "2500-3000", 2750, 6, 7,
        "- Introduction (300 words): Comprehensive hook + detailed overview\n"
        "- 7 main sections (300-400 words each): In-depth analysis with multiple examples\n"
        "- FAQ section (300 words): 5-6 questions with thorough answers\n"
        "- Case studies/examples section (200 words)\n"
        "- Conclusion (200 words): Complete summary + multiple action steps",
    ),
}
DEFAULT_ARTICLE_LENGTH = "long"

IMAGE_QUERY_SUFFIXES = ["", " tips", " guide", " tools", " best practices", " examples", " strategies", " methods"]


def get_article_length(name: Optional[str]) -> ArticleLength:
    return ARTICLE_LENGTHS.get(name or DEFAULT_ARTICLE_LENGTH, ARTICLE_LENGTHS[DEFAULT_ARTICLE_LENGTH])


@dataclass
class GeneratedArticle:
    title: str
    keyword: str
    content: str
    images: List[BlogImage] = field(default_factory=list)
    article_length: str = DEFAULT_ARTICLE_LENGTH

    @property
    def word_count(self) -> int:
        return count_words(self.content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "keyword": self.keyword,
            "content": self.content,
            "images": [img.to_dict() for img in self.images],
            "article_length": self.article_length,
            "word_count": self.word_count,
        }


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------


def _build_topics_prompt(keyword: str) -> str:
    return f"""Generate 5 practical blog topics for "{keyword}" that provide actionable, step-by-step guidance with natural, varied titles.

Requirements:
- Focus on practical tutorials and step-by-step guides
- Create titles that promise specific, actionable outcomes
- Use varied, natural language and avoid repetitive "How to" phrasing
- Each topic should solve a real problem with clear steps

Avoid trend pieces ("The Future of...", "Top Trends in...") and vague explainers.

Return JSON:
{{
  "topics": [
    {{
      "title": "Natural, action-focused title",
      "description": "Step-by-step process description with clear benefits",
      "competition": "Low|Medium|High",
      "intent": "Educational"
    }}
  ]
}}"""


def _image_placeholder_rule(length: ArticleLength) -> str:
    names = ["{{HEADER_IMAGE}}"] + ["{{IMAGE_%d}}" % n for n in range(1, length.images)]
    return ", ".join(names)


def _build_article_prompt(title: str, keyword: str, length: ArticleLength) -> str:
    return f"""Write a detailed SEO blog post: "{title}" for keyword "{keyword}".

WORD COUNT TARGET: {length.words} words ({length.target_words} target)

STRUCTURE FOR {length.name.upper()} ARTICLE:
{length.structure}

Writing style:
- Practical, step-by-step and immediately actionable; number the major steps
- Conversational and direct, addressed to "you"; no filler such as "In today's fast-paced world" or "Let's dive into"
- Mix short and long sentences, active voice, no hype words

Image placeholders (mandatory): {_image_placeholder_rule(length)}
- {{{{HEADER_IMAGE}}}} immediately after the main title
- Distribute the others after major section headers; never inside the FAQ

Links:
- Link every tool or service mention as [Tool Name](https://official-url)
- Include 5-7 authority links (.org, .edu, .gov)
- No placeholder brackets like [City] or [Tool Name]

Format: markdown, "# " for the title, "## " for sections, "- " for bullet lists.

Return JSON:
{{
  "title": "Professional SEO title",
  "content": "complete markdown with image placeholders"
}}"""


def _build_seo_prompt(title: str, content: str, keyword: str, categories: Sequence[str]) -> str:
    available = ", ".join(categories) if categories else "None provided"
    return f"""Analyze this blog post for SEO optimization and category assignment.

Title: "{title}"
Keyword: "{keyword}"
Content: "{content[:1000]}..."

Available WordPress categories: {available}

Choose 1-3 relevant categories from the available list (primary first):
- Technology content (AI, automation, software) -> Technology/Tech categories
- Business/entrepreneurship content -> Business categories
- Marketing/SEO content -> Marketing categories
- Finance/money content -> Finance categories
- Personal development content -> Personal Development categories
- Avoid a generic "Blogging" category unless the post is about blogging

Return JSON:
{{
  "suggestedCategories": ["Primary category name", "Secondary category name"],
  "seoTags": ["5-8 relevant SEO tags"],
  "focusKeywords": ["2-3 additional focus keywords"],
  "metaDescription": "150-160 character meta description"
}}"""


def _build_search_terms_prompt(title: str, content: str) -> str:
    return f"""Analyze this blog article and generate 4 highly specific image search terms for stock photos.

Article Title: "{title}"
Article Content: "{content[:1200]}..."

Terms must be specific to the topics discussed, visually concrete, and avoid generic business or workspace imagery.

Return JSON: {{"searchTerms": ["term one", "term two", "term three", "term four"]}}"""


# ---------------------------------------------------------------------------
# ContentGenerator
# ---------------------------------------------------------------------------


class ContentGenerator:
    """
    AI-backed content operations.

    Parameters
    ----------
    ai : AIService
        Text completion service.
    unsplash : UnsplashClient, optional
        Photo search used to fill article placeholders.
    settings : Settings, optional
        Supplies the text and fast model names.
    """

    def __init__(
        self,
        ai: AIService,
        unsplash: Optional[UnsplashClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.ai = ai
        self.unsplash = unsplash
        self.settings = settings or get_settings()

    async def generate_topics(self, keyword: str) -> Dict[str, Any]:
        """Return ``{"topics": [...]}`` for *keyword*."""
        result = await self.ai.complete(
            _build_topics_prompt(keyword),
            model=self.settings.fast_model,
            max_tokens=MAX_TOKENS_TOPICS,
            timeout=SHORT_TIMEOUT,
            expect_json=True,
        )
        topics = result.get("topics", []) if isinstance(result, dict) else []
        logger.info("Generated %d topics for '%s'", len(topics), keyword)
        return {"topics": topics}

    async def generate_article(
        self, title: str, keyword: str, article_length: Optional[str] = None
    ) -> GeneratedArticle:
        """
        Write an article and fill its image placeholders.

        Image lookup failures leave the article without images; the
        placeholders are removed either way.
        """
        length = get_article_length(article_length)
        result = await self.ai.complete(
            _build_article_prompt(title, keyword, length),
            model=self.settings.text_model,
            max_tokens=MAX_TOKENS_ARTICLE,
            temperature=0.8,
            timeout=ARTICLE_TIMEOUT,
            expect_json=True,
        )
        if not isinstance(result, dict) or not result.get("content"):
            raise AIServiceError("Article generation returned no content")
        content = str(result["content"])

        images: List[BlogImage] = []
        if self.unsplash is not None and self.unsplash.is_configured:
            queries = [keyword + suffix for suffix in IMAGE_QUERY_SUFFIXES]
            try:
                images = await self.unsplash.collect(queries, count=length.images)
            except ImageServiceError as exc:
                logger.warning("Image collection failed for '%s': %s", keyword, exc)
        content = fill_placeholders(content, images)

        article = GeneratedArticle(
            title=title,
            keyword=keyword,
            content=content,
            images=images,
            article_length=length.name,
        )
        logger.info(
            "Generated %s article '%s': %d words, %d images",
            length.name, title[:60], article.word_count, len(images),
        )
        return article

    async def analyze_seo(
        self,
        title: str,
        content: str,
        keyword: str,
        categories: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Suggest categories, tags, focus keywords and a meta description."""
        names = [str(c.get("name", "")) for c in categories or [] if c.get("name")]
        result = await self.ai.complete(
            _build_seo_prompt(title, content, keyword, names),
            model=self.settings.fast_model,
            max_tokens=MAX_TOKENS_SEO,
            timeout=SHORT_TIMEOUT,
            expect_json=True,
        )
        if not isinstance(result, dict):
            raise AIServiceError("SEO analysis returned no JSON object")
        return {
            "suggestedCategories": list(result.get("suggestedCategories", [])),
            "seoTags": list(result.get("seoTags", [])),
            "focusKeywords": list(result.get("focusKeywords", [])),
            "metaDescription": str(result.get("metaDescription", "")),
        }

    async def image_search_terms(self, title: str, content: str) -> List[str]:
        result = await self.ai.complete(
            _build_search_terms_prompt(title, content),
            model=self.settings.fast_model,
            max_tokens=MAX_TOKENS_SEARCH_TERMS,
            temperature=0.3,
            timeout=SHORT_TIMEOUT,
            expect_json=True,
        )
        terms = result.get("searchTerms", []) if isinstance(result, dict) else []
        return [str(t) for t in terms if str(t).strip()]

    async def smart_image_search(self, title: str, content: str) -> Dict[str, Any]:
        """Search photos using AI-derived terms; per-term failures are skipped."""
        if self.unsplash is None or not self.unsplash.is_configured:
            raise ImageServiceError("Unsplash API key not configured")
        terms = await self.image_search_terms(title, content)
        found: List[Dict[str, Any]] = []
        for term in terms:
            try:
                images = await self.unsplash.search(term, per_page=6, fallback_description=term)
            except ImageServiceError as exc:
                logger.warning("Smart search term '%s' failed: %s", term, exc)
                continue
            for img in images:
                entry = img.to_api()
                entry["searchTerm"] = term
                found.append(entry)
        logger.info("Smart search found %d images for '%s'", len(found), title[:60])
        return {"images": found[:SMART_SEARCH_LIMIT], "searchTerms": terms, "total": len(found)}
