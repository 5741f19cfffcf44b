"""
Category and tag resolution against a live WordPress taxonomy.

Everything here degrades instead of failing: an unreachable taxonomy endpoint,
a tag that cannot be created or an AI timeout only shrinks the result.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from blogsmith.ai_client import AIServiceError, parse_json_response

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("blogsmith.taxonomy")
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

SYNONYM_GROUPS: List[List[str]] = [
    ["tech", "ai", "automation", "artificial intelligence", "software", "tool"],
    ["business", "entrepreneur", "startup"],
    ["marketing", "seo"],
    ["finance", "money", "income", "invest"],
    ["personal", "productivity", "self-improvement"],
]

# (title terms, content phrase, category-name terms)
CONTENT_FALLBACK_GROUPS = [
    (("ai", "automation"), "artificial intelligence", ("ai", "automation", "tool")),
    (("income", "money"), "passive income", ("income", "business", "affiliate")),
    (("travel", "nomad"), "digital nomad", ("nomad", "travel", "abroad")),
]

MAX_TAG_LENGTH = 25
TAG_CONCURRENCY = 4
TAG_GENERATION_TIMEOUT = 10.0

TAG_SYSTEM_PROMPT = (
    "You are an expert content strategist who creates highly specific, unique "
    "tags for blog posts. Focus on extracting the most relevant and specific "
    "concepts from the actual content, avoiding generic keywords."
)

TAG_PROMPT_TEMPLATE = """Generate 6-8 unique, specific tags for this exact blog post. Requirements:
- Extract precise concepts from the actual content
- Focus on specific techniques, tools, benefits mentioned
- Use 1-3 words per tag
- Avoid generic terms like "guide", "tips", "how-to"
- Make tags searchable and specific to this content

Title: "{title}"
Keyword: "{keyword}"
Content excerpt: {excerpt}

Return ONLY JSON in the form {{"tags": ["tag one", "tag two"]}}."""


@dataclass
class CategoryResolution:
    category_id: Optional[int] = None
    category_ids: List[int] = field(default_factory=list)
    source: str = "none"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category_id": self.category_id,
            "category_ids": list(self.category_ids),
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Matching helpers
# ---------------------------------------------------------------------------


def _term_name(term: Dict[str, Any]) -> str:
    name = term.get("name", "")
    if isinstance(name, dict):
        name = name.get("rendered", "")
    return str(name)


def _has_term(text: str, term: str) -> bool:
    """Word-start match, so ``tech`` hits "Technology" but ``ai`` misses "Email".

    Terms of three letters or fewer must match a whole word.
    """
    pattern = r"\b" + re.escape(term)
    if len(term) <= 3:
        pattern += r"\b"
    return re.search(pattern, text, re.IGNORECASE) is not None


def _groups_for(text: str) -> List[int]:
    return [
        idx for idx, group in enumerate(SYNONYM_GROUPS)
        if any(_has_term(text, term) for term in group)
    ]


def _dedupe(ids: Iterable[int]) -> List[int]:
    seen = set()
    out: List[int] = []
    for term_id in ids:
        if term_id not in seen:
            seen.add(term_id)
            out.append(term_id)
    return out


def _match_one(suggestion: str, live: Sequence[Dict[str, Any]]) -> Optional[int]:
    wanted = suggestion.strip().lower()
    if not wanted:
        return None

    for cat in live:
        if _term_name(cat).strip().lower() == wanted:
            return int(cat["id"])

    groups = set(_groups_for(wanted))
    if groups:
        for cat in live:
            if groups.intersection(_groups_for(_term_name(cat))):
                return int(cat["id"])

    for cat in live:
        name = _term_name(cat).strip().lower()
        if name and (wanted in name or name in wanted):
            return int(cat["id"])
    return None


def match_categories(
    suggestions: Sequence[str], live_categories: Sequence[Dict[str, Any]]
) -> List[int]:
    """
    Map suggested category names onto live category ids.

    Per suggestion: exact case-insensitive name, then a shared synonym group,
    then substring containment either way. Unmatched suggestions are dropped.
    """
    matched: List[int] = []
    for suggestion in suggestions or []:
        cat_id = _match_one(str(suggestion), live_categories)
        if cat_id is not None:
            matched.append(cat_id)
        else:
            logger.debug("No category match for suggestion '%s'", suggestion)
    return _dedupe(matched)


def fallback_category(
    title: str, content: str, live_categories: Sequence[Dict[str, Any]]
) -> Optional[int]:
    """Pick a category from article keywords, else the first live category."""
    if not live_categories:
        return None
    content_lower = (content or "").lower()
    for title_terms, phrase, name_terms in CONTENT_FALLBACK_GROUPS:
        if any(_has_term(title or "", t) for t in title_terms) or phrase in content_lower:
            for cat in live_categories:
                if any(_has_term(_term_name(cat), t) for t in name_terms):
                    return int(cat["id"])
    return int(live_categories[0]["id"])


async def resolve_categories(
    client: Any,
    *,
    title: str,
    content: str,
    suggestions: Optional[Sequence[str]] = None,
    requested_ids: Optional[Sequence[int]] = None,
) -> CategoryResolution:
    """
    Resolve the categories for one post against the live list.

    Requested ids that exist come first, then suggestion matches. With
    nothing matched the content fallback applies. If the live list cannot be
    fetched the requested ids are used as given.
    """
    requested = [int(i) for i in (requested_ids or []) if i is not None]
    try:
        live = await client.get_categories()
    except Exception as exc:
        logger.warning("Category fetch failed, continuing without validation: %s", exc)
        ids = _dedupe(requested)
        return CategoryResolution(ids[0] if ids else None, ids, "unvalidated" if ids else "none")

    live_ids = {int(c["id"]) for c in live}
    valid = [i for i in requested if i in live_ids]
    dropped = [i for i in requested if i not in live_ids]
    if dropped:
        logger.info("Ignoring unknown category ids: %s", dropped)

    ids = _dedupe(valid + match_categories(suggestions or [], live))
    source = "matched" if ids else "none"
    if not ids:
        fallback = fallback_category(title, content, live)
        if fallback is not None:
            ids = [fallback]
            source = "fallback"

    logger.info("Resolved categories %s (%s)", ids, source)
    return CategoryResolution(ids[0] if ids else None, ids, source)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


def merge_tag_names(*groups: Optional[Iterable[str]]) -> List[str]:
    """Concatenate tag name lists, dropping blanks and case-insensitive repeats."""
    seen = set()
    out: List[str] = []
    for group in groups:
        for name in group or []:
            clean = str(name).strip()
            key = clean.lower()
            if clean and key not in seen:
                seen.add(key)
                out.append(clean)
    return out


def fallback_tag_names(keyword: str, title: str) -> List[str]:
    title_lower = (title or "").lower()
    names = [keyword] if keyword else []
    if "business" in title_lower:
        names.append("business strategy")
    if "tech" in title_lower:
        names.append("technology")
    if "marketing" in title_lower:
        names.append("marketing")
    names.extend(["productivity", "tips"])
    return merge_tag_names(names)


def _parse_tag_names(text: str) -> List[str]:
    try:
        data = parse_json_response(text)
    except AIServiceError:
        return [part.strip() for part in text.split(",")]
    if isinstance(data, dict):
        data = data.get("tags", [])
    if not isinstance(data, list):
        return []
    return [str(item).strip() for item in data]


async def generate_tag_names(
    ai: Any,
    *,
    title: str,
    keyword: str,
    content: str,
    model: Optional[str] = None,
    timeout: float = TAG_GENERATION_TIMEOUT,
) -> List[str]:
    """
    Ask the model for 6-8 article-specific tags.

    Falls back to keyword-derived tags when the call fails, times out or
    yields nothing usable.
    """
    prompt = TAG_PROMPT_TEMPLATE.format(
        title=title, keyword=keyword, excerpt=(content or "")[:1500]
    )
    try:
        text = await ai.complete(
            prompt,
            system=TAG_SYSTEM_PROMPT,
            model=model,
            max_tokens=120,
            temperature=0.2,
            timeout=timeout,
        )
        names = [n for n in _parse_tag_names(text) if 0 < len(n) <= MAX_TAG_LENGTH]
    except Exception as exc:
        logger.warning("Tag generation failed, using fallback tags: %s", exc)
        names = []

    if not names:
        names = fallback_tag_names(keyword, title)
        logger.info("Using fallback tags: %s", names)
    else:
        logger.info("Generated %d tags: %s", len(names), names)
    return merge_tag_names(names)


async def resolve_tags(
    client: Any, names: Sequence[str], concurrency: int = TAG_CONCURRENCY
) -> List[int]:
    """
    Look up or create each tag, returning ids in input order.

    Lookups run concurrently, bounded by *concurrency*. A failure for one
    name is logged and skipped.
    """
    if not names:
        return []
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _one(name: str) -> int:
        async with semaphore:
            return await client.ensure_tag(name)

    results = await asyncio.gather(*(_one(n) for n in names), return_exceptions=True)

    ids: List[int] = []
    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            logger.warning("Skipping tag '%s': %s", name, result)
            continue
        ids.append(int(result))
    ids = _dedupe(ids)
    logger.info("Resolved %d/%d tags: %s", len(ids), len(names), ids)
    return ids


async def validate_tag_ids(client: Any, tag_ids: Sequence[int]) -> List[int]:
    """Keep ids that exist in the live tag list; unchanged if the list is unavailable."""
    if not tag_ids:
        return []
    try:
        live = await client.get_tags()
    except Exception as exc:
        logger.warning("Tag validation skipped, live tags unavailable: %s", exc)
        return list(tag_ids)
    live_ids = {int(t["id"]) for t in live}
    valid = [i for i in tag_ids if i in live_ids]
    if len(valid) != len(tag_ids):
        logger.info("Dropped unknown tag ids: %s", [i for i in tag_ids if i not in live_ids])
    return valid
