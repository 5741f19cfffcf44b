"""
JSON-file persistence for blogs and credentials.

The whole store lives in one ``storage_data.json`` file. Each mutation runs
under an ``asyncio.Lock``, builds a new record, swaps it into the in-memory map
and writes the file atomically, so a reader never observes half an update.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from blogsmith.models import (
    Blog,
    GitHubCredentials,
    WordPressCredentials,
    count_words,
    new_blog_id,
    normalize_blog_update,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("blogsmith.storage")
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
# JSON helpers
# ---------------------------------------------------------------------------


def _load_json(path: Path, default: Any = None) -> Any:
    """Load JSON from *path*, returning *default* when missing or corrupt."""
    if default is None:
        default = {}
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return default
    except json.JSONDecodeError as exc:
        logger.error("Corrupt store file %s, starting empty: %s", path, exc)
        return default


def _save_json(path: Path, data: Any) -> None:
    """Atomic JSON write: write to .tmp then os.replace()."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    with open(tmp_path, "w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, default=str, ensure_ascii=False)
    os.replace(tmp_path, path)


# ---------------------------------------------------------------------------
# BlogStore
# ---------------------------------------------------------------------------


class BlogStore:
    """
    Blogs plus the active WordPress and GitHub credential sets.

    Parameters
    ----------
    path : Path
        Location of the JSON store file; created on first write.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._blogs: Dict[str, Blog] = {}
        self._wordpress: Optional[WordPressCredentials] = None
        self._github: Optional[GitHubCredentials] = None
        self._load()

    def _load(self) -> None:
        data = _load_json(self.path)
        for blog_id, raw in (data.get("blogs") or {}).items():
            try:
                self._blogs[blog_id] = Blog.from_dict(raw)
            except TypeError as exc:
                logger.error("Skipping unreadable blog %s: %s", blog_id, exc)
        if data.get("wordpress_credentials"):
            self._wordpress = WordPressCredentials.from_dict(data["wordpress_credentials"])
        if data.get("github_credentials"):
            self._github = GitHubCredentials.from_dict(data["github_credentials"])
        if self._blogs:
            logger.info("Loaded %d blogs from %s", len(self._blogs), self.path)

    def _persist(self) -> None:
        data = {
            "blogs": {bid: blog.to_dict() for bid, blog in self._blogs.items()},
            "wordpress_credentials": self._wordpress.to_dict() if self._wordpress else None,
            "github_credentials": self._github.to_dict() if self._github else None,
        }
        _save_json(self.path, data)

    # -- Blogs --------------------------------------------------------------

    async def get_blog(self, blog_id: str) -> Optional[Blog]:
        return self._blogs.get(blog_id)

    async def list_blogs(self) -> List[Blog]:
        """All blogs, newest first."""
        return sorted(self._blogs.values(), key=lambda b: b.created_at, reverse=True)

    async def create_blog(self, data: Dict[str, Any]) -> Blog:
        fields = normalize_blog_update(data)
        fields.pop("word_count", None)
        blog = Blog(
            id=new_blog_id(),
            keyword=fields.pop("keyword", "") or "",
            title=fields.pop("title", "") or "",
            content=fields.pop("content", "") or "",
            **fields,
        )
        async with self._lock:
            self._blogs[blog.id] = blog
            self._persist()
        logger.info("Created blog %s: %s", blog.id, blog.title[:60])
        return blog

    async def update_blog(self, blog_id: str, changes: Dict[str, Any]) -> Optional[Blog]:
        """
        Apply a partial update atomically.

        ``changes`` may use camelCase or snake_case keys; unknown keys are
        ignored. ``word_count`` is recomputed whenever ``content`` changes.

        Returns
        -------
        Blog or None
            The updated record, or None when *blog_id* is unknown.
        """
        fields = normalize_blog_update(changes)
        async with self._lock:
            current = self._blogs.get(blog_id)
            if current is None:
                return None
            if "content" in fields:
                fields["content"] = fields["content"] or ""
                fields["word_count"] = count_words(fields["content"])
            updated = replace(current, **fields)
            self._blogs[blog_id] = updated
            self._persist()
        return updated

    async def delete_blog(self, blog_id: str) -> bool:
        async with self._lock:
            if self._blogs.pop(blog_id, None) is None:
                return False
            self._persist()
        logger.info("Deleted blog %s", blog_id)
        return True

    # -- Credentials --------------------------------------------------------

    async def get_wordpress_credentials(self) -> Optional[WordPressCredentials]:
        return self._wordpress

    async def save_wordpress_credentials(
        self, credentials: WordPressCredentials
    ) -> WordPressCredentials:
        async with self._lock:
            self._wordpress = credentials
            self._persist()
        logger.info("Saved WordPress credentials for %s", credentials.base_url)
        return credentials

    async def get_github_credentials(self) -> Optional[GitHubCredentials]:
        return self._github

    async def save_github_credentials(self, credentials: GitHubCredentials) -> GitHubCredentials:
        async with self._lock:
            self._github = credentials
            self._persist()
        logger.info(
            "Saved GitHub credentials for %s/%s",
            credentials.repository_owner,
            credentials.repository_name,
        )
        return credentials
