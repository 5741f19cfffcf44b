"""
Domain records: Blog, BlogImage, WordPress and GitHub credential sets.

Records are plain dataclasses persisted with ``to_dict()`` (snake_case) and
exposed over HTTP with ``to_api()`` (camelCase, the contract the web client
uses). ``from_dict()`` accepts either spelling.
"""

from __future__ import annotations

import re
import time
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", name).lower()


def _filter_known(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    known = {f.name for f in fields(cls)}
    out: Dict[str, Any] = {}
    for key, value in data.items():
        snake = key if key in known else _snake(key)
        if snake in known:
            out[snake] = value
    return out


def count_words(text: str) -> int:
    """Whitespace word count, as stored in ``Blog.word_count``."""
    return len(text.split()) if text else 0


def new_blog_id() -> str:
    """``blog_<epoch-ms>_<9 hex chars>``."""
    return f"blog_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class BlogStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


@dataclass
class BlogImage:
    """An image attached to a blog (Unsplash result or generated image)."""

    url: str
    id: str = ""
    thumb_url: str = ""
    description: str = ""
    photographer: str = ""
    download_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_api(self) -> Dict[str, Any]:
        return {_camel(k): v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BlogImage:
        filtered = _filter_known(cls, data)
        # Unsplash payloads carry alt_description instead of description
        if not filtered.get("description") and data.get("alt_description"):
            filtered["description"] = data["alt_description"]
        filtered.setdefault("url", "")
        return cls(**filtered)


@dataclass
class Blog:
    """One article, from keyword seed through published state."""

    id: str
    keyword: str
    title: str
    content: str
    images: List[BlogImage] = field(default_factory=list)
    status: str = BlogStatus.DRAFT.value
    word_count: int = 0
    generated_topics: List[Dict[str, Any]] = field(default_factory=list)

    # WordPress publication
    wordpress_url: Optional[str] = None
    wordpress_post_id: Optional[str] = None
    published_at: Optional[str] = None
    category_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None
    meta_description: Optional[str] = None

    # GitHub backup
    github_file_path: Optional[str] = None
    github_commit_sha: Optional[str] = None
    backed_up_to_github: bool = False

    created_at: str = field(default_factory=_now_iso)

    def __post_init__(self) -> None:
        self.images = [
            img if isinstance(img, BlogImage) else BlogImage.from_dict(img)
            for img in (self.images or [])
        ]
        if not self.word_count:
            self.word_count = count_words(self.content)

    @property
    def is_published(self) -> bool:
        return self.status == BlogStatus.PUBLISHED.value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_api(self) -> Dict[str, Any]:
        data = {_camel(k): v for k, v in asdict(self).items()}
        data["images"] = [img.to_api() for img in self.images]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Blog:
        filtered = _filter_known(cls, data)
        if "word_count" in filtered:
            try:
                filtered["word_count"] = int(filtered["word_count"] or 0)
            except (TypeError, ValueError):
                filtered["word_count"] = 0
        if isinstance(filtered.get("backed_up_to_github"), str):
            filtered["backed_up_to_github"] = filtered["backed_up_to_github"] == "true"
        return cls(**filtered)


# Fields a PATCH /api/blogs/{id} may touch
UPDATABLE_BLOG_FIELDS = frozenset(
    f.name for f in fields(Blog) if f.name not in ("id", "created_at")
)


def normalize_blog_update(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map a camelCase or snake_case partial update onto Blog field names.

    Unknown keys are dropped. ``images`` entries become BlogImage instances.
    """
    out: Dict[str, Any] = {}
    for key, value in data.items():
        name = key if key in UPDATABLE_BLOG_FIELDS else _snake(key)
        if name not in UPDATABLE_BLOG_FIELDS:
            continue
        if name == "images" and value is not None:
            value = [
                img if isinstance(img, BlogImage) else BlogImage.from_dict(img)
                for img in value
            ]
        out[name] = value
    return out


@dataclass
class WordPressCredentials:
    """One WordPress destination. ``password`` is an application password."""

    wordpress_url: str
    username: str
    password: str
    name: str = "default"
    created_at: str = field(default_factory=_now_iso)

    @property
    def base_url(self) -> str:
        return self.wordpress_url.rstrip("/")

    @property
    def is_complete(self) -> bool:
        return bool(self.wordpress_url and self.username and self.password)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_public(self) -> Dict[str, Any]:
        """camelCase view without the password."""
        return {
            "name": self.name,
            "wordpressUrl": self.wordpress_url,
            "username": self.username,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WordPressCredentials:
        filtered = _filter_known(cls, data)
        for required in ("wordpress_url", "username", "password"):
            filtered.setdefault(required, "")
        return cls(**filtered)

    def __repr__(self) -> str:
        return f"WordPressCredentials({self.name!r}, {self.base_url!r}, user={self.username!r})"


@dataclass
class GitHubCredentials:
    """Target repository for blog mirroring and source backups."""

    github_token: str
    repository_owner: str
    repository_name: str
    name: str = "default"
    branch: str = "main"
    base_path: str = "content/blogs"
    created_at: str = field(default_factory=_now_iso)

    @property
    def repository_url(self) -> str:
        return f"https://github.com/{self.repository_owner}/{self.repository_name}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_public(self) -> Dict[str, Any]:
        data = {_camel(k): v for k, v in asdict(self).items()}
        data["githubToken"] = "***"
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GitHubCredentials:
        filtered = _filter_known(cls, data)
        for required in ("github_token", "repository_owner", "repository_name"):
            filtered.setdefault(required, "")
        return cls(**filtered)

    def __repr__(self) -> str:
        return f"GitHubCredentials({self.repository_owner}/{self.repository_name}@{self.branch})"
