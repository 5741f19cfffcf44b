"""
GitHub contents API client: mirrors blogs as markdown files and stores
source backups.

Usage:
    service = GitHubService(credentials)
    if await service.test_connection():
        result = await service.backup_blog(blog)
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import yaml

from blogsmith.models import Blog, GitHubCredentials

logger = logging.getLogger("blogsmith.github_service")
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

GITHUB_API_URL = "https://api.github.com"
REQUEST_TIMEOUT = 30.0


class GitHubError(Exception):
    """Raised on non-2xx responses from the GitHub API."""

    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")


def blog_filename(blog: Blog) -> str:
    """``<YYYY-MM-DD>-<slug>.md`` using the blog's creation date."""
    try:
        date = datetime.fromisoformat(blog.created_at.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        date = blog.created_at[:10]
    return f"{date}-{slugify(blog.title)}.md"


def blog_markdown(blog: Blog) -> str:
    """Article markdown prefixed with a frontmatter block of its metadata."""
    frontmatter: Dict[str, Any] = {
        "title": blog.title,
        "keyword": blog.keyword,
        "status": blog.status,
        "wordCount": blog.word_count,
        "createdAt": blog.created_at,
    }
    optional = {
        "publishedAt": blog.published_at,
        "wordpressUrl": blog.wordpress_url,
        "wordpressPostId": blog.wordpress_post_id,
        "categoryId": blog.category_id,
        "tagIds": blog.tag_ids,
        "metaDescription": blog.meta_description,
    }
    frontmatter.update({k: v for k, v in optional.items() if v})

    header = yaml.safe_dump(
        frontmatter, default_flow_style=False, sort_keys=False, allow_unicode=True
    )
    return "---\n" + header + "---\n\n" + blog.content + "\n"


class GitHubService:
    """
    Repository file operations through the contents API.

    Parameters
    ----------
    credentials : GitHubCredentials
        Token, repository coordinates, branch and base path.
    """

    def __init__(self, credentials: GitHubCredentials, timeout: float = REQUEST_TIMEOUT):
        self.credentials = credentials
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def repo_url(self) -> str:
        c = self.credentials
        return f"{GITHUB_API_URL}/repos/{c.repository_owner}/{c.repository_name}"

    def contents_url(self, path: str) -> str:
        return f"{self.repo_url}/contents/{path.lstrip('/')}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Authorization": f"token {self.credentials.github_token}",
                    "Accept": "application/vnd.github.v3+json",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(
        self, method: str, url: str, json_data: Optional[Dict[str, Any]] = None
    ) -> Tuple[int, Any]:
        session = await self._get_session()
        kwargs: Dict[str, Any] = {}
        if json_data is not None:
            kwargs["json"] = json_data
        async with session.request(method, url, **kwargs) as resp:
            try:
                body = await resp.json(content_type=None)
            except (json.JSONDecodeError, ValueError):
                body = await resp.text()
            return resp.status, body

    @staticmethod
    def _raise_for(status: int, body: Any) -> None:
        text = str(body)[:500]
        raise GitHubError(f"GitHub API error: {status} - {text}", status_code=status, response_body=text)

    # -- Files --------------------------------------------------------------

    async def get_file(self, path: str) -> Optional[Dict[str, Any]]:
        """File metadata (including ``sha``), or None when it does not exist."""
        status, body = await self._request("GET", self.contents_url(path))
        if status == 404:
            return None
        if status >= 400:
            self._raise_for(status, body)
        return body if isinstance(body, dict) else None

    async def create_or_update_file(
        self, path: str, content: str, message: str, sha: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Write *content* to *path* on the configured branch.

        Returns
        -------
        dict
            The ``commit`` object of the response (``sha``, ``message``...).
        """
        payload: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.credentials.branch,
        }
        if sha:
            payload["sha"] = sha
        status, body = await self._request("PUT", self.contents_url(path), json_data=payload)
        if status >= 400:
            self._raise_for(status, body)
        return body.get("commit", {}) if isinstance(body, dict) else {}

    async def put_file(self, path: str, content: str, message: str) -> Dict[str, Any]:
        """Create or update *path*, looking up the current sha first."""
        existing = await self.get_file(path)
        return await self.create_or_update_file(
            path, content, message, existing.get("sha") if existing else None
        )

    async def backup_blog(self, blog: Blog) -> Dict[str, str]:
        """
        Mirror *blog* to ``<basePath>/<date>-<slug>.md``.

        Returns
        -------
        dict
            ``{"filePath", "commitSha"}``.
        """
        file_path = f"{self.credentials.base_path.rstrip('/')}/{blog_filename(blog)}"
        existing = await self.get_file(file_path)
        message = (
            f"Update blog post: {blog.title}" if existing else f"Add new blog post: {blog.title}"
        )
        commit = await self.create_or_update_file(
            file_path,
            blog_markdown(blog),
            message,
            existing.get("sha") if existing else None,
        )
        logger.info("Backed up blog %s to %s", blog.id, file_path)
        return {"filePath": file_path, "commitSha": commit.get("sha", "")}

    async def test_connection(self) -> bool:
        try:
            status, _ = await self._request("GET", self.repo_url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("GitHub connection test failed: %s", exc)
            return False
        return status < 400

    async def list_files(self) -> List[Dict[str, Any]]:
        """Entries under the base path; empty when the directory is missing."""
        status, body = await self._request("GET", self.contents_url(self.credentials.base_path))
        if status == 404:
            return []
        if status >= 400:
            self._raise_for(status, body)
        return body if isinstance(body, list) else []
