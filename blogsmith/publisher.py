"""
WordPress publish orchestrator.

A publish run is an explicit state machine. Each state has one handler that
does its work and returns the next state; fatal conditions raise a
``PublishError`` which the runner turns into the ``FAILED`` terminal.

States:
    LOAD_BLOG -> AUTHENTICATE -> GENERATE_TAGS -> RESOLVE_TAXONOMY ->
    TRANSFORM_CONTENT -> UPLOAD_FEATURED_IMAGE -> CREATE_POST ->
    PERSIST_RESULT -> PUBLISHED

Tag generation, taxonomy resolution and the featured image degrade instead of
failing: the post goes out with whatever they produced. Nothing is written to
the store until the post exists on WordPress.

Usage:
    publisher = Publisher(store, ai=get_ai_service())
    result = await publisher.publish("blog_1718000000000_abc123def", PublishRequest())

CLI:
    python -m blogsmith.publisher render article.md
    python -m blogsmith.publisher excerpt article.md
    python -m blogsmith.publisher publish BLOG_ID --category-id 7 --tag "home composting"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from blogsmith.config import Settings, configure_logging, get_settings
from blogsmith.excerpt import extract_excerpt
from blogsmith.featured_image import FeaturedImageUploader
from blogsmith.markdown_html import first_image, markdown_to_html
from blogsmith.models import Blog, BlogStatus
from blogsmith.retry import (
    RetryExhaustedError,
    SleepFunc,
    auth_probe_policy,
    create_post_policy,
)
from blogsmith.storage import BlogStore
from blogsmith.taxonomy import (
    TAG_CONCURRENCY,
    CategoryResolution,
    fallback_tag_names,
    generate_tag_names,
    merge_tag_names,
    resolve_categories,
    resolve_tags,
    validate_tag_ids,
)
from blogsmith.wordpress_client import (
    AuthenticationError,
    SiteConfig,
    WordPressClient,
    is_auth_failure,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("blogsmith.publisher")
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


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------


class PublishState(str, Enum):
    """States of a publish run, in execution order, then the terminals."""
    LOAD_BLOG = "load_blog"
    AUTHENTICATE = "authenticate"
    GENERATE_TAGS = "generate_tags"
    RESOLVE_TAXONOMY = "resolve_taxonomy"
    TRANSFORM_CONTENT = "transform_content"
    UPLOAD_FEATURED_IMAGE = "upload_featured_image"
    CREATE_POST = "create_post"
    PERSIST_RESULT = "persist_result"
    PUBLISHED = "published"
    FAILED = "failed"


STATE_ORDER: List[PublishState] = [
    PublishState.LOAD_BLOG,
    PublishState.AUTHENTICATE,
    PublishState.GENERATE_TAGS,
    PublishState.RESOLVE_TAXONOMY,
    PublishState.TRANSFORM_CONTENT,
    PublishState.UPLOAD_FEATURED_IMAGE,
    PublishState.CREATE_POST,
    PublishState.PERSIST_RESULT,
]

TERMINAL_STATES = frozenset({PublishState.PUBLISHED, PublishState.FAILED})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PublishError(Exception):
    """Base class for fatal publish failures. Carries the HTTP mapping."""

    status_code = 500
    needs_credentials = False

    def __init__(self, message: str, details: Optional[str] = None):
        self.details = details
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": str(self)}
        if self.details:
            body["details"] = self.details
        if self.needs_credentials:
            body["needsCredentials"] = True
        return body


class BlogNotFoundError(PublishError):
    status_code = 404


class CredentialsMissingError(PublishError):
    status_code = 400
    needs_credentials = True


class PublishAuthError(PublishError):
    status_code = 401
    needs_credentials = True


class PublishFailedError(PublishError):
    status_code = 502


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class PublishRequest:
    """Optional per-request overrides for a publish run."""

    wordpress_url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    category_id: Optional[int] = None
    category_ids: List[int] = field(default_factory=list)
    suggested_categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    meta_description: Optional[str] = None

    @property
    def requested_category_ids(self) -> List[int]:
        ids = list(self.category_ids or [])
        if self.category_id is not None and self.category_id not in ids:
            ids.insert(0, self.category_id)
        return ids

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PublishRequest:
        """Build from a camelCase API body."""
        category_ids = data.get("categoryIds") or []
        return cls(
            wordpress_url=data.get("wordpressUrl"),
            username=data.get("username"),
            password=data.get("password"),
            category_id=data.get("categoryId"),
            category_ids=[int(i) for i in category_ids],
            suggested_categories=list(data.get("suggestedCategories") or []),
            tags=list(data.get("tags") or []),
            meta_description=data.get("metaDescription"),
        )


@dataclass
class PublishContext:
    """Mutable state threaded through the handlers of one run."""

    blog_id: str
    request: PublishRequest
    blog: Optional[Blog] = None
    client: Optional[WordPressClient] = None
    tag_names: List[str] = field(default_factory=list)
    tag_ids: List[int] = field(default_factory=list)
    categories: CategoryResolution = field(default_factory=CategoryResolution)
    html: str = ""
    excerpt: str = ""
    featured_image: Optional[tuple] = None
    featured_media_id: Optional[int] = None
    post: Dict[str, Any] = field(default_factory=dict)
    published_at: Optional[str] = None
    trace: List[str] = field(default_factory=list)
    attempts: Dict[str, int] = field(default_factory=dict)

    @property
    def meta_description(self) -> str:
        return self.request.meta_description or self.excerpt


@dataclass
class PublishResult:
    """Outcome of a publish run, successful or not."""

    success: bool
    state: str
    blog_id: str
    wordpress_url: Optional[str] = None
    wordpress_post_id: Optional[str] = None
    published_at: Optional[str] = None
    category_id: Optional[int] = None
    category_ids: List[int] = field(default_factory=list)
    tag_ids: List[int] = field(default_factory=list)
    meta_description: Optional[str] = None
    featured_media_id: Optional[int] = None
    trace: List[str] = field(default_factory=list)
    attempts: Dict[str, int] = field(default_factory=dict)
    error: Optional[PublishError] = None

    def to_response(self) -> Dict[str, Any]:
        """The JSON body returned to API clients."""
        if not self.success:
            return self.error.to_response() if self.error else {"error": "Publish failed"}
        body: Dict[str, Any] = {
            "success": True,
            "wordpressUrl": self.wordpress_url,
            "wordpressPostId": self.wordpress_post_id,
            "publishedAt": self.published_at,
            "categoryId": self.category_id,
            "categoryIds": list(self.category_ids),
            "tagIds": list(self.tag_ids),
            "metaDescription": self.meta_description,
        }
        if self.featured_media_id is not None:
            body["featuredMediaId"] = self.featured_media_id
        return body

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_response()
        data.update({"state": self.state, "trace": list(self.trace), "attempts": dict(self.attempts)})
        return data


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------


class Publisher:
    """
    Runs publish state machines against a BlogStore.

    Parameters
    ----------
    store : BlogStore
        Blog and credential persistence.
    ai : AIService, optional
        Used for tag generation; keyword fallback tags when absent.
    settings : Settings, optional
        Demo-mode destination and model names.
    background : BackgroundServices, optional
        Receives the post-publish source backup and blog mirror jobs.
    client_factory : callable, optional
        ``SiteConfig -> WordPressClient``; tests inject fakes here.
    uploader : FeaturedImageUploader, optional
    sleep : callable, optional
        Awaitable sleep used between retries.
    tag_concurrency : int
        Concurrent tag lookups per run.
    """

    def __init__(
        self,
        store: BlogStore,
        ai: Any = None,
        settings: Optional[Settings] = None,
        background: Any = None,
        client_factory: Optional[Callable[[SiteConfig], WordPressClient]] = None,
        uploader: Optional[FeaturedImageUploader] = None,
        sleep: Optional[SleepFunc] = None,
        tag_concurrency: int = TAG_CONCURRENCY,
    ):
        self.store = store
        self.ai = ai
        self.settings = settings or get_settings()
        self.background = background
        self.client_factory = client_factory or WordPressClient
        self.uploader = uploader or FeaturedImageUploader()
        self.sleep = sleep or asyncio.sleep
        self.tag_concurrency = tag_concurrency
        self._handlers: Dict[PublishState, Callable] = {
            PublishState.LOAD_BLOG: self._state_load_blog,
            PublishState.AUTHENTICATE: self._state_authenticate,
            PublishState.GENERATE_TAGS: self._state_generate_tags,
            PublishState.RESOLVE_TAXONOMY: self._state_resolve_taxonomy,
            PublishState.TRANSFORM_CONTENT: self._state_transform_content,
            PublishState.UPLOAD_FEATURED_IMAGE: self._state_upload_featured_image,
            PublishState.CREATE_POST: self._state_create_post,
            PublishState.PERSIST_RESULT: self._state_persist_result,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def publish(
        self, blog_id: str, request: Optional[PublishRequest] = None
    ) -> PublishResult:
        """
        Publish one stored blog.

        Returns
        -------
        PublishResult
            ``success`` is False and ``error`` is set when the run ended in
            FAILED; the result never raises for a PublishError.
        """
        ctx = PublishContext(blog_id=blog_id, request=request or PublishRequest())
        state = PublishState.LOAD_BLOG
        error: Optional[PublishError] = None

        try:
            while state not in TERMINAL_STATES:
                ctx.trace.append(state.value)
                handler = self._handlers[state]
                try:
                    state = await handler(ctx)
                except PublishError as exc:
                    logger.error("Publish %s failed in %s: %s", blog_id, state.value, exc)
                    error = exc
                    state = PublishState.FAILED
                except Exception as exc:
                    logger.exception("Unexpected error publishing %s in %s", blog_id, state.value)
                    error = PublishError("Failed to publish to WordPress", details=str(exc))
                    state = PublishState.FAILED
        finally:
            if ctx.client is not None:
                await ctx.client.close()

        ctx.trace.append(state.value)

        if state == PublishState.FAILED:
            return PublishResult(
                success=False,
                state=state.value,
                blog_id=blog_id,
                trace=ctx.trace,
                attempts=ctx.attempts,
                error=error,
            )

        self._notify(ctx)
        return PublishResult(
            success=True,
            state=state.value,
            blog_id=blog_id,
            wordpress_url=ctx.post.get("link"),
            wordpress_post_id=str(ctx.post.get("id")),
            published_at=ctx.published_at,
            category_id=ctx.categories.category_id,
            category_ids=list(ctx.categories.category_ids),
            tag_ids=list(ctx.tag_ids),
            meta_description=ctx.meta_description,
            featured_media_id=ctx.featured_media_id,
            trace=ctx.trace,
            attempts=ctx.attempts,
        )

    def resolve_site_config(self, request: PublishRequest, stored: Any) -> SiteConfig:
        """
        Credentials field by field: stored settings, then the request, then
        the demo-mode destination.

        Raises
        ------
        CredentialsMissingError
            When any of URL, username or password is still missing.
        """
        s = self.settings
        demo = s.has_demo_destination

        def pick(stored_value: Optional[str], request_value: Optional[str], demo_value: str) -> str:
            return stored_value or request_value or (demo_value if demo else "") or ""

        url = pick(stored.wordpress_url if stored else None, request.wordpress_url, s.demo_wordpress_url)
        user = pick(stored.username if stored else None, request.username, s.demo_wordpress_user)
        password = pick(stored.password if stored else None, request.password, s.demo_wordpress_password)

        if not (url and user and password):
            raise CredentialsMissingError("WordPress credentials are incomplete")
        return SiteConfig(site_url=url, username=user, app_password=password)

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    async def _state_load_blog(self, ctx: PublishContext) -> PublishState:
        blog = await self.store.get_blog(ctx.blog_id)
        if blog is None:
            raise BlogNotFoundError("Blog not found")
        ctx.blog = blog
        logger.info("Publishing blog %s: %s", blog.id, blog.title[:60])
        return PublishState.AUTHENTICATE

    async def _state_authenticate(self, ctx: PublishContext) -> PublishState:
        stored = await self.store.get_wordpress_credentials()
        config = self.resolve_site_config(ctx.request, stored)
        ctx.client = self.client_factory(config)

        policy = auth_probe_policy(sleep=self.sleep)
        try:
            await ctx.client.verify_credentials(policy=policy)
        except AuthenticationError as exc:
            ctx.attempts[PublishState.AUTHENTICATE.value] = policy.max_attempts
            raise PublishAuthError(
                "WordPress authentication failed after multiple attempts",
                details="Please verify your WordPress URL, username, and application password",
            ) from exc
        ctx.attempts[PublishState.AUTHENTICATE.value] = len(policy.delays) + 1
        return PublishState.GENERATE_TAGS

    async def _state_generate_tags(self, ctx: PublishContext) -> PublishState:
        blog = ctx.blog
        if self.ai is not None and getattr(self.ai, "is_configured", True):
            generated = await generate_tag_names(
                self.ai,
                title=blog.title,
                keyword=blog.keyword,
                content=blog.content,
                model=self.settings.fast_model,
            )
        else:
            generated = fallback_tag_names(blog.keyword, blog.title)
        ctx.tag_names = merge_tag_names(ctx.request.tags, generated)
        return PublishState.RESOLVE_TAXONOMY

    async def _state_resolve_taxonomy(self, ctx: PublishContext) -> PublishState:
        blog = ctx.blog
        ctx.categories = await resolve_categories(
            ctx.client,
            title=blog.title,
            content=blog.content,
            suggestions=ctx.request.suggested_categories,
            requested_ids=ctx.request.requested_category_ids,
        )
        tag_ids = await resolve_tags(ctx.client, ctx.tag_names, concurrency=self.tag_concurrency)
        ctx.tag_ids = await validate_tag_ids(ctx.client, tag_ids)
        return PublishState.TRANSFORM_CONTENT

    async def _state_transform_content(self, ctx: PublishContext) -> PublishState:
        content = ctx.blog.content
        ctx.featured_image = first_image(content)
        ctx.html = markdown_to_html(content)
        ctx.excerpt = extract_excerpt(content)
        return PublishState.UPLOAD_FEATURED_IMAGE

    async def _state_upload_featured_image(self, ctx: PublishContext) -> PublishState:
        if ctx.featured_image:
            alt, url = ctx.featured_image
            ctx.featured_media_id = await self.uploader.upload(url, alt, ctx.client)
        return PublishState.CREATE_POST

    def build_post_payload(self, ctx: PublishContext) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "title": ctx.blog.title,
            "content": ctx.html,
            "status": "publish",
            "categories": list(ctx.categories.category_ids),
            "tags": list(ctx.tag_ids),
            "excerpt": ctx.excerpt,
            "meta": {"_yoast_wpseo_metadesc": ctx.meta_description},
        }
        if ctx.featured_media_id is not None:
            payload["featured_media"] = ctx.featured_media_id
        return payload

    async def _state_create_post(self, ctx: PublishContext) -> PublishState:
        payload = self.build_post_payload(ctx)
        policy = create_post_policy(sleep=self.sleep)
        key = PublishState.CREATE_POST.value

        def _record(attempt: int, timeout: float) -> None:
            ctx.attempts[key] = attempt

        logger.info(
            "Creating post '%s' (%d chars, %d categories, %d tags, featured=%s)",
            ctx.blog.title[:60],
            len(ctx.html),
            len(payload["categories"]),
            len(payload["tags"]),
            "yes" if ctx.featured_media_id is not None else "no",
        )
        try:
            ctx.post = await policy.execute(
                lambda timeout: ctx.client.create_post(payload, timeout=timeout),
                is_fatal=is_auth_failure,
                on_attempt=_record,
            )
        except AuthenticationError as exc:
            raise PublishAuthError(
                "WordPress rejected the credentials while creating the post",
                details=str(exc),
            ) from exc
        except RetryExhaustedError as exc:
            raise PublishFailedError(
                f"WordPress publishing failed after {exc.attempts} attempts",
                details=str(exc.last_error),
            ) from exc
        return PublishState.PERSIST_RESULT

    async def _state_persist_result(self, ctx: PublishContext) -> PublishState:
        ctx.published_at = _now_iso()
        updated = await self.store.update_blog(
            ctx.blog_id,
            {
                "status": BlogStatus.PUBLISHED.value,
                "wordpress_url": ctx.post.get("link"),
                "wordpress_post_id": str(ctx.post.get("id")),
                "published_at": ctx.published_at,
                "category_id": ctx.categories.category_id,
                "tag_ids": list(ctx.tag_ids),
                "meta_description": ctx.meta_description,
            },
        )
        if updated is None:
            logger.warning("Blog %s disappeared before its publish result was saved", ctx.blog_id)
        logger.info(
            "Published blog %s as post %s: %s",
            ctx.blog_id, ctx.post.get("id"), ctx.post.get("link"),
        )
        return PublishState.PUBLISHED

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _notify(self, ctx: PublishContext) -> None:
        if self.background is None:
            return
        self.background.schedule_source_backup()
        self.background.schedule_blog_mirror(ctx.blog_id)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _cli_render(args: argparse.Namespace) -> None:
    print(markdown_to_html(Path(args.file).read_text(encoding="utf-8")))


def _cli_excerpt(args: argparse.Namespace) -> None:
    print(extract_excerpt(Path(args.file).read_text(encoding="utf-8")))


async def _publish_from_cli(args: argparse.Namespace) -> PublishResult:
    from blogsmith.ai_client import AIService

    settings = get_settings()
    store = BlogStore(settings.storage_file)
    ai = AIService(settings)
    publisher = Publisher(store, ai=ai if ai.is_configured else None, settings=settings)
    request = PublishRequest(
        wordpress_url=args.url,
        username=args.user,
        password=args.password,
        category_id=args.category_id,
        suggested_categories=args.category or [],
        tags=args.tag or [],
        meta_description=args.meta_description,
    )
    return await publisher.publish(args.blog_id, request)


def _cli_publish(args: argparse.Namespace) -> None:
    result = asyncio.run(_publish_from_cli(args))
    print(json.dumps(result.to_dict(), indent=2))
    if not result.success:
        sys.exit(1)


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="blogsmith.publisher",
        description="Render, excerpt and publish blogsmith articles",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_render = sub.add_parser("render", help="Print the WordPress HTML for a markdown file")
    p_render.add_argument("file")
    p_render.set_defaults(func=_cli_render)

    p_excerpt = sub.add_parser("excerpt", help="Print the excerpt for a markdown file")
    p_excerpt.add_argument("file")
    p_excerpt.set_defaults(func=_cli_excerpt)

    p_publish = sub.add_parser("publish", help="Publish a stored blog")
    p_publish.add_argument("blog_id")
    p_publish.add_argument("--url", help="WordPress site URL")
    p_publish.add_argument("--user", help="WordPress username")
    p_publish.add_argument("--password", help="WordPress application password")
    p_publish.add_argument("--category-id", type=int, dest="category_id")
    p_publish.add_argument("--category", action="append", help="Suggested category name (repeatable)")
    p_publish.add_argument("--tag", action="append", help="Tag name (repeatable)")
    p_publish.add_argument("--meta-description", dest="meta_description")
    p_publish.set_defaults(func=_cli_publish)

    args = parser.parse_args()
    configure_logging(get_settings().log_level)
    args.func(args)


if __name__ == "__main__":
    main()
