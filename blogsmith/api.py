"""
Blogsmith API Server
====================

FastAPI server exposing blog generation, image search, WordPress publishing
and GitHub backup as JSON endpoints.

Run directly:
    python -m blogsmith.api
    uvicorn blogsmith.api:app --host 0.0.0.0 --port 5000

Port configurable via BLOGSMITH_API_PORT (default 5000).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from blogsmith import __version__
from blogsmith.ai_client import AIService, AIServiceError
from blogsmith.background import BackgroundServices
from blogsmith.config import Settings, configure_logging, get_settings
from blogsmith.content_generator import ContentGenerator
from blogsmith.featured_image import FeaturedImageUploader
from blogsmith.github_service import GitHubError, GitHubService
from blogsmith.image_generator import ImageGenerator
from blogsmith.images import ImageServiceError, KeyRotator, UnsplashClient, replace_image_at
from blogsmith.models import BlogImage, BlogStatus, GitHubCredentials, WordPressCredentials
from blogsmith.publisher import (
    CredentialsMissingError,
    PublishRequest,
    Publisher,
)
from blogsmith.source_backup import SourceBackupService
from blogsmith.storage import BlogStore
from blogsmith.wordpress_client import (
    AuthenticationError,
    SiteConfig,
    WordPressClient,
    WordPressError,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("blogsmith.api")
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
# Pydantic Models -- Requests
# ---------------------------------------------------------------------------


class ApiModel(BaseModel):
    """Accepts the camelCase names the web client sends, or snake_case."""

    model_config = ConfigDict(populate_by_name=True)


class TopicsRequest(ApiModel):
    keyword: str


class ContentRequest(ApiModel):
    title: str
    keyword: str
    article_length: str = Field("long", alias="articleLength")


class BlogCreateRequest(ApiModel):
    keyword: str
    title: str
    content: str
    images: List[Dict[str, Any]] = Field(default_factory=list)
    generated_topics: Optional[List[Any]] = Field(None, alias="generatedTopics")


class BlogUpdateRequest(ApiModel):
    keyword: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    images: Optional[List[Dict[str, Any]]] = None
    generated_topics: Optional[List[Any]] = Field(None, alias="generatedTopics")
    category_id: Optional[int] = Field(None, alias="categoryId")
    tag_ids: Optional[List[int]] = Field(None, alias="tagIds")
    meta_description: Optional[str] = Field(None, alias="metaDescription")


class SmartSearchRequest(ApiModel):
    blog_content: str = Field(..., alias="blogContent")
    blog_title: str = Field(..., alias="blogTitle")


class ImageGenerateRequest(ApiModel):
    prompt: str


class ImageReplaceRequest(ApiModel):
    new_image: Dict[str, Any] = Field(..., alias="newImage")


class WordPressCredentialsRequest(ApiModel):
    wordpress_url: str = Field(..., alias="wordpressUrl")
    username: str
    password: str
    name: str = "default"


class SeoRequest(ApiModel):
    title: str
    content: str
    keyword: str = ""
    categories: List[Dict[str, Any]] = Field(default_factory=list)


class PublishBody(ApiModel):
    wordpress_url: Optional[str] = Field(None, alias="wordpressUrl")
    username: Optional[str] = None
    password: Optional[str] = None
    category_id: Optional[int] = Field(None, alias="categoryId")
    category_ids: List[int] = Field(default_factory=list, alias="categoryIds")
    suggested_categories: List[str] = Field(default_factory=list, alias="suggestedCategories")
    tags: List[str] = Field(default_factory=list)
    meta_description: Optional[str] = Field(None, alias="metaDescription")


class GitHubCredentialsRequest(ApiModel):
    github_token: str = Field(..., alias="githubToken")
    repository_owner: str = Field(..., alias="repositoryOwner")
    repository_name: str = Field(..., alias="repositoryName")
    name: str = "default"
    branch: str = "main"
    base_path: str = Field("content/blogs", alias="basePath")


# ---------------------------------------------------------------------------
# Application State
# ---------------------------------------------------------------------------


class AppState:
    """Holds references to the services behind the endpoints."""

    def __init__(self) -> None:
        self.settings: Optional[Settings] = None
        self.store: Optional[BlogStore] = None
        self.ai: Optional[AIService] = None
        self.unsplash: Optional[UnsplashClient] = None
        self.content: Optional[ContentGenerator] = None
        self.image_generator: Optional[ImageGenerator] = None
        self.source_backup: Optional[SourceBackupService] = None
        self.background: Optional[BackgroundServices] = None
        self.publisher: Optional[Publisher] = None
        self.client_factory: Callable[[SiteConfig], WordPressClient] = WordPressClient
        self.github_factory: Callable[[GitHubCredentials], GitHubService] = GitHubService
        self.start_time: float = 0.0

    @property
    def ready(self) -> bool:
        return self.store is not None

    def configure(
        self,
        settings: Settings,
        *,
        ai: Optional[AIService] = None,
        unsplash: Optional[UnsplashClient] = None,
        image_generator: Optional[ImageGenerator] = None,
        uploader: Optional[FeaturedImageUploader] = None,
        client_factory: Optional[Callable[[SiteConfig], WordPressClient]] = None,
        github_factory: Optional[Callable[[GitHubCredentials], GitHubService]] = None,
        sleep: Any = None,
    ) -> None:
        """Build every service from *settings*; keyword arguments replace single services."""
        self.settings = settings
        self.store = BlogStore(settings.storage_file)
        self.ai = ai or AIService(settings)
        self.unsplash = unsplash or UnsplashClient(KeyRotator(settings.unsplash_keys))
        self.content = ContentGenerator(self.ai, self.unsplash, settings)
        self.image_generator = image_generator or ImageGenerator(settings)
        self.client_factory = client_factory or WordPressClient
        self.github_factory = github_factory or GitHubService
        self.source_backup = SourceBackupService(settings, self.store, self.github_factory)
        self.background = BackgroundServices(
            self.store,
            self.source_backup,
            default_delay=settings.backup_delay_seconds,
            github_factory=self.github_factory,
        )
        self.publisher = Publisher(
            self.store,
            ai=self.ai,
            settings=settings,
            background=self.background,
            client_factory=self.client_factory,
            uploader=uploader,
            sleep=sleep,
        )
        self.start_time = time.monotonic()

    def reset(self) -> None:
        self.__init__()


state = AppState()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services on startup unless already configured; stop background jobs on shutdown."""
    if not state.ready:
        settings = get_settings()
        configure_logging(settings.log_level)
        state.configure(settings)
    logger.info(
        "Blogsmith API started (data=%s, ai=%s, unsplash keys=%d, demo=%s)",
        state.settings.data_dir,
        "configured" if state.ai.is_configured else "missing key",
        len(state.unsplash.rotator),
        state.settings.demo_mode,
    )
    state.background.schedule_source_backup(delay=state.settings.startup_backup_delay)
    yield
    logger.info("Shutting down Blogsmith API")
    if state.background:
        await state.background.shutdown()
    state.reset()


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Blogsmith API",
    description="AI blog generation with WordPress publishing and GitHub backup.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _require_ai() -> None:
    if not state.ai.is_configured:
        raise HTTPException(503, "Anthropic API key not configured")


async def _require_blog(blog_id: str):
    blog = await state.store.get_blog(blog_id)
    if blog is None:
        raise HTTPException(404, "Blog not found")
    return blog


# ===================================================================
# Health
# ===================================================================


@app.get("/health", tags=["Health"])
async def health():
    """Server health check with service status."""
    wordpress = await state.store.get_wordpress_credentials()
    github = await state.store.get_github_credentials()
    uptime = time.monotonic() - state.start_time if state.start_time else 0
    return {
        "status": "ok",
        "timestamp": _now_iso(),
        "version": __version__,
        "services": {
            "ai": "configured" if state.ai.is_configured else "unconfigured",
            "unsplash": "configured" if state.unsplash.is_configured else "unconfigured",
            "imageGeneration": "configured" if state.image_generator.is_configured else "unconfigured",
            "wordpress": "configured" if wordpress else "unconfigured",
            "github": "configured" if github else "unconfigured",
        },
        "backgroundJobs": state.background.pending,
        "uptimeSeconds": round(uptime),
    }


# ===================================================================
# Blogs
# ===================================================================


@app.get("/api/blogs", tags=["Blogs"])
async def list_blogs():
    return [blog.to_api() for blog in await state.store.list_blogs()]


@app.get("/api/blogs/{blog_id}", tags=["Blogs"])
async def get_blog(blog_id: str):
    blog = await _require_blog(blog_id)
    return blog.to_api()


@app.post("/api/blogs", status_code=201, tags=["Blogs"])
async def create_blog(req: BlogCreateRequest):
    blog = await state.store.create_blog(req.model_dump(exclude_none=True))
    return blog.to_api()


@app.patch("/api/blogs/{blog_id}", tags=["Blogs"])
async def update_blog(blog_id: str, req: BlogUpdateRequest):
    """Partial update; word count follows the new content."""
    updated = await state.store.update_blog(blog_id, req.model_dump(exclude_unset=True))
    if updated is None:
        raise HTTPException(404, "Blog not found")
    return updated.to_api()


@app.delete("/api/blogs/{blog_id}", status_code=204, tags=["Blogs"])
async def delete_blog(blog_id: str):
    if not await state.store.delete_blog(blog_id):
        raise HTTPException(404, "Blog not found")
    return Response(status_code=204)


# ===================================================================
# Content generation
# ===================================================================


@app.post("/api/blogs/generate-topics", tags=["Content"])
async def generate_topics(req: TopicsRequest):
    _require_ai()
    try:
        return await state.content.generate_topics(req.keyword)
    except AIServiceError as exc:
        logger.error("Topic generation failed: %s", exc)
        raise HTTPException(500, f"Failed to generate topics: {exc}")


@app.post("/api/blogs/generate-content", tags=["Content"])
async def generate_content(req: ContentRequest):
    """Write an article, fill its images and save it as a draft."""
    _require_ai()
    try:
        article = await state.content.generate_article(req.title, req.keyword, req.article_length)
    except AIServiceError as exc:
        logger.error("Content generation failed: %s", exc)
        raise HTTPException(500, f"Failed to generate content: {exc}")

    blog = await state.store.create_blog(
        {
            "keyword": article.keyword,
            "title": article.title,
            "content": article.content,
            "images": article.images,
            "status": BlogStatus.DRAFT.value,
        }
    )
    state.background.schedule_source_backup()
    return blog.to_api()


@app.post("/api/blogs/analyze-seo", tags=["Content"])
async def analyze_seo(req: SeoRequest):
    _require_ai()
    try:
        return await state.content.analyze_seo(req.title, req.content, req.keyword, req.categories)
    except AIServiceError as exc:
        logger.error("SEO analysis failed: %s", exc)
        raise HTTPException(500, f"Failed to analyze SEO: {exc}")


# ===================================================================
# Images
# ===================================================================


@app.get("/api/images/search", tags=["Images"])
async def search_images(query: str = Query(""), per_page: int = Query(12, ge=1, le=30)):
    if not query.strip():
        raise HTTPException(400, "Query parameter is required")
    if not state.unsplash.is_configured:
        raise HTTPException(503, "Unsplash API key not configured")
    try:
        images = await state.unsplash.search(query, per_page=per_page)
    except ImageServiceError as exc:
        raise HTTPException(502, str(exc))
    return {"images": [img.to_api() for img in images], "total": len(images)}


@app.post("/api/images/smart-search", tags=["Images"])
async def smart_search(req: SmartSearchRequest):
    _require_ai()
    if not state.unsplash.is_configured:
        raise HTTPException(503, "Unsplash API key not configured")
    try:
        return await state.content.smart_image_search(req.blog_title, req.blog_content)
    except (AIServiceError, ImageServiceError) as exc:
        logger.error("Smart image search failed: %s", exc)
        raise HTTPException(500, f"Failed to perform smart image search: {exc}")


@app.post("/api/images/generate", tags=["Images"])
async def generate_image(req: ImageGenerateRequest):
    if not state.image_generator.is_configured:
        raise HTTPException(503, "OpenAI API key not configured")
    try:
        image = await state.image_generator.generate(req.prompt)
    except ImageServiceError as exc:
        logger.error("Image generation failed: %s", exc)
        raise HTTPException(500, f"Failed to generate image: {exc}")
    return {"success": True, "image": image}


@app.patch("/api/blogs/{blog_id}/images/{index}", tags=["Images"])
async def replace_image(blog_id: str, index: int, req: ImageReplaceRequest):
    """Swap the image at *index* (reading order) for ``newImage``."""
    blog = await _require_blog(blog_id)
    new_image = BlogImage.from_dict(req.new_image)
    if not new_image.url:
        raise HTTPException(400, "newImage.url is required")
    try:
        content, images = replace_image_at(blog.content, blog.images, index, new_image)
    except IndexError as exc:
        raise HTTPException(400, str(exc))
    updated = await state.store.update_blog(blog_id, {"content": content, "images": images})
    if updated is None:
        raise HTTPException(404, "Blog not found")
    state.background.schedule_source_backup()
    return updated.to_api()


# ===================================================================
# WordPress
# ===================================================================


@app.post("/api/wordpress/credentials", tags=["WordPress"])
async def save_wordpress_credentials(req: WordPressCredentialsRequest):
    credentials = await state.store.save_wordpress_credentials(
        WordPressCredentials(
            wordpress_url=req.wordpress_url.strip(),
            username=req.username.strip(),
            password=req.password,
            name=req.name,
        )
    )
    return credentials.to_public()


@app.get("/api/wordpress/credentials", tags=["WordPress"])
async def get_wordpress_credentials():
    credentials = await state.store.get_wordpress_credentials()
    if credentials is None:
        raise HTTPException(404, "No WordPress credentials configured")
    return credentials.to_public()


@app.get("/api/wordpress/categories", tags=["WordPress"])
async def wordpress_categories():
    stored = await state.store.get_wordpress_credentials()
    try:
        config = state.publisher.resolve_site_config(PublishRequest(), stored)
    except CredentialsMissingError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    async with state.client_factory(config) as client:
        try:
            categories = await client.get_categories()
        except AuthenticationError as exc:
            return JSONResponse(
                status_code=401,
                content={"error": "WordPress authentication failed", "details": str(exc), "needsCredentials": True},
            )
        except WordPressError as exc:
            raise HTTPException(502, f"Failed to fetch categories: {exc}")
    return [
        {"id": c.get("id"), "name": c.get("name", ""), "slug": c.get("slug", ""), "count": c.get("count", 0)}
        for c in categories
    ]


@app.post("/api/blogs/{blog_id}/publish", tags=["WordPress"])
async def publish_blog(blog_id: str, req: Optional[PublishBody] = None):
    """Run the publish pipeline; failures come back as ``{error, details?, needsCredentials?}``."""
    body = req.model_dump(by_alias=True) if req else {}
    result = await state.publisher.publish(blog_id, PublishRequest.from_dict(body))
    if result.success:
        return result.to_response()
    status = result.error.status_code if result.error else 500
    return JSONResponse(status_code=status, content=result.to_response())


# ===================================================================
# GitHub
# ===================================================================


async def _require_github() -> GitHubCredentials:
    credentials = await state.store.get_github_credentials()
    if credentials is None:
        raise HTTPException(400, "GitHub credentials not configured")
    return credentials


@app.get("/api/github/credentials", tags=["GitHub"])
async def get_github_credentials():
    credentials = await state.store.get_github_credentials()
    if credentials is None:
        raise HTTPException(404, "No GitHub credentials configured")
    return credentials.to_public()


@app.post("/api/github/credentials", tags=["GitHub"])
async def save_github_credentials(req: GitHubCredentialsRequest):
    credentials = await state.store.save_github_credentials(
        GitHubCredentials.from_dict(req.model_dump())
    )
    return credentials.to_public()


@app.post("/api/github/test-connection", tags=["GitHub"])
async def github_test_connection():
    credentials = await _require_github()
    async with state.github_factory(credentials) as github:
        connected = await github.test_connection()
    return {"connected": connected, "repository": credentials.repository_url}


@app.get("/api/github/files", tags=["GitHub"])
async def github_files():
    credentials = await _require_github()
    try:
        async with state.github_factory(credentials) as github:
            files = await github.list_files()
    except GitHubError as exc:
        raise HTTPException(502, str(exc))
    return [
        {"name": f.get("name"), "path": f.get("path"), "sha": f.get("sha"), "size": f.get("size", 0)}
        for f in files
    ]


@app.post("/api/blogs/{blog_id}/backup-to-github", tags=["GitHub"])
async def backup_blog_to_github(blog_id: str):
    await _require_blog(blog_id)
    await _require_github()
    try:
        result = await state.background.mirror_blog(blog_id)
    except GitHubError as exc:
        logger.error("GitHub backup of %s failed: %s", blog_id, exc)
        raise HTTPException(502, f"Failed to back up blog: {exc}")
    return {"success": True, **(result or {})}


@app.post("/api/source-backup", tags=["GitHub"])
async def source_backup():
    """Run an incremental source backup now."""
    report = await state.source_backup.backup_source()
    return report.to_dict()


# ===================================================================
# Entry Point
# ===================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "blogsmith.api:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
