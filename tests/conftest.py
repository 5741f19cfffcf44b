"""
Shared fixtures for the Blogsmith test suite.

Provides settings pointed at temp directories, a temp blog store, fake
WordPress/AI collaborators and aiohttp mocks so that all tests run WITHOUT
any external services.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from blogsmith.config import Settings
from blogsmith.storage import BlogStore


# ---------------------------------------------------------------------------
# Settings / storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Settings with every path under tmp_path and no external keys."""
    return Settings(
        data_dir=tmp_path / "data",
        anthropic_api_key="",
        openai_api_key="",
        unsplash_keys=[],
        backup_delay_seconds=0.0,
        backup_files=["blogsmith/config.py", "blogsmith/models.py"],
        source_root=tmp_path / "src",
    )


@pytest.fixture
def store(settings):
    return BlogStore(settings.storage_file)


# ---------------------------------------------------------------------------
# Content fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_markdown():
    """Article markdown in the shape the content generator produces."""
    return (
        "# Home Composting for Beginners\n"
        "\n"
        "![A compost bin in a garden](https://images.unsplash.com/photo-1?w=1080.png)\n"
        "*Photo by Jane Doe on Unsplash*\n"
        "\n"
        "Composting at home turns kitchen scraps into rich soil for your garden. "
        "It takes less effort than most people expect.\n"
        "\n"
        "## Why Compost\n"
        "\n"
        "Compost improves **soil structure** and keeps *food waste* out of landfills.\n"
        "\n"
        "- Fewer bags of trash\n"
        "- Healthier plants\n"
        "- Lower fertilizer costs\n"
        "\n"
        "### Getting Started\n"
        "\n"
        "Read the [EPA guide](https://www.epa.gov/recycle/composting-home) or visit "
        "https://example.org/compost for local programs.\n"
        "\n"
        "![Finished compost](https://images.unsplash.com/photo-2?w=1080)\n"
    )


@pytest.fixture
def blog_data(sample_markdown):
    return {
        "keyword": "home composting",
        "title": "Home Composting for Beginners",
        "content": sample_markdown,
    }


@pytest.fixture
def live_categories():
    return [
        {"id": 3, "name": "General"},
        {"id": 7, "name": "Technology"},
        {"id": 9, "name": "Personal Finance"},
    ]


# ---------------------------------------------------------------------------
# HTTP mock fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_aiohttp_response():
    """Create a mock aiohttp response factory."""

    def _make(status=200, json_data=None, text="", headers=None, body=b""):
        resp = AsyncMock()
        resp.status = status
        resp.json = AsyncMock(return_value=json_data if json_data is not None else {})
        resp.text = AsyncMock(return_value=text)
        resp.read = AsyncMock(return_value=body)
        resp.content_length = len(body) if body else None

        async def _chunks(size):
            for start in range(0, len(body), size):
                yield body[start:start + size]

        resp.content = MagicMock()
        resp.content.iter_chunked = MagicMock(side_effect=_chunks)
        resp.headers = headers or {"Content-Type": "application/json"}
        resp.__aenter__ = AsyncMock(return_value=resp)
        resp.__aexit__ = AsyncMock(return_value=False)
        return resp

    return _make


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeWordPressClient:
    """In-memory stand-in for WordPressClient.

    ``post_failures`` is a list of exceptions raised by successive
    ``create_post`` calls before one succeeds.
    """

    def __init__(self, config=None, categories=None, post_failures=None):
        self.config = config
        self.categories = categories if categories is not None else [{"id": 3, "name": "General"}]
        self.category_error = None
        self.auth_error = None
        self.tag_ids = {}
        self.failing_tags = set()
        self.post_failures = list(post_failures or [])
        self.post_timeouts = []
        self.posts = []
        self.uploads = []
        self.closed = False

    async def verify_credentials(self, policy=None):
        if self.auth_error is not None:
            raise self.auth_error
        return {"id": 1, "name": "admin"}

    async def get_categories(self, timeout=15.0):
        if self.category_error is not None:
            raise self.category_error
        return list(self.categories)

    async def get_tags(self, timeout=15.0):
        return [{"id": tag_id, "name": name} for name, tag_id in self.tag_ids.items()]

    async def ensure_tag(self, name, timeout=5.0):
        key = name.lower()
        if key in self.failing_tags:
            raise RuntimeError(f"tag service rejected {name}")
        if key not in self.tag_ids:
            self.tag_ids[key] = 100 + len(self.tag_ids)
        return self.tag_ids[key]

    async def upload_media(self, content, filename, content_type, title="", alt_text="", timeout=12.0):
        self.uploads.append({"filename": filename, "content_type": content_type, "alt_text": alt_text})
        return {"id": 55, "source_url": "https://blog.example.com/wp-content/uploads/" + filename}

    async def create_post(self, payload, timeout=None):
        self.post_timeouts.append(timeout)
        if self.post_failures:
            raise self.post_failures.pop(0)
        self.posts.append(payload)
        return {"id": 321, "link": "https://blog.example.com/home-composting/", "status": "publish"}

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


@pytest.fixture
def fake_wp():
    return FakeWordPressClient()


@pytest.fixture
def fake_ai():
    """AIService stand-in answering tag prompts with JSON."""
    ai = MagicMock()
    ai.is_configured = True
    ai.complete = AsyncMock(return_value='{"tags": ["compost bins", "kitchen scraps", "soil health"]}')
    return ai


@pytest.fixture
def recorded_sleep():
    """An awaitable sleep that records delays instead of waiting."""
    delays = []

    async def _sleep(delay):
        delays.append(delay)

    _sleep.delays = delays
    return _sleep


@pytest.fixture
def wp_factory():
    """The FakeWordPressClient class, for tests that build their own instances."""
    return FakeWordPressClient
