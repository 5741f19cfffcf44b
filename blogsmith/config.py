"""
Runtime configuration for blogsmith.

All settings come from environment variables. ``get_settings()`` returns a
process-wide ``Settings`` instance; tests build their own ``Settings`` and pass
it where needed instead of mutating the environment.

Environment:
    BLOGSMITH_DATA_DIR          Directory for storage_data.json / backup records
    BLOGSMITH_API_PORT          HTTP port (default 5000)
    BLOGSMITH_CORS_ORIGINS      Comma-separated allowed origins
    BLOGSMITH_LOG_LEVEL         Logging level (default INFO)
    ANTHROPIC_API_KEY           Text generation
    BLOGSMITH_TEXT_MODEL        Anthropic model for long-form content
    BLOGSMITH_FAST_MODEL        Anthropic model for tags / topics / SEO
    OPENAI_API_KEY              Image generation
    UNSPLASH_ACCESS_KEY[_2.._4] Stock-photo keys, rotated round-robin
    BLOGSMITH_DEMO_MODE         "true" enables the demo WordPress destination
    BLOGSMITH_DEMO_WP_URL / _USER / _PASSWORD
    BLOGSMITH_BACKUP_DELAY      Seconds before a scheduled source backup runs
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

BASE_DIR = Path(__file__).resolve().parent.parent

DEFAULT_TEXT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_FAST_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_IMAGE_MODEL = "dall-e-3"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Files mirrored by the source backup job, relative to BASE_DIR
DEFAULT_BACKUP_FILES = (
    "blogsmith/__init__.py",
    "blogsmith/ai_client.py",
    "blogsmith/api.py",
    "blogsmith/background.py",
    "blogsmith/config.py",
    "blogsmith/content_generator.py",
    "blogsmith/excerpt.py",
    "blogsmith/featured_image.py",
    "blogsmith/github_service.py",
    "blogsmith/images.py",
    "blogsmith/markdown_html.py",
    "blogsmith/models.py",
    "blogsmith/publisher.py",
    "blogsmith/retry.py",
    "blogsmith/source_backup.py",
    "blogsmith/storage.py",
    "blogsmith/taxonomy.py",
    "blogsmith/wordpress_client.py",
    "pyproject.toml",
    "DESIGN.md",
)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes", "on")


def _unsplash_keys_from_env() -> List[str]:
    names = [
        "UNSPLASH_ACCESS_KEY",
        "UNSPLASH_ACCESS_KEY_2",
        "UNSPLASH_ACCESS_KEY_3",
        "UNSPLASH_ACCESS_KEY_4",
    ]
    return [os.environ[n] for n in names if os.getenv(n)]


@dataclass
class Settings:
    """Resolved configuration values."""

    data_dir: Path = BASE_DIR / "data"
    api_port: int = 5000
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5000"]
    )
    log_level: str = "INFO"

    anthropic_api_key: str = ""
    text_model: str = DEFAULT_TEXT_MODEL
    fast_model: str = DEFAULT_FAST_MODEL
    openai_api_key: str = ""
    image_model: str = DEFAULT_IMAGE_MODEL
    unsplash_keys: List[str] = field(default_factory=list)

    demo_mode: bool = False
    demo_wordpress_url: str = ""
    demo_wordpress_user: str = ""
    demo_wordpress_password: str = ""

    backup_delay_seconds: float = 10.0
    startup_backup_delay: float = 5.0
    backup_files: List[str] = field(default_factory=lambda: list(DEFAULT_BACKUP_FILES))
    source_root: Path = BASE_DIR

    @property
    def storage_file(self) -> Path:
        return self.data_dir / "storage_data.json"

    @property
    def backup_records_file(self) -> Path:
        return self.data_dir / "backup_records.json"

    @property
    def has_demo_destination(self) -> bool:
        """True when demo mode is on and a full default destination is configured."""
        return bool(
            self.demo_mode
            and self.demo_wordpress_url
            and self.demo_wordpress_user
            and self.demo_wordpress_password
        )

    @classmethod
    def from_env(cls) -> Settings:
        data_dir = Path(os.getenv("BLOGSMITH_DATA_DIR", str(BASE_DIR / "data")))
        origins = os.getenv(
            "BLOGSMITH_CORS_ORIGINS", "http://localhost:3000,http://localhost:5000"
        ).split(",")
        return cls(
            data_dir=data_dir,
            api_port=int(os.getenv("BLOGSMITH_API_PORT", "5000")),
            cors_origins=[o.strip() for o in origins if o.strip()],
            log_level=os.getenv("BLOGSMITH_LOG_LEVEL", "INFO").upper(),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            text_model=os.getenv("BLOGSMITH_TEXT_MODEL", DEFAULT_TEXT_MODEL),
            fast_model=os.getenv("BLOGSMITH_FAST_MODEL", DEFAULT_FAST_MODEL),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            image_model=os.getenv("BLOGSMITH_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
            unsplash_keys=_unsplash_keys_from_env(),
            demo_mode=_env_bool("BLOGSMITH_DEMO_MODE"),
            demo_wordpress_url=os.getenv("BLOGSMITH_DEMO_WP_URL", ""),
            demo_wordpress_user=os.getenv("BLOGSMITH_DEMO_WP_USER", ""),
            demo_wordpress_password=os.getenv("BLOGSMITH_DEMO_WP_PASSWORD", ""),
            backup_delay_seconds=float(os.getenv("BLOGSMITH_BACKUP_DELAY", "10")),
            startup_backup_delay=float(os.getenv("BLOGSMITH_STARTUP_BACKUP_DELAY", "5")),
        )


def configure_logging(level: str = "INFO") -> None:
    """Apply *level* to every ``blogsmith.*`` logger (used by the API and CLI entry points)."""
    resolved = getattr(logging, level.upper(), logging.INFO)
    for name in list(logging.root.manager.loggerDict):
        if name == "blogsmith" or name.startswith("blogsmith."):
            logging.getLogger(name).setLevel(resolved)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide Settings."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
