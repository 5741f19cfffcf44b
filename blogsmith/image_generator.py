"""Blog illustrations via the OpenAI Images API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAIError

from blogsmith.config import Settings, get_settings
from blogsmith.images import ImageServiceError

logger = logging.getLogger("blogsmith.image_generator")
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

IMAGE_SIZE = "1024x1024"
IMAGE_QUALITY = "standard"
GENERATION_TIMEOUT = 90.0

PROMPT_TEMPLATE = (
    "Create a professional, high-quality image for a blog post: {prompt}. "
    "Style should be modern, clean, and suitable for web publishing."
)


class ImageGenerator:
    def __init__(self, settings: Optional[Settings] = None, client: Any = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.settings.openai_api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise ImageServiceError("OPENAI_API_KEY not set. Cannot generate images.")
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def generate(self, prompt: str, timeout: float = GENERATION_TIMEOUT) -> Dict[str, str]:
        """Generate one square image; returns ``{"url", "description"}``."""
        client = self._get_client()
        try:
            result = await asyncio.wait_for(
                client.images.generate(
                    model=self.settings.image_model,
                    prompt=PROMPT_TEMPLATE.format(prompt=prompt),
                    n=1,
                    size=IMAGE_SIZE,
                    quality=IMAGE_QUALITY,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ImageServiceError(f"Image generation timed out after {timeout:.0f}s") from exc
        except OpenAIError as exc:
            raise ImageServiceError(f"OpenAI image generation failed: {exc}") from exc

        if not result.data:
            raise ImageServiceError("No image generated")
        url = result.data[0].url
        logger.info("Generated image for prompt '%s'", prompt[:60])
        return {"url": url, "description": prompt}
