"""
Anthropic Messages API wrapper used by every text-generation step.

``AIService.complete()`` returns plain text or parsed JSON. Each call carries
its own timeout so a slow model response never stalls a publish.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional

import anthropic

from blogsmith.config import Settings, get_settings

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("blogsmith.ai_client")
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


class AIServiceError(Exception):
    """Raised when a completion fails, times out or cannot be parsed."""
    pass


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def parse_json_response(text: str) -> Any:
    """
    Parse JSON from a model response.

    Handles responses wrapped in markdown code fences and responses with
    prose around a single JSON object.
    """
    text = (text or "").strip()
    if text.startswith("```"):
        json_lines: List[str] = []
        in_block = False
        for line in text.split("\n"):
            if line.strip().startswith("```") and not in_block:
                in_block = True
                continue
            elif line.strip() == "```":
                break
            elif in_block:
                json_lines.append(line)
        text = "\n".join(json_lines)

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        json_match = re.search(r"\{[\s\S]*\}", text)
        if json_match:
            try:
                return json.loads(json_match.group())
            except json.JSONDecodeError:
                pass
        raise AIServiceError(f"Could not parse JSON from AI response: {_truncate(text, 200)}")


class AIService:
    """
    Text completions against the Anthropic API.

    Parameters
    ----------
    settings : Settings, optional
        Supplies the API key and default models.
    client : anthropic.AsyncAnthropic, optional
        Pre-built client (tests pass a mock).
    """

    def __init__(self, settings: Optional[Settings] = None, client: Any = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.settings.anthropic_api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.settings.anthropic_api_key:
                raise AIServiceError("ANTHROPIC_API_KEY not set. Cannot call AI model.")
            self._client = anthropic.AsyncAnthropic(api_key=self.settings.anthropic_api_key)
        return self._client

    async def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 1000,
        temperature: Optional[float] = None,
        timeout: float = 60.0,
        expect_json: bool = False,
    ) -> Any:
        """
        Run one completion.

        Parameters
        ----------
        prompt : str
            User message content.
        system : str, optional
            System prompt.
        model : str, optional
            Defaults to the configured text model.
        max_tokens : int
            Maximum output tokens.
        temperature : float, optional
            Sampling temperature; provider default when omitted.
        timeout : float
            Seconds before the call is abandoned.
        expect_json : bool
            Parse the response as JSON.

        Returns
        -------
        str or dict
            Response text, or parsed JSON if expect_json=True.

        Raises
        ------
        AIServiceError
            On API errors, timeouts or unparseable JSON.
        """
        client = self._get_client()
        kwargs: Dict[str, Any] = {
            "model": model or self.settings.text_model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = await asyncio.wait_for(client.messages.create(**kwargs), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise AIServiceError(f"AI completion timed out after {timeout:.0f}s") from exc
        except anthropic.APIError as exc:
            raise AIServiceError(f"Anthropic API error: {exc}") from exc

        text = response.content[0].text if response.content else ""
        logger.debug("Completion from %s: %d chars", kwargs["model"], len(text))

        if expect_json:
            return parse_json_response(text)
        return text


_ai_service: Optional[AIService] = None


def get_ai_service() -> AIService:
    """Get or create the process-wide AIService."""
    global _ai_service
    if _ai_service is None:
        _ai_service = AIService()
    return _ai_service
