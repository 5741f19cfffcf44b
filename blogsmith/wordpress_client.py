"""
WordPress REST API client for blogsmith.

Every call is a single attempt with an explicit timeout; retry decisions are
made by the caller (see ``blogsmith.retry``). Authentication uses HTTP Basic
with a WordPress application password.

Usage:
    from blogsmith.wordpress_client import SiteConfig, WordPressClient

    config = SiteConfig("https://example.com", "editor", "abcd efgh ijkl mnop")
    async with WordPressClient(config) as client:
        await client.verify_credentials()
        categories = await client.get_categories()
        post = await client.create_post({"title": "Hello", "content": "<p>Hi</p>"}, timeout=30)
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from blogsmith.retry import RetryExhaustedError, RetryPolicy, auth_probe_policy

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger("blogsmith.wordpress_client")
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

USER_AGENT = "Blogsmith/1.0"

# WP REST API pagination limit
WP_MAX_PER_PAGE = 100

DEFAULT_TIMEOUT = 30.0
TAXONOMY_TIMEOUT = 15.0
TAG_TIMEOUT = 5.0
MEDIA_UPLOAD_TIMEOUT = 12.0


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class WordPressError(Exception):
    """Base exception for WordPress API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        response_body: str = "",
        error_code: str = "",
        error_data: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        self.error_code = error_code
        self.error_data = error_data or {}
        super().__init__(message)


class AuthenticationError(WordPressError):
    """Raised on 401/403 responses or when the credential probe is exhausted."""
    pass


class NotFoundError(WordPressError):
    """Raised on 404 responses."""
    pass


class WordPressTimeoutError(WordPressError):
    """Raised when a call exceeds its timeout."""
    pass


class WordPressConnectionError(WordPressError):
    """Raised on DNS, connect and transport failures."""
    pass


def is_auth_failure(exc: BaseException) -> bool:
    return isinstance(exc, AuthenticationError)


# ---------------------------------------------------------------------------
# SiteConfig dataclass
# ---------------------------------------------------------------------------


@dataclass
class SiteConfig:
    """Connection details for one WordPress site."""

    site_url: str
    username: str
    app_password: str

    @property
    def base_url(self) -> str:
        """WP REST API root URL."""
        return f"{self.site_url.rstrip('/')}/wp-json"

    @property
    def api_url(self) -> str:
        """WP REST API v2 base URL."""
        return f"{self.base_url}/wp/v2"

    @property
    def auth_header(self) -> str:
        """Base64-encoded Basic auth header value.

        The application password is used verbatim, spaces included.
        """
        if not self.username or not self.app_password:
            return ""
        credentials = f"{self.username}:{self.app_password}"
        encoded = base64.b64encode(credentials.encode("utf-8")).decode("utf-8")
        return f"Basic {encoded}"

    @property
    def is_configured(self) -> bool:
        return bool(self.site_url and self.username and self.app_password)

    def __repr__(self) -> str:
        configured = "configured" if self.is_configured else "no-creds"
        return f"SiteConfig({self.site_url!r}, {configured})"


# ---------------------------------------------------------------------------
# WordPressClient
# ---------------------------------------------------------------------------


class WordPressClient:
    """
    Async WordPress REST API client for a single site.

    Parameters
    ----------
    config : SiteConfig
        Site URL and credentials.
    timeout : float
        Default per-call timeout in seconds when a method is not given one.

    Attributes
    ----------
    request_count : int
        Number of HTTP requests attempted through this client.
    """

    def __init__(self, config: SiteConfig, timeout: float = DEFAULT_TIMEOUT):
        self.config = config
        self.timeout = timeout
        self.request_count = 0
        self._session: Optional[aiohttp.ClientSession] = None

    # -- Session management -------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            headers = {
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
            }
            if self.config.auth_header:
                headers["Authorization"] = self.config.auth_header

            connector = aiohttp.TCPConnector(limit=10, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(
                headers=headers,
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # -- Core HTTP ----------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        timeout: Optional[float] = None,
        json_data: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, Any, Dict[str, str]]:
        """
        Make one HTTP request.

        Returns
        -------
        tuple of (status_code, response_json_or_text, response_headers)

        Raises
        ------
        AuthenticationError
            On 401 or 403 responses.
        NotFoundError
            On 404 responses.
        WordPressTimeoutError
            When *timeout* elapses.
        WordPressConnectionError
            On transport failures.
        WordPressError
            On any other non-2xx response.
        """
        session = await self._get_session()
        budget = timeout if timeout is not None else self.timeout
        self.request_count += 1

        kwargs: Dict[str, Any] = {"timeout": aiohttp.ClientTimeout(total=budget)}
        if json_data is not None:
            kwargs["json"] = json_data
        if data is not None:
            kwargs["data"] = data
        if params is not None:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}

        logger.debug("API %s %s (timeout %.0fs)", method.upper(), url, budget)

        try:
            async with session.request(method, url, **kwargs) as resp:
                status = resp.status
                resp_headers = dict(resp.headers)

                # Try to parse JSON, fall back to text
                try:
                    body = await resp.json(content_type=None)
                except (json.JSONDecodeError, ValueError):
                    body = await resp.text()
        except asyncio.TimeoutError as exc:
            raise WordPressTimeoutError(
                f"{method.upper()} {url} timed out after {budget:.0f}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise WordPressConnectionError(
                f"{method.upper()} {url} failed: {type(exc).__name__}: {exc}"
            ) from exc

        if status < 400:
            return status, body, resp_headers

        error_code = ""
        error_data: Dict[str, Any] = {}
        message = body
        if isinstance(body, dict):
            message = body.get("message", str(body))
            error_code = str(body.get("code", ""))
            if isinstance(body.get("data"), dict):
                error_data = body["data"]

        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed for {self.config.site_url}: HTTP {status}",
                status_code=status,
                response_body=str(body),
                error_code=error_code,
                error_data=error_data,
            )
        if status == 404:
            raise NotFoundError(
                f"Resource not found: {url}",
                status_code=404,
                response_body=str(body),
                error_code=error_code,
                error_data=error_data,
            )
        raise WordPressError(
            f"HTTP {status} from {self.config.site_url}: {message}",
            status_code=status,
            response_body=str(body)[:500],
            error_code=error_code,
            error_data=error_data,
        )

    async def _get(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """GET request to a WP REST API v2 endpoint."""
        url = f"{self.config.api_url}/{endpoint}"
        _, body, _ = await self._request("GET", url, params=params, timeout=timeout)
        return body

    async def _post(
        self,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """POST request to a WP REST API v2 endpoint."""
        url = f"{self.config.api_url}/{endpoint}"
        _, body, _ = await self._request(
            "POST", url, json_data=json_data, data=data, timeout=timeout
        )
        return body

    async def _get_all(self, endpoint: str, timeout: float) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            batch = await self._get(
                endpoint,
                params={"per_page": WP_MAX_PER_PAGE, "page": page},
                timeout=timeout,
            )
            if not isinstance(batch, list) or len(batch) == 0:
                break
            items.extend(batch)
            if len(batch) < WP_MAX_PER_PAGE:
                break
            page += 1
        return items

    # -----------------------------------------------------------------------
    # Authentication
    # -----------------------------------------------------------------------

    async def get_current_user(self, timeout: float = 15.0) -> Dict[str, Any]:
        body = await self._get("users/me", timeout=timeout)
        return body if isinstance(body, dict) else {}

    async def verify_credentials(
        self, policy: Optional[RetryPolicy] = None
    ) -> Dict[str, Any]:
        """
        Probe ``/users/me`` until it answers 2xx.

        Parameters
        ----------
        policy : RetryPolicy, optional
            Defaults to three 15-second attempts with a linear 1s, 2s backoff.

        Returns
        -------
        dict
            The authenticated user object.

        Raises
        ------
        AuthenticationError
            When every attempt failed, whatever the cause.
        """
        policy = policy or auth_probe_policy()
        try:
            user = await policy.execute(lambda t: self.get_current_user(timeout=t))
        except RetryExhaustedError as exc:
            last = exc.last_error
            status = last.status_code if isinstance(last, WordPressError) else 0
            raise AuthenticationError(
                f"WordPress authentication failed after {exc.attempts} attempts: {last}",
                status_code=status,
            ) from exc
        logger.info(
            "Authenticated against %s as %s",
            self.config.site_url,
            user.get("name") or self.config.username,
        )
        return user

    # -----------------------------------------------------------------------
    # Categories / tags
    # -----------------------------------------------------------------------

    async def get_categories(self, timeout: float = TAXONOMY_TIMEOUT) -> List[Dict[str, Any]]:
        """All categories, following pagination. Never cached."""
        categories = await self._get_all("categories", timeout)
        logger.debug("Fetched %d categories from %s", len(categories), self.config.site_url)
        return categories

    async def get_tags(self, timeout: float = TAXONOMY_TIMEOUT) -> List[Dict[str, Any]]:
        """All tags, following pagination. Never cached."""
        tags = await self._get_all("tags", timeout)
        logger.debug("Fetched %d tags from %s", len(tags), self.config.site_url)
        return tags

    async def search_tags(self, name: str, timeout: float = TAG_TIMEOUT) -> List[Dict[str, Any]]:
        body = await self._get("tags", params={"search": name}, timeout=timeout)
        return body if isinstance(body, list) else []

    async def create_tag(self, name: str, timeout: float = TAG_TIMEOUT) -> Dict[str, Any]:
        """
        Create a tag.

        If WordPress reports ``term_exists`` the existing term id is returned
        as ``{"id": term_id, "name": name}``.
        """
        try:
            result = await self._post("tags", json_data={"name": name}, timeout=timeout)
        except WordPressError as exc:
            term_id = exc.error_data.get("term_id")
            if exc.error_code == "term_exists" and term_id:
                logger.debug("Tag '%s' already exists (id=%s)", name, term_id)
                return {"id": int(term_id), "name": name}
            raise
        logger.info("Created tag '%s' (id=%s)", name, result.get("id"))
        return result

    async def ensure_tag(self, name: str, timeout: float = TAG_TIMEOUT) -> int:
        """
        Return the id of the tag called *name*, creating it when missing.

        Search results are matched case-insensitively on the exact name;
        WordPress search is a substring match, so the first hit may be a
        different tag.
        """
        wanted = name.lower().strip()
        matches = await self.search_tags(name, timeout=timeout)
        for tag in matches:
            tag_name = tag.get("name", "")
            if isinstance(tag_name, dict):
                tag_name = tag_name.get("rendered", "")
            if str(tag_name).lower().strip() == wanted:
                return int(tag["id"])
        created = await self.create_tag(name, timeout=timeout)
        return int(created["id"])

    # -----------------------------------------------------------------------
    # Media / posts
    # -----------------------------------------------------------------------

    async def upload_media(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        title: str = "",
        alt_text: str = "",
        timeout: float = MEDIA_UPLOAD_TIMEOUT,
    ) -> Dict[str, Any]:
        """
        Upload bytes as a media attachment (multipart/form-data).

        Returns
        -------
        dict
            Media object with keys: id, source_url, etc.
        """
        form = aiohttp.FormData()
        form.add_field("file", content, filename=filename, content_type=content_type)
        form.add_field("title", title or "Featured Image")
        form.add_field("alt_text", alt_text or "")

        result = await self._post("media", data=form, timeout=timeout)
        logger.info(
            "Uploaded media %s: id=%s, url=%s",
            filename,
            result.get("id") if isinstance(result, dict) else None,
            result.get("source_url", "") if isinstance(result, dict) else "",
        )
        return result if isinstance(result, dict) else {}

    async def create_post(
        self, payload: Dict[str, Any], timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Create a post from a prepared payload. Single attempt.

        Returns
        -------
        dict
            Full post object from the API including id, link, status.
        """
        result = await self._post("posts", json_data=payload, timeout=timeout)
        if not isinstance(result, dict) or "id" not in result:
            raise WordPressError(
                f"Unexpected create-post response from {self.config.site_url}",
                response_body=str(result)[:500],
            )
        logger.info(
            "Created post %s on %s: %s (status=%s)",
            result.get("id"),
            self.config.site_url,
            str(payload.get("title", ""))[:60],
            result.get("status", payload.get("status")),
        )
        return result

    def __repr__(self) -> str:
        return (
            f"WordPressClient(site={self.config.site_url!r}, "
            f"configured={self.config.is_configured}, requests={self.request_count})"
        )
